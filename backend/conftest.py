"""
Pytest configuration file for backend testing.
"""
import os
import sys
from pathlib import Path

# Test defaults must be in place before core.config is first imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("ORDER_LOCK_BACKEND", "memory")

# Add the backend directory to Python path so imports work correctly
backend_dir = Path(__file__).parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Import all models to register them with SQLAlchemy
from modules.orders.models import order_models, sync_models  # noqa: E402,F401
