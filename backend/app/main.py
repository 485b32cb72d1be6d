import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import get_settings, validate_production_config
from core.exceptions import register_exception_handlers
from core.rate_limiter import RateLimitMiddleware

# ========== Orders Management ==========
from modules.orders.routers.sync_router import router as order_sync_router

settings = get_settings()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Order Sync API",
    description="""
    Offline order synchronization for point-of-sale clients.

    ## Features

    * **Offline Sync** - Reconcile orders queued while a device was disconnected
    * **Conflict Resolution** - Last-writer-wins with field-level diffing
    * **Resolution Ledger** - Append-only audit trail with history and statistics

    ## Authentication

    All order endpoints require a JWT bearer token whose `tenant_ids` claim
    names the business the caller acts for.
    """,
    version="1.0.0",
)

# Register exception handlers for consistent error responses
register_exception_handlers(app)

# Middleware is executed in reverse order of addition
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Added last, so it runs before CORS
if settings.rate_limit_enabled:
    app.add_middleware(RateLimitMiddleware)

app.include_router(order_sync_router)


@app.get("/health", tags=["health"])
def health_check():
    return {"status": "ok", "environment": settings.environment}


@app.on_event("startup")
async def startup_event():
    """Configure logging and refuse to start with an unsafe production config"""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    validate_production_config()
    logger.info(
        f"Order sync API started ({settings.environment}, "
        f"lock backend: {settings.ORDER_LOCK_BACKEND})"
    )
