import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from core.auth import User, get_current_user
from core.database import Base, get_db
from app.main import app
from modules.orders.services.sync_service import OfflineOrderSyncService
from modules.orders.utils.order_locks import InProcessOrderLockRegistry
from modules.orders.tests.factories import BaseFactory

SQLALCHEMY_DATABASE_URL = "sqlite://"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine
)

BUSINESS_ID = 1
USER_ID = 7


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    BaseFactory.bind_session(db)
    try:
        yield db
    finally:
        BaseFactory.reset_session()
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def lock_registry():
    return InProcessOrderLockRegistry()


@pytest.fixture
def sync_service(db_session, lock_registry):
    return OfflineOrderSyncService(db_session, lock_registry=lock_registry)


@pytest.fixture
def current_user():
    return User(id=USER_ID, username="cashier", roles=["staff"], tenant_ids=[BUSINESS_ID])


@pytest.fixture(scope="function")
def client(db_session, current_user):
    """Create a test client with database and auth dependency overrides."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_offline_order():
    """Build a raw offline payload the way the POS client sends it."""
    def _make(**overrides):
        payload = {
            "clientGeneratedId": "offline-0001",
            "syncStatus": "pending",
            "client_name": "Ana Lopez",
            "client_phone": "123456789",
            "client_address": "Calle 1 #23",
            "total": 150,
            "delivery_date": "2024-01-20",
            "delivery_time": "14:00",
            "status": "pending",
            "notes": "a",
            "items": [
                {
                    "product_id": "cake-1",
                    "product_name": "Chocolate cake",
                    "quantity": 1,
                    "unit_price": 150,
                }
            ],
            "last_modified_at": "2024-01-15T10:30:00Z",
            "created_at": "2024-01-15T09:00:00Z",
        }
        payload.update(overrides)
        return payload

    return _make
