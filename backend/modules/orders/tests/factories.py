# backend/modules/orders/tests/factories.py

import factory
from factory import Faker, Sequence, SubFactory, LazyFunction
from factory.alchemy import SQLAlchemyModelFactory
from datetime import date, datetime, time, timezone
from decimal import Decimal

from ..models.order_models import Order, OrderItem
from ..models.sync_models import ConflictResolution
from ..enums.order_enums import OrderStatus, ResolutionType


class BaseFactory(SQLAlchemyModelFactory):
    """Base factory; the session is bound per test by the db_session fixture."""

    class Meta:
        abstract = True
        sqlalchemy_session_persistence = "commit"

    @classmethod
    def bind_session(cls, session):
        for factory_class in (OrderFactory, OrderItemFactory, ConflictResolutionFactory):
            factory_class._meta.sqlalchemy_session = session

    @classmethod
    def reset_session(cls):
        """Reset the session (useful between tests)."""
        for factory_class in (OrderFactory, OrderItemFactory, ConflictResolutionFactory):
            factory_class._meta.sqlalchemy_session = None


class OrderFactory(BaseFactory):
    """Factory for server-side orders, optionally born offline."""

    class Meta:
        model = Order

    business_id = 1
    employee_id = 7
    client_generated_id = Sequence(lambda n: f"offline-{n:04d}")
    client_name = Faker("name")
    client_phone = Sequence(lambda n: f"555{n:07d}")
    client_address = None
    total = Decimal("150.00")
    delivery_date = date(2024, 1, 20)
    delivery_time = time(14, 0)
    status = OrderStatus.PENDING.value
    notes = None
    last_modified_at = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)
    created_at = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)
    modified_by = 7

    @factory.post_generation
    def items(self, create, extracted, **kwargs):
        if not create:
            return

        rows = extracted if extracted is not None else [
            {"product_id": "cake-1", "product_name": "Chocolate cake",
             "quantity": 1, "unit_price": Decimal("150.00")}
        ]
        for row in rows:
            self.items.append(
                OrderItem(
                    product_id=row.get("product_id"),
                    product_name=row["product_name"],
                    quantity=row["quantity"],
                    unit_price=row["unit_price"],
                    subtotal=row["unit_price"] * row["quantity"],
                    notes=row.get("notes"),
                )
            )
        OrderFactory._meta.sqlalchemy_session.commit()


class OrderItemFactory(BaseFactory):
    """Factory for order line items."""

    class Meta:
        model = OrderItem

    order = SubFactory(OrderFactory, items=[])
    product_id = Sequence(lambda n: f"product-{n}")
    product_name = Faker("word")
    quantity = 2
    unit_price = Decimal("10.00")
    subtotal = Decimal("20.00")


class ConflictResolutionFactory(BaseFactory):
    """Factory for ledger rows; insert-only, like the table itself."""

    class Meta:
        model = ConflictResolution

    order = SubFactory(OrderFactory)
    local_version = LazyFunction(lambda: {"client_name": "Local", "notes": "a"})
    server_version = LazyFunction(lambda: {"client_name": "Server", "notes": "b"})
    resolution_type = ResolutionType.LOCAL.value
    resolved_data = LazyFunction(lambda: {"client_name": "Local", "notes": "a"})
    resolved_by = 7
    conflict_fields = LazyFunction(lambda: ["client_name", "notes"])
    resolution_message = "Local changes are newer"
    created_at = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)
    resolved_at = datetime(2024, 1, 15, 10, 0, 2, tzinfo=timezone.utc)
