from sqlalchemy import (Column, Integer, String, ForeignKey, DateTime, Date,
                        Time, Numeric, Text, Index, UniqueConstraint)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base
from core.mixins import TimestampMixin, BusinessScopedMixin
from ..enums.order_enums import OrderStatus


class Order(Base, TimestampMixin, BusinessScopedMixin):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, nullable=True, index=True)

    # Customer and delivery details
    client_name = Column(String(255), nullable=False)
    client_phone = Column(String(20), nullable=True)
    client_address = Column(Text, nullable=True)
    total = Column(Numeric(10, 2), nullable=False, default=0)
    delivery_date = Column(Date, nullable=False)
    delivery_time = Column(Time, nullable=True)
    status = Column(String(20), nullable=False,
                    default=OrderStatus.PENDING.value, index=True)
    notes = Column(Text, nullable=True)

    # Offline sync tracking
    client_generated_id = Column(String(255), nullable=True)
    last_modified_at = Column(DateTime(timezone=True), nullable=False,
                              default=func.now())
    modified_by = Column(Integer, nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    __table_args__ = (
        UniqueConstraint("business_id", "client_generated_id",
                         name="uq_orders_business_client_generated_id"),
        Index("idx_orders_business_date", "business_id", "delivery_date"),
    )

    def __repr__(self):
        return (f"<Order(id={self.id}, "
                f"client_generated_id={self.client_generated_id})>")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"),
                      nullable=False, index=True)
    product_id = Column(String(64), nullable=True)
    # Name is kept even if the product is later removed from the catalog
    product_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text, nullable=True)

    order = relationship("Order", back_populates="items")
