from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.sql import func


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=func.now(),
                        onupdate=func.now(), nullable=False)


class BusinessScopedMixin:
    """Rows owned by a single business (tenant)."""
    business_id = Column(Integer, nullable=False, index=True)
