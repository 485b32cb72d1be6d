# backend/modules/orders/models/sync_models.py

"""
Conflict-resolution ledger for offline order synchronization.

One row is written per reconciled order conflict. Rows are an audit
trail: the mapper refuses to flush updates or deletes for them.
"""

from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime, Text, Index,
    CheckConstraint, JSON, event
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from core.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class AuditLedgerImmutableError(RuntimeError):
    """Raised when code attempts to modify or remove a ledger row."""


class ConflictResolution(Base):
    """Write-once record of how an order conflict was settled"""
    __tablename__ = "conflict_resolutions"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)

    # Both sides as they were when the conflict was detected
    local_version = Column(JSONType, nullable=False)
    server_version = Column(JSONType, nullable=False)

    resolution_type = Column(String(20), nullable=False)  # local, server, merge
    resolved_data = Column(JSONType, nullable=False)
    resolved_by = Column(Integer, nullable=True)
    conflict_fields = Column(JSONType, nullable=True)
    resolution_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    resolved_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    order = relationship("Order")

    __table_args__ = (
        CheckConstraint(
            "resolution_type IN ('local', 'server', 'merge')",
            name="ck_conflict_resolutions_type",
        ),
        Index("idx_conflict_resolutions_created_at", "created_at"),
    )


@event.listens_for(ConflictResolution, "before_update")
def _reject_ledger_update(mapper, connection, target):
    raise AuditLedgerImmutableError(
        f"Conflict resolution {target.id} is immutable"
    )


@event.listens_for(ConflictResolution, "before_delete")
def _reject_ledger_delete(mapper, connection, target):
    raise AuditLedgerImmutableError(
        f"Conflict resolution {target.id} cannot be deleted"
    )
