# backend/modules/orders/services/resolution_applier.py

"""
Commits a conflict resolution to the order store.

The order update and the ledger insert happen in one transaction while the
per-order lock is held, so the ledger never describes a state that was not
actually committed.
"""

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import get_settings
from ..exceptions.sync_exceptions import (
    OrderNotFoundError,
    OrderSyncError,
    StorageError,
    StorageTimeoutError,
)
from ..models.order_models import Order
from ..models.sync_models import ConflictResolution
from ..utils.audit_logger import AuditLogger
from ..utils.order_locks import (
    OrderLockRegistry,
    get_order_lock_registry,
    order_lock_key,
)
from ..utils.storage_timeout import apply_statement_timeout, is_timeout_error
from .conflict_resolver import FieldConflict, Resolution
from .order_snapshot import OrderSnapshot

logger = logging.getLogger(__name__)


class ResolutionApplier:
    """Writes the winning snapshot and its ledger row atomically"""

    def __init__(
        self,
        db: Session,
        lock_registry: Optional[OrderLockRegistry] = None,
        lock_timeout: Optional[float] = None,
        storage_timeout: Optional[float] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        settings = get_settings()
        self.db = db
        self.lock_registry = lock_registry or get_order_lock_registry()
        self.lock_timeout = lock_timeout or settings.SYNC_LOCK_TIMEOUT_SECONDS
        self.storage_timeout = storage_timeout or settings.SYNC_STORAGE_TIMEOUT_SECONDS
        self.audit_logger = audit_logger or AuditLogger()

    def apply_resolution(
        self,
        order_id: int,
        resolution: Resolution,
        acting_user_id: Optional[int],
        local_snapshot: Any,
        server_snapshot: Any,
        conflicts: Optional[List[FieldConflict]] = None,
        business_id: Optional[int] = None,
        lock_key: Optional[str] = None,
        detected_at: Optional[datetime] = None,
    ) -> ConflictResolution:
        """
        Persist ``resolution`` for ``order_id``.

        Args:
            order_id: Server id of the order being reconciled
            resolution: Decision from the resolver (or an operator)
            acting_user_id: User recorded as ``resolved_by`` and ``modified_by``
            local_snapshot: Client side as submitted
            server_snapshot: Server side as read before the decision
            conflicts: Field divergences that triggered the resolution
            business_id: Restricts the lookup to one tenant when given
            lock_key: Key already held by the caller, if any
            detected_at: When the divergence was observed; defaults to the
                resolution time

        Returns:
            The committed ledger row

        Raises:
            OrderNotFoundError: if the order does not exist (in the tenant)
            InvalidSnapshotError: if the winning snapshot cannot be stored
            StorageError: on lock timeouts and database failures; nothing is
                committed in that case
        """
        # Serialize both sides before the order row is touched
        local_version = OrderSnapshot.coerce(local_snapshot).to_dict()
        server_version = OrderSnapshot.coerce(server_snapshot).to_dict()
        resolved = OrderSnapshot.coerce(resolution.resolved_data)
        conflict_fields = [conflict.field for conflict in conflicts or []]

        if lock_key is None:
            lock_key = self._lock_key_for(order_id, business_id)

        with self.lock_registry.lock(lock_key, self.lock_timeout):
            try:
                apply_statement_timeout(self.db, self.storage_timeout)

                order = self._get_order_for_update(order_id, business_id)
                if order is None:
                    raise OrderNotFoundError(order_id)

                resolved.apply_to(order)
                order.last_modified_at = resolution.timestamp
                order.modified_by = acting_user_id

                ledger_entry = ConflictResolution(
                    order_id=order.id,
                    local_version=local_version,
                    server_version=server_version,
                    resolution_type=resolution.resolution_type.value,
                    resolved_data=resolved.to_dict(),
                    resolved_by=acting_user_id,
                    conflict_fields=conflict_fields,
                    resolution_message=resolution.message,
                    created_at=detected_at or resolution.timestamp,
                    resolved_at=datetime.now(timezone.utc),
                )
                self.db.add(ledger_entry)
                self.db.commit()
            except OrderSyncError:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                if is_timeout_error(e):
                    raise StorageTimeoutError(
                        f"Timed out applying resolution to order {order_id}",
                        {"order_id": order_id},
                    ) from e
                logger.error(f"Failed to apply resolution to order {order_id}: {e}")
                raise StorageError(
                    f"Failed to apply resolution to order {order_id}",
                    details={"order_id": order_id},
                ) from e

        self.db.refresh(ledger_entry)

        self.audit_logger.log_conflict_resolution(
            order_id=order_id,
            user_id=acting_user_id,
            resolution_type=ledger_entry.resolution_type,
            conflict_fields=conflict_fields,
            ledger_id=ledger_entry.id,
        )
        logger.info(
            f"Applied {resolution.action.value} to order {order_id} "
            f"(fields: {', '.join(conflict_fields) or 'none'})"
        )
        return ledger_entry

    def _order_query(self, order_id: int, business_id: Optional[int]):
        query = self.db.query(Order).filter(Order.id == order_id)
        if business_id is not None:
            query = query.filter(Order.business_id == business_id)
        return query

    def _get_order_for_update(
        self, order_id: int, business_id: Optional[int]
    ) -> Optional[Order]:
        return self._order_query(order_id, business_id).with_for_update().first()

    def _lock_key_for(self, order_id: int, business_id: Optional[int]) -> str:
        order = self._order_query(order_id, business_id).first()
        if order is None:
            raise OrderNotFoundError(order_id)
        return order_lock_key(order.business_id, order.client_generated_id, order.id)
