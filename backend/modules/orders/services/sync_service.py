# backend/modules/orders/services/sync_service.py

"""
Order synchronization service for offline POS clients.

A reconnecting client submits the orders it created or edited while
disconnected. Each order is reconciled on its own: created when the server
has never seen its ``client_generated_id``, left alone when nothing changed,
or resolved by last-writer-wins when business fields diverge. One bad order
never aborts the rest of the batch.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import get_settings
from ..enums.order_enums import ResolutionAction, SyncOutcome
from ..exceptions.sync_exceptions import OrderSyncError
from ..models.order_models import Order
from ..models.sync_models import ConflictResolution
from ..schemas.sync_schemas import OfflineOrder, OrderSnapshotPayload
from ..utils.audit_logger import AuditLogger
from ..utils.order_locks import (
    OrderLockRegistry,
    get_order_lock_registry,
    order_lock_key,
)
from ..utils.storage_timeout import apply_statement_timeout, is_timeout_error
from .conflict_resolver import (
    Resolution,
    detect_field_conflicts,
    parse_timestamp,
    resolve_order_conflict,
)
from .order_snapshot import OrderSnapshot
from .resolution_applier import ResolutionApplier

logger = logging.getLogger(__name__)


@dataclass
class SyncBatchResult:
    """Per-item outcome of one sync call; never persisted"""

    synced: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    conflicts: List[ConflictResolution] = field(default_factory=list)
    outcomes: List[SyncOutcome] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.synced) + len(self.errors) + len(self.conflicts)

    def summary_message(self) -> str:
        return (
            f"Sync completed. {len(self.synced)} orders synced, "
            f"{len(self.errors)} errors, {len(self.conflicts)} conflicts resolved."
        )


def _validation_reason(error: ValidationError) -> str:
    details = "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'order'}: {err['msg']}"
        for err in error.errors()
    )
    return f"Validation failed: {details}"


def _order_payload(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, OfflineOrder):
        return raw.model_dump(mode="json", by_alias=True)
    if isinstance(raw, dict):
        return raw
    return {"value": repr(raw)}


def _operator_snapshot(value: Any) -> OrderSnapshot:
    if not isinstance(value, OrderSnapshotPayload):
        value = OrderSnapshotPayload.model_validate(value)
    return OrderSnapshot.from_payload(value)


class OfflineOrderSyncService:
    """Reconciles offline-originated orders against the order store"""

    def __init__(
        self,
        db: Session,
        lock_registry: Optional[OrderLockRegistry] = None,
        applier: Optional[ResolutionApplier] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        settings = get_settings()
        self.db = db
        self.lock_registry = lock_registry or get_order_lock_registry()
        self.lock_timeout = settings.SYNC_LOCK_TIMEOUT_SECONDS
        self.storage_timeout = settings.SYNC_STORAGE_TIMEOUT_SECONDS
        self.audit_logger = audit_logger or AuditLogger()
        self.applier = applier or ResolutionApplier(
            db,
            lock_registry=self.lock_registry,
            lock_timeout=self.lock_timeout,
            storage_timeout=self.storage_timeout,
            audit_logger=self.audit_logger,
        )

    def sync_all_pending_orders(
        self, offline_orders: List[Any], user_id: Optional[int], business_id: int
    ) -> SyncBatchResult:
        """
        Reconcile a batch of offline orders.

        Every order ends up in exactly one of ``synced``, ``conflicts`` or
        ``errors``. Exceptions never escape this method.
        """
        result = SyncBatchResult()
        logger.info(
            f"Starting offline sync of {len(offline_orders)} orders "
            f"for business {business_id} (user {user_id})"
        )

        for raw in offline_orders:
            reason = None
            try:
                outcome = self._sync_order(raw, user_id, business_id, result)
            except ValidationError as e:
                reason = _validation_reason(e)
            except OrderSyncError as e:
                reason = e.message
            except SQLAlchemyError as e:
                reason = (
                    "Storage timeout" if is_timeout_error(e) else f"Storage error: {e}"
                )
            except Exception as e:
                logger.error(f"Unexpected error syncing offline order: {e}", exc_info=True)
                reason = str(e) or e.__class__.__name__

            if reason is not None:
                try:
                    self.db.rollback()
                except SQLAlchemyError as rollback_error:
                    logger.error(
                        f"Rollback after failed offline order also failed: {rollback_error}"
                    )
                logger.warning(f"Offline order rejected: {reason}")
                result.errors.append({"order": _order_payload(raw), "reason": reason})
                outcome = SyncOutcome.FAILED

            result.outcomes.append(outcome)

        self.audit_logger.log_sync_batch(
            user_id=user_id,
            business_id=business_id,
            submitted=len(offline_orders),
            synced=len(result.synced),
            errors=len(result.errors),
            conflicts=len(result.conflicts),
        )
        logger.info(result.summary_message())
        return result

    def _sync_order(
        self,
        raw: Any,
        user_id: Optional[int],
        business_id: int,
        result: SyncBatchResult,
    ) -> SyncOutcome:
        offline = raw if isinstance(raw, OfflineOrder) else OfflineOrder.model_validate(raw)
        if not offline.client_generated_id:
            offline.client_generated_id = str(uuid.uuid4())

        local = OrderSnapshot.from_payload(offline)
        lock_key = order_lock_key(business_id, offline.client_generated_id)

        with self.lock_registry.lock(lock_key, self.lock_timeout):
            apply_statement_timeout(self.db, self.storage_timeout)
            existing = self._find_counterpart(business_id, offline.client_generated_id)

            if existing is None:
                order = self._create_order(offline, local, user_id, business_id)
                result.synced.append(OrderSnapshot.from_order(order).to_dict())
                return SyncOutcome.CREATED

            server = OrderSnapshot.from_order(existing)
            conflicts = detect_field_conflicts(local, server)
            if not conflicts:
                # Nothing written; end the read transaction
                self.db.rollback()
                result.synced.append(server.to_dict())
                return SyncOutcome.SYNCED

            detected_at = datetime.now(timezone.utc)
            resolution = resolve_order_conflict(local, server)
            logger.info(
                f"Order {existing.id} ({offline.client_generated_id}) diverges on "
                f"{', '.join(c.field for c in conflicts)}: {resolution.message}"
            )
            ledger_entry = self.applier.apply_resolution(
                existing.id,
                resolution,
                user_id,
                local,
                server,
                conflicts=conflicts,
                business_id=business_id,
                lock_key=lock_key,
                detected_at=detected_at,
            )
            result.conflicts.append(ledger_entry)
            return SyncOutcome.APPLIED

    def _find_counterpart(
        self, business_id: int, client_generated_id: str
    ) -> Optional[Order]:
        return (
            self.db.query(Order)
            .filter(
                Order.business_id == business_id,
                Order.client_generated_id == client_generated_id,
            )
            .first()
        )

    def _create_order(
        self,
        offline: OfflineOrder,
        local: OrderSnapshot,
        user_id: Optional[int],
        business_id: int,
    ) -> Order:
        now = datetime.now(timezone.utc)
        order = Order(
            business_id=business_id,
            employee_id=user_id,
            client_generated_id=offline.client_generated_id,
            modified_by=user_id,
            last_modified_at=parse_timestamp(offline.last_modified_at) or now,
            created_at=parse_timestamp(offline.created_at) or now,
        )
        local.apply_to(order)
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)

        logger.info(
            f"Created order {order.id} from offline order {order.client_generated_id}"
        )
        return order

    def resolve_conflict(
        self,
        order_id: int,
        local_order: Any,
        server_order: Any,
        user_id: Optional[int],
        business_id: int,
        resolution_action: Optional[ResolutionAction] = None,
        merged_order: Any = None,
    ) -> Tuple[Resolution, ConflictResolution]:
        """
        Operator-driven resolution of one order outside the batch path.

        Without ``resolution_action`` the last-writer-wins policy decides.
        An explicit action forces that side; ``merge_required`` applies the
        operator's ``merged_order`` and is recorded as a merge. Snapshots are
        ``OrderSnapshotPayload`` instances or dicts validated into one.

        Raises:
            pydantic.ValidationError: if a snapshot dict is malformed
            OrderNotFoundError: if the order is not in ``business_id``
            InvalidSnapshotError: if the winning snapshot cannot be stored
            StorageError: on lock or database failures
        """
        local = _operator_snapshot(local_order)
        server = _operator_snapshot(server_order)
        now = datetime.now(timezone.utc)

        if resolution_action is None:
            resolution = resolve_order_conflict(local, server, now=now)
        elif resolution_action == ResolutionAction.MERGE_REQUIRED:
            if not merged_order:
                raise ValueError("merged_order is required for merge_required")
            resolution = Resolution(
                action=resolution_action,
                resolved_data=_operator_snapshot(merged_order),
                message="Operator supplied a merged version",
                timestamp=now,
            )
        else:
            side = "local" if resolution_action == ResolutionAction.LOCAL_WINS else "server"
            resolution = Resolution(
                action=resolution_action,
                resolved_data=local if side == "local" else server,
                message=f"Operator kept the {side} version",
                timestamp=now,
            )

        try:
            ledger_entry = self.applier.apply_resolution(
                order_id,
                resolution,
                user_id,
                local,
                server,
                conflicts=detect_field_conflicts(local, server),
                business_id=business_id,
                detected_at=now,
            )
        except OrderSyncError as e:
            self.audit_logger.log_action(
                action="resolve_conflict",
                user_id=user_id,
                resource_type="order",
                resource_id=order_id,
                details={"error": e.message, "error_code": e.error_code},
                result="failure",
            )
            raise

        self.audit_logger.log_action(
            action="resolve_conflict",
            user_id=user_id,
            resource_type="order",
            resource_id=order_id,
            details={"resolution_type": ledger_entry.resolution_type},
        )
        return resolution, ledger_entry
