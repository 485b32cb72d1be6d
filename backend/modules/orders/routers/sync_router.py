# backend/modules/orders/routers/sync_router.py

"""
API endpoints for offline order synchronization.

Reconnecting POS clients push their queued orders here; operators use the
conflict endpoints to settle disputes and inspect the resolution ledger.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.auth import User, get_current_business_id, get_current_user
from core.config import get_settings
from core.database import get_db
from core.exceptions import NotFoundError, ServiceUnavailableError, ValidationError
from modules.orders.exceptions.sync_exceptions import (
    InvalidSnapshotError,
    OrderNotFoundError,
    StorageError,
)
from modules.orders.schemas.sync_schemas import (
    ConflictHistoryResponse,
    ConflictResolutionResponse,
    ConflictStats,
    ConflictStatsResponse,
    ResolutionResponse,
    ResolveConflictRequest,
    ResolveConflictResponse,
    SyncErrorResponse,
    SyncOrdersRequest,
    SyncOrdersResponse,
)
from modules.orders.services.conflict_report_service import ConflictReportService
from modules.orders.services.order_snapshot import OrderSnapshot
from modules.orders.services.sync_service import OfflineOrderSyncService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["order-sync"])


@router.post("/sync", response_model=SyncOrdersResponse)
def sync_offline_orders(
    request: SyncOrdersRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    business_id: int = Depends(get_current_business_id),
) -> SyncOrdersResponse:
    """
    Reconcile orders queued by an offline client.

    Always answers 200 with per-order outcomes; malformed or failing orders
    are listed in ``errors`` without affecting the others.
    """
    max_batch = get_settings().SYNC_MAX_BATCH_SIZE
    if len(request.orders) > max_batch:
        raise ValidationError(
            f"Batch of {len(request.orders)} orders exceeds the limit of {max_batch}",
            error_code="BATCH_TOO_LARGE",
        )

    service = OfflineOrderSyncService(db)
    result = service.sync_all_pending_orders(
        request.orders, user_id=current_user.id, business_id=business_id
    )

    return SyncOrdersResponse(
        synced=result.synced,
        errors=[SyncErrorResponse(**error) for error in result.errors],
        conflicts=[
            ConflictResolutionResponse.model_validate(entry) for entry in result.conflicts
        ],
        message=result.summary_message(),
    )


@router.post("/resolve-conflict/{order_id}", response_model=ResolveConflictResponse)
def resolve_order_conflict(
    order_id: int,
    request: ResolveConflictRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    business_id: int = Depends(get_current_business_id),
) -> ResolveConflictResponse:
    """
    Settle one order's conflict outside the batch path.

    Applies last-writer-wins unless the operator forces a side or submits a
    merged version.
    """
    service = OfflineOrderSyncService(db)
    try:
        resolution, ledger_entry = service.resolve_conflict(
            order_id,
            request.local_order,
            request.server_order,
            user_id=current_user.id,
            business_id=business_id,
            resolution_action=request.resolution_action,
            merged_order=request.merged_order,
        )
    except OrderNotFoundError as e:
        raise NotFoundError(e.message, error_code=e.error_code, details=e.details)
    except InvalidSnapshotError as e:
        raise ValidationError(e.message, error_code=e.error_code, details=e.details)
    except StorageError as e:
        logger.error(f"Manual resolution of order {order_id} failed: {e.message}")
        raise ServiceUnavailableError(
            e.message, error_code=e.error_code, details=e.details
        )

    return ResolveConflictResponse(
        success=True,
        resolution=ResolutionResponse(
            action=resolution.action,
            resolved_data=OrderSnapshot.coerce(resolution.resolved_data).to_dict(),
            message=resolution.message,
            timestamp=resolution.timestamp,
        ),
        conflict=ConflictResolutionResponse.model_validate(ledger_entry),
        message=f"Conflict resolved: {resolution.message}",
    )


@router.get("/conflict-history", response_model=ConflictHistoryResponse)
def get_conflict_history(
    limit: int = Query(50, ge=1, description="Capped at CONFLICT_HISTORY_LIMIT"),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    business_id: int = Depends(get_current_business_id),
) -> ConflictHistoryResponse:
    """Resolution ledger for the caller's business, newest first"""
    limit = min(limit, get_settings().CONFLICT_HISTORY_LIMIT)
    history = ConflictReportService(db).get_conflict_history(
        business_id, limit=limit, offset=offset
    )
    return ConflictHistoryResponse(conflicts=history, limit=limit, offset=offset)


@router.get("/conflict-stats", response_model=ConflictStatsResponse)
def get_conflict_stats(
    db: Session = Depends(get_db),
    business_id: int = Depends(get_current_business_id),
) -> ConflictStatsResponse:
    stats = ConflictReportService(db).get_conflict_stats(business_id)
    return ConflictStatsResponse(stats=ConflictStats(**stats))
