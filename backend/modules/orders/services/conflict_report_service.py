# backend/modules/orders/services/conflict_report_service.py

"""Read-only views over the conflict-resolution ledger, scoped per tenant."""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from core.config import get_settings
from ..enums.order_enums import ResolutionType
from ..models.order_models import Order
from ..models.sync_models import ConflictResolution

logger = logging.getLogger(__name__)


class ConflictReportService:
    """Aggregates and pages through resolved conflicts"""

    def __init__(self, db: Session):
        self.db = db
        self.history_limit = get_settings().CONFLICT_HISTORY_LIMIT

    def _resolution_seconds(self):
        """Seconds between detection and resolution, per dialect"""
        if self.db.get_bind().dialect.name == "postgresql":
            return func.extract(
                "epoch", ConflictResolution.resolved_at - ConflictResolution.created_at
            )
        return (
            func.julianday(ConflictResolution.resolved_at)
            - func.julianday(ConflictResolution.created_at)
        ) * 86400.0

    def get_conflict_stats(self, business_id: int) -> Dict[str, Any]:
        """
        Count resolutions by type and average their latency.

        Returns zero counts and a ``None`` average when the tenant has no
        conflicts.
        """

        def count_of(resolution_type: ResolutionType):
            return func.coalesce(
                func.sum(
                    case(
                        (ConflictResolution.resolution_type == resolution_type.value, 1),
                        else_=0,
                    )
                ),
                0,
            )

        row = (
            self.db.query(
                func.count(ConflictResolution.id).label("total_conflicts"),
                count_of(ResolutionType.LOCAL).label("local_wins"),
                count_of(ResolutionType.SERVER).label("server_wins"),
                count_of(ResolutionType.MERGE).label("merge_required"),
                func.avg(self._resolution_seconds()).label("avg_resolution_time"),
            )
            .join(Order, ConflictResolution.order_id == Order.id)
            .filter(Order.business_id == business_id)
            .one()
        )

        avg_seconds: Optional[float] = (
            float(row.avg_resolution_time) if row.avg_resolution_time is not None else None
        )
        return {
            "total_conflicts": int(row.total_conflicts or 0),
            "local_wins": int(row.local_wins or 0),
            "server_wins": int(row.server_wins or 0),
            "merge_required": int(row.merge_required or 0),
            "avg_resolution_time": avg_seconds,
        }

    def get_conflict_history(
        self, business_id: int, limit: int = 50, offset: int = 0
    ) -> List[Dict[str, Any]]:
        """Newest resolutions first, each with a short summary of its order"""
        limit = max(1, min(limit, self.history_limit))
        offset = max(0, offset)

        rows = (
            self.db.query(
                ConflictResolution,
                Order.client_name,
                Order.client_phone,
                Order.delivery_date,
            )
            .join(Order, ConflictResolution.order_id == Order.id)
            .filter(Order.business_id == business_id)
            .order_by(ConflictResolution.resolved_at.desc(), ConflictResolution.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

        history = []
        for entry, client_name, client_phone, delivery_date in rows:
            history.append(
                {
                    "id": entry.id,
                    "order_id": entry.order_id,
                    "local_version": entry.local_version,
                    "server_version": entry.server_version,
                    "resolution_type": entry.resolution_type,
                    "resolved_data": entry.resolved_data,
                    "resolved_by": entry.resolved_by,
                    "conflict_fields": entry.conflict_fields,
                    "resolution_message": entry.resolution_message,
                    "created_at": entry.created_at,
                    "resolved_at": entry.resolved_at,
                    "order": {
                        "client_name": client_name,
                        "client_phone": client_phone,
                        "delivery_date": delivery_date,
                    },
                }
            )

        logger.debug(
            f"Loaded {len(history)} conflict resolutions for business {business_id}"
        )
        return history
