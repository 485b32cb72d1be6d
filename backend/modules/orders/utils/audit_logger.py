# backend/modules/orders/utils/audit_logger.py

import logging
import json
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone


class AuditLogger:
    """
    Specialized logger for order reconciliation events

    Every conflict resolution is already persisted in the ledger table; this
    logger mirrors those events to the log stream for operators.
    """

    def __init__(self, name: str = "order_sync"):
        self.logger = logging.getLogger(f"{name}.audit")
        self.logger.setLevel(logging.INFO)

        # Ensure audit logs are always written
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - AUDIT - %(levelname)s - %(message)s - %(audit_data)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def _format_audit_data(self, **kwargs) -> Dict:
        """Format audit data for structured logging"""
        return {
            'audit_data': json.dumps({
                'timestamp': datetime.now(timezone.utc).isoformat(),
                'event_type': 'audit',
                **kwargs
            }, default=str)
        }

    def log_action(
        self,
        action: str,
        user_id: Optional[int],
        resource_type: str,
        resource_id: Any,
        details: Optional[Dict] = None,
        result: str = "success",
    ):
        """
        Log a user action for audit purposes

        Args:
            action: The action performed (e.g., "sync_orders", "resolve_conflict")
            user_id: ID of the user performing the action
            resource_type: Type of resource (e.g., "order")
            resource_id: ID of the resource
            details: Additional action details
            result: Result of the action (success, failure, partial)
        """
        log_level = logging.WARNING if result == "failure" else logging.INFO
        self.logger.log(
            log_level,
            f"AUDIT: User {user_id} performed {action} on {resource_type} {resource_id}",
            extra=self._format_audit_data(
                action=action,
                user_id=user_id,
                resource_type=resource_type,
                resource_id=resource_id,
                details=details or {},
                result=result,
            )
        )

    def log_conflict_resolution(
        self,
        order_id: int,
        user_id: Optional[int],
        resolution_type: str,
        conflict_fields: List[str],
        ledger_id: Optional[int] = None,
    ):
        """
        Log a resolved conflict

        Args:
            order_id: Order whose snapshots diverged
            user_id: User whose sync or request triggered the resolution
            resolution_type: local, server or merge
            conflict_fields: Names of the diverging fields
            ledger_id: ID of the persisted ledger row
        """
        self.logger.info(
            f"CONFLICT RESOLVED: order {order_id} resolved as {resolution_type}",
            extra=self._format_audit_data(
                event_subtype="conflict_resolution",
                order_id=order_id,
                user_id=user_id,
                resolution_type=resolution_type,
                conflict_fields=conflict_fields,
                ledger_id=ledger_id,
            )
        )

    def log_sync_batch(
        self,
        user_id: Optional[int],
        business_id: int,
        submitted: int,
        synced: int,
        errors: int,
        conflicts: int,
    ):
        """Log the outcome of one offline sync batch"""
        succeeded = synced + conflicts
        result = "success" if errors == 0 else ("failure" if succeeded == 0 else "partial")
        self.logger.info(
            f"SYNC BATCH: User {user_id} synced {succeeded}/{submitted} orders",
            extra=self._format_audit_data(
                event_subtype="sync_batch",
                user_id=user_id,
                business_id=business_id,
                submitted=submitted,
                synced=synced,
                errors=errors,
                conflicts=conflicts,
                result=result,
            )
        )
