# backend/modules/orders/services/conflict_resolver.py

"""
Field-level conflict detection and last-writer-wins resolution.

Both functions are pure: they never read the clock for the decision, never
mutate their inputs and never touch storage. Snapshots may be
``OrderSnapshot`` instances or plain mappings.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

from ..enums.order_enums import (
    RESOLUTION_TYPE_BY_ACTION,
    ResolutionAction,
    ResolutionType,
)

# Declaration order is the output order of detect_field_conflicts
COMPARABLE_FIELDS = (
    "client_name",
    "client_phone",
    "client_address",
    "total",
    "delivery_date",
    "delivery_time",
    "status",
    "notes",
)


@dataclass(frozen=True)
class FieldConflict:
    field: str
    local_value: Any
    server_value: Any

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "local_value": _jsonable(self.local_value),
            "server_value": _jsonable(self.server_value),
        }


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolve_order_conflict"""

    action: ResolutionAction
    resolved_data: Any
    message: str
    timestamp: datetime

    @property
    def resolution_type(self) -> ResolutionType:
        return RESOLUTION_TYPE_BY_ACTION[self.action]


def _get(snapshot: Any, name: str) -> Any:
    if isinstance(snapshot, Mapping):
        return snapshot.get(name)
    return getattr(snapshot, name, None)


def _is_absent(value: Any) -> bool:
    return value is None or value == ""


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _canonical(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, time):
        return value.strftime("%H:%M:%S" if value.second else "%H:%M")
    return value


def values_equal(local_value: Any, server_value: Any) -> bool:
    """Null-aware equality: None, missing and "" are the same "no value"."""
    if _is_absent(local_value) or _is_absent(server_value):
        return _is_absent(local_value) and _is_absent(server_value)

    if _is_number(local_value) and _is_number(server_value):
        try:
            return Decimal(str(local_value)) == Decimal(str(server_value))
        except InvalidOperation:
            return False

    return _canonical(local_value) == _canonical(server_value)


def detect_field_conflicts(local: Any, server: Any) -> List[FieldConflict]:
    """Return one FieldConflict per business field whose values diverge."""
    conflicts = []
    for name in COMPARABLE_FIELDS:
        local_value = _get(local, name)
        server_value = _get(server, name)
        if not values_equal(local_value, server_value):
            conflicts.append(FieldConflict(name, local_value, server_value))
    return conflicts


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a watermark into an aware UTC datetime.

    Returns None for anything unusable instead of raising; naive values are
    taken to be UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def effective_timestamp(snapshot: Any) -> Optional[datetime]:
    """last_modified_at, falling back to created_at"""
    return parse_timestamp(_get(snapshot, "last_modified_at")) or parse_timestamp(
        _get(snapshot, "created_at")
    )


def _describe(value: Optional[datetime]) -> str:
    return value.isoformat() if value else "unknown"


def resolve_order_conflict(
    local: Any, server: Any, now: Optional[datetime] = None
) -> Resolution:
    """
    Pick the surviving snapshot by last-writer-wins.

    A side without a usable watermark counts as the oldest. Ties, including
    two unusable watermarks, go to the server because it is the state other
    clients have already observed.
    """
    local_ts = effective_timestamp(local)
    server_ts = effective_timestamp(server)
    resolved_at = now or datetime.now(timezone.utc)

    if local_ts is not None and (server_ts is None or local_ts > server_ts):
        return Resolution(
            action=ResolutionAction.LOCAL_WINS,
            resolved_data=local,
            message=(
                f"Local changes are newer ({_describe(local_ts)} > "
                f"{_describe(server_ts)})"
            ),
            timestamp=resolved_at,
        )

    if server_ts is not None and (local_ts is None or server_ts > local_ts):
        return Resolution(
            action=ResolutionAction.SERVER_WINS,
            resolved_data=server,
            message=(
                f"Server changes are newer ({_describe(server_ts)} > "
                f"{_describe(local_ts)})"
            ),
            timestamp=resolved_at,
        )

    return Resolution(
        action=ResolutionAction.SERVER_WINS,
        resolved_data=server,
        message=(
            f"Same modification time ({_describe(server_ts)}); "
            "server version kept"
        ),
        timestamp=resolved_at,
    )


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    return _canonical(value)
