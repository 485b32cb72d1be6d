from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ClientSyncStatus(str, Enum):
    """Queue state reported by the offline client; informational only."""
    PENDING = "pending"
    SYNCED = "synced"
    ERROR = "error"


class ResolutionAction(str, Enum):
    LOCAL_WINS = "local_wins"
    SERVER_WINS = "server_wins"
    MERGE_REQUIRED = "merge_required"


class ResolutionType(str, Enum):
    """Value stored in the conflict_resolutions ledger."""
    LOCAL = "local"
    SERVER = "server"
    MERGE = "merge"


RESOLUTION_TYPE_BY_ACTION = {
    ResolutionAction.LOCAL_WINS: ResolutionType.LOCAL,
    ResolutionAction.SERVER_WINS: ResolutionType.SERVER,
    ResolutionAction.MERGE_REQUIRED: ResolutionType.MERGE,
}


class SyncOutcome(str, Enum):
    """Terminal state of one order within a sync call."""
    CREATED = "created"
    SYNCED = "synced"
    APPLIED = "applied"
    FAILED = "failed"
