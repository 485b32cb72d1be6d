# backend/modules/orders/schemas/sync_schemas.py

"""
Pydantic schemas for offline order synchronization.

Offline payloads arrive untyped from the POS client. Each one is validated
into an ``OfflineOrder`` individually so that a malformed row is reported
on its own instead of rejecting the whole batch.
"""

import re
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..enums.order_enums import ClientSyncStatus, OrderStatus, ResolutionAction

PHONE_DIGITS = re.compile(r"\D")

# Scale of the Numeric(10, 2) money columns
CENTS = Decimal("0.01")
MAX_AMOUNT = Decimal("99999999.99")


def to_cents(value: Optional[Decimal]) -> Optional[Decimal]:
    """Round a money amount to the precision it is stored with"""
    if value is None:
        return None
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


class OfflineOrderItem(BaseModel):
    """Line item as captured by the offline client"""

    product_id: Optional[str] = Field(None, max_length=64)
    product_name: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0, le=MAX_AMOUNT)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("unit_price")
    def unit_price_in_cents(cls, v):
        return to_cents(v)

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


class OrderSnapshotPayload(BaseModel):
    """
    One side of an order conflict as submitted by a client or operator.

    Business fields carry the same limits as the ``orders`` columns, so a
    snapshot that validates here can always be written back.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[int] = None
    client_generated_id: Optional[str] = Field(
        None, alias="clientGeneratedId", min_length=1, max_length=255
    )

    client_name: str = Field(..., min_length=2, max_length=100)
    client_phone: Optional[str] = Field(None, max_length=20)
    client_address: Optional[str] = Field(None, max_length=500)
    total: Optional[Decimal] = Field(None, ge=0, le=MAX_AMOUNT)
    delivery_date: date
    delivery_time: Optional[time] = None
    status: Optional[OrderStatus] = None
    notes: Optional[str] = Field(None, max_length=500)
    # None leaves the stored line items untouched
    items: Optional[List[OfflineOrderItem]] = None

    # Unparseable watermarks are settled by the resolver
    last_modified_at: Optional[Union[datetime, str]] = None
    created_at: Optional[Union[datetime, str]] = None

    @field_validator("client_phone")
    def validate_phone(cls, v):
        if v in (None, ""):
            return None
        digits = PHONE_DIGITS.sub("", v)
        if not 7 <= len(digits) <= 15:
            raise ValueError("Phone number must contain between 7 and 15 digits")
        return v

    @field_validator("delivery_time", mode="before")
    def empty_time_is_none(cls, v):
        return None if v == "" else v

    @field_validator("total")
    def total_in_cents(cls, v):
        return to_cents(v)

    @model_validator(mode="after")
    def default_total_from_items(self):
        if self.total is None and self.items:
            self.total = sum((item.subtotal for item in self.items), Decimal("0"))
        return self


class OfflineOrder(OrderSnapshotPayload):
    """An order created or edited while the client was disconnected"""

    sync_status: Optional[ClientSyncStatus] = Field(None, alias="syncStatus")
    status: OrderStatus = OrderStatus.PENDING
    items: List[OfflineOrderItem] = Field(..., min_length=1)


class SyncOrdersRequest(BaseModel):
    """Body of POST /orders/sync; rows are validated one by one downstream"""

    orders: List[Any] = Field(default_factory=list)


class SyncErrorResponse(BaseModel):
    order: Dict[str, Any]
    reason: str


class ConflictResolutionResponse(BaseModel):
    """Ledger row as returned to clients"""

    id: int
    order_id: int
    local_version: Dict[str, Any]
    server_version: Dict[str, Any]
    resolution_type: str
    resolved_data: Dict[str, Any]
    resolved_by: Optional[int] = None
    conflict_fields: Optional[List[str]] = None
    resolution_message: Optional[str] = None
    created_at: datetime
    resolved_at: datetime
    model_config = ConfigDict(from_attributes=True)


class SyncOrdersResponse(BaseModel):
    synced: List[Dict[str, Any]]
    errors: List[SyncErrorResponse]
    conflicts: List[ConflictResolutionResponse]
    message: str


class ResolveConflictRequest(BaseModel):
    """Operator-driven resolution of a single order"""

    model_config = ConfigDict(populate_by_name=True)

    local_order: OrderSnapshotPayload = Field(..., alias="localOrder")
    server_order: OrderSnapshotPayload = Field(..., alias="serverOrder")
    resolution_action: Optional[ResolutionAction] = Field(
        None,
        alias="resolutionAction",
        description="Leave empty to apply last-writer-wins",
    )
    merged_order: Optional[OrderSnapshotPayload] = Field(
        None, alias="mergedOrder", description="Required for merge_required"
    )

    @model_validator(mode="after")
    def merge_needs_snapshot(self):
        if (
            self.resolution_action == ResolutionAction.MERGE_REQUIRED
            and not self.merged_order
        ):
            raise ValueError("merged_order is required for merge_required")
        return self


class ResolutionResponse(BaseModel):
    action: ResolutionAction
    resolved_data: Dict[str, Any]
    message: str
    timestamp: datetime


class ResolveConflictResponse(BaseModel):
    success: bool
    resolution: ResolutionResponse
    conflict: ConflictResolutionResponse
    message: str


class ConflictOrderSummary(BaseModel):
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    delivery_date: Optional[date] = None


class ConflictHistoryEntry(ConflictResolutionResponse):
    order: Optional[ConflictOrderSummary] = None


class ConflictHistoryResponse(BaseModel):
    conflicts: List[ConflictHistoryEntry]
    limit: int
    offset: int


class ConflictStats(BaseModel):
    total_conflicts: int = 0
    local_wins: int = 0
    server_wins: int = 0
    merge_required: int = 0
    avg_resolution_time: Optional[float] = Field(
        None, description="Mean seconds between detection and resolution"
    )


class ConflictStatsResponse(BaseModel):
    stats: ConflictStats
