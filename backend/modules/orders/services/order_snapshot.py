# backend/modules/orders/services/order_snapshot.py

"""
Canonical, storage-independent view of an order used during reconciliation.

Both sides of a conflict are converted to ``OrderSnapshot`` before they are
compared, so that the same business value has the same representation no
matter whether it came from the database or from an offline payload.
"""

from dataclasses import dataclass, field, fields
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

from ..exceptions.sync_exceptions import InvalidSnapshotError
from ..models.order_models import Order, OrderItem
from ..schemas.sync_schemas import OrderSnapshotPayload


def format_time(value: Optional[time]) -> Optional[str]:
    if value is None:
        return None
    if value.second or value.microsecond:
        return value.strftime("%H:%M:%S")
    return value.strftime("%H:%M")


def format_timestamp(value: Any) -> Any:
    """datetimes become ISO text; anything else (including junk) is kept as is"""
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _to_json_number(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    return value


def _item_to_json(item: Any) -> Any:
    if not isinstance(item, Mapping):
        return item
    return {key: _to_json_number(value) for key, value in item.items()}


@dataclass
class OrderSnapshot:
    """Point-in-time state of an order on one side of a sync"""

    client_generated_id: Optional[str] = None
    id: Optional[int] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    client_address: Optional[str] = None
    total: Optional[Decimal] = None
    delivery_date: Optional[str] = None
    delivery_time: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    last_modified_at: Any = None
    created_at: Any = None
    items: Optional[List[Dict[str, Any]]] = None

    @classmethod
    def from_order(cls, order: Order) -> "OrderSnapshot":
        return cls(
            client_generated_id=order.client_generated_id,
            id=order.id,
            client_name=order.client_name,
            client_phone=order.client_phone,
            client_address=order.client_address,
            total=order.total,
            delivery_date=order.delivery_date.isoformat() if order.delivery_date else None,
            delivery_time=format_time(order.delivery_time),
            status=order.status,
            notes=order.notes,
            last_modified_at=order.last_modified_at,
            created_at=order.created_at,
            items=[
                {
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "notes": item.notes,
                }
                for item in order.items
            ],
        )

    @classmethod
    def from_payload(cls, payload: OrderSnapshotPayload) -> "OrderSnapshot":
        """Build from a validated offline order or operator snapshot"""
        items = None
        if payload.items is not None:
            items = [
                {
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "notes": item.notes,
                }
                for item in payload.items
            ]
        return cls(
            client_generated_id=payload.client_generated_id,
            id=payload.id,
            client_name=payload.client_name,
            client_phone=payload.client_phone,
            client_address=payload.client_address,
            total=payload.total,
            delivery_date=payload.delivery_date.isoformat(),
            delivery_time=format_time(payload.delivery_time),
            status=payload.status.value if payload.status else None,
            notes=payload.notes,
            last_modified_at=payload.last_modified_at,
            created_at=payload.created_at,
            items=items,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "OrderSnapshot":
        """Build from a loosely-typed dict (operator payloads, ledger blobs)"""
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        if "client_generated_id" not in values and "clientGeneratedId" in data:
            values["client_generated_id"] = data["clientGeneratedId"]
        return cls(**values)

    @classmethod
    def coerce(cls, value: Any) -> "OrderSnapshot":
        if isinstance(value, OrderSnapshot):
            return value
        if isinstance(value, OrderSnapshotPayload):
            return cls.from_payload(value)
        if isinstance(value, Order):
            return cls.from_order(value)
        return cls.from_mapping(value)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible representation, used for responses and the ledger"""
        return {
            "id": self.id,
            "client_generated_id": self.client_generated_id,
            "client_name": self.client_name,
            "client_phone": self.client_phone,
            "client_address": self.client_address,
            "total": _to_json_number(self.total),
            "delivery_date": self.delivery_date,
            "delivery_time": self.delivery_time,
            "status": self.status,
            "notes": self.notes,
            "last_modified_at": format_timestamp(self.last_modified_at),
            "created_at": format_timestamp(self.created_at),
            "items": (
                None
                if self.items is None
                else [_item_to_json(item) for item in self.items]
            ),
        }

    def apply_to(self, order: Order) -> None:
        """
        Copy business fields and line items onto an ORM order.

        Raises:
            InvalidSnapshotError: if a value cannot be stored
        """
        if not self.client_name:
            raise InvalidSnapshotError("client_name", self.client_name, "required")

        order.client_name = self.client_name
        order.client_phone = self.client_phone or None
        order.client_address = self.client_address or None
        order.total = _parse_decimal("total", self.total)
        order.delivery_date = _parse_date(self.delivery_date)
        order.delivery_time = _parse_time(self.delivery_time)
        order.status = self.status or order.status
        order.notes = self.notes or None

        if self.items is not None and not isinstance(self.items, list):
            raise InvalidSnapshotError("items", self.items, "expected a list")
        if self.items is not None and self._items_differ(order):
            order.items = [_build_item(row) for row in self.items]

    def _items_differ(self, order: Order) -> bool:
        current = OrderSnapshot.from_order(order).items or []
        try:
            return _item_rows(self.items) != _item_rows(current)
        except (ValueError, TypeError, InvalidOperation):
            # Unparseable rows always go through _build_item, which reports them
            return True


def _parse_decimal(name: str, value: Any) -> Decimal:
    if value is None or value == "":
        raise InvalidSnapshotError(name, value, "required")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidSnapshotError(name, value, "not a number")


def _parse_date(value: Any) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not value:
        raise InvalidSnapshotError("delivery_date", value, "required")
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise InvalidSnapshotError("delivery_date", value, "expected YYYY-MM-DD")


def _parse_time(value: Any) -> Optional[time]:
    if value in (None, ""):
        return None
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value))
    except ValueError:
        raise InvalidSnapshotError("delivery_time", value, "expected HH:MM")


def _item_rows(items: List[Dict[str, Any]]):
    if not all(isinstance(item, Mapping) for item in items):
        raise TypeError("item rows must be objects")
    return [
        (
            item.get("product_id"),
            item.get("product_name"),
            int(item.get("quantity") or 0),
            Decimal(str(item.get("unit_price") or 0)),
            item.get("notes") or None,
        )
        for item in items
    ]


def _build_item(row: Mapping[str, Any]) -> OrderItem:
    if not isinstance(row, Mapping):
        raise InvalidSnapshotError("items", row, "expected an object")
    if not row.get("product_name"):
        raise InvalidSnapshotError("items.product_name", row.get("product_name"), "required")
    try:
        quantity = int(row.get("quantity") or 1)
    except (TypeError, ValueError):
        raise InvalidSnapshotError("items.quantity", row.get("quantity"), "not an integer")
    unit_price = _parse_decimal("items.unit_price", row.get("unit_price"))
    return OrderItem(
        product_id=row.get("product_id"),
        product_name=row["product_name"],
        quantity=quantity,
        unit_price=unit_price,
        subtotal=unit_price * quantity,
        notes=row.get("notes"),
    )
