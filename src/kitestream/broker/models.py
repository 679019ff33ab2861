"""Order update models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

TERMINAL_STATUSES = frozenset({"COMPLETE", "CANCELLED", "REJECTED"})


def _decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def _int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _str(value: Any) -> str:
    return "" if value is None else str(value)


def _timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.strptime(str(value), TIMESTAMP_FORMAT)
    except ValueError:
        return datetime.fromisoformat(str(value))


@dataclass(frozen=True)
class Postback:
    """Order lifecycle update pushed over the websocket."""

    order_id: str
    status: str
    exchange_order_id: str = ""
    parent_order_id: str = ""
    status_message: str = ""
    user_id: str = ""
    placed_by: str = ""
    exchange: str = ""
    tradingsymbol: str = ""
    instrument_token: int | None = None
    transaction_type: str = ""
    order_type: str = ""
    product: str = ""
    variety: str = ""
    validity: str = ""
    quantity: int | None = None
    disclosed_quantity: int | None = None
    filled_quantity: int | None = None
    pending_quantity: int | None = None
    cancelled_quantity: int | None = None
    price: Decimal | None = None
    trigger_price: Decimal | None = None
    average_price: Decimal | None = None
    order_timestamp: datetime | None = None
    exchange_timestamp: datetime | None = None
    tag: str = ""
    guid: str = ""
    checksum: str = ""
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Postback:
        """Build from the "data" object of an order text message."""
        return cls(
            order_id=_str(data.get("order_id")),
            status=_str(data.get("status")),
            exchange_order_id=_str(data.get("exchange_order_id")),
            parent_order_id=_str(data.get("parent_order_id")),
            status_message=_str(data.get("status_message")),
            user_id=_str(data.get("user_id") or data.get("account_id")),
            placed_by=_str(data.get("placed_by")),
            exchange=_str(data.get("exchange")),
            tradingsymbol=_str(data.get("tradingsymbol")),
            instrument_token=_int(data.get("instrument_token")),
            transaction_type=_str(data.get("transaction_type")),
            order_type=_str(data.get("order_type")),
            product=_str(data.get("product")),
            variety=_str(data.get("variety")),
            validity=_str(data.get("validity")),
            quantity=_int(data.get("quantity")),
            disclosed_quantity=_int(data.get("disclosed_quantity")),
            filled_quantity=_int(data.get("filled_quantity")),
            pending_quantity=_int(data.get("pending_quantity")),
            cancelled_quantity=_int(data.get("cancelled_quantity")),
            price=_decimal(data.get("price")),
            trigger_price=_decimal(data.get("trigger_price")),
            average_price=_decimal(data.get("average_price")),
            order_timestamp=_timestamp(data.get("order_timestamp")),
            exchange_timestamp=_timestamp(data.get("exchange_timestamp")),
            tag=_str(data.get("tag")),
            guid=_str(data.get("guid")),
            checksum=_str(data.get("checksum")),
            raw=dict(data),
        )

    @property
    def is_done(self) -> bool:
        return self.status.upper() in TERMINAL_STATUSES
