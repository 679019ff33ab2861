"""Order request parameters for the REST order interface.

Only the request side is modelled here: which form fields each call sends and
which route it targets. Order updates for these requests arrive over the
websocket as ``Postback`` messages.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

VARIETY_REGULAR = "regular"
VARIETY_BO = "bo"


def _format(value: Any) -> str:
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def add_param(params: dict[str, str], value: Any, name: str) -> None:
    """Add ``name`` to ``params`` only if ``value`` is set."""
    if value is None or value == "":
        return
    params[name] = _format(value)


@dataclass
class PlaceOrderParams:
    """Parameters for placing an order."""

    exchange: str
    tradingsymbol: str
    transaction_type: str
    quantity: int
    product: str
    order_type: str
    variety: str = VARIETY_REGULAR
    price: Decimal | None = None
    validity: str | None = None
    disclosed_quantity: int | None = None
    trigger_price: Decimal | None = None
    squareoff: Decimal | None = None
    stoploss: Decimal | None = None
    trailing_stoploss: Decimal | None = None
    iceberg_legs: int | None = None
    iceberg_quantity: int | None = None
    validity_ttl: int | None = None
    tag: str | None = None

    def to_params(self) -> dict[str, str]:
        params = {
            "exchange": self.exchange,
            "tradingsymbol": self.tradingsymbol,
            "transaction_type": self.transaction_type,
            "quantity": str(self.quantity),
            "product": self.product,
            "order_type": self.order_type,
        }
        add_param(params, self.price, "price")
        add_param(params, self.validity, "validity")
        add_param(params, self.disclosed_quantity, "disclosed_quantity")
        add_param(params, self.trigger_price, "trigger_price")
        add_param(params, self.squareoff, "squareoff")
        add_param(params, self.stoploss, "stoploss")
        add_param(params, self.trailing_stoploss, "trailing_stoploss")
        add_param(params, self.iceberg_legs, "iceberg_legs")
        add_param(params, self.iceberg_quantity, "iceberg_quantity")
        add_param(params, self.validity_ttl, "validity_ttl")
        add_param(params, self.tag, "tag")
        return params

    @property
    def route(self) -> tuple[str, tuple[str, ...]]:
        return "order.place", (self.variety,)


@dataclass
class ModifyOrderParams:
    """Parameters for modifying an open order. All body fields are optional."""

    order_id: str
    variety: str = VARIETY_REGULAR
    parent_order_id: str | None = None
    quantity: int | None = None
    price: Decimal | None = None
    order_type: str | None = None
    trigger_price: Decimal | None = None
    validity: str | None = None
    disclosed_quantity: int | None = None

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        add_param(params, self.parent_order_id, "parent_order_id")
        add_param(params, self.quantity, "quantity")
        add_param(params, self.price, "price")
        add_param(params, self.order_type, "order_type")
        add_param(params, self.trigger_price, "trigger_price")
        add_param(params, self.validity, "validity")
        add_param(params, self.disclosed_quantity, "disclosed_quantity")
        return params

    @property
    def route(self) -> tuple[str, tuple[str, ...]]:
        return "order.modify", (self.variety, self.order_id)


def cancel_order_route(
    variety: str, order_id: str, parent_order_id: str = ""
) -> tuple[str, tuple[str, ...]]:
    """Endpoint name and path arguments for cancelling an order."""
    if variety == VARIETY_BO:
        return "order.cancel.bo", (variety, order_id, parent_order_id)
    return "order.cancel", (variety, order_id)


@dataclass
class OrderMarginParams:
    """One order in a margin calculation request."""

    exchange: str
    tradingsymbol: str
    transaction_type: str
    variety: str
    product: str
    order_type: str
    quantity: int
    price: Decimal = Decimal("0")
    trigger_price: Decimal = Decimal("0")

    def to_dict(self) -> dict[str, Any]:
        return {
            "exchange": self.exchange,
            "tradingsymbol": self.tradingsymbol,
            "transaction_type": self.transaction_type,
            "variety": self.variety,
            "product": self.product,
            "order_type": self.order_type,
            "quantity": self.quantity,
            "price": float(self.price),
            "trigger_price": float(self.trigger_price),
        }


def order_margins_body(orders: list[OrderMarginParams]) -> str:
    """Serialize a margin request as the JSON array body the endpoint expects."""
    return json.dumps([order.to_dict() for order in orders])
