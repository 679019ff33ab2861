"""Market data structures and types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from kitestream.constants import Mode


@dataclass(frozen=True)
class OHLC:
    """Day open/high/low/close."""

    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal


@dataclass(frozen=True)
class DepthEntry:
    """One market depth level."""

    quantity: int
    price: Decimal
    orders: int


@dataclass(frozen=True)
class MarketDepth:
    """5-level buy/sell order book snapshot."""

    buy: tuple[DepthEntry, ...] = ()
    sell: tuple[DepthEntry, ...] = ()


@dataclass(frozen=True)
class Tick:
    """
    One instrument's market snapshot decoded from a binary packet.

    Fields beyond the token, mode, tradability and last price are only
    populated by the packet shapes that carry them; the rest stay ``None``.
    """

    instrument_token: int
    mode: Mode
    tradable: bool
    last_price: Decimal

    # quote / full
    last_traded_quantity: int | None = None
    average_traded_price: Decimal | None = None
    volume_traded: int | None = None
    total_buy_quantity: int | None = None
    total_sell_quantity: int | None = None
    ohlc: OHLC | None = None
    change: Decimal | None = None

    # full
    last_trade_time: datetime | None = None
    oi: int | None = None
    oi_day_high: int | None = None
    oi_day_low: int | None = None
    timestamp: datetime | None = None
    depth: MarketDepth | None = field(default=None)

    @property
    def segment(self) -> int:
        """Exchange segment code (low byte of the instrument token)."""
        return self.instrument_token & 0xFF
