"""Binary tick packet decoder.

Packets are classified purely by byte length. Each recognised length maps to
one ``PacketLayout`` that owns its field offsets:

    8    ltp            token, last price
    28   quote (index)  + high, low, open, close, net change
    32   full (index)   + exchange timestamp
    44   quote          + last qty, avg price, volume, buy/sell qty, OHLC
    184  full           + last trade time, OI, OI day high/low, timestamp,
                          10 depth entries (5 buy then 5 sell, 12 bytes each)

Prices are divided by the segment divisor selected by the token's low byte.
Quantities, order counts and timestamps are never scaled.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from types import MappingProxyType

from kitestream.constants import (
    CDS_PRICE_DIVISOR,
    DEFAULT_PRICE_DIVISOR,
    Mode,
    Segment,
)
from kitestream.data.byte_reader import read_int16, read_int32
from kitestream.data.framing import is_heartbeat, split_packets
from kitestream.data.market_data import OHLC, DepthEntry, MarketDepth, Tick
from kitestream.errors import DecodeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SegmentRule:
    """Price scaling and tradability for one exchange segment."""

    divisor: int
    tradable: bool


_DEFAULT_RULE = SegmentRule(divisor=DEFAULT_PRICE_DIVISOR, tradable=True)

SEGMENT_TABLE: Mapping[int, SegmentRule] = MappingProxyType(
    {
        int(segment): SegmentRule(
            divisor=CDS_PRICE_DIVISOR if segment == Segment.CDS else DEFAULT_PRICE_DIVISOR,
            tradable=segment != Segment.INDICES,
        )
        for segment in Segment
    }
)


def segment_rule(instrument_token: int) -> SegmentRule:
    """Look up the rule for the segment in the token's low byte."""
    return SEGMENT_TABLE.get(instrument_token & 0xFF, _DEFAULT_RULE)


# ============================================
# Field helpers
# ============================================

DEPTH_OFFSET = 64
DEPTH_ENTRY_SIZE = 12
DEPTH_LEVELS = 5


def _price(packet: bytes, offset: int, divisor: int) -> Decimal:
    return Decimal(read_int32(packet, offset)) / divisor


def _epoch(packet: bytes, offset: int) -> datetime:
    return datetime.fromtimestamp(read_int32(packet, offset), tz=timezone.utc)


def _net_change(last_price: Decimal, close: Decimal) -> Decimal:
    if close == 0:
        return Decimal(0)
    return (last_price - close) * 100 / close


def _ohlc(packet: bytes, offset: int, divisor: int) -> OHLC:
    # Wire order is high, low, open, close
    return OHLC(
        high=_price(packet, offset, divisor),
        low=_price(packet, offset + 4, divisor),
        open=_price(packet, offset + 8, divisor),
        close=_price(packet, offset + 12, divisor),
    )


def _depth(packet: bytes, divisor: int) -> MarketDepth:
    entries = []
    for level in range(2 * DEPTH_LEVELS):
        offset = DEPTH_OFFSET + level * DEPTH_ENTRY_SIZE
        entries.append(
            DepthEntry(
                quantity=read_int32(packet, offset),
                price=_price(packet, offset + 4, divisor),
                orders=read_int16(packet, offset + 8),
            )
        )
    return MarketDepth(buy=tuple(entries[:DEPTH_LEVELS]), sell=tuple(entries[DEPTH_LEVELS:]))


# ============================================
# Packet layouts
# ============================================


def _decode_ltp(packet: bytes, token: int, mode: Mode, rule: SegmentRule) -> Tick:
    return Tick(
        instrument_token=token,
        mode=mode,
        tradable=rule.tradable,
        last_price=_price(packet, 4, rule.divisor),
    )


def _decode_index(packet: bytes, token: int, mode: Mode, rule: SegmentRule) -> Tick:
    timestamp = _epoch(packet, 28) if len(packet) == 32 else None
    return Tick(
        instrument_token=token,
        mode=mode,
        tradable=rule.tradable,
        last_price=_price(packet, 4, rule.divisor),
        ohlc=_ohlc(packet, 8, rule.divisor),
        change=_price(packet, 24, rule.divisor),
        timestamp=timestamp,
    )


def _decode_quote(packet: bytes, token: int, mode: Mode, rule: SegmentRule) -> Tick:
    last_price = _price(packet, 4, rule.divisor)
    ohlc = _ohlc(packet, 28, rule.divisor)
    fields = dict(
        instrument_token=token,
        mode=mode,
        tradable=rule.tradable,
        last_price=last_price,
        last_traded_quantity=read_int32(packet, 8),
        average_traded_price=_price(packet, 12, rule.divisor),
        volume_traded=read_int32(packet, 16),
        total_buy_quantity=read_int32(packet, 20),
        total_sell_quantity=read_int32(packet, 24),
        ohlc=ohlc,
        change=_net_change(last_price, ohlc.close),
    )

    if len(packet) == 184:
        fields.update(
            last_trade_time=_epoch(packet, 44),
            oi=read_int32(packet, 48),
            oi_day_high=read_int32(packet, 52),
            oi_day_low=read_int32(packet, 56),
            timestamp=_epoch(packet, 60),
            depth=_depth(packet, rule.divisor),
        )

    return Tick(**fields)


@dataclass(frozen=True)
class PacketLayout:
    """One recognised packet shape."""

    length: int
    mode: Mode
    decode: Callable[[bytes, int, Mode, SegmentRule], Tick]


PACKET_LAYOUTS: Mapping[int, PacketLayout] = MappingProxyType(
    {
        layout.length: layout
        for layout in (
            PacketLayout(8, Mode.LTP, _decode_ltp),
            PacketLayout(28, Mode.QUOTE, _decode_index),
            PacketLayout(32, Mode.FULL, _decode_index),
            PacketLayout(44, Mode.QUOTE, _decode_quote),
            PacketLayout(184, Mode.FULL, _decode_quote),
        )
    }
)


def decode_packet(packet: bytes) -> Tick:
    """
    Decode a single tick packet.

    Raises:
        DecodeError: If the packet length is not a recognised shape.
    """
    layout = PACKET_LAYOUTS.get(len(packet))
    if layout is None:
        raise DecodeError(f"Unrecognised tick packet length: {len(packet)} bytes")

    token = read_int32(packet, 0)
    return layout.decode(packet, token, layout.mode, segment_rule(token))


# ============================================
# Frame decoding
# ============================================


@dataclass
class DecodedFrame:
    """Result of decoding one binary websocket frame."""

    ticks: list[Tick] = field(default_factory=list)
    errors: list[DecodeError] = field(default_factory=list)
    heartbeat: bool = False


def decode_frame(data: bytes) -> DecodedFrame:
    """
    Split a binary frame and decode each packet.

    Bad packets are collected in ``errors`` and skipped; the remaining packets
    of the batch are still decoded.

    Raises:
        FramingError: If the frame itself cannot be split.
    """
    if is_heartbeat(data):
        return DecodedFrame(heartbeat=True)

    result = DecodedFrame()
    for index, packet in enumerate(split_packets(data)):
        try:
            result.ticks.append(decode_packet(packet))
        except DecodeError as e:
            logger.warning(f"Skipping packet {index}: {e}")
            result.errors.append(e)

    return result
