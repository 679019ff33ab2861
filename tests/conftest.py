"""Shared fixtures for building binary tick frames."""

from __future__ import annotations

import struct

import pytest


class PacketFactory:
    """Builds raw tick packets and frames in wire layout."""

    @staticmethod
    def ltp(token: int, last_price: int) -> bytes:
        return struct.pack(">ii", token, last_price)

    @staticmethod
    def index(
        token: int,
        last_price: int,
        high: int,
        low: int,
        open_: int,
        close: int,
        change: int,
        timestamp: int | None = None,
    ) -> bytes:
        packet = struct.pack(">7i", token, last_price, high, low, open_, close, change)
        if timestamp is not None:
            packet += struct.pack(">i", timestamp)
        return packet

    @staticmethod
    def quote(
        token: int,
        last_price: int = 10500,
        last_qty: int = 25,
        avg_price: int = 10450,
        volume: int = 120000,
        buy_qty: int = 5000,
        sell_qty: int = 6000,
        high: int = 10600,
        low: int = 10300,
        open_: int = 10400,
        close: int = 10000,
    ) -> bytes:
        return struct.pack(
            ">11i",
            token,
            last_price,
            last_qty,
            avg_price,
            volume,
            buy_qty,
            sell_qty,
            high,
            low,
            open_,
            close,
        )

    @staticmethod
    def depth_entry(quantity: int, price: int, orders: int) -> bytes:
        return struct.pack(">iih2x", quantity, price, orders)

    @classmethod
    def full(
        cls,
        token: int,
        depth: list[tuple[int, int, int]] | None = None,
        last_trade_time: int = 1700000000,
        oi: int = 1000,
        oi_day_high: int = 1200,
        oi_day_low: int = 900,
        timestamp: int = 1700000005,
        **quote_fields: int,
    ) -> bytes:
        if depth is None:
            depth = [(100 * (i + 1), 10000 + i, i + 1) for i in range(10)]
        return (
            cls.quote(token, **quote_fields)
            + struct.pack(">5i", last_trade_time, oi, oi_day_high, oi_day_low, timestamp)
            + b"".join(cls.depth_entry(*entry) for entry in depth)
        )

    @staticmethod
    def frame(*packets: bytes) -> bytes:
        body = b"".join(struct.pack(">h", len(p)) + p for p in packets)
        return struct.pack(">h", len(packets)) + body


@pytest.fixture
def packets() -> type[PacketFactory]:
    return PacketFactory
