"""Split binary websocket frames into tick packets.

Frame layout (big-endian)::

    [2B packet count][ [2B packet length][packet body] ] x count

A frame shorter than the 2-byte header is a heartbeat and carries no packets.
"""

from __future__ import annotations

from kitestream.data.byte_reader import read_int16
from kitestream.errors import FramingError

HEADER_SIZE = 2
LENGTH_PREFIX_SIZE = 2


def is_heartbeat(data: bytes) -> bool:
    """True if the frame is too short to carry a packet count."""
    return len(data) < HEADER_SIZE


def split_packets(data: bytes) -> list[bytes]:
    """
    Return the raw packet bodies of one binary frame, in frame order.

    Heartbeats yield an empty list.

    Raises:
        FramingError: If the count or a packet length is negative, or a declared
            length runs past the end of the frame.
    """
    if is_heartbeat(data):
        return []

    count = read_int16(data, 0)
    if count < 0:
        raise FramingError(f"Negative packet count: {count}")

    packets: list[bytes] = []
    cursor = HEADER_SIZE
    for index in range(count):
        if cursor + LENGTH_PREFIX_SIZE > len(data):
            raise FramingError(
                f"Frame truncated before length of packet {index + 1}/{count} "
                f"(offset {cursor}, frame {len(data)} bytes)"
            )
        length = read_int16(data, cursor)
        if length < 0:
            raise FramingError(f"Negative length {length} for packet {index + 1}/{count}")

        body_start = cursor + LENGTH_PREFIX_SIZE
        body_end = body_start + length
        if body_end > len(data):
            raise FramingError(
                f"Packet {index + 1}/{count} declares {length} bytes at offset {body_start}, "
                f"frame is {len(data)} bytes"
            )

        packets.append(bytes(data[body_start:body_end]))
        cursor = body_end

    return packets
