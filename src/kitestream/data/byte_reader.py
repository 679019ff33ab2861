"""Big-endian integer extraction from binary tick frames."""

from __future__ import annotations

import struct

from kitestream.errors import DecodeError

# Signed big-endian formats keyed by byte width
_FORMATS = {
    2: struct.Struct(">h"),
    4: struct.Struct(">i"),
}


def read_int(data: bytes, start: int, end: int, width: int = 4) -> int:
    """
    Read a big-endian two's-complement integer from ``data[start:end + 1]``.

    Args:
        data: Buffer to read from.
        start: Offset of the first byte (inclusive).
        end: Offset of the last byte (inclusive).
        width: Integer width in bytes, 2 or 4. Must equal ``end - start + 1``.

    Raises:
        DecodeError: If the range is inverted, runs past the buffer, or does
            not match ``width``.
    """
    if start < 0 or start > end:
        raise DecodeError(f"Invalid byte range [{start}, {end}]")
    if end >= len(data):
        raise DecodeError(f"Byte range [{start}, {end}] exceeds buffer of {len(data)} bytes")

    fmt = _FORMATS.get(width)
    if fmt is None:
        raise DecodeError(f"Unsupported integer width: {width}")
    if end - start + 1 != width:
        raise DecodeError(f"Byte range [{start}, {end}] does not match width {width}")

    return fmt.unpack_from(data, start)[0]


def read_int16(data: bytes, start: int) -> int:
    return read_int(data, start, start + 1, width=2)


def read_int32(data: bytes, start: int) -> int:
    return read_int(data, start, start + 3, width=4)
