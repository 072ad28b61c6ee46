"""Bounds-safe readers for little-endian binary buffers.

Every reader takes the buffer and an offset and returns None when the read
would run past the end of the buffer, so callers can probe arbitrary
offsets of truncated or corrupt files without guarding each access.
"""

import math
import struct
from datetime import datetime, timedelta
from typing import Optional

_FLOAT64 = struct.Struct("<d")
_FLOAT32 = struct.Struct("<f")
_INT32 = struct.Struct("<i")

# OLE automation dates count days from 1899-12-30; the Unix epoch is day 25569.
OLE_UNIX_EPOCH_DAYS = 25569
MS_PER_DAY = 86400 * 1000

_UNIX_EPOCH = datetime(1970, 1, 1)
_EXCEL_EPOCH = datetime(1900, 1, 1)

PRINTABLE_MIN = 32
PRINTABLE_MAX = 126


def _fits(buffer: bytes, offset: int, size: int) -> bool:
    return 0 <= offset and offset + size <= len(buffer)


def read_float64(buffer: bytes, offset: int) -> Optional[float]:
    """Read an 8-byte little-endian IEEE double."""
    if not _fits(buffer, offset, 8):
        return None
    return _FLOAT64.unpack_from(buffer, offset)[0]


def read_float32(buffer: bytes, offset: int) -> Optional[float]:
    """Read a 4-byte little-endian IEEE float."""
    if not _fits(buffer, offset, 4):
        return None
    return _FLOAT32.unpack_from(buffer, offset)[0]


def read_int32(buffer: bytes, offset: int) -> Optional[int]:
    """Read a 4-byte little-endian signed integer."""
    if not _fits(buffer, offset, 4):
        return None
    return _INT32.unpack_from(buffer, offset)[0]


def read_ascii(buffer: bytes, offset: int, max_length: int = 50) -> str:
    """Read a printable ASCII run of at most ``max_length`` bytes.

    The run ends at the first NUL or other byte outside 32-126. The result
    is stripped of surrounding whitespace.
    """
    if offset < 0:
        return ""
    chars = []
    for byte in buffer[offset:offset + max_length]:
        if not PRINTABLE_MIN <= byte <= PRINTABLE_MAX:
            break
        chars.append(chr(byte))
    return "".join(chars).strip()


def read_utf16le(buffer: bytes, offset: int, max_length: int = 25) -> str:
    """Read a zero-terminated UTF-16LE run of at most ``max_length`` code units.

    Control code units are skipped. Surrogate halves are dropped, so the
    result is always a valid string even when the bytes were never UTF-16.
    """
    if offset < 0:
        return ""
    chars = []
    end = min(len(buffer) - 1, offset + max_length * 2)
    for pos in range(offset, end, 2):
        unit = buffer[pos] | (buffer[pos + 1] << 8)
        if unit == 0:
            break
        if unit >= PRINTABLE_MIN and not 0xD800 <= unit <= 0xDFFF:
            chars.append(chr(unit))
    return "".join(chars).strip()


def is_finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def ole_to_datetime(value: float) -> datetime:
    """Convert an OLE automation date to a naive UTC datetime.

    >>> ole_to_datetime(44562)
    datetime.datetime(2022, 1, 1, 0, 0)
    >>> ole_to_datetime(44561)
    datetime.datetime(2021, 12, 31, 0, 0)
    """
    millis = (value - OLE_UNIX_EPOCH_DAYS) * MS_PER_DAY
    return _UNIX_EPOCH + timedelta(milliseconds=millis)


def days_since_1900_to_datetime(days: int) -> datetime:
    """Convert a day count from 1900-01-01 to a datetime."""
    return _EXCEL_EPOCH + timedelta(days=days)


def printable_ratio(buffer: bytes, limit: int = 10_000) -> float:
    """Percentage of printable ASCII bytes in the first ``limit`` bytes."""
    head = buffer[:limit]
    if not head:
        return 0.0
    printable = sum(1 for b in head if PRINTABLE_MIN <= b <= PRINTABLE_MAX)
    return printable / len(head) * 100


def hex_header(buffer: bytes, length: int = 64) -> str:
    """Space separated hex dump of the first ``length`` bytes."""
    return " ".join(f"{b:02x}" for b in buffer[:length])
