"""Shared fixtures for ledger recovery tests.

Binary fixtures are synthetic: little-endian values packed with ``struct``
at the offsets the scanner probes.
"""

import struct

import pytest
import structlog

from ledger_recovery.config import ScannerConfig
from ledger_recovery.models import CandidateField, FieldKind, RawRecord

MNY_WINDOW = 256
PATTERN_BASE = 51_000
PATTERN_SPACING = 128


def pack_mny_window(ole_date: float, amount: float, counter: int, text: str) -> bytes:
    """One 256-byte window with a date, an amount, an int and a string."""
    window = bytearray(MNY_WINDOW)
    struct.pack_into("<d", window, 0, ole_date)
    struct.pack_into("<d", window, 8, amount)
    struct.pack_into("<i", window, 16, counter)
    encoded = text.encode("ascii")
    window[40:40 + len(encoded)] = encoded
    return bytes(window)


def build_structured_buffer(windows: int) -> bytes:
    """Concatenate ``windows`` structured 256-byte windows."""
    return b"".join(
        pack_mny_window(44562.0 + i, 10.25 + i, i + 1, f"Payee {i:02d}")
        for i in range(windows)
    )


def build_pattern_buffer(records: int, days: int = 43829) -> bytes:
    """Buffer whose only content is days/amount/text triples past the stride prefix."""
    buffer = bytearray(PATTERN_BASE + records * PATTERN_SPACING + 600)
    for i in range(records):
        base = PATTERN_BASE + i * PATTERN_SPACING
        struct.pack_into("<i", buffer, base, days)
        struct.pack_into("<d", buffer, base + 8, 125.5)
        buffer[base + 20:base + 31] = b"Coffee Shop"
    return bytes(buffer)


@pytest.fixture
def structured_mny() -> bytes:
    return build_structured_buffer(12)


@pytest.fixture
def pattern_mbf() -> bytes:
    return build_pattern_buffer(12)


@pytest.fixture
def scanner_config() -> ScannerConfig:
    return ScannerConfig()


@pytest.fixture
def reviewed_records() -> list[RawRecord]:
    """Records as a reviewer sees them after a successful scan."""
    return [
        RawRecord(
            offset=0,
            fields=[
                CandidateField(slot=0, kind=FieldKind.DATE, value=44562.0),
                CandidateField(slot=1, kind=FieldKind.AMOUNT, value=2500.0),
                CandidateField(slot=2, kind=FieldKind.TEXT, value="Salary"),
                CandidateField(slot=3, kind=FieldKind.TEXT, value="Checking Account"),
            ],
        ),
        RawRecord(
            offset=256,
            fields=[
                CandidateField(slot=0, kind=FieldKind.DATE, value=44563.0),
                CandidateField(slot=1, kind=FieldKind.AMOUNT, value=-150.5),
                CandidateField(slot=2, kind=FieldKind.TEXT, value="Electric bill"),
                CandidateField(slot=3, kind=FieldKind.TEXT, value="Checking Account"),
            ],
        ),
    ]


@pytest.fixture
def sample_qif() -> str:
    return (
        "!Type:Bank\n"
        "D01/15/2024\n"
        "T-50.00\n"
        "PGrocery Store\n"
        "LFood\n"
        "^\n"
    )


@pytest.fixture
def structured_buffer():
    """Factory for .mny-style buffers with a given number of structured windows."""
    return build_structured_buffer


@pytest.fixture
def pattern_buffer():
    """Factory for buffers that only the fallback pattern search can read."""
    return build_pattern_buffer


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo any configure_logging call so captured streams are not reused."""
    yield
    structlog.reset_defaults()
