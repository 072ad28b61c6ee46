"""Tests for the Money binary scanner."""

import math
import struct
from datetime import datetime

import pytest

from ledger_recovery.config import ScannerConfig
from ledger_recovery.models import AccountType, FieldKind
from ledger_recovery.scanner import (
    MBF_PLACEHOLDER_NAME,
    MNY_PLACEHOLDER_NAME,
    MoneyFileScanner,
    WindowLayout,
    parse_mbf,
    parse_mny,
)


class TestPlaceholderResult:
    """Inputs with no recoverable structure."""

    def test_short_mny_buffer(self):
        """A buffer shorter than one stride yields the placeholder account."""
        result = parse_mny(b"\x00" * 100)

        assert result.needs_mapping is None
        assert result.transactions == []
        assert len(result.accounts) == 1
        account = result.accounts[0]
        assert account.name == MNY_PLACEHOLDER_NAME
        assert account.type == AccountType.CHECKING
        assert account.balance == 0
        assert "Unable to automatically parse" in result.warning
        assert result.is_failure

    def test_empty_mbf_buffer(self):
        result = parse_mbf(b"")

        assert result.accounts[0].name == MBF_PLACEHOLDER_NAME
        assert "Unable to extract data" in result.warning
        assert result.raw_data is None

    def test_zero_filled_mbf(self):
        """Zeros classify as nothing, so both passes come up empty."""
        result = parse_mbf(bytes(4096))
        assert result.is_failure

    def test_exactly_threshold_records_is_not_enough(self, structured_buffer):
        """Ten records do not clear the more-than-ten threshold."""
        result = parse_mny(structured_buffer(10))
        assert result.is_failure

    @pytest.mark.parametrize("data", [None, "not bytes", 12345, [1, 2, 3]])
    def test_non_bytes_input(self, data):
        """Wrong input types degrade to the placeholder instead of raising."""
        assert parse_mny(data).is_failure
        assert parse_mbf(data).is_failure


class TestMnyScan:
    """Tests for the single-stride .mny scan."""

    def test_structured_windows_need_mapping(self, structured_mny):
        result = parse_mny(structured_mny)

        assert result.needs_mapping is True
        assert result.accounts == []
        assert result.transactions == []
        assert len(result.raw_data) == 12
        assert "structured data" in result.warning

    def test_record_fields_in_slot_order(self, structured_mny):
        """Each window yields date, amount, int, then both text decodings."""
        record = parse_mny(structured_mny).raw_data[0]

        assert record.offset == 0
        assert record.kinds() == [
            FieldKind.DATE,
            FieldKind.AMOUNT,
            FieldKind.INT,
            FieldKind.TEXT,
            FieldKind.TEXT_UTF16,
        ]
        assert record.fields[0].value == 44562.0
        assert record.fields[1].value == 10.25
        assert record.fields[2].value == 1
        assert record.fields[3].value == "Payee 00"
        assert record.fields[1].label == "field_1_amount"

    def test_offsets_follow_stride(self, structured_mny):
        offsets = [r.offset for r in parse_mny(structured_mny).raw_data]
        assert offsets == [i * 256 for i in range(12)]

    def test_bytearray_and_memoryview_accepted(self, structured_mny):
        expected = parse_mny(structured_mny)
        assert parse_mny(bytearray(structured_mny)) == expected
        assert parse_mny(memoryview(structured_mny)) == expected

    def test_max_records_cap(self, structured_mny):
        config = ScannerConfig(max_records=11)
        result = parse_mny(structured_mny, config=config)
        assert len(result.raw_data) == 11

    def test_trailing_partial_window_ignored(self, structured_mny):
        """A window that does not fit entirely is never probed."""
        result = parse_mny(structured_mny + b"\x01" * 100)
        assert len(result.raw_data) == 12


class TestWindowClassification:
    """Tests for slot classification on a single window."""

    @pytest.fixture
    def scanner(self):
        return MoneyFileScanner()

    @pytest.fixture
    def layout(self):
        return WindowLayout(slots=4, text_slot_width=20)

    def test_non_finite_doubles_never_classify(self, scanner, layout):
        buf = bytearray(64)
        struct.pack_into("<d", buf, 0, math.nan)
        struct.pack_into("<d", buf, 8, math.inf)
        struct.pack_into("<d", buf, 16, -math.inf)

        kinds = [f.kind for f in scanner.probe_window(bytes(buf), 0, 64, layout)]
        assert FieldKind.DATE not in kinds
        assert FieldKind.AMOUNT not in kinds

    def test_date_window_bounds(self, scanner, layout):
        buf = bytearray(64)
        struct.pack_into("<d", buf, 0, 30000.0)
        struct.pack_into("<d", buf, 8, 60000.0)
        struct.pack_into("<d", buf, 16, 60000.5)

        fields = scanner.probe_window(bytes(buf), 0, 64, layout)
        by_slot = {f.slot: f.kind for f in fields if f.kind in (FieldKind.DATE, FieldKind.AMOUNT)}
        assert by_slot == {0: FieldKind.DATE, 1: FieldKind.DATE, 2: FieldKind.AMOUNT}

    def test_negative_amount_classifies(self, scanner, layout):
        buf = bytearray(64)
        struct.pack_into("<d", buf, 0, -150.5)
        fields = scanner.probe_window(bytes(buf), 0, 64, layout)
        assert fields[0].kind == FieldKind.AMOUNT
        assert fields[0].value == -150.5

    def test_int_range(self, scanner, layout):
        buf = bytearray(64)
        struct.pack_into("<i", buf, 0, -5)
        struct.pack_into("<i", buf, 8, 999_999)
        struct.pack_into("<i", buf, 16, 1_000_000)

        ints = [f.value for f in scanner.probe_window(bytes(buf), 0, 64, layout)
                if f.kind == FieldKind.INT]
        assert ints == [999_999]

    def test_short_text_ignored(self, scanner, layout):
        buf = bytearray(64)
        buf[0:3] = b"ab\x00"
        kinds = [f.kind for f in scanner.probe_window(bytes(buf), 0, 64, layout)]
        assert FieldKind.TEXT not in kinds

    def test_float32_probe_only_when_enabled(self, scanner):
        buf = bytearray(64)
        struct.pack_into("<f", buf, 0, 19.99)

        plain = WindowLayout(slots=2, text_slot_width=16)
        probing = WindowLayout(slots=2, text_slot_width=16, probe_float32=True)
        assert FieldKind.FLOAT32 not in [f.kind for f in scanner.probe_window(bytes(buf), 0, 64, plain)]
        assert FieldKind.FLOAT32 in [f.kind for f in scanner.probe_window(bytes(buf), 0, 64, probing)]


class TestMbfScan:
    """Tests for the multi-stride .mbf scan and its fallback."""

    def test_first_stride_with_enough_records_wins(self, structured_mny):
        result = parse_mbf(structured_mny)

        assert result.needs_mapping is True
        assert len(result.raw_data) == 12
        # Stride 128 is tried first; only the 256-aligned windows hold data
        assert all(r.offset % 256 == 0 for r in result.raw_data)

    def test_records_per_stride_cap(self, structured_mny):
        config = ScannerConfig(max_records_per_stride=11)
        result = parse_mbf(structured_mny, config=config)
        assert len(result.raw_data) == 11

    def test_pattern_search_fallback(self, pattern_mbf):
        """Records beyond the stride prefix are found by the pattern search."""
        result = parse_mbf(pattern_mbf)

        assert result.needs_mapping is True
        assert len(result.raw_data) == 12

        record = result.raw_data[0]
        assert record.offset == 51_000
        assert record.kinds() == [FieldKind.DATE, FieldKind.AMOUNT, FieldKind.TEXT]
        assert record.fields[0].value == datetime(2020, 1, 1)
        assert record.fields[1].value == 125.5
        assert record.fields[2].value == "Coffee Shop"

    def test_pattern_search_rejects_out_of_range_years(self, pattern_buffer):
        """Day numbers that land before 1990 are not dates."""
        result = parse_mbf(pattern_buffer(12, days=26000))
        assert result.is_failure

    def test_pattern_search_respects_limit(self, pattern_mbf):
        config = ScannerConfig(pattern_limit=50_000)
        assert parse_mbf(pattern_mbf, config=config).is_failure

    def test_pattern_search_threshold(self, pattern_buffer):
        assert parse_mbf(pattern_buffer(10)).is_failure

    def test_mny_never_uses_pattern_search(self, pattern_mbf):
        assert parse_mny(pattern_mbf).is_failure


class TestProgress:
    """Tests for the progress callback."""

    def test_callback_receives_progress(self, structured_mny):
        calls = []
        config = ScannerConfig(progress_interval=512)

        parse_mny(structured_mny, config=config, progress=lambda done, total: calls.append((done, total)))

        assert calls
        assert all(total == len(structured_mny) for _, total in calls)
        assert [done for done, _ in calls] == sorted(done for done, _ in calls)

    def test_output_independent_of_callback(self, structured_mny, pattern_mbf):
        config = ScannerConfig(progress_interval=256)
        seen = []

        assert parse_mny(structured_mny, config=config, progress=lambda d, t: seen.append(d)) == parse_mny(structured_mny)
        assert parse_mbf(pattern_mbf, config=config, progress=lambda d, t: seen.append(d)) == parse_mbf(pattern_mbf)
        assert seen

    def test_failing_callback_is_ignored(self, structured_mny):
        def explode(done, total):
            raise RuntimeError("UI went away")

        config = ScannerConfig(progress_interval=256)
        result = parse_mny(structured_mny, config=config, progress=explode)

        assert result.needs_mapping is True
        assert len(result.raw_data) == 12
