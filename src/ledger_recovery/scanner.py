"""Heuristic scanner for Microsoft Money binary files.

Neither the ``.mny`` data file nor the ``.mbf`` backup has a public
specification. Instead of reconstructing the container, the scanner walks
fixed-size windows over the raw bytes, classifies whatever looks like a
date, an amount, a small integer or a string, and keeps windows that look
structured. The records are deliberately over-inclusive: a human picks the
meaning of each position afterwards (see ``mapping.apply_mapping_to_data``).

Nothing in here raises for malformed input. The worst case is a
placeholder account plus a warning telling the user to export QIF instead.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Union

import structlog

from .config import ScannerConfig
from .models import (
    AccountType,
    CandidateField,
    FieldKind,
    ParsedAccount,
    ParseResult,
    RawRecord,
)
from .primitives import (
    days_since_1900_to_datetime,
    hex_header,
    is_finite,
    printable_ratio,
    read_ascii,
    read_float32,
    read_float64,
    read_int32,
    read_utf16le,
)

logger = structlog.get_logger()

ProgressCallback = Callable[[int, int], None]
BinaryInput = Union[bytes, bytearray, memoryview]


# =============================================================================
# CLASSIFICATION THRESHOLDS
# =============================================================================

# OLE automation day numbers 30000..60000 cover 1982-02-18 to 2064-04-08,
# the whole lifetime of Money files. Doubles outside it are not dates.
OLE_DATE_MIN = 30000.0
OLE_DATE_MAX = 60000.0

# Money stores currency as doubles; real ledgers stay well inside this band
# and most non-amount doubles (denormals, huge exponents) fall outside it.
AMOUNT_MIN = 0.01
AMOUNT_MAX = 1_000_000.0

# Check numbers and counters are positive and small; anything else is noise.
INT_MAX = 1_000_000

# Single precision amounts seen in backups never exceed this.
FLOAT32_MAX = 10_000.0

ASCII_MAX_LENGTH = 50
UTF16_MAX_LENGTH = 25
MIN_TEXT_LENGTH = 3

NUMERIC_SLOT_WIDTH = 8
MNY_TEXT_SLOT_WIDTH = 20
MBF_TEXT_SLOT_WIDTH = 16
# MBF string probes need this many bytes after them to be attempted
MBF_TEXT_TAIL = 50

# Fallback pattern search: a 4-byte days-since-1900 date, then an amount,
# then a description. Day numbers are pre-filtered, then the year is checked.
PATTERN_DAYS_MIN = 25000
PATTERN_DAYS_MAX = 50000
PATTERN_YEAR_MIN = 1990
PATTERN_YEAR_MAX = 2030
PATTERN_AMOUNT_MAX = 100_000.0
PATTERN_AMOUNT_OFFSETS = range(4, 50, 4)
PATTERN_TEXT_OFFSETS = range(0, 200, 10)
PATTERN_TEXT_MAX_LENGTH = 100
PATTERN_UTF16_MAX_LENGTH = 50
PATTERN_SKIP = 50
PATTERN_TAIL = 100

MNY_PLACEHOLDER_NAME = "Money Import"
MBF_PLACEHOLDER_NAME = "Money Backup File"

MNY_MAPPING_WARNING = (
    "We found structured data in your Money file. "
    "Please help us understand what each field represents."
)
MBF_MAPPING_WARNING = (
    "Found data in your Money backup file. Please help us map the fields correctly."
)
MNY_FAILURE_WARNING = (
    "Unable to automatically parse this Money file. "
    "Please export from Money as QIF format instead."
)
MBF_FAILURE_WARNING = (
    "Unable to extract data from this Money backup file. The file may be "
    "encrypted or in a format we don't support. Please try exporting as QIF "
    "from Microsoft Money instead."
)


@dataclass(frozen=True)
class WindowLayout:
    """Where the probes sit inside one record window."""
    slots: int
    text_slot_width: int
    probe_float32: bool = False
    text_tail: int = 0


class _ProgressTracker:
    """Reports scan progress every ``interval`` bytes."""

    def __init__(
        self,
        total: int,
        interval: int,
        callback: Optional[ProgressCallback],
        phase: str,
    ):
        self._total = total
        self._interval = interval
        self._callback = callback
        self._phase = phase
        self._next_mark = interval

    def update(self, scanned: int) -> None:
        if scanned < self._next_mark:
            return
        while self._next_mark <= scanned:
            self._next_mark += self._interval
        logger.debug(
            "scan_progress",
            phase=self._phase,
            mb=round(scanned / (1024 * 1024), 1),
        )
        if self._callback is None:
            return
        try:
            self._callback(scanned, self._total)
        except Exception as e:
            logger.warning("progress_callback_failed", error=str(e))


def _placeholder_result(name: str, warning: str) -> ParseResult:
    return ParseResult(
        accounts=[ParsedAccount(name=name, type=AccountType.CHECKING)],
        transactions=[],
        warning=warning,
    )


def _mapping_result(records: list[RawRecord], warning: str) -> ParseResult:
    return ParseResult(
        accounts=[],
        transactions=[],
        raw_data=records,
        needs_mapping=True,
        warning=warning,
    )


# =============================================================================
# SCANNER
# =============================================================================

class MoneyFileScanner:
    """
    Scan Money binary files for plausible flat records.

    One instance can be reused; all per-scan state lives inside the scan
    methods.
    """

    def __init__(
        self,
        config: Optional[ScannerConfig] = None,
        progress: Optional[ProgressCallback] = None,
    ):
        """
        Initialize the scanner.

        Args:
            config: Scanner tunables. Defaults reproduce the stock heuristics.
            progress: Optional ``(bytes_scanned, total_bytes)`` callback,
                called every ``config.progress_interval`` bytes. Output is the
                same with or without it.
        """
        self.config = config or ScannerConfig()
        self._progress = progress
        self._mny_layout = WindowLayout(
            slots=self.config.mny_slots,
            text_slot_width=MNY_TEXT_SLOT_WIDTH,
        )
        self._mbf_layout = WindowLayout(
            slots=self.config.mbf_slots,
            text_slot_width=MBF_TEXT_SLOT_WIDTH,
            probe_float32=True,
            text_tail=MBF_TEXT_TAIL,
        )

    def scan_mny(self, data: BinaryInput) -> ParseResult:
        """Scan a ``.mny`` data file using a single fixed stride."""
        if not isinstance(data, (bytes, bytearray, memoryview)):
            logger.warning("mny_scan_rejected_input", input_type=type(data).__name__)
            return _placeholder_result(MNY_PLACEHOLDER_NAME, MNY_FAILURE_WARNING)

        try:
            return self._scan_mny(bytes(data))
        except Exception as e:
            logger.error("mny_scan_failed", error=str(e), exc_info=True)
            return _placeholder_result(MNY_PLACEHOLDER_NAME, MNY_FAILURE_WARNING)

    def scan_mbf(self, data: BinaryInput) -> ParseResult:
        """Scan a ``.mbf`` backup, trying several strides then a pattern search."""
        if not isinstance(data, (bytes, bytearray, memoryview)):
            logger.warning("mbf_scan_rejected_input", input_type=type(data).__name__)
            return _placeholder_result(MBF_PLACEHOLDER_NAME, MBF_FAILURE_WARNING)

        try:
            return self._scan_mbf(bytes(data))
        except Exception as e:
            logger.error("mbf_scan_failed", error=str(e), exc_info=True)
            return _placeholder_result(MBF_PLACEHOLDER_NAME, MBF_FAILURE_WARNING)

    def _scan_mny(self, buffer: bytes) -> ParseResult:
        total = len(buffer)
        stride = self.config.mny_stride
        logger.info("mny_scan_started", size=total, stride=stride)

        tracker = _ProgressTracker(
            total, self.config.progress_interval, self._progress, "windows"
        )
        records: list[RawRecord] = []
        offset = 0
        while offset + stride <= total and len(records) < self.config.max_records:
            fields = self.probe_window(buffer, offset, stride, self._mny_layout)
            if len(fields) >= self.config.min_fields_per_record:
                records.append(RawRecord(offset=offset, fields=fields))
            offset += stride
            tracker.update(offset)

        logger.info("records_extracted", format="mny", count=len(records))

        if len(records) > self.config.min_records:
            return _mapping_result(records, MNY_MAPPING_WARNING)
        return _placeholder_result(MNY_PLACEHOLDER_NAME, MNY_FAILURE_WARNING)

    def _scan_mbf(self, buffer: bytes) -> ParseResult:
        total = len(buffer)
        logger.info("mbf_scan_started", size=total)
        logger.debug("mbf_header", header=hex_header(buffer))
        logger.debug("readable_text_ratio", percent=round(printable_ratio(buffer), 1))

        records = self._scan_strides(buffer)
        if len(records) <= self.config.min_records:
            logger.debug("pattern_search_started", limit=self.config.pattern_limit)
            records = self._search_patterns(buffer)

        logger.info("records_extracted", format="mbf", count=len(records))

        if len(records) > self.config.min_records:
            return _mapping_result(records, MBF_MAPPING_WARNING)
        return _placeholder_result(MBF_PLACEHOLDER_NAME, MBF_FAILURE_WARNING)

    def _scan_strides(self, buffer: bytes) -> list[RawRecord]:
        """Try each configured stride over the buffer prefix.

        Returns the records of the first stride that clears the threshold,
        or an empty list when none does.
        """
        limit = min(self.config.prefix_limit, len(buffer))
        tracker = _ProgressTracker(
            limit * len(self.config.mbf_strides),
            self.config.progress_interval,
            self._progress,
            "strides",
        )
        scanned = 0

        for stride in self.config.mbf_strides:
            candidates: list[RawRecord] = []
            offset = 0
            while offset < limit and len(candidates) < self.config.max_records_per_stride:
                fields = self.probe_window(buffer, offset, stride, self._mbf_layout)
                if len(fields) >= self.config.min_fields_per_record:
                    candidates.append(RawRecord(offset=offset, fields=fields))
                offset += stride
                tracker.update(scanned + offset)
            scanned += limit

            logger.debug("stride_tried", stride=stride, records=len(candidates))
            if len(candidates) > self.config.min_records:
                logger.debug("stride_accepted", stride=stride, records=len(candidates))
                return candidates

        return []

    def probe_window(
        self,
        buffer: bytes,
        offset: int,
        stride: int,
        layout: WindowLayout,
    ) -> list[CandidateField]:
        """Classify every probe slot of the window starting at ``offset``.

        Fields come back in slot order; within a slot the order is numeric
        double, int32, float32, ASCII text, UTF-16 text.
        """
        fields: list[CandidateField] = []
        total = len(buffer)

        for slot in range(min(layout.slots, stride // NUMERIC_SLOT_WIDTH)):
            pos = offset + slot * NUMERIC_SLOT_WIDTH

            double = read_float64(buffer, pos)
            if is_finite(double):
                if OLE_DATE_MIN <= double <= OLE_DATE_MAX:
                    fields.append(CandidateField(slot=slot, kind=FieldKind.DATE, value=double))
                elif AMOUNT_MIN <= abs(double) < AMOUNT_MAX:
                    fields.append(CandidateField(slot=slot, kind=FieldKind.AMOUNT, value=double))

            integer = read_int32(buffer, pos)
            if integer is not None and 0 < integer < INT_MAX:
                fields.append(CandidateField(slot=slot, kind=FieldKind.INT, value=integer))

            if layout.probe_float32:
                single = read_float32(buffer, pos)
                if is_finite(single) and AMOUNT_MIN < abs(single) < FLOAT32_MAX:
                    fields.append(CandidateField(slot=slot, kind=FieldKind.FLOAT32, value=single))

            text_pos = offset + slot * layout.text_slot_width
            if layout.text_tail and text_pos >= total - layout.text_tail:
                continue

            # Both decodings are kept: NUL-interleaved ASCII reads as garbage
            # UTF-16 and vice versa, and only the reviewer can tell which is real.
            ascii_text = read_ascii(buffer, text_pos, ASCII_MAX_LENGTH)
            if len(ascii_text) >= MIN_TEXT_LENGTH:
                fields.append(CandidateField(slot=slot, kind=FieldKind.TEXT, value=ascii_text))
            utf16_text = read_utf16le(buffer, text_pos, UTF16_MAX_LENGTH)
            if len(utf16_text) >= MIN_TEXT_LENGTH and utf16_text != ascii_text:
                fields.append(
                    CandidateField(slot=slot, kind=FieldKind.TEXT_UTF16, value=utf16_text)
                )

        return fields

    def _search_patterns(self, buffer: bytes) -> list[RawRecord]:
        """Byte-by-byte search for date, amount, description triples."""
        end = min(len(buffer) - PATTERN_TAIL, self.config.pattern_limit)
        tracker = _ProgressTracker(
            max(end, 0), self.config.progress_interval, self._progress, "patterns"
        )
        records: list[RawRecord] = []

        position = 0
        while position < end:
            record = self._match_pattern(buffer, position)
            if record is not None:
                records.append(record)
                # Skip past the record so it is not found again one byte later
                position += PATTERN_SKIP
            position += 1
            tracker.update(position)

        logger.debug("pattern_search_finished", records=len(records))
        return records

    def _match_pattern(self, buffer: bytes, position: int) -> Optional[RawRecord]:
        days = read_int32(buffer, position)
        if days is None or not PATTERN_DAYS_MIN < days < PATTERN_DAYS_MAX:
            return None
        when = days_since_1900_to_datetime(days)
        if not PATTERN_YEAR_MIN <= when.year <= PATTERN_YEAR_MAX:
            return None

        amount = self._find_amount(buffer, position)
        if amount is None:
            return None

        text = self._find_text(buffer, position)
        if text is None:
            return None

        return RawRecord(
            offset=position,
            fields=[
                CandidateField(slot=0, kind=FieldKind.DATE, value=when),
                CandidateField(slot=1, kind=FieldKind.AMOUNT, value=amount),
                CandidateField(slot=2, kind=FieldKind.TEXT, value=text),
            ],
        )

    @staticmethod
    def _plausible_amount(value: Optional[float]) -> bool:
        return is_finite(value) and AMOUNT_MIN < abs(value) < PATTERN_AMOUNT_MAX

    def _find_amount(self, buffer: bytes, position: int) -> Optional[float]:
        """Look for an amount shortly after a date.

        Each offset is tried as a double, then a single, then integer cents.
        """
        for delta in PATTERN_AMOUNT_OFFSETS:
            pos = position + delta
            if pos + 8 > len(buffer):
                break
            double = read_float64(buffer, pos)
            if self._plausible_amount(double):
                return double
            single = read_float32(buffer, pos)
            if self._plausible_amount(single):
                return single
            cents = read_int32(buffer, pos)
            if cents is not None and self._plausible_amount(cents / 100):
                return cents / 100
        return None

    @staticmethod
    def _find_text(buffer: bytes, position: int) -> Optional[str]:
        for delta in PATTERN_TEXT_OFFSETS:
            pos = position + delta
            text = read_ascii(buffer, pos, PATTERN_TEXT_MAX_LENGTH) or read_utf16le(
                buffer, pos, PATTERN_UTF16_MAX_LENGTH
            )
            if MIN_TEXT_LENGTH <= len(text) < PATTERN_TEXT_MAX_LENGTH:
                return text
        return None


def parse_mny(
    data: BinaryInput,
    *,
    config: Optional[ScannerConfig] = None,
    progress: Optional[ProgressCallback] = None,
) -> ParseResult:
    """Scan a Microsoft Money ``.mny`` file for raw records.

    Returns a result with ``needs_mapping=True`` when structured data was
    found, otherwise a placeholder account and a warning. Never raises for
    bad input.
    """
    return MoneyFileScanner(config, progress).scan_mny(data)


def parse_mbf(
    data: BinaryInput,
    *,
    config: Optional[ScannerConfig] = None,
    progress: Optional[ProgressCallback] = None,
) -> ParseResult:
    """Scan a Microsoft Money ``.mbf`` backup for raw records.

    Same contract as ``parse_mny``.
    """
    return MoneyFileScanner(config, progress).scan_mbf(data)
