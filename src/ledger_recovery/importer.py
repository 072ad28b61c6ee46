"""Route an uploaded file to the right parser."""

from enum import Enum
from pathlib import Path
from typing import Optional, Union

import structlog

from .config import ScannerConfig
from .exceptions import SourceFileError
from .models import AccountType, ParsedAccount, ParseResult
from .qif_parser import parse_qif
from .scanner import ProgressCallback, parse_mbf, parse_mny

logger = structlog.get_logger()

UNKNOWN_FORMAT_ACCOUNT = "Imported Account"
UNKNOWN_FORMAT_WARNING = (
    "Unrecognised file format. Supported formats are QIF (.qif), "
    "Microsoft Money data files (.mny) and Money backups (.mbf)."
)

QIF_MARKERS = ("!type", "!account", "!option")
TEXT_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")

# Only the head of a file is inspected when sniffing
SNIFF_BYTES = 512


class SourceFormat(str, Enum):
    QIF = "qif"
    MNY = "mny"
    MBF = "mbf"
    UNKNOWN = "unknown"


def detect_format(filename: Optional[str], data: bytes = b"") -> SourceFormat:
    """Pick a format from the file extension, else from the leading bytes."""
    if filename:
        suffix = Path(filename).suffix.lower().lstrip(".")
        for fmt in (SourceFormat.QIF, SourceFormat.MNY, SourceFormat.MBF):
            if suffix == fmt.value:
                return fmt

    head = decode_text(bytes(data[:SNIFF_BYTES])).lstrip().lower()
    if head.startswith(QIF_MARKERS):
        return SourceFormat.QIF
    return SourceFormat.UNKNOWN


def decode_text(data: bytes) -> str:
    """Decode export text, trying UTF-8 (with or without BOM) first.

    latin-1 maps every byte, so this always returns.
    """
    for encoding in TEXT_ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode("latin-1", errors="replace")


def import_bytes(
    data: Union[bytes, bytearray, memoryview],
    filename: Optional[str] = None,
    *,
    config: Optional[ScannerConfig] = None,
    progress: Optional[ProgressCallback] = None,
) -> ParseResult:
    """Parse file contents with the parser matching their format.

    Args:
        data: Raw file contents.
        filename: Original file name, used for extension based routing.
        config: Scanner settings for the binary formats.
        progress: Optional ``(bytes_scanned, total_bytes)`` callback for the
            binary formats.

    Returns:
        The parser's ``ParseResult``; a failure result with a warning when
        the format is not recognised.
    """
    data = bytes(data)
    fmt = detect_format(filename, data)
    logger.info("import_started", filename=filename, format=fmt.value, size=len(data))

    if fmt is SourceFormat.QIF:
        return parse_qif(decode_text(data))
    if fmt is SourceFormat.MNY:
        return parse_mny(data, config=config, progress=progress)
    if fmt is SourceFormat.MBF:
        return parse_mbf(data, config=config, progress=progress)

    logger.warning("import_unknown_format", filename=filename)
    return ParseResult(
        accounts=[ParsedAccount(name=UNKNOWN_FORMAT_ACCOUNT, type=AccountType.CHECKING)],
        transactions=[],
        warning=UNKNOWN_FORMAT_WARNING,
    )


def import_file(
    path: Union[str, Path],
    *,
    config: Optional[ScannerConfig] = None,
    progress: Optional[ProgressCallback] = None,
) -> ParseResult:
    """Read a file from disk and parse it.

    Raises:
        SourceFileError: If the file cannot be read.
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise SourceFileError(
            f"Cannot read {path}: {e.strerror or e}",
            path=str(path),
        ) from e

    return import_bytes(data, path.name, config=config, progress=progress)
