"""
Recover ledger data from a Money or QIF export.

Usage:
    ledger-recover export.qif
    ledger-recover backup.mbf --sample 20
    ledger-recover backup.mbf --mapping date=0,amount=1,description=3

Without --mapping, a binary file prints the raw records for review; pick
the positions of the date, amount and description fields from that output
and run again with --mapping.
"""

import argparse
import sys
from typing import Optional

import structlog
from pydantic import ValidationError

from .config import RecoveryConfig
from .exceptions import ConfigurationError, SourceFileError
from .importer import import_file
from .logging_config import configure_logging
from .mapping import apply_mapping_to_data
from .models import FieldMapping

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_UNRECOVERABLE = 1
EXIT_USAGE = 2

DEFAULT_SAMPLE = 10


def _mapping_argument(value: str) -> FieldMapping:
    try:
        return FieldMapping.from_string(value)
    except (ValueError, ValidationError) as e:
        raise argparse.ArgumentTypeError(f"invalid mapping {value!r}: {e}") from e


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from e
    if number < 0:
        raise argparse.ArgumentTypeError("must not be negative")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledger-recover",
        description="Recover accounts and transactions from Money (.mny, .mbf) and QIF exports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Text export, parsed automatically
  ledger-recover ~/Downloads/checking.qif

  # Binary backup: review the raw records first
  ledger-recover old.mbf --sample 25

  # Then apply the positions you picked
  ledger-recover old.mbf --mapping date=0,amount=1,description=3,category=4
        """,
    )
    parser.add_argument(
        "file",
        type=str,
        help="Path to a .qif, .mny or .mbf file",
    )
    parser.add_argument(
        "--mapping", "-m",
        type=_mapping_argument,
        default=None,
        help="Field positions as role=index pairs (date, amount, description required)",
    )
    parser.add_argument(
        "--sample", "-n",
        type=_positive_int,
        default=DEFAULT_SAMPLE,
        help=f"Raw records to print for review (default: {DEFAULT_SAMPLE})",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (default: LEDGER_LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Write logs to stderr as JSON lines",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Command line entry point. Returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = RecoveryConfig()
        configure_logging(
            args.log_level or settings.log_level,
            json_output=args.json_logs or settings.json_logs,
        )
    except (ConfigurationError, ValidationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        result = import_file(args.file, config=settings.scanner)
    except SourceFileError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_USAGE

    if result.needs_mapping and args.mapping is not None:
        mapped = apply_mapping_to_data(result.raw_data or [], args.mapping)
        print(mapped.model_dump_json(indent=2))
        return EXIT_OK

    if result.raw_data is not None:
        result = result.model_copy(update={"raw_data": result.raw_data[:args.sample]})
    print(result.model_dump_json(indent=2, exclude_none=True))

    if result.is_failure:
        logger.warning("recovery_failed", file=args.file, warning=result.warning)
        return EXIT_UNRECOVERABLE
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
