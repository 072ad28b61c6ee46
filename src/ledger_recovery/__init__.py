"""Ledger Recovery - Salvage accounts and transactions from legacy finance files."""

__version__ = "0.1.0"

from .importer import SourceFormat, detect_format, import_bytes, import_file
from .mapping import apply_mapping_to_data, recalculate_balances
from .models import (
    AccountType,
    CandidateField,
    FieldKind,
    FieldMapping,
    MappingResult,
    ParsedAccount,
    ParsedTransaction,
    ParseResult,
    RawRecord,
    TransactionType,
)
from .qif_parser import parse_qif
from .scanner import parse_mbf, parse_mny

__all__ = [
    "parse_mny",
    "parse_mbf",
    "parse_qif",
    "apply_mapping_to_data",
    "recalculate_balances",
    "detect_format",
    "import_bytes",
    "import_file",
    "SourceFormat",
    "AccountType",
    "TransactionType",
    "FieldKind",
    "CandidateField",
    "RawRecord",
    "FieldMapping",
    "ParsedAccount",
    "ParsedTransaction",
    "ParseResult",
    "MappingResult",
]
