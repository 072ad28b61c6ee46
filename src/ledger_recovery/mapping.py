"""Turn reviewed raw records into canonical transactions.

The binary scanner cannot know what its candidate fields mean. A reviewer
looks at a sample of records and assigns roles to positions; this module
applies that ``FieldMapping`` to every record.

Failures are contained per record: a record missing a required role, or
whose date or amount cannot be coerced, is dropped and counted, and the
rest of the batch carries on.
"""

from collections.abc import Iterable
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

import structlog
from dateutil import parser as date_parser
from pydantic import ValidationError

from .exceptions import CoercionError
from .models import (
    AccountType,
    CandidateField,
    FieldMapping,
    MappingResult,
    ParsedAccount,
    ParsedTransaction,
    RawRecord,
    TransactionType,
)
from .primitives import ole_to_datetime
from .scanner import OLE_DATE_MAX, OLE_DATE_MIN

logger = structlog.get_logger()

DEFAULT_CATEGORY = "Imported"
DEFAULT_ACCOUNT_NAME = "Primary Account"
DEFAULT_DESCRIPTION = "No description"

CENT = Decimal("0.01")

INCOME_MARKERS = ("income", "credit", "deposit")
EXPENSE_MARKERS = ("expense", "debit", "withdrawal")

_CURRENCY_NOISE = str.maketrans("", "", "$£€, ")


# =============================================================================
# VALUE COERCION
# =============================================================================

def round_cents(value: Decimal) -> Decimal:
    """Round to two decimal places, halves away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def coerce_date(field: CandidateField) -> datetime:
    """Interpret a candidate field as a point in time.

    OLE day numbers convert arithmetically, datetimes pass through and
    strings go through ``dateutil``. Numbers outside the OLE window are
    rejected rather than guessed at.

    Raises:
        CoercionError: If the value cannot be read as a date.
    """
    value = field.value
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        if OLE_DATE_MIN <= value <= OLE_DATE_MAX:
            return ole_to_datetime(value)
        raise CoercionError("Number outside the OLE date range", role="date", value=value)

    text = str(value).strip()
    if not text:
        raise CoercionError("Empty date", role="date", value=value)
    try:
        return date_parser.parse(text)
    except (ValueError, OverflowError) as e:
        raise CoercionError(f"Unparseable date: {e}", role="date", value=value) from e


def coerce_amount(field: CandidateField) -> Decimal:
    """Interpret a candidate field as a signed amount rounded to cents.

    Raises:
        CoercionError: If the value is not a finite number.
    """
    value = field.value
    if isinstance(value, datetime):
        raise CoercionError("A date is not an amount", role="amount", value=value)
    text = value.translate(_CURRENCY_NOISE) if isinstance(value, str) else str(value)
    try:
        amount = Decimal(text)
    except InvalidOperation as e:
        raise CoercionError("Not a number", role="amount", value=value) from e
    if not amount.is_finite():
        raise CoercionError("Amount is not finite", role="amount", value=value)
    try:
        return round_cents(amount)
    except InvalidOperation as e:
        raise CoercionError("Amount out of range", role="amount", value=value) from e


def _optional_text(field: Optional[CandidateField]) -> Optional[str]:
    if field is None or not isinstance(field.value, str):
        return None
    if not field.value.strip():
        return None
    return field.value


def _transaction_type(amount: Decimal, type_field: Optional[CandidateField]) -> TransactionType:
    marker = (_optional_text(type_field) or "").strip().lower()
    if marker.startswith(INCOME_MARKERS):
        return TransactionType.INCOME
    if marker.startswith(EXPENSE_MARKERS):
        return TransactionType.EXPENSE
    # Zero counts as income
    return TransactionType.EXPENSE if amount < 0 else TransactionType.INCOME


def _as_record(record: Any) -> RawRecord:
    if isinstance(record, RawRecord):
        return record
    if isinstance(record, dict):
        return RawRecord.model_validate(record)
    raise TypeError(f"Unsupported record type: {type(record).__name__}")


def map_record(record: Any, mapping: FieldMapping) -> Optional[ParsedTransaction]:
    """Convert one raw record, or return None when a required role is missing.

    Raises:
        CoercionError: If the date or amount cannot be coerced.
    """
    raw = _as_record(record)

    date_field = raw.at(mapping.date)
    amount_field = raw.at(mapping.amount)
    description_field = raw.at(mapping.description)
    if date_field is None or amount_field is None or description_field is None:
        return None

    when = coerce_date(date_field)
    signed = coerce_amount(amount_field)

    description = str(description_field.value).strip() or DEFAULT_DESCRIPTION
    category = _optional_text(raw.at(mapping.category)) or DEFAULT_CATEGORY
    account_name = _optional_text(raw.at(mapping.account_name)) or DEFAULT_ACCOUNT_NAME

    return ParsedTransaction(
        date=when,
        amount=abs(signed),
        type=_transaction_type(signed, raw.at(mapping.type)),
        description=description,
        category=category,
        payee=_optional_text(raw.at(mapping.payee)),
        account_name=account_name,
    )


# =============================================================================
# BALANCES
# =============================================================================

def recalculate_balances(
    accounts: Iterable[ParsedAccount],
    transactions: Iterable[ParsedTransaction],
    openings: Optional[dict[str, Decimal]] = None,
) -> list[ParsedAccount]:
    """Recompute every balance from scratch.

    Each balance becomes its opening balance (zero unless given) plus
    income minus expenses over the transactions booked to that account
    name. Returns new account objects; the inputs are not modified.
    """
    openings = openings or {}
    totals: dict[str, Decimal] = {}
    for txn in transactions:
        if txn.account_name is None:
            continue
        totals[txn.account_name] = totals.get(txn.account_name, Decimal("0")) + txn.signed_amount

    return [
        account.model_copy(
            update={
                "balance": openings.get(account.name, Decimal("0"))
                + totals.get(account.name, Decimal("0"))
            }
        )
        for account in accounts
    ]


# =============================================================================
# ENTRY POINT
# =============================================================================

def apply_mapping_to_data(raw_data: Any, mapping: Any) -> MappingResult:
    """Apply a reviewed field mapping to scanner output.

    Args:
        raw_data: Records from ``ParseResult.raw_data`` (``RawRecord``
            instances or their dict form).
        mapping: A ``FieldMapping`` or its dict form.

    Returns:
        Accounts (one checking account per distinct account name, balances
        recomputed), the recovered transactions, and how many records were
        skipped. Never raises.
    """
    try:
        field_mapping = (
            mapping if isinstance(mapping, FieldMapping) else FieldMapping.model_validate(mapping)
        )
        records = list(raw_data or [])
    except (ValidationError, TypeError) as e:
        logger.error("invalid_mapping_input", error=str(e))
        return MappingResult()

    accounts: dict[str, ParsedAccount] = {}
    transactions: list[ParsedTransaction] = []
    skipped = 0

    for index, record in enumerate(records):
        try:
            transaction = map_record(record, field_mapping)
        except CoercionError as e:
            skipped += 1
            logger.debug("record_skipped", index=index, reason=e.message, **e.details)
            continue
        except Exception as e:
            skipped += 1
            logger.error("record_mapping_failed", index=index, error=str(e))
            continue

        if transaction is None:
            skipped += 1
            logger.debug("record_skipped", index=index, reason="missing required role")
            continue

        name = transaction.account_name or DEFAULT_ACCOUNT_NAME
        if name not in accounts:
            accounts[name] = ParsedAccount(name=name, type=AccountType.CHECKING)
        transactions.append(transaction)

    logger.info("mapping_applied", recovered=len(transactions), skipped=skipped)

    return MappingResult(
        accounts=recalculate_balances(accounts.values(), transactions),
        transactions=transactions,
        skipped=skipped,
    )
