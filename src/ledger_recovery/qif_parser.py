"""Parser for QIF-style tagged text exports.

Quicken Interchange Format files are a sequence of blocks. Each line starts
with a one-letter tag and a ``^`` line closes the block; header lines that
start with ``!`` switch between account definitions (``!Account``) and
transaction lists (``!Type:<code>``).

Supported tags:
- ``!Account`` blocks: N (name), T (type), B (opening balance)
- transaction blocks: D (date), T/U (amount), P (payee), M (memo),
  L (category, optionally naming an account), N (check number)

Unlike the binary path, QIF yields finished transactions directly, with
no human mapping step.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import structlog

from .mapping import recalculate_balances, round_cents
from .models import (
    AccountType,
    ParsedAccount,
    ParsedTransaction,
    ParseResult,
    TransactionType,
)

logger = structlog.get_logger()


DEFAULT_ACCOUNT_NAME = "Default Account"
# Used instead of the default account until a !Type header has been seen
GENERAL_ACCOUNT_NAME = "General Account"
FALLBACK_ACCOUNT_NAME = "Imported Account"
DEFAULT_CATEGORY = "Uncategorized"
DEFAULT_DESCRIPTION = "No description"

# Category text of the form "Name:Category" names an account only when the
# left side is short. Long category labels that happen to contain a colon
# are ordinary categories, not account references.
MAX_EMBEDDED_ACCOUNT_LENGTH = 50

# Two-digit years below this pivot are 20xx, the rest 19xx.
TWO_DIGIT_YEAR_PIVOT = 50

PROGRESS_EVERY = 100

FAILURE_WARNING = "Unable to parse this QIF file. Please check the export and try again."

_DATE_PATTERN = re.compile(r"^(\d{1,2})([/\-.])(\d{1,2})[/\-.](\d{2}|\d{4})$")
_BRACKET_CATEGORY = re.compile(r"^\[([^\]]*)\](.*)$")
_TRANSFER_PAYEE = re.compile(r"^transfer (?:from|to)\s+(.+)$", re.IGNORECASE)
# Brand names must be upper case and lead the payee, followed by four digits
_CARD_PAYEE = re.compile(r"^(VISA|MASTERCARD|AMEX)\s+(\d{4})\b")
_BANK_PAYEE = re.compile(
    r"^(HSBC|BARCLAYS|LLOYDS|NATWEST|SANTANDER|HALIFAX|CHASE)\s+(\d{4})\b"
)
_AMOUNT_NOISE = str.maketrans("", "", "$£€, ")

# !Type:<code> header codes. Loan detection is a substring match on the code
# (see account_type_from_header).
HEADER_TYPES: dict[str, AccountType] = {
    "bank": AccountType.CHECKING,
    "cash": AccountType.CHECKING,
    "ccard": AccountType.CREDIT,
    "oth a": AccountType.SAVINGS,
    "invst": AccountType.INVESTMENT,
}

# Tags that can only belong to a transaction; seeing one after an account
# block's ^ ends the account list
TRANSACTION_TAGS = frozenset("DTUPML")


# =============================================================================
# FIELD HEURISTICS
# =============================================================================

def account_type_from_header(code: str) -> AccountType:
    """Map a ``!Type:<code>`` header to an account type.

    ``Oth L`` is not in the table and contains neither ``loan`` nor
    ``mort``, so it falls through to checking.
    """
    lowered = code.strip().lower()
    if lowered in HEADER_TYPES:
        return HEADER_TYPES[lowered]
    if "loan" in lowered or "mort" in lowered:
        return AccountType.LOAN
    return AccountType.CHECKING


def account_type_from_token(token: str) -> AccountType:
    """Guess an account type from the ``T`` line of an ``!Account`` block.

    Matching is by substring on the lowercased token, so ``Mort`` is a loan
    while ``Oth L`` stays checking.
    """
    lowered = token.strip().lower()
    if "ccard" in lowered or "credit" in lowered:
        return AccountType.CREDIT
    if "oth a" in lowered or "sav" in lowered:
        return AccountType.SAVINGS
    if "invst" in lowered or "invest" in lowered:
        return AccountType.INVESTMENT
    if "loan" in lowered or "mort" in lowered:
        return AccountType.LOAN
    return AccountType.CHECKING


def _account_type_from_name(name: str) -> AccountType:
    lowered = name.lower()
    if "sav" in lowered:
        return AccountType.SAVINGS
    if "card" in lowered or "credit" in lowered:
        return AccountType.CREDIT
    return AccountType.CHECKING


def _expand_year(year: int, digits: int) -> int:
    if digits > 2:
        return year
    return 2000 + year if year < TWO_DIGIT_YEAR_PIVOT else 1900 + year


def parse_qif_date(value: str) -> Optional[datetime]:
    """Parse a QIF date, or return None.

    US order (``MM/DD/YY``, ``MM/DD/YYYY``, ``MM-DD-YYYY``) is tried first.
    Only when that would give a month above 12 is the value read as
    ``DD/MM/YYYY``; ambiguous dates stay US.

    >>> parse_qif_date("01/15/24")
    datetime.datetime(2024, 1, 15, 0, 0)
    >>> parse_qif_date("25/12/2024")
    datetime.datetime(2024, 12, 25, 0, 0)
    """
    # Quicken writes 1/5'24 for years after 1999 and pads with spaces
    text = value.replace("'", "/").replace(" ", "")
    match = _DATE_PATTERN.match(text)
    if match is None:
        return None

    first, second = int(match.group(1)), int(match.group(3))
    year = _expand_year(int(match.group(4)), len(match.group(4)))
    month, day = first, second
    if month > 12:
        month, day = second, first

    try:
        return datetime(year, month, day)
    except ValueError:
        return None


def parse_qif_amount(value: str) -> Optional[Decimal]:
    """Parse an amount after stripping currency symbols and separators."""
    text = value.translate(_AMOUNT_NOISE)
    if not text:
        return None
    try:
        amount = Decimal(text)
        if not amount.is_finite():
            return None
        return round_cents(amount)
    except InvalidOperation:
        return None


def split_category(value: str) -> tuple[Optional[str], str]:
    """Split an ``L`` line into (account name, category).

    ``[Savings]Transfer`` books to ``Savings`` with category ``Transfer``;
    ``Checking:Food`` books to ``Checking`` with category ``Food`` unless the
    left side is longer than 50 characters.
    """
    bracket = _BRACKET_CATEGORY.match(value)
    if bracket is not None:
        name = bracket.group(1).strip()
        return (name or None), bracket.group(2).strip()

    if ":" in value:
        name, remainder = value.split(":", 1)
        name = name.strip()
        if name and len(name) <= MAX_EMBEDDED_ACCOUNT_LENGTH:
            return name, remainder.strip()

    return None, value.strip()


# =============================================================================
# PARSER
# =============================================================================

@dataclass
class _AccountDraft:
    name: Optional[str] = None
    type_token: Optional[str] = None
    opening: Optional[Decimal] = None


@dataclass
class _TransactionDraft:
    date: Optional[datetime] = None
    amount: Optional[Decimal] = None
    payee: Optional[str] = None
    memo: Optional[str] = None
    category: Optional[str] = None
    account_name: Optional[str] = None
    check_number: Optional[str] = None


@dataclass
class _ParseState:
    """Accumulators for one parse call."""
    accounts: dict[str, ParsedAccount] = field(default_factory=dict)
    openings: dict[str, Decimal] = field(default_factory=dict)
    transactions: list[ParsedTransaction] = field(default_factory=list)
    current_type: AccountType = AccountType.CHECKING
    in_account_block: bool = False
    account_closed: bool = False
    seen_type_header: bool = False
    account: _AccountDraft = field(default_factory=_AccountDraft)
    txn: _TransactionDraft = field(default_factory=_TransactionDraft)
    dropped: int = 0


class QIFParser:
    """
    Tagged-line state machine over QIF text.

    Accounts come from explicit ``!Account`` blocks, from account names
    embedded in categories, from payee heuristics, and from the default
    account that catches everything else.
    """

    def parse(self, content: Any) -> ParseResult:
        """Parse QIF text. Never raises for bad input."""
        if not isinstance(content, str):
            logger.warning("qif_rejected_input", input_type=type(content).__name__)
            return self._failure()
        try:
            return self._parse(content)
        except Exception as e:
            logger.error("qif_parse_failed", error=str(e), exc_info=True)
            return self._failure()

    @staticmethod
    def _failure() -> ParseResult:
        return ParseResult(
            accounts=[ParsedAccount(name=FALLBACK_ACCOUNT_NAME, type=AccountType.CHECKING)],
            transactions=[],
            warning=FAILURE_WARNING,
        )

    def _parse(self, content: str) -> ParseResult:
        state = _ParseState()
        lines = content.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        logger.info("qif_parse_started", lines=len(lines))

        for raw_line in lines:
            line = raw_line.strip()
            if not line:
                continue
            if line.startswith("!"):
                self._handle_header(state, line[1:].strip())
                continue

            tag, value = line[0], line[1:].strip()
            if state.in_account_block and state.account_closed and tag in TRANSACTION_TAGS:
                logger.debug("qif_account_list_ended", tag=tag)
                state.in_account_block = False
            if state.in_account_block:
                self._handle_account_line(state, tag, value)
            else:
                self._handle_transaction_line(state, tag, value)

        if state.in_account_block:
            self._finish_account(state)

        if not state.accounts:
            state.accounts[FALLBACK_ACCOUNT_NAME] = ParsedAccount(
                name=FALLBACK_ACCOUNT_NAME, type=AccountType.CHECKING
            )

        accounts = recalculate_balances(
            state.accounts.values(), state.transactions, state.openings
        )
        logger.info(
            "qif_parse_finished",
            transactions=len(state.transactions),
            accounts=len(accounts),
            dropped=state.dropped,
        )
        return ParseResult(accounts=accounts, transactions=state.transactions)

    def _handle_header(self, state: _ParseState, header: str) -> None:
        lowered = header.lower()
        if lowered == "account":
            if state.in_account_block:
                self._finish_account(state)
            state.in_account_block = True
            state.account_closed = False
            state.account = _AccountDraft()
        elif lowered.startswith("type:"):
            if state.in_account_block:
                self._finish_account(state)
            state.in_account_block = False
            state.seen_type_header = True
            state.current_type = account_type_from_header(header[5:])
            logger.debug("qif_section", type=state.current_type.value)
        else:
            # !Option:AutoSwitch, !Clear:AutoSwitch and friends
            logger.debug("qif_header_ignored", header=header)

    # --- !Account blocks -----------------------------------------------------

    def _handle_account_line(self, state: _ParseState, tag: str, value: str) -> None:
        draft = state.account
        state.account_closed = tag == "^"
        if tag == "^":
            self._finish_account(state)
        elif tag == "N":
            draft.name = value
        elif tag == "T":
            draft.type_token = value
        elif tag == "B":
            draft.opening = parse_qif_amount(value)

    def _finish_account(self, state: _ParseState) -> None:
        draft = state.account
        state.account = _AccountDraft()
        if not draft.name:
            return

        account_type = (
            account_type_from_token(draft.type_token)
            if draft.type_token is not None
            else AccountType.CHECKING
        )
        state.accounts[draft.name] = ParsedAccount(name=draft.name, type=account_type)
        if draft.opening is not None:
            state.openings[draft.name] = draft.opening
        logger.debug("qif_account_declared", name=draft.name, type=account_type.value)

    # --- transaction blocks --------------------------------------------------

    def _handle_transaction_line(self, state: _ParseState, tag: str, value: str) -> None:
        txn = state.txn
        if tag == "^":
            self._finish_transaction(state)
        elif tag == "D":
            parsed = parse_qif_date(value)
            if parsed is None:
                logger.warning("qif_invalid_date", value=value)
                parsed = datetime.now()
            txn.date = parsed
        elif tag in ("T", "U"):
            txn.amount = parse_qif_amount(value)
        elif tag == "P":
            txn.payee = value or None
            if value:
                self._register_payee_accounts(state, value)
        elif tag == "M":
            txn.memo = value or None
        elif tag == "L":
            account_name, category = split_category(value)
            txn.category = category or None
            if account_name:
                txn.account_name = account_name
        elif tag == "N":
            if value and value != "0":
                txn.check_number = value

    def _register_payee_accounts(self, state: _ParseState, payee: str) -> None:
        """Best-effort account discovery from payee text."""
        transfer = _TRANSFER_PAYEE.match(payee)
        if transfer is not None:
            name = transfer.group(1).strip()
            self._ensure_account(state, name, _account_type_from_name(name))
            return

        card = _CARD_PAYEE.match(payee)
        if card is not None:
            self._ensure_account(state, f"{card.group(1)} {card.group(2)}", AccountType.CREDIT)
            return

        bank = _BANK_PAYEE.match(payee)
        if bank is not None:
            self._ensure_account(state, f"{bank.group(1)} {bank.group(2)}", AccountType.CHECKING)

    @staticmethod
    def _ensure_account(state: _ParseState, name: str, account_type: AccountType) -> None:
        if name and name not in state.accounts:
            state.accounts[name] = ParsedAccount(name=name, type=account_type)

    def _finish_transaction(self, state: _ParseState) -> None:
        txn = state.txn
        state.txn = _TransactionDraft()

        if txn.date is None or txn.amount is None:
            state.dropped += 1
            return

        account_name = txn.account_name or (
            DEFAULT_ACCOUNT_NAME if state.seen_type_header else GENERAL_ACCOUNT_NAME
        )
        self._ensure_account(state, account_name, state.current_type)

        state.transactions.append(
            ParsedTransaction(
                date=txn.date,
                amount=abs(txn.amount),
                type=TransactionType.EXPENSE if txn.amount < 0 else TransactionType.INCOME,
                description=txn.payee or txn.memo or DEFAULT_DESCRIPTION,
                category=txn.category or DEFAULT_CATEGORY,
                payee=txn.payee,
                account_name=account_name,
                check_number=txn.check_number,
            )
        )

        if len(state.transactions) % PROGRESS_EVERY == 0:
            logger.debug("qif_progress", transactions=len(state.transactions))


def parse_qif(content: str) -> ParseResult:
    """Parse QIF text into accounts and transactions.

    Returns a populated result on success. Input that is not text yields a
    fallback account and a warning. Never raises.
    """
    return QIFParser().parse(content)
