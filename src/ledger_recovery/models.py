"""Canonical data models shared by every recovery path.

This module provides the types handed to the review UI and the persistence
layer:
- Accounts and transactions recovered from a legacy file
- Raw, unlabeled records produced by the binary scanner
- The human-confirmed field mapping that turns raw records into transactions
- The parse result envelope returned by every entry point

Every instance is built fresh per parse call; nothing here holds state
across calls.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, Field, computed_field, field_validator


class AccountType(str, Enum):
    """Kinds of account a recovered ledger can belong to."""

    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    LOAN = "loan"
    INVESTMENT = "investment"


class TransactionType(str, Enum):
    """Direction of a transaction. Amounts are unsigned; this carries the sign."""

    INCOME = "income"
    EXPENSE = "expense"


class FieldKind(str, Enum):
    """Classification the binary scanner assigns to a candidate field."""

    DATE = "date"
    AMOUNT = "amount"
    INT = "int"
    FLOAT32 = "float32"
    TEXT = "text"
    TEXT_UTF16 = "text_utf16"


FieldValue = Union[int, float, str, datetime]


class ParsedAccount(BaseModel):
    """An account recovered from a legacy file.

    The balance is always recomputed from the transactions booked to the
    account. The only value ever taken from the raw input is the opening
    balance declared in an explicit QIF ``!Account`` block.
    """

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Checking Account",
                    "type": "checking",
                    "balance": "2349.50",
                }
            ]
        }
    }

    name: str = Field(
        min_length=1,
        description="Account name, unique within one parse result",
    )
    type: AccountType = Field(
        default=AccountType.CHECKING,
        description="Kind of account",
    )
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Signed balance computed from the recovered transactions",
    )
    account_number: Optional[str] = Field(
        default=None,
        description="Account number, when the source exposes one",
    )


class ParsedTransaction(BaseModel):
    """A single transaction recovered from a legacy file."""

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "date": "2024-01-15T00:00:00",
                    "amount": "50.00",
                    "type": "expense",
                    "description": "Grocery Store",
                    "category": "Food",
                    "payee": "Grocery Store",
                    "account_name": "Default Account",
                }
            ]
        }
    }

    date: datetime = Field(description="When the transaction happened")
    amount: Decimal = Field(
        ge=0,
        description="Unsigned amount rounded to cents; see ``type`` for direction",
    )
    type: TransactionType = Field(description="Income or expense")
    description: str = Field(min_length=1, description="Human readable description")
    category: str = Field(min_length=1, description="Category label")
    payee: Optional[str] = Field(default=None, description="Payee, when known")
    account_name: Optional[str] = Field(
        default=None,
        description="Name of the account the transaction is booked to",
    )
    check_number: Optional[str] = Field(
        default=None,
        description="Check number, informational only",
    )

    @computed_field
    @property
    def signed_amount(self) -> Decimal:
        """Amount with the sign implied by ``type``."""
        if self.type == TransactionType.EXPENSE:
            return -self.amount
        return self.amount


class CandidateField(BaseModel):
    """One classified value found in a raw byte window."""

    slot: int = Field(ge=0, description="Probe slot the value was read from")
    kind: FieldKind = Field(description="What the scanner thinks the value is")
    value: FieldValue = Field(description="The decoded value")

    @property
    def label(self) -> str:
        """Display label such as ``field_2_amount``."""
        return f"field_{self.slot}_{self.kind.value}"


class RawRecord(BaseModel):
    """An unlabeled record extracted from one window of a binary file.

    Field order matters: a ``FieldMapping`` selects fields by position.
    """

    offset: int = Field(default=0, ge=0, description="Byte offset of the window")
    fields: list[CandidateField] = Field(default_factory=list)

    def at(self, position: Optional[int]) -> Optional[CandidateField]:
        """Return the field at ``position`` or None when there is none."""
        if position is None or position < 0 or position >= len(self.fields):
            return None
        return self.fields[position]

    def kinds(self) -> list[FieldKind]:
        return [f.kind for f in self.fields]


class FieldMapping(BaseModel):
    """Role to position assignment confirmed by a human reviewer."""

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"date": 0, "amount": 1, "description": 2, "category": 3, "account_name": 4}
            ]
        }
    }

    date: int = Field(ge=0, description="Position of the date field")
    amount: int = Field(ge=0, description="Position of the amount field")
    description: int = Field(ge=0, description="Position of the description field")
    payee: Optional[int] = Field(default=None, ge=0)
    category: Optional[int] = Field(default=None, ge=0)
    account_name: Optional[int] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("account_name", "accountName"),
        description="Position of the account name; the review UI sends accountName",
    )
    type: Optional[int] = Field(default=None, ge=0)

    @classmethod
    def from_string(cls, text: str) -> "FieldMapping":
        """Build a mapping from ``role=position`` pairs separated by commas.

        >>> FieldMapping.from_string("date=0,amount=1,description=2").amount
        1
        """
        values: dict[str, int] = {}
        for part in text.split(","):
            part = part.strip()
            if not part:
                continue
            role, _, position = part.partition("=")
            values[role.strip().replace("-", "_")] = int(position.strip())
        return cls(**values)


class ParseResult(BaseModel):
    """Envelope returned by every parser entry point.

    Three shapes are possible:
    - ``needs_mapping`` is True: ``raw_data`` holds records to review and
      ``accounts``/``transactions`` are empty.
    - ``transactions`` populated: fully automatic success.
    - ``transactions`` empty with a ``warning``: the input could not be
      recovered and the caller should offer another export path.
    """

    accounts: list[ParsedAccount] = Field(default_factory=list)
    transactions: list[ParsedTransaction] = Field(default_factory=list)
    warning: Optional[str] = None
    raw_data: Optional[list[RawRecord]] = None
    needs_mapping: Optional[bool] = None

    @property
    def is_failure(self) -> bool:
        return not self.needs_mapping and not self.transactions and bool(self.warning)


class MappingResult(BaseModel):
    """Accounts and transactions produced by applying a field mapping."""

    accounts: list[ParsedAccount] = Field(default_factory=list)
    transactions: list[ParsedTransaction] = Field(default_factory=list)
    skipped: int = Field(
        default=0,
        ge=0,
        description="Records dropped for missing roles or failed coercion",
    )

    @field_validator("accounts")
    @classmethod
    def unique_account_names(cls, v: list[ParsedAccount]) -> list[ParsedAccount]:
        """Account names are the dedup key and must not repeat."""
        names = [a.name for a in v]
        if len(names) != len(set(names)):
            raise ValueError("Account names must be unique")
        return v


__all__ = [
    "AccountType",
    "TransactionType",
    "FieldKind",
    "FieldValue",
    "ParsedAccount",
    "ParsedTransaction",
    "CandidateField",
    "RawRecord",
    "FieldMapping",
    "ParseResult",
    "MappingResult",
]
