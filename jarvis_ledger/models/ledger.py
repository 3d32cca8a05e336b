"""
Core Ledger Models for Jarvis Ledger

These models define the accounts, entities and operation inputs of the
ledger engine. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Make optional fields explicit (a payment either has a note or it doesn't)
4. Keep money exact (Decimal everywhere, never float)

DESIGN DECISION: Accounts are a fixed enumeration. The record store
still has an Accounts collection (relations point at its ids), but the
set of valid names is decided here, not by whatever rows exist.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from jarvis_ledger.models.record import Record


MONEY_QUANTUM = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return Decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def _reject_instant(value: Any) -> Any:
    """Dates are calendar dates. Timestamps are refused, not truncated."""
    if isinstance(value, datetime):
        raise ValueError("expected a calendar date (YYYY-MM-DD), got a timestamp")
    if isinstance(value, str) and ("T" in value or " " in value.strip()):
        raise ValueError(f"expected a calendar date (YYYY-MM-DD), got '{value}'")
    return value


CalendarDate = Annotated[date, BeforeValidator(_reject_instant)]
PositiveAmount = Annotated[Decimal, Field(gt=0, decimal_places=2)]
# Split before rounding; each share is rounded to cents on its own.
GrossAmount = Annotated[Decimal, Field(gt=0)]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Account(str, Enum):
    """
    The ledger's accounts.

    DESIGN DECISION: A small fixed set. Adding an account is a code change,
    which keeps the LLM prompt, validation and storage in sync.
    """
    CHECKINGS = "checkings"
    SHORT_TERM_SAVINGS = "short term savings"
    BILLS = "bills"
    FREEDOM_UNLIMITED = "freedom unlimited"
    SAPPHIRE = "sapphire"
    BROKERAGE = "brokerage"
    ROTH_IRA = "roth ira"
    SPAXX = "spaxx"


# Accounts that can source funds for credit card expenses or payments
FUNDING_ACCOUNTS = frozenset({
    Account.CHECKINGS,
    Account.BILLS,
    Account.SHORT_TERM_SAVINGS,
})

# Credit cards accumulate outstanding balances and receive payments
CREDIT_CARD_ACCOUNTS = frozenset({
    Account.SAPPHIRE,
    Account.FREEDOM_UNLIMITED,
})

# Categories that default to a funding account other than checkings
CATEGORY_FUNDING_MAP: dict[str, Account] = {
    "groceries": Account.BILLS,
    "gas": Account.BILLS,
    "att": Account.BILLS,
    "car": Account.BILLS,
    "house": Account.BILLS,
    "chatgpt": Account.BILLS,
}

# Used when the Categories collection cannot be read
FALLBACK_CATEGORIES = (
    "paycheck",
    "out",
    "lyft",
    "shopping",
    "concerts",
    "zelle",
    "health",
    "groceries",
    "att",
    "chatgpt",
    "house",
    "car",
    "gas",
    "other",
)

UNCATEGORIZED = "other"


def normalize_account_name(name: str) -> str:
    return (name or "").strip().lower()


def is_known_account(name: str) -> bool:
    return normalize_account_name(name) in {a.value for a in Account}


def is_funding_account(name: str) -> bool:
    return normalize_account_name(name) in {a.value for a in FUNDING_ACCOUNTS}


def is_credit_card_account(name: str) -> bool:
    return normalize_account_name(name) in {a.value for a in CREDIT_CARD_ACCOUNTS}


def default_funding_account(category: Optional[str]) -> Account:
    """Funding account implied by an expense category."""
    return CATEGORY_FUNDING_MAP.get((category or "").strip().lower(), Account.CHECKINGS)


class TransactionType(str, Enum):
    """Kinds of ledger entries."""
    EXPENSE = "expense"
    INCOME = "income"
    PAYMENT = "payment"


class Collection(str, Enum):
    """Record store collections."""
    ACCOUNTS = "accounts"
    CATEGORIES = "categories"
    EXPENSES = "expenses"
    INCOME = "income"
    PAYMENTS = "payments"
    ALLOCATION_RULES = "allocation_rules"


# =============================================================================
# OPERATION INPUTS
# =============================================================================

class AllocationInput(BaseModel):
    """One (destination, percentage) pair of an allocation rule."""
    model_config = ConfigDict(str_strip_whitespace=True)

    account: str = Field(
        ...,
        min_length=1,
        description="Destination account name (e.g. 'checkings')"
    )
    percentage: Decimal = Field(
        ...,
        gt=0,
        le=1,
        description="Fraction of the gross amount, in (0, 1]"
    )

    @field_validator('account')
    @classmethod
    def lowercase_account(cls, v: str) -> str:
        return v.lower()


class ReplaceRuleInput(BaseModel):
    """Input for replacing an allocation rule."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    allocations: list[AllocationInput] = Field(
        ...,
        min_length=1,
        description="Allocations; percentages must sum to 1.0"
    )


class SplitIncomeInput(BaseModel):
    """Input for splitting a gross income across a rule's accounts."""
    model_config = ConfigDict(str_strip_whitespace=True)

    gross_amount: GrossAmount
    rule_name: Optional[str] = Field(default=None, max_length=200)
    date: Optional[CalendarDate] = None
    description: Optional[str] = Field(default=None, max_length=500)


class PaymentInput(BaseModel):
    """Input for recording a credit card payment and settling balances."""
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: PositiveAmount
    from_account: Optional[str] = None
    to_account: Optional[str] = None
    date: Optional[CalendarDate] = None
    note: Optional[str] = Field(default=None, max_length=1000)
    category: Optional[str] = Field(default=None, max_length=100)


class TransactionInput(BaseModel):
    """
    Input for a single ledger entry.

    For income rows written by the income splitter, pre_breakdown,
    budget and percentage carry the split context. For payments,
    from_account/to_account identify the funding account and the card.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: PositiveAmount
    transaction_type: TransactionType = TransactionType.EXPENSE
    account: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    date: Optional[CalendarDate] = None
    note: Optional[str] = Field(default=None, max_length=1000)
    funding_account: Optional[str] = None
    from_account: Optional[str] = None
    to_account: Optional[str] = None

    # Income split context
    pre_breakdown: Optional[Decimal] = Field(default=None, gt=0)
    budget: Optional[str] = None
    percentage: Optional[Decimal] = Field(default=None, gt=0, le=1)
    memo: Optional[str] = Field(default=None, max_length=200)

    @model_validator(mode='after')
    def validate_payment_fields(self) -> 'TransactionInput':
        """Payment-only fields make no sense on other entry types."""
        if self.transaction_type != TransactionType.PAYMENT:
            if self.from_account or self.to_account:
                raise ValueError(
                    "from_account/to_account are only valid for payments"
                )
        return self


# =============================================================================
# ENTITIES (read back from the record store)
# =============================================================================

class AllocationRow(BaseModel):
    """A single stored row of an allocation rule."""

    id: str
    rule_name: str
    account_id: Optional[str] = None
    percentage: Decimal = Decimal("0")
    created_time: datetime

    @classmethod
    def from_record(cls, record: Record) -> "AllocationRow":
        accounts = record.relation("account")
        return cls(
            id=record.id,
            rule_name=record.title,
            account_id=accounts[0] if accounts else None,
            percentage=record.number("percentage") or Decimal("0"),
            created_time=record.created_time,
        )


class OutstandingBalance(BaseModel):
    """
    A credit card expense, viewed as a balance to be settled.

    Invariants: paid_amount <= amount; cleared iff paid_amount == amount.
    paid_amount only grows and cleared only flips false -> true.
    """

    id: str
    amount: Decimal
    account_id: Optional[str] = None
    funding_account_id: Optional[str] = None
    date: Optional[CalendarDate] = None
    cleared: bool = False
    paid_amount: Decimal = Decimal("0")
    owed_amount: Optional[Decimal] = Field(
        default=None,
        description="Precomputed amount still owed, when the store provides it"
    )
    cleared_by: list[str] = Field(default_factory=list)
    note: Optional[str] = None
    created_time: datetime

    @property
    def owed(self) -> Decimal:
        """What is still owed on this balance."""
        if self.owed_amount is not None:
            return self.owed_amount
        return self.amount - self.paid_amount

    @classmethod
    def from_record(cls, record: Record) -> "OutstandingBalance":
        accounts = record.relation("accounts")
        funding = record.relation("funding_account")
        return cls(
            id=record.id,
            amount=record.number("amount") or Decimal("0"),
            account_id=accounts[0] if accounts else None,
            funding_account_id=funding[0] if funding else None,
            date=record.day("date"),
            cleared=record.flag("cleared"),
            paid_amount=record.number("paid_amount") or Decimal("0"),
            owed_amount=record.number("owed_amount"),
            cleared_by=record.relation("cleared_by"),
            note=record.text("note"),
            created_time=record.created_time,
        )
