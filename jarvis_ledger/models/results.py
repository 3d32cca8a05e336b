"""
Operation Result Models

Every ledger operation returns one of these instead of raising for
expected failures. A caller can always tell which of the requested
effects actually happened:

- status SUCCEEDED: everything requested was done
- status PARTIAL: some effects were durably written, some were not
- status FAILED: nothing (or nothing useful) was written; see error
- status SKIPPED: deliberately not executed (e.g. duplicate policy)

DESIGN DECISION: Partial progress is reported, never rolled back.
The record store has no multi-record transactions, so compensating
writes would just be more writes that can fail.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, SerializeAsAny

from jarvis_ledger.models.ledger import CalendarDate, TransactionType


class ErrorKind(str, Enum):
    """Error taxonomy shared by all operations."""
    INVALID_INPUT = "invalid_input"        # caller error, never retried
    NOT_FOUND = "not_found"                # unresolvable account/rule/record
    UPSTREAM_FAILURE = "upstream_failure"  # record store errored, may be transient


class OperationStatus(str, Enum):
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


class OperationError(BaseModel):
    """Why an operation (or one item of it) failed."""

    kind: ErrorKind
    message: str


class OperationResult(BaseModel):
    """Base for every operation result."""

    status: OperationStatus = OperationStatus.SUCCEEDED
    error: Optional[OperationError] = None
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status != OperationStatus.FAILED

    @classmethod
    def failure(cls, error: OperationError, **fields):
        """Build a FAILED result carrying the given error."""
        return cls(
            status=OperationStatus.FAILED,
            error=error,
            message=error.message,
            **fields,
        )


# =============================================================================
# ALLOCATION RULES
# =============================================================================

class RuleReplaceResult(OperationResult):
    """Outcome of replacing an allocation rule."""

    rule_name: str = ""
    created_ids: list[str] = Field(default_factory=list)
    archived_ids: list[str] = Field(
        default_factory=list,
        description="Superseded rows that were archived"
    )
    unarchived_ids: list[str] = Field(
        default_factory=list,
        description="Rows that should have been archived but are still active"
    )


# =============================================================================
# INCOME SPLITS
# =============================================================================

class SplitEntry(BaseModel):
    """One destination's share of a split income."""

    account: str
    account_id: str
    percentage: Decimal
    amount: Decimal = Field(..., description="Net amount for this destination")
    gross_amount: Decimal
    rule_name: str
    date: CalendarDate
    transaction_id: Optional[str] = None
    error: Optional[OperationError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.transaction_id is not None


class SplitIncomeResult(OperationResult):
    """Outcome of splitting an income across a rule."""

    gross_amount: Optional[Decimal] = None
    rule_name: str = ""
    date: Optional[CalendarDate] = None
    entries: list[SplitEntry] = Field(default_factory=list)
    skipped_row_ids: list[str] = Field(
        default_factory=list,
        description="Rule rows ignored because they were malformed"
    )

    @property
    def total_allocated(self) -> Decimal:
        return sum((e.amount for e in self.entries if e.succeeded), Decimal("0"))


# =============================================================================
# PAYMENT SETTLEMENT
# =============================================================================

class AppliedBalance(BaseModel):
    """How much of a payment went to one outstanding balance."""

    balance_id: str
    amount_applied: Decimal
    fully_settled: bool
    note: Optional[str] = None


class SettlementResult(OperationResult):
    """Outcome of recording a payment and settling balances with it."""

    payment_id: Optional[str] = None
    amount: Decimal = Decimal("0")
    applied: list[AppliedBalance] = Field(default_factory=list)
    cleared_total: Decimal = Decimal("0")
    remaining_unapplied: Decimal = Decimal("0")
    failed_balance_ids: list[str] = Field(
        default_factory=list,
        description="Balances whose settlement write failed"
    )

    @property
    def touched_ids(self) -> list[str]:
        return [a.balance_id for a in self.applied]


# =============================================================================
# DUPLICATE DETECTION
# =============================================================================

class DuplicateMatch(BaseModel):
    """An existing record that looks like the one being submitted."""

    record_id: str
    kind: TransactionType
    title: str = ""
    amount: Decimal
    date: Optional[CalendarDate] = None
    created_time: datetime


class DuplicateCheckResult(OperationResult):
    """
    Outcome of a duplicate check.

    checked is False when the detector could not run and failed open.
    """

    duplicate: Optional[DuplicateMatch] = None
    checked: bool = True

    @property
    def found(self) -> bool:
        return self.duplicate is not None


# =============================================================================
# TRANSACTIONS & CATEGORIES
# =============================================================================

class TransactionResult(OperationResult):
    """Outcome of adding a single expense or income entry."""

    transaction_id: Optional[str] = None
    transaction_type: Optional[TransactionType] = None
    amount: Optional[Decimal] = None
    account: Optional[str] = None
    category: Optional[str] = None
    duplicate_of: Optional[str] = None


class CategoryUpdateResult(OperationResult):
    expense_id: Optional[str] = None
    category: Optional[str] = None


class CategoryListResult(OperationResult):
    categories: list[str] = Field(default_factory=list)


class UncategorizedExpense(BaseModel):
    id: str
    amount: Decimal
    note: str = ""
    date: Optional[CalendarDate] = None


class UncategorizedExpensesResult(OperationResult):
    expenses: list[UncategorizedExpense] = Field(default_factory=list)


# =============================================================================
# ACTIONS & BATCHES
# =============================================================================

class ActionOutcome(OperationResult):
    """Outcome of executing one parsed action (or one batch item)."""

    action: str
    index: Optional[int] = None
    result: Optional[SerializeAsAny[OperationResult]] = None


class BatchResult(OperationResult):
    """Outcome of a sequential batch. Items never abort each other."""

    items: list[ActionOutcome] = Field(default_factory=list)

    @property
    def succeeded_count(self) -> int:
        return sum(1 for item in self.items if item.status == OperationStatus.SUCCEEDED)

    @property
    def failed_count(self) -> int:
        return sum(1 for item in self.items if item.status == OperationStatus.FAILED)
