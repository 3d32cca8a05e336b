"""
Parsed Action Models

The command parser turns a natural-language message into exactly one of
these actions. They form a closed tagged union discriminated by the
"action" field; the executor matches it exhaustively, so adding an
action means touching the union, the parser prompt and the executor.

Args are deliberately lenient (plain types, no range checks): the
engine validates values and reports InvalidInput, which gives the user
a better message than "could not parse".
"""

import re
from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, Field, TypeAdapter

from jarvis_ledger.models.ledger import TransactionType


_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _drop_malformed_date(value: Any) -> Any:
    """LLM dates that aren't YYYY-MM-DD are dropped (default to today)."""
    if value is None or isinstance(value, date):
        return value
    if isinstance(value, str) and _ISO_DATE.match(value.strip()):
        return value.strip()
    return None


LenientDate = Annotated[Optional[date], BeforeValidator(_drop_malformed_date)]


class TransactionArgs(BaseModel):
    amount: Decimal
    transaction_type: TransactionType = TransactionType.EXPENSE
    account: Optional[str] = None
    category: Optional[str] = None
    date: LenientDate = None
    note: Optional[str] = None
    funding_account: Optional[str] = None
    from_account: Optional[str] = None
    to_account: Optional[str] = None


class AllocationArgs(BaseModel):
    account: str
    percentage: Decimal


class CategoryUpdateArgs(BaseModel):
    expense_id: str
    category: str = Field(..., min_length=1)


class AddTransactionAction(BaseModel):
    action: Literal["add_transaction"] = "add_transaction"
    args: TransactionArgs


class AddTransactionBatchArgs(BaseModel):
    transactions: list[TransactionArgs] = Field(..., min_length=1)


class AddTransactionBatchAction(BaseModel):
    action: Literal["add_transaction_batch"] = "add_transaction_batch"
    args: AddTransactionBatchArgs


class SetBudgetRuleArgs(BaseModel):
    budget_name: str
    budgets: list[AllocationArgs] = Field(default_factory=list)


class SetBudgetRuleAction(BaseModel):
    action: Literal["set_budget_rule"] = "set_budget_rule"
    args: SetBudgetRuleArgs


class SplitPaycheckArgs(BaseModel):
    gross_amount: Decimal
    budget_name: Optional[str] = None
    date: LenientDate = None
    description: Optional[str] = None


class SplitPaycheckAction(BaseModel):
    action: Literal["split_paycheck"] = "split_paycheck"
    args: SplitPaycheckArgs


class CreatePaymentArgs(BaseModel):
    amount: Decimal
    from_account: Optional[str] = None
    to_account: Optional[str] = None
    date: LenientDate = None
    note: Optional[str] = None
    category: Optional[str] = None


class CreatePaymentAction(BaseModel):
    action: Literal["create_payment"] = "create_payment"
    args: CreatePaymentArgs


class EmptyArgs(BaseModel):
    pass


class GetUncategorizedAction(BaseModel):
    action: Literal["get_uncategorized_transactions"] = "get_uncategorized_transactions"
    args: EmptyArgs = Field(default_factory=EmptyArgs)


class GetCategoriesAction(BaseModel):
    action: Literal["get_categories"] = "get_categories"
    args: EmptyArgs = Field(default_factory=EmptyArgs)


class UpdateCategoryAction(BaseModel):
    action: Literal["update_transaction_category"] = "update_transaction_category"
    args: CategoryUpdateArgs


class UpdateCategoriesBatchArgs(BaseModel):
    updates: list[CategoryUpdateArgs] = Field(..., min_length=1)


class UpdateCategoriesBatchAction(BaseModel):
    action: Literal["update_transaction_categories_batch"] = "update_transaction_categories_batch"
    args: UpdateCategoriesBatchArgs


class UnknownAction(BaseModel):
    action: Literal["unknown"] = "unknown"
    reason: Optional[str] = None


ParsedAction = Annotated[
    Union[
        AddTransactionAction,
        AddTransactionBatchAction,
        SetBudgetRuleAction,
        SplitPaycheckAction,
        CreatePaymentAction,
        GetUncategorizedAction,
        GetCategoriesAction,
        UpdateCategoryAction,
        UpdateCategoriesBatchAction,
        UnknownAction,
    ],
    Field(discriminator="action"),
]

parsed_action_adapter: TypeAdapter[ParsedAction] = TypeAdapter(ParsedAction)
