"""
Action Execution Engine

DESIGN DECISION: Action execution is DETERMINISTIC.
The LLM converts natural language to a ParsedAction.
This engine executes that action against the ledger.

At no point does the LLM write to the store. It can only pick one of
a closed set of actions, and every argument it provides is validated
by the engine before anything is written.

The dispatch over ParsedAction is exhaustive: adding an action to the
union without handling it here fails type checking (assert_never).
"""

from datetime import date as date_type
from decimal import Decimal
from typing import Optional, assert_never
from uuid import UUID

import structlog

from jarvis_ledger.config.settings import LedgerSettings
from jarvis_ledger.engine.batch import BatchOrchestrator, outcome_from
from jarvis_ledger.engine.categories import CategoryService
from jarvis_ledger.engine.duplicates import DuplicateDetector
from jarvis_ledger.engine.errors import InvalidInputError
from jarvis_ledger.engine.income import IncomeSplitter
from jarvis_ledger.engine.rules import AllocationRuleManager
from jarvis_ledger.engine.settlement import PaymentSettlementEngine
from jarvis_ledger.engine.transactions import TransactionRecorder
from jarvis_ledger.models.actions import (
    AddTransactionAction,
    AddTransactionBatchAction,
    CategoryUpdateArgs,
    CreatePaymentAction,
    CreatePaymentArgs,
    GetCategoriesAction,
    GetUncategorizedAction,
    ParsedAction,
    SetBudgetRuleAction,
    SplitPaycheckAction,
    TransactionArgs,
    UnknownAction,
    UpdateCategoriesBatchAction,
    UpdateCategoryAction,
)
from jarvis_ledger.models.ledger import TransactionType
from jarvis_ledger.models.results import (
    ActionOutcome,
    DuplicateCheckResult,
    OperationResult,
    OperationStatus,
    SettlementResult,
    TransactionResult,
)
from jarvis_ledger.services.storage.cache import Clock, utc_now


logger = structlog.get_logger(__name__)

DUPLICATE_SKIP = "skip"


class ActionExecutor:
    """
    Executes parsed actions against the ledger engine.

    This is the bridge between:
    - AI-generated actions (from natural language)
    - The deterministic ledger operations

    GUARANTEES:
    - Only the engine writes to the store
    - Every action yields exactly one ActionOutcome
    - Duplicate submissions are caught before a write (warn or skip)
    """

    def __init__(
        self,
        recorder: TransactionRecorder,
        rules: AllocationRuleManager,
        income: IncomeSplitter,
        settlement: PaymentSettlementEngine,
        duplicates: DuplicateDetector,
        categories: CategoryService,
        batch: BatchOrchestrator,
        settings: Optional[LedgerSettings] = None,
        clock: Clock = utc_now,
    ):
        self._recorder = recorder
        self._rules = rules
        self._income = income
        self._settlement = settlement
        self._duplicates = duplicates
        self._categories = categories
        self._batch = batch
        self._settings = settings or LedgerSettings()
        self._clock = clock

    async def execute(
        self,
        action: ParsedAction,
        correlation_id: Optional[UUID] = None,
    ) -> ActionOutcome:
        """Execute one parsed action and return its outcome."""
        logger.info("executing_action", action=action.action)

        if isinstance(action, AddTransactionAction):
            result = await self._add_transaction(action.args, correlation_id)
        elif isinstance(action, AddTransactionBatchAction):
            result = await self._batch.run(
                "add_transaction",
                action.args.transactions,
                lambda args: self._add_transaction(args, correlation_id),
                correlation_id=correlation_id,
            )
        elif isinstance(action, SetBudgetRuleAction):
            result = await self._rules.replace_rule(
                action.args.budget_name,
                [a.model_dump() for a in action.args.budgets],
                correlation_id=correlation_id,
            )
        elif isinstance(action, SplitPaycheckAction):
            result = await self._income.split_income(
                gross_amount=action.args.gross_amount,
                rule_name=action.args.budget_name,
                date=action.args.date,
                description=action.args.description,
                correlation_id=correlation_id,
            )
        elif isinstance(action, CreatePaymentAction):
            result = await self._create_payment(action.args, correlation_id)
        elif isinstance(action, GetUncategorizedAction):
            result = await self._categories.get_uncategorized_expenses()
        elif isinstance(action, GetCategoriesAction):
            result = await self._categories.get_categories()
        elif isinstance(action, UpdateCategoryAction):
            result = await self._update_category(action.args, correlation_id)
        elif isinstance(action, UpdateCategoriesBatchAction):
            result = await self._batch.run(
                "update_transaction_category",
                action.args.updates,
                lambda args: self._update_category(args, correlation_id),
                correlation_id=correlation_id,
            )
        elif isinstance(action, UnknownAction):
            reason = action.reason or "the request did not match any supported action"
            result = OperationResult.failure(
                InvalidInputError(f"Could not understand the command: {reason}").to_error()
            )
        else:
            assert_never(action)

        return outcome_from(action.action, result)

    # =========================================================================
    # TRANSACTIONS & PAYMENTS
    # =========================================================================

    async def _add_transaction(
        self,
        args: TransactionArgs,
        correlation_id: Optional[UUID],
    ) -> OperationResult:
        if args.transaction_type == TransactionType.PAYMENT:
            return await self._create_payment(
                CreatePaymentArgs(
                    amount=args.amount,
                    from_account=args.from_account,
                    to_account=args.to_account,
                    date=args.date,
                    note=args.note,
                    category=args.category,
                ),
                correlation_id,
            )

        if args.transaction_type == TransactionType.EXPENSE:
            account = args.account or self._settings.default_expense_account
        else:
            account = args.account or self._settings.default_income_account
        day = args.date or self._clock().date()

        check = await self._check_duplicate(
            args.transaction_type, args.amount, [account], day, correlation_id
        )
        if check.status == OperationStatus.FAILED:
            return TransactionResult.failure(check.error)
        if check.found and self._settings.duplicate_policy == DUPLICATE_SKIP:
            return TransactionResult(
                status=OperationStatus.SKIPPED,
                transaction_type=args.transaction_type,
                amount=args.amount,
                duplicate_of=check.duplicate.record_id,
                message=f"Skipped: {check.message}",
            )

        result = await self._recorder.add_transaction(
            amount=args.amount,
            transaction_type=args.transaction_type,
            account=account,
            category=args.category,
            date=day,
            note=args.note,
            funding_account=args.funding_account,
            correlation_id=correlation_id,
        )
        if check.found:
            result.duplicate_of = check.duplicate.record_id
            result.message = f"{result.message} (warning: {check.message})"
        return result

    async def _create_payment(
        self,
        args: CreatePaymentArgs,
        correlation_id: Optional[UUID],
    ) -> OperationResult:
        source = args.from_account or self._settings.default_funding_account
        destination = args.to_account or self._settings.default_credit_account
        day = args.date or self._clock().date()

        check = await self._check_duplicate(
            TransactionType.PAYMENT, args.amount, [source, destination], day, correlation_id
        )
        if check.status == OperationStatus.FAILED:
            return SettlementResult.failure(check.error)
        if check.found and self._settings.duplicate_policy == DUPLICATE_SKIP:
            return SettlementResult(
                status=OperationStatus.SKIPPED,
                amount=args.amount,
                message=f"Skipped: {check.message}",
            )

        result = await self._settlement.settle_payment(
            amount=args.amount,
            source_account=source,
            destination_account=destination,
            date=day,
            note=args.note,
            category=args.category,
            correlation_id=correlation_id,
        )
        if check.found:
            result.message = f"{result.message} (warning: {check.message})"
        return result

    async def _check_duplicate(
        self,
        kind: TransactionType,
        amount: Optional[Decimal],
        account_names: list[str],
        day: date_type,
        correlation_id: Optional[UUID],
    ) -> DuplicateCheckResult:
        # Invalid amounts are rejected by the write itself
        if amount is None or amount <= 0:
            return DuplicateCheckResult(checked=False)
        return await self._duplicates.check_by_names(
            kind, amount, account_names, day, correlation_id=correlation_id
        )

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    async def _update_category(
        self,
        args: CategoryUpdateArgs,
        correlation_id: Optional[UUID],
    ) -> OperationResult:
        return await self._categories.update_expense_category(
            args.expense_id,
            args.category,
            correlation_id=correlation_id,
        )
