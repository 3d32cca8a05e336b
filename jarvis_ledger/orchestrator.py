"""
Main Orchestrator for Jarvis Ledger

This module ties together all the components and defines the two ways
the ledger is driven:
1. Direct operations (LedgerService: split income, replace rule,
   settle payment, ...), each returning a structured result
2. Commands (message -> parse -> execute -> outcome)

DESIGN DECISION: The orchestrator enforces the boundaries:
- The LLM only ever produces a ParsedAction, never a write
- Every operation returns a result object; expected failures never raise
- Every step is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from datetime import date as date_type
from datetime import timedelta
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

import structlog
from pydantic import ValidationError

from jarvis_ledger.agents import CommandParser
from jarvis_ledger.audit import AuditLogger, create_correlation_id
from jarvis_ledger.config.settings import LedgerSettings
from jarvis_ledger.engine import (
    ActionExecutor,
    AllocationRuleManager,
    BatchOrchestrator,
    CategoryService,
    DuplicateDetector,
    IncomeSplitter,
    PaymentSettlementEngine,
    TransactionRecorder,
)
from jarvis_ledger.engine.rules import AllocationLike
from jarvis_ledger.models.actions import ParsedAction
from jarvis_ledger.models.ledger import FALLBACK_CATEGORIES, Account, Collection, TransactionType
from jarvis_ledger.models.results import (
    ActionOutcome,
    BatchResult,
    DuplicateCheckResult,
    RuleReplaceResult,
    SettlementResult,
    SplitIncomeResult,
    TransactionResult,
)
from jarvis_ledger.services.directory import AccountDirectory, CategoryDirectory
from jarvis_ledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryRecordStore,
    RecordStoreInterface,
    StorageError,
)
from jarvis_ledger.services.storage.cache import Clock, utc_now


logger = structlog.get_logger(__name__)


class LedgerService:
    """
    The ledger engine behind one record store.

    Exposes the core operations as async calls returning result
    objects, plus the ActionExecutor used by the command flow.
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        clock: Clock = utc_now,
    ):
        self._store = store
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or LedgerSettings()

        self.accounts = AccountDirectory(
            store, ttl=timedelta(seconds=self._settings.account_cache_ttl_seconds)
        )
        self.category_directory = CategoryDirectory(
            store, ttl=timedelta(seconds=self._settings.category_cache_ttl_seconds)
        )

        self.recorder = TransactionRecorder(
            store, self.accounts, self.category_directory, self._audit, self._settings, clock
        )
        self.rules = AllocationRuleManager(store, self.accounts, self._audit, self._settings)
        self.income = IncomeSplitter(
            self.rules, self.recorder, self.accounts, self._audit, self._settings, clock
        )
        self.settlement = PaymentSettlementEngine(
            store, self.accounts, self._audit, self._settings, clock
        )
        self.duplicates = DuplicateDetector(
            store, self.accounts, self._audit, self._settings, clock
        )
        self.categories = CategoryService(store, self.category_directory, self._audit)
        self.batch = BatchOrchestrator(self._audit)
        self.executor = ActionExecutor(
            recorder=self.recorder,
            rules=self.rules,
            income=self.income,
            settlement=self.settlement,
            duplicates=self.duplicates,
            categories=self.categories,
            batch=self.batch,
            settings=self._settings,
            clock=clock,
        )

    @property
    def store(self) -> RecordStoreInterface:
        return self._store

    async def ensure_accounts(self) -> dict[str, str]:
        """
        Make sure every account has a record. Returns name -> id.

        Safe to call on every startup; existing records are reused.
        """
        ids = {}
        for account in Account:
            account_id = await self.accounts.resolve_account_id(account.value)
            if account_id is None:
                account_id = await self._store.create_record(
                    Collection.ACCOUNTS, {}, title=account.value
                )
                logger.info("account_created", account=account.value, account_id=account_id)
            ids[account.value] = account_id
        return ids

    async def ensure_categories(self, names: Sequence[str] = FALLBACK_CATEGORIES) -> dict[str, str]:
        """Make sure the given categories have records. Returns name -> id."""
        return {
            name: await self.category_directory.ensure_category(name)
            for name in names
        }

    async def replace_rule(
        self,
        name: str,
        allocations: Sequence[AllocationLike],
        correlation_id: Optional[UUID] = None,
    ) -> RuleReplaceResult:
        return await self.rules.replace_rule(name, allocations, correlation_id=correlation_id)

    async def split_income(
        self,
        gross_amount: Decimal,
        rule_name: Optional[str] = None,
        date: Optional[date_type] = None,
        description: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SplitIncomeResult:
        return await self.income.split_income(
            gross_amount, rule_name, date, description, correlation_id=correlation_id
        )

    async def settle_payment(
        self,
        amount: Decimal,
        source_account: Optional[str] = None,
        destination_account: Optional[str] = None,
        date: Optional[date_type] = None,
        note: Optional[str] = None,
        category: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SettlementResult:
        return await self.settlement.settle_payment(
            amount,
            source_account,
            destination_account,
            date,
            note,
            category,
            correlation_id=correlation_id,
        )

    async def find_recent_duplicate(
        self,
        kind: TransactionType,
        amount: Decimal,
        account_ids: Sequence[str],
        date: date_type,
        window_minutes: Optional[int] = None,
    ) -> DuplicateCheckResult:
        return await self.duplicates.find_recent_duplicate(
            kind, amount, account_ids, date, window_minutes
        )

    async def add_transaction(self, **kwargs) -> TransactionResult:
        return await self.recorder.add_transaction(**kwargs)

    async def add_transactions_batch(
        self,
        transactions: Sequence[dict],
        correlation_id: Optional[UUID] = None,
    ) -> BatchResult:
        """Add many transactions in order; one bad item doesn't stop the rest."""
        return await self.batch.run(
            "add_transaction",
            transactions,
            lambda txn: self.recorder.add_transaction(**txn, correlation_id=correlation_id),
            correlation_id=correlation_id,
        )

    async def execute(
        self,
        action: ParsedAction,
        correlation_id: Optional[UUID] = None,
    ) -> ActionOutcome:
        return await self.executor.execute(action, correlation_id=correlation_id)


class CommandFlow:
    """
    Orchestrates the natural-language command flow.

    CRITICAL BOUNDARIES:
    1. User message -> LLM picks an action (translation only)
    2. Action -> ActionExecutor (deterministic, validated)
    3. Outcome -> returned as structured data

    The LLM is NEVER allowed to write directly.
    """

    def __init__(
        self,
        ledger: LedgerService,
        parser: CommandParser,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger
        self._parser = parser
        self._audit_logger = audit_logger or AuditLogger()

    async def handle_message(
        self,
        message: str,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[ActionOutcome, ParsedAction]:
        """
        Parse and execute one message.

        Returns:
            (outcome, parsed_action)
        """
        correlation_id = correlation_id or create_correlation_id()

        action = await self._parser.parse(message)
        await self._audit_logger.log_command_parsed(
            action=action.action,
            message=message,
            correlation_id=correlation_id,
        )

        outcome = await self._ledger.execute(action, correlation_id=correlation_id)
        return outcome, action


def create_app_components(
    use_storage: bool = True,
    parser: Optional[CommandParser] = None,
) -> tuple[LedgerService, Optional[CommandFlow], Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on an in-memory store.
        parser: Command parser to use. Built from Gemini settings if None.

    Returns:
        (ledger_service, command_flow, sheets_client)
        command_flow is None when Gemini is not configured.
    """
    sheets_client = None
    store: RecordStoreInterface
    audit_logger = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            store = GoogleSheetsRecordStore(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except (ValidationError, StorageError) as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            store = InMemoryRecordStore()
            audit_logger = AuditLogger()  # Local-only logging
    else:
        store = InMemoryRecordStore()
        audit_logger = AuditLogger()  # Local-only logging

    ledger = LedgerService(store, audit_logger=audit_logger)

    command_flow = None
    if parser is None:
        try:
            parser = CommandParser()
        except ValidationError as e:
            logger.warning("command_parser_not_configured", error=str(e))
    if parser is not None:
        command_flow = CommandFlow(ledger, parser, audit_logger=audit_logger)

    return ledger, command_flow, sheets_client
