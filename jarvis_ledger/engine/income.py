"""
Income Splitter

Splits a gross income (e.g. a paycheck) across the destination accounts
of an allocation rule and writes one income entry per destination.

Every entry carries the gross amount (pre_breakdown) and the rule name
(budget), so sibling entries of one paycheck can be found again.

DESIGN DECISION: Rounding is per entry, half-up to cents, and rounding
residue is NOT redistributed. The sum of the entries can differ from
the gross amount by at most 0.005 per entry.
"""

from datetime import date as date_type
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from jarvis_ledger.audit import AuditLogger
from jarvis_ledger.config.settings import LedgerSettings
from jarvis_ledger.engine.errors import (
    LedgerError,
    NotFoundError,
    error_from,
    validate_input,
)
from jarvis_ledger.engine.rules import AllocationRuleManager
from jarvis_ledger.engine.transactions import TransactionRecorder
from jarvis_ledger.models.ledger import SplitIncomeInput, to_money
from jarvis_ledger.models.results import (
    OperationStatus,
    SplitEntry,
    SplitIncomeResult,
)
from jarvis_ledger.services.directory import AccountDirectory
from jarvis_ledger.services.storage import RecordNotFoundError, StorageError
from jarvis_ledger.services.storage.cache import Clock, utc_now


logger = structlog.get_logger(__name__)


class IncomeSplitter:
    """Splits income by allocation rule."""

    def __init__(
        self,
        rules: AllocationRuleManager,
        recorder: TransactionRecorder,
        accounts: AccountDirectory,
        audit: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        clock: Clock = utc_now,
    ):
        self._rules = rules
        self._recorder = recorder
        self._accounts = accounts
        self._audit = audit or AuditLogger()
        self._settings = settings or LedgerSettings()
        self._clock = clock

    async def split_income(
        self,
        gross_amount: Decimal,
        rule_name: Optional[str] = None,
        date: Optional[date_type] = None,
        description: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SplitIncomeResult:
        """
        Split a gross amount across a rule's destination accounts.

        Args:
            gross_amount: Amount before the split, must be positive
            rule_name: Allocation rule, defaults to the configured default rule
            date: Calendar date of the income, defaults to today
            description: Optional memo used in each entry's title

        Returns:
            SplitIncomeResult with one entry per valid rule row. Entry
            failures don't stop sibling entries; the result is PARTIAL
            when any entry failed.
        """
        try:
            request = validate_input(
                SplitIncomeInput,
                gross_amount=gross_amount,
                rule_name=rule_name,
                date=date,
                description=description,
            )
            name = request.rule_name or self._settings.default_rule_name
            rows = await self._rules.get_rule(name)
            if not rows:
                raise NotFoundError(f"No allocation rule named '{name}'")
        except (LedgerError, StorageError) as e:
            logger.info("income_split_rejected", rule_name=rule_name, error=str(e))
            return SplitIncomeResult.failure(error_from(e), rule_name=rule_name or "")

        split_date = request.date or self._clock().date()
        gross = request.gross_amount
        result = SplitIncomeResult(gross_amount=gross, rule_name=name, date=split_date)

        for row in rows:
            # Partially migrated rules may have blank rows; skip them
            if row.percentage <= 0 or not row.account_id:
                result.skipped_row_ids.append(row.id)
                continue

            try:
                account = await self._accounts.account_name(row.account_id)
            except RecordNotFoundError:
                result.skipped_row_ids.append(row.id)
                continue
            except StorageError as e:
                account, error = "", error_from(e)
            else:
                error = None

            entry = SplitEntry(
                account=account,
                account_id=row.account_id,
                percentage=row.percentage,
                amount=to_money(gross * row.percentage),
                gross_amount=gross,
                rule_name=name,
                date=split_date,
                error=error,
            )
            if entry.error is None:
                try:
                    entry.transaction_id = await self._recorder.record_income(
                        amount=entry.amount,
                        account_id=row.account_id,
                        account_name=account,
                        date=split_date,
                        pre_breakdown=gross,
                        budget=name,
                        percentage=row.percentage,
                        memo=request.description,
                    )
                except StorageError as e:
                    entry.error = error_from(e)
            result.entries.append(entry)

        failed = [e for e in result.entries if not e.succeeded]
        if failed:
            result.status = OperationStatus.PARTIAL
            result.error = failed[0].error
        result.message = (
            f"Split ${gross} using '{name}' into "
            f"{len(result.entries) - len(failed)} of {len(result.entries)} entries"
        )

        await self._audit.log_income_split(
            rule_name=name,
            gross_amount=str(gross),
            entry_count=len(result.entries),
            failed_count=len(failed),
            correlation_id=correlation_id,
        )
        return result
