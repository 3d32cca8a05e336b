"""
Allocation Rule Manager

An allocation rule is a set of rows sharing a name, each row pointing at
a destination account with a percentage. The income splitter reads
them, this module is the only writer.

DESIGN DECISION: Replacement is create-before-archive.
1. Validate everything (non-empty, sum to 1.0, accounts resolve)
2. Write every new row
3. Only then archive the rows they supersede

If step 2 fails part-way, the new rows already written are archived
again (best effort) and the old rows are untouched. Withdrawing them is
what keeps the old definition the one the next split reads. A new row
that can't be archived is reported as orphaned; the next successful
replace archives it. A half-finished replace never leaves a rule with
no rows.
"""

from decimal import Decimal
from typing import Optional, Sequence, Union
from uuid import UUID

import structlog

from jarvis_ledger.audit import AuditLogger
from jarvis_ledger.config.settings import LedgerSettings
from jarvis_ledger.engine.errors import (
    InvalidInputError,
    LedgerError,
    NotFoundError,
    error_from,
    validate_input,
)
from jarvis_ledger.models.ledger import (
    AllocationInput,
    AllocationRow,
    Collection,
    ReplaceRuleInput,
)
from jarvis_ledger.models.results import OperationStatus, RuleReplaceResult
from jarvis_ledger.services.directory import AccountDirectory
from jarvis_ledger.services.storage import RecordStoreInterface, StorageError


logger = structlog.get_logger(__name__)

AllocationLike = Union[AllocationInput, dict]


class AllocationRuleManager:
    """Creates, replaces and reads allocation rules."""

    def __init__(
        self,
        store: RecordStoreInterface,
        accounts: AccountDirectory,
        audit: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._accounts = accounts
        self._audit = audit or AuditLogger()
        self._settings = settings or LedgerSettings()

    async def get_rule(self, name: str) -> list[AllocationRow]:
        """
        Active rows of a rule, oldest first.

        Raises:
            StorageError: If the store can't be queried
        """
        records = await self._store.query_by_title(
            Collection.ALLOCATION_RULES,
            name,
            page_size=self._settings.query_page_size,
        )
        rows = [AllocationRow.from_record(r) for r in records]
        return sorted(rows, key=lambda r: r.created_time)

    async def replace_rule(
        self,
        name: str,
        allocations: Sequence[AllocationLike],
        correlation_id: Optional[UUID] = None,
    ) -> RuleReplaceResult:
        """
        Replace every row of a rule with a new set of allocations.

        Args:
            name: Rule name (e.g. "default")
            allocations: (account, percentage) pairs summing to 1.0
            correlation_id: Groups the audit events of this call

        Returns:
            RuleReplaceResult. FAILED with invalid_input / not_found
            before anything is written; FAILED with upstream_failure if
            new rows could not all be written (old rows stay active);
            PARTIAL if superseded rows could not all be archived.
        """
        try:
            rule = validate_input(ReplaceRuleInput, name=name, allocations=list(allocations))
            account_ids = await self._validate(rule)
        except (LedgerError, StorageError) as e:
            logger.info("rule_replace_rejected", rule_name=name, error=str(e))
            return RuleReplaceResult.failure(error_from(e), rule_name=name)

        created_ids: list[str] = []
        try:
            for allocation, account_id in zip(rule.allocations, account_ids):
                row_id = await self._store.create_record(
                    Collection.ALLOCATION_RULES,
                    {
                        "account": [account_id],
                        "percentage": allocation.percentage,
                    },
                    title=rule.name,
                )
                created_ids.append(row_id)
        except StorageError as e:
            orphaned = await self._withdraw(created_ids)
            await self._audit.log_rule_replace_failed(
                rule_name=rule.name,
                created_ids=orphaned,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return RuleReplaceResult.failure(
                error_from(e),
                rule_name=rule.name,
                created_ids=created_ids,
                unarchived_ids=orphaned,
            )

        return await self._archive_superseded(rule.name, created_ids, correlation_id)

    async def _withdraw(self, created_ids: list[str]) -> list[str]:
        """Archive the rows of an unfinished replace. Returns those still active."""
        orphaned = []
        for row_id in created_ids:
            try:
                await self._store.archive_record(row_id)
            except StorageError as e:
                logger.warning("rule_row_withdraw_failed", row_id=row_id, error=str(e))
                orphaned.append(row_id)
        return orphaned

    async def _validate(self, rule: ReplaceRuleInput) -> list[str]:
        """Check the percentage sum and resolve every destination account."""
        total = sum((a.percentage for a in rule.allocations), Decimal("0"))
        tolerance = Decimal(str(self._settings.percentage_tolerance))
        if abs(total - Decimal("1")) > tolerance:
            raise InvalidInputError(
                f"Allocation percentages must sum to 1.0, got {total}"
            )

        account_ids = []
        for allocation in rule.allocations:
            account_id = await self._accounts.resolve_account_id(allocation.account)
            if account_id is None:
                raise NotFoundError(f"Account not found: '{allocation.account}'")
            account_ids.append(account_id)
        return account_ids

    async def _archive_superseded(
        self,
        name: str,
        created_ids: list[str],
        correlation_id: Optional[UUID],
    ) -> RuleReplaceResult:
        result = RuleReplaceResult(rule_name=name, created_ids=created_ids)

        try:
            active = await self._store.query_by_title(
                Collection.ALLOCATION_RULES,
                name,
                page_size=self._settings.query_page_size,
            )
        except StorageError as e:
            # New rows exist, old ones are still active: both definitions overlap
            await self._audit.log_rule_replace_failed(
                rule_name=name,
                created_ids=created_ids,
                error_message=f"could not list superseded rows: {e}",
                correlation_id=correlation_id,
            )
            result.status = OperationStatus.PARTIAL
            result.error = error_from(e)
            result.message = "New rows written, superseded rows could not be listed"
            return result

        new_ids = set(created_ids)
        for record in active:
            if record.id in new_ids:
                continue
            try:
                await self._store.archive_record(record.id)
                result.archived_ids.append(record.id)
            except StorageError as e:
                result.unarchived_ids.append(record.id)
                await self._audit.log_rule_archive_failed(
                    rule_name=name,
                    row_id=record.id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )

        if result.unarchived_ids:
            result.status = OperationStatus.PARTIAL
            result.message = (
                f"Rule '{name}' replaced, but {len(result.unarchived_ids)} "
                "superseded row(s) are still active"
            )
        else:
            result.message = (
                f"Rule '{name}' set with {len(created_ids)} allocation(s), "
                f"{len(result.archived_ids)} old row(s) archived"
            )
            await self._audit.log_rule_replaced(
                rule_name=name,
                created_ids=created_ids,
                archived_ids=result.archived_ids,
                correlation_id=correlation_id,
            )
        return result
