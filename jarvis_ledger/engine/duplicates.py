"""
Duplicate Detector

Decides whether an equivalent entry was created a moment ago, typically
because the same message was sent twice or the LLM repeated an action.

A record is a duplicate when ALL of these hold:
- same amount, to the cent
- same calendar date
- same account(s): the accounts relation for expenses and income,
  from_account AND to_account for payments
- created inside the trailing window (default 5 minutes)

DESIGN DECISION: The detector is advisory and fails open. If the query
errors, the caller is told "no duplicate" (checked=False) and proceeds;
blocking legitimate writes because the detector is unavailable is worse
than the occasional double entry. Deployments that prefer strictness
set LEDGER_DUPLICATE_FAIL_OPEN=false.
"""

from datetime import date as date_type
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence
from uuid import UUID

import structlog

from jarvis_ledger.audit import AuditLogger
from jarvis_ledger.config.settings import LedgerSettings
from jarvis_ledger.engine.errors import InvalidInputError, error_from
from jarvis_ledger.models.ledger import Collection, TransactionType, to_money
from jarvis_ledger.models.record import CREATED_TIME, FieldFilter, SortKey
from jarvis_ledger.models.results import (
    DuplicateCheckResult,
    DuplicateMatch,
)
from jarvis_ledger.services.directory import AccountDirectory
from jarvis_ledger.services.storage import RecordStoreInterface, StorageError
from jarvis_ledger.services.storage.cache import Clock, utc_now


logger = structlog.get_logger(__name__)

_COLLECTIONS = {
    TransactionType.EXPENSE: Collection.EXPENSES,
    TransactionType.INCOME: Collection.INCOME,
    TransactionType.PAYMENT: Collection.PAYMENTS,
}


def _transaction_type(kind) -> TransactionType:
    try:
        return TransactionType(kind)
    except ValueError:
        raise InvalidInputError(f"Unknown transaction type '{kind}'")


def _match_amount(amount) -> Decimal:
    """Stored amounts are cents; floats go through str so 12.34 stays 12.34."""
    try:
        return to_money(Decimal(str(amount)))
    except InvalidOperation:
        raise InvalidInputError(f"Invalid amount '{amount}'")


def _relation_filters(kind: TransactionType, account_ids: Sequence[str]) -> list[FieldFilter]:
    if kind == TransactionType.PAYMENT:
        if len(account_ids) != 2:
            raise InvalidInputError("Payment duplicate checks need a source and a destination account")
        source, destination = account_ids
        return [
            FieldFilter.contains("from_account", source),
            FieldFilter.contains("to_account", destination),
        ]
    if len(account_ids) != 1:
        raise InvalidInputError(f"{kind.value} duplicate checks need exactly one account")
    return [FieldFilter.contains("accounts", account_ids[0])]


class DuplicateDetector:
    """Finds recently created look-alike entries."""

    def __init__(
        self,
        store: RecordStoreInterface,
        accounts: AccountDirectory,
        audit: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        clock: Clock = utc_now,
    ):
        self._store = store
        self._accounts = accounts
        self._audit = audit or AuditLogger()
        self._settings = settings or LedgerSettings()
        self._clock = clock

    async def find_recent_duplicate(
        self,
        kind: TransactionType,
        amount: Decimal,
        account_ids: Sequence[str],
        date: date_type,
        window_minutes: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> DuplicateCheckResult:
        """
        Look for an entry matching (amount, accounts, date) created within the window.

        Args:
            kind: expense / income (one account id) or payment (source, destination)
            amount: Exact amount to match
            account_ids: Record ids of the account(s)
            date: Calendar date to match
            window_minutes: Trailing window, defaults to the configured one

        Returns:
            DuplicateCheckResult; duplicate is the most recently created
            match, or None.
        """
        try:
            kind = _transaction_type(kind)
            amount = _match_amount(amount)
            relation_filters = _relation_filters(kind, account_ids)
        except InvalidInputError as e:
            return DuplicateCheckResult.failure(e.to_error(), checked=False)

        window = self._settings.duplicate_window_minutes if window_minutes is None else window_minutes
        since = self._clock() - timedelta(minutes=window)
        filters = [
            FieldFilter.equals("amount", amount),
            FieldFilter.equals("date", date),
            *relation_filters,
            FieldFilter.on_or_after(CREATED_TIME, since),
        ]

        try:
            records = await self._store.query(
                _COLLECTIONS[kind],
                filters=filters,
                sorts=[SortKey(property=CREATED_TIME, descending=True)],
                page_size=1,
            )
        except StorageError as e:
            return await self._degraded(kind, e, correlation_id)

        if not records:
            return DuplicateCheckResult()

        match = records[0]
        duplicate = DuplicateMatch(
            record_id=match.id,
            kind=kind,
            title=match.title,
            amount=match.number("amount") or amount,
            date=match.day("date"),
            created_time=match.created_time,
        )
        await self._audit.log_duplicate_detected(
            kind=kind.value,
            duplicate_id=match.id,
            amount=str(duplicate.amount),
            correlation_id=correlation_id,
        )
        return DuplicateCheckResult(
            duplicate=duplicate,
            message=f"Possible duplicate of '{match.title}' created at {match.created_time.isoformat()}",
        )

    async def check_by_names(
        self,
        kind: TransactionType,
        amount: Decimal,
        account_names: Sequence[str],
        date: date_type,
        correlation_id: Optional[UUID] = None,
    ) -> DuplicateCheckResult:
        """
        Same check, starting from account names.

        An account that doesn't resolve can't have matching entries, so
        that is simply "no duplicate"; the write itself will report it.
        """
        try:
            kind = _transaction_type(kind)
        except InvalidInputError as e:
            return DuplicateCheckResult.failure(e.to_error(), checked=False)

        account_ids = []
        try:
            for name in account_names:
                account_id = await self._accounts.resolve_account_id(name)
                if account_id is None:
                    return DuplicateCheckResult()
                account_ids.append(account_id)
        except StorageError as e:
            return await self._degraded(kind, e, correlation_id)

        return await self.find_recent_duplicate(
            kind,
            amount,
            account_ids,
            date,
            correlation_id=correlation_id,
        )

    async def _degraded(
        self,
        kind: TransactionType,
        exc: StorageError,
        correlation_id: Optional[UUID],
    ) -> DuplicateCheckResult:
        await self._audit.log_duplicate_check_degraded(
            kind=kind.value,
            error_message=str(exc),
            correlation_id=correlation_id,
        )
        if self._settings.duplicate_fail_open:
            return DuplicateCheckResult(
                checked=False,
                message="Duplicate check unavailable; treated as no duplicate",
            )
        return DuplicateCheckResult.failure(error_from(exc), checked=False)
