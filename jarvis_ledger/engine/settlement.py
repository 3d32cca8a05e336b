"""
Payment Settlement Engine

Records a credit card payment and pays down the card's outstanding
balances with it, oldest obligation first.

Order of operations:
1. Create the payment record, unconditionally. Money moved, so it is
   recorded even if there turns out to be nothing to apply it to.
2. Find uncleared expenses on the destination card funded from the
   source account, ordered by date, then creation time.
3. Walk them with the remaining amount. A balance that fits entirely is
   fully settled; the first one that doesn't fit is partially settled
   and the walk ends there.
4. Link the touched balances to the payment in one update.

DESIGN DECISION: No rollback. The store has no multi-record transactions,
so a failed write stops the walk and everything already written stays,
reported as a PARTIAL result. The walk never skips past a balance it
failed to update, otherwise a younger balance would get paid before an
older one.

Concurrent settlements against the same card in one process are
serialized with a per-card lock around steps 2-4.
"""

import asyncio
from collections import defaultdict
from datetime import date as date_type
from decimal import Decimal
from typing import Optional
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
    Collection,
    OutstandingBalance,
    PaymentInput,
    is_credit_card_account,
    is_funding_account,
    is_known_account,
    normalize_account_name,
    to_money,
)
from jarvis_ledger.models.record import CREATED_TIME, FieldFilter, SortKey
from jarvis_ledger.models.results import (
    AppliedBalance,
    OperationStatus,
    SettlementResult,
)
from jarvis_ledger.services.directory import AccountDirectory
from jarvis_ledger.services.storage import RecordStoreInterface, StorageError
from jarvis_ledger.services.storage.cache import Clock, utc_now


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


def payment_title(amount: Decimal, from_account: str, to_account: str) -> str:
    return f"payment ${to_money(amount)} {from_account} -> {to_account}"


class PaymentSettlementEngine:
    """Records payments and settles outstanding balances FIFO."""

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
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

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
        """
        Record a payment from a funding account to a credit card and settle balances.

        Args:
            amount: Payment amount, must be positive
            source_account: Funding account (defaults to checkings)
            destination_account: Credit card (defaults to sapphire)
            date: Payment date, defaults to today
            note: Optional note stored on the payment
            category: Optional category label stored on the payment

        Returns:
            SettlementResult. cleared_total + remaining_unapplied always
            equals the payment amount.
        """
        try:
            payment = validate_input(
                PaymentInput,
                amount=amount,
                from_account=source_account,
                to_account=destination_account,
                date=date,
                note=note,
                category=category,
            )
            source = normalize_account_name(payment.from_account or self._settings.default_funding_account)
            destination = normalize_account_name(payment.to_account or self._settings.default_credit_account)
            source_id, destination_id = await self._resolve_pair(source, destination)
        except (LedgerError, StorageError) as e:
            logger.info("payment_rejected", error=str(e))
            return SettlementResult.failure(error_from(e), amount=ZERO)

        payment_amount = to_money(payment.amount)
        payment_date = payment.date or self._clock().date()

        # Step 1: the payment exists before any balance is touched
        fields = {
            "amount": payment_amount,
            "date": payment_date,
            "from_account": [source_id],
            "to_account": [destination_id],
            "cleared_expenses": [],
        }
        if payment.note:
            fields["note"] = payment.note
        if payment.category:
            fields["category"] = payment.category.lower()
        try:
            payment_id = await self._store.create_record(
                Collection.PAYMENTS,
                fields,
                title=payment_title(payment_amount, source, destination),
            )
        except StorageError as e:
            return SettlementResult.failure(error_from(e), amount=payment_amount)

        await self._audit.log_payment_recorded(
            payment_id=payment_id,
            amount=str(payment_amount),
            from_account=source,
            to_account=destination,
            correlation_id=correlation_id,
        )

        result = SettlementResult(
            payment_id=payment_id,
            amount=payment_amount,
            remaining_unapplied=payment_amount,
        )
        async with self._locks[destination_id]:
            await self._settle(result, source_id, destination_id, correlation_id)

        result.cleared_total = payment_amount - result.remaining_unapplied
        if result.status != OperationStatus.PARTIAL:
            result.message = (
                f"Created payment of ${payment_amount}. Cleared {len(result.applied)} "
                f"expense(s) totaling ${result.cleared_total}. "
                f"Remaining unapplied: ${result.remaining_unapplied}."
            )
        return result

    async def _resolve_pair(self, source: str, destination: str) -> tuple[str, str]:
        for name in (source, destination):
            if not is_known_account(name):
                raise NotFoundError(f"Account not found: '{name}'")
        if not is_funding_account(source):
            raise InvalidInputError(f"'{source}' is not a funding account")
        if not is_credit_card_account(destination):
            raise InvalidInputError(f"'{destination}' is not a credit card")

        ids = []
        for name in (source, destination):
            account_id = await self._accounts.resolve_account_id(name)
            if account_id is None:
                raise NotFoundError(f"Account not found: '{name}'")
            ids.append(account_id)
        return ids[0], ids[1]

    async def _outstanding(self, source_id: str, destination_id: str) -> list[OutstandingBalance]:
        """Step 2: uncleared balances, oldest obligation first."""
        records = await self._store.query(
            Collection.EXPENSES,
            filters=[
                FieldFilter.contains("accounts", destination_id),
                FieldFilter.contains("funding_account", source_id),
                FieldFilter.equals("cleared", False),
            ],
            sorts=[
                SortKey(property="date"),
                SortKey(property=CREATED_TIME),
            ],
            page_size=self._settings.query_page_size,
        )
        return [OutstandingBalance.from_record(r) for r in records]

    async def _settle(
        self,
        result: SettlementResult,
        source_id: str,
        destination_id: str,
        correlation_id: Optional[UUID],
    ) -> None:
        payment_id = result.payment_id

        try:
            candidates = await self._outstanding(source_id, destination_id)
        except StorageError as e:
            await self._write_failed(result, payment_id, e, correlation_id)
            return

        # Step 3: greedy FIFO walk
        remaining = result.remaining_unapplied
        for balance in candidates:
            if remaining <= ZERO:
                break
            owed = balance.owed
            if owed <= ZERO:
                continue

            fully_settled = remaining >= owed
            applied_amount = owed if fully_settled else remaining
            update = {
                "paid_amount": balance.amount if fully_settled else balance.paid_amount + remaining,
                "cleared": fully_settled,
                "cleared_by": balance.cleared_by + [payment_id],
            }
            if balance.owed_amount is not None:
                update["owed_amount"] = owed - applied_amount

            try:
                await self._store.update_record(balance.id, update)
            except StorageError as e:
                result.failed_balance_ids.append(balance.id)
                await self._write_failed(result, balance.id, e, correlation_id)
                break

            if fully_settled:
                note = balance.note
            else:
                note = f"{balance.note or 'expense'} (partial: ${remaining} of ${balance.amount})"
            result.applied.append(AppliedBalance(
                balance_id=balance.id,
                amount_applied=applied_amount,
                fully_settled=fully_settled,
                note=note,
            ))
            remaining -= applied_amount
            result.remaining_unapplied = remaining
            await self._audit.log_balance_settled(
                balance_id=balance.id,
                payment_id=payment_id,
                amount_applied=str(applied_amount),
                fully_settled=fully_settled,
                correlation_id=correlation_id,
            )

            # A partial settlement consumes the rest of the payment
            if not fully_settled:
                break

        # Step 4: one update linking every touched balance
        if result.applied:
            try:
                await self._store.update_record(
                    payment_id,
                    {"cleared_expenses": result.touched_ids},
                )
            except StorageError as e:
                await self._write_failed(result, payment_id, e, correlation_id)

    async def _write_failed(
        self,
        result: SettlementResult,
        record_id: str,
        exc: StorageError,
        correlation_id: Optional[UUID],
    ) -> None:
        await self._audit.log_settlement_write_failed(
            record_id=record_id,
            payment_id=result.payment_id,
            error_message=str(exc),
            correlation_id=correlation_id,
        )
        result.status = OperationStatus.PARTIAL
        if result.error is None:
            result.error = error_from(exc)
            result.message = (
                f"Payment {result.payment_id} recorded, settlement incomplete: {exc}"
            )
