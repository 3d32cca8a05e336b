"""
Transaction Recorder

Writes single expense and income entries.

Expenses on a credit card are the outstanding balances the settlement
engine later pays down, so they are written with a funding account,
cleared=False and paid_amount=0. Expenses on any other account are
settled the moment they happen and carry none of that.

Income entries written by the income splitter carry the split context
(pre_breakdown = gross amount, budget = rule name, percentage).
"""

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
    TransactionInput,
    TransactionType,
    default_funding_account,
    is_credit_card_account,
    is_funding_account,
    normalize_account_name,
    to_money,
)
from jarvis_ledger.models.results import TransactionResult
from jarvis_ledger.services.directory import AccountDirectory, CategoryDirectory
from jarvis_ledger.services.storage import RecordStoreInterface, StorageError
from jarvis_ledger.services.storage.cache import Clock, utc_now


logger = structlog.get_logger(__name__)


def expense_title(amount: Decimal, category: str, account: str) -> str:
    return f"expense ${to_money(amount)} {category} ({account})"


def income_title(amount: Decimal, account: str, memo: Optional[str] = None) -> str:
    if memo:
        return f"{memo} ${to_money(amount)} ({account})"
    return f"income ${to_money(amount)} ({account})"


class TransactionRecorder:
    """Records expense and income entries."""

    def __init__(
        self,
        store: RecordStoreInterface,
        accounts: AccountDirectory,
        categories: CategoryDirectory,
        audit: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        clock: Clock = utc_now,
    ):
        self._store = store
        self._accounts = accounts
        self._categories = categories
        self._audit = audit or AuditLogger()
        self._settings = settings or LedgerSettings()
        self._clock = clock

    async def add_transaction(
        self,
        amount: Decimal,
        transaction_type: TransactionType = TransactionType.EXPENSE,
        account: Optional[str] = None,
        category: Optional[str] = None,
        date: Optional[date_type] = None,
        note: Optional[str] = None,
        funding_account: Optional[str] = None,
        pre_breakdown: Optional[Decimal] = None,
        budget: Optional[str] = None,
        percentage: Optional[Decimal] = None,
        memo: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> TransactionResult:
        """
        Add a single expense or income entry.

        Payments are not transactions here; they go through the
        settlement engine because they move money between balances.
        """
        try:
            txn = validate_input(
                TransactionInput,
                amount=amount,
                transaction_type=transaction_type,
                account=account,
                category=category,
                date=date,
                note=note,
                funding_account=funding_account,
                pre_breakdown=pre_breakdown,
                budget=budget,
                percentage=percentage,
                memo=memo,
            )
            if txn.transaction_type == TransactionType.EXPENSE:
                result = await self._add_expense(txn)
            elif txn.transaction_type == TransactionType.INCOME:
                result = await self._add_income(txn)
            else:
                raise InvalidInputError(
                    "Payments are recorded with settle_payment, not add_transaction"
                )
        except (LedgerError, StorageError) as e:
            logger.info("transaction_rejected", error=str(e))
            return TransactionResult.failure(error_from(e))

        await self._audit.log_transaction_added(
            transaction_id=result.transaction_id,
            transaction_type=result.transaction_type.value,
            amount=str(result.amount),
            account=result.account,
            correlation_id=correlation_id,
        )
        return result

    async def record_income(
        self,
        amount: Decimal,
        account_id: str,
        account_name: str,
        date: date_type,
        note: Optional[str] = None,
        pre_breakdown: Optional[Decimal] = None,
        budget: Optional[str] = None,
        percentage: Optional[Decimal] = None,
        memo: Optional[str] = None,
    ) -> str:
        """
        Write one income row for an already-resolved account.

        Returns:
            The new income record's id

        Raises:
            StorageError: If the write fails
        """
        amount = to_money(amount)
        fields = {
            "amount": amount,
            "date": date,
            "accounts": [account_id],
            "pre_breakdown": to_money(pre_breakdown) if pre_breakdown is not None else amount,
            "percentage": percentage if percentage is not None else Decimal("1"),
        }
        if budget:
            fields["budget"] = budget
        if note:
            fields["note"] = note
        return await self._store.create_record(
            Collection.INCOME,
            fields,
            title=income_title(amount, account_name, memo),
        )

    async def _resolve(self, name: str) -> str:
        account_id = await self._accounts.resolve_account_id(name)
        if account_id is None:
            raise NotFoundError(f"Account not found: '{name}'")
        return account_id

    async def _add_expense(self, txn: TransactionInput) -> TransactionResult:
        account = normalize_account_name(txn.account or self._settings.default_expense_account)
        account_id = await self._resolve(account)
        category = await self._categories.validate_category(txn.category)

        fields = {
            "amount": to_money(txn.amount),
            "date": txn.date or self._clock().date(),
            "accounts": [account_id],
        }
        if txn.note:
            fields["note"] = txn.note

        if is_credit_card_account(account):
            funding = normalize_account_name(
                txn.funding_account or default_funding_account(category).value
            )
            if not is_funding_account(funding):
                raise InvalidInputError(f"'{funding}' cannot fund a credit card expense")
            fields["funding_account"] = [await self._resolve(funding)]
            fields["cleared"] = False
            fields["paid_amount"] = Decimal("0")

        # Category linking happens last so a rejected input creates nothing
        fields["category"] = [await self._categories.ensure_category(category)]

        transaction_id = await self._store.create_record(
            Collection.EXPENSES,
            fields,
            title=expense_title(txn.amount, category, account),
        )
        return TransactionResult(
            transaction_id=transaction_id,
            transaction_type=TransactionType.EXPENSE,
            amount=to_money(txn.amount),
            account=account,
            category=category,
            message=f"Recorded expense of ${to_money(txn.amount)} ({category}) on {account}",
        )

    async def _add_income(self, txn: TransactionInput) -> TransactionResult:
        account = normalize_account_name(txn.account or self._settings.default_income_account)
        account_id = await self._resolve(account)

        transaction_id = await self.record_income(
            amount=txn.amount,
            account_id=account_id,
            account_name=account,
            date=txn.date or self._clock().date(),
            note=txn.note,
            pre_breakdown=txn.pre_breakdown,
            budget=txn.budget,
            percentage=txn.percentage,
            memo=txn.memo,
        )
        return TransactionResult(
            transaction_id=transaction_id,
            transaction_type=TransactionType.INCOME,
            amount=to_money(txn.amount),
            account=account,
            message=f"Recorded income of ${to_money(txn.amount)} to {account}",
        )
