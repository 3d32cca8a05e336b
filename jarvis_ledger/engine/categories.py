"""
Category Service

Listing categories, finding expenses that still need one, and
re-categorizing expenses. Expenses recorded without a usable category
land in "other"; this is how they get fixed afterwards.
"""

from typing import Optional
from uuid import UUID

import structlog

from jarvis_ledger.audit import AuditLogger
from jarvis_ledger.engine.errors import LedgerError, NotFoundError, error_from
from jarvis_ledger.models.ledger import UNCATEGORIZED, Collection
from jarvis_ledger.models.record import CREATED_TIME, FieldFilter, SortKey
from jarvis_ledger.models.results import (
    CategoryListResult,
    CategoryUpdateResult,
    UncategorizedExpense,
    UncategorizedExpensesResult,
)
from jarvis_ledger.services.directory import CategoryDirectory
from jarvis_ledger.services.storage import RecordStoreInterface, StorageError


logger = structlog.get_logger(__name__)

UNCATEGORIZED_LIMIT = 50


class CategoryService:
    """Category reads and expense re-categorization."""

    def __init__(
        self,
        store: RecordStoreInterface,
        categories: CategoryDirectory,
        audit: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._categories = categories
        self._audit = audit or AuditLogger()

    async def get_categories(self) -> CategoryListResult:
        categories = await self._categories.get_categories()
        return CategoryListResult(
            categories=categories,
            message=f"{len(categories)} categories",
        )

    async def get_uncategorized_expenses(self) -> UncategorizedExpensesResult:
        """Expenses filed under "other", newest first."""
        try:
            other_id = await self._categories.ensure_category(UNCATEGORIZED)
            records = await self._store.query(
                Collection.EXPENSES,
                filters=[FieldFilter.contains("category", other_id)],
                sorts=[SortKey(property=CREATED_TIME, descending=True)],
                page_size=UNCATEGORIZED_LIMIT,
            )
        except StorageError as e:
            return UncategorizedExpensesResult.failure(error_from(e))

        expenses = [
            UncategorizedExpense(
                id=r.id,
                amount=r.number("amount") or 0,
                note=r.text("note") or r.title,
                date=r.day("date"),
            )
            for r in records
        ]
        return UncategorizedExpensesResult(
            expenses=expenses,
            message=f"{len(expenses)} uncategorized expense(s)",
        )

    async def update_expense_category(
        self,
        expense_id: str,
        category: str,
        correlation_id: Optional[UUID] = None,
    ) -> CategoryUpdateResult:
        """
        Point an expense at a category.

        Unknown category names fall back to "other", same as when the
        expense was first recorded.
        """
        try:
            record = await self._store.retrieve_record(expense_id)
            if record.collection != Collection.EXPENSES.value or record.archived:
                raise NotFoundError(f"Expense not found: {expense_id}")
            name = await self._categories.validate_category(category)
            category_id = await self._categories.ensure_category(name)
            await self._store.update_record(expense_id, {"category": [category_id]})
        except (LedgerError, StorageError) as e:
            return CategoryUpdateResult.failure(error_from(e), expense_id=expense_id)

        await self._audit.log_category_updated(
            expense_id=expense_id,
            category=name,
            correlation_id=correlation_id,
        )
        return CategoryUpdateResult(
            expense_id=expense_id,
            category=name,
            message=f"Expense {expense_id} categorized as '{name}'",
        )

    async def update_last_expense_category(
        self,
        category: str,
        correlation_id: Optional[UUID] = None,
    ) -> CategoryUpdateResult:
        """Re-categorize the most recently created expense."""
        try:
            latest = await self._store.query(
                Collection.EXPENSES,
                sorts=[SortKey(property=CREATED_TIME, descending=True)],
                page_size=1,
            )
        except StorageError as e:
            return CategoryUpdateResult.failure(error_from(e))
        if not latest:
            return CategoryUpdateResult.failure(
                NotFoundError("No expenses recorded yet").to_error()
            )
        return await self.update_expense_category(latest[0].id, category, correlation_id)
