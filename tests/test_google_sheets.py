"""
Tests for the Google Sheets record store and audit storage.

gspread is replaced by in-memory worksheets with the same methods; no
real API calls are made.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from jarvis_ledger.audit import AuditLogger
from jarvis_ledger.config.settings import LedgerSettings
from jarvis_ledger.models.audit import AuditEventBuilder
from jarvis_ledger.models.ledger import Collection
from jarvis_ledger.models.record import FieldFilter
from jarvis_ledger.models.results import OperationStatus
from jarvis_ledger.orchestrator import LedgerService
from jarvis_ledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsRecordStore,
    RecordNotFoundError,
)
from jarvis_ledger.services.storage.google_sheets import AUDIT_COLUMNS, RECORD_COLUMNS

from tests.conftest import add_card_expense


class FakeWorksheet:
    """The subset of gspread.Worksheet the storage layer uses."""

    def __init__(self, header: list[str]):
        self.rows: list[list[str]] = [list(header)]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def update_cell(self, row: int, col: int, value):
        self.rows[row - 1][col - 1] = str(value)


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient, one worksheet per collection."""

    def __init__(self):
        self.sheets = {c: FakeWorksheet(RECORD_COLUMNS) for c in Collection}
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_collection_sheet(self, collection):
        return self.sheets[Collection(collection)]

    def get_audit_sheet(self):
        return self.audit


@pytest.fixture
def sheets():
    return FakeSheetsClient()


@pytest.fixture
def sheets_store(sheets, clock):
    return GoogleSheetsRecordStore(client=sheets, clock=clock)


class TestGoogleSheetsRecordStore:
    """Tests for the row layout and record operations."""

    async def test_create_appends_row(self, sheets_store, sheets, clock):
        """Test the column layout of a new record."""
        record_id = await sheets_store.create_record(
            Collection.EXPENSES,
            {"amount": Decimal("12.34"), "cleared": False},
            title="expense $12.34",
        )
        row = sheets.sheets[Collection.EXPENSES].rows[1]
        assert row[0] == record_id
        assert row[1] == clock.now.isoformat()
        assert row[2] == "FALSE"
        assert row[3] == "expense $12.34"
        assert '"amount": "12.34"' in row[4]

    async def test_query_update_and_archive(self, sheets_store):
        """Test that updates merge fields and archived rows disappear."""
        keep = await sheets_store.create_record(Collection.EXPENSES, {"amount": "5", "note": "tea"})
        gone = await sheets_store.create_record(Collection.EXPENSES, {"amount": "5"})

        await sheets_store.update_record(keep, {"note": "coffee"})
        await sheets_store.archive_record(gone)

        records = await sheets_store.query(
            Collection.EXPENSES, filters=[FieldFilter.equals("amount", Decimal("5"))]
        )
        assert [r.id for r in records] == [keep]
        assert records[0].text("note") == "coffee"
        assert records[0].number("amount") == Decimal("5")

    async def test_retrieve_finds_record_in_any_sheet(self, sheets, clock):
        """Test lookups by a store that didn't create the record."""
        writer = GoogleSheetsRecordStore(client=sheets, clock=clock)
        record_id = await writer.create_record(Collection.PAYMENTS, {"amount": "80"})

        reader = GoogleSheetsRecordStore(client=sheets, clock=clock)
        record = await reader.retrieve_record(record_id)
        assert record.collection == "payments"

    async def test_missing_record(self, sheets_store):
        """Test that unknown ids raise RecordNotFoundError."""
        with pytest.raises(RecordNotFoundError):
            await sheets_store.retrieve_record("nope")

    async def test_malformed_rows_are_skipped(self, sheets_store, sheets):
        """Test that hand-edited broken rows don't break queries."""
        good = await sheets_store.create_record(Collection.ACCOUNTS, {}, title="checkings")
        sheets.sheets[Collection.ACCOUNTS].rows.append(["bad", "not-a-date", "FALSE", "bills", ""])
        sheets.sheets[Collection.ACCOUNTS].rows.append(["", "", "", "", ""])

        records = await sheets_store.query(Collection.ACCOUNTS)
        assert [r.id for r in records] == [good]

    async def test_settlement_end_to_end(self, sheets_store, clock):
        """Test a settlement walk against the sheets layout."""
        ledger = LedgerService(
            sheets_store,
            settings=LedgerSettings(_env_file=None),
            clock=clock,
        )
        await ledger.ensure_accounts()
        b30 = await add_card_expense(ledger, clock, "30", "2026-02-01")
        await add_card_expense(ledger, clock, "50", "2026-02-05")

        result = await ledger.settle_payment(Decimal("70"), "checkings", "sapphire")

        assert result.status == OperationStatus.SUCCEEDED
        assert result.cleared_total == Decimal("70.00")
        settled = await sheets_store.retrieve_record(b30)
        assert settled.flag("cleared") is True
        assert settled.relation("cleared_by") == [result.payment_id]


class TestGoogleSheetsAuditStorage:
    """Tests for the audit worksheet."""

    async def test_events_by_correlation_id(self, sheets):
        """Test appending events and reading them back by correlation."""
        storage = GoogleSheetsAuditStorage(client=sheets)
        correlation_id = uuid4()
        logger = AuditLogger(storage)

        await logger.log(AuditEventBuilder.payment_recorded(
            "p1", "70.00", "checkings", "sapphire", correlation_id=correlation_id,
        ))
        await logger.log(AuditEventBuilder.balance_settled(
            "e1", "p1", "30.00", True, correlation_id=correlation_id,
        ))
        await logger.log(AuditEventBuilder.payment_recorded(
            "p2", "5.00", "checkings", "sapphire",
        ))

        events = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.entity_id for e in events] == ["p1", "e1"]
        assert events[1].details["fully_settled"] is True
        assert events[0].is_user_action is True
