"""
Shared fixtures.

Every test runs against the in-memory record store with a fake clock,
so TTLs and duplicate windows are tested by moving time, not sleeping.
Failures are injected by subclassing the store.
"""

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from jarvis_ledger.audit import AuditLogger
from jarvis_ledger.config.settings import LedgerSettings
from jarvis_ledger.models.ledger import Collection, TransactionType
from jarvis_ledger.orchestrator import LedgerService
from jarvis_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryRecordStore,
    StorageError,
)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FailingStore(InMemoryRecordStore):
    """In-memory store that fails chosen operations with StorageError."""

    def __init__(self, clock):
        super().__init__(clock=clock)
        self._create_counts: dict[str, int] = defaultdict(int)
        self._create_failures: dict[str, set[int]] = defaultdict(set)
        self.failing_updates: set[str] = set()
        self.failing_archives: set[str] = set()
        self.fail_every_archive = False
        self.failing_queries: set[str] = set()
        self.query_count = 0

    def fail_nth_create(self, collection: Collection, n: int) -> None:
        """Fail the n-th create in a collection, counting from now."""
        name = Collection(collection).value
        self._create_failures[name].add(self._create_counts[name] + n)

    async def create_record(self, collection, fields, title=""):
        name = Collection(collection).value
        self._create_counts[name] += 1
        if self._create_counts[name] in self._create_failures[name]:
            raise StorageError(f"injected create failure in {name}")
        return await super().create_record(collection, fields, title)

    async def update_record(self, record_id, fields):
        if record_id in self.failing_updates:
            raise StorageError(f"injected update failure for {record_id}")
        return await super().update_record(record_id, fields)

    async def archive_record(self, record_id):
        if self.fail_every_archive or record_id in self.failing_archives:
            raise StorageError(f"injected archive failure for {record_id}")
        return await super().archive_record(record_id)

    async def query(self, collection, filters=None, sorts=None, page_size=100):
        self.query_count += 1
        if Collection(collection).value in self.failing_queries:
            raise StorageError(f"injected query failure in {Collection(collection).value}")
        return await super().query(collection, filters, sorts, page_size)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 15, 30, tzinfo=timezone.utc))


@pytest.fixture
def settings():
    return LedgerSettings(_env_file=None)


@pytest.fixture
def store(clock):
    return FailingStore(clock)


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def ledger(store, audit_storage, settings, clock):
    return LedgerService(
        store,
        audit_logger=AuditLogger(audit_storage),
        settings=settings,
        clock=clock,
    )


@pytest.fixture
async def accounts(ledger):
    """Account name -> record id, for every account."""
    return await ledger.ensure_accounts()


async def add_card_expense(
    ledger: LedgerService,
    clock: FakeClock,
    amount: str,
    date: str,
    card: str = "sapphire",
    funding: str = "checkings",
    note: str = None,
) -> str:
    """Record a credit card expense and move the clock one second."""
    result = await ledger.add_transaction(
        amount=Decimal(amount),
        transaction_type=TransactionType.EXPENSE,
        account=card,
        category="shopping",
        date=date,
        note=note,
        funding_account=funding,
    )
    assert result.success, result.message
    clock.advance(seconds=1)
    return result.transaction_id
