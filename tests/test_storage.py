"""
Tests for the lookup cache, the in-memory record store and the directories.
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from jarvis_ledger.models.ledger import FALLBACK_CATEGORIES, Collection
from jarvis_ledger.models.record import FieldFilter
from jarvis_ledger.services.directory import AccountDirectory, CategoryDirectory
from jarvis_ledger.services.storage import LookupCache, RecordNotFoundError

from tests.conftest import FailingStore


class TestLookupCache:
    """Tests for TTL handling with an injected clock."""

    def test_value_expires_after_ttl(self, clock):
        """Test that a value is served until its TTL runs out."""
        cache = LookupCache(ttls={"accounts": timedelta(minutes=10)}, clock=clock)
        cache.set("accounts", "checkings", "id-1")

        clock.advance(minutes=9)
        assert cache.get("accounts", "checkings") == "id-1"

        clock.advance(minutes=1)
        assert cache.get("accounts", "checkings") is None

    def test_key_classes_have_separate_ttls(self, clock):
        """Test per-class TTLs and the default TTL."""
        cache = LookupCache(
            ttls={"categories": timedelta(seconds=30)},
            default_ttl=timedelta(hours=1),
            clock=clock,
        )
        cache.set("categories", "all", ("other",))
        cache.set("accounts", "bills", "id-2")

        clock.advance(minutes=1)
        assert cache.get("categories", "all") is None
        assert cache.get("accounts", "bills") == "id-2"

    def test_peek_returns_stale_value(self, clock):
        """Test that peek ignores expiry."""
        cache = LookupCache(default_ttl=timedelta(seconds=1), clock=clock)
        cache.set("categories", "all", ("out", "other"))
        clock.advance(minutes=5)
        assert cache.get("categories", "all") is None
        assert cache.peek("categories", "all") == ("out", "other")

    def test_invalidate_key_and_class(self, clock):
        """Test dropping one key and a whole key class."""
        cache = LookupCache(clock=clock)
        cache.set("accounts", "a", "1")
        cache.set("accounts", "b", "2")
        cache.set("categories", "all", ("other",))

        cache.invalidate("accounts", "a")
        assert cache.get("accounts", "a") is None
        assert cache.get("accounts", "b") == "2"

        cache.invalidate("accounts")
        assert cache.get("accounts", "b") is None
        assert cache.get("categories", "all") == ("other",)


class TestInMemoryRecordStore:
    """Tests for the in-memory record store."""

    async def test_create_and_retrieve(self, store, clock):
        """Test that records keep their fields, title and creation time."""
        record_id = await store.create_record(
            Collection.EXPENSES,
            {"amount": Decimal("12.34"), "accounts": ["a1"]},
            title="expense $12.34",
        )
        record = await store.retrieve_record(record_id)
        assert record.title == "expense $12.34"
        assert record.number("amount") == Decimal("12.34")
        assert record.relation("accounts") == ["a1"]
        assert record.created_time == clock.now

    async def test_update_merges_fields(self, store):
        """Test that updates only touch the given fields."""
        record_id = await store.create_record(Collection.EXPENSES, {"amount": "5", "note": "tea"})
        await store.update_record(record_id, {"note": "coffee"})
        record = await store.retrieve_record(record_id)
        assert record.text("note") == "coffee"
        assert record.number("amount") == Decimal("5")

    async def test_archived_records_are_not_queried(self, store):
        """Test that queries never return archived records."""
        keep = await store.create_record(Collection.ACCOUNTS, {}, title="checkings")
        gone = await store.create_record(Collection.ACCOUNTS, {}, title="checkings")
        await store.archive_record(gone)

        records = await store.query_by_title(Collection.ACCOUNTS, "checkings", page_size=10)
        assert [r.id for r in records] == [keep]

    async def test_query_filters_by_collection(self, store):
        """Test that collections don't leak into each other."""
        await store.create_record(Collection.EXPENSES, {"amount": "1"})
        await store.create_record(Collection.INCOME, {"amount": "1"})
        records = await store.query(
            Collection.INCOME, filters=[FieldFilter.equals("amount", Decimal("1"))]
        )
        assert len(records) == 1
        assert records[0].collection == "income"

    async def test_returned_records_are_copies(self, store):
        """Test that mutating a returned record changes nothing stored."""
        record_id = await store.create_record(Collection.EXPENSES, {"accounts": ["a1"]})
        record = await store.retrieve_record(record_id)
        record.fields["accounts"].append("a2")
        again = await store.retrieve_record(record_id)
        assert again.relation("accounts") == ["a1"]

    async def test_missing_record_raises(self, store):
        """Test that unknown ids raise RecordNotFoundError."""
        with pytest.raises(RecordNotFoundError):
            await store.retrieve_record("nope")
        with pytest.raises(RecordNotFoundError):
            await store.update_record("nope", {"note": "x"})


class TestAccountDirectory:
    """Tests for account name resolution."""

    async def test_resolves_and_caches(self, store):
        """Test that a resolved id is served from the cache."""
        account_id = await store.create_record(Collection.ACCOUNTS, {}, title="checkings")
        directory = AccountDirectory(store)

        assert await directory.resolve_account_id("Checkings") == account_id
        queries = store.query_count
        assert await directory.resolve_account_id("checkings") == account_id
        assert store.query_count == queries

    async def test_cache_expires(self, store, clock):
        """Test that an expired id is looked up again."""
        await store.create_record(Collection.ACCOUNTS, {}, title="bills")
        directory = AccountDirectory(store, ttl=timedelta(minutes=1))

        await directory.resolve_account_id("bills")
        queries = store.query_count
        clock.advance(minutes=2)
        await directory.resolve_account_id("bills")
        assert store.query_count == queries + 1

    async def test_unknown_names_resolve_to_none(self, store):
        """Test names outside the account list and accounts without a record."""
        await store.create_record(Collection.ACCOUNTS, {}, title="venmo")
        directory = AccountDirectory(store)
        assert await directory.resolve_account_id("venmo") is None
        assert await directory.resolve_account_id("bills") is None

    async def test_reverse_lookup(self, store):
        """Test id -> name."""
        account_id = await store.create_record(Collection.ACCOUNTS, {}, title="Roth IRA")
        directory = AccountDirectory(store)
        assert await directory.account_name(account_id) == "roth ira"


class TestCategoryDirectory:
    """Tests for the category allow-list."""

    async def test_lists_stored_categories_plus_other(self, store):
        """Test that "other" is always allowed."""
        await store.create_record(Collection.CATEGORIES, {}, title="Groceries")
        directory = CategoryDirectory(store)
        assert await directory.get_categories() == ["groceries", "other"]

    async def test_unknown_category_becomes_other(self, store):
        """Test validation of category names."""
        await store.create_record(Collection.CATEGORIES, {}, title="gas")
        directory = CategoryDirectory(store)
        assert await directory.validate_category("GAS") == "gas"
        assert await directory.validate_category("yachts") == "other"
        assert await directory.validate_category(None) == "other"

    async def test_fallback_list_when_store_fails(self, clock):
        """Test the built-in list when nothing was ever read."""
        store = FailingStore(clock)
        store.failing_queries.add("categories")
        directory = CategoryDirectory(store)
        assert await directory.get_categories() == list(FALLBACK_CATEGORIES)

    async def test_stale_list_when_store_fails(self, clock):
        """Test that the last known list beats the fallback."""
        store = FailingStore(clock)
        await store.create_record(Collection.CATEGORIES, {}, title="concerts")
        directory = CategoryDirectory(store, ttl=timedelta(minutes=5))
        await directory.get_categories()

        clock.advance(minutes=10)
        store.failing_queries.add("categories")
        assert await directory.get_categories() == ["concerts", "other"]

    async def test_ensure_category_creates_once(self, store):
        """Test that ensure_category reuses existing records."""
        directory = CategoryDirectory(store)
        first = await directory.ensure_category("Health")
        second = await directory.ensure_category("health")
        assert first == second
        assert len(store.all_records(Collection.CATEGORIES)) == 1
        assert "health" in await directory.get_categories()
