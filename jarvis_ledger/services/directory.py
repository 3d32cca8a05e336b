"""
Account and Category Directories

Name -> record id resolution for the two lookup collections. Both are
read on almost every write, so results go through the record store's
LookupCache (accounts and categories have their own TTLs).
"""

from datetime import timedelta
from typing import Optional

import structlog

from jarvis_ledger.models.ledger import (
    FALLBACK_CATEGORIES,
    UNCATEGORIZED,
    Collection,
    is_known_account,
    normalize_account_name,
)
from jarvis_ledger.services.storage.interface import RecordStoreInterface, StorageError


logger = structlog.get_logger(__name__)

ACCOUNT_IDS = "accounts"
ACCOUNT_NAMES = "account_names"
CATEGORY_LIST = "categories"
CATEGORY_IDS = "category_ids"


class AccountDirectory:
    """Resolves account names to Accounts record ids."""

    def __init__(self, store: RecordStoreInterface, ttl: Optional[timedelta] = None):
        self._store = store
        if ttl is not None:
            store.cache.set_ttl(ACCOUNT_IDS, ttl)
            store.cache.set_ttl(ACCOUNT_NAMES, ttl)

    async def resolve_account_id(self, name: str) -> Optional[str]:
        """
        Look up the record id of an account.

        Returns None for names outside the account enumeration and for
        accounts that have no record yet. Storage errors propagate.
        """
        key = normalize_account_name(name)
        if not is_known_account(key):
            return None

        cached = self._store.cache.get(ACCOUNT_IDS, key)
        if cached is not None:
            return cached

        records = await self._store.query_by_title(Collection.ACCOUNTS, key)
        if not records:
            return None

        account_id = records[0].id
        self._store.cache.set(ACCOUNT_IDS, key, account_id)
        self._store.cache.set(ACCOUNT_NAMES, account_id, key)
        return account_id

    async def account_name(self, account_id: str) -> str:
        """Reverse lookup, used when reporting split entries."""
        cached = self._store.cache.get(ACCOUNT_NAMES, account_id)
        if cached is not None:
            return cached
        record = await self._store.retrieve_record(account_id)
        name = normalize_account_name(record.title)
        self._store.cache.set(ACCOUNT_NAMES, account_id, name)
        return name


class CategoryDirectory:
    """
    The category allow-list.

    DESIGN DECISION: Reading the list never fails. If the Categories
    collection can't be read we serve the last known list, and if there
    is none, a built-in fallback. "other" is always a valid category.
    """

    def __init__(self, store: RecordStoreInterface, ttl: Optional[timedelta] = None):
        self._store = store
        if ttl is not None:
            store.cache.set_ttl(CATEGORY_LIST, ttl)
            store.cache.set_ttl(CATEGORY_IDS, ttl)

    async def get_categories(self) -> list[str]:
        cached = self._store.cache.get(CATEGORY_LIST, "all")
        if cached is not None:
            return list(cached)

        try:
            records = await self._store.query(Collection.CATEGORIES, page_size=100)
        except StorageError as e:
            stale = self._store.cache.peek(CATEGORY_LIST, "all")
            logger.warning(
                "category_list_unavailable",
                error=str(e),
                serving="stale" if stale is not None else "fallback",
            )
            return list(stale) if stale is not None else list(FALLBACK_CATEGORIES)

        names = []
        for record in records:
            name = record.title.strip().lower()
            if name and name not in names:
                names.append(name)
            if name:
                self._store.cache.set(CATEGORY_IDS, name, record.id)
        if UNCATEGORIZED not in names:
            names.append(UNCATEGORIZED)

        self._store.cache.set(CATEGORY_LIST, "all", tuple(names))
        return names

    async def validate_category(self, name: Optional[str]) -> str:
        """Return the normalized category, or "other" if it isn't allowed."""
        normalized = (name or "").strip().lower()
        if not normalized:
            return UNCATEGORIZED
        categories = await self.get_categories()
        return normalized if normalized in categories else UNCATEGORIZED

    async def ensure_category(self, name: str) -> str:
        """Return the Categories record id for a name, creating the record if needed."""
        normalized = name.strip().lower()
        cached = self._store.cache.get(CATEGORY_IDS, normalized)
        if cached is not None:
            return cached

        records = await self._store.query_by_title(Collection.CATEGORIES, normalized)
        if records:
            category_id = records[0].id
        else:
            category_id = await self._store.create_record(
                Collection.CATEGORIES, {}, title=normalized
            )
            self._store.cache.invalidate(CATEGORY_LIST)
            logger.info("category_created", category=normalized, category_id=category_id)

        self._store.cache.set(CATEGORY_IDS, normalized, category_id)
        return category_id
