"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the record store.
This allows us to:
1. Swap Google Sheets for another document store later
2. Use in-memory storage for testing
3. Own the lookup cache in one place instead of module globals
4. Keep the ledger engine decoupled from storage implementation

The interface is intentionally small - the engine only ever needs
create, update, archive, retrieve and a filtered query.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from jarvis_ledger.models.audit import AuditEvent
from jarvis_ledger.models.ledger import Collection
from jarvis_ledger.models.record import FieldFilter, Record, SortKey
from jarvis_ledger.services.storage.cache import LookupCache


class RecordStoreInterface(ABC):
    """
    Abstract interface for the ledger's record store.

    Any storage implementation (Google Sheets, in-memory, etc.)
    must implement these methods.
    """

    @property
    @abstractmethod
    def cache(self) -> LookupCache:
        """Lookup cache owned by this store (account ids, categories)."""
        pass

    @abstractmethod
    async def create_record(
        self,
        collection: Collection,
        fields: dict[str, Any],
        title: str = "",
    ) -> str:
        """
        Create a record.

        Returns:
            The new record's id

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_record(
        self,
        record_id: str,
        fields: dict[str, Any],
    ) -> None:
        """
        Merge fields into an existing record.

        Raises:
            RecordNotFoundError: If the record doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def archive_record(self, record_id: str) -> None:
        """
        Soft-delete a record. Archived records are excluded from queries.

        Raises:
            RecordNotFoundError: If the record doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def retrieve_record(self, record_id: str) -> Record:
        """
        Retrieve a record by id, archived or not.

        Raises:
            RecordNotFoundError: If the record doesn't exist
        """
        pass

    @abstractmethod
    async def query(
        self,
        collection: Collection,
        filters: Optional[list[FieldFilter]] = None,
        sorts: Optional[list[SortKey]] = None,
        page_size: int = 100,
    ) -> list[Record]:
        """
        Query non-archived records of a collection.

        Args:
            collection: Collection to query
            filters: Conjunctive predicates
            sorts: Sort keys, first key has precedence
            page_size: Maximum number of records returned

        Returns:
            Matching records in sort order
        """
        pass

    async def query_by_title(
        self,
        collection: Collection,
        title: str,
        page_size: int = 1,
    ) -> list[Record]:
        """Query non-archived records whose title equals the given one."""
        return await self.query(
            collection,
            filters=[FieldFilter.equals("title", title)],
            page_size=page_size,
        )


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one settlement).

        Returns:
            List of related events in chronological order
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class RecordNotFoundError(StorageError):
    """Record not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
