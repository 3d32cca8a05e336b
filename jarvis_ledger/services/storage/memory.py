"""
In-Memory Storage Implementation

Same contract as the Google Sheets store, kept in a dict. Used by the
test-suite and when the application runs without Google credentials.

Records are copied on the way in and out so callers can never mutate
stored state by accident.
"""

from typing import Any, Optional
from uuid import UUID, uuid4

from jarvis_ledger.models.audit import AuditEvent
from jarvis_ledger.models.ledger import Collection
from jarvis_ledger.models.record import (
    FieldFilter,
    Record,
    SortKey,
    matches,
    sort_records,
    to_field_value,
)
from jarvis_ledger.services.storage.cache import Clock, LookupCache, utc_now
from jarvis_ledger.services.storage.interface import (
    AuditStorageInterface,
    RecordNotFoundError,
    RecordStoreInterface,
)


class InMemoryRecordStore(RecordStoreInterface):
    """Dict-backed record store."""

    def __init__(
        self,
        cache: Optional[LookupCache] = None,
        clock: Clock = utc_now,
    ):
        self._clock = clock
        self._cache = cache or LookupCache(clock=clock)
        self._records: dict[str, Record] = {}

    @property
    def cache(self) -> LookupCache:
        return self._cache

    async def create_record(
        self,
        collection: Collection,
        fields: dict[str, Any],
        title: str = "",
    ) -> str:
        record_id = str(uuid4())
        self._records[record_id] = Record(
            id=record_id,
            collection=Collection(collection).value,
            title=title,
            created_time=self._clock(),
            fields={k: to_field_value(v) for k, v in fields.items()},
        )
        return record_id

    async def update_record(self, record_id: str, fields: dict[str, Any]) -> None:
        record = self._get(record_id)
        record.fields.update({k: to_field_value(v) for k, v in fields.items()})

    async def archive_record(self, record_id: str) -> None:
        self._get(record_id).archived = True

    async def retrieve_record(self, record_id: str) -> Record:
        return self._get(record_id).model_copy(deep=True)

    async def query(
        self,
        collection: Collection,
        filters: Optional[list[FieldFilter]] = None,
        sorts: Optional[list[SortKey]] = None,
        page_size: int = 100,
    ) -> list[Record]:
        name = Collection(collection).value
        candidates = [
            r for r in self._records.values()
            if r.collection == name and not r.archived and matches(r, filters or [])
        ]
        ordered = sort_records(candidates, sorts)
        return [r.model_copy(deep=True) for r in ordered[:page_size]]

    def all_records(self, collection: Collection, include_archived: bool = True) -> list[Record]:
        """Every record of a collection, in insertion order (for inspection)."""
        name = Collection(collection).value
        return [
            r.model_copy(deep=True)
            for r in self._records.values()
            if r.collection == name and (include_archived or not r.archived)
        ]

    def _get(self, record_id: str) -> Record:
        try:
            return self._records[record_id]
        except KeyError:
            raise RecordNotFoundError(f"Record not found: {record_id}")


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed audit log."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        related = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(related, key=lambda e: e.timestamp)
