"""
Storage Services Package

Provides the record store interface and its implementations.
Google Sheets is the persistent backend; the in-memory store backs
tests and credential-less runs.
"""

from jarvis_ledger.services.storage.cache import LookupCache, utc_now
from jarvis_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    RecordNotFoundError,
    RecordStoreInterface,
    StorageError,
)
from jarvis_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
)
from jarvis_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRecordStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "RecordStoreInterface",
    # Cache
    "LookupCache",
    "utc_now",
    # Exceptions
    "ConnectionError",
    "RecordNotFoundError",
    "StorageError",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
]
