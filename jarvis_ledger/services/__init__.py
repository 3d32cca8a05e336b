"""Services package."""

from jarvis_ledger.services.directory import AccountDirectory, CategoryDirectory
from jarvis_ledger.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryAuditStorage,
    InMemoryRecordStore,
    LookupCache,
    RecordNotFoundError,
    RecordStoreInterface,
    StorageError,
)

__all__ = [
    # Lookups
    "AccountDirectory",
    "CategoryDirectory",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
    "LookupCache",
    "RecordNotFoundError",
    "RecordStoreInterface",
    "StorageError",
]
