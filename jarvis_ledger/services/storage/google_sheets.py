"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the storage backend because:
1. The ledger stays readable (and fixable) by a human in a spreadsheet
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

Each collection (Accounts, Expenses, Payments, ...) is its own worksheet
with a fixed set of columns. Everything that is specific to a collection
lives in a JSON-encoded fields column, so new fields never need a
sheet migration.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (the engine orders its writes so a failure is recoverable)
- Limited query capabilities (we filter in Python, see models/record.py)
"""

import json
from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from jarvis_ledger.config import get_settings
from jarvis_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
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
    ConnectionError,
    RecordNotFoundError,
    RecordStoreInterface,
    StorageError,
)


logger = structlog.get_logger("jarvis_ledger.storage")


# Column layout shared by every collection worksheet
RECORD_COLUMNS = [
    "id",
    "created_time",
    "archived",
    "title",
    "fields_json",
]
ARCHIVED_COLUMN = RECORD_COLUMNS.index("archived") + 1
FIELDS_COLUMN = RECORD_COLUMNS.index("fields_json") + 1

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
        return sheet

    def get_collection_sheet(self, collection: Collection) -> gspread.Worksheet:
        """Get or create the worksheet backing a collection."""
        title = self._settings.sheet_name_for(Collection(collection).value)
        return self._get_or_create(title, RECORD_COLUMNS, rows=1000)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsRecordStore(RecordStoreInterface):
    """
    Google Sheets implementation of the record store.

    Records are rows; the collection-specific fields are JSON-encoded in
    the last column. Archiving flips the archived cell, rows are never
    deleted.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        cache: Optional[LookupCache] = None,
        clock: Clock = utc_now,
    ):
        self._client = client or GoogleSheetsClient()
        self._clock = clock
        self._cache = cache or LookupCache(clock=clock)
        # record id -> collection, so updates don't scan every sheet
        self._locations: dict[str, Collection] = {}

    @property
    def cache(self) -> LookupCache:
        return self._cache

    def _row_to_record(self, collection: Collection, row: list) -> Record:
        """Convert a spreadsheet row to a Record."""
        # Handle missing columns gracefully
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        fields_json = safe_get(4)
        return Record(
            id=safe_get(0),
            collection=Collection(collection).value,
            created_time=datetime.fromisoformat(safe_get(1)),
            archived=safe_get(2).upper() == "TRUE",
            title=safe_get(3),
            fields=json.loads(fields_json) if fields_json else {},
        )

    def _locate(self, record_id: str) -> tuple[Collection, gspread.Worksheet, int, list]:
        """Find a record's worksheet and 1-based row index."""
        known = self._locations.get(record_id)
        collections = [known] if known else list(Collection)
        for collection in collections:
            sheet = self._client.get_collection_sheet(collection)
            all_rows = sheet.get_all_values()
            for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
                if row and row[0] == record_id:
                    self._locations[record_id] = collection
                    return collection, sheet, idx, row
        raise RecordNotFoundError(f"Record not found: {record_id}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def create_record(
        self,
        collection: Collection,
        fields: dict[str, Any],
        title: str = "",
    ) -> str:
        """Append a record row to the collection's worksheet."""
        record_id = str(uuid4())
        payload = {k: to_field_value(v) for k, v in fields.items()}
        try:
            sheet = self._client.get_collection_sheet(collection)
            sheet.append_row(
                [
                    record_id,
                    self._clock().isoformat(),
                    "FALSE",
                    title,
                    json.dumps(payload),
                ],
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to create {Collection(collection).value} record: {e}")
        self._locations[record_id] = Collection(collection)
        return record_id

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def update_record(self, record_id: str, fields: dict[str, Any]) -> None:
        """Merge fields into the record's JSON column."""
        try:
            collection, sheet, idx, row = self._locate(record_id)
            current = self._row_to_record(collection, row).fields
            current.update({k: to_field_value(v) for k, v in fields.items()})
            sheet.update_cell(idx, FIELDS_COLUMN, json.dumps(current))
        except RecordNotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update record {record_id}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def archive_record(self, record_id: str) -> None:
        """Mark a record archived."""
        try:
            _, sheet, idx, _ = self._locate(record_id)
            sheet.update_cell(idx, ARCHIVED_COLUMN, "TRUE")
        except RecordNotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to archive record {record_id}: {e}")

    async def retrieve_record(self, record_id: str) -> Record:
        """Retrieve a record by id."""
        try:
            collection, _, _, row = self._locate(record_id)
            return self._row_to_record(collection, row)
        except RecordNotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to retrieve record {record_id}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def query(
        self,
        collection: Collection,
        filters: Optional[list[FieldFilter]] = None,
        sorts: Optional[list[SortKey]] = None,
        page_size: int = 100,
    ) -> list[Record]:
        """Query non-archived records of a collection."""
        try:
            sheet = self._client.get_collection_sheet(collection)
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to query {Collection(collection).value}: {e}")

        records = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                record = self._row_to_record(collection, row)
            except (ValueError, json.JSONDecodeError):
                logger.warning("malformed_row_skipped", collection=str(collection), row_id=row[0])
                continue
            if record.archived or not matches(record, filters or []):
                continue
            self._locations[record.id] = Collection(collection)
            records.append(record)

        return sort_records(records, sorts)[:page_size]


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Don't raise - audit logging should not break the main flow
            logger.warning("audit_write_failed", event_type=event.event_type.value, error=str(e))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if row and len(row) > 6 and row[6] == str(correlation_id):
                try:
                    events.append(self._row_to_event(row))
                except ValueError:
                    continue

        # Sort chronologically
        events.sort(key=lambda e: e.timestamp)
        return events
