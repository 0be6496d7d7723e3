"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the durable backend because:
1. The bakery owner can open the ledger directly in Sheets
2. No database setup required
3. Easy to export/migrate later

TRADEOFFS:
- One worksheet for all users, with a user_id column; we filter in Python
- Sheets has no change feed. Subscribers are notified after every
  append/remove made through this instance, with a fresh read of the sheet
- Large photo attachments may exceed the per-cell size limit; those writes
  fail with StorageError
"""

import json
from collections import defaultdict
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from bakery_ledger.config import GoogleSheetsSettings, get_settings
from bakery_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from bakery_ledger.models.record import Record
from bakery_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    RecordStorageInterface,
    SnapshotCallback,
    StorageError,
    Subscription,
    as_aware,
    sort_snapshot,
)


# Column mappings for the Records sheet
RECORD_COLUMNS = [
    "id",
    "user_id",
    "type",
    "amount",
    "main_category",
    "sub_category",
    "size_attribute",
    "note",
    "attachment",
    "occurred_at",
    "created_at",
]

# Column mappings for the Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

logger = structlog.get_logger(__name__)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """Establish connection using service account credentials."""
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
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
        return sheet

    def get_records_sheet(self) -> gspread.Worksheet:
        """Get or create the Records worksheet."""
        return self._get_or_create_sheet(
            self._settings.records_sheet_name, RECORD_COLUMNS, rows=1000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


def record_to_row(user_id: str, record_id: str, record: Record) -> list:
    """Convert a Record to a spreadsheet row."""
    return [
        record_id,
        user_id,
        record.type.value,
        str(record.amount) if record.amount is not None else "",
        record.main_category,
        record.sub_category,
        record.size_attribute or "",
        record.note,
        record.attachment or "",
        record.occurred_at.isoformat(),
        record.created_at.isoformat() if record.created_at else "",
    ]


def _parse_timestamp(value: str) -> Optional[datetime]:
    """ISO timestamp cell to an aware datetime; naive cells are local time."""
    if not value:
        return None
    return as_aware(datetime.fromisoformat(value))


def row_to_record(row: list) -> Record:
    """
    Convert a spreadsheet row to a Record.

    The amount cell is passed through as text; Record parses it leniently.
    Timestamps written without an offset (hand-edited or imported rows) are
    read as local time.
    """
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default

    return Record(
        id=safe_get(0),
        type=safe_get(2),
        amount=safe_get(3) or None,
        main_category=safe_get(4),
        sub_category=safe_get(5),
        size_attribute=safe_get(6) or None,
        note=safe_get(7),
        attachment=safe_get(8) or None,
        occurred_at=_parse_timestamp(safe_get(9)),
        created_at=_parse_timestamp(safe_get(10)),
    )


class GoogleSheetsRecordStorage(RecordStorageInterface):
    """
    Google Sheets implementation of record storage.

    Records are stored as rows in one worksheet, one record per row. The
    user_id column holds "<app_id>/<user_id>" so several ledgers can share
    one spreadsheet.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        app_id: str = "baking-app-default",
    ):
        self._client = client or GoogleSheetsClient()
        self._app_id = app_id
        self._subscribers: dict[str, list[tuple[Subscription, SnapshotCallback]]] = defaultdict(list)

    def _owner(self, user_id: str) -> str:
        return f"{self._app_id}/{user_id}"

    def _read_user_rows(self, user_id: str) -> list[Record]:
        try:
            sheet = self._client.get_records_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read records: {e}")

        owner = self._owner(user_id)
        records = []
        for row in all_rows:
            if not row or not row[0] or len(row) < 2 or row[1] != owner:
                continue
            try:
                records.append(row_to_record(row))
            except (ValidationError, ValueError) as e:
                logger.warning("malformed_record_row", record_id=row[0], error=str(e))
        return sort_snapshot(records)

    def _notify(self, user_id: str) -> None:
        subscribers = list(self._subscribers[user_id])
        if not subscribers:
            return
        try:
            snapshot = self._read_user_rows(user_id)
        except Exception as e:
            # The write already succeeded; the next change delivers a snapshot
            logger.warning("snapshot_refresh_failed", user_id=user_id, error=str(e))
            return
        for _, callback in subscribers:
            callback(list(snapshot))

    def subscribe(self, user_id: str, callback: SnapshotCallback) -> Subscription:
        def cancel() -> None:
            self._subscribers[user_id].remove(entry)

        subscription = Subscription(user_id, on_cancel=cancel)
        entry = (subscription, callback)
        self._subscribers[user_id].append(entry)
        callback(self._read_user_rows(user_id))
        return subscription

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append_row(self, row: list) -> None:
        try:
            sheet = self._client.get_records_sheet()
            sheet.append_row(row, value_input_option="RAW")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save record: {e}")

    async def append(self, user_id: str, record: Record) -> str:
        """Append a record row and return its generated id."""
        record_id = uuid4().hex
        self._append_row(record_to_row(self._owner(user_id), record_id, record))
        self._notify(user_id)
        return record_id

    async def remove(self, user_id: str, record_id: str) -> bool:
        """Delete the row holding record_id for this user."""
        try:
            sheet = self._client.get_records_sheet()
            all_rows = sheet.get_all_values()
            owner = self._owner(user_id)

            for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
                if len(row) > 1 and row[0] == record_id and row[1] == owner:
                    sheet.delete_rows(idx)
                    break
            else:
                return False
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete record: {e}")
        self._notify(user_id)
        return True

    async def list_records(self, user_id: str) -> list[Record]:
        return self._read_user_rows(user_id)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
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
            user_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValidationError, ValueError):
                continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = self._read_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
