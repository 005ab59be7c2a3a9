"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets backs the two append-style stores:
the net-worth history and the audit log. Because:
1. Users can chart their own history directly in Sheets
2. No database setup required
3. The audit trail stays readable by non-developers

TRADEOFFS:
- No transactions, so Sheets is NOT used for balances. The balance store
  needs atomic read-modify-write, which Sheets cannot provide.
- History is replaced by "delete the user's rows, append the new ones".
  A crash in between leaves a gap that the next rebuild fills, since
  history is recomputed from scratch on every mutation anyway.
- Limited query capabilities (we filter in Python)
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from pocket_ledger.config import get_settings
from pocket_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from pocket_ledger.models.history import HistoricalSeries, HistoricalSnapshot
from pocket_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    HistoryStorageInterface,
    StorageError,
)

logger = structlog.get_logger(__name__)


# Column mappings for History sheet
HISTORY_COLUMNS = [
    "user_id",
    "month",
    "net_worth",
    "income",
    "expense",
    "generated_at",
    "truncated",
]

# Column mappings for Audit sheet
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
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings=None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

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
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_history_sheet(self) -> gspread.Worksheet:
        """Get or create the History worksheet."""
        return self._get_or_create(self._settings.history_sheet_name, HISTORY_COLUMNS, 2000)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000)


def _safe_getter(row: list):
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


def _contiguous_runs(indices: list[int]) -> list[tuple[int, int]]:
    """Group ascending row numbers into inclusive (start, end) runs."""
    runs: list[tuple[int, int]] = []
    for idx in indices:
        if runs and idx == runs[-1][1] + 1:
            runs[-1] = (runs[-1][0], idx)
        else:
            runs.append((idx, idx))
    return runs


class GoogleSheetsHistoryStorage(HistoryStorageInterface):
    """
    Google Sheets implementation of history storage.

    One row per (user, month). All users share the sheet.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _snapshot_to_row(self, series: HistoricalSeries, snapshot: HistoricalSnapshot) -> list:
        return [
            series.user_id,
            snapshot.month,
            str(snapshot.net_worth),
            str(snapshot.income),
            str(snapshot.expense),
            series.generated_at.isoformat(),
            str(series.truncated),
        ]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_history(self, series: HistoricalSeries) -> bool:
        """Replace the user's rows with the new series."""
        try:
            sheet = self._client.get_history_sheet()
            all_rows = sheet.get_all_values()

            # Sheet row numbers are 1-based and row 1 is the header.
            # A user's rows are appended together, so they normally form
            # one contiguous run; delete each run bottom-up in one call.
            stale = [
                idx for idx, row in enumerate(all_rows[1:], start=2)
                if row and row[0] == series.user_id
            ]
            for start, end in reversed(_contiguous_runs(stale)):
                sheet.delete_rows(start, end)

            rows = [self._snapshot_to_row(series, s) for s in series.snapshots]
            if rows:
                sheet.append_rows(rows, value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save history: {e}")

    async def get_history(self, user_id: str) -> Optional[HistoricalSeries]:
        """Read the user's series back, oldest month first."""
        try:
            sheet = self._client.get_history_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to read history: {e}")

        snapshots = []
        generated_at = None
        truncated = False
        for row in all_rows:
            if not row or row[0] != user_id:
                continue
            safe_get = _safe_getter(row)
            try:
                snapshot = HistoricalSnapshot(
                    month=safe_get(1),
                    net_worth=Decimal(safe_get(2, "0")),
                    income=Decimal(safe_get(3, "0")),
                    expense=Decimal(safe_get(4, "0")),
                )
                row_generated_at = datetime.fromisoformat(safe_get(5)) if safe_get(5) else None
            except Exception as e:
                logger.warning("history_row_skipped", user_id=user_id, error=str(e))
                continue
            snapshots.append(snapshot)
            if row_generated_at:
                generated_at = row_generated_at
            # Every row of one save carries the same flag
            truncated = truncated or safe_get(6).lower() == "true"

        if not snapshots:
            return None

        snapshots.sort(key=lambda s: s.month)
        series = HistoricalSeries(user_id=user_id, snapshots=snapshots, truncated=truncated)
        if generated_at:
            series.generated_at = generated_at
        return series


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        safe_get = _safe_getter(row)

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
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the ledger flow
            logger.warning("audit_sheet_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    def _load_events(self, predicate) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0] or not predicate(row):
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception:
                continue  # Skip malformed rows
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        events = self._load_events(
            lambda row: len(row) > 7 and row[7] == str(correlation_id)
        )
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        events = self._load_events(
            lambda row: len(row) > 6 and row[5] == entity_type and row[6] == entity_id
        )
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        events = self._load_events(lambda row: True)
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
