"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a storage backend because:
1. A household can look at its own ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for a household)
- No multi-request transactions. A settlement is therefore computed in
  full first and sent as ONE values_batch_update call, so the snapshot row
  and the frozen flags land together or not at all.
- Limited query capabilities (we filter in Python)

Reads are retried with exponential backoff. Writes are never retried
automatically: a write that failed after reaching Google may still have
been applied, and only the caller can decide whether to try again.
"""

import json
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import retry, stop_after_attempt, wait_exponential

from maaser.config import GoogleSheetsSettings, get_settings
from maaser.models.audit import AuditEvent, AuditEventType, AuditSeverity
from maaser.models.ledger import (
    FixedCharityCommitment,
    FixedChargeSnapshotEntry,
    IncomeRecord,
    IncomeSnapshotEntry,
    ParticipantState,
    PaymentSnapshot,
    utc_now,
)
from maaser.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    MissingRecordError,
    PersistenceError,
)


INCOME_COLUMNS = [
    "id",
    "owner_id",
    "period",
    "gross_amount",
    "obligation_rate",
    "obligation_amount",
    "label",
    "created_at",
    "updated_at",
    "is_frozen",
]

CHARITY_COLUMNS = [
    "id",
    "owner_id",
    "name",
    "amount",
    "active",
    "created_at",
    "updated_at",
]

SNAPSHOT_COLUMNS = [
    "id",
    "period",
    "participant_ids_json",
    "participant_states_json",
    "amount_settled",
    "settled_at",
    "income_snapshot_json",
    "fixed_charge_snapshot_json",
    "initiated_by",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "owner_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _safe_getter(row: list):
    """Cell accessor tolerant of short rows (Sheets trims trailing blanks)."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


def _bool_cell(value: bool) -> str:
    return "TRUE" if value else "FALSE"


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication, worksheet creation, retried reads and
    single-call batch writes.
    """

    def __init__(
        self,
        settings: Optional[GoogleSheetsSettings] = None,
        spreadsheet: Optional[gspread.Spreadsheet] = None,
    ):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet = spreadsheet
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

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_income_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(self._settings.income_sheet_name, INCOME_COLUMNS)

    def get_charities_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(self._settings.charities_sheet_name, CHARITY_COLUMNS)

    def get_snapshots_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(self._settings.snapshots_sheet_name, SNAPSHOT_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def read_rows(self, sheet: gspread.Worksheet) -> list[list[str]]:
        """All rows of a sheet including the header row."""
        return sheet.get_all_values()

    def batch_write(self, writes: list[tuple[gspread.Worksheet, int, list]]) -> None:
        """
        Write whole rows in a single API call.

        Args:
            writes: (worksheet, 1-based row index, row values) triples
        """
        if not writes:
            return

        # Grow any sheet the writes would run past
        needed: dict[str, tuple[gspread.Worksheet, int]] = {}
        for sheet, row_index, _ in writes:
            current = needed.get(sheet.title, (sheet, 0))[1]
            needed[sheet.title] = (sheet, max(current, row_index))
        for sheet, last_row in needed.values():
            if last_row > sheet.row_count:
                sheet.add_rows(last_row - sheet.row_count + 100)

        data = [
            {
                "range": (
                    f"'{sheet.title}'!{rowcol_to_a1(row_index, 1)}:"
                    f"{rowcol_to_a1(row_index, len(values))}"
                ),
                "values": [values],
            }
            for sheet, row_index, values in writes
        ]
        self.get_spreadsheet().values_batch_update(
            body={"valueInputOption": "RAW", "data": data}
        )


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    One worksheet per record kind, one record per row.
    Nested snapshot data is JSON-serialized.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    def _income_to_row(self, record: IncomeRecord) -> list:
        return [
            str(record.id),
            record.owner_id,
            record.period,
            str(record.gross_amount),
            str(record.obligation_rate),
            str(record.obligation_amount),
            record.label or "",
            record.created_at.isoformat(),
            record.updated_at.isoformat(),
            _bool_cell(record.is_frozen),
        ]

    def _row_to_income(self, row: list) -> IncomeRecord:
        safe_get = _safe_getter(row)
        return IncomeRecord(
            id=UUID(safe_get(0)),
            owner_id=safe_get(1),
            period=safe_get(2),
            gross_amount=int(safe_get(3)),
            obligation_rate=int(safe_get(4)),
            # column 5 is obligation_amount, always recomputed on read
            label=safe_get(6) or None,
            created_at=datetime.fromisoformat(safe_get(7)),
            updated_at=datetime.fromisoformat(safe_get(8)),
            is_frozen=safe_get(9).upper() == "TRUE",
        )

    def _charity_to_row(self, commitment: FixedCharityCommitment) -> list:
        return [
            str(commitment.id),
            commitment.owner_id,
            commitment.name,
            str(commitment.amount),
            _bool_cell(commitment.active),
            commitment.created_at.isoformat(),
            commitment.updated_at.isoformat(),
        ]

    def _row_to_charity(self, row: list) -> FixedCharityCommitment:
        safe_get = _safe_getter(row)
        return FixedCharityCommitment(
            id=UUID(safe_get(0)),
            owner_id=safe_get(1),
            name=safe_get(2),
            amount=int(safe_get(3)),
            active=safe_get(4).upper() == "TRUE",
            created_at=datetime.fromisoformat(safe_get(5)),
            updated_at=datetime.fromisoformat(safe_get(6)),
        )

    def _snapshot_to_row(self, snapshot: PaymentSnapshot) -> list:
        return [
            str(snapshot.id),
            snapshot.period,
            json.dumps(sorted(snapshot.participant_ids)),
            json.dumps([s.model_dump(mode="json") for s in snapshot.participant_states]),
            str(snapshot.amount_settled),
            snapshot.settled_at.isoformat(),
            json.dumps([e.model_dump(mode="json") for e in snapshot.income_snapshot]),
            json.dumps([e.model_dump(mode="json") for e in snapshot.fixed_charge_snapshot]),
            snapshot.initiated_by or "",
        ]

    def _row_to_snapshot(self, row: list) -> PaymentSnapshot:
        safe_get = _safe_getter(row)
        return PaymentSnapshot(
            id=UUID(safe_get(0)),
            period=safe_get(1),
            participant_ids=frozenset(json.loads(safe_get(2, "[]"))),
            participant_states=tuple(
                ParticipantState(**state) for state in json.loads(safe_get(3, "[]"))
            ),
            amount_settled=int(safe_get(4)),
            settled_at=datetime.fromisoformat(safe_get(5)),
            income_snapshot=tuple(
                IncomeSnapshotEntry(**entry) for entry in json.loads(safe_get(6, "[]"))
            ),
            fixed_charge_snapshot=tuple(
                FixedChargeSnapshotEntry(**entry) for entry in json.loads(safe_get(7, "[]"))
            ),
            initiated_by=safe_get(8) or None,
        )

    def _data_rows(self, sheet: gspread.Worksheet) -> list[tuple[int, list]]:
        """(1-based row index, row) for every non-empty row after the header."""
        all_rows = self._client.read_rows(sheet)
        return [
            (idx, row)
            for idx, row in enumerate(all_rows[1:], start=2)
            if row and row[0]
        ]

    def _find_row(self, sheet: gspread.Worksheet, record_id: UUID) -> Optional[tuple[int, list]]:
        for idx, row in self._data_rows(sheet):
            if row[0] == str(record_id):
                return idx, row
        return None

    # -------------------------------------------------------------------------
    # Income
    # -------------------------------------------------------------------------

    async def save_income(self, record: IncomeRecord) -> bool:
        try:
            sheet = self._client.get_income_sheet()
            if self._find_row(sheet, record.id):
                raise DuplicateError(f"Income already exists: {record.id}")
            sheet.append_row(self._income_to_row(record), value_input_option="RAW")
            return True
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to save income: {e}")

    async def get_income(self, income_id: UUID) -> Optional[IncomeRecord]:
        try:
            found = self._find_row(self._client.get_income_sheet(), income_id)
            return self._row_to_income(found[1]) if found else None
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to get income: {e}")

    async def update_income(self, record: IncomeRecord) -> bool:
        try:
            sheet = self._client.get_income_sheet()
            found = self._find_row(sheet, record.id)
            if found is None:
                raise MissingRecordError(f"Income not found: {record.id}")
            self._client.batch_write([(sheet, found[0], self._income_to_row(record))])
            return True
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to update income: {e}")

    async def delete_income(self, income_id: UUID) -> bool:
        try:
            sheet = self._client.get_income_sheet()
            found = self._find_row(sheet, income_id)
            if found is None:
                return False
            sheet.delete_rows(found[0])
            return True
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to delete income: {e}")

    async def list_income(
        self,
        owner_id: str,
        period: Optional[str] = None,
        frozen: Optional[bool] = None,
    ) -> list[IncomeRecord]:
        try:
            records = []
            for _, row in self._data_rows(self._client.get_income_sheet()):
                record = self._row_to_income(row)
                if record.owner_id != owner_id:
                    continue
                if period is not None and record.period != period:
                    continue
                if frozen is not None and record.is_frozen != frozen:
                    continue
                records.append(record)
            return records
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to list income: {e}")

    def _freeze_writes(
        self,
        sheet: gspread.Worksheet,
        owner_ids: frozenset[str],
        period: str,
    ) -> list[tuple[gspread.Worksheet, int, list]]:
        now = utc_now()
        writes = []
        for idx, row in self._data_rows(sheet):
            record = self._row_to_income(row)
            if (
                record.owner_id in owner_ids
                and record.period == period
                and not record.is_frozen
            ):
                frozen = record.model_copy(update={"is_frozen": True, "updated_at": now})
                writes.append((sheet, idx, self._income_to_row(frozen)))
        return writes

    async def freeze_income(self, owner_id: str, period: str) -> int:
        try:
            sheet = self._client.get_income_sheet()
            writes = self._freeze_writes(sheet, frozenset([owner_id]), period)
            self._client.batch_write(writes)
            return len(writes)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to freeze income: {e}")

    async def list_income_periods(self, owner_id: str) -> list[str]:
        try:
            return sorted({
                row[2]
                for _, row in self._data_rows(self._client.get_income_sheet())
                if len(row) > 2 and row[1] == owner_id
            })
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to list income periods: {e}")

    # -------------------------------------------------------------------------
    # Fixed charities
    # -------------------------------------------------------------------------

    async def save_charity(self, commitment: FixedCharityCommitment) -> bool:
        try:
            sheet = self._client.get_charities_sheet()
            if self._find_row(sheet, commitment.id):
                raise DuplicateError(f"Charity already exists: {commitment.id}")
            sheet.append_row(self._charity_to_row(commitment), value_input_option="RAW")
            return True
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to save charity: {e}")

    async def get_charity(self, commitment_id: UUID) -> Optional[FixedCharityCommitment]:
        try:
            found = self._find_row(self._client.get_charities_sheet(), commitment_id)
            return self._row_to_charity(found[1]) if found else None
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to get charity: {e}")

    async def update_charity(self, commitment: FixedCharityCommitment) -> bool:
        try:
            sheet = self._client.get_charities_sheet()
            found = self._find_row(sheet, commitment.id)
            if found is None:
                raise MissingRecordError(f"Charity not found: {commitment.id}")
            self._client.batch_write([(sheet, found[0], self._charity_to_row(commitment))])
            return True
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to update charity: {e}")

    async def delete_charity(self, commitment_id: UUID) -> bool:
        try:
            sheet = self._client.get_charities_sheet()
            found = self._find_row(sheet, commitment_id)
            if found is None:
                return False
            sheet.delete_rows(found[0])
            return True
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to delete charity: {e}")

    async def list_charities(
        self,
        owner_id: str,
        active_only: bool = False,
    ) -> list[FixedCharityCommitment]:
        try:
            commitments = []
            for _, row in self._data_rows(self._client.get_charities_sheet()):
                commitment = self._row_to_charity(row)
                if commitment.owner_id != owner_id:
                    continue
                if active_only and not commitment.active:
                    continue
                commitments.append(commitment)
            return commitments
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to list charities: {e}")

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    async def get_snapshot(self, snapshot_id: UUID) -> Optional[PaymentSnapshot]:
        try:
            found = self._find_row(self._client.get_snapshots_sheet(), snapshot_id)
            return self._row_to_snapshot(found[1]) if found else None
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to get snapshot: {e}")

    async def list_snapshots(
        self,
        period: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> list[PaymentSnapshot]:
        try:
            snapshots = []
            for _, row in self._data_rows(self._client.get_snapshots_sheet()):
                snapshot = self._row_to_snapshot(row)
                if period is not None and snapshot.period != period:
                    continue
                if owner_id is not None and not snapshot.includes(owner_id):
                    continue
                snapshots.append(snapshot)
            # Rows are in commit order; a stable sort keeps it for equal timestamps
            snapshots.sort(key=lambda s: s.settled_at)
            return snapshots
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to list snapshots: {e}")

    async def list_snapshot_periods(self, owner_id: str) -> list[str]:
        snapshots = await self.list_snapshots(owner_id=owner_id)
        return sorted({snapshot.period for snapshot in snapshots})

    async def commit_settlement(self, snapshot: PaymentSnapshot) -> int:
        try:
            snapshots_sheet = self._client.get_snapshots_sheet()
            snapshot_rows = self._client.read_rows(snapshots_sheet)
            if any(row and row[0] == str(snapshot.id) for row in snapshot_rows[1:]):
                raise DuplicateError(f"Snapshot already exists: {snapshot.id}")

            freeze_writes = self._freeze_writes(
                self._client.get_income_sheet(),
                snapshot.participant_ids,
                snapshot.period,
            )
            writes = [
                (snapshots_sheet, len(snapshot_rows) + 1, self._snapshot_to_row(snapshot)),
                *freeze_writes,
            ]
            self._client.batch_write(writes)
            return len(freeze_writes)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to commit settlement: {e}")


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
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            owner_id=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    def _events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        return [
            self._row_to_event(row)
            for row in self._client.read_rows(sheet)[1:]
            if row and row[0]
        ]

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise PersistenceError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [e for e in self._events() if e.correlation_id == correlation_id]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise PersistenceError(f"Failed to get audit events: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise PersistenceError(f"Failed to get audit events: {e}")

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        try:
            events = self._events()
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise PersistenceError(f"Failed to get audit events: {e}")
