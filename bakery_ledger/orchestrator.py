"""
Main Orchestrator for the Bakery Ledger

Ties the engine, the entry form and the adapters together and defines the
end-to-end flows:
1. Sign in / sign out (subscribe to the user's records)
2. Submit (form -> validate -> append -> wait for snapshot)
3. Scan receipt (photo -> recognizer -> prefill form)
4. Export (active month -> xlsx)

DESIGN DECISION: All collaborators live in one LedgerContext built by
build_context(). Nothing is module-global, so tests build a context with
in-memory storage and a stub recognizer.
"""

from pathlib import Path
from typing import Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from bakery_ledger.audit import AuditLogger, configure_logging, create_correlation_id
from bakery_ledger.config import LedgerSettings, Settings, get_settings
from bakery_ledger.exceptions import RecognitionFailedError
from bakery_ledger.ledger import EntryForm, LedgerEngine
from bakery_ledger.ledger.engine import Clock
from bakery_ledger.models.receipt import ReceiptScan
from bakery_ledger.models.record import Record
from bakery_ledger.services.export import XlsxExporter
from bakery_ledger.services.recognition import GeminiReceiptRecognizer, ReceiptRecognizer
from bakery_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryRecordStorage,
    RecordStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


class LedgerContext:
    """The collaborators one ledger session runs against."""

    def __init__(
        self,
        settings: LedgerSettings,
        storage: RecordStorageInterface,
        audit_logger: AuditLogger,
        recognizer: Optional[ReceiptRecognizer] = None,
        exporter: Optional[XlsxExporter] = None,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings
        self.storage = storage
        self.audit_logger = audit_logger
        self.recognizer = recognizer
        self.exporter = exporter or XlsxExporter(currency=settings.currency)
        self.clock = clock


class LedgerController:
    """
    Drives the user-facing flows over one LedgerEngine.

    Submission and deletion errors propagate to the caller. Receipt
    recognition is best-effort: a failure is logged and the form is left as
    it was.
    """

    def __init__(self, context: LedgerContext):
        self._context = context
        self.engine = LedgerEngine(
            storage=context.storage,
            audit_logger=context.audit_logger,
            clock=context.clock,
        )

    def sign_in(self, user_id: str) -> None:
        self.engine.set_active_user(user_id)

    def sign_out(self) -> None:
        self.engine.set_active_user(None)

    def close(self) -> None:
        self.engine.close()

    async def submit(
        self,
        form: EntryForm,
        correlation_id: Optional[UUID] = None,
    ) -> Record:
        """
        Submit the form as a new record and clear it on success.

        The form keeps its contents if validation or storage fails.
        """
        correlation_id = correlation_id or create_correlation_id()
        record = await self.engine.create(form.to_input(), correlation_id=correlation_id)
        form.reset_after_save()
        return record

    async def delete(self, record_id: str) -> None:
        await self.engine.delete(record_id, correlation_id=create_correlation_id())

    async def scan_receipt(
        self,
        form: EntryForm,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[ReceiptScan]:
        """
        Recognize the form's attached receipt photo and prefill the form.

        Returns the scan, or None when recognition was not possible. In that
        case the form is unchanged.
        """
        correlation_id = correlation_id or create_correlation_id()
        audit_logger = self._context.audit_logger
        recognizer = self._context.recognizer

        if not form.attachment:
            await audit_logger.log_recognition_failed(
                error_message="No receipt image attached",
                correlation_id=correlation_id,
            )
            return None
        if recognizer is None:
            await audit_logger.log_recognition_failed(
                error_message="Receipt recognition is not configured",
                correlation_id=correlation_id,
            )
            return None

        try:
            scan = await recognizer.recognize(form.attachment, correlation_id=correlation_id)
        except RecognitionFailedError as e:
            await audit_logger.log_recognition_failed(
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return None

        form.apply_receipt(scan)
        await audit_logger.log_receipt_recognized(
            total=str(scan.total),
            item_count=len(scan.items),
            correlation_id=correlation_id,
        )
        return scan

    async def export_active_month(
        self,
        directory: Optional[Union[str, Path]] = None,
    ) -> Path:
        """Write the active month to an .xlsx file and return its path."""
        year, month = self.engine.active_month
        rows = self.engine.export_rows()
        target = directory if directory is not None else self._context.settings.export_dir
        path = self._context.exporter.export(rows, year, month, directory=target)

        await self._context.audit_logger.log_export_completed(
            user_id=self.engine.user_id,
            path=str(path),
            row_count=len(rows),
        )
        return path


def _build_recognizer(settings: Settings) -> Optional[ReceiptRecognizer]:
    try:
        return GeminiReceiptRecognizer(settings.gemini)
    except ValidationError as e:
        logger.warning("recognition_not_configured", error=str(e))
        return None


def _build_sheets_storage(app_id: str) -> tuple[RecordStorageInterface, AuditLogger]:
    # Imported here so gspread credentials are only touched when requested
    from bakery_ledger.services.storage.google_sheets import (
        GoogleSheetsAuditStorage,
        GoogleSheetsClient,
        GoogleSheetsRecordStorage,
    )

    client = GoogleSheetsClient()
    client.connect()
    return (
        GoogleSheetsRecordStorage(client, app_id=app_id),
        AuditLogger(GoogleSheetsAuditStorage(client)),
    )


def build_context(
    use_sheets: bool = False,
    storage: Optional[RecordStorageInterface] = None,
    audit_logger: Optional[AuditLogger] = None,
    recognizer: Optional[ReceiptRecognizer] = None,
    clock: Optional[Clock] = None,
    settings: Optional[Settings] = None,
) -> LedgerContext:
    """
    Factory for a fully wired LedgerContext.

    Args:
        use_sheets: Back records and audit events with Google Sheets.
                    Falls back to in-memory storage if it is not configured.
        storage: Explicit record storage (overrides use_sheets)
        audit_logger: Explicit audit logger
        recognizer: Explicit receipt recognizer; defaults to Gemini when
                    GEMINI_API_KEY is set, otherwise recognition is disabled
        clock: Time source for new records
        settings: Settings root (default: get_settings())
    """
    settings = settings or get_settings()
    ledger_settings = settings.ledger
    configure_logging(ledger_settings.log_level, ledger_settings.log_format)

    if storage is None and use_sheets:
        try:
            storage, sheets_audit_logger = _build_sheets_storage(ledger_settings.app_id)
            audit_logger = audit_logger or sheets_audit_logger
        except (StorageError, ValidationError) as e:
            logger.warning("sheets_storage_not_configured", error=str(e))
            storage = None

    if storage is None:
        storage = InMemoryRecordStorage()
    if audit_logger is None:
        audit_logger = AuditLogger(InMemoryAuditStorage())
    if recognizer is None:
        recognizer = _build_recognizer(settings)

    return LedgerContext(
        settings=ledger_settings,
        storage=storage,
        audit_logger=audit_logger,
        recognizer=recognizer,
        clock=clock,
    )
