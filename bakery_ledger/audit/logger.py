"""
Audit Logger

Every mutation request, storage failure and snapshot decision is logged.

The audit logger:
- Always logs locally through structlog
- Persists events to audit storage when one is configured (async)
- Never crashes the caller if persisting an event fails
- Supports correlation IDs to trace related events
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from bakery_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from bakery_ledger.services.storage import AuditStorageInterface, StorageError


def configure_logging(level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure structlog on top of stdlib logging.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        log_format: "json" for machine-readable lines, "console" for humans
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level, force=True)

    renderer = (
        structlog.dev.ConsoleRenderer()
        if log_format == "console"
        else structlog.processors.JSONRenderer(ensure_ascii=False)
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("bakery_ledger.audit")

    def emit(self, event: AuditEvent) -> None:
        """Log an event locally only. Safe to call from synchronous code."""
        log_dict = event.to_log_dict()
        if event.severity is AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity is AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity is AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event locally and persist it if storage is available.

        Returns True if the storage write succeeded (or no storage configured).
        """
        self.emit(event)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except StorageError as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_record_submitted(
        self,
        user_id: str,
        record_id: str,
        record_type: str,
        main_category: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.record_submitted(
            user_id=user_id,
            record_id=record_id,
            record_type=record_type,
            main_category=main_category,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_record_deleted(
        self,
        user_id: str,
        record_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.record_deleted(
            user_id=user_id,
            record_id=record_id,
            correlation_id=correlation_id,
        ))

    async def log_persistence_failed(
        self,
        user_id: str,
        operation: str,
        error_message: str,
        record_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.persistence_failed(
            user_id=user_id,
            operation=operation,
            error_message=error_message,
            record_id=record_id,
            correlation_id=correlation_id,
        ))

    async def log_receipt_recognized(
        self,
        total: str,
        item_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_recognized(
            total=total,
            item_count=item_count,
            correlation_id=correlation_id,
        ))

    async def log_recognition_failed(
        self,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.recognition_failed(
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_export_completed(
        self,
        user_id: Optional[str],
        path: str,
        row_count: int,
    ) -> None:
        await self.log(AuditEventBuilder.export_completed(
            user_id=user_id,
            path=path,
            row_count=row_count,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., scanning a receipt and
    saving the resulting record).
    """
    return uuid4()
