"""
Audit Logger

DESIGN DECISION: Every money movement in the system is logged.
This provides:
1. Complete traceability (which payment settled which balance)
2. Debugging capability
3. A record of partial failures the user may need to fix by hand
4. Compliance readiness

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from jarvis_ledger.models.audit import AuditEvent, AuditEventBuilder
from jarvis_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
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
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Send structured logs to stderr, dropping records below level."""
    logging.basicConfig(format="%(message)s", level=level)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("jarvis_ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        # Always log locally
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        # Persist to storage if available
        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_rule_replaced(
        self,
        rule_name: str,
        created_ids: list[str],
        archived_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a completed allocation rule replace."""
        await self.log(AuditEventBuilder.rule_replaced(
            rule_name=rule_name,
            created_ids=created_ids,
            archived_ids=archived_ids,
            correlation_id=correlation_id,
        ))

    async def log_rule_replace_failed(
        self,
        rule_name: str,
        created_ids: list[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a replace that stopped while creating new rows."""
        await self.log(AuditEventBuilder.rule_replace_failed(
            rule_name=rule_name,
            created_ids=created_ids,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_rule_archive_failed(
        self,
        rule_name: str,
        row_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.rule_archive_failed(
            rule_name=rule_name,
            row_id=row_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_income_split(
        self,
        rule_name: str,
        gross_amount: str,
        entry_count: int,
        failed_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an income split."""
        await self.log(AuditEventBuilder.income_split(
            rule_name=rule_name,
            gross_amount=gross_amount,
            entry_count=entry_count,
            failed_count=failed_count,
            correlation_id=correlation_id,
        ))

    async def log_transaction_added(
        self,
        transaction_id: str,
        transaction_type: str,
        amount: str,
        account: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_added(
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=amount,
            account=account,
            correlation_id=correlation_id,
        ))

    async def log_payment_recorded(
        self,
        payment_id: str,
        amount: str,
        from_account: str,
        to_account: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log payment creation (before any balance is touched)."""
        await self.log(AuditEventBuilder.payment_recorded(
            payment_id=payment_id,
            amount=amount,
            from_account=from_account,
            to_account=to_account,
            correlation_id=correlation_id,
        ))

    async def log_balance_settled(
        self,
        balance_id: str,
        payment_id: str,
        amount_applied: str,
        fully_settled: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.balance_settled(
            balance_id=balance_id,
            payment_id=payment_id,
            amount_applied=amount_applied,
            fully_settled=fully_settled,
            correlation_id=correlation_id,
        ))

    async def log_settlement_write_failed(
        self,
        record_id: str,
        payment_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a balance or payment write that failed mid-settlement."""
        await self.log(AuditEventBuilder.settlement_write_failed(
            record_id=record_id,
            payment_id=payment_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_duplicate_detected(
        self,
        kind: str,
        duplicate_id: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.duplicate_detected(
            kind=kind,
            duplicate_id=duplicate_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_duplicate_check_degraded(
        self,
        kind: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.duplicate_check_degraded(
            kind=kind,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_category_updated(
        self,
        expense_id: str,
        category: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.category_updated(
            expense_id=expense_id,
            category=category,
            correlation_id=correlation_id,
        ))

    async def log_command_parsed(
        self,
        action: str,
        message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.command_parsed(
            action=action,
            message=message,
            correlation_id=correlation_id,
        ))

    async def log_batch_processed(
        self,
        action: str,
        item_count: int,
        failed_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.batch_processed(
            action=action,
            item_count=item_count,
            failed_count=failed_count,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., one command).
    Pass it through all subsequent operations.
    """
    return uuid4()
