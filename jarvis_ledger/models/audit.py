"""
Audit Models for Jarvis Ledger

Every money movement and every rule change is logged for audit purposes.
This provides:
1. Complete traceability of all operations
2. Debugging information when a multi-step write stops half-way
3. The ability to reconstruct which payment settled which balance

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step of the ledger operations has its own event type.
    """
    # Allocation rules
    RULE_REPLACED = "rule_replaced"
    RULE_REPLACE_FAILED = "rule_replace_failed"
    RULE_ARCHIVE_FAILED = "rule_archive_failed"

    # Income
    INCOME_SPLIT = "income_split"
    TRANSACTION_ADDED = "transaction_added"

    # Payments
    PAYMENT_RECORDED = "payment_recorded"
    BALANCE_SETTLED = "balance_settled"
    SETTLEMENT_WRITE_FAILED = "settlement_write_failed"

    # Duplicates
    DUPLICATE_DETECTED = "duplicate_detected"
    DUPLICATE_CHECK_DEGRADED = "duplicate_check_degraded"

    # Categories
    CATEGORY_UPDATED = "category_updated"

    # Commands and batches
    COMMAND_PARSED = "command_parsed"
    BATCH_PROCESSED = "batch_processed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what record is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'payment', 'expense', 'allocation_rule')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Record id of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one settlement walk)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered directly by a user command?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.payment_recorded(payment_id, "120.00", ...)
        event = AuditEventBuilder.rule_replaced("default", created, archived, ...)
    """

    @staticmethod
    def rule_replaced(
        rule_name: str,
        created_ids: list[str],
        archived_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_REPLACED,
            entity_type="allocation_rule",
            correlation_id=correlation_id,
            description=f"Allocation rule '{rule_name}' replaced with {len(created_ids)} rows",
            details={
                "rule_name": rule_name,
                "created_ids": created_ids,
                "archived_ids": archived_ids,
            },
            is_user_action=True,
        )

    @staticmethod
    def rule_replace_failed(
        rule_name: str,
        created_ids: list[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_REPLACE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="allocation_rule",
            correlation_id=correlation_id,
            description=f"Allocation rule '{rule_name}' replace stopped; old rows kept",
            details={
                "rule_name": rule_name,
                "orphaned_new_ids": created_ids,
            },
            error_message=error_message,
        )

    @staticmethod
    def rule_archive_failed(
        rule_name: str,
        row_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_ARCHIVE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="allocation_rule",
            entity_id=row_id,
            correlation_id=correlation_id,
            description=f"Could not archive superseded row of rule '{rule_name}'",
            error_message=error_message,
        )

    @staticmethod
    def income_split(
        rule_name: str,
        gross_amount: str,
        entry_count: int,
        failed_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INCOME_SPLIT,
            severity=AuditSeverity.WARNING if failed_count else AuditSeverity.INFO,
            entity_type="income",
            correlation_id=correlation_id,
            description=f"Split ${gross_amount} using rule '{rule_name}' into {entry_count} entries",
            details={
                "rule_name": rule_name,
                "gross_amount": gross_amount,
                "entry_count": entry_count,
                "failed_count": failed_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_added(
        transaction_id: str,
        transaction_type: str,
        amount: str,
        account: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type=transaction_type,
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Added {transaction_type} of ${amount} to {account}",
            details={
                "amount": amount,
                "account": account,
            },
        )

    @staticmethod
    def payment_recorded(
        payment_id: str,
        amount: str,
        from_account: str,
        to_account: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_RECORDED,
            entity_type="payment",
            entity_id=payment_id,
            correlation_id=correlation_id,
            description=f"Payment of ${amount} recorded: {from_account} -> {to_account}",
            details={
                "amount": amount,
                "from_account": from_account,
                "to_account": to_account,
            },
            is_user_action=True,
        )

    @staticmethod
    def balance_settled(
        balance_id: str,
        payment_id: str,
        amount_applied: str,
        fully_settled: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        kind = "fully" if fully_settled else "partially"
        return AuditEvent(
            event_type=AuditEventType.BALANCE_SETTLED,
            entity_type="expense",
            entity_id=balance_id,
            correlation_id=correlation_id,
            description=f"Balance {kind} settled with ${amount_applied}",
            details={
                "payment_id": payment_id,
                "amount_applied": amount_applied,
                "fully_settled": fully_settled,
            },
        )

    @staticmethod
    def settlement_write_failed(
        record_id: str,
        payment_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="expense",
            entity_id=record_id,
            correlation_id=correlation_id,
            description="Settlement write failed; walk stopped",
            details={"payment_id": payment_id},
            error_message=error_message,
        )

    @staticmethod
    def duplicate_detected(
        kind: str,
        duplicate_id: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUPLICATE_DETECTED,
            severity=AuditSeverity.WARNING,
            entity_type=kind,
            entity_id=duplicate_id,
            correlation_id=correlation_id,
            description=f"Possible duplicate {kind} of ${amount}",
            details={"amount": amount},
        )

    @staticmethod
    def duplicate_check_degraded(
        kind: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUPLICATE_CHECK_DEGRADED,
            severity=AuditSeverity.WARNING,
            entity_type=kind,
            correlation_id=correlation_id,
            description="Duplicate check unavailable; proceeding without it",
            error_message=error_message,
        )

    @staticmethod
    def category_updated(
        expense_id: str,
        category: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_UPDATED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense re-categorized as '{category}'",
            details={"category": category},
            is_user_action=True,
        )

    @staticmethod
    def command_parsed(
        action: str,
        message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMMAND_PARSED,
            entity_type="command",
            correlation_id=correlation_id,
            description=f"Command parsed as '{action}'",
            details={"message": message[:200]},
            is_user_action=True,
        )

    @staticmethod
    def batch_processed(
        action: str,
        item_count: int,
        failed_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BATCH_PROCESSED,
            severity=AuditSeverity.WARNING if failed_count else AuditSeverity.INFO,
            entity_type="batch",
            correlation_id=correlation_id,
            description=f"Batch '{action}' processed {item_count} items, {failed_count} failed",
            details={
                "item_count": item_count,
                "failed_count": failed_count,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
