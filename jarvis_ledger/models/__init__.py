"""
Data Models Package

This package contains all Pydantic models used in the Jarvis Ledger system.
All data flowing through the system must conform to these schemas.
"""

from jarvis_ledger.models.actions import ParsedAction, parsed_action_adapter
from jarvis_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from jarvis_ledger.models.ledger import (
    Account,
    AllocationInput,
    AllocationRow,
    Collection,
    OutstandingBalance,
    PaymentInput,
    SplitIncomeInput,
    TransactionInput,
    TransactionType,
)
from jarvis_ledger.models.record import FieldFilter, Record, SortKey
from jarvis_ledger.models.results import (
    ActionOutcome,
    BatchResult,
    DuplicateCheckResult,
    ErrorKind,
    OperationError,
    OperationResult,
    OperationStatus,
    RuleReplaceResult,
    SettlementResult,
    SplitIncomeResult,
    TransactionResult,
)

__all__ = [
    # Actions
    "ParsedAction",
    "parsed_action_adapter",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Ledger models
    "Account",
    "AllocationInput",
    "AllocationRow",
    "Collection",
    "OutstandingBalance",
    "PaymentInput",
    "SplitIncomeInput",
    "TransactionInput",
    "TransactionType",
    # Record store wire models
    "FieldFilter",
    "Record",
    "SortKey",
    # Results
    "ActionOutcome",
    "BatchResult",
    "DuplicateCheckResult",
    "ErrorKind",
    "OperationError",
    "OperationResult",
    "OperationStatus",
    "RuleReplaceResult",
    "SettlementResult",
    "SplitIncomeResult",
    "TransactionResult",
]
