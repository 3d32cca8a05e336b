"""
Ledger Engine Package

The deterministic core: allocation rules, income splits, payment
settlement, duplicate detection, and the executor that runs parsed
actions against them.
"""

from jarvis_ledger.engine.batch import BatchOrchestrator
from jarvis_ledger.engine.categories import CategoryService
from jarvis_ledger.engine.duplicates import DuplicateDetector
from jarvis_ledger.engine.errors import (
    InvalidInputError,
    LedgerError,
    NotFoundError,
    UpstreamFailureError,
)
from jarvis_ledger.engine.executor import ActionExecutor
from jarvis_ledger.engine.income import IncomeSplitter
from jarvis_ledger.engine.rules import AllocationRuleManager
from jarvis_ledger.engine.settlement import PaymentSettlementEngine
from jarvis_ledger.engine.transactions import TransactionRecorder

__all__ = [
    "ActionExecutor",
    "AllocationRuleManager",
    "BatchOrchestrator",
    "CategoryService",
    "DuplicateDetector",
    "IncomeSplitter",
    "PaymentSettlementEngine",
    "TransactionRecorder",
    # Errors
    "InvalidInputError",
    "LedgerError",
    "NotFoundError",
    "UpstreamFailureError",
]
