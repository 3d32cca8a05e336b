"""
Batch Orchestrator

Runs many operations one after another and collects one outcome per item.

DESIGN DECISION: Items run sequentially, never concurrently. An item's
side effects (say, a rule change) are visible to the next item, and a
failure in the middle of a batch leaves a clean prefix/suffix picture
instead of an interleaving.

One item failing, even with an unexpected exception, never stops the
items after it.
"""

from typing import Awaitable, Callable, Optional, Sequence, TypeVar
from uuid import UUID

import structlog

from jarvis_ledger.audit import AuditLogger
from jarvis_ledger.engine.errors import UpstreamFailureError
from jarvis_ledger.models.results import (
    ActionOutcome,
    BatchResult,
    OperationResult,
    OperationStatus,
)


logger = structlog.get_logger(__name__)

ItemT = TypeVar("ItemT")


def outcome_from(action: str, result: OperationResult, index: Optional[int] = None) -> ActionOutcome:
    """Wrap an operation result as the outcome of one action."""
    return ActionOutcome(
        action=action,
        index=index,
        status=result.status,
        error=result.error,
        message=result.message,
        result=result,
    )


def batch_status(items: Sequence[ActionOutcome]) -> OperationStatus:
    """SUCCEEDED if nothing failed, FAILED if everything failed, PARTIAL otherwise."""
    if not items:
        return OperationStatus.SUCCEEDED
    failed = sum(1 for i in items if i.status == OperationStatus.FAILED)
    partial = sum(1 for i in items if i.status == OperationStatus.PARTIAL)
    if failed == len(items):
        return OperationStatus.FAILED
    if failed or partial:
        return OperationStatus.PARTIAL
    return OperationStatus.SUCCEEDED


class BatchOrchestrator:
    """Sequential, failure-isolating batch runner."""

    def __init__(self, audit: Optional[AuditLogger] = None):
        self._audit = audit or AuditLogger()

    async def run(
        self,
        action: str,
        items: Sequence[ItemT],
        handler: Callable[[ItemT], Awaitable[OperationResult]],
        correlation_id: Optional[UUID] = None,
    ) -> BatchResult:
        """
        Apply handler to every item in order.

        Args:
            action: Name of the per-item action, used in outcomes and audit
            items: Items to process
            handler: Async callable returning an OperationResult

        Returns:
            BatchResult with one ActionOutcome per item, in input order
        """
        outcomes: list[ActionOutcome] = []
        for index, item in enumerate(items):
            try:
                result = await handler(item)
            except Exception as e:
                # Isolate the item; the rest of the batch still runs
                logger.exception("batch_item_crashed", action=action, index=index)
                await self._audit.log_error(
                    error_type="batch_item_crashed",
                    error_message=str(e),
                    details={"action": action, "index": index},
                    correlation_id=correlation_id,
                )
                outcomes.append(ActionOutcome.failure(
                    UpstreamFailureError(f"Unexpected error: {e}").to_error(),
                    action=action,
                    index=index,
                ))
                continue
            outcomes.append(outcome_from(action, result, index=index))

        batch = BatchResult(items=outcomes, status=batch_status(outcomes))
        batch.message = (
            f"{batch.succeeded_count} of {len(outcomes)} {action} item(s) succeeded"
        )
        if batch.status == OperationStatus.FAILED and outcomes:
            batch.error = outcomes[0].error

        await self._audit.log_batch_processed(
            action=action,
            item_count=len(outcomes),
            failed_count=batch.failed_count,
            correlation_id=correlation_id,
        )
        return batch
