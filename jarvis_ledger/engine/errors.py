"""
Ledger Engine Errors

Engine code raises these internally; every public operation catches
them at its boundary and returns a FAILED result instead. Only truly
unexpected exceptions escape an operation.
"""

from typing import TypeVar

from pydantic import BaseModel, ValidationError

from jarvis_ledger.models.results import ErrorKind, OperationError
from jarvis_ledger.services.storage.interface import RecordNotFoundError


ModelT = TypeVar("ModelT", bound=BaseModel)


class LedgerError(Exception):
    """Base exception for expected ledger failures."""

    kind: ErrorKind = ErrorKind.UPSTREAM_FAILURE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_error(self) -> OperationError:
        return OperationError(kind=self.kind, message=self.message)


class InvalidInputError(LedgerError):
    """Malformed or out-of-range arguments."""
    kind = ErrorKind.INVALID_INPUT


class NotFoundError(LedgerError):
    """Unresolvable account, rule or record reference."""
    kind = ErrorKind.NOT_FOUND


class UpstreamFailureError(LedgerError):
    """The record store errored, or an operation crashed unexpectedly."""
    kind = ErrorKind.UPSTREAM_FAILURE


def validate_input(model: type[ModelT], **values) -> ModelT:
    """Build an input model, turning pydantic errors into InvalidInputError."""
    try:
        return model(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidInputError(f"Invalid {model.__name__}: {problems}")


def error_from(exc: Exception) -> OperationError:
    """Map a LedgerError or storage failure to an OperationError."""
    if isinstance(exc, LedgerError):
        return exc.to_error()
    if isinstance(exc, RecordNotFoundError):
        return OperationError(kind=ErrorKind.NOT_FOUND, message=str(exc))
    return UpstreamFailureError(f"Record store error: {exc}").to_error()
