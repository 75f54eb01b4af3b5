"""Exception taxonomy for the reconciliation engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .saga import MutationSaga, SagaReport


class LedgerError(Exception):
    """Base class for every error raised by the poultry ledger."""


class ValidationError(LedgerError, ValueError):
    """Raised when caller input is rejected before any write happens."""


class MissingReferenceError(LedgerError):
    """Raised when a referenced record id is unknown to the store."""


class StoreError(LedgerError):
    """Raised when the ledger store fails to read or write a record."""


class CheckpointConflictError(StoreError):
    """Raised when a checkpoint moved between read and conditional update."""


class PartialMutationError(StoreError):
    """Raised when a mutation failed after its source write succeeded.

    The attached report lists completed, failed, and pending steps so the
    caller can resume or correct the ledger by hand. ``drifted`` is true when
    a cash compensation step did not complete, meaning the system balance no
    longer reflects the source ledgers. ``saga`` is the interrupted saga;
    ``saga.resume()`` retries from the failed step.
    """

    def __init__(self, message: str, report: "SagaReport", saga: Optional["MutationSaga"] = None) -> None:
        super().__init__(message)
        self.report = report
        self.saga = saga

    @property
    def drifted(self) -> bool:
        return self.report.drifted


__all__ = [
    "LedgerError",
    "ValidationError",
    "MissingReferenceError",
    "StoreError",
    "CheckpointConflictError",
    "PartialMutationError",
]
