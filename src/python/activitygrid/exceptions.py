"""Custom exception types for activitygrid."""

from __future__ import annotations

from typing import Any


class ValidationError(Exception):
    """Raised when dirty rows fail the pre-save validation gate."""

    def __init__(self, message: str, issues: list[Any]) -> None:
        super().__init__(message)
        self.issues = issues


class RemoteLedgerError(Exception):
    """Raised when the remote ledger rejects or cannot process a batch."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class NotFoundError(Exception):
    """Raised when a requested row does not exist in the ledger."""


class SaveInProgressError(RuntimeError):
    """Raised when save is triggered while another save is in flight."""
