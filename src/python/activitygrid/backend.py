"""Remote ledger interface consumed by the grid client."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from activitygrid.models import BulkMutationResult


class LedgerBackend(ABC):
    """Abstract interface for remote ledger backends."""

    @abstractmethod
    def bulk_mutate(self, request: dict[str, Any]) -> BulkMutationResult:
        """Submit one ``{creates, updates, deleteIds}`` batch.

        Raises:
            RemoteLedgerError: If the batch could not be processed or was
                rejected without persisting anything.
        """

    @abstractmethod
    def list_activities(self, account_id: str | None = None) -> list[dict[str, Any]]:
        """Return camelCase activity records, optionally for one account."""
