"""Public activitygrid package exports."""

from __future__ import annotations

from activitygrid.__version__ import __version__
from activitygrid.backend import LedgerBackend
from activitygrid.client import ActivityGridClient
from activitygrid.currency import CurrencyResolver
from activitygrid.exceptions import (
    NotFoundError,
    RemoteLedgerError,
    SaveInProgressError,
    ValidationError,
)
from activitygrid.ledger import ActivityLedger
from activitygrid.models import (
    AccountRecord,
    BulkMutationResult,
    ChangeSummary,
    DraftTransaction,
    EditOperation,
    PersistedTransaction,
    SaveOutcome,
    SavePayload,
)
from activitygrid.payload import build_save_payload
from activitygrid.remote import HttpLedgerBackend
from activitygrid.updates import UpdateContext, apply_transaction_update
from activitygrid.validation import validate_transactions_for_save

__all__ = [
    "__version__",
    "ActivityGridClient",
    "ActivityLedger",
    "CurrencyResolver",
    "UpdateContext",
    "apply_transaction_update",
    "build_save_payload",
    "validate_transactions_for_save",
    "LedgerBackend",
    "HttpLedgerBackend",
    "NotFoundError",
    "RemoteLedgerError",
    "SaveInProgressError",
    "ValidationError",
    "AccountRecord",
    "BulkMutationResult",
    "ChangeSummary",
    "DraftTransaction",
    "EditOperation",
    "PersistedTransaction",
    "SaveOutcome",
    "SavePayload",
]
