"""Client orchestration layer for the activity grid."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterable, Mapping
import datetime as dt
import json
import logging
import os

from activitygrid.backend import LedgerBackend
from activitygrid.conversions import utc_now
from activitygrid.exceptions import (
    NotFoundError,
    RemoteLedgerError,
    SaveInProgressError,
    ValidationError,
)
from activitygrid.ledger import ActivityLedger
from activitygrid.models import (
    SAVE_NO_CHANGES,
    SAVE_REMOTE_FAILED,
    SAVE_SUCCESS,
    SAVE_VALIDATION_FAILED,
    AccountRecord,
    ChangeSummary,
    DraftTransaction,
    EditBatchResult,
    EditOperation,
    LocalTransaction,
    SaveOutcome,
    SavePayload,
    ValidationIssue,
)
from activitygrid.payload import build_save_payload
from activitygrid.remote import DEFAULT_TIMEOUT_SECONDS, HttpLedgerBackend
from activitygrid.schema import TRACKED_FIELDS
from activitygrid.updates import UpdateContext
from activitygrid.validation import validate_transactions_for_save

# Configure logging
logger = logging.getLogger(__name__)
log_level = os.environ.get('LOGGING_LEVEL', 'INFO').upper()
logger.setLevel(getattr(logging, log_level, logging.INFO))
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('%(levelname)s - %(name)s - %(message)s'))
    logger.addHandler(handler)

CONFIG_ENV_VAR = "ACTIVITYGRID_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".activitygrid" / "config.json"
DEFAULT_BASE_CURRENCY = "USD"
MAX_REPORTED_ISSUES = 3

STATE_IDLE = "idle"
STATE_VALIDATING = "validating"
STATE_COMPILING = "compiling"
STATE_SUBMITTING = "submitting"
STATE_RECONCILING = "reconciling"

ALLOWED_EDIT_OPERATIONS = {"add", "update", "duplicate", "delete"}


def summarize_issues(issues: list[ValidationIssue], limit: int = MAX_REPORTED_ISSUES) -> str:
    """Join the first few issue messages for display."""
    messages = [issue.message for issue in issues[:limit]]
    summary = "; ".join(messages)
    remaining = len(issues) - limit
    if remaining > 0:
        summary = f"{summary} (and {remaining} more)"
    return summary


class ActivityGridClient:
    """Coordinate grid edits, the change ledger and commits to the remote ledger."""

    def __init__(
        self,
        backend: LedgerBackend | None = None,
        accounts: Iterable[AccountRecord] | None = None,
        asset_currencies: Mapping[str, str] | None = None,
        base_currency: str | None = None,
        base_url: str | None = None,
        api_token: str | None = None,
        timeout: float | None = None,
        config_path: str | Path | None = None,
        clock: Callable[[], dt.datetime] = utc_now,
    ) -> None:
        """Initialize the client with a remote ledger backend.

        Args:
            backend: Optional custom ledger backend; an HTTP backend is built
                from ``base_url`` or the config file when omitted
            accounts: Accounts rows can be assigned to
            asset_currencies: Asset symbol or id to currency lookup
            base_currency: Application base currency
            base_url: Remote ledger API root
            api_token: Optional bearer token
            timeout: HTTP timeout in seconds
            config_path: Optional path to a JSON config file
            clock: Source of modification timestamps
        """
        self.config = self._load_config(config_path)
        self.base_currency = str(
            base_currency or self.config.get("base_currency") or DEFAULT_BASE_CURRENCY
        ).strip().upper()
        self.backend = backend or self._build_backend(base_url, api_token, timeout)
        self._clock = clock
        if accounts is None:
            accounts = self._accounts_from_config()
        if asset_currencies is None:
            asset_currencies = self.config.get("asset_currencies") or {}
        self.accounts: list[AccountRecord] = list(accounts)
        self.ledger = ActivityLedger(
            UpdateContext.build(self.accounts, asset_currencies, self.base_currency, now=clock)
        )
        self.selected_ids: set[str] = set()
        self.state = STATE_IDLE
        self._saving = False

    def _load_config(self, config_path: str | Path | None) -> dict:
        """Load config file if present, else return empty config."""
        if config_path is not None:
            path = Path(config_path)
        elif os.environ.get(CONFIG_ENV_VAR):
            path = Path(os.environ[CONFIG_ENV_VAR])
        else:
            path = DEFAULT_CONFIG_PATH
        if not path.exists():
            return {}
        with path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        if not isinstance(payload, dict):
            return {}
        return payload

    def _build_backend(
        self,
        base_url: str | None,
        api_token: str | None,
        timeout: float | None,
    ) -> LedgerBackend:
        resolved_url = base_url or self.config.get("base_url")
        if not resolved_url:
            raise ValueError("base_url is required when no backend is provided")
        return HttpLedgerBackend(
            base_url=resolved_url,
            api_token=api_token or self.config.get("api_token"),
            timeout=timeout if timeout is not None else float(
                self.config.get("timeout", DEFAULT_TIMEOUT_SECONDS)
            ),
        )

    def _accounts_from_config(self) -> list[AccountRecord]:
        accounts = []
        for item in self.config.get("accounts") or []:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            accounts.append(
                AccountRecord(
                    id=str(item["id"]),
                    name=str(item.get("name") or item["id"]),
                    currency=str(item.get("currency") or self.base_currency).upper(),
                    is_active=bool(item.get("is_active", True)),
                )
            )
        return accounts

    def set_reference_data(
        self,
        accounts: Iterable[AccountRecord] | None = None,
        asset_currencies: Mapping[str, str] | None = None,
    ) -> None:
        """Replace the account list and/or asset currency table used for edits."""
        if accounts is not None:
            self.accounts = list(accounts)
        lookup = (
            asset_currencies
            if asset_currencies is not None
            else self.ledger.context.resolver.asset_currency_lookup
        )
        self.ledger.context = UpdateContext.build(
            self.accounts, lookup, self.base_currency, now=self._clock
        )

    @property
    def is_saving(self) -> bool:
        return self._saving

    @property
    def transactions(self) -> list[LocalTransaction]:
        return self.ledger.visible_transactions

    def summary(self) -> ChangeSummary:
        return self.ledger.change_summary()

    def load(self, account_id: str | None = None) -> list[LocalTransaction]:
        """Load activities from the remote ledger, discarding local state."""
        records = self.backend.list_activities(account_id)
        self.selected_ids.clear()
        return self.ledger.load(records)

    def refresh(self, account_id: str | None = None) -> list[LocalTransaction]:
        """Merge fresh server data while keeping unsaved edits."""
        records = self.backend.list_activities(account_id)
        return self.ledger.sync_from_server(records)

    # Row operations

    def draft(self) -> DraftTransaction:
        return self.ledger.draft(self.accounts)

    def draft_many(self, count: int) -> list[DraftTransaction]:
        return self.ledger.draft_many(self.accounts, count)

    def duplicate(self, transaction_id: str) -> DraftTransaction:
        return self.ledger.duplicate(transaction_id)

    def update_field(self, transaction_id: str, field: str, value: object) -> LocalTransaction:
        return self.ledger.update_field(transaction_id, field, value)

    def apply_bulk(self, changes: Mapping[str, Mapping[str, object]]) -> list[str]:
        return self.ledger.apply_bulk(changes)

    def delete_rows(self, transaction_ids: Iterable[str]) -> None:
        ids = list(transaction_ids)
        self.ledger.mark_for_deletion(ids)
        self.selected_ids.difference_update(ids)

    def select(self, transaction_ids: Iterable[str]) -> None:
        known_ids = {tx.id for tx in self.ledger.visible_transactions}
        self.selected_ids.update(tx_id for tx_id in transaction_ids if tx_id in known_ids)

    def clear_selection(self) -> None:
        self.selected_ids.clear()

    def delete_selected(self) -> None:
        self.delete_rows(sorted(self.selected_ids))

    def cancel(self) -> None:
        """Discard all unsaved work."""
        self.ledger.reset()
        self.selected_ids.clear()
        logger.info("Discarded unsaved changes")

    # Scripted edits

    @staticmethod
    def _ordered_fields(parameters: Mapping[str, object]) -> dict[str, object]:
        unknown = [name for name in parameters if name not in TRACKED_FIELDS]
        if unknown:
            raise ValueError(f"Unsupported field(s): {', '.join(sorted(unknown))}")
        return {name: parameters[name] for name in TRACKED_FIELDS if name in parameters}

    def _apply_edit_operation(self, operation: EditOperation) -> str:
        action = operation.operation.strip().lower()
        if action not in ALLOWED_EDIT_OPERATIONS:
            raise ValueError(f"Unsupported edit operation: {operation.operation}")
        parameters = self._ordered_fields(operation.parameters or {})

        if action == "add":
            draft = self.draft()
            self.ledger.apply_bulk({draft.id: parameters})
            return draft.id
        if not operation.id:
            raise ValueError(f"Edit operation '{action}' requires an id")
        if action == "duplicate":
            draft = self.duplicate(operation.id)
            if parameters:
                self.ledger.apply_bulk({draft.id: parameters})
            return draft.id
        self.ledger.get(operation.id)
        if action == "update":
            if not parameters:
                raise ValueError("Update requires at least one field")
            self.ledger.apply_bulk({operation.id: parameters})
            return operation.id
        self.delete_rows([operation.id])
        return operation.id

    def apply_operations(
        self,
        operations: list[EditOperation],
        continue_on_error: bool = True,
    ) -> EditBatchResult:
        """Apply scripted edits to the ledger in order.

        Args:
            operations: Edits to apply
            continue_on_error: If True, collect failures and keep going. If
                False, raise on the first error.

        Returns:
            EditBatchResult with the affected row id of each successful edit
        """
        successful: list[tuple[EditOperation, str]] = []
        failed: list[tuple[EditOperation, Exception]] = []
        for operation in operations:
            try:
                successful.append((operation, self._apply_edit_operation(operation)))
            except (ValueError, NotFoundError) as exc:
                if not continue_on_error:
                    raise
                logger.debug(f"Edit operation failed: {operation} ({exc})")
                failed.append((operation, exc))
        return EditBatchResult(successful=successful, failed=failed)

    # Commit

    def compile_payload(self) -> SavePayload:
        """Compile the current ledger state without submitting it."""
        state = self.ledger.change_state()
        return build_save_payload(
            self.ledger.transactions,
            state.dirty_ids,
            self.ledger.pending_delete_ids,
            self.ledger.context.resolver,
            self.base_currency,
        )

    def save(self, raise_on_error: bool = False) -> SaveOutcome:
        """Validate, compile and submit pending changes as one bulk mutation.

        Args:
            raise_on_error: Raise ValidationError or RemoteLedgerError instead
                of returning a failed outcome

        Returns:
            SaveOutcome describing what happened

        Raises:
            SaveInProgressError: If another save is in flight
        """
        if self._saving:
            raise SaveInProgressError("A save is already in progress")
        self._saving = True
        try:
            return self._save(raise_on_error)
        finally:
            self._saving = False
            self.state = STATE_IDLE

    def _save(self, raise_on_error: bool) -> SaveOutcome:
        state = self.ledger.change_state()
        if not state.dirty_ids and not state.pending_delete_ids:
            return SaveOutcome(status=SAVE_NO_CHANGES, message="No changes to save")

        self.state = STATE_VALIDATING
        transactions = self.ledger.transactions
        validation = validate_transactions_for_save(transactions, state.dirty_ids)
        if not validation.is_valid:
            message = summarize_issues(validation.errors)
            logger.info(f"Save blocked by validation: {message}")
            if raise_on_error:
                raise ValidationError(message, validation.errors)
            return SaveOutcome(
                status=SAVE_VALIDATION_FAILED,
                message=message,
                issues=list(validation.errors),
            )

        self.state = STATE_COMPILING
        payload = build_save_payload(
            transactions,
            state.dirty_ids,
            self.ledger.pending_delete_ids,
            self.ledger.context.resolver,
            self.base_currency,
        )
        if payload.is_empty:
            return SaveOutcome(status=SAVE_NO_CHANGES, message="No changes to save")

        self.state = STATE_SUBMITTING
        try:
            result = self.backend.bulk_mutate(payload.to_request())
            if result.errors and result.persisted_nothing:
                raise RemoteLedgerError(
                    "Remote ledger rejected the batch",
                    details={"errors": [error.message for error in result.errors]},
                )
        except RemoteLedgerError as exc:
            logger.error(f"Save failed: {exc}")
            if raise_on_error:
                raise
            return SaveOutcome(status=SAVE_REMOTE_FAILED, message=str(exc), payload=payload)

        self.state = STATE_RECONCILING
        self.ledger.reconcile(result, payload, {tx.id: tx for tx in transactions})
        self.selected_ids.clear()
        message = (
            f"Saved {len(payload.creates)} new, {len(payload.updates)} updated, "
            f"{len(payload.delete_ids)} deleted"
        )
        if result.errors:
            message = f"{message} with {len(result.errors)} error(s)"
        logger.info(message)
        return SaveOutcome(status=SAVE_SUCCESS, message=message, result=result, payload=payload)
