"""Change-tracking ledger: the authoritative local copy of the grid."""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
import logging
from typing import Any, Callable, Iterable, Mapping

from activitygrid.currency import normalize_cash_asset_key
from activitygrid.exceptions import NotFoundError
from activitygrid.models import (
    AccountRecord,
    BulkMutationResult,
    ChangeState,
    ChangeSummary,
    DraftTransaction,
    LocalTransaction,
    PersistedTransaction,
    SavePayload,
    generate_temp_id,
    to_draft,
    to_persisted,
    transaction_from_record,
)
from activitygrid.schema import BUY
from activitygrid.updates import (
    UpdateContext,
    apply_transaction_update,
    values_are_equal,
)

logger = logging.getLogger(__name__)

ChangeListener = Callable[[ChangeSummary], None]


class ActivityLedger:
    """Ordered transaction list plus the dirty and pending-delete sets.

    Only methods on this class mutate the list and the sets. Accessors return
    copies, so a snapshot taken before a save is unaffected by later edits.
    Pending-delete ids keep insertion order.
    """

    def __init__(
        self,
        context: UpdateContext,
        transactions: Iterable[LocalTransaction] | None = None,
    ) -> None:
        self.context = context
        self._transactions: list[LocalTransaction] = list(transactions or [])
        self._dirty_ids: set[str] = set()
        self._pending_delete_ids: dict[str, None] = {}
        self._listeners: list[ChangeListener] = []

    # Observers

    def subscribe(self, callback: ChangeListener) -> Callable[[], None]:
        """Register ``callback`` for change summaries; returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        summary = self.change_summary()
        for listener in list(self._listeners):
            listener(summary)

    # Accessors

    @property
    def transactions(self) -> list[LocalTransaction]:
        return list(self._transactions)

    @property
    def visible_transactions(self) -> list[LocalTransaction]:
        """Rows to display; persisted rows queued for deletion are hidden."""
        return [tx for tx in self._transactions if tx.id not in self._pending_delete_ids]

    @property
    def dirty_ids(self) -> frozenset[str]:
        return frozenset(self._dirty_ids)

    @property
    def pending_delete_ids(self) -> tuple[str, ...]:
        return tuple(self._pending_delete_ids)

    def find(self, transaction_id: str) -> LocalTransaction | None:
        for transaction in self._transactions:
            if transaction.id == transaction_id:
                return transaction
        return None

    def get(self, transaction_id: str) -> LocalTransaction:
        transaction = self.find(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return transaction

    def _index_of(self, transaction_id: str) -> int:
        for index, transaction in enumerate(self._transactions):
            if transaction.id == transaction_id:
                return index
        raise NotFoundError(f"Transaction not found: {transaction_id}")

    def change_state(self) -> ChangeState:
        return ChangeState(
            dirty_ids=frozenset(self._dirty_ids),
            pending_delete_ids=frozenset(self._pending_delete_ids),
        )

    def change_summary(self) -> ChangeSummary:
        """Project the tracking sets against the row variants."""
        new_count = 0
        updated_count = 0
        for transaction in self._transactions:
            if transaction.id not in self._dirty_ids:
                continue
            if transaction.is_new:
                new_count += 1
            else:
                updated_count += 1
        known_ids = {tx.id for tx in self._transactions}
        deleted_count = sum(1 for tx_id in self._pending_delete_ids if tx_id in known_ids)
        return ChangeSummary(
            new_count=new_count,
            updated_count=updated_count,
            deleted_count=deleted_count,
        )

    @property
    def has_unsaved_changes(self) -> bool:
        return self.change_summary().total_pending_changes > 0

    # Loading

    def load(self, records: Iterable[Mapping[str, Any]]) -> list[LocalTransaction]:
        """Replace the whole ledger with rows materialized from remote records."""
        self._transactions = [transaction_from_record(record) for record in records]
        self._dirty_ids.clear()
        self._pending_delete_ids.clear()
        logger.debug(f"Loaded {len(self._transactions)} transactions")
        self._notify()
        return self.transactions

    def sync_from_server(self, records: Iterable[Mapping[str, Any]]) -> list[LocalTransaction]:
        """Merge a fresh server page without losing unsaved work.

        Clean persisted rows take the server version. Dirty rows, pending
        deletes and drafts are kept as they are. Clean rows missing from the
        server page are dropped.
        """
        incoming = [
            tx for tx in (transaction_from_record(record) for record in records)
            if isinstance(tx, PersistedTransaction)
        ]
        incoming_ids = {tx.id for tx in incoming}
        local_by_id = {tx.id: tx for tx in self._transactions}

        merged: list[LocalTransaction] = []
        for transaction in incoming:
            local = local_by_id.get(transaction.id)
            if local is not None and (
                local.id in self._dirty_ids or local.id in self._pending_delete_ids
            ):
                merged.append(local)
            else:
                merged.append(transaction)
        for transaction in self._transactions:
            if transaction.id in incoming_ids:
                continue
            if isinstance(transaction, DraftTransaction) or transaction.id in self._dirty_ids:
                merged.append(transaction)
            elif transaction.id in self._pending_delete_ids:
                merged.append(transaction)
        self._transactions = merged
        self._notify()
        return self.transactions

    # Tracking sets

    def mark_dirty(self, transaction_ids: Iterable[str]) -> None:
        known_ids = {tx.id for tx in self._transactions}
        self._dirty_ids.update(tx_id for tx_id in transaction_ids if tx_id in known_ids)
        self._notify()

    def clear_dirty(self, transaction_ids: Iterable[str]) -> None:
        self._dirty_ids.difference_update(transaction_ids)
        self._notify()

    def mark_for_deletion(self, transaction_ids: Iterable[str]) -> None:
        """Drop drafts immediately; queue persisted rows for a remote delete."""
        ids = set(transaction_ids)
        drafts = {
            tx.id for tx in self._transactions
            if tx.id in ids and isinstance(tx, DraftTransaction)
        }
        if drafts:
            self._transactions = [tx for tx in self._transactions if tx.id not in drafts]
            self._dirty_ids.difference_update(drafts)
        for transaction in self._transactions:
            if transaction.id in ids and isinstance(transaction, PersistedTransaction):
                self._pending_delete_ids[transaction.id] = None
                self._dirty_ids.discard(transaction.id)
        self._notify()

    # Row operations

    def duplicate(self, transaction_id: str) -> DraftTransaction:
        """Clone a row as a new draft at the top of the list."""
        source = self.get(transaction_id)
        now = self.context.now()
        draft = to_draft(
            source,
            date=now,
            created_at=now,
            updated_at=now,
            needs_review=False,
            is_user_modified=False,
        )
        self._transactions.insert(0, draft)
        self._dirty_ids.add(draft.id)
        self._notify()
        return draft

    def _new_draft(self, accounts: list[AccountRecord]) -> DraftTransaction:
        account = next((a for a in accounts if a.is_active), accounts[0] if accounts else None)
        now = self.context.now()
        currency = (account.currency if account else None) or self.context.fallback_currency
        return DraftTransaction(
            id=generate_temp_id(),
            account_id=account.id if account else "",
            account_name=account.name if account else "",
            account_currency=account.currency if account else None,
            activity_type=BUY,
            date=now,
            quantity=Decimal("0"),
            unit_price=Decimal("0"),
            amount=Decimal("0"),
            fee=Decimal("0"),
            currency=currency,
            created_at=now,
            updated_at=now,
        )

    def draft(self, accounts: list[AccountRecord] | None = None) -> DraftTransaction:
        """Append a blank draft defaulted from the first active account."""
        return self.draft_many(accounts, 1)[0]

    def draft_many(
        self, accounts: list[AccountRecord] | None = None, count: int = 1
    ) -> list[DraftTransaction]:
        if count < 1:
            raise ValueError("count must be at least 1")
        if accounts is None:
            accounts = list(self.context.account_lookup.values())
        drafts = [self._new_draft(accounts) for _ in range(count)]
        self._transactions.extend(drafts)
        self._dirty_ids.update(draft.id for draft in drafts)
        self._notify()
        return drafts

    def update_field(self, transaction_id: str, field: str, value: object) -> LocalTransaction:
        """Apply one cell edit; the row is dirtied only if the value changed."""
        index = self._index_of(transaction_id)
        current = self._transactions[index]
        updated = apply_transaction_update(current, field, value, self.context)
        if values_are_equal(field, getattr(current, field, None), getattr(updated, field, None)):
            return current
        self._transactions[index] = updated
        self._dirty_ids.add(transaction_id)
        self._notify()
        return updated

    def apply_bulk(self, changes: Mapping[str, Mapping[str, object]]) -> list[str]:
        """Apply a paste or multi-row edit.

        Each changed field of each row passes through the reducer once. Unknown
        row ids are skipped.

        Returns:
            Ids of rows with at least one real change, in the order given.
        """
        changed_ids: list[str] = []
        for transaction_id, field_values in changes.items():
            transaction = self.find(transaction_id)
            if transaction is None:
                logger.debug(f"Skipping bulk edit for unknown row {transaction_id}")
                continue
            updated = transaction
            row_changed = False
            for field, value in field_values.items():
                previous = getattr(updated, field, None)
                if values_are_equal(field, previous, value):
                    continue
                candidate = apply_transaction_update(updated, field, value, self.context)
                if values_are_equal(field, previous, getattr(candidate, field, None)):
                    continue
                updated = candidate
                row_changed = True
            if row_changed:
                self._transactions[self._index_of(transaction_id)] = updated
                self._dirty_ids.add(transaction_id)
                changed_ids.append(transaction_id)
        if changed_ids:
            self._notify()
        return changed_ids

    def reset(self) -> None:
        """Discard unsaved work: drop drafts and clear both sets."""
        self._transactions = [
            tx for tx in self._transactions if not isinstance(tx, DraftTransaction)
        ]
        self._dirty_ids.clear()
        self._pending_delete_ids.clear()
        self._notify()

    # Reconciliation

    def reconcile(
        self,
        result: BulkMutationResult,
        submitted: SavePayload,
        submitted_rows: Mapping[str, LocalTransaction] | None = None,
    ) -> None:
        """Apply a confirmed bulk mutation to the local state.

        Mapped drafts become persisted rows under their server ids. Submitted
        deletes are removed. Only the submitted ids are cleared from the sets,
        so edits made while the request was in flight stay tracked. Rows the
        server reported errors for, and drafts without a mapping, keep their
        marks.

        Args:
            result: Parsed bulk mutation response
            submitted: The payload that was sent
            submitted_rows: Rows as they were when the payload was compiled,
                keyed by id. A submitted row whose current object differs was
                edited in flight and stays dirty, under its server id once
                promoted.
        """
        errored_ids = {error.id for error in result.errors if error.id}
        mappings = {mapping.temp_id: mapping.activity_id for mapping in result.created_mappings}
        submitted_dirty = {entry["id"] for entry in submitted.creates + submitted.updates}
        submitted_deletes = set(submitted.delete_ids) - errored_ids
        sent_rows = dict(submitted_rows or {})
        updated_records = {
            str(record.get("id")): record for record in result.updated if record.get("id")
        }

        for error in result.errors:
            logger.warning(
                f"Remote ledger rejected {error.action} for {error.id}: {error.message}"
            )

        reconciled: list[LocalTransaction] = []
        still_dirty: set[str] = set()
        newly_dirty: set[str] = set()
        for transaction in self._transactions:
            if transaction.id in submitted_deletes:
                continue
            sent = sent_rows.get(transaction.id, transaction)
            edited_in_flight = sent is not transaction
            if isinstance(transaction, DraftTransaction) and transaction.id in submitted_dirty:
                persisted_id = mappings.get(transaction.id)
                if persisted_id is None:
                    logger.warning(f"No id mapping returned for draft {transaction.id}")
                    still_dirty.add(transaction.id)
                    reconciled.append(transaction)
                    continue
                promoted = to_persisted(transaction, persisted_id)
                if edited_in_flight:
                    logger.debug(f"Draft {transaction.id} changed while saving")
                    promoted = replace(
                        promoted,
                        original_asset_id=sent.asset_id,
                        original_asset_symbol=sent.asset_symbol,
                    )
                    newly_dirty.add(persisted_id)
                reconciled.append(promoted)
                continue
            if transaction.id in errored_ids:
                still_dirty.add(transaction.id)
            elif isinstance(transaction, PersistedTransaction) and transaction.id in submitted_dirty:
                transaction = _rebase_asset_identity(
                    transaction, updated_records.get(transaction.id), sent
                )
                if edited_in_flight:
                    still_dirty.add(transaction.id)
            reconciled.append(transaction)

        self._transactions = reconciled
        self._dirty_ids.difference_update(submitted_dirty - still_dirty)
        self._dirty_ids.update(newly_dirty)
        for tx_id in submitted_deletes:
            self._pending_delete_ids.pop(tx_id, None)
        self._notify()


def _rebase_asset_identity(
    transaction: PersistedTransaction,
    record: Mapping[str, Any] | None,
    sent: LocalTransaction | None = None,
) -> PersistedTransaction:
    """Make the just-saved asset identity the baseline for the next update.

    ``sent`` is the row as submitted; it differs from ``transaction`` when the
    row was edited while the save was in flight.
    """
    sent_symbol = (sent or transaction).asset_symbol
    symbol_unchanged = transaction.asset_symbol.strip().upper() == sent_symbol.strip().upper()
    asset_id = normalize_cash_asset_key(str(record.get("assetId") or "")) if record else ""
    if asset_id:
        return replace(
            transaction,
            asset_id=asset_id if symbol_unchanged else transaction.asset_id,
            original_asset_id=asset_id,
            original_asset_symbol=sent_symbol,
        )
    if sent_symbol.strip().upper() != transaction.original_asset_symbol.strip().upper():
        # Symbol changed and the server did not echo the new id
        return replace(
            transaction,
            asset_id="" if symbol_unchanged else transaction.asset_id,
            original_asset_id="",
            original_asset_symbol=sent_symbol,
        )
    return transaction
