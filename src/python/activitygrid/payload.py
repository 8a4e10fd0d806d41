"""Compile ledger state into a bulk mutation payload."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Mapping

from activitygrid.conversions import to_decimal_string, to_iso_string
from activitygrid.currency import CurrencyResolver
from activitygrid.models import BaseTransaction, PersistedTransaction, SavePayload
from activitygrid.schema import (
    PAYLOAD_DECIMAL_FIELDS,
    SPLIT,
    is_pure_cash_activity,
    is_transfer_activity,
)
from activitygrid.validation import is_cash_row

logger = logging.getLogger(__name__)


def resolve_payload_currency(
    transaction: BaseTransaction,
    resolver: CurrencyResolver,
    fallback_currency: str,
) -> str | None:
    """Currency to send for a row.

    Only cash rows fall back to the account or base currency. Other rows are
    left unresolved so the remote ledger can derive the currency of an asset
    it has not seen before.
    """
    resolved = resolver(transaction, include_fallback=False)
    if resolved:
        return resolved
    if is_pure_cash_activity(transaction.activity_type):
        return transaction.account_currency or fallback_currency
    logger.debug(f"Leaving currency unresolved for {transaction.id}")
    return None


def _metadata_json(transaction: BaseTransaction) -> str | None:
    if not is_transfer_activity(transaction.activity_type) or transaction.is_external is None:
        return None
    existing = dict(transaction.metadata or {})
    flow = existing.get("flow")
    existing["flow"] = {
        **(flow if isinstance(flow, Mapping) else {}),
        "is_external": transaction.is_external,
    }
    return json.dumps(existing)


def _base_entry(
    transaction: BaseTransaction,
    resolver: CurrencyResolver,
    fallback_currency: str,
) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "id": transaction.id,
        "accountId": transaction.account_id,
        "activityType": transaction.activity_type,
        "activityDate": to_iso_string(transaction.date),
    }
    if transaction.subtype:
        entry["subtype"] = transaction.subtype
    for field_name, wire_name in PAYLOAD_DECIMAL_FIELDS.items():
        encoded = to_decimal_string(getattr(transaction, field_name))
        if encoded is not None:
            entry[wire_name] = encoded
    # A cleared FX rate is sent as null so the stored rate is removed
    entry["fxRate"] = to_decimal_string(transaction.fx_rate)

    currency = resolve_payload_currency(transaction, resolver, fallback_currency)
    if currency:
        entry["currency"] = currency
    notes = transaction.comment.strip()
    if notes:
        entry["notes"] = notes
    metadata = _metadata_json(transaction)
    if metadata is not None:
        entry["metadata"] = metadata

    if transaction.activity_type == SPLIT:
        # Splits carry the ratio in amount
        entry.pop("quantity", None)
        entry.pop("unitPrice", None)
    return entry


def _symbol_asset(transaction: BaseTransaction, symbol: str) -> dict[str, Any]:
    asset: dict[str, Any] = {"symbol": symbol}
    if transaction.exchange_mic:
        asset["exchangeMic"] = transaction.exchange_mic
    return asset


def build_create_entry(
    transaction: BaseTransaction,
    resolver: CurrencyResolver,
    fallback_currency: str,
) -> dict[str, Any]:
    """Create entries identify the asset by symbol only, never by asset id."""
    entry = _base_entry(transaction, resolver, fallback_currency)
    if not is_cash_row(transaction):
        symbol = transaction.asset_symbol.strip().upper()
        if symbol:
            entry["asset"] = _symbol_asset(transaction, symbol)
    return entry


def build_update_entry(
    transaction: PersistedTransaction,
    resolver: CurrencyResolver,
    fallback_currency: str,
) -> dict[str, Any]:
    """Update entries re-resolve the asset only when the symbol changed."""
    entry = _base_entry(transaction, resolver, fallback_currency)
    if not is_cash_row(transaction):
        symbol = transaction.asset_symbol.strip().upper()
        original_symbol = transaction.original_asset_symbol.strip().upper()
        if symbol and symbol != original_symbol:
            entry["asset"] = _symbol_asset(transaction, symbol)
        elif transaction.original_asset_id:
            entry["asset"] = {"id": transaction.original_asset_id}
    return entry


def build_save_payload(
    transactions: Iterable[BaseTransaction],
    dirty_ids: Iterable[str],
    pending_delete_ids: Iterable[str],
    resolver: CurrencyResolver,
    fallback_currency: str,
) -> SavePayload:
    """Compile dirty rows and pending deletes into one bulk request.

    Args:
        transactions: Ordered local rows
        dirty_ids: Ids of rows with unsaved edits
        pending_delete_ids: Ids of persisted rows queued for deletion, in order
        resolver: Currency cascade for the session
        fallback_currency: Base currency used for cash rows

    Returns:
        SavePayload with creates, updates and delete ids. Ids that do not
        resolve to a row are skipped.
    """
    rows = list(transactions)
    dirty = set(dirty_ids)
    pending = list(dict.fromkeys(pending_delete_ids))
    pending_set = set(pending)
    persisted_ids = {tx.id for tx in rows if isinstance(tx, PersistedTransaction)}

    creates: list[dict[str, Any]] = []
    updates: list[dict[str, Any]] = []
    for transaction in rows:
        if transaction.id not in dirty or transaction.id in pending_set:
            continue
        if isinstance(transaction, PersistedTransaction):
            updates.append(build_update_entry(transaction, resolver, fallback_currency))
        else:
            creates.append(build_create_entry(transaction, resolver, fallback_currency))

    delete_ids = [tx_id for tx_id in pending if tx_id in persisted_ids]
    logger.debug(
        f"Compiled payload: {len(creates)} creates, {len(updates)} updates, "
        f"{len(delete_ids)} deletes"
    )
    return SavePayload(creates=creates, updates=updates, delete_ids=delete_ids)
