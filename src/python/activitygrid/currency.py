"""Currency resolution cascade and synthetic cash asset keys."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Mapping

from activitygrid.schema import CASH_ASSET_PREFIX, LEGACY_CASH_PREFIXES

if TYPE_CHECKING:
    from activitygrid.models import BaseTransaction

logger = logging.getLogger(__name__)

CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")


def cash_currency_from_asset_key(asset_key: str | None) -> str | None:
    """Return the currency embedded in a synthetic cash asset key.

    Accepts the canonical ``CASH:{CCY}`` form and the legacy ``$CASH-{CCY}``,
    ``$CASH_{CCY}``, ``CASH-{CCY}`` and ``CASH_{CCY}`` forms, case-insensitive.
    Returns None for anything else, including a bare ``CASH`` symbol.
    """
    if not asset_key:
        return None
    key = asset_key.strip().upper()
    for prefix in (CASH_ASSET_PREFIX, *LEGACY_CASH_PREFIXES):
        if key.startswith(prefix):
            currency = key[len(prefix):]
            if CURRENCY_PATTERN.match(currency):
                return currency
            return None
    return None


def is_cash_asset_key(asset_key: str | None) -> bool:
    return cash_currency_from_asset_key(asset_key) is not None


def make_cash_asset_key(currency: str) -> str:
    code = currency.strip().upper()
    if not CURRENCY_PATTERN.match(code):
        raise ValueError(f"Invalid currency code: {currency}")
    return f"{CASH_ASSET_PREFIX}{code}"


def normalize_cash_asset_key(asset_key: str) -> str:
    """Rewrite legacy cash keys to ``CASH:{CCY}``; other keys pass through."""
    currency = cash_currency_from_asset_key(asset_key)
    if currency is None:
        return asset_key
    return make_cash_asset_key(currency)


def asset_key_for(transaction: BaseTransaction) -> str:
    return (transaction.asset_id or transaction.asset_symbol or "").strip().upper()


class CurrencyResolver:
    """Resolve the currency that governs a transaction's numeric fields.

    Resolution order:
    1. The transaction's explicit currency
    2. The asset currency (embedded in a cash asset key, else the lookup table)
    3. The account currency (fallback only)
    4. The base currency (fallback only)
    """

    def __init__(
        self,
        asset_currency_lookup: Mapping[str, str] | None,
        fallback_currency: str,
    ) -> None:
        if not fallback_currency or not fallback_currency.strip():
            raise ValueError("fallback_currency is required")
        self.asset_currency_lookup = {
            key.strip().upper(): value
            for key, value in (asset_currency_lookup or {}).items()
            if value
        }
        self.fallback_currency = fallback_currency.strip().upper()

    def __call__(
        self, transaction: BaseTransaction, include_fallback: bool = True
    ) -> str | None:
        return self.resolve(transaction, include_fallback=include_fallback)

    def asset_currency(self, asset_key: str | None) -> str | None:
        """Currency implied by an asset key, or None when unknown."""
        key = (asset_key or "").strip().upper()
        if not key:
            return None
        return cash_currency_from_asset_key(key) or self.asset_currency_lookup.get(key)

    def resolve(
        self, transaction: BaseTransaction, include_fallback: bool = True
    ) -> str | None:
        if transaction.currency:
            return transaction.currency

        asset_currency = self.asset_currency(asset_key_for(transaction))
        if asset_currency:
            return asset_currency

        if not include_fallback:
            logger.debug(
                f"Currency unresolved without fallback for {transaction.id}"
            )
            return None
        if transaction.account_currency:
            return transaction.account_currency
        return self.fallback_currency
