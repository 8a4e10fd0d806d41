"""Field-update reducer for grid edits.

Every function here is pure: it takes a row and returns a new row of the same
variant (draft or persisted), never mutating the input.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import datetime as dt
from decimal import Decimal
import logging
from typing import Callable, Mapping, TypeVar

from activitygrid.conversions import (
    is_blank,
    parse_decimal_input,
    parse_timestamp,
    to_comparable_number,
    to_instant,
    utc_now,
)
from activitygrid.currency import (
    CURRENCY_PATTERN,
    CurrencyResolver,
    asset_key_for,
    is_cash_asset_key,
    make_cash_asset_key,
)
from activitygrid.models import AccountRecord, BaseTransaction
from activitygrid.schema import (
    ACTIVITY_TYPES,
    CASH_SYMBOL,
    FEE_DECIMAL_PLACES,
    NUMERIC_FIELDS,
    QUANTITY_DECIMAL_PLACES,
    SPLIT,
    is_income_activity,
    is_pure_cash_activity,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseTransaction)

DECIMAL_PLACES_BY_FIELD = {
    "quantity": QUANTITY_DECIMAL_PLACES,
    "unit_price": QUANTITY_DECIMAL_PLACES,
    "amount": QUANTITY_DECIMAL_PLACES,
    "fee": FEE_DECIMAL_PLACES,
    "fx_rate": FEE_DECIMAL_PLACES,
}

ZERO = Decimal("0")


@dataclass(frozen=True)
class UpdateContext:
    """Lookups and settings the reducer needs to derive dependent fields."""
    account_lookup: Mapping[str, AccountRecord]
    resolver: CurrencyResolver
    now: Callable[[], dt.datetime] = field(default=utc_now)

    @property
    def fallback_currency(self) -> str:
        return self.resolver.fallback_currency

    @classmethod
    def build(
        cls,
        accounts: list[AccountRecord],
        asset_currency_lookup: Mapping[str, str] | None,
        fallback_currency: str,
        now: Callable[[], dt.datetime] = utc_now,
    ) -> "UpdateContext":
        return cls(
            account_lookup={account.id: account for account in accounts},
            resolver=CurrencyResolver(asset_currency_lookup, fallback_currency),
            now=now,
        )


def _cash_identity(currency: str) -> str:
    if not CURRENCY_PATTERN.match(currency):
        return ""
    return make_cash_asset_key(currency)


def _has_cash_identity(transaction: BaseTransaction) -> bool:
    return (
        is_cash_asset_key(transaction.asset_id)
        or is_cash_asset_key(transaction.asset_symbol)
        or transaction.asset_symbol.strip().upper() == CASH_SYMBOL
    )


def apply_cash_defaults(transaction: T, context: UpdateContext) -> T:
    """Force the synthetic cash identity on pure-cash rows and zero quantity/price."""
    if not is_pure_cash_activity(transaction.activity_type):
        return transaction
    currency = (context.resolver(transaction) or context.fallback_currency).upper()
    return replace(
        transaction,
        asset_symbol=CASH_SYMBOL,
        asset_id=_cash_identity(currency),
        currency=currency,
        quantity=ZERO,
        unit_price=ZERO,
    )


def apply_split_defaults(transaction: T) -> T:
    """Zero quantity/price on splits; the ratio travels in ``amount``."""
    if transaction.activity_type != SPLIT:
        return transaction
    return replace(transaction, quantity=ZERO, unit_price=ZERO)


def _clear_cash_identity(transaction: T) -> T:
    if not _has_cash_identity(transaction):
        return transaction
    return replace(transaction, asset_symbol="", asset_id="")


def _update_numeric(transaction: T, field_name: str, value: object) -> T | None:
    """Return the row with the parsed value, or None when parsing fails."""
    if is_blank(value):
        return replace(transaction, **{field_name: None})
    try:
        parsed = parse_decimal_input(value, DECIMAL_PLACES_BY_FIELD[field_name])  # type: ignore[arg-type]
    except ValueError:
        logger.debug(f"Ignoring unparseable {field_name} for {transaction.id}: {value!r}")
        return None
    return replace(transaction, **{field_name: parsed})


def apply_transaction_update(
    transaction: T,
    field_name: str,
    value: object,
    context: UpdateContext,
) -> T:
    """Apply one field edit and its derived-field side effects.

    Unknown fields and unparseable values return the input row unchanged.
    Any applied edit stamps ``updated_at``.
    """
    updated: T | None

    if field_name in NUMERIC_FIELDS:
        updated = _update_numeric(transaction, field_name, value)
        if updated is None:
            return transaction
        if field_name == "unit_price" and (
            is_pure_cash_activity(updated.activity_type)
            or is_income_activity(updated.activity_type)
        ):
            # Cash and income kinds treat the price as the cash amount
            updated = replace(updated, amount=updated.unit_price)
        if field_name in ("quantity", "unit_price"):
            updated = apply_split_defaults(updated)

    elif field_name == "date":
        if is_blank(value):
            return transaction
        try:
            parsed_date = parse_timestamp(value)  # type: ignore[arg-type]
        except ValueError:
            logger.debug(f"Ignoring unparseable date for {transaction.id}: {value!r}")
            return transaction
        updated = replace(transaction, date=parsed_date)

    elif field_name == "activity_type":
        if not isinstance(value, str) or value.strip().upper() not in ACTIVITY_TYPES:
            return transaction
        updated = replace(transaction, activity_type=value.strip().upper())
        if not is_pure_cash_activity(updated.activity_type):
            updated = _clear_cash_identity(updated)
        updated = apply_cash_defaults(updated, context)
        updated = apply_split_defaults(updated)

    elif field_name == "account_id":
        account_id = value.strip() if isinstance(value, str) else ""
        updated = replace(transaction, account_id=account_id)
        account = context.account_lookup.get(account_id)
        if account is not None:
            updated = replace(
                updated, account_name=account.name, account_currency=account.currency
            )
        asset_key = asset_key_for(updated)
        # Cash identity follows the account, so a cash key never pins the currency
        asset_currency = (
            None if is_cash_asset_key(asset_key) else context.resolver.asset_currency(asset_key)
        )
        currency = asset_currency or updated.account_currency or context.fallback_currency
        updated = replace(updated, currency=currency)
        updated = apply_cash_defaults(updated, context)
        updated = apply_split_defaults(updated)

    elif field_name == "asset_symbol":
        symbol = (value if isinstance(value, str) else "").strip().upper()
        currency = (
            context.resolver.asset_currency(symbol)
            or transaction.account_currency
            or context.fallback_currency
        )
        updated = replace(transaction, asset_symbol=symbol, currency=currency)

    elif field_name == "currency":
        if value is not None and not isinstance(value, str):
            return transaction
        currency = value.strip().upper() if value and value.strip() else None
        updated = replace(transaction, currency=currency)
        updated = apply_cash_defaults(updated, context)
        updated = apply_split_defaults(updated)

    elif field_name == "comment":
        updated = replace(transaction, comment=value if isinstance(value, str) else "")

    elif field_name == "subtype":
        subtype = value.strip() if isinstance(value, str) and value.strip() else None
        updated = replace(transaction, subtype=subtype)

    elif field_name == "is_external":
        updated = replace(transaction, is_external=bool(value))

    elif field_name == "exchange_mic":
        mic = value.strip().upper() if isinstance(value, str) and value.strip() else None
        updated = replace(transaction, exchange_mic=mic)

    else:
        return transaction

    return replace(updated, updated_at=context.now())


def values_are_equal(field_name: str, previous: object, current: object) -> bool:
    """Value-aware equality used for change detection.

    Numeric fields treat missing values as 0; dates compare by instant.
    """
    if field_name in NUMERIC_FIELDS:
        return to_comparable_number(previous) == to_comparable_number(current)
    if field_name == "date":
        previous_instant = to_instant(previous)
        current_instant = to_instant(current)
        if previous_instant is None and current_instant is None:
            return True
        return previous_instant == current_instant
    return previous == current
