"""Activity kinds and wire schema constants."""

from __future__ import annotations

ACTIVITY_TYPES = (
    "BUY",
    "SELL",
    "SPLIT",
    "DIVIDEND",
    "INTEREST",
    "DEPOSIT",
    "WITHDRAWAL",
    "TRANSFER_IN",
    "TRANSFER_OUT",
    "FEE",
    "TAX",
    "CREDIT",
    "ADJUSTMENT",
    "UNKNOWN",
)

BUY = "BUY"
SPLIT = "SPLIT"
TRANSFER_IN = "TRANSFER_IN"
TRANSFER_OUT = "TRANSFER_OUT"

# Kinds with no tradable asset; the asset is a cash placeholder keyed by currency
PURE_CASH_ACTIVITY_TYPES = frozenset({"DEPOSIT", "WITHDRAWAL", "FEE", "INTEREST", "TAX"})
INCOME_ACTIVITY_TYPES = frozenset({"DIVIDEND", "INTEREST"})
TRANSFER_ACTIVITY_TYPES = frozenset({TRANSFER_IN, TRANSFER_OUT})

TEMP_ID_PREFIX = "temp-"

CASH_SYMBOL = "CASH"
CASH_ASSET_PREFIX = "CASH:"
LEGACY_CASH_PREFIXES = ("$CASH-", "$CASH_", "CASH-", "CASH_")

QUANTITY_DECIMAL_PLACES = 18
FEE_DECIMAL_PLACES = 12

NUMERIC_FIELDS = frozenset({"quantity", "unit_price", "amount", "fee", "fx_rate"})

# Grid-editable fields, in column order
TRACKED_FIELDS = (
    "activity_type",
    "subtype",
    "is_external",
    "date",
    "asset_symbol",
    "exchange_mic",
    "quantity",
    "unit_price",
    "amount",
    "fee",
    "fx_rate",
    "account_id",
    "currency",
    "comment",
)

# Local field name -> wire (camelCase) name for decimal payload fields
PAYLOAD_DECIMAL_FIELDS = {
    "quantity": "quantity",
    "unit_price": "unitPrice",
    "amount": "amount",
    "fee": "fee",
}


def is_pure_cash_activity(activity_type: str | None) -> bool:
    return activity_type in PURE_CASH_ACTIVITY_TYPES


def is_income_activity(activity_type: str | None) -> bool:
    return activity_type in INCOME_ACTIVITY_TYPES


def is_transfer_activity(activity_type: str | None) -> bool:
    return activity_type in TRANSFER_ACTIVITY_TYPES
