"""Pre-save validation gate for dirty rows."""

from __future__ import annotations

from typing import Iterable

from activitygrid.currency import is_cash_asset_key
from activitygrid.models import BaseTransaction, ValidationIssue, ValidationResult
from activitygrid.schema import (
    ACTIVITY_TYPES,
    CASH_SYMBOL,
    is_pure_cash_activity,
    is_transfer_activity,
)

ACCOUNT_REQUIRED = "Account is required"
ACTIVITY_TYPE_REQUIRED = "Activity type is required"
DATE_REQUIRED = "Date is required"
SYMBOL_REQUIRED = "Symbol is required for this activity type"
FEE_NEGATIVE = "Fee cannot be negative"
FX_RATE_NEGATIVE = "FX rate cannot be negative"


def is_cash_transfer(transaction: BaseTransaction) -> bool:
    """A transfer moves cash when it has no symbol or a cash symbol."""
    if not is_transfer_activity(transaction.activity_type):
        return False
    symbol = transaction.asset_symbol.strip().upper()
    return not symbol or symbol == CASH_SYMBOL or is_cash_asset_key(symbol)


def is_cash_row(transaction: BaseTransaction) -> bool:
    return is_pure_cash_activity(transaction.activity_type) or is_cash_transfer(transaction)


def validate_transaction(transaction: BaseTransaction) -> list[ValidationIssue]:
    """Return every rule violation for one row."""
    issues: list[ValidationIssue] = []

    def add(field: str, message: str) -> None:
        issues.append(ValidationIssue(transaction.id, field, message))

    if not transaction.account_id or not transaction.account_id.strip():
        add("account_id", ACCOUNT_REQUIRED)
    if transaction.activity_type not in ACTIVITY_TYPES:
        add("activity_type", ACTIVITY_TYPE_REQUIRED)
    if transaction.date is None:
        add("date", DATE_REQUIRED)
    needs_symbol = (
        transaction.activity_type in ACTIVITY_TYPES
        and not is_pure_cash_activity(transaction.activity_type)
    )
    if needs_symbol:
        has_symbol = bool(transaction.asset_symbol.strip() or transaction.asset_id.strip())
        if not has_symbol:
            add("asset_symbol", SYMBOL_REQUIRED)
    if transaction.fee is not None and transaction.fee < 0:
        add("fee", FEE_NEGATIVE)
    if transaction.fx_rate is not None and transaction.fx_rate < 0:
        add("fx_rate", FX_RATE_NEGATIVE)
    return issues


def validate_transactions_for_save(
    transactions: Iterable[BaseTransaction],
    dirty_ids: Iterable[str],
) -> ValidationResult:
    """Validate the dirty rows of ``transactions``; clean rows are skipped."""
    dirty = set(dirty_ids)
    errors: list[ValidationIssue] = []
    for transaction in transactions:
        if transaction.id in dirty:
            errors.extend(validate_transaction(transaction))
    return ValidationResult(is_valid=not errors, errors=errors)
