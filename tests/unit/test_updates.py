from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest

from activitygrid.models import DraftTransaction, PersistedTransaction
from activitygrid.updates import (
    UpdateContext,
    apply_cash_defaults,
    apply_split_defaults,
    apply_transaction_update,
    values_are_equal,
)

STAMP = dt.datetime(2026, 3, 1, 12, 0, tzinfo=dt.timezone.utc)


def _buy(**overrides) -> PersistedTransaction:
    values = dict(
        id="act-1",
        account_id="acc-usd",
        account_name="USD Broker",
        account_currency="USD",
        activity_type="BUY",
        date=dt.datetime(2026, 1, 10, tzinfo=dt.timezone.utc),
        asset_symbol="AAPL",
        asset_id="AAPL",
        quantity=Decimal("10"),
        unit_price=Decimal("185.25"),
        amount=Decimal("1852.5"),
        fee=Decimal("1"),
        currency="USD",
    )
    values.update(overrides)
    return PersistedTransaction(**values)


def test_update_returns_new_record_of_same_variant(context: UpdateContext) -> None:
    original = _buy()
    updated = apply_transaction_update(original, "comment", "note", context)

    assert updated is not original
    assert isinstance(updated, PersistedTransaction)
    assert original.comment == ""
    assert updated.comment == "note"
    assert updated.updated_at == STAMP


def test_draft_variant_is_preserved(context: UpdateContext) -> None:
    draft = DraftTransaction(id="temp-1", activity_type="BUY")
    updated = apply_transaction_update(draft, "quantity", "3", context)

    assert isinstance(updated, DraftTransaction)
    assert updated.id == "temp-1"


def test_numeric_parse_keeps_crypto_precision(context: UpdateContext) -> None:
    updated = apply_transaction_update(_buy(), "quantity", "0.000000099", context)
    assert updated.quantity == Decimal("0.000000099")


def test_fee_and_fx_rate_round_to_twelve_places(context: UpdateContext) -> None:
    tx = apply_transaction_update(_buy(), "fee", "0.1234567890125", context)
    tx = apply_transaction_update(tx, "fx_rate", "1.00000000000049", context)

    assert tx.fee == Decimal("0.123456789013")
    assert tx.fx_rate == Decimal("1.000000000000")


@pytest.mark.parametrize("blank", [None, "", "   "])
def test_blank_numeric_clears_value(context: UpdateContext, blank: object) -> None:
    updated = apply_transaction_update(_buy(fx_rate=Decimal("1.3")), "fx_rate", blank, context)
    assert updated.fx_rate is None
    assert apply_transaction_update(_buy(), "amount", blank, context).amount is None


def test_unparseable_numeric_is_noop(context: UpdateContext) -> None:
    original = _buy()
    updated = apply_transaction_update(original, "quantity", "ten", context)

    assert updated is original


def test_unknown_field_is_noop(context: UpdateContext) -> None:
    original = _buy()
    assert apply_transaction_update(original, "nonexistent", "x", context) is original


@pytest.mark.parametrize("activity_type", ["DEPOSIT", "DIVIDEND", "INTEREST", "TAX"])
def test_unit_price_sets_amount_for_cash_and_income(
    context: UpdateContext, activity_type: str
) -> None:
    tx = _buy(activity_type=activity_type)
    updated = apply_transaction_update(tx, "unit_price", "42.5", context)

    assert updated.amount == Decimal("42.5")


def test_unit_price_leaves_amount_for_trades(context: UpdateContext) -> None:
    updated = apply_transaction_update(_buy(), "unit_price", "190", context)

    assert updated.unit_price == Decimal("190")
    assert updated.amount == Decimal("1852.5")


def test_buy_to_split_zeroes_quantity_and_price(context: UpdateContext) -> None:
    updated = apply_transaction_update(_buy(), "activity_type", "SPLIT", context)

    assert updated.activity_type == "SPLIT"
    assert updated.quantity == 0
    assert updated.unit_price == 0
    assert updated.amount == Decimal("1852.5")


def test_switch_to_cash_kind_applies_cash_identity(context: UpdateContext) -> None:
    tx = _buy(account_id="acc-eur", account_currency="EUR", currency=None,
              asset_symbol="", asset_id="")
    updated = apply_transaction_update(tx, "activity_type", "DEPOSIT", context)

    assert updated.asset_symbol == "CASH"
    assert updated.asset_id == "CASH:EUR"
    assert updated.currency == "EUR"
    assert updated.quantity == 0
    assert updated.unit_price == 0


def test_leaving_cash_kind_clears_cash_identity(context: UpdateContext) -> None:
    deposit = _buy(activity_type="DEPOSIT", asset_symbol="CASH", asset_id="CASH:USD")
    updated = apply_transaction_update(deposit, "activity_type", "BUY", context)

    assert updated.asset_symbol == ""
    assert updated.asset_id == ""


def test_invalid_activity_type_is_noop(context: UpdateContext) -> None:
    original = _buy()
    assert apply_transaction_update(original, "activity_type", "BOGUS", context) is original


def test_account_change_rederives_name_and_currency(context: UpdateContext) -> None:
    tx = _buy(asset_symbol="NEWCO", asset_id="", currency="USD")
    updated = apply_transaction_update(tx, "account_id", "acc-eur", context)

    assert updated.account_name == "EUR Broker"
    assert updated.account_currency == "EUR"
    assert updated.currency == "EUR"


def test_account_change_keeps_asset_currency(context: UpdateContext) -> None:
    tx = _buy(asset_symbol="SHOP.TO", asset_id="SHOP.TO", currency="CAD")
    updated = apply_transaction_update(tx, "account_id", "acc-eur", context)

    assert updated.account_currency == "EUR"
    assert updated.currency == "CAD"


def test_account_change_moves_cash_identity(context: UpdateContext) -> None:
    deposit = _buy(activity_type="DEPOSIT", asset_symbol="CASH", asset_id="CASH:USD",
                   quantity=Decimal("0"), unit_price=Decimal("0"), amount=Decimal("100"))
    updated = apply_transaction_update(deposit, "account_id", "acc-eur", context)

    assert updated.currency == "EUR"
    assert updated.asset_id == "CASH:EUR"
    assert updated.amount == Decimal("100")


def test_symbol_change_upper_cases_and_looks_up_currency(context: UpdateContext) -> None:
    updated = apply_transaction_update(_buy(), "asset_symbol", " shop.to ", context)

    assert updated.asset_symbol == "SHOP.TO"
    assert updated.currency == "CAD"
    assert updated.asset_id == "AAPL"


def test_symbol_change_falls_back_to_account_then_base(context: UpdateContext) -> None:
    with_account = apply_transaction_update(_buy(), "asset_symbol", "newco", context)
    without_account = apply_transaction_update(
        _buy(account_currency=None), "asset_symbol", "newco", context
    )

    assert with_account.currency == "USD"
    assert without_account.currency == "USD"
    eur_row = _buy(account_currency="EUR")
    assert apply_transaction_update(eur_row, "asset_symbol", "newco", context).currency == "EUR"


def test_currency_change_reapplies_cash_defaults(context: UpdateContext) -> None:
    deposit = _buy(activity_type="DEPOSIT", asset_symbol="CASH", asset_id="CASH:USD")
    updated = apply_transaction_update(deposit, "currency", "chf", context)

    assert updated.currency == "CHF"
    assert updated.asset_id == "CASH:CHF"


def test_date_accepts_iso_and_rejects_garbage(context: UpdateContext) -> None:
    original = _buy()
    updated = apply_transaction_update(original, "date", "2026-02-14T08:00:00Z", context)

    assert updated.date == dt.datetime(2026, 2, 14, 8, 0, tzinfo=dt.timezone.utc)
    assert apply_transaction_update(original, "date", "next week", context) is original


def test_simple_field_sets(context: UpdateContext) -> None:
    tx = apply_transaction_update(_buy(), "subtype", "DRIP", context)
    tx = apply_transaction_update(tx, "is_external", 1, context)
    tx = apply_transaction_update(tx, "exchange_mic", "xnas", context)

    assert tx.subtype == "DRIP"
    assert tx.is_external is True
    assert tx.exchange_mic == "XNAS"
    assert apply_transaction_update(tx, "subtype", "", context).subtype is None


def test_cash_and_split_defaults_ignore_other_kinds(context: UpdateContext) -> None:
    tx = _buy()
    assert apply_cash_defaults(tx, context) is tx
    assert apply_split_defaults(tx) is tx


@pytest.mark.parametrize(
    ("field", "previous", "current", "expected"),
    [
        ("quantity", None, Decimal("0"), True),
        ("quantity", "", 0, True),
        ("fee", Decimal("1.50"), "1.5", True),
        ("amount", Decimal("1"), Decimal("2"), False),
        ("date", "2026-01-10T00:00:00Z", dt.datetime(2026, 1, 10, tzinfo=dt.timezone.utc), True),
        ("date", None, None, True),
        ("date", None, "2026-01-10", False),
        ("comment", "a", "a", True),
        ("comment", "a", "A", False),
        ("currency", None, "", False),
    ],
)
def test_values_are_equal(field: str, previous: object, current: object, expected: bool) -> None:
    assert values_are_equal(field, previous, current) is expected
