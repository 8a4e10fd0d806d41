"""Pytest configuration and shared fixtures.

Integration tests run the client against the in-memory ledger backend in
tests/utils; no network access is needed.
"""
from __future__ import annotations

from pathlib import Path
import sys

import pytest

SRC_DIR = Path(__file__).resolve().parents[1] / "src" / "python"
TESTS_DIR = Path(__file__).resolve().parent

for path in (SRC_DIR, TESTS_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from activitygrid.currency import CurrencyResolver  # noqa: E402
from activitygrid.models import AccountRecord  # noqa: E402
from activitygrid.updates import UpdateContext  # noqa: E402
from utils.fake_backend import FakeLedgerBackend  # noqa: E402
from utils.reference_data import ASSET_CURRENCIES, BASE_CURRENCY, fixed_clock  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Point the config lookup at an empty temp location."""
    monkeypatch.setenv("ACTIVITYGRID_CONFIG", str(tmp_path / "missing-config.json"))


@pytest.fixture()
def accounts() -> list[AccountRecord]:
    return [
        AccountRecord(id="acc-closed", name="Closed Broker", currency="GBP", is_active=False),
        AccountRecord(id="acc-eur", name="EUR Broker", currency="EUR"),
        AccountRecord(id="acc-usd", name="USD Broker", currency="USD"),
        AccountRecord(id="acc-cad", name="CAD Savings", currency="CAD"),
    ]


@pytest.fixture()
def resolver() -> CurrencyResolver:
    return CurrencyResolver(ASSET_CURRENCIES, BASE_CURRENCY)


@pytest.fixture()
def context(accounts: list[AccountRecord]) -> UpdateContext:
    return UpdateContext.build(accounts, ASSET_CURRENCIES, BASE_CURRENCY, now=fixed_clock)


@pytest.fixture()
def sample_records() -> list[dict]:
    """Remote activity records as returned by the ledger API."""
    return [
        {
            "id": "act-1",
            "accountId": "acc-usd",
            "accountName": "USD Broker",
            "accountCurrency": "USD",
            "activityType": "BUY",
            "date": "2026-01-10T15:30:00Z",
            "assetSymbol": "AAPL",
            "assetId": "AAPL",
            "quantity": "10",
            "unitPrice": "185.25",
            "amount": "1852.5",
            "fee": "1",
            "currency": "USD",
            "comment": "Initial position",
        },
        {
            "id": "act-2",
            "accountId": "acc-eur",
            "accountName": "EUR Broker",
            "accountCurrency": "EUR",
            "activityType": "DEPOSIT",
            "date": "2026-01-05T09:00:00Z",
            "assetSymbol": "$CASH-EUR",
            "assetId": "$CASH-EUR",
            "quantity": "0",
            "unitPrice": "0",
            "amount": "500",
            "fee": "0",
            "currency": "EUR",
        },
        {
            "id": "act-3",
            "accountId": "acc-cad",
            "accountName": "CAD Savings",
            "accountCurrency": "CAD",
            "activityType": "SELL",
            "date": "2026-01-20T14:00:00Z",
            "assetSymbol": "SHOP.TO",
            "assetId": "SHOP.TO",
            "quantity": "5",
            "unitPrice": "110.4",
            "amount": "552",
            "fee": "4.95",
            "currency": "CAD",
        },
    ]


@pytest.fixture()
def fake_backend(sample_records: list[dict]) -> FakeLedgerBackend:
    return FakeLedgerBackend(sample_records)
