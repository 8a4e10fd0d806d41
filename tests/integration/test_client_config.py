"""Integration tests for client configuration loading."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from activitygrid import ActivityGridClient, HttpLedgerBackend

from utils.fake_backend import FakeLedgerBackend


def _write_config(path: Path, payload: dict) -> Path:
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle)
    return path


def test_missing_config_uses_defaults() -> None:
    client = ActivityGridClient(backend=FakeLedgerBackend())

    assert client.config == {}
    assert client.base_currency == "USD"
    assert client.accounts == []


def test_missing_base_url_is_an_error() -> None:
    with pytest.raises(ValueError, match="base_url"):
        ActivityGridClient()


def test_config_file_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = _write_config(
        tmp_path / "config.json",
        {
            "base_url": "https://ledger.test",
            "base_currency": "cad",
            "api_token": "abc",
            "timeout": 12,
            "accounts": [
                {"id": "acc-1", "name": "Main", "currency": "cad"},
                {"name": "no id"},
            ],
            "asset_currencies": {"shop.to": "CAD"},
        },
    )
    monkeypatch.setenv("ACTIVITYGRID_CONFIG", str(config_path))

    client = ActivityGridClient()

    assert isinstance(client.backend, HttpLedgerBackend)
    assert client.backend.config.base_url == "https://ledger.test"
    assert client.backend.config.api_token == "abc"
    assert client.backend.config.timeout_seconds == 12
    assert client.base_currency == "CAD"
    assert [account.id for account in client.accounts] == ["acc-1"]
    assert client.accounts[0].currency == "CAD"
    assert client.ledger.context.resolver.asset_currency("SHOP.TO") == "CAD"


def test_explicit_arguments_win_over_config(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "config.json",
        {"base_url": "https://ledger.test", "base_currency": "CAD"},
    )

    client = ActivityGridClient(
        config_path=config_path,
        base_url="https://other.test",
        base_currency="eur",
    )

    assert client.backend.config.base_url == "https://other.test"
    assert client.base_currency == "EUR"


def test_set_reference_data_rebuilds_context(accounts) -> None:
    client = ActivityGridClient(backend=FakeLedgerBackend(), accounts=[])
    client.set_reference_data(accounts=accounts, asset_currencies={"NEWCO": "JPY"})

    draft = client.draft()
    updated = client.update_field(draft.id, "asset_symbol", "newco")

    assert draft.account_id == "acc-eur"
    assert updated.currency == "JPY"
