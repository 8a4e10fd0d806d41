"""Shared CLI helpers."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any

import click

from activitygrid.client import ActivityGridClient
from activitygrid.models import ChangeSummary, LocalTransaction


def get_client(ctx: click.Context) -> ActivityGridClient:
    """Build a grid client from Click context."""
    payload = ctx.obj or {}
    try:
        return ActivityGridClient(
            config_path=payload.get("config_path"),
            base_url=payload.get("base_url"),
            base_currency=payload.get("base_currency"),
        )
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc


def serialize_value(value: Any) -> Any:
    """Convert Decimals, datetimes and dataclasses to JSON-compatible values."""
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, (dt.datetime, dt.date)):
        return value.isoformat()
    if hasattr(value, "__dataclass_fields__"):
        return {key: serialize_value(getattr(value, key)) for key in value.__dataclass_fields__}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [serialize_value(item) for item in value]
    if isinstance(value, dict):
        return {key: serialize_value(item) for key, item in value.items()}
    return value


def format_summary(summary: ChangeSummary) -> str:
    return (
        f"{summary.new_count} new, {summary.updated_count} updated, "
        f"{summary.deleted_count} deleted"
    )


def format_row(transaction: LocalTransaction) -> str:
    date_text = transaction.date.date().isoformat() if transaction.date else "-"
    amount = transaction.amount if transaction.amount is not None else ""
    symbol = transaction.asset_symbol or "-"
    return (
        f"{transaction.id:<40} {date_text:<10} {transaction.activity_type:<12} "
        f"{symbol:<10} {amount!s:>16} {transaction.currency or ''}"
    )
