"""Activity CLI commands."""

from __future__ import annotations

import click

from activitygrid.cli.common import format_row, get_client
from activitygrid.exceptions import RemoteLedgerError


@click.group()
def activity() -> None:
    """Activity commands."""


@activity.command("list")
@click.option("--account", "account_id", default=None, help="Filter by account id.")
@click.option("--limit", default=None, type=int, help="Maximum number of rows to show.")
@click.pass_context
def list_activities(ctx: click.Context, account_id: str | None, limit: int | None) -> None:
    """List activities from the remote ledger.

    Examples:
        activitygrid activity list
        activitygrid activity list --account acc-1 --limit 20
    """
    client = get_client(ctx)
    try:
        rows = client.load(account_id)
    except RemoteLedgerError as exc:
        raise click.ClickException(str(exc)) from exc

    if not rows:
        click.echo("No activities found.")
        return
    if limit is not None:
        rows = rows[:limit]
    click.echo(f"{'ID':<40} {'Date':<10} {'Type':<12} {'Symbol':<10} {'Amount':>16} Currency")
    for row in rows:
        click.echo(format_row(row))
    click.echo(f"\nTotal: {len(rows)} activities")
