"""Batch CLI commands for scripted grid edits."""

from __future__ import annotations

import json
from pathlib import Path

import click

from activitygrid.cli.common import format_summary, get_client, serialize_value
from activitygrid.exceptions import NotFoundError, RemoteLedgerError
from activitygrid.models import EditBatchResult, EditOperation, SaveOutcome


def _serialize_batch_result(result: EditBatchResult) -> dict:
    return {
        "successful": [
            {"operation": serialize_value(op), "id": row_id}
            for op, row_id in result.successful
        ],
        "failed": [
            {"operation": serialize_value(op), "error": str(exc)}
            for op, exc in result.failed
        ],
    }


def _serialize_outcome(outcome: SaveOutcome) -> dict:
    payload = {
        "status": outcome.status,
        "message": outcome.message,
        "issues": serialize_value(outcome.issues),
    }
    if outcome.result is not None:
        payload["createdMappings"] = [
            {"tempId": mapping.temp_id, "activityId": mapping.activity_id}
            for mapping in outcome.result.created_mappings
        ]
        payload["errors"] = serialize_value(outcome.result.errors)
    return payload


@click.group(
    help="""Batch edits against the activity grid.

Loads activities from the remote ledger, applies a list of edits locally and
commits them as one bulk mutation.

USAGE:
  activitygrid batch run --file <path-to-json>

EXAMPLES:
  Apply edits and save:
    activitygrid batch run --file edits.json

  Show the compiled bulk request without sending it:
    activitygrid batch run --file edits.json --dry-run

  Save and write failed edits to a report:
    activitygrid batch run --file edits.json --error-report errors.json

JSON FILE FORMAT:
  Array of edit objects, each with:
  - operation: "add", "update", "duplicate", or "delete"
  - id: (required for update/duplicate/delete)
  - parameters: object of grid field values

EXAMPLE JSON:
  [
    {
      "operation": "add",
      "parameters": {
        "activity_type": "DEPOSIT",
        "account_id": "acc-eur",
        "date": "2026-02-20",
        "amount": "100"
      }
    },
    {
      "operation": "update",
      "id": "act-42",
      "parameters": {"fee": "1.25", "comment": "Broker fee corrected"}
    },
    {"operation": "delete", "id": "act-17"}
  ]
""",
)
def batch() -> None:
    """Batch edits against the activity grid."""


@batch.command("run")
@click.option(
    "--file",
    "file_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to JSON file containing edit operations.",
)
@click.option("--account", "account_id", default=None, help="Load only this account's activities.")
@click.option(
    "--dry-run",
    is_flag=True,
    help="Print the compiled bulk request instead of saving.",
)
@click.option(
    "--stop-on-error",
    is_flag=True,
    help="Stop processing on first error. Default is to continue and report errors.",
)
@click.option(
    "--error-report",
    type=click.Path(path_type=Path),
    help="Write error details to this file.",
)
@click.pass_context
def run(
    ctx: click.Context,
    file_path: Path,
    account_id: str | None,
    dry_run: bool,
    stop_on_error: bool,
    error_report: Path | None,
) -> None:
    """Apply edit operations from a JSON file and save them."""
    errors: list[str] = []
    operations: list[EditOperation] = []

    try:
        with file_path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (json.JSONDecodeError, OSError) as e:
        raise click.ClickException(f"Error reading batch file: {e}")

    if not isinstance(payload, list):
        raise click.ClickException("Batch JSON must be an array of operations")

    for index, op in enumerate(payload):
        try:
            operations.append(
                EditOperation(
                    operation=str(op["operation"]),
                    id=str(op["id"]) if op.get("id") is not None else None,
                    parameters=dict(op.get("parameters") or {}),
                )
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            msg = f"Operation {index}: Invalid operation format - {e}"
            errors.append(msg)
            if stop_on_error:
                raise click.ClickException(msg)

    if not operations:
        raise click.ClickException("No valid operations found in batch file")

    client = get_client(ctx)
    try:
        client.load(account_id)
        try:
            result = client.apply_operations(operations, continue_on_error=not stop_on_error)
        except (ValueError, NotFoundError) as e:
            raise click.ClickException(str(e))
        errors.extend(f"{op.operation} {op.id or ''}: {exc}".strip() for op, exc in result.failed)

        click.echo(f"Pending changes: {format_summary(client.summary())}")
        click.echo(json.dumps(_serialize_batch_result(result), indent=2))

        if dry_run:
            click.echo(json.dumps(client.compile_payload().to_request(), indent=2))
            outcome = None
        else:
            outcome = client.save()
    except RemoteLedgerError as e:
        raise click.ClickException(str(e))

    if outcome is not None:
        click.echo(json.dumps(_serialize_outcome(outcome), indent=2))
        if not outcome.ok:
            errors.append(outcome.message)

    if error_report and errors:
        with error_report.open("w", encoding="utf-8") as handle:
            json.dump(errors, handle, indent=2)
        click.echo(f"\nErrors written to {error_report}")

    if outcome is not None and not outcome.ok:
        raise click.ClickException(f"Save failed: {outcome.message}")
