"""activitygrid CLI entry point."""

from __future__ import annotations

from pathlib import Path

import click

from activitygrid.__version__ import __version__
from activitygrid.cli.activity import activity
from activitygrid.cli.batch import batch


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="activitygrid")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    help="Path to a JSON config file.",
)
@click.option("--base-url", default=None, help="Remote ledger API root URL.")
@click.option("--base-currency", default=None, help="Base currency code (e.g., USD).")
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Path | None,
    base_url: str | None,
    base_currency: str | None,
) -> None:
    """activitygrid CLI entry point."""
    ctx.obj = {
        "config_path": config_path,
        "base_url": base_url,
        "base_currency": base_currency,
    }


main.add_command(activity)
main.add_command(batch)


if __name__ == "__main__":
    main()
