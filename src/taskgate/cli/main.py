"""CLI entry point and commands."""

from __future__ import annotations

from pathlib import Path

import click

from taskgate.core.config import default_config, serialize_config
from taskgate.storage.fs import STORE_DIR, atomic_write, ensure_store_dirs


@click.group()
def cli() -> None:
    """taskgate: role-scoped task management service."""


@cli.command()
@click.option(
    "--path",
    "target_path",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=".",
    help="Directory to initialize taskgate in (defaults to current directory).",
)
def init(target_path: str) -> None:
    """Initialize a new taskgate store."""
    root = Path(target_path)
    store_dir = root / STORE_DIR

    # Idempotency: if .taskgate/ already exists as a directory, skip
    if store_dir.is_dir():
        click.echo(f"taskgate already initialized in {STORE_DIR}/")
        return

    if store_dir.exists():
        raise click.ClickException(
            f"Cannot initialize: '{STORE_DIR}' exists but is not a directory. "
            "Remove it and try again."
        )

    try:
        ensure_store_dirs(root)
        atomic_write(store_dir / "config.json", serialize_config(default_config()))
    except PermissionError:
        raise click.ClickException(f"Permission denied: cannot create {STORE_DIR}/ in {root}")
    except OSError as e:
        raise click.ClickException(f"Failed to initialize taskgate: {e}")

    click.echo(f"taskgate initialized in {STORE_DIR}/")
    click.echo("Next: taskgate create-admin --name ... --email ... --password ...")


# ---------------------------------------------------------------------------
# Register command modules (must be after cli group is defined)
# ---------------------------------------------------------------------------
from taskgate.cli import account_cmds as _account_cmds  # noqa: E402, F401
from taskgate.cli import serve_cmd as _serve_cmd  # noqa: E402, F401
from taskgate.cli import integrity_cmds as _integrity_cmds  # noqa: E402, F401

if __name__ == "__main__":
    cli()
