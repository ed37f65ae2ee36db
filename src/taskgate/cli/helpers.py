"""Shared CLI helpers and output utilities."""

from __future__ import annotations

import json
from pathlib import Path
from typing import NoReturn

import click

from taskgate.core.config import load_config
from taskgate.core.errors import TaskgateError
from taskgate.storage.fs import STORE_DIR, StoreRootError, find_root


# ---------------------------------------------------------------------------
# Root & config
# ---------------------------------------------------------------------------


def require_root(is_json: bool = False) -> Path:
    """Find .taskgate/ directory or exit with error."""
    try:
        root = find_root()
    except StoreRootError as e:
        output_error(str(e), "NOT_INITIALIZED", is_json)
    if root is None:
        output_error(
            "Not a taskgate project (no .taskgate/ found). Run 'taskgate init' first.",
            "NOT_INITIALIZED",
            is_json,
        )
    return root / STORE_DIR


def load_project_config(store_dir: Path, is_json: bool = False) -> dict:
    """Load, override from the environment, and validate config.json."""
    try:
        return load_config((store_dir / "config.json").read_text())
    except FileNotFoundError:
        output_error(f"Missing {STORE_DIR}/config.json", "NOT_INITIALIZED", is_json)
    except (ValueError, json.JSONDecodeError) as e:
        output_error(str(e), "INVALID_CONFIG", is_json)


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def json_envelope(ok: bool, *, data: object = None, error: object = None) -> str:
    """Build a structured JSON output envelope."""
    result: dict = {"ok": ok}
    if data is not None:
        result["data"] = data
    if error is not None:
        result["error"] = error
    return json.dumps(result, sort_keys=True, indent=2) + "\n"


def json_error_obj(code: str, message: str) -> dict:
    """Build an error object for the JSON envelope."""
    return {"code": code, "message": message}


def output_error(message: str, code: str, is_json: bool, exit_code: int = 1) -> NoReturn:
    """Print error and exit. JSON errors go to stdout; human errors to stderr."""
    if is_json:
        click.echo(json_envelope(False, error=json_error_obj(code, message)))
    else:
        click.echo(f"Error: {message}", err=True)
    raise SystemExit(exit_code)


def output_taskgate_error(exc: TaskgateError, is_json: bool) -> NoReturn:
    """Report a domain error raised by a use case and exit."""
    error = exc.to_error_obj()
    output_error(error["message"], error["code"], is_json)


def output_result(*, data: object, human_message: str, is_json: bool) -> None:
    """Print success result in the appropriate format."""
    if is_json:
        click.echo(json_envelope(True, data=data))
    else:
        click.echo(human_message)
