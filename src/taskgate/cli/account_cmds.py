"""Account commands: create-admin, login."""

from __future__ import annotations

import click

from taskgate.api import handlers
from taskgate.cli.helpers import (
    load_project_config,
    output_result,
    output_taskgate_error,
    require_root,
)
from taskgate.cli.main import cli
from taskgate.core.errors import TaskgateError


@cli.command("create-admin")
@click.option("--name", required=True, help="Administrator display name.")
@click.option("--email", required=True, help="Administrator email (login identifier).")
@click.option("--password", required=True, help="Administrator password.")
@click.option("--json", "output_json", is_flag=True, help="Output structured JSON.")
def create_admin(name: str, email: str, password: str, output_json: bool) -> None:
    """Seed the first Administrator.  Refused once one exists."""
    store_dir = require_root(output_json)
    config = load_project_config(store_dir, output_json)

    body = {"name": name, "email": email, "password": password}
    try:
        result = handlers.create_initial_admin(store_dir, config, body)
    except TaskgateError as exc:
        output_taskgate_error(exc, output_json)

    user = result["user"]
    output_result(
        data=result,
        human_message=f"Created administrator {user['email']} ({user['id']})",
        is_json=output_json,
    )


@cli.command()
@click.option("--email", required=True, help="Account email.")
@click.option("--password", required=True, help="Account password.")
@click.option("--json", "output_json", is_flag=True, help="Output structured JSON.")
def login(email: str, password: str, output_json: bool) -> None:
    """Verify credentials and print a bearer token."""
    store_dir = require_root(output_json)
    config = load_project_config(store_dir, output_json)

    try:
        result = handlers.login(store_dir, config, {"email": email, "password": password})
    except TaskgateError as exc:
        output_taskgate_error(exc, output_json)

    output_result(data=result, human_message=result["token"], is_json=output_json)
