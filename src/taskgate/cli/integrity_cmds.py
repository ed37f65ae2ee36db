"""Integrity commands: doctor."""

from __future__ import annotations

import click

from taskgate.cli.helpers import json_envelope, load_project_config, require_root
from taskgate.cli.main import cli
from taskgate.core.config import lock_timeout
from taskgate.storage.assignments import check_assignment_invariant, recover_pending_assignments


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output structured JSON.")
def doctor(output_json: bool) -> None:
    """Replay interrupted assignments and check the Manager/User links.

    Exits 1 when any finding remains after replay.  Findings are reported,
    never repaired.
    """
    store_dir = require_root(output_json)
    config = load_project_config(store_dir, output_json)

    recovered = recover_pending_assignments(store_dir, timeout=lock_timeout(config))
    findings = check_assignment_invariant(store_dir)

    if output_json:
        data = {"recovered": recovered, "findings": findings}
        click.echo(json_envelope(not findings, data=data))
    else:
        for user_id in recovered:
            click.echo(f"Replayed pending assignment for {user_id}")
        for finding in findings:
            click.echo(f"[{finding['check']}] {finding['message']}")
        if findings:
            click.echo(f"{len(findings)} finding(s).")
        else:
            click.echo("No problems found.")

    if findings:
        raise SystemExit(1)
