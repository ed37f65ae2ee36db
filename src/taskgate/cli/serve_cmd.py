"""``taskgate serve`` command."""

from __future__ import annotations

import errno
import logging

import click

from taskgate.cli.helpers import json_envelope, json_error_obj, load_project_config, require_root
from taskgate.cli.main import cli
from taskgate.core.config import lock_timeout
from taskgate.storage.assignments import recover_pending_assignments

logger = logging.getLogger(__name__)


@cli.command("serve")
@click.option("--host", default=None, help="Host to bind to. Defaults to server.host in config.")
@click.option("--port", default=None, type=int, help="Port to bind to. Defaults to server.port in config.")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level. Defaults to log_level in config.",
)
@click.option("--json", "output_json", is_flag=True, help="Output structured JSON.")
def serve_cmd(host: str | None, port: int | None, log_level: str | None, output_json: bool) -> None:
    """Serve the HTTP API.

    Pending assignment journals left by an interrupted process are replayed
    before the server accepts requests.
    """
    store_dir = require_root(output_json)
    config = load_project_config(store_dir, output_json)

    server_cfg = config.get("server", {})
    host = host or server_cfg.get("host", "127.0.0.1")
    port = port if port is not None else server_cfg.get("port", 8700)
    level = (log_level or config.get("log_level", "INFO")).upper()

    logging.basicConfig(level=getattr(logging, level), format="%(levelname)s: %(message)s")

    recovered = recover_pending_assignments(store_dir, timeout=lock_timeout(config))
    if recovered:
        logger.warning("Recovered %d pending assignment(s): %s", len(recovered), ", ".join(recovered))

    from taskgate.api.server import create_server

    try:
        server = create_server(store_dir, config, host, port)
    except OSError as exc:
        if exc.errno == errno.EADDRINUSE:
            msg = f"Port {port} is already in use. Start on a free port with --port."
            code = "PORT_IN_USE"
        else:
            msg = str(exc)
            code = "BIND_ERROR"
        if output_json:
            click.echo(json_envelope(False, error=json_error_obj(code, msg)))
        else:
            click.echo(f"Error: {msg}", err=True)
        raise SystemExit(1)

    url = f"http://{host}:{port}/"
    if output_json:
        click.echo(json_envelope(True, data={"host": host, "port": port, "url": url}))
    else:
        click.echo(f"taskgate API: {url}")
        click.echo("Press Ctrl+C to stop.")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
