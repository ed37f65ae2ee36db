"""API fixtures: a live server on an ephemeral port and request helpers."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from urllib.error import HTTPError
from urllib.request import Request, urlopen

import pytest

from taskgate.api.server import create_server


@pytest.fixture()
def api_server(store_dir: Path, test_config: dict):
    """Start the API server on a random port, yield (base_url, store_dir)."""
    host = "127.0.0.1"
    server = create_server(store_dir, test_config, host, 0)
    port = server.server_address[1]

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield f"http://{host}:{port}", store_dir

    server.shutdown()
    server.server_close()


def _request(
    base_url: str,
    method: str,
    path: str,
    data: dict | None = None,
    token: str | None = None,
    raw: bytes | None = None,
) -> tuple[int, dict]:
    """Make a request and return (status_code, parsed_body)."""
    headers = {"Content-Type": "application/json"}
    if token is not None:
        headers["Authorization"] = f"Bearer {token}"
    payload = raw if raw is not None else (json.dumps(data).encode("utf-8") if data is not None else None)
    req = Request(f"{base_url}{path}", data=payload, headers=headers, method=method)
    try:
        with urlopen(req) as resp:
            return resp.status, json.loads(resp.read().decode("utf-8"))
    except HTTPError as exc:
        # urllib raises on non-2xx; the body still carries the envelope.
        return exc.code, json.loads(exc.read().decode("utf-8"))


@pytest.fixture()
def api(api_server):
    """Return a request helper bound to the running server.

    Usage::

        status, body = api("POST", "/tasks", {"title": ...}, token=tok)
    """
    base_url, _store_dir = api_server

    def _api(method: str, path: str, data: dict | None = None, *, token: str | None = None, raw: bytes | None = None):
        return _request(base_url, method, path, data, token, raw)

    return _api


@pytest.fixture()
def bootstrap(api):
    """Create the first administrator through the API and return its token."""
    status, body = api(
        "POST",
        "/auth/create-admin",
        {"name": "Alice", "email": "alice@example.com", "password": "secret123"},
    )
    assert status == 201, body
    return body["data"]["token"]


@pytest.fixture()
def team(api, bootstrap):
    """Alice (admin) with managers Bob and Eve, Carol under Bob, Frank under Eve.

    Returns a dict of ``{name: {"id": ..., "token": ...}}``.
    """
    people: dict[str, dict] = {"alice": {"token": bootstrap}}

    def _login(email: str) -> str:
        status, body = api("POST", "/auth/login", {"email": email, "password": "secret123"})
        assert status == 200, body
        return body["data"]["token"]

    for name in ("bob", "eve"):
        status, body = api(
            "POST",
            "/users/managers",
            {"name": name.title(), "email": f"{name}@example.com", "password": "secret123"},
            token=bootstrap,
        )
        assert status == 201, body
        people[name] = {"id": body["data"]["id"], "token": _login(f"{name}@example.com")}

    for name, manager in (("carol", "bob"), ("frank", "eve")):
        status, body = api(
            "POST",
            "/users/regular-users",
            {
                "name": name.title(),
                "email": f"{name}@example.com",
                "password": "secret123",
                "managerId": people[manager]["id"],
            },
            token=bootstrap,
        )
        assert status == 201, body
        people[name] = {"id": body["data"]["id"], "token": _login(f"{name}@example.com")}

    people["alice"]["id"] = api("GET", "/auth/me", token=bootstrap)[1]["data"]["id"]
    return people
