"""Shared test fixtures."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from taskgate.auth.identity import ResolvedPrincipal
from taskgate.auth.passwords import hash_password
from taskgate.core.config import default_config, serialize_config
from taskgate.core.events import utc_now
from taskgate.core.principals import ADMIN, MANAGER, USER, new_principal, public_view, ref_of
from taskgate.storage.assignments import assign
from taskgate.storage.fs import STORE_DIR, atomic_write, ensure_store_dirs
from taskgate.storage.principals import insert_principal

TEST_PASSWORD = "secret123"

# Lowest cost bcrypt accepts; keeps hashing fast in tests.
TEST_BCRYPT_ROUNDS = 4


@pytest.fixture()
def taskgate_root(tmp_path: Path) -> Path:
    """Return a temporary directory suitable for initializing .taskgate/ in."""
    return tmp_path


@pytest.fixture()
def test_config() -> dict:
    config = default_config()
    config["auth"]["bcrypt_rounds"] = TEST_BCRYPT_ROUNDS
    config["store"]["lock_timeout_seconds"] = 5
    return config


@pytest.fixture()
def initialized_root(taskgate_root: Path, test_config: dict) -> Path:
    """Return a temporary directory with .taskgate/ already initialized."""
    store_dir = ensure_store_dirs(taskgate_root)
    atomic_write(store_dir / "config.json", serialize_config(test_config))
    return taskgate_root


@pytest.fixture()
def store_dir(initialized_root: Path) -> Path:
    return initialized_root / STORE_DIR


# Password hashes are the slow part; compute one per session.
@pytest.fixture(scope="session")
def password_hash() -> str:
    return hash_password(TEST_PASSWORD, rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture()
def make_principal(store_dir: Path, password_hash: str):
    """Return a factory that stores a principal and returns its document.

    Usage::

        alice = make_principal("admin", "Alice")
        carol = make_principal("user", "Carol", manager=bob)
    """
    counter = iter(range(1_000_000))

    def _make(kind: str, name: str, *, email: str | None = None, manager: dict | None = None) -> dict:
        if email is None:
            email = f"{name.lower()}{next(counter)}@example.com"
        principal = new_principal(
            kind,
            name=name,
            email=email,
            password_hash=password_hash,
            created_by=None,
            ts=utc_now(),
        )
        insert_principal(store_dir, principal, None)
        if manager is not None:
            principal = assign(store_dir, principal["id"], manager["id"], None)
        return principal

    return _make


@pytest.fixture()
def admin(make_principal) -> dict:
    return make_principal(ADMIN, "Alice")


@pytest.fixture()
def manager(make_principal) -> dict:
    return make_principal(MANAGER, "Bob")


@pytest.fixture()
def user(make_principal, manager: dict) -> dict:
    """A RegularUser assigned to ``manager``."""
    return make_principal(USER, "Carol", manager=manager)


def as_caller(store_dir: Path, principal: dict) -> ResolvedPrincipal:
    """Build the resolved caller for *principal* from its current stored state."""
    from taskgate.storage.principals import read_principal

    current = read_principal(store_dir, principal["role"], principal["id"])
    return ResolvedPrincipal(ref=ref_of(current), principal=public_view(current))


@pytest.fixture()
def caller(store_dir: Path):
    """Return a helper that re-reads a principal and wraps it as a caller."""

    def _caller(principal: dict) -> ResolvedPrincipal:
        return as_caller(store_dir, principal)

    return _caller


@pytest.fixture()
def cli_runner() -> CliRunner:
    """Return a Click CliRunner for invoking CLI commands."""
    return CliRunner()


@pytest.fixture()
def cli_env(initialized_root: Path) -> dict[str, str]:
    """Return env dict with TASKGATE_ROOT pointing to initialized_root."""
    return {"TASKGATE_ROOT": str(initialized_root)}


@pytest.fixture()
def invoke(cli_runner: CliRunner, cli_env: dict[str, str]):
    """Return a helper that invokes CLI commands with the right environment.

    Usage::

        result = invoke("login", "--email", "a@example.com", "--password", "pw")
    """
    from taskgate.cli.main import cli

    def _invoke(*args: str, **kwargs):
        return cli_runner.invoke(cli, list(args), env=cli_env, **kwargs)

    return _invoke


@pytest.fixture()
def invoke_json(invoke):
    """Like invoke, but appends --json and parses the response.

    Returns (parsed_dict, exit_code) tuple.
    """

    def _invoke_json(*args: str) -> tuple[dict, int]:
        result = invoke(*args, "--json")
        parsed = json.loads(result.output)
        return parsed, result.exit_code

    return _invoke_json
