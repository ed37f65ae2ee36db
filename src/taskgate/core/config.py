"""Default config generation and validation."""

from __future__ import annotations

import json
import os
import secrets
from typing import TypedDict

TOKEN_SECRET_ENV = "TASKGATE_TOKEN_SECRET"
TOKEN_TTL_ENV = "TASKGATE_TOKEN_TTL"

MIN_SECRET_LENGTH = 32

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class AuthConfig(TypedDict, total=False):
    token_secret: str
    token_ttl_seconds: int
    bcrypt_rounds: int


class ServerConfig(TypedDict, total=False):
    host: str
    port: int


class StoreConfig(TypedDict, total=False):
    lock_timeout_seconds: float


class TaskgateConfig(TypedDict, total=False):
    schema_version: int
    auth: AuthConfig
    server: ServerConfig
    store: StoreConfig
    log_level: str


def default_config() -> TaskgateConfig:
    """Return the default configuration with a freshly generated token secret."""
    return {
        "schema_version": 1,
        "auth": {
            "token_secret": secrets.token_hex(32),
            "token_ttl_seconds": 7 * 24 * 3600,
            "bcrypt_rounds": 12,
        },
        "server": {
            "host": "127.0.0.1",
            "port": 8700,
        },
        "store": {
            "lock_timeout_seconds": 10,
        },
        "log_level": "INFO",
    }


def serialize_config(config: TaskgateConfig | dict[str, object]) -> str:
    """Serialize a config dict to the canonical JSON format."""
    return json.dumps(config, sort_keys=True, indent=2) + "\n"


def load_config(raw: str) -> dict:
    """Parse a JSON config string, apply environment overrides, and validate.

    This is a pure function apart from reading the environment.  The caller
    reads the file and passes the raw string here.
    """
    config = json.loads(raw)
    auth = config.setdefault("auth", {})
    env_secret = os.environ.get(TOKEN_SECRET_ENV)
    if env_secret:
        auth["token_secret"] = env_secret
    env_ttl = os.environ.get(TOKEN_TTL_ENV)
    if env_ttl:
        try:
            auth["token_ttl_seconds"] = int(env_ttl)
        except ValueError:
            raise ValueError(f"{TOKEN_TTL_ENV} must be an integer, got '{env_ttl}'") from None

    errors = validate_config(config)
    if errors:
        raise ValueError("Invalid config: " + "; ".join(errors))
    return config


def validate_config(config: dict) -> list[str]:
    """Return a list of problems with *config* (empty when valid)."""
    errors: list[str] = []
    auth = config.get("auth", {})
    secret = auth.get("token_secret")
    if not isinstance(secret, str) or len(secret) < MIN_SECRET_LENGTH:
        errors.append(f"auth.token_secret must be at least {MIN_SECRET_LENGTH} characters")
    ttl = auth.get("token_ttl_seconds", 1)
    if not isinstance(ttl, int) or ttl <= 0:
        errors.append("auth.token_ttl_seconds must be a positive integer")
    rounds = auth.get("bcrypt_rounds", 12)
    if not isinstance(rounds, int) or not 4 <= rounds <= 31:
        errors.append("auth.bcrypt_rounds must be between 4 and 31")
    timeout = config.get("store", {}).get("lock_timeout_seconds", 10)
    if not isinstance(timeout, (int, float)) or timeout <= 0:
        errors.append("store.lock_timeout_seconds must be positive")
    if config.get("log_level", "INFO") not in _LOG_LEVELS:
        errors.append(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
    return errors


def token_ttl(config: dict) -> int:
    return config.get("auth", {}).get("token_ttl_seconds", 7 * 24 * 3600)


def bcrypt_rounds(config: dict) -> int:
    return config.get("auth", {}).get("bcrypt_rounds", 12)


def lock_timeout(config: dict) -> float:
    return config.get("store", {}).get("lock_timeout_seconds", 10)
