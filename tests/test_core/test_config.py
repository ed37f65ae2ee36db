"""Tests for config defaults, environment overrides, and validation."""

from __future__ import annotations

import json

import pytest

from taskgate.core.config import (
    TOKEN_SECRET_ENV,
    TOKEN_TTL_ENV,
    bcrypt_rounds,
    default_config,
    load_config,
    lock_timeout,
    serialize_config,
    token_ttl,
    validate_config,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(TOKEN_SECRET_ENV, raising=False)
    monkeypatch.delenv(TOKEN_TTL_ENV, raising=False)


class TestDefaults:
    def test_default_is_valid(self) -> None:
        assert validate_config(default_config()) == []

    def test_fresh_secret_each_time(self) -> None:
        assert default_config()["auth"]["token_secret"] != default_config()["auth"]["token_secret"]

    def test_accessors(self) -> None:
        config = default_config()
        assert token_ttl(config) == 7 * 24 * 3600
        assert bcrypt_rounds(config) == 12
        assert lock_timeout(config) == 10

    def test_serialize_is_sorted_json(self) -> None:
        text = serialize_config(default_config())
        assert text.endswith("\n")
        assert list(json.loads(text)) == sorted(json.loads(text))


class TestLoadConfig:
    def test_round_trip(self) -> None:
        config = default_config()
        assert load_config(serialize_config(config)) == config

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(TOKEN_SECRET_ENV, "s" * 40)
        monkeypatch.setenv(TOKEN_TTL_ENV, "60")
        config = load_config(serialize_config(default_config()))
        assert config["auth"]["token_secret"] == "s" * 40
        assert token_ttl(config) == 60

    def test_bad_ttl_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(TOKEN_TTL_ENV, "forever")
        with pytest.raises(ValueError, match=TOKEN_TTL_ENV):
            load_config(serialize_config(default_config()))

    def test_short_secret_rejected(self) -> None:
        config = default_config()
        config["auth"]["token_secret"] = "short"
        with pytest.raises(ValueError, match="token_secret"):
            load_config(serialize_config(config))


class TestValidateConfig:
    def test_collects_every_problem(self) -> None:
        config = default_config()
        config["auth"]["bcrypt_rounds"] = 2
        config["store"]["lock_timeout_seconds"] = 0
        config["log_level"] = "LOUD"
        errors = validate_config(config)
        assert len(errors) == 3
