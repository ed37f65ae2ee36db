"""Tests for core ids module -- generation and validation."""

from __future__ import annotations

from taskgate.core.ids import (
    generate_admin_id,
    generate_event_id,
    generate_manager_id,
    generate_task_id,
    generate_user_id,
    id_prefix,
    validate_id,
)

# A valid 26-char Crockford Base32 ULID for reuse in tests.
_VALID_ULID = "01H0ABC0DEF000000000000000"


class TestGenerators:
    def test_each_generator_uses_its_prefix(self) -> None:
        assert validate_id(generate_admin_id(), "adm")
        assert validate_id(generate_manager_id(), "mgr")
        assert validate_id(generate_user_id(), "usr")
        assert validate_id(generate_task_id(), "task")
        assert validate_id(generate_event_id(), "ev")

    def test_ids_are_unique(self) -> None:
        ids = {generate_task_id() for _ in range(200)}
        assert len(ids) == 200


class TestValidateId:
    def test_lowercase_ulid(self) -> None:
        assert validate_id("task_" + _VALID_ULID.lower(), "task") is True

    def test_wrong_prefix(self) -> None:
        assert validate_id("usr_" + _VALID_ULID, "mgr") is False

    def test_missing_separator(self) -> None:
        assert validate_id("task" + _VALID_ULID, "task") is False

    def test_short_ulid(self) -> None:
        assert validate_id("task_" + _VALID_ULID[:-1], "task") is False

    def test_excluded_letters(self) -> None:
        # I, L, O and U are not Crockford Base32.
        assert validate_id("task_" + "I" * 26, "task") is False

    def test_non_string(self) -> None:
        assert validate_id(None, "task") is False  # type: ignore[arg-type]
        assert validate_id(42, "task") is False  # type: ignore[arg-type]

    def test_path_traversal_rejected(self) -> None:
        assert validate_id("task_../../etc/passwd", "task") is False


class TestIdPrefix:
    def test_prefix(self) -> None:
        assert id_prefix("mgr_" + _VALID_ULID) == "mgr"

    def test_no_separator(self) -> None:
        assert id_prefix("garbage") is None

    def test_non_string(self) -> None:
        assert id_prefix(None) is None  # type: ignore[arg-type]
