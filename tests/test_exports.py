"""Tests for package exports and public API.

Verifies that the ``__init__.py`` files export the expected names, that
``__all__`` lists are accurate, and that top-level convenience imports work.
"""

import importlib

import pytest

import db_migrator


class TestTopLevelExports:
    """Tests for src/db_migrator/__init__.py exports."""

    def test_version_defined(self) -> None:
        """Package __version__ is defined and is a string."""
        assert db_migrator.__version__ == "0.1.0"

    def test_all_names_are_importable(self) -> None:
        """Every name in __all__ is accessible on the module."""
        for name in db_migrator.__all__:
            assert hasattr(db_migrator, name), (
                f"'{name}' is in __all__ but not accessible on db_migrator"
            )

    def test_engine_functions(self) -> None:
        """The pure engine is importable from the top level."""
        from db_migrator import diff, generate_statements, validate

        assert callable(diff)
        assert callable(generate_statements)
        assert callable(validate)

    def test_error_hierarchy(self) -> None:
        """Every toolkit error derives from MigrationError."""
        from db_migrator import (
            DriftDetectedError,
            ExecutionError,
            HistoryError,
            MigrationError,
            MigrationLockedError,
            RenderFailure,
            SequenceError,
        )

        for error in (DriftDetectedError, ExecutionError, HistoryError, MigrationLockedError, SequenceError):
            assert issubclass(error, MigrationError)
        assert issubclass(RenderFailure, SequenceError)


@pytest.mark.parametrize(
    "module_name",
    [
        "db_migrator.adapters",
        "db_migrator.config",
        "db_migrator.migrations",
        "db_migrator.schema",
    ],
)
def test_subpackage_all_is_accurate(module_name: str) -> None:
    """Each subpackage defines __all__ and every listed name exists."""
    module = importlib.import_module(module_name)
    assert isinstance(module.__all__, list)
    for name in module.__all__:
        assert hasattr(module, name), f"'{name}' missing from {module_name}"
