"""Shared fixtures."""

import sys
import textwrap
from collections.abc import Iterator
from pathlib import Path

import pytest

SCHEMA_MODULE = "migrator_test_schema"

SCHEMA_MODULE_SOURCE = textwrap.dedent("""\
    from db_migrator.schema.registry import EntityRegistry, EntryDeclaration, TableDeclaration

    registry = EntityRegistry(tables=[
        TableDeclaration(
            name="users",
            definition="DEFINE TABLE users SCHEMAFULL",
            columns=[EntryDeclaration("email", "DEFINE FIELD email ON TABLE users TYPE string")],
        ),
    ])


    def build():
        return registry.current_schema_from_code()


    def build_wrong():
        return {"tables": {}}


    not_a_source = 42
""")


@pytest.fixture
def schema_module(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[str]:
    """Importable module declaring a ``users`` table with one field."""
    module_dir = tmp_path / "pkg"
    module_dir.mkdir()
    (module_dir / f"{SCHEMA_MODULE}.py").write_text(SCHEMA_MODULE_SOURCE)
    monkeypatch.syspath_prepend(str(module_dir))
    monkeypatch.delitem(sys.modules, SCHEMA_MODULE, raising=False)
    yield SCHEMA_MODULE
    sys.modules.pop(SCHEMA_MODULE, None)
