"""Statement text for define and remove operations.

The text of each individual definition comes from the declaration layer
(``Renderable.build()``).  This module only normalises define statements
to their overwrite form, so re-applying them is safe, and produces the
removal statements the sequencer needs.

Usage:
    from db_migrator.schema.render import SurrealQLRenderer

    renderer = SurrealQLRenderer()
    renderer.define("DEFINE FIELD email ON TABLE users TYPE string")
    # 'DEFINE FIELD OVERWRITE email ON TABLE users TYPE string;'
    renderer.remove_column("users", "email")
    # 'REMOVE FIELD email ON TABLE users;'
"""

import re
from typing import Protocol


class Renderable(Protocol):
    """A structured definition that renders its canonical statement text."""

    def build(self) -> str:
        """Render the definition.

        Raises:
            Exception: Any failure is reported as ``RenderError`` by the
                snapshot that owns the definition.
        """
        ...


class StatementRenderer(Protocol):
    """Produces the statement text the sequencer emits."""

    def define(self, text: str) -> str:
        """Statement that creates or replaces an entity from its definition text."""
        ...

    def remove_table(self, table: str) -> str: ...

    def remove_column(self, table: str, column: str) -> str: ...

    def remove_index(self, table: str, index: str) -> str: ...

    def remove_event(self, table: str, event: str) -> str: ...


_DEFINE_HEAD = re.compile(
    r"^(DEFINE\s+\w+)\s+(?:IF\s+NOT\s+EXISTS\s+|OVERWRITE\s+)?",
    re.IGNORECASE,
)


def ensure_overwrite(statement: str) -> str:
    """Rewrite a ``DEFINE`` statement into its ``OVERWRITE`` form.

    Only the statement head (``DEFINE <KIND>`` and an optional
    ``IF NOT EXISTS`` / ``OVERWRITE``) is rewritten; the rest of the text,
    whitespace included, is kept as written.  Non-``DEFINE`` statements
    are returned trimmed but otherwise unchanged.

    Examples:
        >>> ensure_overwrite("DEFINE TABLE test TYPE NORMAL SCHEMAFULL")
        'DEFINE TABLE OVERWRITE test TYPE NORMAL SCHEMAFULL'
        >>> ensure_overwrite("DEFINE TABLE IF NOT EXISTS test TYPE NORMAL")
        'DEFINE TABLE OVERWRITE test TYPE NORMAL'
    """
    return _DEFINE_HEAD.sub(r"\1 OVERWRITE ", statement.strip(), count=1)


class SurrealQLRenderer:
    """Default renderer for the declarative ``DEFINE`` / ``REMOVE`` dialect."""

    def define(self, text: str) -> str:
        statement = ensure_overwrite(text)
        if not statement.endswith(";"):
            statement += ";"
        return statement

    def remove_table(self, table: str) -> str:
        return f"REMOVE TABLE {table};"

    def remove_column(self, table: str, column: str) -> str:
        return f"REMOVE FIELD {column} ON TABLE {table};"

    def remove_index(self, table: str, index: str) -> str:
        return f"REMOVE INDEX {index} ON TABLE {table};"

    def remove_event(self, table: str, event: str) -> str:
        return f"REMOVE EVENT {event} ON TABLE {table};"
