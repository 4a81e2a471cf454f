"""Small builders for the dynamic SQL the resource modules need.

Column names always come from code (field maps in the table modules), never
from request data; values always travel as ``?`` parameters.
"""

import re

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


class UpdateBuilder:
    """Accumulates ``column = ?`` pairs and renders a partial UPDATE.

    Only columns passed to :meth:`set` are touched; nothing is nulled
    implicitly. ``touch`` adds the ``updated_at`` bump once at least one
    real column changed.
    """

    def __init__(self, table: str, touch: bool = True):
        self.table = _check_identifier(table)
        self.touch = touch
        self._columns: list[str] = []
        self._params: list = []

    def set(self, column: str, value) -> "UpdateBuilder":
        self._columns.append(_check_identifier(column))
        self._params.append(value)
        return self

    def __bool__(self) -> bool:
        return bool(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def render(self, where: str, where_params: tuple | list = ()) -> tuple[str, list]:
        if not self._columns:
            raise ValueError("UpdateBuilder.render() called with no columns set")
        assignments = [f"{col} = ?" for col in self._columns]
        if self.touch:
            assignments.append("updated_at = datetime('now')")
        sql = f"UPDATE {self.table} SET {', '.join(assignments)} WHERE {where}"
        return sql, [*self._params, *where_params]


class WhereBuilder:
    """Collects AND-ed predicates and their parameters."""

    def __init__(self, *base_clauses: str):
        self._clauses: list[str] = list(base_clauses)
        self._params: list = []

    def add(self, clause: str, *params) -> "WhereBuilder":
        self._clauses.append(clause)
        self._params.extend(params)
        return self

    def equals(self, column: str, value) -> "WhereBuilder":
        """Add ``column = ?`` unless ``value`` is None or empty."""
        if value is None or value == "":
            return self
        return self.add(f"{_check_identifier(column)} = ?", value)

    @property
    def params(self) -> list:
        return list(self._params)

    def render(self) -> str:
        if not self._clauses:
            return ""
        return " WHERE " + " AND ".join(self._clauses)
