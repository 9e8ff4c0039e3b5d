"""
Compile structured filter / sort / paging requests into DuckDB query text.

Every literal goes through `quote_literal` and every identifier through
`quote_ident`; nothing else interpolates caller input into the text.

Literal escaping only doubles single quotes. That is enough for DuckDB's
standard string literals, but values are still embedded in the text rather
than bound as parameters, so callers should keep values to plain text.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence, Set, Tuple, Union

logger = logging.getLogger(__name__)

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_DIRECTIONS = ("ASC", "DESC")
_COMPARE_OPS = ("=", "!=", "<", "<=", ">", ">=")

# Placeholder emitted for an output column missing from the source schema
DRIFT_DEFAULTS = {
    "text": "''",
    "number": "0",
    "date": "NULL",
}


class QueryCompileError(ValueError):
    """Raised when a query request cannot be compiled (bad identifier, direction, paging)."""


# ---------------------------------------------------------------------------
# Escaping
# ---------------------------------------------------------------------------

def quote_literal(value: Any) -> str:
    """
    Render a Python value as a SQL literal.

    Strings are wrapped in single quotes with embedded quotes doubled:
    "O'Brien" -> 'O''Brien'.
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return "'" + value.isoformat() + "'"
    text = str(value)
    return "'" + text.replace("'", "''") + "'"


def quote_ident(name: str) -> str:
    """Validate a column / relation name; only plain identifiers are accepted."""
    name = str(name or "").strip()
    if not _IDENT_RE.match(name):
        raise QueryCompileError(f"Invalid identifier: {name!r}")
    return name


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Equals:
    column: str
    value: Any

    def sql(self) -> str:
        return f"{quote_ident(self.column)} = {quote_literal(self.value)}"


@dataclass(frozen=True)
class NotNull:
    column: str

    def sql(self) -> str:
        return f"{quote_ident(self.column)} IS NOT NULL"


@dataclass(frozen=True)
class Compare:
    column: str
    op: str
    value: Any

    def sql(self) -> str:
        if self.op not in _COMPARE_OPS:
            raise QueryCompileError(f"Unsupported comparison operator: {self.op!r}")
        return f"{quote_ident(self.column)} {self.op} {quote_literal(self.value)}"


@dataclass(frozen=True)
class ContainsText:
    """Case-insensitive substring match."""
    column: str
    needle: str

    def sql(self) -> str:
        pattern = "%" + str(self.needle).strip().lower() + "%"
        return f"lower({quote_ident(self.column)}) LIKE {quote_literal(pattern)}"


Predicate = Union[Equals, NotNull, Compare, ContainsText]


def compile_where(predicates: Iterable[Predicate]) -> str:
    """AND the predicates in order; empty input compiles to ''."""
    parts = [p.sql() for p in predicates]
    if not parts:
        return ""
    return "WHERE " + " AND ".join(parts)


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OrderBy:
    column: str
    direction: str = "DESC"

    def sql(self) -> str:
        direction = str(self.direction).strip().upper()
        if direction not in _DIRECTIONS:
            raise QueryCompileError(f"Invalid sort direction: {self.direction!r}")
        return f"ORDER BY {quote_ident(self.column)} {direction}"

    def toggled(self, column: str) -> "OrderBy":
        """Header-click semantics: same column flips DESC->ASC, anything else starts DESC."""
        if column == self.column and self.direction.upper() == "DESC":
            return OrderBy(column, "ASC")
        return OrderBy(column, "DESC")

    @classmethod
    def parse(cls, text: str) -> "OrderBy":
        parts = str(text or "").split()
        if not parts or len(parts) > 2:
            raise QueryCompileError(f"Invalid sort spec: {text!r}")
        direction = parts[1] if len(parts) == 2 else "ASC"
        return cls(parts[0], direction.upper())

    @classmethod
    def coerce(cls, value: "OrderBy | Tuple[str, str] | str | None", default: "OrderBy") -> "OrderBy":
        if value is None:
            return default
        if isinstance(value, OrderBy):
            return value
        if isinstance(value, str):
            return cls.parse(value)
        column, direction = value
        return cls(column, direction)


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OutputColumn:
    """
    One output column of a select list.

    `source` is read from the relation and exposed as `alias` (defaults to
    `source`). When the relation lacks `source`, the column is emitted as the
    drift default for `kind` so the output shape never changes.
    """
    source: str
    kind: str = "text"
    alias: Optional[str] = None

    @property
    def name(self) -> str:
        return self.alias or self.source

    def sql(self, available: Optional[Set[str]] = None) -> str:
        src = quote_ident(self.source)
        name = quote_ident(self.name)
        if available is not None and self.source not in available:
            if self.kind not in DRIFT_DEFAULTS:
                raise QueryCompileError(f"Unknown column kind: {self.kind!r}")
            logger.warning("Column %s missing from source; emitting %s AS %s", self.source, DRIFT_DEFAULTS[self.kind], name)
            return f"{DRIFT_DEFAULTS[self.kind]} AS {name}"
        if name == src:
            return src
        return f"{src} AS {name}"


def compile_projection(
    columns: Optional[Sequence[Union[str, OutputColumn]]],
    available: Optional[Set[str]] = None,
) -> str:
    """
    Build a select list. Plain strings are taken as-is (no guarding); OutputColumn
    entries are guarded against `available` when it is given.
    """
    if not columns:
        return "*"
    parts: List[str] = []
    for col in columns:
        if isinstance(col, OutputColumn):
            parts.append(col.sql(available))
        else:
            parts.append(quote_ident(col))
    return ", ".join(parts)


# ---------------------------------------------------------------------------
# Full queries
# ---------------------------------------------------------------------------

def parquet_relation(path: str) -> str:
    return f"read_parquet({quote_literal(str(path))})"


@dataclass(frozen=True)
class QuerySpec:
    """
    Immutable description of one paged query against a single relation.

    `relation` is already-compiled FROM text (see `parquet_relation`).
    """
    relation: str
    where: Tuple[Predicate, ...] = ()
    order_by: Optional[OrderBy] = None
    limit: int = 10
    offset: int = 0
    projection: Optional[Tuple[Union[str, OutputColumn], ...]] = None
    available_columns: Optional[frozenset] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if int(self.limit) <= 0:
            raise QueryCompileError(f"Page size must be positive, got {self.limit}.")
        if int(self.offset) < 0:
            raise QueryCompileError(f"Offset must be non-negative, got {self.offset}.")

    def select_sql(self) -> str:
        available = set(self.available_columns) if self.available_columns is not None else None
        parts = [
            f"SELECT {compile_projection(self.projection, available)}",
            f"FROM {self.relation}",
        ]
        where = compile_where(self.where)
        if where:
            parts.append(where)
        if self.order_by is not None:
            parts.append(self.order_by.sql())
        parts.append(f"LIMIT {int(self.limit)} OFFSET {int(self.offset)}")
        return " ".join(parts)

    def count_sql(self) -> str:
        parts = [f"SELECT COUNT(*) AS c FROM {self.relation}"]
        where = compile_where(self.where)
        if where:
            parts.append(where)
        return " ".join(parts)


def describe_sql(relation: str) -> str:
    return f"DESCRIBE SELECT * FROM {relation}"
