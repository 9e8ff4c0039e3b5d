from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Union

from award_explorer.core.data_loader import fetch_source_bytes_async
from award_explorer.core.engine import EmbeddedEngine, EngineConnection, ResultSet
from award_explorer.core.query_compiler import (
    OrderBy,
    OutputColumn,
    Predicate,
    QueryCompileError,
    QuerySpec,
    describe_sql,
    parquet_relation,
)

logger = logging.getLogger(__name__)

DEFAULT_LOGICAL_NAME = "current.parquet"


@dataclass
class PagedResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    total_count: int = 0


# ---------------------------------------------------------------------------
# Row normalization
# ---------------------------------------------------------------------------

def normalize_row(row: Any, fields: Sequence[str]) -> Dict[str, Any]:
    """
    Turn one engine row into a column-name -> value dict.

    Mapping rows are read by field name; anything else is treated as positional.
    Missing positions / keys become None.
    """
    if isinstance(row, Mapping):
        return {name: row.get(name) for name in fields}
    values = list(row) if row is not None else []
    return {name: (values[idx] if idx < len(values) else None) for idx, name in enumerate(fields)}


def normalize_rows(result: ResultSet) -> List[Dict[str, Any]]:
    fields = list(result.schema.fields)
    return [normalize_row(r, fields) for r in result.to_array()]


def extract_count(result: ResultSet, column: str = "c") -> int:
    """Read a single COUNT(*) value from a one-row result."""
    rows = result.to_array()
    if not rows:
        return 0
    first = rows[0]
    if isinstance(first, Mapping):
        value = first.get(column)
    else:
        value = first[0] if len(first) else None
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


async def probe_columns(conn: EngineConnection, relation: str) -> Set[str]:
    """Column names of `relation` as the engine currently sees it."""
    result = await conn.query(describe_sql(relation))
    rows = normalize_rows(result)
    return {str(r.get("column_name")) for r in rows if r.get("column_name") is not None}


# ---------------------------------------------------------------------------
# Paging helpers
#
# Offsets are item offsets (rows skipped), always a multiple of page_size.
# ---------------------------------------------------------------------------

def _check_page_size(page_size: int) -> int:
    page_size = int(page_size)
    if page_size <= 0:
        raise QueryCompileError(f"Page size must be positive, got {page_size}.")
    return page_size


def page_number(item_offset: int, page_size: int) -> int:
    """Zero-based page number of an item offset."""
    return int(item_offset) // _check_page_size(page_size)


def page_count(total_count: int, page_size: int) -> int:
    return int(math.ceil(max(0, int(total_count)) / _check_page_size(page_size)))


def page_row_count(total_count: int, item_offset: int, page_size: int) -> int:
    """Rows expected on the page starting at `item_offset`."""
    page_size = _check_page_size(page_size)
    remaining = int(total_count) - int(item_offset)
    if remaining <= 0:
        return 0
    return min(page_size, remaining)


def next_offset(item_offset: int, page_size: int, total_count: int) -> int:
    """Offset of the following page, or `item_offset` when already on the last page."""
    page_size = _check_page_size(page_size)
    candidate = int(item_offset) + page_size
    return candidate if candidate < int(total_count) else int(item_offset)


def previous_offset(item_offset: int, page_size: int) -> int:
    return max(0, int(item_offset) - _check_page_size(page_size))


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------

async def fetch_page(
    engine: EmbeddedEngine,
    source_locator: str,
    item_offset: int,
    page_size: int,
    *,
    where: Sequence[Predicate] = (),
    order_by: Optional[OrderBy] = None,
    projection: Optional[Sequence[Union[str, OutputColumn]]] = None,
    logical_name: str = DEFAULT_LOGICAL_NAME,
) -> PagedResult:
    """
    Load a source file, run one page of a query over it, and count all matches.

    Key behavior:
      - The file is fetched and registered on every call (no caching).
      - total_count reflects `where` only, never limit/offset.
      - OutputColumn entries in `projection` are guarded against the live schema,
        so columns missing from older files come back as placeholders.
    """
    if int(item_offset) < 0:
        raise QueryCompileError(f"Offset must be non-negative, got {item_offset}.")
    _check_page_size(page_size)

    data = await fetch_source_bytes_async(source_locator)

    async with engine.slot(logical_name):
        await engine.register_file_buffer(logical_name, data)
        relation = parquet_relation(str(engine.file_path(logical_name)))

        conn = engine.connect()
        try:
            available: Optional[Set[str]] = None
            if projection and any(isinstance(c, OutputColumn) for c in projection):
                available = await probe_columns(conn, relation)

            spec = QuerySpec(
                relation=relation,
                where=tuple(where),
                order_by=order_by,
                limit=int(page_size),
                offset=int(item_offset),
                projection=tuple(projection) if projection else None,
                available_columns=frozenset(available) if available is not None else None,
            )

            result = await conn.query(spec.select_sql())
            count = await conn.query(spec.count_sql())
        finally:
            await conn.close()

    rows = normalize_rows(result)
    total = extract_count(count)
    logger.info(
        "Fetched page offset=%s size=%s from %s: %d rows of %d",
        item_offset, page_size, source_locator, len(rows), total,
    )
    return PagedResult(rows=rows, total_count=total)
