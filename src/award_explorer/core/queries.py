from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from award_explorer.config import DEFAULT_CONTRACTS_SORT, DEFAULT_TABLE_SORT
from award_explorer.core.data_loader import fetch_source_bytes_async
from award_explorer.core.dimensions import Dimension, as_dimension
from award_explorer.core.engine import EmbeddedEngine
from award_explorer.core.paged_fetcher import PagedResult, fetch_page, normalize_rows
from award_explorer.core.query_compiler import (
    Compare,
    ContainsText,
    Equals,
    NotNull,
    OrderBy,
    OutputColumn,
    Predicate,
    QueryCompileError,
    compile_where,
    parquet_relation,
    quote_ident,
)

logger = logging.getLogger(__name__)

# Logical buffer names; each is a single slot in the engine
TABLE_BUFFER = "current.parquet"
RELATED_BUFFER = "facts_related.parquet"
CONTRACTS_BUFFER = "facts_contracts.parquet"

# Facts file measures
AMOUNT_COL = "total_contract_amount"
DATE_COL = "award_date"

# Aggregate file / related-entity output columns
ENTITY_COLUMNS = [
    "entity",
    "contract_count",
    "total_contract_value",
    "average_contract_value",
    "first_contract_date",
    "last_contract_date",
]

# Contracts tab output; same shape whatever the facts file contains
CONTRACT_COLUMNS: Tuple[OutputColumn, ...] = (
    OutputColumn("award_date", kind="date"),
    OutputColumn("contractor_name"),
    OutputColumn("organization_name"),
    OutputColumn("business_category"),
    OutputColumn("area_of_delivery"),
    OutputColumn(AMOUNT_COL, kind="number", alias="contract_value"),
    OutputColumn("award_title"),
    OutputColumn("notice_title"),
    OutputColumn("contract_no"),
)

Filter = Tuple[Any, str]


# ---------------------------------------------------------------------------
# Related entities (aggregation over facts)
# ---------------------------------------------------------------------------

def compile_top_related_sql(
    relation: str,
    source_dimension: Dimension,
    source_value: str,
    target_dimension: Dimension,
    limit: int,
) -> str:
    """
    Group facts matching `source_value` by the target dimension.

    Rows are ordered by total value descending only; the order among equal
    totals is whatever the engine produces and may differ between runs.
    """
    if int(limit) <= 0:
        raise QueryCompileError(f"Limit must be positive, got {limit}.")
    if source_dimension == target_dimension:
        raise QueryCompileError(f"Target dimension must differ from source ({source_dimension.value}).")

    tgt = quote_ident(target_dimension.column)
    where = compile_where([Equals(source_dimension.column, source_value), NotNull(target_dimension.column)])
    return (
        f"SELECT {tgt} AS entity, "
        f"COUNT(*) AS contract_count, "
        f"SUM({AMOUNT_COL}) AS total_contract_value, "
        f"AVG({AMOUNT_COL}) AS average_contract_value, "
        f"MIN({DATE_COL}) AS first_contract_date, "
        f"MAX({DATE_COL}) AS last_contract_date "
        f"FROM {relation} {where} "
        f"GROUP BY 1 "
        f"ORDER BY total_contract_value DESC "
        f"LIMIT {int(limit)}"
    )


async def top_related(
    engine: EmbeddedEngine,
    source_dimension: Dimension | str,
    source_value: str,
    target_dimension: Dimension | str,
    limit: int,
    facts_locator: str,
) -> List[Dict[str, Any]]:
    """Top `limit` entities of `target_dimension` related to one source entity."""
    source_dimension = as_dimension(source_dimension)
    target_dimension = as_dimension(target_dimension)

    data = await fetch_source_bytes_async(facts_locator)

    async with engine.slot(RELATED_BUFFER):
        await engine.drop_file(RELATED_BUFFER)
        await engine.register_file_buffer(RELATED_BUFFER, data)
        relation = parquet_relation(str(engine.file_path(RELATED_BUFFER)))
        sql = compile_top_related_sql(relation, source_dimension, source_value, target_dimension, limit)

        conn = engine.connect()
        try:
            result = await conn.query(sql)
        finally:
            await conn.close()

    rows = normalize_rows(result)
    logger.info(
        "Related %s for %s=%r: %d rows",
        target_dimension.value, source_dimension.value, source_value, len(rows),
    )
    return rows


# ---------------------------------------------------------------------------
# Contract listing (line-level facts)
# ---------------------------------------------------------------------------

def build_contract_filters(filters: Sequence[Filter]) -> List[Predicate]:
    """
    Equality predicates for an accumulated drill path, in path order.

    Filters are conjunctive: two different values on the same dimension match nothing.
    """
    return [Equals(as_dimension(dim).column, value) for dim, value in filters]


async def list_contracts(
    engine: EmbeddedEngine,
    filters: Sequence[Filter],
    item_offset: int,
    page_size: int,
    order_by: OrderBy | Tuple[str, str] | str | None,
    facts_locator: str,
) -> PagedResult:
    """Line-level contracts matching every (dimension, value) filter."""
    order = OrderBy.coerce(order_by, OrderBy(*DEFAULT_CONTRACTS_SORT))
    return await fetch_page(
        engine,
        facts_locator,
        item_offset,
        page_size,
        where=build_contract_filters(filters),
        order_by=order,
        projection=CONTRACT_COLUMNS,
        logical_name=CONTRACTS_BUFFER,
    )


# ---------------------------------------------------------------------------
# Top-level entity table (aggregate files)
# ---------------------------------------------------------------------------

def build_entity_filters(name_filter: Optional[str]) -> List[Predicate]:
    predicates: List[Predicate] = []
    if name_filter and name_filter.strip():
        predicates.append(ContainsText("entity", name_filter.strip()))
    predicates.append(Compare("contract_count", ">", 0))
    return predicates


async def list_entities(
    engine: EmbeddedEngine,
    aggregate_locator: str,
    item_offset: int,
    page_size: int,
    *,
    name_filter: Optional[str] = None,
    order_by: OrderBy | Tuple[str, str] | str | None = None,
) -> PagedResult:
    """One page of the per-entity aggregate table, entities with no contracts excluded."""
    order = OrderBy.coerce(order_by, OrderBy(*DEFAULT_TABLE_SORT))
    return await fetch_page(
        engine,
        aggregate_locator,
        item_offset,
        page_size,
        where=build_entity_filters(name_filter),
        order_by=order,
        logical_name=TABLE_BUFFER,
    )
