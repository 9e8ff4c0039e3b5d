from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from award_explorer.config import (
    DEBOUNCE_SECONDS,
    DEFAULT_TABLE_SORT,
    PARQUET_BASE,
    TABLE_PAGE_SIZE,
)
from award_explorer.core.data_loader import TimeRange, aggregate_locator, facts_locator
from award_explorer.core.debounce import DebounceScheduler
from award_explorer.core.dimensions import Dimension, dimension_for_dataset
from award_explorer.core.engine import EmbeddedEngine, EngineHandle, get_engine_handle
from award_explorer.core.navigation import DrillNavigator
from award_explorer.core.paged_fetcher import PagedResult, next_offset, previous_offset
from award_explorer.core.queries import list_contracts, list_entities, top_related
from award_explorer.core.query_compiler import OrderBy
from award_explorer.core.summary import SummaryStats, compute_summary, rows_to_csv
from award_explorer.core.tabs import DrillView, TabLoadOrchestrator

logger = logging.getLogger(__name__)

EntitiesQuery = Callable[..., Awaitable[PagedResult]]


@dataclass
class TableState:
    """Top-level entity table. A non-empty `error` replaces the table with a banner."""
    rows: List[Dict[str, Any]] = field(default_factory=list)
    total_count: int = 0
    page_offset: int = 0
    loading: bool = False
    error: Optional[str] = None
    summary: SummaryStats = field(default_factory=SummaryStats)


class ExplorerSession:
    """
    One user's explorer: the entity table plus the drill view opened from it.

    Table changes (dataset, time range, name filter, sort, page) and contracts
    re-sort / re-page go through their own debounce schedulers; drill
    transitions load immediately.
    """

    def __init__(
        self,
        engine: EmbeddedEngine,
        *,
        dataset: str = "contractors",
        time_range: Optional[TimeRange] = None,
        base: Optional[str] = None,
        page_size: int = TABLE_PAGE_SIZE,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        handle: Optional[EngineHandle] = None,
        entities_query: EntitiesQuery = list_entities,
        related_query: Callable[..., Awaitable[Any]] = top_related,
        contracts_query: Callable[..., Awaitable[PagedResult]] = list_contracts,
    ):
        self.engine = engine
        self._handle = handle
        self.dataset = dataset
        self._dimension = dimension_for_dataset(dataset)
        self.time_range = time_range or TimeRange.all_time()
        self.base = base or PARQUET_BASE
        self.page_size = int(page_size)
        self.name_filter = ""
        self.table_order = OrderBy(*DEFAULT_TABLE_SORT)
        self.table = TableState()
        self._table_token = 0

        self.orchestrator = TabLoadOrchestrator(
            engine,
            self.facts_locator,
            related_query=related_query,
            contracts_query=contracts_query,
        )
        self.navigator = DrillNavigator(self.orchestrator, self._dimension)
        self._entities_query = entities_query

        self._table_debounce = DebounceScheduler(self.load_table, debounce_seconds, name="table")
        self._contracts_debounce = DebounceScheduler(self._dispatch_contracts, debounce_seconds, name="contracts")

    @classmethod
    async def open(cls, handle: Optional[EngineHandle] = None, **kwargs: Any) -> "ExplorerSession":
        """Acquire the shared engine and build a session on it; pair with aclose()."""
        handle = handle or get_engine_handle()
        engine = await handle.acquire()
        return cls(engine, handle=handle, **kwargs)

    async def aclose(self) -> None:
        self._table_debounce.cancel()
        self._contracts_debounce.cancel()
        self.navigator.close()
        self._table_token += 1
        if self._handle is not None:
            handle, self._handle = self._handle, None
            await handle.release()

    # -------------------------------------------------------------------
    # Sources
    # -------------------------------------------------------------------

    @property
    def dimension(self) -> Dimension:
        return self._dimension

    def aggregate_locator(self) -> str:
        return aggregate_locator(self._dimension, self.time_range, self.base)

    def facts_locator(self) -> str:
        return facts_locator(self.time_range, self.base)

    # -------------------------------------------------------------------
    # Entity table
    # -------------------------------------------------------------------

    @property
    def table_pending(self) -> bool:
        """A debounced table reload is waiting for its quiet period."""
        return self._table_debounce.pending

    async def load_table(self, item_offset: int = 0) -> None:
        """Load one page of the entity table now; failures become the page error."""
        self._table_token += 1
        token = self._table_token
        self.table.loading = True
        self.table.error = None

        try:
            res = await self._entities_query(
                self.engine,
                self.aggregate_locator(),
                int(item_offset),
                self.page_size,
                name_filter=self.name_filter,
                order_by=self.table_order,
            )
        except Exception as exc:
            if token != self._table_token:
                logger.warning("Discarding stale table failure: %s", exc)
                return
            logger.exception("Loading %s table failed", self.dataset)
            self.table = TableState(rows=[], total_count=0, page_offset=int(item_offset), loading=False, error=str(exc))
            return

        if token != self._table_token:
            logger.warning("Discarding stale table response (offset=%s)", item_offset)
            return
        self.table = TableState(
            rows=res.rows,
            total_count=res.total_count,
            page_offset=int(item_offset),
            loading=False,
            error=None,
            summary=compute_summary(res.rows),
        )

    def request_table(self, item_offset: int = 0) -> None:
        self._table_debounce.schedule(int(item_offset))

    def set_dataset(self, dataset: str) -> None:
        self._dimension = dimension_for_dataset(dataset)
        self.dataset = dataset
        self.navigator.root_dimension = self._dimension
        self.request_table(0)

    def set_time_range(self, time_range: TimeRange) -> None:
        self.time_range = time_range
        self.request_table(0)

    def set_name_filter(self, text: str) -> None:
        self.name_filter = (text or "").strip()
        self.request_table(0)

    def sort_table(self, column: str) -> None:
        self.table_order = self.table_order.toggled(column)
        self.request_table(0)

    def next_page(self) -> None:
        self.request_table(next_offset(self.table.page_offset, self.page_size, self.table.total_count))

    def previous_page(self) -> None:
        self.request_table(previous_offset(self.table.page_offset, self.page_size))

    def export_csv(self) -> str:
        return rows_to_csv(self.table.rows)

    # -------------------------------------------------------------------
    # Drill
    # -------------------------------------------------------------------

    @property
    def drill_view(self) -> Optional[DrillView]:
        return self.orchestrator.view

    def drill(self, value: str) -> "asyncio.Task[None]":
        self._contracts_debounce.cancel()
        return self.navigator.drill(value)

    def drill_from_tab(self, value: str, dimension: Dimension | str) -> "asyncio.Task[None]":
        self._contracts_debounce.cancel()
        return self.navigator.drill_from_tab(value, dimension)

    def go_back(self) -> Optional["asyncio.Task[None]"]:
        self._contracts_debounce.cancel()
        return self.navigator.go_back()

    def close_drill(self) -> None:
        self._contracts_debounce.cancel()
        self.navigator.close()

    def _dispatch_contracts(self, order: OrderBy, offset: int) -> Optional["asyncio.Task[None]"]:
        if self.orchestrator.view is None:
            logger.info("Contracts reload skipped: drill view was closed")
            return None
        return self.orchestrator.reload_contracts(order, offset)

    def sort_contracts(self, column: str) -> None:
        view = self.orchestrator.view
        if view is None:
            return
        self._contracts_debounce.schedule(view.contracts.order_by.toggled(column), 0)

    def contracts_next_page(self) -> None:
        view = self.orchestrator.view
        if view is None:
            return
        c = view.contracts
        offset = next_offset(c.page_offset, self.orchestrator.contracts_page_size, c.total_count)
        self._contracts_debounce.schedule(c.order_by, offset)

    def contracts_previous_page(self) -> None:
        view = self.orchestrator.view
        if view is None:
            return
        c = view.contracts
        self._contracts_debounce.schedule(c.order_by, previous_offset(c.page_offset, self.orchestrator.contracts_page_size))
