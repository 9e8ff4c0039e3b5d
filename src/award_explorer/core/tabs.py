from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

from award_explorer.config import (
    CONTRACTS_PAGE_SIZE,
    DEFAULT_CONTRACTS_SORT,
    RELATED_LIMIT,
)
from award_explorer.core.dimensions import Dimension, complementary_dimensions
from award_explorer.core.engine import EmbeddedEngine
from award_explorer.core.navigation import FilterContext, breadcrumb
from award_explorer.core.paged_fetcher import PagedResult
from award_explorer.core.queries import list_contracts, top_related
from award_explorer.core.query_compiler import OrderBy

logger = logging.getLogger(__name__)

CONTRACTS_TAB = "contracts"

RelatedQuery = Callable[..., Awaitable[List[Dict[str, Any]]]]
ContractsQuery = Callable[..., Awaitable[PagedResult]]


@dataclass
class TabState:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None


@dataclass
class ContractsTabState(TabState):
    total_count: int = 0
    page_offset: int = 0   # item offset, multiple of the contracts page size
    order_by: OrderBy = field(default_factory=lambda: OrderBy(*DEFAULT_CONTRACTS_SORT))


@dataclass
class DrillView:
    """Tab states shown for one drill context."""
    context: FilterContext
    tabs: Dict[Dimension, TabState] = field(default_factory=dict)
    contracts: ContractsTabState = field(default_factory=ContractsTabState)
    active_tab: Union[Dimension, str] = CONTRACTS_TAB

    @classmethod
    def loading(cls, ctx: FilterContext) -> "DrillView":
        return cls(
            context=ctx,
            tabs={dim: TabState(loading=True) for dim in complementary_dimensions(ctx.source_dimension)},
            contracts=ContractsTabState(loading=True),
        )

    @property
    def is_loading(self) -> bool:
        return self.contracts.loading or any(t.loading for t in self.tabs.values())


class TabLoadOrchestrator:
    """
    Launch the related-entity and contracts queries of a drill context.

    Each tab is written by its own query, independently of the others; a failure
    becomes that tab's error text and nothing else. Responses that arrive after
    the context changed (or, for contracts, after a newer re-sort / re-page)
    are discarded.
    """

    def __init__(
        self,
        engine: Optional[EmbeddedEngine],
        facts_locator: Callable[[], str],
        *,
        related_limit: int = RELATED_LIMIT,
        contracts_page_size: int = CONTRACTS_PAGE_SIZE,
        related_query: RelatedQuery = top_related,
        contracts_query: ContractsQuery = list_contracts,
    ):
        self.engine = engine
        self._facts_locator = facts_locator
        self.related_limit = int(related_limit)
        self.contracts_page_size = int(contracts_page_size)
        self._related_query = related_query
        self._contracts_query = contracts_query

        self.view: Optional[DrillView] = None
        self._context_token = 0
        self._contracts_token = 0
        self._tasks: Set["asyncio.Task[Any]"] = set()

    # -------------------------------------------------------------------
    # Tokens
    # -------------------------------------------------------------------

    @property
    def context_token(self) -> int:
        return self._context_token

    def _is_stale(self, context_token: int, contracts_token: Optional[int] = None) -> bool:
        if context_token != self._context_token or self.view is None:
            return True
        return contracts_token is not None and contracts_token != self._contracts_token

    def _spawn(self, coro: Awaitable[None]) -> "asyncio.Task[None]":
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------

    def open(self, ctx: FilterContext) -> "asyncio.Task[None]":
        """Reset every tab to loading and start all loads for `ctx`."""
        self._context_token += 1
        self._contracts_token += 1
        self.view = DrillView.loading(ctx)
        return self._spawn(self._load_all(ctx, self._context_token, self._contracts_token))

    def clear(self) -> None:
        self._context_token += 1
        self._contracts_token += 1
        self.view = None

    def reload_contracts(
        self,
        order_by: OrderBy | Tuple[str, str] | str | None = None,
        offset: int = 0,
    ) -> "asyncio.Task[None]":
        """Re-run the contracts query of the open context with a new sort and/or page."""
        if self.view is None:
            raise RuntimeError("No open drill context to reload.")
        offset = int(offset)
        if offset < 0 or offset % self.contracts_page_size != 0:
            raise ValueError(
                f"Contracts offset must be a non-negative multiple of {self.contracts_page_size}, got {offset}."
            )
        order = OrderBy.coerce(order_by, self.view.contracts.order_by)

        self._contracts_token += 1
        self.view.contracts.loading = True
        return self._spawn(self._load_contracts(self.view.context, order, offset, self._context_token, self._contracts_token))

    # -------------------------------------------------------------------
    # Loads
    # -------------------------------------------------------------------

    async def _load_all(self, ctx: FilterContext, context_token: int, contracts_token: int) -> None:
        loads = [self._load_related(ctx, dim, context_token) for dim in complementary_dimensions(ctx.source_dimension)]
        loads.append(
            self._load_contracts(ctx, OrderBy(*DEFAULT_CONTRACTS_SORT), 0, context_token, contracts_token)
        )
        await asyncio.gather(*loads)

    async def _load_related(self, ctx: FilterContext, target: Dimension, context_token: int) -> None:
        try:
            rows = await self._related_query(
                self.engine,
                ctx.source_dimension,
                ctx.source_value,
                target,
                self.related_limit,
                self._facts_locator(),
            )
        except Exception as exc:
            if self._is_stale(context_token):
                logger.warning("Discarding stale %s tab failure: %s", target.value, exc)
                return
            logger.exception("Loading %s tab failed", target.value)
            self.view.tabs[target] = TabState(rows=[], loading=False, error=str(exc))
            return

        if self._is_stale(context_token):
            logger.warning("Discarding stale %s tab response", target.value)
            return
        self.view.tabs[target] = TabState(rows=rows, loading=False, error=None)

    async def _load_contracts(
        self,
        ctx: FilterContext,
        order: OrderBy,
        offset: int,
        context_token: int,
        contracts_token: int,
    ) -> None:
        try:
            res = await self._contracts_query(
                self.engine,
                breadcrumb(ctx),
                offset,
                self.contracts_page_size,
                order,
                self._facts_locator(),
            )
        except Exception as exc:
            if self._is_stale(context_token, contracts_token):
                logger.warning("Discarding stale contracts tab failure: %s", exc)
                return
            logger.exception("Loading contracts tab failed")
            self.view.contracts = ContractsTabState(
                rows=[],
                loading=False,
                error=str(exc),
                total_count=0,
                page_offset=offset,
                order_by=order,
            )
            return

        if self._is_stale(context_token, contracts_token):
            logger.warning("Discarding stale contracts tab response (offset=%s)", offset)
            return
        self.view.contracts = ContractsTabState(
            rows=res.rows,
            loading=False,
            error=None,
            total_count=res.total_count,
            page_offset=offset,
            order_by=order,
        )
