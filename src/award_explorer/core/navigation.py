from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, List, Optional, Tuple

from award_explorer.core.dimensions import Dimension, as_dimension

if TYPE_CHECKING:
    from award_explorer.core.tabs import TabLoadOrchestrator

logger = logging.getLogger(__name__)

Crumb = Tuple[Dimension, str]


class NavigationError(RuntimeError):
    """Raised for a transition that is not valid in the current state."""


@dataclass(frozen=True)
class FilterContext:
    """
    One level of a drill path.

    Contexts are immutable and only ever created with a parent taken from an
    existing chain, so the parent links cannot form a cycle.
    """
    source_dimension: Dimension
    source_value: str
    parent: Optional["FilterContext"] = None

    def child(self, dimension: Dimension | str, value: str) -> "FilterContext":
        return FilterContext(as_dimension(dimension), str(value), parent=self)

    def chain(self) -> Iterator["FilterContext"]:
        """Leaf-to-root walk."""
        node: Optional[FilterContext] = self
        while node is not None:
            yield node
            node = node.parent

    @property
    def depth(self) -> int:
        return sum(1 for _ in self.chain())

    @property
    def is_root(self) -> bool:
        return self.parent is None


def breadcrumb(ctx: Optional[FilterContext]) -> List[Crumb]:
    """Root-first (dimension, value) pairs of the drill path ending at `ctx`."""
    if ctx is None:
        return []
    crumbs = [(node.source_dimension, node.source_value) for node in ctx.chain()]
    crumbs.reverse()
    return crumbs


def format_breadcrumb(ctx: Optional[FilterContext], separator: str = " → ") -> str:
    return separator.join(f"{dim.value}: {value}" for dim, value in breadcrumb(ctx))


class DrillNavigator:
    """
    Collapsed / Open(context) state machine over a FilterContext chain.

    Every transition into Open hands the new context to the orchestrator,
    which resets all tabs to loading before returning and starts their loads.
    The returned task completes once every tab has settled.
    """

    def __init__(self, orchestrator: "TabLoadOrchestrator", root_dimension: Dimension | str):
        self._orchestrator = orchestrator
        self.root_dimension = as_dimension(root_dimension)
        self._current: Optional[FilterContext] = None

    @property
    def current(self) -> Optional[FilterContext]:
        return self._current

    @property
    def is_open(self) -> bool:
        return self._current is not None

    @property
    def depth(self) -> int:
        return self._current.depth if self._current is not None else 0

    def breadcrumb(self) -> List[Crumb]:
        return breadcrumb(self._current)

    def _enter(self, ctx: FilterContext) -> "asyncio.Task[None]":
        self._current = ctx
        logger.info("Drill path: %s", format_breadcrumb(ctx))
        return self._orchestrator.open(ctx)

    def drill(self, value: str) -> "asyncio.Task[None]":
        """Start a new path at the dataset's own dimension, discarding any open one."""
        return self._enter(FilterContext(self.root_dimension, str(value)))

    def drill_from_tab(self, value: str, dimension: Dimension | str) -> "asyncio.Task[None]":
        if self._current is None:
            raise NavigationError("drill_from_tab() requires an open drill context.")
        return self._enter(self._current.child(dimension, value))

    def go_back(self) -> Optional["asyncio.Task[None]"]:
        """Return to the parent context, or collapse when already at the root."""
        if self._current is None:
            return None
        if self._current.parent is None:
            self.close()
            return None
        return self._enter(self._current.parent)

    def close(self) -> None:
        self._current = None
        self._orchestrator.clear()
