from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Optional, Set, Tuple

from award_explorer.config import DEBOUNCE_SECONDS

logger = logging.getLogger(__name__)


class DebounceScheduler:
    """
    Coalesce bursts of triggers into one deferred dispatch.

    schedule(*args) records the arguments and (re)arms a timer for `delay`
    seconds; a call before the timer fires replaces both. When the timer fires,
    `dispatch` runs once with the last recorded arguments. cancel() disarms a
    pending timer; a timer callback that still runs after cancel() does nothing.

    `dispatch` may be a plain function or a coroutine function; coroutines are
    run as tasks on the current loop.
    """

    def __init__(
        self,
        dispatch: Callable[..., Any],
        delay: float = DEBOUNCE_SECONDS,
        name: str = "debounce",
    ):
        self._dispatch = dispatch
        self.delay = float(delay)
        self.name = name
        self._handle: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[Tuple[Tuple[Any, ...], Dict[str, Any]]] = None
        self._token = 0
        self._tasks: Set["asyncio.Task[Any]"] = set()
        self.dispatch_count = 0
        self.last_task: Optional["asyncio.Task[Any]"] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, *args: Any, **kwargs: Any) -> None:
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
            logger.debug("%s: previous trigger superseded", self.name)
        self._token += 1
        self._pending = (args, kwargs)
        self._handle = loop.call_later(self.delay, self._fire, self._token)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            logger.debug("%s: cancelled", self.name)
        self._handle = None
        self._pending = None
        self._token += 1

    def flush(self) -> Optional["asyncio.Task[Any]"]:
        """Fire a pending trigger now instead of waiting out the quiet window."""
        if self._handle is None:
            return None
        self._handle.cancel()
        self._fire(self._token)
        return self.last_task

    def _fire(self, token: int) -> None:
        if token != self._token or self._pending is None:
            return
        args, kwargs = self._pending
        self._pending = None
        self._handle = None
        self.dispatch_count += 1
        self.last_task = None
        logger.info("%s: dispatching after quiet period", self.name)

        result = self._dispatch(*args, **kwargs)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._on_done)
            self.last_task = task

    def _on_done(self, task: "asyncio.Task[Any]") -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("%s: dispatch failed", self.name, exc_info=exc)
