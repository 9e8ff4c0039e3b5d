from __future__ import annotations

import asyncio

import pytest

from award_explorer.core.debounce import DebounceScheduler

DELAY = 0.05


class Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))


@pytest.mark.asyncio
async def test_burst_dispatches_once_with_last_arguments():
    rec = Recorder()
    deb = DebounceScheduler(rec, DELAY)

    for offset in (0, 10, 20, 30):
        deb.schedule(offset, sort="award_date")
        await asyncio.sleep(DELAY / 5)

    assert rec.calls == []
    assert deb.pending

    await asyncio.sleep(DELAY * 3)
    assert rec.calls == [((30,), {"sort": "award_date"})]
    assert deb.dispatch_count == 1
    assert not deb.pending


@pytest.mark.asyncio
async def test_each_quiet_period_dispatches_again():
    rec = Recorder()
    deb = DebounceScheduler(rec, DELAY)

    deb.schedule("first")
    await asyncio.sleep(DELAY * 3)
    deb.schedule("second")
    await asyncio.sleep(DELAY * 3)

    assert [args for args, _ in rec.calls] == [("first",), ("second",)]


@pytest.mark.asyncio
async def test_cancel_prevents_dispatch():
    rec = Recorder()
    deb = DebounceScheduler(rec, DELAY)

    deb.schedule(1)
    deb.cancel()
    await asyncio.sleep(DELAY * 3)

    assert rec.calls == []
    assert not deb.pending
    deb.cancel()  # no-op when nothing is pending


@pytest.mark.asyncio
async def test_stale_timer_callback_is_ignored():
    rec = Recorder()
    deb = DebounceScheduler(rec, DELAY)

    deb.schedule(1)
    token = deb._token
    deb.cancel()
    deb._fire(token)

    assert rec.calls == []


@pytest.mark.asyncio
async def test_coroutine_dispatch_runs_as_task():
    seen = []

    async def dispatch(value):
        await asyncio.sleep(0)
        seen.append(value)

    deb = DebounceScheduler(dispatch, DELAY)
    deb.schedule("x")
    await asyncio.sleep(DELAY * 3)

    assert deb.last_task is not None
    await deb.last_task
    assert seen == ["x"]


@pytest.mark.asyncio
async def test_flush_fires_immediately():
    rec = Recorder()
    deb = DebounceScheduler(rec, 10.0)

    deb.schedule("now")
    assert deb.flush() is None  # plain-function dispatch has no task
    assert rec.calls == [(("now",), {})]
    assert not deb.pending
    assert deb.flush() is None


@pytest.mark.asyncio
async def test_dispatch_errors_are_logged_not_raised(caplog):
    async def boom():
        raise RuntimeError("load failed")

    deb = DebounceScheduler(boom, DELAY, name="table")
    deb.schedule()
    await asyncio.sleep(DELAY * 3)

    assert "table: dispatch failed" in caplog.text


def test_schedule_needs_a_running_loop():
    deb = DebounceScheduler(Recorder(), DELAY)
    with pytest.raises(RuntimeError):
        deb.schedule()
