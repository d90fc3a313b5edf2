"""Tests for the event loop scheduler."""

import asyncio

import pytest

from chatgames.scheduler import LoopScheduler


class TestLoopScheduler:
    @pytest.mark.asyncio
    async def test_call_later_fires(self):
        scheduler = LoopScheduler()
        fired = asyncio.Event()

        scheduler.call_later(0.01, fired.set)

        await asyncio.wait_for(fired.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_cancelled_handle_does_not_fire(self):
        scheduler = LoopScheduler()
        calls: list[str] = []

        handle = scheduler.call_later(0.01, calls.append, "late")
        handle.cancel()
        await asyncio.sleep(0.05)

        assert calls == []

    @pytest.mark.asyncio
    async def test_negative_delay_runs_soon(self):
        scheduler = LoopScheduler()
        start = scheduler.time()
        calls: list[float] = []

        scheduler.call_later(-5, lambda: calls.append(scheduler.time()))
        await asyncio.sleep(0.01)

        assert calls and calls[0] >= start
