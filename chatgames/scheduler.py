"""Delayed callbacks for phase transitions."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> TimerHandle: ...

    def time(self) -> float: ...


class LoopScheduler:
    """Schedules callbacks on the running event loop."""

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(max(delay, 0.0), callback, *args)

    def time(self) -> float:
        return asyncio.get_running_loop().time()


__all__ = ["LoopScheduler", "Scheduler", "TimerHandle"]
