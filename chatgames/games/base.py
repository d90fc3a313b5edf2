"""Shared machinery for game sessions.

Every session owns one ``asyncio.Queue`` and one runner task that consumes
it. Timers never touch session state: they post a :class:`PhaseEvent` into
the queue, tagged with the session generation and the phase that scheduled
it. The runner drops any event whose tag no longer matches, so a timer that
fires late against a cancelled or advanced session does nothing.
"""

from __future__ import annotations

import asyncio
import enum
import itertools
import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, ClassVar, Protocol

from ..config import GameSettings
from ..models import FundingReceipt, PurchaseRecord, TicketSlot, utc_now
from ..scheduler import Scheduler, TimerHandle

if TYPE_CHECKING:
    from ..clients import TicketShop, TriviaSource
    from ..ledger import Ledger

log = logging.getLogger("chat-games.session")

_GENERATIONS = itertools.count(1)


class GameContext(Protocol):
    settings: GameSettings
    ledger: Ledger
    shop: TicketShop
    trivia: TriviaSource
    shop_lock: asyncio.Lock

    async def send_channel_message(self, text: str) -> None: ...

    async def send_private_message(self, recipient: str, text: str) -> None: ...

    async def send_prize(self, recipient: str, text: str, amount: int) -> bool: ...

    async def report_error(self, text: str) -> None: ...

    async def session_finished(self, session: GameSession, *, completed: bool) -> None: ...


@dataclass(frozen=True, slots=True)
class PhaseEvent:
    generation: int
    phase: enum.Enum
    kind: str


@dataclass(frozen=True, slots=True)
class ChatEvent:
    sender: str
    text: str
    private: bool


class GameSession:
    """Base class for one running game.

    Subclasses set ``title``, ``initial_phase`` and ``finished_phase``,
    and implement ``slot_quantity``, ``begin``, ``on_phase``, ``on_chat`` and
    ``claims_chat``.
    """

    title: ClassVar[str] = "Game"
    initial_phase: ClassVar[enum.Enum]
    finished_phase: ClassVar[enum.Enum]
    cancel_text: ClassVar[str] = "Game cancelled! Emergency stop."
    error_text: ClassVar[str] = "Game cancelled! Emergency stop."

    def __init__(
        self,
        context: GameContext,
        *,
        host: str,
        prize: int,
        receipt: FundingReceipt,
        scheduler: Scheduler,
        rng: random.Random | None = None,
    ) -> None:
        self.context = context
        self.settings = context.settings
        self.host = host
        self.prize = prize
        self.receipt = receipt
        self.scheduler = scheduler
        self.rng = rng or random.Random()
        self.generation = next(_GENERATIONS)
        self.phase: enum.Enum = self.initial_phase
        self.created_at: datetime = utc_now()
        self.slot: TicketSlot | None = None
        self.purchases: list[PurchaseRecord] = []
        self.finished = False
        self.completed = False
        self.settled = False
        self.payout_started = False
        self._queue: asyncio.Queue[PhaseEvent | ChatEvent] = asyncio.Queue()
        self._runner: asyncio.Task | None = None
        self._timers: list[TimerHandle] = []
        self._deadline: float | None = None

    # ----- Hooks -----
    def slot_quantity(self) -> int:
        raise NotImplementedError

    async def begin(self) -> None:
        raise NotImplementedError

    async def on_phase(self, event: PhaseEvent) -> None:
        raise NotImplementedError

    async def on_chat(self, event: ChatEvent) -> None:
        return None

    def claims_chat(self, sender: str, text: str, *, private: bool, command: bool) -> bool:
        """Whether this session takes ``text`` instead of command dispatch.

        ``command`` is True when the first word names a known command.
        """
        return False

    def status(self) -> str:
        return f"{self.phase.name.lower()} phase"

    # ----- Lifecycle -----
    @property
    def active(self) -> bool:
        return self._runner is not None and not self.finished

    async def start(self) -> bool:
        """Reserve the ticket slot and enter the first timed phase.

        Returns False, without leaving anything scheduled, when the shop
        cannot provide the slot.
        """
        async with self.context.shop_lock:
            try:
                slot = await self.context.shop.reserve_slot(self.slot_quantity())
            except Exception as exc:  # pylint: disable=broad-except
                log.exception("Ticket setup failed for %s: %s", self.title, exc)
                await self.context.report_error(
                    f"{self.title} setup failed for {self.host}: {exc}"
                )
                return False
        if slot is None:
            log.warning("No ticket slot available for %s hosted by %s", self.title, self.host)
            await self.context.report_error(
                f"{self.title} setup failed for {self.host}: no ticket slot available"
            )
            return False

        self.slot = slot
        self._runner = asyncio.create_task(
            self._run(), name=f"{self.title.lower()}-{self.generation}"
        )
        try:
            await self.begin()
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Failed to open %s: %s", self.title, exc)
            await self._teardown()
            await self.context.report_error(f"{self.title} failed to open: {exc}")
            return False
        log.info(
            "%s #%s started by %s for %s", self.title, self.generation, self.host, self.prize
        )
        return True

    def post_message(self, sender: str, text: str, *, private: bool = False) -> None:
        if self.finished:
            return
        self._queue.put_nowait(ChatEvent(sender=sender, text=text, private=private))

    async def wait_idle(self) -> None:
        await self._queue.join()

    async def cancel(self) -> None:
        """Emergency stop requested from outside the session."""
        already_finished = self.finished
        self.finished = True
        self._cancel_timers()
        runner = self._runner
        if runner is not None and runner is not asyncio.current_task() and not runner.done():
            runner.cancel()
            await asyncio.gather(runner, return_exceptions=True)
        self._drain()
        if already_finished:
            return
        await self._release_slot()
        await self.context.send_channel_message(self.cancel_text)
        log.warning("%s #%s cancelled", self.title, self.generation)

    # ----- Scheduling -----
    def schedule(self, delay: float, kind: str) -> None:
        event = PhaseEvent(generation=self.generation, phase=self.phase, kind=kind)
        self._timers.append(self.scheduler.call_later(delay, self._post_event, event))

    def set_deadline(self, seconds: float) -> None:
        self._deadline = self.scheduler.time() + seconds

    def seconds_remaining(self) -> int:
        if self._deadline is None:
            return 0
        return max(0, int(self._deadline - self.scheduler.time()))

    def enter(self, phase: enum.Enum) -> None:
        log.debug("%s #%s: %s -> %s", self.title, self.generation, self.phase.name, phase.name)
        self.phase = phase

    def _post_event(self, event: PhaseEvent) -> None:
        if self.finished:
            return
        self._queue.put_nowait(event)

    def _cancel_timers(self) -> None:
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()

    def _drain(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._queue.task_done()

    # ----- Runner -----
    async def _run(self) -> None:
        while not self.finished:
            event = await self._queue.get()
            try:
                if self.finished:
                    continue
                if isinstance(event, PhaseEvent):
                    if event.generation != self.generation or event.phase is not self.phase:
                        log.debug("Dropping stale %s event for %s", event.kind, self.title)
                        continue
                    await self.on_phase(event)
                else:
                    await self.on_chat(event)
            except Exception as exc:  # pylint: disable=broad-except
                log.exception("%s #%s failed: %s", self.title, self.generation, exc)
                await self._abort(exc)
            finally:
                self._queue.task_done()
        self._drain()

    # ----- Shared helpers -----
    async def poll_sales(self) -> list[PurchaseRecord]:
        try:
            records = await self.context.shop.poll_sales_log()
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Failed to poll sales log: %s", exc)
            return []
        if records:
            self.purchases.extend(records)
        return records

    async def _release_slot(self) -> None:
        slot, self.slot = self.slot, None
        if slot is None:
            return
        async with self.context.shop_lock:
            try:
                await self.context.shop.release_slot(slot)
            except Exception as exc:  # pylint: disable=broad-except
                log.exception("Failed to release ticket slot %s: %s", slot.slot_id, exc)
                await self.context.report_error(f"Failed to release ticket slot: {exc}")

    async def _teardown(self) -> None:
        self.finished = True
        self._cancel_timers()
        runner = self._runner
        if runner is not None and runner is not asyncio.current_task() and not runner.done():
            runner.cancel()
        await self._release_slot()

    async def finish(self) -> None:
        """Normal completion: the game ran to its end, with or without winners."""
        self.enter(self.finished_phase)
        self.completed = True
        await self._teardown()
        log.info("%s #%s finished", self.title, self.generation)
        await self.context.session_finished(self, completed=True)

    async def _abort(self, exc: Exception) -> None:
        await self._teardown()
        await self.context.send_channel_message(self.error_text)
        await self.context.report_error(
            f"{self.title} hosted by {self.host} cancelled after an error: {exc}"
        )
        await self.context.session_finished(self, completed=False)

    def ticket_count(self) -> int:
        return sum(record.quantity for record in self.purchases)

    def buyers(self) -> list[str]:
        """Unique buyers in purchase order, lower-cased."""
        seen: dict[str, None] = {}
        for record in self.purchases:
            seen.setdefault(record.buyer.strip().lower(), None)
        return list(seen)


__all__ = ["ChatEvent", "GameContext", "GameSession", "PhaseEvent"]
