"""Contracts for the collaborators the game core talks to."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol

from .models import LedgerRecord, PurchaseRecord, TicketSlot, TriviaQuestion


class Messenger(Protocol):
    async def send_channel(self, text: str) -> None: ...

    async def send_private(self, recipient: str, text: str) -> None: ...

    async def send_admin(self, text: str) -> None: ...


class PrizeMailer(Protocol):
    async def send_prize(self, recipient: str, text: str, amount: int) -> bool: ...


class TicketShop(Protocol):
    async def reserve_slot(self, quantity: int) -> TicketSlot | None: ...

    async def release_slot(self, slot: TicketSlot) -> None: ...

    async def poll_sales_log(self) -> list[PurchaseRecord]: ...

    async def restock(self, quantity: int) -> bool: ...


class TriviaSource(Protocol):
    async def fetch_question(self) -> TriviaQuestion: ...


class LedgerStore(Protocol):
    """Blocking storage backend; callers run it off the event loop."""

    def load(self) -> LedgerRecord | None: ...

    def save(self, record: LedgerRecord) -> None: ...


CommandRunner = Callable[[str], Awaitable[str]]


__all__ = [
    "CommandRunner",
    "LedgerStore",
    "Messenger",
    "PrizeMailer",
    "TicketShop",
    "TriviaSource",
]
