from __future__ import annotations

import asyncio
import itertools
import random
from datetime import date

import pytest

from chatgames.config import GameSettings
from chatgames.ledger import Ledger
from chatgames.models import PurchaseRecord, TicketSlot, TriviaQuestion, utc_now
from chatgames.orchestrator import Orchestrator

TODAY = date(2024, 5, 1)


class FakeMessenger:
    def __init__(self) -> None:
        self.channel: list[str] = []
        self.private: list[tuple[str, str]] = []
        self.admin: list[str] = []

    async def send_channel(self, text: str) -> None:
        self.channel.append(text)

    async def send_private(self, recipient: str, text: str) -> None:
        self.private.append((recipient, text))

    async def send_admin(self, text: str) -> None:
        self.admin.append(text)

    def private_to(self, recipient: str) -> list[str]:
        return [text for name, text in self.private if name == recipient]


class FakeMailer:
    def __init__(self, failing: tuple[str, ...] = ()) -> None:
        self.sent: list[tuple[str, str, int]] = []
        self.failing = set(failing)

    async def send_prize(self, recipient: str, text: str, amount: int) -> bool:
        self.sent.append((recipient, text, amount))
        return recipient not in self.failing

    def prizes(self) -> list[tuple[str, int]]:
        return [(name, amount) for name, _text, amount in self.sent if amount > 0]


class FakeShop:
    def __init__(self) -> None:
        self.available = True
        self.error: Exception | None = None
        self.reserved: list[TicketSlot] = []
        self.released: list[TicketSlot] = []
        self.restocked: list[int] = []
        self.sales: list[PurchaseRecord] = []

    async def reserve_slot(self, quantity: int) -> TicketSlot | None:
        if self.error is not None:
            raise self.error
        if not self.available:
            return None
        slot = TicketSlot(
            slot_id=f"slot-{len(self.reserved) + 1}",
            item="raffle ticket",
            quantity=quantity,
            opened_at=utc_now(),
        )
        self.reserved.append(slot)
        return slot

    async def release_slot(self, slot: TicketSlot) -> None:
        self.released.append(slot)

    async def poll_sales_log(self) -> list[PurchaseRecord]:
        records, self.sales = self.sales, []
        return records

    async def restock(self, quantity: int) -> bool:
        self.restocked.append(quantity)
        return True

    def sell(self, buyer: str, quantity: int = 1, item: str = "raffle ticket") -> None:
        self.sales.append(
            PurchaseRecord(buyer=buyer, quantity=quantity, item=item, timestamp=utc_now())
        )


class FakeTrivia:
    def __init__(self) -> None:
        self.question = TriviaQuestion(
            question="What is the capital of France?", answer="Paris"
        )

    async def fetch_question(self) -> TriviaQuestion:
        return self.question


class MemoryStore:
    def __init__(self, record=None) -> None:
        self.record = record
        self.saves = 0

    def load(self):
        return self.record

    def save(self, record) -> None:
        self.record = record
        self.saves += 1


class FakeTable:
    def __init__(self) -> None:
        self.items: dict[tuple[str, str], dict] = {}

    def get_item(self, Key):  # noqa: N803 - boto3 signature
        item = self.items.get((Key["pk"], Key["sk"]))
        return {"Item": dict(item)} if item else {}

    def put_item(self, Item):  # noqa: N803 - boto3 signature
        self.items[(Item["pk"], Item["sk"])] = dict(Item)


class _ManualHandle:
    def __init__(self, when: float, seq: int, callback, args) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler driven by the test instead of the event loop clock.

    ``advance`` fires due callbacks in time order and waits for the owning
    session to drain its queue after each one, so follow-up timers land at
    deterministic times.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._seq = itertools.count()
        self._handles: list[_ManualHandle] = []

    def call_later(self, delay: float, callback, *args) -> _ManualHandle:
        handle = _ManualHandle(self.now + delay, next(self._seq), callback, args)
        self._handles.append(handle)
        return handle

    def time(self) -> float:
        return self.now

    @property
    def pending(self) -> list[_ManualHandle]:
        return [handle for handle in self._handles if not handle.cancelled]

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self._handles if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._handles.remove(handle)
            self.now = handle.when
            handle.callback(*handle.args)
            owner = getattr(handle.callback, "__self__", None)
            if owner is not None and hasattr(owner, "wait_idle"):
                await owner.wait_idle()
            else:
                await asyncio.sleep(0)
        self.now = target


class ScriptedRandom(random.Random):
    """Returns queued values from ``randint`` and leaves shuffles in order."""

    def __init__(self, ints=()) -> None:
        super().__init__(0)
        self.ints = list(ints)

    def randint(self, a: int, b: int) -> int:
        if not self.ints:
            return a
        value = self.ints.pop(0)
        assert a <= value <= b, f"scripted {value} outside [{a}, {b}]"
        return value

    def shuffle(self, x) -> None:
        return None

    def random(self) -> float:
        return 0.0


@pytest.fixture
def settings() -> GameSettings:
    return GameSettings()


@pytest.fixture
def ledger(settings) -> Ledger:
    return Ledger(settings, today=lambda: TODAY)


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def shop() -> FakeShop:
    return FakeShop()


@pytest.fixture
def trivia() -> FakeTrivia:
    return FakeTrivia()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def rng() -> ScriptedRandom:
    return ScriptedRandom()


@pytest.fixture
def orchestrator(
    settings, ledger, messenger, mailer, shop, trivia, store, scheduler, rng
) -> Orchestrator:
    ledger.public_pool = 500_000
    return Orchestrator(
        settings=settings,
        messenger=messenger,
        mailer=mailer,
        shop=shop,
        trivia=trivia,
        storage=store,
        ledger=ledger,
        scheduler=scheduler,
        rng=rng,
    )


@pytest.fixture
def table() -> FakeTable:
    return FakeTable()
