"""Shared funding ledger and the hosting authorizer."""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable
from datetime import date

from .config import GameSettings
from .models import (
    DailyUsage,
    DonorAccount,
    FundingReceipt,
    FundingSource,
    LedgerRecord,
    utc_today,
)

log = logging.getLogger("chat-games.ledger")


def user_key(user: str) -> str:
    return user.strip().lower()


class Ledger:
    """Process-wide balances.

    Mutating methods are plain synchronous calls; callers that mutate while
    other tasks may be reading take ``lock`` first. When both the ledger lock
    and the orchestrator's session lock are needed, the ledger lock is taken
    first.
    """

    def __init__(
        self,
        settings: GameSettings | None = None,
        *,
        today: Callable[[], date] = utc_today,
    ) -> None:
        self.settings = settings or GameSettings()
        self.lock = asyncio.Lock()
        self._today = today
        self.public_pool = 0
        self.jackpot = 0
        self.jackpot_streak = 0
        self.games_count = 0
        self.donors: dict[str, DonorAccount] = {}
        self.usage: dict[str, DailyUsage] = {}

    def today(self) -> date:
        return self._today()

    # ----- Queries -----
    def used_today(self, user: str) -> int:
        entry = self.usage.get(user_key(user))
        if entry is None or entry.day != self.today():
            return 0
        return entry.used

    def remaining_daily(self, user: str) -> int:
        return max(0, self.settings.daily_cap - self.used_today(user))

    def donor(self, user: str) -> DonorAccount | None:
        return self.donors.get(user_key(user))

    def allocated(self, user: str) -> int:
        account = self.donor(user)
        return account.allocated if account else 0

    def total_allocated(self) -> int:
        return sum(account.allocated for account in self.donors.values())

    def total_available(self) -> int:
        return self.public_pool + self.total_allocated()

    # ----- Funding -----
    def debit(self, user: str, amount: int, *, admin: bool = False) -> FundingReceipt | None:
        key = user_key(user)
        today = self.today()
        if admin:
            return FundingReceipt(user=key, amount=amount, source=FundingSource.ADMIN, day=today)

        used = self.used_today(key)
        if used + amount <= self.settings.daily_cap and self.public_pool >= amount:
            self.public_pool -= amount
            self.usage[key] = DailyUsage(day=today, used=used + amount)
            return FundingReceipt(user=key, amount=amount, source=FundingSource.PUBLIC, day=today)

        account = self.donors.get(key)
        if account is not None and account.allocated >= amount:
            account.allocated -= amount
            return FundingReceipt(user=key, amount=amount, source=FundingSource.DONOR, day=today)
        return None

    def refund(self, receipt: FundingReceipt) -> None:
        if receipt.source is FundingSource.ADMIN:
            return
        if receipt.source is FundingSource.PUBLIC:
            self.public_pool += receipt.amount
            entry = self.usage.get(receipt.user)
            if entry is not None and entry.day == receipt.day:
                entry.used = max(0, entry.used - receipt.amount)
            return
        account = self.donors.setdefault(receipt.user, DonorAccount())
        account.allocated += receipt.amount

    def credit_donation(self, user: str, amount: int) -> int:
        """Split a donation between the donor balance and the public pool.

        Returns the part allocated to the donor.
        """
        if amount <= 0:
            return 0
        allocation = amount * self.settings.donor_share_percent // 100
        account = self.donors.setdefault(user_key(user), DonorAccount())
        account.allocated += allocation
        account.total += amount
        self.public_pool += amount - allocation
        return allocation

    def set_donor_level(self, user: str, amount: int) -> None:
        account = self.donors.setdefault(user_key(user), DonorAccount())
        account.allocated = max(0, amount)

    # ----- Jackpot -----
    def add_to_jackpot(self, amount: int) -> None:
        if amount > 0:
            self.jackpot += amount

    def increment_streak(self) -> None:
        self.jackpot_streak += 1

    def claim_jackpot(self) -> int:
        won = self.jackpot
        self.jackpot = 0
        self.jackpot_streak = 0
        return won

    def set_jackpot(self, amount: int) -> None:
        self.jackpot = max(0, amount)

    def record_completed_game(self) -> int:
        self.games_count += 1
        return self.games_count

    # ----- Codec -----
    def snapshot(self) -> LedgerRecord:
        return LedgerRecord(
            games_count=self.games_count,
            public_pool=self.public_pool,
            jackpot=self.jackpot,
            jackpot_streak=self.jackpot_streak,
            donors=copy.deepcopy(self.donors),
            usage=copy.deepcopy(self.usage),
        )

    def restore(self, record: LedgerRecord) -> None:
        self.games_count = record.games_count
        self.public_pool = record.public_pool
        self.jackpot = record.jackpot
        self.jackpot_streak = record.jackpot_streak
        self.donors = copy.deepcopy(record.donors)
        self.usage = copy.deepcopy(record.usage)
        log.info(
            "Ledger restored: pool=%s jackpot=%s streak=%s games=%s donors=%s",
            self.public_pool,
            self.jackpot,
            self.jackpot_streak,
            self.games_count,
            len(self.donors),
        )


class FundingAuthorizer:
    """Decides how a hosted prize is paid for and applies the debit atomically."""

    def __init__(self, ledger: Ledger, settings: GameSettings | None = None) -> None:
        self._ledger = ledger
        self._settings = settings or ledger.settings

    def debit(self, user: str, amount: int) -> FundingReceipt | None:
        """Apply the funding policy. The caller must hold ``ledger.lock``."""
        receipt = self._ledger.debit(user, amount, admin=self._settings.is_admin(user))
        if receipt is None:
            log.info("Funding denied for %s (%s)", user, amount)
        else:
            log.info("Funding %s for %s from %s", amount, user, receipt.source)
        return receipt

    async def authorize(self, user: str, amount: int) -> FundingReceipt | None:
        async with self._ledger.lock:
            return self.debit(user, amount)

    async def refund(self, receipt: FundingReceipt) -> None:
        async with self._ledger.lock:
            self._ledger.refund(receipt)
        log.info("Refunded %s to %s (%s)", receipt.amount, receipt.user, receipt.source)


__all__ = ["FundingAuthorizer", "Ledger", "user_key"]
