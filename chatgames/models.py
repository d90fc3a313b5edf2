from __future__ import annotations

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal

log = logging.getLogger("chat-games.models")


def utc_now() -> datetime:
    return datetime.now(UTC)


def utc_today() -> date:
    return utc_now().date()


def _coerce_count(value: object) -> int | None:
    """Return a non-negative integer for ``value`` or None when it is unusable."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        number = value
    elif isinstance(value, Decimal):
        if value != value.to_integral_value():
            return None
        number = int(value)
    elif isinstance(value, float):
        if not value.is_integer():
            return None
        number = int(value)
    elif isinstance(value, str):
        try:
            number = int(value.strip())
        except ValueError:
            return None
    else:
        return None
    if number < 0:
        return None
    return number


@dataclass(slots=True)
class DonorAccount:
    total: int = 0
    allocated: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"total": self.total, "allocated": self.allocated}

    @classmethod
    def from_dict(cls, data: object) -> DonorAccount | None:
        if not isinstance(data, Mapping):
            return None
        allocated = _coerce_count(data.get("allocated"))
        if allocated is None:
            return None
        total = _coerce_count(data.get("total"))
        return cls(total=total if total is not None else 0, allocated=allocated)


@dataclass(slots=True)
class DailyUsage:
    day: date
    used: int = 0

    def to_dict(self) -> dict[str, object]:
        return {"date": self.day.isoformat(), "used": self.used}

    @classmethod
    def from_dict(cls, data: object) -> DailyUsage | None:
        if not isinstance(data, Mapping):
            return None
        used = _coerce_count(data.get("used"))
        if used is None:
            return None
        try:
            day = date.fromisoformat(str(data.get("date", "")))
        except ValueError:
            return None
        return cls(day=day, used=used)


@dataclass(slots=True)
class LedgerRecord:
    """Durable snapshot of the ledger.

    ``from_item`` loads each field independently: a missing or malformed
    field keeps its default and a bad donor or usage entry is skipped on its
    own, so one corrupt value never discards the rest of the record.
    """

    games_count: int = 0
    public_pool: int = 0
    jackpot: int = 0
    jackpot_streak: int = 0
    donors: dict[str, DonorAccount] = field(default_factory=dict)
    usage: dict[str, DailyUsage] = field(default_factory=dict)

    _SCALARS = (
        ("gamesCount", "games_count"),
        ("publicPool", "public_pool"),
        ("jackpot", "jackpot"),
        ("jackpotStreak", "jackpot_streak"),
    )

    def to_item(self) -> dict[str, object]:
        return {
            "gamesCount": self.games_count,
            "donorTable": {
                name: account.to_dict() for name, account in sorted(self.donors.items())
            },
            "jackpotStreak": self.jackpot_streak,
            "jackpot": self.jackpot,
            "publicPool": self.public_pool,
            "publicPoolUsage": {
                name: entry.to_dict() for name, entry in sorted(self.usage.items())
            },
        }

    @classmethod
    def from_item(cls, item: Mapping[str, object]) -> LedgerRecord:
        record = cls()
        for key, attr in cls._SCALARS:
            if key not in item:
                continue
            value = _coerce_count(item[key])
            if value is None:
                log.warning("Ignoring malformed ledger field %s=%r", key, item[key])
                continue
            setattr(record, attr, value)

        donors = item.get("donorTable")
        if isinstance(donors, Mapping):
            for name, raw in donors.items():
                account = DonorAccount.from_dict(raw)
                if account is None:
                    log.warning("Ignoring malformed donor entry for %s", name)
                    continue
                record.donors[str(name).lower()] = account
        elif donors is not None:
            log.warning("Ignoring malformed donorTable")

        usage = item.get("publicPoolUsage")
        if isinstance(usage, Mapping):
            for name, raw in usage.items():
                entry = DailyUsage.from_dict(raw)
                if entry is None:
                    log.warning("Ignoring malformed usage entry for %s", name)
                    continue
                record.usage[str(name).lower()] = entry
        elif usage is not None:
            log.warning("Ignoring malformed publicPoolUsage")
        return record


class FundingSource(enum.StrEnum):
    ADMIN = "admin"
    PUBLIC = "public"
    DONOR = "donor"


@dataclass(frozen=True, slots=True)
class FundingReceipt:
    user: str
    amount: int
    source: FundingSource
    day: date


@dataclass(frozen=True, slots=True)
class PurchaseRecord:
    buyer: str
    quantity: int
    item: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class TicketSlot:
    """Handle for tickets listed in the shop for a single session."""

    slot_id: str
    item: str
    quantity: int
    opened_at: datetime


@dataclass(frozen=True, slots=True)
class TriviaQuestion:
    question: str
    answer: str


__all__ = [
    "DailyUsage",
    "DonorAccount",
    "FundingReceipt",
    "FundingSource",
    "LedgerRecord",
    "PurchaseRecord",
    "TicketSlot",
    "TriviaQuestion",
    "utc_now",
    "utc_today",
]
