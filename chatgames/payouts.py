"""Prize arithmetic shared by the games."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

JACKPOT_BASE_ODDS = 50
JACKPOT_MAX_STREAK_BONUS = 45
RAFFLE_PLAYER_PERCENT = 90
DEFAULT_SHARES: tuple[int, ...] = (60, 20, 10)


@dataclass(frozen=True, slots=True)
class Payout:
    recipient: str
    amount: int


@dataclass(frozen=True, slots=True)
class PrizePlan:
    payouts: tuple[Payout, ...]
    remainder: int

    @property
    def total_paid(self) -> int:
        return sum(payout.amount for payout in self.payouts)


def jackpot_odds(streak: int) -> int:
    """Denominator of the jackpot roll; never below 5."""
    return JACKPOT_BASE_ODDS - min(max(streak, 0), JACKPOT_MAX_STREAK_BONUS)


def split_raffle_amount(amount: int) -> tuple[int, int]:
    """Return ``(player_share, jackpot_share)`` for a rolled raffle amount."""
    player = amount * RAFFLE_PLAYER_PERCENT // 100
    return player, amount - player


def rank_slots(scores: Iterable[tuple[str, int]]) -> list[list[str]]:
    """Group participants into rank slots by points, best first.

    ``scores`` is taken in participant order; that order is kept inside each
    slot so ties resolve the same way every time.
    """
    groups: dict[int, list[str]] = {}
    for name, points in scores:
        groups.setdefault(points, []).append(name)
    return [groups[points] for points in sorted(groups, reverse=True)]


def distribute_prize(
    prize: int,
    slots: Sequence[Sequence[str]],
    shares: Sequence[int] = DEFAULT_SHARES,
) -> PrizePlan:
    payouts: list[Payout] = []
    for slot, percent in zip(slots, shares):
        if not slot:
            continue
        per_player = prize * percent // 100 // len(slot)
        payouts.extend(Payout(recipient=name, amount=per_player) for name in slot)
    paid = sum(payout.amount for payout in payouts)
    return PrizePlan(payouts=tuple(payouts), remainder=prize - paid)


__all__ = [
    "DEFAULT_SHARES",
    "Payout",
    "PrizePlan",
    "distribute_prize",
    "jackpot_odds",
    "rank_slots",
    "split_raffle_amount",
]
