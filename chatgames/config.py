"""Configuration helpers for the chat games runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

DEFAULT_OWNERS: tuple[str, ...] = ("ggar",)
DEFAULT_ADMINS: tuple[str, ...] = ("ggar", "3118267")


def env_bool(name: str, *, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


def env_int(name: str, *, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_list(name: str, *, default: tuple[str, ...] = ()) -> tuple[str, ...]:
    """Return a comma separated env var as a tuple, ignoring blank entries."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class GameSettings:
    """Tunable limits and timings shared by the orchestrator and sessions.

    Durations are in seconds. The trailing buffer is added to every phase
    deadline so the last ticket sale or answer is not raced.
    """

    daily_cap: int = 300_000
    min_prize: int = 50_000
    hosting_slack: int = 50
    donor_share_percent: int = 75
    owners: tuple[str, ...] = DEFAULT_OWNERS
    admins: tuple[str, ...] = DEFAULT_ADMINS

    raffle_tickets: int = 10
    raffle_duration: float = 300.0
    raffle_warning: float = 60.0
    raffle_final_warning: float = 30.0
    raffle_reveal_pause: float = 5.0
    sales_poll_interval: float = 5.0

    decoy_max_players: int = 20
    decoy_min_players: int = 3
    decoy_entry_duration: float = 300.0
    decoy_answer_duration: float = 120.0
    decoy_vote_duration: float = 120.0
    max_answer_length: int = 200
    no_answer_text: str = "(no answer submitted)"

    phase_buffer: float = 5.0
    autosave_seconds: float = 60.0
    restock_default: int = 100

    def is_owner(self, identity: str) -> bool:
        return identity in self.owners

    def is_admin(self, identity: str) -> bool:
        return identity in self.admins or identity in self.owners


def read_game_settings() -> GameSettings:
    defaults = GameSettings()
    return GameSettings(
        daily_cap=env_int("GAME_DAILY_CAP", default=defaults.daily_cap),
        min_prize=env_int("GAME_MIN_PRIZE", default=defaults.min_prize),
        owners=env_list("GAME_OWNERS", default=defaults.owners),
        admins=env_list("GAME_ADMINS", default=defaults.admins),
        raffle_tickets=env_int("RAFFLE_TICKETS", default=defaults.raffle_tickets),
        decoy_max_players=env_int(
            "DECOY_MAX_PLAYERS", default=defaults.decoy_max_players
        ),
        phase_buffer=float(
            env_int("GAME_PHASE_BUFFER", default=int(defaults.phase_buffer))
        ),
        autosave_seconds=float(
            env_int("LEDGER_AUTOSAVE_SECONDS", default=int(defaults.autosave_seconds))
        ),
    )


__all__ = [
    "DEFAULT_ADMINS",
    "DEFAULT_OWNERS",
    "GameSettings",
    "env_bool",
    "env_int",
    "env_list",
    "read_game_settings",
]
