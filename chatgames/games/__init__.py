"""Game sessions driven by scheduled phase events."""

from .base import ChatEvent, GameContext, GameSession, PhaseEvent
from .decoy import DecoyPhase, DecoySession, Participant
from .raffle import RafflePhase, RaffleSession

__all__ = [
    "ChatEvent",
    "DecoyPhase",
    "DecoySession",
    "GameContext",
    "GameSession",
    "Participant",
    "PhaseEvent",
    "RafflePhase",
    "RaffleSession",
]
