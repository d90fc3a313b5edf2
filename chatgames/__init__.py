"""Chat games orchestrator: raffles and Decoy's Dilemma funded by a shared ledger."""

from .config import GameSettings, read_game_settings
from .ledger import FundingAuthorizer, Ledger
from .models import (
    DailyUsage,
    DonorAccount,
    FundingReceipt,
    FundingSource,
    LedgerRecord,
    PurchaseRecord,
    TicketSlot,
    TriviaQuestion,
)
from .orchestrator import Orchestrator
from .payouts import Payout, PrizePlan, distribute_prize, jackpot_odds, rank_slots
from .storage import JsonLedgerFile, LedgerStorage
from .validation import (
    AnswerRejectedError,
    InvalidValueError,
    PrizeTooSmallError,
    parse_prize_amount,
)

__all__ = [
    "AnswerRejectedError",
    "DailyUsage",
    "DonorAccount",
    "FundingAuthorizer",
    "FundingReceipt",
    "FundingSource",
    "GameSettings",
    "InvalidValueError",
    "JsonLedgerFile",
    "Ledger",
    "LedgerRecord",
    "LedgerStorage",
    "Orchestrator",
    "Payout",
    "PrizePlan",
    "PrizeTooSmallError",
    "PurchaseRecord",
    "TicketSlot",
    "TriviaQuestion",
    "distribute_prize",
    "jackpot_odds",
    "parse_prize_amount",
    "rank_slots",
    "read_game_settings",
]
