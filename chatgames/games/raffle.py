from __future__ import annotations

import enum
import logging

from ..models import PurchaseRecord
from ..payouts import jackpot_odds, split_raffle_amount
from ..validation import format_meat
from .base import GameSession, PhaseEvent

log = logging.getLogger("chat-games.raffle")


class RafflePhase(enum.Enum):
    SETUP = "setup"
    ACTIVE = "active"
    DRAWING = "drawing"
    FINISHED = "finished"


class RaffleSession(GameSession):
    """Ticket raffle: sell tickets for a fixed window, then draw one winner.

    After the draw two reveal pauses separate the winning ticket, the prize
    split and the jackpot roll. Each pause is a scheduled event in the
    DRAWING phase.
    """

    title = "Raffle"
    initial_phase = RafflePhase.SETUP
    finished_phase = RafflePhase.FINISHED

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.game_size = 0
        self.winning_ticket = 0
        self.winner: PurchaseRecord | None = None
        self.player_share = 0
        self.jackpot_share = 0
        self.odds = 0

    def slot_quantity(self) -> int:
        return self.settings.raffle_tickets

    def status(self) -> str:
        return (
            f"prize {format_meat(self.prize)}, {len(self.buyers())} players, "
            f"{self.ticket_count()} tickets sold, {self.seconds_remaining()}s left"
        )

    async def begin(self) -> None:
        settings = self.settings
        self.enter(RafflePhase.ACTIVE)
        await self.context.send_channel_message(
            f"AR requested by {self.host} with prize 1d{format_meat(self.prize)} meat !!"
        )
        self.set_deadline(settings.raffle_duration)
        self.schedule(settings.raffle_duration - settings.raffle_warning, "warning")
        self.schedule(
            settings.raffle_duration - settings.raffle_final_warning, "final_warning"
        )
        self.schedule(settings.raffle_duration + settings.phase_buffer, "draw")
        self.schedule(settings.sales_poll_interval, "poll")

    async def on_phase(self, event: PhaseEvent) -> None:
        if event.kind == "poll":
            await self.poll_sales()
            self.schedule(self.settings.sales_poll_interval, "poll")
        elif event.kind == "warning":
            await self.context.send_channel_message("pulling in 1 minute.")
        elif event.kind == "final_warning":
            await self.context.send_channel_message("pulling in 30 seconds.")
        elif event.kind == "draw":
            await self._draw()
        elif event.kind == "split":
            await self._split()
        elif event.kind == "jackpot":
            await self._roll_jackpot()
        else:
            log.warning("Unknown raffle event %s", event.kind)

    def purchase_for_ticket(self, ordinal: int) -> PurchaseRecord:
        """Return the purchase holding the ``ordinal``-th ticket sold (1-based)."""
        seen = 0
        for record in self.purchases:
            seen += record.quantity
            if seen >= ordinal:
                return record
        raise IndexError(f"ticket {ordinal} was never sold")

    async def _draw(self) -> None:
        self.enter(RafflePhase.DRAWING)
        capacity = self.slot.quantity if self.slot else self.slot_quantity()
        await self.poll_sales()
        await self.context.send_channel_message("pulling tickets.")
        await self._release_slot()

        self.game_size = min(self.ticket_count(), capacity)
        if self.game_size == 0:
            await self.context.send_channel_message("No tickets sold! Game cancelled.")
            await self.finish()
            return

        self.winning_ticket = self.rng.randint(1, self.game_size)
        self.winner = self.purchase_for_ticket(self.winning_ticket)
        log.info(
            "Raffle #%s: ticket %s of %s won by %s",
            self.generation,
            self.winning_ticket,
            self.game_size,
            self.winner.buyer,
        )
        await self.context.send_channel_message(
            f"game ended !! rolling 1d{self.game_size} gives {self.winning_ticket}..."
        )
        self.schedule(self.settings.raffle_reveal_pause, "split")

    async def _split(self) -> None:
        winner = self.winner
        if winner is None:
            raise RuntimeError("raffle split without a winner")
        self.payout_started = True
        amount = self.rng.randint(1, self.prize)
        self.player_share, self.jackpot_share = split_raffle_amount(amount)

        ledger = self.context.ledger
        async with ledger.lock:
            ledger.add_to_jackpot(self.jackpot_share)
            self.odds = jackpot_odds(ledger.jackpot_streak)

        await self.context.send_channel_message(
            f"{winner.buyer} bought {winner.quantity} {winner.item} and won "
            f"{format_meat(self.player_share)} meat. "
            f"{format_meat(self.jackpot_share)} meat has been added to the jackpot, "
            f"rolling 1d{format_meat(self.odds)} for the jackpot..."
        )
        self.schedule(self.settings.raffle_reveal_pause, "jackpot")

    async def _roll_jackpot(self) -> None:
        winner = self.winner
        if winner is None:
            raise RuntimeError("jackpot roll without a winner")
        roll = self.rng.randint(1, self.odds)

        ledger = self.context.ledger
        async with ledger.lock:
            game_number = ledger.games_count + 1
            if roll == 1:
                won = ledger.claim_jackpot()
                message = (
                    f"rolled a 1!! JACKPOT!! {format_meat(won)} meat has been won by "
                    f"{winner.buyer}!! "
                )
            else:
                won = 0
                last_win = ledger.jackpot_streak
                ledger.increment_streak()
                message = (
                    f"rolled a {roll} on a 1d{format_meat(self.odds)} (payout on 1). "
                    f"pot is now at {format_meat(ledger.jackpot)} meat. the last win was "
                    f"{format_meat(last_win)} ggames ago. better luck next time... "
                )
        message += f"congrats on ggame #{format_meat(game_number)}!!"
        await self.context.send_channel_message(message)

        total = self.player_share + won
        text = f"you won ggame #{format_meat(game_number)}!!"
        if won:
            text += f" that includes the jackpot of {format_meat(won)} meat!!"
        delivered = await self.context.send_prize(winner.buyer, text, total)
        if not delivered:
            await self.context.report_error(
                f"Raffle prize of {format_meat(total)} meat to {winner.buyer} failed"
            )
        await self.finish()


__all__ = ["RafflePhase", "RaffleSession"]
