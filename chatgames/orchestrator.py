"""Command dispatch, the single active game, and ledger persistence."""

from __future__ import annotations

import asyncio
import logging
import random
import re
from collections.abc import Awaitable, Callable

from discord.ext import tasks

from .clients import (
    CommandRunner,
    LedgerStore,
    Messenger,
    PrizeMailer,
    TicketShop,
    TriviaSource,
)
from .config import GameSettings
from .games import DecoySession, GameSession, RaffleSession
from .ledger import FundingAuthorizer, Ledger
from .scheduler import LoopScheduler, Scheduler
from .validation import (
    UNSUPPORTED_ROLL,
    InvalidValueError,
    format_meat,
    parse_roll_spec,
    require_prize,
)

log = logging.getLogger("chat-games")

EMERGENCY_TEXT = "Game system error - all games cancelled. Sorry for the inconvenience!"
UNKNOWN_COMMAND = "??? i dont know that command"
GAME_RUNNING = "game already running"
NOT_ALLOWED = "hey hey hey wait.. you cant tell me what to do..."
NO_HOSTING_FUNDS = (
    "...not have enough hosting funds. u may host up to 300k per day from public pool "
    "or use ur allocated funds from donations.."
)
THANK_YOU = "yo thanks for helping out!"
MAIL_EXEMPT_SENDERS = frozenset({"Peace and Love"})
HELP_TEXT = (
    "commands: host <amount>, decoy <amount>, roll 1d<n>, games status, games stats, "
    "howmuchmeat, hostlimit, howmanygames, jackpot"
)

_PLAIN_AMOUNT = re.compile(r"\d+")

SessionFactory = Callable[..., GameSession]
Handler = Callable[[str, list[str], str], Awaitable[None]]


def _admin_amount(raw: str) -> int | None:
    return int(raw) if _PLAIN_AMOUNT.fullmatch(raw) else None


class Orchestrator:
    """Owns the ledger and the active game, and answers chat commands.

    Sessions receive the orchestrator as their context and reach the
    outside world only through ``send_channel_message``,
    ``send_private_message``, ``send_prize`` and ``report_error``.

    Lock order is always ``ledger.lock`` and then ``_session_lock``.
    """

    def __init__(
        self,
        *,
        settings: GameSettings,
        messenger: Messenger,
        mailer: PrizeMailer,
        shop: TicketShop,
        trivia: TriviaSource,
        storage: LedgerStore,
        ledger: Ledger | None = None,
        scheduler: Scheduler | None = None,
        rng: random.Random | None = None,
        command_runner: CommandRunner | None = None,
    ) -> None:
        self.settings = settings
        self.ledger = ledger or Ledger(settings)
        self.authorizer = FundingAuthorizer(self.ledger, settings)
        self.messenger = messenger
        self.mailer = mailer
        self.shop = shop
        self.trivia = trivia
        self.storage = storage
        self.scheduler = scheduler or LoopScheduler()
        self.rng = rng or random.Random()
        self.command_runner = command_runner
        self.shop_lock = asyncio.Lock()
        self._session_lock = asyncio.Lock()
        self._session: GameSession | None = None
        self._autosave = tasks.loop(seconds=settings.autosave_seconds)(self.persist)
        self._commands: dict[str, Handler] = {
            "host": self._cmd_host,
            "decoy": self._cmd_decoy,
            "roll": self._cmd_roll,
            "games": self._cmd_games,
            "howmuchmeat": self._cmd_howmuchmeat,
            "hostlimit": self._cmd_hostlimit,
            "howmanygames": self._cmd_howmanygames,
            "jackpot": self._cmd_jackpot,
            "help": self._cmd_help,
            "setdonorlevel": self._cmd_setdonorlevel,
            "setjackpot": self._cmd_setjackpot,
            "emergency": self._cmd_emergency,
            "restock": self._cmd_restock,
            "exec": self._cmd_exec,
            "global": self._cmd_global,
            "donor": self._cmd_donor,
            "send": self._cmd_send,
        }

    # ----- Lifecycle -----
    @property
    def session(self) -> GameSession | None:
        return self._session

    def is_game_active(self) -> bool:
        return self._session is not None

    async def start(self, *, autosave: bool = True) -> None:
        try:
            record = await asyncio.to_thread(self.storage.load)
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Failed to load ledger, starting empty: %s", exc)
            record = None
        if record is not None:
            async with self.ledger.lock:
                self.ledger.restore(record)
        if autosave and not self._autosave.is_running():
            self._autosave.start()
        log.info("Chat games orchestrator started")

    async def stop(self) -> None:
        async with self.ledger.lock, self._session_lock:
            session, self._session = self._session, None
            if session is not None:
                await session.cancel()
                self._settle(session, completed=session.completed)
        await self.persist()
        if self._autosave.is_running():
            self._autosave.cancel()
        log.info("Chat games orchestrator stopped")

    async def persist(self) -> None:
        record = self.ledger.snapshot()
        try:
            await asyncio.to_thread(self.storage.save, record)
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Failed to persist ledger: %s", exc)
            await self.report_error(f"Failed to persist ledger: {exc}")

    # ----- Outbound -----
    async def send_channel_message(self, text: str) -> None:
        try:
            await self.messenger.send_channel(text)
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Failed to send channel message: %s", exc)

    async def send_private_message(self, recipient: str, text: str) -> None:
        try:
            await self.messenger.send_private(recipient, text)
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Failed to send private message to %s: %s", recipient, exc)

    async def send_prize(self, recipient: str, text: str, amount: int) -> bool:
        try:
            delivered = await self.mailer.send_prize(recipient, text, amount)
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Failed to send %s meat to %s: %s", amount, recipient, exc)
            return False
        if not delivered:
            log.warning("Prize delivery of %s meat to %s was refused", amount, recipient)
        return bool(delivered)

    async def report_error(self, text: str) -> None:
        try:
            await self.messenger.send_admin(text)
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Failed to report to admin channel: %s", exc)

    # ----- Session callbacks -----
    def _settle(self, session: GameSession, *, completed: bool) -> None:
        """Apply a session's outcome to the ledger once. Caller holds ``ledger.lock``."""
        if session.settled:
            return
        session.settled = True
        if completed:
            self.ledger.record_completed_game()
        if not session.payout_started:
            self.ledger.refund(session.receipt)

    async def session_finished(self, session: GameSession, *, completed: bool) -> None:
        async with self.ledger.lock:
            self._settle(session, completed=completed)
            async with self._session_lock:
                if self._session is session:
                    self._session = None
        await self.persist()

    async def emergency_reset(self) -> None:
        async with self.ledger.lock, self._session_lock:
            session, self._session = self._session, None
            if session is not None:
                await session.cancel()
                self._settle(session, completed=session.completed)
        await self.send_channel_message(EMERGENCY_TEXT)
        await self.persist()
        log.warning("Emergency reset completed")

    # ----- Inbound -----
    async def handle_chat(self, sender: str, text: str, *, private: bool = False) -> None:
        """Entry point for chat text. Never raises."""
        try:
            await self._dispatch(sender, text.strip(), private)
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Unhandled error while handling chat from %s: %s", sender, exc)
            await self.emergency_reset()

    def forward_to_session(
        self, sender: str, text: str, *, private: bool = False, command: bool = False
    ) -> bool:
        """Post ``text`` to the active session if it claims it."""
        session = self._session
        text = text.strip()
        if session is None or not text:
            return False
        if not session.claims_chat(sender, text, private=private, command=command):
            return False
        session.post_message(sender, text, private=private)
        return True

    async def handle_mail(self, sender: str, text: str, meat: int = 0) -> None:
        try:
            if meat > 0:
                async with self.ledger.lock:
                    allocated = self.ledger.credit_donation(sender, meat)
                log.info(
                    "Processed donation: %s sent %s meat (allocated: %s, public: %s)",
                    sender,
                    format_meat(meat),
                    format_meat(allocated),
                    format_meat(meat - allocated),
                )
                if text.strip() and self.settings.owners:
                    await self.send_prize(
                        self.settings.owners[0], f"{sender} said:\n{text.strip()}", 0
                    )
            if sender not in MAIL_EXEMPT_SENDERS:
                await self.send_prize(sender, THANK_YOU, 0)
            self.forward_to_session(sender, text, private=True)
            await self.persist()
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Unhandled error while handling mail from %s: %s", sender, exc)
            await self.emergency_reset()

    async def _dispatch(self, sender: str, text: str, private: bool) -> None:
        parts = text.split()
        if not parts:
            return
        handler = self._commands.get(parts[0].lower())
        if self.forward_to_session(sender, text, private=private, command=handler is not None):
            return
        if handler is None:
            await self.send_private_message(sender, UNKNOWN_COMMAND)
            return
        await handler(sender, parts, text)

    # ----- Hosting -----
    async def _cmd_host(self, sender: str, parts: list[str], _text: str) -> None:
        await self._host(sender, parts, RaffleSession)

    async def _cmd_decoy(self, sender: str, parts: list[str], _text: str) -> None:
        await self._host(sender, parts, DecoySession)

    def _not_enough_meat(self) -> str:
        return (
            "i dont have enough meat or the prize amount is invalid. "
            f"(i have {format_meat(self.ledger.total_available())} meat)"
        )

    async def _host(self, sender: str, parts: list[str], factory: SessionFactory) -> None:
        if self._session is not None:
            await self.send_private_message(sender, GAME_RUNNING)
            return
        if len(parts) < 2:
            await self.send_private_message(sender, self._not_enough_meat())
            return
        try:
            prize = require_prize(parts[1], minimum=self.settings.min_prize)
        except InvalidValueError as exc:
            await self.send_private_message(sender, str(exc))
            return

        async with self.ledger.lock, self._session_lock:
            if self._session is not None:
                reply = GAME_RUNNING
            elif self.ledger.total_available() + self.settings.hosting_slack < prize:
                reply = self._not_enough_meat()
            else:
                reply = await self._open_session(sender, prize, factory)
        if reply:
            await self.send_private_message(sender, reply)
        else:
            await self.persist()

    async def _open_session(
        self, sender: str, prize: int, factory: SessionFactory
    ) -> str | None:
        """Fund and start a session. Caller holds both locks; returns an error reply."""
        receipt = self.authorizer.debit(sender, prize)
        if receipt is None:
            return NO_HOSTING_FUNDS
        session = factory(
            self,
            host=sender,
            prize=prize,
            receipt=receipt,
            scheduler=self.scheduler,
            rng=self.rng,
        )
        if not await session.start():
            self.ledger.refund(receipt)
            ledger = self.ledger
            return (
                "i dont have enough meat or prize amt is invalid. "
                f"(i have {format_meat(ledger.total_available())} meat, "
                f"{format_meat(ledger.jackpot)} is jackpot, "
                f"{format_meat(ledger.public_pool)} is public)"
            )
        self._session = session
        return None

    # ----- Public info -----
    async def _cmd_roll(self, sender: str, parts: list[str], text: str) -> None:
        if len(parts) < 2:
            await self.send_private_message(sender, UNSUPPORTED_ROLL)
            return
        try:
            spec = parse_roll_spec(parts[1])
        except InvalidValueError as exc:
            await self.send_private_message(sender, str(exc))
            return

        if parts[1].lower().startswith("1d"):
            result = self.rng.randint(1, spec.sides)
            if len(parts) > 2 and "in games" in text:
                flourish = ". (._.)-b" if self.rng.random() > 0.5 else ". :]"
                await self.send_channel_message(
                    f"{sender} rolled {format_meat(result)} out of "
                    f"{format_meat(spec.sides)}{flourish}"
                )
            else:
                await self.send_private_message(
                    sender,
                    f"you rolled {format_meat(result)} out of {format_meat(spec.sides)}.",
                )
            return

        rolls = [self.rng.randint(1, spec.sides) for _ in range(spec.count)]
        joined = ",".join(str(roll) for roll in rolls)
        await self.send_private_message(sender, f"Rolled: [{joined}] = {sum(rolls)}")

    async def _cmd_games(self, sender: str, parts: list[str], _text: str) -> None:
        if len(parts) < 2:
            return
        sub = parts[1].lower()
        if sub == "status":
            session = self._session
            if session is None:
                status = "No games running"
            else:
                status = f"{session.title} active ({session.status()})"
            await self.send_private_message(sender, f"Game Status: {status}")
        elif sub == "stats":
            ledger = self.ledger
            await self.send_private_message(
                sender,
                f"Games: {ledger.games_count} | Public Pool: {ledger.public_pool} | "
                f"Jackpot: {ledger.jackpot} (streak: {ledger.jackpot_streak})",
            )

    async def _cmd_howmuchmeat(self, sender: str, _parts: list[str], _text: str) -> None:
        ledger = self.ledger
        await self.send_private_message(
            sender,
            f"i have {format_meat(ledger.total_available())} meat, "
            f"{format_meat(ledger.jackpot)} is jackpot, "
            f"{format_meat(ledger.public_pool)} is public..",
        )

    async def _cmd_hostlimit(self, sender: str, _parts: list[str], _text: str) -> None:
        message = (
            f"you have {format_meat(self.ledger.remaining_daily(sender))} "
            "daily free host remaining. "
        )
        account = self.ledger.donor(sender)
        if account is not None and (account.allocated or account.total):
            message += (
                f" you also have {format_meat(account.allocated)} meat allocated.. "
                f"you have donated a total of {format_meat(account.total)}!! thank you!!"
            )
        await self.send_private_message(sender, message)

    async def _cmd_howmanygames(self, sender: str, _parts: list[str], _text: str) -> None:
        await self.send_private_message(
            sender, f"i have hosted {format_meat(self.ledger.games_count)} ggames so far!!"
        )

    async def _cmd_jackpot(self, sender: str, _parts: list[str], _text: str) -> None:
        await self.send_private_message(
            sender,
            f"the jackpot is currently at {format_meat(self.ledger.jackpot)} meat "
            f"and was last won {format_meat(self.ledger.jackpot_streak)} ggames ago.",
        )

    async def _cmd_help(self, sender: str, _parts: list[str], _text: str) -> None:
        await self.send_private_message(sender, HELP_TEXT)

    # ----- Admin -----
    async def _cmd_setdonorlevel(self, sender: str, parts: list[str], _text: str) -> None:
        if not self.settings.is_owner(sender) or len(parts) < 3:
            return
        amount = _admin_amount(parts[1])
        if amount is None:
            await self.send_private_message(sender, "invalid amount")
            return
        name = " ".join(parts[2:]).lower()
        async with self.ledger.lock:
            self.ledger.set_donor_level(name, amount)
        await self.persist()
        await self.send_private_message(
            sender, f"set {name} donor level to {format_meat(amount)}"
        )

    async def _cmd_setjackpot(self, sender: str, parts: list[str], _text: str) -> None:
        if not self.settings.is_owner(sender) or len(parts) != 2:
            return
        amount = _admin_amount(parts[1])
        if amount is None:
            await self.send_private_message(sender, "invalid amount")
            return
        async with self.ledger.lock:
            self.ledger.set_jackpot(amount)
        await self.persist()
        await self.send_private_message(sender, f"set jackpot to {format_meat(amount)}")

    async def _cmd_emergency(self, sender: str, _parts: list[str], _text: str) -> None:
        if self.settings.is_owner(sender):
            await self.emergency_reset()

    async def _cmd_restock(self, sender: str, parts: list[str], _text: str) -> None:
        if not self.settings.is_admin(sender):
            await self.send_private_message(sender, NOT_ALLOWED)
            return
        quantity = self.settings.restock_default
        if len(parts) > 1:
            quantity = _admin_amount(parts[1]) or quantity
        await self.send_private_message(
            sender, f"attempting to restock {quantity} raffle tickets"
        )
        try:
            async with self.shop_lock:
                restocked = await self.shop.restock(quantity)
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("Restock failed: %s", exc)
            await self.send_private_message(sender, f"error restocking: {exc}")
            return
        if restocked:
            await self.send_private_message(
                sender, f"successfully restocked {quantity} raffle tickets"
            )
        else:
            await self.send_private_message(
                sender, "failed to restock tickets - check meat/availability"
            )

    async def _cmd_exec(self, sender: str, parts: list[str], _text: str) -> None:
        if not self.settings.is_admin(sender):
            await self.send_private_message(sender, NOT_ALLOWED)
            return
        if len(parts) < 2:
            return
        if self.command_runner is None:
            await self.send_private_message(sender, "exec is not configured")
            return
        command = " ".join(parts[1:])
        try:
            result = await self.command_runner(command)
        except Exception as exc:  # pylint: disable=broad-except
            log.exception("exec %r failed: %s", command, exc)
            result = f"error: {exc}"
        await self.send_private_message(sender, result or "command executed")

    def global_state(self) -> str:
        ledger = self.ledger
        lines = [
            "Global Game State:",
            f"Public Pool: {format_meat(ledger.public_pool)}",
            f"Jackpot: {format_meat(ledger.jackpot)}",
            f"Active Games: {1 if self._session is not None else 0}",
            f"Games Hosted: {format_meat(ledger.games_count)}",
            f"Jackpot Streak: {ledger.jackpot_streak}",
        ]
        if ledger.donors:
            lines.append("")
            lines.append("Donors:")
            for name, account in sorted(ledger.donors.items()):
                lines.append(f"- {name}: {format_meat(account.allocated)}")
        return "\n".join(lines)

    async def _cmd_global(self, sender: str, _parts: list[str], _text: str) -> None:
        if not self.settings.is_admin(sender):
            return
        info = self.global_state()
        log.info("%s", info)
        await self.send_private_message(sender, info)
        await self.send_prize(sender, info, 0)

    async def _cmd_donor(self, sender: str, parts: list[str], _text: str) -> None:
        if not self.settings.is_admin(sender):
            return
        if len(parts) < 2:
            await self.send_private_message(sender, "please provide a name")
            return
        name = " ".join(parts[1:]).lower()
        account = self.ledger.donor(name)
        if account is None:
            await self.send_private_message(sender, f"{name} is not a donor.")
            return
        await self.send_private_message(
            sender,
            f"{name} has contributed a total of {format_meat(account.total)} meat and has "
            f"{format_meat(account.allocated)} meat available for personal hosting.",
        )

    async def _cmd_send(self, sender: str, parts: list[str], _text: str) -> None:
        if not self.settings.is_admin(sender) or len(parts) < 2:
            return
        amount = _admin_amount(parts[1])
        if amount is None:
            await self.send_private_message(sender, "invalid amount")
            return
        if not self.settings.owners:
            return
        await self.send_prize(self.settings.owners[0], "debug", amount)


__all__ = [
    "EMERGENCY_TEXT",
    "GAME_RUNNING",
    "NOT_ALLOWED",
    "NO_HOSTING_FUNDS",
    "Orchestrator",
    "UNKNOWN_COMMAND",
]
