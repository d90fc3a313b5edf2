"""Discord implementations of the messaging, mail and shop collaborators."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import discord

from .models import PurchaseRecord, TicketSlot, utc_now
from .validation import format_meat

if TYPE_CHECKING:
    from .orchestrator import Orchestrator

log = logging.getLogger("chat-games.discord")

MAX_MESSAGE_LENGTH = 2000


async def resolve_channel(bot: discord.Client, channel_id: int | None):
    if channel_id is None:
        return None
    channel = bot.get_channel(channel_id)
    if channel is None:
        try:
            channel = await bot.fetch_channel(channel_id)
        except discord.DiscordException as exc:  # pragma: no cover - network failure
            log.warning("Unable to fetch channel %s: %s", channel_id, exc)
            return None
    if not isinstance(channel, discord.abc.Messageable):
        return None
    return channel


class DiscordMessenger:
    """Sends game output to the games channel, direct messages and the admin log.

    Players are addressed by username. Users seen in chat or at the ticket
    booth are remembered so replies can be sent without a member lookup.
    """

    def __init__(
        self,
        bot: discord.Client,
        *,
        games_channel_id: int,
        admin_channel_id: int | None = None,
    ) -> None:
        self._bot = bot
        self.games_channel_id = games_channel_id
        self.admin_channel_id = admin_channel_id
        self._users: dict[str, discord.abc.User] = {}

    def remember(self, user: discord.abc.User) -> None:
        self._users[user.name.lower()] = user

    def lookup(self, name: str) -> discord.abc.User | None:
        key = name.strip().lower()
        user = self._users.get(key)
        if user is not None:
            return user
        for member in self._bot.get_all_members():
            if member.name.lower() == key:
                self._users[key] = member
                return member
        return None

    async def games_channel(self):
        return await resolve_channel(self._bot, self.games_channel_id)

    async def send_channel(self, text: str) -> None:
        channel = await self.games_channel()
        if channel is None:
            log.warning("Games channel %s unavailable: %s", self.games_channel_id, text)
            return
        await channel.send(text[:MAX_MESSAGE_LENGTH])

    async def send_private(self, recipient: str, text: str) -> None:
        user = self.lookup(recipient)
        if user is None:
            log.warning("Unknown recipient %s for private message", recipient)
            return
        await user.send(text[:MAX_MESSAGE_LENGTH])

    async def send_admin(self, text: str) -> None:
        channel = await resolve_channel(self._bot, self.admin_channel_id)
        if channel is None:
            log.info("[admin] %s", text)
            return
        await channel.send(text[:MAX_MESSAGE_LENGTH])


class DiscordPrizeMailer:
    """Delivers prize notices by DM and records each payout in the admin log."""

    def __init__(self, messenger: DiscordMessenger) -> None:
        self._messenger = messenger

    async def send_prize(self, recipient: str, text: str, amount: int) -> bool:
        user = self._messenger.lookup(recipient)
        if user is None:
            log.warning("Cannot deliver prize to unknown user %s", recipient)
            return False
        body = text if amount <= 0 else f"{text}\nprize: {format_meat(amount)} meat"
        try:
            await user.send(body[:MAX_MESSAGE_LENGTH])
        except discord.DiscordException as exc:
            log.warning("Failed to DM prize to %s: %s", recipient, exc)
            return False
        if amount > 0:
            await self._messenger.send_admin(
                f"payout: {format_meat(amount)} meat to {recipient}"
            )
        return True


@dataclass(slots=True)
class _OpenSlot:
    slot: TicketSlot
    buyers: list[str] = field(default_factory=list)
    message: discord.Message | None = None
    view: TicketBoothView | None = None

    @property
    def sold(self) -> int:
        return len(self.buyers)


class TicketBoothView(discord.ui.View):
    def __init__(self, shop: DiscordTicketShop, slot: TicketSlot) -> None:
        super().__init__(timeout=None)
        self.shop = shop
        self.slot_id = slot.slot_id

        if hasattr(self, "buy"):
            self.buy.custom_id = f"ticket-{slot.slot_id}"

    @discord.ui.button(label="Buy Ticket", style=discord.ButtonStyle.green)
    async def buy(
        self, interaction: discord.Interaction, _: discord.ui.Button
    ) -> None:  # pylint: disable=unused-argument
        self.shop.messenger.remember(interaction.user)
        reply = self.shop.record_purchase(self.slot_id, interaction.user.name)
        await interaction.response.send_message(reply, ephemeral=True)


class DiscordTicketShop:
    """Sells tickets through a button on a games channel message.

    Each player may buy one ticket per slot. ``stock`` is the number of
    tickets the booth can still list; reserving a slot takes tickets out of
    stock and releasing it returns the unsold ones.
    """

    def __init__(
        self,
        messenger: DiscordMessenger,
        *,
        stock: int = 100,
        item: str = "raffle ticket",
    ) -> None:
        self.messenger = messenger
        self.stock = stock
        self.item = item
        self._open: dict[str, _OpenSlot] = {}
        self._pending: list[PurchaseRecord] = []

    async def reserve_slot(self, quantity: int) -> TicketSlot | None:
        if quantity <= 0 or self.stock < quantity:
            log.warning("Not enough tickets in stock (%s) for %s", self.stock, quantity)
            return None
        channel = await self.messenger.games_channel()
        if channel is None:
            return None

        slot = TicketSlot(
            slot_id=uuid.uuid4().hex[:12],
            item=self.item,
            quantity=quantity,
            opened_at=utc_now(),
        )
        view = TicketBoothView(self, slot)
        message = await channel.send(
            f"{quantity} x {self.item} for sale. One per player!", view=view
        )
        self.stock -= quantity
        self._open[slot.slot_id] = _OpenSlot(slot=slot, message=message, view=view)
        self._pending.clear()
        return slot

    def record_purchase(self, slot_id: str, buyer: str) -> str:
        state = self._open.get(slot_id)
        if state is None:
            return "Ticket sales are closed."
        key = buyer.strip().lower()
        if key in state.buyers:
            return "You already have a ticket."
        if state.sold >= state.slot.quantity:
            return "Sold out!"
        state.buyers.append(key)
        self._pending.append(
            PurchaseRecord(buyer=buyer, quantity=1, item=self.item, timestamp=utc_now())
        )
        return f"You bought a {self.item}! ({state.sold}/{state.slot.quantity})"

    async def poll_sales_log(self) -> list[PurchaseRecord]:
        records, self._pending = self._pending, []
        return records

    async def release_slot(self, slot: TicketSlot) -> None:
        state = self._open.pop(slot.slot_id, None)
        if state is None:
            return
        self.stock += slot.quantity - state.sold
        if state.view is not None:
            for child in state.view.children:
                if isinstance(child, discord.ui.Button):
                    child.disabled = True
            state.view.stop()
        if state.message is not None:
            try:
                await state.message.edit(
                    content=f"Ticket sales closed. {state.sold} sold.", view=state.view
                )
            except discord.DiscordException as exc:
                log.warning("Failed to close ticket booth %s: %s", slot.slot_id, exc)

    async def restock(self, quantity: int) -> bool:
        if quantity <= 0:
            return False
        self.stock += quantity
        log.info("Restocked %s tickets (stock=%s)", quantity, self.stock)
        return True


class ChatBridge:
    """Feeds Discord messages to the orchestrator.

    Direct messages are private chat, or mail when they start with
    ``mail``. In the games channel, prefixed messages are commands and
    everything else goes to the running game.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        messenger: DiscordMessenger,
        *,
        prefix: str = "!",
    ) -> None:
        self.orchestrator = orchestrator
        self.messenger = messenger
        self.prefix = prefix

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot:
            return
        content = message.content.strip()
        if not content:
            return
        self.messenger.remember(message.author)
        name = message.author.name

        if message.guild is None:
            if content.lower().startswith("mail "):
                await self.orchestrator.handle_mail(name, content[5:].strip(), 0)
            else:
                await self.orchestrator.handle_chat(name, content, private=True)
            return

        if message.channel.id != self.messenger.games_channel_id:
            return
        if content.startswith(self.prefix):
            await self.orchestrator.handle_chat(name, content[len(self.prefix):], private=False)
        else:
            self.orchestrator.forward_to_session(name, content, private=False)


__all__ = [
    "ChatBridge",
    "DiscordMessenger",
    "DiscordPrizeMailer",
    "DiscordTicketShop",
    "TicketBoothView",
    "resolve_channel",
]
