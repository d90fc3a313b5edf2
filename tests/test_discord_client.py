"""Tests for the Discord messenger, prize mailer, ticket booth and chat bridge."""

from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from chatgames.discord_client import (
    ChatBridge,
    DiscordMessenger,
    DiscordPrizeMailer,
    DiscordTicketShop,
    resolve_channel,
)

GAMES_CHANNEL_ID = 555
ADMIN_CHANNEL_ID = 777


def _user(name: str) -> MagicMock:
    user = MagicMock()
    user.name = name
    user.bot = False
    user.send = AsyncMock()
    return user


def _channel(channel_id: int) -> MagicMock:
    channel = MagicMock(spec=discord.TextChannel)
    channel.id = channel_id
    booth_message = MagicMock()
    booth_message.edit = AsyncMock()
    channel.send = AsyncMock(return_value=booth_message)
    return channel


@pytest.fixture
def games_channel():
    return _channel(GAMES_CHANNEL_ID)


@pytest.fixture
def admin_channel():
    return _channel(ADMIN_CHANNEL_ID)


@pytest.fixture
def bot(games_channel, admin_channel):
    client = MagicMock()
    channels = {GAMES_CHANNEL_ID: games_channel, ADMIN_CHANNEL_ID: admin_channel}
    client.get_channel.side_effect = channels.get
    client.get_all_members.return_value = []
    return client


@pytest.fixture
def discord_messenger(bot):
    return DiscordMessenger(bot, games_channel_id=GAMES_CHANNEL_ID)


def _interaction(user) -> MagicMock:
    interaction = MagicMock()
    interaction.user = user
    interaction.response.send_message = AsyncMock()
    return interaction


class TestResolveChannel:
    @pytest.mark.asyncio
    async def test_cached_channel(self, bot, games_channel):
        assert await resolve_channel(bot, GAMES_CHANNEL_ID) is games_channel

    @pytest.mark.asyncio
    async def test_fetches_when_not_cached(self, games_channel):
        client = MagicMock()
        client.get_channel.return_value = None
        client.fetch_channel = AsyncMock(return_value=games_channel)

        assert await resolve_channel(client, GAMES_CHANNEL_ID) is games_channel
        client.fetch_channel.assert_awaited_once_with(GAMES_CHANNEL_ID)

    @pytest.mark.asyncio
    async def test_none_id(self, bot):
        assert await resolve_channel(bot, None) is None


class TestDiscordMessenger:
    @pytest.mark.asyncio
    async def test_send_channel_truncates(self, discord_messenger, games_channel):
        await discord_messenger.send_channel("x" * 2500)
        games_channel.send.assert_awaited_once_with("x" * 2000)

    @pytest.mark.asyncio
    async def test_send_private_to_remembered_user(self, discord_messenger):
        alice = _user("Alice")
        discord_messenger.remember(alice)

        await discord_messenger.send_private("alice", "hi")

        alice.send.assert_awaited_once_with("hi")

    @pytest.mark.asyncio
    async def test_lookup_falls_back_to_members(self, discord_messenger, bot):
        bob = _user("Bob")
        bot.get_all_members.return_value = [_user("carol"), bob]

        await discord_messenger.send_private("BOB", "hello")

        bob.send.assert_awaited_once_with("hello")
        assert discord_messenger.lookup("bob") is bob

    @pytest.mark.asyncio
    async def test_unknown_recipient_is_skipped(self, discord_messenger):
        await discord_messenger.send_private("ghost", "hello")

    @pytest.mark.asyncio
    async def test_admin_channel(self, bot, admin_channel):
        messenger = DiscordMessenger(
            bot, games_channel_id=GAMES_CHANNEL_ID, admin_channel_id=ADMIN_CHANNEL_ID
        )
        await messenger.send_admin("prize failed")
        admin_channel.send.assert_awaited_once_with("prize failed")


class TestDiscordPrizeMailer:
    @pytest.mark.asyncio
    async def test_prize_dm_and_admin_log(self, bot, admin_channel):
        """Prize notices carry the amount and are logged to the admin channel."""
        messenger = DiscordMessenger(
            bot, games_channel_id=GAMES_CHANNEL_ID, admin_channel_id=ADMIN_CHANNEL_ID
        )
        alice = _user("alice")
        messenger.remember(alice)

        delivered = await DiscordPrizeMailer(messenger).send_prize("alice", "you won!", 45_000)

        assert delivered is True
        alice.send.assert_awaited_once_with("you won!\nprize: 45,000 meat")
        admin_channel.send.assert_awaited_once_with("payout: 45,000 meat to alice")

    @pytest.mark.asyncio
    async def test_zero_amount_is_plain_message(self, discord_messenger):
        bob = _user("bob")
        discord_messenger.remember(bob)

        assert await DiscordPrizeMailer(discord_messenger).send_prize("bob", "thanks", 0)
        bob.send.assert_awaited_once_with("thanks")

    @pytest.mark.asyncio
    async def test_unknown_user(self, discord_messenger):
        assert await DiscordPrizeMailer(discord_messenger).send_prize("ghost", "x", 5) is False

    @pytest.mark.asyncio
    async def test_dm_failure(self, discord_messenger):
        bob = _user("bob")
        bob.send.side_effect = discord.DiscordException("dms closed")
        discord_messenger.remember(bob)

        assert await DiscordPrizeMailer(discord_messenger).send_prize("bob", "x", 5) is False


class TestDiscordTicketShop:
    @pytest.mark.asyncio
    async def test_reserve_buy_and_release(self, discord_messenger, games_channel):
        """A booth sells one ticket per player and returns unsold stock on close."""
        shop = DiscordTicketShop(discord_messenger, stock=15)

        slot = await shop.reserve_slot(10)

        assert slot.quantity == 10
        assert shop.stock == 5
        args, kwargs = games_channel.send.call_args
        assert args == ("10 x raffle ticket for sale. One per player!",)
        view = kwargs["view"]
        assert view.buy.custom_id == f"ticket-{slot.slot_id}"

        interaction = _interaction(_user("Alice"))
        await view.buy.callback(interaction)
        interaction.response.send_message.assert_awaited_once_with(
            "You bought a raffle ticket! (1/10)", ephemeral=True
        )

        again = _interaction(_user("alice"))
        await view.buy.callback(again)
        again.response.send_message.assert_awaited_once_with(
            "You already have a ticket.", ephemeral=True
        )

        records = await shop.poll_sales_log()
        assert [(record.buyer, record.quantity) for record in records] == [("Alice", 1)]
        assert await shop.poll_sales_log() == []
        assert discord_messenger.lookup("alice") is again.user

        await shop.release_slot(slot)

        assert shop.stock == 14
        assert view.buy.disabled is True
        booth_message = games_channel.send.return_value
        booth_message.edit.assert_awaited_once_with(
            content="Ticket sales closed. 1 sold.", view=view
        )

        late = _interaction(_user("bob"))
        await view.buy.callback(late)
        late.response.send_message.assert_awaited_once_with(
            "Ticket sales are closed.", ephemeral=True
        )

    @pytest.mark.asyncio
    async def test_sold_out(self, discord_messenger):
        shop = DiscordTicketShop(discord_messenger, stock=1)
        slot = await shop.reserve_slot(1)

        assert shop.record_purchase(slot.slot_id, "alice") == "You bought a raffle ticket! (1/1)"
        assert shop.record_purchase(slot.slot_id, "bob") == "Sold out!"

    @pytest.mark.asyncio
    async def test_not_enough_stock(self, discord_messenger, games_channel):
        shop = DiscordTicketShop(discord_messenger, stock=5)

        assert await shop.reserve_slot(10) is None
        games_channel.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_restock(self, discord_messenger):
        shop = DiscordTicketShop(discord_messenger, stock=0)
        assert await shop.restock(0) is False
        assert await shop.restock(25) is True
        assert shop.stock == 25


class TestChatBridge:
    @pytest.fixture
    def orchestrator(self):
        orchestrator = MagicMock()
        orchestrator.handle_chat = AsyncMock()
        orchestrator.handle_mail = AsyncMock()
        orchestrator.forward_to_session = MagicMock(return_value=True)
        return orchestrator

    @pytest.fixture
    def bridge(self, orchestrator, discord_messenger):
        return ChatBridge(orchestrator, discord_messenger, prefix="!")

    def _message(self, content, *, guild=True, channel_id=GAMES_CHANNEL_ID, bot=False):
        message = MagicMock()
        message.author = _user("Alice")
        message.author.bot = bot
        message.content = content
        message.guild = MagicMock() if guild else None
        message.channel.id = channel_id
        return message

    @pytest.mark.asyncio
    async def test_dm_mail(self, bridge, orchestrator):
        await bridge.on_message(self._message("mail  Lyon ", guild=False))
        orchestrator.handle_mail.assert_awaited_once_with("Alice", "Lyon", 0)

    @pytest.mark.asyncio
    async def test_dm_chat_is_private(self, bridge, orchestrator):
        await bridge.on_message(self._message("jackpot", guild=False))
        orchestrator.handle_chat.assert_awaited_once_with("Alice", "jackpot", private=True)

    @pytest.mark.asyncio
    async def test_prefixed_command_in_games_channel(self, bridge, orchestrator):
        await bridge.on_message(self._message("!host 100k"))
        orchestrator.handle_chat.assert_awaited_once_with("Alice", "host 100k", private=False)

    @pytest.mark.asyncio
    async def test_plain_text_goes_to_session(self, bridge, orchestrator):
        await bridge.on_message(self._message("guess 2"))
        orchestrator.forward_to_session.assert_called_once_with(
            "Alice", "guess 2", private=False
        )
        orchestrator.handle_chat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ignores_other_channels_and_bots(self, bridge, orchestrator):
        await bridge.on_message(self._message("!host 100k", channel_id=1))
        await bridge.on_message(self._message("!host 100k", bot=True))
        await bridge.on_message(self._message("   "))

        orchestrator.handle_chat.assert_not_awaited()
        orchestrator.forward_to_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_author_is_remembered(self, bridge, discord_messenger):
        message = self._message("jackpot", guild=False)
        await bridge.on_message(message)
        assert discord_messenger.lookup("alice") is message.author
