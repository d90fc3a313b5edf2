"""Discord runtime that wires the orchestrator to its collaborators."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass

import boto3
import discord

from .clients import CommandRunner, LedgerStore
from .config import env_bool, env_int, read_game_settings
from .discord_client import ChatBridge, DiscordMessenger, DiscordPrizeMailer, DiscordTicketShop
from .orchestrator import Orchestrator
from .storage import JsonLedgerFile, LedgerStorage
from .trivia import DEFAULT_TRIVIA_URL, OpenTriviaClient

log = logging.getLogger("chat-games")

EXEC_TIMEOUT_SECONDS = 30


@dataclass(slots=True)
class EnvironmentConfig:
    discord_token: str
    games_channel_id: int
    admin_log_channel_id: int | None
    ledger_table_name: str | None
    ledger_path: str | None
    aws_region: str
    command_prefix: str
    trivia_url: str
    exec_enabled: bool

    @classmethod
    def load(cls) -> "EnvironmentConfig":
        missing: list[str] = []

        def need(name: str) -> str:
            value = os.getenv(name)
            if not value:
                missing.append(name)
                return ""
            return value

        discord_token = need("DISCORD_TOKEN")
        games_channel = need("GAMES_CHANNEL_ID")
        ledger_table_name = os.getenv("LEDGER_TABLE_NAME") or None
        ledger_path = os.getenv("LEDGER_PATH") or None
        if not ledger_table_name and not ledger_path:
            missing.append("LEDGER_TABLE_NAME or LEDGER_PATH")

        if missing:
            raise RuntimeError("Missing env vars: " + ", ".join(sorted(set(missing))))

        return cls(
            discord_token=discord_token,
            games_channel_id=int(games_channel),
            admin_log_channel_id=env_int("ADMIN_LOG_CHANNEL_ID"),
            ledger_table_name=ledger_table_name,
            ledger_path=ledger_path,
            aws_region=os.getenv("AWS_REGION", "us-east-1"),
            command_prefix=os.getenv("COMMAND_PREFIX", "!"),
            trivia_url=os.getenv("TRIVIA_API_URL") or DEFAULT_TRIVIA_URL,
            exec_enabled=env_bool("GAME_EXEC_ENABLED"),
        )


def build_storage(config: EnvironmentConfig) -> LedgerStore:
    if config.ledger_table_name:
        dynamodb = boto3.resource("dynamodb", region_name=config.aws_region)
        return LedgerStorage(dynamodb.Table(config.ledger_table_name))
    return JsonLedgerFile(config.ledger_path or "ledger.json")


async def shell_command_runner(command: str) -> str:
    proc = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    try:
        output, _ = await asyncio.wait_for(proc.communicate(), timeout=EXEC_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        proc.kill()
        return f"error: timed out after {EXEC_TIMEOUT_SECONDS}s"
    text = output.decode(errors="replace").strip()
    return text or "command executed"


class ChatGamesRuntime:
    def __init__(self, config: EnvironmentConfig) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True
        intents.message_content = True

        self.config = config
        self.settings = read_game_settings()
        self.bot = discord.Client(intents=intents)
        self.messenger = DiscordMessenger(
            self.bot,
            games_channel_id=config.games_channel_id,
            admin_channel_id=config.admin_log_channel_id,
        )
        runner: CommandRunner | None = shell_command_runner if config.exec_enabled else None
        self.orchestrator = Orchestrator(
            settings=self.settings,
            messenger=self.messenger,
            mailer=DiscordPrizeMailer(self.messenger),
            shop=DiscordTicketShop(self.messenger, stock=self.settings.restock_default),
            trivia=OpenTriviaClient(config.trivia_url),
            storage=build_storage(config),
            command_runner=runner,
        )
        self.bridge = ChatBridge(
            self.orchestrator, self.messenger, prefix=config.command_prefix
        )
        self._started = False

    def configure_events(self) -> None:
        @self.bot.event
        async def on_ready():
            log.info("Bot ready as %s", self.bot.user)
            if not self._started:
                self._started = True
                await self.orchestrator.start()

        self.bot.event(self.bridge.on_message)

    async def run(self) -> None:
        self.configure_events()
        try:
            async with self.bot:
                await self.bot.start(self.config.discord_token)
        finally:
            if self._started:
                await self.orchestrator.stop()

    @classmethod
    def create(cls) -> "ChatGamesRuntime":
        config = EnvironmentConfig.load()
        return cls(config)


async def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    runtime = ChatGamesRuntime.create()
    await runtime.run()


__all__ = ["ChatGamesRuntime", "EnvironmentConfig", "build_storage", "main"]
