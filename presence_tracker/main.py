from __future__ import annotations

import logging
import sqlite3

import discord
from discord.ext import commands
from dotenv import load_dotenv

from .aggregator import Aggregator
from .commands import register_commands
from .config import Config, load_config
from .db import Database
from .reporter import Reporter
from .timeutils import now_ms
from .tracker import PresenceTracker


class PresenceBot(commands.Bot):
    def __init__(self, config: Config, db: Database) -> None:
        intents = discord.Intents.none()
        intents.guilds = True
        intents.members = True
        intents.voice_states = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.db = db
        self.tracker = PresenceTracker(db=db)
        self.aggregator = Aggregator(db=db, tz=config.timezone)
        self.reporter = Reporter(db=db, aggregator=self.aggregator, tz=config.timezone)

        self.logger = logging.getLogger("presence-bot")

    async def setup_hook(self) -> None:
        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))
        self.logger.info("Slash commands synced for guild %s", self.config.guild_id)

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")

    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        if member.bot:
            return

        if member.guild.id != self.config.guild_id:
            return

        before_id = str(before.channel.id) if before.channel else None
        after_id = str(after.channel.id) if after.channel else None

        try:
            self.tracker.handle_voice_transition(
                str(member.guild.id), str(member.id), before_id, after_id, now_ms()
            )
        except sqlite3.Error:
            self.logger.exception("Failed to record voice transition for user=%s", member.id)

    async def close(self) -> None:
        self.db.close()
        await super().close()


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main() -> None:
    load_dotenv()
    configure_logging()

    config = load_config()
    db = Database(config.db_path)
    db.initialize()

    bot = PresenceBot(config=config, db=db)
    bot.run(config.discord_token, log_handler=None)


if __name__ == "__main__":
    main()
