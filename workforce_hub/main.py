from __future__ import annotations

import asyncio
import logging

import discord
from discord.ext import commands
from dotenv import load_dotenv

from .api import AttendanceClient
from .commands import register_commands
from .config import Config, load_config
from .db import SessionStore
from .models import Notification, NotificationSeverity
from .tracker import WorkSessionTracker


class WorkforceHubBot(commands.Bot):
    def __init__(self, config: Config, store: SessionStore, api: AttendanceClient) -> None:
        intents = discord.Intents.none()
        intents.guilds = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.store = store
        self.api = api
        self.tracker = WorkSessionTracker(service=api, store=store, tz=config.timezone)

        self.logger = logging.getLogger("workforce-hub-bot")

        self.report_channel: discord.TextChannel | None = None
        self._announced: Notification | None = None
        self._pending_posts: set[asyncio.Task] = set()

    async def setup_hook(self) -> None:
        # Register slash commands, then bring the session back from disk and the server.
        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))
        self.tracker.add_listener(self._on_tracker_change)
        await self.tracker.start()
        if self.tracker.error:
            self.logger.warning("Startup reconciliation failed: %s", self.tracker.error)

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")
        if self.report_channel is not None:
            return

        guild = self.get_guild(self.config.guild_id)
        if guild is None:
            self.logger.error("Configured guild %s not found", self.config.guild_id)
            await self.close()
            return

        report = guild.get_channel(self.config.report_channel_id)
        if not isinstance(report, discord.TextChannel):
            self.logger.error("Report channel %s is missing or not a text channel", self.config.report_channel_id)
            await self.close()
            return

        self.report_channel = report
        self.logger.info("Runtime checks passed")

    def _on_tracker_change(self, tracker: WorkSessionTracker) -> None:
        # Only timer-driven notices (an expired break) are announced; command replies cover the rest.
        note = tracker.notification
        if note is None or note is self._announced or not tracker.show_notification:
            return
        if note.severity is not NotificationSeverity.INFO:
            return

        self._announced = note
        if self.report_channel is None:
            self.logger.warning("Report channel unavailable; dropping notice %r", note.title)
            return

        task = asyncio.create_task(self._post_notice(note))
        self._pending_posts.add(task)
        task.add_done_callback(self._pending_posts.discard)

    async def _post_notice(self, note: Notification) -> None:
        try:
            await self.report_channel.send(
                f"<@{self.config.owner_user_id}> **{note.title}**: {note.message}",
                allowed_mentions=discord.AllowedMentions(users=True),
            )
        except discord.HTTPException:
            self.logger.exception("Failed to post %r to the report channel", note.title)

    async def close(self) -> None:
        self.tracker.close()
        await self.api.close()
        self.store.close()
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
    store = SessionStore(config.session_db_path)
    store.initialize()
    api = AttendanceClient(config.api_base_url, config.api_token, timeout=config.api_timeout_seconds)

    bot = WorkforceHubBot(config=config, store=store, api=api)
    bot.run(config.discord_token)


if __name__ == "__main__":
    main()
