from __future__ import annotations

import logging

import discord
from discord.ext import commands, tasks
from dotenv import load_dotenv

from .calendar_keys import Calendar
from .clock import utc_now
from .commands import register_commands
from .config import Config, load_config
from .db import Database
from .notifier import DiscordNotifier
from .rollover import LAST_ROLLOVER_META_KEY, weeks_due
from .tracker import WorkTracker


class WorkHoursBot(commands.Bot):
    def __init__(self, config: Config, db: Database) -> None:
        intents = discord.Intents.none()
        intents.guilds = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.db = db
        self.logger = logging.getLogger("workhours-bot")
        self.tracker = WorkTracker(
            db=db,
            calendar=Calendar(tz=config.timezone, week_start=config.week_start),
            default_rate=config.pay_rate,
            export_format=config.export_format,
            notifier=DiscordNotifier(self),
            lock_ttl_seconds=config.rollover_lock_seconds,
        )

    async def setup_hook(self) -> None:
        # Register slash commands during startup and begin the weekly scheduler loop.
        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))
        self.weekly_rollover_loop.start()

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")
        self.logger.info(
            "Timezone %s, weeks start on %s, default rate %s",
            self.config.timezone.key,
            self.config.week_start.name.title(),
            self.config.pay_rate,
        )

    @tasks.loop(seconds=30)
    async def weekly_rollover_loop(self) -> None:
        now = utc_now()
        # Weeks missed while the bot was offline are rolled oldest first on the next tick.
        # The lock inside the rollover is authoritative; the meta marker keeps ticks cheap.
        for week_key in weeks_due(self.tracker.calendar, self.db.get_meta(LAST_ROLLOVER_META_KEY), now):
            try:
                await self.tracker.run_weekly_rollover(now, week_key=week_key)
            except Exception:  # pragma: no cover - runtime safety
                self.logger.exception("Weekly rollover for %s failed", week_key)
                return

    @weekly_rollover_loop.before_loop
    async def before_weekly_rollover_loop(self) -> None:
        await self.wait_until_ready()

    async def close(self) -> None:
        if self.weekly_rollover_loop.is_running():
            self.weekly_rollover_loop.cancel()
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
    db = Database(config.database_path)
    db.initialize()

    bot = WorkHoursBot(config=config, db=db)
    bot.run(config.discord_token)


if __name__ == "__main__":
    main()
