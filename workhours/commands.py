from __future__ import annotations

import io

import discord

from .clock import utc_now
from .dispatch import Command, CommandKind, Reply, dispatch


def register_commands(bot):
    """Register all slash commands on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)

    async def respond(
        interaction: discord.Interaction,
        kind: CommandKind,
        *,
        argument: str | None = None,
        target: discord.Member | None = None,
        slow: bool = False,
    ) -> None:
        if interaction.guild is None or interaction.guild.id != bot.config.guild_id:
            await interaction.response.send_message("This command can only be used in the configured server.", ephemeral=True)
            return

        if slow:
            # Rollover can outlive the interaction's initial response window.
            await interaction.response.defer(ephemeral=True, thinking=True)

        user = interaction.user
        command = Command(
            kind=kind,
            user_id=str(user.id),
            now_utc=utc_now(),
            is_admin=user.id == bot.config.admin_user_id,
            argument=argument,
            target_user_id=str(target.id) if target is not None else None,
            target_name=target.display_name if target is not None else None,
        )

        try:
            endpoint_id = str(interaction.channel_id) if interaction.channel_id is not None else None
            bot.tracker.register(command.user_id, user.display_name, endpoint_id)
            reply = await dispatch(bot.tracker, command)
        except Exception as exc:
            bot.logger.exception("/%s failed", kind.value)
            reply = Reply(f"Command failed: `{exc}`", ok=False)

        kwargs = {"ephemeral": True}
        if reply.attachment is not None:
            kwargs["file"] = discord.File(io.BytesIO(reply.attachment.payload), filename=reply.attachment.filename)

        if interaction.response.is_done():
            await interaction.followup.send(reply.text, **kwargs)
        else:
            await interaction.response.send_message(reply.text, **kwargs)

    @bot.tree.command(name="help", description="Show available commands", guild=guild_scope)
    async def help_command(interaction):
        await respond(interaction, CommandKind.HELP)

    @bot.tree.command(name="in", description="Clock in", guild=guild_scope)
    async def clock_in(interaction):
        await respond(interaction, CommandKind.CLOCK_IN)

    @bot.tree.command(name="out", description="Clock out", guild=guild_scope)
    async def clock_out(interaction):
        await respond(interaction, CommandKind.CLOCK_OUT)

    @bot.tree.command(name="today", description="Show today's hours so far", guild=guild_scope)
    async def today(interaction):
        await respond(interaction, CommandKind.TODAY)

    @bot.tree.command(name="week", description="Show this week's hours, pay and daily totals", guild=guild_scope)
    async def week(interaction):
        await respond(interaction, CommandKind.WEEK)

    @bot.tree.command(name="pay", description="Show this week's pay", guild=guild_scope)
    async def pay(interaction):
        await respond(interaction, CommandKind.PAY)

    @bot.tree.command(name="export", description="Export this week as CSV", guild=guild_scope)
    async def export(interaction):
        await respond(interaction, CommandKind.EXPORT)

    @bot.tree.command(name="resetday", description="Clear today's entries", guild=guild_scope)
    async def reset_day(interaction):
        await respond(interaction, CommandKind.RESET_DAY)

    @bot.tree.command(name="resetweek", description="Clear this week's entries", guild=guild_scope)
    async def reset_week(interaction):
        await respond(interaction, CommandKind.RESET_WEEK)

    @bot.tree.command(name="timezone", description="Set the timezone used to show your clock times", guild=guild_scope)
    async def set_timezone(interaction, name: str | None = None):
        await respond(interaction, CommandKind.SET_TIMEZONE, argument=name)

    @bot.tree.command(name="setrate", description="Owner: set a member's hourly rate", guild=guild_scope)
    async def set_rate(interaction, member: discord.Member, rate: str):
        await respond(interaction, CommandKind.SET_RATE, argument=rate, target=member)

    @bot.tree.command(name="clearrate", description="Owner: reset a member to the default rate", guild=guild_scope)
    async def clear_rate(interaction, member: discord.Member):
        await respond(interaction, CommandKind.CLEAR_RATE, target=member)

    @bot.tree.command(name="allhours", description="Owner: this week's hours for every user", guild=guild_scope)
    async def all_hours(interaction):
        await respond(interaction, CommandKind.ALL_HOURS)

    @bot.tree.command(name="allpay", description="Owner: this week's pay for every user", guild=guild_scope)
    async def all_pay(interaction):
        await respond(interaction, CommandKind.ALL_PAY)

    @bot.tree.command(name="rollover", description="Owner: send last week's summaries and reset it", guild=guild_scope)
    async def rollover(interaction):
        await respond(interaction, CommandKind.ROLLOVER, slow=True)

    @bot.tree.command(name="status", description="Show bot status", guild=guild_scope)
    async def status(interaction):
        await respond(interaction, CommandKind.STATUS)
