import io
from typing import Literal, Optional

import discord
from discord import app_commands

from .models import InvalidInputError
from .timeutils import format_duration, minutes_to_hhmm, now_ms, resolve_report_range

NO_MENTIONS = discord.AllowedMentions.none()


def is_admin(member) -> bool:
    perms = getattr(member, "guild_permissions", None)
    if perms is None:
        return False
    return bool(perms.administrator or perms.manage_guild)


def report_scope(caller_id: str, requested_user_id: str | None, can_view_others: bool) -> str | None:
    """Return the user a report may cover, or None for the whole guild.

    Callers without admin or viewer rights only ever see their own time.
    """
    if can_view_others:
        return requested_user_id
    return caller_id


def register_commands(bot):
    """Register all slash commands on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)

    async def reject_outside_guild(interaction) -> bool:
        if interaction.guild is None or interaction.guild.id != bot.config.guild_id:
            await interaction.response.send_message("This command can only be used in the configured server.", ephemeral=True)
            return True
        return False

    async def reject_third_party(interaction, target, action: str) -> bool:
        if target.id != interaction.user.id and not is_admin(interaction.user):
            await interaction.response.send_message(f"Only admins can {action} for another member.", ephemeral=True)
            return True
        return False

    @bot.tree.command(name="check-in", description="Start a manual presence session", guild=guild_scope)
    @app_commands.describe(user="Member to check in (admins only for others)")
    async def check_in(interaction: discord.Interaction, user: Optional[discord.Member] = None):
        if await reject_outside_guild(interaction):
            return
        target = user or interaction.user
        if await reject_third_party(interaction, target, "record a check-in"):
            return

        # Tie the session to the member's voice channel when they are in one.
        voice = getattr(target, "voice", None)
        channel_id = str(voice.channel.id) if voice is not None and voice.channel is not None else None

        bot.tracker.check_in(str(interaction.guild.id), str(target.id), channel_id, now_ms())
        await interaction.response.send_message(
            f"Check-in recorded for {target.mention}.", ephemeral=True, allowed_mentions=NO_MENTIONS
        )

    @bot.tree.command(name="check-out", description="Close open presence sessions", guild=guild_scope)
    @app_commands.describe(user="Member to check out (admins only for others)")
    async def check_out(interaction: discord.Interaction, user: Optional[discord.Member] = None):
        if await reject_outside_guild(interaction):
            return
        target = user or interaction.user
        if await reject_third_party(interaction, target, "close sessions"):
            return

        closed = bot.tracker.check_out(str(interaction.guild.id), str(target.id), now_ms())
        if closed:
            message = f"Check-out recorded for {target.mention} ({closed} session(s) closed)."
        else:
            message = f"{target.mention} had no open sessions."
        await interaction.response.send_message(message, ephemeral=True, allowed_mentions=NO_MENTIONS)

    @bot.tree.command(name="report", description="Billable presence per member, channel and day", guild=guild_scope)
    @app_commands.describe(
        user="Specific member (optional)",
        preset="Quick range",
        since="Start (DD/MM/YYYY, ISO or relative -7d, -12h, -30m)",
        until="End (DD/MM/YYYY, ISO or relative)",
        csv="Attach a CSV file (admins and viewers only)",
    )
    async def report(
        interaction: discord.Interaction,
        user: Optional[discord.Member] = None,
        preset: Optional[Literal["today", "yesterday", "week"]] = None,
        since: Optional[str] = None,
        until: Optional[str] = None,
        csv: bool = False,
    ):
        if await reject_outside_guild(interaction):
            return

        try:
            start, end = resolve_report_range(preset, since, until, bot.config.timezone, now_ms())
        except InvalidInputError as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return

        await interaction.response.defer(thinking=True)

        guild_id = str(interaction.guild.id)
        caller_id = str(interaction.user.id)
        can_view_others = is_admin(interaction.user) or bot.db.is_viewer(guild_id, caller_id)
        target_id = report_scope(caller_id, str(user.id) if user else None, can_view_others)

        rows = bot.reporter.build_rows(interaction.guild, guild_id, start, end, target_id)
        content = bot.reporter.build_report_content(interaction.guild, guild_id, start, end, rows)

        kwargs = {"allowed_mentions": NO_MENTIONS}
        if csv and can_view_others:
            data = bot.reporter.build_csv(interaction.guild, guild_id, start, end, rows)
            kwargs["file"] = discord.File(io.BytesIO(data), filename=bot.reporter.csv_filename(start))

        await interaction.followup.send(content, **kwargs)
        bot.logger.info(
            "Report sent: guild=%s caller=%s users=%d total=%s",
            guild_id,
            caller_id,
            len(rows),
            format_duration(sum(row.aggregate.total_ms for row in rows)),
        )

    @bot.tree.command(name="set-schedule", description="Set individual working hours (HH:MM, 24h)", guild=guild_scope)
    @app_commands.describe(start="Start time, e.g. 09:00", end="End time, e.g. 18:00", user="Member (defaults to you)")
    async def set_schedule(interaction: discord.Interaction, start: str, end: str, user: Optional[discord.Member] = None):
        if await reject_outside_guild(interaction):
            return
        target = user or interaction.user
        if await reject_third_party(interaction, target, "set the schedule"):
            return

        try:
            schedule = bot.tracker.set_schedule(str(interaction.guild.id), str(target.id), start, end)
        except InvalidInputError as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return

        await interaction.response.send_message(
            f"Schedule saved for {target.mention}: "
            f"{minutes_to_hhmm(schedule.work_start_min)}-{minutes_to_hhmm(schedule.work_end_min)}.",
            ephemeral=True,
            allowed_mentions=NO_MENTIONS,
        )

    @bot.tree.command(name="set-break", description="Set an individual daily break (start + duration)", guild=guild_scope)
    @app_commands.describe(
        start="Start time (HH:MM), e.g. 13:00",
        duration_min="Duration in minutes, e.g. 60",
        user="Member (defaults to you)",
    )
    async def set_break(
        interaction: discord.Interaction,
        start: str,
        duration_min: int,
        user: Optional[discord.Member] = None,
    ):
        if await reject_outside_guild(interaction):
            return
        target = user or interaction.user
        if await reject_third_party(interaction, target, "set the break"):
            return

        try:
            break_window = bot.tracker.set_break(str(interaction.guild.id), str(target.id), start, duration_min)
        except InvalidInputError as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return

        await interaction.response.send_message(
            f"Break saved for {target.mention}: "
            f"{minutes_to_hhmm(break_window.break_start_min)}-{minutes_to_hhmm(break_window.break_end_min)}.",
            ephemeral=True,
            allowed_mentions=NO_MENTIONS,
        )

    viewer = app_commands.Group(name="viewer", description="Admins: manage who can view reports about others")

    async def reject_non_admin(interaction) -> bool:
        if await reject_outside_guild(interaction):
            return True
        if not is_admin(interaction.user):
            await interaction.response.send_message("Admins only.", ephemeral=True)
            return True
        return False

    @viewer.command(name="add", description="Allow a member to view general and third-party reports")
    @app_commands.describe(user="Member to authorize")
    async def viewer_add(interaction: discord.Interaction, user: discord.Member):
        if await reject_non_admin(interaction):
            return
        bot.db.add_viewer(str(interaction.guild.id), str(user.id))
        await interaction.response.send_message(
            f"{user.mention} can now view general and third-party reports.", ephemeral=True, allowed_mentions=NO_MENTIONS
        )

    @viewer.command(name="remove", description="Revoke report viewing rights")
    @app_commands.describe(user="Member to revoke")
    async def viewer_remove(interaction: discord.Interaction, user: discord.Member):
        if await reject_non_admin(interaction):
            return
        bot.db.remove_viewer(str(interaction.guild.id), str(user.id))
        await interaction.response.send_message(
            f"{user.mention} no longer has extended report access.", ephemeral=True, allowed_mentions=NO_MENTIONS
        )

    @viewer.command(name="list", description="List authorized viewers")
    async def viewer_list(interaction: discord.Interaction):
        if await reject_non_admin(interaction):
            return
        user_ids = bot.db.list_viewers(str(interaction.guild.id))
        if not user_ids:
            await interaction.response.send_message("No authorized viewers.", ephemeral=True)
            return

        names = []
        for user_id in user_ids:
            member = interaction.guild.get_member(int(user_id))
            names.append(member.display_name if member else f"User {user_id}")
        await interaction.response.send_message(f"Authorized viewers: {', '.join(names)}", ephemeral=True)

    bot.tree.add_command(viewer, guild=guild_scope)

    @bot.tree.error
    async def on_app_command_error(interaction: discord.Interaction, error: app_commands.AppCommandError):
        name = interaction.command.name if interaction.command else "unknown"
        bot.logger.error("/%s failed", name, exc_info=error)

        message = "An error occurred while processing the command."
        try:
            if interaction.response.is_done():
                await interaction.followup.send(message, ephemeral=True)
            else:
                await interaction.response.send_message(message, ephemeral=True)
        except discord.HTTPException:
            bot.logger.exception("Failed to send error notice for /%s", name)
