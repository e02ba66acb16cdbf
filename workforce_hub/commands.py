from __future__ import annotations

import discord
from discord import app_commands

from .models import BreakType, NotificationSeverity, TrackerState
from .tracker import WorkSessionTracker

STATE_LABELS = {
    TrackerState.NOT_CLOCKED_IN: "Not clocked in",
    TrackerState.WORKING: "Working",
    TrackerState.ON_BREAK: "On break",
}

SEVERITY_ICONS = {
    NotificationSeverity.INFO: "ℹ️",
    NotificationSeverity.SUCCESS: "✅",
    NotificationSeverity.WARNING: "⚠️",
}

BREAK_CHOICES = [app_commands.Choice(name=item.value, value=item.value) for item in BreakType]


def status_lines(tracker: WorkSessionTracker) -> list[str]:
    lines = [
        f"State: {STATE_LABELS[tracker.tracker_state]}",
        f"Clocked in at: `{tracker.clock_in_display or '-'}`",
        f"Hours worked: `{tracker.hours_worked}`",
        f"Break time: `{tracker.break_time}`",
    ]
    if tracker.active_break is not None:
        lines.append(f"Active break: {tracker.active_break.value}")
    if tracker.breaks_taken:
        taken = ", ".join(sorted(item.value for item in tracker.breaks_taken))
        lines.append(f"Breaks taken today: {taken}")
    if tracker.attendance_record_id:
        lines.append(f"Attendance record: `{tracker.attendance_record_id}`")
    if tracker.show_notification and tracker.notification is not None:
        note = tracker.notification
        lines.append(f"Last notice: {SEVERITY_ICONS[note.severity]} {note.title}: {note.message}")
    return lines


def outcome_message(tracker: WorkSessionTracker, fallback: str) -> str:
    """Describe what the last tracker operation produced for the user."""
    if tracker.error:
        return f"❌ {tracker.error}"
    if tracker.show_notification and tracker.notification is not None:
        note = tracker.notification
        return f"{SEVERITY_ICONS[note.severity]} **{note.title}**\n{note.message}"
    return fallback


def register_commands(bot):
    """Register all slash commands on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)
    tracker: WorkSessionTracker = bot.tracker

    async def ensure_owner(interaction: discord.Interaction) -> bool:
        if interaction.guild is None or interaction.guild.id != bot.config.guild_id:
            await interaction.response.send_message("This command can only be used in the configured server.", ephemeral=True)
            return False
        if interaction.user.id != bot.config.owner_user_id:
            await interaction.response.send_message("Only the session owner can use this command.", ephemeral=True)
            return False
        return True

    @bot.tree.command(name="status", description="Show the current work session", guild=guild_scope)
    async def status(interaction: discord.Interaction):
        if not await ensure_owner(interaction):
            return
        await interaction.response.send_message("\n".join(status_lines(tracker)), ephemeral=True)

    @bot.tree.command(name="today", description="Reconcile with today's attendance record", guild=guild_scope)
    async def today(interaction: discord.Interaction):
        if not await ensure_owner(interaction):
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        await tracker.check_today_attendance()
        if tracker.error:
            await interaction.followup.send(f"❌ {tracker.error}", ephemeral=True)
            return
        await interaction.followup.send("\n".join(status_lines(tracker)), ephemeral=True)

    @bot.tree.command(name="clock-in", description="Clock in for today", guild=guild_scope)
    async def clock_in(interaction: discord.Interaction):
        if not await ensure_owner(interaction):
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        tracker.dismiss_notification()
        await tracker.clock_in()
        await interaction.followup.send(outcome_message(tracker, "Clock-in request finished."), ephemeral=True)

    @bot.tree.command(name="clock-out", description="Clock out for today", guild=guild_scope)
    async def clock_out(interaction: discord.Interaction):
        if not await ensure_owner(interaction):
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        tracker.dismiss_notification()
        await tracker.clock_out()
        await interaction.followup.send(outcome_message(tracker, "Clock-out request finished."), ephemeral=True)

    @bot.tree.command(name="break", description="Start a break", guild=guild_scope)
    @app_commands.describe(kind="Which break to start")
    @app_commands.choices(kind=BREAK_CHOICES)
    async def start_break(interaction: discord.Interaction, kind: app_commands.Choice[str]):
        if not await ensure_owner(interaction):
            return

        tracker.dismiss_notification()
        tracker.start_break(kind.value)
        if tracker.tracker_state is not TrackerState.ON_BREAK and not tracker.show_notification:
            await interaction.response.send_message("You need to be clocked in and working to start a break.", ephemeral=True)
            return
        await interaction.response.send_message(
            outcome_message(tracker, f"{kind.value} started. Time left: `{tracker.break_time}`"),
            ephemeral=True,
        )

    @bot.tree.command(name="end-break", description="End the current break", guild=guild_scope)
    async def end_break(interaction: discord.Interaction):
        if not await ensure_owner(interaction):
            return

        if tracker.active_break is None:
            await interaction.response.send_message("You are not on a break.", ephemeral=True)
            return
        tracker.end_break()
        await interaction.response.send_message(f"Break ended. Total break today: `{tracker.break_time}`", ephemeral=True)

    @bot.tree.command(name="dismiss", description="Dismiss the pending notification", guild=guild_scope)
    async def dismiss(interaction: discord.Interaction):
        if not await ensure_owner(interaction):
            return

        tracker.dismiss_notification()
        await interaction.response.send_message("Notification dismissed.", ephemeral=True)
