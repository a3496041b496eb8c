from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

import discord
from discord import Interaction, Member, User, app_commands

from titanbot.commands.helpers import guild_config_of, send_to_log_channel
from titanbot.config.settings import COLORS
from titanbot.core.embeds import make_embed, success_embed
from titanbot.core.errors import ValidationError
from titanbot.core.timefmt import time_ago
from titanbot.interactions import PagerView, TitanCommandTree, responder_for
from titanbot.services.moderation import (
    BANNED,
    CASE_ACTIONS,
    KICKED,
    MAX_WARN_REASON_LENGTH,
    TIMED_OUT,
    TIMEOUT_REMOVED,
    WARNED,
    add_warning,
    clear_warnings,
    ensure_can_moderate,
    list_cases,
    list_warnings,
    record_case,
)

logger = logging.getLogger(__name__)

CASES_PER_PAGE = 5
TIMEOUT_CHOICES = [
    app_commands.Choice(name="5 minutes", value=5),
    app_commands.Choice(name="10 minutes", value=10),
    app_commands.Choice(name="30 minutes", value=30),
    app_commands.Choice(name="1 hour", value=60),
    app_commands.Choice(name="6 hours", value=360),
    app_commands.Choice(name="1 day", value=1440),
    app_commands.Choice(name="1 week", value=10080),
]
CASE_FILTER_CHOICES = [app_commands.Choice(name=action, value=action) for action in CASE_ACTIONS]


def _duration_label(minutes: int | None) -> str:
    if not minutes:
        return "permanent"
    if minutes % 1440 == 0:
        return f"{minutes // 1440} day(s)"
    if minutes % 60 == 0:
        return f"{minutes // 60} hour(s)"
    return f"{minutes} minute(s)"


def _case_embed(case: dict[str, Any]) -> discord.Embed:
    fields = [
        ("User", f"<@{case['userId']}> ({case['userId']})", True),
        ("Moderator", f"<@{case['moderatorId']}>", True),
        ("Reason", str(case.get("reason")), False),
    ]
    if case.get("duration"):
        fields.insert(2, ("Duration", _duration_label(int(case["duration"])), True))
    return make_embed(
        f"{case['action']} | Case #{case['caseId']}",
        colour=COLORS["warning"],
        fields=fields,
    )


def _cases_page(cases: list[dict[str, Any]], page: int) -> discord.Embed:
    pages = max(1, (len(cases) + CASES_PER_PAGE - 1) // CASES_PER_PAGE)
    fields = [
        (
            f"#{case['caseId']} {case['action']} - {time_ago(int(case.get('createdAt') or 0))}",
            f"User: <@{case['userId']}>\nModerator: <@{case['moderatorId']}>\nReason: {case.get('reason')}",
            False,
        )
        for case in cases[page * CASES_PER_PAGE:(page + 1) * CASES_PER_PAGE]
    ]
    return make_embed(
        "Moderation Cases",
        colour=COLORS["warning"],
        fields=fields,
        footer=f"Page {page + 1}/{pages} · {len(cases)} case(s)",
    )


async def _notify(user: discord.abc.User, guild: discord.Guild, action: str, reason: str | None) -> None:
    try:
        await user.send(
            embed=make_embed(
                action,
                f"Server: **{guild.name}**\nReason: {reason or 'No reason provided'}",
                colour=COLORS["warning"],
            )
        )
    except discord.HTTPException:
        logger.debug("could not DM %s about %s", user.id, action)


async def _log_case(interaction: Interaction, case: dict[str, Any]) -> None:
    await send_to_log_channel(
        interaction.guild,
        guild_config_of(interaction),
        _case_embed(case),
        user_id=int(case["userId"]),
    )


def _check_member(interaction: Interaction, target: Member, action: str) -> None:
    guild = interaction.guild
    ensure_can_moderate(interaction.user, target, guild.me, owner_id=guild.owner_id, action=action)


def setup_moderation(tree: TitanCommandTree) -> None:
    records = tree.records

    @tree.command(name="warn", description="Warn a member.")
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.checks.has_permissions(moderate_members=True)
    @app_commands.describe(user="Member to warn", reason="Reason")
    async def warn(
        interaction: Interaction,
        user: Member,
        reason: app_commands.Range[str, 1, MAX_WARN_REASON_LENGTH] = None,
    ) -> None:
        if user.bot:
            raise ValidationError("warn bot", user_message="You cannot warn a bot.")
        if user.id == interaction.user.id:
            raise ValidationError("warn self", user_message="You cannot warn yourself.")
        warning, count = await add_warning(records, interaction.guild_id, user.id, interaction.user.id, reason)
        case = await record_case(
            records,
            interaction.guild_id,
            action=WARNED,
            target_id=user.id,
            moderator_id=interaction.user.id,
            reason=warning["reason"],
        )
        await _notify(user, interaction.guild, "You were warned", warning["reason"])
        await _log_case(interaction, case)
        await responder_for(interaction).reply(
            embed=success_embed(
                "Member Warned",
                f"{user.mention} was warned (warning #{warning['id']}, {count} total).\nReason: {warning['reason']}",
            )
        )

    @tree.command(name="warnings", description="List a member's warnings.")
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.checks.has_permissions(moderate_members=True)
    @app_commands.describe(user="Member")
    async def warnings(interaction: Interaction, user: Member) -> None:
        responder = responder_for(interaction)
        entries = await list_warnings(records, interaction.guild_id, user.id)
        if not entries:
            await responder.reply(embed=make_embed("Warnings", f"{user.mention} has no warnings."), ephemeral=True)
            return
        fields = [
            (
                f"#{entry['id']} - {time_ago(int(entry.get('timestamp') or 0))}",
                f"{entry.get('reason')}\nBy <@{entry.get('moderatorId')}>",
                False,
            )
            for entry in entries[-25:]
        ]
        await responder.reply(
            embed=make_embed(
                f"Warnings for {user.display_name}",
                colour=COLORS["warning"],
                fields=fields,
                footer=f"{len(entries)} warning(s)",
            ),
            ephemeral=True,
        )

    @tree.command(name="clearwarnings", description="Remove all of a member's warnings.")
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.checks.has_permissions(moderate_members=True)
    @app_commands.describe(user="Member")
    async def clearwarnings(interaction: Interaction, user: Member) -> None:
        removed = await clear_warnings(records, interaction.guild_id, user.id)
        if not removed:
            raise ValidationError("no warnings to clear", user_message=f"{user.display_name} has no warnings.")
        await responder_for(interaction).reply(
            embed=success_embed("Warnings Cleared", f"Removed {removed} warning(s) from {user.mention}.")
        )

    @tree.command(name="ban", description="Ban a user from the server.")
    @app_commands.default_permissions(ban_members=True)
    @app_commands.checks.has_permissions(ban_members=True)
    @app_commands.checks.bot_has_permissions(ban_members=True)
    @app_commands.describe(
        user="User to ban",
        reason="Reason",
        delete_days="Days of their messages to delete",
    )
    async def ban(
        interaction: Interaction,
        user: User,
        reason: app_commands.Range[str, 1, MAX_WARN_REASON_LENGTH] = None,
        delete_days: app_commands.Range[int, 0, 7] = 0,
    ) -> None:
        guild = interaction.guild
        member = guild.get_member(user.id)
        if member is not None:
            _check_member(interaction, member, "ban")
            await _notify(member, guild, "You were banned", reason)
        elif user.id == interaction.user.id:
            raise ValidationError("ban self", user_message="You cannot ban yourself.")
        await guild.ban(
            user,
            reason=f"{reason or 'No reason provided'} (by {interaction.user})",
            delete_message_seconds=int(delete_days) * 86400,
        )
        case = await record_case(
            records,
            guild.id,
            action=BANNED,
            target_id=user.id,
            moderator_id=interaction.user.id,
            reason=reason,
        )
        await _log_case(interaction, case)
        await responder_for(interaction).reply(
            embed=success_embed("Member Banned", f"**{user}** was banned. Case #{case['caseId']}.")
        )

    @tree.command(name="kick", description="Kick a member from the server.")
    @app_commands.default_permissions(kick_members=True)
    @app_commands.checks.has_permissions(kick_members=True)
    @app_commands.checks.bot_has_permissions(kick_members=True)
    @app_commands.describe(user="Member to kick", reason="Reason")
    async def kick(
        interaction: Interaction,
        user: Member,
        reason: app_commands.Range[str, 1, MAX_WARN_REASON_LENGTH] = None,
    ) -> None:
        _check_member(interaction, user, "kick")
        await _notify(user, interaction.guild, "You were kicked", reason)
        await user.kick(reason=f"{reason or 'No reason provided'} (by {interaction.user})")
        case = await record_case(
            records,
            interaction.guild_id,
            action=KICKED,
            target_id=user.id,
            moderator_id=interaction.user.id,
            reason=reason,
        )
        await _log_case(interaction, case)
        await responder_for(interaction).reply(
            embed=success_embed("Member Kicked", f"**{user}** was kicked. Case #{case['caseId']}.")
        )

    @tree.command(name="timeout", description="Time a member out.")
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.checks.has_permissions(moderate_members=True)
    @app_commands.checks.bot_has_permissions(moderate_members=True)
    @app_commands.describe(user="Member to time out", duration="How long", reason="Reason")
    @app_commands.choices(duration=TIMEOUT_CHOICES)
    async def timeout(
        interaction: Interaction,
        user: Member,
        duration: app_commands.Choice[int],
        reason: app_commands.Range[str, 1, MAX_WARN_REASON_LENGTH] = None,
    ) -> None:
        _check_member(interaction, user, "time out")
        minutes = int(duration.value)
        await user.timeout(timedelta(minutes=minutes), reason=f"{reason or 'No reason provided'} (by {interaction.user})")
        case = await record_case(
            records,
            interaction.guild_id,
            action=TIMED_OUT,
            target_id=user.id,
            moderator_id=interaction.user.id,
            reason=reason,
            duration_minutes=minutes,
        )
        await _notify(user, interaction.guild, f"You were timed out for {_duration_label(minutes)}", reason)
        await _log_case(interaction, case)
        await responder_for(interaction).reply(
            embed=success_embed(
                "Member Timed Out",
                f"{user.mention} was timed out for {_duration_label(minutes)}. Case #{case['caseId']}.",
            )
        )

    @tree.command(name="untimeout", description="Remove a member's timeout.")
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.checks.has_permissions(moderate_members=True)
    @app_commands.checks.bot_has_permissions(moderate_members=True)
    @app_commands.describe(user="Member", reason="Reason")
    async def untimeout(
        interaction: Interaction,
        user: Member,
        reason: app_commands.Range[str, 1, MAX_WARN_REASON_LENGTH] = None,
    ) -> None:
        if not user.is_timed_out():
            raise ValidationError("not timed out", user_message=f"{user.display_name} is not timed out.")
        await user.timeout(None, reason=f"{reason or 'No reason provided'} (by {interaction.user})")
        case = await record_case(
            records,
            interaction.guild_id,
            action=TIMEOUT_REMOVED,
            target_id=user.id,
            moderator_id=interaction.user.id,
            reason=reason,
        )
        await _log_case(interaction, case)
        await responder_for(interaction).reply(
            embed=success_embed("Timeout Removed", f"{user.mention} can talk again. Case #{case['caseId']}.")
        )

    @tree.command(name="purge", description="Bulk delete recent messages in this channel.")
    @app_commands.default_permissions(manage_messages=True)
    @app_commands.checks.has_permissions(manage_messages=True)
    @app_commands.checks.bot_has_permissions(manage_messages=True, read_message_history=True)
    @app_commands.describe(amount="How many messages (1-100)")
    async def purge(interaction: Interaction, amount: app_commands.Range[int, 1, 100]) -> None:
        channel = interaction.channel
        if not isinstance(channel, (discord.TextChannel, discord.Thread)):
            raise ValidationError("purge outside text channel", user_message="I can only purge text channels.")
        responder = responder_for(interaction)
        await responder.defer(ephemeral=True)
        deleted = await channel.purge(limit=int(amount))
        logger.info("purged %d message(s) in channel %s by %s", len(deleted), channel.id, interaction.user.id)
        await send_to_log_channel(
            interaction.guild,
            guild_config_of(interaction),
            make_embed(
                "Messages Purged",
                f"{interaction.user.mention} deleted **{len(deleted)}** message(s) in {channel.mention}.",
                colour=COLORS["warning"],
            ),
            user_id=interaction.user.id,
            channel_id=channel.id,
        )
        await responder.reply(embed=success_embed("Purged", f"Deleted **{len(deleted)}** message(s)."))

    @tree.command(name="cases", description="Browse the moderation case log.")
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.checks.has_permissions(moderate_members=True)
    @app_commands.describe(
        action="Only this kind of case",
        user="Only cases against this user",
        moderator="Only cases by this moderator",
        limit="How many cases to load",
    )
    @app_commands.choices(action=CASE_FILTER_CHOICES)
    async def cases(
        interaction: Interaction,
        action: app_commands.Choice[str] = None,
        user: User = None,
        moderator: User = None,
        limit: app_commands.Range[int, 1, 50] = 10,
    ) -> None:
        found = await list_cases(
            records,
            interaction.guild_id,
            action=action.value if action is not None else None,
            user_id=user.id if user is not None else None,
            moderator_id=moderator.id if moderator is not None else None,
            limit=int(limit),
        )
        responder = responder_for(interaction)
        if not found:
            await responder.reply(embed=make_embed("Moderation Cases", "No cases match."), ephemeral=True)
            return
        pages = (len(found) + CASES_PER_PAGE - 1) // CASES_PER_PAGE
        if pages == 1:
            await responder.reply(embed=_cases_page(found, 0), ephemeral=True)
            return
        view = PagerView(interaction.user.id, pages, lambda page: _cases_page(found, page))
        await responder.reply(embed=_cases_page(found, 0), view=view, ephemeral=True)
        await view.attach(responder, tree.router)
