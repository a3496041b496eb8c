from __future__ import annotations

from typing import Any

import discord
from discord import Interaction, Member, Role, TextChannel, app_commands

from titanbot.commands.helpers import lines_or
from titanbot.config.settings import COLORS
from titanbot.core.embeds import make_embed, success_embed
from titanbot.core.errors import ValidationError
from titanbot.interactions import TitanCommandTree, responder_for
from titanbot.services.guild_config import (
    PROTECTED_COMMANDS,
    get_guild_config,
    set_command_enabled,
    set_guild_config,
    toggle_log_ignore,
    update_leveling_config,
)

# config field -> (kind, label)
ID_SETTINGS = {
    "premiumRoleId": ("role", "Premium role"),
    "reportChannelId": ("channel", "Report channel"),
    "birthdayChannelId": ("channel", "Birthday channel"),
    "logChannelId": ("channel", "Log channel"),
    "autoRole": ("role", "Auto role"),
}


def _mention(value: Any, kind: str) -> str:
    if not value:
        return "Not set"
    return f"<@&{value}>" if kind == "role" else f"<#{value}>"


def setup_config(tree: TitanCommandTree) -> None:
    records = tree.records

    @tree.command(name="togglecommand", description="Enable or disable a command in this server.")
    @app_commands.default_permissions(manage_guild=True)
    @app_commands.checks.has_permissions(manage_guild=True)
    @app_commands.describe(command="Command name", enabled="Whether the command is enabled")
    async def togglecommand(interaction: Interaction, command: app_commands.Range[str, 1, 32], enabled: bool) -> None:
        name = str(command).strip().lstrip("/").lower()
        if tree.get_command(name) is None:
            raise ValidationError(f"unknown command {name!r}", user_message=f"There is no `/{name}` command.")
        if not enabled and name in PROTECTED_COMMANDS:
            raise ValidationError(f"/{name} is protected", user_message=f"`/{name}` cannot be disabled.")
        await set_command_enabled(records, interaction.guild_id, name, enabled)
        state = "enabled" if enabled else "disabled"
        await responder_for(interaction).reply(
            embed=success_embed("Command Updated", f"`/{name}` is now **{state}** here."),
            ephemeral=True,
        )

    group = app_commands.Group(
        name="config",
        description="Configure the bot for this server.",
        default_permissions=discord.Permissions(manage_guild=True),
    )

    async def save_id(interaction: Interaction, field_name: str, target: Role | TextChannel | None) -> None:
        kind, label = ID_SETTINGS[field_name]
        value = target.id if target is not None else None
        await set_guild_config(records, interaction.guild_id, {field_name: str(value) if value else None})
        text = f"{label} set to {_mention(value, kind)}." if value else f"{label} cleared."
        await responder_for(interaction).reply(embed=success_embed("Configuration Updated", text), ephemeral=True)

    @group.command(name="premiumrole", description="Set or clear the premium role.")
    @app_commands.checks.has_permissions(manage_guild=True)
    @app_commands.describe(role="Premium role, leave empty to clear")
    async def config_premiumrole(interaction: Interaction, role: Role | None = None) -> None:
        await save_id(interaction, "premiumRoleId", role)

    @group.command(name="autorole", description="Set or clear the role given to new members.")
    @app_commands.checks.has_permissions(manage_guild=True)
    @app_commands.describe(role="Auto role, leave empty to clear")
    async def config_autorole(interaction: Interaction, role: Role | None = None) -> None:
        await save_id(interaction, "autoRole", role)

    @group.command(name="reportchannel", description="Set or clear the report channel.")
    @app_commands.checks.has_permissions(manage_guild=True)
    @app_commands.describe(channel="Report channel, leave empty to clear")
    async def config_reportchannel(interaction: Interaction, channel: TextChannel | None = None) -> None:
        await save_id(interaction, "reportChannelId", channel)

    @group.command(name="birthdaychannel", description="Set or clear the birthday channel.")
    @app_commands.checks.has_permissions(manage_guild=True)
    @app_commands.describe(channel="Birthday channel, leave empty to clear")
    async def config_birthdaychannel(interaction: Interaction, channel: TextChannel | None = None) -> None:
        await save_id(interaction, "birthdayChannelId", channel)

    @group.command(name="logchannel", description="Set or clear the log channel.")
    @app_commands.checks.has_permissions(manage_guild=True)
    @app_commands.describe(channel="Log channel, leave empty to clear")
    async def config_logchannel(interaction: Interaction, channel: TextChannel | None = None) -> None:
        await save_id(interaction, "logChannelId", channel)

    @group.command(name="logignore", description="Toggle ignoring a user or channel in logs.")
    @app_commands.checks.has_permissions(manage_guild=True)
    @app_commands.describe(user="User to toggle", channel="Channel to toggle")
    async def config_logignore(
        interaction: Interaction,
        user: Member | None = None,
        channel: TextChannel | None = None,
    ) -> None:
        if (user is None) == (channel is None):
            raise ValidationError("logignore needs one target", user_message="Choose either a user or a channel.")
        if user is not None:
            ignored = await toggle_log_ignore(records, interaction.guild_id, kind="users", target_id=user.id)
            subject = user.mention
        else:
            ignored = await toggle_log_ignore(records, interaction.guild_id, kind="channels", target_id=channel.id)
            subject = channel.mention
        state = "now ignored" if ignored else "no longer ignored"
        await responder_for(interaction).reply(embed=success_embed("Log Ignore", f"{subject} is {state}."), ephemeral=True)

    @group.command(name="levelup", description="Configure leveling and level-up announcements.")
    @app_commands.checks.has_permissions(manage_guild=True)
    @app_commands.describe(
        enabled="Award XP for messages",
        announce="Announce level ups",
        channel="Announcement channel",
        message="Template using {user} and {level}",
    )
    async def config_levelup(
        interaction: Interaction,
        enabled: bool | None = None,
        announce: bool | None = None,
        channel: TextChannel | None = None,
        message: app_commands.Range[str, 1, 200] = None,
    ) -> None:
        changes: dict[str, Any] = {}
        if enabled is not None:
            changes["enabled"] = enabled
        if announce is not None:
            changes["announceLevelUp"] = announce
        if channel is not None:
            changes["levelUpChannelId"] = str(channel.id)
        if message is not None:
            changes["levelUpMessage"] = str(message).strip()
        if not changes:
            raise ValidationError("levelup without changes", user_message="Choose at least one setting to change.")
        await update_leveling_config(records, interaction.guild_id, **changes)
        await responder_for(interaction).reply(
            embed=success_embed("Leveling Updated", "Leveling settings saved."),
            ephemeral=True,
        )

    @group.command(name="show", description="Show the current configuration.")
    @app_commands.checks.has_permissions(manage_guild=True)
    async def config_show(interaction: Interaction) -> None:
        current = await get_guild_config(records, interaction.guild_id)
        leveling = current.get("leveling") or {}
        ignore = current.get("logIgnore") or {}
        disabled = sorted(name for name, on in (current.get("enabledCommands") or {}).items() if on is False)
        fields = [
            (label, _mention(current.get(field_name), kind), True)
            for field_name, (kind, label) in ID_SETTINGS.items()
        ]
        fields.extend(
            [
                (
                    "Leveling",
                    f"XP: {'on' if leveling.get('enabled', True) else 'off'}\n"
                    f"Announce: {'on' if leveling.get('announceLevelUp', True) else 'off'}\n"
                    f"Channel: {_mention(leveling.get('levelUpChannelId'), 'channel')}",
                    True,
                ),
                (
                    "Log Ignore",
                    f"{len(ignore.get('users') or [])} user(s), {len(ignore.get('channels') or [])} channel(s)",
                    True,
                ),
                ("Disabled Commands", lines_or((f"`/{name}`" for name in disabled), "None"), False),
            ]
        )
        await responder_for(interaction).reply(
            embed=make_embed("Server Configuration", colour=COLORS["primary"], fields=fields),
            ephemeral=True,
        )

    tree.add_command(group)
