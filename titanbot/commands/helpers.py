from __future__ import annotations

import logging
from typing import Any, Iterable

import discord

from titanbot.core.errors import ConfigurationError, PermissionDeniedError
from titanbot.services.economy import EconomySettings
from titanbot.services.guild_config import is_log_ignored
from titanbot.services.records import ScopedRecordAccessor

logger = logging.getLogger(__name__)


def economy_settings(records: ScopedRecordAccessor) -> EconomySettings:
    return EconomySettings.from_store(records.store)


def guild_config_of(interaction: discord.Interaction) -> dict[str, Any]:
    """The guild config the command tree loaded for this interaction."""
    return interaction.extras.get("guild_config") or {}


def role_ids(user: Any) -> list[int]:
    return [int(role.id) for role in getattr(user, "roles", None) or []]


def has_premium(interaction: discord.Interaction, guild_config: dict[str, Any] | None = None) -> bool:
    config = guild_config if guild_config is not None else guild_config_of(interaction)
    premium_role_id = config.get("premiumRoleId")
    if not premium_role_id:
        return False
    return int(premium_role_id) in role_ids(interaction.user)


def can_manage_guild(interaction: discord.Interaction) -> bool:
    return bool(getattr(interaction.permissions, "manage_guild", False))


def require_manage_guild(interaction: discord.Interaction) -> None:
    if not can_manage_guild(interaction):
        raise PermissionDeniedError(
            f"user {interaction.user.id} lacks manage_guild",
            user_message="You need the **Manage Server** permission to do that.",
        )


def target_user(interaction: discord.Interaction, chosen: discord.abc.User | None) -> discord.abc.User:
    """The chosen user option, or the invoking user when it was omitted."""
    return chosen if chosen is not None else interaction.user


def member_ids(guild: discord.Guild | None) -> list[int]:
    if guild is None:
        return []
    return [int(member.id) for member in guild.members if not member.bot]


def display_name(guild: discord.Guild | None, user_id: int) -> str:
    member = guild.get_member(int(user_id)) if guild is not None else None
    if member is None:
        return f"User {user_id}"
    return member.display_name


def text_channel(guild: discord.Guild | None, channel_id: Any) -> discord.abc.Messageable | None:
    if guild is None or not channel_id:
        return None
    channel = guild.get_channel(int(channel_id))
    if isinstance(channel, (discord.TextChannel, discord.Thread)):
        return channel
    return None


def require_text_channel(guild: discord.Guild | None, channel_id: Any, *, setting: str) -> discord.abc.Messageable:
    channel = text_channel(guild, channel_id)
    if channel is None:
        raise ConfigurationError(
            f"{setting} channel {channel_id!r} unusable",
            user_message=f"The {setting} channel is not set up. Ask an admin to configure it with `/config`.",
        )
    return channel


def lines_or(lines: Iterable[str], empty: str) -> str:
    text = "\n".join(lines)
    return text or empty


async def send_to_log_channel(
    guild: discord.Guild,
    config: dict[str, Any],
    embed: discord.Embed,
    *,
    user_id: int | None = None,
    channel_id: int | None = None,
) -> bool:
    """Post ``embed`` to the configured log channel unless the user or channel is ignored."""
    channel = text_channel(guild, config.get("logChannelId"))
    if channel is None or (channel_id is not None and channel.id == int(channel_id)):
        return False
    if is_log_ignored(config, user_id=user_id, channel_id=channel_id):
        return False
    try:
        await channel.send(embed=embed)
    except discord.HTTPException as exc:
        logger.warning("log channel post failed in guild %s: %s", guild.id, exc)
        return False
    return True
