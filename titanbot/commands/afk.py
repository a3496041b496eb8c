from __future__ import annotations

import logging

import discord
from discord import Interaction, app_commands

from titanbot.config.settings import AFK_NICK_PREFIX
from titanbot.core.embeds import success_embed
from titanbot.core.errors import ValidationError
from titanbot.interactions import TitanCommandTree, responder_for
from titanbot.services.afk import clear_afk, decorate_nickname, set_afk, strip_nickname
from titanbot.services.records import ScopedRecordAccessor

logger = logging.getLogger(__name__)


async def rename_member(member: discord.Member | None, nick: str | None) -> bool:
    """Best-effort nickname change; missing permissions are only logged."""
    if not isinstance(member, discord.Member):
        return False
    try:
        await member.edit(nick=nick, reason="AFK status")
    except discord.HTTPException as exc:
        logger.debug("could not change nickname of %s: %s", member.id, exc)
        return False
    return True


async def clear_afk_for(member: discord.Member, records: ScopedRecordAccessor) -> dict | None:
    """Remove the member's AFK record and nickname prefix; ``None`` when not AFK."""
    try:
        record = await clear_afk(records, member.guild.id, member.id)
    except ValidationError:
        return None
    current = member.nick
    # Only undo our own prefix; a nickname changed while away is left alone.
    if current and current.startswith(AFK_NICK_PREFIX):
        restored = record["originalNick"] if "originalNick" in record else strip_nickname(current)
        await rename_member(member, restored)
    return record


def setup_afk(tree: TitanCommandTree) -> None:
    records = tree.records

    @tree.command(name="afk", description="Set yourself as AFK until your next message.")
    @app_commands.describe(reason="Why you are away")
    async def afk(interaction: Interaction, reason: str | None = None) -> None:
        member = interaction.user
        original = member.nick if isinstance(member, discord.Member) else None
        record = await set_afk(records, interaction.guild_id, member.id, reason, original_nick=original)
        if isinstance(member, discord.Member):
            await rename_member(member, decorate_nickname(member.display_name))
        await responder_for(interaction).reply(
            embed=success_embed("AFK", f"{member.mention} is now AFK: {record['reason']}")
        )
