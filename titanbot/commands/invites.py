from __future__ import annotations

import logging
import time
from typing import Callable

import discord
from discord import Interaction, Member, app_commands

from titanbot.commands.helpers import display_name, lines_or, member_ids, require_manage_guild, target_user
from titanbot.config.settings import COLORS, INVITE_CACHE_TTL_SECONDS
from titanbot.core.cache import TTLCache
from titanbot.core.embeds import make_embed
from titanbot.core.errors import ValidationError
from titanbot.interactions import TitanCommandTree, responder_for
from titanbot.services.invites import find_used_invite, get_invite_stats, invite_leaderboard

logger = logging.getLogger(__name__)

MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}


class InviteTracker:
    """Per-guild snapshots of invite codes, refreshed when they expire or change."""

    def __init__(
        self,
        ttl: float = INVITE_CACHE_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cache: TTLCache[dict[str, discord.Invite]] = TTLCache(maxsize=1000, ttl=ttl, clock=clock)

    async def refresh(self, guild: discord.Guild) -> dict[str, discord.Invite]:
        try:
            invites = await guild.invites()
        except discord.HTTPException as exc:
            logger.debug("could not fetch invites for guild %s: %s", guild.id, exc)
            return {}
        snapshot = {invite.code: invite for invite in invites}
        self.cache.set(guild.id, snapshot)
        return snapshot

    async def snapshot(self, guild: discord.Guild) -> dict[str, discord.Invite]:
        cached = self.cache.get(guild.id)
        if cached is None:
            return await self.refresh(guild)
        return cached

    def note_created(self, invite: discord.Invite) -> None:
        if invite.guild is None:
            return
        cached = self.cache.get(invite.guild.id)
        if cached is not None:
            cached[invite.code] = invite

    def note_deleted(self, invite: discord.Invite) -> None:
        if invite.guild is None:
            return
        cached = self.cache.get(invite.guild.id)
        if cached is not None:
            cached.pop(invite.code, None)

    async def attribute_join(self, guild: discord.Guild) -> discord.Invite | None:
        """The invite a member just joined with, or None when it cannot be told."""
        before = self.cache.get(guild.id)
        after = await self.refresh(guild)
        if before is None:
            return None
        code = find_used_invite(
            {code: int(invite.uses or 0) for code, invite in before.items()},
            {code: int(invite.uses or 0) for code, invite in after.items()},
        )
        if code is None:
            return None
        return after.get(code) or before.get(code)


invite_tracker = InviteTracker()


def setup_invites(tree: TitanCommandTree) -> None:
    records = tree.records
    group = app_commands.Group(name="invites", description="Invite statistics.")

    @group.command(name="view", description="Show invite statistics.")
    @app_commands.describe(user="Whose stats to show (needs Manage Server for others)")
    async def view(interaction: Interaction, user: Member | None = None) -> None:
        target = target_user(interaction, user)
        if target.id != interaction.user.id:
            require_manage_guild(interaction)
        stats = await get_invite_stats(records, interaction.guild_id, target.id)
        fields = [
            ("Total", str(stats.total), True),
            ("Valid", str(stats.valid), True),
            ("Fake", str(stats.fake), True),
            ("Left", str(stats.left), True),
        ]
        if stats.invited_by is not None:
            fields.append(("Invited By", f"<@{stats.invited_by}>", True))
        embed = make_embed(f"Invites for {target.display_name}", colour=COLORS["primary"], fields=fields)
        await responder_for(interaction).reply(embed=embed, ephemeral=True)

    @group.command(name="leaderboard", description="Show the top inviters.")
    @app_commands.describe(limit="How many members to show")
    async def leaderboard(interaction: Interaction, limit: app_commands.Range[int, 1, 25] = 10) -> None:
        rows = await invite_leaderboard(records, interaction.guild_id, member_ids(interaction.guild), limit=int(limit))
        if not rows:
            raise ValidationError("empty invite leaderboard", user_message="Nobody has invited anyone yet.")
        lines = [
            f"{MEDALS.get(position, f'#{position}')} {display_name(interaction.guild, user_id)} - "
            f"**{stats.valid}** valid ({stats.total} total, {stats.left} left, {stats.fake} fake)"
            for position, (user_id, stats) in enumerate(rows, start=1)
        ]
        await responder_for(interaction).reply(
            embed=make_embed("Invite Leaderboard", "\n".join(lines), colour=COLORS["primary"])
        )

    @group.command(name="codes", description="List your active invite codes.")
    async def codes(interaction: Interaction) -> None:
        responder = responder_for(interaction)
        await responder.defer(ephemeral=True)
        snapshot = await invite_tracker.snapshot(interaction.guild)
        mine = sorted(
            (invite for invite in snapshot.values() if invite.inviter is not None and invite.inviter.id == interaction.user.id),
            key=lambda invite: -int(invite.uses or 0),
        )
        lines = [
            f"`{invite.code}` - {int(invite.uses or 0)} use(s)"
            + (f" / {invite.max_uses}" if invite.max_uses else "")
            + (f" in <#{invite.channel.id}>" if invite.channel is not None else "")
            for invite in mine[:25]
        ]
        await responder.reply(
            embed=make_embed("Your Invite Codes", lines_or(lines, "You have no active invites."), colour=COLORS["primary"])
        )

    tree.add_command(group)
