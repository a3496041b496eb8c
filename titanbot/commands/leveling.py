from __future__ import annotations

from typing import Any

import discord
from discord import Interaction, Member, app_commands

from titanbot.commands.helpers import display_name, member_ids, target_user
from titanbot.config.settings import COLORS, MAX_LEVEL
from titanbot.core.embeds import make_embed, success_embed
from titanbot.core.errors import ValidationError
from titanbot.interactions import PagerView, TitanCommandTree, responder_for
from titanbot.services.leveling import add_levels, get_rank, leaderboard, remove_levels, set_level

PAGE_SIZE = 10
MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}


def _progress_bar(current: int, needed: int, width: int = 12) -> str:
    if needed <= 0:
        return "█" * width
    filled = min(width, int(width * current / needed))
    return "█" * filled + "░" * (width - filled)


def _leaderboard_page(guild: discord.Guild | None, rows: list[dict[str, Any]], page: int) -> discord.Embed:
    pages = max(1, (len(rows) + PAGE_SIZE - 1) // PAGE_SIZE)
    start = page * PAGE_SIZE
    lines = []
    for row in rows[start:start + PAGE_SIZE]:
        position = row["rank"]
        prefix = MEDALS.get(position, f"#{position}")
        lines.append(
            f"{prefix} {display_name(guild, row['userId'])} - Level {int(row.get('level') or 0)} "
            f"({int(row.get('totalXp') or 0):,} XP)"
        )
    return make_embed(
        "Level Leaderboard",
        "\n".join(lines),
        colour=COLORS["primary"],
        footer=f"Page {page + 1}/{pages}",
    )


def setup_leveling(tree: TitanCommandTree) -> None:
    records = tree.records

    @tree.command(name="rank", description="Show your level and XP progress.")
    @app_commands.describe(user="Whose rank to show")
    async def rank(interaction: Interaction, user: Member | None = None) -> None:
        target = target_user(interaction, user)
        if target.bot:
            raise ValidationError("rank of bot", user_message="Bots don't earn XP.")
        record = await get_rank(records, interaction.guild_id, target.id)
        level = int(record.get("level") or 0)
        xp = int(record.get("xp") or 0)
        needed = int(record["xpNeeded"])
        progress = f"{xp:,} / {needed:,} XP" if level < MAX_LEVEL else "Max level reached"
        embed = make_embed(
            f"{target.display_name}'s Rank",
            colour=COLORS["primary"],
            fields=[
                ("Level", str(level), True),
                ("Total XP", f"{int(record.get('totalXp') or 0):,}", True),
                ("Progress", f"{_progress_bar(xp, needed)}\n{progress}", False),
            ],
        )
        await responder_for(interaction).reply(embed=embed)

    @tree.command(name="leaderboard", description="Show the most active members by XP.")
    async def leaderboard_cmd(interaction: Interaction) -> None:
        responder = responder_for(interaction)
        await responder.defer()
        rows = await leaderboard(records, interaction.guild_id, member_ids(interaction.guild))
        if not rows:
            raise ValidationError("empty level leaderboard", user_message="Nobody has earned any XP yet.")
        pages = max(1, (len(rows) + PAGE_SIZE - 1) // PAGE_SIZE)
        if pages == 1:
            await responder.reply(embed=_leaderboard_page(interaction.guild, rows, 0))
            return
        view = PagerView(
            interaction.user.id,
            pages,
            lambda page: _leaderboard_page(interaction.guild, rows, page),
        )
        await responder.reply(embed=_leaderboard_page(interaction.guild, rows, 0), view=view)
        await view.attach(responder, tree.router)

    @tree.command(name="leveladd", description="Add levels to a member.")
    @app_commands.default_permissions(manage_guild=True)
    @app_commands.checks.has_permissions(manage_guild=True)
    @app_commands.describe(user="Member", levels="Number of levels")
    async def leveladd(interaction: Interaction, user: Member, levels: app_commands.Range[int, 1, MAX_LEVEL]) -> None:
        change = await add_levels(records, interaction.guild_id, user.id, int(levels))
        await responder_for(interaction).reply(
            embed=success_embed("Levels Added", f"{user.mention}: level {change.old_level} → {change.new_level}")
        )

    @tree.command(name="levelremove", description="Remove levels from a member.")
    @app_commands.default_permissions(manage_guild=True)
    @app_commands.checks.has_permissions(manage_guild=True)
    @app_commands.describe(user="Member", levels="Number of levels")
    async def levelremove(interaction: Interaction, user: Member, levels: app_commands.Range[int, 1, MAX_LEVEL]) -> None:
        change = await remove_levels(records, interaction.guild_id, user.id, int(levels))
        await responder_for(interaction).reply(
            embed=success_embed("Levels Removed", f"{user.mention}: level {change.old_level} → {change.new_level}")
        )

    @tree.command(name="levelset", description="Set a member's level.")
    @app_commands.default_permissions(manage_guild=True)
    @app_commands.checks.has_permissions(manage_guild=True)
    @app_commands.describe(user="Member", level="New level")
    async def levelset(interaction: Interaction, user: Member, level: app_commands.Range[int, 0, MAX_LEVEL]) -> None:
        change = await set_level(records, interaction.guild_id, user.id, int(level))
        await responder_for(interaction).reply(
            embed=success_embed("Level Set", f"{user.mention}: level {change.old_level} → {change.new_level}")
        )
