from __future__ import annotations

import calendar

from discord import Interaction, Member, app_commands

from titanbot.commands.helpers import display_name, lines_or, target_user
from titanbot.config.settings import COLORS
from titanbot.core.embeds import make_embed, success_embed
from titanbot.core.errors import ValidationError
from titanbot.interactions import TitanCommandTree, responder_for
from titanbot.services.birthdays import (
    get_birthday,
    list_birthdays,
    remove_birthday,
    set_birthday,
    upcoming_birthdays,
)

MONTH_CHOICES = [app_commands.Choice(name=calendar.month_name[month], value=month) for month in range(1, 13)]


def _when(days_until: int) -> str:
    if days_until == 0:
        return "today 🎉"
    if days_until == 1:
        return "tomorrow"
    return f"in {days_until} days"


def setup_birthday(tree: TitanCommandTree) -> None:
    records = tree.records
    group = app_commands.Group(name="birthday", description="Manage birthdays.")

    @group.command(name="set", description="Set your birthday.")
    @app_commands.describe(month="Birth month", day="Day of the month")
    @app_commands.choices(month=MONTH_CHOICES)
    async def birthday_set(
        interaction: Interaction,
        month: app_commands.Choice[int],
        day: app_commands.Range[int, 1, 31],
    ) -> None:
        entry = await set_birthday(records, interaction.guild_id, interaction.user.id, month.value, day)
        description = f"Your birthday is set to **{entry.label}**."
        if entry.month == 2 and entry.day == 29:
            description += "\nIn non-leap years it will be celebrated on February 28."
        await responder_for(interaction).reply(embed=success_embed("Birthday Saved", description), ephemeral=True)

    @group.command(name="remove", description="Remove your birthday.")
    async def birthday_remove(interaction: Interaction) -> None:
        if not await remove_birthday(records, interaction.guild_id, interaction.user.id):
            raise ValidationError("no birthday to remove", user_message="You haven't set a birthday.")
        await responder_for(interaction).reply(
            embed=success_embed("Birthday Removed", "Your birthday was removed."),
            ephemeral=True,
        )

    @group.command(name="info", description="Show someone's birthday.")
    @app_commands.describe(user="Whose birthday")
    async def birthday_info(interaction: Interaction, user: Member | None = None) -> None:
        target = target_user(interaction, user)
        entry = await get_birthday(records, interaction.guild_id, target.id)
        if entry is None:
            raise ValidationError(
                f"no birthday for {target.id}",
                user_message=f"{target.display_name} hasn't set a birthday.",
            )
        await responder_for(interaction).reply(
            embed=make_embed(
                "Birthday",
                f"{target.mention}'s birthday is **{entry.label}**.",
                colour=COLORS["birthday"],
            )
        )

    @group.command(name="list", description="List every birthday in this server.")
    async def birthday_list(interaction: Interaction) -> None:
        entries = await list_birthdays(records, interaction.guild_id)
        lines = [f"**{entry.label}** - {display_name(interaction.guild, entry.user_id)}" for entry in entries]
        await responder_for(interaction).reply(
            embed=make_embed(
                "Server Birthdays",
                lines_or(lines[:50], "No birthdays have been set yet."),
                colour=COLORS["birthday"],
                footer=f"{len(entries)} birthday(s)" if entries else None,
            )
        )

    @group.command(name="next", description="Show the next upcoming birthdays.")
    async def birthday_next(interaction: Interaction) -> None:
        upcoming = await upcoming_birthdays(records, interaction.guild_id, limit=5)
        lines = [
            f"**{item.birthday.label}** - {display_name(interaction.guild, item.birthday.user_id)} ({_when(item.days_until)})"
            for item in upcoming
        ]
        await responder_for(interaction).reply(
            embed=make_embed(
                "Upcoming Birthdays",
                lines_or(lines, "No birthdays have been set yet."),
                colour=COLORS["birthday"],
            )
        )

    tree.add_command(group)
