from __future__ import annotations

import logging

from discord import Interaction, app_commands

from titanbot.config.runtime import APP_CONFIG_SPECS, get_all_app_configs, set_app_config
from titanbot.config.settings import COLORS
from titanbot.core.embeds import make_embed, success_embed
from titanbot.core.errors import ValidationError
from titanbot.interactions import TitanCommandTree, owner_only, responder_for

logger = logging.getLogger(__name__)

SETTING_CHOICES = [app_commands.Choice(name=name, value=name) for name in list(APP_CONFIG_SPECS)[:25]]


def setup_botconfig(tree: TitanCommandTree) -> None:
    store = tree.records.store
    group = app_commands.Group(name="botconfig", description="View or change global bot settings.")

    @group.command(name="show", description="Show every runtime setting.")
    @owner_only()
    async def show(interaction: Interaction) -> None:
        lines = []
        for row in get_all_app_configs(store):
            marker = "" if row["value"] == row["default"] else " *(changed)*"
            lines.append(f"`{row['name']}` = `{row['value']}`{marker}\n{row['description']}")
        await responder_for(interaction).reply(
            embed=make_embed("Bot Settings", "\n".join(lines), colour=COLORS["info"]),
            ephemeral=True,
        )

    @group.command(name="set", description="Change a runtime setting.")
    @owner_only()
    @app_commands.describe(name="Setting name", value="New value")
    @app_commands.choices(name=SETTING_CHOICES)
    async def set_cmd(
        interaction: Interaction,
        name: app_commands.Choice[str],
        value: app_commands.Range[str, 1, 100],
    ) -> None:
        try:
            stored = set_app_config(name.value, value, store)
        except (KeyError, ValueError) as exc:
            raise ValidationError(str(exc), user_message=f"Invalid value for `{name.value}`.") from exc
        logger.info("runtime config %s set to %r by %s", name.value, stored, interaction.user.id)
        await responder_for(interaction).reply(
            embed=success_embed("Setting Updated", f"`{name.value}` = `{stored}`"), ephemeral=True
        )

    tree.add_command(group)
