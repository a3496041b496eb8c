from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable

import discord
from discord import app_commands

from titanbot.core.errors import BotError, ConfigurationError, PermissionDeniedError, ValidationError
from titanbot.interactions.failures import deliver_failure, label_for, log_failure
from titanbot.interactions.responder import responder_for
from titanbot.services.guild_config import get_guild_config, is_command_enabled
from titanbot.services.records import ScopedRecordAccessor

if TYPE_CHECKING:
    from titanbot.interactions.router import InteractionRouter

logger = logging.getLogger(__name__)


class CommandRejected(app_commands.CheckFailure):
    """A check failure carrying the BotError that explains it to the user."""

    def __init__(self, error: BotError) -> None:
        super().__init__(error.message)
        self.error = error


def _permission_label(name: str) -> str:
    return name.replace("_", " ").replace("guild", "server").title()


def unwrap_error(error: BaseException) -> BaseException:
    """Turn what the tree hands ``on_error`` into the error to log and describe."""
    if isinstance(error, app_commands.CommandInvokeError):
        return error.original
    if isinstance(error, CommandRejected):
        return error.error
    if isinstance(error, app_commands.MissingPermissions):
        needed = ", ".join(_permission_label(name) for name in error.missing_permissions)
        return PermissionDeniedError(str(error), user_message=f"You need the **{needed}** permission to use this.")
    if isinstance(error, app_commands.BotMissingPermissions):
        needed = ", ".join(_permission_label(name) for name in error.missing_permissions)
        return ConfigurationError(str(error), user_message=f"I need the **{needed}** permission to do that.")
    if isinstance(error, app_commands.CommandNotFound):
        return ConfigurationError(str(error), user_message="This command is not available right now.")
    if isinstance(error, app_commands.TransformerError):
        return ValidationError(str(error), user_message="One of the options you gave could not be understood.")
    if isinstance(error, app_commands.CheckFailure):
        return PermissionDeniedError(str(error))
    return error


def owner_only():
    """Check for commands only the configured bot owners may run."""

    def predicate(interaction: discord.Interaction) -> bool:
        tree = interaction.client.tree
        if interaction.user.id not in tree.owner_ids:
            raise CommandRejected(
                PermissionDeniedError(
                    f"user {interaction.user.id} is not a bot owner",
                    user_message="Only the bot owner can use this command.",
                )
            )
        return True

    return app_commands.check(predicate)


class TitanCommandTree(app_commands.CommandTree):
    def __init__(
        self,
        client: discord.Client,
        *,
        records: ScopedRecordAccessor,
        router: "InteractionRouter",
        owner_ids: Iterable[int] = (),
    ) -> None:
        super().__init__(client)
        self.records = records
        self.router = router
        self.owner_ids = {int(uid) for uid in owner_ids}

    @property
    def command_names(self) -> list[str]:
        return sorted(command.name for command in self.get_commands())

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        responder_for(interaction)
        name = str((interaction.data or {}).get("name", ""))
        if interaction.guild_id is None:
            raise CommandRejected(
                ConfigurationError(
                    f"/{name} used outside a guild",
                    user_message="This command can only be used in a server.",
                )
            )
        config = await get_guild_config(self.records, interaction.guild_id)
        interaction.extras["guild_config"] = config
        if not is_command_enabled(config, name):
            raise CommandRejected(
                ConfigurationError(
                    f"/{name} is disabled in guild {interaction.guild_id}",
                    user_message="This command is disabled here.",
                )
            )
        return True

    async def on_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError) -> None:
        label = label_for(interaction)
        original = unwrap_error(error)
        log_failure(original, label)
        await deliver_failure(responder_for(interaction), original, label)

    async def after_command(self, interaction: discord.Interaction, command: Any) -> None:
        """Completion hook: a handler that returned without answering still gets a reply."""
        responder = responder_for(interaction)
        if responder.terminal_sent:
            return
        label = label_for(interaction)
        logger.error("%s finished without a terminal response", label)
        await deliver_failure(responder, BotError(f"{label} sent no response"), label)

    async def sync_guild(self, guild: discord.abc.Snowflake) -> None:
        self.copy_global_to(guild=guild)
        await self.sync(guild=guild)
