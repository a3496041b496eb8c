from __future__ import annotations

import logging
from typing import Any

import discord
from discord import Interaction, Role, TextChannel, app_commands

from titanbot.commands.helpers import can_manage_guild, lines_or, role_ids, text_channel
from titanbot.config.settings import COLORS
from titanbot.core.embeds import make_embed, success_embed
from titanbot.core.errors import ConfigurationError, ValidationError
from titanbot.core.timefmt import time_ago
from titanbot.interactions import ComponentContext, TitanCommandTree, responder_for
from titanbot.interactions.components import TextField, build_modal, build_view, button
from titanbot.services.applications import (
    MAX_ANSWER_LENGTH,
    MAX_REVIEW_REASON_LENGTH,
    MIN_ANSWER_LENGTH,
    STATUSES,
    add_role,
    ensure_manager,
    get_application,
    get_roles,
    get_settings,
    list_applications,
    remove_role,
    review_application,
    set_log_message,
    submit_application,
    update_settings,
)
from titanbot.services.records import ScopedRecordAccessor

logger = logging.getLogger(__name__)

STATUS_COLOURS = {
    "pending": COLORS["warning"],
    "approved": COLORS["success"],
    "denied": COLORS["error"],
}


def application_embed(application: dict[str, Any]) -> discord.Embed:
    status = str(application.get("status") or "pending")
    fields = [
        (str(entry.get("question"))[:256], str(entry.get("answer"))[:1024], False)
        for entry in application.get("answers") or []
    ]
    fields.append(("Status", status.title(), True))
    if application.get("reviewer"):
        fields.append(("Reviewed by", f"<@{application['reviewer']}>", True))
        fields.append(("Reason", str(application.get("reviewMessage") or "-")[:1024], False))
    return make_embed(
        f"Application for {application.get('roleName') or 'role'}",
        f"From <@{application.get('userId')}> ({application.get('username') or 'unknown'})",
        colour=STATUS_COLOURS.get(status, COLORS["primary"]),
        fields=fields,
        footer=f"ID: {application.get('id')}",
    )


def review_buttons(application_id: str) -> discord.ui.View:
    return build_view(
        button(f"app_approve_{application_id}", "Approve", style=discord.ButtonStyle.success),
        button(f"app_deny_{application_id}", "Deny", style=discord.ButtonStyle.danger),
    )


async def _require_manager(records: ScopedRecordAccessor, interaction: discord.Interaction) -> None:
    settings = await get_settings(records, interaction.guild_id)
    ensure_manager(settings, manage_guild=can_manage_guild(interaction), role_ids=role_ids(interaction.user))


async def _post_to_log(records: ScopedRecordAccessor, guild: discord.Guild | None, application: dict[str, Any]) -> None:
    settings = await get_settings(records, int(application["guildId"]))
    channel_obj = text_channel(guild, settings.get("logChannelId"))
    if channel_obj is None:
        logger.warning("application %s has no usable log channel in guild %s", application["id"], application["guildId"])
        return
    try:
        message = await channel_obj.send(embed=application_embed(application), view=review_buttons(application["id"]))
    except discord.HTTPException as exc:
        logger.warning("could not post application %s to log channel: %s", application["id"], exc)
        return
    await set_log_message(records, int(application["guildId"]), application["id"], message.id)


async def _apply_outcome(guild: discord.Guild | None, application: dict[str, Any]) -> list[str]:
    notes: list[str] = []
    member = guild.get_member(int(application["userId"])) if guild is not None else None
    if member is None:
        notes.append("The applicant is no longer in the server.")
        return notes
    if application["status"] == "approved":
        granted = guild.get_role(int(application["roleId"]))
        if granted is None:
            notes.append("The role no longer exists, so it was not granted.")
        else:
            try:
                await member.add_roles(granted, reason=f"Application {application['id']} approved")
            except discord.HTTPException as exc:
                logger.warning("could not grant role %s to %s: %s", granted.id, member.id, exc)
                notes.append("I couldn't assign the role, please check my permissions.")
    try:
        await member.send(
            embed=make_embed(
                f"Application {application['status']}",
                f"Your application for **{application.get('roleName')}** in **{guild.name}** was "
                f"{application['status']}.\nReason: {application.get('reviewMessage')}",
                colour=STATUS_COLOURS.get(application["status"]),
            )
        )
    except discord.HTTPException:
        notes.append("The applicant has DMs closed.")
    return notes


def _reviewed(application: dict[str, Any], notes: list[str]) -> discord.Embed:
    description = f"Application `{application['id']}` was **{application['status']}**."
    if notes:
        description += "\n" + "\n".join(notes)
    return success_embed("Application Reviewed", description)


def setup_applications(tree: TitanCommandTree) -> None:
    records = tree.records
    router = tree.router

    @tree.command(name="apply", description="Apply for a role in this server.")
    @app_commands.describe(role="The role to apply for")
    async def apply(interaction: Interaction, role: Role) -> None:
        settings = await get_settings(records, interaction.guild_id)
        if not settings.get("enabled"):
            raise ConfigurationError(
                f"applications disabled in guild {interaction.guild_id}",
                user_message="Applications are currently disabled in this server.",
            )
        roles = await get_roles(records, interaction.guild_id)
        entry = next((item for item in roles if str(item.get("roleId")) == str(role.id)), None)
        if entry is None:
            raise ValidationError(
                f"role {role.id} not open for applications",
                user_message="That role is not open for applications.",
            )
        fields = [
            TextField(
                custom_id=f"q{index}",
                label=question,
                paragraph=True,
                min_length=MIN_ANSWER_LENGTH,
                max_length=MAX_ANSWER_LENGTH,
            )
            for index, question in enumerate(settings.get("questions") or [])
        ]
        await responder_for(interaction).send_modal(
            build_modal(f"Apply: {entry.get('name')}", f"app_submit:{role.id}", fields)
        )

    @router.modal("app_submit", command="apply")
    async def app_submit(ctx: ComponentContext) -> None:
        if not ctx.args:
            raise ValidationError("app_submit without role id")
        await ctx.defer(ephemeral=True)
        answers = [value for key, value in sorted(ctx.fields.items()) if key.startswith("q")]
        application = await submit_application(
            ctx.records,
            ctx.guild_id,
            ctx.user.id,
            int(ctx.args[0]),
            answers,
            username=str(ctx.user),
        )
        await _post_to_log(ctx.records, ctx.guild, application)
        await ctx.reply(
            embed=success_embed(
                "Application Submitted",
                f"Your application for **{application.get('roleName')}** was submitted. "
                "You'll be notified once it has been reviewed.",
            )
        )

    async def open_review(ctx: ComponentContext, action: str) -> None:
        await _require_manager(ctx.records, ctx.interaction)
        application_id = ctx.args[0] if ctx.args else ""
        application = await get_application(ctx.records, ctx.guild_id, application_id)
        if application is None:
            raise ConfigurationError(
                f"application {application_id} not found",
                user_message="The application you are trying to review does not exist.",
            )
        if application.get("status") != "pending":
            raise ValidationError(
                f"application {application_id} already reviewed",
                user_message="This application has already been reviewed.",
            )
        title = "Approve Application" if action == "approve" else "Deny Application"
        await ctx.responder.send_modal(
            build_modal(
                title,
                f"app_review:{action}:{application_id}",
                [
                    TextField(
                        custom_id="reason",
                        label="Reason",
                        paragraph=True,
                        required=False,
                        max_length=MAX_REVIEW_REASON_LENGTH,
                    )
                ],
            )
        )

    @router.button("app_approve_", prefix=True, command="apply")
    async def app_approve(ctx: ComponentContext) -> None:
        await open_review(ctx, "approve")

    @router.button("app_deny_", prefix=True, command="apply")
    async def app_deny(ctx: ComponentContext) -> None:
        await open_review(ctx, "deny")

    @router.modal("app_review", command="apply")
    async def app_review(ctx: ComponentContext) -> None:
        if len(ctx.args) < 2:
            raise ValidationError(f"malformed review id {ctx.custom_id!r}")
        action, application_id = ctx.args[0], ":".join(ctx.args[1:])
        await _require_manager(ctx.records, ctx.interaction)
        await ctx.defer(ephemeral=True)
        application = await review_application(
            ctx.records,
            ctx.guild_id,
            application_id,
            action=action,
            reviewer_id=ctx.user.id,
            reason=ctx.fields.get("reason"),
        )
        message = getattr(ctx.interaction, "message", None)
        if message is not None:
            try:
                await message.edit(embed=application_embed(application), view=None)
            except discord.HTTPException as exc:
                logger.warning("could not update log message for application %s: %s", application_id, exc)
        await ctx.reply(embed=_reviewed(application, await _apply_outcome(ctx.guild, application)))

    group = app_commands.Group(name="app-admin", description="Configure and review role applications.")

    @group.command(name="settings", description="Show the application settings.")
    async def app_settings(interaction: Interaction) -> None:
        await _require_manager(records, interaction)
        settings = await get_settings(records, interaction.guild_id)
        roles = await get_roles(records, interaction.guild_id)
        questions = [f"{index}. {text}" for index, text in enumerate(settings.get("questions") or [], start=1)]
        embed = make_embed(
            "Application Settings",
            colour=COLORS["primary"],
            fields=[
                ("Enabled", "Yes" if settings.get("enabled") else "No", True),
                (
                    "Log Channel",
                    f"<#{settings['logChannelId']}>" if settings.get("logChannelId") else "Not set",
                    True,
                ),
                (
                    "Manager Roles",
                    lines_or((f"<@&{item}>" for item in settings.get("managerRoles") or []), "Manage Server only"),
                    False,
                ),
                ("Roles", lines_or((f"<@&{item['roleId']}> ({item['name']})" for item in roles), "None"), False),
                ("Questions", lines_or(questions, "None"), False),
            ],
        )
        await responder_for(interaction).reply(embed=embed, ephemeral=True)

    async def save_settings(interaction: Interaction, **changes: Any) -> None:
        await _require_manager(records, interaction)
        await update_settings(records, interaction.guild_id, **changes)
        await responder_for(interaction).reply(
            embed=success_embed("Applications Updated", "Settings saved."),
            ephemeral=True,
        )

    @group.command(name="enable", description="Turn applications on or off.")
    @app_commands.describe(enabled="Accept applications")
    async def app_enable(interaction: Interaction, enabled: bool) -> None:
        await save_settings(interaction, enabled=enabled)

    @group.command(name="logchannel", description="Set where applications are posted.")
    @app_commands.describe(channel="Log channel")
    async def app_logchannel(interaction: Interaction, channel: TextChannel) -> None:
        await save_settings(interaction, log_channel_id=channel.id)

    @group.command(name="questions", description="Replace the application questions.")
    @app_commands.describe(questions="Questions separated by |")
    async def app_questions(interaction: Interaction, questions: app_commands.Range[str, 1, 600]) -> None:
        await save_settings(interaction, questions=str(questions).split("|"))

    @group.command(name="addmanager", description="Let a role review applications.")
    @app_commands.describe(role="Role")
    async def app_addmanager(interaction: Interaction, role: Role) -> None:
        await save_settings(interaction, add_manager_role=role.id)

    @group.command(name="removemanager", description="Stop a role from reviewing applications.")
    @app_commands.describe(role="Role")
    async def app_removemanager(interaction: Interaction, role: Role) -> None:
        await save_settings(interaction, remove_manager_role=role.id)

    @group.command(name="addrole", description="Open a role for applications.")
    @app_commands.describe(role="Role", name="Display name")
    async def app_addrole(
        interaction: Interaction,
        role: Role,
        name: app_commands.Range[str, 1, 50] = None,
    ) -> None:
        await _require_manager(records, interaction)
        entry = await add_role(records, interaction.guild_id, role.id, name or role.name)
        await responder_for(interaction).reply(
            embed=success_embed("Role Added", f"{role.mention} is now open for applications as **{entry['name']}**."),
            ephemeral=True,
        )

    @group.command(name="removerole", description="Close a role for applications.")
    @app_commands.describe(role="Role")
    async def app_removerole(interaction: Interaction, role: Role) -> None:
        await _require_manager(records, interaction)
        if not await remove_role(records, interaction.guild_id, role.id):
            raise ValidationError(f"role {role.id} not configured", user_message="That role is not configured.")
        await responder_for(interaction).reply(
            embed=success_embed("Role Removed", f"{role.mention} is closed for applications."),
            ephemeral=True,
        )

    @group.command(name="list", description="List recent applications.")
    @app_commands.describe(status="Filter by status")
    @app_commands.choices(status=[app_commands.Choice(name=status.title(), value=status) for status in STATUSES])
    async def app_list(interaction: Interaction, status: app_commands.Choice[str] | None = None) -> None:
        await _require_manager(records, interaction)
        found = await list_applications(
            records,
            interaction.guild_id,
            status=status.value if status is not None else None,
            limit=15,
        )
        lines = [
            f"`{item['id']}` <@{item['userId']}> - {item.get('roleName')} - "
            f"{item['status']} ({time_ago(int(item.get('createdAt') or 0))})"
            for item in found
        ]
        await responder_for(interaction).reply(
            embed=make_embed("Applications", lines_or(lines, "No applications found."), colour=COLORS["primary"]),
            ephemeral=True,
        )

    @group.command(name="view", description="Show one application.")
    @app_commands.describe(id="Application id")
    async def app_view(interaction: Interaction, id: str) -> None:
        await _require_manager(records, interaction)
        application = await get_application(records, interaction.guild_id, id.strip())
        if application is None:
            raise ValidationError("application not found", user_message="No application with that id.")
        view = review_buttons(application["id"]) if application.get("status") == "pending" else None
        await responder_for(interaction).reply(embed=application_embed(application), view=view, ephemeral=True)

    @group.command(name="review", description="Approve or deny an application.")
    @app_commands.describe(id="Application id", action="Decision", reason="Reason")
    @app_commands.choices(
        action=[
            app_commands.Choice(name="Approve", value="approve"),
            app_commands.Choice(name="Deny", value="deny"),
        ]
    )
    async def app_review_cmd(
        interaction: Interaction,
        id: str,
        action: app_commands.Choice[str],
        reason: app_commands.Range[str, 1, MAX_REVIEW_REASON_LENGTH] = None,
    ) -> None:
        await _require_manager(records, interaction)
        responder = responder_for(interaction)
        await responder.defer(ephemeral=True)
        application = await review_application(
            records,
            interaction.guild_id,
            id.strip(),
            action=action.value,
            reviewer_id=interaction.user.id,
            reason=reason,
        )
        notes = await _apply_outcome(interaction.guild, application)
        log_channel = text_channel(interaction.guild, (await get_settings(records, interaction.guild_id)).get("logChannelId"))
        if log_channel is not None and application.get("logMessageId"):
            try:
                message = await log_channel.fetch_message(int(application["logMessageId"]))
                await message.edit(embed=application_embed(application), view=None)
            except discord.HTTPException as exc:
                logger.debug("log message for application %s not updated: %s", application["id"], exc)
        await responder.reply(embed=_reviewed(application, notes))

    tree.add_command(group)
