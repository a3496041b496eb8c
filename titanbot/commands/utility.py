from __future__ import annotations

import logging
import time
from typing import Any

import discord
from discord import Interaction, Member, app_commands

from titanbot.commands.helpers import guild_config_of, lines_or, require_text_channel
from titanbot.config.settings import COLORS
from titanbot.core.cache import TTLCache
from titanbot.core.calculator import evaluate, format_result
from titanbot.core.embeds import info_embed, make_embed, success_embed
from titanbot.core.errors import ValidationError
from titanbot.interactions import ComponentContext, TitanCommandTree, responder_for
from titanbot.interactions.components import TextField, build_modal, build_view, button
from titanbot.services.guild_config import is_command_enabled
from titanbot.services.todo import (
    MAX_LIST_NAME_LENGTH,
    MAX_TASK_LENGTH,
    add_shared_member,
    add_shared_task,
    add_task,
    complete_shared_task,
    complete_task,
    create_shared_list,
    get_shared_list,
    list_tasks,
    remove_task,
)

logger = logging.getLogger(__name__)

CALC_HISTORY_SIZE = 5
# (guild_id, user_id) -> most recent results, newest last
calc_history: TTLCache[list[str]] = TTLCache(maxsize=1000, ttl=30 * 60)

HELP_SECTIONS = {
    "Economy": (
        "balance", "inventory", "daily", "work", "beg", "crime", "gamble",
        "rob", "deposit", "withdraw", "pay", "shop", "buy", "eleaderboard",
    ),
    "Leveling": ("rank", "leaderboard", "leveladd", "levelremove", "levelset"),
    "Community": ("birthday", "afk", "apply", "invites", "report", "todo"),
    "Moderation": (
        "warn", "warnings", "clearwarnings", "ban", "kick", "timeout",
        "untimeout", "purge", "cases", "app-admin",
    ),
    "Utility": ("calculate", "ping", "help"),
    "Admin": ("config", "togglecommand", "botconfig"),
}


def _task_lines(tasks: list[dict[str, Any]]) -> list[str]:
    lines = []
    for task in tasks:
        mark = "✅" if task.get("completed") else "⬜"
        lines.append(f"{mark} **#{task['id']}** {task.get('text')}")
    return lines


def _shared_embed(shared: dict[str, Any]) -> discord.Embed:
    tasks = shared.get("tasks") or []
    done = sum(1 for task in tasks if task.get("completed"))
    return make_embed(
        f"📋 {shared.get('name')}",
        lines_or(_task_lines(tasks)[:40], "No tasks yet."),
        colour=COLORS["primary"],
        fields=[("Members", " ".join(f"<@{member}>" for member in shared.get("members") or []), False)],
        footer=f"List {shared.get('id')} · {done}/{len(tasks)} done",
    )


def _shared_buttons(list_id: str) -> discord.ui.View:
    return build_view(
        button(f"shared_todo_add_{list_id}", "Add Task", style=discord.ButtonStyle.primary, emoji="➕"),
        button(f"shared_todo_complete_{list_id}", "Complete Task", style=discord.ButtonStyle.success, emoji="✅"),
    )


def remember_result(guild_id: int | None, user_id: int, line: str) -> list[str]:
    key = (guild_id, user_id)
    history = list(calc_history.get(key) or [])
    history.append(line)
    history = history[-CALC_HISTORY_SIZE:]
    calc_history.set(key, history)
    return history


def setup_utility(tree: TitanCommandTree) -> None:
    records = tree.records
    router = tree.router

    @tree.command(name="report", description="Report a member to the moderators.")
    @app_commands.describe(user="Member to report", reason="What happened")
    async def report(
        interaction: Interaction,
        user: Member,
        reason: app_commands.Range[str, 1, 1000],
    ) -> None:
        if user.id == interaction.user.id:
            raise ValidationError("self report", user_message="You cannot report yourself.")
        destination = require_text_channel(
            interaction.guild,
            guild_config_of(interaction).get("reportChannelId"),
            setting="report",
        )
        responder = responder_for(interaction)
        await responder.defer(ephemeral=True)
        embed = make_embed(
            "New Report",
            str(reason),
            colour=COLORS["warning"],
            fields=[
                ("Reported", f"{user.mention} ({user.id})", True),
                ("By", f"{interaction.user.mention} ({interaction.user.id})", True),
                ("Channel", f"<#{interaction.channel_id}>", True),
            ],
        )
        await destination.send(embed=embed)
        await responder.reply(embed=success_embed("Report Sent", "Thanks, the moderators have been notified."))

    todo = app_commands.Group(name="todo", description="Personal and shared to-do lists.")
    share = app_commands.Group(name="share", description="Shared lists.", parent=todo)

    @todo.command(name="add", description="Add a task.")
    @app_commands.describe(task="Task text")
    async def todo_add(interaction: Interaction, task: app_commands.Range[str, 1, MAX_TASK_LENGTH]) -> None:
        added = await add_task(records, interaction.guild_id, interaction.user.id, task)
        await responder_for(interaction).reply(
            embed=success_embed("Task Added", f"**#{added['id']}** {added['text']}"), ephemeral=True
        )

    @todo.command(name="list", description="Show your tasks.")
    async def todo_list(interaction: Interaction) -> None:
        tasks = await list_tasks(records, interaction.guild_id, interaction.user.id)
        await responder_for(interaction).reply(
            embed=make_embed("Your To-Do List", lines_or(_task_lines(tasks), "Your list is empty."), colour=COLORS["primary"]),
            ephemeral=True,
        )

    @todo.command(name="complete", description="Mark a task as done.")
    @app_commands.rename(task_id="id")
    @app_commands.describe(task_id="Task number")
    async def todo_complete(interaction: Interaction, task_id: app_commands.Range[int, 1]) -> None:
        task = await complete_task(records, interaction.guild_id, interaction.user.id, int(task_id))
        await responder_for(interaction).reply(embed=success_embed("Task Complete", f"~~{task['text']}~~"), ephemeral=True)

    @todo.command(name="remove", description="Delete a task.")
    @app_commands.rename(task_id="id")
    @app_commands.describe(task_id="Task number")
    async def todo_remove(interaction: Interaction, task_id: app_commands.Range[int, 1]) -> None:
        task = await remove_task(records, interaction.guild_id, interaction.user.id, int(task_id))
        await responder_for(interaction).reply(embed=success_embed("Task Removed", task["text"]), ephemeral=True)

    @share.command(name="create", description="Create a shared list.")
    @app_commands.describe(name="List name")
    async def share_create(interaction: Interaction, name: app_commands.Range[str, 1, MAX_LIST_NAME_LENGTH]) -> None:
        shared = await create_shared_list(records, interaction.guild_id, interaction.user.id, name)
        await responder_for(interaction).reply(embed=_shared_embed(shared), view=_shared_buttons(shared["id"]))

    @share.command(name="add", description="Give a member access to your shared list.")
    @app_commands.rename(list_id="list")
    @app_commands.describe(list_id="List id", user="Member")
    async def share_add(interaction: Interaction, list_id: str, user: Member) -> None:
        if user.bot:
            raise ValidationError("bot member", user_message="Bots can't join shared lists.")
        shared = await add_shared_member(records, interaction.guild_id, list_id.strip(), interaction.user.id, user.id)
        await responder_for(interaction).reply(
            embed=success_embed("Member Added", f"{user.mention} can now use **{shared['name']}**.")
        )

    @share.command(name="view", description="Show a shared list.")
    @app_commands.rename(list_id="list")
    @app_commands.describe(list_id="List id")
    async def share_view(interaction: Interaction, list_id: str) -> None:
        shared = await get_shared_list(records, interaction.guild_id, list_id.strip(), interaction.user.id)
        await responder_for(interaction).reply(embed=_shared_embed(shared), view=_shared_buttons(shared["id"]))

    tree.add_command(todo)

    @router.button("shared_todo_add_", prefix=True, command="todo")
    async def shared_add_button(ctx: ComponentContext) -> None:
        list_id = ctx.args[0] if ctx.args else ""
        await get_shared_list(ctx.records, ctx.guild_id, list_id, ctx.user.id)
        await ctx.responder.send_modal(
            build_modal(
                "Add Task",
                f"todo_add:{list_id}",
                [TextField(custom_id="task", label="Task", max_length=MAX_TASK_LENGTH)],
            )
        )

    @router.button("shared_todo_complete_", prefix=True, command="todo")
    async def shared_complete_button(ctx: ComponentContext) -> None:
        list_id = ctx.args[0] if ctx.args else ""
        await get_shared_list(ctx.records, ctx.guild_id, list_id, ctx.user.id)
        await ctx.responder.send_modal(
            build_modal(
                "Complete Task",
                f"todo_complete:{list_id}",
                [TextField(custom_id="task_id", label="Task number", max_length=6, placeholder="1")],
            )
        )

    async def refresh_shared(ctx: ComponentContext, list_id: str) -> None:
        shared = await get_shared_list(ctx.records, ctx.guild_id, list_id, ctx.user.id)
        if getattr(ctx.interaction, "message", None) is not None:
            await ctx.update_message(embed=_shared_embed(shared), view=_shared_buttons(list_id))
        else:
            await ctx.reply(embed=_shared_embed(shared), ephemeral=True)

    @router.modal("todo_add", command="todo")
    async def shared_add_modal(ctx: ComponentContext) -> None:
        list_id = ctx.args[0] if ctx.args else ""
        await add_shared_task(ctx.records, ctx.guild_id, list_id, ctx.user.id, ctx.fields.get("task", ""))
        await refresh_shared(ctx, list_id)

    @router.modal("todo_complete", command="todo")
    async def shared_complete_modal(ctx: ComponentContext) -> None:
        list_id = ctx.args[0] if ctx.args else ""
        await complete_shared_task(ctx.records, ctx.guild_id, list_id, ctx.user.id, ctx.fields.get("task_id", ""))
        await refresh_shared(ctx, list_id)

    @tree.command(name="calculate", description="Evaluate a math expression.")
    @app_commands.describe(expression="e.g. 2^10 / sqrt(16)")
    async def calculate(interaction: Interaction, expression: app_commands.Range[str, 1, 200]) -> None:
        result = format_result(evaluate(expression))
        history = remember_result(interaction.guild_id, interaction.user.id, f"`{expression}` = **{result}**")
        embed = make_embed(
            "Calculator",
            f"```\n{expression}\n```= **{result}**",
            colour=COLORS["primary"],
            fields=[("Recent", "\n".join(reversed(history[:-1])), False)] if len(history) > 1 else None,
        )
        await responder_for(interaction).reply(embed=embed)

    @tree.command(name="ping", description="Check the bot's latency.")
    async def ping(interaction: Interaction) -> None:
        responder = responder_for(interaction)
        started = time.perf_counter()
        await responder.defer()
        round_trip = (time.perf_counter() - started) * 1000
        latency = getattr(interaction.client, "latency", 0.0) or 0.0
        await responder.reply(
            embed=info_embed(
                "🏓 Pong!",
                f"Gateway: **{latency * 1000:.0f} ms**\nResponse: **{round_trip:.0f} ms**",
            )
        )

    @tree.command(name="help", description="List the available commands.")
    async def help_cmd(interaction: Interaction) -> None:
        known = {command.name: command for command in tree.get_commands()}
        config = guild_config_of(interaction)
        listed: set[str] = set()
        fields = []
        for title, names in HELP_SECTIONS.items():
            lines = []
            for name in names:
                command = known.get(name)
                if command is None:
                    continue
                listed.add(name)
                marker = "" if is_command_enabled(config, name) else " *(disabled)*"
                lines.append(f"`/{name}` - {command.description}{marker}")
            if lines:
                fields.append((title, "\n".join(lines), False))
        extra = [f"`/{name}` - {command.description}" for name, command in sorted(known.items()) if name not in listed]
        if extra:
            fields.append(("Other", "\n".join(extra), False))
        await responder_for(interaction).reply(
            embed=make_embed("TitanBot Commands", colour=COLORS["info"], fields=fields), ephemeral=True
        )
