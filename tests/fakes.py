import sqlite3
from datetime import datetime, timezone
from types import SimpleNamespace

import discord
from discord import app_commands
from discord.utils import maybe_coroutine

from titanbot.db import SqliteKeyValueStore, init_db
from titanbot.services.records import ScopedRecordAccessor


def memory_store() -> SqliteKeyValueStore:
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.row_factory = sqlite3.Row

    def factory() -> sqlite3.Connection:
        return conn

    init_db(factory)
    return SqliteKeyValueStore(factory)


def memory_records() -> ScopedRecordAccessor:
    return ScopedRecordAccessor(memory_store())


class FakeResponse:
    def __init__(self) -> None:
        self.calls = []
        self._done = False

    def is_done(self) -> bool:
        return self._done

    async def send_message(self, content=None, **kwargs) -> None:
        self.calls.append(("send_message", content, kwargs))
        self._done = True

    async def defer(self, **kwargs) -> None:
        self.calls.append(("defer", None, kwargs))
        self._done = True

    async def edit_message(self, **kwargs) -> None:
        self.calls.append(("edit_message", None, kwargs))
        self._done = True

    async def send_modal(self, modal) -> None:
        self.calls.append(("send_modal", None, {"modal": modal}))
        self._done = True


class FakeFollowup:
    def __init__(self) -> None:
        self.calls = []

    async def send(self, content=None, **kwargs) -> None:
        self.calls.append((content, kwargs))


class FakeMessage:
    def __init__(self, message_id) -> None:
        self.id = message_id
        self.edits = []

    async def edit(self, **kwargs) -> None:
        self.edits.append(kwargs)


class FakeInteraction:
    def __init__(
        self,
        interaction_type,
        data,
        *,
        user_id=1,
        guild_id=100,
        permissions=None,
        message=None,
        created_at=None,
        client=None,
        guild=None,
    ) -> None:
        self.type = interaction_type
        self.data = data
        self.user = SimpleNamespace(id=user_id, name=f"user{user_id}", display_name=f"User {user_id}", bot=False, roles=[])
        self.user.mention = f"<@{user_id}>"
        self.guild_id = guild_id
        self.guild = guild
        self.client = client
        self.channel = None
        self.extras = {}
        self.channel_id = 500
        self.permissions = permissions or discord.Permissions.none()
        self.message = message
        self.created_at = created_at or datetime.now(timezone.utc)
        self.response = FakeResponse()
        self.followup = FakeFollowup()
        self.edits = []
        self.sent_message = None

    async def edit_original_response(self, **kwargs) -> None:
        self.edits.append(kwargs)

    async def original_response(self):
        if self.sent_message is None:
            self.sent_message = FakeMessage(900)
        return self.sent_message

    def sent_embeds(self):
        embeds = [kwargs.get("embed") for _, _, kwargs in self.response.calls if kwargs.get("embed") is not None]
        embeds.extend(kwargs["embed"] for kwargs in self.edits if kwargs.get("embed") is not None)
        embeds.extend(kwargs["embed"] for _, kwargs in self.followup.calls if kwargs.get("embed") is not None)
        return embeds


def command_interaction(name, **kwargs) -> FakeInteraction:
    data = {"name": name, "type": 1}
    return FakeInteraction(discord.InteractionType.application_command, data, **kwargs)


def button_interaction(custom_id, *, message_id=None, **kwargs) -> FakeInteraction:
    message = SimpleNamespace(id=message_id) if message_id is not None else None
    data = {"custom_id": custom_id, "component_type": 2}
    return FakeInteraction(discord.InteractionType.component, data, message=message, **kwargs)


def modal_interaction(custom_id, fields, **kwargs) -> FakeInteraction:
    rows = [
        {"type": 1, "components": [{"type": 4, "custom_id": key, "value": value}]}
        for key, value in fields.items()
    ]
    data = {"custom_id": custom_id, "components": rows}
    return FakeInteraction(discord.InteractionType.modal_submit, data, **kwargs)



def fake_member(user_id, *, name="member", bot=False, top_role=1, nick=None):
    member = SimpleNamespace(id=user_id, name=name, display_name=nick or name, nick=nick, bot=bot, top_role=top_role)
    member.mention = f"<@{user_id}>"
    return member


def find_command(tree, path):
    names = path.split()
    command = tree.get_command(names[0])
    for name in names[1:]:
        command = command.get_command(name)
    return command


async def invoke(tree, interaction, path, **params):
    """Run a slash command the way CommandTree._call does once options are transformed."""
    command = find_command(tree, path)
    try:
        if not await tree.interaction_check(interaction):
            return
        for check in command.checks:
            if not await maybe_coroutine(check, interaction):
                raise app_commands.CheckFailure(f"check failed for {path}")
        await command.callback(interaction, **params)
    except app_commands.AppCommandError as exc:
        await tree.on_error(interaction, exc)
        return
    except Exception as exc:
        await tree.on_error(interaction, app_commands.CommandInvokeError(command, exc))
        return
    await tree.after_command(interaction, command)
