from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence

import discord

from titanbot.core.errors import BotError, ConfigurationError
from titanbot.interactions.failures import deliver_failure, label_for, log_failure
from titanbot.interactions.responder import Responder, responder_for
from titanbot.services.guild_config import get_guild_config, is_command_enabled
from titanbot.services.records import ScopedRecordAccessor

logger = logging.getLogger(__name__)

BUTTON_COMPONENT = 2
SELECT_COMPONENTS = frozenset({3, 5, 6, 7, 8})


class InteractionKind(str, Enum):
    BUTTON = "button"
    SELECT = "select"
    MODAL = "modal"


def classify(interaction: discord.Interaction) -> InteractionKind | None:
    """Kind of a component or modal interaction; slash commands belong to the command tree."""
    data = interaction.data or {}
    if interaction.type == discord.InteractionType.component:
        component_type = data.get("component_type")
        if component_type == BUTTON_COMPONENT:
            return InteractionKind.BUTTON
        if component_type in SELECT_COMPONENTS:
            return InteractionKind.SELECT
        return None
    if interaction.type == discord.InteractionType.modal_submit:
        return InteractionKind.MODAL
    return None


def parse_modal_values(data: dict[str, Any]) -> dict[str, str]:
    values: dict[str, str] = {}

    def collect(component: dict[str, Any]) -> None:
        custom_id = component.get("custom_id")
        if custom_id is not None and "value" in component:
            values[str(custom_id)] = str(component.get("value") or "")
        if isinstance(component.get("component"), dict):
            collect(component["component"])
        for child in component.get("components") or []:
            collect(child)

    for row in data.get("components") or []:
        collect(row)
    return values


@dataclass
class ComponentContext:
    interaction: discord.Interaction
    client: Any
    router: "InteractionRouter"
    records: ScopedRecordAccessor
    responder: Responder
    guild_config: dict[str, Any] | None
    kind: InteractionKind = InteractionKind.BUTTON
    custom_id: str = ""
    args: list[str] = field(default_factory=list)
    values: list[str] = field(default_factory=list)
    fields: dict[str, str] = field(default_factory=dict)

    @property
    def guild(self) -> discord.Guild | None:
        return self.interaction.guild

    @property
    def guild_id(self) -> int | None:
        return self.interaction.guild_id

    @property
    def user(self) -> discord.User | discord.Member:
        return self.interaction.user

    async def defer(self, *, ephemeral: bool = False, update: bool = False) -> None:
        await self.responder.defer(ephemeral=ephemeral, update=update)

    async def reply(self, content: str | None = None, **kwargs: Any) -> None:
        await self.responder.reply(content, **kwargs)

    async def update_message(self, content: str | None = None, **kwargs: Any) -> None:
        await self.responder.update_message(content, **kwargs)


ComponentHandler = Callable[[ComponentContext], Awaitable[Any]]


@dataclass
class ComponentEntry:
    key: str
    handler: ComponentHandler
    command: str | None = None


class MatchStrategy:
    """Maps a custom id to a registered component and its trailing arguments."""

    name = "base"

    def __init__(self) -> None:
        self.entries: dict[str, ComponentEntry] = {}

    def add(self, entry: ComponentEntry) -> None:
        if entry.key in self.entries:
            raise ValueError(f"duplicate {self.name} component key: {entry.key}")
        self.entries[entry.key] = entry

    def match(self, custom_id: str) -> tuple[ComponentEntry, list[str]] | None:
        raise NotImplementedError


class PrefixStrategy(MatchStrategy):
    """``app_approve_<id>`` style: longest registered prefix wins, the rest is one argument."""

    name = "prefix"

    def match(self, custom_id: str) -> tuple[ComponentEntry, list[str]] | None:
        for prefix in sorted(self.entries, key=len, reverse=True):
            if custom_id.startswith(prefix):
                remainder = custom_id[len(prefix):]
                return self.entries[prefix], ([remainder] if remainder else [])
        return None


class ColonStrategy(MatchStrategy):
    """``key:arg1:arg2`` style."""

    name = "colon"

    def match(self, custom_id: str) -> tuple[ComponentEntry, list[str]] | None:
        key, *args = custom_id.split(":")
        entry = self.entries.get(key)
        if entry is None:
            return None
        return entry, args


class ComponentRegistry:
    def __init__(self, strategies: Sequence[MatchStrategy] | None = None) -> None:
        self.strategies: list[MatchStrategy] = list(strategies or (PrefixStrategy(), ColonStrategy()))

    def add_strategy(self, strategy: MatchStrategy) -> None:
        if any(existing.name == strategy.name for existing in self.strategies):
            raise ValueError(f"strategy {strategy.name} already registered")
        self.strategies.append(strategy)

    def register(self, entry: ComponentEntry, *, strategy: str = "colon") -> None:
        for candidate in self.strategies:
            if candidate.name == strategy:
                candidate.add(entry)
                return
        raise ValueError(f"unknown match strategy: {strategy}")

    def resolve(self, custom_id: str) -> tuple[ComponentEntry, list[str]] | None:
        for strategy in self.strategies:
            found = strategy.match(custom_id)
            if found is not None:
                return found
        return None

    def __len__(self) -> int:
        return sum(len(strategy.entries) for strategy in self.strategies)


class InteractionRouter:
    """Routes buttons, selects and modals whose custom ids outlive any View object.

    Messages carrying a live ``discord.ui.View`` are bound with ``bind_view``;
    discord.py delivers their clicks to the view, so the router leaves them alone.
    """

    def __init__(self, records: ScopedRecordAccessor) -> None:
        self.records = records
        self.registries: dict[InteractionKind, ComponentRegistry] = {
            InteractionKind.BUTTON: ComponentRegistry(),
            InteractionKind.SELECT: ComponentRegistry(),
            InteractionKind.MODAL: ComponentRegistry(),
        }
        self.views: dict[int, discord.ui.View] = {}

    # Registration

    def component(
        self,
        kind: InteractionKind,
        key: str,
        *,
        prefix: bool = False,
        command: str | None = None,
        strategy: str | None = None,
    ) -> Callable[[ComponentHandler], ComponentHandler]:
        def decorator(handler: ComponentHandler) -> ComponentHandler:
            self.registries[kind].register(
                ComponentEntry(key, handler, command),
                strategy=strategy or ("prefix" if prefix else "colon"),
            )
            return handler

        return decorator

    def button(self, key: str, **kwargs: Any) -> Callable[[ComponentHandler], ComponentHandler]:
        return self.component(InteractionKind.BUTTON, key, **kwargs)

    def select(self, key: str, **kwargs: Any) -> Callable[[ComponentHandler], ComponentHandler]:
        return self.component(InteractionKind.SELECT, key, **kwargs)

    def modal(self, key: str, **kwargs: Any) -> Callable[[ComponentHandler], ComponentHandler]:
        return self.component(InteractionKind.MODAL, key, **kwargs)

    # Views

    def bind_view(self, message_id: int, view: discord.ui.View) -> None:
        self.views[int(message_id)] = view

    def release_view(self, view: discord.ui.View) -> None:
        for message_id, bound in list(self.views.items()):
            if bound is view:
                del self.views[message_id]

    def _owned_by_view(self, interaction: discord.Interaction) -> bool:
        message = getattr(interaction, "message", None)
        if message is None:
            return False
        view = self.views.get(message.id)
        if view is None:
            return False
        if view.is_finished():
            del self.views[message.id]
            return False
        return True

    # Dispatch

    async def dispatch(self, interaction: discord.Interaction, client: Any = None) -> None:
        kind = classify(interaction)
        if kind is None:
            return
        if kind is not InteractionKind.MODAL and self._owned_by_view(interaction):
            return
        responder = responder_for(interaction)
        label = label_for(interaction)
        try:
            await self._route(kind, interaction, client, responder)
            if not responder.terminal_sent:
                logger.error("%s finished without a terminal response", label)
                await deliver_failure(responder, BotError(f"{label} sent no response"), label)
        except Exception as exc:
            log_failure(exc, label)
            await deliver_failure(responder, exc, label)

    async def _route(
        self,
        kind: InteractionKind,
        interaction: discord.Interaction,
        client: Any,
        responder: Responder,
    ) -> None:
        data = interaction.data or {}
        custom_id = str(data.get("custom_id", ""))
        found = self.registries[kind].resolve(custom_id)
        if found is None:
            raise ConfigurationError(
                f"no {kind.value} handler for custom id {custom_id!r}",
                user_message="This control is no longer active.",
            )
        entry, args = found
        guild_config = None
        if interaction.guild_id is not None:
            guild_config = await get_guild_config(self.records, interaction.guild_id)
            if entry.command and not is_command_enabled(guild_config, entry.command):
                raise ConfigurationError(
                    f"/{entry.command} is disabled in guild {interaction.guild_id}",
                    user_message="This command is disabled here.",
                )
        ctx = ComponentContext(
            interaction=interaction,
            client=client,
            router=self,
            records=self.records,
            responder=responder,
            guild_config=guild_config,
            kind=kind,
            custom_id=custom_id,
            args=args,
            values=[str(value) for value in data.get("values") or []],
            fields=parse_modal_values(data) if kind is InteractionKind.MODAL else {},
        )
        await entry.handler(ctx)
