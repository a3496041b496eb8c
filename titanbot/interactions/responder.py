from __future__ import annotations

from typing import Any

import discord


def _kwargs(**values: Any) -> dict[str, Any]:
    return {name: value for name, value in values.items() if value is not None}


class Responder:
    """Tracks how an interaction has been answered.

    Exactly one terminal response (``reply``, ``update_message``,
    ``send_modal`` or the error boundary's reply) is allowed; ``defer`` and
    ``followup`` are not terminal.
    """

    def __init__(self, interaction: discord.Interaction) -> None:
        self.interaction = interaction
        self.deferred = False
        self.deferred_update = False
        self.terminal_sent = False

    @property
    def acknowledged(self) -> bool:
        return self.deferred or self.terminal_sent or self.interaction.response.is_done()

    def _claim_terminal(self) -> None:
        if self.terminal_sent:
            raise RuntimeError("interaction already received a terminal response")

    async def defer(self, *, ephemeral: bool = False, update: bool = False) -> None:
        if self.acknowledged:
            return
        await self.interaction.response.defer(ephemeral=ephemeral, thinking=not update)
        self.deferred = True
        self.deferred_update = update

    async def reply(
        self,
        content: str | None = None,
        *,
        embed: discord.Embed | None = None,
        embeds: list[discord.Embed] | None = None,
        view: discord.ui.View | None = None,
        ephemeral: bool = False,
    ) -> None:
        self._claim_terminal()
        payload = _kwargs(content=content, embed=embed, embeds=embeds, view=view)
        if self.acknowledged:
            await self.interaction.edit_original_response(**payload)
        else:
            await self.interaction.response.send_message(ephemeral=ephemeral, **payload)
        self.terminal_sent = True

    async def update_message(
        self,
        content: str | None = None,
        *,
        embed: discord.Embed | None = None,
        embeds: list[discord.Embed] | None = None,
        view: discord.ui.View | None = None,
    ) -> None:
        self._claim_terminal()
        payload = _kwargs(content=content, embed=embed, embeds=embeds, view=view)
        if self.acknowledged:
            await self.interaction.edit_original_response(**payload)
        else:
            await self.interaction.response.edit_message(**payload)
        self.terminal_sent = True

    async def send_modal(self, modal: discord.ui.Modal) -> None:
        self._claim_terminal()
        if self.acknowledged:
            raise RuntimeError("a modal must be the first response to an interaction")
        await self.interaction.response.send_modal(modal)
        self.terminal_sent = True

    async def followup(
        self,
        content: str | None = None,
        *,
        embed: discord.Embed | None = None,
        view: discord.ui.View | None = None,
        ephemeral: bool = False,
    ) -> None:
        if not self.acknowledged:
            raise RuntimeError("followups need an acknowledged interaction")
        await self.interaction.followup.send(ephemeral=ephemeral, **_kwargs(content=content, embed=embed, view=view))

    async def send_error(self, embed: discord.Embed) -> bool:
        """Deliver an error embed using the current acknowledgement state."""
        if self.terminal_sent:
            return False
        if self.deferred_update:
            # The deferred message belongs to whoever posted it; the error goes to
            # the presser alone as an ephemeral followup rather than replacing it.
            await self.interaction.followup.send(embed=embed, ephemeral=True)
        elif self.acknowledged:
            await self.interaction.edit_original_response(content=None, embed=embed, view=None)
        else:
            await self.interaction.response.send_message(embed=embed, ephemeral=True)
        self.terminal_sent = True
        return True


def responder_for(interaction: discord.Interaction) -> Responder:
    """The interaction's Responder, created on first use and kept in ``extras``."""
    responder = interaction.extras.get("responder")
    if responder is None:
        responder = Responder(interaction)
        interaction.extras["responder"] = responder
    return responder
