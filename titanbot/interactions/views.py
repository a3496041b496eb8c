from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

import discord

from titanbot.config.settings import COLLECTOR_TIMEOUT_SECONDS
from titanbot.interactions.failures import deliver_failure, label_for, log_failure
from titanbot.interactions.responder import Responder, responder_for

if TYPE_CHECKING:
    from titanbot.interactions.router import InteractionRouter

logger = logging.getLogger(__name__)


class OwnerView(discord.ui.View):
    """Buttons only the invoking user may press; they disable themselves on timeout."""

    def __init__(self, owner_id: int, *, timeout: float = COLLECTOR_TIMEOUT_SECONDS) -> None:
        super().__init__(timeout=timeout)
        self.owner_id = int(owner_id)
        self.message: discord.Message | None = None
        self.router: InteractionRouter | None = None

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id == self.owner_id:
            return True
        await responder_for(interaction).reply("These buttons aren't for you.", ephemeral=True)
        return False

    async def attach(self, responder: Responder, router: "InteractionRouter") -> None:
        """Remember the message the view was sent on so timeouts can edit it."""
        self.message = await responder.interaction.original_response()
        self.router = router
        router.bind_view(self.message.id, self)

    async def on_timeout(self) -> None:
        for item in self.children:
            if hasattr(item, "disabled"):
                item.disabled = True
        if self.router is not None:
            self.router.release_view(self)
        if self.message is None:
            return
        try:
            await self.message.edit(view=self)
        except discord.HTTPException as exc:
            logger.debug("could not disable controls on message %s: %s", self.message.id, exc)

    async def on_error(self, interaction: discord.Interaction, error: Exception, item: discord.ui.Item) -> None:
        label = label_for(interaction)
        log_failure(error, label)
        await deliver_failure(responder_for(interaction), error, label)


class PagerView(OwnerView):
    def __init__(
        self,
        owner_id: int,
        page_count: int,
        render: Callable[[int], discord.Embed],
        *,
        timeout: float = COLLECTOR_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(owner_id, timeout=timeout)
        self.page = 0
        self.page_count = max(1, int(page_count))
        self.render = render
        self._sync_buttons()

    def _sync_buttons(self) -> None:
        self.previous.disabled = self.page <= 0
        self.next.disabled = self.page >= self.page_count - 1

    async def _turn(self, interaction: discord.Interaction, step: int) -> None:
        self.page = min(self.page_count - 1, max(0, self.page + step))
        self._sync_buttons()
        await responder_for(interaction).update_message(embed=self.render(self.page), view=self)

    @discord.ui.button(label="Previous", emoji="◀️", style=discord.ButtonStyle.secondary)
    async def previous(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await self._turn(interaction, -1)

    @discord.ui.button(label="Next", emoji="▶️", style=discord.ButtonStyle.secondary)
    async def next(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await self._turn(interaction, 1)
