from __future__ import annotations

import logging
from datetime import datetime, timezone

import discord

from titanbot.config.settings import INTERACTION_TOKEN_TTL_SECONDS
from titanbot.core.embeds import error_embed
from titanbot.core.errors import ErrorKind, describe_error, error_kind
from titanbot.interactions.responder import Responder

logger = logging.getLogger(__name__)


def label_for(interaction: discord.Interaction) -> str:
    data = interaction.data or {}
    if interaction.type == discord.InteractionType.application_command:
        return f"/{data.get('name', '?')}"
    if interaction.type == discord.InteractionType.modal_submit:
        return f"modal {data.get('custom_id', '?')!r}"
    return f"component {data.get('custom_id', '?')!r}"


def log_failure(exc: BaseException, label: str) -> None:
    kind = error_kind(exc)
    if kind in {ErrorKind.VALIDATION, ErrorKind.PERMISSION, ErrorKind.RATE_LIMIT}:
        logger.debug("%s rejected: %s", label, exc)
    elif kind is ErrorKind.CONFIGURATION:
        logger.info("%s not available: %s", label, exc)
    elif kind is ErrorKind.DATABASE:
        context = getattr(exc, "context", {})
        logger.error(
            "%s database failure key=%s operation=%s: %s",
            label,
            context.get("key"),
            context.get("operation"),
            exc,
        )
    else:
        logger.exception("%s failed", label, exc_info=exc)


async def deliver_failure(responder: Responder, exc: BaseException, label: str) -> None:
    """Send the error embed for ``exc`` if the interaction can still take one.

    Nothing here raises: a failure to deliver the error is logged and dropped.
    """
    if responder.terminal_sent:
        logger.warning("%s failed after its response was sent; nothing more to send", label)
        return
    created_at = getattr(responder.interaction, "created_at", None)
    if created_at is not None:
        age = (datetime.now(timezone.utc) - created_at).total_seconds()
        if age >= INTERACTION_TOKEN_TTL_SECONDS:
            logger.warning("%s token expired %.0fs ago; error not delivered", label, age)
            return
    title, message, colour = describe_error(exc)
    try:
        await responder.send_error(error_embed(title, message, colour=colour))
    except Exception:
        logger.exception("could not deliver error reply for %s", label)
