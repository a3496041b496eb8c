from __future__ import annotations

import discord

from titanbot.config.settings import COLORS


def make_embed(
    title: str,
    description: str | None = None,
    *,
    colour: int | None = None,
    fields: list[tuple[str, str, bool]] | None = None,
    footer: str | None = None,
) -> discord.Embed:
    embed = discord.Embed(
        title=title,
        description=description,
        colour=COLORS["primary"] if colour is None else colour,
    )
    for name, value, inline in fields or []:
        embed.add_field(name=name, value=value, inline=inline)
    if footer:
        embed.set_footer(text=footer)
    return embed


def success_embed(title: str, description: str | None = None, **kwargs) -> discord.Embed:
    return make_embed(title, description, colour=COLORS["success"], **kwargs)


def error_embed(title: str, description: str | None = None, *, colour: int | None = None) -> discord.Embed:
    return make_embed(title, description, colour=COLORS["error"] if colour is None else colour)


def info_embed(title: str, description: str | None = None, **kwargs) -> discord.Embed:
    return make_embed(title, description, colour=COLORS["info"], **kwargs)


def money_text(amount: int, symbol: str = "$") -> str:
    return f"{symbol}{int(amount):,}"
