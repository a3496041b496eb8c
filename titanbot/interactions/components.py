from __future__ import annotations

from dataclasses import dataclass

import discord


@dataclass(frozen=True)
class TextField:
    custom_id: str
    label: str
    paragraph: bool = False
    required: bool = True
    min_length: int | None = None
    max_length: int | None = None
    placeholder: str | None = None
    default: str | None = None


def _detach(view: discord.ui.View) -> discord.ui.View:
    # Stopped views are rendered but never stored by discord.py; clicks reach
    # the router by custom id instead.
    view.stop()
    return view


def build_view(*items: discord.ui.Item) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    for item in items:
        view.add_item(item)
    return _detach(view)


def button(
    custom_id: str,
    label: str,
    *,
    style: discord.ButtonStyle = discord.ButtonStyle.secondary,
    emoji: str | None = None,
    disabled: bool = False,
) -> discord.ui.Button:
    return discord.ui.Button(custom_id=custom_id, label=label, style=style, emoji=emoji, disabled=disabled)


def build_modal(title: str, custom_id: str, fields: list[TextField]) -> discord.ui.Modal:
    modal = discord.ui.Modal(title=title[:45], custom_id=custom_id, timeout=None)
    for spec in fields:
        modal.add_item(
            discord.ui.TextInput(
                custom_id=spec.custom_id,
                label=spec.label[:45],
                style=discord.TextStyle.paragraph if spec.paragraph else discord.TextStyle.short,
                required=spec.required,
                min_length=spec.min_length,
                max_length=spec.max_length,
                placeholder=spec.placeholder,
                default=spec.default,
            )
        )
    modal.stop()
    return modal
