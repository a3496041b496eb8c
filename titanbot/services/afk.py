from __future__ import annotations

from typing import Any, Iterable

from titanbot.config.settings import AFK_NICK_PREFIX
from titanbot.core.errors import ValidationError
from titanbot.core.timefmt import now_ms
from titanbot.services.records import ScopedRecordAccessor

MAX_REASON_LENGTH = 200
MAX_NICKNAME_LENGTH = 32


def decorate_nickname(name: str) -> str:
    if name.startswith(AFK_NICK_PREFIX):
        return name
    return (AFK_NICK_PREFIX + name)[:MAX_NICKNAME_LENGTH]


def strip_nickname(name: str | None) -> str | None:
    if name and name.startswith(AFK_NICK_PREFIX):
        return name[len(AFK_NICK_PREFIX):] or None
    return name


async def get_afk(records: ScopedRecordAccessor, guild_id: int, user_id: int) -> dict[str, Any] | None:
    record = await records.find("afk", guild_id, user_id)
    return record or None


async def set_afk(
    records: ScopedRecordAccessor,
    guild_id: int,
    user_id: int,
    reason: str | None = None,
    *,
    original_nick: str | None = None,
    now: int | None = None,
) -> dict[str, Any]:
    """Mark the user AFK; ``original_nick`` is what to restore on return, ``None`` for no nickname."""
    text = (reason or "AFK").strip() or "AFK"
    if len(text) > MAX_REASON_LENGTH:
        raise ValidationError(
            "afk reason too long",
            user_message=f"Please keep your AFK reason under {MAX_REASON_LENGTH} characters.",
        )
    current = now_ms() if now is None else int(now)

    def apply(record: dict[str, Any]) -> dict[str, Any]:
        if record:
            raise ValidationError("already afk", user_message="You are already AFK. Send a message to return.")
        record.update(
            {
                "reason": text,
                "timestamp": current,
                "guildId": str(guild_id),
                "userId": str(user_id),
                "originalNick": original_nick,
            }
        )
        return record

    return await records.mutate("afk", guild_id, user_id, apply)


async def clear_afk(records: ScopedRecordAccessor, guild_id: int, user_id: int) -> dict[str, Any]:
    record = await records.pop("afk", guild_id, user_id)
    if not record:
        raise ValidationError("not afk", user_message="You are not AFK right now.")
    return record


async def afk_mentions(
    records: ScopedRecordAccessor,
    guild_id: int,
    user_ids: Iterable[int],
) -> list[tuple[int, dict[str, Any]]]:
    found: list[tuple[int, dict[str, Any]]] = []
    seen: set[int] = set()
    for user_id in user_ids:
        if int(user_id) in seen:
            continue
        seen.add(int(user_id))
        record = await get_afk(records, guild_id, user_id)
        if record is not None:
            found.append((int(user_id), record))
    return found
