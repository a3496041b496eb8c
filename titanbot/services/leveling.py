from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Iterable

from titanbot.config.settings import (
    MAX_LEVEL,
    SECOND_MS,
    XP_COOLDOWN_SECONDS,
    XP_PER_MESSAGE_MAX,
    XP_PER_MESSAGE_MIN,
)
from titanbot.core.errors import ValidationError
from titanbot.core.timefmt import now_ms
from titanbot.services.records import ScopedRecordAccessor, Unchanged


def xp_for_level(level: int) -> int:
    if not isinstance(level, int) or isinstance(level, bool) or level < 0 or level > MAX_LEVEL:
        raise ValidationError(
            f"invalid level {level!r}",
            user_message=f"The level must be a whole number between 0 and {MAX_LEVEL}.",
        )
    return 5 * level * level + 50 * level + 50


def _check_level(level: int) -> int:
    xp_for_level(level)
    return level


@dataclass
class XpAward:
    gained: int
    record: dict[str, Any]
    levels_gained: int = 0

    @property
    def leveled_up(self) -> bool:
        return self.levels_gained > 0


@dataclass
class LevelChange:
    old_level: int
    new_level: int
    record: dict[str, Any]


def apply_xp(record: dict[str, Any], amount: int) -> int:
    """Add ``amount`` XP to ``record`` in place and return the number of levels gained."""
    level = int(record.get("level") or 0)
    xp = int(record.get("xp") or 0) + int(amount)
    record["totalXp"] = int(record.get("totalXp") or 0) + int(amount)
    gained = 0
    while level < MAX_LEVEL and xp >= xp_for_level(level + 1):
        xp -= xp_for_level(level + 1)
        level += 1
        gained += 1
    record["level"] = level
    record["xp"] = xp
    return gained


async def award_message_xp(
    records: ScopedRecordAccessor,
    guild_id: int,
    user_id: int,
    *,
    xp_min: int = XP_PER_MESSAGE_MIN,
    xp_max: int = XP_PER_MESSAGE_MAX,
    cooldown_seconds: int = XP_COOLDOWN_SECONDS,
    now: int | None = None,
    rng: random.Random | None = None,
) -> XpAward | None:
    """Grant message XP; ``None`` while the user is still on XP cooldown."""
    current = now_ms() if now is None else int(now)
    rand = rng or random
    low, high = sorted((int(xp_min), int(xp_max)))

    def on_cooldown(record: dict[str, Any]) -> bool:
        last = int(record.get("lastMessage") or 0)
        return bool(last) and current - last < cooldown_seconds * SECOND_MS

    if on_cooldown(await records.get("level", guild_id, user_id)):
        return None

    def apply(record: dict[str, Any]) -> XpAward | Unchanged:
        if on_cooldown(record):
            return Unchanged(None)
        gained = rand.randint(low, high)
        levels = apply_xp(record, gained)
        record["lastMessage"] = current
        return XpAward(gained=gained, record=record, levels_gained=levels)

    return await records.mutate("level", guild_id, user_id, apply)


def _reset_to_level(record: dict[str, Any], level: int) -> None:
    record["level"] = level
    record["xp"] = 0
    record["totalXp"] = xp_for_level(level)


async def set_level(records: ScopedRecordAccessor, guild_id: int, user_id: int, level: int) -> LevelChange:
    target = _check_level(int(level))

    def apply(record: dict[str, Any]) -> LevelChange:
        old = int(record.get("level") or 0)
        _reset_to_level(record, target)
        return LevelChange(old_level=old, new_level=target, record=record)

    return await records.mutate("level", guild_id, user_id, apply)


async def add_levels(records: ScopedRecordAccessor, guild_id: int, user_id: int, levels: int) -> LevelChange:
    if int(levels) <= 0:
        raise ValidationError(f"add {levels} levels", user_message="Add at least one level.")

    def apply(record: dict[str, Any]) -> LevelChange:
        old = int(record.get("level") or 0)
        target = old + int(levels)
        if target > MAX_LEVEL:
            raise ValidationError(
                f"level {target} above max",
                user_message=f"That would exceed the maximum level of {MAX_LEVEL}.",
            )
        _reset_to_level(record, target)
        return LevelChange(old_level=old, new_level=target, record=record)

    return await records.mutate("level", guild_id, user_id, apply)


async def remove_levels(records: ScopedRecordAccessor, guild_id: int, user_id: int, levels: int) -> LevelChange:
    if int(levels) <= 0:
        raise ValidationError(f"remove {levels} levels", user_message="Remove at least one level.")

    def apply(record: dict[str, Any]) -> LevelChange:
        old = int(record.get("level") or 0)
        target = max(0, old - int(levels))
        _reset_to_level(record, target)
        return LevelChange(old_level=old, new_level=target, record=record)

    return await records.mutate("level", guild_id, user_id, apply)


async def get_rank(
    records: ScopedRecordAccessor,
    guild_id: int,
    user_id: int,
) -> dict[str, Any]:
    record = await records.get("level", guild_id, user_id)
    level = int(record.get("level") or 0)
    needed = xp_for_level(level + 1) if level < MAX_LEVEL else 0
    return {**record, "xpNeeded": needed}


async def leaderboard(
    records: ScopedRecordAccessor,
    guild_id: int,
    member_ids: Iterable[int],
    *,
    limit: int = 100,
) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for member_id in member_ids:
        record = await records.find("level", guild_id, member_id)
        if record is None or int(record.get("totalXp") or 0) <= 0:
            continue
        rows.append({"userId": int(member_id), **record})
    rows.sort(key=lambda row: (-int(row["totalXp"]), row["userId"]))
    for index, row in enumerate(rows, start=1):
        row["rank"] = index
    return rows[: max(1, int(limit))]


def render_level_up_message(template: str | None, *, user_mention: str, level: int) -> str:
    text = template or "{user} has leveled up to level {level}!"
    return text.replace("{user}", user_mention).replace("{level}", str(level))
