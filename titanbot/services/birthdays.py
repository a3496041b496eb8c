from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from titanbot.core.errors import ValidationError
from titanbot.services.records import ScopedRecordAccessor, Unchanged

logger = logging.getLogger(__name__)

# Validation runs against a leap year so Feb 29 is always a valid birthday.
_VALIDATION_YEAR = 2000


@dataclass(frozen=True)
class Birthday:
    user_id: int
    month: int
    day: int

    @property
    def month_name(self) -> str:
        return calendar.month_name[self.month]

    @property
    def label(self) -> str:
        return f"{self.month_name} {self.day}"


@dataclass(frozen=True)
class UpcomingBirthday:
    birthday: Birthday
    next_date: date
    days_until: int


def validate_birthday(month: int, day: int) -> tuple[int, int]:
    try:
        month = int(month)
        day = int(day)
    except (TypeError, ValueError) as exc:
        raise ValidationError("non-numeric birthday", user_message="Month and day must be numbers.") from exc
    if not 1 <= month <= 12:
        raise ValidationError(f"month {month} out of range", user_message="Month must be between 1 and 12.")
    days_in_month = calendar.monthrange(_VALIDATION_YEAR, month)[1]
    if not 1 <= day <= days_in_month:
        raise ValidationError(
            f"day {day} invalid for month {month}",
            user_message=f"{calendar.month_name[month]} only has {days_in_month} days.",
        )
    return month, day


def celebration_date(month: int, day: int, year: int) -> date:
    """The date a birthday is celebrated in ``year``; Feb 29 falls back to Feb 28."""
    if month == 2 and day == 29 and not calendar.isleap(year):
        return date(year, 2, 28)
    return date(year, month, day)


def _entries(raw: dict[str, Any]) -> list[Birthday]:
    entries: list[Birthday] = []
    for user_id, data in raw.items():
        try:
            entries.append(Birthday(int(user_id), int(data["month"]), int(data["day"])))
        except (KeyError, TypeError, ValueError):
            logger.warning("skipping malformed birthday entry for user %s: %r", user_id, data)
    return entries


async def set_birthday(
    records: ScopedRecordAccessor,
    guild_id: int,
    user_id: int,
    month: int,
    day: int,
) -> Birthday:
    month, day = validate_birthday(month, day)

    def apply(birthdays: dict[str, Any]) -> Birthday:
        birthdays[str(user_id)] = {"month": month, "day": day}
        return Birthday(int(user_id), month, day)

    return await records.mutate("birthdays", guild_id, None, apply)


async def remove_birthday(records: ScopedRecordAccessor, guild_id: int, user_id: int) -> bool:
    def apply(birthdays: dict[str, Any]) -> bool | Unchanged:
        if str(user_id) not in birthdays:
            return Unchanged(False)
        del birthdays[str(user_id)]
        return True

    return await records.mutate("birthdays", guild_id, None, apply)


async def get_birthday(records: ScopedRecordAccessor, guild_id: int, user_id: int) -> Birthday | None:
    birthdays = await records.get("birthdays", guild_id)
    data = birthdays.get(str(user_id))
    if data is None:
        return None
    entries = _entries({str(user_id): data})
    return entries[0] if entries else None


async def list_birthdays(records: ScopedRecordAccessor, guild_id: int) -> list[Birthday]:
    birthdays = await records.get("birthdays", guild_id)
    return sorted(_entries(birthdays), key=lambda entry: (entry.month, entry.day, entry.user_id))


async def upcoming_birthdays(
    records: ScopedRecordAccessor,
    guild_id: int,
    *,
    today: date | None = None,
    limit: int = 5,
) -> list[UpcomingBirthday]:
    current = today or date.today()
    upcoming: list[UpcomingBirthday] = []
    for entry in await list_birthdays(records, guild_id):
        next_date = celebration_date(entry.month, entry.day, current.year)
        if next_date < current:
            next_date = celebration_date(entry.month, entry.day, current.year + 1)
        upcoming.append(UpcomingBirthday(entry, next_date, (next_date - current).days))
    upcoming.sort(key=lambda item: (item.days_until, item.birthday.user_id))
    return upcoming[: max(1, int(limit))]


async def todays_birthdays(
    records: ScopedRecordAccessor,
    guild_id: int,
    *,
    today: date | None = None,
) -> list[Birthday]:
    current = today or date.today()
    return [
        entry
        for entry in await list_birthdays(records, guild_id)
        if celebration_date(entry.month, entry.day, current.year) == current
    ]


async def claim_announcement(records: ScopedRecordAccessor, guild_id: int, today: date) -> bool:
    """Mark ``today`` as announced for the guild; False when it already was."""
    stamp = today.isoformat()

    def apply(state: dict[str, Any]) -> bool | Unchanged:
        if state.get("date") == stamp:
            return Unchanged(False)
        state["date"] = stamp
        return True

    return await records.mutate("birthday_announce", guild_id, None, apply)
