from __future__ import annotations

from typing import Any

from titanbot.core.errors import ConfigurationError, ValidationError
from titanbot.core.timefmt import now_ms
from titanbot.services.records import ScopedRecordAccessor

MAX_WARN_REASON_LENGTH = 500
MAX_CASES = 1000

BANNED = "Member Banned"
KICKED = "Member Kicked"
TIMED_OUT = "Member Timed Out"
TIMEOUT_REMOVED = "Timeout Removed"
WARNED = "User Warned"
CASE_ACTIONS = (BANNED, KICKED, TIMED_OUT, TIMEOUT_REMOVED, WARNED)


async def add_warning(
    records: ScopedRecordAccessor,
    guild_id: int,
    user_id: int,
    moderator_id: int,
    reason: str | None,
    *,
    now: int | None = None,
) -> tuple[dict[str, Any], int]:
    """Record a warning; returns it with the user's new warning count."""
    text = (reason or "").strip() or "No reason provided."
    if len(text) > MAX_WARN_REASON_LENGTH:
        raise ValidationError(
            "warn reason too long",
            user_message=f"Warning reasons must be {MAX_WARN_REASON_LENGTH} characters or fewer.",
        )
    current = now_ms() if now is None else int(now)

    def apply(record: dict[str, Any]) -> tuple[dict[str, Any], int]:
        warning_id = int(record.get("nextId") or 1)
        warning = {
            "id": warning_id,
            "reason": text,
            "moderatorId": str(moderator_id),
            "timestamp": current,
        }
        record.setdefault("warnings", []).append(warning)
        record["nextId"] = warning_id + 1
        return warning, len(record["warnings"])

    return await records.mutate("warnings", guild_id, user_id, apply)


async def list_warnings(records: ScopedRecordAccessor, guild_id: int, user_id: int) -> list[dict[str, Any]]:
    record = await records.get("warnings", guild_id, user_id)
    return list(record.get("warnings") or [])


async def clear_warnings(records: ScopedRecordAccessor, guild_id: int, user_id: int) -> int:
    """Delete every warning for the user and return how many there were."""
    record = await records.pop("warnings", guild_id, user_id)
    if record is None:
        return 0
    return len(record.get("warnings") or [])


def ensure_can_moderate(actor: Any, target: Any, me: Any, *, owner_id: int | None, action: str) -> None:
    """Reject moderating yourself, the bot, the owner, or anyone at or above either role."""
    if int(target.id) == int(actor.id):
        raise ValidationError(f"{action} self", user_message=f"You cannot {action} yourself.")
    if int(target.id) == int(me.id):
        raise ValidationError(f"{action} bot", user_message=f"You cannot {action} me.")
    if owner_id is not None and int(target.id) == int(owner_id):
        raise ValidationError(f"{action} owner", user_message=f"You cannot {action} the server owner.")
    actor_is_owner = owner_id is not None and int(actor.id) == int(owner_id)
    if not actor_is_owner and target.top_role >= actor.top_role:
        raise ValidationError(
            f"{action} blocked by role hierarchy",
            user_message=f"You cannot {action} a member with an equal or higher role.",
        )
    if target.top_role >= me.top_role:
        raise ConfigurationError(
            f"bot role too low to {action} {target.id}",
            user_message=f"My role is not high enough to {action} that member.",
        )


async def record_case(
    records: ScopedRecordAccessor,
    guild_id: int,
    *,
    action: str,
    target_id: int,
    moderator_id: int,
    reason: str | None,
    duration_minutes: int | None = None,
    now: int | None = None,
) -> dict[str, Any]:
    """Append a case to the guild's moderation log; only the newest MAX_CASES are kept."""
    if action not in CASE_ACTIONS:
        raise ValueError(f"Unknown moderation action: {action}")
    current = now_ms() if now is None else int(now)

    def apply(log: dict[str, Any]) -> dict[str, Any]:
        case_id = int(log.get("nextId") or 1)
        case = {
            "caseId": case_id,
            "action": action,
            "userId": str(target_id),
            "moderatorId": str(moderator_id),
            "reason": (reason or "").strip() or "No reason provided",
            "duration": duration_minutes,
            "createdAt": current,
        }
        cases = log.setdefault("cases", [])
        cases.append(case)
        del cases[:-MAX_CASES]
        log["nextId"] = case_id + 1
        return case

    return await records.mutate("moderation_cases", guild_id, None, apply)


async def list_cases(
    records: ScopedRecordAccessor,
    guild_id: int,
    *,
    action: str | None = None,
    user_id: int | None = None,
    moderator_id: int | None = None,
    limit: int = 10,
) -> list[dict[str, Any]]:
    log = await records.get("moderation_cases", guild_id)
    found = [
        case
        for case in log.get("cases") or []
        if (action is None or case.get("action") == action)
        and (user_id is None or str(case.get("userId")) == str(user_id))
        and (moderator_id is None or str(case.get("moderatorId")) == str(moderator_id))
    ]
    found.sort(key=lambda case: (int(case.get("createdAt") or 0), int(case.get("caseId") or 0)), reverse=True)
    return found[: max(1, int(limit))]
