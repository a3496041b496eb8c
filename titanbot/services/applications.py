from __future__ import annotations

import logging
import random
import string
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Sequence

from titanbot.config.settings import APPLICATION_SUBMIT_COOLDOWN_MS
from titanbot.core.errors import ConfigurationError, PermissionDeniedError, ValidationError
from titanbot.core.timefmt import now_ms
from titanbot.services.economy import ensure_off_cooldown
from titanbot.services.records import ScopedRecordAccessor, Unchanged

logger = logging.getLogger(__name__)

STATUSES = ("pending", "approved", "denied")
REVIEW_ACTIONS = {"approve": "approved", "deny": "denied"}
MAX_QUESTIONS = 5
MAX_QUESTION_LENGTH = 100
MIN_ANSWER_LENGTH = 10
MAX_ANSWER_LENGTH = 1000
MAX_REVIEW_REASON_LENGTH = 500
MAX_ROLE_NAME_LENGTH = 50

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_application_id(now: int, rng: random.Random | None = None) -> str:
    rand = rng or random
    return f"{int(now)}-{''.join(rand.choice(_ID_ALPHABET) for _ in range(9))}"


# Settings


async def get_settings(records: ScopedRecordAccessor, guild_id: int) -> dict[str, Any]:
    return await records.get("application_settings", guild_id)


def _clean_questions(questions: Sequence[str]) -> list[str]:
    cleaned = [str(question).strip() for question in questions if str(question).strip()]
    if not cleaned:
        raise ValidationError("no questions", user_message="Applications need at least one question.")
    if len(cleaned) > MAX_QUESTIONS:
        raise ValidationError(
            f"{len(cleaned)} questions",
            user_message=f"Applications can have at most {MAX_QUESTIONS} questions.",
        )
    too_long = [question for question in cleaned if len(question) > MAX_QUESTION_LENGTH]
    if too_long:
        raise ValidationError(
            "question too long",
            user_message=f"Each question must be {MAX_QUESTION_LENGTH} characters or fewer.",
        )
    return cleaned


async def update_settings(
    records: ScopedRecordAccessor,
    guild_id: int,
    *,
    enabled: bool | None = None,
    log_channel_id: int | None = None,
    questions: Sequence[str] | None = None,
    add_manager_role: int | None = None,
    remove_manager_role: int | None = None,
) -> dict[str, Any]:
    cleaned = _clean_questions(questions) if questions is not None else None

    def apply(settings: dict[str, Any]) -> dict[str, Any]:
        if enabled is not None:
            settings["enabled"] = bool(enabled)
        if log_channel_id is not None:
            settings["logChannelId"] = str(log_channel_id)
        if cleaned is not None:
            settings["questions"] = cleaned
        managers = [str(role_id) for role_id in settings.get("managerRoles") or []]
        if add_manager_role is not None and str(add_manager_role) not in managers:
            managers.append(str(add_manager_role))
        if remove_manager_role is not None and str(remove_manager_role) in managers:
            managers.remove(str(remove_manager_role))
        settings["managerRoles"] = managers
        return settings

    return await records.mutate("application_settings", guild_id, None, apply)


def is_manager(settings: dict[str, Any], *, manage_guild: bool, role_ids: Iterable[int]) -> bool:
    if manage_guild:
        return True
    managers = {str(role_id) for role_id in settings.get("managerRoles") or []}
    return any(str(role_id) in managers for role_id in role_ids)


def ensure_manager(settings: dict[str, Any], *, manage_guild: bool, role_ids: Iterable[int]) -> None:
    if not is_manager(settings, manage_guild=manage_guild, role_ids=role_ids):
        raise PermissionDeniedError(
            "not an application manager",
            user_message="You do not have permission to manage applications.",
        )


# Roles


async def get_roles(records: ScopedRecordAccessor, guild_id: int) -> list[dict[str, Any]]:
    return await records.get("application_roles", guild_id)


async def add_role(records: ScopedRecordAccessor, guild_id: int, role_id: int, name: str | None = None) -> dict[str, Any]:
    label = (name or "").strip()[:MAX_ROLE_NAME_LENGTH] or "Application Role"

    def apply(roles: list[dict[str, Any]]) -> dict[str, Any]:
        if any(str(entry.get("roleId")) == str(role_id) for entry in roles):
            raise ValidationError(
                f"role {role_id} already configured",
                user_message="This role is already configured for applications.",
            )
        entry = {"roleId": str(role_id), "name": label}
        roles.append(entry)
        return entry

    return await records.mutate("application_roles", guild_id, None, apply)


async def remove_role(records: ScopedRecordAccessor, guild_id: int, role_id: int) -> bool:
    def apply(roles: list[dict[str, Any]]) -> bool | Unchanged:
        kept = [entry for entry in roles if str(entry.get("roleId")) != str(role_id)]
        if len(kept) == len(roles):
            return Unchanged(False)
        roles[:] = kept
        return True

    return await records.mutate("application_roles", guild_id, None, apply)


# Applications


def validate_answers(questions: Sequence[str], answers: Sequence[str]) -> list[dict[str, str]]:
    if len(answers) != len(questions) or not answers:
        raise ValidationError("answer count mismatch", user_message="You must answer all application questions.")
    result: list[dict[str, str]] = []
    for question, answer in zip(questions, answers):
        text = str(answer or "").strip()
        if len(text) < MIN_ANSWER_LENGTH:
            raise ValidationError(
                "answer too short",
                user_message=f"Please provide meaningful answers (at least {MIN_ANSWER_LENGTH} characters).",
            )
        if len(text) > MAX_ANSWER_LENGTH:
            raise ValidationError(
                "answer too long",
                user_message=f"Each answer must be {MAX_ANSWER_LENGTH} characters or fewer.",
            )
        result.append({"question": str(question)[:200], "answer": text})
    return result


async def get_application(records: ScopedRecordAccessor, guild_id: int, application_id: str) -> dict[str, Any] | None:
    record = await records.find("application", guild_id, application_id)
    return record or None


async def submit_application(
    records: ScopedRecordAccessor,
    guild_id: int,
    user_id: int,
    role_id: int,
    answers: Sequence[str],
    *,
    username: str = "",
    now: int | None = None,
    id_factory: Callable[[int], str] = new_application_id,
) -> dict[str, Any]:
    current = now_ms() if now is None else int(now)
    settings = await get_settings(records, guild_id)
    if not settings.get("enabled"):
        raise ConfigurationError(
            f"applications disabled in guild {guild_id}",
            user_message="Applications are currently disabled in this server.",
        )
    role = next(
        (entry for entry in await get_roles(records, guild_id) if str(entry.get("roleId")) == str(role_id)),
        None,
    )
    if role is None:
        raise ValidationError(
            f"role {role_id} not open for applications",
            user_message="That role is not open for applications.",
        )
    answered = validate_answers(settings.get("questions") or [], answers)

    async def apply(user_record: dict[str, Any]) -> dict[str, Any]:
        ensure_off_cooldown(
            user_record.get("lastSubmit"),
            APPLICATION_SUBMIT_COOLDOWN_MS,
            current,
            action="submit another application",
        )
        for existing_id in user_record.get("applications") or []:
            existing = await get_application(records, guild_id, existing_id)
            if existing and existing.get("status") == "pending":
                raise ValidationError(
                    f"user {user_id} already has pending application {existing_id}",
                    user_message="You already have a pending application. Please wait for it to be reviewed.",
                )
        application_id = id_factory(current)
        application = {
            "id": application_id,
            "guildId": str(guild_id),
            "userId": str(user_id),
            "username": username,
            "roleId": str(role_id),
            "roleName": role.get("name"),
            "status": "pending",
            "answers": answered,
            "createdAt": current,
            "reviewer": None,
            "reviewMessage": None,
            "reviewedAt": None,
            "logMessageId": None,
        }
        await records.set("application", guild_id, application_id, application)
        await records.mutate(
            "application_index",
            guild_id,
            None,
            lambda index: index.append(application_id),
        )
        user_record.setdefault("applications", []).append(application_id)
        user_record["lastSubmit"] = current
        return application

    application = await records.mutate("application_user", guild_id, user_id, apply)
    logger.info("application %s submitted by %s in guild %s", application["id"], user_id, guild_id)
    return application


async def review_application(
    records: ScopedRecordAccessor,
    guild_id: int,
    application_id: str,
    *,
    action: str,
    reviewer_id: int,
    reason: str | None = None,
) -> dict[str, Any]:
    status = REVIEW_ACTIONS.get(action)
    if status is None:
        raise ValidationError(f"bad review action {action!r}", user_message="Review action must be approve or deny.")
    message = (reason or "").strip()[:MAX_REVIEW_REASON_LENGTH] or "No reason provided."

    def apply(application: dict[str, Any]) -> dict[str, Any]:
        if not application:
            raise ConfigurationError(
                f"application {application_id} not found",
                user_message="The application you are trying to review does not exist.",
            )
        if application.get("status") != "pending":
            raise ValidationError(
                f"application {application_id} already {application.get('status')}",
                user_message="This application has already been reviewed.",
            )
        application["status"] = status
        application["reviewer"] = str(reviewer_id)
        application["reviewMessage"] = message
        application["reviewedAt"] = datetime.now(timezone.utc).isoformat()
        return application

    application = await records.mutate("application", guild_id, application_id, apply)
    logger.info("application %s %s by %s", application_id, status, reviewer_id)
    return application


async def set_log_message(
    records: ScopedRecordAccessor,
    guild_id: int,
    application_id: str,
    message_id: int,
) -> None:
    def apply(application: dict[str, Any]) -> None:
        if not application:
            raise ConfigurationError(f"application {application_id} not found")
        application["logMessageId"] = str(message_id)

    await records.mutate("application", guild_id, application_id, apply)


async def list_applications(
    records: ScopedRecordAccessor,
    guild_id: int,
    *,
    status: str | None = None,
    user_id: int | None = None,
    limit: int = 25,
) -> list[dict[str, Any]]:
    if status is not None and status not in STATUSES:
        raise ValidationError(f"bad status {status!r}", user_message="Status must be pending, approved or denied.")
    if user_id is not None:
        ids = (await records.get("application_user", guild_id, user_id)).get("applications") or []
    else:
        ids = await records.get("application_index", guild_id)
    found: list[dict[str, Any]] = []
    for application_id in ids:
        application = await get_application(records, guild_id, application_id)
        if application is None:
            continue
        if status is not None and application.get("status") != status:
            continue
        found.append(application)
    found.sort(key=lambda item: int(item.get("createdAt") or 0), reverse=True)
    return found[: max(1, int(limit))]
