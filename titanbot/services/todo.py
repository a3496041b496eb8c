from __future__ import annotations

import random
import string
from datetime import datetime, timezone
from typing import Any

from titanbot.core.errors import PermissionDeniedError, ValidationError
from titanbot.services.records import ScopedRecordAccessor

MAX_TASK_LENGTH = 200
MAX_TASKS = 50
MAX_LIST_NAME_LENGTH = 50
MAX_SHARED_MEMBERS = 25


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _clean_text(text: str) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError("empty task", user_message="The task text cannot be empty.")
    if len(cleaned) > MAX_TASK_LENGTH:
        raise ValidationError(
            "task too long",
            user_message=f"Tasks must be {MAX_TASK_LENGTH} characters or fewer.",
        )
    return cleaned


def _parse_task_id(raw: Any) -> int:
    try:
        return int(str(raw).strip().lstrip("#"))
    except ValueError as exc:
        raise ValidationError(f"bad task id {raw!r}", user_message="Please enter a task number like `3`.") from exc


def _add_task(todo: dict[str, Any], text: str, user_id: int) -> dict[str, Any]:
    tasks = todo.setdefault("tasks", [])
    if len(tasks) >= MAX_TASKS:
        raise ValidationError("todo list full", user_message=f"A list can hold at most {MAX_TASKS} tasks.")
    task_id = int(todo.get("nextId") or 1)
    task = {
        "id": task_id,
        "text": text,
        "completed": False,
        "createdAt": _now_iso(),
        "createdBy": str(user_id),
    }
    tasks.append(task)
    todo["nextId"] = task_id + 1
    return task


def _find_task(todo: dict[str, Any], task_id: int) -> dict[str, Any]:
    for task in todo.get("tasks") or []:
        if int(task.get("id", 0)) == task_id:
            return task
    raise ValidationError(f"task {task_id} missing", user_message=f"There is no task #{task_id}.")


def _complete_task(todo: dict[str, Any], task_id: int, user_id: int) -> dict[str, Any]:
    task = _find_task(todo, task_id)
    if task.get("completed"):
        raise ValidationError(f"task {task_id} already done", user_message=f"Task #{task_id} is already complete.")
    task["completed"] = True
    task["completedBy"] = str(user_id)
    task["completedAt"] = _now_iso()
    return task


# Personal lists


async def add_task(records: ScopedRecordAccessor, guild_id: int, user_id: int, text: str) -> dict[str, Any]:
    cleaned = _clean_text(text)
    return await records.mutate("todo", guild_id, user_id, lambda todo: _add_task(todo, cleaned, user_id))


async def list_tasks(records: ScopedRecordAccessor, guild_id: int, user_id: int) -> list[dict[str, Any]]:
    todo = await records.get("todo", guild_id, user_id)
    return list(todo.get("tasks") or [])


async def complete_task(records: ScopedRecordAccessor, guild_id: int, user_id: int, task_id: Any) -> dict[str, Any]:
    number = _parse_task_id(task_id)
    return await records.mutate("todo", guild_id, user_id, lambda todo: _complete_task(todo, number, user_id))


async def remove_task(records: ScopedRecordAccessor, guild_id: int, user_id: int, task_id: Any) -> dict[str, Any]:
    number = _parse_task_id(task_id)

    def apply(todo: dict[str, Any]) -> dict[str, Any]:
        task = _find_task(todo, number)
        todo["tasks"].remove(task)
        return task

    return await records.mutate("todo", guild_id, user_id, apply)


# Shared lists


def new_list_id(rng: random.Random | None = None) -> str:
    rand = rng or random
    return "".join(rand.choice(string.ascii_lowercase + string.digits) for _ in range(8))


async def create_shared_list(
    records: ScopedRecordAccessor,
    guild_id: int,
    owner_id: int,
    name: str,
    *,
    list_id: str | None = None,
) -> dict[str, Any]:
    title = (name or "").strip()[:MAX_LIST_NAME_LENGTH]
    if not title:
        raise ValidationError("empty list name", user_message="Please give the list a name.")
    identifier = list_id or new_list_id()

    def apply(shared: dict[str, Any]) -> dict[str, Any]:
        if shared:
            raise ValidationError(f"shared list {identifier} exists", user_message="That list id is taken, try again.")
        shared.update(
            {
                "id": identifier,
                "name": title,
                "ownerId": str(owner_id),
                "members": [str(owner_id)],
                "tasks": [],
                "nextId": 1,
                "createdAt": _now_iso(),
            }
        )
        return shared

    return await records.mutate("shared_todo", guild_id, identifier, apply)


def _require_member(shared: dict[str, Any], list_id: str, user_id: int) -> None:
    if not shared:
        raise ValidationError(f"shared list {list_id} missing", user_message="Shared list not found.")
    if str(user_id) not in [str(member) for member in shared.get("members") or []]:
        raise PermissionDeniedError(
            f"user {user_id} not in shared list {list_id}",
            user_message="You don't have access to this list.",
        )


async def get_shared_list(
    records: ScopedRecordAccessor,
    guild_id: int,
    list_id: str,
    user_id: int,
) -> dict[str, Any]:
    shared = await records.find("shared_todo", guild_id, list_id) or {}
    _require_member(shared, list_id, user_id)
    return shared


async def add_shared_member(
    records: ScopedRecordAccessor,
    guild_id: int,
    list_id: str,
    owner_id: int,
    member_id: int,
) -> dict[str, Any]:
    def apply(shared: dict[str, Any]) -> dict[str, Any]:
        _require_member(shared, list_id, owner_id)
        if str(shared.get("ownerId")) != str(owner_id):
            raise PermissionDeniedError(
                f"user {owner_id} does not own list {list_id}",
                user_message="Only the list owner can add members.",
            )
        members = [str(member) for member in shared.get("members") or []]
        if str(member_id) in members:
            raise ValidationError("already member", user_message="That member already has access.")
        if len(members) >= MAX_SHARED_MEMBERS:
            raise ValidationError("list full", user_message=f"Shared lists can have at most {MAX_SHARED_MEMBERS} members.")
        members.append(str(member_id))
        shared["members"] = members
        return shared

    return await records.mutate("shared_todo", guild_id, list_id, apply)


async def add_shared_task(
    records: ScopedRecordAccessor,
    guild_id: int,
    list_id: str,
    user_id: int,
    text: str,
) -> dict[str, Any]:
    cleaned = _clean_text(text)

    def apply(shared: dict[str, Any]) -> dict[str, Any]:
        _require_member(shared, list_id, user_id)
        return _add_task(shared, cleaned, user_id)

    return await records.mutate("shared_todo", guild_id, list_id, apply)


async def complete_shared_task(
    records: ScopedRecordAccessor,
    guild_id: int,
    list_id: str,
    user_id: int,
    task_id: Any,
) -> dict[str, Any]:
    number = _parse_task_id(task_id)

    def apply(shared: dict[str, Any]) -> dict[str, Any]:
        _require_member(shared, list_id, user_id)
        return _complete_task(shared, number, user_id)

    return await records.mutate("shared_todo", guild_id, list_id, apply)
