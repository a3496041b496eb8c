from __future__ import annotations

from typing import Any

from titanbot.services.records import ScopedRecordAccessor

# Commands that can never be switched off, otherwise a guild could lock itself out.
PROTECTED_COMMANDS = frozenset({"togglecommand"})


async def get_guild_config(records: ScopedRecordAccessor, guild_id: int) -> dict[str, Any]:
    return await records.get("guild_config", guild_id)


async def set_guild_config(
    records: ScopedRecordAccessor,
    guild_id: int,
    changes: dict[str, Any],
) -> dict[str, Any]:
    """Shallow-merge ``changes`` onto the stored config and write it back whole."""

    def apply(config: dict[str, Any]) -> dict[str, Any]:
        config.update(changes)
        return config

    return await records.mutate("guild_config", guild_id, None, apply)


def is_log_ignored(config: dict[str, Any], *, user_id: int | None = None, channel_id: int | None = None) -> bool:
    ignore = config.get("logIgnore") or {}
    if user_id is not None and int(user_id) in {int(item) for item in ignore.get("users") or []}:
        return True
    return channel_id is not None and int(channel_id) in {int(item) for item in ignore.get("channels") or []}


def is_command_enabled(config: dict[str, Any] | None, name: str) -> bool:
    if not config:
        return True
    toggles = config.get("enabledCommands") or {}
    # Only an explicit False disables; unknown or missing entries stay enabled.
    return toggles.get(name) is not False


async def set_command_enabled(
    records: ScopedRecordAccessor,
    guild_id: int,
    name: str,
    enabled: bool,
) -> dict[str, Any]:
    if not enabled and name in PROTECTED_COMMANDS:
        raise ValueError(f"/{name} cannot be disabled")

    def apply(config: dict[str, Any]) -> dict[str, Any]:
        toggles = config.get("enabledCommands")
        if not isinstance(toggles, dict):
            toggles = {}
        if enabled:
            toggles.pop(name, None)
        else:
            toggles[name] = False
        config["enabledCommands"] = toggles
        return config

    return await records.mutate("guild_config", guild_id, None, apply)


async def update_leveling_config(
    records: ScopedRecordAccessor,
    guild_id: int,
    **changes: Any,
) -> dict[str, Any]:
    def apply(config: dict[str, Any]) -> dict[str, Any]:
        leveling = dict(config.get("leveling") or {})
        leveling.update(changes)
        config["leveling"] = leveling
        return config

    return await records.mutate("guild_config", guild_id, None, apply)


async def toggle_log_ignore(
    records: ScopedRecordAccessor,
    guild_id: int,
    *,
    kind: str,
    target_id: int,
) -> bool:
    """Flip ``target_id`` in the ``users`` or ``channels`` ignore list; True when now ignored."""
    if kind not in {"users", "channels"}:
        raise ValueError(f"Unknown log ignore kind: {kind}")

    def apply(config: dict[str, Any]) -> bool:
        ignore = config.get("logIgnore")
        if not isinstance(ignore, dict):
            ignore = {"users": [], "channels": []}
        ids = [int(item) for item in ignore.get(kind) or []]
        if int(target_id) in ids:
            ids.remove(int(target_id))
            now_ignored = False
        else:
            ids.append(int(target_id))
            now_ignored = True
        ignore[kind] = ids
        config["logIgnore"] = ignore
        return now_ignored

    return await records.mutate("guild_config", guild_id, None, apply)
