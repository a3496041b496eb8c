from __future__ import annotations

import asyncio
import copy
import inspect
import logging
import weakref
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from titanbot.core.errors import DatabaseError
from titanbot.db.store import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainSpec:
    default: Callable[[], Any]
    guild_scoped: bool = False
    description: str = ""


def _economy_default() -> dict:
    return {
        "wallet": 0,
        "bank": 0,
        "bankLevel": 0,
        "inventory": {},
        "upgrades": {},
        "cooldowns": {},
        "lastDaily": 0,
        "lastWork": 0,
        "lastCrime": 0,
        "lastRob": 0,
        "lastBeg": 0,
        "lastGamble": 0,
        "dailyStreak": 0,
    }


def _level_default() -> dict:
    return {"level": 0, "xp": 0, "totalXp": 0, "lastMessage": 0}


def _invites_default() -> dict:
    return {
        "invited": [],
        "left": 0,
        "fake": 0,
        "invitedBy": None,
        "inviteCode": None,
        "isFake": False,
        "joinedAt": 0,
    }


def _guild_config_default() -> dict:
    return {
        "logIgnore": {"users": [], "channels": []},
        "enabledCommands": {},
        "premiumRoleId": None,
        "reportChannelId": None,
        "birthdayChannelId": None,
        "autoRole": None,
        "logChannelId": None,
        "leveling": {
            "enabled": True,
            "announceLevelUp": True,
            "levelUpChannelId": None,
            "levelUpMessage": "{user} has leveled up to level {level}!",
        },
    }


def _application_settings_default() -> dict:
    return {
        "enabled": False,
        "logChannelId": None,
        "managerRoles": [],
        "questions": [
            "Why do you want this role?",
            "What experience do you have that makes you a good fit?",
            "How much time can you dedicate to this role?",
        ],
    }


DOMAINS: dict[str, DomainSpec] = {
    "economy": DomainSpec(_economy_default, description="Wallet, bank, inventory and cooldowns."),
    "level": DomainSpec(_level_default, description="Level, XP and total XP."),
    "afk": DomainSpec(dict, description="Presence of the record is the AFK flag."),
    "warnings": DomainSpec(lambda: {"warnings": [], "nextId": 1}),
    "moderation_cases": DomainSpec(lambda: {"cases": [], "nextId": 1}, guild_scoped=True),
    "invites": DomainSpec(_invites_default, description="Who a member invited and who invited them."),
    "todo": DomainSpec(lambda: {"tasks": [], "nextId": 1}),
    "shared_todo": DomainSpec(dict),
    "application": DomainSpec(dict),
    "application_user": DomainSpec(lambda: {"applications": [], "lastSubmit": 0}),
    "guild_config": DomainSpec(_guild_config_default, guild_scoped=True),
    "birthdays": DomainSpec(dict, guild_scoped=True, description="userId -> {month, day}."),
    "birthday_announce": DomainSpec(lambda: {"date": None}, guild_scoped=True),
    "application_settings": DomainSpec(_application_settings_default, guild_scoped=True),
    "application_roles": DomainSpec(list, guild_scoped=True),
    "application_index": DomainSpec(list, guild_scoped=True),
}


def _spec(domain: str) -> DomainSpec:
    spec = DOMAINS.get(domain)
    if spec is None:
        raise KeyError(f"Unknown record domain: {domain}")
    return spec


def record_key(domain: str, guild_id: int | str, entity_id: int | str | None = None) -> str:
    spec = _spec(domain)
    if spec.guild_scoped or entity_id is None:
        return f"{domain}:{guild_id}"
    return f"{domain}:{guild_id}:{entity_id}"


def merge_defaults(stored: Any, defaults: Any) -> Any:
    """Overlay ``stored`` onto a copy of ``defaults``; nested dicts are filled too."""
    if not isinstance(defaults, dict) or not isinstance(stored, dict):
        return copy.deepcopy(stored)
    merged = copy.deepcopy(defaults)
    for name, value in stored.items():
        if isinstance(value, dict) and isinstance(merged.get(name), dict):
            merged[name] = merge_defaults(value, merged[name])
        else:
            merged[name] = copy.deepcopy(value)
    return merged


def _shape_matches(value: Any, defaults: Any) -> bool:
    if isinstance(defaults, dict):
        return isinstance(value, dict)
    if isinstance(defaults, list):
        return isinstance(value, list)
    return True


_MISSING = object()


@dataclass(frozen=True)
class Unchanged:
    """Returned from a mutation to hand back ``value`` without writing the record."""

    value: Any = None


def _unwrap(result: Any) -> tuple[Any, bool]:
    if isinstance(result, Unchanged):
        return result.value, False
    return result, True


class ScopedRecordAccessor:
    """Read-modify-write access to every record domain over a KeyValueStore."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def _load(self, domain: str, key: str, *, strict: bool) -> Any:
        spec = _spec(domain)
        try:
            raw = await asyncio.to_thread(self.store.get, key, _MISSING)
        except DatabaseError as exc:
            if strict:
                raise
            logger.warning("read of %s failed, using defaults: %s", key, exc.message)
            return spec.default()
        if raw is _MISSING or raw is None:
            return spec.default()
        defaults = spec.default()
        if not _shape_matches(raw, defaults):
            logger.warning("record %s has unexpected shape %s, using defaults", key, type(raw).__name__)
            return defaults
        return merge_defaults(raw, defaults)

    async def get(self, domain: str, guild_id: int | str, entity_id: int | str | None = None) -> Any:
        return await self._load(domain, record_key(domain, guild_id, entity_id), strict=False)

    async def find(self, domain: str, guild_id: int | str, entity_id: int | str | None = None) -> Any | None:
        """Like ``get`` but returns ``None`` when nothing was ever written."""
        key = record_key(domain, guild_id, entity_id)
        try:
            raw = await asyncio.to_thread(self.store.get, key, None)
        except DatabaseError as exc:
            logger.warning("read of %s failed: %s", key, exc.message)
            return None
        if raw is None:
            return None
        defaults = _spec(domain).default()
        if not _shape_matches(raw, defaults):
            logger.warning("record %s has unexpected shape %s, ignoring it", key, type(raw).__name__)
            return None
        return merge_defaults(raw, defaults)

    async def set(
        self,
        domain: str,
        guild_id: int | str,
        entity_id: int | str | None,
        record: Any,
    ) -> None:
        key = record_key(domain, guild_id, entity_id)
        async with self._lock_for(key):
            await asyncio.to_thread(self.store.set, key, record)

    async def delete(self, domain: str, guild_id: int | str, entity_id: int | str | None = None) -> bool:
        key = record_key(domain, guild_id, entity_id)
        async with self._lock_for(key):
            return await asyncio.to_thread(self.store.delete, key)

    async def pop(self, domain: str, guild_id: int | str, entity_id: int | str | None = None) -> Any | None:
        """Delete the record under its lock and return what it held, or ``None``."""
        key = record_key(domain, guild_id, entity_id)
        async with self._lock_for(key):
            raw = await asyncio.to_thread(self.store.get, key, None)
            if raw is None:
                return None
            await asyncio.to_thread(self.store.delete, key)
            return merge_defaults(raw, _spec(domain).default())

    async def mutate(
        self,
        domain: str,
        guild_id: int | str,
        entity_id: int | str | None,
        mutation: Callable[[Any], Any | Awaitable[Any]],
    ) -> Any:
        """Fetch, apply ``mutation`` in place and persist, one writer per key.

        Whatever ``mutation`` returns is handed back. If it raises, or returns
        an ``Unchanged``, nothing is written. The read is strict so a failing
        store never gets defaults written over a real record.
        """
        key = record_key(domain, guild_id, entity_id)
        async with self._lock_for(key):
            record = await self._load(domain, key, strict=True)
            result = mutation(record)
            if inspect.isawaitable(result):
                result = await result
            result, dirty = _unwrap(result)
            if dirty:
                await asyncio.to_thread(self.store.set, key, record)
            return result

    async def mutate_many(
        self,
        targets: Sequence[tuple[str, int | str, int | str | None]],
        mutation: Callable[[list[Any]], Any | Awaitable[Any]],
    ) -> Any:
        """Multi-key variant of ``mutate``; locks are taken in key order."""
        keys = [record_key(domain, guild_id, entity_id) for domain, guild_id, entity_id in targets]
        if len(set(keys)) != len(keys):
            raise ValueError("mutate_many targets must be distinct")
        ordered = sorted(keys)
        held: list[asyncio.Lock] = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                await lock.acquire()
                held.append(lock)
            records = [
                await self._load(domain, key, strict=True)
                for (domain, _guild, _entity), key in zip(targets, keys)
            ]
            result = mutation(records)
            if inspect.isawaitable(result):
                result = await result
            result, dirty = _unwrap(result)
            if dirty:
                for key, record in zip(keys, records):
                    await asyncio.to_thread(self.store.set, key, record)
            return result
        finally:
            for lock in reversed(held):
                lock.release()
