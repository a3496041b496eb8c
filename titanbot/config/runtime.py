from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from titanbot.config.settings import (
    BANK_CAPACITY_PER_LEVEL,
    BASE_BANK_CAPACITY,
    BEG_MAX,
    BEG_MIN,
    BIRTHDAY_CHECK_INTERVAL,
    CURRENCY_SYMBOL,
    DAILY_AMOUNT,
    LAPTOP_MULTIPLIER,
    PREMIUM_BONUS_PERCENT,
    WORK_MAX,
    WORK_MIN,
    XP_COOLDOWN_SECONDS,
    XP_PER_MESSAGE_MAX,
    XP_PER_MESSAGE_MIN,
)
from titanbot.core.errors import DatabaseError
from titanbot.db.store import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppConfigSpec:
    default: Any
    cast: Callable[[str], Any]
    description: str


APP_CONFIG_SPECS: dict[str, AppConfigSpec] = {
    "CURRENCY_SYMBOL": AppConfigSpec(
        default=str(CURRENCY_SYMBOL),
        cast=str,
        description="Symbol shown before money amounts.",
    ),
    "DAILY_AMOUNT": AppConfigSpec(
        default=int(DAILY_AMOUNT),
        cast=int,
        description="Base reward for /daily.",
    ),
    "PREMIUM_BONUS_PERCENT": AppConfigSpec(
        default=int(PREMIUM_BONUS_PERCENT),
        cast=int,
        description="Extra daily percentage for members with the premium role.",
    ),
    "BASE_BANK_CAPACITY": AppConfigSpec(
        default=int(BASE_BANK_CAPACITY),
        cast=int,
        description="Bank capacity at bank level 0.",
    ),
    "BANK_CAPACITY_PER_LEVEL": AppConfigSpec(
        default=int(BANK_CAPACITY_PER_LEVEL),
        cast=int,
        description="Bank capacity added per bank upgrade.",
    ),
    "WORK_MIN": AppConfigSpec(
        default=int(WORK_MIN),
        cast=int,
        description="Minimum /work payout.",
    ),
    "WORK_MAX": AppConfigSpec(
        default=int(WORK_MAX),
        cast=int,
        description="Maximum /work payout.",
    ),
    "LAPTOP_MULTIPLIER": AppConfigSpec(
        default=float(LAPTOP_MULTIPLIER),
        cast=float,
        description="Work payout multiplier for laptop owners.",
    ),
    "BEG_MIN": AppConfigSpec(
        default=int(BEG_MIN),
        cast=int,
        description="Minimum /beg payout.",
    ),
    "BEG_MAX": AppConfigSpec(
        default=int(BEG_MAX),
        cast=int,
        description="Maximum /beg payout.",
    ),
    "XP_PER_MESSAGE_MIN": AppConfigSpec(
        default=int(XP_PER_MESSAGE_MIN),
        cast=int,
        description="Minimum XP granted per counted message.",
    ),
    "XP_PER_MESSAGE_MAX": AppConfigSpec(
        default=int(XP_PER_MESSAGE_MAX),
        cast=int,
        description="Maximum XP granted per counted message.",
    ),
    "XP_COOLDOWN_SECONDS": AppConfigSpec(
        default=int(XP_COOLDOWN_SECONDS),
        cast=int,
        description="Seconds between messages that earn XP.",
    ),
    "BIRTHDAY_CHECK_INTERVAL": AppConfigSpec(
        default=int(BIRTHDAY_CHECK_INTERVAL),
        cast=int,
        description="Seconds between birthday announcement checks.",
    ),
}


def _state_key(name: str) -> str:
    return f"config:{name}"


def _normalize(name: str, value: Any) -> Any:
    if name == "CURRENCY_SYMBOL":
        text = str(value).strip()
        return text or str(CURRENCY_SYMBOL)
    if name == "DAILY_AMOUNT":
        return max(0, int(value))
    if name == "PREMIUM_BONUS_PERCENT":
        return max(0, min(1000, int(value)))
    if name == "BASE_BANK_CAPACITY":
        return max(0, int(value))
    if name == "BANK_CAPACITY_PER_LEVEL":
        return max(0, int(value))
    if name in {"WORK_MIN", "WORK_MAX", "BEG_MIN", "BEG_MAX"}:
        return max(0, int(value))
    if name == "LAPTOP_MULTIPLIER":
        return max(1.0, float(value))
    if name in {"XP_PER_MESSAGE_MIN", "XP_PER_MESSAGE_MAX"}:
        return max(0, int(value))
    if name == "XP_COOLDOWN_SECONDS":
        return max(0, int(value))
    if name == "BIRTHDAY_CHECK_INTERVAL":
        return max(60, int(value))
    return value


def _spec_for(name: str) -> AppConfigSpec:
    spec = APP_CONFIG_SPECS.get(name)
    if spec is None:
        raise KeyError(f"Unknown app config: {name}")
    return spec


def get_app_config(name: str, store: KeyValueStore) -> Any:
    spec = _spec_for(name)
    try:
        raw = store.get(_state_key(name))
    except DatabaseError as exc:
        logger.warning("could not read app config %s: %s", name, exc.message)
        raw = None
    if raw is None:
        return _normalize(name, spec.default)
    try:
        parsed = spec.cast(raw)
    except (TypeError, ValueError):
        parsed = spec.default
    return _normalize(name, parsed)


def set_app_config(name: str, value: Any, store: KeyValueStore) -> Any:
    spec = _spec_for(name)
    try:
        parsed = spec.cast(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} expects a {spec.cast.__name__} value") from exc
    normalized = _normalize(name, parsed)
    store.set(_state_key(name), normalized)
    return normalized


def get_all_app_configs(store: KeyValueStore) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for name, spec in APP_CONFIG_SPECS.items():
        value = get_app_config(name, store)
        rows.append(
            {
                "name": name,
                "value": value,
                "default": _normalize(name, spec.default),
                "type": spec.cast.__name__,
                "description": spec.description,
            }
        )
    return rows
