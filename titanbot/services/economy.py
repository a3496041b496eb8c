from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Iterable

from titanbot.config.runtime import get_app_config
from titanbot.config.settings import (
    BANK_CAPACITY_PER_LEVEL,
    BASE_BANK_CAPACITY,
    BEG_COOLDOWN_MS,
    BEG_MAX,
    BEG_MIN,
    CRIME_COOLDOWN_MS,
    CURRENCY_SYMBOL,
    DAILY_AMOUNT,
    DAILY_COOLDOWN_MS,
    DAILY_STREAK_WINDOW_MS,
    GAMBLE_COOLDOWN_MS,
    LAPTOP_MULTIPLIER,
    PREMIUM_BONUS_PERCENT,
    ROB_COOLDOWN_MS,
    WORK_COOLDOWN_MS,
    WORK_MAX,
    WORK_MIN,
)
from titanbot.core.errors import RateLimitError, ValidationError
from titanbot.core.timefmt import format_duration, now_ms
from titanbot.db.store import KeyValueStore
from titanbot.services.records import ScopedRecordAccessor

CRIME_SUCCESS_CHANCE = 0.5
CRIME_REWARD = (50, 250)
CRIME_FINE = (50, 200)
ROB_SUCCESS_CHANCE = 0.6
ROB_MAX_SHARE = 0.3
ROB_FINE = (100, 300)
ROB_MIN_TARGET_WALLET = 500
MAX_BANK_LEVEL = 10
GAMBLE_WIN_CHANCE = 0.4
CLOVER_WIN_BONUS = 0.1
GAMBLE_PAYOUT_MULTIPLIER = 2.0

WORK_JOBS = (
    "worked a shift at a fast food restaurant",
    "fixed bugs as a programmer",
    "worked on a construction site",
    "streamed for a few hours",
    "delivered packages around town",
    "tutored a student",
)
CRIMES = (
    "picked a pocket",
    "sold fake concert tickets",
    "hacked a vending machine",
    "ran an illegal street race",
)


@dataclass(frozen=True)
class EconomySettings:
    currency_symbol: str = CURRENCY_SYMBOL
    daily_amount: int = DAILY_AMOUNT
    premium_bonus_percent: int = PREMIUM_BONUS_PERCENT
    base_bank_capacity: int = BASE_BANK_CAPACITY
    bank_capacity_per_level: int = BANK_CAPACITY_PER_LEVEL
    work_min: int = WORK_MIN
    work_max: int = WORK_MAX
    laptop_multiplier: float = LAPTOP_MULTIPLIER
    beg_min: int = BEG_MIN
    beg_max: int = BEG_MAX

    @classmethod
    def from_store(cls, store: KeyValueStore) -> "EconomySettings":
        return cls(
            currency_symbol=get_app_config("CURRENCY_SYMBOL", store),
            daily_amount=get_app_config("DAILY_AMOUNT", store),
            premium_bonus_percent=get_app_config("PREMIUM_BONUS_PERCENT", store),
            base_bank_capacity=get_app_config("BASE_BANK_CAPACITY", store),
            bank_capacity_per_level=get_app_config("BANK_CAPACITY_PER_LEVEL", store),
            work_min=get_app_config("WORK_MIN", store),
            work_max=get_app_config("WORK_MAX", store),
            laptop_multiplier=get_app_config("LAPTOP_MULTIPLIER", store),
            beg_min=get_app_config("BEG_MIN", store),
            beg_max=get_app_config("BEG_MAX", store),
        )

    def money(self, amount: int) -> str:
        return f"{self.currency_symbol}{int(amount):,}"


DEFAULT_SETTINGS = EconomySettings()


@dataclass(frozen=True)
class ShopItem:
    id: str
    name: str
    price: int
    description: str
    kind: str
    max_quantity: int = 1


SHOP_ITEMS: dict[str, ShopItem] = {
    item.id: item
    for item in (
        ShopItem("laptop", "💻 Laptop", 15_000, "Increases /work earnings by 50%.", "tool"),
        ShopItem(
            "extra_work",
            "Extra Work Shift",
            5_000,
            "Lets you /work once more while on cooldown.",
            "consumable",
            max_quantity=5,
        ),
        ShopItem(
            "bank_upgrade",
            "🏦 Bank Upgrade",
            15_000,
            "Raises your bank capacity by one level.",
            "upgrade",
            max_quantity=MAX_BANK_LEVEL,
        ),
        ShopItem("personal_safe", "🔒 Personal Safe", 30_000, "Stops other members from robbing you.", "tool"),
        ShopItem(
            "lucky_clover",
            "🍀 Lucky Clover",
            10_000,
            "Used up by your next /gamble to raise the win chance by 10%.",
            "consumable",
            max_quantity=10,
        ),
    )
}


def max_bank_capacity(record: dict[str, Any], settings: EconomySettings = DEFAULT_SETTINGS) -> int:
    level = max(0, int(record.get("bankLevel") or 0))
    return settings.base_bank_capacity + level * settings.bank_capacity_per_level


def cooldown_remaining(last: int | None, duration_ms: int, now: int) -> int:
    if not last:
        return 0
    return max(0, int(last) + int(duration_ms) - int(now))


def ensure_off_cooldown(last: int | None, duration_ms: int, now: int, *, action: str) -> None:
    remaining = cooldown_remaining(last, duration_ms, now)
    if remaining > 0:
        raise RateLimitError(
            f"{action} on cooldown",
            remaining_ms=remaining,
            user_message=f"You can {action} again in **{format_duration(remaining)}**.",
        )


def parse_amount(raw: Any) -> int | str:
    """Accept a positive integer or ``"all"``."""
    text = str(raw).strip().lower().replace(",", "")
    if text in {"all", "max"}:
        return "all"
    try:
        amount = int(text)
    except ValueError as exc:
        raise ValidationError(
            f"invalid amount {raw!r}",
            user_message="Please enter a whole number or `all`.",
        ) from exc
    if amount <= 0:
        raise ValidationError(f"non-positive amount {amount}", user_message="The amount must be greater than zero.")
    return amount


@dataclass
class EconomyResult:
    amount: int
    record: dict[str, Any]
    detail: str = ""
    bonus: int = 0
    streak: int = 0
    success: bool = True
    consumed_item: str | None = None


@dataclass
class TransferResult:
    amount: int
    source: dict[str, Any]
    target: dict[str, Any]
    success: bool = True
    protected: bool = False


async def get_balance(records: ScopedRecordAccessor, guild_id: int, user_id: int) -> dict[str, Any]:
    return await records.get("economy", guild_id, user_id)


async def claim_daily(
    records: ScopedRecordAccessor,
    guild_id: int,
    user_id: int,
    *,
    premium: bool = False,
    settings: EconomySettings = DEFAULT_SETTINGS,
    now: int | None = None,
) -> EconomyResult:
    current = now_ms() if now is None else int(now)

    def apply(record: dict[str, Any]) -> EconomyResult:
        last = int(record.get("lastDaily") or 0)
        ensure_off_cooldown(last, DAILY_COOLDOWN_MS, current, action="claim your daily reward")
        if last and current - last <= DAILY_STREAK_WINDOW_MS:
            streak = int(record.get("dailyStreak") or 0) + 1
        else:
            streak = 1
        amount = settings.daily_amount
        bonus = amount * settings.premium_bonus_percent // 100 if premium else 0
        record["wallet"] = int(record.get("wallet") or 0) + amount + bonus
        record["lastDaily"] = current
        record["dailyStreak"] = streak
        return EconomyResult(amount=amount + bonus, bonus=bonus, streak=streak, record=record)

    return await records.mutate("economy", guild_id, user_id, apply)


async def work(
    records: ScopedRecordAccessor,
    guild_id: int,
    user_id: int,
    *,
    settings: EconomySettings = DEFAULT_SETTINGS,
    now: int | None = None,
    rng: random.Random | None = None,
) -> EconomyResult:
    current = now_ms() if now is None else int(now)
    rand = rng or random

    def apply(record: dict[str, Any]) -> EconomyResult:
        inventory = record.setdefault("inventory", {})
        consumed = None
        if cooldown_remaining(record.get("lastWork"), WORK_COOLDOWN_MS, current) > 0:
            if int(inventory.get("extra_work") or 0) <= 0:
                ensure_off_cooldown(record.get("lastWork"), WORK_COOLDOWN_MS, current, action="work")
            inventory["extra_work"] = int(inventory["extra_work"]) - 1
            if inventory["extra_work"] <= 0:
                del inventory["extra_work"]
            consumed = "extra_work"
        low, high = sorted((settings.work_min, settings.work_max))
        earned = rand.randint(low, high)
        if int(inventory.get("laptop") or 0) > 0:
            earned = int(earned * settings.laptop_multiplier)
        record["wallet"] = int(record.get("wallet") or 0) + earned
        record["lastWork"] = current
        return EconomyResult(amount=earned, record=record, detail=rand.choice(WORK_JOBS), consumed_item=consumed)

    return await records.mutate("economy", guild_id, user_id, apply)


async def beg(
    records: ScopedRecordAccessor,
    guild_id: int,
    user_id: int,
    *,
    settings: EconomySettings = DEFAULT_SETTINGS,
    now: int | None = None,
    rng: random.Random | None = None,
) -> EconomyResult:
    current = now_ms() if now is None else int(now)
    rand = rng or random

    def apply(record: dict[str, Any]) -> EconomyResult:
        ensure_off_cooldown(record.get("lastBeg"), BEG_COOLDOWN_MS, current, action="beg")
        low, high = sorted((settings.beg_min, settings.beg_max))
        earned = rand.randint(low, high)
        record["wallet"] = int(record.get("wallet") or 0) + earned
        record["lastBeg"] = current
        return EconomyResult(amount=earned, record=record)

    return await records.mutate("economy", guild_id, user_id, apply)


async def crime(
    records: ScopedRecordAccessor,
    guild_id: int,
    user_id: int,
    *,
    now: int | None = None,
    rng: random.Random | None = None,
) -> EconomyResult:
    current = now_ms() if now is None else int(now)
    rand = rng or random

    def apply(record: dict[str, Any]) -> EconomyResult:
        ensure_off_cooldown(record.get("lastCrime"), CRIME_COOLDOWN_MS, current, action="commit a crime")
        wallet = int(record.get("wallet") or 0)
        detail = rand.choice(CRIMES)
        record["lastCrime"] = current
        if rand.random() < CRIME_SUCCESS_CHANCE:
            earned = rand.randint(*CRIME_REWARD)
            record["wallet"] = wallet + earned
            return EconomyResult(amount=earned, record=record, detail=detail)
        fine = min(wallet, rand.randint(*CRIME_FINE))
        record["wallet"] = wallet - fine
        return EconomyResult(amount=fine, record=record, detail=detail, success=False)

    return await records.mutate("economy", guild_id, user_id, apply)


async def rob(
    records: ScopedRecordAccessor,
    guild_id: int,
    robber_id: int,
    target_id: int,
    *,
    target_is_bot: bool = False,
    now: int | None = None,
    rng: random.Random | None = None,
) -> TransferResult:
    if int(robber_id) == int(target_id):
        raise ValidationError("self rob", user_message="You cannot rob yourself.")
    if target_is_bot:
        raise ValidationError("bot rob", user_message="You cannot rob a bot.")
    current = now_ms() if now is None else int(now)
    rand = rng or random

    def apply(pair: list[dict[str, Any]]) -> TransferResult:
        robber, target = pair
        ensure_off_cooldown(robber.get("lastRob"), ROB_COOLDOWN_MS, current, action="rob someone")
        target_wallet = int(target.get("wallet") or 0)
        if target_wallet < ROB_MIN_TARGET_WALLET:
            raise ValidationError(
                f"target wallet {target_wallet} below rob minimum",
                user_message=f"They need at least {DEFAULT_SETTINGS.money(ROB_MIN_TARGET_WALLET)} cash to be worth robbing.",
            )
        robber["lastRob"] = current
        if int((target.get("inventory") or {}).get("personal_safe") or 0) > 0:
            return TransferResult(amount=0, source=robber, target=target, success=False, protected=True)
        robber_wallet = int(robber.get("wallet") or 0)
        if rand.random() < ROB_SUCCESS_CHANCE:
            stolen = max(1, int(target_wallet * rand.uniform(0.1, ROB_MAX_SHARE)))
            target["wallet"] = target_wallet - stolen
            robber["wallet"] = robber_wallet + stolen
            return TransferResult(amount=stolen, source=robber, target=target)
        fine = min(robber_wallet, rand.randint(*ROB_FINE))
        robber["wallet"] = robber_wallet - fine
        return TransferResult(amount=fine, source=robber, target=target, success=False)

    return await records.mutate_many(
        [("economy", guild_id, robber_id), ("economy", guild_id, target_id)],
        apply,
    )


async def deposit(
    records: ScopedRecordAccessor,
    guild_id: int,
    user_id: int,
    amount: int | str,
    *,
    settings: EconomySettings = DEFAULT_SETTINGS,
) -> EconomyResult:
    def apply(record: dict[str, Any]) -> EconomyResult:
        wallet = int(record.get("wallet") or 0)
        bank = int(record.get("bank") or 0)
        if wallet <= 0:
            raise ValidationError("empty wallet", user_message="You don't have any cash to deposit.")
        space = max_bank_capacity(record, settings) - bank
        if space <= 0:
            raise ValidationError(
                "bank full",
                user_message="Your bank is full. Buy a bank upgrade to store more.",
            )
        requested = wallet if amount == "all" else int(amount)
        if requested > wallet:
            raise ValidationError(
                f"deposit {requested} exceeds wallet {wallet}",
                user_message=f"You only have {settings.money(wallet)} in cash.",
            )
        moved = min(requested, space)
        record["wallet"] = wallet - moved
        record["bank"] = bank + moved
        detail = "" if moved == requested else f"Only {settings.money(moved)} fit in your bank."
        return EconomyResult(amount=moved, record=record, detail=detail)

    return await records.mutate("economy", guild_id, user_id, apply)


async def withdraw(
    records: ScopedRecordAccessor,
    guild_id: int,
    user_id: int,
    amount: int | str,
    *,
    settings: EconomySettings = DEFAULT_SETTINGS,
) -> EconomyResult:
    def apply(record: dict[str, Any]) -> EconomyResult:
        bank = int(record.get("bank") or 0)
        if bank <= 0:
            raise ValidationError("empty bank", user_message="Your bank account is empty.")
        requested = bank if amount == "all" else int(amount)
        if requested > bank:
            raise ValidationError(
                f"withdraw {requested} exceeds bank {bank}",
                user_message=f"You only have {settings.money(bank)} in the bank.",
            )
        record["bank"] = bank - requested
        record["wallet"] = int(record.get("wallet") or 0) + requested
        return EconomyResult(amount=requested, record=record)

    return await records.mutate("economy", guild_id, user_id, apply)


async def pay(
    records: ScopedRecordAccessor,
    guild_id: int,
    sender_id: int,
    recipient_id: int,
    amount: int,
    *,
    recipient_is_bot: bool = False,
    settings: EconomySettings = DEFAULT_SETTINGS,
) -> TransferResult:
    if int(sender_id) == int(recipient_id):
        raise ValidationError("self pay", user_message="You cannot pay yourself.")
    if recipient_is_bot:
        raise ValidationError("bot pay", user_message="You cannot pay a bot.")
    if int(amount) <= 0:
        raise ValidationError(f"non-positive payment {amount}", user_message="The amount must be greater than zero.")

    def apply(pair: list[dict[str, Any]]) -> TransferResult:
        sender, recipient = pair
        wallet = int(sender.get("wallet") or 0)
        if wallet < int(amount):
            raise ValidationError(
                f"payment {amount} exceeds wallet {wallet}",
                user_message=f"You only have {settings.money(wallet)} in cash.",
            )
        sender["wallet"] = wallet - int(amount)
        recipient["wallet"] = int(recipient.get("wallet") or 0) + int(amount)
        return TransferResult(amount=int(amount), source=sender, target=recipient)

    return await records.mutate_many(
        [("economy", guild_id, sender_id), ("economy", guild_id, recipient_id)],
        apply,
    )


async def buy_item(
    records: ScopedRecordAccessor,
    guild_id: int,
    user_id: int,
    item_id: str,
    quantity: int = 1,
    *,
    settings: EconomySettings = DEFAULT_SETTINGS,
) -> EconomyResult:
    item = SHOP_ITEMS.get(str(item_id).strip().lower())
    if item is None:
        raise ValidationError(f"unknown item {item_id!r}", user_message="That item is not in the shop.")
    quantity = int(quantity)
    if quantity <= 0:
        raise ValidationError(f"bad quantity {quantity}", user_message="Quantity must be at least 1.")

    def apply(record: dict[str, Any]) -> EconomyResult:
        inventory = record.setdefault("inventory", {})
        if item.kind == "upgrade":
            owned = int(record.get("bankLevel") or 0)
        else:
            owned = int(inventory.get(item.id) or 0)
        if owned + quantity > item.max_quantity:
            if item.max_quantity == 1:
                message = f"You already own a {item.name}."
            else:
                message = f"You can hold at most {item.max_quantity} of {item.name} (you have {owned})."
            raise ValidationError(f"{item.id} limit reached", user_message=message)
        cost = item.price * quantity
        wallet = int(record.get("wallet") or 0)
        if wallet < cost:
            raise ValidationError(
                f"cost {cost} exceeds wallet {wallet}",
                user_message=f"You need {settings.money(cost)} in cash but only have {settings.money(wallet)}.",
            )
        record["wallet"] = wallet - cost
        if item.kind == "upgrade":
            record["bankLevel"] = owned + quantity
            upgrades = record.setdefault("upgrades", {})
            upgrades[item.id] = owned + quantity
        else:
            inventory[item.id] = owned + quantity
        return EconomyResult(amount=cost, record=record, detail=item.name)

    return await records.mutate("economy", guild_id, user_id, apply)


async def gamble(
    records: ScopedRecordAccessor,
    guild_id: int,
    user_id: int,
    amount: int | str,
    *,
    settings: EconomySettings = DEFAULT_SETTINGS,
    now: int | None = None,
    rng: random.Random | None = None,
) -> EconomyResult:
    """Bet cash on a coin flip weighted against the player.

    A lucky clover, when owned, is always used up and adds to the win chance.
    Winning pays the bet times the payout multiplier; losing costs the bet.
    """
    current = now_ms() if now is None else int(now)
    rand = rng or random

    def apply(record: dict[str, Any]) -> EconomyResult:
        ensure_off_cooldown(record.get("lastGamble"), GAMBLE_COOLDOWN_MS, current, action="gamble")
        wallet = int(record.get("wallet") or 0)
        if wallet <= 0:
            raise ValidationError("empty wallet", user_message="You don't have any cash to gamble.")
        bet = wallet if amount == "all" else int(amount)
        if bet > wallet:
            raise ValidationError(
                f"bet {bet} exceeds wallet {wallet}",
                user_message=f"You only have {settings.money(wallet)} in cash.",
            )
        inventory = record.setdefault("inventory", {})
        chance = GAMBLE_WIN_CHANCE
        consumed = None
        if int(inventory.get("lucky_clover") or 0) > 0:
            inventory["lucky_clover"] = int(inventory["lucky_clover"]) - 1
            if inventory["lucky_clover"] <= 0:
                del inventory["lucky_clover"]
            chance += CLOVER_WIN_BONUS
            consumed = "lucky_clover"
        record["lastGamble"] = current
        if rand.random() < chance:
            winnings = int(bet * GAMBLE_PAYOUT_MULTIPLIER)
            record["wallet"] = wallet + winnings
            return EconomyResult(amount=winnings, record=record, consumed_item=consumed)
        record["wallet"] = wallet - bet
        return EconomyResult(amount=bet, record=record, success=False, consumed_item=consumed)

    return await records.mutate("economy", guild_id, user_id, apply)


def inventory_entries(record: dict[str, Any]) -> list[tuple[str, str, int]]:
    """``(item id, display name, quantity)`` for everything the record holds, shop order first."""
    held = {str(item_id): int(count or 0) for item_id, count in (record.get("inventory") or {}).items()}
    bank_level = int(record.get("bankLevel") or 0)
    if bank_level > 0:
        held["bank_upgrade"] = bank_level
    entries: list[tuple[str, str, int]] = []
    for item_id, item in SHOP_ITEMS.items():
        if held.get(item_id, 0) > 0:
            entries.append((item_id, item.name, held.pop(item_id)))
    for item_id, count in sorted(held.items()):
        if count > 0:
            entries.append((item_id, item_id.replace("_", " ").title(), count))
    return entries


async def economy_leaderboard(
    records: ScopedRecordAccessor,
    guild_id: int,
    member_ids: Iterable[int],
    *,
    limit: int = 10,
) -> list[tuple[int, int]]:
    """Rank members by wallet + bank; members with no record are skipped."""
    rows: list[tuple[int, int]] = []
    for member_id in member_ids:
        record = await records.find("economy", guild_id, member_id)
        if record is None:
            continue
        total = int(record.get("wallet") or 0) + int(record.get("bank") or 0)
        if total > 0:
            rows.append((int(member_id), total))
    rows.sort(key=lambda row: (-row[1], row[0]))
    return rows[: max(1, int(limit))]
