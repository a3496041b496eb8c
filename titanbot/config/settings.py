import os
from pathlib import Path


_ROOT = Path(__file__).resolve().parents[2]
_TOKEN_PATH = _ROOT / "TOKEN"
TOKEN = (
    _TOKEN_PATH.read_text(encoding="utf-8").strip()
    if _TOKEN_PATH.exists()
    else os.getenv("DISCORD_TOKEN", "").strip()
)
DB_PATH = Path(os.getenv("TITANBOT_DB", str(_ROOT / "data" / "titanbot.db")))
LOG_LEVEL = os.getenv("TITANBOT_LOG_LEVEL", "INFO")

OWNER_IDS = {
    int(part) for part in os.getenv("TITANBOT_OWNER_IDS", "").split(",") if part.strip().isdigit()
}

# ECONOMY
CURRENCY_SYMBOL = "$"
DAILY_AMOUNT = 1000                         # Base daily reward
PREMIUM_BONUS_PERCENT = 10                  # Extra % of daily for members holding the premium role
BASE_BANK_CAPACITY = 10_000                 # Bank capacity at bankLevel 0
BANK_CAPACITY_PER_LEVEL = 5_000             # Extra capacity per bank level
WORK_MIN = 10
WORK_MAX = 100
BEG_MIN = 5
BEG_MAX = 50
LAPTOP_MULTIPLIER = 1.5

# COOLDOWNS (milliseconds)
SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS
DAILY_COOLDOWN_MS = DAY_MS
DAILY_STREAK_WINDOW_MS = 2 * DAY_MS         # Claiming within this window keeps the streak
WORK_COOLDOWN_MS = HOUR_MS
BEG_COOLDOWN_MS = 5 * MINUTE_MS
CRIME_COOLDOWN_MS = 2 * HOUR_MS
ROB_COOLDOWN_MS = 4 * HOUR_MS
GAMBLE_COOLDOWN_MS = 5 * MINUTE_MS
APPLICATION_SUBMIT_COOLDOWN_MS = 5 * MINUTE_MS
FAKE_ACCOUNT_AGE_MS = 7 * DAY_MS              # Accounts younger than this at join count as fake invites
INVITE_CACHE_TTL_SECONDS = 5 * 60

# LEVELING
XP_PER_MESSAGE_MIN = 15
XP_PER_MESSAGE_MAX = 25
XP_COOLDOWN_SECONDS = 60
MAX_LEVEL = 1000

# INTERACTIONS
INTERACTION_TOKEN_TTL_SECONDS = 15 * 60
COLLECTOR_TIMEOUT_SECONDS = 120
BIRTHDAY_CHECK_INTERVAL = 1800              # Seconds between birthday announcement checks
AFK_NICK_PREFIX = "[AFK] "

COLORS = {
    "primary": 0x3498DB,
    "success": 0x2ECC71,
    "error": 0xE74C3C,
    "warning": 0xF1C40F,
    "info": 0x9B59B6,
    "economy": 0xF1C40F,
    "birthday": 0xE91E63,
}
