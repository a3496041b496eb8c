from titanbot.config.settings import (
    COLORS,
    DB_PATH,
    LOG_LEVEL,
    OWNER_IDS,
    TOKEN,
)

__all__ = [
    "COLORS",
    "DB_PATH",
    "LOG_LEVEL",
    "OWNER_IDS",
    "TOKEN",
]
