from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class AutomodConfig:
    """Fixed tuning for the automod pipeline."""

    INVITE_WARN_COOLDOWN_MS: int = 60_000
    LOW_TRUST_DM_COOLDOWN_MS: int = 60_000
    SPAM_WARN_COOLDOWN_MS: int = 20_000

    MAX_WARN_DELETE_SECONDS: int = 120
    MIN_TIMEOUT_MINUTES: int = 1
    MAX_TIMEOUT_MINUTES: int = 28 * 24 * 60

    TIMEOUT_STRIKE_THRESHOLD: int = 2

    DAY_MS: int = 86_400_000

    INVITE_PATTERN: str = (
        r"(?:https?://)?(?:www\.)?(?:discord\.gg|discord(?:app)?\.com/invite)/[A-Za-z0-9-]+"
    )
    URL_PATTERN: str = r"https?://"


@dataclass(frozen=True)
class PruneConfig:
    """Staleness policy shared by every in-memory map."""

    SWEEP_INTERVAL_SECONDS: int = 60
    STALE_MULTIPLIER: int = 10
    MIN_WINDOW_MS: int = 60_000


@dataclass(frozen=True)
class SettingsConfig:
    """Settings store refresh behaviour and load limits."""

    REFRESH_INTERVAL_SECONDS: int = 30
    BOOL_FIELDS: Tuple[str, ...] = (
        "invite_auto_delete",
        "invite_warn",
        "low_trust_filter_enabled",
        "low_trust_warn_dm",
        "spam_enabled",
        "spam_warn_enabled",
        "spam_timeout_enabled",
    )

    # Upper bounds applied when documents are loaded
    MAX_WINDOW_SECONDS: int = 86400
    MAX_MESSAGE_COUNT: int = 1000
    MAX_STRIKE_DECAY_MINUTES: int = 43200
    MAX_ACCOUNT_AGE_DAYS: int = 3650
    MAX_ROLL_COOLDOWN_MS: int = 3_600_000


@dataclass(frozen=True)
class ModeratorConfig:
    """Limits for the manual moderator commands."""

    PURGE_MAX_MESSAGES: int = 100
    BULK_DELETE_MAX_AGE_DAYS: int = 14
    TIMEOUT_MAX_MINUTES: int = 10080
    SLOWMODE_MAX_SECONDS: int = 21600


@dataclass(frozen=True)
class DatabaseConfig:
    """Database configuration settings."""

    DEFAULT_PATH: str = "data/citywatch.db"
    TIMEOUT: int = 30
    LOG_RETENTION_DAYS: int = 30


AUTOMOD_CONFIG = AutomodConfig()
PRUNE_CONFIG = PruneConfig()
SETTINGS_CONFIG = SettingsConfig()
MODERATOR_CONFIG = ModeratorConfig()
DATABASE_CONFIG = DatabaseConfig()
