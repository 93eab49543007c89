import dataclasses
import math
from typing import Any, Dict, FrozenSet, Mapping, Optional

from citywatch.core.constants import AUTOMOD_CONFIG, SETTINGS_CONFIG
from citywatch.core.types import ModerationSettings
from citywatch.database.repository import Repository
from citywatch.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SETTINGS = ModerationSettings()

_SET_FIELDS = ("ignored_channel_ids", "bypass_role_ids")


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _id_set(value: Any) -> Optional[FrozenSet[int]]:
    if not isinstance(value, (list, tuple, set, frozenset)):
        return None

    ids = set()
    for item in value:
        try:
            ids.add(int(item))
        except (TypeError, ValueError, OverflowError):
            continue
    return frozenset(ids)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def settings_from_document(document: Optional[Mapping[str, Any]]) -> ModerationSettings:
    """Build a snapshot from a stored document.

    Fields that are missing or of the wrong type keep their defaults, and
    numeric fields are brought into their usable range here so rule code can
    use them as-is.
    """
    if not document:
        return DEFAULT_SETTINGS

    values: Dict[str, Any] = {}

    for field in dataclasses.fields(ModerationSettings):
        raw = document.get(field.name)
        if raw is None:
            continue

        if field.name in SETTINGS_CONFIG.BOOL_FIELDS:
            if isinstance(raw, bool):
                values[field.name] = raw
        elif field.name in _SET_FIELDS:
            ids = _id_set(raw)
            if ids is not None:
                values[field.name] = ids
        elif _is_number(raw):
            values[field.name] = raw

    settings = dataclasses.replace(DEFAULT_SETTINGS, **values)

    max_warn_delay = AUTOMOD_CONFIG.MAX_WARN_DELETE_SECONDS
    limits = SETTINGS_CONFIG
    return dataclasses.replace(
        settings,
        invite_warn_delete_seconds=_clamp(settings.invite_warn_delete_seconds, 0, max_warn_delay),
        spam_warn_delete_seconds=_clamp(settings.spam_warn_delete_seconds, 0, max_warn_delay),
        low_trust_min_account_age_days=_clamp(
            settings.low_trust_min_account_age_days, 0, limits.MAX_ACCOUNT_AGE_DAYS
        ),
        flood_window_seconds=_clamp(settings.flood_window_seconds, 1, limits.MAX_WINDOW_SECONDS),
        flood_max_messages=int(_clamp(settings.flood_max_messages, 1, limits.MAX_MESSAGE_COUNT)),
        repeat_window_seconds=_clamp(settings.repeat_window_seconds, 1, limits.MAX_WINDOW_SECONDS),
        repeat_max_repeats=int(_clamp(settings.repeat_max_repeats, 1, limits.MAX_MESSAGE_COUNT)),
        strike_decay_minutes=_clamp(
            settings.strike_decay_minutes, 1, limits.MAX_STRIKE_DECAY_MINUTES
        ),
        roll_cooldown_user_ms=int(
            _clamp(settings.roll_cooldown_user_ms, 0, limits.MAX_ROLL_COOLDOWN_MS)
        ),
        roll_cooldown_channel_ms=int(
            _clamp(settings.roll_cooldown_channel_ms, 0, limits.MAX_ROLL_COOLDOWN_MS)
        ),
    )


def settings_to_document(settings: ModerationSettings) -> Dict[str, Any]:
    document = dataclasses.asdict(settings)
    for name in _SET_FIELDS:
        document[name] = sorted(document[name])
    return document


class SettingsStore:
    """Holds the current settings snapshot for the configured guild.

    `get()` never touches the database; `refresh()` swaps the whole snapshot
    and keeps the previous one when loading fails.
    """

    def __init__(self, repository: Optional[Repository], guild_id: int):
        self.repo = repository
        self.guild_id = guild_id
        self._snapshot = DEFAULT_SETTINGS

    def get(self) -> ModerationSettings:
        return self._snapshot

    def replace(self, settings: ModerationSettings) -> None:
        self._snapshot = settings

    async def ensure_defaults(self) -> None:
        if self.repo is None:
            return

        try:
            await self.repo.ensure_settings_document(
                self.guild_id, settings_to_document(DEFAULT_SETTINGS)
            )
        except Exception as e:
            logger.warning(f"Could not store default settings for guild {self.guild_id}: {e}")

    async def refresh(self) -> ModerationSettings:
        if self.repo is None:
            return self._snapshot

        try:
            document = await self.repo.get_settings_document(self.guild_id)
        except Exception as e:
            logger.warning(f"Settings reload failed, keeping last snapshot: {e}")
            return self._snapshot

        if document is None:
            return self._snapshot

        self._snapshot = settings_from_document(document)
        return self._snapshot

    async def update(self, **fields: Any) -> ModerationSettings:
        """Persist changed fields and reload the snapshot"""
        if self.repo is None:
            self._snapshot = settings_from_document(
                {**settings_to_document(self._snapshot), **fields}
            )
            return self._snapshot

        await self.repo.update_settings_document(self.guild_id, **fields)
        return await self.refresh()
