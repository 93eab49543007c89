import math
from typing import Dict, Hashable, Optional

from citywatch.core.constants import PRUNE_CONFIG


def stale_after_ms(window_ms: int) -> int:
    """Age after which an entry tracked against `window_ms` can be forgotten"""
    return max(window_ms, PRUNE_CONFIG.MIN_WINDOW_MS) * PRUNE_CONFIG.STALE_MULTIPLIER


def retry_after_seconds(remaining_ms: int) -> int:
    return math.ceil(remaining_ms / 1000)


class CooldownMap:
    """Last-fire timestamps keyed by an identity (user, channel, ...)."""

    def __init__(self) -> None:
        self._last_fire: Dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._last_fire)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._last_fire

    def remaining(self, key: Optional[Hashable], cooldown_ms: int, now: int) -> int:
        """Milliseconds until `key` may fire again, 0 when it is not cooling down"""
        if not key or cooldown_ms <= 0:
            return 0

        last = self._last_fire.get(key)
        if last is None:
            return 0
        return max(0, last + cooldown_ms - now)

    def record(self, key: Optional[Hashable], now: int) -> None:
        if key:
            self._last_fire[key] = now

    def try_acquire(self, key: Optional[Hashable], cooldown_ms: int, now: int) -> bool:
        """Record a fire for `key` if it is not cooling down"""
        if self.remaining(key, cooldown_ms, now) > 0:
            return False
        self.record(key, now)
        return True

    def prune(self, older_than_ms: int, now: int) -> int:
        if older_than_ms <= 0:
            return 0

        stale = [key for key, ts in self._last_fire.items() if not ts or now - ts > older_than_ms]
        for key in stale:
            del self._last_fire[key]
        return len(stale)


class CommandCooldown:
    """Per-user and per-channel cooldowns for one rate-limited command.

    Both keys must be clear; the reported wait is the longer of the two.
    """

    def __init__(self) -> None:
        self.by_user = CooldownMap()
        self.by_channel = CooldownMap()

    def remaining(
        self, user_id: int, channel_id: int, user_ms: int, channel_ms: int, now: int
    ) -> int:
        return max(
            self.by_user.remaining(user_id, user_ms, now),
            self.by_channel.remaining(channel_id, channel_ms, now),
        )

    def stamp(self, user_id: int, channel_id: int, now: int) -> None:
        self.by_user.record(user_id, now)
        self.by_channel.record(channel_id, now)

    def prune(self, user_ms: int, channel_ms: int, now: int) -> int:
        return self.by_user.prune(stale_after_ms(user_ms), now) + self.by_channel.prune(
            stale_after_ms(channel_ms), now
        )
