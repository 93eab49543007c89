from typing import Dict, Optional

from citywatch.core.types import ActivityWindow, RepeatState, StrikeState


class SlidingWindowTracker:
    """Per-user message timestamps used for flood detection."""

    def __init__(self) -> None:
        self._windows: Dict[int, ActivityWindow] = {}

    def __len__(self) -> int:
        return len(self._windows)

    def get(self, user_id: int) -> Optional[ActivityWindow]:
        return self._windows.get(user_id)

    def observe(self, user_id: int, now: int, flood_window_ms: int, repeat_window_ms: int) -> int:
        """Record a message and return how many fall inside the flood window"""
        horizon = max(flood_window_ms, repeat_window_ms)

        window = self._windows.setdefault(user_id, ActivityWindow())
        window.timestamps = [ts for ts in window.timestamps if now - ts <= horizon]
        window.timestamps.append(now)

        return sum(1 for ts in window.timestamps if now - ts <= flood_window_ms)

    def prune(self, older_than_ms: int, now: int) -> int:
        stale = [
            user_id
            for user_id, window in self._windows.items()
            if not window.timestamps or now - window.timestamps[-1] > older_than_ms
        ]
        for user_id in stale:
            del self._windows[user_id]
        return len(stale)


class RepeatTracker:
    """Per-user consecutive repeat counter over normalised text."""

    def __init__(self) -> None:
        self._states: Dict[int, RepeatState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def get(self, user_id: int) -> Optional[RepeatState]:
        return self._states.get(user_id)

    def observe(self, user_id: int, normalized_text: str, now: int, repeat_window_ms: int) -> int:
        previous = self._states.get(user_id)

        repeats = 0
        if (
            normalized_text
            and previous is not None
            and normalized_text == previous.normalized_text
            and now - previous.last_timestamp <= repeat_window_ms
        ):
            repeats = previous.consecutive_repeats + 1

        self._states[user_id] = RepeatState(
            normalized_text=normalized_text,
            last_timestamp=now,
            consecutive_repeats=repeats,
        )
        return repeats

    def prune(self, older_than_ms: int, now: int) -> int:
        stale = [
            user_id
            for user_id, state in self._states.items()
            if now - state.last_timestamp > older_than_ms
        ]
        for user_id in stale:
            del self._states[user_id]
        return len(stale)


class StrikeLedger:
    """Per-user spam violations that decay after a quiet period.

    A violation after `decay_ms` without one starts a fresh count at 1.
    """

    def __init__(self) -> None:
        self._strikes: Dict[int, StrikeState] = {}

    def __len__(self) -> int:
        return len(self._strikes)

    def get(self, user_id: int) -> int:
        state = self._strikes.get(user_id)
        return state.count if state else 0

    def add(self, user_id: int, now: int, decay_ms: int) -> int:
        state = self._strikes.get(user_id)

        if state is None or now - state.last_timestamp >= decay_ms:
            state = StrikeState(count=1, last_timestamp=now)
        else:
            state = StrikeState(count=state.count + 1, last_timestamp=now)

        self._strikes[user_id] = state
        return state.count

    def prune(self, older_than_ms: int, now: int) -> int:
        stale = [
            user_id
            for user_id, state in self._strikes.items()
            if now - state.last_timestamp > older_than_ms
        ]
        for user_id in stale:
            del self._strikes[user_id]
        return len(stale)
