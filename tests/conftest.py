"""
CityWatch - Test Fixtures
=========================

Shared fixtures for the automod tests: a controllable clock, a recording
enforcement sink and a recording event log.
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import pytest

from citywatch.core.types import (
    ActionErrorKind,
    ActionResult,
    InboundMessage,
    ModerationSettings,
)
from citywatch.services.enforcement import MessageHandle
from citywatch.services.event_log import EventLog
from citywatch.services.moderation_pipeline import ModerationPipeline, ModerationState
from citywatch.services.settings_store import SettingsStore

GUILD_ID = 1000
CHANNEL_ID = 2000
USER_ID = 3000
DAY_MS = 86_400_000
START_MS = 1_700_000_000_000


@dataclass
class LogRecord:
    level: str
    event: str
    message: str
    meta: Dict[str, Any] = field(default_factory=dict)


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingActions:
    """EnforcementActions that records every call and can be told to fail."""

    def __init__(self):
        self.deleted: List[Tuple[int, int]] = []
        self.channel_messages: List[Tuple[int, str]] = []
        self.scheduled_deletes: List[Tuple[MessageHandle, int]] = []
        self.direct_messages: List[Tuple[int, str]] = []
        self.timeouts: List[Tuple[int, int, int, str]] = []
        self.failing: set = set()
        self._next_id = 90_000

    def _result(self, operation: str) -> ActionResult:
        if operation in self.failing:
            return ActionResult.failure(ActionErrorKind.FORBIDDEN, f"{operation} forbidden")
        return ActionResult.success()

    async def delete_message(self, channel_id: int, message_id: int) -> ActionResult:
        result = self._result("delete")
        if result.ok:
            self.deleted.append((channel_id, message_id))
        return result

    async def send_channel_message(
        self, channel_id: int, text: str
    ) -> Tuple[ActionResult, Optional[MessageHandle]]:
        result = self._result("send")
        if not result.ok:
            return result, None
        self.channel_messages.append((channel_id, text))
        self._next_id += 1
        return result, MessageHandle(channel_id=channel_id, message_id=self._next_id)

    def delete_after(self, handle: MessageHandle, delay_ms: int) -> None:
        self.scheduled_deletes.append((handle, delay_ms))

    async def send_direct_message(self, user_id: int, text: str) -> ActionResult:
        result = self._result("dm")
        if result.ok:
            self.direct_messages.append((user_id, text))
        return result

    async def timeout_member(
        self, guild_id: int, user_id: int, minutes: int, reason: str
    ) -> ActionResult:
        result = self._result("timeout")
        if result.ok:
            self.timeouts.append((guild_id, user_id, minutes, reason))
        return result


class RecordingEventLog(EventLog):
    """EventLog that keeps records in memory instead of a database."""

    def __init__(self):
        super().__init__(repository=None, guild_id=GUILD_ID)
        self.records: List[LogRecord] = []

    async def log(self, level, event, message, meta=None) -> None:
        self.records.append(LogRecord(level=level, event=event, message=message, meta=meta or {}))
        await super().log(level, event, message, meta)

    def events(self) -> List[str]:
        return [record.event for record in self.records]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def actions():
    return RecordingActions()


@pytest.fixture
def event_log():
    return RecordingEventLog()


@pytest.fixture
def settings_store():
    return SettingsStore(repository=None, guild_id=GUILD_ID)


@pytest.fixture
def configure(settings_store):
    """Replace the current snapshot with defaults overridden by keyword arguments."""

    def _configure(**overrides) -> ModerationSettings:
        settings = dataclasses.replace(ModerationSettings(), **overrides)
        settings_store.replace(settings)
        return settings

    return _configure


@pytest.fixture
def pipeline(settings_store, actions, event_log, clock):
    return ModerationPipeline(
        settings_store,
        actions,
        event_log,
        guild_id=GUILD_ID,
        state=ModerationState(),
        clock=clock,
    )


@pytest.fixture
def make_message(clock):
    """Factory for inbound messages from an established, ordinary member."""
    counter = {"id": 5000}

    def _make(text: str = "hello", **overrides) -> InboundMessage:
        counter["id"] += 1
        fields = dict(
            author_id=USER_ID,
            author_is_bot=False,
            author_created_at=clock.now - 365 * DAY_MS,
            author_has_mod_permission=False,
            author_role_ids=frozenset(),
            community_id=GUILD_ID,
            channel_id=CHANNEL_ID,
            message_id=counter["id"],
            text=text,
            timestamp=clock.now,
            community_name="Dark City",
        )
        fields.update(overrides)
        return InboundMessage(**fields)

    return _make
