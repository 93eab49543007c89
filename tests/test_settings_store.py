"""
CityWatch - Settings Store Tests
================================

Load-boundary coercion and snapshot swapping.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from citywatch.core.types import ModerationSettings
from citywatch.services.settings_store import (
    DEFAULT_SETTINGS,
    SettingsStore,
    settings_from_document,
    settings_to_document,
)
from citywatch.utils.errors import DatabaseError
from conftest import GUILD_ID


class TestSettingsFromDocument:
    """Tests for turning stored documents into snapshots."""

    def test_empty_document_gives_defaults(self):
        """Test missing documents fall back to the defaults."""
        assert settings_from_document(None) == DEFAULT_SETTINGS
        assert settings_from_document({}) == DEFAULT_SETTINGS

    def test_defaults_match_reference_deployment(self):
        """Test the documented default values."""
        settings = ModerationSettings()

        assert settings.flood_max_messages == 5
        assert settings.flood_window_seconds == 8
        assert settings.repeat_max_repeats == 3
        assert settings.repeat_window_seconds == 30
        assert settings.spam_timeout_minutes == 10
        assert settings.low_trust_min_account_age_days == 7
        assert settings.invite_warn_delete_seconds == 12

    def test_values_read(self):
        """Test well-typed fields are taken as stored."""
        settings = settings_from_document(
            {
                "invite_warn": False,
                "flood_max_messages": 9,
                "repeat_window_seconds": 12.5,
                "ignored_channel_ids": [3, "4"],
                "bypass_role_ids": [7],
            }
        )

        assert settings.invite_warn is False
        assert settings.flood_max_messages == 9
        assert settings.repeat_window_ms == 12_500
        assert settings.ignored_channel_ids == frozenset({3, 4})
        assert settings.bypass_role_ids == frozenset({7})

    def test_wrong_types_keep_defaults(self):
        """Test booleans must be booleans and numbers must be finite numbers."""
        settings = settings_from_document(
            {
                "spam_enabled": "yes",
                "invite_warn": 0,
                "flood_max_messages": "10",
                "spam_timeout_minutes": float("inf"),
                "repeat_max_repeats": True,
                "bypass_role_ids": "77",
            }
        )

        assert settings.spam_enabled is True
        assert settings.invite_warn is True
        assert settings.flood_max_messages == 5
        assert settings.spam_timeout_minutes == 10
        assert settings.repeat_max_repeats == 3
        assert settings.bypass_role_ids == frozenset()

    def test_ranges_applied(self):
        """Test numeric fields are clamped into usable ranges."""
        settings = settings_from_document(
            {
                "invite_warn_delete_seconds": 500,
                "spam_warn_delete_seconds": -3,
                "flood_window_seconds": 0,
                "flood_max_messages": 0,
                "repeat_window_seconds": -1,
                "repeat_max_repeats": 0,
                "low_trust_min_account_age_days": -2,
            }
        )

        assert settings.invite_warn_delete_seconds == 120
        assert settings.spam_warn_delete_seconds == 0
        assert settings.flood_window_seconds == 1
        assert settings.flood_max_messages == 1
        assert settings.repeat_window_seconds == 1
        assert settings.repeat_max_repeats == 1
        assert settings.low_trust_min_account_age_days == 0

    def test_upper_bounds_applied(self):
        """Test huge but finite numbers are capped so millisecond values stay finite."""
        settings = settings_from_document(
            {
                "flood_window_seconds": 1e306,
                "repeat_window_seconds": 1e306,
                "strike_decay_minutes": 1e306,
                "flood_max_messages": 1e306,
                "low_trust_min_account_age_days": 1e306,
                "roll_cooldown_user_ms": 1e306,
                "ignored_channel_ids": [float("inf"), 12],
            }
        )

        assert settings.flood_window_ms == 86_400_000
        assert settings.repeat_window_ms == 86_400_000
        assert settings.strike_decay_ms == 43_200 * 60_000
        assert settings.flood_max_messages == 1000
        assert settings.low_trust_min_account_age_days == 3650
        assert settings.roll_cooldown_user_ms == 3_600_000
        assert settings.ignored_channel_ids == frozenset({12})

    def test_document_round_trip_is_json_friendly(self):
        """Test sets are stored as sorted lists."""
        document = settings_to_document(
            ModerationSettings(ignored_channel_ids=frozenset({9, 2}))
        )

        assert document["ignored_channel_ids"] == [2, 9]
        assert settings_from_document(document).ignored_channel_ids == frozenset({2, 9})


class TestSettingsStore:
    """Tests for snapshot refresh behaviour."""

    def _repo(self, document=None, error=None):
        repo = MagicMock()
        repo.get_settings_document = AsyncMock(return_value=document, side_effect=error)
        repo.ensure_settings_document = AsyncMock()
        repo.update_settings_document = AsyncMock()
        return repo

    @pytest.mark.asyncio
    async def test_refresh_swaps_snapshot(self):
        """Test a refresh replaces the whole snapshot."""
        store = SettingsStore(self._repo({"spam_enabled": False}), GUILD_ID)
        before = store.get()

        after = await store.refresh()

        assert before.spam_enabled is True
        assert after.spam_enabled is False
        assert store.get() is after

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_last_snapshot(self):
        """Test a database error leaves the previous snapshot in place."""
        repo = self._repo({"flood_max_messages": 8})
        store = SettingsStore(repo, GUILD_ID)
        await store.refresh()

        repo.get_settings_document.side_effect = DatabaseError("locked")
        settings = await store.refresh()

        assert settings.flood_max_messages == 8

    @pytest.mark.asyncio
    async def test_missing_document_keeps_snapshot(self):
        """Test no stored document means defaults stay in use."""
        store = SettingsStore(self._repo(None), GUILD_ID)

        assert await store.refresh() == DEFAULT_SETTINGS

    @pytest.mark.asyncio
    async def test_ensure_defaults_failure_not_raised(self):
        """Test failing to seed defaults is only logged."""
        repo = self._repo()
        repo.ensure_settings_document.side_effect = DatabaseError("read-only")

        await SettingsStore(repo, GUILD_ID).ensure_defaults()

    @pytest.mark.asyncio
    async def test_update_without_repository(self):
        """Test updates apply in memory when no repository is attached."""
        store = SettingsStore(None, GUILD_ID)

        settings = await store.update(spam_enabled=False, bypass_role_ids=[5])

        assert settings.spam_enabled is False
        assert settings.bypass_role_ids == frozenset({5})

    @pytest.mark.asyncio
    async def test_update_persists_then_reloads(self):
        """Test updates go through the repository and trigger a reload."""
        repo = self._repo({"invite_warn": False})
        store = SettingsStore(repo, GUILD_ID)

        settings = await store.update(invite_warn=False)

        repo.update_settings_document.assert_awaited_once_with(GUILD_ID, invite_warn=False)
        assert settings.invite_warn is False
