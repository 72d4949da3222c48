"""Tests for cache mode resolution (pure policy, no I/O)."""

from __future__ import annotations

import itertools

import pytest

from texsync.services.cache_mode import CacheMode, resolve_background_refresh, resolve_cache_mode


class TestResolveCacheMode:
    def test_nothing_set_is_off(self):
        assert resolve_cache_mode() is CacheMode.OFF

    def test_admin_disallow_overrides_everything(self):
        assert resolve_cache_mode(repo_mode="aux", user_mode="aux", cache_allowed=False) is CacheMode.OFF

    def test_user_mode_used_when_repo_unset(self):
        assert resolve_cache_mode(repo_mode=None, user_mode="aux") is CacheMode.AUX

    def test_repo_mode_wins_over_user_mode(self):
        assert resolve_cache_mode(repo_mode=CacheMode.OFF, user_mode=CacheMode.AUX) is CacheMode.OFF
        assert resolve_cache_mode(repo_mode=CacheMode.AUX, user_mode=CacheMode.OFF) is CacheMode.AUX

    def test_cache_allowed_true_or_unknown_does_not_force(self):
        assert resolve_cache_mode(user_mode="aux", cache_allowed=True) is CacheMode.AUX
        assert resolve_cache_mode(user_mode="aux", cache_allowed=None) is CacheMode.AUX

    @pytest.mark.parametrize(
        "repo_mode,user_mode",
        list(itertools.product([None, "off", "aux"], repeat=2)),
    )
    def test_disallowed_is_always_off(self, repo_mode, user_mode):
        assert resolve_cache_mode(repo_mode, user_mode, cache_allowed=False) is CacheMode.OFF

    def test_invalid_mode_rejected(self):
        with pytest.raises(ValueError):
            resolve_cache_mode(repo_mode="full")

    def test_deterministic(self):
        results = {resolve_cache_mode(None, "aux", True) for _ in range(5)}
        assert results == {CacheMode.AUX}


class TestResolveBackgroundRefresh:
    def test_default_enabled(self):
        assert resolve_background_refresh() is True

    def test_repo_setting_wins(self):
        assert resolve_background_refresh(repo_setting=False, user_default=True) is False
        assert resolve_background_refresh(repo_setting=True, user_default=False) is True

    def test_user_default_used_when_repo_unset(self):
        assert resolve_background_refresh(repo_setting=None, user_default=False) is False
