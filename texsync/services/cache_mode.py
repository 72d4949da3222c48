"""Cache policy: combine repository, user and administrative settings."""

from __future__ import annotations

from enum import Enum


class CacheMode(str, Enum):
    OFF = "off"  # compiler-side auxiliary caching disabled
    AUX = "aux"  # worker may reuse .aux/.bbl state between builds


def resolve_cache_mode(
    repo_mode: CacheMode | str | None = None,
    user_mode: CacheMode | str | None = None,
    cache_allowed: bool | None = None,
) -> CacheMode:
    """Effective cache mode for one build.

    An explicit ``cache_allowed=False`` forces ``off``. Otherwise the
    repository setting wins over the user default, and nothing set means ``off``.
    """
    if cache_allowed is False:
        return CacheMode.OFF
    if repo_mode is not None:
        return CacheMode(repo_mode)
    if user_mode is not None:
        return CacheMode(user_mode)
    return CacheMode.OFF


def resolve_background_refresh(
    repo_setting: bool | None = None,
    user_default: bool | None = None,
) -> bool:
    """Whether scheduled refreshes run for a repository. Enabled unless turned off."""
    if repo_setting is not None:
        return repo_setting
    if user_default is not None:
        return user_default
    return True
