"""Shared service clients — single instances reused across the app."""

from __future__ import annotations

from functools import lru_cache

import httpx

from texsync.config import CompilerConfig, get_settings


def latex_service_headers(config: CompilerConfig) -> dict[str, str]:
    """Headers sent with every request to the compile worker."""
    headers = {"Content-Type": "application/json"}
    if config.api_key:
        headers["X-API-Key"] = config.api_key
    return headers


def create_latex_service_client(config: CompilerConfig) -> httpx.AsyncClient:
    """Build an AsyncClient for the compile worker.

    Per-request timeouts are passed at call time; the client default only
    bounds connection setup.
    """
    return httpx.AsyncClient(
        headers=latex_service_headers(config),
        timeout=httpx.Timeout(config.compile_timeout_s, connect=30.0),
    )


@lru_cache
def get_compiler_config() -> CompilerConfig:
    """Return the cached orchestrator config built from settings."""
    return CompilerConfig.from_settings(get_settings())


@lru_cache
def get_latex_service_client() -> httpx.AsyncClient:
    """Return a cached singleton AsyncClient for the compile worker."""
    return create_latex_service_client(get_compiler_config())
