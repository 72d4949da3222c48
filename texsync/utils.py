"""Shared utility functions used across the service."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Iterable
from typing import TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_transport(
    max_attempts: int = 2,
    backoff: float = 1.0,
):
    """Decorator that retries async httpx calls on transport-level errors.

    Retries on httpx.TransportError (connect failures, timeouts, dropped
    connections) with exponential backoff. Responses with an error status are
    returned to the caller, never retried.
    """
    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            last_exc = None
            attempts = max(1, max_attempts)
            for attempt in range(attempts):
                try:
                    return await fn(*args, **kwargs)
                except httpx.TransportError as exc:
                    last_exc = exc
                    if attempt + 1 >= attempts:
                        break
                    wait = backoff * (2 ** attempt)
                    logger.warning(
                        "%s on attempt %d/%d for %s, retrying in %.1fs",
                        type(exc).__name__, attempt + 1, attempts, fn.__name__, wait,
                    )
                    await asyncio.sleep(wait)
            raise last_exc  # type: ignore[misc]
        return wrapper
    return decorator


def dedupe_preserve_order(items: Iterable[T]) -> list[T]:
    """Drop repeated items, keeping the first occurrence of each."""
    seen: set = set()
    result: list[T] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def truncate(text: str, limit: int, marker: str) -> str:
    """Cut ``text`` to ``limit`` characters and append ``marker`` if anything was cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + marker
