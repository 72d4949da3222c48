"""Build progress: where it goes and how the worker is told to report it."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from texsync.schemas.pydantic import ProgressCallback

logger = logging.getLogger(__name__)


class ProgressSink(Protocol):
    async def update(self, paper_id: str, message: str | None) -> None: ...


@dataclass
class _Entry:
    message: str
    version: int


class InMemoryProgressStore:
    """Latest progress text per paper. ``None`` means no build is in progress.

    Only papers with a build in flight hold an entry. A cleared paper keeps
    just its version, in a bounded FIFO, so watchers can still notice the clear.
    """

    def __init__(self, max_cleared: int = 1024) -> None:
        self._live: dict[str, _Entry] = {}
        self._cleared: OrderedDict[str, int] = OrderedDict()
        self._max_cleared = max_cleared
        self._clock = 0

    async def update(self, paper_id: str, message: str | None) -> None:
        self._clock += 1
        if message is None:
            self._live.pop(paper_id, None)
            self._cleared.pop(paper_id, None)
            self._cleared[paper_id] = self._clock
            while len(self._cleared) > self._max_cleared:
                self._cleared.popitem(last=False)
            return
        self._cleared.pop(paper_id, None)
        self._live[paper_id] = _Entry(message=message, version=self._clock)

    def get(self, paper_id: str) -> str | None:
        entry = self._live.get(paper_id)
        return entry.message if entry else None

    def version(self, paper_id: str) -> int:
        """Monotonic across the store; changes on every update to ``paper_id``."""
        entry = self._live.get(paper_id)
        if entry:
            return entry.version
        return self._cleared.get(paper_id, 0)

    def __len__(self) -> int:
        return len(self._live) + len(self._cleared)


async def watch_progress(
    store: InMemoryProgressStore,
    paper_id: str,
    *,
    timeout: float,
    poll_interval: float = 0.5,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[tuple[str, str | None]]:
    """Yield ``("progress", text)`` on each change for ``paper_id``.

    Ends with ``("cleared", None)`` once a build that was seen in progress
    clears, or ``("timeout", None)`` at the deadline. A watcher opened before
    the build starts waits for it rather than ending straight away.
    """
    deadline = time.monotonic() + timeout
    last_version = store.version(paper_id)
    seen_progress = False

    current = store.get(paper_id)
    if current is not None:
        seen_progress = True
        yield "progress", current

    while time.monotonic() < deadline:
        if is_disconnected is not None and await is_disconnected():
            return
        await asyncio.sleep(poll_interval)
        version = store.version(paper_id)
        if version == last_version:
            continue
        last_version = version
        progress = store.get(paper_id)
        if progress is None:
            if seen_progress:
                yield "cleared", None
                return
            continue
        seen_progress = True
        yield "progress", progress

    logger.info("Progress watch for %s hit its deadline", paper_id)
    yield "timeout", None


class ProgressReporter:
    """Best-effort progress publisher for one compile attempt.

    Sink failures are logged and never reach the compile path.
    """

    def __init__(self, sink: ProgressSink | None, paper_id: str | None) -> None:
        self._sink = sink
        self._paper_id = paper_id

    async def report(self, message: str | None) -> None:
        if self._sink is None or not self._paper_id:
            return
        try:
            await self._sink.update(self._paper_id, message)
        except Exception:
            logger.warning("Progress update failed for paper %s", self._paper_id, exc_info=True)

    async def clear(self) -> None:
        await self.report(None)


def build_progress_callback(
    site_url: str | None,
    secret: str | None,
    paper_id: str | None,
    path: str = "/api/compile-progress",
) -> ProgressCallback | None:
    """Callback descriptor for the worker, only when URL, secret and paper are all known."""
    if not (site_url and secret and paper_id):
        return None
    return ProgressCallback(url=f"{site_url.rstrip('/')}{path}", paper_id=paper_id, secret=secret)
