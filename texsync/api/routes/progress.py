"""Progress routes — sink for worker callbacks and a live stream for clients."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from texsync.api.deps import get_progress_store, verify_compile_secret
from texsync.config import get_settings
from texsync.schemas.pydantic import ProgressOut, ProgressUpdate
from texsync.services.progress import InMemoryProgressStore, watch_progress

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["progress"])


@router.post("/compile-progress", dependencies=[Depends(verify_compile_secret)])
async def receive_progress(
    body: ProgressUpdate,
    store: InMemoryProgressStore = Depends(get_progress_store),
):
    """Called by the compile worker with human-readable build status."""
    await store.update(body.paper_id, body.progress)
    return {"ok": True}


@router.get("/papers/{paper_id}/progress", response_model=ProgressOut)
async def get_progress(
    paper_id: str,
    store: InMemoryProgressStore = Depends(get_progress_store),
):
    return ProgressOut(paper_id=paper_id, progress=store.get(paper_id))


@router.get("/papers/{paper_id}/progress/stream")
async def stream_progress(
    request: Request,
    paper_id: str,
    store: InMemoryProgressStore = Depends(get_progress_store),
):
    """SSE stream of progress changes.

    May be opened before the build starts. Ends with ``cleared`` when the
    build finishes, or ``timeout`` if nothing finishes in time.
    """
    settings = get_settings()

    async def event_generator():
        async for event, progress in watch_progress(
            store,
            paper_id,
            timeout=settings.progress_stream_timeout_s,
            poll_interval=settings.progress_poll_interval_s,
            is_disconnected=request.is_disconnected,
        ):
            data = {"paperId": paper_id}
            if progress is not None:
                data["progress"] = progress
            yield {"event": event, "data": json.dumps(data)}

    return EventSourceResponse(event_generator())
