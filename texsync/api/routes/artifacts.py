"""Artifact routes — download compiled PDFs."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from texsync.api.deps import get_artifact_store
from texsync.exceptions import NotFoundError
from texsync.services.artifact_store import ArtifactStore

router = APIRouter(prefix="/api/artifacts", tags=["artifacts"])


@router.get("/{storage_id}")
async def download_artifact(
    storage_id: str,
    store: ArtifactStore = Depends(get_artifact_store),
):
    artifact = await store.load(storage_id)
    if artifact is None:
        raise NotFoundError("Artifact not found")
    data, content_type = artifact
    return Response(
        content=data,
        media_type=content_type,
        headers={"Content-Disposition": f'inline; filename="{storage_id}.pdf"'},
    )
