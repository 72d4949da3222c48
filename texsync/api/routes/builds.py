"""Build routes — build a PDF from a git repository, drop worker caches, check freshness."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from texsync.api.deps import get_compiler
from texsync.config import get_settings
from texsync.schemas.pydantic import (
    BuildResult,
    CacheClearRequest,
    CacheClearResult,
    CompileRequest,
    FreshnessOut,
    PaperState,
)
from texsync.services.compiler import LatexCompiler
from texsync.services.freshness import background_refresh_enabled, determine_if_up_to_date

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["builds"])
limiter = Limiter(key_func=get_remote_address)


@router.post("/compile", response_model=BuildResult)
@limiter.limit(get_settings().compile_rate_limit)
async def compile_document(
    request: Request,
    body: CompileRequest,
    compiler: LatexCompiler = Depends(get_compiler),
):
    """Compile the target file and return the stored PDF id with its dependency hashes.

    Failures come back as a single classified error (see AppError subclasses).
    """
    return await compiler.compile(body)


@router.post("/cache/clear", response_model=CacheClearResult)
async def clear_cache(
    body: CacheClearRequest,
    compiler: LatexCompiler = Depends(get_compiler),
):
    """Drop the worker's auxiliary build cache for one or more papers."""
    return await compiler.clear_cache(body.ids())


@router.post("/freshness", response_model=FreshnessOut)
async def check_freshness(body: PaperState):
    """Whether the paper's stored PDF is current. ``null`` for papers without a repository."""
    return FreshnessOut(
        up_to_date=determine_if_up_to_date(body),
        background_refresh=background_refresh_enabled(body),
    )
