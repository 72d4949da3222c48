"""Pydantic v2 models for all request/response and worker wire shapes."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from texsync.services.cache_mode import CacheMode

# camelCase on the wire, snake_case in Python
_WIRE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)
_FROZEN_WIRE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

Compiler = Literal["pdflatex", "xelatex", "lualatex"]


# ── Credentials ────────────────────────────────────────────────────────
class ProviderAuth(BaseModel):
    model_config = _FROZEN_WIRE_CONFIG
    username: str
    password: str


class SelfHostedInstance(BaseModel):
    model_config = _FROZEN_WIRE_CONFIG
    url: str
    token: str


# ── Dependencies ───────────────────────────────────────────────────────
class DependencyHash(BaseModel):
    model_config = _FROZEN_WIRE_CONFIG
    path: str
    hash: str


# ── Progress ───────────────────────────────────────────────────────────
class ProgressCallback(BaseModel):
    """Where the worker pushes progress text for one paper."""

    model_config = _FROZEN_WIRE_CONFIG
    url: str
    paper_id: str
    secret: str


class ProgressUpdate(BaseModel):
    """Body the worker posts to the progress sink."""

    model_config = _WIRE_CONFIG
    paper_id: str = Field(min_length=1, max_length=200)
    progress: str | None = Field(None, max_length=1000)


class ProgressOut(BaseModel):
    model_config = _WIRE_CONFIG
    paper_id: str
    progress: str | None


# ── Compilation ────────────────────────────────────────────────────────
class CompileRequest(BaseModel):
    """One build trigger. Immutable for the lifetime of a compile attempt."""

    model_config = _FROZEN_WIRE_CONFIG
    git_url: str = Field(min_length=1, max_length=2000)
    file_path: str = Field(min_length=1, max_length=1000)
    branch: str = Field(min_length=1, max_length=255)
    compiler: Compiler = "pdflatex"
    auth: ProviderAuth | None = None
    paper_id: str | None = None
    user_id: str | None = None
    known_dependencies: list[str] | None = None
    previous_dependency_paths: list[str] | None = None
    previous_dependency_hashes: list[DependencyHash] | None = None
    repo_cache_mode: CacheMode | None = None
    user_cache_mode: CacheMode | None = None
    cache_allowed: bool | None = None
    force_hash_refresh: bool = False


class CompilePayload(BaseModel):
    """JSON body of POST {worker}/compile-from-git."""

    model_config = _WIRE_CONFIG
    git_url: str
    branch: str
    target: str
    compiler: Compiler
    auth: ProviderAuth | None = None
    progress_callback: ProgressCallback | None = None
    paper_id: str | None = None
    cache_mode: CacheMode | None = None
    known_dependencies: list[str] | None = None

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class BuildResult(BaseModel):
    model_config = _FROZEN_WIRE_CONFIG
    storage_id: str
    size: int
    dependencies: list[DependencyHash]
    dependency_paths: list[str]


# ── Cache invalidation ─────────────────────────────────────────────────
class CacheClearRequest(BaseModel):
    model_config = _WIRE_CONFIG
    paper_id: str | None = None
    paper_ids: list[str] | None = None

    def ids(self) -> list[str]:
        if self.paper_ids:
            return [pid for pid in self.paper_ids if pid]
        return [self.paper_id] if self.paper_id else []


class CacheClearResult(BaseModel):
    model_config = _WIRE_CONFIG
    skipped: bool = False
    reason: str | None = None
    cleared: int = 0
    error: str | None = None


# ── Freshness ──────────────────────────────────────────────────────────
class PaperState(BaseModel):
    """What the caller knows about a paper when deciding whether to rebuild."""

    model_config = _WIRE_CONFIG
    has_repository: bool
    pdf_storage_id: str | None = None
    needs_sync: bool | None = None
    cached_commit_hash: str | None = None
    repository_commit_hash: str | None = None
    # hashes recorded at the last build vs. a fresh fetch of the same paths
    previous_dependency_hashes: list[DependencyHash] | None = None
    current_dependency_hashes: list[DependencyHash] | None = None
    repo_background_refresh: bool | None = None
    user_background_refresh: bool | None = None


class FreshnessOut(BaseModel):
    model_config = _WIRE_CONFIG
    up_to_date: bool | None
    background_refresh: bool
