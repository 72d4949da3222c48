"""Shared fixtures for texsync tests."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Callable

import httpx
import pytest

from texsync.config import CompilerConfig
from texsync.schemas.pydantic import ProviderAuth, SelfHostedInstance
from texsync.services.artifact_store import InMemoryArtifactStore
from texsync.services.compiler import LatexCompiler
from texsync.services.git_operations import GitResult
from texsync.services.progress import InMemoryProgressStore
from texsync.services.providers import StaticCredentialStore

WORKER_URL = "http://latex-worker.test"
PDF_BYTES = b"%PDF-1.5\n%fake pdf body\n%%EOF\n"


def blob_id(content: str) -> str:
    """Same id git hash-object produces for ``content``."""
    data = content.encode()
    return hashlib.sha1(b"blob %d\0" % len(data) + data).hexdigest()


class FakeGitRepository:
    """In-memory GitRepository: a single branch worth of files, records every clone."""

    def __init__(self, files: dict[str, str] | None = None, clone_error: str | None = None) -> None:
        self.files = files or {}
        self.clone_error = clone_error
        self.clone_calls: list[dict] = []
        self.hash_calls: list[str] = []

    async def clone_full(self, authenticated_url, work_dir, branch, *, timeout):
        return await self.clone_sparse(authenticated_url, work_dir, branch, [], timeout=timeout)

    async def clone_sparse(self, authenticated_url, work_dir, branch, sparse_paths, *, timeout):
        self.clone_calls.append(
            {"url": authenticated_url, "branch": branch, "paths": list(sparse_paths), "work_dir": Path(work_dir)}
        )
        if self.clone_error:
            return GitResult(success=False, stderr=self.clone_error)
        return GitResult(success=True)

    async def read_blob_hash(self, work_dir, path, *, timeout):
        self.hash_calls.append(path)
        content = self.files.get(path)
        return blob_id(content) if content is not None else None


class RecordingSink:
    """ProgressSink that remembers every update in order."""

    def __init__(self) -> None:
        self.updates: list[tuple[str, str | None]] = []

    async def update(self, paper_id, message):
        self.updates.append((paper_id, message))

    @property
    def messages(self) -> list[str | None]:
        return [m for _, m in self.updates]


def pdf_response(dependencies: list[str] | None = None, content: bytes = PDF_BYTES) -> httpx.Response:
    headers = {"Content-Type": "application/pdf"}
    if dependencies is not None:
        headers["X-Dependencies"] = json.dumps(dependencies)
    return httpx.Response(200, content=content, headers=headers)


@pytest.fixture
def compiler_config() -> CompilerConfig:
    return CompilerConfig(
        worker_url=WORKER_URL,
        site_url="https://app.example.site",
        callback_secret="s3cret",
        api_key="worker-key",
        retry_backoff_s=0.0,
    )


@pytest.fixture
def credential_store() -> StaticCredentialStore:
    return StaticCredentialStore(
        github={"user-1": "ghp_token"},
        gitlab={"user-1": "glpat_token"},
        overleaf={"user-1": ProviderAuth(username="git", password="overleaf-token")},
        instances={"user-1": [SelfHostedInstance(url="https://git.example.org", token="selfhosted-token")]},
    )


@pytest.fixture
def fake_git() -> FakeGitRepository:
    return FakeGitRepository(
        files={
            "main.tex": "\\documentclass{article}\\input{intro}",
            "intro.tex": "Hello",
            "refs.bib": "@book{x}",
            "figures/plot.png": "PNG",
        }
    )


@pytest.fixture
def artifact_store() -> InMemoryArtifactStore:
    return InMemoryArtifactStore()


@pytest.fixture
def progress_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_compiler(compiler_config, credential_store, fake_git, artifact_store, progress_sink):
    """Build a LatexCompiler whose worker is the given request handler."""
    def factory(
        handler: Callable[[httpx.Request], httpx.Response],
        config: CompilerConfig | None = None,
        **overrides,
    ) -> LatexCompiler:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        kwargs = {
            "http_client": client,
            "credentials": credential_store,
            "git": fake_git,
            "artifacts": artifact_store,
            "progress_sink": progress_sink,
        }
        kwargs.update(overrides)
        return LatexCompiler(config or compiler_config, **kwargs)

    return factory


@pytest.fixture
def progress_store() -> InMemoryProgressStore:
    return InMemoryProgressStore()
