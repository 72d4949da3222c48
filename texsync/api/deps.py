"""FastAPI dependencies: process-wide collaborators of the compile pipeline."""

from __future__ import annotations

import hmac
from functools import lru_cache

from fastapi import Header

from texsync.clients import get_compiler_config, get_latex_service_client
from texsync.config import get_settings
from texsync.exceptions import ConfigurationMissingError, ForbiddenError
from texsync.services.artifact_store import ArtifactStore, InMemoryArtifactStore, LocalArtifactStore
from texsync.services.compiler import LatexCompiler
from texsync.services.git_operations import SubprocessGitRepository
from texsync.services.progress import InMemoryProgressStore
from texsync.services.providers import CredentialStore, StaticCredentialStore


@lru_cache
def get_progress_store() -> InMemoryProgressStore:
    return InMemoryProgressStore()


@lru_cache
def get_artifact_store() -> ArtifactStore:
    """Local directory store when ARTIFACT_DIR is set, otherwise in-process."""
    artifact_dir = get_settings().artifact_dir
    if artifact_dir:
        return LocalArtifactStore(artifact_dir)
    return InMemoryArtifactStore()


@lru_cache
def get_credential_store() -> CredentialStore:
    # Token issuance lives elsewhere; deployments override this dependency.
    return StaticCredentialStore()


@lru_cache
def get_compiler() -> LatexCompiler:
    return LatexCompiler(
        get_compiler_config(),
        http_client=get_latex_service_client(),
        credentials=get_credential_store(),
        git=SubprocessGitRepository(),
        artifacts=get_artifact_store(),
        progress_sink=get_progress_store(),
    )


async def verify_compile_secret(
    x_compile_secret: str | None = Header(default=None),
) -> None:
    """Reject progress callbacks that do not carry the shared secret."""
    expected = get_settings().compile_secret
    if not expected:
        raise ConfigurationMissingError("LATEX_COMPILE_SECRET not configured")
    if not x_compile_secret or not hmac.compare_digest(x_compile_secret, expected):
        raise ForbiddenError("Invalid compile secret")
