"""Compile orchestrator — drives the external LaTeX worker for one build.

States: STARTING → COMPILING → SUCCEEDED → CACHING → DONE, or FAILED from any
of them. Progress is cleared on every exit path, and a stored PDF is deleted
again if the attempt fails afterwards, so callers see either a complete
BuildResult or a single classified error.
"""

from __future__ import annotations

import json
import logging
from enum import Enum

import httpx

from texsync.config import CompilerConfig
from texsync.exceptions import ConfigurationMissingError, ServiceUnavailableError
from texsync.schemas.pydantic import (
    BuildResult,
    CacheClearResult,
    CompilePayload,
    CompileRequest,
    DependencyHash,
    ProviderAuth,
    SelfHostedInstance,
)
from texsync.services.artifact_store import ArtifactStore
from texsync.services.cache_mode import resolve_cache_mode
from texsync.services.dependency_hashes import fetch_dependency_hashes
from texsync.services.error_classifier import classify_error_response, raise_for_classification
from texsync.services.git_operations import GitRepository
from texsync.services.progress import ProgressReporter, ProgressSink, build_progress_callback
from texsync.services.providers import (
    CredentialStore,
    resolve_auth,
    resolve_provider,
    rewrite_git_url,
)
from texsync.utils import dedupe_preserve_order, retry_transport

logger = logging.getLogger(__name__)

DEPENDENCIES_HEADER = "X-Dependencies"
PDF_CONTENT_TYPE = "application/pdf"


class CompileState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    COMPILING = "compiling"
    SUCCEEDED = "succeeded"
    CACHING = "caching"
    DONE = "done"
    FAILED = "failed"


def parse_dependency_header(value: str | None) -> list[str]:
    """Deduplicated paths from the worker's ``X-Dependencies`` JSON array."""
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except ValueError:
        logger.warning("Failed to parse %s header", DEPENDENCIES_HEADER)
        return []
    if not isinstance(parsed, list):
        logger.warning("%s header is not a JSON array", DEPENDENCIES_HEADER)
        return []
    return dedupe_preserve_order(p for p in parsed if isinstance(p, str) and p)


def final_dependency_paths(header_value: str | None, target: str) -> list[str]:
    """Reported dependencies plus the compile target, each exactly once."""
    paths = parse_dependency_header(header_value)
    if target not in paths:
        paths.append(target)
    return dedupe_preserve_order(paths)


def can_reuse_hashes(
    current_paths: list[str],
    previous_paths: list[str] | None,
    previous_hashes: list[DependencyHash] | None,
) -> bool:
    """Previous hashes stand when the dependency set is unchanged and non-empty."""
    current = sorted(set(current_paths))
    previous = sorted(set(previous_paths or []))
    return bool(current) and current == previous and bool(previous_hashes)


class LatexCompiler:
    """Runs compile attempts against the worker configured in ``config``."""

    def __init__(
        self,
        config: CompilerConfig,
        *,
        http_client: httpx.AsyncClient,
        credentials: CredentialStore,
        git: GitRepository,
        artifacts: ArtifactStore,
        progress_sink: ProgressSink | None = None,
    ) -> None:
        self.config = config
        self.http_client = http_client
        self.credentials = credentials
        self.git = git
        self.artifacts = artifacts
        self.progress_sink = progress_sink

    async def compile(self, request: CompileRequest) -> BuildResult:
        """Compile ``request.file_path`` and return the stored PDF with its dependencies.

        Raises:
            ConfigurationMissingError: no worker URL configured.
            ServiceUnavailableError: worker unreachable after retries, or HTML error page.
            TargetFileNotFoundError: the target does not exist on the branch.
            StructuredCompileError: the worker reported a compile failure.
            RawServiceError: any other worker failure.
        """
        progress = ProgressReporter(self.progress_sink, request.paper_id)
        state = CompileState.IDLE
        storage_id: str | None = None

        def transition(new_state: CompileState) -> None:
            nonlocal state
            logger.info("compile %s: %s -> %s", request.file_path, state.value, new_state.value)
            state = new_state

        try:
            transition(CompileState.STARTING)
            if not self.config.worker_url:
                raise ConfigurationMissingError(
                    "LATEX_SERVICE_URL not configured. Required for LaTeX compilation."
                )

            instances = await self._self_hosted_instances(request.user_id)
            provider = resolve_provider(request.git_url, instances)
            auth = request.auth
            if auth is None:
                auth = await resolve_auth(
                    provider, request.git_url, instances, request.user_id, self.credentials
                )
            compile_git_url = rewrite_git_url(provider, request.git_url)
            cache_mode = resolve_cache_mode(
                request.repo_cache_mode, request.user_cache_mode, request.cache_allowed
            )
            payload = CompilePayload(
                git_url=compile_git_url,
                branch=request.branch,
                target=request.file_path,
                compiler=request.compiler,
                auth=auth,
                progress_callback=build_progress_callback(
                    self.config.site_url,
                    self.config.callback_secret,
                    request.paper_id,
                    self.config.progress_callback_path,
                ),
                paper_id=request.paper_id,
                cache_mode=cache_mode,
                known_dependencies=request.known_dependencies,
            )
            logger.info(
                "Compiling %s on %s@%s (provider=%s, cache=%s, auth=%s)",
                request.file_path, compile_git_url, request.branch,
                provider.value, cache_mode.value, "yes" if auth else "no",
            )
            await progress.report("Starting...")

            transition(CompileState.COMPILING)
            response = await self._request_compile(payload)
            if not response.is_success:
                transition(CompileState.FAILED)
                raise_for_classification(
                    classify_error_response(
                        response.status_code,
                        response.text,
                        request.file_path,
                        max_log_chars=self.config.max_log_chars,
                        max_raw_chars=self.config.max_raw_error_chars,
                    )
                )

            transition(CompileState.SUCCEEDED)
            dependency_paths = final_dependency_paths(
                response.headers.get(DEPENDENCIES_HEADER), request.file_path
            )
            logger.info("Compile succeeded for %s with %d dependencies", request.file_path, len(dependency_paths))

            await progress.report("Storing PDF...")
            pdf = response.content
            storage_id = await self.artifacts.store(pdf, PDF_CONTENT_TYPE)

            transition(CompileState.CACHING)
            dependencies = await self._dependency_hashes(
                request, compile_git_url, auth, dependency_paths, progress
            )

            transition(CompileState.DONE)
            return BuildResult(
                storage_id=storage_id,
                size=len(pdf),
                dependencies=dependencies,
                dependency_paths=dependency_paths,
            )
        except BaseException:
            if state is not CompileState.FAILED:
                transition(CompileState.FAILED)
            if storage_id is not None:
                await self._discard_artifact(storage_id)
            raise
        finally:
            await progress.clear()

    async def clear_cache(self, paper_ids: list[str]) -> CacheClearResult:
        """Ask the worker to drop cached auxiliary state for ``paper_ids``."""
        if not self.config.worker_url:
            return CacheClearResult(skipped=True, reason="LATEX_SERVICE_URL not configured")
        ids = [pid for pid in paper_ids if pid]
        if not ids:
            return CacheClearResult(skipped=True, reason="No paper IDs provided")

        send = retry_transport(self.config.cache_clear_attempts, self.config.retry_backoff_s)(
            self._post
        )
        try:
            response = await send(
                "/cache/clear", {"paperIds": ids}, self.config.cache_clear_timeout_s
            )
        except httpx.HTTPError as exc:
            logger.warning("Cache clear failed for %d papers: %s", len(ids), exc)
            return CacheClearResult(cleared=0, error=str(exc) or type(exc).__name__)

        if not response.is_success:
            return CacheClearResult(cleared=0, error=response.text or f"HTTP {response.status_code}")
        logger.info("Cleared worker cache for %d papers", len(ids))
        return CacheClearResult(cleared=len(ids))

    async def _post(self, path: str, body: dict, timeout: float) -> httpx.Response:
        return await self.http_client.post(
            f"{self.config.worker_url}{path}",
            json=body,
            timeout=timeout,
        )

    async def _request_compile(self, payload: CompilePayload) -> httpx.Response:
        send = retry_transport(self.config.compile_attempts, self.config.retry_backoff_s)(
            self._post
        )
        try:
            return await send("/compile-from-git", payload.to_wire(), self.config.compile_timeout_s)
        except httpx.TransportError as exc:
            logger.error("LaTeX service unreachable after %d attempts: %s", self.config.compile_attempts, exc)
            raise ServiceUnavailableError(
                f"LaTeX service unavailable: {str(exc) or type(exc).__name__}"
            ) from exc

    async def _self_hosted_instances(self, user_id: str | None) -> list[SelfHostedInstance]:
        try:
            return await self.credentials.self_hosted_instances(user_id)
        except Exception:
            logger.warning("Could not load self-hosted GitLab instances", exc_info=True)
            return []

    async def _dependency_hashes(
        self,
        request: CompileRequest,
        git_url: str,
        auth: ProviderAuth | None,
        dependency_paths: list[str],
        progress: ProgressReporter,
    ) -> list[DependencyHash]:
        if not request.force_hash_refresh and can_reuse_hashes(
            dependency_paths,
            request.previous_dependency_paths,
            request.previous_dependency_hashes,
        ):
            logger.info("Dependencies unchanged; reusing cached hashes")
            return list(request.previous_dependency_hashes or [])

        if not dependency_paths:
            return []

        await progress.report("Caching dependency info...")
        hashes = await fetch_dependency_hashes(
            git_url,
            request.branch,
            dependency_paths,
            auth,
            self.git,
            clone_timeout=self.config.clone_timeout_s,
            hash_timeout=self.config.hash_timeout_s,
        )
        logger.info("Cached %d dependency hashes", len(hashes))
        return hashes

    async def _discard_artifact(self, storage_id: str) -> None:
        try:
            await self.artifacts.delete(storage_id)
        except Exception:
            logger.warning("Could not delete orphaned artifact %s", storage_id, exc_info=True)
