"""Git subprocess helpers: shallow and sparse clones, blob hashing.

Every invocation runs under a caller-supplied timeout. A timeout is reported
separately from a non-zero exit so callers can tell a slow remote from a bad
one. Work directories are owned by the caller and assumed disposable; a
failed stage never rolls back earlier ones.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol

logger = logging.getLogger(__name__)

BINARY_EXTENSIONS = frozenset({
    ".pdf", ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".tiff", ".ico",
    ".zip", ".tar", ".gz", ".7z", ".rar",
    ".exe", ".dll", ".so", ".dylib",
    ".mp3", ".mp4", ".avi", ".mov", ".wav",
    ".ttf", ".otf", ".woff", ".woff2", ".eot",
})


@dataclass(frozen=True)
class GitResult:
    success: bool
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def error(self) -> str:
        if self.timed_out:
            return "git timed out"
        return self.stderr


def is_binary_file(path: str) -> bool:
    """Classify a path as binary by extension. Hashing still applies to binaries."""
    return PurePosixPath(path.replace("\\", "/")).suffix.lower() in BINARY_EXTENSIONS


def normalize_repo_path(path: str | None) -> str | None:
    """Repository-relative form of ``path``, or None if it is empty or escapes the tree."""
    if not path or not isinstance(path, str):
        return None
    cleaned = path.strip().replace("\\", "/")
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    cleaned = cleaned.lstrip("/")
    if not cleaned or ".." in cleaned.split("/"):
        return None
    return cleaned


async def run_git(
    args: list[str],
    *,
    timeout: float,
    cwd: str | Path | None = None,
) -> GitResult:
    """Run ``git <args>`` and capture its output.

    Raises:
        FileNotFoundError: git is not installed on this host.
    """
    proc = await asyncio.create_subprocess_exec(
        "git",
        *args,
        cwd=str(cwd) if cwd is not None else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _kill(proc)
        logger.warning("git %s timed out after %.0fs", args[0], timeout)
        return GitResult(success=False, timed_out=True)
    except asyncio.CancelledError:
        await _kill(proc)
        raise

    return GitResult(
        success=proc.returncode == 0,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        proc.kill()
        await proc.wait()


def _failed(result: GitResult, fallback: str) -> GitResult:
    if result.timed_out:
        return result
    return GitResult(success=False, stdout=result.stdout, stderr=result.stderr or fallback)


async def clone_full(
    authenticated_url: str,
    work_dir: str | Path,
    branch: str | None = None,
    *,
    timeout: float,
) -> GitResult:
    """Shallow (depth 1) clone of ``branch`` or the default branch."""
    Path(work_dir).mkdir(parents=True, exist_ok=True)
    args = ["clone", "--depth", "1"]
    if branch:
        args += ["--branch", branch]
    args += [authenticated_url, str(work_dir)]

    result = await run_git(args, timeout=timeout)
    if not result.success:
        return _failed(result, "Failed to clone repository")
    return result


async def clone_sparse(
    authenticated_url: str,
    work_dir: str | Path,
    branch: str | None = None,
    sparse_paths: list[str] | None = None,
    *,
    timeout: float,
) -> GitResult:
    """Partial clone materializing only ``sparse_paths``.

    An empty path list is exactly a full clone.
    """
    if not sparse_paths:
        return await clone_full(authenticated_url, work_dir, branch, timeout=timeout)

    work_dir = Path(work_dir)
    work_dir.mkdir(parents=True, exist_ok=True)
    args = ["clone", "--depth", "1", "--filter=blob:none", "--sparse"]
    if branch:
        args += ["--branch", branch]
    args += [authenticated_url, str(work_dir)]

    result = await run_git(args, timeout=timeout)
    if not result.success:
        return _failed(result, "Failed to clone repository")

    result = await run_git(
        ["-C", str(work_dir), "sparse-checkout", "init", "--no-cone"], timeout=timeout
    )
    if not result.success:
        return _failed(result, "Failed to init sparse checkout")

    sparse_file = work_dir / ".git" / "info" / "sparse-checkout"
    sparse_file.parent.mkdir(parents=True, exist_ok=True)
    sparse_file.write_text("\n".join(sparse_paths) + "\n", encoding="utf-8")

    result = await run_git(
        ["-C", str(work_dir), "sparse-checkout", "reapply"], timeout=timeout
    )
    if not result.success:
        return _failed(result, "Failed to apply sparse checkout")
    return result


async def read_blob_hash(work_dir: str | Path, path: str, *, timeout: float) -> str | None:
    """Git blob id of a checked-out file, or None if it is absent or unhashable."""
    if not (Path(work_dir) / path).is_file():
        return None
    result = await run_git(["hash-object", "--", path], cwd=work_dir, timeout=timeout)
    if not result.success:
        logger.info("hash-object failed for %s: %s", path, result.error.strip())
        return None
    return result.stdout.strip() or None


class GitRepository(Protocol):
    """Repository access used by the hash fetcher."""

    async def clone_full(
        self, authenticated_url: str, work_dir: Path, branch: str | None, *, timeout: float
    ) -> GitResult: ...

    async def clone_sparse(
        self,
        authenticated_url: str,
        work_dir: Path,
        branch: str | None,
        sparse_paths: list[str],
        *,
        timeout: float,
    ) -> GitResult: ...

    async def read_blob_hash(self, work_dir: Path, path: str, *, timeout: float) -> str | None: ...


class SubprocessGitRepository:
    """GitRepository backed by the git binary."""

    async def clone_full(self, authenticated_url, work_dir, branch, *, timeout):
        return await clone_full(authenticated_url, work_dir, branch, timeout=timeout)

    async def clone_sparse(self, authenticated_url, work_dir, branch, sparse_paths, *, timeout):
        return await clone_sparse(authenticated_url, work_dir, branch, sparse_paths, timeout=timeout)

    async def read_blob_hash(self, work_dir, path, *, timeout):
        return await read_blob_hash(work_dir, path, timeout=timeout)
