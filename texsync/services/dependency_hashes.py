"""Content hashes for a document's dependencies, fetched with a single sparse clone.

Hashes are git blob ids, so they change only when a file's content changes,
not when unrelated commits land on the branch.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from texsync.exceptions import GitOperationError
from texsync.schemas.pydantic import DependencyHash, ProviderAuth
from texsync.services.git_operations import GitRepository, normalize_repo_path
from texsync.services.providers import build_authenticated_url

logger = logging.getLogger(__name__)


async def fetch_hashes(
    git_url: str,
    branch: str,
    paths: list[str],
    auth: ProviderAuth | None,
    repo: GitRepository,
    *,
    clone_timeout: float,
    hash_timeout: float,
) -> dict[str, str]:
    """Map each resolvable path in ``paths`` to its blob hash.

    Exactly one clone per call, restricted to the requested paths. Paths
    that are unsafe, absent on the branch, or fail to hash are left out and
    logged.

    Raises:
        GitOperationError: the clone itself failed or timed out.
    """
    if not paths:
        return {}

    safe: dict[str, str] = {}
    for path in paths:
        normalized = normalize_repo_path(path)
        if normalized is None:
            logger.info("Skipping unsafe dependency path %r", path)
            continue
        safe[path] = normalized

    if not safe:
        return {}

    sparse_paths = sorted(set(safe.values()))
    authenticated_url = build_authenticated_url(git_url, auth)

    with tempfile.TemporaryDirectory(prefix="texsync-hash-") as tmpdir:
        work_dir = Path(tmpdir) / "repo"
        result = await repo.clone_sparse(
            authenticated_url, work_dir, branch, sparse_paths, timeout=clone_timeout
        )
        if not result.success:
            # git echoes the remote in its errors; keep tokens out of logs
            stderr = result.stderr.replace(authenticated_url, git_url)[:500]
            raise GitOperationError("clone", stderr, result.timed_out)

        hashes: dict[str, str] = {}
        for original, normalized in safe.items():
            digest = await repo.read_blob_hash(work_dir, normalized, timeout=hash_timeout)
            if digest:
                hashes[original] = digest
            else:
                logger.info("Could not fetch hash for %s", original)
        return hashes


def order_hashes(paths: list[str], hashes: dict[str, str]) -> list[DependencyHash]:
    """``DependencyHash`` list in request order, dropping paths without a hash."""
    ordered: list[DependencyHash] = []
    seen: set[str] = set()
    for path in paths:
        digest = hashes.get(path)
        if not digest or path in seen:
            continue
        seen.add(path)
        ordered.append(DependencyHash(path=path, hash=digest))
    return ordered


async def fetch_dependency_hashes(
    git_url: str,
    branch: str,
    paths: list[str],
    auth: ProviderAuth | None,
    repo: GitRepository,
    *,
    clone_timeout: float,
    hash_timeout: float,
) -> list[DependencyHash]:
    """Ordered hashes for ``paths``. Never raises; failures produce an empty list."""
    if not paths:
        return []
    try:
        hashes = await fetch_hashes(
            git_url, branch, paths, auth, repo,
            clone_timeout=clone_timeout, hash_timeout=hash_timeout,
        )
    except GitOperationError as exc:
        logger.warning("Dependency hashes unavailable for %s@%s: %s", git_url, branch, exc.detail)
        return []
    except Exception:
        logger.warning("Could not fetch dependency hashes for %s", git_url, exc_info=True)
        return []
    return order_hashes(paths, hashes)


def dependencies_changed(
    previous: list[DependencyHash],
    current: list[DependencyHash],
) -> bool:
    """True if any dependency was added, removed, or has different content."""
    return {d.path: d.hash for d in previous} != {d.path: d.hash for d in current}
