"""Decide whether a paper's PDF is current with its repository."""

from __future__ import annotations

from texsync.schemas.pydantic import PaperState
from texsync.services.cache_mode import resolve_background_refresh
from texsync.services.dependency_hashes import dependencies_changed


def determine_if_up_to_date(paper: PaperState) -> bool | None:
    """Freshness of a paper's PDF.

    Evidence in order of trust: an explicit ``needs_sync`` flag, then a
    comparison of dependency content hashes, then commit metadata.

    Returns:
        None for papers without a repository (uploaded PDFs have no sync),
        True if the PDF is current, False if a rebuild is needed.
    """
    if not paper.has_repository:
        return None
    if not paper.pdf_storage_id:
        return False
    if paper.needs_sync is not None:
        return not paper.needs_sync
    if paper.previous_dependency_hashes is not None and paper.current_dependency_hashes is not None:
        return not dependencies_changed(paper.previous_dependency_hashes, paper.current_dependency_hashes)
    if paper.repository_commit_hash:
        return paper.cached_commit_hash == paper.repository_commit_hash
    return False


def background_refresh_enabled(paper: PaperState) -> bool:
    """Whether scheduled refreshes should keep this paper's PDF current."""
    if not paper.has_repository:
        return False
    return resolve_background_refresh(paper.repo_background_refresh, paper.user_background_refresh)
