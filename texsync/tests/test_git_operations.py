"""Tests for git subprocess helpers."""

from __future__ import annotations

import shutil
import subprocess

import pytest

from texsync.services import git_operations
from texsync.services.git_operations import (
    GitResult,
    SubprocessGitRepository,
    clone_full,
    clone_sparse,
    is_binary_file,
    normalize_repo_path,
    read_blob_hash,
)

from conftest import blob_id

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git binary not available")


class RecordingRunner:
    """Stand-in for run_git that replays queued results and records arguments."""

    def __init__(self, *results: GitResult) -> None:
        self.results = list(results)
        self.calls: list[list[str]] = []

    async def __call__(self, args, *, timeout, cwd=None):
        self.calls.append(list(args))
        if self.results:
            return self.results.pop(0)
        return GitResult(success=True)


class TestIsBinaryFile:
    @pytest.mark.parametrize("path", ["figures/plot.png", "logo.PDF", "fonts/a.woff2", "data\\archive.zip"])
    def test_binary(self, path):
        assert is_binary_file(path)

    @pytest.mark.parametrize("path", ["main.tex", "refs.bib", "style.cls", "Makefile", "notes.txt"])
    def test_text(self, path):
        assert not is_binary_file(path)


class TestNormalizeRepoPath:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("main.tex", "main.tex"),
            ("./chapters/intro.tex", "chapters/intro.tex"),
            ("/abs/file.tex", "abs/file.tex"),
            ("chapters\\intro.tex", "chapters/intro.tex"),
        ],
    )
    def test_normalizes(self, raw, expected):
        assert normalize_repo_path(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", None, "../secret", "a/../../b", "./"])
    def test_rejects(self, raw):
        assert normalize_repo_path(raw) is None


class TestCloneSparse:
    @pytest.mark.asyncio
    async def test_empty_paths_is_full_clone(self, monkeypatch, tmp_path):
        sparse_runner = RecordingRunner()
        monkeypatch.setattr(git_operations, "run_git", sparse_runner)
        await clone_sparse("https://github.com/a/b", tmp_path / "s", "main", [], timeout=5)

        full_runner = RecordingRunner()
        monkeypatch.setattr(git_operations, "run_git", full_runner)
        await clone_full("https://github.com/a/b", tmp_path / "s", "main", timeout=5)

        assert sparse_runner.calls == full_runner.calls
        assert sparse_runner.calls == [
            ["clone", "--depth", "1", "--branch", "main", "https://github.com/a/b", str(tmp_path / "s")]
        ]

    @pytest.mark.asyncio
    async def test_stages_in_order_and_writes_patterns(self, monkeypatch, tmp_path):
        runner = RecordingRunner()
        monkeypatch.setattr(git_operations, "run_git", runner)
        work_dir = tmp_path / "repo"

        result = await clone_sparse(
            "https://github.com/a/b", work_dir, None, ["main.tex", "figures/plot.png"], timeout=5
        )

        assert result.success
        assert runner.calls[0] == [
            "clone", "--depth", "1", "--filter=blob:none", "--sparse",
            "https://github.com/a/b", str(work_dir),
        ]
        assert runner.calls[1] == ["-C", str(work_dir), "sparse-checkout", "init", "--no-cone"]
        assert runner.calls[2] == ["-C", str(work_dir), "sparse-checkout", "reapply"]
        sparse_file = work_dir / ".git" / "info" / "sparse-checkout"
        assert sparse_file.read_text() == "main.tex\nfigures/plot.png\n"

    @pytest.mark.asyncio
    async def test_init_failure_stops_before_reapply(self, monkeypatch, tmp_path):
        runner = RecordingRunner(GitResult(success=True), GitResult(success=False))
        monkeypatch.setattr(git_operations, "run_git", runner)

        result = await clone_sparse("https://x.test/r", tmp_path / "repo", "main", ["a.tex"], timeout=5)

        assert not result.success
        assert result.error == "Failed to init sparse checkout"
        assert len(runner.calls) == 2

    @pytest.mark.asyncio
    async def test_clone_failure_keeps_stderr(self, monkeypatch, tmp_path):
        runner = RecordingRunner(GitResult(success=False, stderr="fatal: repository not found"))
        monkeypatch.setattr(git_operations, "run_git", runner)

        result = await clone_sparse("https://x.test/r", tmp_path / "repo", "main", ["a.tex"], timeout=5)

        assert result.error == "fatal: repository not found"
        assert len(runner.calls) == 1

    @pytest.mark.asyncio
    async def test_timeout_is_distinguishable(self, monkeypatch, tmp_path):
        runner = RecordingRunner(GitResult(success=False, timed_out=True))
        monkeypatch.setattr(git_operations, "run_git", runner)

        result = await clone_full("https://x.test/r", tmp_path / "repo", timeout=1)

        assert result.timed_out
        assert result.error == "git timed out"


class TestReadBlobHash:
    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        assert await read_blob_hash(tmp_path, "nope.tex", timeout=5) is None

    @requires_git
    @pytest.mark.asyncio
    async def test_matches_git_blob_id(self, tmp_path):
        (tmp_path / "hello.txt").write_bytes(b"hello\n")
        digest = await read_blob_hash(tmp_path, "hello.txt", timeout=10)
        assert digest == "ce013625030ba8dba906f756967f9e9ca394464a"

    @requires_git
    @pytest.mark.asyncio
    async def test_binary_files_are_hashed(self, tmp_path):
        (tmp_path / "plot.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x01")
        digest = await read_blob_hash(tmp_path, "plot.png", timeout=10)
        assert digest is not None and len(digest) == 40


def _git(*args, cwd):
    subprocess.run(
        ["git", "-c", "user.name=texsync", "-c", "user.email=texsync@example.com", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
    )


@pytest.fixture
def source_repo(tmp_path):
    """A committed local repository with a few LaTeX sources and a figure."""
    repo = tmp_path / "source"
    files = {
        "main.tex": "\\documentclass{article}\\input{chapters/intro}\n",
        "chapters/intro.tex": "Hello\n",
        "chapters/unused.tex": "Draft\n",
        "figures/plot.png": "PNG-ish\n",
        "notes.md": "todo\n",
    }
    for path, content in files.items():
        target = repo / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
    _git("init", "-q", cwd=repo)
    _git("config", "uploadpack.allowFilter", "true", cwd=repo)
    _git("config", "uploadpack.allowAnySHA1InWant", "true", cwd=repo)
    _git("add", ".", cwd=repo)
    _git("commit", "-q", "-m", "initial", cwd=repo)
    return repo, files


@requires_git
class TestSparseCloneOfLocalRepo:
    @pytest.mark.asyncio
    async def test_only_requested_paths_checked_out(self, source_repo, tmp_path):
        repo, _ = source_repo
        work_dir = tmp_path / "clone"
        wanted = ["chapters/intro.tex", "main.tex"]

        result = await clone_sparse(repo.as_uri(), work_dir, None, wanted, timeout=60)

        assert result.success, result.error
        assert (work_dir / "main.tex").is_file()
        assert (work_dir / "chapters" / "intro.tex").is_file()
        assert not (work_dir / "chapters" / "unused.tex").exists()
        assert not (work_dir / "figures" / "plot.png").exists()
        assert not (work_dir / "notes.md").exists()

    @pytest.mark.asyncio
    async def test_hashes_match_committed_blobs(self, source_repo, tmp_path):
        repo, files = source_repo
        work_dir = tmp_path / "clone"
        git = SubprocessGitRepository()
        wanted = ["main.tex", "figures/plot.png"]

        result = await git.clone_sparse(repo.as_uri(), work_dir, None, wanted, timeout=60)
        assert result.success, result.error

        for path in wanted:
            assert await git.read_blob_hash(work_dir, path, timeout=10) == blob_id(files[path])
        assert await git.read_blob_hash(work_dir, "notes.md", timeout=10) is None
