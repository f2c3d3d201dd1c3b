"""Shared fixtures for tests that drive a real git binary."""

import shutil
import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def git(cwd: Path, *args: str) -> str:
    """Runs git in `cwd` and returns its stripped stdout."""
    res = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    )
    return res.stdout.strip()


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolates git from the user's configuration and fixes the identity.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        monkeypatch (pytest.MonkeyPatch): Pytest fixture for env patching.

    Returns:
        Path: The fake home directory.
    """
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    return home


@pytest.fixture
def make_repo(git_env: Path) -> Callable[..., Path]:
    """Factory creating a repository with one commit on the given branch."""

    def factory(path: Path, branch: str = "main") -> Path:
        path.mkdir(parents=True, exist_ok=True)
        git(path, "init", "-q")
        git(path, "symbolic-ref", "HEAD", f"refs/heads/{branch}")
        (path / "README.md").write_text("# repo\n")
        git(path, "add", "README.md")
        git(path, "commit", "-q", "-m", "initial")
        return path

    return factory
