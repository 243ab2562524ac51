"""Shared test fixtures for vouch tests."""

import os
import subprocess
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from typer.testing import CliRunner


def _git(cwd: Path, *args: str) -> str:
    """Run git in a test repository and return stripped stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


@pytest.fixture
def git() -> Callable[..., str]:
    """Helper running git in a test repository: git(repo, "status")."""
    return _git


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_git_repo(tmp_path: Path) -> Generator[Path, None, None]:
    """Create a temporary git repository.

    Initializes a git repo with user config and an initial commit.
    Changes cwd to the repo directory for the duration of the test.
    """
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "-q")
    _git(repo, "config", "user.email", "test@test.com")
    _git(repo, "config", "user.name", "Test User")
    _git(repo, "config", "commit.gpgsign", "false")

    (repo / "README.md").write_text("# Test\n")
    _git(repo, "add", ".")
    _git(repo, "commit", "-q", "-m", "Initial commit")

    original_cwd = os.getcwd()
    os.chdir(repo)
    try:
        yield repo
    finally:
        os.chdir(original_cwd)


@pytest.fixture
def initialized_vouch(temp_git_repo: Path) -> Path:
    """Repository with a .vouch/config.toml of two quick phases.

    Returns the repo root path.
    """
    vouch_dir = temp_git_repo / ".vouch"
    vouch_dir.mkdir()
    (vouch_dir / ".gitignore").write_text("state.json\nvalidate.lock\n")
    (vouch_dir / "config.toml").write_text(
        """[validation]
fail_fast = true

[[validation.phases]]
name = "checks"
parallel = true

[[validation.phases.steps]]
name = "lint"
command = "echo lint ok"

[[validation.phases.steps]]
name = "types"
command = "echo types ok"

[[validation.phases]]
name = "tests"
depends_on = ["checks"]

[[validation.phases.steps]]
name = "unit"
command = "echo tests ok"
"""
    )
    _git(temp_git_repo, "add", ".vouch")
    _git(temp_git_repo, "commit", "-q", "-m", "Add vouch config")
    return temp_git_repo
