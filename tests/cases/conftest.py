"""pytest configuration for git-lines tests.

Registers custom markers and provides a throwaway git repository fixture.
"""

import shutil
import subprocess

import pytest


def pytest_configure(config):
    """Register custom markers for the test groups."""
    config.addinivalue_line(
        "markers",
        "git: End-to-end tests that run git against a temporary repository"
    )
    config.addinivalue_line(
        "markers",
        "no_newline: Tests around files whose last line lacks a trailing newline"
    )


def git(*args, cwd=None):
    """Run a git command, failing the test on a non-zero exit."""
    return subprocess.run(["git", *args], cwd=cwd, capture_output=True, check=True)


@pytest.fixture
def git_repo(tmp_path, monkeypatch):
    """Provide an empty repository with a deterministic identity.

    The test runs with the repository as its working directory.
    """
    if shutil.which("git") is None:
        pytest.skip("git binary not available")

    git("init", "--quiet", cwd=tmp_path)
    git("config", "user.name", "Test User", cwd=tmp_path)
    git("config", "user.email", "test@example.com", cwd=tmp_path)
    git("config", "core.autocrlf", "false", cwd=tmp_path)
    git("config", "commit.gpgsign", "false", cwd=tmp_path)

    monkeypatch.chdir(tmp_path)
    return tmp_path
