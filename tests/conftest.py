"""Pytest configuration and fixtures."""


import pytest

from depsync.commit import CommitOrchestrator
from depsync.config import RepoSpec, SyncConfig
from depsync.errors import SubprocessError


@pytest.fixture
def sample_manifest():
    """Sample Cargo.toml content for testing."""
    return """[package]
name = "my-crate"
version = "1.0.0"

[dependencies]
# shared crates
evo-common = "0.2"  # keep in sync
evo-agent-sdk = { version = "0.1", features = ["full"] }
local-thing = { path = "../local-thing", version = "0.1" }
tokio = { version = "1", features = ["full"] }
"""


@pytest.fixture
def sample_workflow():
    """Sample CI workflow using a sed substitution for published crates."""
    return """name: CI
on: [push]
jobs:
  test:
    runs-on: ubuntu-latest
    steps:
      - run: cargo fmt --check
      - name: Use crates.io dependencies
        run: |
          sed -i.bak 's|evo-agent-sdk = { path = "[^"]*" }|evo-agent-sdk = "0.1"|' Cargo.toml
          rm -f Cargo.toml.bak
      - run: cargo test
"""


class FakeGit:
    """In-memory GitCheckout recording every call."""

    def __init__(self, root, fail_on=None, head="abc1234"):
        self.root = root
        self.fail_on = fail_on
        self.head = head
        self.calls = []

    def _step(self, name, *args):
        self.calls.append((name, *args))
        if self.fail_on == name:
            raise SubprocessError(f"git {name} exited with 1", returncode=1, operation=f"git {name}")

    def add(self, path):
        self._step("add", path)

    def commit(self, message):
        self._step("commit", message)

    def push(self):
        self._step("push")

    def head_id(self):
        self._step("rev-parse")
        return self.head


@pytest.fixture
def fake_git_factory():
    """Factory producing FakeGit instances; the created fakes are kept on ``.created``."""

    class Factory:
        def __init__(self):
            self.created = []
            self.fail_on = None

        def __call__(self, root):
            git = FakeGit(root, fail_on=self.fail_on)
            self.created.append(git)
            return git

    return Factory()


@pytest.fixture
def local_orchestrator(fake_git_factory):
    """Orchestrator without a remote API, so every commit goes local."""
    return CommitOrchestrator(remote=None, git_factory=fake_git_factory)


@pytest.fixture
def sync_config(tmp_path):
    """Sync config pointing at a checkouts dir under tmp_path."""
    return SyncConfig(
        org="my-org",
        tracked_packages=["evo-common", "evo-agent-sdk"],
        checkouts_dir=tmp_path,
        repos=[
            RepoSpec(
                name="evo-king",
                manifests=["Cargo.toml"],
                workflows=[".github/workflows/ci.yml"],
            ),
        ],
    )
