"""Persisting patched files: GitHub contents API first, local git second.

A unit of work goes through at most two attempts, strictly in order:

1. Remote API: read the current blob SHA of the file, then PUT the new
   content with that SHA as the optimistic-concurrency token.
2. Local checkout: write the file into the checkout, then ``git add``,
   ``git commit``, ``git push`` and read back the short HEAD hash. Only tried
   when the remote attempt failed and a checkout path was supplied.

Exactly one outcome is produced per call: a ``CommitRecord`` naming the
strategy that actually succeeded, or a ``DepSyncError``.
"""

import base64
import logging
import subprocess
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

import httpx

from .errors import (
    DepSyncError,
    LocalCommitFailed,
    NoFallbackAvailable,
    ParseError,
    RegistryError,
    SubprocessError,
    TransportError,
)
from .models import CommitRecord, CommitStrategy

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"


class GitCheckout(Protocol):
    """Version-control steps needed by the local fallback."""

    def add(self, path: str) -> None: ...

    def commit(self, message: str) -> None: ...

    def push(self) -> None: ...

    def head_id(self) -> str: ...


class SubprocessGit:
    """``GitCheckout`` backed by the ``git`` executable."""

    def __init__(self, root: Path, executable: str = "git", timeout: float = 120.0):
        self.root = Path(root)
        self.executable = executable
        self.timeout = timeout

    def _run(self, *args: str) -> str:
        command = [self.executable, *args]
        try:
            result = subprocess.run(
                command,
                cwd=self.root,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise SubprocessError(
                f"git {args[0]} timed out after {self.timeout}s",
                args=command,
                operation=f"git {args[0]}",
            ) from e
        except OSError as e:
            raise SubprocessError(
                f"Could not run git {args[0]}: {e}",
                args=command,
                operation=f"git {args[0]}",
            ) from e

        if result.returncode != 0:
            raise SubprocessError(
                f"git {args[0]} exited with {result.returncode}: {result.stderr.strip()}",
                args=command,
                returncode=result.returncode,
                stderr=result.stderr,
                operation=f"git {args[0]}",
            )
        return result.stdout

    def add(self, path: str) -> None:
        self._run("add", path)

    def commit(self, message: str) -> None:
        self._run("commit", "-m", message)

    def push(self) -> None:
        self._run("push")

    def head_id(self) -> str:
        return self._run("rev-parse", "--short", "HEAD").strip()


class GitHubContentsApi:
    """Minimal client for the GitHub repository contents endpoint."""

    def __init__(
        self,
        token: str,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        user_agent: str = "depsync",
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": user_agent,
        }
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.api_url,
            headers=self._headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    def _request(self, method: str, repo: str, file_path: str, **kwargs) -> dict:
        url = f"/repos/{repo}/contents/{file_path}"
        context = {"repo": repo, "file_path": file_path, "operation": f"contents {method}"}
        try:
            with self._client() as client:
                response = client.request(method, url, **kwargs)
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeError) as e:
            raise TransportError(f"{method} {url} failed: {e}", **context) from e

        if not response.is_success:
            raise RegistryError(
                f"{method} {url} returned {response.status_code}",
                status_code=response.status_code,
                **context,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ParseError(f"{method} {url} returned invalid JSON: {e}", **context) from e
        if not isinstance(payload, dict):
            raise ParseError(f"{method} {url} returned unexpected payload", **context)
        return payload

    def get_blob_sha(self, repo: str, file_path: str) -> str:
        """Return the current blob SHA of ``file_path``."""
        payload = self._request("GET", repo, file_path)
        sha = payload.get("sha")
        if not isinstance(sha, str) or not sha:
            raise ParseError(
                "Contents response has no sha",
                repo=repo,
                file_path=file_path,
                operation="contents GET",
            )
        return sha

    def put_file(self, repo: str, file_path: str, content: str, message: str, sha: str) -> str:
        """Replace ``file_path`` and return the new commit SHA."""
        try:
            encoded = base64.b64encode(content.encode("utf-8")).decode("ascii")
        except UnicodeEncodeError as e:
            raise ParseError(
                f"Content of {file_path} is not valid UTF-8: {e}",
                repo=repo,
                file_path=file_path,
                operation="contents PUT",
            ) from e
        body = {"message": message, "content": encoded, "sha": sha}
        payload = self._request("PUT", repo, file_path, json=body)
        commit = payload.get("commit")
        commit_sha = commit.get("sha") if isinstance(commit, dict) else None
        if not isinstance(commit_sha, str) or not commit_sha:
            raise ParseError(
                "Contents response has no commit.sha",
                repo=repo,
                file_path=file_path,
                operation="contents PUT",
            )
        return commit_sha


class CommitOrchestrator:
    """Commit a file through the remote API, falling back to a local checkout."""

    def __init__(
        self,
        remote: GitHubContentsApi | None = None,
        git_factory: Callable[[Path], GitCheckout] = SubprocessGit,
    ):
        self.remote = remote
        self.git_factory = git_factory
        self._locks: dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _checkout_lock(self, checkout: Path) -> threading.Lock:
        key = checkout.resolve()
        with self._locks_guard:
            return self._locks.setdefault(key, threading.Lock())

    def commit(
        self,
        repo: str,
        file_path: str,
        new_content: str,
        message: str,
        local_checkout_path: Path | str | None = None,
    ) -> CommitRecord:
        """Persist ``new_content`` at ``file_path`` in ``repo``.

        Raises:
            NoFallbackAvailable: The remote attempt failed and no checkout
                path was given
            LocalCommitFailed: Both attempts failed
        """
        try:
            sha = self._commit_remote(repo, file_path, new_content, message)
        except DepSyncError as remote_error:
            logger.warning(
                "Remote commit of %s/%s failed, trying local checkout: %s",
                repo,
                file_path,
                remote_error,
            )
            if local_checkout_path is None:
                raise NoFallbackAvailable(
                    f"Remote commit failed and no local checkout given for {repo}/{file_path}",
                    repo=repo,
                    file_path=file_path,
                    operation="commit",
                ) from remote_error
        else:
            logger.info("Committed %s/%s via remote API (%s)", repo, file_path, sha)
            return CommitRecord(repo, file_path, CommitStrategy.REMOTE_API, sha)

        checkout = Path(local_checkout_path)
        with self._checkout_lock(checkout):
            short_hash = self._commit_local(repo, checkout, file_path, new_content, message)
        logger.info("Committed %s/%s via local checkout (%s)", repo, file_path, short_hash)
        return CommitRecord(repo, file_path, CommitStrategy.LOCAL_CHECKOUT, short_hash)

    def _commit_remote(self, repo: str, file_path: str, new_content: str, message: str) -> str:
        if self.remote is None:
            raise DepSyncError(
                "No GitHub token configured",
                repo=repo,
                file_path=file_path,
                operation="contents GET",
            )
        blob_sha = self.remote.get_blob_sha(repo, file_path)
        logger.debug("Current blob of %s/%s is %s", repo, file_path, blob_sha)
        return self.remote.put_file(repo, file_path, new_content, message, blob_sha)

    def _commit_local(
        self, repo: str, checkout: Path, file_path: str, new_content: str, message: str
    ) -> str:
        full_path = (checkout / file_path).resolve()
        if not full_path.is_relative_to(checkout.resolve()):
            raise LocalCommitFailed(
                f"{file_path} is outside the checkout {checkout}",
                repo=repo,
                file_path=file_path,
                operation="write",
            )

        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_text(new_content, encoding="utf-8", newline="")

            git = self.git_factory(checkout)
            git.add(file_path)
            git.commit(message)
            git.push()
            short_hash = git.head_id()
        except (OSError, UnicodeError, SubprocessError) as e:
            raise LocalCommitFailed(
                f"Local git commit failed for {repo}/{file_path}: {e}",
                repo=repo,
                file_path=file_path,
                operation=getattr(e, "operation", None) or "write",
            ) from e

        if not short_hash:
            raise LocalCommitFailed(
                f"git rev-parse returned no hash for {repo}/{file_path}",
                repo=repo,
                file_path=file_path,
                operation="git rev-parse",
            )
        return short_hash
