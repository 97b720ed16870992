"""Full sync pass over every managed repository.

Phases:
1. Fetch the latest stable version of each tracked package.
2. Scan every managed manifest and workflow for stale versions.
3. Commit each patched file (skipped in dry-run mode).
4. Notify the config-sync endpoint when something was committed.
5. Return a ``SyncReport``.
"""

import asyncio
import logging
import uuid
from pathlib import Path

import httpx

from . import manifest, workflow
from .commit import CommitOrchestrator, GitHubContentsApi
from .config import RepoSpec, SyncConfig
from .errors import DepSyncError, NotFoundError, ShapeError
from .models import FileKind, PatchTarget, PendingUpdate, SyncReport, VersionReport
from .registry import CratesRegistry
from .versions import needs_update

logger = logging.getLogger(__name__)


def manifest_commit_message(file_path: str, run_id: str) -> str:
    return f"chore(deps): update dependencies in {file_path} [run_id={run_id}]"


def workflow_commit_message(bumps: dict[str, str], run_id: str) -> str:
    bumped = ", ".join(f"{name} to {version}" for name, version in bumps.items())
    return f"ci: bump {bumped} in sed pattern [run_id={run_id}]"


class SyncRunner:
    """Drives one sync run from a ``SyncConfig``."""

    def __init__(
        self,
        config: SyncConfig,
        registry: CratesRegistry | None = None,
        orchestrator: CommitOrchestrator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.registry = registry or CratesRegistry(
            base_url=config.registry_url,
            user_agent=config.user_agent,
            timeout=config.timeout,
        )
        if orchestrator is None:
            remote = None
            if config.github_token:
                remote = GitHubContentsApi(
                    token=config.github_token,
                    api_url=config.github_api_url,
                    timeout=config.timeout,
                    user_agent=config.user_agent,
                )
            orchestrator = CommitOrchestrator(remote=remote)
        self.orchestrator = orchestrator
        self._transport = transport

    async def run(self, dry_run: bool = False, run_id: str | None = None) -> SyncReport:
        """Run all phases and return the summary."""
        report = SyncReport(run_id=run_id or uuid.uuid4().hex[:12], dry_run=dry_run)
        if dry_run:
            logger.info("Running in dry-run mode; nothing will be committed")

        logger.info("Checking the registry for %d tracked packages", len(self.config.tracked_packages))
        versions, errors = await self.registry.fetch_latest_versions(self.config.tracked_packages)
        report.versions = versions
        report.errors.extend(error.to_dict() for error in errors)

        logger.info("Scanning %d managed repositories", len(self.config.repos))
        for repo in self.config.repos:
            self.scan_repo(repo, report)

        logger.info("%d pending updates", len(report.pending_updates))
        if not dry_run:
            for update in report.pending_updates:
                await self._commit(update, report)
            report.config_synced = await self.notify_config_sync(report)

        logger.info(
            "Sync done: %d committed, %d errors", len(report.committed), len(report.errors)
        )
        return report

    def scan_repo(self, repo: RepoSpec, report: SyncReport) -> None:
        """Add a pending update for every stale file of ``repo``."""
        slug = self.config.repo_slug(repo)
        checkout = self.config.checkout_path(repo)

        for file_path in repo.manifests:
            content = self._read(checkout / file_path, slug, file_path)
            if content is None:
                continue
            patched = self.patch_manifest(content, slug, file_path, report)
            if patched != content:
                report.pending_updates.append(
                    PendingUpdate(
                        target=PatchTarget(slug, file_path, FileKind.MANIFEST),
                        patched_content=patched,
                        commit_message=manifest_commit_message(file_path, report.run_id),
                        checkout_path=checkout,
                    )
                )

        for file_path in repo.workflows:
            content = self._read(checkout / file_path, slug, file_path)
            if content is None:
                continue
            patched, bumps = self.patch_workflow(content, report.versions)
            if patched != content:
                logger.info("Workflow update needed in %s/%s: %s", slug, file_path, bumps)
                report.pending_updates.append(
                    PendingUpdate(
                        target=PatchTarget(slug, file_path, FileKind.WORKFLOW),
                        patched_content=patched,
                        commit_message=workflow_commit_message(bumps, report.run_id),
                        checkout_path=checkout,
                    )
                )

    def patch_manifest(self, content: str, slug: str, file_path: str, report: SyncReport) -> str:
        """Apply every needed bump to one manifest."""
        patched = content
        for name, latest in report.versions.items():
            current = manifest.read_current(patched, name)
            if current is None or not needs_update(current, latest):
                continue
            try:
                patched = manifest.apply_patch(patched, name, latest)
            except (NotFoundError, ShapeError) as e:
                e.repo, e.file_path = slug, file_path
                logger.warning("Cannot patch %s in %s/%s: %s", name, slug, file_path, e)
                report.errors.append(e.to_dict())
                continue

            logger.info("%s/%s: %s %s -> %s", slug, file_path, name, current, latest)
            report.reports.append(
                VersionReport(
                    package=name,
                    current=current,
                    latest=latest,
                    needs_update=True,
                    repo=slug,
                    file_path=file_path,
                )
            )
        return patched

    @staticmethod
    def patch_workflow(content: str, versions: dict[str, str]) -> tuple[str, dict[str, str]]:
        """Rewrite stale embedded versions; return the text and the applied bumps."""
        patched = content
        bumps: dict[str, str] = {}
        for name, latest in versions.items():
            embedded = workflow.find_versions(patched, name)
            if not any(needs_update(current, latest) for current in embedded):
                continue
            rewritten = workflow.rewrite(patched, name, latest)
            if rewritten != patched:
                bumps[name] = latest
                patched = rewritten
        return patched, bumps

    @staticmethod
    def _read(path: Path, slug: str, file_path: str) -> str | None:
        try:
            return path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read %s/%s, skipping: %s", slug, file_path, e)
            return None

    async def _commit(self, update: PendingUpdate, report: SyncReport) -> None:
        target = update.target
        try:
            record = await asyncio.to_thread(
                self.orchestrator.commit,
                target.repo,
                target.file_path,
                update.patched_content,
                update.commit_message,
                update.checkout_path,
            )
        except DepSyncError as e:
            logger.warning("Commit of %s/%s failed: %s", target.repo, target.file_path, e)
            report.errors.append(e.to_dict())
        else:
            report.committed.append(record.to_dict())

    async def notify_config_sync(self, report: SyncReport) -> bool:
        """POST to the config-sync endpoint after successful commits."""
        url = self.config.config_sync_url
        if not url or not report.committed:
            return False

        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout, transport=self._transport
            ) as client:
                response = await client.post(url, json={"run_id": report.run_id})
        except httpx.HTTPError as e:
            logger.warning("Config-sync request failed: %s", e)
            return False

        if not response.is_success:
            logger.warning("Config-sync returned %s", response.status_code)
            return False

        logger.info("Config-sync accepted")
        return True
