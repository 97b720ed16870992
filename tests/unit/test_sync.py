"""Tests for the full sync driver."""

from unittest.mock import patch

import httpx
import pytest

from depsync.commit import CommitOrchestrator
from depsync.config import RepoSpec
from depsync.errors import LocalCommitFailed, ShapeError
from depsync.manifest import read_current
from depsync.models import CommitRecord, CommitStrategy, FileKind
from depsync.registry import CratesRegistry
from depsync.sync import SyncRunner


def registry_with(versions):
    def handler(request):
        name = request.url.path.rsplit("/", 1)[-1]
        if name not in versions:
            return httpx.Response(404)
        return httpx.Response(200, json={"crate": {"max_stable_version": versions[name]}})

    return CratesRegistry(transport=httpx.MockTransport(handler))


@pytest.fixture
def checkout(sync_config, sample_manifest, sample_workflow):
    root = sync_config.checkouts_dir / "evo-king"
    (root / ".github" / "workflows").mkdir(parents=True)
    (root / "Cargo.toml").write_text(sample_manifest)
    (root / ".github" / "workflows" / "ci.yml").write_text(sample_workflow)
    return root


class TestSyncRunner:
    """Test scanning, committing and reporting."""

    @pytest.mark.asyncio
    async def test_dry_run_finds_updates_without_committing(
        self, sync_config, checkout, local_orchestrator, fake_git_factory, sample_manifest
    ):
        runner = SyncRunner(
            sync_config,
            registry=registry_with({"evo-common": "0.3.0", "evo-agent-sdk": "0.2.0"}),
            orchestrator=local_orchestrator,
        )

        report = await runner.run(dry_run=True, run_id="r1")

        assert report.versions == {"evo-common": "0.3.0", "evo-agent-sdk": "0.2.0"}
        assert [u.target.kind for u in report.pending_updates] == [
            FileKind.MANIFEST,
            FileKind.WORKFLOW,
        ]
        manifest_update, workflow_update = report.pending_updates
        assert 'evo-common = "0.3.0"' in manifest_update.patched_content
        assert read_current(manifest_update.patched_content, "evo-agent-sdk") == "0.2.0"
        assert manifest_update.commit_message == (
            "chore(deps): update dependencies in Cargo.toml [run_id=r1]"
        )
        assert 'evo-agent-sdk = "0.2.0"' in workflow_update.patched_content
        assert workflow_update.commit_message == (
            "ci: bump evo-agent-sdk to 0.2.0 in sed pattern [run_id=r1]"
        )
        assert {(r.package, r.current, r.latest) for r in report.reports} == {
            ("evo-common", "0.2", "0.3.0"),
            ("evo-agent-sdk", "0.1", "0.2.0"),
        }
        assert report.committed == []
        assert fake_git_factory.created == []
        assert (checkout / "Cargo.toml").read_text() == sample_manifest

    @pytest.mark.asyncio
    async def test_commits_each_pending_update(
        self, sync_config, checkout, local_orchestrator, fake_git_factory
    ):
        runner = SyncRunner(
            sync_config,
            registry=registry_with({"evo-common": "0.3.0", "evo-agent-sdk": "0.2.0"}),
            orchestrator=local_orchestrator,
        )

        report = await runner.run(run_id="r2")

        assert [c["file_path"] for c in report.committed] == [
            "Cargo.toml",
            ".github/workflows/ci.yml",
        ]
        assert all(c["strategy"] == "local_checkout" for c in report.committed)
        assert all(c["repo"] == "my-org/evo-king" for c in report.committed)
        assert report.errors == []
        assert 'evo-common = "0.3.0"' in (checkout / "Cargo.toml").read_text()
        assert len(fake_git_factory.created) == 2

    @pytest.mark.asyncio
    async def test_up_to_date_repo_has_nothing_pending(
        self, sync_config, checkout, local_orchestrator
    ):
        runner = SyncRunner(
            sync_config,
            registry=registry_with({"evo-common": "0.2.0", "evo-agent-sdk": "0.1"}),
            orchestrator=local_orchestrator,
        )

        report = await runner.run()

        assert report.pending_updates == []
        assert report.reports == []

    @pytest.mark.asyncio
    async def test_registry_failure_skips_package(self, sync_config, checkout, local_orchestrator):
        runner = SyncRunner(
            sync_config,
            registry=registry_with({"evo-common": "0.3.0"}),
            orchestrator=local_orchestrator,
        )

        report = await runner.run(dry_run=True)

        assert report.versions == {"evo-common": "0.3.0"}
        assert [e["error"] for e in report.errors] == ["RegistryError"]
        assert [u.target.kind for u in report.pending_updates] == [FileKind.MANIFEST]

    @pytest.mark.asyncio
    async def test_failed_patch_is_not_reported_as_bump(
        self, sync_config, checkout, local_orchestrator
    ):
        runner = SyncRunner(
            sync_config,
            registry=registry_with({"evo-common": "0.3.0"}),
            orchestrator=local_orchestrator,
        )

        with patch(
            "depsync.sync.manifest.apply_patch",
            side_effect=ShapeError("evo-common entry has no version"),
        ):
            report = await runner.run(dry_run=True)

        assert report.reports == []
        assert report.pending_updates == []
        shape_errors = [e for e in report.errors if e["error"] == "ShapeError"]
        assert len(shape_errors) == 1
        assert shape_errors[0]["file"] == "Cargo.toml"

    @pytest.mark.asyncio
    async def test_commit_failure_is_isolated(self, sync_config, checkout):
        class FlakyOrchestrator(CommitOrchestrator):
            def commit(self, repo, file_path, new_content, message, local_checkout_path=None):
                if file_path == "Cargo.toml":
                    raise LocalCommitFailed("push rejected", repo=repo, file_path=file_path)
                return CommitRecord(repo, file_path, CommitStrategy.REMOTE_API, "c0ffee")

        runner = SyncRunner(
            sync_config,
            registry=registry_with({"evo-common": "0.3.0", "evo-agent-sdk": "0.2.0"}),
            orchestrator=FlakyOrchestrator(),
        )

        report = await runner.run()

        assert [c["file_path"] for c in report.committed] == [".github/workflows/ci.yml"]
        assert report.errors == [
            {
                "error": "LocalCommitFailed",
                "message": "push rejected",
                "repo": "my-org/evo-king",
                "file": "Cargo.toml",
                "operation": None,
            }
        ]

    @pytest.mark.asyncio
    async def test_missing_files_are_skipped(self, sync_config, local_orchestrator):
        sync_config.repos = [RepoSpec(name="ghost", workflows=[".github/workflows/ci.yml"])]
        runner = SyncRunner(
            sync_config,
            registry=registry_with({"evo-common": "0.3.0", "evo-agent-sdk": "0.2.0"}),
            orchestrator=local_orchestrator,
        )

        report = await runner.run()

        assert report.pending_updates == []
        assert report.errors == []

    @pytest.mark.asyncio
    async def test_config_sync_notified_after_commit(
        self, sync_config, checkout, local_orchestrator
    ):
        posted = []

        def king(request):
            posted.append(request)
            return httpx.Response(202)

        sync_config.config_sync_url = "http://king.test/admin/config-sync"
        runner = SyncRunner(
            sync_config,
            registry=registry_with({"evo-common": "0.3.0"}),
            orchestrator=local_orchestrator,
            transport=httpx.MockTransport(king),
        )

        report = await runner.run()

        assert report.config_synced is True
        assert len(posted) == 1
        assert posted[0].method == "POST"

    @pytest.mark.asyncio
    async def test_config_sync_skipped_on_dry_run(self, sync_config, checkout, local_orchestrator):
        sync_config.config_sync_url = "http://king.test/admin/config-sync"
        runner = SyncRunner(
            sync_config,
            registry=registry_with({"evo-common": "0.3.0"}),
            orchestrator=local_orchestrator,
            transport=httpx.MockTransport(lambda request: pytest.fail("should not POST")),
        )

        report = await runner.run(dry_run=True)

        assert report.config_synced is False

    @pytest.mark.asyncio
    async def test_report_to_dict(self, sync_config, checkout, local_orchestrator):
        runner = SyncRunner(
            sync_config,
            registry=registry_with({"evo-common": "0.3.0"}),
            orchestrator=local_orchestrator,
        )

        data = (await runner.run(dry_run=True, run_id="r9")).to_dict()

        assert data["run_id"] == "r9"
        assert data["dry_run"] is True
        assert data["pending_updates"] == 1
        assert data["reports"][0]["package"] == "evo-common"


class TestPatchWorkflow:
    """Test the driver's workflow bump selection."""

    def test_newer_embedded_version_kept(self, sample_workflow):
        patched, bumps = SyncRunner.patch_workflow(
            sample_workflow.replace('"0.1"', '"0.9"'), {"evo-agent-sdk": "0.2"}
        )

        assert bumps == {}
        assert '"0.9"' in patched
