"""Core data models for DepSync."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path


class FileKind(str, Enum):
    """Kind of file a patch target points at."""

    MANIFEST = "manifest"
    WORKFLOW = "workflow"


class CommitStrategy(str, Enum):
    """Commit backend that persisted a change."""

    REMOTE_API = "remote_api"
    LOCAL_CHECKOUT = "local_checkout"


@dataclass
class DependencyEntry:
    """A single dependency declared in a manifest's dependency table."""

    name: str
    version: str | None = None
    path: str | None = None
    form: str = "string"  # string, inline_table, table

    @property
    def is_local(self) -> bool:
        """Local path dependencies are never subject to update."""
        return self.path is not None


@dataclass
class VersionReport:
    """Comparison of a declared version against the latest published one."""

    package: str
    current: str | None
    latest: str
    needs_update: bool
    repo: str | None = None
    file_path: str | None = None


@dataclass
class PatchTarget:
    """One unit of work: a file inside a managed repository."""

    repo: str
    file_path: str
    kind: FileKind


@dataclass
class CommitRecord:
    """Provenance of a persisted change."""

    repo: str
    file_path: str
    strategy: CommitStrategy
    commit_id: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["strategy"] = self.strategy.value
        return data


@dataclass
class PendingUpdate:
    """A patched file waiting to be committed."""

    target: PatchTarget
    patched_content: str
    commit_message: str
    checkout_path: Path | None = None


@dataclass
class SyncReport:
    """Summary of a full sync run."""

    run_id: str
    dry_run: bool
    versions: dict[str, str] = field(default_factory=dict)
    reports: list[VersionReport] = field(default_factory=list)
    pending_updates: list[PendingUpdate] = field(default_factory=list)
    committed: list[dict] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)
    config_synced: bool = False

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "dry_run": self.dry_run,
            "versions": dict(self.versions),
            "reports": [asdict(report) for report in self.reports],
            "pending_updates": len(self.pending_updates),
            "committed": list(self.committed),
            "errors": list(self.errors),
            "config_synced": self.config_synced,
        }
