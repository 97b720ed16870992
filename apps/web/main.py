"""FastAPI web application for DepSync."""

import os
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from depsync.config import DEFAULT_CONFIG_FILE, load_config
from depsync.detect import identify
from depsync.errors import ConfigError, DepSyncError, RegistryError
from depsync.manifest import apply_patch, read_current
from depsync.models import FileKind
from depsync.registry import CratesRegistry
from depsync.sync import SyncRunner
from depsync.versions import needs_update
from depsync.workflow import find_versions, rewrite

app = FastAPI(
    title="DepSync",
    description="Keep managed repositories on the latest shared crate versions",
    version="0.1.0",
)


class PatchRequest(BaseModel):
    """Request model for patching a single file."""
    content: str
    package: str
    version: Optional[str] = None
    kind: Optional[FileKind] = None
    filename: Optional[str] = None


class PatchResponse(BaseModel):
    """Response model for a single-file patch."""
    original_content: str
    updated_content: str
    kind: FileKind
    package: str
    current_version: Optional[str]
    new_version: str
    has_changes: bool


class SyncRequest(BaseModel):
    """Request model for a full sync run."""
    dry_run: bool = True
    run_id: Optional[str] = None


def server_config_path() -> str:
    """Config file chosen by whoever runs the server, never by the client."""
    return os.environ.get("DEPSYNC_CONFIG", DEFAULT_CONFIG_FILE)


def commits_allowed() -> bool:
    return os.environ.get("DEPSYNC_WEB_ALLOW_COMMIT", "").lower() in ("1", "true", "yes")


@app.get("/api/versions/{package}")
async def latest_version(package: str):
    """Return the latest stable version of a crate."""
    try:
        latest = await CratesRegistry().fetch_latest_stable(package)
    except RegistryError as e:
        status = 404 if e.status_code == 404 else 502
        raise HTTPException(status_code=status, detail=str(e))
    except DepSyncError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return {"package": package, "latest": latest}


@app.post("/api/patch", response_model=PatchResponse)
async def patch_file(request: PatchRequest):
    """Patch manifest or workflow text to a new version."""
    if not request.content.strip():
        raise HTTPException(status_code=400, detail="No content provided")

    kind = request.kind or identify(request.content, request.filename)
    if kind is None:
        raise HTTPException(
            status_code=400,
            detail="Cannot tell whether the content is a manifest or a workflow",
        )

    new_version = request.version or (await latest_version(request.package))["latest"]

    try:
        if kind == FileKind.MANIFEST:
            current = read_current(request.content, request.package)
            has_changes = current is not None and needs_update(current, new_version)
            updated = (
                apply_patch(request.content, request.package, new_version)
                if has_changes
                else request.content
            )
        else:
            embedded = find_versions(request.content, request.package)
            current = embedded[0] if embedded else None
            has_changes = any(needs_update(v, new_version) for v in embedded)
            updated = (
                rewrite(request.content, request.package, new_version)
                if has_changes
                else request.content
            )
    except DepSyncError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return PatchResponse(
        original_content=request.content,
        updated_content=updated,
        kind=kind,
        package=request.package,
        current_version=current,
        new_version=new_version,
        has_changes=has_changes,
    )


@app.post("/api/sync")
async def run_sync(request: SyncRequest):
    """Run a sync pass over every managed repository.

    Only dry runs are served unless the server sets ``DEPSYNC_WEB_ALLOW_COMMIT``.
    """
    if not request.dry_run and not commits_allowed():
        raise HTTPException(status_code=403, detail="Committing sync runs are disabled on this server")

    try:
        config = load_config(server_config_path())
    except ConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))

    report = await SyncRunner(config).run(dry_run=request.dry_run, run_id=request.run_id)
    return report.to_dict()
