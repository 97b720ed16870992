"""CLI application for DepSync."""

import asyncio
import difflib
import json
import logging
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from depsync.config import DEFAULT_CONFIG_FILE, load_config
from depsync.detect import identify
from depsync.errors import DepSyncError
from depsync.manifest import apply_patch, read_current
from depsync.models import FileKind, SyncReport
from depsync.registry import CratesRegistry
from depsync.sync import SyncRunner
from depsync.versions import needs_update, version_delta
from depsync.workflow import find_versions, rewrite

console = Console(soft_wrap=True)


def configure_logging(verbose: bool) -> None:
    """Send library logs through rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def format_diff_output(original: str, updated: str, file_path: str) -> str:
    """Format a unified diff between the original and updated content."""
    diff = difflib.unified_diff(
        original.splitlines(keepends=True),
        updated.splitlines(keepends=True),
        fromfile=file_path,
        tofile=file_path,
    )
    return "".join(diff)


def format_json_output(
    package: str, current: str | None, latest: str, kind: FileKind, changed: bool
) -> str:
    """Format JSON output."""
    return json.dumps(
        {
            "package": package,
            "kind": kind.value,
            "current_version": current,
            "latest_version": latest,
            "semver_delta": version_delta(current, latest) if current else "unknown",
            "needs_update": changed,
        },
        indent=2,
    )


def render_sync_report(report: SyncReport) -> None:
    """Print a human-readable run summary."""
    versions = Table(title="Latest versions")
    versions.add_column("Package")
    versions.add_column("Version")
    for name, version in sorted(report.versions.items()):
        versions.add_row(name, version)
    console.print(versions)

    updates = Table(title="Dry run: pending updates" if report.dry_run else "Committed")
    updates.add_column("Repository")
    updates.add_column("File")
    updates.add_column("Strategy" if not report.dry_run else "Message")
    updates.add_column("Commit" if not report.dry_run else "Kind")
    if report.dry_run:
        for update in report.pending_updates:
            updates.add_row(
                update.target.repo,
                update.target.file_path,
                update.commit_message,
                update.target.kind.value,
            )
    else:
        for record in report.committed:
            updates.add_row(record["repo"], record["file_path"], record["strategy"], record["commit_id"])
    console.print(updates)

    for error in report.errors:
        console.print(
            f"{error['error']}: {error['message']}", style="red", markup=False, highlight=False
        )


app = typer.Typer(
    name="depsync",
    help="DepSync - Keep managed repositories on the latest shared crate versions",
    add_completion=False,
)


@app.command()
def sync(
    config_path: str = typer.Option(DEFAULT_CONFIG_FILE, "--config", "-c", help="Path to depsync.toml"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show pending updates without committing"),
    format_type: str = typer.Option("table", "--format", help="Output format: table or json"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Sync every managed repository with the latest tracked crate versions."""
    configure_logging(verbose)

    try:
        config = load_config(config_path)
        report = asyncio.run(SyncRunner(config).run(dry_run=dry_run))
    except DepSyncError as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(1)

    if format_type == "json":
        typer.echo(json.dumps(report.to_dict(), indent=2))
    else:
        render_sync_report(report)

    if report.errors:
        raise typer.Exit(1)


@app.command()
def check(
    file_path: str = typer.Argument(help="Path to Cargo.toml or workflow file (use '-' for stdin)"),
    package: str = typer.Option(..., "--package", "-p", help="Dependency to check"),
    version: str | None = typer.Option(None, "--version", help="Target version (default: latest on crates.io)"),
    kind: FileKind | None = typer.Option(None, "--kind", help="Force file kind"),
    output: str | None = typer.Option(None, "--out", "-o", help="Output file (use '-' for stdout)"),
    in_place: bool = typer.Option(False, "--in-place", "-i", help="Update file in place"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show changes without applying"),
    format_type: str = typer.Option("diff", "--format", help="Output format: diff or json"),
) -> None:
    """Patch one manifest or workflow file to the latest version of a crate."""

    try:
        # Read input
        if file_path == "-":
            content = sys.stdin.read()
            display_path = "<stdin>"
        else:
            path_obj = Path(file_path)
            if not path_obj.exists():
                console.print(f"Error: File {file_path} not found", style="red")
                raise typer.Exit(1)
            content = path_obj.read_bytes().decode("utf-8")
            display_path = file_path

        # Detect file kind
        if kind is None:
            kind = identify(content, file_path if file_path != "-" else None)
        if kind is None:
            console.print("Error: Cannot tell whether this is a manifest or a workflow", style="red")
            raise typer.Exit(1)

        latest = version or asyncio.run(CratesRegistry().fetch_latest_stable(package))

        if kind == FileKind.MANIFEST:
            current = read_current(content, package)
            changed = current is not None and needs_update(current, latest)
            updated = apply_patch(content, package, latest) if changed else content
        else:
            embedded = find_versions(content, package)
            current = embedded[0] if embedded else None
            changed = any(needs_update(v, latest) for v in embedded)
            updated = rewrite(content, package, latest) if changed else content

        if format_type == "json":
            typer.echo(format_json_output(package, current, latest, kind, changed))
            if not changed:
                raise typer.Exit(2)
            if not (in_place or output):
                return
        elif not changed:
            console.print("No updates available")
            raise typer.Exit(2)  # No changes exit code

        # Write output
        if dry_run:
            typer.echo(format_diff_output(content, updated, display_path), nl=False)
        elif in_place and file_path != "-":
            Path(file_path).write_text(updated, encoding="utf-8", newline="")
            console.print(f"Updated {file_path}")
        elif output:
            if output == "-":
                typer.echo(updated, nl=False)
            else:
                Path(output).write_text(updated, encoding="utf-8", newline="")
                console.print(f"Wrote updated file to {output}")
        elif file_path == "-":
            # Default: stdin to stdout
            typer.echo(updated, nl=False)
        else:
            console.print("Error: Specify --in-place, --out, or --dry-run", style="red")
            raise typer.Exit(1)

    except typer.Exit:
        # Re-raise typer exits (like Exit(2) for no changes)
        raise
    except DepSyncError as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
