"""Cargo.toml dependency reading and patching.

Edits go through tomlkit's document model so that comments, key ordering,
quoting and every unrelated entry survive byte for byte.
"""

import tomlkit
from tomlkit.container import OutOfOrderTableProxy
from tomlkit.exceptions import TOMLKitError
from tomlkit.items import InlineTable, String, Table

from .errors import NotFoundError, ParseError, ShapeError
from .models import DependencyEntry

DEPENDENCY_TABLE = "dependencies"

# A table split across several headers parses into a proxy, not a Table.
_TABLE_TYPES = (Table, InlineTable, OutOfOrderTableProxy)


def _parse(manifest_text: str, operation: str):
    try:
        return tomlkit.parse(manifest_text)
    except TOMLKitError as e:
        raise ParseError(f"Invalid manifest: {e}", operation=operation) from e


def _to_entry(name: str, item) -> DependencyEntry | None:
    if isinstance(item, String):
        return DependencyEntry(name=name, version=str(item), form="string")

    if isinstance(item, (InlineTable, Table)):
        version = item.get("version")
        path = item.get("path")
        return DependencyEntry(
            name=name,
            version=str(version) if isinstance(version, String) else None,
            path=str(path) if isinstance(path, String) else None,
            form="inline_table" if isinstance(item, InlineTable) else "table",
        )

    return None


def list_dependencies(manifest_text: str) -> list[DependencyEntry]:
    """List every recognised entry of the dependency table."""
    doc = _parse(manifest_text, "list_dependencies")
    deps = doc.get(DEPENDENCY_TABLE)
    if not isinstance(deps, _TABLE_TYPES):
        return []

    entries = []
    for name, item in deps.items():
        entry = _to_entry(name, item)
        if entry is not None:
            entries.append(entry)
    return entries


def read_current(manifest_text: str, package_name: str) -> str | None:
    """Return the declared version of ``package_name``.

    Returns None when the manifest has no such dependency, when the
    dependency is a local path reference (even if it also declares a
    version), or when no version is declared.
    """
    try:
        doc = tomlkit.parse(manifest_text)
    except TOMLKitError:
        return None

    deps = doc.get(DEPENDENCY_TABLE)
    if not isinstance(deps, _TABLE_TYPES):
        return None

    entry = _to_entry(package_name, deps.get(package_name))
    if entry is None or entry.is_local:
        return None
    return entry.version


def _string_like(old: String, new_version: str) -> String:
    """Build a string item using the same quoting as ``old``."""
    literal = old.as_string().startswith("'")
    return tomlkit.string(new_version, literal=literal)


def apply_patch(manifest_text: str, package_name: str, new_version: str) -> str:
    """Set the version of ``package_name`` to ``new_version``.

    Args:
        manifest_text: The Cargo.toml content
        package_name: Dependency to patch
        new_version: Version to write

    Returns:
        The patched document

    Raises:
        ParseError: The manifest is not valid TOML
        NotFoundError: No dependency table, or the package is absent
        ShapeError: The entry is not a string or a table with a version
    """
    doc = _parse(manifest_text, "apply_patch")

    deps = doc.get(DEPENDENCY_TABLE)
    if deps is None:
        raise NotFoundError(
            f"No [{DEPENDENCY_TABLE}] table found", operation="apply_patch"
        )
    if not isinstance(deps, _TABLE_TYPES):
        raise ShapeError(
            f"[{DEPENDENCY_TABLE}] is not a table", operation="apply_patch"
        )

    item = deps.get(package_name)
    if item is None:
        raise NotFoundError(
            f"Dependency {package_name} not found in [{DEPENDENCY_TABLE}]",
            operation="apply_patch",
        )

    if isinstance(item, String):
        deps[package_name] = _string_like(item, new_version)
    elif isinstance(item, (InlineTable, Table)) and isinstance(item.get("version"), String):
        item["version"] = _string_like(item["version"], new_version)
    else:
        raise ShapeError(
            f"Unexpected TOML shape for dependency {package_name}; cannot patch version",
            operation="apply_patch",
        )

    return tomlkit.dumps(doc)
