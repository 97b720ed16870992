"""File kind detection for managed files."""

import re

from .models import FileKind


def identify(content: str, filename: str | None = None) -> FileKind | None:
    """Detect whether a file is a dependency manifest or a CI workflow.

    Args:
        content: The file content
        filename: Optional filename for additional context

    Returns:
        The detected kind, or None if neither applies
    """
    # Filename-based detection (takes precedence)
    if filename:
        if filename.endswith("Cargo.toml"):
            return FileKind.MANIFEST
        if "workflows/" in filename.replace("\\", "/") and filename.endswith((".yml", ".yaml")):
            return FileKind.WORKFLOW

    # Content-based detection
    if re.search(r"^\s*\[(?:dependencies|package|workspace)[\].]", content, re.MULTILINE):
        return FileKind.MANIFEST

    workflow_patterns = [
        r"^\s*jobs:\s*$",
        r"^\s*runs-on:",
        r"^\s*-\s*(?:run|uses):",
    ]

    for pattern in workflow_patterns:
        if re.search(pattern, content, re.MULTILINE):
            return FileKind.WORKFLOW

    return None
