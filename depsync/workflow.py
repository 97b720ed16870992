"""Version bumps inside CI workflow ``sed`` substitutions.

Workflows that build against published crates rewrite local path
dependencies on the fly, e.g.::

    sed -i.bak 's|evo-agent-sdk = { path = "[^"]*" }|evo-agent-sdk = "0.2"|' Cargo.toml

Only the quoted version after ``|<name> = `` is rewritten; everything else in
the file is left untouched.
"""

import re


def _pattern(package_name: str) -> re.Pattern:
    return re.compile(r'(\|' + re.escape(package_name) + r' = ")(\d[^"]*)(")')


def find_versions(content: str, package_name: str) -> list[str]:
    """Return every version currently embedded for ``package_name``."""
    return [match.group(2) for match in _pattern(package_name).finditer(content)]


def rewrite(content: str, package_name: str, new_version: str) -> str:
    """Rewrite every embedded version of ``package_name`` to ``new_version``.

    Never fails: without a match the content is returned unchanged.
    """
    return _pattern(package_name).sub(
        lambda match: match.group(1) + new_version + match.group(3), content
    )
