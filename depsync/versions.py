"""Version comparison.

Versions are reduced to a ``(major, minor, patch)`` triple taken from the
first three fields separated by ``.``, ``-`` or ``+``. Pre-release and build
metadata beyond those fields are ignored, so ``1.0.0-rc.1`` compares equal to
``1.0.0``. This is a deliberate simplification of SemVer precedence.
"""

import re

_SEPARATORS = re.compile(r"[.\-+]")


def parse_version(version: str) -> tuple[int, int, int]:
    """Parse a version string into a comparable triple.

    Non-numeric or missing fields become 0.
    """
    fields = _SEPARATORS.split(version.strip())[:3]
    numbers = []
    for part in fields:
        try:
            numbers.append(int(part))
        except ValueError:
            numbers.append(0)
    while len(numbers) < 3:
        numbers.append(0)
    return numbers[0], numbers[1], numbers[2]


def needs_update(current: str, latest: str) -> bool:
    """Return True if ``latest`` is strictly newer than ``current``."""
    return parse_version(latest) > parse_version(current)


def version_delta(current: str, latest: str) -> str:
    """Classify a bump as "major", "minor", "patch" or "none"."""
    old = parse_version(current)
    new = parse_version(latest)
    if new <= old:
        return "none"
    if new[0] > old[0]:
        return "major"
    if new[1] > old[1]:
        return "minor"
    return "patch"
