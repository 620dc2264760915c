import re
from typing import Optional

VERSION_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")
# Namespace-Name-1.2.3; names may contain underscores but never dashes
DEPENDENCY_RE = re.compile(r"^(?P<full_name>[^-\s]+-[^-\s]+)-(?P<version>\d+\.\d+\.\d+)$")


def parse_version(value: str) -> tuple[int, int, int]:
    match = VERSION_RE.match((value or "").strip())
    if not match:
        raise ValueError(f"Invalid version: {value!r}")
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def split_dependency_string(value: str) -> Optional[tuple[str, str]]:
    """Split ``Namespace-Name-1.2.3`` into ``("Namespace-Name", "1.2.3")``."""
    match = DEPENDENCY_RE.match((value or "").strip())
    if not match:
        return None
    return match.group("full_name"), match.group("version")
