"""Dependency discovery for ``fetch --all``.

Walks a project tree for ``package.json`` files (skipping ``node_modules``
and dot-directories) and collects every dependency name they declare.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

DEPENDENCY_FIELDS = ("dependencies", "devDependencies", "peerDependencies")
_SKIPPED_DIRS = {"node_modules"}


def find_package_json(
    root: Path, *, logger: FilteringBoundLogger | None = None
) -> list[Path]:
    """Every package.json under *root*, in walk order."""
    log = logger or structlog.get_logger()

    def _on_error(error: OSError) -> None:
        log.warning("package_scan_error", path=error.filename, error=error.strerror)

    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames[:] = sorted(
            d for d in dirnames if d not in _SKIPPED_DIRS and not d.startswith(".")
        )
        if "package.json" in filenames:
            found.append(Path(dirpath) / "package.json")
    return found


def get_dependencies(
    package_json: Path, *, logger: FilteringBoundLogger | None = None
) -> list[str]:
    """Dependency names declared in one package.json; [] if it cannot be read."""
    try:
        manifest = json.loads(package_json.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        log = logger or structlog.get_logger()
        log.warning("package_json_unreadable", path=str(package_json), exc_info=True)
        return []
    if not isinstance(manifest, dict):
        return []

    names: dict[str, None] = {}
    for field in DEPENDENCY_FIELDS:
        section = manifest.get(field)
        if isinstance(section, dict):
            names.update(dict.fromkeys(section))
    return list(names)


def discover_packages(
    root: Path | str, *, logger: FilteringBoundLogger | None = None
) -> list[str]:
    """All dependency names declared anywhere under *root*, first-seen order, deduplicated."""
    log = logger or structlog.get_logger()
    names: dict[str, None] = {}
    for path in find_package_json(Path(root), logger=log):
        names.update(dict.fromkeys(get_dependencies(path, logger=log)))
    log.info("packages_discovered", root=str(root), count=len(names))
    return list(names)
