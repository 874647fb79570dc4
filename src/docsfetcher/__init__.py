"""docsfetcher: locate, crawl, score and cache third-party package documentation."""

from __future__ import annotations

from importlib import metadata

DISTRIBUTION = "docsfetcher"
UNKNOWN_VERSION = "0.0.0+unknown"


def package_version(distribution: str = DISTRIBUTION) -> str:
    """Installed version of *distribution*; UNKNOWN_VERSION when run from a bare source tree."""
    try:
        return metadata.version(distribution)
    except metadata.PackageNotFoundError:
        return UNKNOWN_VERSION


__version__ = package_version()
