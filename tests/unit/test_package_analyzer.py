"""Unit tests for docsfetcher.package_analyzer."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from docsfetcher.package_analyzer import discover_packages, find_package_json, get_dependencies

if TYPE_CHECKING:
    from pathlib import Path


def _write_manifest(directory: Path, manifest: object) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "package.json"
    path.write_text(json.dumps(manifest), encoding="utf-8")
    return path


class TestFindPackageJson:
    def test_skips_node_modules_and_hidden_dirs(self, tmp_path: Path) -> None:
        root = _write_manifest(tmp_path, {"name": "app"})
        nested = _write_manifest(tmp_path / "packages" / "ui", {"name": "ui"})
        _write_manifest(tmp_path / "node_modules" / "react", {"name": "react"})
        _write_manifest(tmp_path / ".git" / "hooks", {"name": "hidden"})

        assert find_package_json(tmp_path) == [root, nested]

    def test_empty_tree(self, tmp_path: Path) -> None:
        assert find_package_json(tmp_path) == []


class TestGetDependencies:
    def test_all_dependency_sections(self, tmp_path: Path) -> None:
        path = _write_manifest(
            tmp_path,
            {
                "dependencies": {"react": "^18.2.0", "lodash": "^4.17.21"},
                "devDependencies": {"typescript": "^5.0.0", "react": "^18.2.0"},
                "peerDependencies": {"react-dom": "^18.0.0"},
            },
        )
        assert get_dependencies(path) == ["react", "lodash", "typescript", "react-dom"]

    def test_unreadable_manifest(self, tmp_path: Path) -> None:
        path = tmp_path / "package.json"
        path.write_text("{not json", encoding="utf-8")
        assert get_dependencies(path) == []

    def test_non_object_manifest(self, tmp_path: Path) -> None:
        assert get_dependencies(_write_manifest(tmp_path, ["react"])) == []


class TestDiscoverPackages:
    def test_deduplicates_across_workspace(self, tmp_path: Path) -> None:
        _write_manifest(tmp_path, {"dependencies": {"react": "18", "vue": "3"}})
        _write_manifest(tmp_path / "apps" / "web", {"dependencies": {"react": "18", "svelte": "4"}})
        _write_manifest(tmp_path / "node_modules" / "x", {"dependencies": {"ignored": "1"}})

        assert discover_packages(tmp_path) == ["react", "vue", "svelte"]
