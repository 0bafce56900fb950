"""工作空间与 package.json 读取测试"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from lockbuild.core.exceptions import ConfigError, WorkspaceComponentNotFoundError
from lockbuild.core.manifest import Manifest, load_manifest
from lockbuild.core.workspace import (
    ROOT_COMPONENT,
    Workspace,
    glob_matcher,
    normalize_component_path,
    read_workspace_patterns,
    select_components,
)


def _component(root: Path, rel: str, name: str = "", **extra) -> Path:
    d = root / rel
    d.mkdir(parents=True, exist_ok=True)
    (d / "package.json").write_text(json.dumps({"name": name or rel, **extra}), encoding="utf-8")
    return d


class TestManifest:
    def test_from_dict(self) -> None:
        m = Manifest.from_dict({
            "name": "app", "version": "1.0.0",
            "scripts": {"build": "tsc"},
            "dependencies": {"a": "^1"}, "devDependencies": {"b": "^2"},
            "peerDependencies": {"c": "*"},
        })
        assert m.scripts == {"build": "tsc"}
        assert m.dependency_names() == {"a", "b", "c"}

    def test_load_missing(self, tmp_path) -> None:
        with pytest.raises(ConfigError, match="package.json"):
            load_manifest(tmp_path)

    @pytest.mark.parametrize("content", ["{oops", "[1, 2]"])
    def test_load_invalid(self, tmp_path, content) -> None:
        (tmp_path / "package.json").write_text(content, encoding="utf-8")
        with pytest.raises(ConfigError):
            load_manifest(tmp_path)


class TestNormalize:
    @pytest.mark.parametrize("raw,expected", [
        ("", "."), (".", "."), ("./a/", "a"), ("packages/b", "packages/b"),
        ("packages\\c", "packages/c"),
    ])
    def test_normalize(self, raw, expected) -> None:
        assert normalize_component_path(raw) == expected

    @pytest.mark.parametrize("raw", ["/abs", "../outside", "a/../../b"])
    def test_escaping_rejected(self, raw) -> None:
        with pytest.raises(WorkspaceComponentNotFoundError):
            normalize_component_path(raw)


class TestGlobMatcher:
    def test_match_and_exclude(self, tmp_path) -> None:
        _component(tmp_path, "packages/a")
        _component(tmp_path, "packages/b")
        _component(tmp_path, "packages/internal")
        (tmp_path / "packages" / "no-manifest").mkdir()
        _component(tmp_path, "packages/a/node_modules/x")
        assert glob_matcher(tmp_path, ["packages/*", "!packages/internal"]) == [
            "packages/a", "packages/b",
        ]

    def test_recursive_skips_node_modules(self, tmp_path) -> None:
        _component(tmp_path, "apps/web")
        _component(tmp_path, "apps/web/node_modules/dep")
        assert glob_matcher(tmp_path, ["apps/**"]) == ["apps/web"]

    def test_workspace_file(self, tmp_path) -> None:
        (tmp_path / "pnpm-workspace.yaml").write_text(
            "packages:\n  - 'packages/*'\n  - '!packages/skip'\n", encoding="utf-8",
        )
        assert read_workspace_patterns(tmp_path) == ["packages/*", "!packages/skip"]
        assert read_workspace_patterns(tmp_path / "nowhere") == []


class TestSelectComponents:
    def test_empty_means_single_project(self, tmp_path) -> None:
        ws = select_components(tmp_path, [])
        assert ws.components == [ROOT_COMPONENT]
        assert ws.is_single_project

    def test_explicit_order_and_dedup(self, tmp_path) -> None:
        ws = select_components(tmp_path, ["b", "./a", "b/"])
        assert ws.components == ["b", "a"]
        assert not ws.is_single_project

    def test_glob_uses_matcher(self, tmp_path) -> None:
        seen = []

        def matcher(root, patterns):
            seen.append((root, list(patterns)))
            return ["packages/x", "packages/y"]

        ws = select_components(tmp_path, ["packages/*", "packages/x"], matcher=matcher)
        assert ws.components == ["packages/x", "packages/y"]
        assert seen == [(tmp_path, ["packages/*"])]

    def test_glob_without_match(self, tmp_path) -> None:
        with pytest.raises(WorkspaceComponentNotFoundError) as exc:
            select_components(tmp_path, ["libs/*"], matcher=lambda root, patterns: [])
        assert exc.value.component == "libs/*"


class TestWorkspace:
    def test_validate_reports_first_missing(self, tmp_path) -> None:
        _component(tmp_path, "a")
        ws = Workspace(root=tmp_path, components=["a", "b", "c"])
        with pytest.raises(WorkspaceComponentNotFoundError) as exc:
            ws.validate()
        assert exc.value.component == "b"
        assert exc.value.root == str(tmp_path)

    def test_validate_rejects_file(self, tmp_path) -> None:
        (tmp_path / "a").write_text("not a dir", encoding="utf-8")
        with pytest.raises(WorkspaceComponentNotFoundError):
            Workspace(root=tmp_path, components=["a"]).validate()

    def test_validate_rejects_symlink_escape(self, tmp_path) -> None:
        outside = tmp_path / "outside"
        outside.mkdir()
        root = tmp_path / "root"
        root.mkdir()
        (root / "link").symlink_to(outside)
        with pytest.raises(WorkspaceComponentNotFoundError):
            Workspace(root=root, components=["link"]).validate()

    def test_load_components(self, tmp_path) -> None:
        _component(tmp_path, "a", name="@scope/a", scripts={"build": "tsc"})
        _component(tmp_path, "b")
        ws = Workspace(root=tmp_path, components=["a", "b"])
        components = ws.load_components({"b": "lib"})
        assert [c.name for c in components] == ["@scope/a", "b"]
        assert [c.dist_dir for c in components] == ["dist", "lib"]
        assert components[0].manifest.scripts == {"build": "tsc"}
