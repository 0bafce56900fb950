"""lockfile patch 与序列化测试"""

from __future__ import annotations

import pytest

from lockbuild.core.exceptions import MissingStoreEntryError
from lockbuild.core.lockfile import LocalResolution, parse_lockfile, patch_lockfile, serialize_lockfile

LOCK = """\
lockfileVersion: '9.0'

settings:
  autoInstallPeers: true

importers:

  .:
    dependencies:
      foo:
        specifier: ^1.0.0
        version: 1.0.0

  packages/b:
    devDependencies:
      baz:
        specifier: ^2.0.0
        version: 2.0.0

packages:

  foo@1.0.0:
    resolution: {integrity: sha512-AAAA}
    engines: {node: '>=14'}

  bar@1.0.0:
    resolution: {tarball: https://example.com/bar.tgz, integrity: sha512-BBBB}

  baz@2.0.0:
    resolution: {type: git, repo: https://github.com/o/baz.git, commit: deadbeef}
    version: 2.0.0

snapshots:

  foo@1.0.0:
    dependencies:
      bar: 1.0.0

  bar@1.0.0: {}

  baz@2.0.0: {}
"""


@pytest.fixture()
def graph():
    return parse_lockfile(LOCK)


@pytest.fixture()
def store_paths(tmp_path):
    return {
        "foo@1.0.0": tmp_path / "h1" / "package.tgz",
        "bar@1.0.0": tmp_path / "h2" / "package.tgz",
        "baz@2.0.0": tmp_path / "h3" / "package.tgz",
    }


class TestPatchLockfile:
    def test_every_node_points_to_store(self, graph, store_paths) -> None:
        patched = patch_lockfile(graph, store_paths)
        for package_id, path in store_paths.items():
            assert patched.nodes[package_id].resolution == LocalResolution(path=str(path))

    def test_isomorphic(self, graph, store_paths) -> None:
        patched = patch_lockfile(graph, store_paths)
        assert set(patched.nodes) == set(graph.nodes)
        assert patched.edge_set() == graph.edge_set()
        assert patched.importer_edge_set() == graph.importer_edge_set()
        for package_id, node in graph.nodes.items():
            p = patched.nodes[package_id]
            assert (p.name, p.version, p.dependencies, p.categories) == (
                node.name, node.version, node.dependencies, node.categories,
            )

    def test_input_graph_untouched(self, graph, store_paths) -> None:
        before = serialize_lockfile(graph)
        patch_lockfile(graph, store_paths)
        assert serialize_lockfile(graph) == before

    def test_missing_entry(self, graph, store_paths) -> None:
        del store_paths["bar@1.0.0"]
        with pytest.raises(MissingStoreEntryError) as exc:
            patch_lockfile(graph, store_paths)
        assert exc.value.package_id == "bar@1.0.0"


class TestSerializePatched:
    def test_remote_fields_dropped(self, graph, store_paths) -> None:
        text = serialize_lockfile(patch_lockfile(graph, store_paths))
        assert "https://example.com/bar.tgz" not in text
        assert "sha512-AAAA" not in text
        assert "deadbeef" not in text
        assert f"tarball: file:{store_paths['foo@1.0.0']}" in text

    def test_reparses_with_same_parser(self, graph, store_paths) -> None:
        patched = patch_lockfile(graph, store_paths)
        again = parse_lockfile(serialize_lockfile(patched))
        assert again.edge_set() == graph.edge_set()
        assert again.importer_edge_set() == graph.importer_edge_set()
        for package_id in graph.nodes:
            assert again.nodes[package_id].resolution == patched.nodes[package_id].resolution

    def test_untouched_fields_preserved(self, graph, store_paths) -> None:
        again = parse_lockfile(serialize_lockfile(patch_lockfile(graph, store_paths)))
        assert again.document["settings"] == {"autoInstallPeers": True}
        assert again.document["packages"]["foo@1.0.0"]["engines"] == {"node": ">=14"}
        assert again.document["packages"]["baz@2.0.0"]["version"] == "2.0.0"
        assert list(again.document["importers"]) == [".", "packages/b"]
