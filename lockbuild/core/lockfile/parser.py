"""pnpm lockfile 解析器

职责:
- 把 pnpm-lock.yaml 文本解码为 DependencyGraph（纯函数，无副作用）
- 识别 resolution 的来源类型（registry / git / 平台归档 / 自定义 tarball）
- 未识别的字段原样保留在 graph.document 中，保证回写无损

兼容的 lockfile 形态:
  - v5.4: 包 id 形如 /name/1.0.0，importer 的 specifiers 单独成段
  - v6:   包 id 形如 /name@1.0.0，依赖边写在 packages 条目里
  - v9:   包 id 形如 name@1.0.0，依赖边写在 snapshots 段（带 peer 后缀）
"""

from __future__ import annotations

import logging
import re
from collections import deque
from typing import Any

import yaml

from lockbuild.core.config import DEFAULT_REGISTRY
from lockbuild.core.exceptions import MalformedLockfileError
from lockbuild.core.lockfile.models import (
    LOCAL_TARBALL_PREFIX,
    CustomTarballResolution,
    DependencyGraph,
    Edge,
    GitResolution,
    Importer,
    LocalResolution,
    PackageNode,
    PlatformTarballResolution,
    RegistryResolution,
    ResolutionSpec,
)
from lockbuild.utils.net import url_host
from lockbuild.utils.yaml_io import loads_yaml

logger = logging.getLogger(__name__)

ROOT_IMPORTER = "."

_EDGE_GROUPS = (
    ("dependencies", "dependencies"),
    ("devDependencies", "dev_dependencies"),
    ("optionalDependencies", "optional_dependencies"),
    ("peerDependencies", "peer_dependencies"),
)
_EDGE_CATEGORY = {
    "dependencies": "prod",
    "devDependencies": "dev",
    "optionalDependencies": "optional",
    "peerDependencies": "prod",
}
_NODE_DEP_KEYS = ("dependencies", "optionalDependencies")

# 代码托管平台的归档下载地址
_PLATFORM_ARCHIVE_PATTERNS = (
    re.compile(r"^https://codeload\.github\.com/[^/]+/[^/]+/tar\.gz/[^/]+$"),
    re.compile(r"^https://api\.github\.com/repos/[^/]+/[^/]+/tarball/[^/]+$"),
    re.compile(r"^https://gitlab\.com/.+/-/archive/[^/]+/[^/]+\.tar\.gz$"),
    re.compile(r"^https://bitbucket\.org/[^/]+/[^/]+/get/[^/]+\.tar\.gz$"),
)
_REGISTRY_TARBALL_RE = re.compile(r"/-/[^/]+\.tgz$")
# v5 包 id: name/version 或 @scope/name/version（name 中不含 @）
_V5_ID_RE = re.compile(r"^(?P<name>(?:@[^/@]+/)?[^/@]+)/(?P<version>[^/]+)$")


def parse_lockfile(text: str, *, registry: str = DEFAULT_REGISTRY) -> DependencyGraph:
    """解析 lockfile 文本

    参数:
        text: pnpm-lock.yaml 的完整文本
        registry: 只有 integrity 的 registry 包用来推导 tarball 地址

    异常:
        MalformedLockfileError: 文本不是合法 YAML，或某个段落结构错误
    """
    try:
        document = loads_yaml(text)
    except yaml.YAMLError as e:
        raise MalformedLockfileError("<document>", f"YAML 解析失败: {e}") from e
    if not isinstance(document, dict):
        raise MalformedLockfileError("<document>", "顶层必须是映射")
    if "lockfileVersion" not in document:
        raise MalformedLockfileError("lockfileVersion", "缺少 lockfileVersion 字段")

    packages = _mapping_section(document, "packages")
    snapshots = _mapping_section(document, "snapshots")
    importers = _parse_importers(document)

    dep_map = _collect_node_dependencies(packages, snapshots)
    nodes: dict[str, PackageNode] = {}
    for package_id, entry in packages.items():
        nodes[package_id] = _parse_node(package_id, entry, dep_map[package_id], registry)

    categories = _propagate_categories(importers, dep_map, packages)
    for package_id, cats in categories.items():
        node = nodes[package_id]
        nodes[package_id] = PackageNode(
            id=node.id, name=node.name, version=node.version,
            resolution=node.resolution, raw_resolution=node.raw_resolution,
            dependencies=node.dependencies, categories=frozenset(cats),
        )

    logger.debug(
        "lockfile 已解析: version=%s importers=%d packages=%d",
        document["lockfileVersion"], len(importers), len(nodes),
    )
    return DependencyGraph(
        lockfile_version=str(document["lockfileVersion"]),
        importers=importers,
        nodes=nodes,
        document=document,
    )


# =========================================================================
# resolution 分类
# =========================================================================


def classify_resolution(
    name: str, version: str, raw: Any, *, registry: str = DEFAULT_REGISTRY,
) -> ResolutionSpec | None:
    """按 resolution 的形状确定来源类型，无法识别时返回 None

    规则（顺序即优先级）:
      1. type=git 且带 repo/commit          -> Git
      2. tarball 以 file: 开头               -> Local（patch 的产物）
      3. tarball 是代码托管平台归档地址       -> PlatformTarball
      4. tarball + integrity，registry 形状  -> Registry，否则 CustomTarball
      5. 只有 integrity                      -> Registry（按 registry 推导地址）
    """
    if not isinstance(raw, dict):
        return None
    if raw.get("type") == "git":
        repo, commit = raw.get("repo"), raw.get("commit")
        if _non_empty_str(repo) and _non_empty_str(commit):
            return GitResolution(repository_url=repo, revision=commit)
        return None
    if "type" in raw:
        # directory 等本地链接类型
        return None

    tarball = raw.get("tarball")
    integrity = raw.get("integrity")
    if integrity is not None and not _non_empty_str(integrity):
        return None

    if tarball is None:
        if integrity and name and version:
            return RegistryResolution(
                tarball_url=registry_tarball_url(registry, name, version),
                integrity=integrity,
            )
        return None
    if not _non_empty_str(tarball):
        return None
    if tarball.startswith(LOCAL_TARBALL_PREFIX):
        return LocalResolution(path=tarball[len(LOCAL_TARBALL_PREFIX):])
    if not tarball.startswith(("http://", "https://")):
        return None
    if any(p.match(tarball) for p in _PLATFORM_ARCHIVE_PATTERNS):
        return PlatformTarballResolution(host_url=tarball, integrity=integrity or "")
    if not integrity:
        return None
    if _REGISTRY_TARBALL_RE.search(tarball) or url_host(tarball) == url_host(registry):
        return RegistryResolution(tarball_url=tarball, integrity=integrity)
    return CustomTarballResolution(url=tarball, integrity=integrity)


def registry_tarball_url(registry: str, name: str, version: str) -> str:
    """npm registry 的 tarball 地址: <registry>/<name>/-/<basename>-<version>.tgz"""
    basename = name.rsplit("/", 1)[-1]
    return f"{registry.rstrip('/')}/{name}/-/{basename}-{version}.tgz"


def split_package_id(package_id: str) -> tuple[str, str]:
    """拆分包 id 为 (name, version)，去掉 peer 后缀

    >>> split_package_id("/@babel/core@7.0.0(supports-color@8.0.0)")
    ('@babel/core', '7.0.0')
    >>> split_package_id("/lodash/4.17.21_peer")
    ('lodash', '4.17.21')
    """
    raw = package_id[1:] if package_id.startswith("/") else package_id
    m = _V5_ID_RE.match(raw)
    if m:
        return m.group("name"), m.group("version").split("_", 1)[0]
    at = raw.find("@", 1)
    if at < 0:
        return raw, ""
    return raw[:at], _strip_peer_suffix(raw[at + 1:])


# =========================================================================
# 内部实现
# =========================================================================


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _strip_peer_suffix(ref: str) -> str:
    if ref.startswith(("http://", "https://", "git+", "git@")):
        return ref
    return ref.split("(", 1)[0]


def _mapping_section(document: dict[str, Any], key: str) -> dict[str, Any]:
    value = document.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedLockfileError(key, "必须是映射")
    return value


def _parse_importers(document: dict[str, Any]) -> dict[str, Importer]:
    if "importers" in document:
        raw_importers = _mapping_section(document, "importers")
        return {
            str(path): _parse_importer(str(path), entry, f"importers.{path}")
            for path, entry in raw_importers.items()
        }
    # 单项目 lockfile: 直接依赖写在顶层
    return {ROOT_IMPORTER: _parse_importer(ROOT_IMPORTER, document, "<root>")}


def _parse_importer(path: str, entry: Any, section: str) -> Importer:
    if entry is None:
        return Importer(path=path)
    if not isinstance(entry, dict):
        raise MalformedLockfileError(section, "importer 必须是映射")
    specifiers = entry.get("specifiers") or {}
    if not isinstance(specifiers, dict):
        raise MalformedLockfileError(f"{section}.specifiers", "必须是映射")

    importer = Importer(path=path)
    for key, attr in _EDGE_GROUPS:
        group = entry.get(key)
        if group is None:
            continue
        if not isinstance(group, dict):
            raise MalformedLockfileError(f"{section}.{key}", "必须是映射")
        edges: dict[str, Edge] = getattr(importer, attr)
        for name, value in group.items():
            edges[str(name)] = _parse_edge(
                str(name), value, specifiers, f"{section}.{key}.{name}",
            )
    return importer


def _parse_edge(name: str, value: Any, specifiers: dict[str, Any], section: str) -> Edge:
    if isinstance(value, dict):
        return Edge(
            name=name,
            specifier=str(value.get("specifier", "")),
            version=str(value.get("version", "")),
        )
    if isinstance(value, (str, int, float)):
        return Edge(name=name, specifier=str(specifiers.get(name, "")), version=str(value))
    raise MalformedLockfileError(section, f"无法识别的依赖声明: {value!r}")


def _parse_node(
    package_id: str, entry: Any, dependencies: tuple[str, ...], registry: str,
) -> PackageNode:
    section = f"packages.{package_id}"
    if not isinstance(entry, dict):
        raise MalformedLockfileError(section, "包条目必须是映射")
    raw_resolution = entry.get("resolution")
    if raw_resolution is not None and not isinstance(raw_resolution, dict):
        raise MalformedLockfileError(f"{section}.resolution", "resolution 必须是映射")

    id_name, id_version = split_package_id(package_id)
    name = str(entry.get("name") or id_name)
    version = str(entry.get("version") or id_version)
    return PackageNode(
        id=package_id,
        name=name,
        version=version,
        resolution=classify_resolution(name, version, raw_resolution, registry=registry),
        raw_resolution=raw_resolution,
        dependencies=dependencies,
    )


def _collect_node_dependencies(
    packages: dict[str, Any], snapshots: dict[str, Any],
) -> dict[str, tuple[str, ...]]:
    """计算每个包的依赖 id 列表（v9 取自 snapshots，旧版取自 packages 条目）"""
    collected: dict[str, list[str]] = {pid: [] for pid in packages}
    sources: list[tuple[str, str, Any]] = []
    if snapshots:
        for snap_id, entry in snapshots.items():
            base_id = _strip_peer_suffix(str(snap_id))
            if base_id not in packages:
                raise MalformedLockfileError(
                    f"snapshots.{snap_id}", f"引用了 packages 中不存在的包 {base_id}",
                )
            sources.append((base_id, f"snapshots.{snap_id}", entry))
    else:
        sources = [(pid, f"packages.{pid}", entry) for pid, entry in packages.items()]

    for package_id, section, entry in sources:
        if entry is None:
            continue
        if not isinstance(entry, dict):
            raise MalformedLockfileError(section, "条目必须是映射")
        for key in _NODE_DEP_KEYS:
            group = entry.get(key)
            if group is None:
                continue
            if not isinstance(group, dict):
                raise MalformedLockfileError(f"{section}.{key}", "必须是映射")
            for dep_name, ref in group.items():
                dep_id = _resolve_dependency_id(str(dep_name), str(ref), packages)
                if dep_id is not None and dep_id not in collected[package_id]:
                    collected[package_id].append(dep_id)
    return {pid: tuple(deps) for pid, deps in collected.items()}


def _resolve_dependency_id(name: str, ref: str, packages: dict[str, Any]) -> str | None:
    """把依赖声明 name: ref 映射为 packages 中的包 id，workspace 链接返回 None"""
    if ref.startswith("link:"):
        return None
    base_ref = _strip_peer_suffix(ref)
    # v6 的包 id 自带 peer 后缀，v9 的 peer 后缀只出现在 snapshots
    for r in dict.fromkeys((ref, base_ref)):
        for candidate in (r, f"{name}@{r}", f"/{name}@{r}", f"/{name}/{r}", f"/{r}"):
            if candidate in packages:
                return candidate
    # lockfile 本身不完整时保留原始引用，patch 不会改动它
    return f"{name}@{base_ref}"


def _propagate_categories(
    importers: dict[str, Importer],
    dep_map: dict[str, tuple[str, ...]],
    packages: dict[str, Any],
) -> dict[str, set[str]]:
    """从 importer 的直接依赖出发，沿依赖边传播 prod/dev/optional 类别"""
    categories: dict[str, set[str]] = {pid: set() for pid in packages}
    for importer in importers.values():
        for key, attr in _EDGE_GROUPS:
            category = _EDGE_CATEGORY[key]
            for edge in getattr(importer, attr).values():
                start = _resolve_dependency_id(edge.name, edge.version, packages)
                if start is None or start not in packages:
                    continue
                queue = deque([start])
                while queue:
                    current = queue.popleft()
                    if category in categories[current]:
                        continue
                    categories[current].add(category)
                    queue.extend(d for d in dep_map.get(current, ()) if d in packages)
    return categories
