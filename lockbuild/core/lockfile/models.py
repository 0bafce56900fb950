"""lockfile 依赖图数据模型

数据类:
- ResolutionKind / *Resolution: 包来源的标签联合
- Edge / Importer: 工作空间组件的直接依赖边
- PackageNode: 单个锁定包
- DependencyGraph: 整个 lockfile 解析后的依赖图（附带原始文档）
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Union

LOCAL_TARBALL_PREFIX = "file:"


class ResolutionKind(str, Enum):
    """包来源类型标签"""

    REGISTRY = "registry"
    GIT = "git"
    PLATFORM_TARBALL = "platform_tarball"
    CUSTOM_TARBALL = "custom_tarball"
    LOCAL = "local"  # 仅由 patch 产生，不可拉取


@dataclass(frozen=True)
class RegistryResolution:
    """npm registry 上的 tarball"""

    tarball_url: str
    integrity: str
    kind: ClassVar[ResolutionKind] = ResolutionKind.REGISTRY


@dataclass(frozen=True)
class GitResolution:
    """Git 仓库固定 commit（信任来源是 revision 本身）"""

    repository_url: str
    revision: str
    kind: ClassVar[ResolutionKind] = ResolutionKind.GIT


@dataclass(frozen=True)
class PlatformTarballResolution:
    """代码托管平台的归档下载地址（codeload.github.com 等）"""

    host_url: str
    integrity: str = ""
    kind: ClassVar[ResolutionKind] = ResolutionKind.PLATFORM_TARBALL


@dataclass(frozen=True)
class CustomTarballResolution:
    """任意 URL 的 tarball，必须带 integrity"""

    url: str
    integrity: str
    kind: ClassVar[ResolutionKind] = ResolutionKind.CUSTOM_TARBALL


@dataclass(frozen=True)
class LocalResolution:
    """指向本地内容存储的 tarball"""

    path: str
    kind: ClassVar[ResolutionKind] = ResolutionKind.LOCAL

    def to_raw(self) -> dict[str, Any]:
        return {"tarball": f"{LOCAL_TARBALL_PREFIX}{self.path}"}


ResolutionSpec = Union[
    RegistryResolution,
    GitResolution,
    PlatformTarballResolution,
    CustomTarballResolution,
    LocalResolution,
]


@dataclass(frozen=True)
class Edge:
    """importer 的一条直接依赖边"""

    name: str
    specifier: str
    version: str


@dataclass
class Importer:
    """工作空间组件（根目录为 "."）及其直接依赖"""

    path: str
    dependencies: dict[str, Edge] = field(default_factory=dict)
    dev_dependencies: dict[str, Edge] = field(default_factory=dict)
    optional_dependencies: dict[str, Edge] = field(default_factory=dict)
    peer_dependencies: dict[str, Edge] = field(default_factory=dict)

    def edges(self) -> list[tuple[str, Edge]]:
        """按类别列出全部边: [(category, edge), ...]"""
        result: list[tuple[str, Edge]] = []
        for category, group in (
            ("prod", self.dependencies),
            ("dev", self.dev_dependencies),
            ("optional", self.optional_dependencies),
            ("peer", self.peer_dependencies),
        ):
            result.extend((category, e) for e in group.values())
        return result


@dataclass(frozen=True)
class PackageNode:
    """单个锁定包"""

    id: str
    name: str
    version: str
    resolution: ResolutionSpec | None
    raw_resolution: Any
    dependencies: tuple[str, ...] = ()
    categories: frozenset[str] = frozenset()

    @property
    def dev_only(self) -> bool:
        return self.categories == frozenset({"dev"})


@dataclass
class DependencyGraph:
    """解析后的依赖图

    document 保存完整的原始 YAML 映射，所有未识别字段都留在其中，
    序列化时以它为底稿，只替换 resolution。
    """

    lockfile_version: str
    importers: dict[str, Importer]
    nodes: dict[str, PackageNode]
    document: dict[str, Any]

    def edge_set(self) -> set[tuple[str, str]]:
        """包之间的全部依赖边 (from_id, to_id)"""
        return {(n.id, dep) for n in self.nodes.values() for dep in n.dependencies}

    def importer_edge_set(self) -> set[tuple[str, str, str, str]]:
        """importer 的全部直接边 (importer, category, name, version)"""
        return {
            (imp.path, category, e.name, e.version)
            for imp in self.importers.values()
            for category, e in imp.edges()
        }
