"""来源解析器: PackageNode.resolution -> FetchDirective

按 ResolutionKind 分派到独立注册的构造函数，新增来源类型只需 register，
不改动已有分支。没有构造函数的类型（含 LocalResolution）一律视为不支持。
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from lockbuild.core.dep.models import METHOD_GIT, METHOD_TARBALL, FetchDirective
from lockbuild.core.exceptions import UnsupportedResolutionFormatError, ValidationError
from lockbuild.core.lockfile.models import (
    CustomTarballResolution,
    DependencyGraph,
    GitResolution,
    PackageNode,
    PlatformTarballResolution,
    RegistryResolution,
    ResolutionKind,
)

logger = logging.getLogger(__name__)

DirectiveBuilder = Callable[[Any], FetchDirective]


def _from_registry(spec: RegistryResolution) -> FetchDirective:
    return FetchDirective(
        method=METHOD_TARBALL, url=spec.tarball_url, integrity=spec.integrity,
        source_kind=spec.kind.value,
    )


def _from_git(spec: GitResolution) -> FetchDirective:
    return FetchDirective(
        method=METHOD_GIT, url=spec.repository_url, revision=spec.revision,
        source_kind=spec.kind.value,
    )


def _from_platform_tarball(spec: PlatformTarballResolution) -> FetchDirective:
    return FetchDirective(
        method=METHOD_TARBALL, url=spec.host_url, integrity=spec.integrity,
        source_kind=spec.kind.value,
    )


def _from_custom_tarball(spec: CustomTarballResolution) -> FetchDirective:
    return FetchDirective(
        method=METHOD_TARBALL, url=spec.url, integrity=spec.integrity,
        source_kind=spec.kind.value,
    )


class SourceResolver:
    """把包的来源声明映射为拉取指令"""

    def __init__(self) -> None:
        self._builders: dict[ResolutionKind, DirectiveBuilder] = {}
        self.register(ResolutionKind.REGISTRY, _from_registry)
        self.register(ResolutionKind.GIT, _from_git)
        self.register(ResolutionKind.PLATFORM_TARBALL, _from_platform_tarball)
        self.register(ResolutionKind.CUSTOM_TARBALL, _from_custom_tarball)

    def register(self, kind: ResolutionKind, builder: DirectiveBuilder) -> None:
        """注册（或替换）某个来源类型的构造函数"""
        self._builders[kind] = builder

    def supported_kinds(self) -> list[ResolutionKind]:
        return list(self._builders)

    def resolve(self, node: PackageNode) -> FetchDirective:
        """解析单个包

        异常:
            UnsupportedResolutionFormatError: resolution 无法识别、没有构造函数或字段无效
        """
        spec = node.resolution
        if spec is None:
            raise UnsupportedResolutionFormatError(node.id, node.raw_resolution)
        builder = self._builders.get(spec.kind)
        if builder is None:
            raise UnsupportedResolutionFormatError(node.id, node.raw_resolution)
        try:
            return builder(spec)
        except ValidationError as e:
            raise UnsupportedResolutionFormatError(node.id, node.raw_resolution) from e

    def resolve_all(self, graph: DependencyGraph) -> dict[str, FetchDirective]:
        """按 lockfile 顺序解析全部包，遇到第一个不支持的包即中止"""
        directives: dict[str, FetchDirective] = {}
        for package_id, node in graph.nodes.items():
            directives[package_id] = self.resolve(node)
        unique = len({d.content_hash for d in directives.values()})
        logger.info("来源解析完成: %d 个包, %d 个不同内容", len(directives), unique)
        return directives
