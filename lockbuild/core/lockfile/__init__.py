"""pnpm lockfile 处理模块

- models.py: 依赖图与 resolution 数据模型
- parser.py: 文本 -> DependencyGraph
- serializer.py: DependencyGraph -> 文本
- patcher.py: resolution 改写为本地存储路径
"""

from lockbuild.core.lockfile.models import (
    CustomTarballResolution,
    DependencyGraph,
    Edge,
    GitResolution,
    Importer,
    LocalResolution,
    PackageNode,
    PlatformTarballResolution,
    RegistryResolution,
    ResolutionKind,
    ResolutionSpec,
)
from lockbuild.core.lockfile.parser import classify_resolution, parse_lockfile
from lockbuild.core.lockfile.patcher import patch_lockfile
from lockbuild.core.lockfile.serializer import serialize_lockfile

__all__ = [
    "CustomTarballResolution",
    "DependencyGraph",
    "Edge",
    "GitResolution",
    "Importer",
    "LocalResolution",
    "PackageNode",
    "PlatformTarballResolution",
    "RegistryResolution",
    "ResolutionKind",
    "ResolutionSpec",
    "classify_resolution",
    "parse_lockfile",
    "patch_lockfile",
    "serialize_lockfile",
]
