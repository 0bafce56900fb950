"""工作空间: 根目录 + 有序的组件相对路径

组件选择是显式的；选择项里的 glob 交给注入的 ComponentMatcher 展开，
默认实现按 pnpm-workspace.yaml 的写法在文件树上匹配含 package.json 的目录。
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable

from lockbuild.core.exceptions import WorkspaceComponentNotFoundError
from lockbuild.core.manifest import MANIFEST_NAME, Manifest, load_manifest
from lockbuild.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

ROOT_COMPONENT = "."
WORKSPACE_FILE = "pnpm-workspace.yaml"
_GLOB_CHARS = frozenset("*?[")

# (workspace 根目录, glob 列表) -> 匹配到的组件相对路径（有序）
ComponentMatcher = Callable[[Path, Sequence[str]], list[str]]


def glob_matcher(root: Path, patterns: Sequence[str]) -> list[str]:
    """按 glob 匹配含 package.json 的目录，支持 "!" 排除，跳过 node_modules"""
    included: list[str] = []
    excluded: set[str] = set()
    for pattern in patterns:
        negate = pattern.startswith("!")
        body = pattern[1:] if negate else pattern
        for match in sorted(root.glob(body.rstrip("/"))):
            if not (match / MANIFEST_NAME).is_file() or "node_modules" in match.parts:
                continue
            rel = match.relative_to(root).as_posix()
            if negate:
                excluded.add(rel)
            elif rel not in included:
                included.append(rel)
    return [p for p in included if p not in excluded]


def read_workspace_patterns(root: Path) -> list[str]:
    """读取 pnpm-workspace.yaml 的 packages 列表，文件不存在时为空"""
    data = load_yaml(root / WORKSPACE_FILE)
    return [str(p) for p in data.get("packages") or []]


def normalize_component_path(component: str, root: str = "<workspace>") -> str:
    """规范化组件相对路径: "./a/" -> "a", "" -> "."

    异常:
        WorkspaceComponentNotFoundError: 绝对路径或跳出根目录
    """
    pure = PurePosixPath(component.replace("\\", "/") or ROOT_COMPONENT)
    if pure.is_absolute() or ".." in pure.parts:
        raise WorkspaceComponentNotFoundError(component, root)
    text = pure.as_posix()
    return text if text else ROOT_COMPONENT


@dataclass
class Component:
    """一个待构建的组件"""

    path: str
    manifest: Manifest
    dist_dir: str = "dist"

    @property
    def name(self) -> str:
        return self.manifest.name or self.path


@dataclass
class Workspace:
    """工作空间描述"""

    root: Path
    components: list[str] = field(default_factory=list)

    @property
    def is_single_project(self) -> bool:
        return self.components == [ROOT_COMPONENT]

    def component_dir(self, component: str) -> Path:
        return self.root / component

    def validate(self) -> None:
        """每个组件都必须是根目录下的已有目录

        异常:
            WorkspaceComponentNotFoundError: 第一个不存在的组件
        """
        root = self.root.resolve()
        for component in self.components:
            target = (self.root / component).resolve()
            if not target.is_dir() or not target.is_relative_to(root):
                raise WorkspaceComponentNotFoundError(component, str(self.root))

    def load_components(self, dist_dirs: dict[str, str] | None = None,
                        default_dist: str = "dist") -> list[Component]:
        dist_dirs = dist_dirs or {}
        return [
            Component(
                path=c,
                manifest=load_manifest(self.component_dir(c)),
                dist_dir=dist_dirs.get(c, default_dist),
            )
            for c in self.components
        ]


def select_components(
    root: Path,
    selectors: Sequence[str],
    matcher: ComponentMatcher = glob_matcher,
) -> Workspace:
    """根据显式选择项构造工作空间

    - 空选择: 单项目构建（根目录本身）
    - 普通路径: 原样保留，存在性由 Workspace.validate 检查
    - 含 glob 的选择项: 交给 matcher 展开，匹配不到任何组件视为不存在
    """
    if not selectors:
        return Workspace(root=root, components=[ROOT_COMPONENT])

    components: list[str] = []
    for selector in selectors:
        if _GLOB_CHARS & set(selector):
            matched = matcher(root, [selector])
            if not matched:
                raise WorkspaceComponentNotFoundError(selector, str(root))
            logger.debug("组件选择 %s 匹配到: %s", selector, matched)
            candidates = matched
        else:
            candidates = [normalize_component_path(selector, str(root))]
        for c in candidates:
            if c not in components:
                components.append(c)
    return Workspace(root=root, components=components)
