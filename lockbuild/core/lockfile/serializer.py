"""lockfile 序列化

以 graph.document 为底稿，只替换每个包的 resolution 字段，
其余内容（settings、overrides、未知字段、键顺序）原样输出。
"""

from __future__ import annotations

import copy
from typing import Any

from lockbuild.core.lockfile.models import DependencyGraph, LocalResolution, PackageNode
from lockbuild.utils.yaml_io import dumps_yaml


def serialize_lockfile(graph: DependencyGraph) -> str:
    """把依赖图输出为 lockfile 文本，结果可被 parse_lockfile 重新解析"""
    return dumps_yaml(render_document(graph))


def render_document(graph: DependencyGraph) -> dict[str, Any]:
    """生成待输出的文档映射（不修改 graph.document）"""
    document = copy.deepcopy(graph.document)
    packages = document.get("packages") or {}
    for package_id, node in graph.nodes.items():
        entry = packages.get(package_id)
        if not isinstance(entry, dict):
            continue
        raw = _raw_resolution(node)
        if raw is not None:
            entry["resolution"] = raw
    return document


def _raw_resolution(node: PackageNode) -> Any:
    if isinstance(node.resolution, LocalResolution):
        return node.resolution.to_raw()
    return copy.deepcopy(node.raw_resolution)
