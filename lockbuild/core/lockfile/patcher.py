"""lockfile 补丁: 把每个包的来源改写为内容存储中的本地 tarball

补丁只改 resolution，不增删任何节点或依赖边；
patch 之后的依赖图与原图同构，install 阶段只读本地文件。
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path

from lockbuild.core.exceptions import MissingStoreEntryError
from lockbuild.core.lockfile.models import DependencyGraph, LocalResolution, PackageNode

logger = logging.getLogger(__name__)


def patch_lockfile(
    graph: DependencyGraph, store_paths: Mapping[str, str | Path],
) -> DependencyGraph:
    """返回新的依赖图，每个包的 resolution 指向 store_paths 中的归档

    参数:
        graph: 解析得到的原始依赖图（不会被修改）
        store_paths: 包 id -> 存储中的 tarball 路径

    异常:
        MissingStoreEntryError: 某个包没有对应的存储路径
    """
    nodes: dict[str, PackageNode] = {}
    for package_id, node in graph.nodes.items():
        path = store_paths.get(package_id)
        if path is None:
            raise MissingStoreEntryError(package_id, "<未拉取>")
        local = LocalResolution(path=str(path))
        nodes[package_id] = replace(node, resolution=local, raw_resolution=local.to_raw())

    logger.info("lockfile 已补丁: %d 个包改写为本地 tarball", len(nodes))
    return DependencyGraph(
        lockfile_version=graph.lockfile_version,
        importers=copy.deepcopy(graph.importers),
        nodes=nodes,
        document=copy.deepcopy(graph.document),
    )
