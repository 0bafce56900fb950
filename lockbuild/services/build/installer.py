"""离线安装

职责:
- 准备私有工作目录（复制源码树，排除 node_modules）
- 写入 patch 后的 lockfile，并确认引用的存储条目都在
- 以离线参数运行包管理器的 install
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Callable

from lockbuild.core.exceptions import InstallError, MissingStoreEntryError
from lockbuild.core.lockfile.models import DependencyGraph, LocalResolution
from lockbuild.services.build.plan import OFFLINE_ENV, BuildPlan
from lockbuild.utils.shell import CommandExecutor, get_executor
from lockbuild.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)

_SKIP_NAMES = frozenset(("node_modules", ".git", ".lockbuild"))


def _copy_ignore(excluded: Iterable[Path]) -> Callable[[str, list[str]], set[str]]:
    excluded_set = {p.resolve() for p in excluded}

    def ignore(dirpath: str, names: list[str]) -> set[str]:
        base = Path(dirpath).resolve()
        return {n for n in names if n in _SKIP_NAMES or (base / n) in excluded_set}

    return ignore


class InstallExecutor:
    """离线安装执行器"""

    def __init__(
        self,
        executor: CommandExecutor | None = None,
        timeout: int | None = None,
    ) -> None:
        self._executor = executor
        self.timeout = timeout

    def prepare_work_dir(
        self, project_dir: Path, work_root: Path, exclude: Iterable[Path] = (),
    ) -> Path:
        """复制源码树到 work_root 下的新目录，返回该目录"""
        work_root.mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(prefix="build-", dir=work_root))
        shutil.copytree(
            project_dir, work_dir, dirs_exist_ok=True, symlinks=True,
            ignore=_copy_ignore([work_root, *exclude]),
        )
        logger.info("  工作目录: %s", work_dir)
        return work_dir

    @staticmethod
    def verify_local_references(graph: DependencyGraph) -> int:
        """确认每个 file: 引用都指向存在的归档，返回检查的数量

        异常:
            MissingStoreEntryError: 引用的归档不存在
        """
        count = 0
        for node in graph.nodes.values():
            if isinstance(node.resolution, LocalResolution):
                if not Path(node.resolution.path).is_file():
                    raise MissingStoreEntryError(node.id, node.resolution.path)
                count += 1
        return count

    @staticmethod
    def write_lockfile(work_dir: Path, name: str, text: str) -> Path:
        path = work_dir / name
        atomic_write(path, text)
        return path

    def install(self, plan: BuildPlan, work_dir: Path) -> float:
        """运行离线安装，返回耗时（秒）

        异常:
            InstallError: 安装命令非零退出
        """
        env = {**os.environ, **OFFLINE_ENV, **plan.install_env}
        logger.info("  install: %s (cwd=%s)", " ".join(plan.install_command), work_dir)
        start = time.monotonic()
        r = (self._executor or get_executor()).execute(
            plan.install_command, cwd=str(work_dir), env=env, timeout=self.timeout,
        )
        if not r.success:
            logger.error("依赖安装失败 (rc=%d): %s", r.returncode, r.stderr.strip()[-500:])
            raise InstallError(r.returncode, r.stderr)
        return time.monotonic() - start
