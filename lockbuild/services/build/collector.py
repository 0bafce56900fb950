"""产物收集

先复制到输出目录旁的暂存目录，全部成功后再整体换入输出目录，
中途失败不会留下半成品。
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

from lockbuild.core.exceptions import MissingDistDirectoryError
from lockbuild.services.build.plan import BuildPlan

logger = logging.getLogger(__name__)


class ArtifactCollector:
    """收集各组件的产物目录"""

    @staticmethod
    def create_staging(output_dir: Path) -> Path:
        output_dir.parent.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=f".{output_dir.name}.staging-", dir=output_dir.parent))

    def copy_components(self, plan: BuildPlan, work_dir: Path, staging: Path) -> list[str]:
        """复制每个组件的产物（单项目直接放在根下），返回收集的组件列表

        异常:
            MissingDistDirectoryError: 组件的产物目录不存在
        """
        collected = []
        single = plan.workspace.is_single_project
        for component in plan.components:
            comp_dir = work_dir / component.path
            src = comp_dir / component.dist_dir
            if not src.is_dir():
                raise MissingDistDirectoryError(component.path, str(src))
            dest = staging if single else staging / component.path
            shutil.copytree(src, dest, dirs_exist_ok=True, symlinks=True)
            if plan.include_node_modules and (comp_dir / "node_modules").is_dir():
                # 解引用 pnpm 的符号链接，产物自包含
                shutil.copytree(
                    comp_dir / "node_modules", dest / "node_modules",
                    dirs_exist_ok=True, symlinks=False, ignore_dangling_symlinks=True,
                )
            logger.info("  已收集: %s <- %s", component.path, src)
            collected.append(component.path)
        return collected

    @staticmethod
    def publish(staging: Path, output_dir: Path) -> None:
        """把暂存目录换入输出目录（已有的旧产物被替换）"""
        backup = None
        if output_dir.exists():
            backup = output_dir.with_name(f".{output_dir.name}.old-{os.getpid()}")
            os.rename(output_dir, backup)
        os.rename(staging, output_dir)
        if backup is not None:
            shutil.rmtree(backup, ignore_errors=True)
