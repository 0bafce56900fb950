"""编排器步骤实现

步骤顺序:
1. prepare - 解析 lockfile，校验工作空间与组件（任何拉取之前）
2. resolve - 每个包解析为拉取指令
3. fetch   - 并发拉取到内容存储（唯一联网的阶段）
4. patch   - 拉取屏障之后改写 lockfile
5. install - 私有工作目录中离线安装
6. build   - 运行组件构建脚本
7. collect - 收集产物并原子发布
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from lockbuild.core.dep.fetcher import PackageFetcher
from lockbuild.core.exceptions import ConfigError
from lockbuild.core.lockfile.parser import parse_lockfile
from lockbuild.core.lockfile.patcher import patch_lockfile
from lockbuild.core.lockfile.serializer import serialize_lockfile
from lockbuild.core.workspace import select_components
from lockbuild.services.build.plan import BuildPlan

if TYPE_CHECKING:
    from lockbuild.services.container import ServiceContainer
    from lockbuild.services.orchestrator.models import (
        BuildContext,
        BuildReport,
        BuildRequest,
    )

logger = logging.getLogger(__name__)


class BuildSteps:
    """构建步骤集合"""

    def __init__(self, container: ServiceContainer) -> None:
        self.c = container

    def prepare(
        self, request: BuildRequest, ctx: BuildContext, report: BuildReport,
    ) -> None:
        """步骤1: 解析 lockfile，确定组件并生成构建计划"""
        cfg = self.c.config
        project = Path(request.project_dir)
        if not project.is_dir():
            raise ConfigError(f"项目目录不存在: {project}")
        lock_path = project / request.lockfile
        if not lock_path.is_file():
            raise ConfigError(f"lockfile 不存在: {lock_path}")
        ctx.graph = parse_lockfile(lock_path.read_text(encoding="utf-8"), registry=cfg.registry)

        workspace = select_components(project, request.components, self.c.matcher)
        workspace.validate()
        components = workspace.load_components(request.dist_dirs, request.dist_dir)
        if not request.custom_script:
            for component in components:
                if request.script_name not in component.manifest.scripts:
                    raise ConfigError(
                        f"组件 {component.path} 未定义构建脚本 '{request.script_name}'",
                    )

        install_command = [cfg.package_manager, *cfg.install_args]
        if not request.include_dev:
            install_command.append("--prod")
        ctx.plan = BuildPlan(
            workspace=workspace,
            components=components,
            output_dir=Path(request.output_dir).absolute(),
            install_command=install_command,
            build_command=request.custom_script or [cfg.package_manager, "run", request.script_name],
            install_env=dict(request.install_env),
            build_env=dict(request.build_env),
            include_node_modules=request.include_node_modules,
            build_concurrency=request.build_concurrency or cfg.build_concurrency,
        )
        report.steps.append({
            "step": "prepare", "status": "done",
            "lockfile_version": ctx.graph.lockfile_version,
            "packages": len(ctx.graph.nodes),
            "components": workspace.components,
        })
        logger.info(
            "[Step 1] 初始化完成: lockfile %s, %d 个包, 组件 %s",
            ctx.graph.lockfile_version, len(ctx.graph.nodes), workspace.components,
        )

    def resolve(
        self, request: BuildRequest, ctx: BuildContext, report: BuildReport,
    ) -> None:
        """步骤2: 解析每个包的来源"""
        ctx.directives = self.c.resolver.resolve_all(ctx.graph)
        unique = len({d.content_hash for d in ctx.directives.values()})
        report.steps.append({
            "step": "resolve", "status": "done",
            "packages": len(ctx.directives), "unique": unique,
        })
        logger.info("[Step 2] 来源解析完成: %d 个包, %d 个不同内容", len(ctx.directives), unique)

    def fetch(
        self, request: BuildRequest, ctx: BuildContext, report: BuildReport,
    ) -> None:
        """步骤3: 拉取全部内容（返回即屏障）"""
        fetcher = self.c.fetcher
        if request.fetch_workers:
            fetcher = PackageFetcher(self.c.store, max_workers=request.fetch_workers)
        ctx.entries = fetcher.fetch_all(ctx.directives)
        report.steps.append({
            "step": "fetch", "status": "done",
            "entries": len({e.content_hash for e in ctx.entries.values()}),
            "store": str(self.c.store.root),
        })
        logger.info("[Step 3] 拉取完成: %d 个包已在存储中", len(ctx.entries))

    def patch(
        self, request: BuildRequest, ctx: BuildContext, report: BuildReport,
    ) -> None:
        """步骤4: 改写 lockfile 指向内容存储"""
        store_paths = {pid: entry.archive for pid, entry in ctx.entries.items()}
        ctx.patched = patch_lockfile(ctx.graph, store_paths)
        ctx.patched_text = serialize_lockfile(ctx.patched)
        report.steps.append({
            "step": "patch", "status": "done", "packages": len(ctx.patched.nodes),
        })
        logger.info("[Step 4] lockfile 已改写: %d 个包", len(ctx.patched.nodes))

    def install(
        self, request: BuildRequest, ctx: BuildContext, report: BuildReport,
    ) -> None:
        """步骤5: 复制源码树，写入改写后的 lockfile，离线安装"""
        cfg = self.c.config
        installer = self.c.installer
        ctx.work_dir = installer.prepare_work_dir(
            Path(request.project_dir), Path(cfg.work_dir).absolute(),
            exclude=[self.c.store.root, ctx.plan.output_dir],
        )
        installer.write_lockfile(ctx.work_dir, request.lockfile, ctx.patched_text)
        checked = installer.verify_local_references(ctx.patched)
        duration = installer.install(ctx.plan, ctx.work_dir)
        report.steps.append({
            "step": "install", "status": "done",
            "local_references": checked, "duration": round(duration, 3),
        })
        logger.info("[Step 5] 离线安装完成 (%.1fs)", duration)

    def build(
        self, request: BuildRequest, ctx: BuildContext, report: BuildReport,
    ) -> None:
        """步骤6: 构建选中的组件"""
        results = self.c.builder.build_all(ctx.plan, ctx.work_dir)
        report.steps.append({"step": "build", "status": "done", "components": results})
        logger.info("[Step 6] 构建完成: %d 个组件", len(results))

    def collect(
        self, request: BuildRequest, ctx: BuildContext, report: BuildReport,
    ) -> None:
        """步骤7: 收集产物到暂存目录，再换入输出目录"""
        collector = self.c.collector
        ctx.staging_dir = collector.create_staging(ctx.plan.output_dir)
        collected = collector.copy_components(ctx.plan, ctx.work_dir, ctx.staging_dir)
        collector.publish(ctx.staging_dir, ctx.plan.output_dir)
        ctx.staging_dir = None
        report.artifact_dir = str(ctx.plan.output_dir)
        report.steps.append({
            "step": "collect", "status": "done",
            "components": collected, "artifact": report.artifact_dir,
        })
        logger.info("[Step 7] 产物已发布: %s", report.artifact_dir)

    def cleanup(
        self, request: BuildRequest, ctx: BuildContext, report: BuildReport,
    ) -> None:
        """清理暂存目录和工作目录（成功且要求保留时保留工作目录）"""
        if ctx.staging_dir is not None and ctx.staging_dir.exists():
            shutil.rmtree(ctx.staging_dir, ignore_errors=True)
        if ctx.work_dir is not None and ctx.work_dir.exists():
            if report.success and request.keep_work_dir:
                logger.info("保留工作目录: %s", ctx.work_dir)
            else:
                shutil.rmtree(ctx.work_dir, ignore_errors=True)
