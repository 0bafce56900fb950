"""组件构建

默认按声明顺序逐个构建；并发度大于 1 且选中的组件之间没有按包名的
相互依赖时，改为线程池并发构建。
"""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any

from lockbuild.core.exceptions import BuildScriptFailureError
from lockbuild.core.workspace import Component
from lockbuild.services.build.plan import OFFLINE_ENV, BuildPlan
from lockbuild.utils.shell import CommandExecutor, get_executor

logger = logging.getLogger(__name__)


def independent(components: list[Component]) -> bool:
    """选中的组件之间是否互不依赖"""
    names = {c.manifest.name for c in components if c.manifest.name}
    for c in components:
        if c.manifest.dependency_names() & (names - {c.manifest.name}):
            return False
    return True


class BuildRunner:
    """组件构建执行器"""

    def __init__(
        self,
        executor: CommandExecutor | None = None,
        timeout: int | None = None,
    ) -> None:
        self._executor = executor
        self.timeout = timeout

    def build_component(
        self, plan: BuildPlan, component: Component, work_dir: Path,
    ) -> dict[str, Any]:
        """在组件目录中运行构建脚本

        异常:
            BuildScriptFailureError: 脚本非零退出
        """
        cwd = work_dir / component.path
        env = {**os.environ, **OFFLINE_ENV, **plan.build_env}
        start = time.monotonic()
        r = (self._executor or get_executor()).execute(
            plan.build_command, cwd=str(cwd), env=env,
            timeout=self.timeout, shell=plan.build_in_shell,
        )
        duration = time.monotonic() - start
        if not r.success:
            logger.error("组件构建失败 %s (rc=%d)", component.path, r.returncode)
            raise BuildScriptFailureError(component.path, r.returncode, r.stderr)
        logger.info("  构建完成: %s (%.1fs)", component.name, duration)
        return {"component": component.path, "duration": round(duration, 3)}

    def build_all(self, plan: BuildPlan, work_dir: Path) -> list[dict[str, Any]]:
        components = plan.components
        if plan.build_concurrency <= 1 or len(components) <= 1 or not independent(components):
            return [self.build_component(plan, c, work_dir) for c in components]

        logger.info("  并发构建 %d 个组件 (并发 %d)", len(components), plan.build_concurrency)
        abort = threading.Event()

        def run(component: Component) -> dict[str, Any] | None:
            # 已有组件失败时不再启动新的构建
            if abort.is_set():
                return None
            try:
                return self.build_component(plan, component, work_dir)
            except Exception:
                abort.set()
                raise

        with ThreadPoolExecutor(
            max_workers=plan.build_concurrency, thread_name_prefix="lockbuild-build",
        ) as pool:
            futures = [pool.submit(run, c) for c in components]
            wait(futures, return_when=FIRST_EXCEPTION)
            for f in futures:
                f.cancel()

        # 按声明顺序抛出第一个失败
        for f in futures:
            if not f.cancelled() and f.exception() is not None:
                raise f.exception()
        return [f.result() for f in futures]
