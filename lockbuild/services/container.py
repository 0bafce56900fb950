"""服务容器: 统一依赖注入

同一容器内的实例共享状态，尤其是 ContentStore: 一个进程内的多次构建
共用同一个存储对象（及其 SingleFlight）。

依赖关系图（→ 表示依赖）:
  fetcher      → store
  orchestrator → store / resolver / fetcher / installer / builder / collector

用法:
    container = ServiceContainer()
    report = container.orchestrator.run(BuildRequest(project_dir="app"))

    # 测试中替换子进程执行器或组件匹配器
    container = ServiceContainer(config=cfg, executor=fake, matcher=my_matcher)
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from lockbuild.core.workspace import ComponentMatcher, glob_matcher

if TYPE_CHECKING:
    from lockbuild.core.config import Config
    from lockbuild.core.dep.fetcher import PackageFetcher
    from lockbuild.core.dep.resolver import SourceResolver
    from lockbuild.core.dep.store import ContentStore
    from lockbuild.services.build import ArtifactCollector, BuildRunner, InstallExecutor
    from lockbuild.services.orchestrator import BuildOrchestrator
    from lockbuild.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器"""

    def __init__(
        self,
        config: Config | None = None,
        executor: CommandExecutor | None = None,
        matcher: ComponentMatcher = glob_matcher,
    ) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from lockbuild.core.config import get_config
            config = get_config()
        self._config = config
        self._executor = executor
        self.matcher = matcher

    @property
    def config(self) -> Config:
        return self._config

    @property
    def store(self) -> ContentStore:
        if "store" not in self._instances:
            from lockbuild.core.dep.fetcher import GitFetcher, TarballFetcher
            from lockbuild.core.dep.models import METHOD_GIT, METHOD_TARBALL
            from lockbuild.core.dep.store import ContentStore
            timeout = self._config.fetch_timeout
            self._instances["store"] = ContentStore(
                self._config.store_dir,
                fetchers={
                    METHOD_TARBALL: TarballFetcher(timeout=timeout),
                    METHOD_GIT: GitFetcher(executor=self._executor, timeout=timeout),
                },
            )
        return self._instances["store"]  # type: ignore[return-value]

    @property
    def resolver(self) -> SourceResolver:
        if "resolver" not in self._instances:
            from lockbuild.core.dep.resolver import SourceResolver
            self._instances["resolver"] = SourceResolver()
        return self._instances["resolver"]  # type: ignore[return-value]

    @property
    def fetcher(self) -> PackageFetcher:
        if "fetcher" not in self._instances:
            from lockbuild.core.dep.fetcher import PackageFetcher
            self._instances["fetcher"] = PackageFetcher(
                self.store, max_workers=self._config.fetch_workers,
            )
        return self._instances["fetcher"]  # type: ignore[return-value]

    @property
    def installer(self) -> InstallExecutor:
        if "installer" not in self._instances:
            from lockbuild.services.build import InstallExecutor
            self._instances["installer"] = InstallExecutor(
                executor=self._executor, timeout=self._config.build_timeout,
            )
        return self._instances["installer"]  # type: ignore[return-value]

    @property
    def builder(self) -> BuildRunner:
        if "builder" not in self._instances:
            from lockbuild.services.build import BuildRunner
            self._instances["builder"] = BuildRunner(
                executor=self._executor, timeout=self._config.build_timeout,
            )
        return self._instances["builder"]  # type: ignore[return-value]

    @property
    def collector(self) -> ArtifactCollector:
        if "collector" not in self._instances:
            from lockbuild.services.build import ArtifactCollector
            self._instances["collector"] = ArtifactCollector()
        return self._instances["collector"]  # type: ignore[return-value]

    @property
    def orchestrator(self) -> BuildOrchestrator:
        if "orchestrator" not in self._instances:
            from lockbuild.services.orchestrator import BuildOrchestrator
            self._instances["orchestrator"] = BuildOrchestrator(self)
        return self._instances["orchestrator"]  # type: ignore[return-value]


# ---- 全局单例 ----

_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer 单例（线程安全）"""
    global _global  # noqa: PLW0603
    if _global is not None:
        return _global
    with _global_lock:
        if _global is None:
            _global = ServiceContainer()
        return _global


def reset_container() -> None:
    """重置全局容器（仅用于测试）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = None
