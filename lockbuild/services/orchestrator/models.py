"""构建编排数据模型

数据类:
- BuildState: 状态机的状态
- BuildPlan: 见 services/build/plan.py
- BuildRequest: 一次构建的输入（由 CLI 或调用方构造）
- BuildContext: 阶段之间显式传递的中间结果
- BuildReport: 构建报告
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from lockbuild.core.dep.models import FetchDirective, StoreEntry
from lockbuild.core.lockfile.models import DependencyGraph
from lockbuild.services.build.plan import BuildPlan

LOCKFILE_NAME = "pnpm-lock.yaml"


class BuildState(str, Enum):
    INIT = "init"
    RESOLVED = "resolved"
    FETCHED = "fetched"
    PATCHED = "patched"
    INSTALLED = "installed"
    BUILT = "built"
    COLLECTED = "collected"
    DONE = "done"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (BuildState.DONE, BuildState.ABORTED)


# 正常推进顺序，ABORTED 不在其中
STATE_SEQUENCE = (
    BuildState.INIT,
    BuildState.RESOLVED,
    BuildState.FETCHED,
    BuildState.PATCHED,
    BuildState.INSTALLED,
    BuildState.BUILT,
    BuildState.COLLECTED,
    BuildState.DONE,
)


@dataclass
class BuildRequest:
    """构建请求

    components 为空时按单项目构建；选择项可以是相对路径或 glob。
    build_concurrency / fetch_workers 为 None 时取全局配置。
    """

    project_dir: str
    output_dir: str = "artifact"
    components: list[str] = field(default_factory=list)
    lockfile: str = LOCKFILE_NAME

    script_name: str = "build"
    custom_script: str = ""
    install_env: dict[str, str] = field(default_factory=dict)
    build_env: dict[str, str] = field(default_factory=dict)

    include_dev: bool = True
    include_node_modules: bool = False
    dist_dir: str = "dist"
    dist_dirs: dict[str, str] = field(default_factory=dict)

    build_concurrency: int | None = None
    fetch_workers: int | None = None
    keep_work_dir: bool = False


@dataclass
class BuildContext:
    """阶段间的中间结果，每个字段只由对应阶段写入一次"""

    plan: BuildPlan | None = None
    graph: DependencyGraph | None = None
    directives: dict[str, FetchDirective] = field(default_factory=dict)
    entries: dict[str, StoreEntry] = field(default_factory=dict)
    patched: DependencyGraph | None = None
    patched_text: str = ""
    work_dir: Path | None = None
    staging_dir: Path | None = None


@dataclass
class BuildReport:
    """构建报告"""

    request: BuildRequest
    state: BuildState = BuildState.INIT
    history: list[BuildState] = field(default_factory=lambda: [BuildState.INIT])
    steps: list[dict[str, Any]] = field(default_factory=list)
    artifact_dir: str = ""
    error: Exception | None = None
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.state is BuildState.DONE

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] | None = None
        if self.error is not None:
            to_dict = getattr(self.error, "to_dict", None)
            error = to_dict() if to_dict else {"code": "UNKNOWN", "message": str(self.error)}
        return {
            "state": self.state.value,
            "history": [s.value for s in self.history],
            "steps": self.steps,
            "artifact_dir": self.artifact_dir,
            "duration": round(self.duration, 3),
            "error": error,
        }
