"""构建编排器 - 状态机驱动的 7 步流水线

INIT -> RESOLVED -> FETCHED -> PATCHED -> INSTALLED -> BUILT -> COLLECTED -> DONE
任何阶段失败都进入 ABORTED 并抛出原始异常；状态只能向前推进一步，不可重入。
"""

from __future__ import annotations

import logging
import time

from lockbuild.services.container import ServiceContainer
from lockbuild.services.orchestrator.models import (
    STATE_SEQUENCE,
    BuildContext,
    BuildReport,
    BuildRequest,
    BuildState,
)
from lockbuild.services.orchestrator.steps import BuildSteps

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """状态机的非法转换（程序错误）"""


def advance(report: BuildReport, target: BuildState) -> None:
    """把报告的状态推进到 target

    异常:
        InvalidTransitionError: 已处于终止状态，或 target 不是下一个状态
    """
    current = report.state
    if current.terminal:
        raise InvalidTransitionError(f"构建已结束 ({current.value})，不能转换到 {target.value}")
    if target is not BuildState.ABORTED:
        expected = STATE_SEQUENCE[STATE_SEQUENCE.index(current) + 1]
        if target is not expected:
            raise InvalidTransitionError(f"非法状态转换: {current.value} -> {target.value}")
    report.state = target
    report.history.append(target)


class BuildOrchestrator:
    """单次构建的编排器（一个请求运行一次状态机）"""

    _PHASES = (
        ("resolve", BuildState.RESOLVED),
        ("fetch", BuildState.FETCHED),
        ("patch", BuildState.PATCHED),
        ("install", BuildState.INSTALLED),
        ("build", BuildState.BUILT),
        ("collect", BuildState.COLLECTED),
    )

    def __init__(self, container: ServiceContainer | None = None) -> None:
        self.c = container or ServiceContainer()
        self.steps = BuildSteps(self.c)

    def run(self, request: BuildRequest, report: BuildReport | None = None) -> BuildReport:
        """执行构建；失败时 report 记录 ABORTED 和错误后重新抛出

        参数:
            request: 构建请求
            report: 可选，由调用方传入以便在异常后读取报告
        """
        report = report or BuildReport(request=request)
        ctx = BuildContext()
        start = time.monotonic()
        phase = "prepare"
        logger.info("构建开始: %s", request.project_dir)
        try:
            self.steps.prepare(request, ctx, report)
            for phase, target in self._PHASES:
                getattr(self.steps, phase)(request, ctx, report)
                advance(report, target)
            advance(report, BuildState.DONE)
        except Exception as e:
            report.error = e
            report.steps.append({"step": phase, "status": "failed", "error": str(e)})
            advance(report, BuildState.ABORTED)
            logger.error("构建中止于 %s 阶段: %s", phase, e)
            raise
        finally:
            self.steps.cleanup(request, ctx, report)
            report.duration = time.monotonic() - start

        logger.info("构建完成: %s (%.1fs)", report.artifact_dir, report.duration)
        return report
