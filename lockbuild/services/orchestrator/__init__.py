"""构建编排模块

- models.py: 状态、请求、上下文、报告
- steps.py: 7 个步骤实现
- orchestrator.py: 状态机协调器
"""

from lockbuild.services.orchestrator.models import BuildReport, BuildRequest, BuildState
from lockbuild.services.orchestrator.orchestrator import BuildOrchestrator, advance
from lockbuild.services.orchestrator.steps import BuildSteps

__all__ = [
    "BuildOrchestrator",
    "BuildReport",
    "BuildRequest",
    "BuildState",
    "BuildSteps",
    "advance",
]
