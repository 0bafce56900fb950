"""构建计划: Init 阶段校验完成后交给安装/构建/收集阶段的只读输入"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from lockbuild.core.workspace import Component, Workspace

# 安装/构建阶段强制离线
OFFLINE_ENV = {
    "npm_config_offline": "true",
    "npm_config_audit": "false",
    "npm_config_fund": "false",
    "npm_config_update_notifier": "false",
    "CI": "true",
}


@dataclass
class BuildPlan:
    """经过 Init 校验的执行计划"""

    workspace: Workspace
    components: list[Component]
    output_dir: Path
    install_command: list[str]
    build_command: str | list[str]
    install_env: dict[str, str]
    build_env: dict[str, str]
    include_node_modules: bool = False
    build_concurrency: int = 1

    @property
    def build_in_shell(self) -> bool:
        """自定义脚本是完整的 shell 命令行"""
        return isinstance(self.build_command, str)
