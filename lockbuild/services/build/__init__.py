"""安装 / 构建 / 收集 三个阶段的执行器"""

from lockbuild.services.build.builder import BuildRunner
from lockbuild.services.build.collector import ArtifactCollector
from lockbuild.services.build.installer import InstallExecutor

__all__ = [
    "ArtifactCollector",
    "BuildRunner",
    "InstallExecutor",
]
