"""统一异常体系

所有业务异常继承 LockbuildError，每个异常带稳定的 code 和结构化字段，
CLI 层据此输出友好提示，编排器据此在报告中记录失败原因。

本系统没有部分成功模式：除 ConfigError/ValidationError 这类前置校验外，
任何阶段抛出的异常都会中止整条构建流水线。
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from lockbuild.core.dep.models import FetchDirective


class LockbuildError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class ConfigError(LockbuildError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(LockbuildError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class ExecutionError(LockbuildError):
    """子进程命令执行失败"""

    code = "EXECUTION_ERROR"


# =========================================================================
# lockfile 解析 / 来源解析
# =========================================================================

class MalformedLockfileError(LockbuildError):
    """lockfile 无法解析，section 指出出错的段落"""

    code = "MALFORMED_LOCKFILE"

    def __init__(self, section: str, reason: str) -> None:
        super().__init__(f"lockfile 格式错误 [{section}]: {reason}")
        self.section = section


class UnsupportedResolutionFormatError(LockbuildError):
    """包的 resolution 不属于任何已支持的来源类型"""

    code = "UNSUPPORTED_RESOLUTION"

    def __init__(self, package_id: str, raw_spec: Any) -> None:
        super().__init__(f"不支持的 resolution 格式: {package_id} -> {raw_spec!r}")
        self.package_id = package_id
        self.raw_spec = raw_spec


# =========================================================================
# 拉取 / 内容存储
# =========================================================================

class IntegrityMismatchError(LockbuildError):
    """拉取内容的哈希与 lockfile 声明的 integrity 不一致（不重试）"""

    code = "INTEGRITY_MISMATCH"

    def __init__(self, url: str, expected: str, actual: str) -> None:
        super().__init__(
            f"校验和不匹配 {url}: 期望 {expected}, 实际 {actual}",
        )
        self.url = url
        self.expected = expected
        self.actual = actual


class FetchError(LockbuildError):
    """网络或 VCS 拉取失败，附带失败的拉取指令"""

    code = "FETCH_FAILED"

    def __init__(self, directive: FetchDirective, reason: str) -> None:
        super().__init__(f"拉取失败 {directive.describe()}: {reason}")
        self.directive = directive


class MissingStoreEntryError(LockbuildError):
    """patch 后的 lockfile 引用了不存在的存储路径（patch 与 install 不一致）"""

    code = "MISSING_STORE_ENTRY"

    def __init__(self, package_id: str, path: str) -> None:
        super().__init__(f"内容存储条目缺失: {package_id} -> {path}")
        self.package_id = package_id
        self.path = path


# =========================================================================
# 工作空间 / 构建
# =========================================================================

class WorkspaceComponentNotFoundError(LockbuildError):
    """声明的组件路径在工作空间根目录下不存在"""

    code = "COMPONENT_NOT_FOUND"

    def __init__(self, component: str, root: str) -> None:
        super().__init__(f"工作空间组件不存在: {component} (root={root})")
        self.component = component
        self.root = root


class InstallError(LockbuildError):
    """离线依赖安装命令失败"""

    code = "INSTALL_FAILED"

    def __init__(self, returncode: int, stderr: str) -> None:
        super().__init__(f"依赖安装失败 (rc={returncode}): {stderr[-500:]}")
        self.returncode = returncode
        self.stderr = stderr


class BuildScriptFailureError(LockbuildError):
    """组件构建脚本以非零状态退出"""

    code = "BUILD_SCRIPT_FAILED"

    def __init__(self, component: str, returncode: int, stderr: str = "") -> None:
        super().__init__(
            f"组件构建失败: {component} (rc={returncode}): {stderr[-500:]}"
        )
        self.component = component
        self.returncode = returncode
        self.stderr = stderr


class MissingDistDirectoryError(LockbuildError):
    """构建完成后组件的产物目录不存在"""

    code = "MISSING_DIST_DIR"

    def __init__(self, component: str, path: str) -> None:
        super().__init__(f"组件产物目录不存在: {component} -> {path}")
        self.component = component
        self.path = path
