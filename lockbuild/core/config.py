"""集中配置管理

替代各模块散落的 DEFAULT_* 常量，提供统一的配置入口。
支持从 YAML 文件加载 + 编程式覆盖。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from lockbuild.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY = "https://registry.npmjs.org"


@dataclass
class Config:
    """全局配置"""

    # 目录
    store_dir: str = ".lockbuild/store"     # 内容寻址存储根目录，跨构建复用
    work_dir: str = ".lockbuild/work"       # 构建临时工作目录

    # 拉取
    registry: str = DEFAULT_REGISTRY
    fetch_workers: int = 8
    fetch_timeout: int = 300  # 秒

    # 安装 / 构建
    package_manager: str = "pnpm"
    install_args: list[str] = field(default_factory=lambda: [
        "install", "--offline", "--frozen-lockfile", "--ignore-scripts",
    ])
    build_concurrency: int = 1
    build_timeout: int = 3600

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = "lockbuild.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        if not data:
            return cls()
        known = {f for f in cls.__dataclass_fields__}
        matched = {k: v for k, v in data.items() if k in known and k != "extra"}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "lockbuild.yml") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
