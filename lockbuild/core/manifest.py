"""package.json 读取"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from lockbuild.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.json"


@dataclass
class Manifest:
    """组件清单（只关心构建需要的字段）"""

    name: str = ""
    version: str = ""
    scripts: dict[str, str] = field(default_factory=dict)
    dependencies: dict[str, str] = field(default_factory=dict)
    dev_dependencies: dict[str, str] = field(default_factory=dict)
    optional_dependencies: dict[str, str] = field(default_factory=dict)
    peer_dependencies: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Manifest:
        return cls(
            name=str(data.get("name", "")),
            version=str(data.get("version", "")),
            scripts=dict(data.get("scripts") or {}),
            dependencies=dict(data.get("dependencies") or {}),
            dev_dependencies=dict(data.get("devDependencies") or {}),
            optional_dependencies=dict(data.get("optionalDependencies") or {}),
            peer_dependencies=dict(data.get("peerDependencies") or {}),
        )

    def dependency_names(self) -> set[str]:
        """全部类别的依赖名"""
        return (
            set(self.dependencies) | set(self.dev_dependencies)
            | set(self.optional_dependencies) | set(self.peer_dependencies)
        )


def load_manifest(component_dir: Path) -> Manifest:
    """读取组件目录下的 package.json

    异常:
        ConfigError: 文件不存在或不是合法的 JSON 对象
    """
    path = component_dir / MANIFEST_NAME
    if not path.is_file():
        raise ConfigError(f"组件缺少 {MANIFEST_NAME}: {component_dir}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path} 不是合法的 JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} 顶层必须是对象")
    return Manifest.from_dict(data)
