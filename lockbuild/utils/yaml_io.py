"""YAML 文件统一读写工具

集中管理 YAML 的序列化/反序列化，避免各模块重复实现。
统一 encoding="utf-8"、空值保护、目录自动创建、原子写入。
lockfile 的文本级读写也走这里（loads_yaml / dumps_yaml），保证键顺序不被重排。
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# YAML 文件最大大小限制 (64MB)，大型 monorepo 的 lockfile 可达数十 MB
MAX_YAML_SIZE = 64 * 1024 * 1024

_BOOL_TAG = "tag:yaml.org,2002:bool"


def _core_schema_resolvers() -> dict:
    """YAML 1.2 core schema 的布尔规则: 只有 true/false，yes/no/on/off 保持为字符串"""
    resolvers = {
        first: [(tag, rx) for tag, rx in rules if tag != _BOOL_TAG]
        for first, rules in yaml.SafeLoader.yaml_implicit_resolvers.items()
    }
    bool_rx = re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$")
    for first in "tTfF":
        resolvers.setdefault(first, []).append((_BOOL_TAG, bool_rx))
    return resolvers


class _Loader(yaml.SafeLoader):
    yaml_implicit_resolvers = _core_schema_resolvers()


class _Dumper(yaml.SafeDumper):
    yaml_implicit_resolvers = _core_schema_resolvers()


def atomic_write(path: Path, content: str) -> None:
    """原子写入文件：先写同目录临时文件再 rename，防止中途崩溃导致损坏

    异常:
        OSError: 文件写入或移动失败
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, str(path))
    except Exception:
        # 只捕获普通异常，不拦截 KeyboardInterrupt/SystemExit
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def loads_yaml(text: str) -> Any:
    """解析 YAML 文本，返回原始对象（不做类型收窄）

    异常:
        yaml.YAMLError: YAML 格式错误（由调用方转换为领域异常）
    """
    return yaml.load(text, Loader=_Loader)  # noqa: S506


def dumps_yaml(data: Any) -> str:
    """序列化为 YAML 文本，保持键的插入顺序，不折行"""
    return yaml.dump(
        data, Dumper=_Dumper, default_flow_style=False, allow_unicode=True,
        sort_keys=False, width=2**31 - 1,
    )


def load_yaml(path: str | Path) -> dict[str, Any]:
    """安全读取 YAML 文件

    返回:
        dict: 解析后的字典。文件不存在、为空、或内容不是字典类型时返回空字典

    异常:
        yaml.YAMLError: YAML 格式错误
        ValueError: 文件过大（超过 MAX_YAML_SIZE）
    """
    p = Path(path)
    if not p.exists():
        return {}

    file_size = p.stat().st_size
    if file_size > MAX_YAML_SIZE:
        raise ValueError(
            f"YAML 文件过大: {p} ({file_size} 字节), "
            f"超过限制 {MAX_YAML_SIZE} 字节"
        )

    try:
        result = loads_yaml(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.error("解析 YAML 文件失败: %s, 错误: %s", path, e)
        raise

    if result is None:
        return {}
    if not isinstance(result, dict):
        logger.warning(
            "%s 内容不是字典类型 (实际类型: %s)，返回空字典",
            path, type(result).__name__,
        )
        return {}
    return result
