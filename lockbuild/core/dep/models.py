"""依赖拉取数据模型

数据类:
- FetchDirective: 与来源无关的拉取指令，content_hash 为其内容寻址键
- StoreEntry: 内容存储中的一个不可变条目
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from lockbuild.core.dep.integrity import normalize_integrity
from lockbuild.core.exceptions import ValidationError

METHOD_TARBALL = "tarball"
METHOD_GIT = "git"
FETCH_METHODS = (METHOD_TARBALL, METHOD_GIT)

ARCHIVE_NAME = "package.tgz"
METADATA_NAME = "entry.json"


def normalize_git_url(url: str) -> str:
    """去掉 git+ 前缀: git+https://x -> https://x, git+ssh://x -> ssh://x"""
    url = url.strip()
    if url.startswith("git+"):
        url = url[len("git+"):]
    return url


@dataclass(frozen=True)
class FetchDirective:
    """拉取指令

    content_hash 只由 (method, url, integrity, revision) 的规范形式决定，
    source_kind 仅用于诊断，不参与比较和哈希。
    """

    method: str
    url: str
    integrity: str = ""
    revision: str = ""
    source_kind: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        if self.method not in FETCH_METHODS:
            raise ValidationError(f"未知的拉取方式: {self.method}")
        if not self.url:
            raise ValidationError("拉取指令缺少 url")
        if self.method == METHOD_GIT and not self.revision:
            raise ValidationError(f"git 拉取缺少 revision: {self.url}")
        # 提前校验 integrity 格式
        normalize_integrity(self.integrity)

    def normalized(self) -> dict[str, str]:
        url = self.url.strip()
        if self.method == METHOD_GIT:
            url = normalize_git_url(url)
        return {
            "method": self.method,
            "url": url,
            "integrity": normalize_integrity(self.integrity),
            "revision": self.revision.strip(),
        }

    @property
    def content_hash(self) -> str:
        canonical = json.dumps(self.normalized(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def describe(self) -> str:
        text = f"{self.method} {self.url}"
        if self.revision:
            text += f"#{self.revision}"
        if self.source_kind:
            text += f" [{self.source_kind}]"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {**self.normalized(), "source_kind": self.source_kind}


@dataclass(frozen=True)
class StoreEntry:
    """内容存储条目: <store>/<content_hash>/package.tgz + entry.json"""

    content_hash: str
    path: Path
    integrity: str = ""
    size: int = 0

    @property
    def archive(self) -> Path:
        return self.path / ARCHIVE_NAME

    def to_dict(self) -> dict[str, Any]:
        return {
            "content_hash": self.content_hash,
            "path": str(self.path),
            "archive": str(self.archive),
            "integrity": self.integrity,
            "size": self.size,
        }
