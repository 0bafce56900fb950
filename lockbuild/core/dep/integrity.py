"""Subresource Integrity (SRI) 解析与校验

integrity 形如 "sha512-<base64>"，可包含多个以空白分隔的 token。
校验时只比较声明中最强的算法，任一同算法 token 匹配即通过。
"""

from __future__ import annotations

import base64
import hashlib
import re
from dataclasses import dataclass
from pathlib import Path

from lockbuild.core.exceptions import IntegrityMismatchError, ValidationError

# 由弱到强
SUPPORTED_ALGORITHMS = ("sha1", "sha256", "sha384", "sha512")
DEFAULT_ALGORITHM = "sha512"

_CHUNK_SIZE = 1024 * 1024
_TOKEN_RE = re.compile(r"^(?P<algo>[a-z0-9]+)-(?P<digest>[A-Za-z0-9+/]+={0,2})(?:\?.*)?$")


@dataclass(frozen=True)
class IntegrityToken:
    algorithm: str
    digest: str

    def __str__(self) -> str:
        return f"{self.algorithm}-{self.digest}"


def parse_integrity(sri: str) -> list[IntegrityToken]:
    """解析 SRI 字符串，忽略不支持的算法

    异常:
        ValidationError: 字符串为空、格式错误或没有任何支持的算法
    """
    tokens: list[IntegrityToken] = []
    raw_tokens = sri.split()
    if not raw_tokens:
        raise ValidationError("integrity 为空")
    for raw in raw_tokens:
        m = _TOKEN_RE.match(raw)
        if not m:
            raise ValidationError(f"integrity 格式错误: {raw}")
        if m.group("algo") in SUPPORTED_ALGORITHMS:
            tokens.append(IntegrityToken(m.group("algo"), m.group("digest")))
    if not tokens:
        raise ValidationError(
            f"integrity 不包含支持的算法 {SUPPORTED_ALGORITHMS}: {sri}",
        )
    return tokens


def normalize_integrity(sri: str) -> str:
    """规范化 integrity: 去掉不支持的 token 和选项，排序后以空格连接"""
    if not sri:
        return ""
    return " ".join(sorted({str(t) for t in parse_integrity(sri)}))


class IntegrityChecker:
    """边读边算哈希，读完后与声明的 integrity 比对

    无论是否有期望值，都会计算 sha512，用于记录存储条目的实际 integrity。
    """

    def __init__(self, expected: str = "") -> None:
        self.expected = parse_integrity(expected) if expected else []
        algorithms = {t.algorithm for t in self.expected} | {DEFAULT_ALGORITHM}
        self._hashers = {a: hashlib.new(a) for a in algorithms}
        self.size = 0

    def update(self, chunk: bytes) -> None:
        for h in self._hashers.values():
            h.update(chunk)
        self.size += len(chunk)

    def digest(self, algorithm: str = DEFAULT_ALGORITHM) -> str:
        raw = self._hashers[algorithm].digest()
        return f"{algorithm}-{base64.b64encode(raw).decode('ascii')}"

    @property
    def integrity(self) -> str:
        return self.digest(DEFAULT_ALGORITHM)

    def verify(self, url: str) -> None:
        """比对最强算法的摘要

        异常:
            IntegrityMismatchError: 摘要不一致
        """
        if not self.expected:
            return
        strongest = max(
            (t.algorithm for t in self.expected), key=SUPPORTED_ALGORITHMS.index,
        )
        candidates = {str(t) for t in self.expected if t.algorithm == strongest}
        actual = self.digest(strongest)
        if actual not in candidates:
            raise IntegrityMismatchError(url, " ".join(sorted(candidates)), actual)


def check_file(path: Path, expected: str = "") -> IntegrityChecker:
    """对文件计算哈希，返回已喂完数据的 checker（调用方决定是否 verify）"""
    checker = IntegrityChecker(expected)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            checker.update(chunk)
    return checker


def file_integrity(path: Path) -> str:
    """计算文件的 sha512 SRI"""
    return check_file(path).integrity
