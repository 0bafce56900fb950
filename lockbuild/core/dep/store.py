"""内容寻址存储

布局:
    <root>/<content_hash>/package.tgz   拉取到的归档（不可变）
    <root>/<content_hash>/entry.json    拉取指令与实际 integrity
    <root>/.tmp-*                       未发布的暂存目录

条目先写入暂存目录，再以 os.rename 原子发布；同一进程内对同一哈希的
并发请求经 SingleFlight 合并为一次拉取，不同哈希互不阻塞。
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, Protocol, TypeVar

from lockbuild.core.dep.fetcher import GitFetcher, TarballFetcher
from lockbuild.core.dep.integrity import IntegrityChecker, file_integrity
from lockbuild.core.dep.models import (
    ARCHIVE_NAME,
    METADATA_NAME,
    METHOD_GIT,
    METHOD_TARBALL,
    FetchDirective,
    StoreEntry,
)
from lockbuild.core.exceptions import FetchError, MissingStoreEntryError

logger = logging.getLogger(__name__)

T = TypeVar("T")

STAGING_PREFIX = ".tmp-"


class SourceFetcher(Protocol):
    """单一拉取方式的实现: 把归档写到 dest，返回已喂完数据的 checker"""

    def fetch(self, directive: FetchDirective, dest: Path) -> IntegrityChecker:
        ...


class SingleFlight:
    """按 key 合并并发调用: 首个调用者执行，其余等待并共享结果或异常"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: dict[str, Future] = {}

    def do(self, key: str, fn: Callable[[], T]) -> T:
        with self._lock:
            future = self._calls.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._calls[key] = future
        if not leader:
            return future.result()

        try:
            result = fn()
        except BaseException as e:
            # 中断也要唤醒等待者
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._calls.pop(key, None)

    def in_flight(self) -> int:
        with self._lock:
            return len(self._calls)


class ContentStore:
    """跨构建、跨项目共享的内容存储"""

    def __init__(
        self,
        root: str | Path,
        fetchers: dict[str, SourceFetcher] | None = None,
    ) -> None:
        self.root = Path(root).absolute()
        self._fetchers: dict[str, SourceFetcher] = {
            METHOD_TARBALL: TarballFetcher(),
            METHOD_GIT: GitFetcher(),
        }
        if fetchers:
            self._fetchers.update(fetchers)
        self._flight = SingleFlight()

    def path_for(self, content_hash: str) -> Path:
        return self.root / content_hash

    def contains(self, content_hash: str) -> bool:
        return (self.path_for(content_hash) / ARCHIVE_NAME).is_file()

    def lookup(self, content_hash: str) -> StoreEntry | None:
        """查找已发布的条目，不存在返回 None"""
        entry_dir = self.path_for(content_hash)
        archive = entry_dir / ARCHIVE_NAME
        if not archive.is_file():
            return None
        meta_path = entry_dir / METADATA_NAME
        meta = json.loads(meta_path.read_text(encoding="utf-8")) if meta_path.is_file() else {}
        return StoreEntry(
            content_hash=content_hash,
            path=entry_dir,
            integrity=meta.get("integrity", ""),
            size=meta.get("size", archive.stat().st_size),
        )

    def entries(self) -> list[StoreEntry]:
        """列出全部已发布条目（按哈希排序）"""
        if not self.root.is_dir():
            return []
        result = []
        for child in sorted(self.root.iterdir()):
            if not child.is_dir() or child.name.startswith("."):
                continue
            entry = self.lookup(child.name)
            if entry is not None:
                result.append(entry)
        return result

    def read_metadata(self, content_hash: str) -> dict:
        meta_path = self.path_for(content_hash) / METADATA_NAME
        if not meta_path.is_file():
            raise MissingStoreEntryError(content_hash, str(meta_path))
        return json.loads(meta_path.read_text(encoding="utf-8"))

    def verify(self, content_hash: str) -> bool:
        """重新计算归档的 sha512，与 entry.json 记录的 integrity 比对"""
        entry = self.lookup(content_hash)
        if entry is None:
            raise MissingStoreEntryError(content_hash, str(self.path_for(content_hash)))
        actual = file_integrity(entry.archive)
        if actual != entry.integrity:
            logger.warning("存储条目损坏: %s (记录 %s, 实际 %s)", content_hash, entry.integrity, actual)
            return False
        return True

    def fetch(self, directive: FetchDirective) -> StoreEntry:
        """取得指令对应的条目，必要时拉取

        异常:
            FetchError: 网络或 VCS 失败
            IntegrityMismatchError: 内容与声明的 integrity 不符
        """
        key = directive.content_hash
        entry = self.lookup(key)
        if entry is not None:
            logger.debug("存储命中: %s -> %s", directive.describe(), key[:12])
            return entry
        return self._flight.do(key, lambda: self._fetch_and_publish(directive, key))

    def _fetch_and_publish(self, directive: FetchDirective, key: str) -> StoreEntry:
        # 等待锁期间可能已被其它调用者发布
        entry = self.lookup(key)
        if entry is not None:
            return entry
        fetcher = self._fetchers.get(directive.method)
        if fetcher is None:
            raise FetchError(directive, f"没有可用的拉取器: {directive.method}")

        self.root.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=self.root))
        try:
            checker = fetcher.fetch(directive, staging / ARCHIVE_NAME)
            checker.verify(directive.url)
            meta = {
                "content_hash": key,
                "directive": directive.to_dict(),
                "integrity": checker.integrity,
                "size": checker.size,
            }
            (staging / METADATA_NAME).write_text(
                json.dumps(meta, ensure_ascii=False, indent=2, sort_keys=True),
                encoding="utf-8",
            )
            try:
                os.rename(staging, self.path_for(key))
            except OSError:
                if not self.contains(key):
                    raise
                logger.info("条目已由其它进程发布，丢弃暂存副本: %s", key[:12])
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

        logger.info("已存储: %s -> %s", directive.describe(), key[:12])
        entry = self.lookup(key)
        if entry is None:
            raise MissingStoreEntryError(key, str(self.path_for(key)))
        return entry
