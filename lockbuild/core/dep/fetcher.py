"""依赖包拉取器

职责:
- TarballFetcher: HTTP(S) 下载 tarball，边写边算哈希
- GitFetcher: 检出固定 commit 并打包为 tarball
- PackageFetcher: 有界并发的批量拉取（首个失败即取消其余任务）

拉取阶段是整个构建中唯一访问网络的阶段，失败不重试。
"""

from __future__ import annotations

import logging
import os
import http.client
import re
import tempfile
import urllib.error
import urllib.request
from collections.abc import Mapping
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from pathlib import Path
from typing import TYPE_CHECKING

from lockbuild import __version__
from lockbuild.core.dep.integrity import IntegrityChecker, check_file
from lockbuild.core.dep.models import FetchDirective, StoreEntry, normalize_git_url
from lockbuild.core.exceptions import ExecutionError, FetchError, ValidationError
from lockbuild.utils.net import validate_url_scheme
from lockbuild.utils.shell import CommandExecutor, CommandResult, get_executor, run_cmd

if TYPE_CHECKING:
    from lockbuild.core.dep.store import ContentStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300
_CHUNK_SIZE = 64 * 1024
_SAFE_REF_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._/-]*$")


class TarballFetcher:
    """HTTP(S) tarball 下载"""

    def __init__(self, timeout: int = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    def fetch(self, directive: FetchDirective, dest: Path) -> IntegrityChecker:
        validate_url_scheme(directive.url, context=f"tarball {directive.source_kind}")
        checker = IntegrityChecker(directive.integrity)
        req = urllib.request.Request(
            directive.url,
            headers={"User-Agent": f"lockbuild/{__version__}", "Accept": "*/*"},
        )
        logger.info("  下载: %s", directive.url)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp, \
                    open(dest, "wb") as f:  # nosec B310
                for chunk in iter(lambda: resp.read(_CHUNK_SIZE), b""):
                    f.write(chunk)
                    checker.update(chunk)
                expected = resp.headers.get("Content-Length")
        except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
            dest.unlink(missing_ok=True)
            raise FetchError(directive, str(e)) from e
        if expected and expected.isdigit() and checker.size != int(expected):
            dest.unlink(missing_ok=True)
            raise FetchError(
                directive, f"响应体不完整: 收到 {checker.size} 字节, Content-Length {expected}",
            )
        logger.debug("  下载完成: %s (%d 字节)", directive.url, checker.size)
        return checker


class GitFetcher:
    """git 仓库固定 revision 检出，git archive 打包为 package/ 前缀的 tar.gz"""

    def __init__(
        self,
        executor: CommandExecutor | None = None,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        self._executor = executor
        self.timeout = timeout

    def fetch(self, directive: FetchDirective, dest: Path) -> IntegrityChecker:
        url = normalize_git_url(directive.url)
        revision = directive.revision
        if not _SAFE_REF_RE.match(revision):
            raise ValidationError(f"不安全的 git revision: {revision!r}")

        logger.info("  git 拉取: %s#%s", url, revision)
        with tempfile.TemporaryDirectory(prefix="lockbuild-git-") as checkout:
            self._git(directive, ["init", "-q"], checkout)
            self._git(directive, ["remote", "add", "origin", url], checkout)
            shallow = self._run(["fetch", "-q", "--depth", "1", "origin", revision], checkout)
            if not shallow.success:
                # 服务端不允许按 SHA 拉取时退回完整拉取
                logger.debug("  浅拉取失败，改为完整拉取: %s", shallow.stderr.strip())
                self._git(directive, ["fetch", "-q", "origin"], checkout)
            self._git(
                directive,
                ["archive", "--format=tar.gz", "--prefix=package/", "-o", str(dest), revision],
                checkout,
            )
        return check_file(dest, directive.integrity)

    @staticmethod
    def _env() -> dict[str, str]:
        return {**os.environ, "GIT_TERMINAL_PROMPT": "0"}

    def _run(self, args: list[str], cwd: str) -> CommandResult:
        return (self._executor or get_executor()).execute(
            ["git", *args], cwd=cwd, env=self._env(), timeout=self.timeout,
        )

    def _git(self, directive: FetchDirective, args: list[str], cwd: str) -> CommandResult:
        try:
            return run_cmd(
                ["git", *args], cwd=cwd, env=self._env(), label=f"git {args[0]}",
                executor=self._executor, timeout=self.timeout,
            )
        except ExecutionError as e:
            raise FetchError(directive, str(e)) from e


class PackageFetcher:
    """批量拉取: 有界线程池，首个失败取消尚未开始的任务并抛出"""

    def __init__(self, store: ContentStore, max_workers: int = 8) -> None:
        self.store = store
        self.max_workers = max(1, max_workers)

    def fetch_all(self, directives: Mapping[str, FetchDirective]) -> dict[str, StoreEntry]:
        """拉取全部指令，返回 {包 id: 存储条目}

        所有已启动的任务结束后才返回或抛出。
        """
        if not directives:
            return {}
        unique = len({d.content_hash for d in directives.values()})
        logger.info(
            "开始拉取: %d 个包, %d 个不同内容, 并发 %d",
            len(directives), unique, self.max_workers,
        )

        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="lockbuild-fetch",
        ) as pool:
            futures = {
                package_id: pool.submit(self.store.fetch, directive)
                for package_id, directive in directives.items()
            }
            done, pending = wait(futures.values(), return_when=FIRST_EXCEPTION)
            for f in pending:
                f.cancel()
        # with 退出时已等待全部运行中的任务

        for package_id, future in futures.items():
            if future.cancelled():
                continue
            error = future.exception()
            if error is not None:
                logger.error("拉取失败: %s: %s", package_id, error)
                raise error

        logger.info("拉取完成: %d 个包", len(futures))
        return {package_id: f.result() for package_id, f in futures.items()}
