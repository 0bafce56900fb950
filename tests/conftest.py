"""共享 fixture: 本地 HTTP 源、假包管理器、服务容器"""

from __future__ import annotations

import shutil
import subprocess
import sys
import textwrap
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

from helpers import publish, registry_lockfile, sri, write_project
from lockbuild.core.config import Config
from lockbuild.services.container import ServiceContainer, reset_container


class FakeRegistry:
    """内存中的 HTTP 文件源，记录每个路径被请求的次数"""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.hits: dict[str, int] = {}
        self._lock = threading.Lock()
        routes = self

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:  # noqa: N802
                with routes._lock:
                    routes.hits[self.path] = routes.hits.get(self.path, 0) + 1
                data = routes.files.get(self.path)
                if data is None:
                    self.send_error(404)
                    return
                self.send_response(200)
                self.send_header("Content-Length", str(len(data)))
                self.end_headers()
                self.wfile.write(data)

            def log_message(self, *args) -> None:
                pass

        self.server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)

    @property
    def base_url(self) -> str:
        host, port = self.server.server_address[:2]
        return f"http://{host}:{port}"

    def add(self, path: str, data: bytes) -> str:
        self.files[path] = data
        return self.base_url + path

    def hit_count(self, path: str) -> int:
        with self._lock:
            return self.hits.get(path, 0)


@pytest.fixture()
def registry():
    reg = FakeRegistry()
    reg.thread.start()
    yield reg
    reg.server.shutdown()
    reg.server.server_close()


@pytest.fixture()
def integrity_of():
    return sri


# 假包管理器: install 校验离线环境与 file: 引用，run 按 package.json 脚本生成产物
_FAKE_PM = r'''
import json, os, re, sys
from pathlib import Path

cwd = Path.cwd()
log = Path(os.environ.get("FAKE_PM_LOG", cwd / "pm-calls.log"))
with open(log, "a", encoding="utf-8") as f:
    f.write(json.dumps({"argv": sys.argv[1:], "cwd": str(cwd)}) + "\n")

if os.environ.get("npm_config_offline") != "true":
    sys.stderr.write("not offline\n")
    sys.exit(3)

cmd = sys.argv[1]
if cmd == "install":
    text = (cwd / "pnpm-lock.yaml").read_text(encoding="utf-8")
    if "http://" in text or "https://" in text:
        sys.stderr.write("remote reference in lockfile\n")
        sys.exit(4)
    refs = re.findall(r"tarball: file:(\S+)", text)
    for ref in refs:
        if not Path(ref).is_file():
            sys.stderr.write(f"missing {ref}\n")
            sys.exit(5)
    nm = cwd / "node_modules"
    nm.mkdir(exist_ok=True)
    (nm / ".installed").write_text("\n".join(refs), encoding="utf-8")
    sys.exit(0)

if cmd == "run":
    script = sys.argv[2]
    manifest = json.loads((cwd / "package.json").read_text(encoding="utf-8"))
    body = manifest.get("scripts", {}).get(script, "")
    if "fail" in body:
        sys.stderr.write("boom\n")
        sys.exit(2)
    out = cwd / (os.environ.get("FAKE_PM_OUT") or "dist")
    out.mkdir(parents=True, exist_ok=True)
    (out / "index.js").write_text(f"// {manifest.get('name')} {os.environ.get('BUILD_MODE', '')}\n", encoding="utf-8")
    sys.exit(0)

sys.exit(64)
'''


@pytest.fixture()
def fake_pm(tmp_path) -> Path:
    """可执行的假 pnpm 脚本"""
    script = tmp_path / "bin" / "fake-pnpm"
    script.parent.mkdir()
    script.write_text(f"#!{sys.executable}\n" + textwrap.dedent(_FAKE_PM), encoding="utf-8")
    script.chmod(0o755)
    return script


@pytest.fixture()
def config(tmp_path, fake_pm) -> Config:
    return Config(
        store_dir=str(tmp_path / "store"),
        work_dir=str(tmp_path / "work"),
        package_manager=str(fake_pm),
        fetch_workers=4,
        fetch_timeout=10,
        build_timeout=60,
    )


@pytest.fixture()
def container(config) -> ServiceContainer:
    reset_container()
    return ServiceContainer(config=config)


def _git_available() -> bool:
    return shutil.which("git") is not None


@pytest.fixture()
def git_repo(tmp_path):
    """带一次提交的本地 git 仓库，返回 (路径, commit sha)"""
    if not _git_available():
        pytest.skip("git 不可用")
    repo = tmp_path / "gitsrc"
    repo.mkdir()
    env_args = ["-c", "user.name=t", "-c", "user.email=t@example.com", "-c", "commit.gpgsign=false"]

    def git(*args: str) -> str:
        return subprocess.run(
            ["git", *env_args, *args], cwd=repo, check=True,
            capture_output=True, text=True,
        ).stdout.strip()

    git("init", "-q")
    (repo / "package.json").write_text('{"name": "gitdep", "version": "0.1.0"}', encoding="utf-8")
    (repo / "index.js").write_text("module.exports = 1\n", encoding="utf-8")
    git("add", ".")
    git("commit", "-q", "-m", "init")
    return repo, git("rev-parse", "HEAD")


@pytest.fixture()
def registry_project(tmp_path, registry):
    """单项目: 依赖假源上的 foo@1.0.0，返回项目目录"""
    url, integrity = publish(registry, "foo", "1.0.0")
    lockfile = registry_lockfile({"foo@1.0.0": (url, integrity)}, {".": ["foo@1.0.0"]})
    return write_project(tmp_path / "app", lockfile, {
        ".": {"name": "app", "version": "1.0.0", "scripts": {"build": "bundle"},
              "dependencies": {"foo": "^1.0.0"}},
    })
