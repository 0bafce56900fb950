"""测试辅助: tarball 构造、lockfile 生成、项目目录布置"""

from __future__ import annotations

import base64
import hashlib
import io
import json
import tarfile
from pathlib import Path


def build_tgz(files: dict[str, str], prefix: str = "package/") -> bytes:
    """构造 npm 风格的 tarball（固定 mtime，字节稳定）"""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, content in sorted(files.items()):
            data = content.encode("utf-8")
            info = tarfile.TarInfo(prefix + name)
            info.size = len(data)
            info.mtime = 0
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def sri(data: bytes, algorithm: str = "sha512") -> str:
    return f"{algorithm}-{base64.b64encode(hashlib.new(algorithm, data).digest()).decode()}"


def write_project(root: Path, lockfile: str, manifests: dict[str, dict]) -> Path:
    """写入项目: lockfile + 每个组件的 package.json（"." 为根）"""
    root.mkdir(parents=True, exist_ok=True)
    (root / "pnpm-lock.yaml").write_text(lockfile, encoding="utf-8")
    for component, manifest in manifests.items():
        d = root / component
        d.mkdir(parents=True, exist_ok=True)
        (d / "package.json").write_text(json.dumps(manifest), encoding="utf-8")
    return root


def publish(registry, name: str, version: str, files: dict[str, str] | None = None):
    """把一个包发布到假源，返回 (tarball url, integrity)"""
    data = build_tgz(files or {
        "package.json": json.dumps({"name": name, "version": version}),
        "index.js": f"module.exports = '{name}@{version}'\n",
    })
    url = registry.add(f"/{name}/-/{name}-{version}.tgz", data)
    return url, sri(data)


def registry_lockfile(packages: dict[str, tuple[str, str]], importers: dict[str, list[str]]) -> str:
    """生成 v9 lockfile

    packages: "name@version" -> (tarball url, integrity)
    importers: 组件路径 -> 直接依赖的 "name@version" 列表
    """
    lines = ["lockfileVersion: '9.0'", "", "importers:"]
    for importer, deps in importers.items():
        lines.append(f"  {importer}:")
        if deps:
            lines.append("    dependencies:")
            for dep in deps:
                name, version = dep.rsplit("@", 1)
                lines += [f"      {name}:", f"        specifier: ^{version}", f"        version: {version}"]
    lines += ["", "packages:"]
    for pid, (url, integrity) in packages.items():
        lines += [f"  {pid}:", f"    resolution: {{integrity: {integrity}, tarball: '{url}'}}"]
    lines += ["", "snapshots:"]
    for pid in packages:
        lines.append(f"  {pid}: {{}}")
    return "\n".join(lines) + "\n"
