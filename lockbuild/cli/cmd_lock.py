"""CLI: lockfile 检查与改写"""

from __future__ import annotations

from collections import Counter
from pathlib import Path

import click

from lockbuild.cli import _svc
from lockbuild.core.exceptions import LockbuildError
from lockbuild.core.lockfile import parse_lockfile, patch_lockfile, serialize_lockfile
from lockbuild.core.lockfile.models import DependencyGraph
from lockbuild.utils.yaml_io import atomic_write


def register(group: click.Group) -> None:
    group.add_command(lock_group)


def _load(lockfile: str) -> DependencyGraph:
    try:
        return parse_lockfile(
            Path(lockfile).read_text(encoding="utf-8"), registry=_svc().config.registry,
        )
    except LockbuildError as e:
        raise click.ClickException(f"[{e.code}] {e}") from e


@click.group(name="lock")
def lock_group() -> None:
    """lockfile 检查与改写"""


@lock_group.command(name="parse")
@click.argument("lockfile", type=click.Path(exists=True, dir_okay=False))
def lock_parse(lockfile: str) -> None:
    """解析 lockfile 并汇总来源类型"""
    graph = _load(lockfile)
    kinds = Counter(
        n.resolution.kind.value if n.resolution else "unsupported"
        for n in graph.nodes.values()
    )
    click.echo(f"lockfileVersion: {graph.lockfile_version}")
    click.echo(f"importers: {len(graph.importers)}  packages: {len(graph.nodes)}")
    click.echo(f"dev-only: {sum(n.dev_only for n in graph.nodes.values())}")
    for kind, count in sorted(kinds.items()):
        click.echo(f"  {kind:18s} {count}")


@lock_group.command(name="resolve")
@click.argument("lockfile", type=click.Path(exists=True, dir_okay=False))
def lock_resolve(lockfile: str) -> None:
    """列出每个包的拉取指令和内容哈希"""
    graph = _load(lockfile)
    try:
        directives = _svc().resolver.resolve_all(graph)
    except LockbuildError as e:
        raise click.ClickException(f"[{e.code}] {e}") from e
    for package_id, d in directives.items():
        click.echo(f"  {d.content_hash[:12]}  {package_id:40s} {d.describe()}")


@lock_group.command(name="patch")
@click.argument("lockfile", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", required=True, help="改写后的 lockfile 输出路径")
def lock_patch(lockfile: str, output: str) -> None:
    """拉取全部依赖到内容存储，输出指向本地存储的 lockfile"""
    svc = _svc()
    graph = _load(lockfile)
    try:
        directives = svc.resolver.resolve_all(graph)
        entries = svc.fetcher.fetch_all(directives)
        patched = patch_lockfile(graph, {pid: e.archive for pid, e in entries.items()})
    except LockbuildError as e:
        raise click.ClickException(f"[{e.code}] {e}") from e
    atomic_write(Path(output), serialize_lockfile(patched))
    click.echo(f"已写入: {output} ({len(patched.nodes)} 个包)")
