"""CLI: 内容存储管理"""

from __future__ import annotations

import click

from lockbuild.cli import _svc
from lockbuild.core.exceptions import LockbuildError


def register(group: click.Group) -> None:
    group.add_command(store_group)


@click.group(name="store")
def store_group() -> None:
    """内容存储管理"""


@store_group.command(name="ls")
def store_ls() -> None:
    """列出存储中的条目"""
    store = _svc().store
    entries = store.entries()
    if not entries:
        click.echo(f"存储为空: {store.root}")
        return
    for e in entries:
        meta = store.read_metadata(e.content_hash)
        source = meta.get("directive", {}).get("url", "")
        click.echo(f"  {e.content_hash[:12]}  {e.size:>10d}  {source}")
    click.echo(f"共 {len(entries)} 个条目: {store.root}")


@store_group.command(name="verify")
@click.argument("hashes", nargs=-1)
def store_verify(hashes: tuple[str, ...]) -> None:
    """重新校验条目归档的 integrity（不指定则校验全部）"""
    store = _svc().store
    targets = list(hashes) or [e.content_hash for e in store.entries()]
    try:
        bad = [h for h in targets if not store.verify(h)]
    except LockbuildError as e:
        raise click.ClickException(f"[{e.code}] {e}") from e
    for h in bad:
        click.echo(f"  损坏: {h}")
    if bad:
        raise click.ClickException(f"{len(bad)}/{len(targets)} 个条目校验失败")
    click.echo(f"校验通过: {len(targets)} 个条目")


@store_group.command(name="path")
@click.argument("content_hash")
def store_path(content_hash: str) -> None:
    """输出条目的归档路径"""
    entry = _svc().store.lookup(content_hash)
    if entry is None:
        raise click.ClickException(f"条目不存在: {content_hash}")
    click.echo(str(entry.archive))
