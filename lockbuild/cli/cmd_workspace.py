"""CLI: 工作空间查看"""

from __future__ import annotations

from pathlib import Path

import click

from lockbuild.cli import _svc
from lockbuild.core.workspace import read_workspace_patterns


def register(group: click.Group) -> None:
    group.add_command(workspace_group)


@click.group(name="workspace")
def workspace_group() -> None:
    """工作空间查看"""


@workspace_group.command(name="ls")
@click.argument("project_dir", default=".", type=click.Path(exists=True, file_okay=False))
def workspace_ls(project_dir: str) -> None:
    """按 pnpm-workspace.yaml 列出成员组件（构建时仍需显式选择）"""
    root = Path(project_dir)
    patterns = read_workspace_patterns(root)
    if not patterns:
        click.echo("没有 pnpm-workspace.yaml 或 packages 为空，按单项目处理。")
        return
    for component in _svc().matcher(root, patterns):
        click.echo(f"  {component}")
