"""CLI: 构建命令"""

from __future__ import annotations

import json

import click

from lockbuild.cli import _parse_kv_pairs, _svc
from lockbuild.core.exceptions import LockbuildError
from lockbuild.services.orchestrator import BuildReport, BuildRequest


def register(group: click.Group) -> None:
    group.add_command(build)


@click.command()
@click.argument("project_dir", default=".", type=click.Path(file_okay=False))
@click.option("--output", "-o", "output_dir", default="artifact", help="产物输出目录")
@click.option("--component", "-c", "components", multiple=True,
              help="要构建的组件路径或 glob（可多次指定，不指定则按单项目构建）")
@click.option("--lockfile", default="pnpm-lock.yaml", help="lockfile 相对路径")
@click.option("--script", "script_name", default="build", help="package.json 中的构建脚本名")
@click.option("--custom-script", default="", help="完整的自定义构建命令（优先于 --script）")
@click.option("--install-env", multiple=True, help="安装阶段环境变量 KEY=VALUE")
@click.option("--build-env", multiple=True, help="构建阶段环境变量 KEY=VALUE")
@click.option("--prod", is_flag=True, help="不安装 devDependencies")
@click.option("--with-node-modules", is_flag=True, help="产物中包含 node_modules")
@click.option("--dist-dir", default="dist", help="组件产物目录（默认）")
@click.option("--component-dist", multiple=True, help="单个组件的产物目录 COMPONENT=DIR")
@click.option("--build-concurrency", type=int, default=None, help="组件构建并发度")
@click.option("--fetch-workers", type=int, default=None, help="拉取并发度")
@click.option("--keep-work-dir", is_flag=True, help="成功后保留工作目录")
@click.option("--report-json", default="", help="把构建报告写入 JSON 文件")
def build(
    project_dir: str, output_dir: str, components: tuple[str, ...], lockfile: str,
    script_name: str, custom_script: str, install_env: tuple[str, ...],
    build_env: tuple[str, ...], prod: bool, with_node_modules: bool, dist_dir: str,
    component_dist: tuple[str, ...], build_concurrency: int | None,
    fetch_workers: int | None, keep_work_dir: bool, report_json: str,
) -> None:
    """按 lockfile 拉取依赖并离线构建"""
    request = BuildRequest(
        project_dir=project_dir,
        output_dir=output_dir,
        components=list(components),
        lockfile=lockfile,
        script_name=script_name,
        custom_script=custom_script,
        install_env=_parse_kv_pairs(install_env),
        build_env=_parse_kv_pairs(build_env),
        include_dev=not prod,
        include_node_modules=with_node_modules,
        dist_dir=dist_dir,
        dist_dirs=_parse_kv_pairs(component_dist),
        build_concurrency=build_concurrency,
        fetch_workers=fetch_workers,
        keep_work_dir=keep_work_dir,
    )
    report = BuildReport(request=request)
    try:
        _svc().orchestrator.run(request, report)
    except LockbuildError as e:
        raise click.ClickException(f"[{e.code}] {e}") from e
    finally:
        if report_json:
            with open(report_json, "w", encoding="utf-8") as f:
                json.dump(report.to_dict(), f, ensure_ascii=False, indent=2)

    click.echo(f"构建成功: {report.artifact_dir} ({report.duration:.1f}s)")
