"""lockbuild 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import os
from pathlib import Path

import click

from lockbuild import __version__
from lockbuild.core.config import init_config
from lockbuild.services.container import ServiceContainer, get_container, reset_container
from lockbuild.utils.logger import setup_logging


def _svc() -> ServiceContainer:
    """获取全局服务容器的快捷方式"""
    return get_container()


def _parse_kv_pairs(pairs: tuple[str, ...]) -> dict[str, str]:
    """解析 key=value 参数对"""
    result: dict[str, str] = {}
    for p in pairs:
        if "=" not in p:
            raise click.BadParameter(f"需要 KEY=VALUE 形式: {p}")
        k, v = p.split("=", 1)
        result[k.strip()] = v.strip()
    return result


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default="lockbuild.yml", help="配置文件路径")
def main(config_path: str) -> None:
    """lockbuild - 基于 pnpm lockfile 的离线可复现构建"""
    setup_logging(
        level=os.getenv("LOCKBUILD_LOG_LEVEL", "INFO"),
        json_output=os.getenv("LOCKBUILD_LOG_JSON", "") == "1",
    )
    if Path(config_path).is_file():
        init_config(config_path)
        reset_container()


# 注册各领域子命令
from lockbuild.cli.cmd_build import register as _reg_build  # noqa: E402
from lockbuild.cli.cmd_lock import register as _reg_lock  # noqa: E402
from lockbuild.cli.cmd_store import register as _reg_store  # noqa: E402
from lockbuild.cli.cmd_workspace import register as _reg_workspace  # noqa: E402

_reg_build(main)
_reg_lock(main)
_reg_store(main)
_reg_workspace(main)
