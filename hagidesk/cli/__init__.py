"""hagidesk 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import json
import os
from typing import Any, NoReturn

import click

from hagidesk import __version__
from hagidesk.core.config import init_config
from hagidesk.services.container import get_container, reset_container
from hagidesk.utils.logger import setup_logging


def _svc() -> Any:
    """获取全局服务容器的快捷方式"""
    return get_container()


def _parse_kv_pairs(pairs: tuple[str, ...]) -> dict[str, str]:
    """解析 key=value 参数对"""
    result: dict[str, str] = {}
    for p in pairs:
        if "=" in p:
            k, v = p.split("=", 1)
            result[k.strip()] = v.strip()
    return result


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, ensure_ascii=False, indent=2))


def _fail(message: str) -> NoReturn:
    click.echo(f"错误: {message}", err=True)
    raise SystemExit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("-c", "--config", "config_path", default=None, help="配置文件路径（默认 hagidesk.yml）")
def main(config_path: str | None) -> None:
    """hagidesk - HagiCode 桌面端后端"""
    setup_logging(
        level=os.getenv("HAGIDESK_LOG_LEVEL", "INFO"),
        json_output=os.getenv("HAGIDESK_LOG_JSON", "") == "1",
    )
    if config_path or os.path.exists("hagidesk.yml"):
        init_config(config_path or "hagidesk.yml")
        reset_container()


# 注册各领域子命令
from hagidesk.cli.cmd_versions import register as _reg_versions  # noqa: E402
from hagidesk.cli.cmd_sources import register as _reg_sources  # noqa: E402
from hagidesk.cli.cmd_deps import register as _reg_deps  # noqa: E402
from hagidesk.cli.cmd_service import register as _reg_service  # noqa: E402
from hagidesk.cli.cmd_misc import register as _reg_misc  # noqa: E402

_reg_versions(main)
_reg_sources(main)
_reg_deps(main)
_reg_service(main)
_reg_misc(main)
