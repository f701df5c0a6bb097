"""CLI - 杂项命令（控制 API、配置查看）"""

from __future__ import annotations

import click

from hagidesk.cli import _echo_json, _svc


def register(group: click.Group) -> None:
    group.add_command(dashboard)
    group.add_command(show_config)


@click.command()
@click.option("--host", default="127.0.0.1", help="监听地址")
@click.option("--port", default=8765, help="监听端口")
def dashboard(host: str, port: int) -> None:
    """启动 JSON 控制 API（供桌面前端调用）"""
    from hagidesk.web.app import run_server
    run_server(port=port, host=host)


@click.command(name="config")
def show_config() -> None:
    """输出当前生效的配置"""
    _echo_json(_svc().config.to_dict())
