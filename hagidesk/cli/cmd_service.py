"""CLI - 服务进程控制命令"""

from __future__ import annotations

import logging
import signal
import threading

import click

from hagidesk.cli import _echo_json, _fail, _parse_kv_pairs, _svc
from hagidesk.core.exceptions import ValidationError
from hagidesk.core.models import StartResult
from hagidesk.utils.logger import attach_file_handler


def register(group: click.Group) -> None:
    group.add_command(service_group)


@click.group(name="service")
def service_group() -> None:
    """激活版本服务的启动 / 停止 / 状态"""


def _report(result: StartResult) -> None:
    if not result.success:
        code = result.code.value if result.code else "?"
        _fail(f"[{code}] {result.message}")
    info = result.info
    click.echo(f"状态: {info.status.value}  pid={info.pid or '-'}  url={info.url or '-'}")
    if result.message:
        click.echo(result.message)


@service_group.command(name="status")
@click.option("--json", "as_json", is_flag=True, help="JSON 输出")
def service_status(as_json: bool) -> None:
    """显示服务状态"""
    info = _svc().supervisor.get_status()
    if as_json:
        _echo_json(info.to_dict())
        return
    click.echo(f"状态: {info.status.value}  阶段: {info.phase.value}")
    click.echo(f"版本: {info.version_id or '-'}  端口: {info.port}  重启次数: {info.restart_count}")
    if info.phase_message:
        click.echo(f"信息: {info.phase_message}")


@service_group.command(name="run")
def service_run() -> None:
    """前台启动服务，Ctrl-C 停止（日志同时写入 logs/hagidesk.log）"""
    container = _svc()
    sup = container.supervisor
    done = threading.Event()

    def _on_exit(event: str, payload: dict) -> None:
        click.echo(f"服务进程已退出 (rc={payload.get('returncode')})", err=True)
        done.set()

    handler = attach_file_handler("hagidesk", container.layout.logs_root / "hagidesk.log")
    unsubscribe = sup.events.subscribe(_on_exit, prefix="service.exited")
    try:
        _report(sup.start())
        signal.signal(signal.SIGINT, lambda *_: done.set())
        signal.signal(signal.SIGTERM, lambda *_: done.set())
        done.wait()
    finally:
        unsubscribe()
        container.shutdown()
        logging.getLogger("hagidesk").removeHandler(handler)
        handler.close()
    click.echo("服务已停止")


@service_group.command(name="port")
def service_port() -> None:
    """检查服务端口是否空闲"""
    sup = _svc().supervisor
    free = sup.check_port_available()
    click.echo(f"{sup.config.host}:{sup.config.port} {'空闲' if free else '已占用'}")


@service_group.command(name="config")
@click.option("--set", "pairs", multiple=True, help="配置项 key=value（可多次）")
def service_config(pairs: tuple[str, ...]) -> None:
    """查看或修改服务配置（当前进程内生效）"""
    sup = _svc().supervisor
    updates: dict[str, object] = {}
    try:
        for k, v in _parse_kv_pairs(pairs).items():
            current = getattr(sup.config, k, None)
            updates[k] = type(current)(v) if isinstance(current, (int, float)) else v
        if updates:
            sup.update_config(updates)
    except (ValidationError, ValueError) as e:
        _fail(str(e))
    _echo_json(vars(sup.config))
