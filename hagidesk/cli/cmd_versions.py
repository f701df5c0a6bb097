"""CLI - 版本管理命令"""

from __future__ import annotations

import click

from hagidesk.cli import _echo_json, _fail, _svc
from hagidesk.core.models import InstallProgress, OperationResult


def register(group: click.Group) -> None:
    group.add_command(versions_group)


@click.group(name="versions")
def versions_group() -> None:
    """版本安装 / 卸载 / 切换"""


def _print_progress(p: InstallProgress) -> None:
    click.echo(f"  [{p.percentage:3d}%] {p.stage} {p.message}".rstrip())


def _report(result: OperationResult, done: str) -> None:
    if not result.success:
        _fail(f"[{result.code.value if result.code else '?'}] {result.error}")
    click.echo(done)
    if result.warning:
        missing = ", ".join(d["key"] for d in result.warning.get("missing", []))
        click.echo(f"警告: 依赖不完整: {missing}")


@versions_group.command(name="available")
@click.option("--channel", default=None, help="只列出指定渠道（stable / beta ...）")
@click.option("--json", "as_json", is_flag=True, help="JSON 输出")
def versions_available(channel: str | None, as_json: bool) -> None:
    """列出激活包源中的可用版本"""
    versions = _svc().versions.list_available_versions(channel)
    if as_json:
        _echo_json([v.to_dict() for v in versions])
        return
    if not versions:
        click.echo("没有可用版本。")
        return
    for v in versions:
        size = f"{v.size_bytes / 1024 / 1024:.1f}MB" if v.size_bytes else "-"
        click.echo(f"  {v.id:36s} {v.version:16s} [{v.channel:6s}] {size}")


@versions_group.command(name="list")
@click.option("--json", "as_json", is_flag=True, help="JSON 输出")
def versions_list(as_json: bool) -> None:
    """列出已安装版本"""
    versions = _svc().versions.list_installed_versions()
    if as_json:
        _echo_json([v.to_dict() for v in versions])
        return
    if not versions:
        click.echo("没有已安装的版本。")
        return
    for v in versions:
        marker = " <- 激活" if v.is_active else ""
        click.echo(f"  {v.id:36s} {v.status.value:10s} {v.installed_at[:19]}{marker}")


@versions_group.command(name="install")
@click.argument("version_id")
def versions_install(version_id: str) -> None:
    """下载并安装版本"""
    result = _svc().versions.install(version_id, on_progress=_print_progress)
    _report(result, f"已安装: {result.version.id if result.version else version_id}")


@versions_group.command(name="uninstall")
@click.argument("version_id")
def versions_uninstall(version_id: str) -> None:
    """卸载非激活版本"""
    _report(_svc().versions.uninstall(version_id), f"已卸载: {version_id}")


@versions_group.command(name="switch")
@click.argument("version_id")
def versions_switch(version_id: str) -> None:
    """切换激活版本"""
    _report(_svc().versions.switch_version(version_id), f"激活版本: {version_id}")


@versions_group.command(name="reinstall")
@click.argument("version_id")
def versions_reinstall(version_id: str) -> None:
    """重新安装版本"""
    result = _svc().versions.reinstall_version(version_id, on_progress=_print_progress)
    _report(result, f"已重装: {version_id}")


@versions_group.command(name="active")
def versions_active() -> None:
    """显示当前激活版本"""
    active = _svc().versions.get_active_version()
    if active is None:
        click.echo("没有激活版本。")
        return
    click.echo(f"{active.id} ({active.status.value}) {active.install_path}")


@versions_group.command(name="logs")
@click.argument("version_id")
def versions_logs(version_id: str) -> None:
    """输出版本日志目录"""
    click.echo(str(_svc().versions.get_logs_path(version_id)))
