"""CLI - 版本依赖检查与安装命令"""

from __future__ import annotations

from typing import Any

import click

from hagidesk.cli import _echo_json, _fail, _svc
from hagidesk.core.exceptions import ConfigError, NotFoundError


def register(group: click.Group) -> None:
    group.add_command(deps_group)


@click.group(name="deps")
def deps_group() -> None:
    """宿主机依赖检查 / 安装"""


def _print_deps(deps: list[Any]) -> None:
    if not deps:
        click.echo("没有需要检查的依赖。")
        return
    for d in deps:
        if d.is_checking:
            state = "检查中"
        elif not d.installed:
            state = "未安装"
        elif d.version_mismatch:
            state = "版本不符"
        else:
            state = "满足"
        click.echo(
            f"  {d.key:16s} {state:6s} 当前={d.version or '-':12s} 要求={d.required_version or '-'}"
        )


@deps_group.command(name="list")
@click.argument("version_id")
def deps_list(version_id: str) -> None:
    """列出版本清单中声明的依赖（不执行检查）"""
    try:
        _print_deps(_svc().versions.get_dependency_list_from_manifest(version_id))
    except NotFoundError as e:
        _fail(str(e))


@deps_group.command(name="check")
@click.argument("version_id")
@click.option("--json", "as_json", is_flag=True, help="JSON 输出")
def deps_check(version_id: str, as_json: bool) -> None:
    """重新检查版本依赖并保存结果"""
    result = _svc().versions.check_version_dependencies(version_id)
    if not result.success or result.version is None:
        _fail(result.error)
    if as_json:
        _echo_json([d.to_dict() for d in result.version.dependencies])
        return
    click.echo(f"{result.version.id}: {result.version.status.value}")
    _print_deps(result.version.dependencies)


@deps_group.command(name="install")
@click.argument("version_id")
@click.argument("keys", nargs=-1)
def deps_install(version_id: str, keys: tuple[str, ...]) -> None:
    """安装版本依赖（可指定依赖键，默认全部）"""

    def _progress(p: dict[str, Any]) -> None:
        click.echo(f"  [{p['current']}/{p['total']}] {p['dependency']}: {p['status']}")

    try:
        result = _svc().versions.install_version_dependencies(
            version_id, list(keys) or None, on_progress=_progress,
        )
    except (NotFoundError, ConfigError) as e:
        _fail(str(e))
    click.echo(f"成功: {', '.join(result.success) or '-'}")
    for f in result.failed:
        click.echo(f"失败: {f['dependency']}: {f['error']}")
    if result.failed:
        raise SystemExit(1)


@deps_group.command(name="exec")
@click.argument("workdir", type=click.Path(exists=True, file_okay=False))
@click.argument("commands", nargs=-1, required=True)
def deps_exec(workdir: str, commands: tuple[str, ...]) -> None:
    """在目录中依次执行命令并实时输出，遇到失败即停止"""

    def _progress(p: dict[str, Any]) -> None:
        if "line" in p:
            click.echo(p["line"])
        elif p.get("status") == "running":
            click.echo(f"[{p['current']}/{p['total']}] $ {p['command']}")

    result = _svc().resolver.execute_commands_with_progress(list(commands), workdir, _progress)
    if not result.success:
        _fail(result.error or f"命令失败: {result.failed_command}")
