"""CLI - 包源配置命令"""

from __future__ import annotations

from typing import Any

import click

from hagidesk.cli import _fail, _parse_kv_pairs, _svc
from hagidesk.core.exceptions import NotFoundError, ValidationError
from hagidesk.core.models import SOURCE_CONFIG_TYPES


def register(group: click.Group) -> None:
    group.add_command(sources_group)


@click.group(name="sources")
def sources_group() -> None:
    """包源管理（本地目录 / GitHub Releases / HTTP 索引）"""


@sources_group.command(name="list")
def sources_list() -> None:
    """列出所有包源"""
    store = _svc().sources
    active = store.active_source_id
    for s in store.list_sources():
        marker = " <- 激活" if s.id == active else ""
        click.echo(f"  {s.id:12s} [{s.type:14s}] {s.name}{marker}")


@sources_group.command(name="add")
@click.option("--type", "source_type", required=True, type=click.Choice(sorted(SOURCE_CONFIG_TYPES)))
@click.option("--name", default="", help="显示名称")
@click.option("--path", default=None, help="本地目录（local-folder）")
@click.option("--owner", default=None, help="仓库所有者（github-release）")
@click.option("--repo", default=None, help="仓库名（github-release）")
@click.option("--token", default=None, help="访问令牌（github-release）")
@click.option("--index-url", default=None, help="索引地址（http-index）")
@click.option("--base-url", default=None, help="制品基础地址（http-index）")
@click.option("--auth-token", default=None, help="Bearer 令牌（http-index）")
@click.option("--channel", "default_channel", default=None, help="默认渠道")
def sources_add(**kwargs: Any) -> None:
    """添加包源"""
    data = {k: v for k, v in kwargs.items() if v is not None}
    data["type"] = data.pop("source_type")
    try:
        config = _svc().sources.add_source(data)
    except ValidationError as e:
        _fail(str(e))
    click.echo(f"包源已添加: {config.id} ({config.type})")


@sources_group.command(name="update")
@click.argument("source_id")
@click.option("--set", "pairs", multiple=True, help="字段 key=value（可多次）")
def sources_update(source_id: str, pairs: tuple[str, ...]) -> None:
    """更新包源字段"""
    try:
        _svc().sources.update_source(source_id, _parse_kv_pairs(pairs))
    except (NotFoundError, ValidationError) as e:
        _fail(str(e))
    click.echo(f"包源已更新: {source_id}")


@sources_group.command(name="remove")
@click.argument("source_id")
def sources_remove(source_id: str) -> None:
    """删除包源"""
    if not _svc().sources.remove_source(source_id):
        _fail(f"包源不存在: {source_id}")
    click.echo(f"包源已删除: {source_id}")


@sources_group.command(name="activate")
@click.argument("source_id")
@click.option("--validate", is_flag=True, help="切换前做在线校验")
def sources_activate(source_id: str, validate: bool) -> None:
    """切换激活包源"""
    try:
        result = _svc().sources.set_active_source(source_id, validate=validate)
    except NotFoundError as e:
        _fail(str(e))
    if not result.valid:
        _fail(result.error or "校验失败")
    click.echo(f"激活包源: {source_id}")


@sources_group.command(name="validate")
@click.argument("source_id")
def sources_validate(source_id: str) -> None:
    """校验包源可达性"""
    try:
        result = _svc().sources.validate_source(source_id)
    except NotFoundError as e:
        _fail(str(e))
    if result.valid:
        click.echo("校验通过")
    else:
        _fail(result.error or "校验失败")
