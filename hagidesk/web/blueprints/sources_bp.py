"""包源配置 API Blueprint"""

from __future__ import annotations

from typing import Any

from flask import Blueprint, Response, jsonify, request

from hagidesk.core.models import PackageSourceConfig
from hagidesk.web.responses import not_found, ok

sources_bp = Blueprint("sources", __name__, url_prefix="/api/sources")

_SECRET_FIELDS = ("token", "auth_token")


def _svc():  # type: ignore[no-untyped-def]
    from hagidesk.services.container import get_container
    return get_container().sources


def _public(config: PackageSourceConfig) -> dict[str, Any]:
    """对外输出时隐藏令牌"""
    data = config.to_dict()
    for key in _SECRET_FIELDS:
        if data.get(key):
            data[key] = "***"
    return data


@sources_bp.route("", methods=["GET"])
def list_all() -> Response:
    store = _svc()
    return jsonify(
        sources=[_public(s) for s in store.list_sources()],
        active_source_id=store.active_source_id,
        default_source_id=store.default_source_id,
    )


@sources_bp.route("/<source_id>", methods=["GET"])
def get(source_id: str) -> tuple[Response, int] | Response:
    config = _svc().get_source(source_id)
    if config is None:
        return not_found("包源")
    return jsonify(source=_public(config))


@sources_bp.route("", methods=["POST"])
def add() -> tuple[Response, int] | Response:
    body = request.get_json(silent=True) or {}
    config = _svc().add_source(body)
    return ok({"message": f"包源已添加: {config.id}", "source": _public(config)}, 201)


@sources_bp.route("/<source_id>", methods=["PATCH"])
def update(source_id: str) -> Response:
    body = request.get_json(silent=True) or {}
    config = _svc().update_source(source_id, body)
    return jsonify(message=f"包源已更新: {source_id}", source=_public(config))


@sources_bp.route("/<source_id>", methods=["DELETE"])
def delete(source_id: str) -> tuple[Response, int] | Response:
    if _svc().remove_source(source_id):
        return jsonify(message=f"包源已删除: {source_id}")
    return not_found("包源")


@sources_bp.route("/<source_id>/activate", methods=["POST"])
def activate(source_id: str) -> tuple[Response, int] | Response:
    body = request.get_json(silent=True) or {}
    result = _svc().set_active_source(source_id, validate=bool(body.get("validate")))
    if not result.valid:
        return jsonify(result.to_dict()), 400
    return jsonify(message=f"激活包源: {source_id}", active_source_id=source_id)


@sources_bp.route("/<source_id>/validate", methods=["POST"])
def validate(source_id: str) -> Response:
    return jsonify(_svc().validate_source(source_id).to_dict())
