"""版本依赖 API Blueprint"""

from __future__ import annotations

from flask import Blueprint, Response, jsonify, request

from hagidesk.web.responses import result_response

deps_bp = Blueprint("deps", __name__, url_prefix="/api/deps")


def _svc():  # type: ignore[no-untyped-def]
    from hagidesk.services.container import get_container
    return get_container().versions


@deps_bp.route("/<version_id>", methods=["GET"])
def manifest_list(version_id: str) -> Response:
    deps = _svc().get_dependency_list_from_manifest(version_id)
    return jsonify(dependencies=[d.to_dict() for d in deps])


@deps_bp.route("/<version_id>/check", methods=["POST"])
def check(version_id: str) -> tuple[Response, int] | Response:
    result = _svc().check_version_dependencies(version_id)
    return result_response(result.to_dict(), result.success, result.code)


@deps_bp.route("/<version_id>/install", methods=["POST"])
def install(version_id: str) -> Response:
    body = request.get_json(silent=True) or {}
    keys = body.get("keys") or None
    result = _svc().install_version_dependencies(version_id, keys)
    return jsonify(result.to_dict())
