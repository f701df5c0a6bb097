"""版本管理 API Blueprint

安装 / 重装默认同步执行；请求体 {"async": true} 时在后台线程执行，
立即返回 202，之后通过 GET /api/versions/<id>/progress 轮询。
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from flask import Blueprint, Response, jsonify, request

from hagidesk.core.models import InstallProgress, OperationResult
from hagidesk.web.responses import not_found, ok, result_response

logger = logging.getLogger(__name__)

versions_bp = Blueprint("versions", __name__, url_prefix="/api/versions")

# 版本 id → 最近一次进度 / 结果（后台安装轮询用）
_progress: dict[str, dict[str, Any]] = {}
_progress_lock = threading.Lock()


def _svc():  # type: ignore[no-untyped-def]
    from hagidesk.services.container import get_container
    return get_container().versions


def _record_progress(version_id: str) -> Callable[[InstallProgress], None]:
    def _cb(p: InstallProgress) -> None:
        with _progress_lock:
            _progress[version_id] = {
                "stage": p.stage, "percentage": p.percentage, "message": p.message,
            }
    return _cb


def _run(version_id: str, op: Callable[..., OperationResult]) -> tuple[Response, int] | Response:
    body = request.get_json(silent=True) or {}
    with _progress_lock:
        _progress[version_id] = {"stage": "pending", "percentage": 0, "message": ""}

    def _work() -> OperationResult:
        result = op(version_id, on_progress=_record_progress(version_id))
        with _progress_lock:
            _progress.setdefault(version_id, {})["result"] = result.to_dict()
        return result

    if body.get("async"):
        threading.Thread(target=_work, name=f"install-{version_id}", daemon=True).start()
        return ok({"message": f"已开始: {version_id}", "version_id": version_id}, 202)
    result = _work()
    return result_response(result.to_dict(), result.success, result.code)


@versions_bp.route("", methods=["GET"])
def list_installed() -> Response:
    return jsonify(versions=[v.to_dict() for v in _svc().list_installed_versions()])


@versions_bp.route("/available", methods=["GET"])
def list_available() -> Response:
    channel = request.args.get("channel") or None
    return jsonify(versions=[v.to_dict() for v in _svc().list_available_versions(channel)])


@versions_bp.route("/active", methods=["GET"])
def active() -> Response:
    version = _svc().get_active_version()
    return jsonify(version=version.to_dict() if version else None)


@versions_bp.route("/<version_id>", methods=["GET"])
def get(version_id: str) -> tuple[Response, int] | Response:
    version = _svc().get_installed_version(version_id)
    if version is None:
        return not_found("版本")
    return jsonify(version=version.to_dict())


@versions_bp.route("/<version_id>/install", methods=["POST"])
def install(version_id: str) -> tuple[Response, int] | Response:
    return _run(version_id, _svc().install)


@versions_bp.route("/<version_id>/reinstall", methods=["POST"])
def reinstall(version_id: str) -> tuple[Response, int] | Response:
    return _run(version_id, _svc().reinstall_version)


@versions_bp.route("/<version_id>/switch", methods=["POST"])
def switch(version_id: str) -> tuple[Response, int] | Response:
    result = _svc().switch_version(version_id)
    return result_response(result.to_dict(), result.success, result.code)


@versions_bp.route("/<version_id>", methods=["DELETE"])
def uninstall(version_id: str) -> tuple[Response, int] | Response:
    result = _svc().uninstall(version_id)
    return result_response(result.to_dict(), result.success, result.code)


@versions_bp.route("/<version_id>/progress", methods=["GET"])
def progress(version_id: str) -> Response:
    with _progress_lock:
        data = dict(_progress.get(version_id) or {})
    return jsonify(
        version_id=version_id,
        state=_svc().operation_state(version_id).value,
        progress=data or None,
    )


@versions_bp.route("/<version_id>/logs", methods=["GET"])
def logs(version_id: str) -> Response:
    return jsonify(path=str(_svc().get_logs_path(version_id)))
