"""服务进程控制 API Blueprint"""

from __future__ import annotations

from dataclasses import asdict

from flask import Blueprint, Response, jsonify, request

from hagidesk.web.responses import bad_request, result_response

service_bp = Blueprint("service", __name__, url_prefix="/api/service")


def _svc():  # type: ignore[no-untyped-def]
    from hagidesk.services.container import get_container
    return get_container().supervisor


@service_bp.route("/status", methods=["GET"])
def status() -> Response:
    return jsonify(_svc().get_status().to_dict())


@service_bp.route("/start", methods=["POST"])
def start() -> tuple[Response, int] | Response:
    result = _svc().start()
    return result_response(result.to_dict(), result.success, result.code)


@service_bp.route("/stop", methods=["POST"])
def stop() -> tuple[Response, int] | Response:
    result = _svc().stop()
    return result_response(result.to_dict(), result.success, result.code)


@service_bp.route("/restart", methods=["POST"])
def restart() -> tuple[Response, int] | Response:
    result = _svc().restart()
    return result_response(result.to_dict(), result.success, result.code)


@service_bp.route("/reset-restarts", methods=["POST"])
def reset_restarts() -> Response:
    _svc().reset_restart_count()
    return jsonify(_svc().get_status().to_dict())


@service_bp.route("/port", methods=["GET"])
def port() -> Response:
    sup = _svc()
    return jsonify(host=sup.config.host, port=sup.config.port, available=sup.check_port_available())


@service_bp.route("/config", methods=["GET"])
def get_config() -> Response:
    return jsonify(asdict(_svc().config))


@service_bp.route("/config", methods=["PATCH"])
def update_config() -> tuple[Response, int] | Response:
    body = request.get_json(silent=True)
    if not isinstance(body, dict) or not body:
        return bad_request("需要提供 JSON 对象")
    return jsonify(asdict(_svc().update_config(body)))
