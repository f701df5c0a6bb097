"""JSON 控制 API（基于 Flask）

供桌面前端调用：版本管理、包源配置、依赖检查、服务进程控制。

启动方式: hagidesk dashboard --port 8765
"""

from __future__ import annotations

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from hagidesk import __version__
from hagidesk.core.exceptions import HagiDeskError
from hagidesk.web.blueprints import deps_bp, service_bp, sources_bp, versions_bp
from hagidesk.web.responses import status_for_error

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.json.ensure_ascii = False  # type: ignore[attr-defined]

for _bp in (versions_bp, sources_bp, deps_bp, service_bp):
    app.register_blueprint(_bp)


# =========================================================================
# 全局 JSON 错误处理
# =========================================================================


@app.errorhandler(HTTPException)
def handle_http_exception(exc):
    """将所有 HTTP 异常统一返回 JSON"""
    return jsonify(error=exc.description), exc.code


@app.errorhandler(HagiDeskError)
def handle_domain_exception(exc: HagiDeskError):
    status = status_for_error(exc)
    body = {"error": str(exc), "code": exc.code}
    details = getattr(exc, "details", None)
    if details:
        body["details"] = details
    if status >= 500:
        logger.error("请求处理失败 [%s]: %s", exc.code, exc)
    return jsonify(body), status


@app.errorhandler(Exception)
def handle_generic_exception(exc):  # noqa: ARG001
    """捕获未处理异常，返回 500 JSON"""
    logger.exception("未处理的异常")
    return jsonify(error="服务器内部错误"), 500


@app.route("/api/health")
def health():
    return jsonify(status="ok", version=__version__)


def run_server(port: int = 8765, debug: bool = False, host: str = "127.0.0.1") -> None:
    from hagidesk.services.container import get_container
    logger.info("hagidesk 控制 API 已启动: http://%s:%d", host, port)
    try:
        app.run(host=host, port=port, debug=debug, threaded=True)
    finally:
        get_container().shutdown()
