"""Web 层统一响应辅助函数

消除各 Blueprint 中重复的 jsonify(error=...), 4xx 模式，
并集中维护 原因码 / 异常 → HTTP 状态码 的映射。
"""

from __future__ import annotations

from flask import Response, jsonify

from hagidesk.core.exceptions import (
    ConfigError,
    HagiDeskError,
    NotFoundError,
    SourceError,
    ValidationError,
)
from hagidesk.core.models import ReasonCode

_REASON_STATUS = {
    ReasonCode.VERSION_NOT_FOUND: 404,
    ReasonCode.NOT_INSTALLED: 404,
    ReasonCode.VERSION_ACTIVE: 409,
    ReasonCode.NO_ACTIVE_VERSION: 409,
    ReasonCode.NO_ENTRY_POINT: 409,
    ReasonCode.ENTRY_POINT_MISSING: 409,
    ReasonCode.MAX_RESTARTS_REACHED: 409,
    ReasonCode.NOT_RUNNING: 409,
    ReasonCode.MANIFEST_MISSING: 400,
    ReasonCode.INVALID_CONFIG: 400,
    ReasonCode.SOURCE_ERROR: 502,
}

_ERROR_STATUS: tuple[tuple[type[HagiDeskError], int], ...] = (
    (NotFoundError, 404),
    (ValidationError, 400),
    (ConfigError, 400),
    (SourceError, 502),
)


def ok(data: dict, status: int = 200) -> tuple[Response, int] | Response:
    """成功响应"""
    if status == 200:
        return jsonify(data)
    return jsonify(data), status


def not_found(resource: str) -> tuple[Response, int]:
    """资源不存在"""
    return jsonify(error=f"{resource}不存在"), 404


def bad_request(message: str) -> tuple[Response, int]:
    """请求参数错误"""
    return jsonify(error=message), 400


def status_for_reason(code: ReasonCode | None) -> int:
    if code is None:
        return 500
    return _REASON_STATUS.get(code, 500)


def status_for_error(exc: HagiDeskError) -> int:
    for cls, status in _ERROR_STATUS:
        if isinstance(exc, cls):
            return status
    return 500


def result_response(data: dict, success: bool, code: ReasonCode | None) -> tuple[Response, int] | Response:
    """OperationResult / StartResult 的统一输出：失败时按原因码选择状态码"""
    if success:
        return jsonify(data)
    return jsonify(data), status_for_reason(code)
