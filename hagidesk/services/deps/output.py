"""安装命令输出解析

部分安装器在部分失败时仍以 0 退出，因此结果由输出内容与退出码共同决定:
  1. 输出中若有形如 {"success": ..., ...} 的 JSON 结果行，以它为准
  2. 否则检查失败标记（npm ERR!、error:、... failed 等）
  3. 非 0 退出码始终视为失败
"""

from __future__ import annotations

import json
import re
from typing import Any

from hagidesk.core.versioning import extract_version

_FAILURE_MARKERS = (
    re.compile(r"npm ERR!"),
    re.compile(r"^\s*(error|fatal)\b\s*[:!]", re.IGNORECASE | re.MULTILINE),
    re.compile(r"\b(install|installation|command|build)\s+failed\b", re.IGNORECASE),
    re.compile(r"\b(EACCES|EPERM)\b"),
)

MAX_RAW_OUTPUT = 8000


def _structured_result(output: str) -> dict[str, Any] | None:
    for line in reversed(output.splitlines()):
        line = line.strip()
        if not (line.startswith("{") and line.endswith("}")):
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict) and "success" in data:
            return data
    return None


def find_failure_marker(output: str) -> str | None:
    """返回首个包含失败标记的行，没有返回 None"""
    for pattern in _FAILURE_MARKERS:
        m = pattern.search(output)
        if m:
            start = output.rfind("\n", 0, m.start()) + 1
            end = output.find("\n", m.end())
            return output[start: end if end != -1 else None].strip()
    return None


def parse_install_output(returncode: int, output: str) -> dict[str, Any]:
    """将安装命令的退出码与输出归纳为结构化结果

    返回字段: success, exit_code, error_message, version, raw_output
    """
    raw = output[-MAX_RAW_OUTPUT:]
    structured = _structured_result(output)
    if structured is not None:
        success = bool(structured.get("success")) and returncode == 0
        error = structured.get("error") or structured.get("errorMessage")
        if not success and not error:
            error = f"安装命令退出码 {returncode}" if returncode else "安装器报告失败"
        return {
            "success": success,
            "exit_code": returncode,
            "error_message": error or None,
            "version": structured.get("version") or extract_version(output),
            "raw_output": raw,
        }

    marker = find_failure_marker(output)
    if returncode != 0:
        error = marker or f"安装命令退出码 {returncode}"
    else:
        error = marker
    success = error is None
    return {
        "success": success,
        "exit_code": returncode,
        "error_message": error,
        "version": extract_version(output) if success else None,
        "raw_output": raw,
    }
