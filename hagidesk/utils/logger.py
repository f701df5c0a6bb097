"""hagidesk 日志配置

提供统一的日志配置，支持普通文本和结构化 JSON 两种输出格式，
以及为受监管服务单独输出的按版本日志文件。
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path


class JSONFormatter(logging.Formatter):
    """结构化 JSON 日志格式器，便于外部采集

    输出字段: timestamp, level, logger, message, module, function, line,
    以及可选的 exception。
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            # 使用 record.created，记录事件发生时间而非格式化时间
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


_TEXT_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """配置根日志器（输出到 stderr，清理已有 handlers 避免重复输出）"""
    root = logging.getLogger()
    reset_logging()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    root.addHandler(handler)


def attach_file_handler(
    logger_name: str, log_file: str | Path, json_output: bool = False,
) -> logging.Handler:
    """为指定 logger 追加文件输出，返回 handler 以便调用方移除"""
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(
        JSONFormatter() if json_output else logging.Formatter(_TEXT_FORMAT)
    )
    logging.getLogger(logger_name).addHandler(handler)
    return handler


def reset_logging() -> None:
    """清理根日志器的所有 handlers（测试或重新配置时使用）"""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
