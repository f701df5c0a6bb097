"""端口探测

- is_port_open: 是否已有进程在监听（TCP connect）
- check_port_available: 非破坏性探测，先 connect 再 bind
- wait_for_listening: 轮询直到端口开始监听、超时或子进程退出
"""

from __future__ import annotations

import logging
import socket
import time
from typing import Callable

logger = logging.getLogger(__name__)


def is_port_open(host: str, port: int, timeout: float = 1.0) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def check_port_available(host: str, port: int) -> bool:
    """端口空闲返回 True；只做探测，不占用端口"""
    if is_port_open(host, port, timeout=0.5):
        return False
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            s.bind((host, port))
    except OSError:
        return False
    return True


def wait_for_listening(
    host: str,
    port: int,
    timeout: float,
    *,
    interval: float = 1.0,
    alive: Callable[[], bool] | None = None,
) -> bool:
    """等待端口开始监听

    alive 返回 False（子进程已退出）时立即放弃。
    """
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if alive is not None and not alive():
            logger.debug("进程已退出，停止等待端口 %s:%d", host, port)
            return False
        if is_port_open(host, port):
            return True
        time.sleep(interval)
    return False
