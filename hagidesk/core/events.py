"""事件订阅接口

版本管理器与进程监管器通过 EventBus 发布状态变化，
调用方注册监听器，而不是读取全局状态。

监听器签名: listener(event: str, payload: dict) -> None
监听器抛出的异常只记录日志，不影响发布方。
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[[str, dict[str, Any]], None]


class EventBus:
    """线程安全的发布/订阅"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[tuple[str, Listener]] = []

    def subscribe(self, listener: Listener, prefix: str = "") -> Callable[[], None]:
        """注册监听器，prefix 非空时只接收以其开头的事件；返回取消订阅函数"""
        entry = (prefix, listener)
        with self._lock:
            self._listeners.append(entry)

        def _unsubscribe() -> None:
            with self._lock:
                if entry in self._listeners:
                    self._listeners.remove(entry)

        return _unsubscribe

    def publish(self, event: str, **payload: Any) -> None:
        with self._lock:
            targets = [cb for prefix, cb in self._listeners if event.startswith(prefix)]
        for callback in targets:
            try:
                callback(event, payload)
            except Exception:
                logger.exception("事件监听器在事件 '%s' 上出错", event)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
