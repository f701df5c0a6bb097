"""包源抽象

每种来源（本地目录、GitHub Release、HTTP 索引）实现:
  - list_available_versions()  列出当前平台可用版本（新版本在前）
  - download_package()         下载制品到指定路径，回调字节进度
  - validate_config()          校验配置（可能访问网络）
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Generic, TypeVar

from hagidesk.core.models import (
    AvailableVersion,
    DownloadProgress,
    PackageSourceConfig,
    Platform,
    ValidationResult,
)
from hagidesk.core.versioning import sort_newest_first
from hagidesk.services.source.filename import current_platform, infer_channel, parse_filename

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[DownloadProgress], None]

C = TypeVar("C", bound=PackageSourceConfig)

# 远程版本列表缓存有效期（秒）
CACHE_TTL = 3600
# HTTP 请求超时（秒）
DEFAULT_TIMEOUT = 30.0
VALIDATE_TIMEOUT = 10.0


class ProgressReporter:
    """将字节进度转换为 DownloadProgress，保证百分比单调不减"""

    def __init__(self, callback: ProgressCallback | None) -> None:
        self._callback = callback
        self._last = -1

    def __call__(self, current: int, total: int) -> None:
        if self._callback is None:
            return
        progress = DownloadProgress.of(current, total)
        if total <= 0:
            # 总大小未知时只在结束时报告 100%
            return
        if progress.percentage < self._last:
            return
        self._last = progress.percentage
        self._callback(progress)

    def start(self, total: int = 0) -> None:
        if self._callback is not None and self._last < 0:
            self._last = 0
            self._callback(DownloadProgress(current=0, total=total, percentage=0))

    def finish(self, total: int) -> None:
        if self._callback is not None and self._last < 100:
            self._last = 100
            self._callback(DownloadProgress(current=total, total=total, percentage=100))


class PackageSource(ABC, Generic[C]):
    """包源基类

    timeout 为单次 HTTP 请求超时（秒），校验配置时最多使用 VALIDATE_TIMEOUT。
    """

    def __init__(
        self, config: C, *, platform: Platform | None = None, timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.config = config
        self.platform = platform or current_platform()
        self.timeout = timeout

    @property
    def validate_timeout(self) -> float:
        return min(self.timeout, VALIDATE_TIMEOUT)

    @abstractmethod
    def list_available_versions(self) -> list[AvailableVersion]:
        """列出当前平台的可用版本，新版本在前

        Raises:
            SourceError: 网络或文件系统错误
        """

    @abstractmethod
    def download_package(
        self,
        version: AvailableVersion,
        dest_path: str | Path,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """下载制品到 dest_path

        Raises:
            SourceError: 下载失败（不完整文件已删除）
        """

    def validate_config(self) -> ValidationResult:
        missing = self.config.missing_fields()
        if missing:
            return ValidationResult(False, f"缺少必填字段: {', '.join(missing)}")
        return ValidationResult(True)

    # ---- 子类共用 ----

    def _version_from_filename(self, filename: str, **extra: Any) -> AvailableVersion | None:
        """按命名约定构造 AvailableVersion，无法解析返回 None"""
        parsed = parse_filename(filename)
        if parsed is None:
            logger.debug("跳过无法解析的制品: %s", filename)
            return None
        channel = extra.pop("channel", None) or infer_channel(parsed.version, parsed.channel_marker)
        return AvailableVersion(
            id=parsed.version_id,
            version=parsed.version,
            platform=parsed.platform.value,
            artifact_filename=filename,
            channel=channel,
            **extra,
        )

    def _finalize(self, versions: list[AvailableVersion]) -> list[AvailableVersion]:
        """过滤到当前平台、按 id 去重、新版本在前"""
        seen: set[str] = set()
        result = []
        for v in versions:
            if v.platform != self.platform.value or v.id in seen:
                continue
            seen.add(v.id)
            result.append(v)
        return sort_newest_first(result)


class CachedListing:
    """带有效期的版本列表缓存（按键区分仓库 / 索引地址）"""

    def __init__(self, ttl: float = CACHE_TTL) -> None:
        self.ttl = ttl
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, list[AvailableVersion]]] = {}

    def get(self, key: str) -> list[AvailableVersion] | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stamp, versions = entry
            if time.monotonic() - stamp > self.ttl:
                del self._entries[key]
                return None
            return list(versions)

    def put(self, key: str, versions: list[AvailableVersion]) -> None:
        with self._lock:
            self._entries[key] = (time.monotonic(), list(versions))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
