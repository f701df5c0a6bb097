"""包源配置存储（YAML）

文件结构:
    active_source_id: source-1
    default_source_id: source-1
    sources:
      source-1: {type: http-index, name: ..., index_url: ..., created_at: ...}

规则:
  - 首个添加的包源同时成为默认与激活包源
  - 删除激活/默认包源时回退到剩余的第一个
  - 存储为空时写入官方 HTTP 索引源，或 HAGIDESK_SOURCE_OVERRIDE 指定的源
  - 切换激活包源不影响已安装版本
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from hagidesk.core.exceptions import NotFoundError, ValidationError
from hagidesk.core.models import (
    PackageSourceConfig,
    Platform,
    ValidationResult,
    source_config_from_dict,
)
from hagidesk.core.registry import YamlRegistry
from hagidesk.services.source import PackageSource, create_package_source
from hagidesk.services.source.base import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

OVERRIDE_ENV = "HAGIDESK_SOURCE_OVERRIDE"
OFFICIAL_SOURCE = {
    "type": "http-index",
    "name": "HagiCode 官方源",
    "index_url": "https://server.dl.hagicode.com/index.json",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _build(data: Mapping[str, Any]) -> PackageSourceConfig:
    try:
        return source_config_from_dict(dict(data))
    except (TypeError, ValueError) as e:
        raise ValidationError(f"包源配置无效: {e}") from e


def _check_required(config: PackageSourceConfig) -> None:
    missing = config.missing_fields()
    if missing:
        raise ValidationError(
            f"{config.type} 包源缺少必填字段: {', '.join(missing)}", details=missing,
        )


class SourceConfigStore(YamlRegistry):
    """包源配置注册表"""

    section_key = "sources"

    def __init__(
        self,
        registry_file: str | Path,
        *,
        environ: Mapping[str, str] | None = None,
        http_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        super().__init__(registry_file)
        self._environ = os.environ if environ is None else environ
        self.http_timeout = http_timeout
        self._ensure_default()

    # ---- 查询 ----

    def list_sources(self) -> list[PackageSourceConfig]:
        return [_build(d) for d in self._list_raw()]

    def get_source(self, source_id: str) -> PackageSourceConfig | None:
        raw = self._get_raw(source_id)
        return _build({"id": source_id, **raw}) if raw is not None else None

    def get_default_source(self) -> PackageSourceConfig | None:
        with self._lock:
            default_id = self._data.get("default_source_id")
            if default_id:
                return self.get_source(default_id)
            sources = self.list_sources()
            return sources[0] if sources else None

    def get_active_source(self) -> PackageSourceConfig | None:
        with self._lock:
            active_id = self._data.get("active_source_id")
            if not active_id:
                return self.get_default_source()
            return self.get_source(active_id)

    @property
    def active_source_id(self) -> str | None:
        return self._data.get("active_source_id")

    @property
    def default_source_id(self) -> str | None:
        return self._data.get("default_source_id")

    # ---- 增删改 ----

    def add_source(self, data: Mapping[str, Any] | PackageSourceConfig) -> PackageSourceConfig:
        """添加包源，校验类型必填字段；首个包源自动成为默认与激活"""
        raw = data.to_dict() if isinstance(data, PackageSourceConfig) else dict(data)
        with self._lock:
            config = _build({**raw, "id": self._next_id(), "created_at": _now()})
            _check_required(config)
            first = not self._section()
            if first:
                self._data["default_source_id"] = config.id
                self._data["active_source_id"] = config.id
            self._put(config.id, self._record(config))
        logger.info("包源已添加: %s (%s)", config.id, config.type)
        return config

    def update_source(self, source_id: str, updates: Mapping[str, Any]) -> PackageSourceConfig:
        """更新包源字段（id / type / created_at 不可改）"""
        with self._lock:
            current = self.get_source(source_id)
            if current is None:
                raise NotFoundError(f"包源不存在: {source_id}")
            merged = {**current.to_dict(), **dict(updates)}
            merged.update(id=current.id, type=current.type, created_at=current.created_at)
            config = _build(merged)
            _check_required(config)
            self._put(source_id, self._record(config))
        return config

    def remove_source(self, source_id: str) -> bool:
        with self._lock:
            if not self._remove(source_id):
                return False
            remaining = list(self._section())
            fallback = remaining[0] if remaining else None
            for key in ("active_source_id", "default_source_id"):
                if self._data.get(key) == source_id:
                    self._data[key] = fallback
            self._save()
        logger.info("包源已删除: %s", source_id)
        return True

    def set_active_source(self, source_id: str, *, validate: bool = False) -> ValidationResult:
        """切换激活包源；validate=True 时先做在线校验，失败则不切换

        Raises:
            NotFoundError: 包源不存在
        """
        with self._lock:
            config = self.get_source(source_id)
            if config is None:
                raise NotFoundError(f"包源不存在: {source_id}")
            missing = config.missing_fields()
            if missing:
                return ValidationResult(False, f"缺少必填字段: {', '.join(missing)}")
        if validate:
            result = create_package_source(config, timeout=self.http_timeout).validate_config()
            if not result.valid:
                logger.warning("包源校验失败，未切换: %s: %s", source_id, result.error)
                return result
        with self._lock:
            self._data["active_source_id"] = source_id
            self._put(source_id, self._record(replace(config, last_used_at=_now())))
        logger.info("激活包源: %s", source_id)
        return ValidationResult(True)

    def validate_source(self, source_id: str) -> ValidationResult:
        config = self.get_source(source_id)
        if config is None:
            raise NotFoundError(f"包源不存在: {source_id}")
        if config.missing_fields():
            return ValidationResult(False, f"缺少必填字段: {', '.join(config.missing_fields())}")
        return create_package_source(config, timeout=self.http_timeout).validate_config()

    def create_active_source(self, *, platform: Platform | None = None) -> PackageSource | None:
        """为激活包源构造实现，没有包源返回 None"""
        config = self.get_active_source()
        if config is None:
            return None
        return create_package_source(config, platform=platform, timeout=self.http_timeout)

    # ---- 内部 ----

    @staticmethod
    def _record(config: PackageSourceConfig) -> dict[str, Any]:
        data = config.to_dict()
        data.pop("id", None)
        return {k: v for k, v in data.items() if v is not None}

    def _next_id(self) -> str:
        existing = self._section()
        counter = len(existing) + 1
        while f"source-{counter}" in existing:
            counter += 1
        return f"source-{counter}"

    def _load_override(self) -> dict[str, Any] | None:
        raw = self._environ.get(OVERRIDE_ENV, "")
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("%s 不是有效 JSON，忽略", OVERRIDE_ENV)
            return None
        if not isinstance(data, dict):
            return None
        try:
            config = source_config_from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning("%s 配置无效，忽略: %s", OVERRIDE_ENV, e)
            return None
        if config.missing_fields():
            logger.warning("%s 缺少必填字段 %s，忽略", OVERRIDE_ENV, config.missing_fields())
            return None
        return data

    def _ensure_default(self) -> None:
        with self._lock:
            if self._section():
                return
            override = self._load_override()
            if override is not None:
                logger.info("使用环境变量 %s 指定的包源", OVERRIDE_ENV)
                self.add_source(override)
                return
            self.add_source(OFFICIAL_SOURCE)
