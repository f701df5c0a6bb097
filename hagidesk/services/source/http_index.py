"""HTTP 索引包源

索引文件格式:
    {
      "versions": [
        {"version": "1.2.0",
         "assets": [{"name": "hagicode-1.2.0-linux-x64.zip",
                     "path": "1.2.0/hagicode-1.2.0-linux-x64.zip",
                     "size": 123, "lastModified": "..."}]}
      ],
      "channels": {"stable": {"latest": "1.2.0", "versions": ["1.2.0"]}}
    }

相对 path 以 base_url（若配置）或索引文件所在目录为基准解析。
没有 channels 时所有版本归入 beta 渠道。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any
from urllib.parse import urljoin, urlparse

from hagidesk.core.exceptions import SourceError, ValidationError
from hagidesk.core.models import AvailableVersion, HttpIndexConfig, ValidationResult
from hagidesk.services.source.base import (
    CachedListing,
    PackageSource,
    ProgressCallback,
    ProgressReporter,
)
from hagidesk.services.source.filename import make_version_id, parse_filename
from hagidesk.utils.net import fetch_json, stream_download, validate_url_scheme

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "beta"
_ACCEPT = {"Accept": "application/json"}


def _index_problem(data: Any) -> str | None:
    """索引结构问题描述，结构有效返回 None"""
    if not isinstance(data, dict) or not isinstance(data.get("versions"), list):
        return "索引文件格式无效: 缺少 versions 数组"
    channels = data.get("channels")
    if channels is None:
        return None
    if not isinstance(channels, dict):
        return "索引文件格式无效: channels 必须是对象"
    for name, info in channels.items():
        if not isinstance(info, dict) or not info.get("latest") or not isinstance(info.get("versions"), list):
            return f"渠道 '{name}' 结构无效"
    return None


class HttpIndexSource(PackageSource[HttpIndexConfig]):

    _cache = CachedListing()

    @classmethod
    def clear_cache(cls) -> None:
        cls._cache.clear()

    def _fetch_index(self, timeout: float) -> dict[str, Any]:
        url = self.config.index_url
        try:
            data = fetch_json(url, token=self.config.auth_token or "", headers=_ACCEPT, timeout=timeout)
        except SourceError as e:
            if e.status == 404:
                raise SourceError(f"索引文件不存在: {url}，请检查地址是否可访问。", status=404) from e
            if e.status in (401, 403):
                raise SourceError("认证失败，请检查认证令牌。", status=e.status) from e
            raise
        problem = _index_problem(data)
        if problem:
            raise SourceError(problem)
        return data

    def resolve_asset_url(self, asset: dict[str, Any]) -> str:
        """资产下载地址: 绝对 url/path 原样使用，相对 path 按基准地址拼接"""
        for key in ("url", "path"):
            value = asset.get(key)
            if value and urlparse(str(value)).scheme in ("http", "https"):
                return str(value)
        rel = asset.get("path") or asset.get("name")
        if not rel:
            raise SourceError(f"无法解析资产下载地址: {asset!r}")
        if self.config.base_url:
            base = self.config.base_url.rstrip("/") + "/"
        else:
            base = self.config.index_url
        return urljoin(base, str(rel).lstrip("/"))

    def list_available_versions(self) -> list[AvailableVersion]:
        cached = self._cache.get(self.config.index_url)
        if cached is not None:
            return cached

        logger.info("拉取 HTTP 索引: %s", self.config.index_url)
        data = self._fetch_index(self.timeout)

        channel_of: dict[str, str] = {}
        for channel_name, info in (data.get("channels") or {}).items():
            for ver in info.get("versions") or []:
                channel_of[str(ver)] = channel_name

        versions = []
        for entry in data["versions"]:
            ver = str(entry.get("version", ""))
            if not ver:
                continue
            for asset in entry.get("assets") or []:
                name = str(asset.get("name", ""))
                parsed = parse_filename(name)
                if parsed is None:
                    continue
                versions.append(AvailableVersion(
                    id=make_version_id(ver, parsed.platform.value),
                    version=ver,
                    platform=parsed.platform.value,
                    artifact_filename=name,
                    channel=channel_of.get(ver, DEFAULT_CHANNEL),
                    released_at=asset.get("lastModified"),
                    size_bytes=asset.get("size"),
                    download_url=self.resolve_asset_url(asset),
                ))

        result = self._finalize(versions)
        self._cache.put(self.config.index_url, result)
        logger.info("索引中找到 %d 个 %s 版本", len(result), self.platform.value)
        return result

    def download_package(
        self,
        version: AvailableVersion,
        dest_path: str | Path,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        if not version.download_url:
            raise SourceError(f"版本没有下载地址: {version.id}")
        report = ProgressReporter(on_progress)
        report.start(version.size_bytes or 0)
        size = stream_download(
            version.download_url, dest_path,
            token=self.config.auth_token or "", timeout=self.timeout,
            on_chunk=report,
        )
        report.finish(size)

    def validate_config(self) -> ValidationResult:
        base = super().validate_config()
        if not base.valid:
            return base
        try:
            validate_url_scheme(self.config.index_url, context="index_url")
            if self.config.base_url:
                validate_url_scheme(self.config.base_url, context="base_url")
        except ValidationError as e:
            return ValidationResult(False, str(e))
        try:
            self._fetch_index(self.validate_timeout)
        except SourceError as e:
            return ValidationResult(False, str(e))
        return ValidationResult(True)
