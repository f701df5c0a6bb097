"""GitHub Release 包源

查询 releases API，取发布时间最新的 10 个 release，
将 hagicode-*.zip 资产映射为可用版本。结果按 owner/repo 缓存 1 小时。
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from hagidesk.core.exceptions import SourceError
from hagidesk.core.models import AvailableVersion, GitHubReleaseConfig, ValidationResult
from hagidesk.services.source.base import (
    CachedListing,
    PackageSource,
    ProgressCallback,
    ProgressReporter,
)
from hagidesk.services.source.filename import is_artifact_name
from hagidesk.utils.net import fetch_json, stream_download

logger = logging.getLogger(__name__)

API_BASE = "https://api.github.com"
MAX_RELEASES = 10
_ACCEPT = {"Accept": "application/vnd.github+json"}


def _explain(err: SourceError, owner: str, repo: str) -> SourceError:
    """将 401/403/404 转换为可操作的错误信息"""
    if err.status == 403:
        reset = err.headers.get("X-RateLimit-Reset") or err.headers.get("x-ratelimit-reset")
        when = "未知"
        if reset and str(reset).isdigit():
            when = datetime.fromtimestamp(int(reset), tz=timezone.utc).isoformat()
        return SourceError(
            f"GitHub API 频率限制已超出，重置时间: {when}。"
            "配置 token 可将上限提升到 5000 次/小时。",
            status=403,
        )
    if err.status == 404:
        return SourceError(f"仓库不存在: {owner}/{repo}，请检查 owner 与 repo。", status=404)
    if err.status == 401:
        return SourceError("GitHub token 无效，请检查认证令牌。", status=401)
    return err


class GitHubReleaseSource(PackageSource[GitHubReleaseConfig]):

    _cache = CachedListing()

    @property
    def _cache_key(self) -> str:
        return f"{self.config.owner}/{self.config.repo}"

    @classmethod
    def clear_cache(cls) -> None:
        cls._cache.clear()

    def list_available_versions(self) -> list[AvailableVersion]:
        cached = self._cache.get(self._cache_key)
        if cached is not None:
            logger.debug("使用缓存的 release 列表: %s", self._cache_key)
            return cached

        owner, repo = self.config.owner, self.config.repo
        url = f"{API_BASE}/repos/{owner}/{repo}/releases?per_page=100"
        logger.info("查询 GitHub releases: %s/%s", owner, repo)
        try:
            releases = fetch_json(
                url, token=self.config.token or "", headers=_ACCEPT, timeout=self.timeout,
            )
        except SourceError as e:
            raise _explain(e, owner, repo) from e
        if not isinstance(releases, list):
            raise SourceError(f"GitHub API 返回格式异常: {url}")

        releases.sort(
            key=lambda r: r.get("published_at") or r.get("created_at") or "",
            reverse=True,
        )
        versions = []
        for release in releases[:MAX_RELEASES]:
            released_at = release.get("published_at") or release.get("created_at")
            for asset in release.get("assets") or []:
                name = asset.get("name", "")
                if not is_artifact_name(name):
                    continue
                v = self._version_from_filename(
                    name,
                    released_at=released_at,
                    size_bytes=asset.get("size"),
                    download_url=asset.get("browser_download_url"),
                    channel="beta" if release.get("prerelease") else None,
                )
                if v is not None:
                    versions.append(v)

        result = self._finalize(versions)
        self._cache.put(self._cache_key, result)
        logger.info("GitHub 上找到 %d 个 %s 版本", len(result), self.platform.value)
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
            token=self.config.token or "",
            headers={"Accept": "application/octet-stream"},
            timeout=self.timeout,
            on_chunk=report,
        )
        report.finish(size)

    def validate_config(self) -> ValidationResult:
        base = super().validate_config()
        if not base.valid:
            return base
        url = f"{API_BASE}/repos/{self.config.owner}/{self.config.repo}"
        try:
            fetch_json(url, token=self.config.token or "", headers=_ACCEPT,
                       timeout=self.validate_timeout)
        except SourceError as e:
            if e.status is None:
                return ValidationResult(False, f"无法连接 GitHub，请检查网络: {e}")
            return ValidationResult(False, str(_explain(e, self.config.owner, self.config.repo)))
        return ValidationResult(True)
