"""GitHub Release / HTTP 索引包源测试（网络调用以 monkeypatch 替换）"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from hagidesk.core.exceptions import SourceError
from hagidesk.core.models import GitHubReleaseConfig, HttpIndexConfig, Platform
from hagidesk.services.source import github_release, http_index
from hagidesk.services.source.github_release import GitHubReleaseSource
from hagidesk.services.source.http_index import HttpIndexSource


@pytest.fixture(autouse=True)
def _clear_caches():
    GitHubReleaseSource.clear_cache()
    HttpIndexSource.clear_cache()
    yield
    GitHubReleaseSource.clear_cache()
    HttpIndexSource.clear_cache()


class FakeFetch:
    """记录调用并返回预设数据；数据为异常时抛出"""

    def __init__(self, data: Any) -> None:
        self.data = data
        self.calls: list[dict[str, Any]] = []

    def __call__(self, url: str, **kwargs: Any) -> Any:
        self.calls.append({"url": url, **kwargs})
        if isinstance(self.data, Exception):
            raise self.data
        return self.data


def _fake_download(payload: bytes = b"0123456789"):
    def _download(url: str, dest: str | Path, *, on_chunk=None, **kwargs: Any) -> int:
        Path(dest).write_bytes(payload)
        if on_chunk is not None:
            on_chunk(len(payload) // 2, len(payload))
            on_chunk(len(payload), len(payload))
        return len(payload)
    return _download


# =========================================================================
# GitHub Release
# =========================================================================

RELEASES = [
    {
        "published_at": "2024-01-01T00:00:00Z",
        "prerelease": False,
        "assets": [{
            "name": "hagicode-1.0.0-linux-x64.zip", "size": 10,
            "browser_download_url": "https://github.example/1.0.0.zip",
        }],
    },
    {
        "published_at": "2024-03-01T00:00:00Z",
        "prerelease": True,
        "assets": [
            {"name": "hagicode-1.1.0-beta.1-linux.zip", "size": 20,
             "browser_download_url": "https://github.example/1.1.0.zip"},
            {"name": "hagicode-1.1.0-beta.1-osx.zip", "size": 20,
             "browser_download_url": "https://github.example/1.1.0-osx.zip"},
            {"name": "checksums.txt", "size": 1},
        ],
    },
]


def _github(token: str | None = None) -> GitHubReleaseSource:
    return GitHubReleaseSource(
        GitHubReleaseConfig(owner="hagicode", repo="desktop", token=token),
        platform=Platform.LINUX,
    )


class TestGitHubRelease:
    def test_list_maps_assets(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fake = FakeFetch([dict(r) for r in RELEASES])
        monkeypatch.setattr(github_release, "fetch_json", fake)
        versions = _github().list_available_versions()
        assert [v.id for v in versions] == ["hagicode-1.1.0-beta.1-linux", "hagicode-1.0.0-linux"]
        assert versions[0].channel == "beta"
        assert versions[1].channel == "stable"
        assert versions[1].download_url == "https://github.example/1.0.0.zip"
        assert "/repos/hagicode/desktop/releases" in fake.calls[0]["url"]

    def test_listing_is_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fake = FakeFetch([dict(r) for r in RELEASES])
        monkeypatch.setattr(github_release, "fetch_json", fake)
        _github().list_available_versions()
        _github().list_available_versions()
        assert len(fake.calls) == 1

    def test_timeout_forwarded(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fake = FakeFetch([])
        monkeypatch.setattr(github_release, "fetch_json", fake)
        source = GitHubReleaseSource(
            GitHubReleaseConfig(owner="hagicode", repo="desktop"), platform=Platform.LINUX, timeout=5,
        )
        source.list_available_versions()
        source.validate_config()
        assert [c["timeout"] for c in fake.calls] == [5, 5]

    def test_token_forwarded(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fake = FakeFetch([])
        monkeypatch.setattr(github_release, "fetch_json", fake)
        _github(token="ghp_x").list_available_versions()
        assert fake.calls[0]["token"] == "ghp_x"

    def test_rate_limit_message(self, monkeypatch: pytest.MonkeyPatch) -> None:
        err = SourceError("HTTP 403", status=403, headers={"X-RateLimit-Reset": "0"})
        monkeypatch.setattr(github_release, "fetch_json", FakeFetch(err))
        with pytest.raises(SourceError, match="频率限制") as exc_info:
            _github().list_available_versions()
        assert exc_info.value.status == 403

    def test_repo_not_found(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(github_release, "fetch_json", FakeFetch(SourceError("x", status=404)))
        with pytest.raises(SourceError, match="仓库不存在"):
            _github().list_available_versions()

    def test_download_progress(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setattr(github_release, "fetch_json", FakeFetch([dict(r) for r in RELEASES]))
        monkeypatch.setattr(github_release, "stream_download", _fake_download())
        source = _github()
        version = source.list_available_versions()[1]
        seen: list[int] = []
        source.download_package(version, tmp_path / "a.zip", lambda p: seen.append(p.percentage))
        assert seen == [0, 50, 100]
        assert (tmp_path / "a.zip").read_bytes() == b"0123456789"

    def test_validate_missing_fields(self) -> None:
        source = GitHubReleaseSource(GitHubReleaseConfig(owner="o"), platform=Platform.LINUX)
        result = source.validate_config()
        assert not result.valid
        assert "repo" in result.error

    def test_validate_network_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(github_release, "fetch_json", FakeFetch(SourceError("timeout")))
        result = _github().validate_config()
        assert not result.valid
        assert "无法连接" in result.error


# =========================================================================
# HTTP 索引
# =========================================================================

INDEX_URL = "https://dl.example.com/releases/index.json"


def _index() -> dict[str, Any]:
    return {
        "versions": [
            {"version": "1.2.0", "assets": [{
                "name": "hagicode-1.2.0-linux-x64.zip",
                "path": "1.2.0/hagicode-1.2.0-linux-x64.zip",
                "size": 5, "lastModified": "2024-02-01T00:00:00Z",
            }]},
            {"version": "1.3.0-beta.1", "assets": [{
                "name": "hagicode-1.3.0-beta.1-linux-x64.zip",
                "path": "https://cdn.example.com/hagicode-1.3.0-beta.1-linux-x64.zip",
            }]},
            {"version": "1.2.0", "assets": [{"name": "hagicode-1.2.0-win-x64.zip", "path": "w.zip"}]},
        ],
        "channels": {"stable": {"latest": "1.2.0", "versions": ["1.2.0"]}},
    }


def _http(base_url: str | None = None) -> HttpIndexSource:
    return HttpIndexSource(
        HttpIndexConfig(index_url=INDEX_URL, base_url=base_url),
        platform=Platform.LINUX,
    )


class TestHttpIndex:
    def test_list_with_channels(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(http_index, "fetch_json", FakeFetch(_index()))
        versions = _http().list_available_versions()
        assert [v.id for v in versions] == ["hagicode-1.3.0-beta.1-linux", "hagicode-1.2.0-linux"]
        beta, stable = versions
        assert beta.channel == "beta"
        assert beta.download_url == "https://cdn.example.com/hagicode-1.3.0-beta.1-linux-x64.zip"
        assert stable.channel == "stable"
        assert stable.download_url == "https://dl.example.com/releases/1.2.0/hagicode-1.2.0-linux-x64.zip"
        assert stable.released_at == "2024-02-01T00:00:00Z"

    def test_base_url_overrides_index_dir(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(http_index, "fetch_json", FakeFetch(_index()))
        versions = _http(base_url="https://mirror.example.com/files").list_available_versions()
        assert versions[1].download_url == "https://mirror.example.com/files/1.2.0/hagicode-1.2.0-linux-x64.zip"

    def test_no_channels_defaults_to_beta(self, monkeypatch: pytest.MonkeyPatch) -> None:
        data = _index()
        del data["channels"]
        monkeypatch.setattr(http_index, "fetch_json", FakeFetch(data))
        assert {v.channel for v in _http().list_available_versions()} == {"beta"}

    def test_invalid_index(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(http_index, "fetch_json", FakeFetch({"items": []}))
        with pytest.raises(SourceError, match="versions"):
            _http().list_available_versions()

    def test_invalid_channel_structure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        data = _index()
        data["channels"] = {"stable": {"versions": ["1.2.0"]}}
        monkeypatch.setattr(http_index, "fetch_json", FakeFetch(data))
        with pytest.raises(SourceError, match="stable"):
            _http().list_available_versions()

    def test_index_not_found(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(http_index, "fetch_json", FakeFetch(SourceError("x", status=404)))
        with pytest.raises(SourceError, match="索引文件不存在"):
            _http().list_available_versions()

    def test_validate_rejects_file_scheme(self) -> None:
        source = HttpIndexSource(HttpIndexConfig(index_url="file:///etc/passwd"), platform=Platform.LINUX)
        result = source.validate_config()
        assert not result.valid
        assert "file" in result.error

    def test_validate_ok(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(http_index, "fetch_json", FakeFetch(_index()))
        assert _http().validate_config().valid

    def test_timeouts_follow_configuration(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fake = FakeFetch(_index())
        monkeypatch.setattr(http_index, "fetch_json", fake)
        source = HttpIndexSource(HttpIndexConfig(index_url=INDEX_URL), platform=Platform.LINUX, timeout=45)
        source.list_available_versions()
        HttpIndexSource.clear_cache()
        source.validate_config()
        assert [c["timeout"] for c in fake.calls] == [45, 10]

    def test_download(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setattr(http_index, "fetch_json", FakeFetch(_index()))
        monkeypatch.setattr(http_index, "stream_download", _fake_download(b"abcd"))
        source = _http()
        version = source.list_available_versions()[1]
        seen: list[int] = []
        source.download_package(version, tmp_path / "b.zip", lambda p: seen.append(p.percentage))
        assert seen[-1] == 100
        assert (tmp_path / "b.zip").read_bytes() == b"abcd"
