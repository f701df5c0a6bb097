"""数据模型测试：状态派生、记录序列化、包源配置变体"""

from __future__ import annotations

import pytest

from hagidesk.core.models import (
    AvailableVersion,
    DependencyCheckResult,
    DownloadProgress,
    GitHubReleaseConfig,
    HttpIndexConfig,
    InstalledVersion,
    LocalFolderConfig,
    OperationResult,
    ReasonCode,
    VersionConstraint,
    VersionStatus,
    derive_status,
    source_config_from_dict,
)


def _dep(key: str, installed: bool = True, mismatch: bool = False) -> DependencyCheckResult:
    return DependencyCheckResult(key=key, name=key, type="npm", installed=installed, version_mismatch=mismatch)


class TestDeriveStatus:
    def test_ready_when_all_satisfied(self) -> None:
        assert derive_status([_dep("a"), _dep("b")]) == VersionStatus.READY

    def test_no_dependencies_is_ready(self) -> None:
        assert derive_status([]) == VersionStatus.READY

    def test_missing_or_mismatch_is_incomplete(self) -> None:
        assert derive_status([_dep("a"), _dep("b", installed=False)]) == VersionStatus.INCOMPLETE
        assert derive_status([_dep("a", mismatch=True)]) == VersionStatus.INCOMPLETE


class TestInstalledVersion:
    def test_record_excludes_derived_fields(self) -> None:
        v = InstalledVersion(
            id="hagicode-1.0.0-linux", version="1.0.0", platform="linux",
            artifact_filename="hagicode-1.0.0-linux.zip", install_path="/x",
            installed_at="2024-01-01T00:00:00+00:00",
            dependencies=[_dep("node", installed=False)], is_active=True,
        )
        record = v.to_record()
        assert "is_active" not in record
        assert "status" not in record
        restored = InstalledVersion.from_record(v.id, record)
        assert restored.status == VersionStatus.INCOMPLETE
        assert restored.is_active is False
        assert [d.key for d in restored.missing_dependencies] == ["node"]
        assert v.to_dict()["status"] == "incomplete"


class TestAvailableVersion:
    def test_matches_id_and_stem(self) -> None:
        v = AvailableVersion(
            id="hagicode-1.2.0-linux", version="1.2.0", platform="linux",
            artifact_filename="hagicode-1.2.0-linux-x64-nort.zip", source_path="/secret",
        )
        assert v.matches("hagicode-1.2.0-linux")
        assert v.matches("hagicode-1.2.0-linux-x64-nort")
        assert not v.matches("hagicode-1.2.0-osx")
        assert "source_path" not in v.to_dict()


class TestConstraintDescribe:
    def test_describe(self) -> None:
        assert VersionConstraint(exact="2.1.0").describe() == "exactly 2.1.0"
        assert VersionConstraint(min="18.0.0", max="22.0.0").describe() == "18.0.0+, <= 22.0.0"
        assert VersionConstraint().describe() == "any"


class TestProgress:
    def test_percentage(self) -> None:
        assert DownloadProgress.of(50, 200).percentage == 25
        assert DownloadProgress.of(10, 0).percentage == 100


class TestSourceConfigVariants:
    def test_local_folder(self) -> None:
        cfg = source_config_from_dict({"type": "local-folder", "path": "/opt/rel"})
        assert isinstance(cfg, LocalFolderConfig)
        assert cfg.missing_fields() == []
        assert cfg.to_dict()["type"] == "local-folder"

    def test_camel_case_aliases(self) -> None:
        cfg = source_config_from_dict({"type": "http-index", "indexUrl": "https://x/i.json", "authToken": "t"})
        assert isinstance(cfg, HttpIndexConfig)
        assert cfg.index_url == "https://x/i.json"
        assert cfg.auth_token == "t"

    def test_missing_required(self) -> None:
        cfg = source_config_from_dict({"type": "github-release", "owner": "o"})
        assert isinstance(cfg, GitHubReleaseConfig)
        assert cfg.missing_fields() == ["repo"]

    def test_class_level_keys_not_passed_to_constructor(self) -> None:
        data = {
            "type": "http-index", "id": "source-1", "index_url": "https://x/i.json",
            "required_fields": ["bogus"],
        }
        cfg = source_config_from_dict(data)
        assert isinstance(cfg, HttpIndexConfig)
        assert cfg.id == "source-1"
        assert HttpIndexConfig.required_fields == ("index_url",)

    def test_rebuild_from_to_dict(self) -> None:
        cfg = source_config_from_dict({"type": "github-release", "owner": "o", "repo": "r"})
        again = source_config_from_dict(cfg.to_dict())
        assert isinstance(again, GitHubReleaseConfig)
        assert (again.owner, again.repo) == ("o", "r")

    def test_unknown_type(self) -> None:
        with pytest.raises(ValueError, match="不支持的包源类型"):
            source_config_from_dict({"type": "ftp"})


class TestOperationResult:
    def test_failure_to_dict(self) -> None:
        r = OperationResult.failure(ReasonCode.VERSION_ACTIVE, "busy")
        assert r.to_dict()["code"] == "version-active"
        assert r.to_dict()["success"] is False
