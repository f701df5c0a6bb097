"""版本比较与约束检查测试"""

from __future__ import annotations

from types import SimpleNamespace

from hagidesk.core.models import VersionConstraint
from hagidesk.core.versioning import (
    check_constraint,
    compare_versions,
    extract_version,
    prerelease_label,
    sort_newest_first,
)


class TestCompareVersions:
    def test_numeric_segments(self) -> None:
        assert compare_versions("1.10.0", "1.9.0") == 1
        assert compare_versions("1.2.0", "1.2.0") == 0
        assert compare_versions("0.9", "0.9.0") == 0

    def test_release_beats_prerelease(self) -> None:
        assert compare_versions("1.2.0", "1.2.0-beta.1") == 1
        assert compare_versions("1.2.0-rc.1", "1.2.0") == -1

    def test_prerelease_numeric_parts(self) -> None:
        assert compare_versions("1.2.0-beta.10", "1.2.0-beta.2") == 1
        assert compare_versions("1.2.0-alpha", "1.2.0-beta") == -1

    def test_leading_v(self) -> None:
        assert compare_versions("v2.0.0", "2.0.0") == 0


class TestSortAndLabels:
    def test_sort_newest_first(self) -> None:
        items = [SimpleNamespace(version=v) for v in ("1.0.0", "1.2.0-beta.1", "1.2.0", "0.9.9")]
        assert [i.version for i in sort_newest_first(items)] == ["1.2.0", "1.2.0-beta.1", "1.0.0", "0.9.9"]

    def test_prerelease_label(self) -> None:
        assert prerelease_label("1.2.0-Beta.3") == "beta"
        assert prerelease_label("1.2.0") == ""


class TestExtractVersion:
    def test_node_style(self) -> None:
        assert extract_version("v18.17.0\n") == "18.17.0"

    def test_embedded(self) -> None:
        assert extract_version("2.1.0 (Claude Code)") == "2.1.0"
        assert extract_version("dotnet 8.0.100-preview.1 sdk") == "8.0.100-preview.1"

    def test_none(self) -> None:
        assert extract_version("command not found") is None
        assert extract_version("") is None


class TestCheckConstraint:
    def test_exact(self) -> None:
        c = VersionConstraint(exact="2.1.0")
        assert check_constraint("2.1.0", c)
        assert not check_constraint("2.0.0", c)

    def test_min_max(self) -> None:
        c = VersionConstraint(min="18.0.0", max="22.0.0")
        assert check_constraint("20.1.0", c)
        assert not check_constraint("16.0.0", c)
        assert not check_constraint("22.1.0", c)

    def test_unknown_version_not_mismatch(self) -> None:
        assert check_constraint(None, VersionConstraint(exact="1.0.0"))

    def test_empty_constraint(self) -> None:
        assert check_constraint("0.0.1", VersionConstraint())
