"""YamlRegistry 基类单元测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from hagidesk.core.registry import YamlRegistry


class ConcreteRegistry(YamlRegistry):
    section_key = "items"


@pytest.fixture()
def registry(tmp_path: Path) -> ConcreteRegistry:
    return ConcreteRegistry(tmp_path / "state" / "reg.yml")


class TestYamlRegistryCRUD:
    def test_missing_file_is_empty(self, registry: ConcreteRegistry) -> None:
        assert registry._list_raw() == []
        assert not registry.registry_file.exists()

    def test_put_creates_file(self, registry: ConcreteRegistry) -> None:
        registry._put("foo", {"x": 1})
        assert registry.registry_file.exists()
        assert registry._get_raw("foo") == {"x": 1}

    def test_list_raw_adds_key_field(self, registry: ConcreteRegistry) -> None:
        registry._put("a", {"v": 1})
        registry._put("b", {"v": 2})
        assert {i["id"] for i in registry._list_raw()} == {"a", "b"}

    def test_put_overwrites_same_key(self, registry: ConcreteRegistry) -> None:
        registry._put("k", {"old": True})
        registry._put("k", {"new": True})
        assert registry._get_raw("k") == {"new": True}
        assert len(registry._list_raw()) == 1

    def test_remove(self, registry: ConcreteRegistry) -> None:
        registry._put("x", {"val": 42})
        assert registry._remove("x") is True
        assert registry._remove("x") is False
        assert registry._get_raw("x") is None

    def test_persistence_and_reload(self, tmp_path: Path) -> None:
        path = tmp_path / "persist.yml"
        r1 = ConcreteRegistry(path)
        r1._put("persisted", {"a": 1})
        r2 = ConcreteRegistry(path)
        assert r2._get_raw("persisted") == {"a": 1}
        r1._put("later", {"b": 2})
        assert r2._get_raw("later") is None
        r2.reload()
        assert r2._get_raw("later") == {"b": 2}
