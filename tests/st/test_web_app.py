"""Web API 端点测试"""

from __future__ import annotations

import json
import time
from pathlib import Path

import pytest

from hagidesk.services.source.config_store import OVERRIDE_ENV
from hagidesk.services.source.filename import current_platform, make_version_id
from hagidesk.web.app import app

VERSION_ID = make_version_id("1.2.0", current_platform().value)


@pytest.fixture()
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, make_release):
    """创建 Flask 测试客户端，临时数据目录 + 本地目录包源"""
    import hagidesk.core.config as cfgmod
    from hagidesk.services.container import reset_container

    releases = tmp_path / "releases"
    for platform in ("linux", "windows", "osx"):
        make_release(releases, f"hagicode-1.2.0-{platform}.zip")
    monkeypatch.setenv(OVERRIDE_ENV, json.dumps({"type": "local-folder", "path": str(releases)}))
    monkeypatch.setattr(cfgmod, "_current", cfgmod.Config(data_root=str(tmp_path / "data")))
    reset_container()
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c
    reset_container()


def _install(client) -> dict:
    resp = client.post(f"/api/versions/{VERSION_ID}/install")
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()


class TestGlobalErrorHandlers:
    def test_404_returns_json(self, client) -> None:
        resp = client.get("/api/nonexistent")
        assert resp.status_code == 404
        assert "error" in resp.get_json()

    def test_405_returns_json(self, client) -> None:
        resp = client.delete("/api/health")
        assert resp.status_code == 405
        assert "error" in resp.get_json()

    def test_health(self, client) -> None:
        data = client.get("/api/health").get_json()
        assert data["status"] == "ok"


class TestApiVersions:
    def test_available(self, client) -> None:
        data = client.get("/api/versions/available").get_json()
        assert [v["id"] for v in data["versions"]] == [VERSION_ID]
        assert "source_path" not in data["versions"][0]

    def test_available_channel_filter(self, client) -> None:
        data = client.get("/api/versions/available?channel=beta").get_json()
        assert data["versions"] == []

    def test_install_and_query(self, client) -> None:
        data = _install(client)
        assert data["success"] is True
        assert data["version"]["is_active"] is True

        listed = client.get("/api/versions").get_json()["versions"]
        assert [v["id"] for v in listed] == [VERSION_ID]
        active = client.get("/api/versions/active").get_json()["version"]
        assert active["id"] == VERSION_ID
        assert client.get(f"/api/versions/{VERSION_ID}").status_code == 200

    def test_unknown_version(self, client) -> None:
        assert client.get("/api/versions/hagicode-0.0.1-linux").status_code == 404
        resp = client.post("/api/versions/hagicode-0.0.1-linux/install")
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "version-not-found"

    def test_uninstall_active_conflict(self, client) -> None:
        _install(client)
        resp = client.delete(f"/api/versions/{VERSION_ID}")
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "version-active"

    def test_switch(self, client) -> None:
        _install(client)
        resp = client.post(f"/api/versions/{VERSION_ID}/switch")
        assert resp.status_code == 200
        assert resp.get_json()["version"]["id"] == VERSION_ID

    def test_async_install_progress(self, client) -> None:
        resp = client.post(f"/api/versions/{VERSION_ID}/install", json={"async": True})
        assert resp.status_code == 202

        deadline = time.monotonic() + 30
        progress = None
        while time.monotonic() < deadline:
            progress = client.get(f"/api/versions/{VERSION_ID}/progress").get_json()["progress"]
            if progress and "result" in progress:
                break
            time.sleep(0.1)
        assert progress["result"]["success"] is True
        assert progress["percentage"] == 100

    def test_logs_path(self, client, tmp_path: Path) -> None:
        path = client.get(f"/api/versions/{VERSION_ID}/logs").get_json()["path"]
        assert Path(path) == tmp_path / "data" / "logs" / VERSION_ID


class TestApiSources:
    def test_list(self, client) -> None:
        data = client.get("/api/sources").get_json()
        assert len(data["sources"]) == 1
        assert data["active_source_id"] == data["sources"][0]["id"]

    def test_add_masks_token(self, client) -> None:
        resp = client.post("/api/sources", json={
            "type": "github-release", "owner": "hagicode", "repo": "desktop", "token": "ghp_secret",
        })
        assert resp.status_code == 201
        source = resp.get_json()["source"]
        assert source["token"] == "***"
        fetched = client.get(f"/api/sources/{source['id']}").get_json()["source"]
        assert fetched["token"] == "***"

    def test_add_missing_fields(self, client) -> None:
        resp = client.post("/api/sources", json={"type": "http-index"})
        assert resp.status_code == 400
        assert resp.get_json()["details"] == ["index_url"]

    def test_update_unknown(self, client) -> None:
        resp = client.patch("/api/sources/source-99", json={"name": "x"})
        assert resp.status_code == 404

    def test_activate_with_failed_validation(self, client, tmp_path: Path) -> None:
        created = client.post("/api/sources", json={
            "type": "local-folder", "path": str(tmp_path / "missing"),
        }).get_json()["source"]
        resp = client.post(f"/api/sources/{created['id']}/activate", json={"validate": True})
        assert resp.status_code == 400
        assert resp.get_json()["valid"] is False

    def test_delete(self, client) -> None:
        created = client.post("/api/sources", json={
            "type": "http-index", "index_url": "https://example.com/index.json",
        }).get_json()["source"]
        assert client.delete(f"/api/sources/{created['id']}").status_code == 200
        assert client.delete(f"/api/sources/{created['id']}").status_code == 404


class TestApiDeps:
    def test_manifest_list(self, client) -> None:
        _install(client)
        deps = client.get(f"/api/deps/{VERSION_ID}").get_json()["dependencies"]
        assert [d["key"] for d in deps] == ["dotnet", "claudeCode"]

    def test_not_installed(self, client) -> None:
        resp = client.get(f"/api/deps/{VERSION_ID}")
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "NOT_FOUND"

    def test_check(self, client) -> None:
        _install(client)
        resp = client.post(f"/api/deps/{VERSION_ID}/check")
        assert resp.status_code == 200
        assert len(resp.get_json()["version"]["dependencies"]) == 2


class TestApiService:
    def test_status_stopped(self, client) -> None:
        data = client.get("/api/service/status").get_json()
        assert data["status"] == "stopped"
        assert data["phase"] == "idle"

    def test_start_without_active_version(self, client) -> None:
        resp = client.post("/api/service/start")
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "no-active-version"

    def test_stop_when_not_running(self, client) -> None:
        resp = client.post("/api/service/stop")
        assert resp.status_code == 200
        assert resp.get_json()["code"] == "not-running"

    def test_config_roundtrip(self, client) -> None:
        resp = client.patch("/api/service/config", json={"port": 40555})
        assert resp.status_code == 200
        assert client.get("/api/service/config").get_json()["port"] == 40555

    def test_config_unknown_key(self, client) -> None:
        resp = client.patch("/api/service/config", json={"bogus": 1})
        assert resp.status_code == 400
        assert resp.get_json()["details"] == ["bogus"]

    def test_config_requires_object(self, client) -> None:
        assert client.patch("/api/service/config", json={}).status_code == 400

    def test_port_check(self, client) -> None:
        data = client.get("/api/service/port").get_json()
        assert isinstance(data["available"], bool)
