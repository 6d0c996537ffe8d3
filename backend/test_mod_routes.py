import pytest
from fastapi.testclient import TestClient

import mod_manager
import server_api
from app import app
from mod_errors import UpstreamError

CONTENT_MANIFEST = "Manifest-Version: 1.0\r\nImplementation-Title: Fancy\r\n\r\n"
PLUGIN_MANIFEST = "Manifest-Version: 1.0\r\nMain-Class: com.example.Plugin\r\n\r\n"


@pytest.fixture
def client(mods_dir, config_dir):
    return TestClient(app)


def test_list_empty_and_api_alias(client):
    assert client.get("/mods").json() == {"mods": [], "count": 0}
    assert client.get("/api/mods").json() == {"mods": [], "count": 0}


def test_upload_then_list(client, tmp_path, make_jar):
    data = make_jar(tmp_path / "fancy.jar", {"a.json": "{}"}, CONTENT_MANIFEST).read_bytes()

    r = client.post("/mods/upload", files={"file": ("fancy.jar", data, "application/java-archive")})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["mod"]["fileName"] == "fancy.jar"
    assert body["mod"]["needsPatch"] is True

    listing = client.get("/mods").json()
    assert listing["count"] == 1
    assert listing["mods"][0]["id"] == "fancy"


def test_upload_rejects_non_jar(client):
    r = client.post("/mods/upload", files={"file": ("notes.txt", b"hello", "text/plain")})
    assert r.status_code == 400
    assert r.json() == {"detail": "Only JAR files are allowed"}


def test_patch_status_mapping(client, mods_dir, make_jar):
    make_jar(mods_dir / "fancy.jar", {"a.json": "{}"}, CONTENT_MANIFEST)
    make_jar(mods_dir / "plugin.jar", {"com/example/Plugin.class": b"\xca\xfe"}, PLUGIN_MANIFEST)

    r = client.post("/mods/fancy/patch")
    assert r.status_code == 200
    assert r.json()["inspection"]["isPatched"] is True

    assert client.post("/mods/fancy/patch").status_code == 409
    assert client.post("/mods/plugin/patch").status_code == 400
    r = client.post("/mods/missing/patch")
    assert r.status_code == 404
    assert r.json() == {"detail": "Mod not found"}


def test_corrupt_archive_is_a_structured_error(client, mods_dir, corrupt_jar):
    corrupt_jar(mods_dir / "crc.jar")

    r = client.get("/mods")
    assert r.status_code == 200
    assert r.json()["mods"][0]["fileName"] == "crc.jar"
    assert r.json()["mods"][0]["needsPatch"] is False

    r = client.post("/mods/crc/patch")
    assert r.status_code == 400
    assert "corrupt" in r.json()["detail"]


def test_toggle_and_delete(client, mods_dir, make_jar):
    make_jar(mods_dir / "fancy.jar", {}, CONTENT_MANIFEST)

    r = client.post("/mods/fancy/toggle", json={"enabled": False})
    assert r.status_code == 200
    assert r.json()["enabled"] is False
    assert client.get("/mods").json()["mods"][0]["enabled"] is False

    assert client.post("/mods/fancy/toggle", json={"enabled": False}).status_code == 404
    assert client.post("/mods/fancy/toggle", json={}).status_code == 400

    assert client.delete("/mods/fancy").status_code == 200
    assert client.delete("/mods/fancy").status_code == 404


def test_browse_validates_params(client):
    r = client.post("/mods/browse", json={"params": {"pageSize": 0}})
    assert r.status_code == 400
    assert isinstance(r.json()["detail"], list)


def test_browse_with_nothing_enabled(client):
    r = client.post("/mods/browse", json={"params": {"query": "trees"}})
    assert r.status_code == 200
    assert r.json() == {"results": [], "pagination": [], "errors": [], "totalCount": 0}


def test_provider_list(client):
    providers = client.get("/mods/providers").json()["providers"]
    assert [p["id"] for p in providers] == ["curseforge", "modtale", "nexusmods"]
    assert [p["requiresKey"] for p in providers] == [True, False, True]


def test_provider_settings_never_echo_keys(client):
    r = client.put("/mods/providers/settings", json={"provider": "curseforge", "enabled": True, "apiKey": "cf-secret-4321"})
    assert r.status_code == 200
    assert "cf-secret-4321" not in r.text

    settings = {s["id"]: s for s in client.get("/mods/providers/settings").json()["providers"]}
    assert settings["curseforge"] == {"id": "curseforge", "enabled": True, "hasApiKey": True, "apiKeyHint": "********4321"}

    # Omitting apiKey keeps the stored key
    client.put("/mods/providers/settings", json={"provider": "curseforge", "enabled": False})
    settings = {s["id"]: s for s in client.get("/mods/providers/settings").json()["providers"]}
    assert settings["curseforge"]["hasApiKey"] is True

    assert client.delete("/mods/providers/settings/curseforge/key").status_code == 200
    settings = {s["id"]: s for s in client.get("/mods/providers/settings").json()["providers"]}
    assert settings["curseforge"]["hasApiKey"] is False


def test_provider_settings_unknown_provider(client):
    r = client.put("/mods/providers/settings", json={"provider": "thunderstore", "enabled": True})
    assert r.status_code == 400
    assert client.delete("/mods/providers/settings/thunderstore/key").status_code == 400


def test_provider_details_need_key(client):
    r = client.get("/mods/providers/curseforge/mods/123")
    assert r.status_code == 400
    assert "not configured" in r.json()["detail"]
    assert client.get("/mods/providers/nope/mods/1/versions").status_code == 400


def test_install_route(client, mods_dir, monkeypatch):
    class Adapter:
        name = "Modtale"
        requires_key = False

        def is_configured(self):
            return True

        def download_mod(self, version):
            return "trees.jar", b"jar bytes"

    monkeypatch.setattr(mod_manager, "get_provider", lambda name, api_key=None: Adapter())
    r = client.post("/mods/install", json={
        "provider": "modtale",
        "version": {"fileId": "v1", "fileName": "trees.jar", "displayName": "1.0.0"},
        "modInfo": {"providerModId": "abc"},
    })
    assert r.status_code == 200
    assert r.json()["fileName"] == "trees.jar"
    assert (mods_dir / "trees.jar").read_bytes() == b"jar bytes"


def test_install_upstream_failure(client, monkeypatch):
    class Adapter:
        name = "Modtale"
        requires_key = False

        def is_configured(self):
            return True

        def download_mod(self, version):
            raise UpstreamError("Download failed: 503")

    monkeypatch.setattr(mod_manager, "get_provider", lambda name, api_key=None: Adapter())
    r = client.post("/mods/install", json={
        "provider": "modtale",
        "version": {"fileId": "v1", "fileName": "trees.jar", "displayName": "1.0.0"},
    })
    assert r.status_code == 502
    assert r.json() == {"detail": "Download failed: 503"}


def test_updates_with_empty_registry(client):
    body = client.get("/mods/updates").json()
    assert body["updates"] == []
    assert body["checkedAt"].endswith("Z")


def test_loaded_plugins_when_server_down(client, monkeypatch):
    monkeypatch.setattr(server_api, "check_health", lambda: False)
    assert client.get("/mods/loaded").json() == {"count": 0, "plugins": []}


def test_loaded_plugins_with_non_json_reply(client, monkeypatch):
    class HtmlResponse:
        status_code = 200
        ok = True
        content = b"<html>maintenance</html>"
        text = "<html>maintenance</html>"

        def json(self):
            raise ValueError("Expecting value")

    monkeypatch.setattr(server_api, "check_health", lambda: True)
    monkeypatch.setattr(server_api, "_get_token", lambda: "tok")
    monkeypatch.setattr(server_api.requests, "request", lambda *a, **kw: HtmlResponse())
    r = client.get("/mods/loaded")
    assert r.status_code == 200
    assert r.json() == {"count": 0, "plugins": []}


def test_loaded_plugins_proxy(client, monkeypatch):
    monkeypatch.setattr(server_api, "check_health", lambda: True)
    monkeypatch.setattr(server_api, "api_request", lambda path: {"count": 1, "plugins": [{"name": "Fancy"}]})
    assert client.get("/api/mods/loaded").json()["count"] == 1


def test_health(client, monkeypatch):
    monkeypatch.setattr(server_api, "check_health", lambda: False)
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["mods_dir"]["exists"] is True
    assert body["server_api"]["reachable"] is False
