import zipfile

import pytest

import config
import server_api


def _write_jar(path, entries=None, manifest=None):
    """Build a small archive; ``manifest`` is the raw MANIFEST.MF text or None for no manifest."""
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as zf:
        if manifest is not None:
            zf.writestr("META-INF/MANIFEST.MF", manifest)
        for name, data in (entries or {}).items():
            zf.writestr(name, data)
    return path


def _write_corrupt_jar(path):
    """Archive whose directory is intact but whose stored manifest fails its CRC check."""
    with zipfile.ZipFile(path, "w", zipfile.ZIP_STORED) as zf:
        zf.writestr("META-INF/MANIFEST.MF", "Manifest-Version: 1.0\r\nImplementation-Title: Fancy\r\n\r\n")
        zf.writestr("a.json", "{}")
    raw = path.read_bytes()
    assert raw.count(b"Title: Fancy") == 1
    path.write_bytes(raw.replace(b"Title: Fancy", b"Title: Fxncy"))
    return path


@pytest.fixture
def make_jar():
    return _write_jar


@pytest.fixture
def corrupt_jar():
    return _write_corrupt_jar


@pytest.fixture
def mods_dir(tmp_path, monkeypatch):
    d = tmp_path / "mods"
    d.mkdir()
    monkeypatch.setattr(config, "MODS_DIR", d)
    return d


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    d = tmp_path / "config"
    d.mkdir()
    monkeypatch.setattr(config, "CONFIG_DIR", d)
    return d


@pytest.fixture(autouse=True)
def _fresh_server_api_caches():
    server_api.reset_caches()
    yield
    server_api.reset_caches()
