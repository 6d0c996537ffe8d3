import os
import stat
import struct
import zipfile

import pytest

import jar_inspector
from jar_inspector import STUB_CLASS_BYTES, STUB_CLASS_PATH, STUB_MAIN_CLASS, inspect, patch
from jar_manifest import parse_manifest
from mod_errors import (
    AlreadyPatchedError,
    InvalidArchiveError,
    NoPatchNeededError,
    NotFoundError,
    VerificationError,
)

CONTENT_MANIFEST = (
    "Manifest-Version: 1.0\r\n"
    "Implementation-Title: Fancy Blocks\r\n"
    "Implementation-Version: 1.2.0\r\n"
    "Implementation-Vendor: Block Co\r\n"
    "\r\n"
)
CONTENT_ENTRIES = {
    "assets/blocks/fancy.json": '{"id": "fancy"}',
    "assets/textures/fancy.png": b"\x89PNG fake",
}


def test_content_only_archive_needs_patch(tmp_path, make_jar):
    jar = make_jar(tmp_path / "fancy.jar", CONTENT_ENTRIES, CONTENT_MANIFEST)
    result = inspect(jar)
    assert result.needsPatch is True
    assert result.isPatched is False
    assert result.manifestInfo.hasManifest is True
    assert result.manifestInfo.name == "Fancy Blocks"
    assert result.manifestInfo.version == "1.2.0"
    assert result.manifestInfo.vendor == "Block Co"


def test_patch_injects_stub_and_keeps_content(tmp_path, make_jar):
    jar = make_jar(tmp_path / "fancy.jar", CONTENT_ENTRIES, CONTENT_MANIFEST)
    result = patch(jar)
    assert result.isPatched is True
    assert result.needsPatch is False
    assert inspect(jar).isPatched is True

    with zipfile.ZipFile(jar) as zf:
        names = zf.namelist()
        assert names[0] == "META-INF/MANIFEST.MF"
        assert zf.read(STUB_CLASS_PATH) == STUB_CLASS_BYTES
        assert zf.read("assets/blocks/fancy.json") == b'{"id": "fancy"}'
        assert zf.read("assets/textures/fancy.png") == b"\x89PNG fake"
        manifest = parse_manifest(zf.read("META-INF/MANIFEST.MF"))
    assert manifest.get("Main-Class") == STUB_MAIN_CLASS
    assert manifest.get("Implementation-Version") == "1.2.0"
    assert manifest.get("Manifest-Version") == "1.0"


def test_archive_without_manifest_gets_one(tmp_path, make_jar):
    jar = make_jar(tmp_path / "bare.jar", CONTENT_ENTRIES, manifest=None)
    before = inspect(jar)
    assert before.needsPatch is True
    assert before.manifestInfo.hasManifest is False

    patch(jar)
    with zipfile.ZipFile(jar) as zf:
        manifest = parse_manifest(zf.read("META-INF/MANIFEST.MF"))
    assert manifest.get("Manifest-Version") == "1.0"
    assert manifest.get("Main-Class") == STUB_MAIN_CLASS


def test_resolvable_main_class_is_left_alone(tmp_path, make_jar):
    jar = make_jar(
        tmp_path / "plugin.jar",
        {"com/example/Plugin.class": b"\xca\xfe\xba\xbe"},
        "Manifest-Version: 1.0\r\nMain-Class: com.example.Plugin\r\n\r\n",
    )
    result = inspect(jar)
    assert result.isPatched is False
    assert result.needsPatch is False
    assert result.manifestInfo.mainClass == "com.example.Plugin"
    with pytest.raises(NoPatchNeededError):
        patch(jar)


def test_unresolvable_main_class_needs_patch(tmp_path, make_jar):
    jar = make_jar(
        tmp_path / "broken.jar",
        CONTENT_ENTRIES,
        "Manifest-Version: 1.0\r\nMain-Class: com.example.Gone\r\n\r\n",
    )
    assert inspect(jar).needsPatch is True


def test_stub_main_class_without_stub_file_needs_repair(tmp_path, make_jar):
    jar = make_jar(
        tmp_path / "half.jar",
        CONTENT_ENTRIES,
        f"Manifest-Version: 1.0\r\nMain-Class: {STUB_MAIN_CLASS}\r\n\r\n",
    )
    result = inspect(jar)
    assert result.isPatched is False
    assert result.needsPatch is True
    assert patch(jar).isPatched is True


def test_patching_twice_is_rejected(tmp_path, make_jar):
    jar = make_jar(tmp_path / "fancy.jar", CONTENT_ENTRIES, CONTENT_MANIFEST)
    patch(jar)
    with pytest.raises(AlreadyPatchedError):
        patch(jar)


def test_missing_and_invalid_archives(tmp_path):
    with pytest.raises(NotFoundError):
        inspect(tmp_path / "nope.jar")
    with pytest.raises(NotFoundError):
        patch(tmp_path / "nope.jar")
    not_zip = tmp_path / "text.jar"
    not_zip.write_text("definitely not a zip")
    with pytest.raises(InvalidArchiveError):
        inspect(not_zip)


def test_failed_rewrite_leaves_original_untouched(tmp_path, make_jar, monkeypatch):
    jar = make_jar(tmp_path / "fancy.jar", CONTENT_ENTRIES, CONTENT_MANIFEST)
    original = jar.read_bytes()

    def broken_write(src, dest, manifest):
        dest.write(b"partial")
        raise OSError("disk full")

    monkeypatch.setattr(jar_inspector, "_write_patched", broken_write)
    with pytest.raises(OSError):
        patch(jar)
    assert jar.read_bytes() == original
    assert [p.name for p in tmp_path.iterdir()] == ["fancy.jar"]


def test_verification_failure_is_reported(tmp_path, make_jar, monkeypatch):
    jar = make_jar(tmp_path / "fancy.jar", CONTENT_ENTRIES, CONTENT_MANIFEST)

    def no_op_write(src, dest, manifest):
        dest.write(src.read_bytes())

    monkeypatch.setattr(jar_inspector, "_write_patched", no_op_write)
    with pytest.raises(VerificationError):
        patch(jar)


def test_stub_class_header():
    magic, minor, major = struct.unpack(">IHH", STUB_CLASS_BYTES[:8])
    assert magic == 0xCAFEBABE
    assert (major, minor) == (52, 0)
    pool_count = struct.unpack(">H", STUB_CLASS_BYTES[8:10])[0]
    assert pool_count == 8
    assert b"hyos/stub/ContentModStub" in STUB_CLASS_BYTES
    assert b"([Ljava/lang/String;)V" in STUB_CLASS_BYTES


def test_corrupt_manifest_is_an_invalid_archive(tmp_path, corrupt_jar):
    jar = corrupt_jar(tmp_path / "crc.jar")
    with pytest.raises(InvalidArchiveError):
        inspect(jar)
    with pytest.raises(InvalidArchiveError):
        patch(jar)


def test_corrupt_content_entry_aborts_patch(tmp_path):
    jar = tmp_path / "damaged.jar"
    with zipfile.ZipFile(jar, "w", zipfile.ZIP_STORED) as zf:
        zf.writestr("META-INF/MANIFEST.MF", CONTENT_MANIFEST)
        zf.writestr("assets/blocks/fancy.json", "block-payload")
    jar.write_bytes(jar.read_bytes().replace(b"block-payload", b"block-paylOad"))
    original = jar.read_bytes()

    assert inspect(jar).needsPatch is True
    with pytest.raises(InvalidArchiveError):
        patch(jar)
    assert jar.read_bytes() == original
    assert [p.name for p in tmp_path.iterdir()] == ["damaged.jar"]


def test_patch_keeps_file_mode(tmp_path, make_jar):
    jar = make_jar(tmp_path / "fancy.jar", CONTENT_ENTRIES, CONTENT_MANIFEST)
    os.chmod(jar, 0o644)
    patch(jar)
    assert stat.S_IMODE(jar.stat().st_mode) == 0o644
