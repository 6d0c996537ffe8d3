"""Inspect and patch content-only mod archives.

The server's loader refuses archives without an executable entry point. A
content-only mod (assets, data files) is made loadable by injecting a tiny
stub class and pointing the manifest's ``Main-Class`` at it.
"""
from __future__ import annotations

import logging
import struct
import zipfile
import zlib
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from atomic_io import atomic_writer
from jar_manifest import MANIFEST_PATH, Manifest, parse_manifest
from mod_errors import (
    AlreadyPatchedError,
    InvalidArchiveError,
    NoPatchNeededError,
    NotFoundError,
    VerificationError,
)

logger = logging.getLogger(__name__)

STUB_MAIN_CLASS = "hyos.stub.ContentModStub"
STUB_CLASS_PATH = STUB_MAIN_CLASS.replace(".", "/") + ".class"


def _utf8_constant(value: str) -> bytes:
    raw = value.encode("utf-8")
    return struct.pack(">BH", 1, len(raw)) + raw


def build_stub_class(internal_name: str) -> bytes:
    """Bytecode for ``public class <name> { public static void main(String[]) {} }``.

    Java 8 class file; the single method is a bare ``return`` so no stack map
    frames are required.
    """
    pool = [
        _utf8_constant(internal_name),          # 1
        struct.pack(">BH", 7, 1),               # 2 Class -> #1
        _utf8_constant("java/lang/Object"),     # 3
        struct.pack(">BH", 7, 3),               # 4 Class -> #3
        _utf8_constant("main"),                 # 5
        _utf8_constant("([Ljava/lang/String;)V"),  # 6
        _utf8_constant("Code"),                 # 7
    ]
    code = bytes([0xB1])  # return
    code_attr = struct.pack(">HHI", 0, 1, len(code)) + code + struct.pack(">HH", 0, 0)
    method = (
        struct.pack(">HHHH", 0x0009, 5, 6, 1)   # public static, name, descriptor, 1 attribute
        + struct.pack(">HI", 7, len(code_attr))
        + code_attr
    )
    return b"".join([
        struct.pack(">IHH", 0xCAFEBABE, 0, 52),
        struct.pack(">H", len(pool) + 1),
        *pool,
        struct.pack(">HHH", 0x0021, 2, 4),      # public super, this, super
        struct.pack(">HHH", 0, 0, 1),           # interfaces, fields, methods
        method,
        struct.pack(">H", 0),                   # class attributes
    ])


STUB_CLASS_BYTES = build_stub_class(STUB_MAIN_CLASS.replace(".", "/"))


class ManifestInfo(BaseModel):
    hasManifest: bool
    mainClass: Optional[str] = None
    name: Optional[str] = None
    version: Optional[str] = None
    vendor: Optional[str] = None


class JarInspectionResult(BaseModel):
    isPatched: bool
    needsPatch: bool
    manifestInfo: ManifestInfo


def _class_entry(main_class: str) -> str:
    return main_class.replace(".", "/") + ".class"


# Raised by zipfile while decompressing a damaged member
_MEMBER_READ_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError, RuntimeError, NotImplementedError)


def _read_member(zf: zipfile.ZipFile, name: str) -> bytes:
    try:
        return zf.read(name)
    except _MEMBER_READ_ERRORS as e:
        label = Path(zf.filename).name if zf.filename else "archive"
        raise InvalidArchiveError(f"{label} has a corrupt entry {name}: {e}")


def _read_manifest(zf: zipfile.ZipFile) -> Optional[Manifest]:
    if MANIFEST_PATH not in zf.namelist():
        return None
    return parse_manifest(_read_member(zf, MANIFEST_PATH))


def _open_archive(path: Path) -> zipfile.ZipFile:
    if not path.is_file():
        raise NotFoundError(f"Archive not found: {path.name}")
    try:
        return zipfile.ZipFile(path, "r")
    except zipfile.BadZipFile:
        raise InvalidArchiveError(f"{path.name} is not a valid JAR archive")


def inspect(path) -> JarInspectionResult:
    path = Path(path)
    with _open_archive(path) as zf:
        names = set(zf.namelist())
        manifest = _read_manifest(zf)

    if manifest is None:
        return JarInspectionResult(
            isPatched=False,
            needsPatch=True,
            manifestInfo=ManifestInfo(hasManifest=False),
        )

    main_class = (manifest.get("Main-Class") or "").strip() or None
    info = ManifestInfo(
        hasManifest=True,
        mainClass=main_class,
        name=manifest.get("Implementation-Title") or manifest.get("Bundle-Name"),
        version=manifest.get("Implementation-Version") or manifest.get("Bundle-Version"),
        vendor=manifest.get("Implementation-Vendor") or manifest.get("Created-By"),
    )

    if main_class == STUB_MAIN_CLASS and STUB_CLASS_PATH in names:
        return JarInspectionResult(isPatched=True, needsPatch=False, manifestInfo=info)
    if main_class and _class_entry(main_class) in names:
        # Third-party entry point that resolves; leave it alone
        return JarInspectionResult(isPatched=False, needsPatch=False, manifestInfo=info)
    return JarInspectionResult(isPatched=False, needsPatch=True, manifestInfo=info)


def _write_patched(src: Path, dest, manifest: Manifest) -> None:
    with zipfile.ZipFile(src, "r") as zin, zipfile.ZipFile(dest, "w", zipfile.ZIP_DEFLATED) as zout:
        # Manifest goes first so stream readers (JarInputStream) find it
        zout.writestr(MANIFEST_PATH, manifest.dump())
        for item in zin.infolist():
            if item.filename in (MANIFEST_PATH, STUB_CLASS_PATH):
                continue
            zout.writestr(item, _read_member(zin, item.filename))
        zout.writestr(STUB_CLASS_PATH, STUB_CLASS_BYTES)


def patch(path) -> JarInspectionResult:
    path = Path(path)
    current = inspect(path)
    if current.isPatched:
        raise AlreadyPatchedError(f"{path.name} is already patched")
    if not current.needsPatch:
        raise NoPatchNeededError(f"{path.name} does not need patching")

    with zipfile.ZipFile(path, "r") as zf:
        manifest = _read_manifest(zf) or Manifest({"Manifest-Version": "1.0"})
    manifest.set("Main-Class", STUB_MAIN_CLASS)

    with atomic_writer(path) as fh:
        _write_patched(path, fh, manifest)

    verify = inspect(path)
    if not verify.isPatched:
        raise VerificationError(f"Patch verification failed for {path.name}")
    logger.info("Patched %s with stub Main-Class %s", path.name, STUB_MAIN_CLASS)
    return verify
