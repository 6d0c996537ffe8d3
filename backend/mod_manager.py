from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple
import logging
import re

from pydantic import BaseModel

import config
import jar_inspector
from atomic_io import write_bytes_atomic
from jar_inspector import ManifestInfo
from mod_errors import (
    ConflictError,
    ModError,
    NotFoundError,
    ProviderNotConfiguredError,
    ValidationError,
)
from mod_providers import get_provider
from mod_providers.base import ModProvider, ModVersion
from mod_registry import ModRegistryEntry, load_registry, register_mod, unregister_mod, utc_now_iso
from provider_settings import load_provider_config

logger = logging.getLogger(__name__)

DISABLED_DIR = ".disabled"


class InstalledMod(BaseModel):
    id: str
    fileName: str
    size: int
    modified: str
    path: str
    enabled: bool
    isPatched: bool = False
    needsPatch: bool = False
    manifestInfo: Optional[ManifestInfo] = None
    registry: Optional[ModRegistryEntry] = None


class InstallModInfo(BaseModel):
    name: Optional[str] = None
    authors: List[str] = []
    summary: str = ""
    iconUrl: Optional[str] = None
    websiteUrl: str = ""
    providerModId: Optional[str] = None


class LinkModInfo(BaseModel):
    provider: ModProvider
    providerModId: str
    websiteUrl: str = ""
    iconUrl: Optional[str] = None
    authors: List[str] = []
    summary: str = ""


class ModUpdate(BaseModel):
    fileName: str
    currentVersion: str
    latestVersion: str
    latestFileId: str
    provider: str
    providerModId: str
    latestModVersion: ModVersion
    isCritical: bool


def mods_root(mods_dir=None) -> Path:
    return Path(mods_dir) if mods_dir is not None else Path(config.MODS_DIR)


def _jar_name(name: str) -> str:
    if name.lower().endswith(".jar"):
        return name[:-4] + ".jar"
    return f"{name}.jar"


def _safe_file_name(mod_id: str) -> str:
    # Strip any directory components to prevent traversal
    safe_id = Path(mod_id.replace("\\", "/")).name
    if safe_id in ("", ".", ".."):
        raise ValidationError("Invalid mod id")
    return _jar_name(safe_id)


def resolve_mod_file(mod_id: str, mods_dir=None) -> Path:
    """Path of an enabled mod archive; raises NotFoundError if it isn't there."""
    path = mods_root(mods_dir) / _safe_file_name(mod_id)
    if not path.exists():
        raise NotFoundError("Mod not found")
    if not path.is_file():
        raise ValidationError("Invalid mod path")
    return path


def _describe(path: Path, enabled: bool, registry) -> InstalledMod:
    stat = path.stat()
    mod = InstalledMod(
        id=path.stem,
        fileName=path.name,
        size=stat.st_size,
        modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
        path=str(path),
        enabled=enabled,
        registry=registry.get(path.name),
    )
    try:
        inspection = jar_inspector.inspect(path)
        mod.isPatched = inspection.isPatched
        mod.needsPatch = inspection.needsPatch
        mod.manifestInfo = inspection.manifestInfo
    except ModError as e:
        logger.error("Error inspecting %s: %s", path.name, e)
    return mod


def list_installed(mods_dir=None) -> List[InstalledMod]:
    root = mods_root(mods_dir)
    if not root.is_dir():
        return []
    registry = load_registry(root)
    mods: List[InstalledMod] = []
    for folder, enabled in ((root, True), (root / DISABLED_DIR, False)):
        if not folder.is_dir():
            continue
        for p in folder.iterdir():
            if p.is_file() and p.name.endswith(".jar"):
                mods.append(_describe(p, enabled, registry))
    mods.sort(key=lambda m: m.fileName.lower())
    return mods


def _unregister_best_effort(root: Path, file_name: str) -> None:
    try:
        unregister_mod(root, file_name)
    except Exception:
        logger.exception("Failed to update mod registry after removing %s", file_name)


def delete_mod(mod_id: str, mods_dir=None) -> str:
    root = mods_root(mods_dir)
    file_name = _safe_file_name(mod_id)
    candidates = [root / file_name, root / DISABLED_DIR / file_name]
    path = next((p for p in candidates if p.exists()), None)
    if path is None:
        raise NotFoundError("Mod not found")
    if not path.is_file():
        raise ValidationError("Invalid mod path")
    path.unlink()
    logger.info("Deleted mod %s", file_name)
    _unregister_best_effort(root, file_name)
    return file_name


def toggle_mod(mod_id: str, enabled: bool, mods_dir=None) -> str:
    """Move a mod between the mods folder and ``.disabled/``."""
    root = mods_root(mods_dir)
    disabled = root / DISABLED_DIR
    file_name = _safe_file_name(mod_id)
    if enabled:
        src, dest = disabled / file_name, root / file_name
        if not src.exists():
            raise NotFoundError("Disabled mod not found")
        if dest.exists():
            raise ConflictError(f"A mod named {file_name} already exists in mods/")
    else:
        src, dest = root / file_name, disabled / file_name
        if not src.exists():
            raise NotFoundError("Mod not found")
        disabled.mkdir(parents=True, exist_ok=True)
        if dest.exists():
            raise ConflictError(f"A mod named {file_name} already exists in {DISABLED_DIR}/")
    src.rename(dest)
    logger.info("%s mod %s", "Enabled" if enabled else "Disabled", file_name)
    return file_name


def save_upload(file_name: str, data: bytes, mods_dir=None) -> Tuple[InstalledMod, bool]:
    """Store an uploaded archive. Returns the mod and whether it replaced an existing file."""
    if not file_name or not file_name.lower().endswith(".jar"):
        raise ValidationError("Only JAR files are allowed")
    if len(data) > config.MAX_UPLOAD_BYTES:
        raise ValidationError(f"File too large. Maximum size is {config.MAX_UPLOAD_BYTES // (1024 * 1024)}MB")
    root = mods_root(mods_dir)
    safe_name = _safe_file_name(file_name)
    dest = root / safe_name
    replaced = dest.exists()
    write_bytes_atomic(dest, data)
    logger.info("%s mod %s (%d bytes)", "Updated" if replaced else "Uploaded", safe_name, len(data))
    return _describe(dest, True, load_registry(root)), replaced


def install_from_provider(
    provider: str,
    version: ModVersion,
    mod_info: Optional[InstallModInfo] = None,
    replace_file_name: Optional[str] = None,
    mods_dir=None,
) -> str:
    root = mods_root(mods_dir)
    settings = load_provider_config()
    entry = settings.get(provider)
    adapter = get_provider(provider, entry.apiKey if entry else None)
    if not adapter.is_configured():
        raise ProviderNotConfiguredError(f"{provider} API key not configured")

    downloaded_name, data = adapter.download_mod(version)
    base = Path(downloaded_name.replace("\\", "/")).name or version.fileName or f"{version.fileId}.jar"
    safe_name = _jar_name(base if base.lower().endswith(".jar") else Path(base).stem)
    write_bytes_atomic(root / safe_name, data)
    logger.info("Installed %s from %s (%d bytes)", safe_name, provider, len(data))

    if replace_file_name:
        old_name = _safe_file_name(replace_file_name)
        if old_name != safe_name:
            try:
                (root / old_name).unlink()
                logger.info("Removed replaced mod %s", old_name)
            except FileNotFoundError:
                pass
            except OSError:
                logger.exception("Failed to remove replaced mod %s", old_name)
            _unregister_best_effort(root, old_name)

    info = mod_info or InstallModInfo()
    provider_mod_id = info.providerModId or ""
    if not provider_mod_id and provider == "nexusmods":
        provider_mod_id = version.fileId.split("-")[0]
    try:
        register_mod(root, safe_name, ModRegistryEntry(
            provider=provider,
            providerModId=provider_mod_id,
            fileId=version.fileId,
            installedVersion=version.displayName,
            authors=info.authors,
            summary=info.summary,
            iconUrl=info.iconUrl,
            websiteUrl=info.websiteUrl,
            installedAt=utc_now_iso(),
        ))
    except Exception:
        logger.exception("Failed to record %s in mod registry", safe_name)
    return safe_name


def _match_file_id(versions: List[ModVersion], installed_version: str) -> str:
    if not installed_version:
        return ""
    match = next((v for v in versions if v.displayName == installed_version), None)
    if match is None:
        match = next(
            (v for v in versions if installed_version in v.displayName or installed_version in v.fileName),
            None,
        )
    return match.fileId if match else ""


def link_mod(mod_id: str, info: LinkModInfo, mods_dir=None) -> str:
    """Associate an archive that is already on disk with a provider's mod page."""
    root = mods_root(mods_dir)
    path = resolve_mod_file(mod_id, root)

    manifest_version = ""
    try:
        manifest_version = jar_inspector.inspect(path).manifestInfo.version or ""
    except ModError as e:
        logger.error("Error inspecting %s: %s", path.name, e)

    settings = load_provider_config()
    entry = settings.get(info.provider)
    adapter = get_provider(info.provider, entry.apiKey if entry else None)
    file_id = ""
    try:
        file_id = _match_file_id(adapter.get_mod_versions(info.providerModId), manifest_version)
    except ModError as e:
        logger.warning("Could not fetch %s versions for %s: %s", info.provider, info.providerModId, e)

    register_mod(root, path.name, ModRegistryEntry(
        provider=info.provider,
        providerModId=info.providerModId,
        fileId=file_id,
        installedVersion=manifest_version,
        authors=info.authors,
        summary=info.summary,
        iconUrl=info.iconUrl,
        websiteUrl=info.websiteUrl,
        installedAt=utc_now_iso(),
    ))
    logger.info("Linked %s to %s mod %s", path.name, info.provider, info.providerModId)
    return path.name


def _major(version: str) -> Optional[int]:
    m = re.match(r"\s*v?(\d+)", version or "")
    return int(m.group(1)) if m else None


def _check_entry(file_name: str, entry: ModRegistryEntry, adapter) -> Optional[ModUpdate]:
    versions = adapter.get_mod_versions(entry.providerModId)
    if not versions:
        return None
    # Versions are newest first; prefer the newest stable release
    latest = next((v for v in versions if v.releaseType == "release"), versions[0])

    if entry.fileId:
        if latest.fileId == entry.fileId:
            return None
        ids = [v.fileId for v in versions]
        if entry.fileId in ids and ids.index(entry.fileId) <= versions.index(latest):
            return None
    else:
        installed = entry.installedVersion.lower()
        latest_name = latest.displayName.lower()
        latest_file = re.sub(r"\.jar$", "", latest.fileName.lower())
        if installed and (installed in latest_name or installed in latest_file):
            return None

    current_major = _major(entry.installedVersion)
    latest_major = _major(latest.displayName)
    is_critical = (
        latest.releaseType == "release"
        and current_major is not None
        and latest_major is not None
        and latest_major > current_major
    )
    return ModUpdate(
        fileName=file_name,
        currentVersion=entry.installedVersion,
        latestVersion=latest.displayName,
        latestFileId=latest.fileId,
        provider=entry.provider,
        providerModId=entry.providerModId,
        latestModVersion=latest,
        isCritical=is_critical,
    )


def check_updates(mods_dir=None) -> List[ModUpdate]:
    root = mods_root(mods_dir)
    registry = load_registry(root)
    settings = load_provider_config()

    jobs = []
    for file_name, entry in registry.items():
        provider_entry = settings.get(entry.provider)
        if provider_entry is None or not provider_entry.enabled or not entry.providerModId:
            continue
        adapter = get_provider(entry.provider, provider_entry.apiKey)
        if not adapter.is_configured():
            continue
        jobs.append((file_name, entry, adapter))
    if not jobs:
        return []

    updates: List[ModUpdate] = []
    with ThreadPoolExecutor(max_workers=min(len(jobs), 8), thread_name_prefix="mod-updates") as pool:
        futures = [(file_name, pool.submit(_check_entry, file_name, entry, adapter)) for file_name, entry, adapter in jobs]
        for file_name, future in futures:
            try:
                update = future.result()
            except Exception as e:
                logger.warning("Update check failed for %s: %s", file_name, e)
                continue
            if update is not None:
                updates.append(update)
    return updates
