"""Provider metadata for installed archives, kept in ``.mod-registry.json``.

Every operation is a full read-modify-write of the file with no locking;
concurrent writers race and the last one wins. A single admin is assumed.
"""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional
import json
import logging

from pydantic import BaseModel, ValidationError as PydanticValidationError

from atomic_io import write_json_atomic
from mod_errors import PersistenceError
from mod_providers.base import ModProvider

logger = logging.getLogger(__name__)

REGISTRY_FILE = ".mod-registry.json"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ModRegistryEntry(BaseModel):
    provider: ModProvider
    providerModId: str
    fileId: str = ""
    installedVersion: str = ""
    authors: List[str] = []
    summary: str = ""
    iconUrl: Optional[str] = None
    websiteUrl: str = ""
    installedAt: str


Registry = Dict[str, ModRegistryEntry]


def registry_path(mods_dir) -> Path:
    return Path(mods_dir) / REGISTRY_FILE


def load_registry(mods_dir) -> Registry:
    """Never fails: a missing or unreadable file is an empty registry."""
    path = registry_path(mods_dir)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        logger.warning("Unreadable mod registry %s: %s", path, e)
        return {}
    if not isinstance(raw, dict):
        return {}
    registry: Registry = {}
    for file_name, entry in raw.items():
        try:
            registry[file_name] = ModRegistryEntry.model_validate(entry)
        except PydanticValidationError:
            logger.warning("Dropping malformed registry entry for %s", file_name)
    return registry


def save_registry(mods_dir, registry: Registry) -> None:
    data = {name: entry.model_dump() for name, entry in registry.items()}
    try:
        write_json_atomic(registry_path(mods_dir), data)
    except OSError as e:
        raise PersistenceError(f"Failed to write mod registry: {e}")


def register_mod(mods_dir, file_name: str, entry: ModRegistryEntry) -> None:
    registry = load_registry(mods_dir)
    registry[file_name] = entry
    save_registry(mods_dir, registry)


def unregister_mod(mods_dir, file_name: str) -> None:
    registry = load_registry(mods_dir)
    if file_name not in registry:
        return
    del registry[file_name]
    save_registry(mods_dir, registry)
