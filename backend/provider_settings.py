"""Per-provider settings (enabled flag and API key) kept in ``mod-providers.json``.

Keys are only handed to server-side code; the public view exposes whether a
key is set plus a masked hint.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional
import json
import logging

from pydantic import BaseModel, ValidationError as PydanticValidationError

import config
from atomic_io import write_json_atomic
from mod_errors import PersistenceError, UnknownProviderError
from mod_providers.base import PROVIDER_ORDER

logger = logging.getLogger(__name__)

MOD_PROVIDERS_FILE = "mod-providers.json"

_UNSET = object()


class ProviderEntry(BaseModel):
    enabled: bool = False
    apiKey: Optional[str] = None


class ProviderSetting(BaseModel):
    id: str
    enabled: bool
    hasApiKey: bool
    apiKeyHint: Optional[str] = None


def get_mod_providers_path() -> Path:
    return Path(config.CONFIG_DIR) / MOD_PROVIDERS_FILE


def _default_state() -> Dict[str, ProviderEntry]:
    return {name: ProviderEntry() for name in PROVIDER_ORDER}


def mask_key(key: Optional[str]) -> Optional[str]:
    if not key:
        return None
    if len(key) <= 4:
        return "*" * len(key)
    return "*" * 8 + key[-4:]


def load_provider_config() -> Dict[str, ProviderEntry]:
    """Settings including API keys. Server-side use only."""
    state = _default_state()
    path = get_mod_providers_path()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return state
    except (OSError, ValueError) as e:
        logger.error("Failed to read mod providers config %s: %s", path, e)
        return state
    if not isinstance(raw, dict):
        return state
    for name in PROVIDER_ORDER:
        if name not in raw:
            continue
        try:
            state[name] = ProviderEntry.model_validate(raw[name])
        except PydanticValidationError:
            logger.warning("Ignoring invalid settings for provider %s", name)
    return state


def load_provider_settings() -> List[ProviderSetting]:
    """Public view of the settings; never includes key values."""
    current = load_provider_config()
    return [
        ProviderSetting(
            id=name,
            enabled=current[name].enabled,
            hasApiKey=bool(current[name].apiKey),
            apiKeyHint=mask_key(current[name].apiKey),
        )
        for name in PROVIDER_ORDER
    ]


def save_provider_settings(provider: str, enabled: Optional[bool] = None, api_key=_UNSET) -> Dict[str, ProviderEntry]:
    """Merge an update for one provider over the stored settings and persist atomically."""
    if provider not in PROVIDER_ORDER:
        raise UnknownProviderError(f"Unknown provider: {provider}")
    current = load_provider_config()
    entry = current[provider].model_copy()
    if enabled is not None:
        entry.enabled = enabled
    if api_key is not _UNSET:
        entry.apiKey = api_key or None
    current[provider] = entry
    try:
        write_json_atomic(get_mod_providers_path(), {k: v.model_dump() for k, v in current.items()})
    except OSError as e:
        raise PersistenceError(f"Failed to save provider settings: {e}")
    logger.info(
        "Saved settings for provider %s (enabled=%s, key %s)",
        provider, entry.enabled, "set" if entry.apiKey else "not set",
    )
    return current


def reset_provider_key(provider: str) -> Dict[str, ProviderEntry]:
    """Forget the provider's key. Mods already installed from it are unaffected."""
    return save_provider_settings(provider, api_key=None)
