from __future__ import annotations
from fastapi import APIRouter, File, HTTPException, UploadFile
from pydantic import BaseModel
from typing import List, Optional

import logging
import jar_inspector
import mod_manager
import server_api
from mod_aggregator import AggregatedResults, run_search
from mod_errors import ModError, ProviderNotConfiguredError
from mod_manager import InstallModInfo, LinkModInfo
from mod_providers import PROVIDERS, get_provider
from mod_providers.base import BrowsedMod, ModProvider, ModVersion, SearchParams
from mod_registry import utc_now_iso
from provider_settings import (
    load_provider_config,
    load_provider_settings,
    reset_provider_key,
    save_provider_settings,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/mods", tags=["mods"])


def _http_error(e: ModError) -> HTTPException:
    return HTTPException(status_code=e.http_status, detail=e.message)


def _configured_provider(provider: str):
    settings = load_provider_config()
    entry = settings.get(provider)
    adapter = get_provider(provider, entry.apiKey if entry else None)
    if adapter.requires_key and not adapter.is_configured():
        raise ProviderNotConfiguredError(f"{adapter.name} API key not configured")
    return adapter


@router.get("")
def list_mods():
    mods = mod_manager.list_installed()
    return {"mods": mods, "count": len(mods)}


@router.post("/upload")
async def upload_mod(file: UploadFile = File(...)):
    data = await file.read()
    try:
        mod, replaced = mod_manager.save_upload(file.filename or "", data)
    except ModError as e:
        raise _http_error(e)
    verb = "Updated" if replaced else "Uploaded"
    return {"success": True, "message": f"{verb} {mod.fileName}", "mod": mod}


# Literal paths are registered before the "/{mod_id}" routes so they win the match

class BrowseRequest(BaseModel):
    params: SearchParams = SearchParams()


@router.post("/browse", response_model=AggregatedResults)
def browse_mods(payload: BrowseRequest):
    return run_search(payload.params, load_provider_config())


@router.get("/updates")
def mod_updates():
    updates = mod_manager.check_updates()
    return {"updates": updates, "checkedAt": utc_now_iso()}


@router.get("/loaded")
def loaded_plugins():
    """Plugins the running server has loaded. Empty when the server is down."""
    if not server_api.check_health():
        return {"count": 0, "plugins": []}
    try:
        return server_api.api_request("/server/plugins") or {"count": 0, "plugins": []}
    except ModError as e:
        log.warning("Could not fetch loaded plugins: %s", e)
        return {"count": 0, "plugins": []}


class InstallRequest(BaseModel):
    provider: ModProvider
    version: ModVersion
    modInfo: Optional[InstallModInfo] = None
    replaceFileName: Optional[str] = None


@router.post("/install")
def install_mod(payload: InstallRequest):
    try:
        file_name = mod_manager.install_from_provider(
            payload.provider,
            payload.version,
            payload.modInfo,
            payload.replaceFileName,
        )
    except ModError as e:
        raise _http_error(e)
    return {"success": True, "message": f"Installed {file_name}", "fileName": file_name}


@router.get("/providers")
async def list_providers():
    return {
        "providers": [
            {"id": cls.id, "name": cls.name, "authType": cls.auth_type, "requiresKey": cls.requires_key}
            for cls in PROVIDERS.values()
        ]
    }


@router.get("/providers/settings")
def get_provider_settings():
    return {"providers": load_provider_settings()}


class ProviderSettingsUpdate(BaseModel):
    provider: str
    enabled: bool
    apiKey: Optional[str] = None


@router.put("/providers/settings")
def update_provider_settings(payload: ProviderSettingsUpdate):
    kwargs = {"enabled": payload.enabled}
    # An omitted key leaves the stored one alone
    if "apiKey" in payload.model_fields_set:
        kwargs["api_key"] = payload.apiKey.strip() if payload.apiKey else None
    try:
        save_provider_settings(payload.provider, **kwargs)
    except ModError as e:
        raise _http_error(e)
    return {"success": True, "providers": load_provider_settings()}


@router.delete("/providers/settings/{provider}/key")
def delete_provider_key(provider: str):
    try:
        reset_provider_key(provider)
    except ModError as e:
        raise _http_error(e)
    return {"success": True, "providers": load_provider_settings()}


@router.get("/providers/{provider}/mods/{mod_id}", response_model=BrowsedMod)
def provider_mod_details(provider: str, mod_id: str):
    try:
        return _configured_provider(provider).get_mod_details(mod_id)
    except ModError as e:
        raise _http_error(e)


@router.get("/providers/{provider}/mods/{mod_id}/versions", response_model=List[ModVersion])
def provider_mod_versions(provider: str, mod_id: str):
    try:
        return _configured_provider(provider).get_mod_versions(mod_id)
    except ModError as e:
        raise _http_error(e)


@router.delete("/{mod_id}")
def delete_mod(mod_id: str):
    try:
        file_name = mod_manager.delete_mod(mod_id)
    except ModError as e:
        raise _http_error(e)
    return {"success": True, "message": f"Deleted {file_name}"}


class ToggleRequest(BaseModel):
    enabled: bool


@router.post("/{mod_id}/toggle")
def toggle_mod(mod_id: str, payload: ToggleRequest):
    try:
        file_name = mod_manager.toggle_mod(mod_id, payload.enabled)
    except ModError as e:
        raise _http_error(e)
    state = "enabled" if payload.enabled else "disabled"
    return {"success": True, "enabled": payload.enabled, "message": f"{file_name} {state}"}


@router.post("/{mod_id}/patch")
def patch_mod(mod_id: str):
    try:
        path = mod_manager.resolve_mod_file(mod_id)
        result = jar_inspector.patch(path)
    except ModError as e:
        raise _http_error(e)
    return {"success": True, "message": f"Patched {path.name} with stub Main class", "inspection": result}


@router.post("/{mod_id}/link")
def link_mod(mod_id: str, payload: LinkModInfo):
    try:
        file_name = mod_manager.link_mod(mod_id, payload)
    except ModError as e:
        raise _http_error(e)
    return {"success": True, "message": f"Linked {file_name} to {payload.provider}"}
