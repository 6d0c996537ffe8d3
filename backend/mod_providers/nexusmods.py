from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import logging

from config import USER_AGENT
from mod_errors import ProviderNotConfiguredError, UpstreamError, ValidationError
from .base import (
    BrowsedMod,
    ModVersion,
    ProviderSearchResult,
    SearchParams,
    fetch_bytes,
    fetch_json,
    matches_categories,
)

log = logging.getLogger(__name__)

API_BASE = "https://api.nexusmods.com/v1"
GAME_DOMAIN = "hytale"
MAX_MODS_TO_FETCH = 50
DETAILS_BATCH_SIZE = 5
PLACEHOLDER_NAME = "Unknown Mod"


def _split_file_id(file_id: str) -> Tuple[int, int]:
    """NexusMods file ids are stored as ``<modId>-<fileId>``."""
    mod_part, _, file_part = file_id.partition("-")
    try:
        return int(mod_part), int(file_part or 0)
    except ValueError:
        raise ValidationError(f"Invalid NexusMods file id: {file_id!r}")


def _updated_mod_ids(payload: Any) -> List[int]:
    items = payload.get("updates", []) if isinstance(payload, dict) else (payload or [])
    ids: List[int] = []
    for item in items:
        mod_id = item.get("mod_id") if isinstance(item, dict) else item
        if isinstance(mod_id, int) and mod_id not in ids:
            ids.append(mod_id)
    return ids


class NexusModsProvider:
    id = "nexusmods"
    name = "NexusMods"
    auth_type = "api_key"
    requires_key = True

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or None

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise ProviderNotConfiguredError("NexusMods API key not configured")
        return {
            "Accept": "application/json",
            "apikey": self.api_key,
            "User-Agent": USER_AGENT,
        }

    def _fetch_mod(self, mod_id: int, timeout: Optional[float] = None) -> Dict[str, Any]:
        return fetch_json(
            "NexusMods",
            f"{API_BASE}/games/{GAME_DOMAIN}/mods/{mod_id}.json",
            headers=self._headers(),
            timeout=timeout,
        )

    def _recent_mods(self, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        # There is no search endpoint; recently updated mods are the browsable set
        updated = fetch_json(
            "NexusMods",
            f"{API_BASE}/games/{GAME_DOMAIN}/mods/updated.json",
            headers=self._headers(),
            params={"period": "1m"},
            timeout=timeout,
        )
        mod_ids = _updated_mod_ids(updated)[:MAX_MODS_TO_FETCH]

        mods: List[Dict[str, Any]] = []
        with ThreadPoolExecutor(max_workers=DETAILS_BATCH_SIZE) as pool:
            for start in range(0, len(mod_ids), DETAILS_BATCH_SIZE):
                batch = mod_ids[start:start + DETAILS_BATCH_SIZE]
                futures = [pool.submit(self._fetch_mod, mod_id, timeout) for mod_id in batch]
                for mod_id, future in zip(batch, futures):
                    try:
                        mods.append(future.result())
                    except UpstreamError as e:
                        # Deleted or hidden mods fail individually
                        log.debug("Skipping NexusMods mod %s: %s", mod_id, e)
        return [m for m in mods if (m.get("name") or PLACEHOLDER_NAME) != PLACEHOLDER_NAME]

    def search(self, params: SearchParams, *, timeout: Optional[float] = None) -> ProviderSearchResult:
        mods = self._recent_mods(timeout)
        if params.query:
            needle = params.query.lower()
            mods = [
                m for m in mods
                if needle in (m.get("name") or "").lower() or needle in (m.get("summary") or "").lower()
            ]
        mapped = [m for m in (self._map_mod(raw) for raw in mods) if matches_categories(m, params.categories)]
        start = params.page * params.pageSize
        return ProviderSearchResult(
            provider=self.id,
            results=mapped[start:start + params.pageSize],
            totalCount=len(mapped),
            hasMore=start + params.pageSize < len(mapped),
        )

    def get_mod_details(self, mod_id: str) -> BrowsedMod:
        return self._map_mod(self._fetch_mod(_split_file_id(mod_id)[0]))

    def get_mod_versions(self, mod_id: str) -> List[ModVersion]:
        numeric_id = _split_file_id(mod_id)[0]
        data = fetch_json(
            "NexusMods",
            f"{API_BASE}/games/{GAME_DOMAIN}/mods/{numeric_id}/files.json",
            headers=self._headers(),
        )
        # files.json lists oldest first; callers expect newest first
        files = sorted(data.get("files", []), key=lambda f: f.get("uploaded_timestamp") or 0, reverse=True)
        return [self._map_file(f, numeric_id) for f in files]

    def download_mod(self, version: ModVersion) -> Tuple[str, bytes]:
        headers = self._headers()
        mod_id, file_id = _split_file_id(version.fileId)
        links = fetch_json(
            "NexusMods",
            f"{API_BASE}/games/{GAME_DOMAIN}/mods/{mod_id}/files/{file_id}/download_link.json",
            headers=headers,
        )
        uri = links[0].get("URI") if isinstance(links, list) and links else None
        if not uri:
            raise UpstreamError("No download link available")
        return version.fileName, fetch_bytes("NexusMods", uri, headers=headers)

    def _map_mod(self, m: Dict[str, Any]) -> BrowsedMod:
        mod_id = int(m.get("mod_id") or 0)
        updated = int(m.get("updated_timestamp") or 0)
        return BrowsedMod(
            id=str(mod_id),
            provider=self.id,
            name=m.get("name") or PLACEHOLDER_NAME,
            summary=m.get("summary") or "",
            authors=[m.get("author") or "Unknown"],
            downloadCount=int(m.get("mod_downloads") or 0),
            categories=[],
            iconUrl=m.get("picture_url"),
            websiteUrl=f"https://www.nexusmods.com/{m.get('domain_name') or GAME_DOMAIN}/mods/{mod_id}",
            latestVersion=ModVersion(
                fileId=f"{mod_id}-0",
                fileName="mod.jar",
                displayName=m.get("version") or "Latest",
                downloadUrl=None,
            ),
            updatedAt=datetime.fromtimestamp(updated, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
        )

    def _map_file(self, f: Dict[str, Any], mod_id: int) -> ModVersion:
        return ModVersion(
            fileId=f"{mod_id}-{f.get('file_id')}",
            fileName=f.get("file_name") or "",
            displayName=f.get("name") or f.get("version") or "",
            downloadUrl=None,
            gameVersions=[f["mod_version"]] if f.get("mod_version") else [],
            releaseType="release" if f.get("category_name") == "MAIN" else "beta",
            fileSize=int(f.get("size_kb") or 0) * 1024,
        )
