from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple

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

CURSE_API_BASE = "https://api.curseforge.com/v1"
GAME_ID_HYTALE = 70216

SORT_FIELDS = {
    "relevance": 1,
    "downloads": 2,
    "updated": 3,
    "name": 4,
}

RELEASE_TYPES = {1: "release", 2: "beta", 3: "alpha"}


def _numeric_id(mod_id: str) -> int:
    try:
        return int(mod_id)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid CurseForge mod id: {mod_id!r}")


class CurseForgeProvider:
    id = "curseforge"
    name = "CurseForge"
    auth_type = "api_key"
    requires_key = True

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or None

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise ProviderNotConfiguredError("CurseForge API key not configured")
        return {
            "x-api-key": self.api_key,
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    def search(self, params: SearchParams, *, timeout: Optional[float] = None) -> ProviderSearchResult:
        query = {
            "gameId": GAME_ID_HYTALE,
            "searchFilter": params.query,
            "pageSize": params.pageSize,
            "index": params.page * params.pageSize,
            "sortField": SORT_FIELDS[params.sort],
            "sortOrder": "desc",
        }
        data = fetch_json("CurseForge", f"{CURSE_API_BASE}/mods/search", headers=self._headers(), params=query, timeout=timeout)
        mods = [self._map_mod(m) for m in data.get("data", [])]
        # categoryId filters need numeric ids; tag names are matched locally
        mods = [m for m in mods if matches_categories(m, params.categories)]
        pagination = data.get("pagination")
        if pagination:
            total = int(pagination.get("totalCount", 0))
            has_more = int(pagination.get("index", 0)) + int(pagination.get("pageSize", 0)) < total
        else:
            total = len(mods)
            has_more = False
        return ProviderSearchResult(provider=self.id, results=mods, totalCount=total, hasMore=has_more)

    def get_mod_details(self, mod_id: str) -> BrowsedMod:
        data = fetch_json("CurseForge", f"{CURSE_API_BASE}/mods/{_numeric_id(mod_id)}", headers=self._headers())
        mod = data.get("data")
        if not mod:
            raise UpstreamError(f"CurseForge returned no data for mod {mod_id}")
        return self._map_mod(mod)

    def get_mod_versions(self, mod_id: str) -> List[ModVersion]:
        data = fetch_json(
            "CurseForge",
            f"{CURSE_API_BASE}/mods/{_numeric_id(mod_id)}/files",
            headers=self._headers(),
            params={"pageSize": 50},
        )
        return [self._map_file(f) for f in data.get("data", [])]

    def download_mod(self, version: ModVersion) -> Tuple[str, bytes]:
        headers = self._headers()
        if not version.downloadUrl:
            raise UpstreamError("Download URL not available - author has disabled API downloads")
        return version.fileName, fetch_bytes("CurseForge", version.downloadUrl, headers=headers)

    def _map_mod(self, m: Dict[str, Any]) -> BrowsedMod:
        files = m.get("latestFiles") or []
        latest = next((f for f in files if f.get("releaseType") == 1), files[0] if files else None)
        return BrowsedMod(
            id=str(m.get("id")),
            provider=self.id,
            name=m.get("name") or "",
            summary=m.get("summary") or "",
            authors=[a.get("name") or "" for a in (m.get("authors") or [])],
            downloadCount=int(m.get("downloadCount") or 0),
            categories=[c.get("name") or "" for c in (m.get("categories") or [])],
            iconUrl=(m.get("logo") or {}).get("thumbnailUrl"),
            websiteUrl=(m.get("links") or {}).get("websiteUrl") or "",
            latestVersion=self._map_file(latest) if latest else None,
            updatedAt=m.get("dateModified") or "",
        )

    def _map_file(self, f: Dict[str, Any]) -> ModVersion:
        return ModVersion(
            fileId=str(f.get("id")),
            fileName=f.get("fileName") or "",
            displayName=f.get("displayName") or f.get("fileName") or "",
            downloadUrl=f.get("downloadUrl"),
            gameVersions=f.get("gameVersions") or [],
            releaseType=RELEASE_TYPES.get(f.get("releaseType"), "alpha"),
            fileSize=int(f.get("fileLength") or 0),
        )
