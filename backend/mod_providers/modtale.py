from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple

from config import USER_AGENT
from mod_errors import UpstreamError
from .base import BrowsedMod, ModVersion, ProviderSearchResult, SearchParams, fetch_bytes, fetch_json

API_BASE = "https://api.modtale.net/api/v1"
CDN_BASE = "https://cdn.modtale.net"
SITE_BASE = "https://modtale.net/project"

CHANNELS = {"RELEASE": "release", "BETA": "beta", "ALPHA": "alpha"}


class ModtaleProvider:
    id = "modtale"
    name = "Modtale"
    auth_type = "api_key"
    # Public API; a key only raises rate limits
    requires_key = False

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or None

    def is_configured(self) -> bool:
        return True

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        if self.api_key:
            headers["X-MODTALE-KEY"] = self.api_key
        return headers

    def search(self, params: SearchParams, *, timeout: Optional[float] = None) -> ProviderSearchResult:
        query: Dict[str, Any] = {
            "search": params.query,
            "sort": params.sort,
            "page": params.page,
            "size": params.pageSize,
        }
        if params.categories:
            query["tags"] = ",".join(params.categories)
        data = fetch_json("Modtale", f"{API_BASE}/projects", headers=self._headers(), params=query, timeout=timeout)
        total_pages = int(data.get("totalPages") or 0)
        return ProviderSearchResult(
            provider=self.id,
            results=[self._map_project(p) for p in data.get("content", [])],
            totalCount=int(data.get("totalElements") or 0),
            hasMore=total_pages > 0 and params.page + 1 < total_pages,
        )

    def _project(self, mod_id: str) -> Dict[str, Any]:
        data = fetch_json("Modtale", f"{API_BASE}/projects/{mod_id}", headers=self._headers())
        if not isinstance(data, dict) or "id" not in data:
            raise UpstreamError(f"Modtale returned no project for {mod_id}")
        return data

    def get_mod_details(self, mod_id: str) -> BrowsedMod:
        return self._map_project(self._project(mod_id))

    def get_mod_versions(self, mod_id: str) -> List[ModVersion]:
        return [self._map_version(v) for v in (self._project(mod_id).get("versions") or [])]

    def download_mod(self, version: ModVersion) -> Tuple[str, bytes]:
        if not version.downloadUrl:
            raise UpstreamError("Download URL not available")
        headers = self._headers()
        headers.pop("Accept", None)
        return version.fileName, fetch_bytes("Modtale", _absolute_url(version.downloadUrl), headers=headers)

    def _map_project(self, p: Dict[str, Any]) -> BrowsedMod:
        # List items come in two shapes: summaries (downloads, tags) and full projects
        versions = p.get("versions") or []
        download_count = p.get("downloads")
        if download_count is None:
            download_count = p.get("downloadCount")
        if download_count is None:
            download_count = sum(int(v.get("downloadCount") or 0) for v in versions)
        return BrowsedMod(
            id=str(p.get("id")),
            provider=self.id,
            name=p.get("title") or "",
            summary=p.get("description") or "",
            authors=[p["author"]] if p.get("author") else [],
            downloadCount=int(download_count or 0),
            categories=p.get("tags") or p.get("categories") or [],
            iconUrl=p.get("imageUrl"),
            websiteUrl=f"{SITE_BASE}/{p.get('slug') or p.get('id')}",
            latestVersion=self._map_version(versions[0]) if versions else None,
            updatedAt=p.get("updatedAt") or "",
        )

    def _map_version(self, v: Dict[str, Any]) -> ModVersion:
        version_number = v.get("versionNumber") or ""
        file_url = v.get("fileUrl") or v.get("downloadUrl")
        file_name = (file_url.rstrip("/").split("/")[-1] if file_url else "") or f"{version_number}.jar"
        return ModVersion(
            fileId=str(v.get("id")),
            fileName=file_name,
            displayName=version_number,
            downloadUrl=_absolute_url(file_url) if file_url else None,
            gameVersions=v.get("supportedVersions") or [],
            releaseType=CHANNELS.get(v.get("channel") or "RELEASE", "release"),
            fileSize=0,
        )


def _absolute_url(url: str) -> str:
    if url.startswith("http"):
        return url
    return f"{CDN_BASE}/{url.lstrip('/')}"
