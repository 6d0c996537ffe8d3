from __future__ import annotations
from typing import Any, Dict, List, Literal, Optional, Protocol, Tuple

import requests
from pydantic import AliasChoices, BaseModel, Field

from mod_errors import UpstreamError

DEFAULT_TIMEOUT = 15

ModProvider = Literal["curseforge", "modtale", "nexusmods"]

# Merge order for aggregated results
PROVIDER_ORDER: Tuple[str, ...] = ("curseforge", "modtale", "nexusmods")

SortField = Literal["relevance", "downloads", "updated", "name"]


class ModVersion(BaseModel):
    fileId: str
    fileName: str
    displayName: str
    downloadUrl: Optional[str] = None
    gameVersions: List[str] = []
    releaseType: Literal["release", "beta", "alpha"] = "release"
    fileSize: int = 0


class BrowsedMod(BaseModel):
    id: str
    provider: ModProvider
    name: str
    summary: str = ""
    authors: List[str] = []
    downloadCount: int = 0
    categories: List[str] = []
    iconUrl: Optional[str] = None
    websiteUrl: str = ""
    latestVersion: Optional[ModVersion] = None
    updatedAt: str = ""


class SearchParams(BaseModel):
    query: str = ""
    providers: Optional[List[ModProvider]] = None
    sort: SortField = "downloads"
    page: int = Field(0, ge=0)
    pageSize: int = Field(20, ge=1, le=50, validation_alias=AliasChoices("pageSize", "limit"))
    categories: List[str] = []


class ProviderSearchResult(BaseModel):
    provider: ModProvider
    results: List[BrowsedMod]
    totalCount: int
    hasMore: bool


def matches_categories(mod: BrowsedMod, categories: List[str]) -> bool:
    """Case-insensitive tag filter used by providers without server-side tag search."""
    if not categories:
        return True
    wanted = {c.lower() for c in categories}
    return any(c.lower() in wanted for c in mod.categories)


def fetch_json(label: str, url: str, *, headers: Dict[str, str], params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> Any:
    try:
        r = requests.get(url, headers=headers, params=params, timeout=timeout or DEFAULT_TIMEOUT)
    except requests.RequestException as e:
        raise UpstreamError(f"{label} API unreachable: {e}")
    if not r.ok:
        raise UpstreamError(f"{label} API error: {r.status_code}")
    try:
        return r.json()
    except ValueError:
        raise UpstreamError(f"{label} API returned invalid JSON")


def fetch_bytes(label: str, url: str, *, headers: Dict[str, str], timeout: Optional[float] = None) -> bytes:
    try:
        r = requests.get(url, headers=headers, timeout=timeout or 120, allow_redirects=True)
    except requests.RequestException as e:
        raise UpstreamError(f"{label} download failed: {e}")
    if not r.ok:
        raise UpstreamError(f"Download failed: {r.status_code}")
    return r.content


class ModProviderAdapter(Protocol):
    id: str
    name: str
    auth_type: str
    requires_key: bool

    def is_configured(self) -> bool:
        ...

    def search(self, params: SearchParams, *, timeout: Optional[float] = None) -> ProviderSearchResult:
        ...

    def get_mod_details(self, mod_id: str) -> BrowsedMod:
        ...

    def get_mod_versions(self, mod_id: str) -> List[ModVersion]:
        ...

    def download_mod(self, version: ModVersion) -> Tuple[str, bytes]:
        ...
