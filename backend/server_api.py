"""Client for the game server's REST API plugin.

Only the health check and authenticated passthrough requests live here. The
bearer token and the health result are held in explicit TTL caches.
"""
from __future__ import annotations

from typing import Any, Optional
import logging

import requests

import config
from mod_errors import UpstreamError
from ttl_cache import TTLCache

logger = logging.getLogger(__name__)

HEALTH_CACHE_SECONDS = 30
TOKEN_REFRESH_MARGIN_SECONDS = 60
REQUEST_TIMEOUT = 10

_token_cache = TTLCache(ttl_seconds=0)
_health_cache = TTLCache(ttl_seconds=HEALTH_CACHE_SECONDS)


def base_url() -> str:
    return f"http://{config.SERVER_HOST}:{config.SERVER_PORT}"


def reset_caches() -> None:
    _token_cache.invalidate()
    _health_cache.invalidate()


def check_health() -> bool:
    """Reachability of the API (no auth). Cached so status polling doesn't hammer the server."""
    cached = _health_cache.get()
    if cached is not None:
        return cached
    try:
        r = requests.get(f"{base_url()}/health", timeout=5)
        healthy = r.ok
    except requests.RequestException as e:
        logger.debug("Server API health check failed: %s", e)
        healthy = False
    _health_cache.set(healthy)
    return healthy


def _get_token() -> str:
    token = _token_cache.get()
    if token:
        return token
    try:
        r = requests.post(
            f"{base_url()}/auth/token",
            json={"clientId": config.API_CLIENT_ID, "secret": config.API_CLIENT_SECRET},
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        raise UpstreamError(f"Server API unreachable: {e}")
    if not r.ok:
        raise UpstreamError(f"Authentication failed: {r.status_code} - {r.text[:200]}")
    try:
        data = r.json()
    except ValueError:
        raise UpstreamError("Authentication failed: server API returned invalid JSON")
    token = data.get("access_token") if isinstance(data, dict) else None
    if not token:
        raise UpstreamError("Authentication failed: no access token in response")
    expires_in = float(data.get("expires_in") or 0)
    _token_cache.set(token, ttl_seconds=max(expires_in - TOKEN_REFRESH_MARGIN_SECONDS, 0))
    return token


def api_request(path: str, method: str = "GET", json: Optional[Any] = None) -> Any:
    token = _get_token()
    try:
        r = requests.request(
            method,
            f"{base_url()}{path}",
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            json=json,
            timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        raise UpstreamError(f"Server API unreachable: {e}")
    if r.status_code == 401:
        # Token revoked server-side; the next call re-authenticates
        _token_cache.invalidate()
    if not r.ok:
        raise UpstreamError(f"Server API error: {r.status_code}")
    if not r.content:
        return None
    try:
        return r.json()
    except ValueError:
        raise UpstreamError("Server API returned invalid JSON")
