"""Fan-out search across the enabled mod providers.

Each eligible provider is queried on its own worker thread and the call waits
for all of them, bounded by the per-provider timeout. A provider that fails or
times out contributes no results and an entry in ``errors``; the aggregate
call itself does not fail. Results are concatenated in provider order without
dedup or re-ranking, and nothing is cached between calls.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from typing import List, Mapping, Optional
import logging

from pydantic import BaseModel

import config
from mod_providers import get_providers_live
from mod_providers.base import PROVIDER_ORDER, BrowsedMod, ModProviderAdapter, SearchParams
from provider_settings import ProviderEntry

logger = logging.getLogger(__name__)


class ProviderPagination(BaseModel):
    provider: str
    totalCount: int
    hasMore: bool


class ProviderError(BaseModel):
    provider: str
    error: str


class AggregatedResults(BaseModel):
    results: List[BrowsedMod] = []
    pagination: List[ProviderPagination] = []
    errors: List[ProviderError] = []
    totalCount: int = 0


def eligible_providers(
    params: SearchParams,
    provider_config: Mapping[str, ProviderEntry],
    adapters: Mapping[str, ModProviderAdapter],
) -> List[str]:
    selected: List[str] = []
    for name in PROVIDER_ORDER:
        entry = provider_config.get(name)
        if entry is None or not entry.enabled:
            continue
        if params.providers is not None and name not in params.providers:
            continue
        adapter = adapters.get(name)
        if adapter is None:
            continue
        if adapter.requires_key and not adapter.is_configured():
            logger.debug("Skipping provider %s: enabled but no API key", name)
            continue
        selected.append(name)
    return selected


def run_search(
    params: SearchParams,
    provider_config: Mapping[str, ProviderEntry],
    *,
    timeout: Optional[float] = None,
    adapters: Optional[Mapping[str, ModProviderAdapter]] = None,
) -> AggregatedResults:
    timeout = timeout if timeout is not None else config.PROVIDER_TIMEOUT_SECONDS
    adapters = adapters if adapters is not None else get_providers_live(provider_config)
    to_run = eligible_providers(params, provider_config, adapters)
    aggregated = AggregatedResults()
    if not to_run:
        return aggregated

    pool = ThreadPoolExecutor(max_workers=len(to_run), thread_name_prefix="mod-search")
    try:
        futures = {name: pool.submit(adapters[name].search, params, timeout=timeout) for name in to_run}
        done, _ = wait(list(futures.values()), timeout=timeout)
    finally:
        # Stragglers are abandoned, not joined
        pool.shutdown(wait=False, cancel_futures=True)

    for name in to_run:
        future = futures[name]
        if future not in done:
            logger.warning("Provider %s timed out after %.1fs", name, timeout)
            aggregated.errors.append(ProviderError(provider=name, error=f"Timed out after {timeout:g}s"))
            continue
        exc = future.exception()
        if exc is not None:
            logger.warning("Provider %s search failed: %s", name, exc)
            aggregated.errors.append(ProviderError(provider=name, error=str(exc) or exc.__class__.__name__))
            continue
        result = future.result()
        aggregated.results.extend(result.results)
        aggregated.pagination.append(
            ProviderPagination(provider=name, totalCount=result.totalCount, hasMore=result.hasMore)
        )
        aggregated.totalCount += result.totalCount
    return aggregated
