from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Type

from mod_errors import UnknownProviderError
from .base import PROVIDER_ORDER, ModProviderAdapter
from .curseforge import CurseForgeProvider
from .modtale import ModtaleProvider
from .nexusmods import NexusModsProvider

if TYPE_CHECKING:
    from provider_settings import ProviderEntry

# Providers are a closed set; adapters are built per request so newly saved
# keys take effect immediately
PROVIDERS: Dict[str, Type] = {
    CurseForgeProvider.id: CurseForgeProvider,
    ModtaleProvider.id: ModtaleProvider,
    NexusModsProvider.id: NexusModsProvider,
}


def get_provider_names() -> List[str]:
    return list(PROVIDER_ORDER)


def get_provider(name: str, api_key: Optional[str] = None) -> ModProviderAdapter:
    if name not in PROVIDERS:
        raise UnknownProviderError(f"Unknown provider: {name}")
    return PROVIDERS[name](api_key)


def get_providers_live(provider_config: Mapping[str, "ProviderEntry"]) -> Dict[str, ModProviderAdapter]:
    """Adapters for every provider, keyed in merge order, carrying the saved keys."""
    return {
        name: get_provider(name, provider_config[name].apiKey if name in provider_config else None)
        for name in PROVIDER_ORDER
    }
