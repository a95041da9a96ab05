"""Provider listing API routes"""
from fastapi import APIRouter, Depends

from modelarena.services.providers.registry import ProviderRegistry, get_provider_registry

router = APIRouter(prefix="/api/providers", tags=["providers"])


@router.get("")
def list_providers(registry: ProviderRegistry = Depends(get_provider_registry)):
    """Registered providers and whether each one is configured"""
    available = {provider.name for provider in registry.list_all()}
    return {
        "providers": [
            {"name": name, "available": name in available}
            for name in registry.list_names()
        ]
    }
