"""Provider adapters for external AI video generation services"""
from modelarena.services.providers.base import GenerationRequest, GenerationResult, VideoProvider
from modelarena.services.providers.fal import FalProvider
from modelarena.services.providers.manual import ManualProvider
from modelarena.services.providers.registry import ProviderRegistry, build_default_registry, get_provider_registry
from modelarena.services.providers.runway import RunwayProvider

__all__ = [
    "GenerationRequest",
    "GenerationResult",
    "VideoProvider",
    "FalProvider",
    "ManualProvider",
    "RunwayProvider",
    "ProviderRegistry",
    "build_default_registry",
    "get_provider_registry",
]
