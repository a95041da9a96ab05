"""Provider registry: name -> adapter"""
import logging
from typing import Callable, Dict, List

from modelarena.services.providers.base import VideoProvider
from modelarena.services.providers.fal import FalProvider
from modelarena.services.providers.manual import ManualProvider
from modelarena.services.providers.runway import RunwayProvider

logger = logging.getLogger("providers")

ProviderFactory = Callable[[], VideoProvider]


class ProviderRegistry:
    """Builds each provider lazily on first use and caches it

    Lazy construction means a vendor with missing credentials only fails the
    jobs that actually target it.
    """

    def __init__(self) -> None:
        self._factories: Dict[str, ProviderFactory] = {}
        self._instances: Dict[str, VideoProvider] = {}

    def register(self, name: str, factory: ProviderFactory) -> None:
        self._factories[name] = factory
        self._instances.pop(name, None)

    def get(self, name: str) -> VideoProvider:
        """Return the provider registered under `name`

        Raises:
            ValueError: unknown provider name, or the provider is missing its credentials
        """
        if name in self._instances:
            return self._instances[name]
        factory = self._factories.get(name)
        if factory is None:
            raise ValueError(f"Unknown provider: {name}")
        provider = factory()
        self._instances[name] = provider
        return provider

    def list_names(self) -> List[str]:
        return list(self._factories)

    def list_all(self) -> List[VideoProvider]:
        """Every provider that can be constructed with the current configuration"""
        providers = []
        for name in self._factories:
            try:
                providers.append(self.get(name))
            except ValueError as e:
                logger.warning(f"Provider {name} unavailable: {e}")
        return providers


def build_default_registry() -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register(FalProvider.name, FalProvider)
    registry.register(RunwayProvider.name, RunwayProvider)
    registry.register(ManualProvider.name, ManualProvider)
    return registry


# Process-wide default registry (lazy)
_registry = None


def get_provider_registry() -> ProviderRegistry:
    global _registry
    if _registry is None:
        _registry = build_default_registry()
    return _registry
