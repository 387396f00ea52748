"""Model provider configuration and registry."""

from dataclasses import dataclass, field, fields
from typing import Any, Optional
import os

from gateway.base import Credentials


@dataclass
class ModelProvider:
    """Represents a model provider configuration.

    Attributes:
        id: Unique identifier for the provider, also the gateway driver name
        name: Human-readable name
        base_url: Base URL for API requests
        env_key: Environment variable name for API key (None for local providers)
        default_model: Default model ID for this provider
        http_headers: Additional HTTP headers to include in requests
        driver: Gateway driver name when it differs from the id
    """
    id: str
    name: str
    base_url: str
    env_key: Optional[str] = None
    default_model: str = ""
    http_headers: dict[str, str] = field(default_factory=dict)
    driver: Optional[str] = None

    @property
    def driver_name(self) -> str:
        return self.driver or self.id

    def get_api_key(self) -> Optional[str]:
        """Get API key from environment variable.

        Returns:
            API key string if env_key is set and variable exists, None otherwise
        """
        if self.env_key:
            return os.environ.get(self.env_key)
        return None

    def is_local(self) -> bool:
        """Check if provider is local (no API key needed).

        Returns:
            True if provider doesn't require an API key
        """
        return self.env_key is None

    def credentials(self) -> Credentials:
        """Credentials handed to the gateway driver for one call."""
        return Credentials(
            api_key=self.get_api_key(),
            base_url=self.base_url,
            headers=self.http_headers.copy(),
        )


_PROVIDER_FIELDS = {f.name for f in fields(ModelProvider)} - {"id"}


class ProviderRegistry:
    """Registry for managing model providers.

    Handles default and custom provider configurations and retrieving
    providers by id.
    """

    def __init__(self) -> None:
        """Initialize the provider registry with default providers."""
        self._providers: dict[str, ModelProvider] = {}
        self._load_defaults()

    def _load_defaults(self) -> None:
        """Load default providers from config.defaults."""
        from config.defaults import DEFAULT_MODEL_PROVIDERS

        for provider_id, config in DEFAULT_MODEL_PROVIDERS.items():
            self._providers[provider_id] = ModelProvider(id=provider_id, **config)

    def load_from_config(self, providers_config: dict[str, dict[str, Any]]) -> None:
        """Apply provider overrides; unknown ids are added as new providers.

        Args:
            providers_config: The ``model_providers`` section, by provider id
        """
        for provider_id, overrides in providers_config.items():
            known = {k: v for k, v in overrides.items() if k in _PROVIDER_FIELDS}
            existing = self._providers.get(provider_id)
            if existing is not None:
                current = {name: getattr(existing, name) for name in _PROVIDER_FIELDS}
                self._providers[provider_id] = ModelProvider(id=provider_id, **{**current, **known})
            else:
                known.setdefault("name", provider_id)
                known.setdefault("base_url", "")
                self._providers[provider_id] = ModelProvider(id=provider_id, **known)

    def get(self, provider_id: str) -> Optional[ModelProvider]:
        """Get provider by ID.

        Args:
            provider_id: Provider identifier

        Returns:
            ModelProvider instance or None if not found
        """
        return self._providers.get(provider_id)

    def require(self, provider_id: str) -> ModelProvider:
        """Get provider by ID.

        Raises:
            ValueError: If the provider is not registered
        """
        provider = self.get(provider_id)
        if not provider:
            raise ValueError(f"Unknown provider: {provider_id}")
        return provider

    def list_providers(self) -> list[ModelProvider]:
        """List all available providers.

        Returns:
            List of all registered ModelProvider instances
        """
        return list(self._providers.values())


def create_provider_registry(providers_config: dict[str, dict[str, Any]] | None = None) -> ProviderRegistry:
    registry = ProviderRegistry()
    if providers_config:
        registry.load_from_config(providers_config)
    return registry
