"""OAuth provider adapters and the registry resolving them by name."""

from __future__ import annotations

from collections.abc import Iterator, Mapping

import httpx

from ..config import Settings
from ..errors import UnsupportedProvider
from .base import ProviderAdapter
from .discord import DiscordAdapter
from .github import GitHubAdapter
from .twitter import TwitterAdapter

ADAPTER_TYPES: dict[str, type[ProviderAdapter]] = {
    GitHubAdapter.name: GitHubAdapter,
    DiscordAdapter.name: DiscordAdapter,
    TwitterAdapter.name: TwitterAdapter,
}


class ProviderRegistry(Mapping[str, ProviderAdapter]):
    """Injected lookup of the adapters the gateway can talk to."""

    def __init__(self, adapters: Mapping[str, ProviderAdapter]) -> None:
        self._adapters = dict(adapters)

    def __getitem__(self, name: str) -> ProviderAdapter:
        return self._adapters[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._adapters)

    def __len__(self) -> int:
        return len(self._adapters)

    def resolve(self, name: str) -> ProviderAdapter:
        adapter = self._adapters.get(name)
        if adapter is None:
            raise UnsupportedProvider(name)
        return adapter

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()


def build_registry(
    settings: Settings, *, http_client: httpx.AsyncClient | None = None
) -> ProviderRegistry:
    configs = settings.provider_configs()
    return ProviderRegistry(
        {
            name: adapter_type(
                configs[name],
                http_client=http_client,
                timeout=settings.http_timeout_seconds,
            )
            for name, adapter_type in ADAPTER_TYPES.items()
        }
    )


__all__ = [
    "ADAPTER_TYPES",
    "DiscordAdapter",
    "GitHubAdapter",
    "ProviderAdapter",
    "ProviderRegistry",
    "TwitterAdapter",
    "build_registry",
]
