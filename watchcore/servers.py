from __future__ import annotations

from typing import Iterable

from watchcore.errors import InvalidProviderError
from watchcore.models import Provider


class ServerRegistry:
    def __init__(self, providers: Iterable[Provider]):
        self.providers: dict[str, Provider] = {p.id: p for p in providers}

    def active_providers(self) -> list[Provider]:
        return sorted((p for p in self.providers.values() if p.is_active), key=lambda p: p.order_index)

    def get(self, provider_id: str) -> Provider:
        provider = self.providers.get(provider_id)
        if provider is None:
            raise InvalidProviderError(provider_id)
        if not provider.is_active:
            raise InvalidProviderError(provider_id, "inactive")
        return provider

    def is_active(self, provider_id: str) -> bool:
        provider = self.providers.get(provider_id)
        return bool(provider and provider.is_active)

    def resolve_url(self, provider: Provider | str, slug: str) -> str:
        provider_id = provider if isinstance(provider, str) else provider.id
        return self.get(provider_id).embed_url + slug
