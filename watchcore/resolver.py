from __future__ import annotations

import logging

from watchcore.errors import NoPlayableSourceError
from watchcore.models import Episode, Provider, Resolution
from watchcore.servers import ServerRegistry

logger = logging.getLogger(__name__)


class SourceResolver:
    """Pick the embed URL to play for an episode.

    Order of preference:

    1. the viewer's chosen provider, if it is active and carries a slug for
       this episode;
    2. active providers by ascending ``order_index``, first one with a slug;
    3. the episode's own direct ``video_url``.

    A chosen provider without a slug is ignored for this episode only, the
    choice itself is kept by the session so it applies again on the next
    episode that provider carries.
    """

    def __init__(self, registry: ServerRegistry):
        self.registry = registry

    def supports(self, episode: Episode, provider_id: str | None) -> bool:
        if not provider_id:
            return False
        return self.registry.is_active(provider_id) and bool(episode.slug_for(provider_id))

    def available_providers(self, episode: Episode) -> list[Provider]:
        return [p for p in self.registry.active_providers() if episode.slug_for(p.id)]

    def resolve(self, episode: Episode, preferred_provider_id: str | None = None) -> Resolution:
        if self.supports(episode, preferred_provider_id):
            url = self.registry.resolve_url(preferred_provider_id, episode.slug_for(preferred_provider_id))
            return Resolution(url=url, provider_id=preferred_provider_id)

        for provider in self.available_providers(episode):
            url = self.registry.resolve_url(provider, episode.slug_for(provider.id))
            if preferred_provider_id:
                logger.debug("Provider %s has no slug for %s, falling back to %s", preferred_provider_id, episode.id, provider.id)
            return Resolution(url=url, provider_id=provider.id)

        if episode.video_url:
            return Resolution(url=episode.video_url, kind="direct")

        raise NoPlayableSourceError(episode.id)
