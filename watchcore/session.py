from __future__ import annotations

import asyncio
import logging
from typing import Optional

from watchcore import config
from watchcore.backend import Backend
from watchcore.catalog import CatalogIndex
from watchcore.errors import BackendError, InvalidProviderError, NoPlayableSourceError, StaleResolutionDiscarded
from watchcore.models import Episode, Resolution, SessionSnapshot, SessionState
from watchcore.progress import ProgressTracker
from watchcore.resolver import SourceResolver
from watchcore.servers import ServerRegistry

logger = logging.getLogger(__name__)


class PlaybackSession:
    """State of one open watch view.

    ``EMPTY -> LOADING -> READY | UNAVAILABLE``; any episode selection goes
    back through ``LOADING``. Every selection bumps a generation counter and a
    selection only commits if it is still the latest one when its I/O
    finishes, so rapid navigation always ends on the last requested episode.
    """

    def __init__(self, anime_key: str, backend: Backend, *, tracker: Optional[ProgressTracker] = None,
                 page_size: int = config.EPISODES_PER_PAGE, autoplay: bool = False):
        self.anime_key = anime_key
        self.anime_id = anime_key
        self.backend = backend
        self.tracker = tracker or ProgressTracker(backend)
        self.page_size = page_size
        self.catalog = CatalogIndex([])
        self.registry = ServerRegistry([])
        self.resolver = SourceResolver(self.registry)

        self.state = SessionState.EMPTY
        self.episode: Optional[Episode] = None
        self.season: Optional[int] = None
        self.page_index = 0
        self.provider_id: Optional[str] = None
        self.resolution: Optional[Resolution] = None
        self.progress = 0.0
        self.theater_mode = False
        self.autoplay = autoplay
        self.rejection: Optional[str] = None

        self._generation = 0
        self._closed = False

    @property
    def user_id(self) -> Optional[str]:
        return self.backend.current_user_id()

    @property
    def closed(self) -> bool:
        return self._closed

    async def refresh(self) -> None:
        """(Re)fetch episodes and providers. On failure the session is left untouched."""
        try:
            episodes, providers = await asyncio.gather(
                self.backend.fetch_episodes(self.anime_key),
                self.backend.fetch_active_providers(),
            )
        except BackendError as e:
            logger.warning("Refreshing %s failed: %s", self.anime_key, e)
            raise

        self.catalog = CatalogIndex(episodes)
        self.registry = ServerRegistry(providers)
        self.resolver = SourceResolver(self.registry)
        if self.catalog.first() is not None:
            self.anime_id = self.catalog.first().anime_id
        logger.info("Loaded %d episodes and %d providers for %s", len(self.catalog), len(providers), self.anime_key)
        if self.episode is None:
            return
        current = self.catalog.get(self.episode.id)
        if current is not None:
            self.episode = current
            return

        logger.warning("Episode %s is gone from %s", self.episode.id, self.anime_key)
        self._generation += 1
        self.episode = None
        self.season = None
        self.page_index = 0
        self.resolution = None
        self.progress = 0.0
        self.state = SessionState.EMPTY
        if not self.catalog.is_empty():
            await self.select_episode(self.catalog.first())

    async def open(self, episode_id: Optional[str] = None) -> SessionSnapshot:
        await self.refresh()
        if self.catalog.is_empty():
            logger.info("No episodes for %s", self.anime_key)
            return self.snapshot()

        episode = self.catalog.get(episode_id) if episode_id else None
        if episode is None:
            if episode_id:
                logger.warning("Episode %s not in %s, starting from the first episode", episode_id, self.anime_key)
            episode = self.catalog.first()
        return await self.select_episode(episode)

    async def select_episode(self, episode: Episode | str) -> SessionSnapshot:
        if self._closed:
            return self.snapshot()
        if isinstance(episode, str):
            found = self.catalog.get(episode)
            if found is None:
                self.rejection = f"Episode {episode} not found"
                return self.snapshot()
            episode = found
        elif self.catalog.get(episode.id) is None:
            self.rejection = f"Episode {episode.id} does not belong to this anime"
            return self.snapshot()

        self._generation += 1
        generation = self._generation
        user_id = self.user_id

        previous = self.episode
        if previous is not None and previous.id != episode.id and self.state is SessionState.READY:
            # any navigation away counts as watched
            self.tracker.schedule_save(user_id, previous.anime_id, previous.id, 100)

        self.episode = episode
        self.season = episode.season_number
        self.page_index = self.catalog.page_of(episode.id, self.page_size)
        self.state = SessionState.LOADING
        self.resolution = None
        self.progress = 0.0
        self.rejection = None
        logger.info("Loading %s (%s)", episode.id, episode.label)

        progress = await self._load_progress(user_id, episode)

        if generation != self._generation:
            logger.debug("%s", StaleResolutionDiscarded(generation, self._generation))
            return self.snapshot()
        self._commit(episode, progress)
        return self.snapshot()

    def _commit(self, episode: Episode, progress: float) -> None:
        try:
            self.resolution = self.resolver.resolve(episode, self.provider_id)
        except NoPlayableSourceError as e:
            logger.info("%s", e)
            self.resolution = None
            self.state = SessionState.UNAVAILABLE
            return
        self.progress = progress
        self.state = SessionState.READY
        self.tracker.schedule_save(self.user_id, episode.anime_id, episode.id, 0, started=True)
        logger.info("Ready %s via %s", episode.id, self.resolution.provider_id or "direct url")

    async def _load_progress(self, user_id: Optional[str], episode: Episode) -> float:
        try:
            return await self.tracker.load(user_id, episode.id)
        except BackendError as e:
            # progress only seeds the display, playback goes on without it
            logger.warning("Loading progress for %s failed: %s", episode.id, e)
            return 0.0

    def select_provider(self, provider_id: str) -> bool:
        if self.episode is None:
            self.rejection = "No episode selected"
            return False
        try:
            provider = self.registry.get(provider_id)
        except InvalidProviderError as e:
            logger.info("%s", e)
            self.rejection = f"Server {provider_id} is not available"
            return False
        if not self.resolver.supports(self.episode, provider_id):
            self.rejection = f"{provider.name or provider_id} is not available for this episode"
            return False

        self.provider_id = provider_id
        self.rejection = None
        if self.state is SessionState.READY:
            self.resolution = self.resolver.resolve(self.episode, provider_id)
        logger.info("Provider %s selected for %s", provider_id, self.episode.id)
        return True

    def select_season(self, season: int) -> bool:
        if season not in self.catalog.seasons():
            return False
        self.season = season
        self.page_index = 0
        return True

    def select_page(self, page_index: int) -> bool:
        if self.season is None or not 0 <= page_index < self.catalog.page_count(self.season, self.page_size):
            return False
        self.page_index = page_index
        return True

    def visible_episodes(self) -> list[Episode]:
        if self.season is None:
            return []
        return self.catalog.page(self.season, self.page_size, self.page_index)

    def toggle_theater_mode(self) -> bool:
        self.theater_mode = not self.theater_mode
        return self.theater_mode

    def toggle_autoplay(self) -> bool:
        self.autoplay = not self.autoplay
        return self.autoplay

    async def checkpoint(self, percentage: float) -> bool:
        if self.state is not SessionState.READY or self.episode is None:
            return False
        episode = self.episode
        written = await self.tracker.save(self.user_id, episode.anime_id, episode.id, percentage)
        if written and self.episode is episode:
            self.progress = self.tracker.high_water(episode.id)
        return written

    def mark_finished(self) -> None:
        if self.state is SessionState.READY:
            self.progress = 100.0

    async def close(self, timeout: float = config.FLUSH_TIMEOUT) -> bool:
        """Drop any in-flight selection and flush the last progress write."""
        self._closed = True
        self._generation += 1
        if self.state is SessionState.READY and self.episode is not None:
            self.tracker.schedule_save(self.user_id, self.episode.anime_id, self.episode.id, self.progress)
        flushed = await self.tracker.flush(timeout)
        logger.info("Closed session for %s", self.anime_key)
        return flushed

    def snapshot(self) -> SessionSnapshot:
        episode = self.episode
        seasons = self.catalog.seasons()
        available = [p.id for p in self.resolver.available_providers(episode)] if episode else []
        page_count = self.catalog.page_count(self.season, self.page_size) if self.season is not None else 0
        page_labels = self.catalog.page_labels(self.season, self.page_size) if self.season is not None else []
        return SessionSnapshot(
            state=self.state,
            anime_id=self.anime_id,
            episode_id=episode.id if episode else None,
            label=episode.label if episode else "",
            season=self.season,
            seasons=seasons,
            page=self.page_index,
            page_count=page_count,
            page_labels=page_labels,
            provider_id=self.resolution.provider_id if self.resolution else self.provider_id,
            available_providers=available,
            embed_url=self.resolution.url if self.resolution else None,
            source_kind=self.resolution.kind if self.resolution else None,
            progress=self.progress,
            theater_mode=self.theater_mode,
            autoplay=self.autoplay,
            has_previous=bool(episode and self.catalog.previous(episode.id)),
            has_next=bool(episode and self.catalog.next(episode.id)),
            rejection=self.rejection,
        )
