from __future__ import annotations

import math
from typing import Iterable

from watchcore.config import EPISODES_PER_PAGE
from watchcore.models import Episode


class CatalogIndex:
    """Episodes of one anime, ordered by season then episode number.

    Navigation (``next``/``previous``) runs over the flattened sequence so it
    crosses season boundaries. Sorting is stable: if the upstream data ever
    carries two episodes with the same (season, number) they keep fetch order.
    """

    def __init__(self, episodes: Iterable[Episode]):
        self.episodes: list[Episode] = sorted(episodes, key=lambda ep: (ep.season_number, ep.episode_number))
        self._positions = {ep.id: i for i, ep in enumerate(self.episodes)}

    def __len__(self) -> int:
        return len(self.episodes)

    def is_empty(self) -> bool:
        return not self.episodes

    def seasons(self) -> list[int]:
        return sorted({ep.season_number for ep in self.episodes})

    def episodes_for_season(self, season: int) -> list[Episode]:
        return [ep for ep in self.episodes if ep.season_number == season]

    def page(self, season: int, page_size: int = EPISODES_PER_PAGE, page_index: int = 0) -> list[Episode]:
        if page_size <= 0 or page_index < 0:
            return []
        start = page_index * page_size
        return self.episodes_for_season(season)[start:start + page_size]

    def page_count(self, season: int, page_size: int = EPISODES_PER_PAGE) -> int:
        if page_size <= 0:
            return 0
        return math.ceil(len(self.episodes_for_season(season)) / page_size)

    def page_labels(self, season: int, page_size: int = EPISODES_PER_PAGE) -> list[str]:
        total = len(self.episodes_for_season(season))
        return [
            f"Episodes {i * page_size + 1}-{min((i + 1) * page_size, total)}"
            for i in range(self.page_count(season, page_size))
        ]

    def page_of(self, episode_id: str, page_size: int = EPISODES_PER_PAGE) -> int:
        episode = self.get(episode_id)
        if episode is None:
            return 0
        ids = [ep.id for ep in self.episodes_for_season(episode.season_number)]
        return ids.index(episode_id) // page_size

    def get(self, episode_id: str) -> Episode | None:
        pos = self._positions.get(episode_id)
        return self.episodes[pos] if pos is not None else None

    def first(self) -> Episode | None:
        return self.episodes[0] if self.episodes else None

    def index_of(self, episode_id: str) -> int | None:
        return self._positions.get(episode_id)

    def next(self, episode_id: str) -> Episode | None:
        pos = self.index_of(episode_id)
        if pos is None or pos + 1 >= len(self.episodes):
            return None
        return self.episodes[pos + 1]

    def previous(self, episode_id: str) -> Episode | None:
        pos = self.index_of(episode_id)
        if pos is None or pos == 0:
            return None
        return self.episodes[pos - 1]
