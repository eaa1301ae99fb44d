from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


@dataclass(slots=True)
class Episode:
    id: str
    anime_id: str
    season_number: int
    episode_number: int
    title: Optional[str] = None
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    duration: Optional[int] = None
    video_url: Optional[str] = None
    slugs: Dict[str, str] = field(default_factory=dict)

    @property
    def label(self) -> str:
        text = f"Season {self.season_number} - Episode {self.episode_number}"
        if self.title:
            text += f": {self.title}"
        return text

    def slug_for(self, provider_id: str) -> str:
        return (self.slugs.get(provider_id) or "").strip()


@dataclass(slots=True)
class Provider:
    id: str
    name: str
    embed_url: str
    is_active: bool = True
    order_index: int = 0


@dataclass(slots=True)
class WatchProgress:
    user_id: str
    anime_id: str
    episode_id: str
    progress: float = 0
    completed: bool = False
    last_watched: Optional[datetime] = None


@dataclass(slots=True, frozen=True)
class Resolution:
    url: str
    provider_id: Optional[str] = None
    kind: str = "provider"


class SessionState(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"
    UNAVAILABLE = "unavailable"


@dataclass(slots=True, frozen=True)
class SessionSnapshot:
    state: SessionState
    anime_id: str
    episode_id: Optional[str] = None
    label: str = ""
    season: Optional[int] = None
    seasons: List[int] = field(default_factory=list)
    page: int = 0
    page_count: int = 0
    page_labels: List[str] = field(default_factory=list)
    provider_id: Optional[str] = None
    available_providers: List[str] = field(default_factory=list)
    embed_url: Optional[str] = None
    source_kind: Optional[str] = None
    progress: float = 0
    theater_mode: bool = False
    autoplay: bool = False
    has_previous: bool = False
    has_next: bool = False
    rejection: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "state": self.state.value,
            "anime_id": self.anime_id,
            "episode_id": self.episode_id,
            "label": self.label,
            "season": self.season,
            "seasons": list(self.seasons),
            "page": self.page,
            "page_count": self.page_count,
            "page_labels": list(self.page_labels),
            "provider_id": self.provider_id,
            "available_providers": list(self.available_providers),
            "embed_url": self.embed_url,
            "source_kind": self.source_kind,
            "progress": self.progress,
            "theater_mode": self.theater_mode,
            "autoplay": self.autoplay,
            "has_previous": self.has_previous,
            "has_next": self.has_next,
            "rejection": self.rejection,
        }


# Intent messages consumed by NavigationController.dispatch


@dataclass(slots=True, frozen=True)
class Advance:
    pass


@dataclass(slots=True, frozen=True)
class Retreat:
    pass


@dataclass(slots=True, frozen=True)
class ToggleTheater:
    pass


@dataclass(slots=True, frozen=True)
class ToggleAutoplay:
    pass


@dataclass(slots=True, frozen=True)
class ProviderSelected:
    provider_id: str


@dataclass(slots=True, frozen=True)
class EpisodeSelected:
    episode_id: str


@dataclass(slots=True, frozen=True)
class NaturalEnd:
    pass


@dataclass(slots=True, frozen=True)
class Checkpoint:
    percentage: float
