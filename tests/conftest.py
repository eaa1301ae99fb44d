import asyncio

import pytest

from watchcore.backend import MemoryBackend
from watchcore.models import Episode, Provider

ANIME_ID = "anime-1"


def make_episode(season, number, slugs=None, video_url=None, anime_id=ANIME_ID, title=None):
    return Episode(
        id=f"s{season}e{number}",
        anime_id=anime_id,
        season_number=season,
        episode_number=number,
        title=title,
        video_url=video_url,
        slugs=dict(slugs or {}),
    )


@pytest.fixture
def episode_factory():
    return make_episode


@pytest.fixture
def providers():
    return [
        Provider(id="beta", name="Beta", embed_url="https://beta.example/e/", order_index=2),
        Provider(id="alpha", name="Alpha", embed_url="https://alpha.example/embed/", order_index=1),
        Provider(id="gamma", name="Gamma", embed_url="https://gamma.example/v/", is_active=False, order_index=0),
    ]


@pytest.fixture
def episodes():
    """Two seasons, fetched out of order on purpose."""
    return [
        make_episode(2, 1, {"alpha": "a-201", "beta": "b-201"}),
        make_episode(1, 2, {"beta": "b-102"}),
        make_episode(1, 1, {"alpha": "a-101", "beta": "b-101"}),
        make_episode(2, 2, {"gamma": "g-202"}, video_url="https://cdn.example/202.mp4"),
        make_episode(2, 3),
    ]


@pytest.fixture
def backend(episodes, providers):
    return MemoryBackend(episodes, providers, user_id="user-1", anime_slugs={"my-anime": ANIME_ID})


class GatedBackend(MemoryBackend):
    """MemoryBackend whose progress loads block until the test releases them."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gates = {}

    def gate(self, episode_id):
        return self.gates.setdefault(episode_id, asyncio.Event())

    async def load_progress(self, user_id, episode_id):
        await self.gate(episode_id).wait()
        return await super().load_progress(user_id, episode_id)


@pytest.fixture
def gated_backend(episodes, providers):
    return GatedBackend(episodes, providers, user_id="user-1")
