import pytest

from watchcore.errors import InvalidProviderError, NoPlayableSourceError
from watchcore.resolver import SourceResolver
from watchcore.servers import ServerRegistry


@pytest.fixture
def registry(providers):
    return ServerRegistry(providers)


@pytest.fixture
def resolver(registry):
    return SourceResolver(registry)


def test_active_providers_by_priority(registry):
    assert [p.id for p in registry.active_providers()] == ["alpha", "beta"]


def test_resolve_url_concatenates_template_and_slug(registry):
    assert registry.resolve_url("alpha", "a-101") == "https://alpha.example/embed/a-101"


def test_resolve_url_rejects_inactive_and_unknown(registry):
    with pytest.raises(InvalidProviderError):
        registry.resolve_url("gamma", "g-1")
    with pytest.raises(InvalidProviderError):
        registry.resolve_url("nope", "x")


def test_no_preference_uses_highest_priority(resolver, episode_factory):
    ep = episode_factory(1, 1, {"alpha": "a-101", "beta": "b-101"})
    resolution = resolver.resolve(ep)
    assert resolution.url == "https://alpha.example/embed/a-101"
    assert resolution.provider_id == "alpha"


def test_preferred_provider_wins_regardless_of_rank(resolver, episode_factory):
    ep = episode_factory(1, 1, {"alpha": "a-101", "beta": "b-101"})
    assert resolver.resolve(ep, "beta").url == "https://beta.example/e/b-101"


def test_preferred_without_slug_falls_back(resolver, episode_factory):
    ep = episode_factory(1, 2, {"beta": "b-102"})
    resolution = resolver.resolve(ep, "alpha")
    assert resolution.provider_id == "beta"
    assert resolution.url == "https://beta.example/e/b-102"


def test_blank_slug_is_not_a_mapping(resolver, episode_factory):
    ep = episode_factory(1, 1, {"alpha": "  ", "beta": "b-101"})
    assert resolver.resolve(ep, "alpha").provider_id == "beta"


def test_inactive_provider_ignored_then_direct_url(resolver, episode_factory):
    ep = episode_factory(2, 2, {"gamma": "g-202"}, video_url="https://cdn.example/202.mp4")
    resolution = resolver.resolve(ep, "gamma")
    assert resolution.kind == "direct"
    assert resolution.provider_id is None
    assert resolution.url == "https://cdn.example/202.mp4"


def test_nothing_resolves(resolver, episode_factory):
    with pytest.raises(NoPlayableSourceError):
        resolver.resolve(episode_factory(2, 3))


def test_available_providers(resolver, episode_factory):
    ep = episode_factory(1, 1, {"beta": "b", "alpha": "a", "gamma": "g"})
    assert [p.id for p in resolver.available_providers(ep)] == ["alpha", "beta"]
    assert resolver.supports(ep, "beta")
    assert not resolver.supports(ep, "gamma")
    assert not resolver.supports(ep, None)
