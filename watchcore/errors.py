from __future__ import annotations


class WatchError(Exception):
    """Base class for playback errors."""


class NoPlayableSourceError(WatchError):
    def __init__(self, episode_id: str):
        super().__init__(f"No playable source for episode {episode_id}")
        self.episode_id = episode_id


class InvalidProviderError(WatchError):
    def __init__(self, provider_id: str, reason: str = "unknown or inactive"):
        super().__init__(f"Provider {provider_id!r} is {reason}")
        self.provider_id = provider_id
        self.reason = reason


class StaleResolutionDiscarded(WatchError):
    """A resolution finished after a newer episode selection superseded it."""

    def __init__(self, generation: int, current: int):
        super().__init__(f"Resolution #{generation} superseded by #{current}")
        self.generation = generation
        self.current = current


class BackendError(WatchError):
    """The persistence collaborator failed (network, HTTP status, bad payload)."""
