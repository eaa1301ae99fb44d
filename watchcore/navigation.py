from __future__ import annotations

import logging
from typing import Optional

from watchcore import config
from watchcore.models import (
    Advance,
    Checkpoint,
    EpisodeSelected,
    NaturalEnd,
    ProviderSelected,
    Retreat,
    SessionSnapshot,
    ToggleAutoplay,
    ToggleTheater,
)
from watchcore.session import PlaybackSession

logger = logging.getLogger(__name__)

Intent = Advance | Retreat | ToggleTheater | ToggleAutoplay | ProviderSelected | EpisodeSelected | NaturalEnd | Checkpoint

DEFAULT_BINDINGS = {
    config.NEXT_KEY: Advance(),
    config.PREVIOUS_KEY: Retreat(),
    config.THEATER_KEY.lower(): ToggleTheater(),
}


def is_text_input(target: Optional[str], content_editable: bool = False) -> bool:
    """True when keyboard focus sits in a field the user is typing into."""
    if content_editable:
        return True
    return bool(target) and target.lower() in config.TEXT_INPUT_TAGS


class NavigationController:
    """Turns clicks, key presses and player events into session transitions."""

    def __init__(self, session: PlaybackSession, bindings: Optional[dict] = None):
        self.session = session
        self.bindings = dict(DEFAULT_BINDINGS if bindings is None else bindings)

    async def advance(self) -> bool:
        current = self.session.episode
        if current is None:
            return False
        target = self.session.catalog.next(current.id)
        if target is None:
            logger.debug("Already at the last episode (%s)", current.id)
            return False
        await self.session.select_episode(target)
        return True

    async def retreat(self) -> bool:
        current = self.session.episode
        if current is None:
            return False
        target = self.session.catalog.previous(current.id)
        if target is None:
            return False
        await self.session.select_episode(target)
        return True

    async def natural_end(self) -> bool:
        if self.session.autoplay:
            return await self.advance()
        self.session.mark_finished()
        return False

    def intent_for_key(self, key: str, target: Optional[str] = None, content_editable: bool = False):
        if is_text_input(target, content_editable):
            return None
        return self.bindings.get(key) or self.bindings.get(key.lower())

    async def handle_key(self, key: str, target: Optional[str] = None, content_editable: bool = False) -> SessionSnapshot:
        intent = self.intent_for_key(key, target, content_editable)
        if intent is None:
            return self.session.snapshot()
        return await self.dispatch(intent)

    async def dispatch(self, intent: Intent) -> SessionSnapshot:
        session = self.session
        if session.closed:
            return session.snapshot()

        if isinstance(intent, Advance):
            await self.advance()
        elif isinstance(intent, Retreat):
            await self.retreat()
        elif isinstance(intent, ToggleTheater):
            session.toggle_theater_mode()
        elif isinstance(intent, ToggleAutoplay):
            session.toggle_autoplay()
        elif isinstance(intent, ProviderSelected):
            session.select_provider(intent.provider_id)
        elif isinstance(intent, EpisodeSelected):
            await session.select_episode(intent.episode_id)
        elif isinstance(intent, NaturalEnd):
            await self.natural_end()
        elif isinstance(intent, Checkpoint):
            await session.checkpoint(intent.percentage)
        else:
            raise TypeError(f"Unknown intent {intent!r}")
        return session.snapshot()
