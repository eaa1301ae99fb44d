from __future__ import annotations

import asyncio
import logging
import math
from typing import Optional

from watchcore import config
from watchcore.backend import Backend
from watchcore.errors import BackendError
from watchcore.models import WatchProgress

logger = logging.getLogger(__name__)


def clamp(percentage: float) -> float:
    percentage = float(percentage)
    if not math.isfinite(percentage):
        return 0.0
    return max(0.0, min(100.0, percentage))


class ProgressTracker:
    """Reads and writes watch progress for one viewing session.

    Writes for the same episode run one at a time, in the order they were
    requested. Within the session the stored percentage never goes down,
    except for the explicit "started" write made when an episode is entered,
    which opens a new viewing pass at 0.
    """

    def __init__(self, backend: Backend, threshold: float = config.COMPLETION_THRESHOLD):
        self.backend = backend
        self.threshold = threshold
        self._tails: dict[str, asyncio.Task] = {}
        self._high_water: dict[str, float] = {}
        self._pending: set[asyncio.Task] = set()

    def is_completed(self, percentage: float) -> bool:
        return percentage >= self.threshold

    def high_water(self, episode_id: str) -> float:
        return self._high_water.get(episode_id, 0.0)

    async def load(self, user_id: Optional[str], episode_id: str) -> float:
        if user_id is None:
            return 0.0
        record = await self.backend.load_progress(user_id, episode_id)
        if record is None:
            return 0.0
        return clamp(record.progress)

    async def save(self, user_id: Optional[str], anime_id: str, episode_id: str, percentage: float,
                   *, started: bool = False) -> bool:
        """Upsert progress and wait for it. Returns False when nothing was written."""
        task = self.schedule_save(user_id, anime_id, episode_id, percentage, started=started)
        if task is None:
            return False
        return await task

    def schedule_save(self, user_id: Optional[str], anime_id: str, episode_id: str, percentage: float,
                      *, started: bool = False) -> Optional[asyncio.Task]:
        """Queue a write behind any earlier write for the same episode."""
        if user_id is None:
            return None
        if not started and not math.isfinite(float(percentage)):
            logger.warning("Ignoring progress %r for %s", percentage, episode_id)
            return None
        previous = self._tails.get(episode_id)
        task = asyncio.create_task(self._write(previous, user_id, anime_id, episode_id, percentage, started))
        self._tails[episode_id] = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        task.add_done_callback(lambda t: self._drop_tail(episode_id, t))
        return task

    def _drop_tail(self, episode_id: str, task: asyncio.Task) -> None:
        if self._tails.get(episode_id) is task:
            del self._tails[episode_id]

    async def _write(self, previous: Optional[asyncio.Task], user_id: str, anime_id: str, episode_id: str,
                     percentage: float, started: bool) -> bool:
        if previous is not None and not previous.done():
            await asyncio.wait({previous})
        percentage = 0.0 if started else clamp(percentage)
        if not started and percentage < self.high_water(episode_id):
            logger.debug("Skipping progress %.1f for %s, already at %.1f",
                         percentage, episode_id, self.high_water(episode_id))
            return False
        try:
            await self.backend.save_progress(
                user_id, anime_id, episode_id, percentage, self.is_completed(percentage)
            )
        except BackendError as e:
            # progress is best-effort, a failed write must not break playback
            logger.warning("Progress write for %s failed: %s", episode_id, e)
            return False
        self._high_water[episode_id] = percentage
        return True

    def pending(self) -> int:
        return len(self._pending)

    async def flush(self, timeout: float = config.FLUSH_TIMEOUT) -> bool:
        """Wait for outstanding writes. Returns False if some did not finish in time."""
        if not self._pending:
            return True
        _, not_done = await asyncio.wait(set(self._pending), timeout=timeout)
        if not_done:
            logger.warning("%d progress write(s) still pending after %.1fs", len(not_done), timeout)
            return False
        return True

    async def history(self, user_id: Optional[str], limit: int = config.HISTORY_LIMIT) -> list[WatchProgress]:
        if user_id is None:
            return []
        return await self.backend.fetch_history(user_id, limit)
