from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Optional, Protocol

import requests

from watchcore import config
from watchcore.errors import BackendError
from watchcore.models import Episode, Provider, WatchProgress

logger = logging.getLogger(__name__)

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)


class Backend(Protocol):
    """Operations the playback core consumes from the persistence layer."""

    async def fetch_episodes(self, anime_key: str) -> list[Episode]: ...

    async def fetch_active_providers(self) -> list[Provider]: ...

    async def load_progress(self, user_id: str, episode_id: str) -> Optional[WatchProgress]: ...

    async def save_progress(
        self, user_id: str, anime_id: str, episode_id: str, percentage: float, completed: bool
    ) -> None: ...

    async def fetch_history(self, user_id: str, limit: int = config.HISTORY_LIMIT) -> list[WatchProgress]: ...

    def current_user_id(self) -> Optional[str]: ...


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def episode_from_row(row: dict) -> Episode:
    return Episode(
        id=row["id"],
        anime_id=row["anime_id"],
        season_number=int(row.get("season_number") or 1),
        episode_number=int(row["episode_number"]),
        title=row.get("title"),
        description=row.get("description"),
        thumbnail=row.get("thumbnail"),
        duration=row.get("duration"),
        video_url=row.get("video_url") or None,
        slugs={str(k): str(v) for k, v in (row.get("server_slugs") or {}).items() if v},
    )


def provider_from_row(row: dict) -> Provider:
    return Provider(
        id=row["id"],
        name=row.get("name", ""),
        embed_url=row.get("embed_url", ""),
        is_active=bool(row.get("is_active", True)),
        order_index=int(row.get("order_index") or 0),
    )


def progress_from_row(row: dict) -> WatchProgress:
    return WatchProgress(
        user_id=row["user_id"],
        anime_id=row["anime_id"],
        episode_id=row["episode_id"],
        progress=float(row.get("progress") or 0),
        completed=bool(row.get("completed")),
        last_watched=_parse_time(row.get("last_watched")),
    )


class RestBackend:
    """PostgREST client for the episodes, embed_servers and watch_history tables.

    ``requests`` is blocking, so every public coroutine hands the call to a
    worker thread and the event loop stays free for the UI.
    """

    def __init__(self, base_url: str = config.SUPABASE_URL, api_key: str = config.SUPABASE_KEY,
                 user_id: Optional[str] = None, access_token: Optional[str] = None):
        self.base_url = base_url.rstrip("/") + config.REST_PREFIX
        self.user_id = user_id
        self.session = requests.Session()
        self.session.headers.update(config.HEADERS)
        if api_key:
            self.session.headers["apikey"] = api_key
            self.session.headers["Authorization"] = f"Bearer {access_token or api_key}"

    def current_user_id(self) -> Optional[str]:
        return self.user_id

    def _request(self, method: str, table: str, params: dict | None = None, **kwargs):
        url = f"{self.base_url}/{table}"
        try:
            response = self.session.request(method, url, params=params, timeout=config.REQUEST_TIMEOUT, **kwargs)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise BackendError(f"{method} {table} failed: {e}") from e
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"{method} {table} returned invalid JSON") from e

    def _get_rows(self, table: str, params: dict) -> list[dict]:
        return self._request("GET", table, params) or []

    def _convert(self, table: str, rows: list, convert):
        try:
            return [convert(row) for row in rows]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed %s row: %r", table, e)
            raise BackendError(f"{table} returned a malformed row: {e!r}") from e

    def _resolve_anime_id(self, anime_key: str) -> Optional[str]:
        if UUID_RE.match(anime_key):
            return anime_key
        rows = self._get_rows("anime", {"slug": f"eq.{anime_key}", "select": "id", "limit": "1"})
        return self._convert("anime", rows[:1], lambda row: row["id"])[0] if rows else None

    def _fetch_episodes(self, anime_key: str) -> list[Episode]:
        anime_id = self._resolve_anime_id(anime_key)
        if anime_id is None:
            return []
        rows = self._get_rows("episodes", {
            "anime_id": f"eq.{anime_id}",
            "select": "*",
            "order": "season_number,episode_number",
        })
        return self._convert("episodes", rows, episode_from_row)

    def _fetch_active_providers(self) -> list[Provider]:
        rows = self._get_rows("embed_servers", {"is_active": "eq.true", "select": "*", "order": "order_index"})
        return self._convert("embed_servers", rows, provider_from_row)

    def _load_progress(self, user_id: str, episode_id: str) -> Optional[WatchProgress]:
        rows = self._get_rows("watch_history", {
            "user_id": f"eq.{user_id}",
            "episode_id": f"eq.{episode_id}",
            "select": "*",
            "limit": "1",
        })
        return self._convert("watch_history", rows[:1], progress_from_row)[0] if rows else None

    def _save_progress(self, user_id: str, anime_id: str, episode_id: str, percentage: float, completed: bool) -> None:
        payload = {
            "user_id": user_id,
            "anime_id": anime_id,
            "episode_id": episode_id,
            "progress": percentage,
            "completed": completed,
            "last_watched": datetime.now(timezone.utc).isoformat(),
        }
        self._request(
            "POST",
            "watch_history",
            {"on_conflict": "user_id,episode_id"},
            json=payload,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    def _fetch_history(self, user_id: str, limit: int) -> list[WatchProgress]:
        rows = self._get_rows("watch_history", {
            "user_id": f"eq.{user_id}",
            "select": "*",
            "order": "last_watched.desc",
            "limit": str(limit),
        })
        return self._convert("watch_history", rows, progress_from_row)

    async def fetch_episodes(self, anime_key: str) -> list[Episode]:
        return await asyncio.to_thread(self._fetch_episodes, anime_key)

    async def fetch_active_providers(self) -> list[Provider]:
        return await asyncio.to_thread(self._fetch_active_providers)

    async def load_progress(self, user_id: str, episode_id: str) -> Optional[WatchProgress]:
        return await asyncio.to_thread(self._load_progress, user_id, episode_id)

    async def save_progress(self, user_id: str, anime_id: str, episode_id: str, percentage: float, completed: bool) -> None:
        await asyncio.to_thread(self._save_progress, user_id, anime_id, episode_id, percentage, completed)

    async def fetch_history(self, user_id: str, limit: int = config.HISTORY_LIMIT) -> list[WatchProgress]:
        return await asyncio.to_thread(self._fetch_history, user_id, limit)


class MemoryBackend:
    """In-process store, used for local runs and tests."""

    def __init__(self, episodes: list[Episode] | None = None, providers: list[Provider] | None = None,
                 user_id: Optional[str] = None, anime_slugs: dict[str, str] | None = None):
        self.episodes: list[Episode] = list(episodes or [])
        self.providers: list[Provider] = list(providers or [])
        self.anime_slugs: dict[str, str] = dict(anime_slugs or {})
        self.progress: dict[tuple[str, str], WatchProgress] = {}
        self.user_id = user_id

    def current_user_id(self) -> Optional[str]:
        return self.user_id

    async def fetch_episodes(self, anime_key: str) -> list[Episode]:
        anime_id = self.anime_slugs.get(anime_key, anime_key)
        return [ep for ep in self.episodes if ep.anime_id == anime_id]

    async def fetch_active_providers(self) -> list[Provider]:
        return sorted((p for p in self.providers if p.is_active), key=lambda p: p.order_index)

    async def load_progress(self, user_id: str, episode_id: str) -> Optional[WatchProgress]:
        return self.progress.get((user_id, episode_id))

    async def save_progress(self, user_id: str, anime_id: str, episode_id: str, percentage: float, completed: bool) -> None:
        self.progress[(user_id, episode_id)] = WatchProgress(
            user_id=user_id,
            anime_id=anime_id,
            episode_id=episode_id,
            progress=percentage,
            completed=completed,
            last_watched=datetime.now(timezone.utc),
        )

    async def fetch_history(self, user_id: str, limit: int = config.HISTORY_LIMIT) -> list[WatchProgress]:
        records = [p for (uid, _), p in self.progress.items() if uid == user_id]
        records.sort(key=lambda p: p.last_watched or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return records[:limit]
