from __future__ import annotations

import asyncio
import logging
import math
import threading
import uuid
from dataclasses import asdict
from typing import Callable, Optional

from flask import Flask, abort, jsonify, request

from watchcore import config
from watchcore.backend import Backend, RestBackend
from watchcore.errors import BackendError
from watchcore.models import (
    Advance,
    Checkpoint,
    EpisodeSelected,
    NaturalEnd,
    ProviderSelected,
    Retreat,
    ToggleAutoplay,
    ToggleTheater,
)
from watchcore.navigation import NavigationController
from watchcore.progress import ProgressTracker
from watchcore.session import PlaybackSession

logger = logging.getLogger(__name__)

BackendFactory = Callable[[Optional[str]], Backend]


def intent_from_payload(data: dict):
    name = (data.get("intent") or "").lower()
    if name == "advance":
        return Advance()
    if name == "retreat":
        return Retreat()
    if name == "toggle_theater":
        return ToggleTheater()
    if name == "toggle_autoplay":
        return ToggleAutoplay()
    if name == "natural_end":
        return NaturalEnd()
    if name == "provider_selected" and data.get("provider_id"):
        return ProviderSelected(str(data["provider_id"]))
    if name == "episode_selected" and data.get("episode_id"):
        return EpisodeSelected(str(data["episode_id"]))
    if name == "checkpoint" and data.get("percentage") is not None:
        try:
            percentage = float(data["percentage"])
        except (TypeError, ValueError):
            return None
        return Checkpoint(percentage) if math.isfinite(percentage) else None
    return None


class WatchViews:
    """Open watch views, one session each, all driven by one event loop thread.

    Flask handlers run on worker threads; they submit coroutines to the loop
    and wait for the result, so every session only ever sees one loop.
    """

    def __init__(self, backend_factory: BackendFactory):
        self.backend_factory = backend_factory
        self.views: dict[str, NavigationController] = {}
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                self._loop = asyncio.new_event_loop()
                threading.Thread(target=self._loop.run_forever, name="watch-views", daemon=True).start()
            return self._loop

    def run(self, coro):
        return asyncio.run_coroutine_threadsafe(coro, self._ensure_loop()).result()

    def call(self, fn, *args):
        """Run a plain session method on the loop thread and return its result."""
        async def invoke():
            return fn(*args)
        return self.run(invoke())

    def open(self, anime_key: str, episode_id: Optional[str], user_id: Optional[str]):
        backend = self.backend_factory(user_id)
        session = PlaybackSession(anime_key, backend, tracker=ProgressTracker(backend))
        snapshot = self.run(session.open(episode_id))
        view_id = uuid.uuid4().hex
        with self._lock:
            self.views[view_id] = NavigationController(session)
        return view_id, snapshot

    def get(self, view_id: str) -> Optional[NavigationController]:
        with self._lock:
            return self.views.get(view_id)

    def close(self, view_id: str) -> bool:
        with self._lock:
            controller = self.views.pop(view_id, None)
        if controller is None:
            return False
        return self.run(controller.session.close())

    def history(self, user_id: Optional[str], limit: int):
        tracker = ProgressTracker(self.backend_factory(user_id))
        return self.run(tracker.history(user_id, limit))


def browse(session: PlaybackSession, season: Optional[int], page: Optional[int]):
    """Move the season/range selectors and read the visible page in one step."""
    if season is not None and not session.select_season(season):
        return None, f"Unknown season {season}"
    if page is not None and not session.select_page(page):
        return None, f"Page {page} out of range"
    return {
        "season": session.season,
        "page": session.page_index,
        "episodes": [asdict(ep) for ep in session.visible_episodes()],
    }, None


def progress_as_dict(record) -> dict:
    data = asdict(record)
    if record.last_watched is not None:
        data["last_watched"] = record.last_watched.isoformat()
    return data


def create_app(backend_factory: Optional[BackendFactory] = None) -> Flask:
    app = Flask(__name__)
    views = WatchViews(backend_factory or (lambda user_id: RestBackend(user_id=user_id)))
    app.extensions["watch_views"] = views

    def current_user() -> Optional[str]:
        return request.headers.get("X-User-Id") or None

    def controller_or_404(view_id: str) -> NavigationController:
        controller = views.get(view_id)
        if controller is None:
            abort(404)
        return controller

    @app.errorhandler(BackendError)
    def backend_failed(e):
        return jsonify({"error": str(e)}), 502

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.route('/watch/<anime_key>', methods=['POST'])
    def open_view(anime_key):
        data = request.get_json(silent=True) or {}
        view_id, snapshot = views.open(anime_key, data.get("episode_id"), current_user())
        return jsonify({"view_id": view_id, "session": snapshot.as_dict()}), 201

    @app.route('/watch/view/<view_id>')
    def view_state(view_id):
        controller = controller_or_404(view_id)
        return jsonify(views.call(controller.session.snapshot).as_dict())

    @app.route('/watch/view/<view_id>/intent', methods=['POST'])
    def view_intent(view_id):
        controller = controller_or_404(view_id)
        data = request.get_json(silent=True)
        if not data:
            return jsonify({"error": "No data provided"}), 400
        intent = intent_from_payload(data)
        if intent is None:
            return jsonify({"error": f"Unknown intent {data.get('intent')!r}"}), 400
        snapshot = views.run(controller.dispatch(intent))
        return jsonify(snapshot.as_dict())

    @app.route('/watch/view/<view_id>/key', methods=['POST'])
    def view_key(view_id):
        controller = controller_or_404(view_id)
        data = request.get_json(silent=True) or {}
        if not data.get("key"):
            return jsonify({"error": "No key provided"}), 400
        snapshot = views.run(controller.handle_key(
            data["key"], data.get("target"), bool(data.get("content_editable"))
        ))
        return jsonify(snapshot.as_dict())

    @app.route('/watch/view/<view_id>/episodes')
    def view_episodes(view_id):
        controller = controller_or_404(view_id)
        season = request.args.get('season', type=int)
        page = request.args.get('page', type=int)
        result, error = views.call(browse, controller.session, season, page)
        if error:
            return jsonify({"error": error}), 400
        return jsonify(result)

    @app.route('/watch/view/<view_id>', methods=['DELETE'])
    def close_view(view_id):
        controller_or_404(view_id)
        flushed = views.close(view_id)
        return jsonify({"closed": True, "flushed": flushed})

    @app.route('/history')
    def history():
        limit = request.args.get('limit', config.HISTORY_LIMIT, type=int)
        records = views.history(current_user(), limit)
        return jsonify([progress_as_dict(r) for r in records])

    return app


app = create_app()

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # Disable debug mode for security in production-like environment
    app.run(debug=False, host='0.0.0.0', port=5000)
