# predictor_api/storage.py
from __future__ import annotations

import json
import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

from predictor_api.models import Player, RoomSettings, RoomState
from predictor_api.normalizer import normalize_match

logger = logging.getLogger(__name__)

# One lock per room file, shared by every RoomStore pointing at it
_locks: Dict[str, threading.RLock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _locks[key] = lock
        return lock


def state_from_dict(raw: Dict[str, Any], now: Optional[datetime] = None) -> RoomState:
    """
    Build a RoomState from stored JSON. Every match passes through the
    normalizer here, so callers only ever see canonical matches.
    """
    raw = raw if isinstance(raw, dict) else {}
    settings = RoomSettings.from_dict(raw.get("settings"))

    players = []
    for p in raw.get("players") or []:
        if isinstance(p, dict) and p.get("id"):
            players.append(Player(id=str(p["id"]), name=str(p.get("name") or "")))

    matches = [
        normalize_match(m, settings.lock_minutes_before_start, players=players, now=now)
        for m in raw.get("matches") or []
        if isinstance(m, dict)
    ]
    return RoomState(settings=settings, players=players, matches=matches)


class RoomStore:
    """
    Whole-room JSON file store.

    - load(): missing or unreadable file -> default room (written back)
    - save(): temp file + os.replace, so readers never see a partial room
    - transaction(): serialized load -> mutate -> save for this room file
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._lock = _lock_for(self.path)

    def load(self, now: Optional[datetime] = None) -> RoomState:
        with self._lock:
            if not self.path.exists():
                state = RoomState()
                self.save(state)
                return state

            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning("Room file %s unreadable (%s); starting a fresh room", self.path, e)
                state = RoomState()
                self.save(state)
                return state

            return state_from_dict(raw, now=now)

    def save(self, state: RoomState) -> None:
        with self._lock:
            if self.path.parent and not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_name(self.path.name + ".tmp")
            tmp.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")
            os.replace(tmp, self.path)

    @contextmanager
    def transaction(self, now: Optional[datetime] = None) -> Iterator[RoomState]:
        """Hold the room lock for a read-modify-write; saves only if the block succeeds."""
        with self._lock:
            state = self.load(now=now)
            yield state
            self.save(state)
