"""In-memory records kept by the development policy service."""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionLogRecord:
    game: str
    payload: Dict[str, Any]
    received_at: datetime = field(default_factory=_now)


@dataclass
class TrainingRecord:
    game: str
    transitions: List[Dict[str, Any]]
    options: Dict[str, Any]
    received_at: datetime = field(default_factory=_now)


class InMemoryStore:
    """Session logs and training batches, kept for inspection only."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._session_logs: List[SessionLogRecord] = []
        self._training: List[TrainingRecord] = []
        self._action_requests: Dict[str, int] = {}

    def add_session_log(self, record: SessionLogRecord) -> None:
        with self._lock:
            self._session_logs.append(record)

    def add_training_batch(self, record: TrainingRecord) -> None:
        with self._lock:
            self._training.append(record)

    def count_action_request(self, game: str) -> int:
        with self._lock:
            self._action_requests[game] = self._action_requests.get(game, 0) + 1
            return self._action_requests[game]

    def session_logs(self, game: str | None = None) -> List[SessionLogRecord]:
        with self._lock:
            return [r for r in self._session_logs if game is None or r.game == game]

    def training_batches(self, game: str | None = None) -> List[TrainingRecord]:
        with self._lock:
            return [r for r in self._training if game is None or r.game == game]

    def summary(self, game: str) -> Dict[str, Any]:
        batches = self.training_batches(game)
        with self._lock:
            actions = self._action_requests.get(game, 0)
        return {
            "game": game,
            "action_requests": actions,
            "session_logs": len(self.session_logs(game)),
            "training_batches": len(batches),
            "transitions": sum(len(b.transitions) for b in batches),
        }

    def reset(self) -> None:
        with self._lock:
            self._session_logs.clear()
            self._training.clear()
            self._action_requests.clear()


STORE = InMemoryStore()
