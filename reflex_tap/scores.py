from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass

from .persistence import KeyValueStore, MemoryKeyValueStore, PersistenceUnavailable

BEST_SCORE_KEY = "bestScore"
HISTORY_KEY = "reactionHistory"
HISTORY_CAPACITY = 10

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScoreState:
    """Best score (None = no successful round yet) and oldest-first history."""

    best_score_s: float | None
    history: tuple[float, ...]


def _as_duration(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if math.isnan(out) or math.isinf(out) or out < 0.0:
        return None
    return out


class ScoreStore:
    """Owns the best score and the bounded reaction history.

    The persisted form uses two keys: ``bestScore`` (0 means unset) and
    ``reactionHistory`` (list of seconds). Backend failures never escape;
    the in-memory state stays authoritative for the running session.
    """

    def __init__(self, backend: KeyValueStore | None = None) -> None:
        self._backend: KeyValueStore = backend if backend is not None else MemoryKeyValueStore()
        self._best: float | None = None
        self._history: deque[float] = deque(maxlen=HISTORY_CAPACITY)

    def load(self) -> ScoreState:
        try:
            raw_best = self._backend.get(BEST_SCORE_KEY, 0)
            raw_history = self._backend.get(HISTORY_KEY, [])
        except PersistenceUnavailable as exc:
            logger.warning("score store unavailable, starting empty: %s", exc)
            raw_best, raw_history = 0, []

        best = _as_duration(raw_best)
        self._best = None if not best else best

        self._history.clear()
        if isinstance(raw_history, list):
            for item in raw_history:
                value = _as_duration(item)
                if value is not None:
                    self._history.append(value)
        return self.state()

    def state(self) -> ScoreState:
        return ScoreState(best_score_s=self._best, history=tuple(self._history))

    @property
    def best_score_s(self) -> float | None:
        return self._best

    def history(self) -> list[float]:
        return list(self._history)

    def record_result(self, reaction_time_s: float) -> ScoreState:
        rt = float(reaction_time_s)
        if rt < 0.0 or math.isnan(rt):
            raise ValueError("reaction_time_s must be >= 0")

        if self._best is None or rt < self._best:
            self._best = rt
        self._history.append(rt)

        # A best of exactly 0.0 is written as the unset sentinel and reloads as None.
        try:
            self._backend.set_many(
                {
                    BEST_SCORE_KEY: 0.0 if self._best is None else self._best,
                    HISTORY_KEY: list(self._history),
                }
            )
        except PersistenceUnavailable as exc:
            logger.warning("could not save scores, keeping them in memory: %s", exc)
        return self.state()
