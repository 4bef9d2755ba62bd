from __future__ import annotations

import logging
import random
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .clock import Clock, Scheduler, TimerHandle
from .scores import ScoreState, ScoreStore

MIN_CUE_DELAY_S = 1.5
MAX_CUE_DELAY_S = 4.0

logger = logging.getLogger(__name__)


class RoundState(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"
    READY = "ready"
    RESULT = "result"


class PerformanceLabel(str, Enum):
    ELITE = "Elite Reflexes"
    FAST = "Fast"
    AVERAGE = "Average"
    NEEDS_PRACTICE = "Needs Practice"


class FeedbackKind(str, Enum):
    CUE = "cue"
    SUCCESS = "success"
    PREMATURE = "premature"


class Feedback(Protocol):
    """External haptics/sound collaborator. Only trigger points live here."""

    def trigger(self, kind: FeedbackKind) -> None: ...


@dataclass(frozen=True, slots=True)
class RoundSnapshot:
    """View model delivered to listeners on every transition (pure data)."""

    state: RoundState
    reaction_time_s: float | None
    label: PerformanceLabel | None
    too_soon: bool
    best_score_s: float | None
    history: tuple[float, ...]
    prompt: str


def classify(reaction_time_s: float) -> PerformanceLabel:
    # Lower bounds inclusive: exactly 0.200 is FAST.
    if reaction_time_s < 0.200:
        return PerformanceLabel.ELITE
    if reaction_time_s < 0.250:
        return PerformanceLabel.FAST
    if reaction_time_s < 0.300:
        return PerformanceLabel.AVERAGE
    return PerformanceLabel.NEEDS_PRACTICE


def format_seconds(value_s: float) -> str:
    return f"{value_s:.3f}"


def format_best_score(best_s: float | None) -> str:
    return "--" if best_s is None else format_seconds(best_s)


class GameController:
    """Reaction round state machine: idle -> waiting -> ready -> result.

    - A premature respond() while waiting aborts to idle with the too-soon flag.
    - Time comes from the injected Clock, the cue timer from the injected
      Scheduler. Each start_round() bumps a generation counter; a cue callback
      from an older generation does nothing.
    - Rejected calls return False and are logged, never raised.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        scheduler: Scheduler,
        scores: ScoreStore,
        feedback: Feedback | None = None,
        rng: random.Random | None = None,
        min_delay_s: float = MIN_CUE_DELAY_S,
        max_delay_s: float = MAX_CUE_DELAY_S,
    ) -> None:
        if min_delay_s < 0.0:
            raise ValueError("min_delay_s must be >= 0")
        if max_delay_s < min_delay_s:
            raise ValueError("max_delay_s must be >= min_delay_s")

        self._clock = clock
        self._scheduler = scheduler
        self._scores = scores
        self._feedback = feedback
        self._rng = rng if rng is not None else random.Random()
        self._min_delay_s = float(min_delay_s)
        self._max_delay_s = float(max_delay_s)

        self._state = RoundState.IDLE
        self._generation = 0
        self._timer: TimerHandle | None = None
        self._cue_timestamp_s: float | None = None
        self._reaction_time_s: float | None = None
        self._too_soon = False

        self._listeners: list[Callable[[RoundSnapshot], None]] = []
        self._pending: deque[RoundSnapshot] = deque()
        self._notifying = False

    @property
    def state(self) -> RoundState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def too_soon(self) -> bool:
        return self._too_soon

    @property
    def cue_timestamp_s(self) -> float | None:
        return self._cue_timestamp_s

    @property
    def reaction_time_s(self) -> float | None:
        return self._reaction_time_s

    @property
    def label(self) -> PerformanceLabel | None:
        if self._reaction_time_s is None:
            return None
        return classify(self._reaction_time_s)

    @property
    def scores(self) -> ScoreState:
        return self._scores.state()

    def subscribe(self, listener: Callable[[RoundSnapshot], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start_round(self) -> bool:
        if self._state not in (RoundState.IDLE, RoundState.RESULT):
            logger.debug("start_round ignored in state %s", self._state.value)
            return False

        self._cancel_timer()
        self._generation += 1
        self._too_soon = False
        self._cue_timestamp_s = None
        self._reaction_time_s = None
        self._state = RoundState.WAITING

        delay_s = self._rng.uniform(self._min_delay_s, self._max_delay_s)
        generation = self._generation
        self._timer = self._scheduler.call_later(delay_s, lambda: self._fire_cue(generation))
        logger.debug("round %d waiting %.3fs for cue", generation, delay_s)

        self._notify()
        return True

    def respond(self) -> bool:
        if self._state is RoundState.WAITING:
            self._cancel_timer()
            self._generation += 1
            self._too_soon = True
            self._cue_timestamp_s = None
            self._state = RoundState.IDLE
            self._trigger(FeedbackKind.PREMATURE)
            self._notify()
            return True

        if self._state is RoundState.READY:
            answered_at_s = self._clock.now()
            assert self._cue_timestamp_s is not None
            rt = max(0.0, answered_at_s - self._cue_timestamp_s)

            self._reaction_time_s = rt
            self._scores.record_result(rt)
            self._too_soon = False
            self._state = RoundState.RESULT
            logger.info("round %d completed in %ss (%s)", self._generation, format_seconds(rt), classify(rt).value)
            self._trigger(FeedbackKind.SUCCESS)
            self._notify()
            return True

        return False

    def reset(self) -> bool:
        # Also aborts an in-flight round; scores are untouched either way.
        if self._state is RoundState.IDLE:
            return False

        self._cancel_timer()
        self._generation += 1
        self._cue_timestamp_s = None
        self._reaction_time_s = None
        self._state = RoundState.IDLE
        self._notify()
        return True

    def snapshot(self) -> RoundSnapshot:
        scores = self._scores.state()
        return RoundSnapshot(
            state=self._state,
            reaction_time_s=self._reaction_time_s,
            label=self.label,
            too_soon=self._too_soon,
            best_score_s=scores.best_score_s,
            history=scores.history,
            prompt=self._prompt_text(scores),
        )

    def _fire_cue(self, generation: int) -> None:
        if generation != self._generation or self._state is not RoundState.WAITING:
            logger.debug("stale cue for round %d ignored", generation)
            return

        # Timestamp and state change together before anyone is notified.
        self._cue_timestamp_s = self._clock.now()
        self._state = RoundState.READY
        self._timer = None
        self._trigger(FeedbackKind.CUE)
        self._notify()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _trigger(self, kind: FeedbackKind) -> None:
        if self._feedback is not None:
            self._feedback.trigger(kind)

    def _notify(self) -> None:
        if not self._listeners:
            return
        self._pending.append(self.snapshot())
        # A listener that drives the controller queues behind the current snapshot.
        if self._notifying:
            return

        self._notifying = True
        try:
            while self._pending:
                snap = self._pending.popleft()
                for listener in list(self._listeners):
                    listener(snap)
        finally:
            self._notifying = False
            self._pending.clear()

    def _prompt_text(self, scores: ScoreState) -> str:
        if self._state is RoundState.IDLE:
            return f"Best: {format_best_score(scores.best_score_s)} s"
        if self._state is RoundState.WAITING:
            return "Wait for Green..."
        if self._state is RoundState.READY:
            return "TAP!"
        assert self._reaction_time_s is not None
        return f"{format_seconds(self._reaction_time_s)} s"


def build_game_controller(
    *,
    clock: Clock,
    scheduler: Scheduler,
    scores: ScoreStore,
    feedback: Feedback | None = None,
    seed: int | None = None,
) -> GameController:
    """Build a controller with scores loaded from the store's backend."""

    scores.load()
    return GameController(
        clock=clock,
        scheduler=scheduler,
        scores=scores,
        feedback=feedback,
        rng=None if seed is None else random.Random(int(seed)),
    )
