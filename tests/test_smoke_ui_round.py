from __future__ import annotations

import os
from dataclasses import dataclass

import pytest

# Headless SDL for CI.
os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

import pygame  # noqa: E402

from reflex_tap.app import HINT_TEXT, App, ReflexTapScreen, WINDOW_SIZE, run  # noqa: E402
from reflex_tap.clock import PolledScheduler  # noqa: E402
from reflex_tap.persistence import MemoryKeyValueStore  # noqa: E402
from reflex_tap.reflex_core import PerformanceLabel, RoundState, build_game_controller  # noqa: E402
from reflex_tap.scores import BEST_SCORE_KEY, ScoreStore  # noqa: E402


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


@pytest.fixture
def surface():
    pygame.init()
    try:
        yield pygame.display.set_mode(WINDOW_SIZE)
    finally:
        pygame.quit()


def _key(key: int) -> pygame.event.Event:
    return pygame.event.Event(pygame.KEYDOWN, {"key": key, "unicode": ""})


def _build_screen(surface: pygame.Surface, clock: FakeClock, store: MemoryKeyValueStore):
    app = App(surface=surface, font=pygame.font.Font(None, 36))
    scheduler = PolledScheduler(clock)
    controller = build_game_controller(clock=clock, scheduler=scheduler, scores=ScoreStore(store), seed=7)
    app.set_screen(ReflexTapScreen(app, controller=controller, scheduler=scheduler))
    return app, controller


def test_hint_text_per_state() -> None:
    assert HINT_TEXT[RoundState.IDLE] == "Press Enter to start"
    assert HINT_TEXT[RoundState.RESULT] == "Press Enter to try again"
    assert set(HINT_TEXT) == set(RoundState)


def test_screen_round_to_result_then_try_again(surface: pygame.Surface) -> None:
    clock = FakeClock()
    store = MemoryKeyValueStore()
    app, controller = _build_screen(surface, clock, store)
    seen = []
    controller.subscribe(seen.append)

    app.handle_event(_key(pygame.K_RETURN))
    assert controller.state is RoundState.WAITING
    app.render()

    clock.advance(4.0)
    app.render()  # polls the scheduler, cue fires
    assert controller.state is RoundState.READY

    clock.advance(0.19)
    app.handle_event(pygame.event.Event(pygame.MOUSEBUTTONDOWN, {"button": 1, "pos": (10, 10)}))
    app.render()  # result screen: big prompt, label, history chart

    assert controller.state is RoundState.RESULT
    assert controller.label is PerformanceLabel.ELITE
    assert len(controller.scores.history) == 1
    assert seen[-1].prompt == "0.190 s"
    assert store.get(BEST_SCORE_KEY, 0) == pytest.approx(0.19)

    app.handle_event(_key(pygame.K_RETURN))
    app.render()
    assert controller.state is RoundState.IDLE
    assert len(controller.scores.history) == 1


def test_screen_space_during_wait_is_too_soon(surface: pygame.Surface) -> None:
    clock = FakeClock()
    store = MemoryKeyValueStore()
    app, controller = _build_screen(surface, clock, store)
    seen = []
    controller.subscribe(seen.append)

    app.handle_event(_key(pygame.K_RETURN))
    clock.advance(0.5)
    app.render()
    app.handle_event(_key(pygame.K_SPACE))
    app.render()  # draws "Too Soon!"

    assert controller.state is RoundState.IDLE
    assert controller.too_soon is True
    assert seen[-1].too_soon is True
    assert store.get(BEST_SCORE_KEY, 0) == 0

    clock.advance(10.0)
    app.render()
    assert controller.state is RoundState.IDLE


def test_ui_smoke_start_round_then_premature_tap() -> None:
    store = MemoryKeyValueStore()

    def inject(frame: int) -> None:
        # Enter starts a round, Space during the wait is a premature tap,
        # then Enter starts another round.
        if frame == 1:
            pygame.event.post(_key(pygame.K_RETURN))
        elif frame == 2:
            pygame.event.post(pygame.event.Event(pygame.KEYDOWN, {"key": pygame.K_SPACE, "unicode": " "}))
        elif frame == 3:
            pygame.event.post(_key(pygame.K_RETURN))

    assert run(max_frames=8, event_injector=inject, store=store) == 0
    assert store.get(BEST_SCORE_KEY, 0) == 0
