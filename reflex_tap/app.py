"""Pygame UI shell for ReflexTap.

Round timing, scoring and persistence live in reflex_tap/* (core modules);
this module only draws snapshots and forwards input.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

import pygame

from .clock import Clock, PolledScheduler, RealClock
from .persistence import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore
from .reflex_core import (
    FeedbackKind,
    GameController,
    RoundSnapshot,
    RoundState,
    build_game_controller,
    format_seconds,
)
from .scores import ScoreStore

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

DB_PATH_ENV = "REFLEX_TAP_DB_PATH"
DISABLE_PERSISTENCE_ENV = "REFLEX_TAP_DISABLE_PERSISTENCE"

FEEDBACK_PULSE_S = 0.25

HINT_TEXT = {
    RoundState.IDLE: "Press Enter to start",
    RoundState.WAITING: "Wait for green, then Space / click",
    RoundState.READY: "Space / click now!",
    RoundState.RESULT: "Press Enter to try again",
}


def default_db_path() -> Path:
    explicit = os.environ.get(DB_PATH_ENV)
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".reflex_tap_scores.sqlite3"


def default_store() -> KeyValueStore:
    if os.environ.get(DISABLE_PERSISTENCE_ENV, "0") == "1":
        return MemoryKeyValueStore()
    return SqliteKeyValueStore(default_db_path())


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screen: ReflexTapScreen | None = None
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def set_screen(self, screen: ReflexTapScreen) -> None:
        self._screen = screen

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if self._screen is not None:
            self._screen.handle_event(event)

    def render(self) -> None:
        if self._screen is not None:
            self._screen.render(self._surface)


class _PulseFeedback:
    """Desktop stand-in for haptics: a short coloured border pulse."""

    _colors = {
        FeedbackKind.CUE: (250, 250, 250),
        FeedbackKind.SUCCESS: (90, 220, 120),
        FeedbackKind.PREMATURE: (250, 200, 40),
    }

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._kind: FeedbackKind | None = None
        self._started_s = 0.0

    def trigger(self, kind: FeedbackKind) -> None:
        self._kind = kind
        self._started_s = self._clock.now()

    def active_color(self) -> tuple[int, int, int] | None:
        if self._kind is None:
            return None
        if self._clock.now() - self._started_s > FEEDBACK_PULSE_S:
            self._kind = None
            return None
        return self._colors[self._kind]


class ReflexTapScreen:
    def __init__(
        self,
        app: App,
        *,
        controller: GameController,
        scheduler: PolledScheduler,
        pulse: _PulseFeedback | None = None,
    ) -> None:
        self._app = app
        self._controller = controller
        self._scheduler = scheduler
        self._pulse = pulse
        self._snapshot = controller.snapshot()
        controller.subscribe(self._on_change)

        self._title_font = pygame.font.Font(None, 64)
        self._big_font = pygame.font.Font(None, 96)
        self._hint_font = pygame.font.Font(None, 26)

    def _on_change(self, snap: RoundSnapshot) -> None:
        self._snapshot = snap

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN:
            if event.key == pygame.K_ESCAPE:
                self._app.quit()
            elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER):
                self._advance()
            elif event.key == pygame.K_SPACE:
                self._controller.respond()
            return

        if event.type in (pygame.MOUSEBUTTONDOWN, pygame.FINGERDOWN):
            self._controller.respond()
            return

        if event.type == pygame.JOYBUTTONDOWN and event.button == 0:
            self._controller.respond()

    def _advance(self) -> None:
        state = self._controller.state
        if state is RoundState.IDLE:
            self._controller.start_round()
        elif state is RoundState.RESULT:
            # "Try again" returns to idle; the next Enter starts a round.
            self._controller.reset()

    def render(self, surface: pygame.Surface) -> None:
        # Timers are polled here so the cue fires on the UI thread.
        self._scheduler.update()

        w, h = surface.get_size()
        snap = self._snapshot

        bg = (12, 14, 40)
        if snap.state is RoundState.WAITING:
            bg = (150, 30, 40)
        elif snap.state is RoundState.READY:
            bg = (30, 150, 70)
        surface.fill(bg)

        text_main = (240, 244, 255)
        text_muted = (190, 198, 220)

        title = self._title_font.render("ReflexTap", True, text_main)
        surface.blit(title, title.get_rect(center=(w // 2, h // 6)))

        font = self._big_font if snap.state in (RoundState.READY, RoundState.RESULT) else self._app.font
        prompt = font.render(snap.prompt, True, text_main)
        surface.blit(prompt, prompt.get_rect(center=(w // 2, h // 3 + 20)))

        y = h // 3 + 80
        if snap.state is RoundState.RESULT and snap.label is not None:
            label = self._app.font.render(snap.label.value, True, text_muted)
            surface.blit(label, label.get_rect(center=(w // 2, y)))
            y += 30
            if snap.history:
                chart = pygame.Rect(w // 2 - 220, y, 440, max(60, h - y - 70))
                self._draw_history(surface, chart, snap.history)

        if snap.too_soon:
            warn = self._app.font.render("Too Soon!", True, (250, 220, 60))
            surface.blit(warn, warn.get_rect(center=(w // 2, h // 3 + 80)))

        hint = self._hint_font.render(HINT_TEXT[snap.state], True, text_muted)
        surface.blit(hint, hint.get_rect(midbottom=(w // 2, h - 14)))

        if self._pulse is not None:
            color = self._pulse.active_color()
            if color is not None:
                pygame.draw.rect(surface, color, surface.get_rect(), 8)

    def _draw_history(self, surface: pygame.Surface, rect: pygame.Rect, history: tuple[float, ...]) -> None:
        pygame.draw.rect(surface, (24, 28, 64), rect)
        pygame.draw.rect(surface, (90, 100, 150), rect, 1)

        # Fixed 0..1 s y-domain.
        n = len(history)
        points: list[tuple[int, int]] = []
        for i, value in enumerate(history):
            t = 0.5 if n == 1 else i / (n - 1)
            x = rect.x + 16 + int(round(t * (rect.w - 32)))
            v = 0.0 if value <= 0.0 else 1.0 if value >= 1.0 else value
            y = rect.bottom - 8 - int(round(v * (rect.h - 16)))
            points.append((x, y))

        if len(points) >= 2:
            pygame.draw.lines(surface, (160, 200, 255), False, points, 2)
        for p in points:
            pygame.draw.circle(surface, (240, 244, 255), p, 4)

        last = self._hint_font.render(f"last {format_seconds(history[-1])} s", True, (190, 198, 220))
        surface.blit(last, (rect.x + 8, rect.y + 6))


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    store: KeyValueStore | None = None,
) -> int:
    pygame.init()

    pygame.display.set_caption("ReflexTap")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)

    real_clock = RealClock()
    scheduler = PolledScheduler(real_clock)
    pulse = _PulseFeedback(real_clock)
    controller = build_game_controller(
        clock=real_clock,
        scheduler=scheduler,
        scores=ScoreStore(store if store is not None else default_store()),
        feedback=pulse,
    )
    app.set_screen(ReflexTapScreen(app, controller=controller, scheduler=scheduler, pulse=pulse))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        pygame.quit()

    return 0
