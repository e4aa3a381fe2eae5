"""Pygame UI shell for the Mathetris arithmetic drill.

Screens: main menu -> setup -> drill -> results.

Deterministic generation/state/timing lives in mathetris/* (core modules);
this module only renders snapshots and forwards key presses.
"""

from __future__ import annotations

import os
import random
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import pygame
from loguru import logger

from .audio import DrillAudio, cues_between
from .clock import RealClock
from .config import (
    ANSWER_RANGE_CHOICES,
    NUMBER_RANGE_CHOICES,
    STEPS_CHOICES,
    TARGET_TIME_RANGE_S,
    TOTAL_QUESTIONS_RANGE,
    ConfigStore,
    DrillConfig,
    GapPosition,
    next_choice,
)
from .results import format_duration, render_worksheet, summarize
from .session import DrillSession, FinishRecord, SessionSnapshot, SessionState, build_drill_session

LOG_LEVEL_ENV = "MATHETRIS_LOG_LEVEL"

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

ADVANCE_DELAY_S = 0.2
PASS_DELAY_S = 0.1
ERROR_FLASH_S = 0.5

BG = (3, 9, 78)
PANEL_BG = (8, 18, 104)
BORDER = (226, 236, 255)
TEXT_MAIN = (238, 245, 255)
TEXT_MUTED = (186, 200, 224)
ACTIVE_BG = (244, 248, 255)
ACTIVE_TEXT = (14, 26, 74)
GOOD = (150, 220, 160)
BAD = (235, 120, 120)


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # Never pop the last/root screen; root handles its own quit/back behavior.
        if len(self._screens) > 1:
            self._screens.pop()

    def replace(self, screen: Screen) -> None:
        if len(self._screens) > 1:
            self._screens[-1] = screen
        else:
            self._screens.append(screen)

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


def _draw_frame(surface: pygame.Surface, title: str, font: pygame.font.Font) -> pygame.Rect:
    w, h = surface.get_size()
    surface.fill(BG)
    margin = max(10, min(26, w // 34))
    frame = pygame.Rect(margin, margin, max(260, w - margin * 2), max(220, h - margin * 2))
    pygame.draw.rect(surface, PANEL_BG, frame)
    pygame.draw.rect(surface, BORDER, frame, 2)
    text = font.render(title, True, TEXT_MAIN)
    surface.blit(text, text.get_rect(midtop=(frame.centerx, frame.y + 12)))
    return frame


class MenuScreen:
    def __init__(self, app: App, title: str, items: list[MenuItem], *, is_root: bool = False) -> None:
        self._app = app
        self._title = title
        self._items = items
        self._selected = 0
        self._is_root = is_root
        self._title_font = pygame.font.Font(None, 42)
        self._item_font = pygame.font.Font(None, 32)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif event.key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._activate()
        elif event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._back()

    def _move(self, delta: int) -> None:
        if not self._items:
            return
        self._selected = (self._selected + delta) % len(self._items)

    def _activate(self) -> None:
        if not self._items:
            return
        self._items[self._selected].action()

    def _back(self) -> None:
        if self._is_root:
            self._app.quit()
        else:
            self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        frame = _draw_frame(surface, self._title, self._title_font)
        row_h = 44
        y = frame.y + 90
        for idx, item in enumerate(self._items):
            row = pygame.Rect(frame.x + 40, y, frame.w - 80, row_h)
            selected = idx == self._selected
            pygame.draw.rect(surface, ACTIVE_BG if selected else (9, 20, 106), row)
            pygame.draw.rect(surface, (62, 84, 152), row, 1)
            text = self._item_font.render(item.label, True, ACTIVE_TEXT if selected else TEXT_MAIN)
            surface.blit(text, (row.x + 10, row.y + (row.h - text.get_height()) // 2))
            y += row_h + 8

        foot = self._hint_font.render("Enter/Space: Select  |  Esc: Back", True, TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))


class SetupScreen:
    """Edits a DrillConfig field by field; Enter starts a drill with it."""

    _fields = (
        "number_range",
        "answer_range",
        "steps",
        "gap_position",
        "target_time_s",
        "total_questions",
        "difficulty_random",
        "instant_feedback",
        "sound_enabled",
    )
    _labels = {
        "number_range": "Max number",
        "answer_range": "Max answer",
        "steps": "Steps",
        "gap_position": "Gap position",
        "target_time_s": "Seconds per problem",
        "total_questions": "Questions",
        "difficulty_random": "Random difficulty",
        "instant_feedback": "Instant feedback",
        "sound_enabled": "Sound",
    }

    def __init__(self, app: App, *, store: ConfigStore, on_start: Callable[[DrillConfig], None]) -> None:
        self._app = app
        self._store = store
        self._on_start = on_start
        self._config = store.config
        self._selected = 0
        self._title_font = pygame.font.Font(None, 42)
        self._row_font = pygame.font.Font(None, 30)
        self._hint_font = pygame.font.Font(None, 22)

    @property
    def config(self) -> DrillConfig:
        return self._config

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_UP, pygame.K_w):
            self._selected = (self._selected - 1) % len(self._fields)
        elif event.key in (pygame.K_DOWN, pygame.K_s):
            self._selected = (self._selected + 1) % len(self._fields)
        elif event.key in (pygame.K_LEFT, pygame.K_a):
            self._adjust(-1)
        elif event.key in (pygame.K_RIGHT, pygame.K_d):
            self._adjust(1)
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER):
            self._store.save(self._config)
            self._on_start(self._config)
        elif event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._app.pop()

    def _adjust(self, delta: int) -> None:
        field = self._fields[self._selected]
        cfg = self._config
        if field == "number_range":
            cfg = cfg.with_changes(number_range=next_choice(NUMBER_RANGE_CHOICES, cfg.number_range, delta))
        elif field == "answer_range":
            cfg = cfg.with_changes(answer_range=next_choice(ANSWER_RANGE_CHOICES, cfg.answer_range, delta))
        elif field == "steps":
            cfg = cfg.with_changes(steps=next_choice(STEPS_CHOICES, cfg.steps, delta))
        elif field == "gap_position":
            order = list(GapPosition)
            idx = (order.index(cfg.gap_position) + delta) % len(order)
            cfg = cfg.with_changes(gap_position=order[idx])
        elif field == "target_time_s":
            lo, hi = TARGET_TIME_RANGE_S
            cfg = cfg.with_changes(target_time_s=float(max(lo, min(hi, int(cfg.target_time_s) + delta))))
        elif field == "total_questions":
            lo, hi = TOTAL_QUESTIONS_RANGE
            cfg = cfg.with_changes(total_questions=max(lo, min(hi, cfg.total_questions + delta * 5)))
        elif field == "difficulty_random":
            cfg = cfg.with_changes(difficulty_random=not cfg.difficulty_random)
        elif field == "instant_feedback":
            cfg = cfg.with_changes(instant_feedback=not cfg.instant_feedback)
        elif field == "sound_enabled":
            cfg = cfg.with_changes(sound_enabled=not cfg.sound_enabled)
        self._config = cfg

    def _value_text(self, field: str) -> str:
        value = getattr(self._config, field)
        if isinstance(value, bool):
            return "On" if value else "Off"
        if isinstance(value, GapPosition):
            return value.value.title()
        if isinstance(value, float):
            return f"{int(value)}"
        return str(value)

    def render(self, surface: pygame.Surface) -> None:
        frame = _draw_frame(surface, "Drill Setup", self._title_font)
        y = frame.y + 62
        for idx, field in enumerate(self._fields):
            row = pygame.Rect(frame.x + 40, y, frame.w - 80, 34)
            selected = idx == self._selected
            pygame.draw.rect(surface, ACTIVE_BG if selected else (9, 20, 106), row)
            color = ACTIVE_TEXT if selected else TEXT_MAIN
            label = self._row_font.render(self._labels[field], True, color)
            value = self._row_font.render(self._value_text(field), True, color)
            surface.blit(label, (row.x + 10, row.y + 7))
            surface.blit(value, value.get_rect(topright=(row.right - 10, row.y + 7)))
            y += 40

        hint = "Up/Down: Select  |  Left/Right: Change  |  Enter: Start  |  Esc: Back"
        foot = self._hint_font.render(hint, True, TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))


class DrillScreen:
    """Falling-block drill: completed list on the left, upcoming queue on the right."""

    _panel_w = 220

    def __init__(
        self,
        app: App,
        *,
        session_factory: Callable[[], DrillSession],
        on_finish: Callable[[FinishRecord, DrillConfig], None],
        audio: DrillAudio | None = None,
    ) -> None:
        self._app = app
        self._session = session_factory()
        self._on_finish = on_finish
        self._audio = audio
        self._reported = False
        self._last_snap: SessionSnapshot | None = None
        self._block_font = pygame.font.Font(None, 56)
        self._mid_font = pygame.font.Font(None, 40)
        self._panel_font = pygame.font.Font(None, 26)
        self._hint_font = pygame.font.Font(None, 22)
        self._sync_audio(self._session.snapshot())

    @property
    def session(self) -> DrillSession:
        return self._session

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        s = self._session
        if event.key == pygame.K_ESCAPE:
            s.finish()
        elif event.key == pygame.K_BACKSPACE:
            s.backspace()
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER):
            s.submit()
        elif event.key in (pygame.K_SPACE, pygame.K_DOWN):
            s.pass_problem()
        elif event.key == pygame.K_m:
            if self._audio is not None:
                self._audio.set_muted(not self._audio.muted)
        else:
            ch = getattr(event, "unicode", "")
            if len(ch) == 1 and ch in "0123456789":
                s.input_digit(ch)
        self._sync_audio(s.snapshot())
        self._report_if_finished()

    def _sync_audio(self, snap: SessionSnapshot) -> None:
        cues = cues_between(self._last_snap, snap)
        self._last_snap = snap
        if cues and self._audio is not None:
            self._audio.play_all(cues)

    def _report_if_finished(self) -> None:
        if self._reported or not self._session.finished:
            return
        self._reported = True
        record = self._session.finish()
        self._on_finish(record, self._session.config)

    def render(self, surface: pygame.Surface) -> None:
        snap = self._session.update()
        self._sync_audio(snap)
        if snap.state is SessionState.FINISHED:
            self._report_if_finished()
            return

        cfg = self._session.config
        frame = _draw_frame(surface, "Drill", self._mid_font)
        done = snap.attempts_count
        status = f"Done: {done}/{cfg.total_questions}   Correct: {snap.correct_count}"
        surface.blit(self._hint_font.render(status, True, TEXT_MUTED), (frame.x + 16, frame.y + 16))

        body_top = frame.y + 56
        body_h = frame.h - 56 - 40
        left = pygame.Rect(frame.x + 12, body_top, self._panel_w, body_h)
        right = pygame.Rect(frame.right - 12 - self._panel_w, body_top, self._panel_w, body_h)
        self._render_completed(surface, left, snap)
        self._render_upcoming(surface, right, snap)

        problem = snap.current
        if problem is not None:
            # Falling block: reaches the bottom after target_time_s; purely visual.
            progress = min(1.0, snap.presented_for_s / cfg.target_time_s)
            top = body_top + 30
            bottom = body_top + body_h - 30
            y = int(top + (bottom - top) * progress)
            answer = snap.input_text if snap.input_text else "_"
            text = self._block_font.render(problem.fill(answer), True, ACTIVE_TEXT)
            block = text.get_rect(center=(frame.centerx, y)).inflate(32, 20)
            pygame.draw.rect(surface, BAD if snap.error_flash else ACTIVE_BG, block)
            pygame.draw.rect(surface, BORDER, block, 2)
            surface.blit(text, text.get_rect(center=block.center))

        hint = "Digits: Answer  |  Enter: Submit  |  Space/Down: Pass  |  M: Mute  |  Esc: Finish"
        foot = self._hint_font.render(hint, True, TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))

    def _panel(self, surface: pygame.Surface, rect: pygame.Rect, title: str) -> int:
        pygame.draw.rect(surface, (9, 20, 106), rect)
        pygame.draw.rect(surface, (62, 84, 152), rect, 1)
        surface.blit(self._panel_font.render(title, True, TEXT_MAIN), (rect.x + 10, rect.y + 8))
        return rect.y + 36

    def _panel_line(self, surface: pygame.Surface, rect: pygame.Rect, y: int, text: str, color: tuple[int, int, int]) -> None:
        line = self._panel_font.render(text, True, color)
        clip = pygame.Rect(0, 0, min(line.get_width(), rect.w - 20), line.get_height())
        surface.blit(line, (rect.x + 10, y), area=clip)

    def _render_completed(self, surface: pygame.Surface, rect: pygame.Rect, snap: SessionSnapshot) -> None:
        y = self._panel(surface, rect, f"Queue: {snap.queue_length}")
        for problem, correct in zip(snap.completed, snap.completed_correct):
            if y > rect.bottom - 24:
                break
            self._panel_line(surface, rect, y, problem.full_equation, GOOD if correct else BAD)
            y += 24

    def _render_upcoming(self, surface: pygame.Surface, rect: pygame.Rect, snap: SessionSnapshot) -> None:
        y = self._panel(surface, rect, "Next Up")
        for problem in snap.upcoming:
            self._panel_line(surface, rect, y, problem.masked_expression, TEXT_MAIN)
            y += 28
        more = snap.queue_length - len(snap.upcoming)
        if more > 0:
            self._panel_line(surface, rect, y, f"+ {more} more", TEXT_MUTED)


class ResultsScreen:
    def __init__(self, app: App, *, record: FinishRecord, config: DrillConfig) -> None:
        self._app = app
        self._record = record
        self._config = config
        self._summary = summarize(record)
        self._lines = render_worksheet(record, config)
        self._scroll = 0
        self._title_font = pygame.font.Font(None, 42)
        self._row_font = pygame.font.Font(None, 26)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_UP, pygame.K_w):
            self._scroll = max(0, self._scroll - 1)
        elif event.key in (pygame.K_DOWN, pygame.K_s):
            self._scroll = min(max(0, len(self._lines) - 1), self._scroll + 1)
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        frame = _draw_frame(surface, "Results", self._title_font)
        s = self._summary
        acc_pct = int(round(s.accuracy * 100))
        rt = "n/a" if s.mean_rt_ms is None else f"{s.mean_rt_ms / 1000.0:.2f}s"
        header = (
            f"Correct {s.correct}/{s.attempted}   Accuracy {acc_pct}%   "
            f"Time {format_duration(s.total_duration_ms)}   Mean RT {rt}"
        )
        surface.blit(self._row_font.render(header, True, GOOD), (frame.x + 20, frame.y + 60))

        y = frame.y + 100
        for line in self._lines[self._scroll :]:
            if y > frame.bottom - 50:
                break
            color = BAD if line.endswith("(x)") else TEXT_MAIN
            surface.blit(self._row_font.render(line, True, color), (frame.x + 20, y))
            y += 26

        foot = self._hint_font.render("Up/Down: Scroll  |  Enter/Esc: Back", True, TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))


def _configure_logging() -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=os.environ.get(LOG_LEVEL_ENV, "WARNING").upper(),
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def run(*, max_frames: int | None = None, event_injector: Callable[[int], None] | None = None) -> int:
    _configure_logging()
    pygame.init()

    pygame.display.set_caption("Mathetris")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)
    store = ConfigStore(ConfigStore.default_path())
    real_clock = RealClock()
    audio = DrillAudio(muted=not store.config.sound_enabled)

    def show_results(record: FinishRecord, config: DrillConfig) -> None:
        app.replace(ResultsScreen(app, record=record, config=config))

    def start_drill(config: DrillConfig) -> None:
        seed = _new_seed()
        logger.info("Starting drill with seed {}", seed)
        audio.set_muted(not config.sound_enabled)
        app.push(
            DrillScreen(
                app,
                session_factory=lambda: build_drill_session(
                    config,
                    clock=real_clock,
                    seed=seed,
                    advance_delay_s=ADVANCE_DELAY_S,
                    pass_delay_s=PASS_DELAY_S,
                    error_flash_s=ERROR_FLASH_S,
                ),
                on_finish=show_results,
                audio=audio,
            )
        )

    def open_setup() -> None:
        app.push(SetupScreen(app, store=store, on_start=start_drill))

    main_items = [
        MenuItem("Start Drill", open_setup),
        MenuItem("Quit", app.quit),
    ]
    app.push(MenuScreen(app, "Mathetris", main_items, is_root=True))

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
