"""Multiple-choice trivia.

Phases: loading → showing (15 s) → reveal (4 s) → scoreboard (3 s) → next
question, or gameover after the last one.  Only the first ``!a``..``!d`` of
each identity counts per question.  A correct answer scores 100 plus a streak
bonus of 50 per consecutive correct answer, capped at 250.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
from dataclasses import dataclass
from typing import Awaitable, Callable

from showrunner.core.state import ChatCommand
from showrunner.games.base import Game
from showrunner.games.trivia_api import TriviaQuestion, fetch_questions
from showrunner.render.surface import RenderSurface, rgba
from showrunner.ui.easing import clamp01
from showrunner.ui.hud import (
    draw_label,
    draw_leaderboard,
    draw_panel,
    draw_top_bar,
    ranked,
)

log = logging.getLogger(__name__)

SHOWING_MS = 15_000.0
REVEAL_MS = 4_000.0
SCOREBOARD_MS = 3_000.0
FLASH_MS = 500.0
MAX_PARTICLES = 60
BASE_POINTS = 100
STREAK_STEP = 50
STREAK_CAP = 250

LETTERS = {"a": 0, "b": 1, "c": 2, "d": 3}
CARD_COLORS = ["#e94560", "#0f3460", "#16c79a", "#f5a623"]
PARTICLE_COLORS = ["#06b6d4", "#16c79a", "#f5a623", "#e94560"]
_DIFFICULTY_COLORS = {"easy": "#16c79a", "medium": "#f5a623"}

QuestionSource = Callable[[], Awaitable[list[TriviaQuestion]]]


def round_points(streak: int) -> int:
    """Points for a correct answer that extends a streak to *streak*."""
    return BASE_POINTS + min((streak - 1) * STREAK_STEP, STREAK_CAP)


@dataclass(slots=True)
class Particle:
    x: float
    y: float
    vx: float
    vy: float
    life_ms: float
    max_life_ms: float
    color: str
    size: float


class TriviaGame(Game):
    display_name = "Trivia"

    def __init__(
        self,
        fetch: QuestionSource = fetch_questions,
        rng: random.Random | None = None,
    ) -> None:
        self._fetch = fetch
        self._rng = rng or random.Random()
        self._loader: asyncio.Task | None = None
        self._alive = False

        self.width = 0
        self.height = 0
        self.phase = "loading"
        self.phase_ms = 0.0
        self.questions: list[TriviaQuestion] = []
        self.index = 0
        self.answers: dict[str, int] = {}
        self.scores: dict[str, int] = {}
        self.streaks: dict[str, int] = {}
        self.flash_ms = 0.0
        self.particles: list[Particle] = []

    @property
    def current(self) -> TriviaQuestion | None:
        if 0 <= self.index < len(self.questions):
            return self.questions[self.index]
        return None

    def init(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self.phase = "loading"
        self.phase_ms = 0.0
        self.questions = []
        self.index = 0
        self.answers = {}
        self.scores = {}
        self.streaks = {}
        self.flash_ms = 0.0
        self.particles = []
        self._alive = True
        self._loader = asyncio.get_running_loop().create_task(
            self._load(), name="trivia-questions"
        )

    def destroy(self) -> None:
        self._alive = False
        if self._loader is not None and not self._loader.done():
            self._loader.cancel()

    def load_questions(self, questions: list[TriviaQuestion]) -> None:
        self.questions = list(questions)
        self.index = 0
        if self.questions:
            self._start_question()
        else:
            self._enter("gameover")

    def update(self, delta_ms: float) -> None:
        self.phase_ms += delta_ms
        if self.flash_ms > 0:
            self.flash_ms = max(0.0, self.flash_ms - delta_ms)

        dt = delta_ms / 1000.0
        for p in self.particles:
            p.x += p.vx * dt
            p.y += p.vy * dt
            p.vy += 150 * dt
            p.life_ms -= delta_ms
        self.particles = [p for p in self.particles if p.life_ms > 0]

        if self.phase == "showing" and self.phase_ms >= SHOWING_MS:
            self._end_round()
        elif self.phase == "reveal" and self.phase_ms >= REVEAL_MS:
            self._enter("scoreboard")
        elif self.phase == "scoreboard" and self.phase_ms >= SCOREBOARD_MS:
            self.index += 1
            if self.index >= len(self.questions):
                self._enter("gameover")
            else:
                self._start_question()

    def handle_command(self, cmd: ChatCommand) -> None:
        if self.phase != "showing":
            return
        choice = LETTERS.get(cmd.command)
        if choice is None or cmd.identity in self.answers:
            return
        self.answers[cmd.identity] = choice

    # ── Rounds ───────────────────────────────────────────────────

    async def _load(self) -> None:
        questions = await self._fetch()
        if not self._alive:
            return
        self.load_questions(questions)

    def _enter(self, phase: str) -> None:
        self.phase = phase
        self.phase_ms = 0.0

    def _start_question(self) -> None:
        self.answers = {}
        self._enter("showing")

    def _end_round(self) -> None:
        q = self.current
        if q is None:
            return
        any_correct = False
        for identity, choice in self.answers.items():
            if choice == q.correct_index:
                streak = self.streaks.get(identity, 0) + 1
                self.streaks[identity] = streak
                self.scores[identity] = self.scores.get(identity, 0) + round_points(streak)
                any_correct = True
            else:
                self.streaks[identity] = 0

        if any_correct:
            self.flash_ms = FLASH_MS
            self._spawn_particles(self.width / 2, self.height / 2)
        self._enter("reveal")

    def _correct_identities(self) -> list[str]:
        q = self.current
        if q is None:
            return []
        return [i for i, c in self.answers.items() if c == q.correct_index]

    def _spawn_particles(self, cx: float, cy: float, count: int = 12) -> None:
        for i in range(count):
            if len(self.particles) >= MAX_PARTICLES:
                break
            angle = 2 * math.pi * i / count + self._rng.random() * 0.3
            speed = 60 + self._rng.random() * 100
            self.particles.append(
                Particle(
                    x=cx,
                    y=cy,
                    vx=math.cos(angle) * speed,
                    vy=math.sin(angle) * speed - 50,
                    life_ms=500 + self._rng.random() * 400,
                    max_life_ms=900,
                    color=self._rng.choice(PARTICLE_COLORS),
                    size=3 + self._rng.random() * 3,
                )
            )

    # ── Rendering ────────────────────────────────────────────────

    def render(self, surface: RenderSurface) -> None:
        surface.fill("#1b1b3a")
        if self.flash_ms > 0:
            surface.fill(rgba(22, 199, 154, 0.15 * self.flash_ms / FLASH_MS))
        for p in self.particles:
            with surface.opacity(max(0.0, p.life_ms / p.max_life_ms)):
                surface.circle(p.x, p.y, p.size, p.color)

        draw_top_bar(surface, self.width, "Trivia", "!a  !b  !c  !d")
        if self.phase == "loading":
            draw_label(surface, self.width / 2, self.height / 2, "Loading questions...",
                       size=28, bold=True, color="#aaaaaa", align="center")
        elif self.phase == "gameover":
            self._render_game_over(surface)
        else:
            self._render_question(surface)

    def _render_question(self, surface: RenderSurface) -> None:
        q = self.current
        if q is None:
            return
        left = 30
        content_w = self.width - 280

        draw_label(surface, left, 80, q.category, size=14, bold=True, color="#8b5cf6")
        cat_w, _ = surface.measure_text(q.category, 14, True)
        draw_label(surface, left + cat_w + 16, 80, q.difficulty.upper(), size=12, bold=True,
                   color=_DIFFICULTY_COLORS.get(q.difficulty, "#e94560"))
        draw_label(surface, left + content_w, 80, f"{self.index + 1} / {len(self.questions)}",
                   size=14, color="#aaaaaa", align="right")

        lines = wrap_text(surface, q.question, content_w - 20, size=22)
        draw_panel(surface, left - 10, 90, content_w + 10, 20 + len(lines) * 28,
                   bg=rgba(0, 0, 0, 0.4), border=rgba(255, 255, 255, 0.08))
        for i, line in enumerate(lines):
            draw_label(surface, left, 112 + i * 28, line, size=22, bold=True)
        bottom = 112 + len(lines) * 28 + 10

        if self.phase == "showing":
            progress = clamp01(1 - self.phase_ms / SHOWING_MS)
            color = "#16c79a" if progress > 0.5 else "#f5a623" if progress > 0.25 else "#e94560"
            surface.fill_rect(left, bottom, content_w, 8, rgba(255, 255, 255, 0.1))
            surface.fill_rect(left, bottom, content_w * progress, 8, color)

        grid_y = bottom + 25
        card_w, card_h, gap = (content_w - 15) / 2, 70, 15
        revealing = self.phase == "reveal"
        for i, option in enumerate(q.options):
            x = left + (i % 2) * (card_w + gap)
            y = grid_y + (i // 2) * (card_h + gap)
            bg, border = rgba(0, 0, 0, 0.45), rgba(255, 255, 255, 0.12)
            if revealing:
                if i == q.correct_index:
                    bg, border = rgba(22, 199, 154, 0.35), "#16c79a"
                else:
                    bg, border = rgba(233, 69, 96, 0.2), rgba(233, 69, 96, 0.5)
            draw_panel(surface, x, y, card_w, card_h, bg=bg, border=border, border_width=2, radius=10)
            surface.circle(x + 22, y + card_h / 2, 16, CARD_COLORS[i])
            draw_label(surface, x + 22, y + card_h / 2 + 6, "ABCD"[i], bold=True, align="center")
            draw_label(surface, x + 48, y + card_h / 2 + 6,
                       truncate_text(surface, option, card_w - 60, size=18), size=18)
            if revealing:
                count = sum(1 for c in self.answers.values() if c == i)
                if count:
                    draw_label(surface, x + card_w - 12, y + card_h / 2 + 6, str(count),
                               size=14, bold=True, color="#aaaaaa", align="right")

        if revealing:
            info_y = grid_y + 2 * (card_h + gap) + 10
            correct = self._correct_identities()
            if not self.answers:
                text = "No one answered!"
            elif not correct:
                text = "No one got it right!"
            else:
                extra = f" +{len(correct) - 8}" if len(correct) > 8 else ""
                text = f"Correct: {', '.join(correct[:8])}{extra}"
            draw_label(surface, left, info_y, text, bold=True,
                       color="#16c79a" if correct else "#e94560")

        draw_leaderboard(surface, self.width - 240, 60, "Leaderboard", ranked(self.scores), 8)
        if self.phase == "scoreboard":
            self._render_standings(surface)

    def _render_standings(self, surface: RenderSurface) -> None:
        surface.fill(rgba(0, 0, 0, 0.7))
        rows = ranked(self.scores)[:10]
        panel_w = 400
        x, y = (self.width - panel_w) / 2, 80
        draw_panel(surface, x, y, panel_w, 80 + len(rows) * 32, bg=rgba(20, 20, 50, 0.95),
                   border="#f5a623", border_width=2, radius=12)
        draw_label(surface, self.width / 2, y + 35, "Standings", size=24, bold=True,
                   color="#f5a623", align="center")
        for i, (name, score) in enumerate(rows):
            row_y = y + 65 + i * 32
            streak = self.streaks.get(name, 0)
            suffix = f" ({streak}x streak)" if streak >= 2 else ""
            draw_label(surface, x + 20, row_y, f"{i + 1}. {name}", bold=True,
                       color="#ffffff" if i < 3 else "#cccccc")
            draw_label(surface, x + panel_w - 20, row_y, f"{score}{suffix}", size=14,
                       color="#f5a623", align="right")

    def _render_game_over(self, surface: RenderSurface) -> None:
        cx = self.width / 2
        draw_label(surface, cx, 100, "Game Over!", size=40, bold=True, color="#f5a623", align="center")
        draw_label(surface, cx, 140, "Use !skip to play another game", color="#aaaaaa", align="center")
        rows = ranked(self.scores)[:10]
        if not rows:
            draw_label(surface, cx, 220, "No one played!", size=22, bold=True,
                       color="#aaaaaa", align="center")
            return
        panel_w = 420
        x, y = (self.width - panel_w) / 2, 170
        draw_panel(surface, x, y, panel_w, 50 + len(rows) * 34, bg=rgba(0, 0, 0, 0.5),
                   border=rgba(255, 255, 255, 0.1), radius=12)
        draw_label(surface, cx, y + 30, "Final Standings", size=20, bold=True,
                   color="#f5a623", align="center")
        for i, (name, score) in enumerate(rows):
            row_y = y + 60 + i * 34
            draw_label(surface, x + 24, row_y, f"{i + 1}. {name}", size=18, bold=True,
                       color="#ffffff" if i < 3 else "#cccccc")
            draw_label(surface, x + panel_w - 24, row_y, f"{score} pts",
                       color="#f5a623", align="right")


def wrap_text(
    surface: RenderSurface, text: str, max_width: float, size: float, max_lines: int = 3
) -> list[str]:
    lines: list[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if current and surface.measure_text(candidate, size, True)[0] > max_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    if len(lines) > max_lines:
        lines = lines[:max_lines]
        lines[-1] = lines[-1][:-3] + "..."
    return lines


def truncate_text(surface: RenderSurface, text: str, max_width: float, size: float) -> str:
    if surface.measure_text(text, size)[0] <= max_width:
        return text
    cut = text
    while cut and surface.measure_text(cut + "...", size)[0] > max_width:
        cut = cut[:-1]
    return cut + "..."
