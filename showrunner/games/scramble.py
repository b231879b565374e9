"""Unscramble the word: ``!guess <word>``.  Rounds time out after 30 s."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable

from showrunner.core.state import ChatCommand
from showrunner.games.base import Game
from showrunner.games.word_api import fetch_words, scramble_word
from showrunner.render.surface import RenderSurface
from showrunner.ui.easing import clamp01
from showrunner.ui.hud import draw_label, draw_leaderboard, draw_panel, draw_top_bar, ranked

log = logging.getLogger(__name__)

ROUND_TIMEOUT_MS = 30_000.0
REVEAL_MS = 3_000.0

WordSource = Callable[[], Awaitable[list[str]]]


class ScrambleGame(Game):
    display_name = "Word Scramble"

    def __init__(
        self, fetch: WordSource = fetch_words, rng: random.Random | None = None
    ) -> None:
        self._fetch = fetch
        self._rng = rng or random.Random()
        self._loader: asyncio.Task | None = None
        self._alive = False

        self.width = 0
        self.height = 0
        self.phase = "loading"  # loading → playing → reveal → playing ...
        self.phase_ms = 0.0
        self.words: list[str] = []
        self.word = ""
        self.scrambled = ""
        self.round_winner = ""
        self.scores: dict[str, int] = {}

    def init(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self.phase = "loading"
        self.phase_ms = 0.0
        self.scores = {}
        self._alive = True
        self._loader = asyncio.get_running_loop().create_task(
            self._load(), name="scramble-words"
        )

    def destroy(self) -> None:
        self._alive = False
        if self._loader is not None and not self._loader.done():
            self._loader.cancel()

    def load_words(self, words: list[str]) -> None:
        self.words = [w.lower() for w in words if w]
        if self.words:
            self._next_round()

    def update(self, delta_ms: float) -> None:
        self.phase_ms += delta_ms
        if self.phase == "playing" and self.phase_ms >= ROUND_TIMEOUT_MS:
            self.round_winner = ""
            self._enter("reveal")
        elif self.phase == "reveal" and self.phase_ms >= REVEAL_MS:
            self._next_round()

    def render(self, surface: RenderSurface) -> None:
        surface.fill("#1b1b3a")
        draw_top_bar(surface, self.width, "Word Scramble", "!guess <word>")
        cx, cy = self.width / 2, self.height / 2

        if self.phase == "loading":
            draw_label(surface, cx, cy, "Loading words...", size=28, bold=True,
                       color="#aaaaaa", align="center")
            return

        draw_panel(surface, cx - 260, cy - 80, 520, 120, border="#8b5cf6", border_width=2, radius=12)
        if self.phase == "playing":
            spaced = " ".join(self.scrambled.upper())
            draw_label(surface, cx, cy, spaced, size=56, bold=True, color="#06b6d4", align="center")
            progress = clamp01(1 - self.phase_ms / ROUND_TIMEOUT_MS)
            surface.fill_rect(cx - 240, cy + 20, 480, 8, "#ffffff1a")
            surface.fill_rect(cx - 240, cy + 20, 480 * progress, 8,
                              "#16c79a" if progress > 0.25 else "#e94560")
        else:
            draw_label(surface, cx, cy, self.word.upper(), size=56, bold=True,
                       color="#f5a623", align="center")
            result = f"{self.round_winner} got it!" if self.round_winner else "Time's up!"
            draw_label(surface, cx, cy + 80, result, size=20, bold=True,
                       color="#16c79a" if self.round_winner else "#e94560", align="center")

        draw_leaderboard(surface, self.width - 240, 60, "Leaderboard", ranked(self.scores))

    def handle_command(self, cmd: ChatCommand) -> None:
        if cmd.command != "guess" or self.phase != "playing" or not cmd.args:
            return
        if cmd.args[0].lower() != self.word:
            return
        self.scores[cmd.identity] = self.scores.get(cmd.identity, 0) + 1
        self.round_winner = cmd.identity
        self._enter("reveal")

    # ── Internal ─────────────────────────────────────────────────

    async def _load(self) -> None:
        words = await self._fetch()
        if not self._alive:
            return
        self.load_words(words)

    def _enter(self, phase: str) -> None:
        self.phase = phase
        self.phase_ms = 0.0

    def _next_round(self) -> None:
        choices = [w for w in self.words if w != self.word] or self.words
        self.word = self._rng.choice(choices)
        self.scrambled = scramble_word(self.word, self._rng)
        self.round_winner = ""
        self._enter("playing")
