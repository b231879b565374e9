"""First to ``!type`` the shown word scores a point."""

from __future__ import annotations

import random

from showrunner.core.state import ChatCommand
from showrunner.games.base import Game
from showrunner.render.surface import RenderSurface
from showrunner.ui.hud import draw_label, draw_leaderboard, ranked

WORDS = [
    "stream", "twitch", "gaming", "chat", "emote", "pixel", "score",
    "combo", "turbo", "quest", "loot", "spawn", "ninja", "clutch",
    "hype", "glitch", "boost", "flame", "frost", "blade",
]


class TypingGame(Game):
    display_name = "Typing Game"

    def __init__(self, words: list[str] | None = None, rng: random.Random | None = None) -> None:
        self._words = list(words or WORDS)
        self._rng = rng or random.Random()
        self.width = 0
        self.height = 0
        self.current_word = ""
        self.scores: dict[str, int] = {}
        self.last_winner = ""

    def init(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self.scores = {}
        self.last_winner = ""
        self._pick_new_word()

    def update(self, delta_ms: float) -> None:
        pass

    def render(self, surface: RenderSurface) -> None:
        surface.fill("#1b1b3a")
        draw_label(
            surface, 20, 40, "Typing Game  |  Type !type <word> to score!", size=24, bold=True
        )

        cx, cy = self.width / 2, self.height / 2
        draw_label(surface, cx, cy, self.current_word, size=64, bold=True, color="#06b6d4", align="center")
        if self.last_winner:
            draw_label(
                surface, cx, cy + 40, f"{self.last_winner} got it!", size=18,
                color="#16c79a", align="center",
            )
        draw_leaderboard(surface, 20, 90, "Scoreboard", ranked(self.scores))

    def handle_command(self, cmd: ChatCommand) -> None:
        if cmd.command != "type" or not cmd.args:
            return
        if cmd.args[0].lower() != self.current_word:
            return
        self.scores[cmd.identity] = self.scores.get(cmd.identity, 0) + 1
        self.last_winner = cmd.identity
        self._pick_new_word()

    def _pick_new_word(self) -> None:
        choices = [w for w in self._words if w != self.current_word] or self._words
        self.current_word = self._rng.choice(choices)
