"""``!catch`` the square before anyone else; it jumps somewhere new."""

from __future__ import annotations

import random

from showrunner.core.state import ChatCommand
from showrunner.games.base import Game
from showrunner.render.surface import RenderSurface
from showrunner.ui.hud import draw_label, draw_leaderboard, ranked

SQUARE_SIZE = 40
COLORS = ["#e94560", "#0f3460", "#16c79a", "#f5a623", "#8b5cf6", "#ec4899", "#06b6d4"]


class ColorChaseGame(Game):
    display_name = "Color Chase"

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()
        self.width = 0
        self.height = 0
        self.square_x = 0
        self.square_y = 0
        self.color = COLORS[0]
        self.catches: dict[str, int] = {}
        self.last_catcher = ""

    def init(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self.catches = {}
        self.last_catcher = ""
        self._teleport()

    def update(self, delta_ms: float) -> None:
        pass

    def render(self, surface: RenderSurface) -> None:
        surface.fill("#0f0f23")
        surface.fill_rect(self.square_x, self.square_y, SQUARE_SIZE, SQUARE_SIZE, self.color)

        draw_label(surface, 20, 40, "Color Chase  |  Type !catch to score!", size=24, bold=True)
        if self.last_catcher:
            draw_label(surface, 20, 70, f"Last catch: {self.last_catcher}", color="#16c79a")
        draw_leaderboard(surface, 20, 90, "Leaderboard", ranked(self.catches))

    def handle_command(self, cmd: ChatCommand) -> None:
        if cmd.command != "catch":
            return
        self.catches[cmd.identity] = self.catches.get(cmd.identity, 0) + 1
        self.last_catcher = cmd.identity
        self._teleport()

    def _teleport(self) -> None:
        self.square_x = self._rng.randrange(max(1, self.width - SQUARE_SIZE))
        self.square_y = self._rng.randrange(max(1, self.height - SQUARE_SIZE))
        self.color = self._rng.choice(COLORS)
