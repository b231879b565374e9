"""Chat-steered ball: each direction command is a short velocity impulse."""

from __future__ import annotations

from dataclasses import dataclass

from showrunner.core.state import ChatCommand
from showrunner.games.base import Game
from showrunner.render.surface import RenderSurface, rgba
from showrunner.ui.hud import draw_label

IMPULSE_SPEED = 200.0  # px/s
IMPULSE_DURATION_MS = 300.0
BALL_RADIUS = 20

DIRECTIONS: dict[str, tuple[int, int]] = {
    "up": (0, -1),
    "down": (0, 1),
    "left": (-1, 0),
    "right": (1, 0),
}


@dataclass(slots=True)
class Impulse:
    dx: int
    dy: int
    remaining_ms: float = IMPULSE_DURATION_MS


class BallGame(Game):
    display_name = "Ball Game"

    def __init__(self) -> None:
        self.width = 0
        self.height = 0
        self.x = 0.0
        self.y = 0.0
        self.impulses: list[Impulse] = []

    def init(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self.x = width / 2
        self.y = height / 2
        self.impulses = []

    def update(self, delta_ms: float) -> None:
        for imp in self.impulses:
            step = min(delta_ms, imp.remaining_ms)
            dist = IMPULSE_SPEED * step / 1000.0
            self.x += imp.dx * dist
            self.y += imp.dy * dist
            imp.remaining_ms -= step
        self.impulses = [imp for imp in self.impulses if imp.remaining_ms > 0]

        self.x = max(BALL_RADIUS, min(self.width - BALL_RADIUS, self.x))
        self.y = max(BALL_RADIUS, min(self.height - BALL_RADIUS, self.y))

    def render(self, surface: RenderSurface) -> None:
        surface.fill("#1a1a2e")
        surface.circle(self.x, self.y, BALL_RADIUS, "#e94560")
        surface.circle(self.x - 5, self.y - 5, BALL_RADIUS * 0.4, rgba(255, 255, 255, 0.3))

        draw_label(surface, 20, 40, "Chat Commands: !up !down !left !right", size=24, bold=True)
        draw_label(
            surface,
            20,
            70,
            f"Ball: ({round(self.x)}, {round(self.y)})",
            color="#aaaaaa",
        )
        if self.impulses:
            draw_label(
                surface, 20, 95, f"Active impulses: {len(self.impulses)}", color="#aaaaaa"
            )

    def handle_command(self, cmd: ChatCommand) -> None:
        direction = DIRECTIONS.get(cmd.command)
        if direction is None:
            return
        self.impulses.append(Impulse(*direction))
