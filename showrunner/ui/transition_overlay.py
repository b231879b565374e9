"""Full-screen "Now Playing" banner shown when the program changes."""

from __future__ import annotations

from showrunner.render.surface import RenderSurface, rgba
from showrunner.ui.easing import clamp01

FADE_IN_MS = 400.0
HOLD_MS = 1200.0
FADE_OUT_MS = 400.0
TOTAL_MS = FADE_IN_MS + HOLD_MS + FADE_OUT_MS


class TransitionOverlay:
    def __init__(self) -> None:
        self._elapsed_ms = 0.0
        self._active = False
        self._game_name = ""

    @property
    def active(self) -> bool:
        return self._active

    @property
    def game_name(self) -> str:
        return self._game_name

    def trigger(self, game_name: str) -> None:
        self._game_name = game_name
        self._elapsed_ms = 0.0
        self._active = True

    def alpha(self) -> float:
        if not self._active:
            return 0.0
        t = self._elapsed_ms
        if t < FADE_IN_MS:
            return clamp01(t / FADE_IN_MS)
        if t < FADE_IN_MS + HOLD_MS:
            return 1.0
        return 1.0 - clamp01((t - FADE_IN_MS - HOLD_MS) / FADE_OUT_MS)

    def update(self, delta_ms: float) -> None:
        if not self._active:
            return
        self._elapsed_ms += delta_ms
        if self._elapsed_ms >= TOTAL_MS:
            self._active = False

    def render(self, surface: RenderSurface) -> None:
        if not self._active:
            return
        w, h = surface.width, surface.height
        with surface.opacity(self.alpha()):
            surface.fill_rect(0, 0, w, h, rgba(0, 0, 0, 0.7))
            surface.text(w / 2, h / 2 - 20, "Now Playing", size=48, bold=True,
                         align="center")
            surface.text(w / 2, h / 2 + 30, self._game_name, color="#f5a623",
                         size=36, bold=True, align="center")
