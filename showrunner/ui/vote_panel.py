"""Bottom-right skip-vote status panel."""

from __future__ import annotations

from typing import Protocol

from showrunner.render.surface import RenderSurface, rgba
from showrunner.ui.hud import draw_label, draw_panel

_PANEL_W = 190
_PANEL_H = 44


class VoteReadout(Protocol):
    def get_vote_count(self) -> int: ...

    def get_needed_votes(self) -> int: ...


class VotePanel:
    """Reads the vote HUD surface once per update; never writes to it."""

    def __init__(self, votes: VoteReadout, command: str = "!skip") -> None:
        self._votes = votes
        self._command = command
        self._count = 0
        self._needed = 0

    @property
    def label(self) -> str:
        if self._count == 0:
            return f"{self._command} to vote"
        return f"{self._command}  {self._count}/{self._needed}"

    def update(self, delta_ms: float) -> None:
        self._count = self._votes.get_vote_count()
        self._needed = self._votes.get_needed_votes()

    def render(self, surface: RenderSurface) -> None:
        px = surface.width - _PANEL_W - 12
        py = surface.height - _PANEL_H - 12
        accent = "#f5a623" if self._count else "#aaaaaa"
        draw_panel(
            surface, px, py, _PANEL_W, _PANEL_H,
            bg=rgba(0, 0, 0, 0.5), border=rgba(255, 255, 255, 0.08),
        )
        draw_label(surface, px + 12, py + 28, self.label, size=15, bold=True,
                   color=accent)
