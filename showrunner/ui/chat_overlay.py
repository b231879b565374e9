"""Bottom-left ambient chat feed."""

from __future__ import annotations

from dataclasses import dataclass

from showrunner.render.surface import RenderSurface, rgba
from showrunner.ui.easing import clamp01
from showrunner.ui.hud import draw_label, draw_panel

MAX_MESSAGES = 5
MESSAGE_LIFETIME_MS = 8000.0
_LINE_HEIGHT = 22
_PANEL_W = 280
_MAX_CHARS = 34


@dataclass(slots=True)
class _FeedMessage:
    identity: str
    text: str
    age_ms: float = 0.0


class ChatOverlay:
    def __init__(
        self,
        max_messages: int = MAX_MESSAGES,
        lifetime_ms: float = MESSAGE_LIFETIME_MS,
    ) -> None:
        self._max_messages = max_messages
        self._lifetime_ms = lifetime_ms
        self._messages: list[_FeedMessage] = []

    @property
    def messages(self) -> list[tuple[str, str]]:
        return [(m.identity, m.text) for m in self._messages]

    def add_message(self, identity: str, text: str) -> None:
        self._messages.append(_FeedMessage(identity, text))
        if len(self._messages) > self._max_messages:
            self._messages.pop(0)

    def update(self, delta_ms: float) -> None:
        for msg in self._messages:
            msg.age_ms += delta_ms
        self._messages = [m for m in self._messages if m.age_ms < self._lifetime_ms]

    def render(self, surface: RenderSurface) -> None:
        if not self._messages:
            return

        panel_h = 32 + len(self._messages) * _LINE_HEIGHT
        px = 12
        py = surface.height - panel_h - 12
        draw_panel(
            surface,
            px,
            py,
            _PANEL_W,
            panel_h,
            bg=rgba(0, 0, 0, 0.5),
            border=rgba(255, 255, 255, 0.08),
        )

        fade_start = self._lifetime_ms * 0.75
        fade_span = self._lifetime_ms * 0.25
        for i, msg in enumerate(self._messages):
            fade = 1.0 - clamp01((msg.age_ms - fade_start) / fade_span)
            line = f"{msg.identity}: {msg.text}"
            if len(line) > _MAX_CHARS:
                line = line[: _MAX_CHARS - 3] + "..."
            with surface.opacity(fade):
                draw_label(
                    surface, px + 10, py + 22 + i * _LINE_HEIGHT, line,
                    size=13, color="#dddddd",
                )
