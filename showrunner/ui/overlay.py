"""Ordered overlay composition.

The stack is declared once; layers are updated and rendered in that order,
back to front, on top of the active game's own rendering.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from showrunner.render.surface import RenderSurface

log = logging.getLogger(__name__)

# Back-to-front composition order above the game layer.
OVERLAY_ORDER: tuple[str, ...] = ("chat_feed", "vote_panel", "transition")


@runtime_checkable
class Overlay(Protocol):
    def update(self, delta_ms: float) -> None: ...

    def render(self, surface: RenderSurface) -> None: ...


class OverlayStack:
    """Named overlays composed in a fixed, declared order."""

    def __init__(self, order: tuple[str, ...] = OVERLAY_ORDER) -> None:
        if len(set(order)) != len(order):
            raise ValueError(f"duplicate overlay names in {order}")
        self._order = order
        self._layers: dict[str, Overlay] = {}

    @property
    def order(self) -> tuple[str, ...]:
        return self._order

    def attach(self, name: str, overlay: Overlay) -> None:
        if name not in self._order:
            raise KeyError(f"overlay {name!r} not in declared order {self._order}")
        self._layers[name] = overlay

    def get(self, name: str) -> Overlay | None:
        return self._layers.get(name)

    def layers(self) -> list[Overlay]:
        return [self._layers[n] for n in self._order if n in self._layers]

    def update(self, delta_ms: float) -> None:
        for name in self._order:
            layer = self._layers.get(name)
            if layer is None:
                continue
            try:
                layer.update(delta_ms)
            except Exception:
                log.exception("overlay %s update failed", name)

    def render(self, surface: RenderSurface) -> None:
        for name in self._order:
            layer = self._layers.get(name)
            if layer is None:
                continue
            try:
                layer.render(surface)
            except Exception:
                log.exception("overlay %s render failed", name)

    def program_changed(self, display_name: str) -> None:
        """Tell layers that react to swaps (the transition banner) about one."""
        for layer in self.layers():
            hook = getattr(layer, "trigger", None)
            if callable(hook):
                hook(display_name)
