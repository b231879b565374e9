"""Shared HUD drawing helpers used by games and overlays."""

from __future__ import annotations

from typing import Iterable

from showrunner.render.surface import Color, RenderSurface, rgba

PANEL_BG = rgba(0, 0, 0, 0.55)
ACCENT = "#f5a623"


def draw_panel(
    surface: RenderSurface,
    x: float,
    y: float,
    w: float,
    h: float,
    *,
    bg: Color = PANEL_BG,
    border: Color | None = None,
    border_width: int = 1,
    radius: float = 8,
) -> None:
    surface.rounded_rect(x, y, w, h, radius, bg)
    if border is not None:
        surface.rounded_rect(x, y, w, h, radius, border, thickness=border_width)


def draw_label(
    surface: RenderSurface,
    x: float,
    y: float,
    text: str,
    *,
    size: float = 16,
    bold: bool = False,
    color: Color = "#ffffff",
    align: str = "left",
) -> None:
    surface.text(x, y, text, color=color, size=size, bold=bold, align=align)


def draw_leaderboard(
    surface: RenderSurface,
    x: float,
    y: float,
    title: str,
    entries: Iterable[tuple[str, int]],
    max_entries: int = 5,
) -> None:
    """Titled panel of ``name: score`` rows, highest first as given."""
    visible = list(entries)[:max_entries]
    if not visible:
        return

    line_height = 24
    panel_h = 36 + len(visible) * line_height + 8
    draw_panel(surface, x, y, 220, panel_h, border=rgba(255, 255, 255, 0.1))
    draw_label(surface, x + 12, y + 24, title, size=16, bold=True, color=ACCENT)
    for i, (name, score) in enumerate(visible):
        draw_label(
            surface,
            x + 12,
            y + 48 + i * line_height,
            f"{i + 1}. {name}: {score}",
            size=14,
            color="#cccccc",
        )


def draw_top_bar(
    surface: RenderSurface, width: int, game_name: str, instructions: str
) -> None:
    draw_panel(surface, 0, 0, width, 50, bg=rgba(0, 0, 0, 0.65), radius=0)
    draw_label(surface, 16, 32, game_name, size=20, bold=True)
    draw_label(
        surface, width - 16, 32, instructions, size=14, color="#aaaaaa", align="right"
    )


def ranked(scores: dict[str, int]) -> list[tuple[str, int]]:
    """Scores sorted high to low; ties keep first-scored order."""
    return sorted(scores.items(), key=lambda kv: kv[1], reverse=True)
