"""Fixed-size RGBA drawing surface backed by a numpy array.

Pixels are stored row-major as ``(height, width, 4)`` uint8, which is exactly
the ``rgba`` rawvideo layout the encoder reads from stdin, so extracting a
frame is a single ``tobytes()``.

Primitives go through OpenCV.  Translucent colours and the opacity stack are
blended onto the surface; the stored alpha channel is always opaque.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator, Union

import cv2
import numpy as np

Color = Union[str, tuple[int, int, int], tuple[int, int, int, int]]

_FONT = cv2.FONT_HERSHEY_SIMPLEX
# Hershey simplex cap height is ~22 px at scale 1.0; text sizes are given in
# CSS-like pixel sizes so this maps them onto OpenCV's scale.
_FONT_PX_PER_SCALE = 30.0


def rgba(r: int, g: int, b: int, a: float = 1.0) -> tuple[int, int, int, int]:
    """CSS-style ``rgba()`` with a 0..1 alpha."""
    return (int(r), int(g), int(b), int(round(max(0.0, min(1.0, a)) * 255)))


def parse_color(color: Color) -> tuple[int, int, int, int]:
    """Normalise ``#rrggbb`` / ``#rrggbbaa`` / 3- or 4-tuples to RGBA ints."""
    if isinstance(color, str):
        s = color.lstrip("#")
        if len(s) == 3:
            s = "".join(ch * 2 for ch in s)
        if len(s) not in (6, 8):
            raise ValueError(f"bad colour: {color!r}")
        r, g, b = int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16)
        a = int(s[6:8], 16) if len(s) == 8 else 255
        return (r, g, b, a)
    if len(color) == 3:
        r, g, b = color  # type: ignore[misc]
        return (int(r), int(g), int(b), 255)
    if len(color) == 4:
        r, g, b, a = color  # type: ignore[misc]
        return (int(r), int(g), int(b), int(a))
    raise ValueError(f"bad colour: {color!r}")


class RenderSurface:
    """Addressable 2D drawing context of fixed width/height."""

    def __init__(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"invalid surface size {width}x{height}")
        self.width = width
        self.height = height
        self._pixels = np.zeros((height, width, 4), dtype=np.uint8)
        self._pixels[..., 3] = 255
        self._opacity = 1.0

    @property
    def pixels(self) -> np.ndarray:
        return self._pixels

    @property
    def frame_size(self) -> int:
        return self.width * self.height * 4

    # ── Frame lifecycle ──────────────────────────────────────────

    def clear(self) -> None:
        """Opaque black."""
        self._pixels[..., :3] = 0
        self._pixels[..., 3] = 255

    def to_bytes(self) -> bytes:
        """Raw packed RGBA buffer for the encoder."""
        return self._pixels.tobytes()

    @contextmanager
    def opacity(self, alpha: float) -> Iterator[None]:
        """Multiply the alpha of everything drawn inside the block."""
        prev = self._opacity
        self._opacity = prev * max(0.0, min(1.0, alpha))
        try:
            yield
        finally:
            self._opacity = prev

    # ── Primitives ───────────────────────────────────────────────

    def fill(self, color: Color) -> None:
        self.fill_rect(0, 0, self.width, self.height, color)

    def fill_rect(self, x: float, y: float, w: float, h: float, color: Color) -> None:
        x0 = max(0, int(round(x)))
        y0 = max(0, int(round(y)))
        x1 = min(self.width, int(round(x + w)))
        y1 = min(self.height, int(round(y + h)))
        if x1 <= x0 or y1 <= y0:
            return

        r, g, b, a = parse_color(color)
        alpha = (a / 255.0) * self._opacity
        if alpha <= 0.0:
            return
        roi = self._pixels[y0:y1, x0:x1]
        if alpha >= 1.0:
            roi[:] = (r, g, b, 255)
            return
        src = np.array((r, g, b), dtype=np.float32)
        blended = roi[..., :3].astype(np.float32) * (1.0 - alpha) + src * alpha
        roi[..., :3] = np.rint(blended).astype(np.uint8)
        roi[..., 3] = 255

    def rect(
        self, x: float, y: float, w: float, h: float, color: Color, thickness: int = 1
    ) -> None:
        x0, y0 = int(round(x)), int(round(y))
        x1, y1 = int(round(x + w)) - 1, int(round(y + h)) - 1
        pad = _pad(thickness)
        self._draw(
            color,
            (x0 - pad, y0 - pad, x1 + pad, y1 + pad),
            lambda img, c, ox, oy: cv2.rectangle(
                img, (x0 - ox, y0 - oy), (x1 - ox, y1 - oy), c, thickness
            ),
        )

    def rounded_rect(
        self,
        x: float,
        y: float,
        w: float,
        h: float,
        radius: float,
        color: Color,
        thickness: int = -1,
    ) -> None:
        """Filled (``thickness=-1``) or outlined rectangle with round corners."""
        r = int(max(0, min(radius, w / 2, h / 2)))
        x0, y0 = int(round(x)), int(round(y))
        x1, y1 = int(round(x + w)) - 1, int(round(y + h)) - 1
        if r == 0:
            if thickness < 0:
                self.fill_rect(x, y, w, h, color)
            else:
                self.rect(x, y, w, h, color, thickness)
            return

        def op(img: np.ndarray, c: tuple[int, int, int, int], ox: int, oy: int) -> None:
            ax0, ay0, ax1, ay1 = x0 - ox, y0 - oy, x1 - ox, y1 - oy
            corners = (
                ((ax0 + r, ay0 + r), 180),
                ((ax1 - r, ay0 + r), 270),
                ((ax1 - r, ay1 - r), 0),
                ((ax0 + r, ay1 - r), 90),
            )
            if thickness < 0:
                cv2.rectangle(img, (ax0 + r, ay0), (ax1 - r, ay1), c, -1)
                cv2.rectangle(img, (ax0, ay0 + r), (ax1, ay1 - r), c, -1)
                for center, _ in corners:
                    cv2.circle(img, center, r, c, -1, cv2.LINE_AA)
                return
            cv2.line(img, (ax0 + r, ay0), (ax1 - r, ay0), c, thickness, cv2.LINE_AA)
            cv2.line(img, (ax0 + r, ay1), (ax1 - r, ay1), c, thickness, cv2.LINE_AA)
            cv2.line(img, (ax0, ay0 + r), (ax0, ay1 - r), c, thickness, cv2.LINE_AA)
            cv2.line(img, (ax1, ay0 + r), (ax1, ay1 - r), c, thickness, cv2.LINE_AA)
            for center, start in corners:
                cv2.ellipse(
                    img, center, (r, r), 0, start, start + 90, c, thickness, cv2.LINE_AA
                )

        pad = _pad(thickness)
        self._draw(color, (x0 - pad, y0 - pad, x1 + pad, y1 + pad), op)

    def circle(
        self, cx: float, cy: float, radius: float, color: Color, thickness: int = -1
    ) -> None:
        x, y = int(round(cx)), int(round(cy))
        rad = max(0, int(round(radius)))
        ext = rad + _pad(thickness)
        self._draw(
            color,
            (x - ext, y - ext, x + ext, y + ext),
            lambda img, c, ox, oy: cv2.circle(
                img, (x - ox, y - oy), rad, c, thickness, cv2.LINE_AA
            ),
        )

    def line(
        self,
        x0: float,
        y0: float,
        x1: float,
        y1: float,
        color: Color,
        thickness: int = 1,
    ) -> None:
        ax, ay = int(round(x0)), int(round(y0))
        bx, by = int(round(x1)), int(round(y1))
        pad = _pad(thickness)
        self._draw(
            color,
            (min(ax, bx) - pad, min(ay, by) - pad, max(ax, bx) + pad, max(ay, by) + pad),
            lambda img, c, ox, oy: cv2.line(
                img, (ax - ox, ay - oy), (bx - ox, by - oy), c, thickness, cv2.LINE_AA
            ),
        )

    # ── Text ─────────────────────────────────────────────────────

    @staticmethod
    def _font(size: float, bold: bool) -> tuple[float, int]:
        scale = max(0.1, size / _FONT_PX_PER_SCALE)
        thickness = max(1, int(round(scale * (2.2 if bold else 1.2))))
        return scale, thickness

    def measure_text(self, text: str, size: float = 16, bold: bool = False) -> tuple[int, int]:
        """Return ``(width, height)`` in pixels of *text* at *size*."""
        scale, thickness = self._font(size, bold)
        (w, h), _ = cv2.getTextSize(text, _FONT, scale, thickness)
        return w, h

    def text(
        self,
        x: float,
        y: float,
        text: str,
        color: Color = "#ffffff",
        size: float = 16,
        bold: bool = False,
        align: str = "left",
    ) -> None:
        """Draw *text* with its baseline at *y*.  ``align``: left/center/right."""
        if not text:
            return
        scale, thickness = self._font(size, bold)
        (w, h), baseline = cv2.getTextSize(text, _FONT, scale, thickness)
        if align == "center":
            x -= w / 2
        elif align == "right":
            x -= w
        tx, ty = int(round(x)), int(round(y))
        pad = _pad(thickness)
        self._draw(
            color,
            (tx - pad, ty - h - pad, tx + w + pad, ty + baseline + pad),
            lambda img, c, ox, oy: cv2.putText(
                img, text, (tx - ox, ty - oy), _FONT, scale, c, thickness, cv2.LINE_AA
            ),
        )

    # ── Internal ─────────────────────────────────────────────────

    def _draw(
        self,
        color: Color,
        box: tuple[int, int, int, int],
        op: Callable[[np.ndarray, tuple[int, int, int, int], int, int], object],
    ) -> None:
        """Run *op* on the pixels inside *box* (inclusive corners).

        Opaque colours draw straight onto the surface.  Translucent ones draw
        onto a copy of the clipped box and blend only that region back.
        """
        r, g, b, a = parse_color(color)
        alpha = (a / 255.0) * self._opacity
        if alpha <= 0.0:
            return
        if alpha >= 1.0:
            op(self._pixels, (r, g, b, 255), 0, 0)
            return
        x0, y0 = max(0, box[0]), max(0, box[1])
        x1, y1 = min(self.width, box[2] + 1), min(self.height, box[3] + 1)
        if x1 <= x0 or y1 <= y0:
            return
        base = np.ascontiguousarray(self._pixels[y0:y1, x0:x1])
        layer = base.copy()
        op(layer, (r, g, b, 255), x0, y0)
        self._pixels[y0:y1, x0:x1] = cv2.addWeighted(layer, alpha, base, 1.0 - alpha, 0.0)


def _pad(thickness: int) -> int:
    """Extra pixels around a shape's nominal outline (stroke + antialiasing)."""
    return max(1, thickness) // 2 + 2
