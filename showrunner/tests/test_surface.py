"""Tests for the drawing surface and the overlay layers."""

from __future__ import annotations

import time

import numpy as np
import pytest

from showrunner.core.vote_consensus import VoteConsensus
from showrunner.games.ball import BallGame
from showrunner.render.surface import RenderSurface, parse_color, rgba
from showrunner.ui.chat_overlay import ChatOverlay
from showrunner.ui.easing import clamp01, ease_in_out, lerp
from showrunner.ui.overlay import OVERLAY_ORDER, OverlayStack
from showrunner.ui.transition_overlay import TOTAL_MS, TransitionOverlay
from showrunner.ui.vote_panel import VotePanel


class TestColors:
    @pytest.mark.parametrize(
        "color,expected",
        [
            ("#ff8000", (255, 128, 0, 255)),
            ("#f80", (255, 136, 0, 255)),
            ("#00000080", (0, 0, 0, 128)),
            ((1, 2, 3), (1, 2, 3, 255)),
            ((1, 2, 3, 4), (1, 2, 3, 4)),
        ],
    )
    def test_parse(self, color, expected):
        assert parse_color(color) == expected

    def test_bad_colour(self):
        with pytest.raises(ValueError):
            parse_color("#12345")

    def test_rgba_alpha_is_clamped(self):
        assert rgba(1, 2, 3, 0.5) == (1, 2, 3, 128)
        assert rgba(1, 2, 3, 7.0)[3] == 255


class TestSurface:
    def test_buffer_is_row_major_rgba(self):
        s = RenderSurface(4, 3)
        s.fill_rect(1, 2, 1, 1, "#102030")
        buf = s.to_bytes()
        assert len(buf) == s.frame_size == 4 * 3 * 4
        offset = (2 * 4 + 1) * 4
        assert buf[offset:offset + 4] == bytes((0x10, 0x20, 0x30, 255))

    def test_cleared_surface_is_opaque_black(self):
        s = RenderSurface(2, 2)
        s.fill("#ffffff")
        s.clear()
        assert s.to_bytes() == bytes((0, 0, 0, 255)) * 4

    def test_translucent_fill_blends(self):
        s = RenderSurface(2, 2)
        s.fill_rect(0, 0, 2, 2, rgba(255, 255, 255, 0.5))
        assert abs(int(s.pixels[0, 0, 0]) - 128) <= 1
        assert s.pixels[0, 0, 3] == 255

    def test_opacity_nests_and_restores(self):
        s = RenderSurface(2, 1)
        with s.opacity(0.5):
            with s.opacity(0.5):
                s.fill_rect(0, 0, 1, 1, "#ffffff")
            s.fill_rect(1, 0, 1, 1, "#ffffff")
        assert abs(int(s.pixels[0, 0, 0]) - 64) <= 1
        assert abs(int(s.pixels[0, 1, 0]) - 128) <= 1
        s.fill("#ffffff")
        assert s.pixels[0, 0, 0] == 255

    def test_out_of_bounds_is_clipped(self):
        s = RenderSurface(4, 4)
        s.fill_rect(-10, -10, 12, 12, "#ff0000")
        s.fill_rect(10, 10, 5, 5, "#00ff00")
        assert s.pixels[1, 1, 0] == 255
        assert s.pixels[2, 2, 0] == 0

    def test_text_and_shapes_draw(self):
        s = RenderSurface(200, 100)
        s.text(100, 60, "Hello", size=32, bold=True, align="center")
        s.circle(20, 20, 10, "#00ff00")
        s.rounded_rect(120, 10, 60, 30, 8, rgba(0, 0, 255, 0.5))
        s.line(0, 99, 199, 99, "#ff0000", 2)
        assert s.pixels[30:65, 40:160, :3].any()
        assert s.pixels[20, 20, 1] == 255
        w, h = s.measure_text("Hello", size=32)
        assert w > h > 0

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            RenderSurface(0, 10)

    def test_translucent_shape_only_touches_its_box(self):
        s = RenderSurface(1280, 720)
        rng = np.random.default_rng(0)
        s.pixels[..., :3] = rng.integers(0, 256, (720, 1280, 3), dtype=np.uint8)
        before = s.pixels.copy()
        s.circle(100, 100, 3, rgba(255, 255, 255, 0.5))
        changed = np.argwhere((s.pixels != before).any(axis=2))
        assert len(changed) > 0
        assert changed.min() >= 100 - 6
        assert changed.max() <= 100 + 6

    def test_translucent_box_clips_at_edges(self):
        s = RenderSurface(20, 20)
        s.circle(0, 0, 5, rgba(255, 0, 0, 0.5))
        s.text(15, 25, "Hi", rgba(0, 255, 0, 0.5), size=20)
        s.line(-5, 10, 30, 10, rgba(0, 0, 255, 0.5), 3)
        assert s.pixels[0, 0, 0] > 0
        assert s.pixels[10, 10, 2] > 0
        assert (s.pixels[..., 3] == 255).all()

    def test_translucent_primitives_stay_cheap(self):
        s = RenderSurface(1280, 720)
        start = time.perf_counter()
        for i in range(300):
            s.circle(40 + i, 40, 3, rgba(255, 255, 255, 0.3))
            s.text(40, 200, "!skip  1/3", rgba(255, 255, 255, 0.8), size=16)
        elapsed = time.perf_counter() - start
        # Full-frame blending costs ~2 ms per primitive at this size.
        assert elapsed < 0.25

    def test_frame_with_overlays_fits_30fps(self):
        votes = VoteConsensus()
        votes.record_activity("a")
        votes.record_activity("b")
        votes.record_skip_vote("a")
        panel = VotePanel(votes)
        feed = ChatOverlay()
        for i in range(5):
            feed.add_message(f"viewer{i}", f"message number {i}")
        game = BallGame()
        game.init(1280, 720)
        s = RenderSurface(1280, 720)

        frames = 30
        start = time.perf_counter()
        for _ in range(frames):
            s.clear()
            game.update(33)
            game.render(s)
            feed.update(33)
            feed.render(s)
            panel.update(33)
            panel.render(s)
        per_frame = (time.perf_counter() - start) / frames
        assert per_frame < 1 / 30


# ── Overlays ─────────────────────────────────────────────────────


class Marker:
    def __init__(self, name: str, log: list, fail: bool = False) -> None:
        self.name = name
        self.log = log
        self.fail = fail

    def update(self, delta_ms: float) -> None:
        self.log.append(("update", self.name))

    def render(self, surface: RenderSurface) -> None:
        self.log.append(("render", self.name))
        if self.fail:
            raise RuntimeError("broken overlay")


class TestOverlayStack:
    def test_declared_order_regardless_of_attach_order(self):
        log: list = []
        stack = OverlayStack()
        for name in reversed(OVERLAY_ORDER):
            stack.attach(name, Marker(name, log))
        stack.update(16)
        stack.render(RenderSurface(4, 4))
        assert [n for phase, n in log if phase == "render"] == list(OVERLAY_ORDER)
        assert [n for phase, n in log if phase == "update"] == list(OVERLAY_ORDER)

    def test_unknown_layer_rejected(self):
        with pytest.raises(KeyError):
            OverlayStack().attach("confetti", Marker("confetti", []))

    def test_failing_layer_does_not_hide_the_rest(self):
        log: list = []
        stack = OverlayStack()
        stack.attach("chat_feed", Marker("chat_feed", log, fail=True))
        stack.attach("transition", Marker("transition", log))
        stack.render(RenderSurface(4, 4))
        assert ("render", "transition") in log


class TestChatOverlay:
    def test_keeps_latest_messages(self):
        feed = ChatOverlay(max_messages=3)
        for i in range(5):
            feed.add_message(f"u{i}", f"msg {i}")
        assert feed.messages == [("u2", "msg 2"), ("u3", "msg 3"), ("u4", "msg 4")]

    def test_messages_expire(self):
        feed = ChatOverlay(lifetime_ms=1000)
        feed.add_message("a", "first")
        feed.update(600)
        feed.add_message("b", "second")
        feed.update(500)
        assert feed.messages == [("b", "second")]

    def test_renders_into_bottom_left(self):
        feed = ChatOverlay()
        feed.add_message("alice", "a very long chat message that will need truncating")
        s = RenderSurface(400, 300)
        feed.render(s)
        assert s.pixels[220:300, 0:300, :3].any()
        assert not s.pixels[0:100, 300:400, :3].any()


class TestVotePanel:
    def test_label_tracks_votes(self):
        votes = VoteConsensus()
        for name in ("a", "b", "c", "d", "e"):
            votes.record_activity(name)
        panel = VotePanel(votes)
        panel.update(16)
        assert panel.label == "!skip to vote"
        votes.record_skip_vote("a")
        panel.update(16)
        assert panel.label == "!skip  1/3"
        panel.render(RenderSurface(320, 240))


class TestTransition:
    def test_fades_in_holds_and_expires(self):
        t = TransitionOverlay()
        assert t.alpha() == 0.0
        t.trigger("Trivia")
        t.update(200)
        assert t.alpha() == pytest.approx(0.5)
        t.update(600)
        assert t.alpha() == 1.0
        t.update(TOTAL_MS)
        assert not t.active
        assert t.alpha() == 0.0

    def test_retrigger_restarts(self):
        t = TransitionOverlay()
        t.trigger("A")
        t.update(1500)
        t.trigger("B")
        assert t.game_name == "B"
        assert t.alpha() == 0.0
        s = RenderSurface(320, 240)
        t.update(800)
        t.render(s)
        assert s.pixels[:, :, :3].any()


def test_easing_helpers():
    assert lerp(10, 20, 0.25) == 12.5
    assert clamp01(-1) == 0.0 and clamp01(2) == 1.0
    assert ease_in_out(0.0) == 0.0
    assert ease_in_out(1.0) == 1.0
    assert np.isclose(ease_in_out(0.5), 0.5)
