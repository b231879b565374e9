"""Self-correcting frame loop.

Each tick:
1. Apply a pending program swap (tick boundary only)
2. Drain queued chat events in arrival order
3. ``game.update(delta_ms)`` then overlay updates with the same delta
4. Clear the surface, ``game.render``, overlays back to front
5. Extract the RGBA buffer and hand it to the frame sink

The next tick is scheduled ``max(0, interval - elapsed)`` later.  When a tick
overruns its budget the next one starts immediately instead of queueing the
missed work, and ``delta_ms`` always carries the true elapsed time.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from showrunner.core.state import ChatCommand, ChatLine, FrameTick
from showrunner.games.base import Game
from showrunner.render.surface import RenderSurface
from showrunner.ui.overlay import OverlayStack

log = logging.getLogger(__name__)

INBOX_SIZE = 256
# After the first traceback from a game, only every Nth failure is logged.
_ERROR_LOG_EVERY = 100


class FrameSink(Protocol):
    def write(self, buffer: bytes) -> bool: ...


@dataclass(slots=True)
class _PendingSwap:
    game: Game
    display_name: str
    name: str


class FrameScheduler:
    """Owns the active game, the surface and the tick timer."""

    def __init__(
        self,
        *,
        sink: FrameSink | None = None,
        overlays: OverlayStack | None = None,
        on_chat: Callable[[ChatLine], Any] | None = None,
        inbox_size: int = INBOX_SIZE,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._sink = sink
        self._overlays = overlays
        self._on_chat = on_chat
        self._clock = clock

        self._surface: RenderSurface | None = None
        self._game: Game | None = None
        self._game_name = ""
        self._pending: _PendingSwap | None = None
        self._inbox: deque[ChatLine] = deque()
        self._inbox_size = inbox_size

        self._interval_s = 0.0
        self._last = 0.0
        self._seq = 0
        self._running = False
        self._task: asyncio.Task | None = None

        # Stats
        self._last_tick: FrameTick | None = None
        self._frames_accepted = 0
        self._frames_rejected = 0
        self._events_dropped = 0
        self._game_errors = 0
        self._swaps = 0

    # ── Properties ───────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    @property
    def active_game(self) -> Game | None:
        return self._game

    @property
    def active_name(self) -> str:
        return self._game_name

    @property
    def surface(self) -> RenderSurface | None:
        return self._surface

    @property
    def last_tick(self) -> FrameTick | None:
        return self._last_tick

    @property
    def swap_pending(self) -> bool:
        return self._pending is not None

    # ── Lifecycle ────────────────────────────────────────────────

    def load(self, game: Game, width: int, height: int, fps: float, name: str = "") -> None:
        """Install *game* and the surface without starting the timer.

        A game left over from an earlier run is destroyed first.
        """
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        self.teardown()
        self._interval_s = 1.0 / fps
        self._surface = RenderSurface(width, height)
        self._install(game, name)
        self._last = self._clock()

    def start(self, game: Game, width: int, height: int, fps: float, name: str = "") -> None:
        """Load *game* and begin ticking on the running event loop."""
        if self._running:
            raise RuntimeError("frame scheduler already running")
        self.load(game, width, height, fps, name)
        self._running = True
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="frame-scheduler"
        )
        log.info(
            "frame scheduler started at %g fps (%.1f ms per frame)",
            fps,
            self._interval_s * 1000.0,
        )

    def stop(self) -> None:
        if not self._running and self._task is None:
            return
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        log.info("frame scheduler stopped after %d ticks", self._seq)

    async def wait_stopped(self) -> None:
        """Await the tick task (used by the entry point to keep the loop alive)."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    def teardown(self) -> None:
        """Destroy the active game (session shutdown)."""
        self._pending = None
        if self._game is not None:
            self._destroy(self._game)
            self._game = None

    # ── Inputs ───────────────────────────────────────────────────

    def swap(self, new_game: Game, display_name: str | None = None, name: str = "") -> None:
        """Replace the active game at the next tick boundary."""
        label = display_name or new_game.display_name or name or type(new_game).__name__
        if self._pending is not None:
            log.info("queued swap to %s superseded by %s", self._pending.name, name)
        self._pending = _PendingSwap(game=new_game, display_name=label, name=name)

    def post(self, line: ChatLine) -> None:
        """Queue a chat event for the next tick."""
        if len(self._inbox) >= self._inbox_size:
            dropped = self._inbox.popleft()
            self._events_dropped += 1
            log.warning("chat inbox full, dropped message from %s", dropped.identity)
        self._inbox.append(line)

    def forward_command(self, cmd: ChatCommand) -> None:
        if self._game is not None:
            self._guard("handle_command", self._game.handle_command, cmd)

    # ── Tick ─────────────────────────────────────────────────────

    def next_delay_s(self, elapsed_s: float) -> float:
        return max(0.0, self._interval_s - elapsed_s)

    def tick(self, now: float | None = None) -> FrameTick:
        """Run one full update → render → extract → write cycle."""
        if self._surface is None or self._game is None:
            raise RuntimeError("frame scheduler has no game loaded")

        if now is None:
            now = self._clock()
        delta_ms = (now - self._last) * 1000.0
        self._last = now
        self._seq += 1

        self._apply_pending_swap()
        self._drain_inbox()

        game = self._game
        surface = self._surface

        self._guard("update", game.update, delta_ms)
        if self._overlays is not None:
            self._overlays.update(delta_ms)

        surface.clear()
        self._guard("render", game.render, surface)
        if self._overlays is not None:
            self._overlays.render(surface)

        if self._sink is not None and self._sink.write(surface.to_bytes()):
            self._frames_accepted += 1
        else:
            self._frames_rejected += 1

        tick = FrameTick(seq=self._seq, delta_ms=delta_ms, started_at=now)
        self._last_tick = tick
        return tick

    def snapshot(self) -> dict:
        return {
            "running": self._running,
            "game": self._game_name,
            "ticks": self._seq,
            "last_delta_ms": round(self._last_tick.delta_ms, 2) if self._last_tick else 0.0,
            "frames_accepted": self._frames_accepted,
            "frames_rejected": self._frames_rejected,
            "events_queued": len(self._inbox),
            "events_dropped": self._events_dropped,
            "game_errors": self._game_errors,
            "swaps": self._swaps,
        }

    # ── Internal ─────────────────────────────────────────────────

    async def _run(self) -> None:
        try:
            while self._running:
                t0 = self._clock()
                self.tick(t0)
                elapsed = self._clock() - t0
                # Zero delay still yields so chat and engine I/O get serviced.
                await asyncio.sleep(self.next_delay_s(elapsed))
        except asyncio.CancelledError:
            pass
        finally:
            # A cancelled task from before a restart must not stop the new one.
            if self._task is asyncio.current_task():
                self._running = False

    def _install(self, game: Game, name: str) -> None:
        assert self._surface is not None
        self._game = game
        self._game_name = name or type(game).__name__
        self._game_errors = 0
        self._guard("init", game.init, self._surface.width, self._surface.height)

    def _apply_pending_swap(self) -> None:
        pending = self._pending
        if pending is None:
            return
        self._pending = None

        if self._game is not None:
            self._destroy(self._game)
        self._install(pending.game, pending.name)
        self._swaps += 1
        if self._overlays is not None:
            self._overlays.program_changed(pending.display_name)
        log.info("now playing %s (%s)", pending.display_name, self._game_name)

    def _destroy(self, game: Game) -> None:
        try:
            game.destroy()
        except Exception:
            log.exception("teardown of %s failed", self._game_name)

    def _drain_inbox(self) -> None:
        while self._inbox:
            line = self._inbox.popleft()
            if self._on_chat is None:
                continue
            try:
                self._on_chat(line)
            except Exception:
                log.exception("chat dispatch failed for %s", line.identity)

    def _guard(self, phase: str, fn: Callable[..., Any], *args: Any) -> bool:
        try:
            fn(*args)
            return True
        except Exception:
            self._game_errors += 1
            if self._game_errors == 1:
                log.exception("%s %s failed", self._game_name, phase)
            elif self._game_errors % _ERROR_LOG_EVERY == 0:
                log.warning(
                    "%s has raised %d times (latest in %s)",
                    self._game_name,
                    self._game_errors,
                    phase,
                )
            return False
