"""One live broadcast: encoder, scheduler, votes, router, feed and overlays.

Everything that used to be process-wide state lives on a session, so several
sessions (or a session per test) can coexist in one process.
"""

from __future__ import annotations

import logging

from showrunner.config import ShowConfig
from showrunner.core.ambient_feed import AmbientFeed
from showrunner.core.command_router import SKIP_COMMAND, CommandRouter
from showrunner.core.frame_scheduler import FrameScheduler
from showrunner.core.state import ChatLine
from showrunner.core.vote_consensus import VoteConsensus
from showrunner.games.base import BackgroundTasks
from showrunner.games.registry import GameRegistry, GameSpec
from showrunner.io.frame_transport import FrameTransport
from showrunner.ui.chat_overlay import ChatOverlay
from showrunner.ui.overlay import OverlayStack
from showrunner.ui.transition_overlay import TransitionOverlay
from showrunner.ui.vote_panel import VotePanel

log = logging.getLogger(__name__)


class BroadcastSession:
    def __init__(
        self,
        cfg: ShowConfig,
        registry: GameRegistry,
        *,
        transport: FrameTransport | None = None,
        background: BackgroundTasks | None = None,
    ) -> None:
        self.cfg = cfg
        self.registry = registry
        # Games built by *registry* should hand their cleanup to this collector.
        self.background = background or BackgroundTasks()
        stream = cfg.stream

        self.transport = transport or FrameTransport(
            ffmpeg_path=stream.ffmpeg_path,
            video_bitrate=stream.video_bitrate,
            preset=stream.preset,
            max_queued_frames=stream.max_queued_frames,
        )
        self.votes = VoteConsensus(
            activity_window_s=cfg.votes.activity_window_s,
            threshold=cfg.votes.threshold,
        )
        self.feed = AmbientFeed()

        # ── Overlays ─────────────────────────────────────────────
        self.chat_overlay = ChatOverlay()
        self.vote_panel = VotePanel(self.votes, command=f"{cfg.chat.command_prefix}{SKIP_COMMAND}")
        self.transition = TransitionOverlay()
        self.overlays = OverlayStack()
        self.overlays.attach("chat_feed", self.chat_overlay)
        self.overlays.attach("vote_panel", self.vote_panel)
        self.overlays.attach("transition", self.transition)
        self.feed.subscribe(self.chat_overlay.add_message)

        # ── Scheduler + router ───────────────────────────────────
        self.scheduler = FrameScheduler(
            sink=self.transport,
            overlays=self.overlays,
            on_chat=lambda line: self.router.on_chat_line(line),
            inbox_size=cfg.chat.inbox_size,
        )
        self.router = CommandRouter(
            votes=self.votes,
            scheduler=self.scheduler,
            registry=registry,
            feed=self.feed,
            prefix=cfg.chat.command_prefix,
        )
        self._dry_run = True

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    async def start(self) -> None:
        stream = self.cfg.stream
        if stream.stream_key:
            self._dry_run = not await self.transport.start(
                stream.width, stream.height, stream.fps, stream.destination
            )
            if self._dry_run:
                log.error("encoder did not start, frames will be discarded")
        else:
            log.warning("no stream key configured, running without encoder (dry run)")

        initial = self.registry.spec(self.cfg.games.initial)
        self.scheduler.start(
            initial.factory(), stream.width, stream.height, stream.fps, name=initial.name
        )
        log.info("session started with %s", initial.display_name)

    def on_chat(self, identity: str, text: str) -> None:
        """Entry point for chat sources; handled at the next tick."""
        self.scheduler.post(ChatLine(identity, text))

    async def stop(self) -> None:
        self.scheduler.stop()
        self.scheduler.teardown()
        await self.background.wait()
        await self.transport.stop()
        log.info("session stopped")

    # ── Operator actions ─────────────────────────────────────────

    def force_swap(self, name: str) -> GameSpec:
        """Swap to *name* at the next tick.  Raises UnknownGameError."""
        spec = self.registry.spec(name)
        self.scheduler.swap(spec.factory(), spec.display_name, name=spec.name)
        self.votes.reset()
        log.info("operator swap to %s", spec.name)
        return spec

    def reset_votes(self) -> None:
        self.votes.reset()

    def status(self) -> dict:
        active = self.scheduler.active_name
        display = ""
        try:
            display = self.registry.spec(active).display_name
        except KeyError:
            pass
        return {
            "game": active,
            "display_name": display,
            "dry_run": self._dry_run,
            "scheduler": self.scheduler.snapshot(),
            "transport": self.transport.snapshot(),
            "votes": self.votes.snapshot(),
            "chat_published": self.feed.published,
        }
