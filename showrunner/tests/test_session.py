from __future__ import annotations

import asyncio
import sys

from showrunner.config import ShowConfig
from showrunner.core.session import BroadcastSession
from showrunner.games.ball import BallGame
from showrunner.games.registry import GameRegistry, GameSpec
from showrunner.games.typing_game import TypingGame
from showrunner.io.frame_transport import FrameTransport

SINK_ENCODER = "import sys\nwhile sys.stdin.buffer.read(65536):\n    pass\n"


def _session(stream_key: str = "", transport: FrameTransport | None = None) -> BroadcastSession:
    cfg = ShowConfig()
    cfg.stream.width, cfg.stream.height, cfg.stream.fps = 32, 24, 60
    cfg.stream.stream_key = stream_key
    registry = GameRegistry(
        [
            GameSpec("ball", BallGame.display_name, BallGame),
            GameSpec("typing", TypingGame.display_name, TypingGame),
        ]
    )
    return BroadcastSession(cfg, registry, transport=transport)


def test_dry_run_without_stream_key() -> None:
    async def run():
        s = _session()
        await s.start()
        s.on_chat("alice", "!up")
        s.on_chat("bob", "hello")
        await asyncio.sleep(0.15)
        status = s.status()
        await s.stop()
        return s, status

    s, status = asyncio.run(run())
    assert status["dry_run"] is True
    assert status["game"] == "ball"
    assert status["scheduler"]["running"] is True
    assert status["scheduler"]["ticks"] > 0
    assert status["votes"]["tracked_identities"] == 1
    assert status["chat_published"] == 2
    assert not s.scheduler.running
    assert s.scheduler.active_game is None


def test_frames_flow_to_encoder() -> None:
    async def run():
        transport = FrameTransport(command=[sys.executable, "-c", SINK_ENCODER])
        s = _session("live_key", transport)
        await s.start()
        await asyncio.sleep(0.3)
        status = s.status()
        await s.stop()
        return status, transport

    status, transport = asyncio.run(run())
    assert status["dry_run"] is False
    assert status["transport"]["alive"] is True
    assert status["transport"]["frames_written"] > 0
    assert status["scheduler"]["frames_accepted"] > 0
    assert not transport.alive


def test_operator_swap_resets_votes() -> None:
    s = _session()
    s.scheduler.load(BallGame(), 32, 24, 60, name="ball")
    s.votes.record_skip_vote("alice")
    spec = s.force_swap("typing")
    assert spec.name == "typing"
    assert s.votes.get_vote_count() == 0
    s.scheduler.tick()
    assert s.status()["display_name"] == "Typing Game"
