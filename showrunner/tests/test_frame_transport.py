from __future__ import annotations

import asyncio
import logging
import sys

from showrunner.io import frame_transport as ft
from showrunner.io.frame_transport import FrameTransport, build_encoder_args

# Reads frames off stdin until EOF, like an encoder that never falls behind.
SINK_ENCODER = "import sys\nwhile sys.stdin.buffer.read(65536):\n    pass\n"
DYING_ENCODER = "import sys\nsys.stderr.write('[error] Connection refused\\n')\nsys.exit(2)\n"
# One stderr line far past the 64 KiB stream limit, then a normal one.
CHATTY_ENCODER = (
    "import sys\nsys.stderr.write('x' * 200000 + '\\n')\n"
    "sys.stderr.write('[warning] still draining\\n')\nsys.stderr.flush()\n"
)


def _alive_without_process(max_queued: int = 4, frame_size: int = 16) -> FrameTransport:
    t = FrameTransport(max_queued_frames=max_queued)
    t._alive = True
    t._frame_size = frame_size
    return t


def _logged(caplog, message: str) -> bool:
    return any(r.getMessage() == message for r in caplog.records)


# ── Encoder command line ─────────────────────────────────────────


def test_encoder_args_describe_raw_rgba_input() -> None:
    args = build_encoder_args(
        "ffmpeg", 1280, 720, 30, "rtmp://live.example/app/key", video_bitrate="3000k"
    )
    assert args[0] == "ffmpeg"
    assert args[args.index("-pixel_format") + 1] == "rgba"
    assert args[args.index("-video_size") + 1] == "1280x720"
    assert args[args.index("-framerate") + 1] == "30"
    assert args[args.index("-i") + 1] == "pipe:0"
    assert args[args.index("-bufsize") + 1] == "6000k"
    assert args[args.index("-g") + 1] == "60"
    assert args[-2:] == ["flv", "rtmp://live.example/app/key"]


def test_stream_key_is_redacted_for_logs() -> None:
    assert ft._redact("rtmp://live.example/app/secret") == "rtmp://live.example/app/****"
    assert ft._redact("not-a-url") == "not-a-url"
    assert ft._double_rate("4M") == "8M"
    assert ft._double_rate("fast") == "fast"


# ── stderr re-logging ────────────────────────────────────────────


def test_parse_encoder_level_strips_tag() -> None:
    level, message = ft._parse_encoder_level("[flv @ 0x55d] [error] Connection refused")
    assert level == logging.ERROR
    assert message == "[flv @ 0x55d] Connection refused"


def test_parse_encoder_level_defaults_to_info() -> None:
    assert ft._parse_encoder_level("frame=  10 fps=30") == (logging.INFO, "frame=  10 fps=30")


def test_log_encoder_line_uses_tagged_level(caplog) -> None:
    with caplog.at_level(logging.DEBUG, logger=ft.__name__):
        ft._log_encoder_line("[warning] Past duration too large")
        ft._log_encoder_line("[fatal] Conversion failed!")

    assert [r.levelno for r in caplog.records[-2:]] == [logging.WARNING, logging.CRITICAL]
    assert caplog.records[-1].getMessage() == "[ffmpeg] Conversion failed!"


# ── Frame queue ──────────────────────────────────────────────────


def test_write_before_start_is_refused() -> None:
    t = FrameTransport()
    assert not t.alive
    assert t.write(b"\x00" * 16) is False


def test_wrong_frame_size_is_rejected() -> None:
    t = _alive_without_process()
    assert t.write(b"\x00" * 15) is False
    assert t.snapshot()["frames_rejected"] == 1
    assert t.queued == 0


def test_backpressure_drops_oldest(caplog) -> None:
    t = _alive_without_process(max_queued=4)
    frames = [bytes([i]) * 16 for i in range(6)]
    with caplog.at_level(logging.WARNING, logger=ft.__name__):
        assert all(t.write(f) for f in frames)

    assert t.queued == 4
    assert list(t._queue) == frames[2:]
    assert t.snapshot()["frames_dropped"] == 2
    # One warning for the first drop, not one per frame.
    assert len(caplog.records) == 1


# ── Subprocess lifecycle ─────────────────────────────────────────


def test_spawn_failure_marks_transport_down() -> None:
    async def run():
        t = FrameTransport(command=["/nonexistent/ffmpeg"])
        ok = await t.start(4, 2, 30, "rtmp://x/app/key")
        return t, ok

    t, ok = asyncio.run(run())
    assert ok is False
    assert not t.alive
    assert t.snapshot()["last_error"].startswith("spawn failed")
    assert t.write(b"\x00" * 32) is False


def test_frames_reach_encoder_and_stop_is_idempotent() -> None:
    async def run():
        t = FrameTransport(command=[sys.executable, "-c", SINK_ENCODER])
        assert await t.start(4, 2, 30, "rtmp://x/app/key")
        for _ in range(3):
            assert t.write(b"\x7f" * 32)
            await asyncio.sleep(0.05)
        for _ in range(100):
            if t.snapshot()["frames_written"] == 3:
                break
            await asyncio.sleep(0.02)
        written = t.snapshot()["frames_written"]
        await t.stop()
        await t.stop()
        return t, written

    t, written = asyncio.run(run())
    assert written == 3
    assert not t.alive
    assert t.snapshot()["pid"] is None
    assert t.write(b"\x7f" * 32) is False


def test_encoder_exit_is_detected(caplog) -> None:
    async def run():
        t = FrameTransport(command=[sys.executable, "-c", DYING_ENCODER])
        assert await t.start(4, 2, 30, "rtmp://x/app/key")
        for _ in range(250):
            if not t.alive and _logged(caplog, "[ffmpeg] Connection refused"):
                break
            await asyncio.sleep(0.02)
        accepted = t.write(b"\x00" * 32)
        snap = t.snapshot()
        await t.stop()
        return accepted, snap

    with caplog.at_level(logging.DEBUG, logger=ft.__name__):
        accepted, snap = asyncio.run(run())

    assert accepted is False
    assert snap["alive"] is False
    assert snap["last_error"] == "encoder exited with code 2"
    assert _logged(caplog, "[ffmpeg] Connection refused")


def test_oversized_stderr_line_does_not_stop_draining(caplog) -> None:
    async def run():
        t = FrameTransport(command=[sys.executable, "-c", CHATTY_ENCODER])
        assert await t.start(4, 2, 30, "rtmp://x/app/key")
        for _ in range(250):
            if _logged(caplog, "[ffmpeg] still draining"):
                break
            await asyncio.sleep(0.02)
        await t.stop()

    with caplog.at_level(logging.DEBUG, logger=ft.__name__):
        asyncio.run(run())

    assert _logged(caplog, "encoder stderr line over the stream limit skipped")
    assert _logged(caplog, "[ffmpeg] still draining")
