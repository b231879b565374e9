"""Raw RGBA frames → ffmpeg stdin → H.264/FLV → RTMP.

The encoder runs as a child process.  ``write`` is called from the frame
tick and never blocks or raises: frames go into a small bounded queue that a
writer task drains into the pipe.  When the encoder falls behind the oldest
queued frame is dropped, so latency stays bounded at the cost of frames.

ffmpeg's stderr is re-logged here at the level it tags each line with
(``-loglevel level+warning`` prints ``[warning]``, ``[error]``, ...).
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from typing import Sequence

log = logging.getLogger(__name__)

_ENCODER_LEVEL_RE = re.compile(
    r"\[(trace|debug|verbose|info|warning|error|fatal|panic)\]\s*"
)
_ENCODER_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "verbose": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
}
_RATE_RE = re.compile(r"^(\d+)([kKmM]?)$")
_DROP_LOG_EVERY = 100


def _parse_encoder_level(line: str) -> tuple[int, str]:
    """Extract the log level from an ffmpeg ``[level]`` tag."""
    match = _ENCODER_LEVEL_RE.search(line)
    if not match:
        return logging.INFO, line
    level = _ENCODER_LEVELS[match.group(1)]
    message = (line[: match.start()] + line[match.end():]).strip()
    return level, message


def _log_encoder_line(line: str) -> None:
    level, message = _parse_encoder_level(line)
    if message:
        log.log(level, "[ffmpeg] %s", message)


def _double_rate(rate: str) -> str:
    m = _RATE_RE.match(rate)
    if not m:
        return rate
    return f"{int(m.group(1)) * 2}{m.group(2)}"


def _redact(destination: str) -> str:
    """Hide the stream key (last path segment) of an RTMP URL."""
    scheme, sep, rest = destination.partition("://")
    if not sep or "/" not in rest:
        return destination
    head, _, key = rest.rpartition("/")
    return f"{scheme}://{head}/****" if key else destination


def build_encoder_args(
    ffmpeg_path: str,
    width: int,
    height: int,
    fps: float,
    destination: str,
    *,
    video_bitrate: str = "2500k",
    preset: str = "veryfast",
) -> list[str]:
    """Command line for a low-latency RGBA → H.264/FLV encoder."""
    return [
        ffmpeg_path,
        "-hide_banner",
        "-nostats",
        "-loglevel", "level+warning",
        # Input: raw frames on stdin
        "-f", "rawvideo",
        "-pixel_format", "rgba",
        "-video_size", f"{width}x{height}",
        "-framerate", f"{fps:g}",
        "-i", "pipe:0",
        # Output: H.264 over FLV
        "-c:v", "libx264",
        "-preset", preset,
        "-tune", "zerolatency",
        "-pix_fmt", "yuv420p",
        "-b:v", video_bitrate,
        "-maxrate", video_bitrate,
        "-bufsize", _double_rate(video_bitrate),
        "-g", str(max(1, round(fps * 2))),
        "-f", "flv",
        destination,
    ]


class FrameTransport:
    """Feeds frames to one encoder process."""

    def __init__(
        self,
        *,
        ffmpeg_path: str = "ffmpeg",
        video_bitrate: str = "2500k",
        preset: str = "veryfast",
        max_queued_frames: int = 4,
        command: Sequence[str] | None = None,
        stop_timeout_s: float = 3.0,
    ) -> None:
        if max_queued_frames < 1:
            raise ValueError("max_queued_frames must be >= 1")
        self._ffmpeg_path = ffmpeg_path
        self._video_bitrate = video_bitrate
        self._preset = preset
        self._max_queued = max_queued_frames
        self._command = list(command) if command else None
        self._stop_timeout_s = stop_timeout_s

        self._proc: asyncio.subprocess.Process | None = None
        self._alive = False
        self._frame_size = 0
        self._queue: deque[bytes] = deque()
        self._wakeup = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

        # Stats
        self._frames_written = 0
        self._frames_dropped = 0
        self._frames_rejected = 0
        self._last_error = ""

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def frame_size(self) -> int:
        return self._frame_size

    @property
    def queued(self) -> int:
        return len(self._queue)

    async def start(self, width: int, height: int, fps: float, destination: str) -> bool:
        """Spawn the encoder.  Returns False (and logs) if it cannot start."""
        if self._proc is not None:
            return self._alive

        self._frame_size = width * height * 4
        argv = self._command or build_encoder_args(
            self._ffmpeg_path,
            width,
            height,
            fps,
            destination,
            video_bitrate=self._video_bitrate,
            preset=self._preset,
        )
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            self._last_error = f"spawn failed: {e}"
            log.error("failed to launch encoder %s: %s", argv[0], e)
            return False

        self._proc = proc
        self._alive = True
        self._wakeup.clear()
        self._tasks = [
            asyncio.create_task(self._writer_loop(proc), name="encoder-writer"),
            asyncio.create_task(self._stderr_loop(proc), name="encoder-stderr"),
            asyncio.create_task(self._exit_watch(proc), name="encoder-watch"),
        ]
        log.info(
            "encoder started (pid=%d, %dx%d @ %g fps → %s)",
            proc.pid,
            width,
            height,
            fps,
            _redact(destination),
        )
        return True

    def write(self, buffer: bytes) -> bool:
        """Queue one frame.  False if the encoder is down or the size is wrong."""
        if not self._alive:
            return False
        if len(buffer) != self._frame_size:
            self._frames_rejected += 1
            log.debug(
                "rejected frame of %d bytes (expected %d)", len(buffer), self._frame_size
            )
            return False

        if len(self._queue) >= self._max_queued:
            self._queue.popleft()
            self._frames_dropped += 1
            if self._frames_dropped == 1 or self._frames_dropped % _DROP_LOG_EVERY == 0:
                log.warning(
                    "encoder falling behind, %d frames dropped so far", self._frames_dropped
                )
        self._queue.append(buffer)
        self._wakeup.set()
        return True

    async def stop(self) -> None:
        """Close stdin, SIGTERM, then kill after a grace period.  Idempotent."""
        proc, self._proc = self._proc, None
        self._alive = False
        self._queue.clear()
        self._wakeup.set()
        if proc is None:
            return

        if proc.stdin is not None and not proc.stdin.is_closing():
            proc.stdin.close()
        if proc.returncode is None:
            try:
                proc.terminate()
                await asyncio.wait_for(proc.wait(), timeout=self._stop_timeout_s)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                log.warning("killing encoder (did not exit in %.0fs)", self._stop_timeout_s)
                proc.kill()
                await proc.wait()

        for task in self._tasks:
            if not task.done():
                task.cancel()
            try:
                await task
            except (asyncio.CancelledError, Exception):
                pass
        self._tasks = []
        log.info(
            "encoder stopped (%d written, %d dropped)",
            self._frames_written,
            self._frames_dropped,
        )

    def snapshot(self) -> dict:
        return {
            "alive": self._alive,
            "pid": self._proc.pid if self._proc else None,
            "frames_written": self._frames_written,
            "frames_dropped": self._frames_dropped,
            "frames_rejected": self._frames_rejected,
            "queued": len(self._queue),
            "last_error": self._last_error,
        }

    # ── Internal ─────────────────────────────────────────────────

    def _mark_down(self, reason: str) -> None:
        if not self._alive:
            return
        self._alive = False
        self._last_error = reason
        self._queue.clear()
        self._wakeup.set()
        log.error("encoder down: %s", reason)

    async def _writer_loop(self, proc: asyncio.subprocess.Process) -> None:
        stdin = proc.stdin
        if stdin is None:
            return
        try:
            while self._alive:
                if not self._queue:
                    self._wakeup.clear()
                    await self._wakeup.wait()
                    continue
                frame = self._queue.popleft()
                stdin.write(frame)
                await stdin.drain()
                self._frames_written += 1
        except asyncio.CancelledError:
            return
        except (BrokenPipeError, ConnectionResetError, OSError) as e:
            self._mark_down(f"write failed: {e}")

    async def _stderr_loop(self, proc: asyncio.subprocess.Process) -> None:
        if proc.stderr is None:
            return
        try:
            while True:
                try:
                    line = await proc.stderr.readline()
                except ValueError:
                    # readline already dropped the oversized line; keep draining.
                    log.warning("encoder stderr line over the stream limit skipped")
                    continue
                if not line:
                    break
                _log_encoder_line(line.decode(errors="replace").rstrip())
        except asyncio.CancelledError:
            pass
        except Exception as e:
            log.warning("encoder stderr reader stopped: %s", e)

    async def _exit_watch(self, proc: asyncio.subprocess.Process) -> None:
        try:
            code = await proc.wait()
        except asyncio.CancelledError:
            return
        self._mark_down(f"encoder exited with code {code}")
