"""Driver for a long-lived subprocess speaking a line-oriented text protocol.

Lifecycle::

    UNINITIALIZED → HANDSHAKING → READY ⇄ AWAITING_RESPONSE → TERMINATED

stdout is read in arbitrary chunks.  Each chunk is decoded incrementally,
appended to a :class:`LineBuffer` and split on newline; complete lines are
processed in order and the trailing fragment is kept for the next read.  A
line whose first token equals the pending request's sentinel resolves that
request and clears the slot; every other line is engine chatter and dropped.

At most one request is in flight per client.  Requests carry an optional
deadline; expiry, or the process exiting, resolves the request to ``None``
("unavailable") instead of leaving the caller waiting forever.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

log = logging.getLogger(__name__)

_READ_CHUNK = 4096
_QUIT_GRACE_S = 1.0
_TERMINATE_GRACE_S = 2.0


class ClientState(str, Enum):
    UNINITIALIZED = "uninitialized"
    HANDSHAKING = "handshaking"
    READY = "ready"
    AWAITING_RESPONSE = "awaiting_response"
    TERMINATED = "terminated"


class EngineError(RuntimeError):
    """The engine process could not be started or stopped answering."""


class EngineStateError(EngineError):
    """Operation not valid in the client's current state."""


class EngineBusyError(EngineStateError):
    """A request was issued while another one is still pending."""


class LineBuffer:
    """Accumulates text; holds at most one trailing incomplete line."""

    __slots__ = ("_pending",)

    def __init__(self) -> None:
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: str) -> list[str]:
        """Append *chunk*; return the complete lines it finished, in order."""
        self._pending += chunk
        *complete, self._pending = self._pending.split("\n")
        return complete

    def clear(self) -> None:
        self._pending = ""


@dataclass(slots=True)
class PendingRequest:
    expect: str
    future: asyncio.Future
    sent_at: float


def line_matches(line: str, expect: str) -> bool:
    """True when the first whitespace-delimited token of *line* is *expect*."""
    parts = line.split(maxsplit=1)
    return bool(parts) and parts[0] == expect


class LineProtocolClient:
    """Generic request/response client over a child's stdin/stdout.

    Subclasses describe the protocol with ``handshake`` and ``ready_probe``
    (``(command, sentinel)`` pairs) and ``quit_command``.
    """

    handshake: tuple[str, str] | None = None
    ready_probe: tuple[str, str] | None = None
    quit_command: str | None = None

    def __init__(
        self,
        argv: Sequence[str],
        *,
        label: str = "engine",
        setup: Iterable[str] = (),
    ) -> None:
        if not argv:
            raise ValueError("argv must name an executable")
        self._argv = list(argv)
        self.label = label
        self._setup = list(setup)

        self._proc: asyncio.subprocess.Process | None = None
        self._state = ClientState.UNINITIALIZED
        self._buffer = LineBuffer()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending: PendingRequest | None = None
        self._reader_task: asyncio.Task | None = None
        self._stderr_task: asyncio.Task | None = None

        # Debug counters
        self._lines_seen = 0
        self._lines_discarded = 0
        self._requests = 0
        self._timeouts = 0

    # ── Properties ───────────────────────────────────────────────

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def alive(self) -> bool:
        return self._proc is not None and self._proc.returncode is None

    @property
    def pending(self) -> PendingRequest | None:
        return self._pending

    # ── Lifecycle ────────────────────────────────────────────────

    async def spawn(self) -> None:
        """Launch the child process (no protocol traffic yet)."""
        if self._proc is not None:
            return
        if self._state is ClientState.TERMINATED:
            raise EngineStateError(f"{self.label}: client already shut down")
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self._argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            self._state = ClientState.TERMINATED
            raise EngineError(f"{self.label}: failed to launch {self._argv[0]}: {e}") from e

        log.info("launched %s (pid=%d, cmd=%s)", self.label, self._proc.pid, self._argv[0])
        self._reader_task = asyncio.create_task(
            self._read_loop(self._proc), name=f"{self.label}-stdout"
        )
        self._stderr_task = asyncio.create_task(
            self._stderr_loop(self._proc), name=f"{self.label}-stderr"
        )

    async def initialize(self, timeout_s: float | None = None) -> None:
        """Handshake, send setup lines, probe readiness; then ``READY``.

        Raises :class:`EngineError` if the process exits or the deadline passes.
        """
        if self._state is not ClientState.UNINITIALIZED:
            raise EngineStateError(f"{self.label}: cannot initialize from {self._state.value}")
        await self.spawn()
        self._state = ClientState.HANDSHAKING
        try:
            await asyncio.wait_for(self._handshake(), timeout_s)
        except asyncio.TimeoutError:
            raise EngineError(
                f"{self.label}: no handshake response within {timeout_s}s"
            ) from None
        if self._state is not ClientState.HANDSHAKING:
            raise EngineError(f"{self.label}: exited during handshake")
        self._state = ClientState.READY
        log.info("%s ready", self.label)

    async def request(
        self,
        lines: str | Sequence[str],
        expect: str,
        timeout_s: float | None = None,
    ) -> str | None:
        """Send *lines* and wait for the first line starting with *expect*.

        Returns ``None`` when the deadline passes or the process exits.
        """
        if self._pending is not None:
            raise EngineBusyError(
                f"{self.label}: request for {expect!r} while {self._pending.expect!r} pending"
            )
        if self._state is not ClientState.READY:
            raise EngineStateError(f"{self.label}: not ready ({self._state.value})")

        if isinstance(lines, str):
            lines = [lines]
        self._requests += 1
        self._state = ClientState.AWAITING_RESPONSE
        try:
            return await asyncio.wait_for(self._exchange(lines, expect), timeout_s)
        except asyncio.TimeoutError:
            self._timeouts += 1
            log.warning("%s: no %r within %.1fs", self.label, expect, timeout_s)
            return None
        finally:
            if self._state is ClientState.AWAITING_RESPONSE:
                self._state = ClientState.READY

    async def send(self, *lines: str) -> bool:
        """Fire-and-forget protocol lines (no response expected)."""
        if self._proc is None:
            return False
        return await self._write_lines(self._proc, lines)

    async def shutdown(self) -> None:
        """Ask the process to quit, then terminate it.  Idempotent."""
        if self._state is ClientState.TERMINATED and self._proc is None:
            return
        self._state = ClientState.TERMINATED
        self._fail_pending()

        proc, self._proc = self._proc, None
        if proc is not None and proc.returncode is None:
            if self.quit_command:
                await self._write_lines(proc, [self.quit_command])
            if proc.stdin is not None:
                proc.stdin.close()
            try:
                await asyncio.wait_for(proc.wait(), timeout=_QUIT_GRACE_S)
            except asyncio.TimeoutError:
                await self._terminate(proc)

        for task in (self._reader_task, self._stderr_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except (asyncio.CancelledError, Exception):
                    pass
        self._reader_task = None
        self._stderr_task = None
        log.info("%s shut down", self.label)

    def snapshot(self) -> dict:
        return {
            "label": self.label,
            "state": self._state.value,
            "pid": self._proc.pid if self._proc else None,
            "pending": self._pending.expect if self._pending else None,
            "requests": self._requests,
            "timeouts": self._timeouts,
            "lines_seen": self._lines_seen,
            "lines_discarded": self._lines_discarded,
        }

    # ── Output handling ──────────────────────────────────────────

    def _on_output(self, data: bytes | str) -> None:
        """Consume one stdout chunk of any size."""
        text = data if isinstance(data, str) else self._decoder.decode(data)
        for raw in self._buffer.feed(text):
            line = raw.strip()
            if not line:
                continue
            self._lines_seen += 1
            pending = self._pending
            if (
                pending is not None
                and not pending.future.done()
                and line_matches(line, pending.expect)
            ):
                self._pending = None
                pending.future.set_result(line)
            else:
                self._lines_discarded += 1
                log.debug("[%s] %s", self.label, line)

    # ── Internal ─────────────────────────────────────────────────

    async def _handshake(self) -> None:
        if self.handshake is not None:
            command, sentinel = self.handshake
            await self._exchange([command], sentinel)
        if self._setup:
            await self.send(*self._setup)
        if self.ready_probe is not None:
            command, sentinel = self.ready_probe
            await self._exchange([command], sentinel)

    def _install(self, expect: str) -> asyncio.Future:
        if self._pending is not None:
            raise EngineBusyError(f"{self.label}: {self._pending.expect!r} still pending")
        fut = asyncio.get_running_loop().create_future()
        self._pending = PendingRequest(expect=expect, future=fut, sent_at=time.monotonic())
        return fut

    async def _exchange(self, lines: Sequence[str], expect: str) -> str | None:
        fut = self._install(expect)
        try:
            if self._proc is None or not await self._write_lines(self._proc, lines):
                self._fail_pending()
            return await fut
        finally:
            if self._pending is not None and self._pending.future is fut:
                self._pending = None

    def _fail_pending(self) -> None:
        pending, self._pending = self._pending, None
        if pending is not None and not pending.future.done():
            pending.future.set_result(None)

    async def _write_lines(
        self, proc: asyncio.subprocess.Process, lines: Iterable[str]
    ) -> bool:
        stdin = proc.stdin
        if stdin is None or proc.returncode is not None or stdin.is_closing():
            return False
        try:
            for line in lines:
                stdin.write(line.encode() + b"\n")
            await stdin.drain()
            return True
        except (BrokenPipeError, ConnectionResetError, OSError) as e:
            log.warning("%s: write failed: %s", self.label, e)
            return False

    async def _read_loop(self, proc: asyncio.subprocess.Process) -> None:
        if proc.stdout is None:
            return
        try:
            while True:
                chunk = await proc.stdout.read(_READ_CHUNK)
                if not chunk:
                    break
                self._on_output(chunk)
        except asyncio.CancelledError:
            return
        except Exception:
            log.exception("%s reader error", self.label)

        # EOF: the process is gone; nothing pending can ever be answered.
        if self._state is not ClientState.TERMINATED:
            log.warning("%s stdout closed (pid=%d)", self.label, proc.pid)
            self._state = ClientState.TERMINATED
        self._fail_pending()

    async def _stderr_loop(self, proc: asyncio.subprocess.Process) -> None:
        if proc.stderr is None:
            return
        try:
            while True:
                try:
                    line = await proc.stderr.readline()
                except ValueError:
                    # readline already dropped the oversized line; keep draining.
                    log.warning("%s: stderr line over the stream limit skipped", self.label)
                    continue
                if not line:
                    break
                log.debug("[%s stderr] %s", self.label, line.decode(errors="replace").rstrip())
        except asyncio.CancelledError:
            pass
        except Exception as e:
            log.warning("%s: stderr reader stopped: %s", self.label, e)

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        try:
            proc.terminate()
            await asyncio.wait_for(proc.wait(), timeout=_TERMINATE_GRACE_S)
        except ProcessLookupError:
            pass
        except asyncio.TimeoutError:
            log.warning("killing %s (did not exit in %.0fs)", self.label, _TERMINATE_GRACE_S)
            proc.kill()
            await proc.wait()
