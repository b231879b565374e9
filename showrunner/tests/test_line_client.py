"""Tests for the line-protocol client and the UCI engine built on it.

The subprocess tests run a tiny scripted engine under the current
interpreter, so no real chess engine is needed.
"""

from __future__ import annotations

import asyncio
import logging
import sys

import pytest

from showrunner.devices import line_client
from showrunner.devices.line_client import (
    ClientState,
    EngineBusyError,
    EngineError,
    EngineStateError,
    LineBuffer,
    LineProtocolClient,
    line_matches,
)
from showrunner.devices.uci_engine import EngineMove, UciEngine, parse_bestmove

START_FEN = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq e3 0 1"

# Modes: normal answers everything, mute never answers "go",
# silent never answers anything, crash exits on "go", noisy writes an
# oversized stderr line during the handshake.
FAKE_ENGINE = r"""
import sys

mode = sys.argv[1]
while True:
    raw = sys.stdin.readline()
    if not raw:
        break
    cmd = raw.strip()
    if mode == "silent":
        continue
    if cmd == "uci":
        if mode == "noisy":
            sys.stderr.write("x" * 200000 + "\n")
            sys.stderr.write("still here\n")
            sys.stderr.flush()
        print("id name fake", flush=True)
        print("uciok", flush=True)
    elif cmd == "isready":
        print("readyok", flush=True)
    elif cmd.startswith("go"):
        if mode == "crash":
            sys.exit(3)
        if mode == "normal":
            print("info depth 1 score cp 12 pv e7e5", flush=True)
            print("bestmove e7e5 ponder g1f3", flush=True)
    elif cmd == "quit":
        break
"""


def _fake_engine(mode: str = "normal") -> UciEngine:
    return UciEngine([sys.executable, "-c", FAKE_ENGINE, mode], skill_level=3)


# ── Line reassembly ──────────────────────────────────────────────


class TestLineBuffer:
    def test_chunks_reassemble_into_lines(self):
        buf = LineBuffer()
        assert buf.feed("uc") == []
        assert buf.feed("iok\nread") == ["uciok"]
        assert buf.pending == "read"
        assert buf.feed("yok\n") == ["readyok"]
        assert buf.pending == ""

    def test_many_lines_in_one_chunk(self):
        buf = LineBuffer()
        assert buf.feed("a\nb\n\nc") == ["a", "b", ""]
        assert buf.pending == "c"
        buf.clear()
        assert buf.pending == ""

    def test_first_token_match(self):
        assert line_matches("bestmove e2e4", "bestmove")
        assert line_matches("  readyok  ", "readyok")
        assert not line_matches("bestmoves e2e4", "bestmove")
        assert not line_matches("info bestmove e2e4", "bestmove")
        assert not line_matches("", "bestmove")


class TestOutputDispatch:
    def test_split_sentinel_resolves_once(self):
        async def run():
            client = LineProtocolClient(["unused"])
            fut = client._install("bestmove")
            client._on_output(b"info depth 3\nbestm")
            assert not fut.done()
            client._on_output(b"ove e2e4 ponder e7e5\r\nbestmove a2a3\n")
            return client, fut

        client, fut = asyncio.run(run())
        assert fut.result() == "bestmove e2e4 ponder e7e5"
        assert client.pending is None
        snap = client.snapshot()
        assert snap["lines_seen"] == 3
        # "info" and the late duplicate sentinel are both chatter.
        assert snap["lines_discarded"] == 2

    def test_multibyte_split_across_chunks(self):
        async def run():
            client = LineProtocolClient(["unused"])
            fut = client._install("info")
            client._on_output(b"info string caf\xc3")
            client._on_output(b"\xa9\n")
            return await fut

        assert asyncio.run(run()) == "info string café"

    def test_blank_lines_are_ignored(self):
        client = LineProtocolClient(["unused"])
        client._on_output("\n\n   \n")
        assert client.snapshot()["lines_seen"] == 0

    def test_empty_argv_rejected(self):
        with pytest.raises(ValueError):
            LineProtocolClient([])


# ── Move parsing ─────────────────────────────────────────────────


class TestBestmove:
    @pytest.mark.parametrize(
        "line,expected",
        [
            ("bestmove e2e4", EngineMove("e2", "e4")),
            ("bestmove e7e5 ponder g1f3", EngineMove("e7", "e5")),
            ("bestmove e7e8q", EngineMove("e7", "e8", "q")),
            ("bestmove (none)", None),
            ("bestmove 0000", None),
            ("bestmove", None),
            ("bestmove z9z9", None),
            ("info depth 5", None),
        ],
    )
    def test_parse(self, line, expected):
        assert parse_bestmove(line) == expected

    def test_uci_string(self):
        assert EngineMove("a7", "a8", "n").uci == "a7a8n"
        assert EngineMove("g1", "f3").uci == "g1f3"


# ── State machine ────────────────────────────────────────────────


class TestStates:
    def test_request_before_initialize_is_rejected(self):
        async def run():
            engine = _fake_engine()
            with pytest.raises(EngineStateError):
                await engine.request("isready", "readyok")
            return await engine.best_move(START_FEN)

        assert asyncio.run(run()) is None

    def test_launch_failure_raises(self):
        async def run():
            engine = UciEngine(["/nonexistent/engine-binary"])
            with pytest.raises(EngineError):
                await engine.initialize(timeout_s=5.0)
            return engine

        engine = asyncio.run(run())
        assert engine.state is ClientState.TERMINATED

    def test_handshake_timeout_raises(self):
        async def run():
            engine = _fake_engine("silent")
            try:
                with pytest.raises(EngineError):
                    await engine.initialize(timeout_s=0.5)
                assert engine.pending is None
            finally:
                await engine.shutdown()

        asyncio.run(run())


# ── Subprocess round trips ───────────────────────────────────────


class TestSubprocess:
    def test_best_move_end_to_end(self):
        async def run():
            engine = _fake_engine()
            await engine.initialize(timeout_s=10.0)
            assert engine.state is ClientState.READY
            move = await engine.best_move(START_FEN, depth=2, timeout_s=10.0)
            state = engine.state
            snap = engine.snapshot()
            await engine.shutdown()
            await engine.shutdown()
            return engine, move, state, snap

        engine, move, state, snap = asyncio.run(run())
        assert move == EngineMove("e7", "e5")
        assert state is ClientState.READY
        assert snap["requests"] == 2
        assert snap["pending"] is None
        assert engine.state is ClientState.TERMINATED
        assert not engine.alive

    def test_search_timeout_yields_no_move(self):
        async def run():
            engine = _fake_engine("mute")
            await engine.initialize(timeout_s=10.0)
            try:
                move = await engine.best_move(START_FEN, timeout_s=0.5)
                return move, engine.state, engine.pending, engine.snapshot()
            finally:
                await engine.shutdown()

        move, state, pending, snap = asyncio.run(run())
        assert move is None
        assert state is ClientState.READY
        assert pending is None
        assert snap["timeouts"] == 1

    def test_second_request_while_pending_is_busy(self):
        async def run():
            engine = _fake_engine("mute")
            await engine.initialize(timeout_s=10.0)
            first = asyncio.create_task(engine.request("go depth 5", "bestmove"))
            await asyncio.sleep(0.1)
            assert engine.state is ClientState.AWAITING_RESPONSE
            with pytest.raises(EngineBusyError):
                await engine.request("isready", "readyok")
            # Shutting down resolves the outstanding request instead of hanging.
            await engine.shutdown()
            return await first

        assert asyncio.run(run()) is None

    def test_crash_mid_search_resolves_to_none(self):
        async def run():
            engine = _fake_engine("crash")
            await engine.initialize(timeout_s=10.0)
            move = await engine.best_move(START_FEN, timeout_s=None)
            state = engine.state
            with pytest.raises(EngineStateError):
                await engine.request("isready", "readyok")
            await engine.shutdown()
            return move, state

        move, state = asyncio.run(run())
        assert move is None
        assert state is ClientState.TERMINATED

    def test_oversized_stderr_line_does_not_stop_draining(self, caplog):
        def logged(message: str) -> bool:
            return any(r.getMessage() == message for r in caplog.records)

        async def run():
            engine = _fake_engine("noisy")
            try:
                await engine.initialize(timeout_s=10.0)
                for _ in range(250):
                    if logged("[uci stderr] still here"):
                        break
                    await asyncio.sleep(0.02)
                return await engine.best_move(START_FEN, timeout_s=10.0)
            finally:
                await engine.shutdown()

        with caplog.at_level(logging.DEBUG, logger=line_client.__name__):
            move = asyncio.run(run())

        assert move == EngineMove("e7", "e5")
        assert logged("uci: stderr line over the stream limit skipped")
        assert logged("[uci stderr] still here")
