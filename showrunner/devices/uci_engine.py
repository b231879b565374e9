"""UCI chess engine driven through :class:`LineProtocolClient`.

Handshake ``uci``/``uciok``, skill option, ``isready``/``readyok``.  Each
search re-syncs with ``isready`` before ``go`` so stale output from an
earlier, abandoned search can never be mistaken for the new ``bestmove``.
"""

from __future__ import annotations

import logging
import re
import shlex
from dataclasses import dataclass
from typing import Sequence

from showrunner.devices.line_client import ClientState, LineProtocolClient

log = logging.getLogger(__name__)

_MOVE_RE = re.compile(r"^([a-h][1-8])([a-h][1-8])([qrbn])?$")
_NULL_MOVES = ("(none)", "0000")


@dataclass(slots=True, frozen=True)
class EngineMove:
    from_square: str
    to_square: str
    promotion: str | None = None

    @property
    def uci(self) -> str:
        return f"{self.from_square}{self.to_square}{self.promotion or ''}"


def parse_move_token(token: str) -> EngineMove | None:
    """``e7e8q`` → EngineMove; ``None`` for null moves and malformed text."""
    token = token.strip().lower()
    if token in _NULL_MOVES:
        return None
    m = _MOVE_RE.match(token)
    if not m:
        return None
    return EngineMove(m.group(1), m.group(2), m.group(3))


def parse_bestmove(line: str) -> EngineMove | None:
    """Parse ``bestmove <move> [ponder <move>]``."""
    parts = line.split()
    if len(parts) < 2 or parts[0] != "bestmove":
        return None
    return parse_move_token(parts[1])


class UciEngine(LineProtocolClient):
    handshake = ("uci", "uciok")
    ready_probe = ("isready", "readyok")
    quit_command = "quit"

    def __init__(
        self,
        command: str | Sequence[str] = "stockfish",
        *,
        skill_level: int | None = 10,
        label: str = "uci",
    ) -> None:
        argv = shlex.split(command) if isinstance(command, str) else list(command)
        setup = []
        if skill_level is not None:
            setup.append(f"setoption name Skill Level value {skill_level}")
        super().__init__(argv, label=label, setup=setup)

    async def best_move(
        self, fen: str, depth: int = 5, timeout_s: float | None = 10.0
    ) -> EngineMove | None:
        """Search *fen* to *depth*; ``None`` if the engine has no move to give."""
        if self.state in (
            ClientState.UNINITIALIZED,
            ClientState.HANDSHAKING,
            ClientState.TERMINATED,
        ):
            log.warning("%s: best_move while %s", self.label, self.state.value)
            return None

        synced = await self.request([f"position fen {fen}", "isready"], "readyok", timeout_s)
        if synced is None:
            return None

        line = await self.request(f"go depth {depth}", "bestmove", timeout_s)
        if line is None:
            # Abandon the search; a late bestmove will be discarded as chatter.
            await self.send("stop")
            return None

        move = parse_bestmove(line)
        log.debug("%s: %s → %s", self.label, fen, move.uci if move else "none")
        return move
