"""Chat plays white with ``!move e2e4``; a UCI engine answers as black.

Phases::

    loading → white_turn → white_moving → engine_thinking → black_moving
            → white_turn ... → gameover

Engine start-up and searches run as tasks next to the frame loop.  Their
results are only applied while ``_alive`` is set, so a swap mid-search simply
discards the late answer.  Any engine failure (no binary, timeout, crash)
ends the game instead of stalling it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

import chess

from showrunner.core.state import ChatCommand
from showrunner.devices.line_client import EngineError
from showrunner.devices.uci_engine import EngineMove, UciEngine, parse_move_token
from showrunner.games.base import BackgroundTasks, Game
from showrunner.render.surface import RenderSurface, rgba
from showrunner.ui.easing import clamp01, ease_out, lerp
from showrunner.ui.hud import draw_label, draw_leaderboard, draw_panel, draw_top_bar, ranked

log = logging.getLogger(__name__)

ANIM_MS = 500.0
SQ = 65
BOARD_X = 30
BOARD_Y = 70
BOARD_SIZE = SQ * 8
PANEL_X = 580

CREAM = "#f0d9b5"
GREEN = "#769656"
HIGHLIGHT = rgba(255, 255, 100, 0.45)
CHECK_HIGHLIGHT = rgba(255, 50, 50, 0.55)
ENGINE_NAME = "Stockfish"


@dataclass(slots=True)
class MoveAnim:
    symbol: str
    from_square: int
    to_square: int
    elapsed_ms: float = 0.0


def square_cell(square: int) -> tuple[int, int]:
    """Board square → (column, row) with a8 at the top-left."""
    return chess.square_file(square), 7 - chess.square_rank(square)


def parse_chat_move(args: list[str]) -> EngineMove | None:
    """``!move e2e4`` / ``!move e7 e8 q`` → EngineMove."""
    return parse_move_token("".join(args))


class ChessGame(Game):
    display_name = "Chess vs Stockfish"

    def __init__(
        self,
        engine_factory: Callable[[], UciEngine] = UciEngine,
        *,
        depth: int = 5,
        init_timeout_s: float = 15.0,
        move_timeout_s: float = 10.0,
        background: BackgroundTasks | None = None,
    ) -> None:
        self._engine_factory = engine_factory
        self.background = background or BackgroundTasks()
        self._depth = depth
        self._init_timeout_s = init_timeout_s
        self._move_timeout_s = move_timeout_s
        self._engine: UciEngine | None = None
        self._tasks: list[asyncio.Task] = []
        self._alive = False

        self.width = 0
        self.height = 0
        self.board = chess.Board()
        self.phase = "loading"
        self.phase_ms = 0.0
        self.history: list[str] = []
        self.last_move: chess.Move | None = None
        self.last_move_by = ""
        self.anim: MoveAnim | None = None
        self.contributors: dict[str, int] = {}
        self.engine_failed = False

    def init(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self.board = chess.Board()
        self.history = []
        self.last_move = None
        self.last_move_by = ""
        self.anim = None
        self.contributors = {}
        self.engine_failed = False
        self._enter("loading")
        self._alive = True
        self._engine = self._engine_factory()
        self._spawn(self._start_engine(), "chess-engine-init")

    def destroy(self) -> None:
        self._alive = False
        for task in self._tasks:
            if not task.done():
                task.cancel()
        self._tasks = []
        if self._engine is not None:
            self.background.spawn(self._engine.shutdown(), "chess-engine-shutdown")
            self._engine = None

    def update(self, delta_ms: float) -> None:
        self.phase_ms += delta_ms
        if self.anim is None or self.phase not in ("white_moving", "black_moving"):
            return
        self.anim.elapsed_ms += delta_ms
        if self.anim.elapsed_ms < ANIM_MS:
            return
        self.anim = None
        if self.board.is_game_over():
            self._enter("gameover")
        elif self.phase == "white_moving":
            self._enter("engine_thinking")
            self._spawn(self._engine_reply(), "chess-engine-move")
        else:
            self._enter("white_turn")

    def handle_command(self, cmd: ChatCommand) -> None:
        if cmd.command != "move" or self.phase != "white_turn":
            return
        parsed = parse_chat_move(cmd.args)
        if parsed is None:
            return
        move = self._legal_move(parsed)
        if move is None:
            return
        self.contributors[cmd.identity] = self.contributors.get(cmd.identity, 0) + 1
        self._play(move, cmd.identity, "white_moving")

    # ── Engine ───────────────────────────────────────────────────

    async def _start_engine(self) -> None:
        engine = self._engine
        if engine is None:
            return
        try:
            await engine.initialize(self._init_timeout_s)
        except EngineError as e:
            log.error("chess engine unavailable: %s", e)
            if self._alive:
                self.engine_failed = True
                self._enter("gameover")
            return
        if self._alive:
            log.info("chess engine ready")
            self._enter("white_turn")

    async def _engine_reply(self) -> None:
        engine = self._engine
        reply: EngineMove | None = None
        if engine is not None:
            try:
                reply = await engine.best_move(
                    self.board.fen(), self._depth, self._move_timeout_s
                )
            except EngineError as e:
                log.error("chess engine failed: %s", e)
        if not self._alive:
            return
        move = self._legal_move(reply) if reply is not None else None
        if move is None:
            if reply is not None:
                log.warning("engine suggested illegal move %s", reply.uci)
            self.engine_failed = not self.board.is_game_over()
            self._enter("gameover")
            return
        self._play(move, ENGINE_NAME, "black_moving")

    # ── Internal ─────────────────────────────────────────────────

    def _spawn(self, coro, name: str) -> None:
        self._tasks = [t for t in self._tasks if not t.done()]
        self._tasks.append(asyncio.get_running_loop().create_task(coro, name=name))

    def _enter(self, phase: str) -> None:
        self.phase = phase
        self.phase_ms = 0.0

    def _legal_move(self, parsed: EngineMove) -> chess.Move | None:
        from_sq = chess.parse_square(parsed.from_square)
        to_sq = chess.parse_square(parsed.to_square)
        promotion = chess.Piece.from_symbol(parsed.promotion).piece_type if parsed.promotion else None
        piece = self.board.piece_at(from_sq)
        if (
            promotion is None
            and piece is not None
            and piece.piece_type == chess.PAWN
            and chess.square_rank(to_sq) in (0, 7)
        ):
            promotion = chess.QUEEN
        move = chess.Move(from_sq, to_sq, promotion=promotion)
        return move if self.board.is_legal(move) else None

    def _play(self, move: chess.Move, by: str, phase: str) -> None:
        piece = self.board.piece_at(move.from_square)
        self.history.append(self.board.san(move))
        self.board.push(move)
        self.last_move = move
        self.last_move_by = by
        symbol = self.board.piece_at(move.to_square) or piece
        self.anim = MoveAnim(symbol.symbol() if symbol else "?", move.from_square, move.to_square)
        self._enter(phase)

    # ── Rendering ────────────────────────────────────────────────

    def render(self, surface: RenderSurface) -> None:
        surface.fill("#1b1b3a")
        draw_top_bar(surface, self.width, self.display_name, "!move e2e4")
        if self.phase == "loading":
            draw_label(surface, self.width / 2, self.height / 2, "Starting engine...",
                       size=28, bold=True, color="#aaaaaa", align="center")
            return
        self._render_board(surface)
        self._render_panel(surface)

    def _render_board(self, surface: RenderSurface) -> None:
        for row in range(8):
            for col in range(8):
                surface.fill_rect(BOARD_X + col * SQ, BOARD_Y + row * SQ, SQ, SQ,
                                  CREAM if (row + col) % 2 == 0 else GREEN)

        if self.last_move is not None:
            for sq in (self.last_move.from_square, self.last_move.to_square):
                col, row = square_cell(sq)
                surface.fill_rect(BOARD_X + col * SQ, BOARD_Y + row * SQ, SQ, SQ, HIGHLIGHT)

        if self.board.is_check():
            king = self.board.king(self.board.turn)
            if king is not None:
                col, row = square_cell(king)
                surface.fill_rect(BOARD_X + col * SQ, BOARD_Y + row * SQ, SQ, SQ, CHECK_HIGHLIGHT)

        for sq, piece in self.board.piece_map().items():
            if self.anim is not None and sq == self.anim.to_square:
                continue
            col, row = square_cell(sq)
            self._draw_piece(surface, piece.symbol(), BOARD_X + col * SQ, BOARD_Y + row * SQ)

        if self.anim is not None:
            t = ease_out(clamp01(self.anim.elapsed_ms / ANIM_MS))
            fc, fr = square_cell(self.anim.from_square)
            tc, tr = square_cell(self.anim.to_square)
            x = lerp(BOARD_X + fc * SQ, BOARD_X + tc * SQ, t)
            y = lerp(BOARD_Y + fr * SQ, BOARD_Y + tr * SQ, t)
            self._draw_piece(surface, self.anim.symbol, x, y)

        for i in range(8):
            draw_label(surface, BOARD_X + i * SQ + SQ / 2, BOARD_Y + BOARD_SIZE + 14,
                       chess.FILE_NAMES[i], size=11, bold=True, align="center",
                       color=GREEN if i % 2 == 0 else CREAM)
            draw_label(surface, BOARD_X - 6, BOARD_Y + i * SQ + SQ / 2 + 4, str(8 - i),
                       size=11, bold=True, align="right",
                       color=CREAM if i % 2 == 0 else GREEN)

    @staticmethod
    def _draw_piece(surface: RenderSurface, symbol: str, x: float, y: float) -> None:
        white = symbol.isupper()
        cx, cy = x + SQ / 2, y + SQ / 2
        surface.circle(cx, cy, SQ * 0.36, "#ffffff" if white else "#333333")
        surface.circle(cx, cy, SQ * 0.36, "#000000", thickness=2)
        draw_label(surface, cx, cy + 10, symbol.upper(), size=28, bold=True,
                   color="#333333" if white else "#ffffff", align="center")

    def _status(self) -> tuple[str, str]:
        if self.phase == "gameover":
            if self.board.is_checkmate():
                if self.board.turn == chess.WHITE:
                    return f"{ENGINE_NAME} wins!", "#e94560"
                return "Chat wins!", "#16c79a"
            if self.board.is_stalemate():
                return "Stalemate!", "#f5a623"
            if self.engine_failed:
                return "Engine unavailable", "#e94560"
            return "Draw!", "#f5a623"
        return {
            "white_turn": ("Your move! (!move e2e4)", "#16c79a"),
            "engine_thinking": (f"{ENGINE_NAME} thinking...", "#f5a623"),
            "white_moving": ("Playing move...", "#06b6d4"),
            "black_moving": (f"{ENGINE_NAME} plays...", "#f5a623"),
        }.get(self.phase, ("", "#ffffff"))

    def _render_panel(self, surface: RenderSurface) -> None:
        status, color = self._status()
        draw_panel(surface, PANEL_X, BOARD_Y, 280, 40, bg=rgba(0, 0, 0, 0.5),
                   border=rgba(255, 255, 255, 0.1))
        draw_label(surface, PANEL_X + 12, BOARD_Y + 26, status, bold=True, color=color)

        if self.last_move is not None and self.history:
            draw_panel(surface, PANEL_X, BOARD_Y + 50, 280, 34, bg=rgba(0, 0, 0, 0.35),
                       border=rgba(255, 255, 255, 0.05), radius=6)
            draw_label(surface, PANEL_X + 12, BOARD_Y + 72,
                       f"{self.last_move_by}: {self.history[-1]}", size=14, color="#cccccc")

        if self.history:
            top = BOARD_Y + 96
            draw_panel(surface, PANEL_X, top, 280, 180, bg=rgba(0, 0, 0, 0.35),
                       border=rgba(255, 255, 255, 0.05), radius=6)
            draw_label(surface, PANEL_X + 12, top + 20, "Move History", size=14, bold=True,
                       color="#f5a623")
            start = max(0, len(self.history) - 14)
            start -= start % 2
            for n, i in enumerate(range(start, len(self.history), 2)):
                pair = self.history[i:i + 2]
                draw_label(surface, PANEL_X + 12, top + 40 + n * 20,
                           f"{i // 2 + 1}. {'  '.join(pair)}", size=13, color="#bbbbbb")

        taken_by_white, taken_by_black = captured_pieces(self.board)
        if taken_by_white or taken_by_black:
            top = BOARD_Y + 290
            draw_panel(surface, PANEL_X, top, 280, 60, bg=rgba(0, 0, 0, 0.35),
                       border=rgba(255, 255, 255, 0.05), radius=6)
            draw_label(surface, PANEL_X + 12, top + 18, "Captured", size=13, bold=True,
                       color="#f5a623")
            draw_label(surface, PANEL_X + 12, top + 36, " ".join(taken_by_white), color="#cccccc")
            draw_label(surface, PANEL_X + 12, top + 52, " ".join(taken_by_black), color="#cccccc")

        draw_leaderboard(surface, PANEL_X, BOARD_Y + 360, "Contributors",
                         ranked(self.contributors), 6)


_START_COUNTS = {
    chess.PAWN: 8, chess.KNIGHT: 2, chess.BISHOP: 2, chess.ROOK: 2, chess.QUEEN: 1,
}


def captured_pieces(board: chess.Board) -> tuple[list[str], list[str]]:
    """Symbols of black pieces white has taken, and white pieces black has taken.

    Counted from material missing relative to the starting position, so a
    promoted pawn shows as a captured pawn.
    """
    result: tuple[list[str], list[str]] = ([], [])
    for side, lost_color in enumerate((chess.BLACK, chess.WHITE)):
        for piece_type, start in _START_COUNTS.items():
            missing = start - len(board.pieces(piece_type, lost_color))
            symbol = chess.Piece(piece_type, lost_color).symbol()
            result[side].extend([symbol] * max(0, missing))
    return result
