"""The built-in program catalogue, wired to configuration."""

from __future__ import annotations

import functools
import random

from showrunner.config import ShowConfig
from showrunner.devices.uci_engine import UciEngine
from showrunner.games.ball import BallGame
from showrunner.games.base import BackgroundTasks
from showrunner.games.chess_game import ChessGame
from showrunner.games.color_chase import ColorChaseGame
from showrunner.games.registry import GameRegistry, GameSpec
from showrunner.games.scramble import ScrambleGame
from showrunner.games.trivia import TriviaGame
from showrunner.games.trivia_api import fetch_questions
from showrunner.games.typing_game import TypingGame
from showrunner.games.word_api import fetch_words


def build_registry(
    cfg: ShowConfig,
    rng: random.Random | None = None,
    background: BackgroundTasks | None = None,
) -> GameRegistry:
    """Register every built-in game and validate the configured selection.

    *background* collects engine shutdowns; pass the owning session's.
    """
    engine = cfg.engine

    def make_chess() -> ChessGame:
        return ChessGame(
            functools.partial(UciEngine, engine.command, skill_level=engine.skill_level),
            depth=engine.search_depth,
            init_timeout_s=engine.init_timeout_s,
            move_timeout_s=engine.move_timeout_s,
            background=background,
        )

    registry = GameRegistry(
        [
            GameSpec("ball", BallGame.display_name, BallGame),
            GameSpec("color_chase", ColorChaseGame.display_name, ColorChaseGame),
            GameSpec("typing", TypingGame.display_name, TypingGame),
            GameSpec(
                "scramble",
                ScrambleGame.display_name,
                lambda: ScrambleGame(functools.partial(fetch_words, cfg.games.scramble_words)),
            ),
            GameSpec(
                "trivia",
                TriviaGame.display_name,
                lambda: TriviaGame(functools.partial(fetch_questions, cfg.games.trivia_questions)),
            ),
            GameSpec("chess", ChessGame.display_name, make_chess),
        ],
        rng=rng,
    )
    registry.validate(cfg.games.initial, cfg.games.enabled)
    return registry
