"""Broadcast configuration with defaults, loadable from YAML."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

log = logging.getLogger(__name__)

KNOWN_GAMES = ["ball", "color_chase", "typing", "scramble", "trivia", "chess"]


@dataclass
class StreamConfig:
    width: int = 1280
    height: int = 720
    fps: int = 30
    ingest_url: str = "rtmp://live.twitch.tv/app"
    stream_key: str = ""
    ffmpeg_path: str = "ffmpeg"
    video_bitrate: str = "2500k"
    preset: str = "veryfast"
    max_queued_frames: int = 4

    @property
    def destination(self) -> str:
        return f"{self.ingest_url.rstrip('/')}/{self.stream_key}"


@dataclass
class ChatConfig:
    command_prefix: str = "!"
    channel: str = ""
    inbox_size: int = 256


@dataclass
class VoteConfig:
    activity_window_s: float = 300.0
    threshold: float = 0.6


@dataclass
class EngineConfig:
    command: str = "stockfish"
    skill_level: int = 10
    search_depth: int = 5
    init_timeout_s: float = 15.0
    move_timeout_s: float = 10.0


@dataclass
class GamesConfig:
    initial: str = "ball"
    enabled: list[str] = field(default_factory=lambda: list(KNOWN_GAMES))
    trivia_questions: int = 15
    scramble_words: int = 50


@dataclass
class NetworkConfig:
    http_port: int = 8080
    host: str = "0.0.0.0"


@dataclass
class ShowConfig:
    stream: StreamConfig = field(default_factory=StreamConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    votes: VoteConfig = field(default_factory=VoteConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    games: GamesConfig = field(default_factory=GamesConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)


_SECTIONS = ("stream", "chat", "votes", "engine", "games", "network")

# env var → (section, field, type)
_ENV_OVERRIDES: dict[str, tuple[str, str, type]] = {
    "STREAM_KEY": ("stream", "stream_key", str),
    "STREAM_WIDTH": ("stream", "width", int),
    "STREAM_HEIGHT": ("stream", "height", int),
    "STREAM_FPS": ("stream", "fps", int),
    "STREAM_INGEST_URL": ("stream", "ingest_url", str),
    "GAME": ("games", "initial", str),
    "STOCKFISH_PATH": ("engine", "command", str),
}


def load_config(path: str | Path | None = None) -> ShowConfig:
    """Load config from YAML file, falling back to defaults."""
    if path is None:
        return ShowConfig()

    path = Path(path)
    if not path.exists():
        log.warning("config file not found: %s, using defaults", path)
        return ShowConfig()

    try:
        import yaml  # type: ignore[import-untyped]

        with open(path) as f:
            raw = yaml.safe_load(f) or {}

        cfg = ShowConfig()
        for section_name in _SECTIONS:
            if section_name in raw:
                section = getattr(cfg, section_name)
                for k, v in (raw[section_name] or {}).items():
                    if not hasattr(section, k):
                        log.warning("ignoring unknown config key %s.%s", section_name, k)
                        continue
                    setattr(section, k, v)

        log.info("config loaded from %s", path)
        return cfg
    except Exception as e:
        log.warning("config load error: %s, using defaults", e)
        return ShowConfig()


def apply_env_overrides(
    cfg: ShowConfig, environ: Mapping[str, str] | None = None
) -> ShowConfig:
    """Overlay the documented environment variables onto *cfg* in place."""
    env = os.environ if environ is None else environ
    for var, (section_name, key, kind) in _ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        try:
            value = kind(raw)
        except ValueError:
            log.warning("ignoring %s=%r (expected %s)", var, raw, kind.__name__)
            continue
        setattr(getattr(cfg, section_name), key, value)
    return cfg
