"""Showrunner entry point.

Usage:
    python -m showrunner.main                        # config from env, dry run without STREAM_KEY
    python -m showrunner.main --config show.yaml     # YAML config
    python -m showrunner.main --console-chat         # type 'name: !skip' on stdin
    python -m showrunner.main --game trivia --no-http
"""

from __future__ import annotations

import argparse
import asyncio
import logging

log = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Chat-driven live broadcast engine")
    p.add_argument("--config", default=None, help="YAML config file path")
    p.add_argument("--log-level", default="INFO", help="Log level")
    p.add_argument("--game", default=None, help="Initial game (overrides config/GAME)")
    p.add_argument("--http-port", type=int, default=None, help="HTTP/WS port")
    p.add_argument("--no-http", action="store_true", help="Disable the status API")
    p.add_argument(
        "--console-chat", action="store_true", help="Read 'name: message' chat lines from stdin"
    )
    return p.parse_args(argv)


async def async_main(args: argparse.Namespace) -> None:
    import uvicorn

    from showrunner.api.http_server import create_app
    from showrunner.api.ws_hub import WsHub
    from showrunner.chat.console import run_console_chat
    from showrunner.config import apply_env_overrides, load_config
    from showrunner.core.session import BroadcastSession
    from showrunner.games.base import BackgroundTasks
    from showrunner.games.catalogue import build_registry

    cfg = apply_env_overrides(load_config(args.config))

    # Apply CLI overrides
    if args.game:
        cfg.games.initial = args.game
    if args.http_port is not None:
        cfg.network.http_port = args.http_port

    background = BackgroundTasks()
    registry = build_registry(cfg, background=background)
    session = BroadcastSession(cfg, registry, background=background)
    http_server = None

    try:
        await session.start()

        tasks = [session.scheduler.wait_stopped()]
        if not args.no_http:
            ws_hub = WsHub()
            app = create_app(session, ws_hub)
            http_server = uvicorn.Server(
                uvicorn.Config(
                    app,
                    host=cfg.network.host,
                    port=cfg.network.http_port,
                    log_level="warning",
                )
            )
            tasks.append(http_server.serve())
        if args.console_chat:
            tasks.append(run_console_chat(session.on_chat))

        log.info(
            "showrunner running (game=%s, %dx%d @ %d fps, dry_run=%s, http=%s)",
            cfg.games.initial,
            cfg.stream.width,
            cfg.stream.height,
            cfg.stream.fps,
            session.dry_run,
            "off" if args.no_http else f"{cfg.network.host}:{cfg.network.http_port}",
        )
        await asyncio.gather(*tasks)

    finally:
        log.info("shutting down...")
        if http_server:
            http_server.should_exit = True
        await session.stop()


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-5s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    try:
        asyncio.run(async_main(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
