"""FastAPI status/control surface for a broadcast session.

- ``GET /health``, ``GET /status``, ``GET /games``
- ``POST /chat`` injects a chat line (local testing without a chat network)
- ``POST /actions`` operator actions: ``swap``, ``reset_votes``
- ``WS /ws`` live chat feed plus periodic status
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from showrunner.api.ws_hub import make_envelope
from showrunner.core.command_router import resolve_identity
from showrunner.games.registry import UnknownGameError

if TYPE_CHECKING:
    from showrunner.api.ws_hub import WsHub
    from showrunner.core.session import BroadcastSession

log = logging.getLogger(__name__)

STATUS_INTERVAL_S = 1.0


def create_app(
    session: BroadcastSession,
    ws_hub: WsHub,
    status_interval_s: float = STATUS_INTERVAL_S,
) -> FastAPI:
    app = FastAPI(title="Showrunner", version="1.0.0")
    session.feed.subscribe(ws_hub.broadcast_chat)

    # -- WebSocket feed ------------------------------------------------------

    @app.websocket("/ws")
    async def websocket_feed(ws: WebSocket):
        await ws.accept()
        ws_hub.add(ws)
        pusher = asyncio.create_task(_push_status(ws, session, status_interval_s))
        try:
            # Client messages are ignored; reading only detects the disconnect.
            while True:
                await ws.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            pusher.cancel()
            ws_hub.remove(ws)

    # -- HTTP endpoints ------------------------------------------------------

    @app.get("/health")
    async def get_health():
        return JSONResponse({"ok": True})

    @app.get("/status")
    async def get_status():
        return JSONResponse(session.status())

    @app.get("/games")
    async def get_games():
        return JSONResponse(session.registry.catalogue(session.scheduler.active_name))

    @app.post("/chat")
    async def post_chat(body: dict):
        text = str(body.get("text") or "").strip()
        if not text:
            return JSONResponse({"ok": False, "reason": "empty text"}, status_code=400)
        identity = resolve_identity(body.get("display_name"), body.get("login"))
        session.on_chat(identity, text)
        return JSONResponse({"ok": True, "identity": identity})

    @app.post("/actions")
    async def post_action(body: dict):
        action = body.get("action")
        if action == "swap":
            name = str(body.get("game") or "")
            try:
                spec = session.force_swap(name)
            except UnknownGameError:
                return JSONResponse(
                    {"ok": False, "reason": f"unknown game: {name}"}, status_code=404
                )
            return JSONResponse({"ok": True, "reason": f"swapping to {spec.name}"})
        elif action == "reset_votes":
            session.reset_votes()
            return JSONResponse({"ok": True, "reason": "votes reset"})
        else:
            return JSONResponse(
                {"ok": False, "reason": f"unknown action: {action}"}, status_code=400
            )

    return app


async def _push_status(
    ws: WebSocket, session: BroadcastSession, interval_s: float
) -> None:
    try:
        while True:
            await ws.send_text(make_envelope("status", session.status()))
            await asyncio.sleep(interval_s)
    except asyncio.CancelledError:
        pass
    except (WebSocketDisconnect, RuntimeError) as e:
        log.debug("ws: status push ended: %s", e)
