"""WebSocket hub broadcasting chat and status envelopes to connected clients."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

from fastapi import WebSocket

log = logging.getLogger(__name__)

SCHEMA = "showrunner_ws_v1"


def make_envelope(msg_type: str, payload: dict[str, Any]) -> str:
    return json.dumps(
        {
            "schema": SCHEMA,
            "type": msg_type,
            "ts_ms": int(time.monotonic() * 1000),
            "payload": payload,
        }
    )


class WsHub:
    """Manages WebSocket clients; sends never block the caller."""

    def __init__(self) -> None:
        self._clients: set[WebSocket] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def add(self, ws: WebSocket) -> None:
        self._clients.add(ws)
        log.info("ws: client connected (%d total)", len(self._clients))

    def remove(self, ws: WebSocket) -> None:
        self._clients.discard(ws)
        log.info("ws: client disconnected (%d total)", len(self._clients))

    def broadcast_chat(self, identity: str, text: str) -> None:
        """Ambient feed subscriber."""
        self.broadcast("chat", {"identity": identity, "text": text})

    def broadcast(self, msg_type: str, payload: dict[str, Any]) -> None:
        """Fire-and-forget send; slow or dead clients lose messages."""
        if not self._clients:
            return
        envelope = make_envelope(msg_type, payload)
        stale: list[WebSocket] = []
        for ws in self._clients:
            try:
                asyncio.ensure_future(ws.send_text(envelope))
            except Exception:
                stale.append(ws)
        for ws in stale:
            self._clients.discard(ws)
