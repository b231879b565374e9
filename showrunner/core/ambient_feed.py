"""Side channel surfacing every chat message to display/summary consumers."""

from __future__ import annotations

import logging
from typing import Callable

log = logging.getLogger(__name__)

FeedSubscriber = Callable[[str, str], None]


class AmbientFeed:
    """Fan out ``(identity, text)`` to subscribers; never alters control flow."""

    def __init__(self) -> None:
        self._subscribers: list[FeedSubscriber] = []
        self._published = 0

    @property
    def published(self) -> int:
        return self._published

    def subscribe(self, cb: FeedSubscriber) -> None:
        self._subscribers.append(cb)

    def publish(self, identity: str, text: str) -> None:
        self._published += 1
        for cb in self._subscribers:
            try:
                cb(identity, text)
            except Exception:
                log.exception("feed subscriber %r failed", cb)
