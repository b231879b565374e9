"""Contract every interactive program implements.

The scheduler calls ``init`` once, then ``update``/``render`` every tick, and
``destroy`` when the program is swapped out.  ``handle_command`` receives every
chat command except ``skip``; commands a game does not know are ignored.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Coroutine

from showrunner.core.state import ChatCommand
from showrunner.render.surface import RenderSurface


class Game(ABC):
    display_name: str = ""

    @abstractmethod
    def init(self, width: int, height: int) -> None: ...

    @abstractmethod
    def update(self, delta_ms: float) -> None: ...

    @abstractmethod
    def render(self, surface: RenderSurface) -> None: ...

    @abstractmethod
    def handle_command(self, cmd: ChatCommand) -> None: ...

    def destroy(self) -> None:
        """Release external resources.  Default: nothing to release."""


class BackgroundTasks:
    """Cleanup work that outlives the game that scheduled it.

    A session owns one and awaits it on stop, so engine shutdowns finish
    before the loop closes.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
