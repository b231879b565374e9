"""Typed catalogue of known programs.

The table is validated once when the session starts (names unique, factories
callable, initial/enabled names known) so a bad config fails at startup rather
than on the first ``!skip``.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Callable, Iterable

from showrunner.games.base import Game

log = logging.getLogger(__name__)


class RegistryError(ValueError):
    """Raised when the catalogue or its configuration is inconsistent."""


class UnknownGameError(KeyError):
    """Raised when a program name is not in the catalogue."""


@dataclass(slots=True, frozen=True)
class GameSpec:
    name: str
    display_name: str
    factory: Callable[[], Game]


class GameRegistry:
    def __init__(
        self,
        specs: Iterable[GameSpec] = (),
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._specs: dict[str, GameSpec] = {}
        self._enabled: list[str] = []
        self._rng = rng or random.Random()
        for spec in specs:
            self.register(spec)

    def register(self, spec: GameSpec) -> None:
        if not spec.name:
            raise RegistryError("game name must be non-empty")
        if spec.name in self._specs:
            raise RegistryError(f"duplicate game name: {spec.name}")
        if not callable(spec.factory):
            raise RegistryError(f"factory for {spec.name} is not callable")
        self._specs[spec.name] = spec
        self._enabled.append(spec.name)

    def validate(self, initial: str, enabled: Iterable[str] | None = None) -> None:
        """Check the configured names against the catalogue; narrow rotation."""
        if not self._specs:
            raise RegistryError("no games registered")
        if enabled is not None:
            names = list(enabled)
            unknown = [n for n in names if n not in self._specs]
            if unknown:
                raise RegistryError(
                    f"unknown games enabled: {', '.join(unknown)}"
                    f" (available: {', '.join(self._specs)})"
                )
            if not names:
                raise RegistryError("at least one game must be enabled")
            self._enabled = list(dict.fromkeys(names))
        if initial not in self._specs:
            raise RegistryError(
                f"unknown initial game {initial!r}"
                f" (available: {', '.join(self._specs)})"
            )
        log.info("game catalogue: %s (initial=%s)", ", ".join(self._enabled), initial)

    def names(self) -> list[str]:
        return list(self._enabled)

    def spec(self, name: str) -> GameSpec:
        try:
            return self._specs[name]
        except KeyError:
            raise UnknownGameError(name) from None

    def create(self, name: str) -> Game:
        return self.spec(name).factory()

    def pick_replacement(self, exclude: str = "") -> GameSpec | None:
        """Random enabled program other than *exclude*, or None if none."""
        candidates = [n for n in self._enabled if n != exclude]
        if not candidates:
            return None
        return self._specs[self._rng.choice(candidates)]

    def catalogue(self, active: str = "") -> list[dict]:
        return [
            {
                "name": name,
                "display_name": self._specs[name].display_name,
                "active": name == active,
            }
            for name in self._enabled
        ]
