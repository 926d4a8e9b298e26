"""
SpeechPlay v1.2: Session Timers

One-shot asyncio timers with a generation token. Every start() and cancel()
bumps the generation, so a fire that was already scheduled when the timer
moved on can tell it is stale and do nothing.
"""

import asyncio
import logging
from typing import Callable, Optional, Protocol

logger = logging.getLogger("speechplay.session.timers")


class Timer:
    def __init__(self, name: str):
        self.name = name
        self._handle: Optional[asyncio.TimerHandle] = None
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self, delay_seconds: float, on_fire: Callable[[int], None]) -> int:
        """Arm (or re-arm) the timer. on_fire receives the generation it was armed with."""
        self.cancel()
        self._generation += 1
        generation = self._generation
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay_seconds, self._fire, generation, on_fire)
        logger.debug(f"{self.name} timer armed: {delay_seconds}s (gen {generation})")
        return generation

    def cancel(self) -> None:
        """Safe to call any number of times."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            logger.debug(f"{self.name} timer cancelled (gen {self._generation})")
        self._generation += 1

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _fire(self, generation: int, on_fire: Callable[[int], None]) -> None:
        if generation != self._generation:
            return
        self._handle = None
        on_fire(generation)


# ─── Interrupt Gate ──────────────────────────────────────────────────────────
# Locked while the avatar is speaking. A silent child is not inactive while
# they are being talked to.

class InterruptGate(Protocol):
    def is_locked(self) -> bool: ...

    def lock(self) -> None: ...

    def unlock(self) -> None: ...


class SimpleInterruptGate:
    def __init__(self):
        self._locked = False

    def is_locked(self) -> bool:
        return self._locked

    def lock(self) -> None:
        self._locked = True

    def unlock(self) -> None:
        self._locked = False
