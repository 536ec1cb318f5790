"""
Score accumulator: a steady periodic timer that posts ScoreTick events.

The accumulator never touches the session. Every tick carries the
generation it was scheduled under; stop()/pause() bump the generation, so
a tick that was already queued when play ended is recognisably stale.
`pending` counts ticks posted for the current generation that the
controller has not taken yet.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Callable, Optional

from smirkle.session import ScoreTick

logger = logging.getLogger(__name__)


class ScoreAccumulator:
    def __init__(self, interval: float, post: Callable[[ScoreTick], None]):
        self.interval = float(interval)
        self._post = post
        self._task: Optional[asyncio.Task] = None
        self._boundary = 0.0   # loop time of the last (virtual) tick
        self._carry = 0.0      # part of the interval already played before a pause
        self.generation = 0
        self.pending = 0

    @property
    def running(self) -> bool:
        return self._task is not None

    def is_current(self, generation: int) -> bool:
        return self.running and generation == self.generation

    def take(self, generation: int) -> bool:
        """Claim one tick for scoring; False for ticks from an ended run."""
        if not self.is_current(generation):
            return False
        self.pending = max(0, self.pending - 1)
        return True

    def start(self) -> None:
        """Start ticking; resumes mid-interval after pause()."""
        if self._task is not None:
            return
        loop = asyncio.get_running_loop()
        self.generation += 1
        self._boundary = loop.time() - self._carry
        self._carry = 0.0
        self._task = loop.create_task(self._run(self.generation))
        logger.debug(f"[scoring] started gen={self.generation}")

    def pause(self) -> None:
        """Stop ticking but remember how far into the current second play got."""
        if self._task is None:
            return
        loop = asyncio.get_running_loop()
        self._carry = min(self.interval, max(0.0, loop.time() - self._boundary))
        self._cancel()

    def stop(self) -> None:
        """Stop ticking and forget any partial interval. Idempotent."""
        self._carry = 0.0
        self._cancel()

    def _cancel(self) -> None:
        task, self._task = self._task, None
        self.generation += 1
        self.pending = 0
        if task is not None:
            task.cancel()
            logger.debug(f"[scoring] stopped; gen now {self.generation}")

    async def _run(self, generation: int) -> None:
        loop = asyncio.get_running_loop()
        while True:
            next_t = self._boundary + self.interval
            await asyncio.sleep(max(0.0, next_t - loop.time()))
            if generation != self.generation:
                return
            self._boundary = next_t
            self.pending += 1
            self._post(ScoreTick(generation))
