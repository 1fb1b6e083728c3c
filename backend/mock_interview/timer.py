"""
Per-question countdown driving the thinking and start-window phases.
Only one countdown is alive at a time; each start gets a fresh token so the
runner can drop events from a countdown that was already replaced.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from mock_interview.events import TimerExpired, TimerTick
from mock_interview.schemas import Phase

LOG = logging.getLogger("interview.timer")


class PhaseTimer:
    def __init__(
        self,
        publish: Callable[[Any], None],
        thinking_seconds: float = 60.0,
        start_window_seconds: float = 5.0,
        tick_seconds: float = 1.0,
    ) -> None:
        self._publish = publish
        self.durations = {
            Phase.THINKING: thinking_seconds,
            Phase.START_WINDOW: start_window_seconds,
        }
        self.tick_seconds = tick_seconds
        self.token = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, index: int, phase: Phase) -> int:
        if phase not in self.durations:
            raise ValueError(f"No countdown for phase {phase}")
        self.cancel()
        self.token += 1
        token = self.token
        self._task = asyncio.create_task(self._run(token, index, phase, self.durations[phase]))
        return token

    def cancel(self) -> None:
        # Bump the token too, so anything already queued by the old countdown is stale.
        self.token += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, token: int, index: int, phase: Phase, duration: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration
        remaining = duration
        self._publish(TimerTick(token=token, index=index, phase=phase, remaining=remaining))
        while remaining > 0:
            await asyncio.sleep(min(self.tick_seconds, remaining))
            remaining = max(0.0, deadline - loop.time())
            if remaining > 0:
                self._publish(TimerTick(token=token, index=index, phase=phase, remaining=remaining))
        LOG.debug("Countdown expired (index=%s phase=%s)", index, phase.value)
        self._publish(TimerExpired(token=token, index=index, phase=phase))
