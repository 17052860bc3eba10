"""
Replay location provider.

Feeds a previously recorded route back as if it came from the GPS, in real
time (optionally sped up). Used for the headless demo and for simulating a
run on a desktop without a receiver.
"""
import asyncio
import logging
import time
from dataclasses import replace
from typing import Callable, Optional

from ..geo import relative_timestamps
from ..model import Route
from .base import LocationProvider, PointCallback, SampleGate, Subscription, WatchOptions

logger = logging.getLogger(__name__)


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class ReplayLocationProvider(LocationProvider):
    """Replays `route` with each fix re-stamped to the current clock."""

    def __init__(
        self,
        route: Route,
        speed: float = 1.0,
        permission: bool = True,
        clock: Optional[Callable[[], int]] = None,
    ):
        if speed <= 0:
            raise ValueError(f"Replay speed must be positive, got {speed}")
        self.route = tuple(route)
        self.speed = speed
        self.permission = permission
        self.clock = clock or _epoch_ms
        self._finished = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def request_permission(self) -> bool:
        return self.permission

    async def watch_position(self, options: WatchOptions, callback: PointCallback) -> Subscription:
        gate = SampleGate(options)
        self._finished.clear()
        self._task = asyncio.ensure_future(self._replay(gate, callback))
        logger.info(f"Replaying {len(self.route)} points at {self.speed:g}x")
        return Subscription(self._cancel)

    async def wait_finished(self) -> None:
        await self._finished.wait()

    def _cancel(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _replay(self, gate: SampleGate, callback: PointCallback) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            for point, offset_ms in zip(self.route, relative_timestamps(self.route)):
                due = started + (offset_ms / self.speed) / 1000.0
                delay = due - loop.time()
                if delay > 0:
                    await asyncio.sleep(delay)

                fix = replace(point, timestamp=self.clock())
                if gate.accept(fix):
                    callback(fix)
        finally:
            self._finished.set()
