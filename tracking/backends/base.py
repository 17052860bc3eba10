"""
Location provider interface.

A provider is the platform side of location sampling: it answers the
permission prompt and delivers position fixes to a callback until the
returned Subscription is removed.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from ..geo import distance_between
from ..model import GeoPoint

logger = logging.getLogger(__name__)

PointCallback = Callable[[GeoPoint], None]


@dataclass(frozen=True)
class WatchOptions:
    time_interval_ms: int = 2000
    distance_interval_m: float = 5.0


class Subscription:
    """Handle for an active position watch. remove() is idempotent."""

    def __init__(self, on_remove: Callable[[], None]):
        self._on_remove: Optional[Callable[[], None]] = on_remove

    @property
    def active(self) -> bool:
        return self._on_remove is not None

    def remove(self) -> None:
        on_remove, self._on_remove = self._on_remove, None
        if on_remove is not None:
            on_remove()


class SampleGate:
    """
    Decides which raw fixes become samples.

    A fix passes when the device moved at least `distance_interval_m` OR at
    least `time_interval_ms` passed since the last fix that passed. The very
    first fix always passes.
    """

    def __init__(self, options: WatchOptions):
        self.options = options
        self._last: Optional[GeoPoint] = None

    def accept(self, point: GeoPoint) -> bool:
        last = self._last
        if last is not None:
            moved = distance_between(last, point)
            waited = point.timestamp - last.timestamp
            if moved < self.options.distance_interval_m and waited < self.options.time_interval_ms:
                return False
        self._last = point
        return True

    def reset(self) -> None:
        self._last = None


class LocationProvider(ABC):

    @abstractmethod
    async def request_permission(self) -> bool:
        """Ask for location access. Returns True when granted."""

    @abstractmethod
    async def watch_position(self, options: WatchOptions, callback: PointCallback) -> Subscription:
        """Start delivering fixes to `callback`. Raises on platform failure."""
