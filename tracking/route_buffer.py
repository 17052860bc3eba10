# tracking/route_buffer.py
from typing import Callable, Optional, Tuple

from .model import GeoPoint


class RouteBuffer:
    """
    Append-only buffer of live route points.

    Every append replaces the stored tuple instead of mutating it, so a
    snapshot handed to a reader can never change underneath it.

    The callback receives:
      - point: the GeoPoint just appended
      - route: the full snapshot including that point
    """

    def __init__(self, on_append: Optional[Callable[[GeoPoint, Tuple[GeoPoint, ...]], None]] = None):
        self.on_append = on_append
        self._points: Tuple[GeoPoint, ...] = ()

    def append(self, point: GeoPoint) -> Tuple[GeoPoint, ...]:
        self._points = self._points + (point,)
        snapshot = self._points
        if self.on_append:
            self.on_append(point, snapshot)
        return snapshot

    def snapshot(self) -> Tuple[GeoPoint, ...]:
        return self._points

    def clear(self) -> None:
        self._points = ()

    def __len__(self) -> int:
        return len(self._points)
