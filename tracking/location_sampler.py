"""
Location sampling source.

Wraps a LocationProvider into an append-only, timestamped route with an
on-new-point callback. Sampling density is bounded by a minimum time
interval and a minimum distance interval; a fix is registered when either
one is reached.
"""
import logging
from typing import Callable, Optional, Tuple

from .backends.base import LocationProvider, Subscription, WatchOptions
from .model import GeoPoint
from .route_buffer import RouteBuffer

logger = logging.getLogger(__name__)

OnPoint = Callable[[GeoPoint, Tuple[GeoPoint, ...]], None]


class LocationStartError(RuntimeError):
    """Sampling could not be started."""


class PermissionDenied(LocationStartError):
    """The user refused location access."""


class LocationSampler:
    """
    Collects live route points from a location provider.

    The callback receives:
      - point: the newly registered GeoPoint (absolute epoch-ms timestamp)
      - route: immutable snapshot of the whole buffer, point included
    """

    def __init__(
        self,
        provider: LocationProvider,
        on_point: Optional[OnPoint] = None,
        time_interval_ms: int = 2000,
        distance_interval_m: float = 5.0,
    ):
        self.provider = provider
        self.on_point = on_point
        self.options = WatchOptions(
            time_interval_ms=time_interval_ms,
            distance_interval_m=distance_interval_m,
        )

        self._buffer = RouteBuffer(on_append=self._notify)
        self._subscription: Optional[Subscription] = None
        self._starting = False
        # Bumped by stop(); a start() that resumes under an older value is stale
        self._generation = 0

    @property
    def running(self) -> bool:
        return self._starting or self._subscription is not None

    async def start(self) -> None:
        """
        Ask for permission, then subscribe to position updates.

        Raises:
            PermissionDenied: permission refused; nothing is subscribed
            LocationStartError: the provider failed to subscribe
        """
        if self.running:
            return

        self._starting = True
        generation = self._generation
        try:
            try:
                granted = await self.provider.request_permission()
            except Exception as e:
                raise LocationStartError(f"Location permission request failed: {e}") from e

            if not granted:
                logger.warning("Location permission denied")
                raise PermissionDenied("Location permission denied")

            if generation != self._generation:
                logger.info("Sampler stopped before subscribing, not starting")
                return

            try:
                subscription = await self.provider.watch_position(
                    self.options,
                    lambda point: self._handle_fix(point, generation),
                )
            except Exception as e:
                raise LocationStartError(f"Could not subscribe to location updates: {e}") from e

            if generation != self._generation:
                subscription.remove()
                logger.info("Sampler stopped while subscribing, subscription dropped")
                return

            self._subscription = subscription
            logger.info(
                f"Location sampling started (min {self.options.time_interval_ms} ms / "
                f"{self.options.distance_interval_m:g} m)"
            )
        finally:
            self._starting = False

    def stop(self) -> None:
        """Unsubscribe. Safe to call repeatedly, before start() or while it is pending."""
        self._generation += 1
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.remove()
            logger.info(f"Location sampling stopped ({len(self._buffer)} points)")

    def reset(self) -> None:
        """Clear the buffer for a fresh session. Only valid while not running."""
        if self.running:
            raise RuntimeError("Cannot reset the route while sampling is running")
        self._buffer.clear()

    def get_route(self) -> Tuple[GeoPoint, ...]:
        return self._buffer.snapshot()

    def set_on_point(self, on_point: Optional[OnPoint]) -> None:
        self.on_point = on_point

    def _handle_fix(self, point: GeoPoint, generation: int) -> None:
        if generation != self._generation:
            return
        self._buffer.append(point)

    def _notify(self, point: GeoPoint, route: Tuple[GeoPoint, ...]) -> None:
        if not self.on_point:
            return
        try:
            self.on_point(point, route)
        except Exception as e:
            logger.error(f"on_point callback failed: {e}", exc_info=True)
