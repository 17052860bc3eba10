"""
UDP location provider.

Listens for JSON position datagrams, e.g. from a phone app that forwards its
GPS over the local network. Accepted keys:

    {"latitude"|"lat": .., "longitude"|"lon"|"lng": ..,
     "altitude"|"alt": .., "speed": .., "accuracy": .., "timestamp"|"time": ..}

Datagrams without a usable latitude/longitude are dropped.
"""
import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from ..model import GeoPoint
from .base import LocationProvider, PointCallback, SampleGate, Subscription, WatchOptions

logger = logging.getLogger(__name__)


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def parse_position_datagram(data: bytes, now_ms: Optional[int] = None) -> Optional[GeoPoint]:
    """Parse one datagram into a GeoPoint. Returns None if it is unusable."""
    try:
        payload = json.loads(data.decode("utf-8", errors="ignore"))
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None

    lat = _first(payload, "latitude", "lat")
    lon = _first(payload, "longitude", "lon", "lng")
    if lat is None or lon is None:
        return None

    try:
        lat = float(lat)
        lon = float(lon)
        altitude = _first(payload, "altitude", "alt")
        speed = payload.get("speed")
        accuracy = payload.get("accuracy")
        timestamp = _first(payload, "timestamp", "time")
        return GeoPoint(
            latitude=lat,
            longitude=lon,
            altitude=float(altitude) if altitude is not None else None,
            speed=float(speed) if speed is not None else None,
            accuracy=float(accuracy) if accuracy is not None else None,
            timestamp=int(timestamp) if timestamp is not None else (
                now_ms if now_ms is not None else int(time.time() * 1000)
            ),
        )
    except (TypeError, ValueError):
        return None


class _PositionProtocol(asyncio.DatagramProtocol):

    def __init__(self, on_datagram: Callable[[bytes, Tuple[str, int]], None]):
        self.on_datagram = on_datagram

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        self.on_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"UDP position socket error: {exc}")


class UdpLocationProvider(LocationProvider):
    """Binds a UDP socket and turns datagrams into position fixes."""

    def __init__(self, host: str = "0.0.0.0", port: int = 5005, permission: bool = True):
        self.host = host
        self.port = port
        self.permission = permission
        self.bound_address: Optional[Tuple[str, int]] = None

    async def request_permission(self) -> bool:
        return self.permission

    async def watch_position(self, options: WatchOptions, callback: PointCallback) -> Subscription:
        loop = asyncio.get_running_loop()
        gate = SampleGate(options)

        def on_datagram(data: bytes, addr: Tuple[str, int]) -> None:
            point = parse_position_datagram(data)
            if point is None or not _in_range(point):
                logger.debug(f"Dropping unusable datagram from {addr[0]}")
                return
            if gate.accept(point):
                callback(point)

        transport, _ = await loop.create_datagram_endpoint(
            lambda: _PositionProtocol(on_datagram),
            local_addr=(self.host, self.port),
        )
        self.bound_address = transport.get_extra_info("sockname")
        logger.info(f"Listening for positions on udp://{self.bound_address[0]}:{self.bound_address[1]}")
        return Subscription(transport.close)


def _in_range(point: GeoPoint) -> bool:
    return -90.0 <= point.latitude <= 90.0 and -180.0 <= point.longitude <= 180.0
