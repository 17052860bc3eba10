"""
Geo math for GPS routes.

Great-circle distances plus time-indexed lookups over sparse, irregularly
sampled routes. Lookups work on *relative* time: every timestamp is
normalised by subtracting the first point's timestamp, so both live routes
(epoch ms) and ghost routes (ms since start) can be queried the same way.
"""
import math
from typing import List, Optional, Tuple

import numpy as np

from .model import GeoPoint, Route

EARTH_RADIUS_M = 6_371_000.0


def distance_between(a: Optional[GeoPoint], b: Optional[GeoPoint]) -> float:
    """Haversine distance in meters. Returns 0 if either point is missing."""
    if a is None or b is None:
        return 0.0

    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    d_phi = math.radians(b.latitude - a.latitude)
    d_lambda = math.radians(b.longitude - a.longitude)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def segment_distances(route: Route) -> np.ndarray:
    """
    Vectorised haversine over consecutive point pairs.

    Returns:
        Array of length len(route) - 1 (empty for routes shorter than 2)
    """
    if len(route) < 2:
        return np.zeros(0, dtype=float)

    lat = np.radians(np.array([p.latitude for p in route], dtype=float))
    lon = np.radians(np.array([p.longitude for p in route], dtype=float))

    d_phi = np.diff(lat)
    d_lambda = np.diff(lon)
    h = np.sin(d_phi / 2) ** 2 + np.cos(lat[:-1]) * np.cos(lat[1:]) * np.sin(d_lambda / 2) ** 2
    h = np.clip(h, 0.0, 1.0)
    return EARTH_RADIUS_M * 2 * np.arctan2(np.sqrt(h), np.sqrt(1 - h))


def total_distance(route: Route) -> float:
    """Sum of segment distances in meters; 0 for routes with fewer than 2 points."""
    if len(route) < 2:
        return 0.0
    return float(segment_distances(route).sum())


def relative_timestamps(route: Route) -> List[int]:
    """Timestamps as offsets from the first point."""
    if not route:
        return []
    base = route[0].timestamp
    return [p.timestamp - base for p in route]


def route_duration_ms(route: Route) -> int:
    if len(route) < 2:
        return 0
    return max(0, route[-1].timestamp - route[0].timestamp)


def distance_at_elapsed(route: Route, elapsed_ms: float) -> float:
    """
    Distance the route had covered by relative time `elapsed_ms`.

    The segment that brackets `elapsed_ms` contributes by time ratio, not
    distance ratio. Segments whose end time is not after their start time
    are never interpolated.
    """
    if len(route) < 2:
        return 0.0

    times = relative_timestamps(route)
    segments = segment_distances(route)

    if elapsed_ms >= times[-1]:
        return float(segments.sum())

    total = 0.0
    for i in range(1, len(route)):
        prev_time = times[i - 1]
        next_time = times[i]
        segment = float(segments[i - 1])

        if elapsed_ms >= next_time:
            total += segment
        elif elapsed_ms > prev_time and next_time > prev_time:
            ratio = (elapsed_ms - prev_time) / (next_time - prev_time)
            return total + segment * ratio
        else:
            return total

    return total


def position_at_elapsed(route: Route, elapsed_ms: float) -> Optional[GeoPoint]:
    """
    Interpolated position at relative time `elapsed_ms`.

    Latitude/longitude are interpolated linearly by time ratio; altitude,
    speed and accuracy come from the segment's start point. Clamps to the
    last point once `elapsed_ms` reaches the final relative timestamp.
    """
    if not route:
        return None
    if len(route) == 1:
        return route[0]

    base = route[0].timestamp
    times = relative_timestamps(route)
    last = route[-1]

    if elapsed_ms >= times[-1]:
        return last

    for i in range(1, len(route)):
        prev_time = times[i - 1]
        next_time = times[i]
        if elapsed_ms <= next_time and next_time > prev_time:
            prev = route[i - 1]
            nxt = route[i]
            ratio = max(0.0, (elapsed_ms - prev_time) / (next_time - prev_time))
            return GeoPoint(
                latitude=prev.latitude + (nxt.latitude - prev.latitude) * ratio,
                longitude=prev.longitude + (nxt.longitude - prev.longitude) * ratio,
                altitude=prev.altitude,
                speed=prev.speed,
                accuracy=prev.accuracy,
                timestamp=int(base + elapsed_ms),
            )

    return last


def project_local(route: Route, origin: Optional[GeoPoint] = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Equirectangular projection to meters east/north of `origin`.

    Good enough for plotting a run; not for measuring it.
    """
    if not route:
        return np.zeros(0, dtype=float), np.zeros(0, dtype=float)
    origin = origin or route[0]

    lat = np.array([p.latitude for p in route], dtype=float)
    lon = np.array([p.longitude for p in route], dtype=float)
    xs = np.radians(lon - origin.longitude) * EARTH_RADIUS_M * np.cos(np.radians(origin.latitude))
    ys = np.radians(lat - origin.latitude) * EARTH_RADIUS_M
    return xs, ys
