"""
Ghost replay and race comparison.

A ghost is a fixed, time-stamped reference route. GhostReplayEngine answers
where the ghost was, and how far it had gone, at a given elapsed time;
compute_delta turns that into the signed gap that drives the feedback
audio and the HUD.
"""
from dataclasses import replace
from typing import Any, Iterable, List, Mapping, Optional

from tracking.geo import (
    distance_at_elapsed,
    distance_between,
    position_at_elapsed,
    route_duration_ms,
    total_distance,
)
from tracking.model import GeoPoint, Route


class GhostReplayEngine:
    """
    Read-only view over one ghost route.

    Holds no state besides the route, so it can be queried from any number
    of call sites.
    """

    def __init__(self, ghost_route: Route):
        self.ghost_route = tuple(ghost_route)
        self.total_distance = total_distance(self.ghost_route)
        self.duration_ms = route_duration_ms(self.ghost_route)

    def position_at(self, elapsed_ms: float) -> Optional[GeoPoint]:
        return position_at_elapsed(self.ghost_route, elapsed_ms)

    def distance_at(self, elapsed_ms: float) -> float:
        return distance_at_elapsed(self.ghost_route, elapsed_ms)

    def __len__(self) -> int:
        return len(self.ghost_route)


def compute_delta(live_route: Route, ghost: GhostReplayEngine, elapsed_ms: float) -> float:
    """
    Signed gap in meters: positive when the runner is ahead of the ghost.

    A ghost with fewer than 2 points never moves, so the delta is just the
    runner's distance.
    """
    return total_distance(live_route) - ghost.distance_at(elapsed_ms)


# ===================== BOSS ROUTES =====================

def build_boss_route(template: Route, pace_seconds_per_meter: Optional[float]) -> List[GeoPoint]:
    """
    Re-time a route so it is run at a constant pace.

    Args:
        template: Point sequence to follow (its own timestamps are ignored)
        pace_seconds_per_meter: Target pace

    Returns:
        New route with relative timestamps starting at 0, or [] when the
        template has fewer than 2 points or the pace is not positive
    """
    if not pace_seconds_per_meter or pace_seconds_per_meter <= 0 or len(template) < 2:
        return []

    elapsed_ms = 0.0
    route = [replace(template[0], timestamp=0)]
    for prev, nxt in zip(template, template[1:]):
        elapsed_ms += distance_between(prev, nxt) * pace_seconds_per_meter * 1000
        route.append(replace(nxt, timestamp=round(elapsed_ms)))
    return route


def average_pace(runs: Iterable[Mapping[str, Any]]) -> Optional[float]:
    """
    Mean pace in seconds per meter over runs with positive distance and duration.

    Each run is a normalised summary dict with "distance" (m) and "duration" (s).
    """
    distance = 0.0
    duration = 0.0
    for run in runs:
        run_distance = float(run.get("distance") or 0)
        run_duration = float(run.get("duration") or 0)
        if run_distance > 0 and run_duration > 0:
            distance += run_distance
            duration += run_duration

    if distance <= 0 or duration <= 0:
        return None
    return duration / distance
