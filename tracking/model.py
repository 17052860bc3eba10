# tracking/model.py
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional, Sequence


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float
    altitude: Optional[float] = None
    speed: Optional[float] = None       # m/s
    accuracy: Optional[float] = None    # meters
    timestamp: int = 0                  # epoch ms (live) or ms since route start (ghost)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeoPoint":
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            altitude=_optional_float(data.get("altitude")),
            speed=_optional_float(data.get("speed")),
            accuracy=_optional_float(data.get("accuracy")),
            timestamp=int(data.get("timestamp") or 0),
        )


# Insertion order is traversal order
Route = Sequence[GeoPoint]


@dataclass(frozen=True)
class Telemetry:
    """One tick worth of HUD data."""
    elapsed_seconds: int
    distance_m: float
    delta_m: float
    ghost_position: Optional[GeoPoint] = None
    ghost_active: bool = False

    def to_dict(self) -> Dict[str, Any]:
        ghost = None
        if self.ghost_position is not None:
            ghost = {
                "latitude": self.ghost_position.latitude,
                "longitude": self.ghost_position.longitude,
            }
        return {
            "elapsed_seconds": self.elapsed_seconds,
            "distance": self.distance_m,
            "delta": self.delta_m,
            "ghost_position": ghost,
            "ghost_active": self.ghost_active,
        }


@dataclass(frozen=True)
class GhostResult:
    won: bool
    delta: float


@dataclass
class RunSummary:
    points: Sequence[GeoPoint]
    distance: float                 # meters
    duration: int                   # seconds
    timestamp: int                  # epoch ms at session start
    ghost_meta: Optional[Dict[str, Any]] = None
    ghost_result: Optional[GhostResult] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "points": [p.to_dict() for p in self.points],
            "distance": self.distance,
            "duration": self.duration,
            "timestamp": self.timestamp,
            "ghostMeta": self.ghost_meta,
            "ghostResult": asdict(self.ghost_result) if self.ghost_result else None,
            **self.extra,
        }


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)
