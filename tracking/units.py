"""
Distance, pace and duration formatting for display.

All storage is in meters and seconds; these helpers only convert for the HUD
and log lines.
"""
from typing import Optional

M_TO_KM = 1 / 1000
KM_TO_MI = 0.621371
M_TO_MI = M_TO_KM * KM_TO_MI
METERS_PER_MILE = 1609.34


def format_distance(meters: Optional[float], unit: str = "km") -> str:
    """e.g. "5.23 km" or "3.25 mi"."""
    if meters is None or meters != meters:
        meters = 0.0
    if unit == "mi":
        return f"{meters * M_TO_MI:.2f} mi"
    return f"{meters * M_TO_KM:.2f} km"


def pace_min_per_km(duration_seconds: float, distance_m: float) -> float:
    if not distance_m or distance_m <= 0:
        return 0.0
    return (duration_seconds / 60) / (distance_m / 1000)


def format_pace(min_per_km: Optional[float], unit: str = "km") -> str:
    """e.g. "5:30 /km" or "8:51 /mi"."""
    if min_per_km is None or min_per_km != min_per_km or min_per_km <= 0:
        return "--"
    per_unit = min_per_km / KM_TO_MI if unit == "mi" else min_per_km
    whole = int(per_unit)
    sec = round((per_unit - whole) * 60)
    suffix = "/mi" if unit == "mi" else "/km"
    if sec >= 60:
        return f"{whole + 1}:00 {suffix}"
    return f"{whole}:{sec:02d} {suffix}"


def format_duration_compact(duration_seconds: Optional[float]) -> str:
    """
    Compact duration: "45s", "10m23s", "1h20m14s".

    Each part is truncated to two digits.
    """
    if not duration_seconds or duration_seconds < 0:
        return "0s"

    total = int(duration_seconds)
    hours = (total // 3600) % 100
    minutes = ((total % 3600) // 60) % 100
    seconds = total % 60

    if hours == 0 and minutes == 0:
        return f"{seconds}s"

    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    parts.append(f"{minutes:02d}m")
    parts.append(f"{seconds:02d}s")
    return "".join(parts)


def format_delta(delta_m: float) -> str:
    """Signed gap to the ghost, e.g. "+12 m ahead"."""
    if abs(delta_m) < 0.5:
        return "level"
    side = "ahead" if delta_m > 0 else "behind"
    return f"{delta_m:+.0f} m {side}"
