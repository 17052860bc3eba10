import pytest

from tracking.units import (
    METERS_PER_MILE,
    format_delta,
    format_distance,
    format_duration_compact,
    format_pace,
    pace_min_per_km,
)


def test_format_distance():
    assert format_distance(5230) == "5.23 km"
    assert format_distance(METERS_PER_MILE, "mi") == "1.00 mi"
    assert format_distance(None) == "0.00 km"


def test_pace_min_per_km():
    assert pace_min_per_km(1800, 5000) == pytest.approx(6.0)
    assert pace_min_per_km(1800, 0) == 0.0


def test_format_pace():
    assert format_pace(5.5) == "5:30 /km"
    assert format_pace(0) == "--"
    assert format_pace(None) == "--"
    assert format_pace(5.999) == "6:00 /km"


def test_format_pace_miles():
    assert format_pace(5.0, "mi") == "8:03 /mi"


def test_format_duration_compact():
    assert format_duration_compact(45) == "45s"
    assert format_duration_compact(623) == "10m23s"
    assert format_duration_compact(4814) == "1h20m14s"
    assert format_duration_compact(0) == "0s"
    assert format_duration_compact(None) == "0s"


def test_format_delta():
    assert format_delta(12.2) == "+12 m ahead"
    assert format_delta(-12.4) == "-12 m behind"
    assert format_delta(0.3) == "level"
