"""
Shared fakes for the Ghost Runner test suite.

Routes are laid out due north along a meridian, where the haversine distance
is exactly EARTH_RADIUS_M * d_latitude, so segment lengths in meters can be
written down directly.
"""
import asyncio
import math
from typing import Callable, List, Optional, Sequence, Tuple

import pytest

from audio.channels import AssetLoadFailure, AudioBackend, PlaybackOperationFailure, PlaybackStatus, Sound
from tracking.backends.base import LocationProvider, Subscription, WatchOptions
from tracking.geo import EARTH_RADIUS_M
from tracking.model import GeoPoint

METERS_PER_DEGREE = EARTH_RADIUS_M * math.pi / 180


def north(meters: float, timestamp: int = 0, speed: Optional[float] = None, base_lat: float = 0.0) -> GeoPoint:
    """Point `meters` north of (base_lat, 0)."""
    return GeoPoint(latitude=base_lat + meters / METERS_PER_DEGREE, longitude=0.0, speed=speed, timestamp=timestamp)


def line_route(samples: Sequence[Tuple[float, int]], base_lat: float = 0.0) -> List[GeoPoint]:
    """Route from (meters_north, timestamp_ms) pairs."""
    return [north(m, t, base_lat=base_lat) for m, t in samples]


# ===== CLOCK =====

class ManualClock:
    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


# ===== AUDIO =====

class FakeSound(Sound):
    """Records every command; raises PlaybackOperationFailure for ops in `fail_on`."""

    def __init__(self, source, looping: bool, fail_on: Sequence[str] = ()):
        self.source = source
        self.looping = looping
        self.fail_on = set(fail_on)
        self.loaded = True
        self.playing = False
        self.volume: Optional[float] = None
        self.pan: Optional[float] = None
        self.commands: List[Tuple] = []

    def _record(self, op: str, *args) -> None:
        self.commands.append((op, *args))
        if op in self.fail_on:
            raise PlaybackOperationFailure(f"{op} failed on {self.source}")

    def ops(self, name: str) -> List[Tuple]:
        return [c for c in self.commands if c[0] == name]

    async def get_status(self) -> PlaybackStatus:
        return PlaybackStatus(is_loaded=self.loaded, is_playing=self.playing)

    async def set_volume(self, volume: float) -> None:
        self._record("set_volume", volume)
        self.volume = volume

    async def set_pan(self, pan: float) -> None:
        self._record("set_pan", pan)
        self.pan = pan

    async def play(self) -> None:
        self._record("play")
        self.playing = True

    async def replay(self) -> None:
        self._record("replay")
        self.playing = True

    async def stop(self) -> None:
        self._record("stop")
        self.playing = False

    async def unload(self) -> None:
        self._record("unload")
        self.loaded = False
        self.playing = False


class FakeBackend(AudioBackend):
    """
    Loads FakeSounds keyed by source.

    Sources listed in `fail_sources` raise AssetLoadFailure. When `gate` is
    set, every load waits on it first.
    """

    def __init__(self, fail_sources: Sequence = (), gate: Optional[asyncio.Event] = None,
                 fail_configure: bool = False, sound_fail_on: Sequence[str] = ()):
        self.fail_sources = set(fail_sources)
        self.gate = gate
        self.fail_configure = fail_configure
        self.sound_fail_on = sound_fail_on
        self.sounds = {}
        self.load_attempts: List = []
        self.configured = 0
        self.closed = 0

    async def configure_session(self) -> None:
        self.configured += 1
        if self.fail_configure:
            raise RuntimeError("no audio device")

    async def load_sound(self, source, looping: bool) -> Sound:
        self.load_attempts.append(source)
        if self.gate is not None:
            await self.gate.wait()
        if source in self.fail_sources:
            raise AssetLoadFailure(f"cannot decode {source}")
        sound = FakeSound(source, looping, fail_on=self.sound_fail_on)
        self.sounds[source] = sound
        return sound

    async def close(self) -> None:
        self.closed += 1


ALL_SOURCES = {
    "breathing": "breathing.wav",
    "footsteps": "footsteps.wav",
    "heartbeat": "heartbeat.wav",
    "ghostDistant": "ghost_distant.wav",
    "bossTheme": "boss_theme.wav",
    "cheer": "cheer.wav",
}


# ===== LOCATION =====

class FakeProvider(LocationProvider):
    """
    Location provider driven by the test through emit().

    `permission_gate` / `watch_gate` hold the matching call open until set.
    """

    def __init__(self, permission: bool = True, permission_error: Optional[Exception] = None,
                 watch_error: Optional[Exception] = None,
                 permission_gate: Optional[asyncio.Event] = None,
                 watch_gate: Optional[asyncio.Event] = None):
        self.permission = permission
        self.permission_error = permission_error
        self.watch_error = watch_error
        self.permission_gate = permission_gate
        self.watch_gate = watch_gate
        self.permission_requests = 0
        self.watch_calls = 0
        self.removed = 0
        self.options: Optional[WatchOptions] = None
        self.callback: Optional[Callable[[GeoPoint], None]] = None

    async def request_permission(self) -> bool:
        self.permission_requests += 1
        if self.permission_gate is not None:
            await self.permission_gate.wait()
        if self.permission_error is not None:
            raise self.permission_error
        return self.permission

    async def watch_position(self, options: WatchOptions, callback) -> Subscription:
        self.watch_calls += 1
        if self.watch_gate is not None:
            await self.watch_gate.wait()
        if self.watch_error is not None:
            raise self.watch_error
        self.options = options
        self.callback = callback
        return Subscription(self._remove)

    def _remove(self) -> None:
        self.removed += 1
        self.callback = None

    @property
    def subscribed(self) -> bool:
        return self.callback is not None

    def emit(self, point: GeoPoint) -> None:
        if self.callback is not None:
            self.callback(point)


@pytest.fixture
def clock():
    return ManualClock()
