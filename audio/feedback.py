"""
Audio/haptic feedback state machine for ghost races.

Maps the signed distance to the ghost (meters, positive = runner ahead) to
a mix of looping sound channels with per-channel volume and stereo pan, and
fires a rate-limited haptic pulse when the ghost is within a few meters.

Lifecycle is two-phase: constructing the machine does no I/O; load()
starts the asynchronous initialisation and ready() awaits it. Every
playback method awaits ready() itself, so callers may skip it.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from .channels import (
    AudioBackend,
    Channel,
    ChannelRegistry,
    ChannelState,
)

logger = logging.getLogger(__name__)

HAPTIC_MIN_INTERVAL_MS = 2000

# Longest wait for the cheer to play out before teardown
ONE_SHOT_DRAIN_S = 6.0
ONE_SHOT_POLL_S = 0.05

# Channels whose on/off state is decided by the distance band
BAND_MANAGED_CHANNELS = (
    Channel.GHOST_DISTANT,
    Channel.BREATHING,
    Channel.FOOTSTEPS,
    Channel.HEARTBEAT,
)


class Band(Enum):
    FAR_BEHIND = "far_behind"       # delta < -50
    BEHIND = "behind"               # -50 <= delta < -20
    CLOSE_BEHIND = "close_behind"   # -20 <= delta < -5
    LEVEL = "level"                 # -5 <= delta <= 5
    CLOSE_AHEAD = "close_ahead"     # 5 < delta < 20
    AHEAD = "ahead"                 # 20 <= delta < 60
    FAR_AHEAD = "far_ahead"         # delta >= 60


@dataclass(frozen=True)
class Voice:
    volume: float
    pan: float


AMBIENT_MIX: Dict[Channel, Voice] = {
    Channel.GHOST_DISTANT: Voice(0.25, 0.0),
    Channel.BREATHING: Voice(0.35, 0.0),
    Channel.FOOTSTEPS: Voice(0.25, 0.0),
}


def classify_band(delta_m: float) -> Band:
    """First matching band, evaluated from far behind to far ahead."""
    distance = abs(delta_m)
    if delta_m < -50:
        return Band.FAR_BEHIND
    if delta_m < -20:
        return Band.BEHIND
    if delta_m < -5:
        return Band.CLOSE_BEHIND
    if distance <= 5:
        return Band.LEVEL
    if delta_m < 20:
        return Band.CLOSE_AHEAD
    if delta_m < 60:
        return Band.AHEAD
    return Band.FAR_AHEAD


def ambient_voice(delta_m: float) -> Voice:
    """Always-on ghost layer: louder the closer the ghost, panned toward its side."""
    volume = min(0.6, max(0.12, 0.6 - abs(delta_m) / 120))
    return Voice(volume, -0.2 if delta_m < 0 else 0.2)


def target_mix(delta_m: float, force_ambient: bool = False) -> Optional[Dict[Channel, Voice]]:
    """
    Channels that should be playing for this delta.

    Returns:
        Ordered channel -> Voice mapping, or None when everything should stop
    """
    band = classify_band(delta_m)
    mix: Dict[Channel, Voice] = {}
    if force_ambient:
        mix[Channel.GHOST_DISTANT] = ambient_voice(delta_m)

    if band in (Band.FAR_BEHIND, Band.FAR_AHEAD):
        if not force_ambient:
            return None
        mix.update(AMBIENT_MIX)
    elif band is Band.BEHIND:
        mix[Channel.FOOTSTEPS] = Voice(0.3, -0.6)
    elif band is Band.CLOSE_BEHIND:
        mix[Channel.FOOTSTEPS] = Voice(0.6, -0.4)
        mix[Channel.BREATHING] = Voice(0.4, -0.4)
    elif band is Band.LEVEL:
        mix[Channel.BREATHING] = Voice(0.85, 0.4 if delta_m > 0 else -0.4)
        mix[Channel.HEARTBEAT] = Voice(0.75, 0.0)
    elif band is Band.CLOSE_AHEAD:
        mix[Channel.BREATHING] = Voice(0.5, 0.5)
        mix[Channel.FOOTSTEPS] = Voice(0.45, 0.5)
    else:
        mix[Channel.FOOTSTEPS] = Voice(0.2, 0.7)
    return mix


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class FeedbackStateMachine:
    """
    Owns the race sound channels and drives them from the ghost delta.

    If no channel has an asset the machine is disabled and every call
    returns immediately, so a race can run without any audio files.
    """

    def __init__(
        self,
        sources: Mapping[str, Any],
        backend: Optional[AudioBackend] = None,
        enable_haptics: bool = True,
        haptic: Optional[Callable[[], None]] = None,
        clock: Optional[Callable[[], float]] = None,
        one_shot_timeout_s: float = ONE_SHOT_DRAIN_S,
    ):
        """
        Args:
            sources: Channel name -> asset reference (None for unbound)
            backend: Platform audio backend that loads and plays assets
            enable_haptics: Whether proximity fires haptic pulses
            haptic: Called once per pulse (no-op when None)
            clock: Millisecond clock for haptic rate limiting
            one_shot_timeout_s: Longest wait in finish_one_shots()
        """
        self.registry = ChannelRegistry(sources)
        self.backend = backend
        self.enable_haptics = enable_haptics
        self.haptic = haptic
        self.clock = clock or _monotonic_ms
        self.one_shot_timeout_s = one_shot_timeout_s

        self.enabled = self.registry.any_bound and backend is not None
        if not self.enabled:
            logger.info("No audio assets bound, feedback audio disabled")

        self._init_task: Optional[asyncio.Future] = None
        self._unloaded = False
        self._last_haptic_at: Optional[float] = None

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    def load(self) -> None:
        """Start asynchronous initialisation (needs a running event loop)."""
        if not self.enabled or self._init_task is not None:
            return
        self._init_task = asyncio.ensure_future(self._initialize())

    async def ready(self) -> None:
        """Wait until every channel finished loading (or failed)."""
        if not self.enabled:
            return
        self.load()
        await asyncio.shield(self._init_task)

    async def _initialize(self) -> None:
        try:
            await self.backend.configure_session()
        except Exception as e:
            logger.warning(f"Audio session configuration failed: {e}")
        await self.registry.load_all(self.backend)

    async def unload(self) -> None:
        """Release every channel. Only the first call has any effect."""
        if self._unloaded:
            logger.debug("Feedback audio already unloaded")
            return
        self._unloaded = True
        if not self.enabled:
            return

        await self.registry.unload_all()
        if self._init_task is not None and not self._init_task.done():
            # Loads still in flight see the closed registry and release themselves
            await asyncio.shield(self._init_task)

        try:
            await self.backend.close()
        except Exception as e:
            logger.warning(f"Audio backend close failed: {e}")
        logger.info("Feedback audio unloaded")

    async def finish_one_shots(self) -> bool:
        """
        Wait for a playing cheer to end, up to one_shot_timeout_s.

        Returns:
            True if nothing one-shot is still playing
        """
        if not self.active or self._init_task is None or not self._init_task.done():
            return True
        slot = self.registry.slot(Channel.CHEER)
        if slot.state is not ChannelState.READY:
            return True

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.one_shot_timeout_s
        while True:
            try:
                status = await slot.sound.get_status()
            except Exception as e:
                logger.warning(f"Status of 'cheer' failed: {e}")
                return True
            if not status.is_playing:
                return True
            if loop.time() >= deadline:
                logger.info("Cheer still playing at teardown, cutting it off")
                return False
            await asyncio.sleep(ONE_SHOT_POLL_S)

    @property
    def active(self) -> bool:
        return self.enabled and not self._unloaded

    def channel_state(self, channel: Channel) -> ChannelState:
        return self.registry.state(channel)

    # ==========================================================================
    # Band evaluation
    # ==========================================================================

    async def update_audio(
        self,
        delta_m: float,
        force_ambient: bool = False,
        held: Iterable[Channel] = (),
    ) -> Optional[Band]:
        """
        Retune the channel mix for a new delta.

        Args:
            delta_m: Runner distance minus ghost distance, meters
            force_ambient: Keep an ambient ghost layer playing in every band
            held: Band-managed channels the caller keeps playing itself;
                band evaluation never stops them (stop_all still does)

        Returns:
            The band that fired, or None when the machine is inactive
        """
        if not self.active:
            return None
        await self.ready()
        if self._unloaded:
            return None

        band = classify_band(delta_m)
        mix = target_mix(delta_m, force_ambient)
        if mix is None:
            await self.stop_all()
            return band

        for channel, voice in mix.items():
            await self.play_looped(channel, voice.volume, voice.pan)
        held = set(held)
        for channel in BAND_MANAGED_CHANNELS:
            if channel not in mix and channel not in held:
                await self._stop_channel(channel)

        if band is Band.LEVEL:
            self.maybe_haptic()
        return band

    # ==========================================================================
    # Channel primitives
    # ==========================================================================

    async def play_looped(self, channel: Channel, volume: float, pan: float) -> bool:
        """
        Set volume and pan, and start the channel unless it is already playing.

        Returns:
            True if the channel was retuned
        """
        if not self.active:
            return False
        await self.ready()

        slot = self.registry.slot(channel)
        if self._unloaded or slot.state is not ChannelState.READY:
            return False

        sound = slot.sound
        try:
            status = await sound.get_status()
            if not status.is_loaded:
                return False
            await sound.set_volume(volume)
            await sound.set_pan(pan)
            if not status.is_playing:
                await sound.play()
        except Exception as e:
            logger.warning(f"Playback on '{slot.channel.value}' failed: {e}")
            return False
        return True

    async def play_breathing(self, volume: float, pan: float) -> bool:
        return await self.play_looped(Channel.BREATHING, volume, pan)

    async def play_footsteps(self, volume: float, pan: float) -> bool:
        return await self.play_looped(Channel.FOOTSTEPS, volume, pan)

    async def play_heartbeat(self, volume: float) -> bool:
        return await self.play_looped(Channel.HEARTBEAT, volume, 0.0)

    async def play_boss_theme(self, volume: float) -> bool:
        return await self.play_looped(Channel.BOSS_THEME, volume, 0.0)

    async def play_cheer(self) -> bool:
        """Play the cheer from the start, every time."""
        if not self.active:
            return False
        await self.ready()

        slot = self.registry.slot(Channel.CHEER)
        if self._unloaded or slot.state is not ChannelState.READY:
            return False
        try:
            await slot.sound.replay()
        except Exception as e:
            logger.warning(f"Playback on 'cheer' failed: {e}")
            return False
        return True

    async def stop_all(self) -> None:
        """Stop every playing channel. Safe when nothing is playing."""
        if not self.active:
            return
        await self.ready()
        for channel in Channel:
            await self._stop_channel(channel)

    async def _stop_channel(self, channel: Channel) -> None:
        slot = self.registry.slot(channel)
        if self._unloaded or slot.state is not ChannelState.READY:
            return
        sound = slot.sound
        try:
            status = await sound.get_status()
            if status.is_loaded and status.is_playing:
                await sound.stop()
        except Exception as e:
            logger.warning(f"Stopping '{channel.value}' failed: {e}")

    # ==========================================================================
    # Haptics
    # ==========================================================================

    def maybe_haptic(self) -> bool:
        """Fire a haptic pulse unless one fired in the last 2 seconds."""
        if not self.enable_haptics or self._unloaded:
            return False

        now = self.clock()
        if self._last_haptic_at is not None and now - self._last_haptic_at < HAPTIC_MIN_INTERVAL_MS:
            return False
        self._last_haptic_at = now

        if self.haptic is None:
            logger.debug("Haptic pulse")
            return True
        try:
            self.haptic()
        except Exception as e:
            logger.warning(f"Haptic pulse failed: {e}")
        return True
