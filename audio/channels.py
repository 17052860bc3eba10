"""
Sound channels and the registry that owns them.

Each logical channel is bound to an optional asset. Loading is best-effort
and isolated per channel: a channel moves Unloaded -> Loading -> Ready, or
ends up Failed and stays that way for the rest of the session.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


class Channel(str, Enum):
    BREATHING = "breathing"
    FOOTSTEPS = "footsteps"
    HEARTBEAT = "heartbeat"
    GHOST_DISTANT = "ghostDistant"
    BOSS_THEME = "bossTheme"
    CHEER = "cheer"


LOOPING_CHANNELS = frozenset({
    Channel.BREATHING,
    Channel.FOOTSTEPS,
    Channel.HEARTBEAT,
    Channel.GHOST_DISTANT,
    Channel.BOSS_THEME,
})


class ChannelState(Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class AssetLoadFailure(Exception):
    """A channel's asset could not be loaded."""


class PlaybackOperationFailure(Exception):
    """A play/stop/volume/pan call on a loaded sound failed."""


@dataclass(frozen=True)
class PlaybackStatus:
    is_loaded: bool
    is_playing: bool


class Sound(ABC):
    """One loaded, playable asset."""

    @abstractmethod
    async def get_status(self) -> PlaybackStatus: ...

    @abstractmethod
    async def set_volume(self, volume: float) -> None: ...

    @abstractmethod
    async def set_pan(self, pan: float) -> None: ...

    @abstractmethod
    async def play(self) -> None: ...

    @abstractmethod
    async def replay(self) -> None:
        """Restart from the beginning, whether or not it is playing."""

    @abstractmethod
    async def stop(self) -> None: ...

    @abstractmethod
    async def unload(self) -> None: ...


class AudioBackend(ABC):
    """Platform audio: session setup and asset loading."""

    @abstractmethod
    async def configure_session(self) -> None: ...

    @abstractmethod
    async def load_sound(self, source: Any, looping: bool) -> Sound:
        """Raises AssetLoadFailure if the asset cannot be loaded."""

    @abstractmethod
    async def close(self) -> None: ...


@dataclass
class ChannelSlot:
    channel: Channel
    source: Any
    looping: bool
    state: ChannelState = ChannelState.UNLOADED
    sound: Optional[Sound] = None

    @property
    def bound(self) -> bool:
        return self.source is not None and self.state is not ChannelState.FAILED


class ChannelRegistry:
    """Holds one slot per Channel and drives their load/unload lifecycle."""

    def __init__(self, sources: Mapping[str, Any]):
        known = {channel.value for channel in Channel}
        for name in sources:
            if str(name) not in known:
                logger.warning(f"Ignoring unknown audio channel '{name}'")

        self._slots: Dict[Channel, ChannelSlot] = {
            channel: ChannelSlot(
                channel=channel,
                source=sources.get(channel.value),
                looping=channel in LOOPING_CHANNELS,
            )
            for channel in Channel
        }
        self._closed = False

    @property
    def any_bound(self) -> bool:
        return any(slot.source is not None for slot in self._slots.values())

    def slot(self, channel: Channel) -> ChannelSlot:
        return self._slots[Channel(channel)]

    def state(self, channel: Channel) -> ChannelState:
        return self.slot(channel).state

    def ready_sounds(self) -> List[Tuple[Channel, Sound]]:
        return [
            (slot.channel, slot.sound)
            for slot in self._slots.values()
            if slot.state is ChannelState.READY and slot.sound is not None
        ]

    async def load_all(self, backend: AudioBackend) -> None:
        """Load every bound channel; failures only affect their own channel."""
        for slot in self._slots.values():
            if slot.source is None:
                logger.debug(f"No asset for channel '{slot.channel.value}', channel stays silent")
                continue
            await self._load(slot, backend)

        ready = [channel.value for channel, _ in self.ready_sounds()]
        logger.info(f"Audio channels ready: {', '.join(ready) if ready else 'none'}")

    async def _load(self, slot: ChannelSlot, backend: AudioBackend) -> None:
        if slot.state is not ChannelState.UNLOADED or self._closed:
            return

        slot.state = ChannelState.LOADING
        try:
            sound = await backend.load_sound(slot.source, slot.looping)
        except Exception as e:
            self._fail(slot, e)
            return

        if self._closed:
            # Registry was closed while this asset was loading
            await self._release(slot.channel, sound)
            slot.state = ChannelState.UNLOADED
            return

        slot.sound = sound
        slot.state = ChannelState.READY

    def _fail(self, slot: ChannelSlot, error: Exception) -> None:
        if slot.state is ChannelState.FAILED:
            return
        slot.state = ChannelState.FAILED
        slot.sound = None
        logger.warning(f"Audio channel '{slot.channel.value}' disabled, load failed: {error}")

    async def unload_all(self) -> None:
        """Release every loaded sound. Loads still in flight release themselves."""
        self._closed = True
        for slot in self._slots.values():
            if slot.state is not ChannelState.READY or slot.sound is None:
                continue
            sound, slot.sound = slot.sound, None
            slot.state = ChannelState.UNLOADED
            await self._release(slot.channel, sound)

    @staticmethod
    async def _release(channel: Channel, sound: Sound) -> None:
        try:
            await sound.unload()
        except Exception as e:
            logger.warning(f"Failed to unload audio channel '{channel.value}': {e}")
