"""
PyAudio playback backend for the feedback channels.

Each channel is a WAV file decoded once into a stereo float32 buffer and
played through its own PortAudio output stream. The stream callback loops
(or plays once) over the buffer and applies the channel's current volume
and pan, so retuning a playing channel never restarts the sample.

Desktop audio has no silent-mode or background session to configure;
configure_session() only opens the PortAudio host.
"""
import asyncio
import logging
import math
import threading
import wave
from pathlib import Path
from typing import Any, Optional, Tuple

import numpy as np
import pyaudio

from .channels import (
    AssetLoadFailure,
    AudioBackend,
    PlaybackOperationFailure,
    PlaybackStatus,
    Sound,
)

logger = logging.getLogger(__name__)


def decode_wav(path: Path) -> Tuple[np.ndarray, int]:
    """
    Read a PCM WAV file.

    Returns:
        (frames, rate) where frames is an (n, 2) float32 array in [-1, 1]
    """
    with wave.open(str(path), "rb") as wav_file:
        channels = wav_file.getnchannels()
        sample_width = wav_file.getsampwidth()
        rate = wav_file.getframerate()
        raw = wav_file.readframes(wav_file.getnframes())

    if sample_width == 1:
        samples = (np.frombuffer(raw, dtype=np.uint8).astype(np.float32) - 128.0) / 128.0
    elif sample_width == 2:
        samples = np.frombuffer(raw, dtype="<i2").astype(np.float32) / 32768.0
    elif sample_width == 4:
        samples = np.frombuffer(raw, dtype="<i4").astype(np.float32) / 2147483648.0
    else:
        raise ValueError(f"Unsupported sample width: {sample_width * 8} bit")

    frames = samples.reshape(-1, channels)
    if channels == 1:
        frames = np.repeat(frames, 2, axis=1)
    elif channels > 2:
        frames = frames[:, :2]

    if frames.shape[0] == 0:
        raise ValueError("WAV file has no audio frames")
    return np.ascontiguousarray(frames, dtype=np.float32), rate


def pan_gains(volume: float, pan: float) -> Tuple[float, float]:
    """
    Equal-power left/right gains. pan -1 = hard left, +1 = hard right.

    left² + right² == volume² for every pan, so a sweep keeps its loudness.
    """
    pan = max(-1.0, min(1.0, pan))
    volume = max(0.0, min(1.0, volume))
    angle = (pan + 1.0) * math.pi / 4
    return volume * math.cos(angle), volume * math.sin(angle)


class PyAudioSound(Sound):
    """One channel: a decoded buffer plus a callback-driven output stream."""

    CHUNK_SIZE = 1024

    def __init__(self, audio: pyaudio.PyAudio, path: Path, looping: bool):
        self.audio = audio
        self.path = path
        self.looping = looping

        self._frames: Optional[np.ndarray] = None
        self._rate = 44100
        self._stream = None
        self._position = 0
        self._volume = 1.0
        self._pan = 0.0

        # The stream callback runs on PortAudio's thread
        self._lock = threading.Lock()

    def load_sync(self) -> None:
        self._frames, self._rate = decode_wav(self.path)
        self._stream = self.audio.open(
            format=pyaudio.paFloat32,
            channels=2,
            rate=self._rate,
            output=True,
            frames_per_buffer=self.CHUNK_SIZE,
            stream_callback=self._callback,
            start=False,
        )

    def _callback(self, in_data, frame_count, time_info, status):
        with self._lock:
            frames = self._frames
            if frames is None:
                return (b"\x00" * frame_count * 8, pyaudio.paComplete)

            total = frames.shape[0]
            if self.looping:
                index = (self._position + np.arange(frame_count)) % total
                chunk = frames[index]
                self._position = (self._position + frame_count) % total
                flag = pyaudio.paContinue
            else:
                chunk = frames[self._position:self._position + frame_count]
                self._position += chunk.shape[0]
                if chunk.shape[0] < frame_count:
                    chunk = np.vstack([chunk, np.zeros((frame_count - chunk.shape[0], 2), dtype=np.float32)])
                flag = pyaudio.paContinue if self._position < total else pyaudio.paComplete
            left, right = pan_gains(self._volume, self._pan)

        out = chunk * np.array([left, right], dtype=np.float32)
        return (out.astype(np.float32).tobytes(), flag)

    async def _run(self, operation: str, fn) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, fn)
        except OSError as e:
            raise PlaybackOperationFailure(f"{operation} failed for {self.path.name}: {e}") from e

    async def get_status(self) -> PlaybackStatus:
        stream = self._stream
        if stream is None:
            return PlaybackStatus(is_loaded=False, is_playing=False)
        return PlaybackStatus(is_loaded=True, is_playing=stream.is_active())

    async def set_volume(self, volume: float) -> None:
        with self._lock:
            self._volume = float(volume)

    async def set_pan(self, pan: float) -> None:
        with self._lock:
            self._pan = float(pan)

    def _start_sync(self, rewind: bool) -> None:
        stream = self._stream
        if stream is None:
            return
        if not stream.is_stopped():
            stream.stop_stream()
        if rewind:
            with self._lock:
                self._position = 0
        stream.start_stream()

    def _stop_sync(self) -> None:
        stream = self._stream
        if stream is not None and not stream.is_stopped():
            stream.stop_stream()
        with self._lock:
            self._position = 0

    async def play(self) -> None:
        # A one-shot that ran to the end starts over
        await self._run("play", lambda: self._start_sync(rewind=not self.looping and self._at_end()))

    async def replay(self) -> None:
        await self._run("replay", lambda: self._start_sync(rewind=True))

    async def stop(self) -> None:
        await self._run("stop", self._stop_sync)

    async def unload(self) -> None:
        stream, self._stream = self._stream, None

        def close():
            if stream is not None:
                if not stream.is_stopped():
                    stream.stop_stream()
                stream.close()

        await self._run("unload", close)
        with self._lock:
            self._frames = None

    def _at_end(self) -> bool:
        with self._lock:
            return self._frames is not None and self._position >= self._frames.shape[0]


class PyAudioBackend(AudioBackend):
    """Loads WAV assets (paths) into PyAudioSound channels."""

    def __init__(self):
        self.audio: Optional[pyaudio.PyAudio] = None

    async def configure_session(self) -> None:
        if self.audio is not None:
            return
        loop = asyncio.get_running_loop()
        self.audio = await loop.run_in_executor(None, pyaudio.PyAudio)
        try:
            device = self.audio.get_default_output_device_info()
            logger.info(f"Audio output: {device.get('name', 'unknown')}")
        except OSError as e:
            logger.warning(f"No default audio output device: {e}")

    async def load_sound(self, source: Any, looping: bool) -> Sound:
        if self.audio is None:
            raise AssetLoadFailure("Audio session is not configured")

        path = Path(source)
        if not path.is_file():
            raise AssetLoadFailure(f"Audio file not found: {path}")

        sound = PyAudioSound(self.audio, path, looping)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, sound.load_sync)
        except (OSError, EOFError, wave.Error, ValueError) as e:
            raise AssetLoadFailure(f"Could not load {path.name}: {e}") from e

        logger.debug(f"Loaded {path.name} ({'loop' if looping else 'one-shot'})")
        return sound

    async def close(self) -> None:
        audio, self.audio = self.audio, None
        if audio is not None:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, audio.terminate)
            logger.info("Audio resources cleaned up")
