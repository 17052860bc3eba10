"""
Runtime settings for Ghost Runner.

Values come from the environment (a .env file is loaded by main.py through
python-dotenv). Core components never read the environment themselves;
they receive a Settings instance or plain arguments.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from audio.channels import Channel

DEFAULT_AUDIO_FILES: Dict[Channel, str] = {
    Channel.BREATHING: "breathing.wav",
    Channel.FOOTSTEPS: "footsteps.wav",
    Channel.HEARTBEAT: "heartbeat.wav",
    Channel.GHOST_DISTANT: "ghost_distant.wav",
    Channel.BOSS_THEME: "boss_theme.wav",
    Channel.CHEER: "cheer.wav",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class Settings:
    audio_dir: str = "assets/audio"
    audio_files: Dict[Channel, str] = field(default_factory=lambda: dict(DEFAULT_AUDIO_FILES))
    head_start_ms: int = 10_000
    tick_ms: int = 1000
    time_interval_ms: int = 2000
    distance_interval_m: float = 5.0
    enable_haptics: bool = True
    location_permission: bool = True
    udp_host: str = "0.0.0.0"
    udp_port: int = 5005
    run_dir: str = "runs"
    run_url: Optional[str] = None
    run_api_key: Optional[str] = None
    remote_timeout_s: float = 2.5

    def audio_sources(self) -> Dict[str, Optional[str]]:
        """Channel name -> WAV path, or None where the file does not exist."""
        sources: Dict[str, Optional[str]] = {}
        for channel, filename in self.audio_files.items():
            path = Path(self.audio_dir) / filename
            sources[channel.value] = str(path) if path.is_file() else None
        return sources


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be true or false, got {raw!r}")


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    audio_files = {
        channel: os.getenv(f"GHOST_RUNNER_AUDIO_{channel.name}", default)
        for channel, default in DEFAULT_AUDIO_FILES.items()
    }

    permission = os.getenv("GHOST_RUNNER_LOCATION_PERMISSION", "granted").strip().lower()
    if permission not in ("granted", "denied"):
        raise ValueError(f"GHOST_RUNNER_LOCATION_PERMISSION must be granted or denied, got {permission!r}")

    return Settings(
        audio_dir=os.getenv("GHOST_RUNNER_AUDIO_DIR", "assets/audio"),
        audio_files=audio_files,
        head_start_ms=_env_int("GHOST_RUNNER_HEAD_START_MS", 10_000),
        tick_ms=_env_int("GHOST_RUNNER_TICK_MS", 1000),
        time_interval_ms=_env_int("GHOST_RUNNER_TIME_INTERVAL_MS", 2000),
        distance_interval_m=_env_float("GHOST_RUNNER_DISTANCE_INTERVAL_M", 5.0),
        enable_haptics=_env_bool("GHOST_RUNNER_ENABLE_HAPTICS", True),
        location_permission=permission == "granted",
        udp_host=os.getenv("GHOST_RUNNER_UDP_HOST", "0.0.0.0"),
        udp_port=_env_int("GHOST_RUNNER_UDP_PORT", 5005),
        run_dir=os.getenv("GHOST_RUNNER_RUN_DIR", "runs"),
        run_url=os.getenv("GHOST_RUNNER_RUN_URL") or None,
        run_api_key=os.getenv("GHOST_RUNNER_RUN_API_KEY") or None,
        remote_timeout_s=_env_float("GHOST_RUNNER_REMOTE_TIMEOUT_S", 2.5),
    )
