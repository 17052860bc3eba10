#!/usr/bin/env python3
"""
Ghost Runner - Main Entry Point

Race a previously recorded run (the "ghost") with live GPS, proximity audio
and a map HUD. Finished runs are saved and can be raced next time.

Usage:
    python main.py --ghost runs/run-1.json                      # HUD, GPS over UDP
    python main.py --ghost runs/run-1.json --simulate runs/run-2.json --speed 4
    python main.py --ghost runs/run-1.json --boss               # boss at your average pace
    python main.py --ghost runs/run-1.json --headless --no-audio
"""
import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Any, Dict, List, Optional, Tuple

# Configure logging FIRST - before any other imports
logging.basicConfig(
    level=logging.INFO,
    format='[%(levelname)s] %(name)s: %(message)s',
    stream=sys.stdout
)

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

print("="*60)
print("👻 GHOST RUNNER STARTING...")
print("="*60)

from config import Settings, load_settings
from audio.feedback import FeedbackStateMachine
from racing.ghost import average_pace, build_boss_route
from racing.session import RaceSession
from storage.run_store import RunStore, RunStoreError, load_ghost
from tracking.backends import LocationProvider, ReplayLocationProvider, UdpLocationProvider
from tracking.location_sampler import LocationSampler, LocationStartError
from tracking.model import GeoPoint, Telemetry
from tracking.units import format_delta, format_distance, format_duration_compact

logger = logging.getLogger("ghost_runner")

# Try to import the PyAudio backend (optional)
try:
    from audio.pyaudio_backend import PyAudioBackend
    AUDIO_AVAILABLE = True
    print("✅ Audio backend available")
except ImportError as e:
    AUDIO_AVAILABLE = False
    print(f"⚠️  Audio backend not available: {e}")

# Try to import the Qt HUD (optional)
try:
    from PyQt5 import QtWidgets
    from ui.main_window import RaceWindow
    from racing.race_worker import RaceSessionWorker
    UI_AVAILABLE = True
    print("✅ HUD module available")
except ImportError as e:
    UI_AVAILABLE = False
    print(f"⚠️  HUD not available, running headless: {e}")

print("✅ All core modules imported successfully")


# ===== RACE SETUP =====

def load_race_ghost(args: argparse.Namespace, settings: Settings, store: RunStore) -> Tuple[List[GeoPoint], Dict[str, Any]]:
    """
    Load the ghost file, re-timed as a boss when asked.

    Boss pace: --boss-pace (min/km) if given, else the average pace of the
    locally saved runs, else the ghost's own pace.
    """
    route, meta = load_ghost(args.ghost)
    if not args.boss:
        return route, meta

    if args.boss_pace:
        pace = args.boss_pace * 60 / 1000
    else:
        runs = []
        for path in store.list_runs():
            try:
                with open(path, "r", encoding="utf-8") as f:
                    runs.append(json.load(f))
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable run {path.name}: {e}")
        pace = average_pace(runs) or average_pace([meta])

    boss_route = build_boss_route(route, pace)
    if not boss_route:
        raise ValueError("Cannot build a boss from this ghost (needs 2+ points and a known pace)")

    print(f"👑 Boss ghost at {pace * 1000 / 60:.2f} min/km")
    boss_meta = {"type": "boss", "distance": meta["distance"], "template": meta.get("id"), "pace": pace}
    return boss_route, boss_meta


def build_provider(args: argparse.Namespace, settings: Settings) -> LocationProvider:
    if args.simulate:
        sim_route, _ = load_ghost(args.simulate)
        print(f"🎮 Simulating runner from {args.simulate} at {args.speed:g}x")
        return ReplayLocationProvider(sim_route, speed=args.speed, permission=settings.location_permission)
    print(f"📡 Listening for GPS on udp://{settings.udp_host}:{settings.udp_port}")
    return UdpLocationProvider(settings.udp_host, settings.udp_port, permission=settings.location_permission)


def build_session(
    args: argparse.Namespace,
    settings: Settings,
    ghost_route: List[GeoPoint],
    ghost_meta: Dict[str, Any],
    provider: LocationProvider,
) -> RaceSession:
    """Wire sampler, feedback and ghost into a session (call on the race loop)."""
    backend = None
    if not args.no_audio and AUDIO_AVAILABLE:
        backend = PyAudioBackend()

    feedback = FeedbackStateMachine(
        settings.audio_sources(),
        backend=backend,
        enable_haptics=settings.enable_haptics,
    )
    sampler = LocationSampler(
        provider,
        time_interval_ms=settings.time_interval_ms,
        distance_interval_m=settings.distance_interval_m,
    )
    head_start_ms = int(args.head_start * 1000) if args.head_start is not None else settings.head_start_ms

    return RaceSession(
        ghost_route,
        sampler,
        feedback,
        ghost_head_start_ms=head_start_ms,
        tick_interval_ms=settings.tick_ms,
        ghost_meta=ghost_meta,
    )


# ===== HEADLESS =====

def print_telemetry(telemetry: Telemetry, unit: str) -> None:
    gap = format_delta(telemetry.delta_m) if telemetry.ghost_active else "ghost waiting"
    print(f"⏱️  {format_duration_compact(telemetry.elapsed_seconds):>9} | "
          f"{format_distance(telemetry.distance_m, unit):>9} | {gap}")


async def run_headless(args, settings, store, ghost_route, ghost_meta) -> int:
    provider = build_provider(args, settings)
    session = build_session(args, settings, ghost_route, ghost_meta, provider)
    session.on_telemetry = lambda t: print_telemetry(t, args.unit)
    session.on_milestone = lambda text: print(f"🎉 {text}")

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, lambda: asyncio.ensure_future(session.stop()))
    except (NotImplementedError, RuntimeError):
        logger.debug("SIGINT handler not supported on this platform")

    async with session:
        try:
            await session.start()
        except LocationStartError as e:
            print(f"❌ {e}")
            return 1

        print("🏃 Race running - Ctrl+C to stop")
        if isinstance(provider, ReplayLocationProvider):
            await provider.wait_finished()
            await session.stop()
        await session.wait_stopped()
        summary = session.summary

    if summary is None:
        return 0

    result = summary.ghost_result
    print("\n" + "="*60)
    print(f"🏁 {format_distance(summary.distance, args.unit)} in {format_duration_compact(summary.duration)}")
    print("🏆 You beat the ghost!" if result.won else "👻 The ghost wins.")
    print(f"   Final gap: {format_delta(result.delta)}")
    try:
        saved = await store.save(summary)
        print(f"💾 Saved ({saved.source}): {saved.id}")
    except RunStoreError as e:
        print(f"⚠️  Run not saved: {e}")
    print("="*60)
    return 0


# ===== HUD =====

def run_hud(args, settings, store, ghost_route, ghost_meta) -> int:
    print("🔧 Creating Qt application...")
    app = QtWidgets.QApplication(sys.argv)

    print("🖥️  Creating race window...")
    window = RaceWindow(ghost_route, ghost_meta, unit=args.unit)

    worker = RaceSessionWorker(
        lambda: build_session(args, settings, ghost_route, ghost_meta, build_provider(args, settings)),
        run_store=store,
    )

    print("🔗 Connecting Qt signals...")
    worker.telemetry_update.connect(window.update_telemetry)
    worker.route_update.connect(window.update_route)
    worker.milestone_reached.connect(window.append_log)
    worker.run_finished.connect(window.handle_run_finished)
    worker.status_update.connect(window.append_log)
    worker.status_update.connect(lambda msg: print(f"[Race] {msg}"))
    worker.error_occurred.connect(window.append_log)
    worker.error_occurred.connect(lambda err: print(f"[Race Error] {err}"))
    window.stop_requested.connect(worker.stop)
    print("✅ Signals connected")

    print("🚀 Starting race worker thread...")
    worker.start()
    window.show()

    print("\n" + "="*60)
    print("✅ GHOST RUNNER READY - ghost starts after the head start")
    print("="*60 + "\n")

    result = app.exec_()

    print("\n🛑 Shutting down...")
    worker.stop()
    worker.wait()
    return result


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ghost Runner - race your previous runs")
    parser.add_argument("--ghost", required=True, help="Run file (JSON) to race against")
    parser.add_argument("--boss", action="store_true", help="Re-time the ghost as a boss at a constant pace")
    parser.add_argument("--boss-pace", type=float, default=None, help="Boss pace in min/km")
    parser.add_argument("--simulate", default=None, help="Replay this run file as the runner's GPS")
    parser.add_argument("--speed", type=float, default=1.0, help="Replay speed factor for --simulate")
    parser.add_argument("--head-start", type=float, default=None, help="Ghost head start in seconds")
    parser.add_argument("--headless", action="store_true", help="Console output instead of the HUD")
    parser.add_argument("--no-audio", action="store_true", help="Disable feedback audio")
    parser.add_argument("--unit", choices=("km", "mi"), default="km", help="Display unit")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point for Ghost Runner.

    Args:
        argv: Command line arguments (sys.argv[1:] when None)
    """
    args = parse_args(argv)
    settings = load_settings()
    store = RunStore(
        settings.run_dir,
        remote_url=settings.run_url,
        api_key=settings.run_api_key,
        timeout_s=settings.remote_timeout_s,
    )

    print(f"\n📋 Ghost: {args.ghost}")
    ghost_route, ghost_meta = load_race_ghost(args, settings, store)
    print(f"👻 {len(ghost_route)} points, {format_distance(ghost_meta['distance'], args.unit)}")

    if args.no_audio or not AUDIO_AVAILABLE:
        print("🔇 Feedback audio off")

    if args.headless or not UI_AVAILABLE:
        return asyncio.run(run_headless(args, settings, store, ghost_route, ghost_meta))
    return run_hud(args, settings, store, ghost_route, ghost_meta)


if __name__ == "__main__":
    print(f"🎯 Command line args: {sys.argv}")

    try:
        sys.exit(main())
    except Exception as e:
        print("\n" + "="*60)
        print("❌ FATAL ERROR:")
        print("="*60)
        print(f"Error type: {type(e).__name__}")
        print(f"Error message: {e}")
        import traceback
        print("\nFull traceback:")
        traceback.print_exc()
        print("="*60)
        sys.exit(1)
