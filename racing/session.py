"""
Race session orchestrator.

Runs one ghost race: starts location sampling, ticks once per second,
compares the live route against the ghost once the ghost has left the
start line, and feeds the delta to the feedback audio. Stopping packages
the run into a RunSummary for the surrounding application to persist.

States: IDLE -> STARTING -> RUNNING -> STOPPED. A failed start falls back
to IDLE and re-raises; STOPPED is terminal.
"""
import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set, Tuple

from audio.channels import Channel
from audio.feedback import FeedbackStateMachine
from tracking.geo import total_distance
from tracking.location_sampler import LocationSampler, LocationStartError
from tracking.model import GeoPoint, GhostResult, Route, RunSummary, Telemetry
from tracking.units import METERS_PER_MILE, format_delta
from .ghost import GhostReplayEngine, compute_delta

logger = logging.getLogger(__name__)

GHOST_HEAD_START_MS = 10_000
TICK_INTERVAL_MS = 1000
AUDIO_LOG_INTERVAL_MS = 5000
BOSS_THEME_VOLUME = 0.5
BOSS_HEARTBEAT_VOLUME = 0.95

MILESTONE_FIRST_M = METERS_PER_MILE
MILESTONE_STEP_M = 5 * METERS_PER_MILE


class SessionState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class RaceSession:
    """
    One run against one ghost.

    The session owns its sampler, ghost engine and feedback machine; close()
    releases all of them and may be called any number of times.
    """

    def __init__(
        self,
        ghost_route: Route,
        sampler: LocationSampler,
        feedback: FeedbackStateMachine,
        ghost_head_start_ms: int = GHOST_HEAD_START_MS,
        tick_interval_ms: int = TICK_INTERVAL_MS,
        ghost_meta: Optional[Dict[str, Any]] = None,
        clock: Optional[Callable[[], int]] = None,
        on_telemetry: Optional[Callable[[Telemetry], None]] = None,
        on_milestone: Optional[Callable[[str], None]] = None,
    ):
        self.ghost = GhostReplayEngine(ghost_route)
        self.sampler = sampler
        self.feedback = feedback
        self.ghost_head_start_ms = ghost_head_start_ms
        self.tick_interval_ms = tick_interval_ms
        self.ghost_meta = ghost_meta
        self.clock = clock or _epoch_ms
        self.on_telemetry = on_telemetry
        self.on_milestone = on_milestone

        self.state = SessionState.IDLE
        self.start_timestamp: Optional[int] = None
        self.last_telemetry: Optional[Telemetry] = None

        self._live_route: Tuple[GeoPoint, ...] = ()
        self._tick_task: Optional[asyncio.Future] = None
        self._pending_ticks: Set[asyncio.Future] = set()
        self._stopped = asyncio.Event()
        self._summary: Optional[RunSummary] = None
        self._closed = False
        self._next_milestone_m = MILESTONE_FIRST_M
        self._last_audio_log: Optional[int] = None

        self.sampler.set_on_point(self._handle_point)

    @property
    def is_boss(self) -> bool:
        return bool(self.ghost_meta) and self.ghost_meta.get("type") == "boss"

    @property
    def live_route(self) -> Tuple[GeoPoint, ...]:
        return self._live_route

    @property
    def summary(self) -> Optional[RunSummary]:
        return self._summary

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def start(self) -> None:
        """
        Begin the race.

        Raises:
            LocationStartError: sampling could not start (PermissionDenied
                included); the session is back in IDLE and no timer runs
        """
        if self.state is not SessionState.IDLE:
            logger.warning(f"start() ignored, session is {self.state.value}")
            return

        self.state = SessionState.STARTING
        self.start_timestamp = self.clock()
        self._live_route = ()
        self._next_milestone_m = MILESTONE_FIRST_M
        if not self.sampler.running:
            self.sampler.reset()
        self.feedback.load()

        try:
            await self.sampler.start()
        except LocationStartError as e:
            if self.state is SessionState.STARTING:
                self.state = SessionState.IDLE
            logger.error(f"Race could not start: {e}")
            raise

        if self.state is not SessionState.STARTING:
            # stop() arrived while sampling was starting
            return

        self.state = SessionState.RUNNING
        self._tick_task = asyncio.ensure_future(self._tick_loop())
        logger.info(
            f"Race started: ghost {len(self.ghost)} points, "
            f"{self.ghost.total_distance:.0f} m, head start {self.ghost_head_start_ms / 1000:g}s"
            + (" (boss)" if self.is_boss else "")
        )

    async def stop(self) -> Optional[RunSummary]:
        """
        End the race. Idempotent.

        Returns:
            RunSummary if the race was running, otherwise None
        """
        if self.state is SessionState.STOPPED:
            return self._summary

        was_running = self.state is SessionState.RUNNING
        self.state = SessionState.STOPPED
        self.sampler.stop()

        tasks = [t for t in (self._tick_task, *self._pending_ticks) if t is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tick_task = None
        self._pending_ticks.clear()

        try:
            await self.feedback.stop_all()
        except Exception as e:
            logger.error(f"Stopping feedback audio failed: {e}", exc_info=True)

        if was_running:
            self._summary = self._build_summary()
            result = self._summary.ghost_result
            logger.info(
                f"Race finished: {self._summary.distance:.0f} m in {self._summary.duration}s, "
                f"{'won' if result.won else 'lost'} ({format_delta(result.delta)})"
            )
            if self.is_boss and result.won:
                await self.feedback.play_cheer()

        self._stopped.set()
        return self._summary

    async def close(self) -> None:
        """Stop if needed and release the feedback audio exactly once."""
        if self._closed:
            return
        self._closed = True
        await self.stop()
        await self.feedback.finish_one_shots()
        await self.feedback.unload()

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    async def __aenter__(self) -> "RaceSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ==========================================================================
    # Tick loop
    # ==========================================================================

    async def _tick_loop(self) -> None:
        interval = self.tick_interval_ms / 1000
        while self.state is SessionState.RUNNING:
            await asyncio.sleep(interval)
            if self.state is not SessionState.RUNNING:
                break
            # Ticks may overlap; every feedback operation is idempotent
            task = asyncio.ensure_future(self.tick())
            self._pending_ticks.add(task)
            task.add_done_callback(self._pending_ticks.discard)

    async def tick(self) -> Optional[Telemetry]:
        """Compute one telemetry sample and retune the feedback audio."""
        if self.state is not SessionState.RUNNING:
            return None

        elapsed_ms = self.clock() - self.start_timestamp
        ghost_elapsed_ms = max(0, elapsed_ms - self.ghost_head_start_ms)
        ghost_active = elapsed_ms >= self.ghost_head_start_ms

        live_route = self._live_route
        distance = total_distance(live_route)
        if ghost_active:
            delta = compute_delta(live_route, self.ghost, ghost_elapsed_ms)
            ghost_position = self.ghost.position_at(ghost_elapsed_ms)
        else:
            delta = 0.0
            ghost_position = None

        telemetry = Telemetry(
            elapsed_seconds=int(elapsed_ms // 1000),
            distance_m=distance,
            delta_m=delta,
            ghost_position=ghost_position,
            ghost_active=ghost_active,
        )
        self.last_telemetry = telemetry
        self._emit(telemetry)

        try:
            if ghost_active:
                if self.is_boss:
                    await self.feedback.update_audio(delta, force_ambient=True, held=(Channel.HEARTBEAT,))
                    await self.feedback.play_heartbeat(BOSS_HEARTBEAT_VOLUME)
                    await self.feedback.play_boss_theme(BOSS_THEME_VOLUME)
                else:
                    await self.feedback.update_audio(delta, force_ambient=True)
            else:
                await self.feedback.stop_all()
        except Exception as e:
            logger.error(f"Feedback update failed: {e}", exc_info=True)

        now = self.clock()
        if ghost_active and (self._last_audio_log is None or now - self._last_audio_log > AUDIO_LOG_INTERVAL_MS):
            self._last_audio_log = now
            logger.info(f"t={telemetry.elapsed_seconds}s distance={distance:.0f} m delta={delta:.1f} m")

        return telemetry

    def _emit(self, telemetry: Telemetry) -> None:
        if not self.on_telemetry:
            return
        try:
            self.on_telemetry(telemetry)
        except Exception as e:
            logger.error(f"Telemetry callback failed: {e}", exc_info=True)

    # ==========================================================================
    # Live route
    # ==========================================================================

    def _handle_point(self, point: GeoPoint, route: Tuple[GeoPoint, ...]) -> None:
        if self.state not in (SessionState.STARTING, SessionState.RUNNING):
            return
        self._live_route = route
        self._check_milestone(total_distance(route))

    def _check_milestone(self, distance: float) -> None:
        if distance < self._next_milestone_m:
            return
        miles = self._next_milestone_m / METERS_PER_MILE
        self._next_milestone_m += MILESTONE_STEP_M
        text = f"{miles:.0f} mile milestone reached!"
        logger.info(text)
        if self.on_milestone:
            try:
                self.on_milestone(text)
            except Exception as e:
                logger.error(f"Milestone callback failed: {e}", exc_info=True)

    def _build_summary(self) -> RunSummary:
        elapsed_ms = self.clock() - self.start_timestamp
        ghost_elapsed_ms = max(0, elapsed_ms - self.ghost_head_start_ms)

        route = self._live_route
        distance = total_distance(route)
        ghost_distance = self.ghost.distance_at(ghost_elapsed_ms)
        target = self.ghost.total_distance or ghost_distance

        return RunSummary(
            points=route,
            distance=distance,
            duration=int(elapsed_ms // 1000),
            timestamp=self.start_timestamp,
            ghost_meta=self.ghost_meta,
            ghost_result=GhostResult(won=distance >= target, delta=distance - ghost_distance),
        )
