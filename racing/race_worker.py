"""
Race Session Worker for the Ghost Runner HUD.

Runs a RaceSession on a private asyncio event loop inside a QThread and
forwards telemetry, milestones and the finished run to the Qt side as
signals. The session is built inside the worker thread because providers
and the feedback machine bind to the running loop.
"""

import asyncio
import logging
from typing import Callable, Optional

from PyQt5 import QtCore

from storage.run_store import RunStore, RunStoreError
from tracking.location_sampler import LocationStartError, PermissionDenied
from .session import RaceSession

logger = logging.getLogger(__name__)


class RaceSessionWorker(QtCore.QThread):
    """
    Worker thread that owns one race.

    Signals:
        telemetry_update(dict) - Telemetry.to_dict() once per tick
        route_update(list) - Live route (list of GeoPoint) once per tick
        milestone_reached(str) - Milestone announcement text
        run_finished(dict) - RunSummary.to_dict(), plus "saved" info when stored
        status_update(str message) - Status messages for logging
        error_occurred(str error) - Error messages
    """

    telemetry_update = QtCore.pyqtSignal(dict)
    route_update = QtCore.pyqtSignal(list)
    milestone_reached = QtCore.pyqtSignal(str)
    run_finished = QtCore.pyqtSignal(dict)
    status_update = QtCore.pyqtSignal(str)
    error_occurred = QtCore.pyqtSignal(str)

    def __init__(
        self,
        session_factory: Callable[[], RaceSession],
        run_store: Optional[RunStore] = None,
    ):
        """
        Initialize race worker.

        Args:
            session_factory: Builds the session; called on the worker's loop
            run_store: Where the finished run is saved (not saved when None)
        """
        super().__init__()

        self.session_factory = session_factory
        self.run_store = run_store

        self.session: Optional[RaceSession] = None
        self._event_loop: Optional[asyncio.AbstractEventLoop] = None

    def run(self):
        """Main thread execution loop."""
        self.status_update.emit("Race starting...")

        try:
            self._event_loop = asyncio.new_event_loop()
            asyncio.set_event_loop(self._event_loop)
            self._event_loop.run_until_complete(self._race())
        except Exception as e:
            logger.error(f"Race worker error: {e}", exc_info=True)
            self.error_occurred.emit(f"Race failed: {e}")
        finally:
            if self._event_loop:
                self._event_loop.close()
                self._event_loop = None
            self.status_update.emit("Race worker stopped")

    async def _race(self):
        self.session = self.session_factory()
        self.session.on_telemetry = self._emit_telemetry
        self.session.on_milestone = self.milestone_reached.emit

        async with self.session as session:
            try:
                await session.start()
            except PermissionDenied:
                self.error_occurred.emit("Location permission denied")
                return
            except LocationStartError as e:
                self.error_occurred.emit(f"Could not start location updates: {e}")
                return

            self.status_update.emit("🏃 Race running, ghost starts in "
                                    f"{session.ghost_head_start_ms / 1000:g}s")
            await session.wait_stopped()
            summary = session.summary

        if summary is None:
            return

        result = summary.to_dict()
        if self.run_store is not None:
            try:
                saved = await self.run_store.save(summary)
                result["saved"] = {"id": saved.id, "source": saved.source, "local_id": saved.local_id}
                self.status_update.emit(f"Run saved ({saved.source}): {saved.id}")
            except RunStoreError as e:
                logger.error(f"Saving run failed: {e}")
                self.error_occurred.emit(f"Run not saved: {e}")
        self.run_finished.emit(result)

    def _emit_telemetry(self, telemetry):
        self.telemetry_update.emit(telemetry.to_dict())
        if self.session is not None:
            self.route_update.emit(list(self.session.live_route))

    def stop(self):
        """Stop the race (called from the Qt thread)."""
        logger.info("Stopping race...")
        if self._event_loop and self.session and not self._event_loop.is_closed():
            asyncio.run_coroutine_threadsafe(self.session.stop(), self._event_loop)
