"""
Route map canvas: live route colored by speed, ghost route and ghost marker.
"""
import logging
from typing import Optional

import numpy as np
from matplotlib.backends.backend_qt5agg import FigureCanvasQTAgg as FigureCanvas
from matplotlib.figure import Figure
from matplotlib.collections import LineCollection
from matplotlib.colors import Normalize

from tracking.geo import project_local
from tracking.model import GeoPoint, Route
from ui.styles import ACCENT_BLUE, BG_COLOR, BG_COLOR_LIGHT, GHOST_COLOR, GRID_COLOR, TEXT_COLOR_DIM

logger = logging.getLogger(__name__)


class TrackMapCanvas(FigureCanvas):
    """
    Matplotlib canvas for the race map.

    Coordinates are meters east/north of the ghost's first point (or the
    runner's first fix when there is no ghost), so both routes share axes.
    """

    def __init__(self, parent=None, width=5, height=5, dpi=100):
        """
        Initialize route map canvas.

        Args:
            parent: Parent QWidget
            width: Figure width in inches
            height: Figure height in inches
            dpi: Dots per inch resolution
        """
        self.fig = Figure(figsize=(width, height), dpi=dpi)
        self.ax = self.fig.add_subplot(111)
        super().__init__(self.fig)
        self.setParent(parent)

        self.fig.patch.set_facecolor(BG_COLOR)
        self.ax.set_facecolor(BG_COLOR_LIGHT)

        for spine in self.ax.spines.values():
            spine.set_color(TEXT_COLOR_DIM)
        self.ax.tick_params(colors=TEXT_COLOR_DIM, labelsize=7)
        self.ax.xaxis.label.set_color(TEXT_COLOR_DIM)
        self.ax.yaxis.label.set_color(TEXT_COLOR_DIM)
        self.ax.title.set_color("#FFFFFF")

        self.ax.set_aspect("equal", adjustable="datalim")
        self.ax.set_title("Route", fontsize=10)
        self.ax.set_xlabel("East [m]", fontsize=8)
        self.ax.set_ylabel("North [m]", fontsize=8)
        self.ax.grid(True, color=GRID_COLOR, alpha=0.6)

        self.origin: Optional[GeoPoint] = None
        self.ghost_line, = self.ax.plot([], [], linestyle="--", linewidth=1.5, color=GHOST_COLOR, alpha=0.6)
        self.ghost_marker, = self.ax.plot([], [], marker="o", markersize=9, color=GHOST_COLOR, linestyle="")
        self.runner_marker, = self.ax.plot([], [], marker="o", markersize=7, color=ACCENT_BLUE, linestyle="")
        self.line_collection = None

        self.fig.tight_layout(pad=1.0)

    def set_ghost_route(self, route: Route):
        """Draw the full ghost route once, and anchor the map on its start."""
        if not route:
            return
        self.origin = route[0]
        xs, ys = project_local(route, self.origin)
        self.ghost_line.set_data(xs, ys)
        self._rescale(xs, ys)
        self.draw_idle()

    def plot_route(self, route: Route, ghost_position: Optional[GeoPoint] = None):
        """
        Redraw the live route (colored by speed) and move the ghost marker.

        Args:
            route: Live route so far
            ghost_position: Current ghost position, None before it starts
        """
        try:
            if route and self.origin is None:
                self.origin = route[0]

            if ghost_position is not None and self.origin is not None:
                gx, gy = project_local([ghost_position], self.origin)
                self.ghost_marker.set_data(gx, gy)
            else:
                self.ghost_marker.set_data([], [])

            if len(route) < 2:
                self.draw_idle()
                return

            xs, ys = project_local(route, self.origin)
            speeds = np.array([p.speed or 0.0 for p in route], dtype=float) * 3.6

            if self.line_collection is not None:
                self.line_collection.remove()

            points = np.array([xs, ys]).T.reshape(-1, 1, 2)
            segments = np.concatenate([points[:-1], points[1:]], axis=1)
            norm = Normalize(vmin=float(speeds.min()), vmax=max(float(speeds.max()), float(speeds.min()) + 1.0))
            lc = LineCollection(segments, cmap="Blues", norm=norm, linewidth=2.5)
            lc.set_array(speeds[:-1])

            self.line_collection = lc
            self.ax.add_collection(lc)
            self.runner_marker.set_data(xs[-1:], ys[-1:])

            ghost_xs, ghost_ys = self.ghost_line.get_data()
            self._rescale(np.concatenate([xs, np.asarray(ghost_xs, dtype=float)]),
                          np.concatenate([ys, np.asarray(ghost_ys, dtype=float)]))
            self.draw_idle()
        except Exception as e:
            logger.warning(f"Route map update failed: {e}")

    def _rescale(self, xs: np.ndarray, ys: np.ndarray):
        if xs.size == 0:
            return
        self.ax.set_xlim(xs.min() - 20, xs.max() + 20)
        self.ax.set_ylim(ys.min() - 20, ys.max() + 20)
