"""
Delta-over-time canvas: the runner's gap to the ghost, tick by tick.
"""
import numpy as np
from matplotlib.backends.backend_qt5agg import FigureCanvasQTAgg as FigureCanvas
from matplotlib.figure import Figure

from ui.styles import ACCENT_GREEN, ACCENT_RED, BG_COLOR, BG_COLOR_LIGHT, GRID_COLOR, TEXT_COLOR_DIM


class DeltaCanvas(FigureCanvas):
    """
    Line plot of delta [m] against elapsed time [s].

    Above zero the runner is ahead; the area is shaded green above the zero
    line and red below it.
    """

    def __init__(self, parent=None, width=5, height=1.8, dpi=100):
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
        self.ax.title.set_color("#FFFFFF")

        self.ax.set_title("Delta to ghost [m]", fontsize=8)
        self.ax.grid(True, color=GRID_COLOR, alpha=0.6)
        self.ax.set_xlabel("Time [s]", fontsize=7)
        self.ax.axhline(0.0, color=TEXT_COLOR_DIM, linewidth=0.8)

        self.line, = self.ax.plot([], [], linewidth=1.5, color="#FFFFFF")
        self._fills = []

        self.fig.tight_layout(pad=0.5)

    def update_data(self, t: np.ndarray, delta: np.ndarray):
        """
        Replace the plotted series.

        Args:
            t: Elapsed seconds (X-axis)
            delta: Delta in meters (Y-axis)
        """
        if t.size == 0 or delta.size == 0:
            return
        self.line.set_data(t, delta)

        for fill in self._fills:
            fill.remove()
        self._fills = [
            self.ax.fill_between(t, delta, 0, where=delta >= 0, color=ACCENT_GREEN, alpha=0.25, interpolate=True),
            self.ax.fill_between(t, delta, 0, where=delta < 0, color=ACCENT_RED, alpha=0.25, interpolate=True),
        ]

        self.ax.relim()
        self.ax.autoscale_view()
        self.draw_idle()
