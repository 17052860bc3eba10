"""
Main window for the Ghost Runner race HUD.
"""
from datetime import datetime
from typing import List, Optional

import numpy as np
from PyQt5 import QtCore
from PyQt5.QtWidgets import (
    QMainWindow,
    QWidget,
    QVBoxLayout,
    QHBoxLayout,
    QLabel,
    QPushButton,
    QGroupBox,
    QTextEdit,
)

from tracking.model import GeoPoint, Route
from tracking.units import format_delta, format_distance, format_duration_compact, format_pace, pace_min_per_km
from ui.canvases import TrackMapCanvas, DeltaCanvas
from ui.styles import BOSS_COLOR, DARK_STYLESHEET, GHOST_COLOR, delta_color


class RaceWindow(QMainWindow):
    """
    Race HUD window.

    Displays:
    - Route map with the live route and the ghost marker
    - Delta-to-ghost chart
    - Elapsed time, distance, pace, delta and ghost status
    - Race log (milestones, status and result)
    """

    stop_requested = QtCore.pyqtSignal()

    def __init__(self, ghost_route: Route, ghost_meta: Optional[dict] = None, unit: str = "km"):
        super().__init__()

        self.ghost_meta = ghost_meta or {}
        self.unit = unit
        self.is_boss = self.ghost_meta.get("type") == "boss"

        self.setWindowTitle("Ghost Runner")
        self.resize(1100, 700)

        self._times: List[float] = []
        self._deltas: List[float] = []
        self._ghost_position: Optional[GeoPoint] = None

        central = QWidget()
        self.setCentralWidget(central)

        root_layout = QHBoxLayout()
        root_layout.setContentsMargins(8, 8, 8, 8)
        root_layout.setSpacing(10)
        central.setLayout(root_layout)

        root_layout.addLayout(self._build_left_column(ghost_route), 3)
        root_layout.addLayout(self._build_right_column(), 2)

        self.setStyleSheet(DARK_STYLESHEET)

    def _build_left_column(self, ghost_route: Route):
        """Build left column: route map + delta chart."""
        left_col = QVBoxLayout()
        left_col.setSpacing(10)

        map_group = QGroupBox("Route")
        map_layout = QVBoxLayout()
        map_group.setLayout(map_layout)
        self.map_canvas = TrackMapCanvas(self, width=5, height=5, dpi=100)
        self.map_canvas.set_ghost_route(ghost_route)
        map_layout.addWidget(self.map_canvas)

        self.delta_canvas = DeltaCanvas(self)

        left_col.addWidget(map_group, 3)
        left_col.addWidget(self.delta_canvas, 1)
        return left_col

    def _build_right_column(self):
        """Build right column: race info + log + stop button."""
        right_col = QVBoxLayout()
        right_col.setSpacing(10)

        race_group = QGroupBox("Race")
        race_layout = QVBoxLayout()
        race_layout.setSpacing(4)
        race_group.setLayout(race_layout)

        ghost_name = "👑 BOSS" if self.is_boss else "👻 Ghost"
        ghost_distance = self.ghost_meta.get("distance")
        self.ghost_label = QLabel(
            f"{ghost_name}: {format_distance(ghost_distance, self.unit)}" if ghost_distance else ghost_name
        )
        self.ghost_label.setStyleSheet(f"color: {BOSS_COLOR if self.is_boss else GHOST_COLOR};")

        self.time_label = QLabel("Time: 0s")
        self.distance_label = QLabel(f"Distance: {format_distance(0, self.unit)}")
        self.pace_label = QLabel("Pace: --")
        self.delta_label = QLabel("Delta: --")
        self.delta_label.setStyleSheet("font-size: 20pt; font-weight: bold;")
        self.status_label = QLabel("Status: ⏸️ WAITING")

        race_layout.addWidget(self.ghost_label)
        race_layout.addWidget(QLabel("─" * 30))
        race_layout.addWidget(self.time_label)
        race_layout.addWidget(self.distance_label)
        race_layout.addWidget(self.pace_label)
        race_layout.addWidget(QLabel("─" * 30))
        race_layout.addWidget(self.delta_label)
        race_layout.addWidget(self.status_label)
        race_layout.addStretch()

        log_group = QGroupBox("Race Log")
        log_layout = QVBoxLayout()
        log_group.setLayout(log_layout)
        self.log_text = QTextEdit()
        self.log_text.setReadOnly(True)
        self.log_text.setPlaceholderText("Milestones and results will appear here...")
        log_layout.addWidget(self.log_text)

        self.stop_button = QPushButton("⏹ Stop Run")
        self.stop_button.clicked.connect(self._on_stop_clicked)

        right_col.addWidget(race_group)
        right_col.addWidget(log_group)
        right_col.addWidget(self.stop_button)
        return right_col

    # ==========================================================================
    # Data Update Methods
    # ==========================================================================

    def update_telemetry(self, telemetry: dict):
        """
        Update the race panel from one tick.

        Args:
            telemetry: Telemetry.to_dict() payload
        """
        elapsed = telemetry.get("elapsed_seconds", 0)
        distance = telemetry.get("distance", 0.0)
        delta = telemetry.get("delta", 0.0)
        ghost_active = telemetry.get("ghost_active", False)

        self.time_label.setText(f"Time: {format_duration_compact(elapsed)}")
        self.distance_label.setText(f"Distance: {format_distance(distance, self.unit)}")
        self.pace_label.setText(f"Pace: {format_pace(pace_min_per_km(elapsed, distance), self.unit)}")

        if ghost_active:
            self.status_label.setText("Status: 🏃 RACING")
            self.delta_label.setText(format_delta(delta))
            self.delta_label.setStyleSheet(
                f"font-size: 20pt; font-weight: bold; color: {delta_color(delta)};"
            )
            self._times.append(float(elapsed))
            self._deltas.append(float(delta))
            self.delta_canvas.update_data(np.array(self._times), np.array(self._deltas))
        else:
            self.status_label.setText("Status: ⏳ GHOST WAITING")
            self.delta_label.setText("Head start")

        ghost = telemetry.get("ghost_position")
        self._ghost_position = GeoPoint(ghost["latitude"], ghost["longitude"]) if ghost else None

    def update_route(self, route: list):
        """Redraw the live route with the latest ghost position."""
        self.map_canvas.plot_route(route, self._ghost_position)

    def append_log(self, message: str):
        timestamp = datetime.now().strftime("%H:%M:%S")
        self.log_text.append(
            f"<span style='color: #888;'>[{timestamp}]</span> "
            f"<span style='color: #EEEEEE;'>{message}</span>"
        )

    def handle_run_finished(self, summary: dict):
        """Show the result once the run has been stopped (and saved)."""
        self.stop_button.setEnabled(False)
        self.status_label.setText("Status: 🏁 FINISHED")

        result = summary.get("ghostResult")
        distance = format_distance(summary.get("distance", 0.0), self.unit)
        duration = format_duration_compact(summary.get("duration", 0))
        if result:
            verdict = "🏆 You beat the ghost!" if result["won"] else "👻 The ghost wins."
            self.append_log(f"{verdict} {distance} in {duration} ({format_delta(result['delta'])})")
        else:
            self.append_log(f"Run finished: {distance} in {duration}")

        saved = summary.get("saved")
        if saved:
            self.append_log(f"Saved {saved['source']} as {saved['id']}")

    def _on_stop_clicked(self):
        self.stop_button.setEnabled(False)
        self.status_label.setText("Status: ⏹ STOPPING")
        self.stop_requested.emit()
