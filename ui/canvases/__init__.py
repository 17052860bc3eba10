"""
Matplotlib canvas widgets for the race HUD.
"""
from ui.canvases.track_map import TrackMapCanvas
from ui.canvases.time_series import DeltaCanvas

__all__ = ['TrackMapCanvas', 'DeltaCanvas']
