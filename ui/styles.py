"""
Styling constants and theme configuration for the race HUD.
"""

# =============================================================================
# Color Palette
# =============================================================================

# Dark theme colors
BG_COLOR = "#111111"          # Main background
BG_COLOR_LIGHT = "#181818"    # Lighter background (axes, panels)
TEXT_COLOR = "#EEEEEE"        # Main text
TEXT_COLOR_DIM = "#CCCCCC"    # Dimmed text (axis labels, etc.)
BORDER_COLOR = "#555555"      # Borders
GRID_COLOR = "#333333"        # Grid lines

# Accent colors
ACCENT_BLUE = "#6FA8FF"       # Live route
ACCENT_RED = "#FF6B6B"        # Behind the ghost, Stop button
ACCENT_GREEN = "#6BCB77"      # Ahead of the ghost
GHOST_COLOR = "#B388FF"       # Ghost route and marker
BOSS_COLOR = "#FF9500"        # Boss ghost

# =============================================================================
# PyQt5 Stylesheet
# =============================================================================

DARK_STYLESHEET = f"""
    QMainWindow {{
        background-color: {BG_COLOR};
        color: {TEXT_COLOR};
    }}
    QGroupBox {{
        border: 1px solid {BORDER_COLOR};
        border-radius: 4px;
        margin-top: 8px;
        padding-top: 10px;
        font-weight: bold;
        color: {TEXT_COLOR};
    }}
    QGroupBox::title {{
        subcontrol-origin: margin;
        left: 8px;
        padding: 0 4px 0 4px;
    }}
    QLabel {{
        color: {TEXT_COLOR};
        font-size: 11pt;
    }}
    QTextEdit {{
        background-color: {BG_COLOR_LIGHT};
        color: {TEXT_COLOR};
        border: 1px solid {BORDER_COLOR};
        border-radius: 4px;
        padding: 4px;
    }}
    QPushButton {{
        background-color: {ACCENT_RED};
        color: #FFFFFF;
        border: none;
        border-radius: 4px;
        padding: 8px 16px;
        font-weight: bold;
    }}
    QPushButton:disabled {{
        background-color: {BORDER_COLOR};
    }}
"""


def delta_color(delta_m: float) -> str:
    """Label color for a gap to the ghost."""
    if delta_m > 0.5:
        return ACCENT_GREEN
    if delta_m < -0.5:
        return ACCENT_RED
    return TEXT_COLOR
