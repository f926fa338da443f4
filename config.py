"""
State Capitals - Configuration Module

Tunable game parameters live here. Every value can be overridden from the
environment so deployments don't need code changes.
"""

import os
import pathlib

# =============================================================================
# PATHS & ASSETS
# =============================================================================

# Anchor persistence to the app's directory to survive working directory changes
BASE_DIR = pathlib.Path(__file__).resolve().parent

PROGRESS_FILE = pathlib.Path(
    os.environ.get("STATE_GAME_PROGRESS_FILE", BASE_DIR / "progress.json")
)

# Local copy written by build_map_asset.py; checked before the remote URL
MAP_GEOJSON_FILE = pathlib.Path(
    os.environ.get("STATE_GAME_MAP_FILE", BASE_DIR / "us_states.geojson")
)
MAP_GEOJSON_URL = os.environ.get(
    "STATE_GAME_MAP_URL",
    "https://raw.githubusercontent.com/PublicaMundi/MappingAPI/master/data/geojson/us-states.json",
)
MAP_FETCH_TIMEOUT = float(os.environ.get("STATE_GAME_MAP_TIMEOUT", "20"))
USER_AGENT = "state-capitals-game/1.0 (map asset)"

# =============================================================================
# SCORING & PACING
# =============================================================================

POINTS_PER_CORRECT = int(os.environ.get("STATE_GAME_POINTS", "10"))

# Pause after a correct answer so the player sees the feedback
ADVANCE_DELAY_MS = int(os.environ.get("STATE_GAME_ADVANCE_DELAY_MS", "1500"))

# How long an "incorrect" message stays on screen
MESSAGE_CLEAR_MS = int(os.environ.get("STATE_GAME_MESSAGE_CLEAR_MS", "3000"))

# Only one difficulty ships today; progress records are still keyed by it
DEFAULT_DIFFICULTY = os.environ.get("STATE_GAME_DIFFICULTY", "easy")

# =============================================================================
# MAP LOOK & FEEL
# =============================================================================

HIGHLIGHT_COLOR = "#ffff00"
CORRECT_COLOR = "#10b981"
INCORRECT_COLOR = "#ef4444"
DEFAULT_COLOR = "#ffffff"
BORDER_COLOR = "#374151"

ZOOM_MIN = 0.8
ZOOM_MAX = 4.0
ZOOM_STEP = 0.2

# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL = os.environ.get("STATE_GAME_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
