"""Map colouring and view controls.

Colours are always derived from the current round state. The highlighter
remembers what it last applied only so it can skip shapes whose colour did
not change; it never decides *what* the colour is from that memory.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

import config
from game_session import GameMode, RoundState
from states_data import Place

logger = logging.getLogger(__name__)

HIGHLIGHT = config.HIGHLIGHT_COLOR
CORRECT = config.CORRECT_COLOR
INCORRECT = config.INCORRECT_COLOR
DEFAULT = config.DEFAULT_COLOR

LEGEND = (
    (HIGHLIGHT, "Find This State"),
    (CORRECT, "Correct"),
    (INCORRECT, "Incorrect"),
    (DEFAULT, "Unplayed"),
)


def resolve_color(place: Place, state: RoundState) -> str:
    # Priority: target > solved > missed > unplayed
    if state.target and place.id == state.target:
        return HIGHLIGHT
    if place.id in state.solved:
        return CORRECT
    if place.id in state.missed:
        return INCORRECT
    if state.mode is GameMode.CAPITALS and place.capital in state.missed:
        return INCORRECT
    return DEFAULT


def resolve_colors(places: Sequence[Place], state: RoundState) -> Dict[str, str]:
    return {p.id: resolve_color(p, state) for p in places}


ApplyFn = Callable[[str, str], None]


class MapHighlighter:
    """Diff-and-patch the resolved colours onto a surface keyed by place id."""

    def __init__(self, places: Sequence[Place], apply: Optional[ApplyFn] = None):
        self.places = tuple(places)
        self._apply = apply
        self._applied: Dict[str, str] = {}
        self._last_signature = None

    @property
    def colors(self) -> Dict[str, str]:
        """Last applied colour per place id."""
        return dict(self._applied)

    def sync(self, state: RoundState) -> Dict[str, str]:
        """Apply colours that changed since the last sync and return them."""
        signature = state.signature()
        if signature == self._last_signature:
            return {}
        resolved = resolve_colors(self.places, state)
        patch = {pid: color for pid, color in resolved.items() if self._applied.get(pid) != color}
        for place_id, color in patch.items():
            if self._apply is not None:
                self._apply(place_id, color)
            self._applied[place_id] = color
        self._last_signature = signature
        if patch:
            logger.debug(f"Map colours patched: {patch}")
        return patch

    def forget(self) -> None:
        """Drop the applied-colour memory, e.g. after the surface was redrawn."""
        self._applied.clear()
        self._last_signature = None


@dataclass
class ViewState:
    """Zoom, pan and hover. Purely visual; never consulted for colours."""

    zoom: float = 1.0
    pan: Tuple[float, float] = (0.0, 0.0)
    hovered: Optional[str] = None

    def zoom_in(self) -> None:
        self.zoom = round(min(config.ZOOM_MAX, self.zoom + config.ZOOM_STEP), 2)

    def zoom_out(self) -> None:
        self.zoom = round(max(config.ZOOM_MIN, self.zoom - config.ZOOM_STEP), 2)

    def pan_by(self, dx: float, dy: float) -> None:
        self.pan = (self.pan[0] + dx, self.pan[1] + dy)

    def hover(self, place_id: Optional[str]) -> None:
        self.hovered = place_id

    def reset(self) -> None:
        self.zoom = 1.0
        self.pan = (0.0, 0.0)
        self.hovered = None
