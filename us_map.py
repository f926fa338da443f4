"""US state shapes and the Plotly figure that draws them."""

import json
import logging
import pathlib
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import plotly.graph_objects as go
import requests

import config
from map_highlight import DEFAULT, ViewState
from states_data import ALL_STATES, Place

logger = logging.getLogger(__name__)

_IDS_BY_NAME = {p.name.lower(): p.id for p in ALL_STATES}
_KNOWN_IDS = {p.id for p in ALL_STATES}

# Padding around a region's bounding box, as a fraction of its span
_VIEW_PADDING = 0.08


# ---------- Asset loading ----------
def normalize_features(collection: Mapping) -> Dict[str, Dict]:
    """Re-key GeoJSON features by place id, dropping anything not in the catalog.

    Accepts features already keyed by postal code (our local asset) or
    features that only carry ``properties.name`` (the public source).
    """
    shapes: Dict[str, Dict] = {}
    for feature in (collection or {}).get("features", []) or []:
        if not isinstance(feature, dict) or not feature.get("geometry"):
            continue
        raw_id = str(feature.get("id") or "").strip().upper()
        name = ((feature.get("properties") or {}).get("name") or "").strip().lower()
        place_id = raw_id if raw_id in _KNOWN_IDS else _IDS_BY_NAME.get(name)
        if not place_id:
            continue
        shapes[place_id] = {
            "type": "Feature",
            "id": place_id,
            "properties": {"name": (feature.get("properties") or {}).get("name", "")},
            "geometry": feature["geometry"],
        }
    return shapes


def load_map_shapes(
    path: pathlib.Path = config.MAP_GEOJSON_FILE,
    url: str = config.MAP_GEOJSON_URL,
    timeout: float = config.MAP_FETCH_TIMEOUT,
) -> Optional[Dict[str, Dict]]:
    """Load state shapes keyed by place id, or None if no source is usable.

    The local file wins when present; otherwise the public GeoJSON is fetched.
    """
    path = pathlib.Path(path)
    if path.exists():
        try:
            shapes = normalize_features(json.loads(path.read_text(encoding="utf-8")))
            if shapes:
                logger.info(f"Loaded {len(shapes)} state shapes from {path.name}")
                return shapes
            logger.warning(f"{path.name} has no usable state shapes; falling back to {url}")
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read {path}: {e}")

    try:
        resp = requests.get(url, timeout=timeout, headers={"User-Agent": config.USER_AGENT})
        resp.raise_for_status()
        shapes = normalize_features(resp.json())
    except (requests.RequestException, ValueError) as e:
        logger.error(f"Error loading map shapes from {url}: {e}")
        return None
    if not shapes:
        logger.error(f"No state shapes found at {url}")
        return None
    logger.info(f"Fetched {len(shapes)} state shapes from {url}")
    return shapes


# ---------- Geometry helpers ----------
def _iter_points(coords) -> Iterator[Tuple[float, float]]:
    if not coords:
        return
    if isinstance(coords[0], (int, float)):
        yield float(coords[0]), float(coords[1])
        return
    for part in coords:
        yield from _iter_points(part)


def region_bounds(shapes: Mapping[str, Dict], place_ids: Iterable[str]) -> Optional[Tuple[float, float, float, float]]:
    """(min_lon, min_lat, max_lon, max_lat) over the given places' shapes."""
    min_lon = min_lat = float("inf")
    max_lon = max_lat = float("-inf")
    for pid in place_ids:
        feature = shapes.get(pid)
        if not feature:
            continue
        for lon, lat in _iter_points(feature["geometry"].get("coordinates")):
            if lon > 0:
                # Aleutian islands past the antimeridian
                lon = -180.0
            min_lon, max_lon = min(min_lon, lon), max(max_lon, lon)
            min_lat, max_lat = min(min_lat, lat), max(max_lat, lat)
    if min_lon == float("inf"):
        return None
    return min_lon, min_lat, max_lon, max_lat


def view_ranges(bounds: Tuple[float, float, float, float], view: ViewState) -> Tuple[List[float], List[float]]:
    """Longitude and latitude axis ranges for the current zoom and pan."""
    min_lon, min_lat, max_lon, max_lat = bounds
    span_lon = max(max_lon - min_lon, 0.5) * (1 + 2 * _VIEW_PADDING)
    span_lat = max(max_lat - min_lat, 0.5) * (1 + 2 * _VIEW_PADDING)
    center_lon = (min_lon + max_lon) / 2 + view.pan[0] * span_lon
    center_lat = (min_lat + max_lat) / 2 + view.pan[1] * span_lat
    half_lon = span_lon / (2 * view.zoom)
    half_lat = span_lat / (2 * view.zoom)
    lon_range = [max(-180.0, center_lon - half_lon), min(180.0, center_lon + half_lon)]
    lat_range = [max(-90.0, center_lat - half_lat), min(90.0, center_lat + half_lat)]
    return lon_range, lat_range


# ---------- Figure ----------
def _discrete_colorscale(colors: Sequence[str]) -> List[Tuple[float, str]]:
    # z[i] == i, so stop i lands exactly on its own colour
    if len(colors) == 1:
        return [(0.0, colors[0]), (1.0, colors[0])]
    last = len(colors) - 1
    return [(i / last, color) for i, color in enumerate(colors)]


def build_state_map(
    places: Sequence[Place],
    colors: Mapping[str, str],
    shapes: Mapping[str, Dict],
    view: Optional[ViewState] = None,
    show_names: bool = False,
    height: int = 520,
) -> go.Figure:
    """Draw the active region's states filled with their resolved colours.

    States outside ``places`` are not drawn at all.
    """
    view = view or ViewState()
    drawn = drawn_places(places, shapes)
    collection = {"type": "FeatureCollection", "features": [shapes[p.id] for p in drawn]}
    fills = [colors.get(p.id, DEFAULT) for p in drawn]

    hover_text = []
    for p in drawn:
        hover_text.append(f"<b>{p.name}</b> ({p.abbreviation})" if show_names else "Pick this state")

    choropleth = go.Choropleth(
        geojson=collection,
        featureidkey="id",
        locations=[p.id for p in drawn],
        z=list(range(len(drawn))),
        zmin=0,
        zmax=max(len(drawn) - 1, 1),
        text=hover_text,
        colorscale=_discrete_colorscale(fills) if fills else [(0.0, DEFAULT), (1.0, DEFAULT)],
        autocolorscale=False,
        showscale=False,
        marker_line_width=2,
        marker_line_color=config.BORDER_COLOR,
        hovertemplate="%{text}<extra></extra>",
    )

    fig = go.Figure(data=[choropleth])
    geo = dict(
        visible=False,
        showframe=False,
        projection_type="mercator",
        bgcolor="rgba(0,0,0,0)",
    )
    bounds = region_bounds(shapes, [p.id for p in drawn])
    if bounds:
        lon_range, lat_range = view_ranges(bounds, view)
        geo["lonaxis"] = dict(range=lon_range)
        geo["lataxis"] = dict(range=lat_range)
    fig.update_layout(
        template="plotly_white",
        font=dict(family="Inter, Segoe UI, Roboto, Helvetica, Arial, sans-serif", color="#0f172a"),
        hoverlabel=dict(bgcolor="#FFFFFF", bordercolor="#E2E8F0", font=dict(color="#0f172a")),
        geo=geo,
        paper_bgcolor="#E0F2FE",
        margin=dict(l=0, r=0, t=0, b=0),
        height=height,
        dragmode=False,
        clickmode="event+select",
    )
    return fig


def drawn_places(places: Sequence[Place], shapes: Mapping[str, Dict]) -> List[Place]:
    """Places that have a shape, in the order the figure draws them."""
    return [p for p in places if p.id in shapes]


def place_id_from_selection(event, drawn: Sequence[Place]) -> Optional[str]:
    """Place id of the first clicked shape in a ``st.plotly_chart`` selection event."""
    if not event:
        return None
    try:
        points = event["selection"]["points"]
    except (KeyError, TypeError):
        return None
    known = {p.id for p in drawn}
    for point in points or []:
        location = point.get("location")
        if location in known:
            return location
        idx = point.get("point_index", point.get("pointIndex"))
        if isinstance(idx, int) and 0 <= idx < len(drawn):
            return drawn[idx].id
    return None
