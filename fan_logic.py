import math
import json
import logging
import datetime
import zipfile
import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import requests
import simplekml
import plotly.graph_objects as go
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

# --- Constants ---

EARTH_RADIUS_M = 6371000.0  # Mean spherical radius

ARC_RES_DEG = 1.5       # deg per segment on arcs
RADIAL_SPACING_M = 75.0 # m per segment on radials
MIN_ARC_STEPS = 8
MIN_RADIAL_STEPS = 2
MIN_ARC_SPAN_DEG = 1e-6

MET_RANGE_FACTOR = 10.0  # m of range per (m/s) of head/tail wind
MET_BEARING_FACTOR = 2.0 # deg of deflection for a full crosswind

POLE_LATITUDE_LIMIT = 89.0
MAX_RANGE_M = 100000.0  # Flat-Earth approximation limit, also bounds the radial step count
MAX_OFFSET_DEG = 360.0

DEFAULT_FAN_NAME = "Safety Fan"
TRAJECTORY_MODES = ("LA", "HA")

WORKBOOK_FILE = "Safety Fan Calculator.xlsx"
EXPORT_WORKBOOK_FILE = "Safety Fan Calculator.updated.xlsx"
PREVIEW_SHEET = "SAFETY FAN DATA"
EXPORT_SHEET = "APP_EXPORT"
EXPORT_TITLE = "OPTECH GUNNER APP export"
EXPORT_MAX_POINTS = 20
WEAPON_NATURES = ("HE", "IM")
MAX_CHARGE = 7

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
WEATHER_TIMEOUT_S = 10.0

# --- Errors ---

class FanError(Exception):
    """Base class for safety fan errors."""


class InvalidInput(FanError, ValueError):
    """A scalar input is non-finite or outside its domain."""


class SingularProjection(FanError):
    """Origin is too close to a pole for the local flat-Earth projection."""


class WeatherError(FanError):
    pass


class WorkbookError(FanError):
    pass

# --- Data Structures ---

@dataclass(frozen=True)
class GeoPoint:
    """Geographic point in decimal degrees."""
    lat: float
    lon: float

@dataclass(frozen=True)
class WindData:
    direction_deg: float = 0.0 # Direction the wind blows FROM
    speed: float = 0.0         # m/s
    met_scale: float = 1.0

@dataclass(frozen=True)
class FiringSolution:
    """Inputs for one fan computation."""
    origin: GeoPoint
    azimuth: float
    left_offset: float
    right_offset: float
    min_range: float
    max_range: float
    wind: WindData = field(default_factory=WindData)

@dataclass(frozen=True)
class Correction:
    d_range: float   # Meters
    d_bearing: float # Degrees

@dataclass(frozen=True)
class FanGeometry:
    """Corrected bearings and radii of the annular sector."""
    left_bearing: float
    right_bearing: float
    inner_radius: float
    outer_radius: float
    arc_span: float
    radial_span: float

@dataclass
class FanPolygon:
    """Closed fan boundary as [lon, lat] pairs (first point repeated last)."""
    coords: list
    name: str
    mode: str
    origin: GeoPoint
    correction: Correction
    geometry: FanGeometry

    @property
    def point_count(self) -> int:
        return len(self.coords)

@dataclass(frozen=True)
class WeaponSelection:
    weapon: str = ""
    nature: str = "HE"
    charge: int = 1
    mode: str = "LA"
    nominal_range: float = 0.0
    qe: float = 0.0
    temperature: float = 15.0
    pressure: float = 1013.25

    def label(self) -> str:
        return self.weapon or f"(auto: {self.nature.upper()} C{self.charge})"

@dataclass(frozen=True)
class WeatherSnapshot:
    temperature: Optional[float] = None
    pressure: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_direction: Optional[float] = None

# --- Projection Logic ---

def polar_to_offset(bearing_deg, range_m):
    """
    Bearing (clockwise from North) and range to local East/North offsets.
    Works on scalars and numpy arrays.
    """
    th = np.radians(bearing_deg)
    return range_m * np.sin(th), range_m * np.cos(th)

def offset_to_geo(lat0, lon0, dx, dy):
    """
    Local East/North offsets (m) to Lat/Lon around (lat0, lon0).
    Equirectangular small-angle approximation, valid for spans of a few tens of km.
    """
    d_lat = dy / EARTH_RADIUS_M
    d_lon = dx / (EARTH_RADIUS_M * np.cos(np.radians(lat0)))
    return lat0 + np.degrees(d_lat), lon0 + np.degrees(d_lon)

def geo_to_offset(lat0, lon0, lat, lon):
    """Inverse of offset_to_geo."""
    dy = np.radians(lat - lat0) * EARTH_RADIUS_M
    dx = np.radians(lon - lon0) * EARTH_RADIUS_M * np.cos(np.radians(lat0))
    return dx, dy

def offset_to_polar(dx, dy):
    """East/North offsets to (bearing in [0, 360), range)."""
    bearing = (np.degrees(np.arctan2(dx, dy)) + 360.0) % 360.0
    return bearing, np.hypot(dx, dy)

# --- MET Logic ---

def met_corrections(azimuth: float, wind_dir: float, wind_speed: float, met_scale: float) -> Correction:
    """
    Placeholder MET model: linear in wind speed, no dependency on range or nature.
    Head/tail component moves the range, crosswind component deflects the bearing.
    """
    rel = ((wind_dir - azimuth + 540) % 360) - 180
    head_tail = math.cos(math.radians(rel))
    cross = math.sin(math.radians(rel))
    return Correction(
        d_range=met_scale * wind_speed * MET_RANGE_FACTOR * head_tail,
        d_bearing=met_scale * cross * MET_BEARING_FACTOR,
    )

def format_met_preview(correction: Correction) -> str:
    return f"ΔRange: {correction.d_range:.1f} m, ΔBearing: {correction.d_bearing:.2f}°"

# --- Resolution Policies ---

class ResolutionPolicy:
    """Chooses arc step (deg) and radial step (m) for a fan of given width and depth."""
    name = "base"

    def resolve(self, width_deg: float, depth_m: float) -> Tuple[float, float]:
        raise NotImplementedError

@dataclass
class FixedResolution(ResolutionPolicy):
    arc_res_deg: float = ARC_RES_DEG
    radial_spacing_m: float = RADIAL_SPACING_M
    name = "fixed"

    def resolve(self, width_deg, depth_m):
        return self.arc_res_deg, self.radial_spacing_m

@dataclass
class AdaptiveResolution(ResolutionPolicy):
    """
    Coarser arcs for wide fans, longer radial steps for deep fans.
    arc = clamp(60 / sqrt(width + 1), 0.5, 3), radial = clamp(depth / 60, 10, 200)
    """
    arc_min_deg: float = 0.5
    arc_max_deg: float = 3.0
    radial_min_m: float = 10.0
    radial_max_m: float = 200.0
    name = "adaptive"

    def resolve(self, width_deg, depth_m):
        arc = _clamp(60.0 / math.sqrt(max(0.0, width_deg) + 1.0), self.arc_min_deg, self.arc_max_deg)
        radial = _clamp(depth_m / 60.0, self.radial_min_m, self.radial_max_m)
        return arc, radial

RESOLUTION_POLICIES = {
    "fixed": FixedResolution,
    "adaptive": AdaptiveResolution,
}

def get_policy(name: str) -> ResolutionPolicy:
    try:
        return RESOLUTION_POLICIES[name.strip().lower()]()
    except KeyError:
        raise InvalidInput(f"Unknown resolution policy: {name!r}") from None

def _clamp(value, lo, hi):
    return max(lo, min(hi, value))

def step_counts(policy: ResolutionPolicy, arc_span: float, radial_span: float) -> Tuple[int, int]:
    """Segment counts along each arc and each radial, with floors of 8 and 2."""
    arc_step, radial_step = policy.resolve(arc_span, radial_span)
    steps_arc = max(MIN_ARC_STEPS, math.ceil(arc_span / arc_step))
    steps_radial = max(MIN_RADIAL_STEPS, math.ceil(radial_span / radial_step))
    return steps_arc, steps_radial

def expected_point_count(steps_arc: int, steps_radial: int) -> int:
    return 2 * (steps_arc + 1) + 2 * (steps_radial + 1) + 1

# --- Fan Builder ---

def fan_geometry(az, left_off, right_off, max_r, base_range, d_range, d_bearing) -> FanGeometry:
    """
    Corrected bounding bearings and radii.
    Radii are clamped so that outer >= inner >= 0, ill-ordered ranges are repaired silently.
    """
    if base_range is None or math.isnan(base_range):
        base_range = 0.0

    left = az - left_off + d_bearing
    right = az + right_off + d_bearing

    inner_r = max(0.0, base_range + d_range)
    outer_r = max(inner_r, max_r + d_range)

    return FanGeometry(
        left_bearing=left,
        right_bearing=right,
        inner_radius=inner_r,
        outer_radius=outer_r,
        arc_span=max(MIN_ARC_SPAN_DEG, abs(right - left)),
        radial_span=max(0.0, outer_r - inner_r),
    )

def _trace_edge(lat0, lon0, bearings, ranges):
    dx, dy = polar_to_offset(bearings, ranges)
    lat, lon = offset_to_geo(lat0, lon0, dx, dy)
    return [[float(lo), float(la)] for lo, la in zip(lon, lat)]

def build_fan(lat0, lon0, az, left_off, right_off, max_r, base_range, d_range, d_bearing,
              policy: Optional[ResolutionPolicy] = None) -> list:
    """
    Traces the annular sector boundary as [lon, lat] pairs:
    left radial (inner -> outer), outer arc (left -> right),
    right radial (outer -> inner), inner arc (right -> left), then closes the ring.
    """
    g = fan_geometry(az, left_off, right_off, max_r, base_range, d_range, d_bearing)
    return trace_fan(lat0, lon0, g, policy)

def trace_fan(lat0, lon0, g: FanGeometry, policy: Optional[ResolutionPolicy] = None) -> list:
    """Same as build_fan, from an already corrected FanGeometry."""
    policy = policy or FixedResolution()
    steps_arc, steps_radial = step_counts(policy, g.arc_span, g.radial_span)

    radial_frac = np.arange(steps_radial + 1) / steps_radial
    arc_frac = np.arange(steps_arc + 1) / steps_arc

    out_ranges = g.inner_radius + g.radial_span * radial_frac
    in_ranges = g.outer_radius - g.radial_span * radial_frac
    arc_lr = g.left_bearing + g.arc_span * arc_frac
    arc_rl = g.right_bearing - g.arc_span * arc_frac

    pts = []
    pts += _trace_edge(lat0, lon0, np.full_like(out_ranges, g.left_bearing), out_ranges)
    pts += _trace_edge(lat0, lon0, arc_lr, np.full_like(arc_lr, g.outer_radius))
    pts += _trace_edge(lat0, lon0, np.full_like(in_ranges, g.right_bearing), in_ranges)
    pts += _trace_edge(lat0, lon0, arc_rl, np.full_like(arc_rl, g.inner_radius))

    if pts:
        pts.append(list(pts[0])) # close polygon
    return pts

# --- Validation ---

def validate_solution(solution: FiringSolution):
    """Raises InvalidInput / SingularProjection instead of emitting corrupted geometry."""
    scalars = {
        "origin latitude": solution.origin.lat,
        "origin longitude": solution.origin.lon,
        "azimuth": solution.azimuth,
        "left offset": solution.left_offset,
        "right offset": solution.right_offset,
        "min range": solution.min_range,
        "max range": solution.max_range,
        "wind direction": solution.wind.direction_deg,
        "wind speed": solution.wind.speed,
        "MET scale": solution.wind.met_scale,
    }
    for label, value in scalars.items():
        try:
            ok = math.isfinite(value)
        except TypeError:
            ok = False
        if not ok:
            raise InvalidInput(f"{label} must be a finite number, got {value!r}")

    for label, value in (("min range", solution.min_range), ("max range", solution.max_range)):
        if value > MAX_RANGE_M:
            raise InvalidInput(f"{label} {value:g} m exceeds {MAX_RANGE_M:g} m")
    for label, value in (("left offset", solution.left_offset), ("right offset", solution.right_offset)):
        if abs(value) > MAX_OFFSET_DEG:
            raise InvalidInput(f"{label} {value:g}° exceeds {MAX_OFFSET_DEG:g}°")

    lat, lon = solution.origin.lat, solution.origin.lon
    if abs(lat) > 90.0:
        raise InvalidInput(f"origin latitude out of range: {lat}")
    if abs(lon) > 180.0:
        raise InvalidInput(f"origin longitude out of range: {lon}")
    if abs(lat) > POLE_LATITUDE_LIMIT:
        raise SingularProjection(
            f"origin latitude {lat} is within {90.0 - POLE_LATITUDE_LIMIT:g}° of a pole"
        )

def compute_fan(solution: FiringSolution, policy: Optional[ResolutionPolicy] = None,
                name: str = DEFAULT_FAN_NAME, mode: str = "LA") -> FanPolygon:
    """Validates the inputs, applies the MET correction and builds the fan polygon."""
    validate_solution(solution)
    policy = policy or FixedResolution()

    if solution.min_range > solution.max_range:
        logger.warning("Min range %.1f m exceeds max range %.1f m, outer radius clamped to inner",
                       solution.min_range, solution.max_range)

    w = solution.wind
    corr = met_corrections(solution.azimuth, w.direction_deg, w.speed, w.met_scale)
    logger.debug("MET correction: dRange=%.2f m dBearing=%.3f deg", corr.d_range, corr.d_bearing)

    geometry = fan_geometry(solution.azimuth, solution.left_offset, solution.right_offset,
                            solution.max_range, solution.min_range, corr.d_range, corr.d_bearing)
    if geometry.outer_radius > MAX_RANGE_M:
        raise InvalidInput(
            f"MET-corrected range {geometry.outer_radius:g} m exceeds {MAX_RANGE_M:g} m"
        )

    o = solution.origin
    coords = trace_fan(o.lat, o.lon, geometry, policy)

    logger.info("Computed fan: %d pts (%s policy)", len(coords), policy.name)
    return FanPolygon(coords=coords, name=name, mode=mode, origin=o,
                      correction=corr, geometry=geometry)

# --- GeoJSON / KML Logic ---

def fan_feature(fan: FanPolygon) -> dict:
    return {
        "type": "Feature",
        "properties": {"name": fan.name, "mode": fan.mode},
        "geometry": {"type": "Polygon", "coordinates": [fan.coords]},
    }

def fan_feature_collection(fan: FanPolygon) -> dict:
    return {"type": "FeatureCollection", "features": [fan_feature(fan)]}

def fan_geojson(fan: FanPolygon, indent=None) -> str:
    return json.dumps(fan_feature_collection(fan), indent=indent)

def kml_coordinates(coords) -> str:
    """'lon,lat,0 lon,lat,0 ...' with altitude fixed at 0."""
    return " ".join(f"{lon},{lat},0" for lon, lat in coords)

def generate_kml(fan: FanPolygon) -> str:
    """
    KML document with the fan as a Polygon/LinearRing placemark
    and the firing point as a separate placemark.
    """
    kml = simplekml.Kml(name=fan.name)

    pol = kml.newpolygon(name=fan.name, outerboundaryis=[(lon, lat, 0) for lon, lat in fan.coords])
    pol.description = f"Mode: {fan.mode}"
    pol.style.linestyle.width = 2
    pol.style.linestyle.color = 'ff0000ff' # Red
    pol.style.polystyle.color = '400000ff' # Red, 25% alpha
    pol.style.polystyle.fill = 1
    pol.style.polystyle.outline = 1

    fp = kml.newpoint(name="Firing Point", coords=[(fan.origin.lon, fan.origin.lat, 0)])
    fp.style.iconstyle.icon.href = 'http://maps.google.com/mapfiles/kml/shapes/target.png'

    return kml.kml()

# --- Workbook Logic ---

def load_workbook(source) -> dict:
    """Reads every sheet of the workbook as a raw (header-less) DataFrame."""
    try:
        sheets = pd.read_excel(source, sheet_name=None, header=None)
    except (OSError, ValueError, zipfile.BadZipFile) as exc:
        logger.error("Failed to load workbook %s: %s", source, exc)
        raise WorkbookError(f"Failed to load workbook: {exc}") from exc
    logger.info("Loaded workbook with %d sheets", len(sheets))
    return sheets

def sheet_to_2d(df: pd.DataFrame) -> list:
    """Sheet to list of rows; blanks become '', trailing blanks and empty rows dropped."""
    rows = []
    for raw in df.astype(object).where(df.notna(), "").values.tolist():
        row = list(raw)
        while row and row[-1] == "":
            row.pop()
        if row:
            rows.append(row)
    return rows

def preview_sheet_name(sheet_names) -> Optional[str]:
    names = list(sheet_names)
    if PREVIEW_SHEET in names:
        return PREVIEW_SHEET
    return names[0] if names else None

def filter_table(table: list, query: str) -> list:
    """Keeps the header and rows with any cell containing the query (case-insensitive)."""
    if not table:
        return []
    hdr, rows = table[0], table[1:]
    f = (query or "").strip().lower()
    if not f:
        return [hdr] + rows
    return [hdr] + [r for r in rows if any(f in str(c).lower() for c in r)]

def weapon_profiles_from_sheets(sheet_names) -> List[str]:
    """Sheets named like '1 HE', '2 IM' become profiles 'HE C1', 'IM C2'."""
    names = set(sheet_names)
    profiles = []
    for nature in WEAPON_NATURES:
        for i in range(1, MAX_CHARGE + 1):
            if f"{i} {nature}" in names:
                profiles.append(f"{nature} C{i}")
    return profiles

def pick_default_weapon(profiles: List[str], nature: str, charge, current: str = "") -> str:
    if current:
        return current
    target = f"{(nature or 'HE').upper()} C{charge}"
    if target in profiles:
        return target
    return profiles[0] if profiles else ""

def review_pairs(solution: FiringSolution, selection: WeaponSelection) -> list:
    """Ordered (label, value) pairs for the review step and the export sheet."""
    return [
        ("Lat", solution.origin.lat), ("Lon", solution.origin.lon), ("Az", solution.azimuth),
        ("Left", solution.left_offset), ("Right", solution.right_offset), ("MaxR", solution.max_range),
        ("Weapon", selection.label()),
        ("Nature", selection.nature), ("Charge", selection.charge), ("Mode", selection.mode),
        ("NomRange", solution.min_range), ("QE", selection.qe),
        ("Temp", selection.temperature), ("Press", selection.pressure),
        ("WindFrom", solution.wind.direction_deg), ("WindSpd", solution.wind.speed),
        ("MetScale", solution.wind.met_scale),
    ]

def build_export_rows(pairs: list, fan: Optional[FanPolygon], now: Optional[datetime.datetime] = None) -> list:
    now = now or datetime.datetime.now(datetime.timezone.utc)
    rows = [
        [EXPORT_TITLE],
        ["Datetime (UTC)", now.isoformat()],
        [],
    ]
    rows += [[k, v] for k, v in pairs]
    rows += [
        [],
        ["Computed?", "yes" if fan else "no"],
        ["Fan points", fan.point_count if fan else 0],
    ]
    if fan:
        rows += [[], ["lon", "lat"]]
        rows += [[lon, lat] for lon, lat in fan.coords[:EXPORT_MAX_POINTS]]
    return rows

def export_workbook(sheets: dict, rows: list, target):
    """
    Writes all sheets back with a fresh APP_EXPORT sheet.
    An existing APP_EXPORT sheet is replaced in place, otherwise it is appended.
    target: path or binary buffer.
    """
    export_df = pd.DataFrame(rows)
    with pd.ExcelWriter(target, engine="openpyxl") as writer:
        for name, df in sheets.items():
            if name == EXPORT_SHEET:
                df = export_df
            df.to_excel(writer, sheet_name=name, header=False, index=False)
        if EXPORT_SHEET not in sheets:
            export_df.to_excel(writer, sheet_name=EXPORT_SHEET, header=False, index=False)
    logger.info("Exported workbook with %s sheet (%d rows)", EXPORT_SHEET, len(rows))
    return target

# --- Weather Logic ---

def _opt_float(value):
    return None if value is None else float(value)

def fetch_current_weather(lat: float, lon: float, timeout: float = WEATHER_TIMEOUT_S) -> WeatherSnapshot:
    """Current surface conditions from Open-Meteo (wind speed in m/s)."""
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidInput("Set a valid Lat/Lon first")

    params = {
        "latitude": lat,
        "longitude": lon,
        "current": "temperature_2m,wind_speed_10m,wind_direction_10m,pressure_msl",
        "wind_speed_unit": "ms",
    }
    logger.info("Fetching weather @ %.4f, %.4f", lat, lon)
    try:
        resp = requests.get(OPEN_METEO_URL, params=params, timeout=timeout)
        resp.raise_for_status()
        c = resp.json().get("current") or {}
        return WeatherSnapshot(
            temperature=_opt_float(c.get("temperature_2m")),
            pressure=_opt_float(c.get("pressure_msl")),
            wind_speed=_opt_float(c.get("wind_speed_10m")),
            wind_direction=_opt_float(c.get("wind_direction_10m")),
        )
    except requests.RequestException as exc:
        logger.error("Weather sync failed: %s", exc)
        raise WeatherError(f"Weather sync failed: {exc}") from exc
    except (ValueError, TypeError, AttributeError) as exc:
        logger.error("Malformed weather payload: %s", exc)
        raise WeatherError(f"Malformed weather payload: {exc}") from exc

# --- Plotting Logic ---

def fan_local_offsets(fan: FanPolygon):
    """Fan vertices as local (east, north) meters around the firing point."""
    lon = np.array([c[0] for c in fan.coords], dtype=float)
    lat = np.array([c[1] for c in fan.coords], dtype=float)
    return geo_to_offset(fan.origin.lat, fan.origin.lon, lat, lon)

def _centre_line(fan: FanPolygon):
    g = fan.geometry
    mid = (g.left_bearing + g.right_bearing) / 2
    return polar_to_offset(mid, g.outer_radius)

def plot_fan_interactive(fan: FanPolygon):
    """
    Plots the fan in local meters (X = East, Y = North) using Plotly.
    returns: plotly.graph_objects.Figure
    """
    if not fan.coords:
        return None

    e_vals, n_vals = fan_local_offsets(fan)
    fig = go.Figure()

    fig.add_trace(go.Scatter(
        x=e_vals, y=n_vals,
        mode='lines',
        fill='toself',
        fillcolor='rgba(255, 0, 0, 0.15)',
        line=dict(color='red', width=2),
        name=f"{fan.name} ({fan.mode})"
    ))

    cx, cy = _centre_line(fan)
    fig.add_trace(go.Scatter(
        x=[0, cx], y=[0, cy],
        mode='lines',
        line=dict(color='black', width=1, dash='dot'),
        name='Centre Line',
        hoverinfo='skip'
    ))

    fig.add_trace(go.Scatter(
        x=[0], y=[0],
        mode='markers+text',
        marker=dict(symbol='square', color='black', size=12, line=dict(width=2, color='white')),
        text=[f"FP {fan.origin.lat:.5f}, {fan.origin.lon:.5f}"],
        textposition="bottom center",
        name='Firing Point'
    ))

    fig.update_layout(
        xaxis_title="Easting offset (m)",
        yaxis_title="Northing offset (m)",
        yaxis=dict(scaleanchor="x", scaleratio=1),
        plot_bgcolor='white',
        margin=dict(l=20, r=20, t=30, b=20),
    )
    return fig

def plot_fan(fan: FanPolygon):
    """Static matplotlib view of the fan, for PNG export."""
    fig, ax = plt.subplots(figsize=(8, 8))
    if not fan.coords:
        return fig

    e_vals, n_vals = fan_local_offsets(fan)
    ax.fill(e_vals, n_vals, color='red', alpha=0.15)
    ax.plot(e_vals, n_vals, color='red', linewidth=2, label=f"{fan.name} ({fan.mode})")

    cx, cy = _centre_line(fan)
    ax.plot([0, cx], [0, cy], color='black', linestyle=':', linewidth=1)
    ax.plot(0, 0, marker='s', color='black', markersize=8, label='Firing Point')

    ax.set_aspect('equal', adjustable='datalim')
    ax.set_xlabel("Easting offset (m)")
    ax.set_ylabel("Northing offset (m)")
    ax.grid(True, color='lightgray', linestyle='--')
    ax.legend(loc='upper right')
    ax.set_title(f"{fan.name}: {fan.point_count} pts")
    return fig

def build_folium_map(fan: FanPolygon):
    """
    Interactive Folium map with the fan and the firing point. Nothing is written to disk.
    """
    import folium


    o = fan.origin
    m = folium.Map(location=[o.lat, o.lon], zoom_start=12, tiles=None)

    folium.TileLayer(tiles='OpenStreetMap', name='Street Map', control=True).add_to(m)
    folium.TileLayer(
        tiles='https://server.arcgisonline.com/ArcGIS/rest/services/World_Imagery/MapServer/tile/{z}/{y}/{x}',
        attr='Esri',
        name='Satellite Imagery',
        control=True
    ).add_to(m)

    folium.Polygon(
        locations=[[lat, lon] for lon, lat in fan.coords],
        color='red',
        weight=2,
        fill=True,
        fill_color='red',
        fill_opacity=0.2,
        popup=f"{fan.name} ({fan.mode})",
        name=fan.name
    ).add_to(m)

    folium.Marker(
        location=[o.lat, o.lon],
        popup=f"Firing Point<br>{o.lat:.6f}, {o.lon:.6f}",
        tooltip="Firing Point",
        icon=folium.Icon(color='red', icon='screenshot')
    ).add_to(m)

    folium.LayerControl().add_to(m)
    m.fit_bounds([[lat, lon] for lon, lat in fan.coords])

    return m
