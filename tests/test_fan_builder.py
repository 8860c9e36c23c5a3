import logging
import math

import numpy as np
import pytest

from fan_logic import (
    GeoPoint,
    WindData,
    FiringSolution,
    FanError,
    InvalidInput,
    SingularProjection,
    AdaptiveResolution,
    fan_geometry,
    trace_fan,
    build_fan,
    compute_fan,
    met_corrections,
    step_counts,
    expected_point_count,
    geo_to_offset,
    offset_to_polar,
    DEFAULT_FAN_NAME,
    MAX_RANGE_M,
    MAX_OFFSET_DEG,
)


def _polar(fan):
    lon = np.array([c[0] for c in fan.coords])
    lat = np.array([c[1] for c in fan.coords])
    dx, dy = geo_to_offset(fan.origin.lat, fan.origin.lon, lat, lon)
    return offset_to_polar(dx, dy)


def _solution(**kw):
    base = dict(origin=GeoPoint(48.85, 2.35), azimuth=60.0, left_offset=15.0, right_offset=25.0,
                min_range=500.0, max_range=4000.0, wind=WindData(200.0, 6.0, 1.0))
    base.update(kw)
    return FiringSolution(**base)


# --- Geometry ---

def test_corrected_bearings():
    g = fan_geometry(90.0, 10.0, 20.0, 1000.0, 0.0, 0.0, 2.0)
    assert g.left_bearing == 82.0
    assert g.right_bearing == 112.0
    assert g.arc_span == pytest.approx(30.0)


def test_inverted_ranges_are_repaired():
    g = fan_geometry(0.0, 10.0, 10.0, 500.0, 2000.0, 0.0, 0.0)
    assert g.inner_radius == 2000.0
    assert g.outer_radius == 2000.0
    assert g.radial_span == 0.0


@pytest.mark.parametrize("max_r, base, d_range", [
    (1000.0, -100.0, -50.0),
    (1000.0, 0.0, -3000.0),
    (-200.0, -500.0, 0.0),
    (300.0, 900.0, 25.0),
])
def test_radius_clamp(max_r, base, d_range):
    g = fan_geometry(0.0, 5.0, 5.0, max_r, base, d_range, 0.0)
    assert g.outer_radius >= g.inner_radius >= 0.0


@pytest.mark.parametrize("base", [None, float("nan")])
def test_missing_base_range_counts_as_zero(base):
    g = fan_geometry(0.0, 5.0, 5.0, 1000.0, base, 0.0, 0.0)
    assert g.inner_radius == 0.0
    assert g.outer_radius == 1000.0


def test_zero_width_arc_span_floor():
    g = fan_geometry(0.0, 0.0, 0.0, 1000.0, 0.0, 0.0, 0.0)
    assert g.arc_span == pytest.approx(1e-6)


# --- Builder ---

def test_end_to_end_no_wind(basic_fan):
    assert basic_fan.correction.d_range == 0.0
    assert basic_fan.correction.d_bearing == 0.0
    assert basic_fan.point_count == 61

    bearings, ranges = _polar(basic_fan)
    outer = slice(15, 30)
    assert ranges[outer] == pytest.approx(np.full(15, 1000.0), abs=1e-6)
    assert bearings[15] == pytest.approx(350.0)
    assert bearings[29] == pytest.approx(10.0)


def test_first_point_is_origin_when_inner_radius_zero(basic_fan):
    assert basic_fan.coords[0] == [0.0, 0.0]


def test_closure(basic_fan):
    assert basic_fan.coords[0] == basic_fan.coords[-1]
    assert basic_fan.coords[0] is not basic_fan.coords[-1]


def test_adaptive_policy_point_count(basic_solution):
    policy = AdaptiveResolution()
    fan = compute_fan(basic_solution, policy=policy)
    assert fan.point_count == expected_point_count(*step_counts(policy, 20.0, 1000.0))


def test_degenerate_fan_respects_floors():
    pts = build_fan(10.0, 20.0, 45.0, 0.0, 0.0, 500.0, 500.0, 0.0, 0.0)
    assert len(pts) >= 2 * (8 + 1) + 2 * (2 + 1)
    assert len(pts) == 25
    assert all(math.isfinite(v) for p in pts for v in p)


def test_equal_ranges_collapse_radials():
    pts = build_fan(10.0, 20.0, 45.0, 10.0, 10.0, 800.0, 800.0, 0.0, 0.0)
    # left radial: three coincident points
    assert pts[0] == pytest.approx(pts[1])
    assert pts[1] == pytest.approx(pts[2])
    assert pts[0] == pts[-1]


def test_inverted_sector_does_not_crash():
    pts = build_fan(10.0, 20.0, 45.0, -30.0, -30.0, 1000.0, 100.0, 0.0, 0.0)
    assert pts[0] == pts[-1]
    assert len(pts) == expected_point_count(40, 12)


@pytest.mark.parametrize("kw", [
    {},
    {"min_range": 0.0},
    {"min_range": 5000.0, "max_range": 1000.0},
    {"left_offset": 0.0, "right_offset": 0.0},
    {"wind": WindData(60.0, 30.0, 2.0)},
    {"wind": WindData(240.0, 80.0, 1.0), "min_range": 100.0},
    {"origin": GeoPoint(-60.0, 170.0), "azimuth": 355.0},
])
def test_polygon_radii_stay_within_clamped_band(kw):
    fan = compute_fan(_solution(**kw))
    g = fan.geometry
    assert fan.coords[0] == fan.coords[-1]
    assert g.outer_radius >= g.inner_radius >= 0.0

    _, ranges = _polar(fan)
    assert ranges.min() >= g.inner_radius - 1e-6
    assert ranges.max() <= g.outer_radius + 1e-6


def test_compute_fan_applies_head_wind(basic_solution):
    sol = FiringSolution(basic_solution.origin, 0.0, 10.0, 10.0, 0.0, 1000.0, WindData(0.0, 5.0, 1.0))
    fan = compute_fan(sol)
    assert fan.geometry.inner_radius == pytest.approx(50.0)
    assert fan.geometry.outer_radius == pytest.approx(1050.0)


def test_compute_fan_applies_crosswind(basic_solution):
    sol = FiringSolution(basic_solution.origin, 0.0, 10.0, 10.0, 0.0, 1000.0, WindData(90.0, 5.0, 1.0))
    fan = compute_fan(sol)
    assert fan.geometry.left_bearing == pytest.approx(-8.0)
    assert fan.geometry.right_bearing == pytest.approx(12.0)


def test_compute_fan_metadata():
    sol = _solution()
    fan = compute_fan(sol, mode="HA")
    assert fan.name == DEFAULT_FAN_NAME
    assert fan.mode == "HA"
    assert fan.origin == sol.origin
    assert fan.correction == met_corrections(sol.azimuth, 200.0, 6.0, 1.0)


def test_compute_fan_is_idempotent():
    assert compute_fan(_solution()).coords == compute_fan(_solution()).coords


def test_compute_fan_logs_range_repair(caplog):
    with caplog.at_level(logging.WARNING, logger="fan_logic"):
        compute_fan(_solution(min_range=5000.0, max_range=1000.0))
    assert "exceeds max range" in caplog.text


# --- Validation ---

@pytest.mark.parametrize("kw", [
    {"origin": GeoPoint(float("nan"), 0.0)},
    {"origin": GeoPoint(0.0, float("inf"))},
    {"origin": GeoPoint(95.0, 0.0)},
    {"origin": GeoPoint(10.0, 200.0)},
    {"azimuth": float("inf")},
    {"max_range": float("nan")},
    {"wind": WindData(0.0, float("nan"), 1.0)},
    {"max_range": 1e15},
    {"min_range": 2e5},
    {"left_offset": 1e13},
    {"right_offset": -400.0},
    {"wind": WindData(60.0, 1e12, 1.0)},
    {"wind": WindData(60.0, 6.0, 1e9)},
])
def test_invalid_input(kw):
    with pytest.raises(InvalidInput):
        compute_fan(_solution(**kw))


def test_range_and_offset_limits_are_inclusive():
    fan = compute_fan(_solution(min_range=0.0, max_range=MAX_RANGE_M, left_offset=MAX_OFFSET_DEG,
                                right_offset=0.0, wind=WindData()))
    assert fan.geometry.outer_radius == MAX_RANGE_M
    assert fan.geometry.arc_span == MAX_OFFSET_DEG
    assert fan.coords[0] == fan.coords[-1]


def test_trace_fan_matches_build_fan():
    policy = AdaptiveResolution()
    g = fan_geometry(60.0, 15.0, 25.0, 4000.0, 500.0, -120.0, 1.5)
    assert trace_fan(48.85, 2.35, g, policy) == build_fan(
        48.85, 2.35, 60.0, 15.0, 25.0, 4000.0, 500.0, -120.0, 1.5, policy)


def test_compute_fan_geometry_matches_traced_polygon():
    sol = _solution()
    fan = compute_fan(sol)
    corr = fan.correction
    g = fan_geometry(sol.azimuth, sol.left_offset, sol.right_offset, sol.max_range, sol.min_range,
                     corr.d_range, corr.d_bearing)
    assert fan.geometry == g
    assert fan.coords == trace_fan(sol.origin.lat, sol.origin.lon, g)


@pytest.mark.parametrize("lat", [89.5, -90.0, 90.0])
def test_singular_projection(lat):
    with pytest.raises(SingularProjection) as exc:
        compute_fan(_solution(origin=GeoPoint(lat, 0.0)))
    assert isinstance(exc.value, FanError)


def test_pole_limit_is_inclusive():
    fan = compute_fan(_solution(origin=GeoPoint(89.0, 0.0)))
    assert fan.coords[0] == fan.coords[-1]
