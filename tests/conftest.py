import matplotlib

matplotlib.use("Agg")

import pytest

from fan_logic import GeoPoint, WindData, FiringSolution, compute_fan


@pytest.fixture
def basic_solution():
    """Origin (0, 0), azimuth 0, +/-10 deg, 0-1000 m, no wind."""
    return FiringSolution(
        origin=GeoPoint(0.0, 0.0),
        azimuth=0.0,
        left_offset=10.0,
        right_offset=10.0,
        min_range=0.0,
        max_range=1000.0,
        wind=WindData(direction_deg=0.0, speed=0.0, met_scale=1.0),
    )


@pytest.fixture
def basic_fan(basic_solution):
    return compute_fan(basic_solution)
