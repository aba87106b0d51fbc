"""Tests for great-circle distance and ETA estimates."""
from __future__ import annotations

import pytest

from app.services.geo_service import eta_minutes, haversine_km, round_half_up


class TestHaversineKm:

    def test_same_point_is_zero(self):
        assert haversine_km(29.76, -95.37, 29.76, -95.37) == 0.0

    @pytest.mark.parametrize(
        "a,b",
        [
            ((29.76, -95.37), (32.78, -96.80)),
            ((-33.86, 151.21), (51.50, -0.12)),
            ((0.0, 179.9), (0.0, -179.9)),
        ],
    )
    def test_symmetric(self, a, b):
        assert haversine_km(*a, *b) == pytest.approx(haversine_km(*b, *a))

    def test_houston_to_dallas(self):
        # ~362 km great-circle
        assert 350 < haversine_km(29.76, -95.37, 32.78, -96.80) < 375

    def test_one_degree_latitude(self):
        assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.19, abs=0.05)

    def test_antimeridian_is_short(self):
        assert haversine_km(0.0, 179.9, 0.0, -179.9) < 25


class TestEtaMinutes:

    def test_default_speed_is_48_kmh(self):
        assert eta_minutes(48.0) == 60
        assert eta_minutes(24.0) == 30

    def test_zero_distance(self):
        assert eta_minutes(0.0) == 0

    def test_custom_speed(self):
        assert eta_minutes(80.0, speed_kmh=80.0) == 60

    def test_rounds_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(2.49) == 2
