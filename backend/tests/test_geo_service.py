"""Tests for GPS distance and geofence checks."""
import math

import pytest

from rollcall.services.geo_service import GeoService
from rollcall.utils.errors import ValidationError
from rollcall.utils.validators import Validator


def test_same_point_is_zero():
    assert GeoService.calculate_distance(30.0444, 31.2357, 30.0444, 31.2357) == 0


def test_one_degree_of_latitude():
    distance = GeoService.calculate_distance(0, 0, 1, 0)
    assert distance == pytest.approx(6371000 * math.pi / 180, rel=1e-9)


def test_distance_is_symmetric():
    a = GeoService.calculate_distance(30.0444, 31.2357, 30.0450, 31.2360)
    b = GeoService.calculate_distance(30.0450, 31.2360, 30.0444, 31.2357)
    assert a == pytest.approx(b)


def test_radius_boundary_is_inclusive():
    assert GeoService.is_within_radius(50.0, 50.0)
    assert not GeoService.is_within_radius(50.0001, 50.0)


@pytest.mark.parametrize('lat, lng', [(91, 0), (-90.5, 0), (0, 180.1), (0, -181)])
def test_out_of_range_coordinates_rejected(lat, lng):
    with pytest.raises(ValidationError):
        Validator.validate_coordinates(lat, lng)


def test_missing_coordinates_rejected():
    with pytest.raises(ValidationError) as exc:
        Validator.validate_coordinates(None, 31.2)
    assert 'Location required' in exc.value.message


def test_non_numeric_coordinates_rejected():
    with pytest.raises(ValidationError):
        Validator.validate_coordinates('north', 31.2)
    with pytest.raises(ValidationError):
        Validator.validate_coordinates(float('nan'), 31.2)


def test_string_coordinates_are_converted():
    assert Validator.validate_coordinates('30.5', '-10') == (30.5, -10.0)
