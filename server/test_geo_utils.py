import math

import pytest

from geo_utils import MAJOR_CITIES, Position, city_position, distance_meters, safe_zone_name


def test_distance_zero_for_identical_points():
    p = Position(40.7, -74.0)
    assert distance_meters(p, p) == 0.0


def test_distance_is_symmetric():
    a = Position(51.5074, -0.1278)
    b = Position(48.8566, 2.3522)
    assert distance_meters(a, b) == pytest.approx(distance_meters(b, a))


def test_distance_london_paris_is_about_344km():
    d = distance_meters(Position(51.5074, -0.1278), Position(48.8566, 2.3522))
    assert 340_000 < d < 347_000


def test_distance_antipodal_points_is_half_circumference():
    d = distance_meters(Position(0.0, 0.0), Position(0.0, 180.0))
    assert d == pytest.approx(math.pi * 6371000.0)


def test_safe_zone_at_city_center():
    for name, lat, lng in MAJOR_CITIES:
        assert safe_zone_name(Position(lat, lng)) == name


def test_safe_zone_radius_boundary():
    london = city_position('London')
    # ~0.005 deg latitude is ~556 m, ~0.02 deg is ~2.2 km
    assert safe_zone_name(Position(london.lat + 0.005, london.lng)) == 'London'
    assert safe_zone_name(Position(london.lat + 0.02, london.lng)) is None


def test_safe_zone_longitude_scaled_by_latitude():
    # At 60N a degree of longitude is half as long as at the equator
    zones = [('North', Position(60.0, 0.0))]
    # 0.015 deg lng at 60N is ~834 m: inside a 1 km zone
    assert safe_zone_name(Position(60.0, 0.015), zones=zones) == 'North'
    # The same delta at the equator is ~1.67 km: outside
    assert safe_zone_name(Position(0.0, 0.015), zones=[('Eq', Position(0.0, 0.0))]) is None


def test_open_ocean_is_not_safe():
    assert safe_zone_name(Position(0.0, 0.0)) is None


@pytest.mark.parametrize('payload', [
    None,
    [],
    {'lat': 10.0},
    {'lat': 'a', 'lng': 1.0},
    {'lat': True, 'lng': 1.0},
    {'lat': float('nan'), 'lng': 1.0},
    {'lat': 91.0, 'lng': 0.0},
    {'lat': 0.0, 'lng': -181.0},
])
def test_position_from_dict_rejects_bad_payloads(payload):
    with pytest.raises(ValueError):
        Position.from_dict(payload)


def test_position_from_dict_accepts_ints():
    p = Position.from_dict({'lat': 10, 'lng': -20})
    assert p == Position(10.0, -20.0)
    assert p.to_dict() == {'lat': 10.0, 'lng': -20.0}


def test_city_position_unknown_city():
    assert city_position('Atlantis') is None
