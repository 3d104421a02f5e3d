import pytest

from namaste_loyalty.utils.geo import distance_meters, within_radius

TOKYO_MAIN = (35.6812, 139.6314)


def test_identical_points_have_zero_distance():
    assert distance_meters(*TOKYO_MAIN, *TOKYO_MAIN) == 0


def test_known_distance_tokyo_to_osaka():
    # 东京到大阪直线约 391 公里
    distance = distance_meters(*TOKYO_MAIN, 34.6937, 135.5022)
    assert 385_000 < distance < 395_000


def test_distance_is_symmetric():
    a = distance_meters(35.0, 139.0, 35.1, 139.2)
    b = distance_meters(35.1, 139.2, 35.0, 139.0)
    assert a == pytest.approx(b)


def test_geofence_boundary():
    # 纬度 0.0018 度约 200 米，0.00045 度约 50 米
    assert not within_radius(*TOKYO_MAIN, TOKYO_MAIN[0] + 0.0018, TOKYO_MAIN[1], 100)
    assert within_radius(*TOKYO_MAIN, TOKYO_MAIN[0] + 0.00045, TOKYO_MAIN[1], 100)
