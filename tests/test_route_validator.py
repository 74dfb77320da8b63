import pytest

from routing.pathfinding import PathfindingEngine
from routing.route_validator import (
    RouteSlot,
    RouteValidationPolicy,
    check_route_overlap,
    estimate_travel_time,
    find_time_conflicts,
    validate_route_input,
)
from stations.models import Station

WEEKDAYS = [1, 2, 3, 4, 5]


@pytest.fixture
def seoul(seoul_graph):
    return seoul_graph.get_station_by_name


def test_clean_rush_hour_route_is_valid_without_warnings(seoul):
    result = validate_route_input(seoul("서울역"), seoul("강남"), "08:00", WEEKDAYS)

    assert result.is_valid
    assert result.errors == []
    assert result.warnings == []


@pytest.mark.parametrize("departure", ["08:00", "12:30", "03:00", "23:59", "7:5", "garbage"])
@pytest.mark.parametrize("days", [WEEKDAYS, [6, 7], []])
def test_same_start_and_end_is_always_invalid(seoul, departure, days):
    station = seoul("시청")

    result = validate_route_input(station, station, departure, days)

    assert not result.is_valid
    assert "출발역과 도착역이 같습니다." in result.errors


def test_missing_stations_and_days_are_errors():
    result = validate_route_input(None, None, "08:00", [])

    assert not result.is_valid
    assert len(result.errors) == 3


def test_out_of_range_day_is_an_error(seoul):
    result = validate_route_input(seoul("서울역"), seoul("강남"), "08:00", [1, 8])

    assert not result.is_valid


@pytest.mark.parametrize("departure", ["25:00", "08:60", "0800", ""])
def test_malformed_time_is_an_error(seoul, departure):
    result = validate_route_input(seoul("서울역"), seoul("강남"), departure, WEEKDAYS)

    assert not result.is_valid
    assert any("HH:mm" in error for error in result.errors)


def test_midday_route_warns_but_stays_valid(seoul):
    result = validate_route_input(seoul("서울역"), seoul("강남"), "12:00", WEEKDAYS)

    assert result.is_valid
    assert "러시아워 시간대가 아니면 매칭이 어려울 수 있습니다." in result.warnings
    assert "비수기 시간대입니다. 배차 간격이 길 수 있습니다." in result.warnings


def test_rush_hour_boundaries_are_inclusive(seoul):
    for departure in ["07:00", "09:00", "18:00", "20:00"]:
        result = validate_route_input(seoul("서울역"), seoul("강남"), departure, WEEKDAYS)
        assert result.warnings == [], departure


def test_service_hour_warnings(seoul):
    early = validate_route_input(seoul("서울역"), seoul("강남"), "04:30", WEEKDAYS)
    late = validate_route_input(seoul("서울역"), seoul("강남"), "23:30", WEEKDAYS)

    assert early.is_valid and "지하철 운행 시간 전입니다." in early.warnings
    assert late.is_valid and "지하철 운행이 종료될 시간입니다." in late.warnings


def test_mixed_weekday_and_weekend_warns(seoul):
    result = validate_route_input(seoul("서울역"), seoul("강남"), "08:00", [1, 6])

    assert result.is_valid
    assert result.warnings == ["평일/주말 시간대를 다르게 설정하는 것을 권장합니다."]


def test_central_to_central_commute_warns(seoul):
    weekday = validate_route_input(seoul("서울역"), seoul("동대문"), "08:30", WEEKDAYS)
    weekend = validate_route_input(seoul("서울역"), seoul("동대문"), "08:30", [6, 7])

    assert "출근 시간대에 중심부 간 이동은 매칭이 어려울 수 있습니다." in weekday.warnings
    assert weekend.warnings == []


def test_estimate_uses_pathfinder_when_available(seoul_graph, seoul):
    engine = PathfindingEngine(seoul_graph)

    minutes = estimate_travel_time(seoul("서울역"), seoul("강남"), engine)

    assert minutes == engine.calculate_eta("150", "222").minutes


def test_estimate_falls_back_to_straight_line(seoul):
    assert estimate_travel_time(seoul("서울역"), seoul("강남")) == 13
    assert estimate_travel_time(seoul("서울역"), seoul("강남"), PathfindingEngine()) == 13


def test_estimate_fallback_has_a_floor(seoul):
    assert estimate_travel_time(seoul("서울역"), seoul("시청")) == 10


def test_estimate_falls_back_when_no_path(seoul_graph, seoul):
    island = Station.new("999", "섬역", 37.4979, 127.0276)

    minutes = estimate_travel_time(seoul("서울역"), island, PathfindingEngine(seoul_graph))

    assert minutes == 13


def test_policy_rejects_inverted_windows():
    with pytest.raises(ValueError):
        RouteValidationPolicy(morning_rush=(600, 500)).validate()


def test_route_overlap_needs_shared_day():
    existing = [
        RouteSlot("150", "222", "08:00", frozenset({1, 2, 3})),
        RouteSlot("150", "222", "08:00", frozenset({6, 7})),
        RouteSlot("150", "222", "09:00", frozenset({1})),
    ]
    new_route = RouteSlot("150", "222", "08:00", frozenset({3, 4}))

    assert check_route_overlap(new_route, existing) == [existing[0]]


def test_time_conflicts_within_window_on_shared_day():
    existing = [
        RouteSlot("150", "222", "07:30", frozenset({1}), route_id="edge"),
        RouteSlot("201", "202", "08:31", frozenset({1}), route_id="late"),
        RouteSlot("425", "424", "08:10", frozenset({6}), route_id="weekend"),
        RouteSlot("425", "424", "bad", frozenset({1}), route_id="broken"),
    ]
    new_route = RouteSlot("150", "222", "08:00", frozenset({1, 2}))

    assert [slot.route_id for slot in find_time_conflicts(new_route, existing)] == ["edge"]
    assert [slot.route_id for slot in find_time_conflicts(new_route, existing, window_minutes=31)] == ["edge", "late"]


def test_policy_rejects_zero_route_limit():
    with pytest.raises(ValueError):
        RouteValidationPolicy(max_active_routes=0).validate()
