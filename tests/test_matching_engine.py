import pytest

from gillers.models import GillerRoute, GillerStats
from matching.engine import (
    calculate_matching_score,
    congestion_level,
    get_top_matches,
    match_gillers_to_request,
    rank_gillers,
)
from routing.pathfinding import PathfindingEngine
from stations.models import Station

SEOUL_STATION = Station.new("150", "서울역", 37.5547, 126.9707, {"1": "1호선"})
GANGNAM_STATION = Station.new("222", "강남역", 37.4979, 127.0276, {"2": "2호선"})
CITY_HALL = Station.new("201", "시청", 37.5657, 126.9770, {"1": "1호선", "2": "2호선"})
YEOKSAM = Station.new("221", "역삼", 37.5006, 127.0364, {"2": "2호선"})

WEEKDAYS = (1, 2, 3, 4, 5)


def route(giller_id, start, end, departure="08:00", days=WEEKDAYS, stats=None):
    return GillerRoute.new(giller_id, start, end, departure, days, stats=stats)


@pytest.fixture
def seoul_to_gangnam(make_request):
    return make_request(pickup="서울역", delivery="강남역", start="08:15", days=(1,))


def test_exact_route_scores_100(seoul_to_gangnam):
    results = match_gillers_to_request(seoul_to_gangnam, [route("g1", SEOUL_STATION, GANGNAM_STATION)], day_of_week=1)

    assert results[0].total_score == 100
    assert results[0].reason == "높은 매칭 점수"


def test_day_and_hour_match_alone_reaches_threshold(seoul_to_gangnam):
    results = match_gillers_to_request(
        seoul_to_gangnam, [route("g2", CITY_HALL, YEOKSAM, departure="09:00")], day_of_week=1
    )

    assert results[0].total_score == 70
    assert results[0].reason == "높은 매칭 점수"


def test_base_score_only(seoul_to_gangnam):
    results = match_gillers_to_request(
        seoul_to_gangnam, [route("g3", CITY_HALL, YEOKSAM, departure="12:00", days=(6, 7))], day_of_week=1
    )

    assert results[0].total_score == 50
    assert results[0].reason == "기본 매칭"


def test_request_day_defaults_to_earliest_preferred_day(make_request):
    request = make_request(pickup="서울역", delivery="강남역", days=(3, 6))

    results = match_gillers_to_request(request, [route("g1", SEOUL_STATION, GANGNAM_STATION, days=(3,))])

    assert results[0].total_score == 100


def test_results_sorted_descending_with_stable_ties(seoul_to_gangnam):
    routes = [
        route("tie_a", CITY_HALL, YEOKSAM, departure="12:00"),
        route("best", SEOUL_STATION, GANGNAM_STATION),
        route("tie_b", YEOKSAM, CITY_HALL, departure="12:00"),
        route("tie_c", CITY_HALL, SEOUL_STATION, departure="12:00"),
    ]

    results = match_gillers_to_request(seoul_to_gangnam, routes, day_of_week=1)

    assert [result.giller_id for result in results] == ["best", "tie_a", "tie_b", "tie_c"]


def test_engine_is_pure(seoul_to_gangnam):
    routes = [route("g1", SEOUL_STATION, GANGNAM_STATION), route("g2", CITY_HALL, YEOKSAM, departure="21:00")]

    assert match_gillers_to_request(seoul_to_gangnam, routes, day_of_week=1) == match_gillers_to_request(
        seoul_to_gangnam, routes, day_of_week=1
    )


def test_top_matches_is_a_prefix(seoul_to_gangnam):
    routes = [route(f"g{index}", CITY_HALL, YEOKSAM, departure=f"{8 + index:02d}:00") for index in range(6)]
    matches = match_gillers_to_request(seoul_to_gangnam, routes, day_of_week=1)

    for limit in range(0, len(matches) + 3):
        top = get_top_matches(matches, limit)
        assert len(top) == min(limit, len(matches))
        assert top == matches[: len(top)]

    assert len(get_top_matches(matches)) == len(matches)


def test_top_matches_negative_limit_is_empty(seoul_to_gangnam):
    matches = match_gillers_to_request(seoul_to_gangnam, [route("g1", CITY_HALL, YEOKSAM)], day_of_week=1)

    assert matches
    assert get_top_matches(matches, -1) == []


# --- Extended model ---

def test_extended_perfect_score(seoul_graph, make_request):
    request = make_request(pickup="서울역", delivery="강남", start="08:15")
    giller = GillerRoute.new(
        "g1",
        seoul_graph.get_station("150"),
        seoul_graph.get_station("222"),
        "08:15",
        WEEKDAYS,
        stats=GillerStats(name="김길러", rating=5.0, total_deliveries=10, completed_deliveries=10),
    )

    result = calculate_matching_score(giller, request, seoul_graph)

    assert result.total_score == 100
    assert (result.route_match_score, result.time_match_score) == (50, 30)
    assert (result.rating_score, result.completion_rate_score) == (15, 5)
    assert result.reasons == ("경로 완벽 일치", "시간 완벽 일치", "최고 평점", "높은 완료율")


def test_extended_route_points_by_line_overlap(seoul_graph, make_request):
    request = make_request(pickup="서울역", delivery="강남")
    shared_lines = GillerRoute.new("g1", seoul_graph.get_station("201"), seoul_graph.get_station("202"), "08:15", WEEKDAYS)
    other_lines = GillerRoute.new("g2", seoul_graph.get_station("425"), seoul_graph.get_station("424"), "08:15", WEEKDAYS)

    assert calculate_matching_score(shared_lines, request, seoul_graph).route_match_score == 40
    # 서울역 is on line 4 too, so only the delivery side falls to 15
    assert calculate_matching_score(other_lines, request, seoul_graph).route_match_score == 35


def test_extended_time_and_rating_components(seoul_graph, make_request):
    request = make_request(pickup="서울역", delivery="강남", start="08:00", days=(1, 2, 6, 7))
    giller = GillerRoute.new(
        "g1",
        seoul_graph.get_station("150"),
        seoul_graph.get_station("222"),
        "08:30",
        WEEKDAYS,
        stats=GillerStats(rating=0.0, total_deliveries=0),
    )

    result = calculate_matching_score(giller, request, seoul_graph)

    # 20 - 30/3 = 10 for departure, 2 of 4 preferred days covered = 5
    assert result.time_match_score == 15
    assert result.rating_score == 0
    assert result.completion_rate_score == 2  # 2.5 rounds to even
    assert "완료율 확인 필요" in result.reasons


def test_extended_route_details_come_from_pathfinder(seoul_graph, make_request):
    engine = PathfindingEngine(seoul_graph)
    request = make_request(pickup="서울역", delivery="강남")
    giller = GillerRoute.new("g1", seoul_graph.get_station("150"), seoul_graph.get_station("222"), "08:00", WEEKDAYS)

    details = calculate_matching_score(giller, request, seoul_graph, engine).route_details
    expected = engine.find_shortest_path("150", "222")

    assert details.travel_time_seconds == expected.total_time_seconds
    assert details.transfer_count == expected.transfer_count == 1
    assert details.express_available
    assert details.congestion_level == "high"


def test_extended_details_without_pathfinder_are_empty(seoul_graph, make_request):
    request = make_request(pickup="서울역", delivery="강남")
    giller = GillerRoute.new("g1", seoul_graph.get_station("150"), seoul_graph.get_station("222"), "22:00", WEEKDAYS)

    details = calculate_matching_score(giller, request, seoul_graph).route_details

    assert details.travel_time_seconds == 0
    assert not details.express_available
    assert details.congestion_level == "low"


@pytest.mark.parametrize(
    "departure, level",
    [("07:00", "high"), ("09:30", "high"), ("12:00", "medium"), ("17:59", "high"), ("20:00", "low"), ("05:30", "low")],
)
def test_congestion_levels(departure, level):
    assert congestion_level(departure) == level


def test_rank_gillers_with_unknown_request_station(seoul_graph, make_request):
    request = make_request(pickup="없는역", delivery="강남")
    giller = GillerRoute.new("g1", seoul_graph.get_station("150"), seoul_graph.get_station("222"), "08:00", WEEKDAYS)

    assert rank_gillers([giller], request, seoul_graph) == []
    assert calculate_matching_score(giller, request, seoul_graph) is None


def test_rank_gillers_orders_and_skips_broken_routes(seoul_graph, make_request):
    request = make_request(pickup="서울역", delivery="강남", start="08:00")
    exact = GillerRoute.new("exact", seoul_graph.get_station("150"), seoul_graph.get_station("222"), "08:00", WEEKDAYS)
    far = GillerRoute.new("far", seoul_graph.get_station("425"), seoul_graph.get_station("424"), "18:00", (6,))
    broken = GillerRoute.new("broken", seoul_graph.get_station("150"), seoul_graph.get_station("222"), "8 o'clock", WEEKDAYS)

    ranked = rank_gillers([far, broken, exact], request, seoul_graph)

    assert [result.giller_id for result in ranked] == ["exact", "far"]
