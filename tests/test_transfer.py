import pytest

from matching.policy import TransferPricingPolicy
from matching.transfer import (
    StationRoute,
    TransferMatcher,
    TransferMatchStatus,
    calculate_transfer_pricing,
    find_shared_endpoint,
    pathfinding_travel_time,
)
from routing.pathfinding import PathfindingEngine
from storage.repository import TRANSFER_MATCHES


def station_route(graph, start_id, end_id):
    return StationRoute(graph.get_station(start_id), graph.get_station(end_id))


def short_request_leg(start, end):
    # the request leg is quick, the giller commute is not
    return 10 if start.station_id == "205" else 40


def test_no_shared_endpoint(seoul_graph):
    matcher = TransferMatcher()
    request_route = station_route(seoul_graph, "150", "222")
    giller_route = station_route(seoul_graph, "425", "424")

    result = matcher.check_transfer_possibility(request_route, giller_route)

    assert result.can_transfer is False
    assert result.transfer_station is None
    assert result.original_route == giller_route


def test_shared_endpoint_prefers_request_start(seoul_graph):
    request_route = station_route(seoul_graph, "205", "222")
    giller_route = station_route(seoul_graph, "222", "205")

    assert find_shared_endpoint(request_route, giller_route).station_id == "205"


def test_fixed_durations_exceed_detour_limit(seoul_graph):
    matcher = TransferMatcher()
    request_route = station_route(seoul_graph, "205", "222")
    giller_route = station_route(seoul_graph, "150", "205")

    result = matcher.check_transfer_possibility(request_route, giller_route)

    assert result.transfer_station.name == "동대문역사문화공원"
    assert result.additional_time_minutes == 33
    assert result.total_travel_time_minutes == 63
    assert result.can_transfer is False


def test_injected_travel_time_allows_transfer(seoul_graph):
    matcher = TransferMatcher(travel_time=short_request_leg)
    request_route = station_route(seoul_graph, "205", "222")
    giller_route = station_route(seoul_graph, "150", "205")

    result = matcher.check_transfer_possibility(request_route, giller_route)

    assert result.can_transfer is True
    assert result.additional_time_minutes == 13
    assert result.transfer_route == request_route


def test_explicit_detour_limit_overrides_policy(seoul_graph):
    matcher = TransferMatcher()
    request_route = station_route(seoul_graph, "205", "222")
    giller_route = station_route(seoul_graph, "150", "205")

    assert matcher.check_transfer_possibility(request_route, giller_route, max_detour_minutes=40).can_transfer


def test_pathfinding_travel_time(seoul_graph):
    travel_time = pathfinding_travel_time(PathfindingEngine(seoul_graph), fallback_minutes=99)

    # 150 -> 201 is a single 120 second hop
    assert travel_time(seoul_graph.get_station("150"), seoul_graph.get_station("201")) == 2
    assert pathfinding_travel_time(PathfindingEngine(), fallback_minutes=99)(
        seoul_graph.get_station("150"), seoul_graph.get_station("201")
    ) == 99


def test_candidates_sorted_by_detour(seoul_graph):
    durations = {("205", "222"): 5, ("150", "205"): 20, ("205", "423"): 20}
    matcher = TransferMatcher(travel_time=lambda start, end: durations.get((start.station_id, end.station_id), 30))
    request_route = station_route(seoul_graph, "205", "222")
    routes = [
        station_route(seoul_graph, "150", "205"),
        station_route(seoul_graph, "425", "424"),
        station_route(seoul_graph, "205", "423"),
    ]

    candidates = matcher.find_transfer_candidates(request_route, routes)

    assert [candidate.giller_route for candidate in candidates] == [routes[0], routes[2]]
    assert all(candidate.possibility.additional_time_minutes == 8 for candidate in candidates)


@pytest.mark.parametrize(
    "minutes, subway_fee",
    [(None, 1400), (0, 1400), (30, 1400), (31, 1600), (50, 1600), (51, 1800)],
)
def test_pricing_tiers(minutes, subway_fee):
    pricing = calculate_transfer_pricing(3000, minutes)

    assert pricing.subway_fee == subway_fee
    assert pricing.transfer_bonus == 1000
    assert pricing.total_fee == 4000
    assert pricing.giller_earning == pytest.approx((4000 - subway_fee) * 0.9)


def test_pricing_policy_is_tunable():
    policy = TransferPricingPolicy(transfer_bonus=500, giller_share=1.0)

    pricing = TransferMatcher(policy=policy).calculate_transfer_pricing(2000, 45)

    assert pricing.total_fee == 2500
    assert pricing.giller_earning == 900


def test_invalid_pricing_policy():
    with pytest.raises(ValueError):
        TransferPricingPolicy(subway_fee_tiers=((30, 1600), (50, 1800))).validate()


def test_transfer_match_persistence(repository, seoul_graph):
    matcher = TransferMatcher(repository, travel_time=short_request_leg)
    request_route = station_route(seoul_graph, "205", "222")
    giller_route = station_route(seoul_graph, "150", "205")
    possibility = matcher.check_transfer_possibility(request_route, giller_route)
    pricing = matcher.calculate_transfer_pricing(3000, possibility.total_travel_time_minutes)

    match_id = matcher.create_transfer_match("req_1", "giller_1", possibility, pricing, giller_route_id="route_9")
    matcher.create_transfer_match("req_2", "giller_2", possibility, pricing)

    stored = matcher.get_transfer_match(match_id)
    assert stored.status is TransferMatchStatus.PENDING
    assert stored.giller_route_id == "route_9"
    assert stored.transfer_info["transfer_station"] == "동대문역사문화공원"
    assert stored.pricing["subway_fee"] == 1800
    assert [match.giller_id for match in matcher.get_transfer_matches_by_request("req_1")] == ["giller_1"]
    assert len(repository.all(TRANSFER_MATCHES)) == 2
    assert matcher.get_transfer_match("missing") is None


def test_persistence_requires_repository(seoul_graph):
    with pytest.raises(RuntimeError):
        TransferMatcher().get_transfer_matches_by_request("req_1")
