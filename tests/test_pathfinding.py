import math

import pytest

from routing.pathfinding import PathfindingEngine, PathfindingError
from stations.config_service import StationConfigService, seed_station_config
from stations.graph import StationGraph
from stations.models import Station, TravelEdge


def test_shortest_path_prefers_cheaper_multi_hop_route(line_graph):
    engine = PathfindingEngine(line_graph)

    result = engine.find_shortest_path("A", "D")

    assert result.path == ["A", "B", "C", "D"]
    assert result.total_time_seconds == 180
    # line 1 -> line 2 at C
    assert result.transfer_count == 1


def test_path_weight_matches_total_time(seoul_graph):
    engine = PathfindingEngine(seoul_graph)

    result = engine.find_shortest_path("150", "222")

    assert result is not None
    assert result.path[0] == "150" and result.path[-1] == "222"
    assert engine.path_time_seconds(result.path) == pytest.approx(result.total_time_seconds)


def test_shortest_path_is_deterministic(seoul_graph):
    engine = PathfindingEngine(seoul_graph)

    first = engine.find_shortest_path("423", "216")
    second = engine.find_shortest_path("423", "216")

    assert first == second


def test_equal_cost_ties_follow_graph_order():
    stations = [
        Station.new("S", "S", 0, 0, {"1": "1"}),
        Station.new("X", "X", 0, 0, {"1": "1"}),
        Station.new("Y", "Y", 0, 0, {"1": "1"}),
        Station.new("T", "T", 0, 0, {"1": "1"}),
    ]
    edges = [
        TravelEdge("S", "Y", 50, line_ids=("1",)),
        TravelEdge("S", "X", 50, line_ids=("1",)),
        TravelEdge("X", "T", 50, line_ids=("1",)),
        TravelEdge("Y", "T", 50, line_ids=("1",)),
    ]
    engine = PathfindingEngine(StationGraph(stations, edges))

    assert engine.find_shortest_path("S", "T").path == ["S", "X", "T"]


def test_not_found_cases_return_none(line_graph):
    engine = PathfindingEngine(line_graph)

    assert engine.find_shortest_path("A", "missing") is None
    assert engine.find_shortest_path("missing", "A") is None
    # Z has no edges at all
    assert engine.find_shortest_path("A", "Z") is None
    # edges are directed
    assert engine.find_shortest_path("D", "A") is None


def test_uninitialized_or_empty_engine_returns_none():
    assert PathfindingEngine().find_shortest_path("A", "B") is None
    assert PathfindingEngine(StationGraph()).find_shortest_path("A", "B") is None
    assert PathfindingEngine().calculate_eta("A", "B") is None
    assert not PathfindingEngine(StationGraph()).is_initialized


def test_same_station_is_a_zero_length_path(line_graph):
    result = PathfindingEngine(line_graph).find_shortest_path("B", "B")

    assert result.path == ["B"]
    assert result.total_time_seconds == 0
    assert result.transfer_count == 0


def test_stations_without_a_common_line_do_not_count_as_transfer(line_graph):
    engine = PathfindingEngine(line_graph)

    # B -> Z and Z -> B share no line: keep riding line 1
    assert engine.count_transfers(["A", "B", "Z", "B", "C"]) == 0
    assert engine.count_transfers(["A", "B", "C", "D"]) == 1
    assert engine.count_transfers(["A"]) == 0


def test_calculate_eta_reports_minutes_and_names(line_graph):
    eta = PathfindingEngine(line_graph).calculate_eta("A", "D")

    assert eta.minutes == 3
    assert eta.path == ["에이", "비", "씨", "디"]


def test_path_time_is_infinite_for_non_adjacent_hop(line_graph):
    engine = PathfindingEngine(line_graph)

    assert math.isinf(engine.path_time_seconds(["A", "C"]))


def test_initialize_from_config_service(repository, seoul_graph):
    seed_station_config(repository, seoul_graph)
    engine = PathfindingEngine()

    engine.initialize(StationConfigService(repository))

    assert engine.is_initialized
    assert len(engine.graph) == len(seoul_graph)
    assert engine.find_shortest_path("150", "222") == PathfindingEngine(seoul_graph).find_shortest_path("150", "222")


def test_initialize_wraps_loading_failures():
    class BrokenSource:
        def build_graph(self):
            raise ConnectionError("store unavailable")

    engine = PathfindingEngine()

    with pytest.raises(PathfindingError):
        engine.initialize(BrokenSource())
    assert not engine.is_initialized
