import pytest

from stations.config_service import StationConfigService, seed_station_config
from stations.graph import StationNotFound
from stations.loader import load_station_graph, load_stations
from stations.models import Station, TravelEdge
from storage.cache import TTLCache
from storage.repository import CONFIG_STATIONS, CONFIG_TRAVEL_TIMES, InMemoryRepository


@pytest.fixture
def csv_files(tmp_path):
    stations = tmp_path / "stations.csv"
    stations.write_text(
        "station_id,station_name,lat,lng,line_ids,line_names\n"
        "001,서울역,37.5547,126.9707,1|4,1호선|4호선\n"
        "002,시청,37.5657,126.9770,1,\n",
        encoding="utf-8",
    )
    travel_times = tmp_path / "travel_times.csv"
    travel_times.write_text(
        "from_station_id,to_station_id,normal_time_seconds,express_time_seconds,transfer_count,line_ids\n"
        "001,002,120,,0,1\n"
        "002,001,120,100,0,1\n"
        "002,999,60,,0,1\n",
        encoding="utf-8",
    )
    return stations, travel_times


def test_loader_builds_graph_and_drops_dangling_edges(csv_files):
    graph = load_station_graph(*csv_files)

    assert graph.station_ids() == ["001", "002"]
    assert graph.edge_count == 2
    assert graph.neighbors("001")[0].express_time_seconds is None
    assert graph.neighbors("002")[0].express_time_seconds == 100
    assert graph.neighbors("002")[0].has_express


def test_loader_keeps_ids_as_strings_and_names_lines(csv_files):
    stations = load_stations(csv_files[0])

    assert stations[0].station_id == "001"
    assert [line.line_name for line in stations[0].lines] == ["1호선", "4호선"]
    # missing line name falls back to the id
    assert stations[1].lines[0].line_name == "1"


def test_loader_requires_columns(tmp_path):
    broken = tmp_path / "stations.csv"
    broken.write_text("station_id,station_name\n1,서울역\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_stations(broken)


def test_graph_lookups(seoul_graph):
    assert seoul_graph.get_station_by_name("강남").station_id == "222"
    assert seoul_graph.get_station("nope") is None
    assert "150" in seoul_graph
    with pytest.raises(StationNotFound):
        seoul_graph.require_station("nope")
    assert seoul_graph.edge_between("212", "216").has_express


def test_station_document_round_trip_keeps_lines():
    station = Station.new("150", "서울역", 37.5547, 126.9707, {"1": "1호선", "4": "4호선"})

    assert Station.from_document(station.to_document()) == station


def test_edge_line_falls_back_to_unknown():
    assert TravelEdge("a", "b", 60).line_id == "unknown"


class CountingRepository(InMemoryRepository):
    def __init__(self):
        super().__init__()
        self.reads = 0

    def get(self, collection, doc_id):
        self.reads += 1
        return super().get(collection, doc_id)

    def query(self, collection, field_name, op, value):
        self.reads += 1
        return super().query(collection, field_name, op, value)


def test_config_service_caches_reads(seoul_graph):
    repository = CountingRepository()
    seed_station_config(repository, seoul_graph)
    service = StationConfigService(repository, TTLCache())

    first = service.get_station("150")
    second = service.get_station("150")
    service.get_all_stations()
    service.get_all_stations()

    assert first == second == seoul_graph.get_station("150")
    assert repository.reads == 2


def test_config_service_clear_station_cache_forces_reload(seoul_graph):
    repository = CountingRepository()
    seed_station_config(repository, seoul_graph)
    service = StationConfigService(repository)

    service.get_station("150")
    service.get_travel_edges_from("150")
    service.clear_station_cache("150")
    service.get_station("150")
    service.get_travel_edges_from("150")

    assert repository.reads == 4


def test_config_service_builds_same_graph(seoul_graph):
    repository = InMemoryRepository()
    seed_station_config(repository, seoul_graph)

    graph = StationConfigService(repository).build_graph()

    assert graph.station_ids() == seoul_graph.station_ids()
    assert graph.edge_count == seoul_graph.edge_count
    assert [edge.to_station_id for edge in graph.neighbors("205")] == [
        edge.to_station_id for edge in seoul_graph.neighbors("205")
    ]


def test_seeding_twice_does_not_duplicate(seoul_graph):
    repository = InMemoryRepository()
    seed_station_config(repository, seoul_graph)
    seed_station_config(repository, seoul_graph)

    assert len(repository.all(CONFIG_STATIONS)) == len(seoul_graph)
    assert len(repository.all(CONFIG_TRAVEL_TIMES)) == seoul_graph.edge_count
