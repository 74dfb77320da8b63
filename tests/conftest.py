import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

from deliveries.models import DeliveryRequest, TimeWindow
from dispatch.chat import RepositoryChatService
from dispatch.dispatcher import MatchingOrchestrator
from dispatch.policy import DispatchPolicy
from stations.graph import StationGraph
from stations.loader import load_station_graph
from stations.models import Station, TravelEdge
from storage.repository import REQUESTS, ROUTES, USERS, InMemoryRepository

SAMPLEDATA = Path(__file__).resolve().parent.parent / "sampledata"

# Monday 08:00 UTC
MONDAY_MORNING = datetime(2025, 3, 3, 8, 0, tzinfo=timezone.utc)


class FakeNotifier:
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)
        self._lock = threading.Lock()

    def notify(self, user_id, notification):
        if user_id in self.fail_for:
            raise RuntimeError(f"push failed for {user_id}")
        with self._lock:
            self.sent.append((user_id, notification))

    @property
    def recipients(self):
        return sorted(user_id for user_id, _ in self.sent)


@pytest.fixture
def line_graph():
    """
    A - B - C on line 1, C - D on line 2, plus a slow direct A -> D edge.

        A --60--> B --60--> C --60--> D
        A -------------300----------> D
    """
    stations = [
        Station.new("A", "에이", 37.50, 127.00, {"1": "1호선"}),
        Station.new("B", "비", 37.51, 127.00, {"1": "1호선"}),
        Station.new("C", "씨", 37.52, 127.00, {"1": "1호선", "2": "2호선"}),
        Station.new("D", "디", 37.53, 127.00, {"2": "2호선"}),
        Station.new("Z", "외딴역", 37.60, 127.10, {"9": "9호선"}),
    ]
    edges = [
        TravelEdge("A", "B", 60, line_ids=("1",)),
        TravelEdge("B", "C", 60, line_ids=("1",)),
        TravelEdge("C", "D", 60, express_time_seconds=45, line_ids=("2",)),
        TravelEdge("A", "D", 300, line_ids=("1",)),
    ]
    return StationGraph(stations, edges)


@pytest.fixture(scope="session")
def seoul_graph():
    return load_station_graph(SAMPLEDATA / "stations.csv", SAMPLEDATA / "travel_times.csv")


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def make_request():
    def _make(request_id="req_1", pickup="서울역", delivery="강남", start="08:15", days=(1, 2, 3, 4, 5), **kwargs):
        return DeliveryRequest.new(
            request_id=request_id,
            requester_id=kwargs.pop("requester_id", "requester_1"),
            pickup_station_name=pickup,
            delivery_station_name=delivery,
            pickup_window=TimeWindow(start, "09:00"),
            delivery_deadline="10:00",
            preferred_days=days,
            fee=kwargs.pop("fee", 4000),
            created_at=kwargs.pop("created_at", MONDAY_MORNING),
            **kwargs,
        )
    return _make


def add_giller(repository, giller_id, start_id, end_id, departure="08:00", days=(1, 2, 3, 4, 5), rating=4.5,
               total=10, completed=10, is_active=True, name=None):
    repository.create(
        USERS,
        {
            "name": name or giller_id,
            "rating": rating,
            "giller_info": {"total_deliveries": total, "completed_deliveries": completed},
        },
        doc_id=giller_id,
    )
    return repository.create(
        ROUTES,
        {
            "giller_id": giller_id,
            "start_station_id": start_id,
            "end_station_id": end_id,
            "departure_time": departure,
            "days_of_week": list(days),
            "is_active": is_active,
        },
    )


def add_request(repository, request):
    repository.create(REQUESTS, request.to_document(), doc_id=request.request_id)
    return request.request_id


@pytest.fixture
def orchestrator(repository, seoul_graph, notifier):
    return MatchingOrchestrator(
        repository,
        seoul_graph,
        notifier=notifier,
        chat=RepositoryChatService(repository, clock=lambda: MONDAY_MORNING),
        policy=DispatchPolicy(max_workers=2),
        clock=lambda: MONDAY_MORNING,
    )
