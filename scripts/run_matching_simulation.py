import csv
import logging
import os
from datetime import datetime

import pandas as pd

from deliveries.models import DeliveryRequest, PackageSize, TimeWindow
from dispatch.chat import RepositoryChatService
from dispatch.dispatcher import MatchingOrchestrator
from dispatch.notifications import MatchingNotificationService
from dispatch.policy import dispatch_policy_from_env
from dispatch.retry import RetryScheduler
from gillers.route_service import RouteService, RouteValidationError
from routing.pathfinding import PathfindingEngine
from scripts.generate_mock_gillers import generate_mock_gillers, generate_mock_requests
from stations.config_service import StationConfigService, seed_station_config
from stations.loader import load_station_graph
from storage.repository import NOTIFICATIONS, REQUESTS, USERS, InMemoryRepository

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# A Monday morning, so weekday commuters are eligible
SIMULATION_NOW = datetime(2025, 3, 3, 8, 0).astimezone()


def _split_days(value) -> list:
    return [int(day) for day in str(value).split("|") if day]


def _load_or_generate(filename, generator, seed):
    path = os.path.join(BASE_DIR, "sampledata", filename)
    if os.path.exists(path):
        return pd.read_csv(path, dtype={"start_station_id": str, "end_station_id": str})
    return generator(seed=seed)


def seed_gillers(repository, graph, gillers: pd.DataFrame) -> int:
    """
    Register every mock giller and their route through RouteService.
    Returns how many routes were rejected by validation.
    """
    routes = RouteService(repository, graph, clock=lambda: SIMULATION_NOW)
    rejected = 0
    for row in gillers.to_dict(orient="records"):
        giller_id = row["giller_id"]
        repository.create(
            USERS,
            {
                "name": row["giller_name"],
                "rating": float(row["rating"]),
                "giller_info": {
                    "total_deliveries": int(row["total_deliveries"]),
                    "completed_deliveries": int(row["completed_deliveries"]),
                },
            },
            doc_id=giller_id,
        )
        try:
            route = routes.create_route(
                giller_id,
                str(row["start_station_id"]),
                str(row["end_station_id"]),
                row["departure_time"],
                _split_days(row["days_of_week"]),
            )
        except RouteValidationError as e:
            print(f"[SKIPPED ROUTE] {giller_id}: {', '.join(e.errors)}")
            rejected += 1
            continue
        if not bool(row["is_active"]):
            routes.deactivate_route(route.route_id, giller_id)
    return rejected


def seed_requests(repository, requests_df: pd.DataFrame) -> list:
    request_ids = []
    for row in requests_df.to_dict(orient="records"):
        request = DeliveryRequest.new(
            request_id=row["request_id"],
            requester_id=row["requester_id"],
            pickup_station_name=row["pickup_station_name"],
            delivery_station_name=row["delivery_station_name"],
            pickup_window=TimeWindow(row["pickup_start"], row["pickup_end"]),
            delivery_deadline=row["delivery_deadline"],
            preferred_days=_split_days(row["preferred_days"]),
            package_size=PackageSize(row["package_size"]),
            package_weight_kg=float(row["package_weight_kg"]),
            fee=int(row["fee"]),
            created_at=SIMULATION_NOW,
        )
        repository.create(REQUESTS, request.to_document(), doc_id=request.request_id)
        request_ids.append(request.request_id)
    return request_ids


def run_simulation():
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    print("=== STARTING END-TO-END MATCHING SIMULATION ===")

    # 1. Load reference data and seed the store
    repository = InMemoryRepository()
    graph = load_station_graph(
        os.path.join(BASE_DIR, "sampledata/stations.csv"),
        os.path.join(BASE_DIR, "sampledata/travel_times.csv"),
    )
    seed_station_config(repository, graph)

    gillers = _load_or_generate("gillers.csv", generate_mock_gillers, seed=7)
    requests_df = _load_or_generate("requests.csv", generate_mock_requests, seed=11)
    rejected = seed_gillers(repository, graph, gillers)
    request_ids = seed_requests(repository, requests_df)
    print(f"Loaded {len(graph)} stations, {len(gillers)} gillers and {len(request_ids)} requests ({rejected} routes rejected).\n")

    # 2. Configure the pipeline (graph read back through the cached config service)
    pathfinder = PathfindingEngine()
    pathfinder.initialize(StationConfigService(repository))

    policy = dispatch_policy_from_env()
    orchestrator = MatchingOrchestrator(
        repository,
        pathfinder.graph,
        notifier=MatchingNotificationService(repository, clock=lambda: SIMULATION_NOW),
        chat=RepositoryChatService(repository, clock=lambda: SIMULATION_NOW),
        pathfinder=pathfinder,
        policy=policy,
        clock=lambda: SIMULATION_NOW,
    )
    scheduler = RetryScheduler(orchestrator, sleep=lambda seconds: None)

    # 3. Match, retry the misses, and let the best giller accept
    output_path = os.path.join(BASE_DIR, "matching_results.csv")
    accepted = 0
    with open(output_path, "w", newline="") as file:
        writer = csv.writer(file)
        writer.writerow(["request_id", "matches", "accepted_by", "score", "reasons"])

        for request_id in request_ids:
            found = orchestrator.process_matching_for_request(request_id)
            if not found:
                result = scheduler.retry_matching_with_backoff(request_id)
                print(f"[NO MATCH] {request_id} after {result.attempts} attempts")
                writer.writerow([request_id, 0, "NONE", "", ""])
                continue

            best = orchestrator.get_matching_results(request_id)[0]
            action = orchestrator.accept_request(request_id, best.giller_id)
            if action.success:
                accepted += 1
            writer.writerow([request_id, found, best.giller_id, best.score, " / ".join(best.reasons)])
            print(f"[MATCHED] {request_id} -> {best.giller_name} ({best.giller_id}) score={best.score} fee={best.estimated_fee}")

    print("\n=== SIMULATION COMPLETE ===")
    print(f"Requests accepted: {accepted} / {len(request_ids)}")
    print(f"Notifications stored: {len(repository.all(NOTIFICATIONS))}")
    print(f"Results written to '{output_path}'.")


if __name__ == "__main__":
    run_simulation()
