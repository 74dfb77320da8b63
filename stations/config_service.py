"""
Purpose: Cached read-through access to station reference data in the store.
What it does:
- Reads config_stations / config_travel_times through the Repository.
- Memoizes results in an explicitly injected TTLCache.
- Builds a StationGraph for the pathfinding engine.
- Seeds the store from an already loaded graph (scripts, tests).

Cache keys:
    station:<id>, stations:all, travelTime:from:<id>, travelTimes:all
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from storage.cache import TTLCache
from storage.repository import CONFIG_STATIONS, CONFIG_TRAVEL_TIMES, Repository

from .graph import StationGraph
from .models import Station, TravelEdge

logger = logging.getLogger(__name__)


class StationConfigService:
    def __init__(self, repository: Repository, cache: Optional[TTLCache] = None):
        self.repository = repository
        self.cache = cache or TTLCache()

    def get_station(self, station_id: str) -> Optional[Station]:
        cache_key = f"station:{station_id}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        doc = self.repository.get(CONFIG_STATIONS, station_id)
        if doc is None:
            return None

        station = Station.from_document(doc)
        self.cache.set(cache_key, station)
        return station

    def get_all_stations(self) -> List[Station]:
        cached = self.cache.get("stations:all")
        if cached is not None:
            return cached

        # every station document carries station_id, so this is a full scan
        docs = self.repository.query(CONFIG_STATIONS, "station_id", "!=", None)
        stations = [Station.from_document(doc) for doc in docs]
        self.cache.set("stations:all", stations)
        return stations

    def get_all_travel_edges(self) -> List[TravelEdge]:
        cached = self.cache.get("travelTimes:all")
        if cached is not None:
            return cached

        docs = self.repository.query(CONFIG_TRAVEL_TIMES, "from_station_id", "!=", None)
        edges = [TravelEdge.from_document(doc) for doc in docs]
        self.cache.set("travelTimes:all", edges)
        return edges

    def get_travel_edges_from(self, station_id: str) -> List[TravelEdge]:
        cache_key = f"travelTime:from:{station_id}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        docs = self.repository.query(CONFIG_TRAVEL_TIMES, "from_station_id", "==", station_id)
        edges = [TravelEdge.from_document(doc) for doc in docs]
        self.cache.set(cache_key, edges)
        return edges

    def build_graph(self) -> StationGraph:
        return StationGraph(self.get_all_stations(), self.get_all_travel_edges())

    # --- Cache management ---

    def clear(self) -> None:
        self.cache.clear()

    def clear_station_cache(self, station_id: Optional[str] = None) -> None:
        if station_id:
            escaped = re.escape(station_id)
            self.cache.clear(f"^station:{escaped}$")
            self.cache.clear(f"^travelTime:from:{escaped}$")
        else:
            self.cache.clear("^station:")
            self.cache.clear("^stations:")

    def clear_travel_time_cache(self) -> None:
        self.cache.clear("^travelTime")


def seed_station_config(repository: Repository, graph: StationGraph) -> None:
    """
    Write every station and edge of `graph` into the config collections.
    Existing documents with the same id are left untouched.
    """
    created = 0
    for station in graph.stations():
        if repository.create_if_absent(CONFIG_STATIONS, station.station_id, station.to_document()):
            created += 1

    for edge in graph.edges():
        edge_id = f"{edge.from_station_id}-{edge.to_station_id}-{edge.line_id}"
        if repository.create_if_absent(CONFIG_TRAVEL_TIMES, edge_id, edge.to_document()):
            created += 1

    logger.info("Seeded %s station config documents", created)
