"""
Purpose: Station Graph Store.
What it does:
Holds stations and directed travel-time edges in an adjacency list so the
pathfinding engine can walk neighbours without touching the document store.

Rule: Storage and lookups only. Search lives in routing/pathfinding.py.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .models import Station, TravelEdge


class StationNotFound(KeyError):
    """Raised when a strict station lookup misses."""
    pass


class StationGraph:
    """
    Immutable-after-build directed graph of stations.

    Stations keep insertion order; the pathfinding tie-break depends on it.
    """

    def __init__(self, stations: Iterable[Station] = (), edges: Iterable[TravelEdge] = ()):
        self._stations: Dict[str, Station] = {}
        self._by_name: Dict[str, Station] = {}
        self._adjacency: Dict[str, List[TravelEdge]] = {}
        self._edge_count = 0

        for station in stations:
            self._stations[station.station_id] = station
            # first station registered under a name wins
            self._by_name.setdefault(station.name, station)

        for edge in edges:
            self._adjacency.setdefault(edge.from_station_id, []).append(edge)
            self._edge_count += 1

    # --- Lookups ---

    def get_station(self, station_id: str) -> Optional[Station]:
        return self._stations.get(station_id)

    def require_station(self, station_id: str) -> Station:
        station = self._stations.get(station_id)
        if station is None:
            raise StationNotFound(station_id)
        return station

    def get_station_by_name(self, name: str) -> Optional[Station]:
        return self._by_name.get(name)

    def has_station(self, station_id: str) -> bool:
        return station_id in self._stations

    def station_ids(self) -> List[str]:
        return list(self._stations.keys())

    def stations(self) -> List[Station]:
        return list(self._stations.values())

    def neighbors(self, station_id: str) -> List[TravelEdge]:
        return list(self._adjacency.get(station_id, []))

    def edges(self) -> List[TravelEdge]:
        return [edge for edges in self._adjacency.values() for edge in edges]

    def edge_between(self, from_station_id: str, to_station_id: str) -> Optional[TravelEdge]:
        """
        Fastest direct edge from -> to, or None if the stations are not adjacent.
        """
        candidates = [edge for edge in self._adjacency.get(from_station_id, []) if edge.to_station_id == to_station_id]
        if not candidates:
            return None
        return min(candidates, key=lambda edge: edge.normal_time_seconds)

    @property
    def edge_count(self) -> int:
        return self._edge_count

    def is_empty(self) -> bool:
        return not self._stations

    def __len__(self) -> int:
        return len(self._stations)

    def __contains__(self, station_id: object) -> bool:
        return station_id in self._stations
