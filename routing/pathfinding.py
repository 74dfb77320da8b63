"""
Purpose: Shortest-path engine over the subway station graph.
What it does:
- Dijkstra over directed TravelEdges weighted by normal travel seconds.
- Rebuilds the station path from a predecessor map.
- Counts line transfers along the chosen path.
- Exposes an ETA helper that reports minutes and station names.

Not-found is a normal outcome here: every query returns None when either
endpoint is unknown, no path exists, or the engine has no graph yet.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Union

from stations.config_service import StationConfigService
from stations.graph import StationGraph

logger = logging.getLogger(__name__)

GraphSource = Union[StationGraph, StationConfigService]


class PathfindingError(Exception):
    """Raised when the engine cannot load its graph."""
    pass


@dataclass(frozen=True)
class PathResult:
    total_time_seconds: float
    path: List[str]  # station ids, origin first
    transfer_count: int


@dataclass(frozen=True)
class EtaResult:
    minutes: int
    path: List[str]  # station names


class PathfindingEngine:
    """
    Dijkstra with a linear scan of the unvisited set (O(V^2)).
    Fine at metro scale (~500 stations) and keeps ties deterministic:
    the first station in graph order wins.
    """

    def __init__(self, graph: Optional[StationGraph] = None):
        self.graph = graph

    @property
    def is_initialized(self) -> bool:
        return self.graph is not None and not self.graph.is_empty()

    def initialize(self, source: GraphSource) -> None:
        """
        Load the graph from a StationGraph or a StationConfigService.
        """
        if isinstance(source, StationGraph):
            self.graph = source
            return

        try:
            self.graph = source.build_graph()
        except Exception as exc:
            raise PathfindingError(f"Failed to load station graph: {exc}") from exc

        logger.info(
            "Pathfinding engine initialized with %s stations and %s edges",
            len(self.graph),
            self.graph.edge_count,
        )

    def find_shortest_path(self, from_station_id: str, to_station_id: str) -> Optional[PathResult]:
        graph = self.graph
        if graph is None or graph.is_empty():
            return None
        if not graph.has_station(from_station_id) or not graph.has_station(to_station_id):
            return None

        distances: Dict[str, float] = {from_station_id: 0.0}
        previous: Dict[str, Optional[str]] = {from_station_id: None}
        unvisited: Set[str] = set(graph.station_ids())
        order = graph.station_ids()

        while unvisited:
            current = None
            min_distance = math.inf
            for station_id in order:
                if station_id not in unvisited:
                    continue
                distance = distances.get(station_id, math.inf)
                if distance < min_distance:
                    min_distance = distance
                    current = station_id

            if current is None:
                break  # everything left is unreachable
            if current == to_station_id:
                break

            unvisited.discard(current)

            for edge in graph.neighbors(current):
                if edge.to_station_id not in unvisited:
                    continue
                candidate = min_distance + edge.normal_time_seconds
                if candidate < distances.get(edge.to_station_id, math.inf):
                    distances[edge.to_station_id] = candidate
                    previous[edge.to_station_id] = current

        total = distances.get(to_station_id, math.inf)
        if math.isinf(total):
            return None

        path: List[str] = []
        cursor: Optional[str] = to_station_id
        while cursor is not None:
            path.append(cursor)
            cursor = previous.get(cursor)
        path.reverse()

        return PathResult(
            total_time_seconds=total,
            path=path,
            transfer_count=self.count_transfers(path),
        )

    def count_transfers(self, path: List[str]) -> int:
        """
        A transfer happens when the line we are riding is not shared by the
        next pair of stations. Pairs without any common line keep the
        current line.
        """
        if self.graph is None or len(path) < 2:
            return 0

        transfers = 0
        current_line: Optional[str] = None

        for from_id, to_id in zip(path, path[1:]):
            from_station = self.graph.get_station(from_id)
            to_station = self.graph.get_station(to_id)
            if from_station is None or to_station is None:
                continue

            to_lines = set(to_station.line_ids)
            common = [line_id for line_id in from_station.line_ids if line_id in to_lines]
            if not common:
                continue

            if current_line is None:
                current_line = common[0]
            elif current_line not in common:
                transfers += 1
                current_line = common[0]

        return transfers

    def path_time_seconds(self, path: List[str]) -> float:
        """
        Cumulative weight of a station path using the fastest direct edge
        between each consecutive pair. Infinite when a hop has no edge.
        """
        if self.graph is None:
            return math.inf

        total = 0.0
        for from_id, to_id in zip(path, path[1:]):
            edge = self.graph.edge_between(from_id, to_id)
            if edge is None:
                return math.inf
            total += edge.normal_time_seconds
        return total

    def calculate_eta(self, from_station_id: str, to_station_id: str) -> Optional[EtaResult]:
        result = self.find_shortest_path(from_station_id, to_station_id)
        if result is None:
            return None

        names = []
        for station_id in result.path:
            station = self.graph.get_station(station_id)
            names.append(station.name if station else station_id)

        return EtaResult(minutes=round(result.total_time_seconds / 60), path=names)
