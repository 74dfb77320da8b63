"""
Purpose: Core data models for the gillers domain.
What it does:
Defines a giller's registered commute route and the delivery statistics the
matching engine scores against, without relying on the document store's shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Optional

from stations.graph import StationGraph
from stations.models import Station

ANONYMOUS_NAME = "익명"


@dataclass(frozen=True)
class GillerStats:
    """
    Defaults apply when the users document is missing or incomplete.
    """
    name: str = ANONYMOUS_NAME
    rating: float = 3.5
    total_deliveries: int = 0
    completed_deliveries: int = 0

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> GillerStats:
        if not doc:
            return cls()

        giller_info = doc.get("giller_info") or {}
        return cls(
            name=doc.get("name") or ANONYMOUS_NAME,
            rating=float(doc.get("rating") or 3.5),
            total_deliveries=int(giller_info.get("total_deliveries", 0)),
            completed_deliveries=int(giller_info.get("completed_deliveries", 0)),
        )


@dataclass(frozen=True)
class GillerRoute:
    """
    A giller's fixed commute. Read-only to the matching core.
    """
    giller_id: str
    start_station: Station
    end_station: Station
    departure_time: str  # HH:mm, local
    days_of_week: FrozenSet[int]  # 1 = Monday ... 7 = Sunday
    giller_name: str = ANONYMOUS_NAME
    rating: float = 3.5
    total_deliveries: int = 0
    completed_deliveries: int = 0
    route_id: Optional[str] = None
    is_active: bool = True

    @classmethod
    def new(
        cls,
        giller_id: str,
        start_station: Station,
        end_station: Station,
        departure_time: str,
        days_of_week: Iterable[int],
        stats: Optional[GillerStats] = None,
        route_id: Optional[str] = None,
        is_active: bool = True,
    ) -> GillerRoute:
        stats = stats or GillerStats()
        return cls(
            giller_id=giller_id,
            start_station=start_station,
            end_station=end_station,
            departure_time=departure_time,
            days_of_week=frozenset(days_of_week),
            giller_name=stats.name,
            rating=stats.rating,
            total_deliveries=stats.total_deliveries,
            completed_deliveries=stats.completed_deliveries,
            route_id=route_id,
            is_active=is_active,
        )

    @classmethod
    def from_document(
        cls,
        doc: Dict[str, Any],
        graph: StationGraph,
        stats: Optional[GillerStats] = None,
    ) -> GillerRoute:
        """
        Resolve a routes-collection document against the station graph.
        Raises StationNotFound when either station id is unknown.
        """
        stats = stats or GillerStats()
        return cls(
            giller_id=doc["giller_id"],
            start_station=graph.require_station(doc["start_station_id"]),
            end_station=graph.require_station(doc["end_station_id"]),
            departure_time=doc["departure_time"],
            days_of_week=frozenset(int(day) for day in doc.get("days_of_week", [])),
            giller_name=doc.get("giller_name") or stats.name,
            rating=stats.rating,
            total_deliveries=stats.total_deliveries,
            completed_deliveries=stats.completed_deliveries,
            route_id=doc.get("id"),
            is_active=bool(doc.get("is_active", True)),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "giller_id": self.giller_id,
            "giller_name": self.giller_name,
            "start_station_id": self.start_station.station_id,
            "end_station_id": self.end_station.station_id,
            "departure_time": self.departure_time,
            "days_of_week": sorted(self.days_of_week),
            "is_active": self.is_active,
        }

    def runs_on(self, day_of_week: int) -> bool:
        return day_of_week in self.days_of_week
