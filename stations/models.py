"""
Purpose: Core data models for the subway reference data.
What it does:
- Defines Station, Line and TravelEdge as immutable records.
- Converts them to and from store documents (config_stations / config_travel_times).

Rule: No graph search, no scoring. Models only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

LatLng = Tuple[float, float]

UNKNOWN_LINE = "unknown"


@dataclass(frozen=True)
class Line:
    line_id: str
    line_name: str


@dataclass(frozen=True)
class Station:
    """
    A subway station. Loaded once per session and never mutated.
    """
    station_id: str
    name: str
    location: LatLng
    lines: Tuple[Line, ...] = field(default_factory=tuple)

    @property
    def line_ids(self) -> Tuple[str, ...]:
        return tuple(line.line_id for line in self.lines)

    @classmethod
    def new(
        cls,
        station_id: str,
        name: str,
        lat: float,
        lng: float,
        lines: Optional[Dict[str, str]] = None,
    ) -> Station:
        """
        Convenience constructor: `lines` maps line_id -> line_name in order.
        """
        return cls(
            station_id=station_id,
            name=name,
            location=(lat, lng),
            lines=tuple(Line(line_id, line_name) for line_id, line_name in (lines or {}).items()),
        )

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> Station:
        location = doc["location"]
        return cls(
            station_id=doc.get("station_id") or doc["id"],
            name=doc["station_name"],
            location=(float(location["lat"]), float(location["lng"])),
            lines=tuple(Line(line["line_id"], line["line_name"]) for line in doc.get("lines", [])),
        )

    def to_document(self) -> Dict[str, Any]:
        lat, lng = self.location
        return {
            "station_id": self.station_id,
            "station_name": self.name,
            "location": {"lat": lat, "lng": lng},
            "lines": [{"line_id": line.line_id, "line_name": line.line_name} for line in self.lines],
        }


@dataclass(frozen=True)
class TravelEdge:
    """
    Directed travel time between two adjacent stations.
    The graph may be asymmetric: A->B and B->A are separate edges.
    """
    from_station_id: str
    to_station_id: str
    normal_time_seconds: float
    express_time_seconds: Optional[float] = None
    transfer_count: int = 0
    line_ids: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def line_id(self) -> str:
        return self.line_ids[0] if self.line_ids else UNKNOWN_LINE

    @property
    def has_express(self) -> bool:
        return self.express_time_seconds is not None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> TravelEdge:
        express = doc.get("express_time_seconds")
        return cls(
            from_station_id=doc["from_station_id"],
            to_station_id=doc["to_station_id"],
            normal_time_seconds=float(doc["normal_time_seconds"]),
            express_time_seconds=float(express) if express is not None else None,
            transfer_count=int(doc.get("transfer_count", 0)),
            line_ids=tuple(doc.get("line_ids", [])),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "from_station_id": self.from_station_id,
            "to_station_id": self.to_station_id,
            "normal_time_seconds": self.normal_time_seconds,
            "express_time_seconds": self.express_time_seconds,
            "transfer_count": self.transfer_count,
            "line_ids": list(self.line_ids),
        }
