"""
Stations domain package.

Public API:
- Domain models: Station, Line, TravelEdge
- Graph store: StationGraph
- Loading: load_station_graph (CSV), StationConfigService (document store)
"""
from .models import Station, Line, TravelEdge, LatLng, UNKNOWN_LINE
from .graph import StationGraph, StationNotFound
from .loader import load_station_graph
from .config_service import StationConfigService, seed_station_config

__all__ = [
    "Station",
    "Line",
    "TravelEdge",
    "LatLng",
    "UNKNOWN_LINE",
    "StationGraph",
    "StationNotFound",
    "load_station_graph",
    "StationConfigService",
    "seed_station_config",
]
