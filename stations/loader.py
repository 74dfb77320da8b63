"""
Purpose: Load subway reference data from CSV files.
What it does:
- Reads station and travel-time tables with pandas.
- Normalizes them into Station / TravelEdge records.
- Builds a StationGraph ready for the pathfinding engine.

Station CSV columns:
    station_id, station_name, lat, lng, line_ids, line_names
Travel-time CSV columns:
    from_station_id, to_station_id, normal_time_seconds,
    express_time_seconds, transfer_count, line_ids

Multi-valued columns (line_ids, line_names) are "|" separated.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Union

import pandas as pd

from .graph import StationGraph
from .models import Line, Station, TravelEdge

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

STATION_COLUMNS = ["station_id", "station_name", "lat", "lng", "line_ids", "line_names"]
TRAVEL_TIME_COLUMNS = [
    "from_station_id",
    "to_station_id",
    "normal_time_seconds",
    "express_time_seconds",
    "transfer_count",
    "line_ids",
]


def _split(value) -> List[str]:
    if pd.isna(value) or value == "":
        return []
    return [part.strip() for part in str(value).split("|") if part.strip()]


def _require_columns(df: pd.DataFrame, columns: List[str], source: PathLike) -> None:
    missing = [column for column in columns if column not in df.columns]
    if missing:
        raise ValueError(f"{source} is missing columns: {', '.join(missing)}")


def load_stations(path: PathLike) -> List[Station]:
    df = pd.read_csv(path, dtype={"station_id": str, "line_ids": str, "line_names": str})
    _require_columns(df, STATION_COLUMNS, path)

    stations = []
    for _, row in df.iterrows():
        line_ids = _split(row["line_ids"])
        line_names = _split(row["line_names"])
        # a missing name falls back to the id
        lines = tuple(
            Line(line_id, line_names[index] if index < len(line_names) else line_id)
            for index, line_id in enumerate(line_ids)
        )
        stations.append(
            Station(
                station_id=row["station_id"],
                name=row["station_name"],
                location=(float(row["lat"]), float(row["lng"])),
                lines=lines,
            )
        )
    return stations


def load_travel_edges(path: PathLike) -> List[TravelEdge]:
    df = pd.read_csv(path, dtype={"from_station_id": str, "to_station_id": str, "line_ids": str})
    _require_columns(df, TRAVEL_TIME_COLUMNS, path)

    edges = []
    for _, row in df.iterrows():
        express = row["express_time_seconds"]
        edges.append(
            TravelEdge(
                from_station_id=row["from_station_id"],
                to_station_id=row["to_station_id"],
                normal_time_seconds=float(row["normal_time_seconds"]),
                express_time_seconds=None if pd.isna(express) else float(express),
                transfer_count=int(row["transfer_count"]) if not pd.isna(row["transfer_count"]) else 0,
                line_ids=tuple(_split(row["line_ids"])),
            )
        )
    return edges


def load_station_graph(stations_csv: PathLike, travel_times_csv: PathLike) -> StationGraph:
    stations = load_stations(stations_csv)
    edges = load_travel_edges(travel_times_csv)

    known = {station.station_id for station in stations}
    dangling = [edge for edge in edges if edge.from_station_id not in known or edge.to_station_id not in known]
    if dangling:
        logger.warning("Ignoring %s travel edges that reference unknown stations", len(dangling))
        edges = [edge for edge in edges if edge not in dangling]

    logger.info("Loaded %s stations and %s travel edges", len(stations), len(edges))
    return StationGraph(stations, edges)
