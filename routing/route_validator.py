"""
Purpose: Plausibility checks for a giller's commute route.
What it does:
- validate_route_input: hard errors (block submission) vs soft warnings
  (matching-likelihood heuristics that never block).
- estimate_travel_time: pathfinding first, straight-line fallback second,
  so validation never fails because graph data is missing.
- check_route_overlap: duplicate-route guard used when registering routes.
- find_time_conflicts: routes departing within a few minutes of each other
  on a shared day (a warning, not an error).

Rule: Stateless. Thresholds live in RouteValidationPolicy.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple

from common.timeutil import WEEKDAYS, WEEKEND, parse_hhmm
from stations.models import Station

from .pathfinding import PathfindingEngine

logger = logging.getLogger(__name__)

MinuteWindow = Tuple[int, int]


@dataclass(frozen=True)
class RouteValidationPolicy:
    """
    Tunable windows for route validation (minutes since midnight, inclusive).
    """
    morning_rush: MinuteWindow = (7 * 60, 9 * 60)
    evening_rush: MinuteWindow = (18 * 60, 20 * 60)

    # subway service roughly runs 05:00 - 23:00
    service_start: int = 5 * 60
    service_end: int = 23 * 60

    # long headways between 10:00 and 15:59
    off_peak_hours: FrozenSet[int] = frozenset({10, 11, 12, 13, 14, 15})

    # downtown stations where weekday commute matching is unlikely
    central_station_names: FrozenSet[str] = frozenset({"서울역", "을지로입구", "충무로", "동대문"})

    # fallback travel estimate: degrees -> km, average subway speed
    km_per_degree: float = 111.0
    average_speed_kmh: float = 40.0
    min_estimate_minutes: int = 10

    # per-giller registration limits
    max_active_routes: int = 5
    overlap_window_minutes: int = 30

    def validate(self) -> None:
        for name, window in (("morning_rush", self.morning_rush), ("evening_rush", self.evening_rush)):
            if window[0] > window[1]:
                raise ValueError(f"{name} start must be <= end")

        if self.service_start >= self.service_end:
            raise ValueError("service_start must be before service_end")

        if self.average_speed_kmh <= 0:
            raise ValueError("average_speed_kmh must be > 0")

        if self.min_estimate_minutes < 0:
            raise ValueError("min_estimate_minutes must be >= 0")

        if self.max_active_routes < 1:
            raise ValueError("max_active_routes must be >= 1")

        if self.overlap_window_minutes < 0:
            raise ValueError("overlap_window_minutes must be >= 0")


def default_route_validation_policy() -> RouteValidationPolicy:
    p = RouteValidationPolicy()
    p.validate()
    return p


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _in_window(minutes: int, window: MinuteWindow) -> bool:
    return window[0] <= minutes <= window[1]


def validate_route_input(
    start_station: Optional[Station],
    end_station: Optional[Station],
    departure_time: str,
    days: Iterable[int],
    policy: Optional[RouteValidationPolicy] = None,
) -> ValidationResult:
    policy = policy or default_route_validation_policy()
    days = set(days)
    errors: List[str] = []
    warnings: List[str] = []

    # 1. Required fields
    if start_station is None:
        errors.append("출발역을 선택해주세요.")
    if end_station is None:
        errors.append("도착역을 선택해주세요.")
    if start_station is not None and end_station is not None and start_station.station_id == end_station.station_id:
        errors.append("출발역과 도착역이 같습니다.")

    if not days:
        errors.append("요일을 하나 이상 선택해주세요.")
    elif any(day < 1 or day > 7 for day in days):
        errors.append("요일은 1(월)부터 7(일) 사이여야 합니다.")

    try:
        minutes = parse_hhmm(departure_time)
    except ValueError:
        errors.append("출발 시간 형식이 올바르지 않습니다. (HH:mm)")
        return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

    # 2. Rush hour preference
    is_rush = _in_window(minutes, policy.morning_rush) or _in_window(minutes, policy.evening_rush)
    if not is_rush:
        warnings.append("러시아워 시간대가 아니면 매칭이 어려울 수 있습니다.")

    # 3. Service hours
    if minutes < policy.service_start:
        warnings.append("지하철 운행 시간 전입니다.")
    if minutes > policy.service_end:
        warnings.append("지하철 운행이 종료될 시간입니다.")

    # 4. Weekday / weekend mix
    has_weekday = bool(days & WEEKDAYS)
    has_weekend = bool(days & WEEKEND)
    if has_weekday and has_weekend:
        warnings.append("평일/주말 시간대를 다르게 설정하는 것을 권장합니다.")

    # 5. Long headways
    if not is_rush and minutes // 60 in policy.off_peak_hours:
        warnings.append("비수기 시간대입니다. 배차 간격이 길 수 있습니다.")

    # 6. Downtown-to-downtown commute
    if start_station is not None and end_station is not None and has_weekday and is_rush:
        central = policy.central_station_names
        if start_station.name in central and end_station.name in central:
            warnings.append("출근 시간대에 중심부 간 이동은 매칭이 어려울 수 있습니다.")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def _straight_line_minutes(start: Station, end: Station, policy: RouteValidationPolicy) -> int:
    lat_diff = start.location[0] - end.location[0]
    lng_diff = start.location[1] - end.location[1]
    distance_km = math.hypot(lat_diff, lng_diff) * policy.km_per_degree
    minutes = round(distance_km / policy.average_speed_kmh * 60)
    return max(minutes, policy.min_estimate_minutes)


def estimate_travel_time(
    start_station: Station,
    end_station: Station,
    pathfinder: Optional[PathfindingEngine] = None,
    policy: Optional[RouteValidationPolicy] = None,
) -> int:
    """
    Estimated ride time in minutes.
    """
    policy = policy or default_route_validation_policy()

    if pathfinder is not None and pathfinder.is_initialized:
        eta = pathfinder.calculate_eta(start_station.station_id, end_station.station_id)
        if eta is not None:
            return eta.minutes
        logger.debug("No path between %s and %s, using straight-line estimate", start_station.name, end_station.name)
    elif pathfinder is not None:
        logger.warning("Pathfinding engine not initialized, using straight-line estimate")

    return _straight_line_minutes(start_station, end_station, policy)


@dataclass(frozen=True)
class RouteSlot:
    """The parts of a registered route that define a duplicate."""
    start_station_id: str
    end_station_id: str
    departure_time: str
    days_of_week: FrozenSet[int]
    route_id: Optional[str] = None


def check_route_overlap(new_route: RouteSlot, existing_routes: Sequence[RouteSlot]) -> List[RouteSlot]:
    """
    Existing routes that duplicate `new_route`: same stations, same departure
    time and at least one shared day.
    """
    return [
        route
        for route in existing_routes
        if route.start_station_id == new_route.start_station_id
        and route.end_station_id == new_route.end_station_id
        and route.departure_time == new_route.departure_time
        and route.days_of_week & new_route.days_of_week
    ]


def find_time_conflicts(
    new_route: RouteSlot,
    existing_routes: Sequence[RouteSlot],
    window_minutes: int = 30,
) -> List[RouteSlot]:
    """
    Existing routes sharing a day with `new_route` whose departure is at most
    `window_minutes` away. Unparseable departure times never conflict.
    """
    try:
        new_minutes = parse_hhmm(new_route.departure_time)
    except ValueError:
        return []

    conflicts = []
    for route in existing_routes:
        if not route.days_of_week & new_route.days_of_week:
            continue
        try:
            minutes = parse_hhmm(route.departure_time)
        except ValueError:
            logger.debug("Skipping route %s with bad departure time %r", route.route_id, route.departure_time)
            continue
        if abs(minutes - new_minutes) <= window_minutes:
            conflicts.append(route)
    return conflicts
