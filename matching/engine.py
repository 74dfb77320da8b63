"""
Purpose: Score and rank gillers for a delivery request.
What it does:
- match_gillers_to_request: the basic additive model (base 50, station pair,
  day, departure hour) with a one-line reason per candidate.
- calculate_matching_score / rank_gillers: the extended model used by the
  dispatcher (route 50, time 30, rating 15, completion 5) with route details
  from the pathfinding engine and threshold-based reasons.
- get_top_matches: truncation helper.

Rule: Pure functions. No repository calls, no clock, no randomness.
Sorting is stable, so ties keep the input order of the candidate routes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from common.timeutil import hour_of, parse_hhmm
from deliveries.models import DeliveryRequest
from gillers.models import GillerRoute
from routing.pathfinding import PathfindingEngine
from stations.graph import StationGraph
from stations.models import Station

from .policy import MatchingPolicy, default_matching_policy

logger = logging.getLogger(__name__)

HIGH_SCORE_REASON = "높은 매칭 점수"
BASIC_REASON = "기본 매칭"


@dataclass(frozen=True)
class RouteDetails:
    travel_time_seconds: float = 0.0
    transfer_count: int = 0
    express_available: bool = False
    congestion_level: str = "low"  # low | medium | high


@dataclass(frozen=True)
class MatchResult:
    """
    Ephemeral score for one giller. The basic model only fills total_score and
    a single reason; the extended model fills every component.
    """
    giller_id: str
    total_score: float
    giller_name: str = ""
    route_match_score: float = 0.0
    time_match_score: float = 0.0
    rating_score: float = 0.0
    completion_rate_score: float = 0.0
    route_details: Optional[RouteDetails] = None
    reasons: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def reason(self) -> str:
        return self.reasons[0] if self.reasons else ""


def _sorted_by_score(results: List[MatchResult]) -> List[MatchResult]:
    # sorted() is stable; equal scores keep input order
    return sorted(results, key=lambda result: result.total_score, reverse=True)


def get_top_matches(matches: Sequence[MatchResult], limit: int = 10) -> List[MatchResult]:
    return list(matches[:max(limit, 0)])


# --- Basic model ---

def _safe_hour(value: str) -> Optional[int]:
    try:
        return hour_of(value)
    except ValueError:
        return None


def match_gillers_to_request(
    request: DeliveryRequest,
    routes: Sequence[GillerRoute],
    *,
    day_of_week: Optional[int] = None,
    policy: Optional[MatchingPolicy] = None,
) -> List[MatchResult]:
    """
    Rank `routes` for `request` with the additive model.

    `day_of_week` is the day being matched (1 = Monday). When omitted the
    request's earliest preferred day is used.
    """
    policy = policy or default_matching_policy()
    day = day_of_week if day_of_week is not None else request.earliest_preferred_day
    request_hour = _safe_hour(request.pickup_window.start)

    results = []
    for route in routes:
        score = policy.base_score

        if (
            route.start_station.name == request.pickup_station_name
            and route.end_station.name == request.delivery_station_name
        ):
            score += policy.station_match_bonus

        if day is not None and route.runs_on(day):
            score += policy.day_match_bonus

        route_hour = _safe_hour(route.departure_time)
        if route_hour is not None and request_hour is not None:
            if abs(route_hour - request_hour) <= policy.time_match_hours:
                score += policy.time_match_bonus

        reason = HIGH_SCORE_REASON if score >= policy.high_score_threshold else BASIC_REASON
        results.append(
            MatchResult(
                giller_id=route.giller_id,
                giller_name=route.giller_name,
                total_score=score,
                reasons=(reason,),
            )
        )

    return _sorted_by_score(results)


# --- Extended model ---

def _station_on_route_points(route: GillerRoute, target: Station, policy: MatchingPolicy) -> float:
    if target.station_id in (route.start_station.station_id, route.end_station.station_id):
        return policy.exact_station_points

    route_lines = set(route.start_station.line_ids) | set(route.end_station.line_ids)
    if route_lines.intersection(target.line_ids):
        return policy.shared_line_points

    return policy.other_station_points


def congestion_level(departure_time: str, policy: Optional[MatchingPolicy] = None) -> str:
    policy = policy or default_matching_policy()
    hour = hour_of(departure_time)

    if any(start <= hour <= end for start, end in policy.high_congestion_hours):
        return "high"
    start, end = policy.medium_congestion_hours
    if start <= hour <= end:
        return "medium"
    return "low"


def _route_details(
    route: GillerRoute,
    pickup: Station,
    delivery: Station,
    graph: StationGraph,
    pathfinder: Optional[PathfindingEngine],
    policy: MatchingPolicy,
) -> RouteDetails:
    travel_time = 0.0
    transfers = 0
    express = False

    if pathfinder is not None:
        legs = (
            (route.start_station.station_id, pickup.station_id),
            (pickup.station_id, delivery.station_id),
        )
        for from_id, to_id in legs:
            if from_id == to_id:
                continue
            leg = pathfinder.find_shortest_path(from_id, to_id)
            if leg is None:
                continue
            travel_time += leg.total_time_seconds
            transfers += leg.transfer_count
            for hop_from, hop_to in zip(leg.path, leg.path[1:]):
                edge = graph.edge_between(hop_from, hop_to)
                if edge is not None and edge.has_express:
                    express = True

    return RouteDetails(
        travel_time_seconds=travel_time,
        transfer_count=transfers,
        express_available=express,
        congestion_level=congestion_level(route.departure_time, policy),
    )


def _reasons(route_score: float, time_score: float, rating_score: float, completion_score: float) -> Tuple[str, ...]:
    reasons = []

    if route_score >= 40:
        reasons.append("경로 완벽 일치")
    elif route_score >= 30:
        reasons.append("경로 적합도 높음")
    elif route_score >= 20:
        reasons.append("경로 적합도 보통")

    if time_score >= 25:
        reasons.append("시간 완벽 일치")
    elif time_score >= 20:
        reasons.append("시간 적합도 높음")
    elif time_score < 15:
        reasons.append("시간 일치도 낮음")

    if rating_score >= 12:
        reasons.append("최고 평점")
    elif rating_score >= 9:
        reasons.append("높은 평점")

    if completion_score >= 4:
        reasons.append("높은 완료율")
    elif completion_score < 3:
        reasons.append("완료율 확인 필요")

    return tuple(reasons)


def calculate_matching_score(
    route: GillerRoute,
    request: DeliveryRequest,
    graph: StationGraph,
    pathfinder: Optional[PathfindingEngine] = None,
    policy: Optional[MatchingPolicy] = None,
) -> Optional[MatchResult]:
    """
    Extended score for one giller, or None when either request station is
    unknown to the graph.

    Raises ValueError when the route or request carries a malformed HH:mm.
    """
    policy = policy or default_matching_policy()

    pickup = graph.get_station_by_name(request.pickup_station_name)
    delivery = graph.get_station_by_name(request.delivery_station_name)
    if pickup is None or delivery is None:
        return None

    # 1. Route match (pickup + delivery)
    route_score = _station_on_route_points(route, pickup, policy) + _station_on_route_points(route, delivery, policy)

    # 2. Time match (departure proximity + schedule flexibility)
    diff = abs(parse_hhmm(route.departure_time) - parse_hhmm(request.pickup_window.start))
    departure_points = max(0.0, policy.departure_max_points - diff / policy.departure_minutes_per_point)
    if request.preferred_days:
        covered = len(request.preferred_days & route.days_of_week)
        flexibility_points = covered / len(request.preferred_days) * policy.flexibility_max_points
    else:
        flexibility_points = 0.0
    time_score = departure_points + flexibility_points

    # 3. Rating
    span = policy.rating_ceiling - policy.rating_floor
    rating_score = (route.rating - policy.rating_floor) / span * policy.rating_max_points
    rating_score = min(max(rating_score, 0.0), policy.rating_max_points)

    # 4. Completion rate
    if route.total_deliveries == 0:
        completion_score = policy.completion_default_points
    else:
        rate = route.completed_deliveries / route.total_deliveries
        completion_score = min(rate, 1.0) * policy.completion_max_points

    total = route_score + time_score + rating_score + completion_score

    return MatchResult(
        giller_id=route.giller_id,
        giller_name=route.giller_name,
        total_score=round(total),
        route_match_score=round(route_score),
        time_match_score=round(time_score),
        rating_score=round(rating_score),
        completion_rate_score=round(completion_score),
        route_details=_route_details(route, pickup, delivery, graph, pathfinder, policy),
        reasons=_reasons(route_score, time_score, rating_score, completion_score),
    )


def rank_gillers(
    routes: Sequence[GillerRoute],
    request: DeliveryRequest,
    graph: StationGraph,
    pathfinder: Optional[PathfindingEngine] = None,
    policy: Optional[MatchingPolicy] = None,
) -> List[MatchResult]:
    """
    Extended scores for every route, best first. Routes that cannot be scored
    are skipped. Unknown request stations yield an empty list.
    """
    policy = policy or default_matching_policy()

    if graph.get_station_by_name(request.pickup_station_name) is None or graph.get_station_by_name(
        request.delivery_station_name
    ) is None:
        logger.warning(
            "Request %s references unknown stations (%s -> %s)",
            request.request_id,
            request.pickup_station_name,
            request.delivery_station_name,
        )
        return []

    results = []
    for route in routes:
        try:
            result = calculate_matching_score(route, request, graph, pathfinder, policy)
        except ValueError:
            logger.exception("Failed to score giller %s for request %s", route.giller_id, request.request_id)
            continue
        if result is not None:
            results.append(result)

    return _sorted_by_score(results)
