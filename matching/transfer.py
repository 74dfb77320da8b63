"""
Purpose: Transfer matching between a request route and a giller's route.
What it does:
- Finds a station shared by the endpoints of both routes.
- Estimates the detour a giller takes by handing over at that station.
- Prices a transfer delivery (bonus, tiered subway fee, giller share).
- Persists transfer matches to the `transfer_matches` collection.

Segment travel times come from an injectable strategy. The default is a fixed
duration per route; pathfinding_travel_time plugs in real graph lookups.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from deliveries.models import utcnow
from routing.pathfinding import PathfindingEngine
from storage.repository import TRANSFER_MATCHES, Repository
from stations.models import Station

from .policy import TransferPricingPolicy, default_transfer_pricing_policy

logger = logging.getLogger(__name__)


class HasEndpoints(Protocol):
    start_station: Station
    end_station: Station


# (start, end) -> minutes
TravelTimeStrategy = Callable[[Station, Station], float]


def fixed_travel_time(minutes: float = 30) -> TravelTimeStrategy:
    """Every route takes `minutes`, whatever its stations."""
    def travel_time(start: Station, end: Station) -> float:
        return minutes
    return travel_time


def pathfinding_travel_time(engine: PathfindingEngine, fallback_minutes: float = 30) -> TravelTimeStrategy:
    """Shortest-path minutes, or `fallback_minutes` when the graph has no path."""
    def travel_time(start: Station, end: Station) -> float:
        eta = engine.calculate_eta(start.station_id, end.station_id)
        if eta is None:
            logger.debug("No path %s -> %s, using %s minutes", start.name, end.name, fallback_minutes)
            return fallback_minutes
        return eta.minutes
    return travel_time


@dataclass(frozen=True)
class StationRoute:
    start_station: Station
    end_station: Station

    def to_document(self) -> Dict[str, Any]:
        return {
            "start_station_id": self.start_station.station_id,
            "start_station_name": self.start_station.name,
            "end_station_id": self.end_station.station_id,
            "end_station_name": self.end_station.name,
        }


def _as_station_route(route: HasEndpoints) -> StationRoute:
    return StationRoute(start_station=route.start_station, end_station=route.end_station)


@dataclass(frozen=True)
class TransferPossibility:
    can_transfer: bool
    original_route: StationRoute
    transfer_station: Optional[Station] = None
    transfer_route: Optional[StationRoute] = None
    additional_time_minutes: float = 0
    total_travel_time_minutes: float = 0

    def to_document(self) -> Dict[str, Any]:
        return {
            "can_transfer": self.can_transfer,
            "transfer_station": self.transfer_station.name if self.transfer_station else None,
            "original_route": self.original_route.to_document(),
            "transfer_route": self.transfer_route.to_document() if self.transfer_route else None,
            "additional_time_minutes": self.additional_time_minutes,
            "total_travel_time_minutes": self.total_travel_time_minutes,
        }


@dataclass(frozen=True)
class TransferPricing:
    base_fee: int
    transfer_bonus: int
    subway_fee: int
    total_fee: int
    giller_earning: float

    def to_document(self) -> Dict[str, Any]:
        return {
            "base_fee": self.base_fee,
            "transfer_bonus": self.transfer_bonus,
            "subway_fee": self.subway_fee,
            "total_fee": self.total_fee,
            "giller_earning": self.giller_earning,
        }


class TransferMatchStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TransferMatch:
    """A persisted transfer match, as read back from the store."""
    match_id: str
    request_id: str
    giller_id: str
    transfer_info: Dict[str, Any]
    pricing: Dict[str, Any]
    status: TransferMatchStatus
    created_at: datetime
    giller_route_id: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> TransferMatch:
        return cls(
            match_id=doc["id"],
            request_id=doc["request_id"],
            giller_id=doc["giller_id"],
            transfer_info=doc.get("transfer_info", {}),
            pricing=doc.get("pricing", {}),
            status=TransferMatchStatus(doc.get("status", TransferMatchStatus.PENDING.value)),
            created_at=doc.get("created_at") or utcnow(),
            giller_route_id=doc.get("giller_route_id"),
        )


@dataclass(frozen=True)
class TransferCandidate:
    giller_route: HasEndpoints
    possibility: TransferPossibility


def find_shared_endpoint(request_route: HasEndpoints, giller_route: HasEndpoints) -> Optional[Station]:
    """
    The request-route endpoint that is also an endpoint of the giller route.
    The request's start station is checked first.
    """
    giller_ids = {giller_route.start_station.station_id, giller_route.end_station.station_id}
    for station in (request_route.start_station, request_route.end_station):
        if station.station_id in giller_ids:
            return station
    return None


def calculate_transfer_pricing(
    base_fee: int,
    total_travel_time_minutes: Optional[float] = None,
    policy: Optional[TransferPricingPolicy] = None,
) -> TransferPricing:
    policy = policy or default_transfer_pricing_policy()

    subway_fee = policy.base_subway_fee
    if total_travel_time_minutes:
        for threshold, fee in policy.subway_fee_tiers:
            if total_travel_time_minutes > threshold:
                subway_fee = fee
                break

    total_fee = base_fee + policy.transfer_bonus
    return TransferPricing(
        base_fee=base_fee,
        transfer_bonus=policy.transfer_bonus,
        subway_fee=subway_fee,
        total_fee=total_fee,
        giller_earning=(total_fee - subway_fee) * policy.giller_share,
    )


class TransferMatcher:
    def __init__(
        self,
        repository: Optional[Repository] = None,
        travel_time: Optional[TravelTimeStrategy] = None,
        policy: Optional[TransferPricingPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.policy = policy or default_transfer_pricing_policy()
        self.travel_time = travel_time or fixed_travel_time(self.policy.fixed_segment_minutes)
        self.clock = clock

    def check_transfer_possibility(
        self,
        request_route: HasEndpoints,
        giller_route: HasEndpoints,
        max_detour_minutes: Optional[float] = None,
    ) -> TransferPossibility:
        max_detour = self.policy.max_detour_minutes if max_detour_minutes is None else max_detour_minutes
        original = _as_station_route(giller_route)

        transfer_station = find_shared_endpoint(request_route, giller_route)
        if transfer_station is None:
            return TransferPossibility(can_transfer=False, original_route=original)

        giller_minutes = self.travel_time(giller_route.start_station, giller_route.end_station)
        request_minutes = self.travel_time(request_route.start_station, request_route.end_station)

        transfer_minutes = giller_minutes + self.policy.walking_buffer_minutes + request_minutes
        additional = transfer_minutes - giller_minutes

        return TransferPossibility(
            can_transfer=additional <= max_detour,
            original_route=original,
            transfer_station=transfer_station,
            transfer_route=_as_station_route(request_route),
            additional_time_minutes=additional,
            total_travel_time_minutes=transfer_minutes,
        )

    def calculate_transfer_pricing(self, base_fee: int, total_travel_time_minutes: Optional[float] = None) -> TransferPricing:
        return calculate_transfer_pricing(base_fee, total_travel_time_minutes, self.policy)

    def find_transfer_candidates(
        self,
        request_route: HasEndpoints,
        giller_routes: Sequence[HasEndpoints],
        max_detour_minutes: Optional[float] = None,
    ) -> List[TransferCandidate]:
        """
        Giller routes that can take a transfer handover, smallest detour first.
        """
        candidates = []
        for giller_route in giller_routes:
            possibility = self.check_transfer_possibility(request_route, giller_route, max_detour_minutes)
            if possibility.can_transfer:
                candidates.append(TransferCandidate(giller_route=giller_route, possibility=possibility))

        return sorted(candidates, key=lambda candidate: candidate.possibility.additional_time_minutes)

    # --- Persistence ---

    def _require_repository(self) -> Repository:
        if self.repository is None:
            raise RuntimeError("TransferMatcher was created without a repository")
        return self.repository

    def create_transfer_match(
        self,
        request_id: str,
        giller_id: str,
        transfer_info: TransferPossibility,
        pricing: TransferPricing,
        giller_route_id: Optional[str] = None,
    ) -> str:
        repository = self._require_repository()
        now = self.clock()
        match_id = repository.create(
            TRANSFER_MATCHES,
            {
                "request_id": request_id,
                "giller_id": giller_id,
                "giller_route_id": giller_route_id,
                "transfer_info": transfer_info.to_document(),
                "pricing": pricing.to_document(),
                "status": TransferMatchStatus.PENDING.value,
                "created_at": now,
                "updated_at": now,
            },
        )
        logger.info("Created transfer match %s for request %s (giller %s)", match_id, request_id, giller_id)
        return match_id

    def get_transfer_match(self, match_id: str) -> Optional[TransferMatch]:
        doc = self._require_repository().get(TRANSFER_MATCHES, match_id)
        return TransferMatch.from_document(doc) if doc is not None else None

    def get_transfer_matches_by_request(self, request_id: str) -> List[TransferMatch]:
        docs = self._require_repository().query(TRANSFER_MATCHES, "request_id", "==", request_id)
        return [TransferMatch.from_document(doc) for doc in docs]
