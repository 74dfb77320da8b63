"""
Purpose: Domain models for delivery requests and match attempts.
What it does:
- Defines the core data structures:
- DeliveryRequest (stations, pickup window, deadline, package, fee, statuses)
- MatchRecord (one persisted candidate per request/giller pair)

Defines enums/constants:
- RequestStatus = pending | matched | accepted | in_progress | completed | cancelled | no_match
- MatchingStatus = pending | matched | no-match (retry bookkeeping)
- MatchStatus = pending | accepted | declined
- PackageSize = small | medium | large

Rule: No scoring, no persistence calls. Models only.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional


class RequestStatus(Enum):
    PENDING = "pending"
    MATCHED = "matched"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_MATCH = "no_match"


class MatchingStatus(Enum):
    PENDING = "pending"
    MATCHED = "matched"
    NO_MATCH = "no-match"


class MatchStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class PackageSize(Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TimeWindow:
    start: str  # HH:mm
    end: str  # HH:mm

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> TimeWindow:
        return cls(start=doc["start"], end=doc["end"])

    def to_document(self) -> Dict[str, Any]:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True)
class DeliveryRequest:
    """
    A requester's package that needs to travel between two stations.
    """
    request_id: str
    requester_id: str
    pickup_station_name: str
    delivery_station_name: str
    pickup_window: TimeWindow
    delivery_deadline: str  # HH:mm
    preferred_days: FrozenSet[int] = field(default_factory=frozenset)
    package_size: PackageSize = PackageSize.SMALL
    package_weight_kg: float = 0.0
    fee: int = 0  # KRW

    status: RequestStatus = RequestStatus.PENDING
    matching_status: MatchingStatus = MatchingStatus.PENDING
    matching_attempts: int = 0
    created_at: datetime = field(default_factory=utcnow)
    matched_giller_id: Optional[str] = None

    @classmethod
    def new(
        cls,
        request_id: str,
        requester_id: str,
        pickup_station_name: str,
        delivery_station_name: str,
        pickup_window: TimeWindow,
        delivery_deadline: str,
        preferred_days: Iterable[int] = (),
        **kwargs: Any,
    ) -> DeliveryRequest:
        return cls(
            request_id=request_id,
            requester_id=requester_id,
            pickup_station_name=pickup_station_name,
            delivery_station_name=delivery_station_name,
            pickup_window=pickup_window,
            delivery_deadline=delivery_deadline,
            preferred_days=frozenset(preferred_days),
            **kwargs,
        )

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> DeliveryRequest:
        created_at = doc.get("created_at")
        return cls(
            request_id=doc.get("request_id") or doc["id"],
            requester_id=doc["requester_id"],
            pickup_station_name=doc["pickup_station_name"],
            delivery_station_name=doc["delivery_station_name"],
            pickup_window=TimeWindow.from_document(doc["pickup_window"]),
            delivery_deadline=doc["delivery_deadline"],
            preferred_days=frozenset(int(day) for day in doc.get("preferred_days", [])),
            package_size=PackageSize(doc.get("package_size", PackageSize.SMALL.value)),
            package_weight_kg=float(doc.get("package_weight_kg", 0.0)),
            fee=int(doc.get("fee", 0)),
            status=RequestStatus(doc.get("status", RequestStatus.PENDING.value)),
            matching_status=MatchingStatus(doc.get("matching_status", MatchingStatus.PENDING.value)),
            matching_attempts=int(doc.get("matching_attempts", 0)),
            created_at=created_at if isinstance(created_at, datetime) else utcnow(),
            matched_giller_id=doc.get("matched_giller_id"),
        )

    def to_document(self) -> Dict[str, Any]:
        doc = {
            "request_id": self.request_id,
            "requester_id": self.requester_id,
            "pickup_station_name": self.pickup_station_name,
            "delivery_station_name": self.delivery_station_name,
            "pickup_window": self.pickup_window.to_document(),
            "delivery_deadline": self.delivery_deadline,
            "preferred_days": sorted(self.preferred_days),
            "package_size": self.package_size.value,
            "package_weight_kg": self.package_weight_kg,
            "fee": self.fee,
            "status": self.status.value,
            "matching_status": self.matching_status.value,
            "matching_attempts": self.matching_attempts,
            "created_at": self.created_at,
        }
        if self.matched_giller_id is not None:
            doc["matched_giller_id"] = self.matched_giller_id
        return doc

    @property
    def earliest_preferred_day(self) -> Optional[int]:
        return min(self.preferred_days) if self.preferred_days else None


def match_record_id(request_id: str, giller_id: str) -> str:
    """Deterministic id so re-processing a request never duplicates a record."""
    return f"{request_id}_{giller_id}"


@dataclass(frozen=True)
class MatchRecord:
    """
    A persisted candidate for a request. Lives in the `matches` collection.
    """
    match_id: str
    request_id: str
    giller_id: str
    match_score: float
    status: MatchStatus = MatchStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    accepted_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None

    @classmethod
    def new(cls, request_id: str, giller_id: str, match_score: float, created_at: Optional[datetime] = None) -> MatchRecord:
        return cls(
            match_id=match_record_id(request_id, giller_id),
            request_id=request_id,
            giller_id=giller_id,
            match_score=match_score,
            created_at=created_at or utcnow(),
        )

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> MatchRecord:
        return cls(
            match_id=doc.get("id") or match_record_id(doc["request_id"], doc["giller_id"]),
            request_id=doc["request_id"],
            giller_id=doc["giller_id"],
            match_score=float(doc.get("match_score", 0.0)),
            status=MatchStatus(doc.get("status", MatchStatus.PENDING.value)),
            created_at=doc.get("created_at") or utcnow(),
            accepted_at=doc.get("accepted_at"),
            declined_at=doc.get("declined_at"),
        )

    def to_document(self) -> Dict[str, Any]:
        doc = {
            "request_id": self.request_id,
            "giller_id": self.giller_id,
            "match_score": self.match_score,
            "status": self.status.value,
            "created_at": self.created_at,
        }
        if self.accepted_at is not None:
            doc["accepted_at"] = self.accepted_at
        if self.declined_at is not None:
            doc["declined_at"] = self.declined_at
        return doc
