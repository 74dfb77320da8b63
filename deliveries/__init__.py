"""
Deliveries domain package.

Public API:
- Request models: DeliveryRequest, TimeWindow, PackageSize
- Statuses: RequestStatus, MatchingStatus, MatchStatus
- Persisted match attempts: MatchRecord
"""
from .models import (
    DeliveryRequest,
    MatchingStatus,
    MatchRecord,
    MatchStatus,
    PackageSize,
    RequestStatus,
    TimeWindow,
    match_record_id,
)

__all__ = [
    "DeliveryRequest",
    "TimeWindow",
    "PackageSize",
    "RequestStatus",
    "MatchingStatus",
    "MatchStatus",
    "MatchRecord",
    "match_record_id",
]
