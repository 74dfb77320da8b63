from dataclasses import replace
from typing import Dict, FrozenSet

from deliveries.models import DeliveryRequest, RequestStatus


class RequestStateError(Exception):
    """Raised when an invalid request transition is attempted."""
    pass


_PRE_COMPLETION = frozenset(
    {
        RequestStatus.PENDING,
        RequestStatus.MATCHED,
        RequestStatus.ACCEPTED,
        RequestStatus.IN_PROGRESS,
        RequestStatus.NO_MATCH,
    }
)

# target status -> statuses it may be entered from
ALLOWED_SOURCES: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.MATCHED: frozenset({RequestStatus.PENDING}),
    RequestStatus.ACCEPTED: frozenset({RequestStatus.PENDING, RequestStatus.MATCHED}),
    RequestStatus.IN_PROGRESS: frozenset({RequestStatus.ACCEPTED}),
    RequestStatus.COMPLETED: frozenset({RequestStatus.IN_PROGRESS}),
    RequestStatus.CANCELLED: _PRE_COMPLETION,
    RequestStatus.NO_MATCH: frozenset({RequestStatus.PENDING}),
    # a manual retry re-opens a request that ran out of retries
    RequestStatus.PENDING: frozenset({RequestStatus.NO_MATCH}),
}


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return current in ALLOWED_SOURCES.get(target, frozenset())


def transition(request: DeliveryRequest, target: RequestStatus) -> DeliveryRequest:
    """
    Returns a copy of `request` in the `target` status.
    """
    if not can_transition(request.status, target):
        raise RequestStateError(
            f"Cannot transition request {request.request_id} from {request.status.value} to {target.value}"
        )

    # DeliveryRequest is frozen, so hand back a new instance via replace
    return replace(request, status=target)
