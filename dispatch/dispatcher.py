"""
Purpose: Orchestrator / decision pipeline (the "glue").
What it does:
Loads a delivery request and the active giller routes from the repository,
filters them for today's weekday, ranks them with the extended matching model,
persists the top candidates as MatchRecords, notifies them, and exposes the
accept / decline / cancel transitions that follow.

Rule: The repository is the single source of truth. Each call is a sequential
read-then-write pipeline; the thread pool only overlaps independent writes
and notification sends.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from common.timeutil import iso_weekday, local_now
from deliveries.models import DeliveryRequest, MatchRecord, MatchStatus, RequestStatus, match_record_id
from matching.engine import MatchResult, get_top_matches, rank_gillers
from matching.policy import MatchingPolicy, default_matching_policy
from routing.pathfinding import PathfindingEngine
from stations.graph import StationGraph
from storage.repository import DELIVERIES, MATCHES, REQUESTS, Repository, RepositoryError

from .candidate_filter import build_base_candidates, load_giller_stats
from .chat import MATCH_ACCEPTED_MESSAGE, ChatService
from .exceptions import RequestNotFound
from .notifications import Notification, NotificationType, Notifier, match_found_notification, request_accepted_notification
from .policy import DispatchPolicy, default_dispatch_policy
from .state_machines.request_state import can_transition, transition

logger = logging.getLogger(__name__)

REQUEST_NOT_FOUND_MESSAGE = "요청을 찾을 수 없습니다."
ALREADY_MATCHED_MESSAGE = "이미 매칭된 요청입니다."
MATCH_NOT_FOUND_MESSAGE = "매칭 정보를 찾을 수 없습니다."
ALREADY_DECLINED_MESSAGE = "이미 거절한 요청입니다."
ACCEPT_FAILED_MESSAGE = "수락에 실패했습니다."
DECLINE_FAILED_MESSAGE = "거절에 실패했습니다."


@dataclass(frozen=True)
class MatchingActionResult:
    """Outcome of an accept / decline / cancel. Failures are expected, not exceptional."""
    success: bool
    message: str
    delivery_id: Optional[str] = None
    channel_id: Optional[str] = None


@dataclass(frozen=True)
class RankedMatch:
    """One row of the ranked list shown to a requester."""
    rank: int
    giller_id: str
    giller_name: str
    score: float
    route_match_score: float
    time_match_score: float
    rating_score: float
    completion_rate_score: float
    travel_time_minutes: int
    has_express: bool
    transfer_count: int
    congestion: str
    reasons: Tuple[str, ...]
    rating: float
    completed_deliveries: int
    estimated_fee: int


class MatchingOrchestrator:
    """
    Coordinates finding, persisting and resolving matches for a request.
    """

    def __init__(
        self,
        repository: Repository,
        graph: StationGraph,
        notifier: Notifier,
        chat: ChatService,
        pathfinder: Optional[PathfindingEngine] = None,
        matching_policy: Optional[MatchingPolicy] = None,
        policy: Optional[DispatchPolicy] = None,
        clock: Callable[[], datetime] = local_now,
    ):
        self.repository = repository
        self.graph = graph
        self.notifier = notifier
        self.chat = chat
        self.pathfinder = pathfinder or PathfindingEngine(graph)
        self.matching_policy = matching_policy or default_matching_policy()
        self.policy = policy or default_dispatch_policy()
        self.clock = clock

    # --- Lookups ---

    def get_request(self, request_id: str) -> DeliveryRequest:
        doc = self.repository.get(REQUESTS, request_id)
        if doc is None:
            raise RequestNotFound(request_id)
        return DeliveryRequest.from_document(doc)

    # --- Matching ---

    def find_matches_for_request(self, request_id: str, top_n: Optional[int] = None) -> List[MatchResult]:
        """
        Ranked candidates for today's weekday. Reads only, so repeated calls
        over unchanged data return the same list.
        """
        request = self.get_request(request_id)
        top_n = self.policy.top_n if top_n is None else top_n

        today = iso_weekday(self.clock())
        candidates = build_base_candidates(self.repository, self.graph, today)
        ranked = rank_gillers(candidates, request, self.graph, self.pathfinder, self.matching_policy)

        logger.info(
            "Request %s: %s candidate routes on day %s, %s ranked",
            request_id,
            len(candidates),
            today,
            len(ranked),
        )
        return get_top_matches(ranked, top_n)

    def process_matching_for_request(self, request_id: str) -> int:
        """
        Persist a MatchRecord for each of the top candidates and notify the
        gillers whose record is new. Returns how many new records were created,
        so re-processing an already matched request returns 0.
        """
        request = self.get_request(request_id)
        matches = self.find_matches_for_request(request_id, self.policy.process_top_n)
        if not matches:
            logger.info("Request %s: no candidates", request_id)
            return 0

        now = self.clock()
        records = [MatchRecord.new(request_id, match.giller_id, match.total_score, created_at=now) for match in matches]

        with ThreadPoolExecutor(max_workers=self.policy.max_workers) as pool:
            created_flags = list(pool.map(self._persist_record, records))

        new_giller_ids = [record.giller_id for record, created in zip(records, created_flags) if created]
        if new_giller_ids:
            notification = match_found_notification(request)
            self._fan_out_notifications([(giller_id, notification) for giller_id in new_giller_ids])

        if can_transition(request.status, RequestStatus.MATCHED):
            matched = transition(request, RequestStatus.MATCHED)
            self.repository.update(REQUESTS, request_id, {"status": matched.status.value, "updated_at": now})

        logger.info("Request %s: %s matches, %s new records", request_id, len(matches), len(new_giller_ids))
        return len(new_giller_ids)

    def get_matching_results(self, request_id: str) -> List[RankedMatch]:
        request = self.get_request(request_id)
        matches = self.find_matches_for_request(request_id, self.policy.results_limit)
        base_fee = request.fee or self.policy.default_base_fee

        rows = []
        for index, match in enumerate(matches):
            stats = load_giller_stats(self.repository, match.giller_id)
            details = match.route_details
            rows.append(
                RankedMatch(
                    rank=index + 1,
                    giller_id=match.giller_id,
                    giller_name=match.giller_name,
                    score=match.total_score,
                    route_match_score=match.route_match_score,
                    time_match_score=match.time_match_score,
                    rating_score=match.rating_score,
                    completion_rate_score=match.completion_rate_score,
                    travel_time_minutes=round(details.travel_time_seconds / 60) if details else 0,
                    has_express=details.express_available if details else False,
                    transfer_count=details.transfer_count if details else 0,
                    congestion=details.congestion_level if details else "low",
                    reasons=match.reasons,
                    rating=stats.rating,
                    completed_deliveries=stats.completed_deliveries,
                    # lower ranked gillers are offered a slightly higher fee
                    estimated_fee=round(base_fee * (1 + index * self.policy.rank_fee_step)),
                )
            )
        return rows

    # --- Giller responses ---

    def accept_request(self, request_id: str, giller_id: str) -> MatchingActionResult:
        """
        Guarded transition to `accepted`. Check-then-write: two gillers
        accepting at the same moment can both pass the status check.

        The delivery document is written first. If a later write fails, the
        earlier ones are rolled back and a failure result is returned.
        """
        try:
            doc = self.repository.get(REQUESTS, request_id)
            if doc is None:
                return MatchingActionResult(success=False, message=REQUEST_NOT_FOUND_MESSAGE)

            request = DeliveryRequest.from_document(doc)
            if not can_transition(request.status, RequestStatus.ACCEPTED):
                return MatchingActionResult(success=False, message=ALREADY_MATCHED_MESSAGE)

            record = self.repository.get(MATCHES, match_record_id(request_id, giller_id))
            if record is not None and record.get("status") == MatchStatus.DECLINED.value:
                return MatchingActionResult(success=False, message=ALREADY_DECLINED_MESSAGE)
        except (RepositoryError, KeyError, ValueError):
            logger.exception("Failed to load request %s for acceptance", request_id)
            return MatchingActionResult(success=False, message=ACCEPT_FAILED_MESSAGE)

        now = self.clock()
        delivery_id = None
        request_written = False
        try:
            delivery_id = self.repository.create(
                DELIVERIES,
                {
                    "request_id": request_id,
                    "requester_id": request.requester_id,
                    "giller_id": giller_id,
                    "pickup_station_name": request.pickup_station_name,
                    "delivery_station_name": request.delivery_station_name,
                    "package_size": request.package_size.value,
                    "package_weight_kg": request.package_weight_kg,
                    "fee": request.fee,
                    "status": RequestStatus.ACCEPTED.value,
                    "created_at": now,
                    "updated_at": now,
                },
            )

            accepted = transition(request, RequestStatus.ACCEPTED)
            self.repository.update(
                REQUESTS,
                request_id,
                {
                    "status": accepted.status.value,
                    "matched_giller_id": giller_id,
                    "accepted_at": now,
                    "updated_at": now,
                },
            )
            request_written = True

            self._mark_record_accepted(request_id, giller_id, now)
        except RepositoryError:
            logger.exception("Failed to accept request %s for giller %s", request_id, giller_id)
            self._roll_back_accept(doc, delivery_id, request_written)
            return MatchingActionResult(success=False, message=ACCEPT_FAILED_MESSAGE)

        giller_name = load_giller_stats(self.repository, giller_id).name
        self._safe_notify(request.requester_id, request_accepted_notification(request_id, giller_name))

        channel_id = self._ensure_channel(request, giller_id, delivery_id)

        logger.info("Request %s accepted by giller %s (delivery %s)", request_id, giller_id, delivery_id)
        return MatchingActionResult(
            success=True,
            message="요청을 수락했습니다.",
            delivery_id=delivery_id,
            channel_id=channel_id,
        )

    def decline_request(self, request_id: str, giller_id: str) -> MatchingActionResult:
        try:
            records = [
                doc
                for doc in self.repository.query(MATCHES, "request_id", "==", request_id)
                if doc.get("giller_id") == giller_id
            ]
            if not records:
                return MatchingActionResult(success=False, message=MATCH_NOT_FOUND_MESSAGE)

            now = self.clock()
            for doc in records:
                self.repository.update(MATCHES, doc["id"], {"status": MatchStatus.DECLINED.value, "declined_at": now})
        except RepositoryError:
            logger.exception("Failed to decline request %s for giller %s", request_id, giller_id)
            return MatchingActionResult(success=False, message=DECLINE_FAILED_MESSAGE)

        logger.info("Giller %s declined request %s", giller_id, request_id)
        return MatchingActionResult(success=True, message="요청을 거절했습니다.")

    def cancel_request(self, request_id: str) -> MatchingActionResult:
        request = self.get_request(request_id)
        if not can_transition(request.status, RequestStatus.CANCELLED):
            return MatchingActionResult(success=False, message="취소할 수 없는 요청입니다.")

        now = self.clock()
        cancelled = transition(request, RequestStatus.CANCELLED)
        self.repository.update(
            REQUESTS,
            request_id,
            {"status": cancelled.status.value, "cancelled_at": now, "updated_at": now},
        )

        if request.matched_giller_id:
            self._safe_notify(
                request.matched_giller_id,
                Notification(
                    type=NotificationType.REQUEST_CANCELLED,
                    title="배송 요청이 취소되었습니다",
                    body=f"{request.pickup_station_name} → {request.delivery_station_name} 요청이 취소되었습니다.",
                    data={"request_id": request_id},
                ),
            )

        logger.info("Request %s cancelled from %s", request_id, request.status.value)
        return MatchingActionResult(success=True, message="요청이 취소되었습니다.")

    # --- Internal helpers ---

    def _persist_record(self, record: MatchRecord) -> bool:
        return self.repository.create_if_absent(MATCHES, record.match_id, record.to_document())

    def _mark_record_accepted(self, request_id: str, giller_id: str, now: datetime) -> None:
        record_id = match_record_id(request_id, giller_id)
        patch = {"status": MatchStatus.ACCEPTED.value, "accepted_at": now}

        if self.repository.get(MATCHES, record_id) is not None:
            self.repository.update(MATCHES, record_id, patch)
            return

        # accepted straight from the open request list, no prior record
        record = MatchRecord(
            match_id=record_id,
            request_id=request_id,
            giller_id=giller_id,
            match_score=0.0,
            status=MatchStatus.ACCEPTED,
            created_at=now,
            accepted_at=now,
        )
        if not self.repository.create_if_absent(MATCHES, record_id, record.to_document()):
            self.repository.update(MATCHES, record_id, patch)

    def _roll_back_accept(self, previous: Dict[str, Any], delivery_id: Optional[str], request_written: bool) -> None:
        request_id = previous["id"]
        try:
            if request_written:
                self.repository.update(
                    REQUESTS,
                    request_id,
                    {
                        "status": previous.get("status"),
                        "matched_giller_id": previous.get("matched_giller_id"),
                        "accepted_at": previous.get("accepted_at"),
                        "updated_at": previous.get("updated_at"),
                    },
                )
            if delivery_id is not None:
                self.repository.delete(DELIVERIES, delivery_id)
        except RepositoryError:
            logger.exception("Rollback of accept for request %s failed", request_id)

    def _ensure_channel(self, request: DeliveryRequest, giller_id: str, delivery_id: str) -> Optional[str]:
        try:
            channel_id, created = self.chat.create_channel(
                request.requester_id,
                giller_id,
                {"request_id": request.request_id, "match_id": delivery_id},
            )
            if created:
                self.chat.post_system_message(
                    channel_id,
                    MATCH_ACCEPTED_MESSAGE,
                    {"request_id": request.request_id, "match_id": delivery_id},
                )
            return channel_id
        except Exception:
            logger.exception("Failed to set up chat channel for request %s", request.request_id)
            return None

    def _safe_notify(self, user_id: str, notification: Notification) -> None:
        try:
            self.notifier.notify(user_id, notification)
        except Exception:
            logger.exception("Failed to notify user %s (%s)", user_id, notification.type.value)

    def _fan_out_notifications(self, targets: List[Tuple[str, Notification]]) -> None:
        with ThreadPoolExecutor(max_workers=self.policy.max_workers) as pool:
            for user_id, notification in targets:
                pool.submit(self._safe_notify, user_id, notification)
