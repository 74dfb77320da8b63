"""
Purpose: Bounded retries around the orchestrator's "find matches" step.
What it does:
- retry_matching_with_backoff: up to N attempts, exponential backoff between
  them (2s, 4s, 8s ...), never sleeping after the last attempt.
- schedule_auto_retry: one-shot timer that runs the backoff loop later.
- MatchingStatusMonitor: background sweep that re-triggers retries for
  requests still waiting on their first match.
- manual_retry: user-triggered retry with a message for the UI.

Rule: Attempt errors are logged, never raised. Sleeps are injected so the
backoff schedule can be checked without waiting.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from common.timeutil import as_aware
from deliveries.models import DeliveryRequest, MatchingStatus, RequestStatus
from storage.repository import REQUESTS, Repository, RepositoryError

from .dispatcher import MatchingOrchestrator
from .exceptions import DispatchError
from .policy import DispatchPolicy
from .state_machines.request_state import can_transition, transition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryResult:
    success: bool
    attempts: int
    found_matches: int


@dataclass(frozen=True)
class ManualRetryResult:
    success: bool
    message: str
    attempts: int
    found_matches: int


class CancellationHandle:
    """
    Wraps a one-shot timer. cancel() can be called any number of times.
    """

    def __init__(self, timer: threading.Timer):
        self._timer = timer
        self._cancelled = False
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            self._timer.cancel()
        logger.info("Auto-retry cancelled")

    def join(self, timeout: Optional[float] = None) -> None:
        self._timer.join(timeout)


class MatchingStatusMonitor:
    """
    Background thread that sweeps requests still waiting for a match.
    """

    def __init__(self, scheduler: RetryScheduler, interval_seconds: float):
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> None:
        if not self._thread.is_alive() and not self._stop_event.is_set():
            logger.info("Starting matching status monitor (interval=%ss)", self.interval_seconds)
            self._thread.start()

    def stop(self) -> None:
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        logger.info("Matching status monitor stopped")

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout)

    def sweep(self) -> List[str]:
        """
        Retry every stale pending request once. Returns the ids retried.
        """
        retried = []
        for request_id in self.scheduler.find_stale_requests():
            if self._stop_event.is_set():
                break
            logger.info("Monitor re-triggering retry for request %s", request_id)
            self.scheduler.retry_matching_with_backoff(request_id)
            retried.append(request_id)
        return retried

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                retried = self.sweep()
                if retried:
                    logger.info("Monitor retried %s requests", len(retried))
            except Exception:
                logger.exception("Matching status monitor encountered an error")


class RetryScheduler:
    def __init__(
        self,
        orchestrator: MatchingOrchestrator,
        repository: Optional[Repository] = None,
        policy: Optional[DispatchPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.orchestrator = orchestrator
        self.repository = repository or orchestrator.repository
        self.policy = policy or orchestrator.policy
        self.sleep = sleep
        self.clock = clock or orchestrator.clock

    # --- Backoff loop ---

    def retry_matching_with_backoff(
        self,
        request_id: str,
        max_retries: Optional[int] = None,
        base_delay_seconds: Optional[float] = None,
    ) -> RetryResult:
        max_retries = self.policy.max_retries if max_retries is None else max_retries
        base_delay = self.policy.base_delay_seconds if base_delay_seconds is None else base_delay_seconds

        for attempt in range(1, max_retries + 1):
            logger.info("Matching attempt %s/%s for request %s", attempt, max_retries, request_id)
            try:
                matches = self.orchestrator.find_matches_for_request(request_id, self.policy.process_top_n)
            except Exception:
                logger.exception("Matching attempt %s for request %s failed", attempt, request_id)
                matches = []

            if matches:
                self._record_success(request_id, attempt)
                logger.info("Request %s matched with %s candidates on attempt %s", request_id, len(matches), attempt)
                return RetryResult(success=True, attempts=attempt, found_matches=len(matches))

            if attempt < max_retries:
                delay = base_delay * 2 ** (attempt - 1)
                logger.info("No match for request %s, retrying in %ss", request_id, delay)
                self.sleep(delay)

        logger.warning("All %s matching attempts failed for request %s", max_retries, request_id)
        self._record_exhaustion(request_id, max_retries)
        return RetryResult(success=False, attempts=max_retries, found_matches=0)

    def _record_success(self, request_id: str, attempts: int) -> None:
        try:
            self.repository.update(
                REQUESTS,
                request_id,
                {
                    "matching_status": MatchingStatus.MATCHED.value,
                    "matching_attempts": attempts,
                    "last_matched_at": self.clock(),
                },
            )
        except RepositoryError:
            logger.exception("Error updating matching status for request %s", request_id)

    def _record_exhaustion(self, request_id: str, attempts: int) -> None:
        try:
            patch = {
                "matching_status": MatchingStatus.NO_MATCH.value,
                "matching_attempts": attempts,
                "last_match_attempt_at": self.clock(),
            }
            doc = self.repository.get(REQUESTS, request_id)
            if doc is not None:
                request = DeliveryRequest.from_document(doc)
                if can_transition(request.status, RequestStatus.NO_MATCH):
                    patch["status"] = transition(request, RequestStatus.NO_MATCH).status.value
            self.repository.update(REQUESTS, request_id, patch)
        except RepositoryError:
            logger.exception("Error updating matching status for request %s", request_id)

    # --- Timers ---

    def schedule_auto_retry(self, request_id: str, timeout_seconds: Optional[float] = None) -> CancellationHandle:
        timeout = self.policy.auto_retry_timeout_seconds if timeout_seconds is None else timeout_seconds

        def fire() -> None:
            try:
                result = self.retry_matching_with_backoff(request_id)
            except Exception:
                logger.exception("Auto-retry for request %s crashed", request_id)
                return
            if result.success:
                logger.info("Auto-retry matched request %s (%s candidates)", request_id, result.found_matches)
            else:
                logger.info("Auto-retry found no match for request %s after %s attempts", request_id, result.attempts)

        timer = threading.Timer(timeout, fire)
        timer.daemon = True
        timer.start()
        logger.info("Auto-retry for request %s scheduled in %ss", request_id, timeout)
        return CancellationHandle(timer)

    def start_matching_status_monitor(self, interval_seconds: Optional[float] = None) -> MatchingStatusMonitor:
        interval = self.policy.monitor_interval_seconds if interval_seconds is None else interval_seconds
        monitor = MatchingStatusMonitor(self, interval)
        monitor.start()
        return monitor

    def find_stale_requests(self) -> List[str]:
        """
        Pending requests that never matched, created inside the lookback
        window and older than the stale threshold.
        """
        now = as_aware(self.clock())
        newest = now - timedelta(seconds=self.policy.stale_after_seconds)
        oldest = now - timedelta(seconds=self.policy.monitor_lookback_seconds)

        stale = []
        for doc in self.repository.query(REQUESTS, "matching_status", "==", MatchingStatus.PENDING.value):
            created_at = doc.get("created_at")
            if doc.get("status") != RequestStatus.PENDING.value:
                continue
            if not isinstance(created_at, datetime):
                logger.warning("Request %s has no usable created_at (%r), skipping", doc["id"], created_at)
                continue
            if oldest <= as_aware(created_at) <= newest:
                stale.append(doc["id"])
        return stale

    # --- Manual ---

    def manual_retry(self, request_id: str) -> ManualRetryResult:
        logger.info("Manual retry requested for request %s", request_id)
        try:
            self._reopen_if_exhausted(request_id)
            result = self.retry_matching_with_backoff(request_id)
        except (DispatchError, RepositoryError):
            logger.exception("Manual retry for request %s failed", request_id)
            return ManualRetryResult(
                success=False,
                message="재시도 중 오류가 발생했습니다. 다시 시도해주세요.",
                attempts=0,
                found_matches=0,
            )

        if result.success:
            return ManualRetryResult(
                success=True,
                message=f"{result.found_matches}명의 길러를 찾았습니다! (재시도 {result.attempts}회)",
                attempts=result.attempts,
                found_matches=result.found_matches,
            )

        return ManualRetryResult(
            success=False,
            message=f"아직 길러를 찾을 수 없습니다. {result.attempts}회 시도했습니다. 잠시 후 다시 시도해주세요.",
            attempts=result.attempts,
            found_matches=0,
        )

    def _reopen_if_exhausted(self, request_id: str) -> None:
        request = self.orchestrator.get_request(request_id)
        if request.status is RequestStatus.NO_MATCH:
            reopened = transition(request, RequestStatus.PENDING)
            self.repository.update(
                REQUESTS,
                request_id,
                {"status": reopened.status.value, "matching_status": MatchingStatus.PENDING.value},
            )
            logger.info("Request %s re-opened for matching", request_id)
