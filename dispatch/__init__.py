#Expose the high-level pipeline pieces:
#Candidate filtering (hard rules)
#Matching orchestrator (find / process / accept / decline / cancel)
#Retry scheduler (backoff, auto-retry timer, status monitor)
#Notification and chat boundaries

from .candidate_filter import build_base_candidates
from .chat import ChatService, RepositoryChatService
from .dispatcher import MatchingActionResult, MatchingOrchestrator, RankedMatch
from .exceptions import DispatchError, RequestNotFound
from .notifications import (
    MatchingNotificationService,
    Notification,
    NotificationType,
    Notifier,
    PushClient,
    PushError,
)
from .policy import DispatchPolicy, default_dispatch_policy, dispatch_policy_from_env
from .retry import CancellationHandle, ManualRetryResult, MatchingStatusMonitor, RetryResult, RetryScheduler

__all__ = [
    "build_base_candidates",
    "MatchingOrchestrator",  # the main entry point for matching a request
    "MatchingActionResult",
    "RankedMatch",
    "RetryScheduler",
    "RetryResult",
    "ManualRetryResult",
    "CancellationHandle",
    "MatchingStatusMonitor",
    "Notifier",
    "Notification",
    "NotificationType",
    "MatchingNotificationService",
    "PushClient",
    "PushError",
    "ChatService",
    "RepositoryChatService",
    "DispatchPolicy",
    "default_dispatch_policy",
    "dispatch_policy_from_env",
    "DispatchError",
    "RequestNotFound",
]
