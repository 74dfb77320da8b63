"""
Purpose: Notification "adapter" for the matching pipeline.
What it does:
- Defines the Notifier protocol the orchestrator talks to.
- Builds the match-found / request-accepted messages.
- MatchingNotificationService saves every notification to the store and
  pushes it through PushClient when the user has a push token.
- PushClient talks to an Expo-style push endpoint over HTTP.

Rule: Fire-and-forget from the pipeline's point of view. Push failures are
logged here; the orchestrator also guards every notify call.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol

import requests
from dotenv import load_dotenv

from deliveries.models import DeliveryRequest, utcnow
from storage.repository import NOTIFICATIONS, USERS, Repository

# Read the push endpoint from the environment
# Example in .env:
# PUSH_API_URL=https://exp.host/--/api/v2/push/send
load_dotenv()
PUSH_API_URL = os.getenv("PUSH_API_URL")

logger = logging.getLogger(__name__)


class NotificationType(Enum):
    MATCH_FOUND = "match_found"
    REQUEST_ACCEPTED = "request_accepted"
    REQUEST_CANCELLED = "request_cancelled"


@dataclass(frozen=True)
class Notification:
    type: NotificationType
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)


class Notifier(Protocol):
    def notify(self, user_id: str, notification: Notification) -> None:
        ...


def match_found_notification(request: DeliveryRequest) -> Notification:
    return Notification(
        type=NotificationType.MATCH_FOUND,
        title="새로운 배송 요청",
        body=f"{request.pickup_station_name} → {request.delivery_station_name} ({request.fee:,}원)",
        data={
            "request_id": request.request_id,
            "pickup_station": request.pickup_station_name,
            "delivery_station": request.delivery_station_name,
            "fee": request.fee,
        },
    )


def request_accepted_notification(request_id: str, giller_name: str) -> Notification:
    return Notification(
        type=NotificationType.REQUEST_ACCEPTED,
        title="배송이 수락되었습니다",
        body=f"{giller_name}님이 배송을 수락했습니다.",
        data={"request_id": request_id, "giller_name": giller_name},
    )


class PushError(Exception):
    """Custom exception for push client errors."""
    pass


class PushClient:
    """
    Push Adapter / Client

    Sole responsibility:
    - Talk to the push service via HTTP
    - Validate the response and raise PushError on rejection
    """

    def __init__(self, base_url: Optional[str] = None, timeout: float = 5):
        self.base_url = base_url or PUSH_API_URL
        self.timeout = timeout  # seconds to wait for the push service

        if not self.base_url:
            raise ValueError("Push API URL not set. Please set PUSH_API_URL in the .env file.")

    def send(self, token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> str:
        """
        Send one push message. Returns the ticket id reported by the service.
        """
        response = requests.post(
            self.base_url,
            json={
                "to": token,
                "title": title,
                "body": body,
                "data": data or {},
                "sound": "default",
                "priority": "high",
            },
            timeout=self.timeout,
        )

        if response.status_code >= 400:
            raise PushError(f"Push service returned HTTP {response.status_code}")

        payload = response.json()

        # validating push response
        ticket = payload.get("data") or {}
        if ticket.get("status") != "ok":
            raise PushError(f"Push error: {ticket.get('message', 'Unknown error')}")

        return ticket.get("id", "")


class MatchingNotificationService:
    """
    Notifier backed by the `notifications` collection plus an optional push client.
    """

    def __init__(
        self,
        repository: Repository,
        push_client: Optional[PushClient] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.push_client = push_client
        self.clock = clock

    def notify(self, user_id: str, notification: Notification) -> None:
        self.repository.create(
            NOTIFICATIONS,
            {
                "user_id": user_id,
                "type": notification.type.value,
                "title": notification.title,
                "body": notification.body,
                "data": dict(notification.data),
                "read": False,
                "created_at": self.clock(),
            },
        )

        if self.push_client is None:
            return

        user = self.repository.get(USERS, user_id) or {}
        token = user.get("push_token")
        if not token:
            logger.info("No push token for user %s, notification stored only", user_id)
            return

        try:
            self.push_client.send(
                token,
                notification.title,
                notification.body,
                {"type": notification.type.value, **notification.data},
            )
        except (PushError, requests.RequestException) as e:
            logger.error(f"Push delivery failed for user {user_id}: {e}")
