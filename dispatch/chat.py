"""
Purpose: Chat channel boundary used when a giller accepts a request.
What it does:
- Defines the ChatService protocol (create channel, post system message).
- RepositoryChatService keeps channels in `chat_rooms` under a deterministic
  id derived from the request, so concurrent accepts cannot create two rooms.

Rule: No rendering, no user-to-user messaging. Channel setup only.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from deliveries.models import utcnow
from storage.repository import CHAT_MESSAGES, CHAT_ROOMS, Repository

logger = logging.getLogger(__name__)

MATCH_ACCEPTED_MESSAGE = "배송이 매칭되었습니다. 채팅을 시작하세요!"


def channel_id_for_request(request_id: str) -> str:
    return f"chat_{request_id}"


class ChatService(Protocol):
    def create_channel(self, user_a: str, user_b: str, context: Dict[str, Any]) -> Tuple[str, bool]:
        """Returns (channel_id, created). `created` is False when it already existed."""
        ...

    def post_system_message(self, channel_id: str, text: str, data: Optional[Dict[str, Any]] = None) -> None:
        ...


class RepositoryChatService:
    def __init__(self, repository: Repository, clock: Callable[[], datetime] = utcnow):
        self.repository = repository
        self.clock = clock

    def create_channel(self, user_a: str, user_b: str, context: Dict[str, Any]) -> Tuple[str, bool]:
        channel_id = channel_id_for_request(context["request_id"])
        created = self.repository.create_if_absent(
            CHAT_ROOMS,
            channel_id,
            {
                "participants": [user_a, user_b],
                "request_id": context["request_id"],
                "match_id": context.get("match_id"),
                "created_at": self.clock(),
            },
        )
        if created:
            logger.info("Created chat channel %s between %s and %s", channel_id, user_a, user_b)
        return channel_id, created

    def post_system_message(self, channel_id: str, text: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.repository.create(
            CHAT_MESSAGES,
            {
                "channel_id": channel_id,
                "sender_id": "system",
                "type": "system",
                "text": text,
                "data": dict(data or {}),
                "created_at": self.clock(),
            },
        )
