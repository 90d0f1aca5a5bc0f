"""Notification dispatch to the external delivery collaborator.

Delivery (email, push, sockets) lives elsewhere; this side only enqueues.
RedisQueueDispatcher pushes JSON onto a Redis list consumed by the delivery
workers, LoggingDispatcher just logs (local development, Redis down).
"""

import json
import logging
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

import redis

from ..config import settings

logger = logging.getLogger(__name__)


class NotificationKind:
    SCHEDULED = "interview_scheduled"
    CONFIRMED = "interview_confirmed"
    RESCHEDULED = "interview_rescheduled"
    CANCELLED = "interview_cancelled"
    COMPLETED = "interview_completed"
    REMINDER = "interview_reminder"


@dataclass(frozen=True)
class Notification:
    user_id: UUID
    kind: str
    title: str
    body: str
    data: dict = field(default_factory=dict)

    def to_json(self) -> str:
        payload = asdict(self)
        payload["queued_at"] = datetime.now(UTC).isoformat()
        return json.dumps(payload, default=_json_default, ensure_ascii=False)


def _json_default(value: object) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class NotificationDispatcher(Protocol):
    """Dispatcher interface: fire-and-forget, may raise on transport errors."""

    def dispatch(self, notification: Notification) -> None: ...


class RedisQueueDispatcher:
    """Pushes notifications onto a Redis list."""

    def __init__(self, redis_url: str, queue_key: str) -> None:
        self._client = redis.from_url(redis_url, decode_responses=True)
        self._client.ping()
        self._queue_key = queue_key

    def dispatch(self, notification: Notification) -> None:
        self._client.lpush(self._queue_key, notification.to_json())


class LoggingDispatcher:
    """Logs notifications instead of delivering them."""

    def dispatch(self, notification: Notification) -> None:
        logger.info(
            "Notification %s for user %s: %s",
            notification.kind,
            notification.user_id,
            notification.title,
        )


def dispatch_all(dispatcher: NotificationDispatcher, notifications: Iterable[Notification]) -> int:
    """Dispatch each notification; failures are logged and never propagate.

    Returns the number of notifications handed over successfully.
    """
    sent = 0
    for notification in notifications:
        try:
            dispatcher.dispatch(notification)
            sent += 1
        except Exception:
            logger.exception("Failed to dispatch %s for user %s", notification.kind, notification.user_id)
    return sent


def create_dispatcher() -> NotificationDispatcher:
    """Factory: create the appropriate dispatcher based on configuration."""
    if not settings.redis_url:
        return LoggingDispatcher()
    try:
        return RedisQueueDispatcher(settings.redis_url, settings.notification_queue_key)
    except Exception:
        logger.warning("Redis unavailable, notifications will only be logged")
        return LoggingDispatcher()
