"""
Redis Pub/Sub event publisher for reminder notifications.
Events are consumed by the notification gateway (email/push delivery lives there).
"""
import json
import os
import logging
from datetime import datetime, timezone
from typing import Optional

import redis

logger = logging.getLogger(__name__)


class EventPublisher:
    """
    Publishes reminder events to Redis Pub/Sub channels.

    Channel format: reminders:{user_id}

    Event types:
    - reminder_due: a scheduled reminder fired and should be delivered
    """

    def __init__(self, redis_url: Optional[str] = None):
        """
        Initialize the event publisher.

        Args:
            redis_url: Redis connection URL. If not provided, uses REDIS_URL env var.
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self._redis: Optional[redis.Redis] = None

    @property
    def redis(self) -> redis.Redis:
        """Lazy-load Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, decode_responses=True)
        return self._redis

    def _channel(self, user_id: str) -> str:
        return f"reminders:{user_id}"

    def _publish(self, user_id: str, event_data: dict) -> int:
        """
        Publish an event to the user's channel.

        Returns:
            Number of subscribers that received the message.

        Raises:
            redis.RedisError if Redis is unreachable, so the caller can mark the
            reminder failed and let the task retry.
        """
        channel = self._channel(user_id)
        receivers = self.redis.publish(channel, json.dumps(event_data))
        logger.debug(f"Published {event_data.get('type')} to {channel} ({receivers} receivers)")
        return receivers

    def publish_reminder_due(
        self,
        user_id: str,
        reminder_id: str,
        subscription_id: str,
        service_name: str,
        reminder_type: str,
        event_at: Optional[datetime],
        channels: dict,
    ) -> int:
        """
        Publish a reminder_due event.

        Args:
            user_id: Owner of the subscription
            reminder_id: The reminder being delivered
            subscription_id: The subscription it belongs to
            service_name: Display name of the subscription
            reminder_type: trial_ending or billing_upcoming
            event_at: The trial end or billing moment the reminder points at
            channels: Delivery channels enabled for the user ({"email": bool, "push": bool})
        """
        return self._publish(user_id, {
            "type": "reminder_due",
            "reminder_id": reminder_id,
            "subscription_id": subscription_id,
            "service_name": service_name,
            "reminder_type": reminder_type,
            "event_at": event_at.isoformat() if event_at else None,
            "channels": channels,
            "timestamp": datetime.now(timezone.utc).isoformat()
        })
