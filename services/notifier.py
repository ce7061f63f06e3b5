"""
Outbound notifications: the stored notification row, push delivery and the
realtime event bus.

Delivery is best-effort. A stored row is never rolled back because the push
or the realtime emit failed; for reminder rows that is what makes a tier
fire at most once.
"""
import json
import logging
from datetime import datetime
from typing import Optional

import httpx
import redis
from sqlalchemy.exc import IntegrityError

from models import db
from models.notification import Notification
from models.user import User

logger = logging.getLogger(__name__)

EXPO_TOKEN_PREFIX = "ExponentPushToken"


class NullSink:
    """Used when push is disabled: nothing is delivered, nothing fails."""

    def deliver(self, user_id: int, title: str, body: str, metadata: dict = None) -> bool:
        return False


class ExpoPushSink:
    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    def deliver(self, user_id: int, title: str, body: str, metadata: dict = None) -> bool:
        user = db.session.get(User, user_id)
        if not user or not user.push_token or not user.notifications_enabled:
            return False
        if not user.push_token.startswith(EXPO_TOKEN_PREFIX):
            return False

        message = {
            "to": user.push_token,
            "sound": "default",
            "title": title,
            "body": body,
            "data": metadata or {},
        }
        resp = httpx.post(self.url, json=message, timeout=self.timeout)
        resp.raise_for_status()
        return True


class NullEventBus:
    def emit(self, user_id: int, event: str, payload: dict) -> None:
        logger.debug("Realtime event %s for user %s dropped (no bus configured)", event, user_id)

    def broadcast(self, event: str, payload: dict) -> None:
        logger.debug("Realtime broadcast %s dropped (no bus configured)", event)


class RedisEventBus:
    """Publishes JSON events on per-user channels for the socket gateway."""

    def __init__(self, client: "redis.Redis", prefix: str = "schedulesync"):
        self.client = client
        self.prefix = prefix

    def _publish(self, channel: str, event: str, payload: dict) -> None:
        message = json.dumps({"event": event, "data": payload}, default=str)
        self.client.publish(f"{self.prefix}:{channel}", message)

    def emit(self, user_id: int, event: str, payload: dict) -> None:
        self._publish(f"user:{user_id}", event, payload)

    def broadcast(self, event: str, payload: dict) -> None:
        self._publish("broadcast", event, payload)


class Notifier:
    def __init__(self, sink=None, bus=None):
        self.sink = sink or NullSink()
        self.bus = bus or NullEventBus()

    def record(
        self,
        user_id: int,
        type: str,
        title: str,
        body: str,
        booking_id: int = None,
        slot_id: int = None,
        action: str = None,
        date_key: str = None,
        count: int = None,
        dedup_key: str = None,
    ) -> Optional[Notification]:
        """
        Store a notification. With a dedup_key this is insert-if-absent and
        returns None when (user, type, dedup_key) already exists.
        """
        row = Notification(
            user_id=user_id,
            type=type,
            title=title,
            body=body,
            booking_id=booking_id,
            slot_id=slot_id,
            action=action,
            date_key=date_key,
            count=count,
            dedup_key=dedup_key,
        )
        db.session.add(row)
        try:
            db.session.commit()
        except IntegrityError:
            # uq_notification_dedup: someone else already recorded it
            db.session.rollback()
            return None
        return row

    def deliver(self, row: Notification, extra: dict = None) -> bool:
        data = row.payload()
        data.update(extra or {})
        try:
            sent = self.sink.deliver(row.user_id, row.title, row.body, data)
        except Exception as exc:
            logger.warning("Push delivery failed for notification %s (user %s): %s", row.id, row.user_id, exc)
            return False

        if sent:
            row.sent = True
            row.sent_at = datetime.utcnow()
            db.session.commit()
        return bool(sent)

    def emit(self, user_id: int, event: str, payload: dict) -> None:
        try:
            self.bus.emit(user_id, event, payload)
        except Exception as exc:
            logger.warning("Realtime emit %s to user %s failed: %s", event, user_id, exc)

    def broadcast(self, event: str, payload: dict) -> None:
        try:
            self.bus.broadcast(event, payload)
        except Exception as exc:
            logger.warning("Realtime broadcast %s failed: %s", event, exc)

    def notify(self, user_id: int, type: str, title: str, body: str, event_payload: dict = None, **fields) -> Optional[Notification]:
        """Record, push and emit. Returns None if the dedup guard was already taken."""
        row = self.record(user_id, type, title, body, **fields)
        if row is None:
            return None
        self.deliver(row, {"action": fields.get("action") or "view_booking"} if row.booking_id else None)
        payload = {"type": type}
        payload.update(event_payload if event_payload is not None else row.payload())
        self.emit(user_id, "notification", payload)
        return row


def build_notifier(config) -> Notifier:
    if config.get("PUSH_ENABLED"):
        sink = ExpoPushSink(config["EXPO_PUSH_URL"], timeout=config.get("PUSH_TIMEOUT_SECONDS", 10))
    else:
        sink = NullSink()

    redis_url = config.get("REDIS_URL")
    bus = RedisEventBus(redis.Redis.from_url(redis_url)) if redis_url else NullEventBus()
    return Notifier(sink=sink, bus=bus)
