"""
Notification Emitter - Outbound Events from the Engine

The engine emits LIKE_RECEIVED and MATCH_CREATED events fire-and-forget.
Delivery and persistence belong to the emitter. NotificationInbox is the
in-process emitter that keeps notifications per recipient.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Optional

from core.errors import AuthorizationError, NotFoundError
from core.models import Notification, NotificationType, new_id, utc_now


logger = logging.getLogger(__name__)


class NotificationEmitter(ABC):
    """Receives engine events addressed to one recipient."""

    @abstractmethod
    def emit(
        self,
        recipient_id: str,
        kind: NotificationType,
        payload: dict[str, Any],
    ) -> None:
        """
        Deliver an event.

        Args:
            recipient_id: User the event is addressed to
            kind: Event type
            payload: title, body and related ids
        """
        pass


class NotificationInbox(NotificationEmitter):
    """
    In-memory emitter that stores notifications for later reads.

    Notifications are listed newest first and can be marked read by their
    recipient only.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._notifications: dict[str, Notification] = {}

    def emit(
        self,
        recipient_id: str,
        kind: NotificationType,
        payload: dict[str, Any],
    ) -> None:
        notification = Notification(
            id=new_id("NTF"),
            recipient_user_id=recipient_id,
            type=kind,
            title=payload.get("title", ""),
            body=payload.get("body", ""),
            related_listing_id=payload.get("listing_id"),
            related_match_id=payload.get("match_id"),
            timestamp=utc_now(),
        )
        with self._lock:
            self._notifications[notification.id] = notification
        logger.debug("Notification %s (%s) for %s", notification.id, kind.value, recipient_id)

    def list_for(
        self,
        user_id: str,
        kind: Optional[NotificationType] = None,
    ) -> list[Notification]:
        with self._lock:
            found = [
                n for n in self._notifications.values()
                if n.recipient_user_id == user_id and (kind is None or n.type == kind)
            ]
        return sorted(found, key=lambda n: n.timestamp, reverse=True)

    def unread_count(self, user_id: str) -> int:
        return sum(1 for n in self.list_for(user_id) if not n.is_read)

    def mark_read(self, user_id: str, notification_id: str) -> Notification:
        with self._lock:
            notification = self._notifications.get(notification_id)
            if notification is None:
                raise NotFoundError("Notification", notification_id)
            if notification.recipient_user_id != user_id:
                raise AuthorizationError("Notification belongs to another user")
            updated = replace(notification, is_read=True)
            self._notifications[notification_id] = updated
            return updated
