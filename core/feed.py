"""
Match Feed - Snapshot Subscriptions per Match

observe(match) is a subscribe/callback contract: after every message or deal
change the engine publishes a MatchSnapshot of the whole thread to the
match's subscribers. Delivery is at-least-once for the latest state, in
publish order within one publisher. A failing subscriber is logged and
skipped; it never fails the write that triggered the publish.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from core.models import MatchSnapshot


logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[MatchSnapshot], None]


class MatchFeed:
    """Registry of snapshot subscribers keyed by match id."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[SnapshotCallback]] = {}

    def subscribe(self, match_id: str, callback: SnapshotCallback) -> Callable[[], None]:
        """
        Register a callback for a match.

        Returns:
            A function that removes the subscription
        """
        with self._lock:
            self._subscribers.setdefault(match_id, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(match_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(match_id, None)

        return unsubscribe

    def subscriber_count(self, match_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(match_id, []))

    def publish(self, snapshot: MatchSnapshot) -> int:
        """
        Deliver a snapshot to every subscriber of its match.

        Returns:
            Number of callbacks that completed without raising
        """
        with self._lock:
            callbacks = list(self._subscribers.get(snapshot.match_id, []))

        delivered = 0
        for callback in callbacks:
            try:
                callback(snapshot)
                delivered += 1
            except Exception:
                logger.exception("Feed subscriber failed for match %s", snapshot.match_id)
        return delivered
