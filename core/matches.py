"""
Match Registry - Match Lookup, Participation Checks and Enrichment

Matches are created by the swipe ledger and never deleted. The registry reads
them back for a user and enriches each with its latest message and the
user's unread count.

Unread tracking is per user: a message counts as unread when another
participant sent it after the user's read marker. The marker is the later of
an explicit mark-read and the user's own latest message, since replying
implies the thread was read.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from core.errors import AuthorizationError, NotFoundError
from core.models import EnrichedMatch, Match, Message
from core.store import MarketplaceStore


class MatchRegistry:
    """Read side of matches, composed over the store's match and chat data."""

    def __init__(self, store: MarketplaceStore):
        self._store = store

    def list_matches(self, user_id: str) -> list[Match]:
        """Matches involving the user in a stable (created_at, id) order."""
        return self._store.list_matches(user_id)

    def get_match(self, match_id: str) -> Match:
        match = self._store.get_match(match_id)
        if match is None:
            raise NotFoundError("Match", match_id)
        return match

    def require_participant(self, match_id: str, user_id: str) -> Match:
        """
        Load a match and check the user takes part in it.

        Raises:
            NotFoundError: If the match does not exist
            AuthorizationError: If the user is not one of its two participants
        """
        match = self.get_match(match_id)
        if not match.involves(user_id):
            raise AuthorizationError(f"User {user_id} is not a participant of match {match_id}")
        return match

    def read_marker(
        self,
        match_id: str,
        user_id: str,
        messages: Optional[list[Message]] = None,
    ) -> Optional[datetime]:
        if messages is None:
            messages = self._store.list_messages(match_id)
        marker = self._store.get_read_marker(match_id, user_id)
        for message in messages:
            if message.from_user_id == user_id and (marker is None or message.timestamp > marker):
                marker = message.timestamp
        return marker

    def unread_count(
        self,
        match_id: str,
        user_id: str,
        messages: Optional[list[Message]] = None,
    ) -> int:
        if messages is None:
            messages = self._store.list_messages(match_id)
        marker = self.read_marker(match_id, user_id, messages)
        return sum(
            1 for m in messages
            if m.from_user_id != user_id and (marker is None or m.timestamp > marker)
        )

    def enrich(self, user_id: str, matches: Iterable[Match]) -> list[EnrichedMatch]:
        result = []
        for match in matches:
            messages = self._store.list_messages(match.id)
            last = None
            for message in messages:
                # Later append wins on equal timestamps
                if last is None or message.timestamp >= last.timestamp:
                    last = message
            result.append(EnrichedMatch(
                match=match,
                last_message=last,
                unread_count=self.unread_count(match.id, user_id, messages),
            ))
        return result

    def total_unread(self, user_id: str) -> int:
        return sum(e.unread_count for e in self.enrich(user_id, self.list_matches(user_id)))
