"""
Chat - Message Threads under a Match

Implements the chat contract used by enrichment (append, last message,
message count) plus thread listing and read markers. Only the two match
participants may read or write a thread.
"""

from __future__ import annotations

from typing import Callable, Optional

from core.errors import ValidationError
from core.matches import MatchRegistry
from core.models import Message, new_id, utc_now
from core.store import MarketplaceStore


class ChatService:
    """Message threads scoped to matches."""

    def __init__(
        self,
        store: MarketplaceStore,
        registry: MatchRegistry,
        on_change: Optional[Callable[[str], None]] = None,
    ):
        """
        Args:
            store: Backing store
            registry: Match registry for participation checks
            on_change: Called with the match id after a message is appended
        """
        self._store = store
        self._registry = registry
        self._on_change = on_change

    def post(self, match_id: str, from_user: str, text: str) -> Message:
        """Append a message without participation checks or change events."""
        message = Message(
            id=new_id("MSG"),
            match_id=match_id,
            from_user_id=from_user,
            text=text,
            timestamp=utc_now(),
        )
        return self._store.append_message(message)

    def append_message(self, actor: str, match_id: str, text: str) -> Message:
        """
        Send a message into a match thread.

        Raises:
            ValidationError: If the text is blank
            NotFoundError: If the match does not exist
            AuthorizationError: If the actor is not a participant
        """
        clean = (text or "").strip()
        if not clean:
            raise ValidationError("Message text is required", field="text")
        self._registry.require_participant(match_id, actor)

        message = self.post(match_id, actor, clean)
        if self._on_change:
            self._on_change(match_id)
        return message

    def list_messages(self, actor: str, match_id: str) -> list[Message]:
        self._registry.require_participant(match_id, actor)
        return self._store.list_messages(match_id)

    def last_message(self, match_id: str) -> Optional[Message]:
        messages = self._store.list_messages(match_id)
        return messages[-1] if messages else None

    def message_count(self, match_id: str) -> int:
        return len(self._store.list_messages(match_id))

    def mark_read(self, actor: str, match_id: str) -> int:
        """
        Mark the thread read up to now for the actor.

        Returns:
            The actor's unread count afterwards (always 0)
        """
        self._registry.require_participant(match_id, actor)
        self._store.set_read_marker(match_id, actor, utc_now())
        return self._registry.unread_count(match_id, actor)

    def unread_count(self, actor: str, match_id: str) -> int:
        self._registry.require_participant(match_id, actor)
        return self._registry.unread_count(match_id, actor)
