"""
Swipe Ledger - Like/Pass Recording and Match Creation

Records each user's latest decision per listing (last write wins, no history)
and turns mutual interest into a match:

1. Resolve the listing (NotFoundError if missing)
2. Upsert the swipe
3. PASS stops here
4. LIKE notifies the listing owner, then checks mutuality: the owner must
   have liked at least one listing owned by the swiper
5. On mutual interest, get-or-create the pair's match; a new match is seeded
   with a greeting from the owner and both users are notified

Steps 2-5 run in one store transaction under a per-pair lock, so two racing
likes between the same users produce one match. Notifications go out only
after the transaction commits, and a failing emitter is logged, never raised.
"""

from __future__ import annotations

import logging
from typing import Final, Optional

from core.chat import ChatService
from core.errors import NotFoundError, ValidationError
from core.locks import KeyedLock, pair_key
from core.models import (
    Listing,
    Match,
    NotificationType,
    Swipe,
    SwipeAction,
    utc_now,
)
from core.notifications import NotificationEmitter
from core.store import MarketplaceStore


logger = logging.getLogger(__name__)


DEFAULT_GREETING: Final[str] = "Hi! I saw your like. Want to talk about a swap?"


class SwipeLedger:
    """Records swipes and creates matches on mutual likes."""

    def __init__(
        self,
        store: MarketplaceStore,
        emitter: NotificationEmitter,
        chat: ChatService,
        locks: Optional[KeyedLock] = None,
        greeting: str = DEFAULT_GREETING,
    ):
        self._store = store
        self._emitter = emitter
        self._chat = chat
        self._locks = locks or KeyedLock()
        self._greeting = greeting

    def record_swipe(
        self,
        from_user: str,
        listing_id: str,
        action: SwipeAction,
    ) -> Optional[Match]:
        """
        Record a swipe and return the match it completes, if any.

        Args:
            from_user: Swiping user
            listing_id: Listing swiped on
            action: LIKE or PASS

        Returns:
            The pair's match when the like is mutual, otherwise None. A repeated
            mutual like returns the existing match without creating another.

        Raises:
            NotFoundError: If the listing does not exist
            ValidationError: If the user swipes their own listing
        """
        listing = self._store.get_listing(listing_id)
        if listing is None:
            raise NotFoundError("Listing", listing_id)
        if listing.owner_id == from_user:
            raise ValidationError("Cannot swipe on your own listing", field="listingId")

        owner_id = listing.owner_id
        match: Optional[Match] = None
        created = False

        with self._locks.hold(pair_key(from_user, owner_id)):
            with self._store.transaction():
                self._store.upsert_swipe(Swipe(
                    from_user_id=from_user,
                    target_listing_id=listing_id,
                    action=action,
                    timestamp=utc_now(),
                ))
                if action == SwipeAction.PASS:
                    return None

                if self.is_mutual(from_user, owner_id):
                    match, created = self._store.get_or_create_match(from_user, owner_id)
                    if created:
                        self._chat.post(match.id, owner_id, self._greeting)

        self._notify_like(from_user, listing)
        if created:
            logger.info("Match %s created between %s and %s", match.id, from_user, owner_id)
            self._notify_match(match)
        return match

    def is_mutual(self, from_user: str, owner_id: str) -> bool:
        """True if owner_id has liked at least one listing owned by from_user."""
        for swipe in self._store.list_swipes(owner_id, SwipeAction.LIKE):
            target = self._store.get_listing(swipe.target_listing_id)
            if target is not None and target.owner_id == from_user:
                return True
        return False

    def swiped_listing_ids(self, user_id: str) -> set[str]:
        return {s.target_listing_id for s in self._store.list_swipes(user_id)}

    # =========================================================================
    # Notifications
    # =========================================================================

    def _display_name(self, user_id: str) -> str:
        user = self._store.get_user(user_id)
        return user.display_name if user else user_id

    def _emit(self, recipient_id: str, kind: NotificationType, payload: dict) -> None:
        # The swipe is already committed; a failed notification must not undo it
        try:
            self._emitter.emit(recipient_id, kind, payload)
        except Exception:
            logger.exception("Failed to emit %s to %s", kind.value, recipient_id)

    def _notify_like(self, from_user: str, listing: Listing) -> None:
        self._emit(
            listing.owner_id,
            NotificationType.LIKE_RECEIVED,
            {
                "title": "New Like!",
                "body": f'{self._display_name(from_user)} liked your listing "{listing.title}"',
                "listing_id": listing.id,
                "from_user_id": from_user,
            },
        )

    def _notify_match(self, match: Match) -> None:
        for recipient in (match.user_b_id, match.user_a_id):
            other = match.other_participant(recipient)
            self._emit(
                recipient,
                NotificationType.MATCH_CREATED,
                {
                    "title": "It's a Match!",
                    "body": f"You matched with {self._display_name(other)}!",
                    "match_id": match.id,
                },
            )
