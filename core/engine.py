"""
Barter Engine - Caller-Facing Matching & Negotiation Operations

Wires the store, notification emitter, profile directory, discovery ranker,
swipe ledger, match registry, chat, deal engine and match feed together. Every
operation takes the acting user explicitly; there is no ambient current user.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence, Union

from core.chat import ChatService
from core.deals import DealEngine
from core.discovery import DiscoveryRanker
from core.errors import NotFoundError, ValidationError
from core.fairness import value_summary
from core.feed import MatchFeed, SnapshotCallback
from core.listings import ListingRegistry
from core.locks import KeyedLock
from core.matches import MatchRegistry
from core.memory_store import InMemoryStore
from core.models import (
    Deal,
    DealItem,
    DealStatus,
    DealValueSummary,
    EnrichedMatch,
    Listing,
    ListingStatus,
    MatchSnapshot,
    Message,
    Notification,
    ProfileStats,
    SortOption,
    SwipeAction,
    UserProfile,
    utc_now,
)
from core.notifications import NotificationEmitter, NotificationInbox
from core.profiles import ProfileDirectory
from core.store import MarketplaceStore
from core.swipes import SwipeLedger
from utils.config import Config


def parse_swipe_action(value: Union[SwipeAction, str]) -> SwipeAction:
    if isinstance(value, SwipeAction):
        return value
    try:
        return SwipeAction(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown swipe action: {value}", field="action")


class BarterEngine:
    """
    The matching & negotiation engine.

    Args:
        store: Storage implementation (default: a fresh InMemoryStore)
        emitter: Notification emitter (default: a NotificationInbox)
        config: Configuration (default: loaded from environment)
    """

    def __init__(
        self,
        store: Optional[MarketplaceStore] = None,
        emitter: Optional[NotificationEmitter] = None,
        config: Optional[Config] = None,
    ):
        self.config = config or Config.load()
        self.store = store or InMemoryStore(
            self.config.store_path or None,
            timeout=self.config.store_timeout_seconds,
        )
        self.emitter = emitter or NotificationInbox()
        self.feed = MatchFeed()

        locks = KeyedLock(timeout=self.config.store_timeout_seconds)
        self.matches = MatchRegistry(self.store)
        self.chat = ChatService(self.store, self.matches, on_change=self._publish)
        self.ledger = SwipeLedger(
            self.store,
            self.emitter,
            self.chat,
            locks=locks,
            greeting=self.config.greeting_text,
        )
        self.deals = DealEngine(
            self.store,
            self.matches,
            locks=locks,
            on_change=self._publish,
            tolerance=self.config.fairness_tolerance,
        )
        self.listings = ListingRegistry(self.store)
        self.profiles = ProfileDirectory(self.store)

    # =========================================================================
    # Profiles
    # =========================================================================

    def get_profile(self, user_id: str) -> UserProfile:
        return self.profiles.get(user_id)

    def upsert_profile(
        self,
        user_id: str,
        display_name: Optional[str] = None,
        location: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> UserProfile:
        return self.profiles.upsert(user_id, display_name, location, latitude, longitude)

    def set_interests(self, user_id: str, interests: Iterable[str]) -> UserProfile:
        return self.profiles.set_interests(user_id, interests)

    # =========================================================================
    # Discovery
    # =========================================================================

    def discover(
        self,
        user_id: str,
        interest_tags: Optional[Sequence[str]] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> list[Listing]:
        """
        Listings to show a user, most relevant first.

        When interest_tags is None the user's profile interests are used.
        Listings the user already swiped are left out when configured.
        """
        if interest_tags is None:
            profile = self.store.get_user(user_id)
            interest_tags = list(profile.interests) if profile else []

        exclude = self.ledger.swiped_listing_ids(user_id) if self.config.discovery_exclude_swiped else set()
        position = (latitude, longitude) if latitude is not None and longitude is not None else None

        return DiscoveryRanker().discover(
            user_id,
            interest_tags,
            self.store.list_listings(),
            exclude_ids=exclude,
            position=position,
            owner_lookup=self.store.get_user,
        )

    def search(
        self,
        user_id: str,
        query: str = "",
        category: Optional[str] = None,
        sort_by: Union[SortOption, str] = SortOption.NEWEST,
    ) -> list[Listing]:
        if not isinstance(sort_by, SortOption):
            try:
                sort_by = SortOption(str(sort_by).strip().upper())
            except ValueError:
                raise ValidationError(f"Unknown sort option: {sort_by}", field="sort")
        return DiscoveryRanker().search(
            user_id, self.store.list_listings(), query, category, sort_by
        )

    # =========================================================================
    # Swipes and Matches
    # =========================================================================

    def swipe(
        self,
        user_id: str,
        listing_id: str,
        action: Union[SwipeAction, str],
    ) -> dict[str, Any]:
        """Record a swipe. Returns {"match": Match | None}."""
        match = self.ledger.record_swipe(user_id, listing_id, parse_swipe_action(action))
        return {"match": match}

    def unread_messages(self, user_id: str) -> int:
        """Unread messages across all of the user's matches."""
        return self.matches.total_unread(user_id)

    def get_matches(self, user_id: str) -> list[EnrichedMatch]:
        return self.matches.enrich(user_id, self.matches.list_matches(user_id))

    # =========================================================================
    # Chat
    # =========================================================================

    def send_message(self, user_id: str, match_id: str, text: str) -> Message:
        return self.chat.append_message(user_id, match_id, text)

    def list_messages(self, user_id: str, match_id: str) -> list[Message]:
        return self.chat.list_messages(user_id, match_id)

    def mark_read(self, user_id: str, match_id: str) -> int:
        return self.chat.mark_read(user_id, match_id)

    # =========================================================================
    # Deals
    # =========================================================================

    def propose_deal(
        self,
        user_id: str,
        match_id: str,
        offer: Iterable[DealItem],
        request: Iterable[DealItem],
        cash_top_up: float = 0.0,
        note: str = "",
    ) -> Deal:
        return self.deals.propose(user_id, match_id, offer, request, cash_top_up, note)

    def update_deal_status(
        self,
        user_id: str,
        deal_id: str,
        status: Union[DealStatus, str],
    ) -> Deal:
        return self.deals.transition(user_id, deal_id, status)

    def list_deals(self, user_id: str, match_id: str) -> list[Deal]:
        return self.deals.list_deals(user_id, match_id)

    def value_summary(self, offer_total: float, request_total: float) -> DealValueSummary:
        return value_summary(offer_total, request_total, self.config.fairness_tolerance)

    # =========================================================================
    # Observation
    # =========================================================================

    def snapshot(self, match_id: str) -> MatchSnapshot:
        return MatchSnapshot(
            match_id=match_id,
            messages=tuple(self.store.list_messages(match_id)),
            deals=tuple(self.store.list_deals(match_id)),
            taken_at=utc_now(),
        )

    def subscribe(self, user_id: str, match_id: str, callback: SnapshotCallback):
        """
        Observe a match. The callback receives a snapshot after every change.

        Returns:
            Function that cancels the subscription
        """
        self.matches.require_participant(match_id, user_id)
        return self.feed.subscribe(match_id, callback)

    def _publish(self, match_id: str) -> None:
        if self.feed.subscriber_count(match_id):
            self.feed.publish(self.snapshot(match_id))

    # =========================================================================
    # Notifications and Stats
    # =========================================================================

    @property
    def inbox(self) -> NotificationInbox:
        if not isinstance(self.emitter, NotificationInbox):
            raise NotFoundError("Notification inbox", type(self.emitter).__name__)
        return self.emitter

    def notifications(self, user_id: str) -> list[Notification]:
        return self.inbox.list_for(user_id)

    def unread_notification_count(self, user_id: str) -> int:
        return self.inbox.unread_count(user_id)

    def mark_notification_read(self, user_id: str, notification_id: str) -> Notification:
        return self.inbox.mark_read(user_id, notification_id)

    def profile_stats(self, user_id: str) -> ProfileStats:
        now = utc_now()
        matches = self.matches.list_matches(user_id)
        match_ids = {m.id for m in matches}
        return ProfileStats(
            active_listings_count=sum(
                1 for l in self.store.list_listings(owner_id=user_id)
                if l.status(now) == ListingStatus.ACTIVE
            ),
            completed_deals_count=sum(
                1 for d in self.store.list_deals()
                if d.match_id in match_ids and d.status == DealStatus.COMPLETED
            ),
            matches_count=len(matches),
        )


# =============================================================================
# Singleton Instance
# =============================================================================

_engine_instance: Optional[BarterEngine] = None


def get_engine() -> BarterEngine:
    """Get the engine singleton used by the web layer."""
    global _engine_instance
    if _engine_instance is None:
        _engine_instance = BarterEngine()
    return _engine_instance


def reset_engine() -> None:
    """Reset the singleton instance (for testing)."""
    global _engine_instance
    _engine_instance = None
