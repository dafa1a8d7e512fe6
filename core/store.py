"""
Marketplace Store Interface - Abstract Persistence Contract

The engine talks to storage only through this interface. Implementations must
make every method atomic and must support grouping several writes into one
all-or-nothing unit with transaction(). A store that cannot answer within its
timeout raises StoreUnavailableError.

The in-memory reference implementation lives in core.memory_store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Optional

from core.models import (
    Deal,
    DealStatus,
    Listing,
    Match,
    Message,
    Swipe,
    SwipeAction,
    UserProfile,
)


class MarketplaceStore(ABC):
    """
    Abstract storage for users, listings, swipes, matches, messages and deals.

    Listing and user records are owned by external subsystems; the engine only
    reads them, except through the listing registry.
    """

    # =========================================================================
    # Unit of Work
    # =========================================================================

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """
        Group writes into one atomic unit.

        Writes made inside the block become visible together on exit, or not
        at all if the block raises. Blocks may nest.
        """
        pass

    # =========================================================================
    # Users
    # =========================================================================

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[UserProfile]:
        pass

    @abstractmethod
    def save_user(self, user: UserProfile) -> UserProfile:
        pass

    # =========================================================================
    # Listings
    # =========================================================================

    @abstractmethod
    def get_listing(self, listing_id: str) -> Optional[Listing]:
        pass

    @abstractmethod
    def list_listings(self, owner_id: Optional[str] = None) -> list[Listing]:
        """All listings in insertion order, optionally restricted to one owner."""
        pass

    @abstractmethod
    def save_listing(self, listing: Listing) -> Listing:
        pass

    @abstractmethod
    def delete_listing(self, listing_id: str) -> bool:
        pass

    # =========================================================================
    # Swipes
    # =========================================================================

    @abstractmethod
    def upsert_swipe(self, swipe: Swipe) -> Swipe:
        """Insert or overwrite the swipe for (from_user_id, target_listing_id)."""
        pass

    @abstractmethod
    def get_swipe(self, user_id: str, listing_id: str) -> Optional[Swipe]:
        pass

    @abstractmethod
    def list_swipes(
        self,
        from_user_id: str,
        action: Optional[SwipeAction] = None,
    ) -> list[Swipe]:
        pass

    # =========================================================================
    # Matches
    # =========================================================================

    @abstractmethod
    def get_match(self, match_id: str) -> Optional[Match]:
        pass

    @abstractmethod
    def find_match(self, user_x: str, user_y: str) -> Optional[Match]:
        """Find the match between two users regardless of slot order."""
        pass

    @abstractmethod
    def get_or_create_match(
        self,
        user_a_id: str,
        user_b_id: str,
    ) -> tuple[Match, bool]:
        """
        Return the pair's match, creating it if absent.

        Returns:
            Tuple of (match, created)
        """
        pass

    @abstractmethod
    def list_matches(self, user_id: str) -> list[Match]:
        """Matches involving the user, ordered by (created_at, id)."""
        pass

    # =========================================================================
    # Messages
    # =========================================================================

    @abstractmethod
    def append_message(self, message: Message) -> Message:
        pass

    @abstractmethod
    def list_messages(self, match_id: str) -> list[Message]:
        """Messages of a thread in append order."""
        pass

    @abstractmethod
    def get_read_marker(self, match_id: str, user_id: str) -> Optional[datetime]:
        pass

    @abstractmethod
    def set_read_marker(self, match_id: str, user_id: str, read_at: datetime) -> None:
        pass

    # =========================================================================
    # Deals
    # =========================================================================

    @abstractmethod
    def insert_deal(self, deal: Deal) -> Deal:
        pass

    @abstractmethod
    def get_deal(self, deal_id: str) -> Optional[Deal]:
        pass

    @abstractmethod
    def list_deals(self, match_id: Optional[str] = None) -> list[Deal]:
        """Deals in creation order, optionally for one match."""
        pass

    @abstractmethod
    def compare_and_set_deal_status(
        self,
        deal_id: str,
        expected: DealStatus,
        new_status: DealStatus,
        updated_at: datetime,
    ) -> Optional[Deal]:
        """
        Change a deal's status only if it still equals expected.

        Returns:
            The updated deal, or None if the stored status differs

        Raises:
            NotFoundError: If the deal does not exist
        """
        pass
