"""
In-Memory Marketplace Store

Reference implementation of MarketplaceStore for development and tests.
State lives in dictionaries guarded by one re-entrant lock, with optional
JSON file persistence. Production should use a transactional database.

Atomicity: every write runs inside transaction(), which snapshots the
dictionaries on entry and restores them if the block raises, including when
the JSON file cannot be written. Records are immutable, so shallow copies
are sufficient snapshots.
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Final, Iterator, Optional

from core.errors import NotFoundError, StoreUnavailableError
from core.models import (
    Deal,
    DealStatus,
    Listing,
    Match,
    Message,
    Swipe,
    SwipeAction,
    UserProfile,
    new_id,
    utc_now,
)
from core.store import MarketplaceStore


logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT_SECONDS: Final[float] = 5.0


class InMemoryStore(MarketplaceStore):
    """
    Dictionary-backed store with optional JSON persistence.

    Lock waits are bounded by timeout; exceeding it raises
    StoreUnavailableError instead of blocking.
    """

    def __init__(
        self,
        persist_path: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """
        Initialise the store.

        Args:
            persist_path: Optional path to persist data to a JSON file
            timeout: Seconds to wait for the store lock
        """
        self._lock = threading.RLock()
        self._timeout = timeout
        self._depth = 0
        self._persist_path = Path(persist_path) if persist_path else None

        self._users: dict[str, UserProfile] = {}
        self._listings: dict[str, Listing] = {}
        self._swipes: dict[tuple[str, str], Swipe] = {}
        self._matches: dict[str, Match] = {}
        self._messages: dict[str, tuple[Message, ...]] = {}
        self._read_markers: dict[tuple[str, str], datetime] = {}
        self._deals: dict[str, Deal] = {}

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    # =========================================================================
    # Locking and Transactions
    # =========================================================================

    def _acquire(self) -> None:
        if not self._lock.acquire(timeout=self._timeout):
            raise StoreUnavailableError(
                f"Store did not respond within {self._timeout:.1f}s"
            )

    @contextmanager
    def _reading(self) -> Iterator[None]:
        self._acquire()
        try:
            yield
        finally:
            self._lock.release()

    def _snapshot(self) -> tuple:
        return (
            dict(self._users),
            dict(self._listings),
            dict(self._swipes),
            dict(self._matches),
            dict(self._messages),
            dict(self._read_markers),
            dict(self._deals),
        )

    def _restore(self, snapshot: tuple) -> None:
        (
            self._users,
            self._listings,
            self._swipes,
            self._matches,
            self._messages,
            self._read_markers,
            self._deals,
        ) = snapshot

    @contextmanager
    def transaction(self) -> Iterator["InMemoryStore"]:
        self._acquire()
        snapshot = self._snapshot()
        self._depth += 1
        try:
            yield self
            if self._depth == 1:
                self._save_to_file()
        except BaseException:
            self._restore(snapshot)
            raise
        finally:
            self._depth -= 1
            self._lock.release()

    # =========================================================================
    # Persistence
    # =========================================================================

    def _save_to_file(self) -> None:
        """Persist data to file."""
        if not self._persist_path:
            return

        data = {
            "users": [u.to_dict() for u in self._users.values()],
            "listings": [l.to_dict() for l in self._listings.values()],
            "swipes": [s.to_dict() for s in self._swipes.values()],
            "matches": [m.to_dict() for m in self._matches.values()],
            "messages": [
                m.to_dict() for thread in self._messages.values() for m in thread
            ],
            "readMarkers": [
                {"matchId": mid, "userId": uid, "readAt": ts.isoformat()}
                for (mid, uid), ts in self._read_markers.items()
            ],
            "deals": [d.to_dict() for d in self._deals.values()],
            "savedAt": utc_now().isoformat(),
        }

        try:
            self._persist_path.parent.mkdir(parents=True, exist_ok=True)
            self._persist_path.write_text(json.dumps(data, indent=2))
        except OSError as e:
            logger.error("Could not persist store to %s: %s", self._persist_path, e)
            raise StoreUnavailableError(f"Could not persist store: {e}") from e

    def _load_from_file(self) -> None:
        """Load data from file."""
        try:
            data = json.loads(self._persist_path.read_text())
            for raw in data.get("users", []):
                user = UserProfile.from_dict(raw)
                self._users[user.id] = user
            for raw in data.get("listings", []):
                listing = Listing.from_dict(raw)
                self._listings[listing.id] = listing
            for raw in data.get("swipes", []):
                swipe = Swipe.from_dict(raw)
                self._swipes[swipe.key] = swipe
            for raw in data.get("matches", []):
                match = Match.from_dict(raw)
                self._matches[match.id] = match
            for raw in data.get("messages", []):
                message = Message.from_dict(raw)
                thread = self._messages.get(message.match_id, ())
                self._messages[message.match_id] = thread + (message,)
            for raw in data.get("readMarkers", []):
                key = (raw["matchId"], raw["userId"])
                self._read_markers[key] = datetime.fromisoformat(raw["readAt"])
            for raw in data.get("deals", []):
                deal = Deal.from_dict(raw)
                self._deals[deal.id] = deal
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            # Start fresh rather than refuse to boot
            logger.warning("Could not load store data from %s: %s", self._persist_path, e)

    # =========================================================================
    # Users
    # =========================================================================

    def get_user(self, user_id: str) -> Optional[UserProfile]:
        with self._reading():
            return self._users.get(user_id)

    def save_user(self, user: UserProfile) -> UserProfile:
        with self.transaction():
            self._users[user.id] = user
        return user

    # =========================================================================
    # Listings
    # =========================================================================

    def get_listing(self, listing_id: str) -> Optional[Listing]:
        with self._reading():
            return self._listings.get(listing_id)

    def list_listings(self, owner_id: Optional[str] = None) -> list[Listing]:
        with self._reading():
            return [
                l for l in self._listings.values()
                if owner_id is None or l.owner_id == owner_id
            ]

    def save_listing(self, listing: Listing) -> Listing:
        with self.transaction():
            self._listings[listing.id] = listing
        return listing

    def delete_listing(self, listing_id: str) -> bool:
        with self.transaction():
            return self._listings.pop(listing_id, None) is not None

    # =========================================================================
    # Swipes
    # =========================================================================

    def upsert_swipe(self, swipe: Swipe) -> Swipe:
        with self.transaction():
            self._swipes[swipe.key] = swipe
        return swipe

    def get_swipe(self, user_id: str, listing_id: str) -> Optional[Swipe]:
        with self._reading():
            return self._swipes.get((user_id, listing_id))

    def list_swipes(
        self,
        from_user_id: str,
        action: Optional[SwipeAction] = None,
    ) -> list[Swipe]:
        with self._reading():
            return [
                s for s in self._swipes.values()
                if s.from_user_id == from_user_id
                and (action is None or s.action == action)
            ]

    # =========================================================================
    # Matches
    # =========================================================================

    def get_match(self, match_id: str) -> Optional[Match]:
        with self._reading():
            return self._matches.get(match_id)

    def find_match(self, user_x: str, user_y: str) -> Optional[Match]:
        pair = frozenset((user_x, user_y))
        with self._reading():
            for match in self._matches.values():
                if match.participants == pair:
                    return match
        return None

    def get_or_create_match(
        self,
        user_a_id: str,
        user_b_id: str,
    ) -> tuple[Match, bool]:
        with self.transaction():
            existing = self.find_match(user_a_id, user_b_id)
            if existing:
                return existing, False
            match = Match(
                id=new_id("MATCH"),
                user_a_id=user_a_id,
                user_b_id=user_b_id,
                created_at=utc_now(),
            )
            self._matches[match.id] = match
            return match, True

    def list_matches(self, user_id: str) -> list[Match]:
        with self._reading():
            found = [m for m in self._matches.values() if m.involves(user_id)]
        return sorted(found, key=lambda m: (m.created_at, m.id))

    # =========================================================================
    # Messages
    # =========================================================================

    def append_message(self, message: Message) -> Message:
        with self.transaction():
            thread = self._messages.get(message.match_id, ())
            self._messages[message.match_id] = thread + (message,)
        return message

    def list_messages(self, match_id: str) -> list[Message]:
        with self._reading():
            return list(self._messages.get(match_id, ()))

    def get_read_marker(self, match_id: str, user_id: str) -> Optional[datetime]:
        with self._reading():
            return self._read_markers.get((match_id, user_id))

    def set_read_marker(self, match_id: str, user_id: str, read_at: datetime) -> None:
        with self.transaction():
            self._read_markers[(match_id, user_id)] = read_at

    # =========================================================================
    # Deals
    # =========================================================================

    def insert_deal(self, deal: Deal) -> Deal:
        with self.transaction():
            self._deals[deal.id] = deal
        return deal

    def get_deal(self, deal_id: str) -> Optional[Deal]:
        with self._reading():
            return self._deals.get(deal_id)

    def list_deals(self, match_id: Optional[str] = None) -> list[Deal]:
        with self._reading():
            return [
                d for d in self._deals.values()
                if match_id is None or d.match_id == match_id
            ]

    def compare_and_set_deal_status(
        self,
        deal_id: str,
        expected: DealStatus,
        new_status: DealStatus,
        updated_at: datetime,
    ) -> Optional[Deal]:
        with self.transaction():
            deal = self._deals.get(deal_id)
            if deal is None:
                raise NotFoundError("Deal", deal_id)
            if deal.status != expected:
                return None
            updated = replace(deal, status=new_status, updated_at=updated_at)
            self._deals[deal_id] = updated
            return updated

