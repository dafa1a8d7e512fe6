"""
Data models for the barter match engine.

Stored records (listings, swipes, matches, messages, deals) are frozen
dataclasses: the store replaces records rather than mutating them, so a
snapshot of the store's dictionaries is enough to roll back a failed write.
Views (EnrichedMatch, DealValueSummary, ProfileStats, MatchSnapshot) are
computed on read and never persisted.

Serialised field names follow the public wire contract (camelCase).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Generate a unique record ID such as DEAL-3F2A9C01B7E4."""
    return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


# =============================================================================
# Enums
# =============================================================================


class ListingKind(Enum):
    """What a listing offers."""

    GOODS = "GOODS"
    SERVICES = "SERVICES"
    BOTH = "BOTH"


class ListingStatus(Enum):
    """Derived visibility status of a listing."""

    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    HIDDEN = "HIDDEN"


class AvailabilityStatus(Enum):
    """Availability lifecycle set by the listing owner."""

    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    SOLD = "SOLD"


class SortOption(Enum):
    """Sort orders for listing search."""

    NEWEST = "NEWEST"
    PRICE_LOW_HIGH = "PRICE_LOW_HIGH"
    PRICE_HIGH_LOW = "PRICE_HIGH_LOW"


class SwipeAction(Enum):
    """A user's decision on a listing."""

    LIKE = "LIKE"
    PASS = "PASS"


class DealStatus(Enum):
    """Lifecycle status of a deal proposal."""

    PROPOSED = "PROPOSED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class NotificationType(Enum):
    """Events delivered to the notification emitter."""

    LIKE_RECEIVED = "LIKE_RECEIVED"
    MATCH_CREATED = "MATCH_CREATED"


# Deals in these states still bind the listings they reference
OPEN_DEAL_STATUSES = frozenset({DealStatus.PROPOSED, DealStatus.ACCEPTED})


# =============================================================================
# Users
# =============================================================================


@dataclass(frozen=True)
class UserProfile:
    """
    A user's public profile.

    Rating is maintained by the review subsystem and balance by the wallet;
    both are only read here.
    """

    id: str
    display_name: str
    location: str = ""
    rating: float = 0.0
    balance: float = 0.0
    interests: tuple[str, ...] = ()
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "location": self.location,
            "rating": self.rating,
            "balance": self.balance,
            "interests": list(self.interests),
            "latitude": self.latitude,
            "longitude": self.longitude,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UserProfile":
        return cls(
            id=data["id"],
            display_name=data["displayName"],
            location=data.get("location", ""),
            rating=data.get("rating", 0.0),
            balance=data.get("balance", 0.0),
            interests=tuple(data.get("interests", ())),
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
        )


# =============================================================================
# Listings
# =============================================================================


@dataclass(frozen=True)
class Listing:
    """A barter offer of goods and/or services, owned by one user."""

    id: str
    owner_id: str
    kind: ListingKind
    title: str
    description: str = ""
    tags: tuple[str, ...] = ()
    estimated_value: Optional[float] = None
    created_at: datetime = field(default_factory=utc_now)
    valid_until: Optional[datetime] = None
    hidden: bool = False
    availability: AvailabilityStatus = AvailabilityStatus.AVAILABLE

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True when valid_until is set and already in the past."""
        if self.valid_until is None:
            return False
        return self.valid_until < (now or utc_now())

    def status(self, now: Optional[datetime] = None) -> ListingStatus:
        if self.hidden:
            return ListingStatus.HIDDEN
        if self.is_expired(now):
            return ListingStatus.EXPIRED
        return ListingStatus.ACTIVE

    def days_remaining(self, now: Optional[datetime] = None) -> Optional[int]:
        """Whole days left before expiry, 0 once expired, None if open-ended."""
        if self.valid_until is None:
            return None
        remaining = self.valid_until - (now or utc_now())
        return max(0, remaining.days)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "kind": self.kind.value,
            "title": self.title,
            "description": self.description,
            "tags": list(self.tags),
            "estimatedValue": self.estimated_value,
            "createdAt": _iso(self.created_at),
            "validUntil": _iso(self.valid_until),
            "hidden": self.hidden,
            "availability": self.availability.value,
            "status": self.status().value,
            "daysRemaining": self.days_remaining(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Listing":
        return cls(
            id=data["id"],
            owner_id=data["ownerId"],
            kind=ListingKind(data["kind"]),
            title=data["title"],
            description=data.get("description", ""),
            tags=tuple(data.get("tags", ())),
            estimated_value=data.get("estimatedValue"),
            created_at=_parse(data["createdAt"]),
            valid_until=_parse(data.get("validUntil")),
            hidden=data.get("hidden", False),
            availability=AvailabilityStatus(data.get("availability", "AVAILABLE")),
        )


# =============================================================================
# Swipes, Matches, Messages
# =============================================================================


@dataclass(frozen=True)
class Swipe:
    """Latest like/pass decision of one user on one listing."""

    from_user_id: str
    target_listing_id: str
    action: SwipeAction
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def key(self) -> tuple[str, str]:
        return (self.from_user_id, self.target_listing_id)

    def to_dict(self) -> dict:
        return {
            "fromUserId": self.from_user_id,
            "targetListingId": self.target_listing_id,
            "action": self.action.value,
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Swipe":
        return cls(
            from_user_id=data["fromUserId"],
            target_listing_id=data["targetListingId"],
            action=SwipeAction(data["action"]),
            timestamp=_parse(data["timestamp"]),
        )


@dataclass(frozen=True)
class Match:
    """
    Pairing of two users created on mutual interest.

    user_a is the user whose like completed the pair, user_b the owner of the
    listing that was liked. The pair itself is unordered for uniqueness.
    """

    id: str
    user_a_id: str
    user_b_id: str
    created_at: datetime = field(default_factory=utc_now)

    @property
    def participants(self) -> frozenset[str]:
        return frozenset((self.user_a_id, self.user_b_id))

    def involves(self, user_id: str) -> bool:
        return user_id in (self.user_a_id, self.user_b_id)

    def other_participant(self, user_id: str) -> str:
        return self.user_b_id if user_id == self.user_a_id else self.user_a_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userA": self.user_a_id,
            "userB": self.user_b_id,
            "createdAt": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Match":
        return cls(
            id=data["id"],
            user_a_id=data["userA"],
            user_b_id=data["userB"],
            created_at=_parse(data["createdAt"]),
        )


@dataclass(frozen=True)
class Message:
    """A chat message inside a match thread."""

    id: str
    match_id: str
    from_user_id: str
    text: str
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "matchId": self.match_id,
            "fromUserId": self.from_user_id,
            "text": self.text,
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        return cls(
            id=data["id"],
            match_id=data["matchId"],
            from_user_id=data["fromUserId"],
            text=data["text"],
            timestamp=_parse(data["timestamp"]),
        )


# =============================================================================
# Deals
# =============================================================================


@dataclass(frozen=True)
class DealItem:
    """One item on either side of a deal. Owned structurally by that side."""

    id: str
    title: str
    kind: ListingKind = ListingKind.GOODS
    estimated_value: Optional[float] = None
    listing_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "kind": self.kind.value,
            "estimatedValue": self.estimated_value,
            "listingId": self.listing_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DealItem":
        return cls(
            id=data.get("id") or "",
            title=data.get("title", ""),
            kind=ListingKind(data.get("kind", "GOODS")),
            estimated_value=data.get("estimatedValue"),
            listing_id=data.get("listingId"),
        )


@dataclass(frozen=True)
class Deal:
    """
    A structured exchange proposal scoped to a match.

    Items are fixed at creation. Only the status changes afterwards; new terms
    require a new proposal.
    """

    id: str
    match_id: str
    proposer_user_id: str
    offer: tuple[DealItem, ...]
    request: tuple[DealItem, ...]
    status: DealStatus = DealStatus.PROPOSED
    created_at: datetime = field(default_factory=utc_now)
    cash_top_up: float = 0.0
    note: str = ""
    updated_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_DEAL_STATUSES

    @property
    def items(self) -> tuple[DealItem, ...]:
        return self.offer + self.request

    def references_listing(self, listing_id: str) -> bool:
        return any(item.listing_id == listing_id for item in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "matchId": self.match_id,
            "proposerUserId": self.proposer_user_id,
            "offer": [item.to_dict() for item in self.offer],
            "request": [item.to_dict() for item in self.request],
            "status": self.status.value,
            "createdAt": _iso(self.created_at),
            "cashTopUp": self.cash_top_up,
            "note": self.note,
            "updatedAt": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Deal":
        return cls(
            id=data["id"],
            match_id=data["matchId"],
            proposer_user_id=data["proposerUserId"],
            offer=tuple(DealItem.from_dict(i) for i in data.get("offer", [])),
            request=tuple(DealItem.from_dict(i) for i in data.get("request", [])),
            status=DealStatus(data["status"]),
            created_at=_parse(data["createdAt"]),
            cash_top_up=data.get("cashTopUp", 0.0),
            note=data.get("note", ""),
            updated_at=_parse(data.get("updatedAt")),
        )


# =============================================================================
# Notifications
# =============================================================================


@dataclass(frozen=True)
class Notification:
    """A notification recorded for one recipient."""

    id: str
    recipient_user_id: str
    type: NotificationType
    title: str
    body: str
    related_listing_id: Optional[str] = None
    related_match_id: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)
    is_read: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "recipientUserId": self.recipient_user_id,
            "type": self.type.value,
            "title": self.title,
            "body": self.body,
            "relatedListingId": self.related_listing_id,
            "relatedMatchId": self.related_match_id,
            "timestamp": _iso(self.timestamp),
            "isRead": self.is_read,
        }


# =============================================================================
# Views (computed on read, never stored)
# =============================================================================


@dataclass(frozen=True)
class EnrichedMatch:
    """A match with its latest message and the viewer's unread count."""

    match: Match
    last_message: Optional[Message] = None
    unread_count: int = 0

    def to_dict(self) -> dict:
        return {
            "match": self.match.to_dict(),
            "lastMessage": self.last_message.to_dict() if self.last_message else None,
            "unreadCount": self.unread_count,
        }


@dataclass(frozen=True)
class DealValueSummary:
    """Advisory value comparison of the two sides of a deal."""

    offer_total: float
    request_total: float
    difference: float
    suggested_top_up: float
    is_fair: bool

    def to_dict(self) -> dict:
        return {
            "offerTotal": self.offer_total,
            "requestTotal": self.request_total,
            "difference": self.difference,
            "suggestedTopUp": self.suggested_top_up,
            "isFair": self.is_fair,
        }


@dataclass(frozen=True)
class ProfileStats:
    active_listings_count: int = 0
    completed_deals_count: int = 0
    matches_count: int = 0

    def to_dict(self) -> dict:
        return {
            "activeListingsCount": self.active_listings_count,
            "completedDealsCount": self.completed_deals_count,
            "matchesCount": self.matches_count,
        }


@dataclass(frozen=True)
class MatchSnapshot:
    """Point-in-time state of a match thread, delivered to feed subscribers."""

    match_id: str
    messages: tuple[Message, ...]
    deals: tuple[Deal, ...]
    taken_at: datetime = field(default_factory=utc_now)
