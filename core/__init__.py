"""
Barter Match Engine - Core Business Logic

This module provides the matching & negotiation engine:
1. Discovery (visibility filter + interest ranking)
2. Swipe Ledger (like/pass, mutual interest, match creation)
3. Match Registry (enrichment with last message and unread count)
4. Deal Negotiation (proposal, status state machine, fairness)
5. Supporting services (listings, chat, notifications, match feed)

Storage is injected through the MarketplaceStore interface.
"""

from .errors import (
    BarterEngineError,
    ValidationError,
    NotFoundError,
    InvalidTransitionError,
    AuthorizationError,
    StoreUnavailableError,
)
from .models import (
    ListingKind,
    ListingStatus,
    AvailabilityStatus,
    SortOption,
    SwipeAction,
    DealStatus,
    NotificationType,
    UserProfile,
    Listing,
    Swipe,
    Match,
    Message,
    DealItem,
    Deal,
    Notification,
    EnrichedMatch,
    DealValueSummary,
    ProfileStats,
    MatchSnapshot,
)
from .store import MarketplaceStore
from .memory_store import InMemoryStore
from .notifications import NotificationEmitter, NotificationInbox
from .discovery import DiscoveryRanker, rank
from .swipes import SwipeLedger
from .matches import MatchRegistry
from .chat import ChatService
from .deals import DealEngine, ALLOWED_TRANSITIONS, can_transition
from .fairness import value_summary, summarize_deal, FAIRNESS_TOLERANCE
from .listings import ListingRegistry
from .profiles import ProfileDirectory
from .feed import MatchFeed
from .engine import BarterEngine, get_engine, reset_engine

__all__ = [
    # Errors
    "BarterEngineError",
    "ValidationError",
    "NotFoundError",
    "InvalidTransitionError",
    "AuthorizationError",
    "StoreUnavailableError",
    # Models
    "ListingKind",
    "ListingStatus",
    "AvailabilityStatus",
    "SortOption",
    "SwipeAction",
    "DealStatus",
    "NotificationType",
    "UserProfile",
    "Listing",
    "Swipe",
    "Match",
    "Message",
    "DealItem",
    "Deal",
    "Notification",
    "EnrichedMatch",
    "DealValueSummary",
    "ProfileStats",
    "MatchSnapshot",
    # Storage
    "MarketplaceStore",
    "InMemoryStore",
    # Notifications
    "NotificationEmitter",
    "NotificationInbox",
    # Engine components
    "DiscoveryRanker",
    "rank",
    "SwipeLedger",
    "MatchRegistry",
    "ChatService",
    "DealEngine",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "value_summary",
    "summarize_deal",
    "FAIRNESS_TOLERANCE",
    "ListingRegistry",
    "ProfileDirectory",
    "MatchFeed",
    # Facade
    "BarterEngine",
    "get_engine",
    "reset_engine",
]
