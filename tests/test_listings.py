"""
Tests for the Listing Registry

Tests covering:
1. Creation and validation
2. Owner-only edits, visibility and availability changes
3. Deletion guard while an open deal references the listing
4. Listing status and expiry helpers
5. Profile stats
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from core.engine import BarterEngine
from core.errors import AuthorizationError, NotFoundError, ValidationError
from core.memory_store import InMemoryStore
from core.models import (
    AvailabilityStatus,
    DealItem,
    DealStatus,
    Listing,
    ListingKind,
    ListingStatus,
    SwipeAction,
    UserProfile,
    utc_now,
)
from utils.config import Config


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def engine():
    engine = BarterEngine(store=InMemoryStore(), config=Config())
    for user_id in ("me", "u1"):
        engine.store.save_user(UserProfile(id=user_id, display_name=user_id))
    return engine


@pytest.fixture
def bike(engine):
    return engine.listings.create(
        "me", " Mountain bike ", description="27 gears", tags=["Bikes", "sport", "bikes"],
        estimated_value=250,
    )


# =============================================================================
# Creation and Edits
# =============================================================================


class TestCreate:
    """Tests for listing creation."""

    def test_create(self, bike):
        assert bike.id.startswith("LST-")
        assert bike.title == "Mountain bike"
        assert bike.tags == ("Bikes", "sport")
        assert bike.kind == ListingKind.GOODS
        assert bike.availability == AvailabilityStatus.AVAILABLE
        assert bike.status() == ListingStatus.ACTIVE

    def test_unknown_owner(self, engine):
        with pytest.raises(NotFoundError):
            engine.listings.create("ghost", "Lamp")

    def test_blank_title(self, engine):
        with pytest.raises(ValidationError):
            engine.listings.create("me", "   ")

    def test_negative_value(self, engine):
        with pytest.raises(ValidationError):
            engine.listings.create("me", "Lamp", estimated_value=-1)

    def test_unknown_kind(self, engine):
        with pytest.raises(ValidationError):
            engine.listings.create("me", "Lamp", kind="VEHICLE")

    def test_naive_expiry_treated_as_utc(self, engine):
        listing = engine.listings.create("me", "Lamp", valid_until=datetime(2000, 1, 1))
        assert listing.valid_until.tzinfo is not None
        assert listing.status() == ListingStatus.EXPIRED


class TestOwnerOperations:
    """Only the owner may change a listing."""

    def test_update(self, engine, bike):
        updated = engine.listings.update("me", bike.id, title="Road bike", estimated_value=300)
        assert updated.title == "Road bike"
        assert updated.estimated_value == 300
        assert updated.description == "27 gears"

    def test_clear_optional_fields(self, engine):
        listing = engine.listings.create(
            "me", "Lamp", estimated_value=20, valid_until=datetime(2099, 1, 1, tzinfo=timezone.utc)
        )
        cleared = engine.listings.update("me", listing.id, clear=["estimated_value", "valid_until"])
        assert cleared.estimated_value is None
        assert cleared.valid_until is None
        assert cleared.title == "Lamp"

    def test_clear_required_field_rejected(self, engine, bike):
        with pytest.raises(ValidationError):
            engine.listings.update("me", bike.id, clear=["title"])
        assert engine.listings.get(bike.id) == bike

    def test_update_by_other_user(self, engine, bike):
        with pytest.raises(AuthorizationError):
            engine.listings.update("u1", bike.id, title="Mine now")

    def test_toggle_visibility(self, engine, bike):
        hidden = engine.listings.toggle_visibility("me", bike.id)
        assert hidden.hidden
        assert hidden.status() == ListingStatus.HIDDEN
        assert not engine.listings.toggle_visibility("me", bike.id).hidden

    def test_set_availability(self, engine, bike):
        sold = engine.listings.set_availability("me", bike.id, "sold")
        assert sold.availability == AvailabilityStatus.SOLD
        assert engine.discover("u1", []) == []

    def test_set_availability_unknown_value(self, engine, bike):
        with pytest.raises(ValidationError):
            engine.listings.set_availability("me", bike.id, "GONE")

    def test_my_listings(self, engine, bike):
        engine.listings.create("u1", "Lamp")
        assert engine.listings.my_listings("me") == [bike]


# =============================================================================
# Deletion
# =============================================================================


class TestDelete:
    """Tests for deletion and the open-deal guard."""

    @pytest.fixture
    def deal(self, engine, bike):
        lamp = engine.listings.create("u1", "Lamp")
        engine.swipe("u1", bike.id, SwipeAction.LIKE)
        match = engine.swipe("me", lamp.id, SwipeAction.LIKE)["match"]
        return engine.propose_deal(
            "u1", match.id,
            [DealItem(id="", title="Lamp", listing_id=lamp.id)],
            [DealItem(id="", title="Bike", listing_id=bike.id)],
        )

    def test_delete(self, engine, bike):
        engine.listings.delete("me", bike.id)
        with pytest.raises(NotFoundError):
            engine.listings.get(bike.id)

    def test_delete_by_other_user(self, engine, bike):
        with pytest.raises(AuthorizationError):
            engine.listings.delete("u1", bike.id)
        assert engine.listings.get(bike.id) == bike

    def test_open_deal_blocks_delete(self, engine, bike, deal):
        with pytest.raises(ValidationError):
            engine.listings.delete("me", bike.id)
        assert engine.listings.get(bike.id) == bike

    def test_closed_deal_allows_delete(self, engine, bike, deal):
        engine.update_deal_status("me", deal.id, DealStatus.REJECTED)
        engine.listings.delete("me", bike.id)
        assert engine.listings.my_listings("me") == []


# =============================================================================
# Model Helpers and Stats
# =============================================================================


class TestListingModel:
    """Tests for listing status helpers."""

    NOW = datetime(2026, 1, 10, tzinfo=timezone.utc)

    def make(self, **kwargs):
        return Listing(id="L", owner_id="me", kind=ListingKind.GOODS, title="x", **kwargs)

    def test_open_ended(self):
        listing = self.make()
        assert not listing.is_expired(self.NOW)
        assert listing.days_remaining(self.NOW) is None

    def test_days_remaining(self):
        listing = self.make(valid_until=self.NOW + timedelta(days=3, hours=2))
        assert listing.days_remaining(self.NOW) == 3

    def test_expired_clamps_to_zero(self):
        listing = self.make(valid_until=self.NOW - timedelta(days=1))
        assert listing.is_expired(self.NOW)
        assert listing.days_remaining(self.NOW) == 0
        assert listing.status(self.NOW) == ListingStatus.EXPIRED

    def test_days_remaining_serialised(self):
        listing = self.make(valid_until=utc_now() + timedelta(days=5, hours=1))
        assert listing.to_dict()["daysRemaining"] == 5
        assert self.make().to_dict()["daysRemaining"] is None

    def test_hidden_wins_over_expired(self):
        listing = self.make(hidden=True, valid_until=self.NOW - timedelta(days=1))
        assert listing.status(self.NOW) == ListingStatus.HIDDEN


class TestProfileStats:
    """Tests for profile stats."""

    def test_counts(self, engine, bike):
        engine.listings.create("me", "Old lamp", valid_until=datetime(2000, 1, 1, tzinfo=timezone.utc))
        lamp = engine.listings.create("u1", "Lamp")
        engine.swipe("u1", bike.id, SwipeAction.LIKE)
        match = engine.swipe("me", lamp.id, SwipeAction.LIKE)["match"]
        deal = engine.propose_deal("me", match.id, [DealItem(id="", title="Bike")], [])
        engine.update_deal_status("u1", deal.id, DealStatus.ACCEPTED)
        engine.update_deal_status("u1", deal.id, DealStatus.COMPLETED)

        stats = engine.profile_stats("me").to_dict()
        assert stats == {
            "activeListingsCount": 1,
            "completedDealsCount": 1,
            "matchesCount": 1,
        }
