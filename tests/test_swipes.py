"""
Tests for the Swipe Ledger and Match Creation

Tests covering:
1. PASS is recorded, idempotent and never creates a match
2. Mutual LIKE creates exactly one match, repeats return the same match
3. Mutuality is strict (owner must have liked one of the swiper's listings)
4. New matches are seeded with a greeting from the listing owner
5. Like / match notifications, including a failing emitter
6. Racing likes between the same pair create a single match
"""

from __future__ import annotations

import threading

import pytest

from core.engine import BarterEngine
from core.errors import NotFoundError, ValidationError
from core.memory_store import InMemoryStore
from core.models import NotificationType, SwipeAction, UserProfile
from core.notifications import NotificationEmitter
from core.swipes import DEFAULT_GREETING
from utils.config import Config


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Engine with three users and one listing each."""
    engine = BarterEngine(store=InMemoryStore(), config=Config())
    for user_id, name in (("me", "Me"), ("u1", "Ana"), ("u2", "Ion")):
        engine.store.save_user(UserProfile(id=user_id, display_name=name))
    return engine


@pytest.fixture
def my_listing(engine):
    return engine.listings.create("me", "Mountain bike", tags=["bikes"], estimated_value=200)


@pytest.fixture
def u1_listing(engine):
    return engine.listings.create("u1", "Guitar lessons", kind="SERVICES", estimated_value=150)


@pytest.fixture
def u2_listing(engine):
    return engine.listings.create("u2", "Bookshelf", estimated_value=80)


# =============================================================================
# Pass
# =============================================================================


class TestPass:
    """Tests for PASS swipes."""

    def test_pass_returns_no_match(self, engine, u1_listing):
        assert engine.swipe("me", u1_listing.id, SwipeAction.PASS) == {"match": None}

    def test_pass_is_idempotent(self, engine, u1_listing):
        engine.swipe("me", u1_listing.id, SwipeAction.PASS)
        engine.swipe("me", u1_listing.id, SwipeAction.PASS)

        assert len(engine.store.list_swipes("me")) == 1
        assert engine.store.get_swipe("me", u1_listing.id).action == SwipeAction.PASS
        assert engine.matches.list_matches("me") == []

    def test_pass_even_when_owner_liked_back(self, engine, my_listing, u1_listing):
        engine.swipe("u1", my_listing.id, SwipeAction.LIKE)
        assert engine.swipe("me", u1_listing.id, SwipeAction.PASS)["match"] is None
        assert engine.matches.list_matches("me") == []

    def test_later_swipe_overwrites_earlier(self, engine, u1_listing):
        engine.swipe("me", u1_listing.id, SwipeAction.LIKE)
        engine.swipe("me", u1_listing.id, SwipeAction.PASS)
        assert engine.store.get_swipe("me", u1_listing.id).action == SwipeAction.PASS
        assert len(engine.store.list_swipes("me")) == 1


# =============================================================================
# Like and Mutual Interest
# =============================================================================


class TestMutualLike:
    """Tests for match creation on mutual LIKE."""

    def test_one_sided_like_no_match(self, engine, u1_listing):
        assert engine.swipe("me", u1_listing.id, SwipeAction.LIKE)["match"] is None

    def test_mutual_like_creates_match(self, engine, my_listing, u1_listing):
        engine.swipe("u1", my_listing.id, SwipeAction.LIKE)
        match = engine.swipe("me", u1_listing.id, SwipeAction.LIKE)["match"]

        assert match is not None
        assert match.user_a_id == "me"
        assert match.user_b_id == "u1"
        assert engine.matches.list_matches("me") == [match]
        assert engine.matches.list_matches("u1") == [match]

    def test_repeat_like_returns_existing_match(self, engine, my_listing, u1_listing):
        engine.swipe("u1", my_listing.id, SwipeAction.LIKE)
        first = engine.swipe("me", u1_listing.id, SwipeAction.LIKE)["match"]
        second = engine.swipe("me", u1_listing.id, SwipeAction.LIKE)["match"]

        assert second.id == first.id
        assert len(engine.matches.list_matches("me")) == 1

    def test_like_on_another_listing_of_matched_owner_reuses_match(self, engine, my_listing, u1_listing):
        engine.swipe("u1", my_listing.id, SwipeAction.LIKE)
        first = engine.swipe("me", u1_listing.id, SwipeAction.LIKE)["match"]
        other = engine.listings.create("u1", "Old camera")
        second = engine.swipe("me", other.id, SwipeAction.LIKE)["match"]

        assert second.id == first.id
        assert len(engine.store.list_messages(first.id)) == 1

    def test_mutuality_is_strict(self, engine, my_listing, u1_listing, u2_listing):
        # u1 liked u2's listing, not one of mine
        engine.swipe("u1", u2_listing.id, SwipeAction.LIKE)
        assert engine.swipe("me", u1_listing.id, SwipeAction.LIKE)["match"] is None

    def test_owner_pass_is_not_interest(self, engine, my_listing, u1_listing):
        engine.swipe("u1", my_listing.id, SwipeAction.PASS)
        assert engine.swipe("me", u1_listing.id, SwipeAction.LIKE)["match"] is None

    def test_no_self_match(self, engine, my_listing):
        with pytest.raises(ValidationError):
            engine.swipe("me", my_listing.id, SwipeAction.LIKE)
        assert len(engine.store.list_swipes("me")) == 0
        assert engine.matches.list_matches("me") == []

    def test_unknown_listing(self, engine):
        with pytest.raises(NotFoundError):
            engine.swipe("me", "LST-MISSING", SwipeAction.LIKE)

    def test_unknown_action(self, engine, u1_listing):
        with pytest.raises(ValidationError):
            engine.swipe("me", u1_listing.id, "SUPERLIKE")

    def test_action_accepts_lowercase_name(self, engine, u1_listing):
        engine.swipe("me", u1_listing.id, "like")
        assert engine.store.get_swipe("me", u1_listing.id).action == SwipeAction.LIKE


# =============================================================================
# Greeting and Enrichment
# =============================================================================


class TestGreeting:
    """Tests for the greeting seeded into new matches."""

    def test_greeting_from_listing_owner(self, engine, my_listing, u1_listing):
        engine.swipe("u1", my_listing.id, SwipeAction.LIKE)
        match = engine.swipe("me", u1_listing.id, SwipeAction.LIKE)["match"]

        messages = engine.store.list_messages(match.id)
        assert len(messages) == 1
        assert messages[0].from_user_id == "u1"
        assert messages[0].text == DEFAULT_GREETING

    def test_swiper_sees_unread_greeting(self, engine, my_listing, u1_listing):
        engine.swipe("u1", my_listing.id, SwipeAction.LIKE)
        match = engine.swipe("me", u1_listing.id, SwipeAction.LIKE)["match"]

        enriched = engine.get_matches("me")
        assert len(enriched) == 1
        payload = enriched[0].to_dict()
        assert payload["match"]["id"] == match.id
        assert payload["match"]["userA"] == "me"
        assert payload["match"]["userB"] == "u1"
        assert payload["lastMessage"]["fromUserId"] == "u1"
        assert payload["unreadCount"] >= 1

    def test_owner_has_nothing_unread(self, engine, my_listing, u1_listing):
        engine.swipe("u1", my_listing.id, SwipeAction.LIKE)
        engine.swipe("me", u1_listing.id, SwipeAction.LIKE)
        assert engine.get_matches("u1")[0].unread_count == 0

    def test_configured_greeting(self):
        engine = BarterEngine(store=InMemoryStore(), config=Config(greeting_text="Salut!"))
        for user_id in ("me", "u1"):
            engine.store.save_user(UserProfile(id=user_id, display_name=user_id))
        mine = engine.listings.create("me", "Bike")
        theirs = engine.listings.create("u1", "Lamp")

        engine.swipe("u1", mine.id, SwipeAction.LIKE)
        match = engine.swipe("me", theirs.id, SwipeAction.LIKE)["match"]
        assert engine.store.list_messages(match.id)[0].text == "Salut!"


# =============================================================================
# Notifications
# =============================================================================


class TestSwipeNotifications:
    """Tests for LIKE_RECEIVED and MATCH_CREATED notifications."""

    def test_like_notifies_owner(self, engine, u1_listing):
        engine.swipe("me", u1_listing.id, SwipeAction.LIKE)

        notes = engine.notifications("u1")
        assert len(notes) == 1
        assert notes[0].type == NotificationType.LIKE_RECEIVED
        assert notes[0].title == "New Like!"
        assert notes[0].related_listing_id == u1_listing.id
        assert "Me" in notes[0].body

    def test_pass_sends_nothing(self, engine, u1_listing):
        engine.swipe("me", u1_listing.id, SwipeAction.PASS)
        assert engine.notifications("u1") == []

    def test_match_notifies_both(self, engine, my_listing, u1_listing):
        engine.swipe("u1", my_listing.id, SwipeAction.LIKE)
        match = engine.swipe("me", u1_listing.id, SwipeAction.LIKE)["match"]

        for user_id in ("me", "u1"):
            created = engine.inbox.list_for(user_id, NotificationType.MATCH_CREATED)
            assert len(created) == 1
            assert created[0].title == "It's a Match!"
            assert created[0].related_match_id == match.id

    def test_repeat_like_does_not_renotify_match(self, engine, my_listing, u1_listing):
        engine.swipe("u1", my_listing.id, SwipeAction.LIKE)
        engine.swipe("me", u1_listing.id, SwipeAction.LIKE)
        engine.swipe("me", u1_listing.id, SwipeAction.LIKE)
        assert len(engine.inbox.list_for("me", NotificationType.MATCH_CREATED)) == 1


class GatewayDownOnLikes(NotificationEmitter):
    """Emitter whose like notifications fail; match notifications are kept."""

    def __init__(self):
        self.sent = []

    def emit(self, recipient_id, kind, payload):
        if kind == NotificationType.LIKE_RECEIVED:
            raise ConnectionError("push gateway down")
        self.sent.append((recipient_id, kind))


class TestFailingEmitter:
    """A failing emitter never fails a committed swipe."""

    @pytest.fixture
    def engine(self):
        emitter = GatewayDownOnLikes()
        engine = BarterEngine(store=InMemoryStore(), emitter=emitter, config=Config())
        for user_id in ("me", "u1"):
            engine.store.save_user(UserProfile(id=user_id, display_name=user_id))
        return engine

    def test_one_sided_like_still_recorded(self, engine):
        theirs = engine.listings.create("u1", "Lamp")
        assert engine.swipe("me", theirs.id, SwipeAction.LIKE) == {"match": None}
        assert engine.store.get_swipe("me", theirs.id).action == SwipeAction.LIKE

    def test_match_returned_and_both_notified(self, engine):
        mine = engine.listings.create("me", "Bike")
        theirs = engine.listings.create("u1", "Lamp")
        engine.swipe("u1", mine.id, SwipeAction.LIKE)

        match = engine.swipe("me", theirs.id, SwipeAction.LIKE)["match"]

        assert match is not None
        assert engine.matches.list_matches("me") == [match]
        assert len(engine.store.list_messages(match.id)) == 1
        assert sorted(engine.emitter.sent) == [
            ("me", NotificationType.MATCH_CREATED),
            ("u1", NotificationType.MATCH_CREATED),
        ]


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrentLikes:
    """Racing likes between the same pair."""

    def test_crossing_likes_create_one_match(self, engine, my_listing, u1_listing):
        barrier = threading.Barrier(2)
        results = {}

        def like(user_id, listing_id):
            barrier.wait()
            results[user_id] = engine.swipe(user_id, listing_id, SwipeAction.LIKE)["match"]

        threads = [
            threading.Thread(target=like, args=("me", u1_listing.id)),
            threading.Thread(target=like, args=("u1", my_listing.id)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        matches = engine.matches.list_matches("me")
        assert len(matches) == 1
        # The second like in serial order completes the pair
        assert [m for m in results.values() if m is not None] == matches
        assert len(engine.store.list_messages(matches[0].id)) == 1

    def test_repeated_parallel_likes_share_match(self, engine, my_listing, u1_listing):
        engine.swipe("u1", my_listing.id, SwipeAction.LIKE)
        barrier = threading.Barrier(8)
        seen = []
        lock = threading.Lock()

        def like():
            barrier.wait()
            match = engine.swipe("me", u1_listing.id, SwipeAction.LIKE)["match"]
            with lock:
                seen.append(match.id)

        threads = [threading.Thread(target=like) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(seen) == 8
        assert len(set(seen)) == 1
        assert len(engine.matches.list_matches("u1")) == 1
        assert len(engine.inbox.list_for("u1", NotificationType.MATCH_CREATED)) == 1
