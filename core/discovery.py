"""
Discovery Ranker - Candidate Filtering and Interest Ranking

Turns a user's interest tags and optional position into an ordered list of
listings to swipe on:
- Visibility filter (not own, not hidden, not expired, not sold)
- Optional proximity ordering (haversine distance to listing owner)
- Interest ranking (count of matching tags, stable)

Ranking is a relevance signal, not a filter: listings matching no tags are
kept and ranked last.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Callable, Final, Iterable, Optional, Sequence

from core.models import (
    AvailabilityStatus,
    Listing,
    SortOption,
    UserProfile,
    utc_now,
)


# Earth radius in kilometres
EARTH_RADIUS_KM: Final[float] = 6371.0


def normalise_tags(tags: Iterable[str]) -> tuple[str, ...]:
    """Strip blanks and drop case-insensitive duplicates, keeping first spelling."""
    seen: set[str] = set()
    result = []
    for tag in tags:
        clean = tag.strip()
        if not clean or clean.lower() in seen:
            continue
        seen.add(clean.lower())
        result.append(clean)
    return tuple(result)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two points.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in kilometres
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.asin(math.sqrt(a))


def rank(
    for_user: str,
    interest_tags: Sequence[str],
    candidate_listings: Sequence[Listing],
) -> list[Listing]:
    """
    Order candidates by how many of their tags match the user's interests.

    Args:
        for_user: Requesting user (candidates are already filtered for them)
        interest_tags: Interest tags, compared case-insensitively
        candidate_listings: Pre-filtered candidates in their base order

    Returns:
        Candidates unchanged when there are no interests, otherwise sorted by
        descending match count with ties in input order
    """
    wanted = {tag.strip().lower() for tag in interest_tags if tag.strip()}
    if not wanted:
        return list(candidate_listings)

    def matches(listing: Listing) -> int:
        return sum(1 for tag in listing.tags if tag.lower() in wanted)

    return sorted(candidate_listings, key=matches, reverse=True)


class DiscoveryRanker:
    """
    Applies the discovery visibility rules and orders candidates.

    All methods are pure over their inputs and the reference time.
    """

    def __init__(self, reference_time: Optional[datetime] = None):
        """
        Initialize ranker.

        Args:
            reference_time: Time used for expiry checks (default: now)
        """
        self._reference_time = reference_time

    @property
    def now(self) -> datetime:
        return self._reference_time or utc_now()

    def is_discoverable(self, listing: Listing, for_user: str) -> bool:
        """True if the listing may be shown to for_user."""
        if listing.owner_id == for_user:
            return False
        if listing.hidden:
            return False
        if listing.is_expired(self.now):
            return False
        return listing.availability != AvailabilityStatus.SOLD

    def filter_candidates(
        self,
        for_user: str,
        listings: Iterable[Listing],
        exclude_ids: Iterable[str] = (),
    ) -> list[Listing]:
        excluded = set(exclude_ids)
        return [
            l for l in listings
            if l.id not in excluded and self.is_discoverable(l, for_user)
        ]

    def order_by_distance(
        self,
        listings: Sequence[Listing],
        latitude: float,
        longitude: float,
        owner_lookup: Callable[[str], Optional[UserProfile]],
    ) -> list[Listing]:
        """Nearest owners first; owners without a position go last."""

        def distance(listing: Listing) -> float:
            owner = owner_lookup(listing.owner_id)
            if owner is None or not owner.has_position:
                return math.inf
            return haversine_km(latitude, longitude, owner.latitude, owner.longitude)

        return sorted(listings, key=distance)

    def discover(
        self,
        for_user: str,
        interest_tags: Sequence[str],
        listings: Iterable[Listing],
        exclude_ids: Iterable[str] = (),
        position: Optional[tuple[float, float]] = None,
        owner_lookup: Optional[Callable[[str], Optional[UserProfile]]] = None,
    ) -> list[Listing]:
        """
        Filter, optionally order by proximity, then rank by interests.

        Proximity only breaks ties between listings with the same number of
        matching tags.
        """
        candidates = self.filter_candidates(for_user, listings, exclude_ids)
        if position is not None and owner_lookup is not None:
            candidates = self.order_by_distance(
                candidates, position[0], position[1], owner_lookup
            )
        return rank(for_user, interest_tags, candidates)

    def search(
        self,
        for_user: str,
        listings: Iterable[Listing],
        query: str = "",
        category: Optional[str] = None,
        sort_by: SortOption = SortOption.NEWEST,
    ) -> list[Listing]:
        """
        Text and category search over discoverable listings.

        Args:
            for_user: Requesting user (own listings excluded)
            listings: All listings
            query: Case-insensitive substring of title or description
            category: Tag that must be present (case-insensitive)
            sort_by: Result ordering

        Returns:
            Matching listings in the requested order
        """
        result = self.filter_candidates(for_user, listings)

        needle = query.strip().lower()
        if needle:
            result = [
                l for l in result
                if needle in l.title.lower() or needle in l.description.lower()
            ]

        if category:
            wanted = category.strip().lower()
            result = [l for l in result if any(t.lower() == wanted for t in l.tags)]

        if sort_by == SortOption.PRICE_LOW_HIGH:
            return sorted(
                result,
                key=lambda l: l.estimated_value if l.estimated_value is not None else math.inf,
            )
        if sort_by == SortOption.PRICE_HIGH_LOW:
            return sorted(result, key=lambda l: l.estimated_value or 0.0, reverse=True)
        return sorted(result, key=lambda l: l.created_at, reverse=True)
