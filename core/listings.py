"""
Listing Registry - Owner-Scoped Listing Lifecycle

Create, edit, hide/show, change availability and delete listings. Every
change is restricted to the listing's owner. A listing cannot be deleted
while an open (proposed or accepted) deal references it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, Optional, Union

from core.discovery import normalise_tags
from core.errors import AuthorizationError, NotFoundError, ValidationError
from core.models import (
    AvailabilityStatus,
    Listing,
    ListingKind,
    new_id,
    utc_now,
)
from core.store import MarketplaceStore


logger = logging.getLogger(__name__)


def _check_value(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    if not math.isfinite(value) or value < 0:
        raise ValidationError("estimatedValue must be a non-negative number", field="estimatedValue")
    return float(value)


def _check_title(title: str) -> str:
    clean = (title or "").strip()
    if not clean:
        raise ValidationError("Listing title is required", field="title")
    return clean


def _check_expiry(valid_until: Optional[datetime]) -> Optional[datetime]:
    if valid_until is not None and valid_until.tzinfo is None:
        return valid_until.replace(tzinfo=timezone.utc)
    return valid_until


def _parse_enum(enum_cls, value, field: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown {field}: {value}", field=field)


class ListingRegistry:
    """Owner-side listing operations over the store."""

    # Optional fields an owner may reset to unset
    CLEARABLE = frozenset({"estimated_value", "valid_until"})

    def __init__(self, store: MarketplaceStore):
        self._store = store

    def get(self, listing_id: str) -> Listing:
        listing = self._store.get_listing(listing_id)
        if listing is None:
            raise NotFoundError("Listing", listing_id)
        return listing

    def _require_owner(self, actor: str, listing_id: str) -> Listing:
        listing = self.get(listing_id)
        if listing.owner_id != actor:
            raise AuthorizationError(f"User {actor} does not own listing {listing_id}")
        return listing

    def create(
        self,
        owner: str,
        title: str,
        description: str = "",
        kind: Union[ListingKind, str] = ListingKind.GOODS,
        tags: Iterable[str] = (),
        estimated_value: Optional[float] = None,
        valid_until: Optional[datetime] = None,
    ) -> Listing:
        """
        Create a listing for an existing user.

        Raises:
            NotFoundError: If the owner is unknown
            ValidationError: If the title is blank, the kind is unknown or
                the value is negative
        """
        if self._store.get_user(owner) is None:
            raise NotFoundError("User", owner)

        listing = Listing(
            id=new_id("LST"),
            owner_id=owner,
            kind=_parse_enum(ListingKind, kind, "kind"),
            title=_check_title(title),
            description=(description or "").strip(),
            tags=normalise_tags(tags),
            estimated_value=_check_value(estimated_value),
            created_at=utc_now(),
            valid_until=_check_expiry(valid_until),
        )
        self._store.save_listing(listing)
        logger.info("Listing %s created by %s", listing.id, owner)
        return listing

    def update(
        self,
        actor: str,
        listing_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        kind: Optional[Union[ListingKind, str]] = None,
        tags: Optional[Iterable[str]] = None,
        estimated_value: Optional[float] = None,
        valid_until: Optional[datetime] = None,
        clear: Iterable[str] = (),
    ) -> Listing:
        """
        Edit listing fields.

        Arguments left as None keep their value. Field names in clear
        (estimated_value, valid_until) are reset to None.
        """
        clear = set(clear)
        unknown = clear - self.CLEARABLE
        if unknown:
            raise ValidationError(f"Cannot clear fields: {', '.join(sorted(unknown))}", field="clear")

        listing = self._require_owner(actor, listing_id)
        changes = {name: None for name in clear}
        if title is not None:
            changes["title"] = _check_title(title)
        if description is not None:
            changes["description"] = description.strip()
        if kind is not None:
            changes["kind"] = _parse_enum(ListingKind, kind, "kind")
        if tags is not None:
            changes["tags"] = normalise_tags(tags)
        if estimated_value is not None:
            changes["estimated_value"] = _check_value(estimated_value)
        if valid_until is not None:
            changes["valid_until"] = _check_expiry(valid_until)
        return self._store.save_listing(replace(listing, **changes))

    def toggle_visibility(self, actor: str, listing_id: str) -> Listing:
        listing = self._require_owner(actor, listing_id)
        return self._store.save_listing(replace(listing, hidden=not listing.hidden))

    def set_availability(
        self,
        actor: str,
        listing_id: str,
        availability: Union[AvailabilityStatus, str],
    ) -> Listing:
        listing = self._require_owner(actor, listing_id)
        status = _parse_enum(AvailabilityStatus, availability, "availability")
        return self._store.save_listing(replace(listing, availability=status))

    def delete(self, actor: str, listing_id: str) -> None:
        """
        Delete a listing.

        Raises:
            ValidationError: If an open deal still references the listing
        """
        with self._store.transaction():
            self._require_owner(actor, listing_id)
            blocking = [
                d.id for d in self._store.list_deals()
                if d.is_open and d.references_listing(listing_id)
            ]
            if blocking:
                raise ValidationError(
                    f"Listing {listing_id} is referenced by open deals: {', '.join(blocking)}"
                )
            self._store.delete_listing(listing_id)
        logger.info("Listing %s deleted by %s", listing_id, actor)

    def my_listings(self, owner: str) -> list[Listing]:
        return self._store.list_listings(owner_id=owner)
