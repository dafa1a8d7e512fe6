"""
Profile Directory - The Acting User's Own Profile

Users register themselves by upserting their profile: display name,
location, coordinates and interest tags. Rating and balance belong to other
subsystems; they are carried through unchanged and never written here.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Iterable, Optional

from core.discovery import normalise_tags
from core.errors import NotFoundError, ValidationError
from core.models import UserProfile
from core.store import MarketplaceStore


logger = logging.getLogger(__name__)


def _check_coordinate(value: Optional[float], limit: float, field: str) -> Optional[float]:
    if value is None:
        return None
    if not math.isfinite(value) or abs(value) > limit:
        raise ValidationError(f"{field} must be within ±{limit:g}", field=field)
    return float(value)


class ProfileDirectory:
    """Read and upsert user profiles."""

    def __init__(self, store: MarketplaceStore):
        self._store = store

    def get(self, user_id: str) -> UserProfile:
        user = self._store.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def upsert(
        self,
        user_id: str,
        display_name: Optional[str] = None,
        location: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> UserProfile:
        """
        Create the user's profile, or update the fields given.

        A new profile without a display name uses the user id. Coordinates
        must be given together.

        Raises:
            ValidationError: If the display name is blank, only one coordinate
                is given, or a coordinate is out of range
        """
        if (latitude is None) != (longitude is None):
            raise ValidationError("latitude and longitude must be given together", field="latitude")
        latitude = _check_coordinate(latitude, 90, "latitude")
        longitude = _check_coordinate(longitude, 180, "longitude")

        with self._store.transaction():
            current = self._store.get_user(user_id)
            changes = {}
            if display_name is not None:
                changes["display_name"] = display_name.strip()
                if not changes["display_name"]:
                    raise ValidationError("displayName cannot be blank", field="displayName")
            if location is not None:
                changes["location"] = location.strip()
            if latitude is not None:
                changes["latitude"] = latitude
                changes["longitude"] = longitude

            if current is None:
                changes.setdefault("display_name", user_id)
                profile = UserProfile(id=user_id, **changes)
                logger.info("Profile created for %s", user_id)
            else:
                profile = replace(current, **changes)
            return self._store.save_user(profile)

    def set_interests(self, user_id: str, interests: Iterable[str]) -> UserProfile:
        """Replace the user's interest tags. The profile must exist."""
        with self._store.transaction():
            profile = replace(self.get(user_id), interests=normalise_tags(interests))
            return self._store.save_user(profile)
