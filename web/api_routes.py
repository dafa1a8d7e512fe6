"""
Marketplace API Routes - JSON API for Matching & Negotiation

Every route acts on behalf of the user named in the X-User-Id header.
Authentication itself happens upstream; a request without the header is
rejected with 401.

Engine errors propagate to the exception handlers registered in web.app,
which map them to HTTP status codes.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.engine import BarterEngine, get_engine
from core.errors import ValidationError
from core.fairness import describe_summary, tolerance_band
from core.models import DealItem, ListingKind
from utils.formatting import format_percent


# =============================================================================
# Router Setup
# =============================================================================

router = APIRouter(prefix="/api", tags=["marketplace"])


def get_barter_engine() -> BarterEngine:
    """Engine dependency. Tests override this to inject a fresh engine."""
    return get_engine()


def require_user(x_user_id: Optional[str] = Header(None)) -> str:
    """
    Dependency that resolves the acting user.

    Raises HTTPException(401) if the X-User-Id header is missing or blank.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return x_user_id.strip()


# =============================================================================
# Request Models
# =============================================================================


class ProfileRequest(BaseModel):
    """Profile upsert; omitted fields keep their value."""
    displayName: Optional[str] = None
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class InterestsRequest(BaseModel):
    interests: List[str]


class CreateListingRequest(BaseModel):
    """Request body for listing creation."""
    title: str
    description: str = ""
    kind: str = ListingKind.GOODS.value
    tags: List[str] = []
    estimatedValue: Optional[float] = None
    validUntil: Optional[datetime] = None


class UpdateListingRequest(BaseModel):
    """
    Partial listing edit; omitted fields keep their value.

    Sending null for estimatedValue or validUntil clears it.
    """
    title: Optional[str] = None
    description: Optional[str] = None
    kind: Optional[str] = None
    tags: Optional[List[str]] = None
    estimatedValue: Optional[float] = None
    validUntil: Optional[datetime] = None

    def cleared_fields(self) -> List[str]:
        """Optional fields sent explicitly as null."""
        sent = {"estimatedValue": "estimated_value", "validUntil": "valid_until"}
        return [
            name for wire, name in sent.items()
            if wire in self.model_fields_set and getattr(self, wire) is None
        ]


class AvailabilityRequest(BaseModel):
    availability: str


class SwipeRequest(BaseModel):
    action: str  # LIKE or PASS


class MessageRequest(BaseModel):
    text: str


class DealItemIn(BaseModel):
    """One item on either side of a proposed deal."""
    title: str
    kind: str = ListingKind.GOODS.value
    estimatedValue: Optional[float] = None
    listingId: Optional[str] = None

    def to_item(self) -> DealItem:
        try:
            kind = ListingKind(self.kind.strip().upper())
        except ValueError:
            raise ValidationError(f"Unknown item kind: {self.kind}", field="kind")
        return DealItem(
            id="",
            title=self.title,
            kind=kind,
            estimated_value=self.estimatedValue,
            listing_id=self.listingId,
        )


class ProposeDealRequest(BaseModel):
    """Request body for a deal proposal."""
    offer: List[DealItemIn] = []
    request: List[DealItemIn] = []
    cashTopUp: float = 0.0
    note: str = ""


class UpdateDealStatusRequest(BaseModel):
    status: str


class ValueSummaryRequest(BaseModel):
    offerTotal: float
    requestTotal: float


# =============================================================================
# Profile
# =============================================================================


@router.get("/users/me")
def get_profile(
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    return JSONResponse(engine.get_profile(user_id).to_dict())


@router.put("/users/me")
def upsert_profile(
    body: ProfileRequest,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    """Register the acting user, or update the profile fields sent."""
    profile = engine.upsert_profile(
        user_id,
        display_name=body.displayName,
        location=body.location,
        latitude=body.latitude,
        longitude=body.longitude,
    )
    return JSONResponse(profile.to_dict())


@router.put("/users/me/interests")
def set_interests(
    body: InterestsRequest,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    return JSONResponse(engine.set_interests(user_id, body.interests).to_dict())


# =============================================================================
# Discovery & Search
# =============================================================================


@router.get("/discovery")
def discovery(
    tags: Optional[str] = Query(None, description="Comma-separated interest tags"),
    lat: Optional[float] = Query(None),
    lng: Optional[float] = Query(None),
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    """
    Listings to swipe on, most relevant first.

    Without a tags parameter the user's profile interests are used.
    """
    interest_tags = tags.split(",") if tags is not None else None
    listings = engine.discover(user_id, interest_tags, latitude=lat, longitude=lng)
    return JSONResponse([l.to_dict() for l in listings])


@router.get("/listings/search")
def search_listings(
    q: str = Query("", description="Text to look for in title or description"),
    category: Optional[str] = Query(None),
    sort: str = Query("NEWEST"),
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    listings = engine.search(user_id, q, category, sort)
    return JSONResponse([l.to_dict() for l in listings])


# =============================================================================
# Listings
# =============================================================================


@router.post("/listings", status_code=201)
def create_listing(
    body: CreateListingRequest,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    listing = engine.listings.create(
        user_id,
        title=body.title,
        description=body.description,
        kind=body.kind,
        tags=body.tags,
        estimated_value=body.estimatedValue,
        valid_until=body.validUntil,
    )
    return JSONResponse(listing.to_dict(), status_code=201)


@router.get("/listings/mine")
def my_listings(
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    return JSONResponse([l.to_dict() for l in engine.listings.my_listings(user_id)])


@router.get("/listings/{listing_id}")
def get_listing(
    listing_id: str,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    return JSONResponse(engine.listings.get(listing_id).to_dict())


@router.patch("/listings/{listing_id}")
def update_listing(
    listing_id: str,
    body: UpdateListingRequest,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    listing = engine.listings.update(
        user_id,
        listing_id,
        title=body.title,
        description=body.description,
        kind=body.kind,
        tags=body.tags,
        estimated_value=body.estimatedValue,
        valid_until=body.validUntil,
        clear=body.cleared_fields(),
    )
    return JSONResponse(listing.to_dict())


@router.patch("/listings/{listing_id}/visibility")
def toggle_visibility(
    listing_id: str,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    return JSONResponse(engine.listings.toggle_visibility(user_id, listing_id).to_dict())


@router.patch("/listings/{listing_id}/availability")
def set_availability(
    listing_id: str,
    body: AvailabilityRequest,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    listing = engine.listings.set_availability(user_id, listing_id, body.availability)
    return JSONResponse(listing.to_dict())


@router.delete("/listings/{listing_id}")
def delete_listing(
    listing_id: str,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    engine.listings.delete(user_id, listing_id)
    return JSONResponse({"deleted": listing_id})


# =============================================================================
# Swipes & Matches
# =============================================================================


@router.post("/swipe/{listing_id}")
def swipe(
    listing_id: str,
    body: SwipeRequest,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    """Record a like or pass. The response carries the match, if any."""
    match = engine.swipe(user_id, listing_id, body.action)["match"]
    return JSONResponse({"match": match.to_dict() if match else None})


@router.get("/matches")
def list_matches(
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    """The user's matches with last message and unread count."""
    return JSONResponse([m.to_dict() for m in engine.get_matches(user_id)])


@router.get("/matches/{match_id}/messages")
def list_messages(
    match_id: str,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    return JSONResponse([m.to_dict() for m in engine.list_messages(user_id, match_id)])


@router.post("/matches/{match_id}/messages", status_code=201)
def send_message(
    match_id: str,
    body: MessageRequest,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    message = engine.send_message(user_id, match_id, body.text)
    return JSONResponse(message.to_dict(), status_code=201)


@router.post("/matches/{match_id}/read")
def mark_read(
    match_id: str,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    return JSONResponse({"unreadCount": engine.mark_read(user_id, match_id)})


# =============================================================================
# Deals
# =============================================================================


@router.get("/matches/{match_id}/deals")
def list_deals(
    match_id: str,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    return JSONResponse([d.to_dict() for d in engine.list_deals(user_id, match_id)])


@router.post("/matches/{match_id}/deals", status_code=201)
def propose_deal(
    match_id: str,
    body: ProposeDealRequest,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    """Propose a deal. The response includes the advisory value summary."""
    deal = engine.propose_deal(
        user_id,
        match_id,
        [item.to_item() for item in body.offer],
        [item.to_item() for item in body.request],
        cash_top_up=body.cashTopUp,
        note=body.note,
    )
    payload = deal.to_dict()
    payload["valueSummary"] = engine.deals.summarize(deal).to_dict()
    return JSONResponse(payload, status_code=201)


@router.post("/deals/value-summary")
def deal_value_summary(
    body: ValueSummaryRequest,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    """Advisory fairness check for two declared totals."""
    summary = engine.value_summary(body.offerTotal, body.requestTotal)
    tolerance = engine.config.fairness_tolerance
    payload = summary.to_dict()
    payload.update({
        "verdict": describe_summary(summary, engine.config.currency),
        "tolerance": format_percent(tolerance),
        "toleranceBand": tolerance_band(summary, tolerance),
    })
    return JSONResponse(payload)


@router.patch("/deals/{deal_id}")
def update_deal_status(
    deal_id: str,
    body: UpdateDealStatusRequest,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    return JSONResponse(engine.update_deal_status(user_id, deal_id, body.status).to_dict())


# =============================================================================
# Notifications, Stats & Badges
# =============================================================================


@router.get("/notifications")
def list_notifications(
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    return JSONResponse([n.to_dict() for n in engine.notifications(user_id)])


@router.get("/notifications/unread-count")
def unread_notifications(
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    return JSONResponse({"unreadCount": engine.unread_notification_count(user_id)})


@router.patch("/notifications/{notification_id}/read")
def mark_notification_read(
    notification_id: str,
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    return JSONResponse(engine.mark_notification_read(user_id, notification_id).to_dict())


@router.get("/users/me/stats")
def my_stats(
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    return JSONResponse(engine.profile_stats(user_id).to_dict())


@router.get("/badges/messages")
def unread_messages_badge(
    user_id: str = Depends(require_user),
    engine: BarterEngine = Depends(get_barter_engine),
):
    return JSONResponse({"unreadCount": engine.unread_messages(user_id)})
