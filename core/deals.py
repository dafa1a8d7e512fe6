"""
Deal Negotiation - Proposal Creation and Status State Machine

State graph:

    PROPOSED --> ACCEPTED --> COMPLETED
        |
        +------> REJECTED
        |
        +------> CANCELLED

Every other change is illegal. Items are fixed once proposed; changing terms
means proposing a new deal under the same match.

Transitions are serialised per deal and committed with a compare-and-swap on
the stored status, so of two racing transitions from the same state exactly
one succeeds and the other raises InvalidTransitionError.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Callable, Final, Iterable, Optional, Union

from core.errors import InvalidTransitionError, NotFoundError, ValidationError
from core.fairness import FAIRNESS_TOLERANCE, summarize_deal
from core.locks import KeyedLock
from core.matches import MatchRegistry
from core.models import (
    Deal,
    DealItem,
    DealStatus,
    DealValueSummary,
    new_id,
    utc_now,
)
from core.store import MarketplaceStore


logger = logging.getLogger(__name__)


# =============================================================================
# State Graph
# =============================================================================

ALLOWED_TRANSITIONS: Final[dict[DealStatus, frozenset[DealStatus]]] = {
    DealStatus.PROPOSED: frozenset({
        DealStatus.ACCEPTED,
        DealStatus.REJECTED,
        DealStatus.CANCELLED,
    }),
    DealStatus.ACCEPTED: frozenset({DealStatus.COMPLETED}),
    DealStatus.REJECTED: frozenset(),
    DealStatus.CANCELLED: frozenset(),
    DealStatus.COMPLETED: frozenset(),
}


def can_transition(current: DealStatus, target: DealStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def parse_status(value: Union[DealStatus, str]) -> DealStatus:
    """Accept a DealStatus or its name, case-insensitively."""
    if isinstance(value, DealStatus):
        return value
    try:
        return DealStatus(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown deal status: {value}", field="status")


# =============================================================================
# Engine
# =============================================================================


class DealEngine:
    """Creates deals under matches and moves them through their lifecycle."""

    def __init__(
        self,
        store: MarketplaceStore,
        registry: MatchRegistry,
        locks: Optional[KeyedLock] = None,
        on_change: Optional[Callable[[str], None]] = None,
        tolerance: float = FAIRNESS_TOLERANCE,
    ):
        """
        Args:
            store: Backing store
            registry: Match registry for participation checks
            locks: Per-deal locks
            on_change: Called with the match id after a deal is created or updated
            tolerance: Fairness tolerance for summaries
        """
        self._store = store
        self._registry = registry
        self._locks = locks or KeyedLock()
        self._on_change = on_change
        self._tolerance = tolerance

    # =========================================================================
    # Proposal
    # =========================================================================

    @staticmethod
    def _prepare_items(items: Iterable[DealItem], side: str) -> tuple[DealItem, ...]:
        prepared = []
        for position, item in enumerate(items):
            if not item.title or not item.title.strip():
                raise ValidationError(
                    f"{side} item {position + 1} needs a title", field=side
                )
            value = item.estimated_value
            if value is not None and (not math.isfinite(value) or value < 0):
                raise ValidationError(
                    f"{side} item {position + 1} has a negative or invalid value", field=side
                )
            prepared.append(replace(
                item,
                id=item.id or new_id("ITEM"),
                title=item.title.strip(),
            ))
        return tuple(prepared)

    def propose(
        self,
        actor: str,
        match_id: str,
        offer_items: Iterable[DealItem],
        request_items: Iterable[DealItem],
        cash_top_up: float = 0.0,
        note: str = "",
    ) -> Deal:
        """
        Propose a deal inside a match.

        Args:
            actor: Proposing user, must be a participant of the match
            match_id: Match the deal belongs to
            offer_items: What the proposer gives, in order
            request_items: What the proposer asks for, in order
            cash_top_up: Non-negative cash added by the proposer
            note: Free-text note

        Returns:
            The new deal in PROPOSED

        Raises:
            ValidationError: If both sides are empty, an item is malformed or
                the cash top-up is negative
            NotFoundError: If the match does not exist
            AuthorizationError: If the actor is not a participant
        """
        offer = self._prepare_items(offer_items, "offer")
        request = self._prepare_items(request_items, "request")
        if not offer and not request:
            raise ValidationError("A deal needs at least one offered or requested item")
        if cash_top_up is None or not math.isfinite(cash_top_up) or cash_top_up < 0:
            raise ValidationError("cashTopUp must be a non-negative number", field="cashTopUp")

        self._registry.require_participant(match_id, actor)

        now = utc_now()
        deal = Deal(
            id=new_id("DEAL"),
            match_id=match_id,
            proposer_user_id=actor,
            offer=offer,
            request=request,
            status=DealStatus.PROPOSED,
            created_at=now,
            cash_top_up=float(cash_top_up),
            note=(note or "").strip(),
            updated_at=now,
        )
        self._store.insert_deal(deal)
        logger.info("Deal %s proposed in match %s by %s", deal.id, match_id, actor)

        if self._on_change:
            self._on_change(match_id)
        return deal

    # =========================================================================
    # Transitions
    # =========================================================================

    def get_deal(self, actor: str, deal_id: str) -> Deal:
        deal = self._store.get_deal(deal_id)
        if deal is None:
            raise NotFoundError("Deal", deal_id)
        self._registry.require_participant(deal.match_id, actor)
        return deal

    def transition(
        self,
        actor: str,
        deal_id: str,
        target_status: Union[DealStatus, str],
    ) -> Deal:
        """
        Move a deal to a new status.

        Raises:
            NotFoundError: If the deal does not exist
            AuthorizationError: If the actor is not a participant of its match
            InvalidTransitionError: If the target is not reachable from the
                deal's current status, including when a concurrent transition
                got there first
        """
        target = parse_status(target_status)
        deal = self.get_deal(actor, deal_id)

        with self._locks.hold(("deal", deal_id)):
            current = self._store.get_deal(deal_id) or deal
            if not can_transition(current.status, target):
                logger.warning(
                    "Refused transition of deal %s from %s to %s by %s",
                    deal_id, current.status.value, target.value, actor,
                )
                raise InvalidTransitionError(deal_id, current.status.value, target.value)

            updated = self._store.compare_and_set_deal_status(
                deal_id, current.status, target, utc_now()
            )
            if updated is None:
                latest = self._store.get_deal(deal_id)
                raise InvalidTransitionError(
                    deal_id,
                    latest.status.value if latest else current.status.value,
                    target.value,
                )

        logger.info(
            "Deal %s moved from %s to %s by %s",
            deal_id, current.status.value, target.value, actor,
        )
        if self._on_change:
            self._on_change(updated.match_id)
        return updated

    # =========================================================================
    # Queries
    # =========================================================================

    def list_deals(self, actor: str, match_id: str) -> list[Deal]:
        self._registry.require_participant(match_id, actor)
        return sorted(self._store.list_deals(match_id), key=lambda d: d.created_at)

    def summarize(self, deal: Deal) -> DealValueSummary:
        return summarize_deal(deal, self._tolerance)
