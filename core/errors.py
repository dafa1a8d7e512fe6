"""
Engine Errors - Failure Taxonomy for the Matching & Negotiation Engine

Every engine operation either completes or raises one of these errors.
Validation, authorization, not-found and transition errors are deterministic
and never retried. Only StoreUnavailableError is eligible for a caller retry.
"""

from __future__ import annotations

from typing import Optional


class BarterEngineError(Exception):
    """Base class for all engine errors."""

    retryable: bool = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(BarterEngineError, ValueError):
    """Raised when input is malformed or a required value is missing."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class NotFoundError(BarterEngineError):
    """Raised when a listing, match, deal or notification id does not resolve."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class InvalidTransitionError(BarterEngineError):
    """Raised when a deal status change is not permitted from its current status."""

    def __init__(self, deal_id: str, current: str, target: str):
        self.deal_id = deal_id
        self.current = current
        self.target = target
        super().__init__(
            f"Deal {deal_id} cannot move from {current} to {target}"
        )


class AuthorizationError(BarterEngineError):
    """Raised when the actor is not a participant or not the owner."""

    pass


class StoreUnavailableError(BarterEngineError):
    """Raised when the backing store times out or fails."""

    retryable = True
