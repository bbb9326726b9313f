"""Exceptions raised by the pricing pipeline.

The HTTP layer maps these onto status codes; the CLI prints the message and
exits non-zero.
"""

from typing import Any


class PricingError(Exception):
    """Base class for all pricing pipeline errors."""


class ValidationError(PricingError):
    """Input rejected before anything was persisted.

    Attributes:
        errors: One entry per problem, e.g. ``{"row": 3, "field": "carrier",
            "message": "must not be empty"}``.
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class NotFound(PricingError):
    """Unknown batch, rate or service setting id."""


class Conflict(PricingError):
    """Operation clashes with current state.

    Raised when re-processing a terminal batch, when a promotion collides with
    another approval on the active-rate key, or when a service setting already
    exists for a carrier/service pair.
    """


class DutyServiceUnavailable(PricingError):
    """The duty estimation service failed or declined to answer."""
