"""
Error taxonomy for Rota Express.

Every failure the engine reports to its caller is one of the classes
below. They are all user-visible; the caller decides how to present
them (a retry prompt, a waiting indicator, a manual entry form).

    ResolutionFailure    – the place or text service could not be asked,
                           or answered with nothing usable. Retryable.
    NoMatchFound         – the service answered but found no address.
    NoOriginAvailable    – neither an explicit origin nor a live position
                           is known yet. Clears once a position arrives.
    CaptureUnavailable   – camera or positioning permission was denied.
    ResolutionInProgress – a second resolution was started for a target
                           that already has one outstanding.
"""

from __future__ import annotations

from typing import Optional


class RotaExpressError(Exception):
    """Base class for all errors raised by the engine."""


class ResolutionFailure(RotaExpressError):
    """The upstream resolution capability failed.

    Attributes:
        query: The text that was being resolved, kept so the caller can
            pre-fill the manual entry form with it.
    """

    def __init__(self, message: str, query: Optional[str] = None) -> None:
        super().__init__(message)
        self.query = query


class NoMatchFound(RotaExpressError):
    """A valid, empty answer: nothing matched the query."""

    def __init__(self, query: str) -> None:
        super().__init__(f"No address found for {query!r}")
        self.query = query


class NoOriginAvailable(RotaExpressError):
    """No origin to measure distances from; wait for a position fix."""

    def __init__(self) -> None:
        super().__init__("Waiting for position: no origin or live location yet")


class CaptureUnavailable(RotaExpressError):
    """Camera or positioning permission was denied."""


class ResolutionInProgress(RotaExpressError):
    """A resolution for the same target is already outstanding."""
