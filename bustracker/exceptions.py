"""Exception hierarchy for the bus tracker service."""

from typing import Optional


class BusTrackerError(Exception):
    """Base class for all bus tracker errors."""


class FeedFetchError(BusTrackerError):
    """The position feed could not be downloaded (unreachable, timeout, bad status)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class StoreError(BusTrackerError):
    """A storage operation failed."""
