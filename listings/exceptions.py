"""Listing exception types."""

from typing import List


class ListingError(Exception):
    """Base exception for listing operations."""
    pass


class InvalidListingError(ListingError):
    """Raised when listing input is malformed."""
    pass


class InvalidCoordinatesError(InvalidListingError):
    """Raised when lat/lon are missing or not finite numbers."""
    pass


class MissingFieldsError(InvalidListingError):
    """Raised when required fields are absent from a request body."""

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__("Missing required fields")


class ListingNotFoundError(ListingError):
    """Raised when a listing is not found."""
    pass


class ListingForbiddenError(ListingError):
    """Raised when the acting user does not own the listing."""
    pass


class ListingInactiveError(ListingError):
    """Raised when a listing is already sold or swapped."""
    pass


__all__ = [
    'ListingError',
    'InvalidListingError',
    'InvalidCoordinatesError',
    'MissingFieldsError',
    'ListingNotFoundError',
    'ListingForbiddenError',
    'ListingInactiveError'
]
