"""Geo feed helpers: coordinate parsing and the active-status post-filter."""

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .exceptions import InvalidCoordinatesError, InvalidListingError

ACTIVE_STATUS = 'active'
SOLD_STATUS = 'sold'
SWAPPED_STATUS = 'swapped'
INACTIVE_STATUSES = frozenset({SOLD_STATUS, SWAPPED_STATUS})


def is_active(status: Optional[str]) -> bool:
    """A listing is active unless it has been sold or swapped."""
    return status not in INACTIVE_STATUSES


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == '')


def parse_number(value: Any, message: str) -> float:
    """Parse a finite float from a number or numeric string.

    Raises:
        InvalidListingError: With the given message if the value isn't a finite number
    """
    if isinstance(value, bool):
        raise InvalidListingError(message)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidListingError(message)
    if not math.isfinite(number):
        raise InvalidListingError(message)
    return number


def parse_coordinates(lat: Any, lon: Any) -> Tuple[float, float]:
    """Validate a (lat, lon) pair from a query string or JSON body.

    Raises:
        InvalidCoordinatesError: If either value is missing or not a finite number
    """
    if _is_blank(lat) or _is_blank(lon):
        raise InvalidCoordinatesError("Query parameters lat and lon are required")
    message = "lat and lon must be valid numbers"
    try:
        return parse_number(lat, message), parse_number(lon, message)
    except InvalidListingError as e:
        raise InvalidCoordinatesError(str(e))


def filter_active(
    candidates: Iterable[Dict[str, Any]],
    current_statuses: Mapping[str, Optional[str]]
) -> List[Dict[str, Any]]:
    """Drop candidates that are no longer active.

    Args:
        candidates: Rows returned by the radius search, in distance order
        current_statuses: Fresh listing id -> status lookup for those rows

    Returns:
        The candidates whose id still exists and whose current status is active,
        in their original order
    """
    return [
        row for row in candidates
        if str(row.get('id')) in current_statuses
        and is_active(current_statuses[str(row.get('id'))])
    ]
