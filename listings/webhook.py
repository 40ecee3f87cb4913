"""Mapping of AI-scanned listing payloads onto insert_listing_with_location."""

from decimal import Decimal
from typing import Any, Dict

from database import normalize_id
from .exceptions import MissingFieldsError, InvalidListingError
from .nearby import parse_coordinates, parse_number

# Required keys, in the order they are reported when missing
REQUIRED_FIELDS = [
    'itemName',
    'category',
    'suggestedPriceINR',
    'estimatedWeightKg',
    'lat',
    'lon',
    'user_id'
]

# Keys where an empty string also counts as missing
TEXT_FIELDS = {'itemName', 'category', 'user_id'}


def find_missing_fields(payload: Dict[str, Any]) -> list:
    """List the required keys absent from the payload."""
    missing = []
    for field in REQUIRED_FIELDS:
        value = payload.get(field)
        if value is None or (field in TEXT_FIELDS and value == ''):
            missing.append(field)
    return missing


def _json_number(value: float):
    """Keep integral amounts as ints in JSON metadata."""
    return int(value) if value.is_integer() else value


def build_listing_params(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a webhook payload and map it to the insert function's parameters.

    Args:
        payload: The decoded JSON body

    Returns:
        Keyword parameters for insert_listing_with_location

    Raises:
        MissingFieldsError: If required fields are absent
        InvalidCoordinatesError: If lat/lon are not numbers
        InvalidListingError: If the price, weight or user id are malformed
    """
    missing = find_missing_fields(payload)
    if missing:
        raise MissingFieldsError(missing)

    lat, lon = parse_coordinates(payload['lat'], payload['lon'])

    user_id = normalize_id(payload['user_id'])
    if user_id is None:
        raise InvalidListingError("user_id must be a valid UUID")

    price = parse_number(payload['suggestedPriceINR'], "suggestedPriceINR must be a valid number")
    if price < 0:
        raise InvalidListingError("suggestedPriceINR must not be negative")
    weight = parse_number(payload['estimatedWeightKg'], "estimatedWeightKg must be a valid number")

    ai_metadata: Dict[str, Any] = {'estimatedWeightKg': _json_number(weight)}
    if payload.get('imageUrl'):
        ai_metadata['imageUrl'] = payload['imageUrl']

    description = payload.get('description')

    return {
        'p_title': str(payload['itemName']),
        'p_description': description if description not in (None, '') else None,
        'p_category': str(payload['category']),
        'p_price': Decimal(str(price)),
        'p_ai_metadata': ai_metadata,
        'p_user_id': user_id,
        'p_user_lat': lat,
        'p_user_lon': lon
    }
