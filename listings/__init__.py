"""Listings module for managing marketplace listings.

This module provides functionality for:
- Resolving the geo feed of active listings around a coordinate
- Looking up listings by id and by owner
- Creating listings from AI-scanned photos
- Closing a listing as sold
- Managing wishlists
"""

import logging
from typing import Any, Dict, List, Optional

from asyncpg.exceptions import PostgresError

from config import settings_conf
from database import get_pool, normalize_id, to_dict, to_dicts
from database.exceptions import DatabaseError
from .exceptions import (
    ListingError, InvalidListingError, InvalidCoordinatesError, MissingFieldsError,
    ListingNotFoundError, ListingForbiddenError, ListingInactiveError
)
from .nearby import (
    ACTIVE_STATUS, SOLD_STATUS, SWAPPED_STATUS, INACTIVE_STATUSES,
    is_active, parse_coordinates, parse_number, filter_active
)
from .webhook import build_listing_params, find_missing_fields, REQUIRED_FIELDS
from .wishlist import WishlistManager

logger = logging.getLogger(__name__)

# Fixed search radius for the nearby feed
NEARBY_RADIUS_METERS = settings_conf['nearby_radius_meters']

def parse_listing_id(listing_id: Any) -> str:
    """Validate a listing id.

    Raises:
        InvalidListingError: If the id is not a UUID
    """
    normalized = normalize_id(listing_id)
    if normalized is None:
        raise InvalidListingError(f"Invalid listing ID format: {listing_id}")
    return normalized

def parse_final_rate(final_rate: Any) -> float:
    """Validate a closing price.

    Raises:
        InvalidListingError: If the rate is missing, not a number or negative
    """
    if final_rate is None or final_rate == '':
        raise InvalidListingError("final_rate is required")
    rate = parse_number(final_rate, "final_rate must be a valid number")
    if rate < 0:
        raise InvalidListingError("final_rate must not be negative")
    return int(rate) if rate.is_integer() else rate

class ListingManager:
    """Manager class for handling listing operations."""

    def __init__(self, pool=None):
        """Initialize the listing manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def get_nearby_listings(
        self,
        lat: Any,
        lon: Any,
        radius_meters: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Get active listings within the search radius of a coordinate.

        The radius search itself runs in the database; this only re-reads the
        current status of each candidate and drops sold or swapped ones.

        Args:
            lat: Latitude, number or numeric string
            lon: Longitude, number or numeric string
            radius_meters: Search radius, defaults to NEARBY_RADIUS_METERS

        Returns:
            Listing rows with distance_meters, nearest first

        Raises:
            InvalidCoordinatesError: If lat/lon are missing or not numbers
            DatabaseError: If the data layer fails
        """
        user_lat, user_lon = parse_coordinates(lat, lon)
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                candidates = to_dicts(await conn.fetch(
                    'SELECT * FROM get_items_within_radius($1, $2, $3)',
                    user_lat,
                    user_lon,
                    float(radius_meters or NEARBY_RADIUS_METERS)
                ))
                if not candidates:
                    return []

                status_rows = await conn.fetch(
                    'SELECT id, status FROM listings WHERE id = ANY($1::uuid[])',
                    [row['id'] for row in candidates]
                )
        except PostgresError as e:
            logger.error(f"Error fetching nearby listings: {e}")
            raise DatabaseError(f"Failed to fetch nearby listings: {e}")

        statuses = {str(row['id']): row['status'] for row in status_rows}
        return filter_active(candidates, statuses)

    async def get_listing(self, listing_id: Any) -> Dict[str, Any]:
        """Get a listing by ID.

        Raises:
            InvalidListingError: If the id is malformed
            ListingNotFoundError: If the listing doesn't exist
            DatabaseError: If the data layer fails
        """
        listing_id = parse_listing_id(listing_id)
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                listing = await conn.fetchrow(
                    'SELECT * FROM listings WHERE id = $1',
                    listing_id
                )
        except PostgresError as e:
            logger.error(f"Error fetching listing {listing_id}: {e}")
            raise DatabaseError(f"Failed to fetch listing: {e}")

        if not listing:
            raise ListingNotFoundError(f"Listing {listing_id} not found")
        return to_dict(listing)

    async def get_user_listings(
        self,
        user_id: str,
        active_only: bool = False
    ) -> List[Dict[str, Any]]:
        """Get the listings owned by a user, newest first."""
        await self.ensure_pool()

        query = 'SELECT * FROM listings WHERE user_id = $1'
        if active_only:
            query += ' AND status <> ALL($2::text[])'
        query += ' ORDER BY created_at DESC, id'
        params = [user_id]
        if active_only:
            params.append(sorted(INACTIVE_STATUSES))

        try:
            async with self.pool.acquire() as conn:
                return to_dicts(await conn.fetch(query, *params))
        except PostgresError as e:
            logger.error(f"Error fetching listings for user {user_id}: {e}")
            raise DatabaseError(f"Failed to fetch user listings: {e}")

    async def create_from_ai_payload(
        self,
        payload: Dict[str, Any],
        acting_user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create a listing from an AI-scanned payload.

        Args:
            payload: Webhook body (itemName, category, suggestedPriceINR,
                     estimatedWeightKg, lat, lon, user_id, optional description/imageUrl)
            acting_user_id: Authenticated user, when the caller sent a token

        Returns:
            The created listing row

        Raises:
            MissingFieldsError: If required fields are absent
            InvalidListingError: If a field is malformed
            ListingForbiddenError: If the token's user differs from user_id
            DatabaseError: If the insert fails
        """
        params = build_listing_params(payload)
        if acting_user_id is not None and normalize_id(acting_user_id) != params['p_user_id']:
            raise ListingForbiddenError("Token user does not match user_id")

        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                listing = await conn.fetchrow(
                    '''
                    SELECT * FROM insert_listing_with_location(
                        p_title => $1,
                        p_description => $2,
                        p_category => $3,
                        p_price => $4,
                        p_ai_metadata => $5,
                        p_user_id => $6,
                        p_user_lat => $7,
                        p_user_lon => $8
                    )
                    ''',
                    params['p_title'],
                    params['p_description'],
                    params['p_category'],
                    params['p_price'],
                    params['p_ai_metadata'],
                    params['p_user_id'],
                    params['p_user_lat'],
                    params['p_user_lon']
                )
        except PostgresError as e:
            logger.error(f"Error creating listing from AI payload: {e}")
            raise DatabaseError(f"Failed to create listing: {e}")

        logger.info(f"Created listing {listing['id']} for user {params['p_user_id']}")
        return to_dict(listing)

    async def mark_sold(
        self,
        listing_id: Any,
        user_id: str,
        final_rate: Any
    ) -> Dict[str, Any]:
        """Close a listing as sold at a final rate.

        Args:
            listing_id: The listing UUID
            user_id: The acting user, who must own the listing
            final_rate: Closing price, stored in ai_metadata

        Returns:
            The updated listing row

        Raises:
            InvalidListingError: If the id or rate is malformed
            ListingNotFoundError: If the listing doesn't exist
            ListingForbiddenError: If the user doesn't own the listing
            ListingInactiveError: If the listing is already sold or swapped
            DatabaseError: If the update fails
        """
        listing_id = parse_listing_id(listing_id)
        rate = parse_final_rate(final_rate)
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    listing = await conn.fetchrow(
                        'SELECT id, user_id, status FROM listings WHERE id = $1 FOR UPDATE',
                        listing_id
                    )
                    if not listing:
                        raise ListingNotFoundError(f"Listing {listing_id} not found")
                    if str(listing['user_id']) != normalize_id(user_id):
                        raise ListingForbiddenError("Only the owner can mark a listing as sold")
                    if not is_active(listing['status']):
                        raise ListingInactiveError(f"Listing is already {listing['status']}")

                    updated = await conn.fetchrow(
                        '''
                        UPDATE listings
                        SET status = $2,
                            ai_metadata = COALESCE(ai_metadata, '{}'::jsonb) || $3::jsonb
                        WHERE id = $1
                        RETURNING *
                        ''',
                        listing_id,
                        SOLD_STATUS,
                        {'final_rate': rate}
                    )
        except PostgresError as e:
            logger.error(f"Error marking listing {listing_id} sold: {e}")
            raise DatabaseError(f"Failed to mark listing as sold: {e}")

        logger.info(f"Listing {listing_id} marked sold at {rate}")
        return to_dict(updated)

__all__ = [
    'ListingManager',
    'WishlistManager',
    'NEARBY_RADIUS_METERS',
    'ACTIVE_STATUS',
    'SOLD_STATUS',
    'SWAPPED_STATUS',
    'INACTIVE_STATUSES',
    'REQUIRED_FIELDS',
    'is_active',
    'parse_coordinates',
    'parse_listing_id',
    'parse_final_rate',
    'filter_active',
    'build_listing_params',
    'find_missing_fields',
    'ListingError',
    'InvalidListingError',
    'InvalidCoordinatesError',
    'MissingFieldsError',
    'ListingNotFoundError',
    'ListingForbiddenError',
    'ListingInactiveError'
]
