"""Wishlist management: a user's declared interest in other users' listings."""

import logging
from typing import Any, Dict, List

from asyncpg.exceptions import PostgresError

from database import get_pool, normalize_id
from database.exceptions import DatabaseError
from .exceptions import InvalidListingError, ListingNotFoundError

logger = logging.getLogger(__name__)

class WishlistManager:
    """Manager class for wishlist entries."""

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def get_wishlist_ids(self, user_id: str) -> List[str]:
        """Get the listing ids a user wants, oldest entry first."""
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    '''
                    SELECT listing_id FROM wishlists
                    WHERE user_id = $1
                    ORDER BY created_at, listing_id
                    ''',
                    user_id
                )
        except PostgresError as e:
            logger.error(f"Error fetching wishlist for user {user_id}: {e}")
            raise DatabaseError(f"Failed to fetch wishlist: {e}")

        return [str(row['listing_id']) for row in rows]

    async def toggle(self, user_id: str, listing_id: Any) -> Dict[str, Any]:
        """Add the listing to the user's wishlist, or remove it if present.

        Returns:
            Dict with listing_id and the resulting wishlisted flag

        Raises:
            InvalidListingError: If the id is malformed or the listing is the user's own
            ListingNotFoundError: If the listing doesn't exist
            DatabaseError: If the data layer fails
        """
        normalized = normalize_id(listing_id)
        if normalized is None:
            raise InvalidListingError(f"Invalid listing ID format: {listing_id}")
        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    owner_id = await conn.fetchval(
                        'SELECT user_id FROM listings WHERE id = $1',
                        normalized
                    )
                    if owner_id is None:
                        raise ListingNotFoundError(f"Listing {normalized} not found")
                    if str(owner_id) == normalize_id(user_id):
                        raise InvalidListingError("You cannot wishlist your own listing")

                    removed = await conn.fetchval(
                        '''
                        DELETE FROM wishlists
                        WHERE user_id = $1 AND listing_id = $2
                        RETURNING listing_id
                        ''',
                        user_id,
                        normalized
                    )
                    if removed is None:
                        await conn.execute(
                            '''
                            INSERT INTO wishlists (user_id, listing_id)
                            VALUES ($1, $2)
                            ON CONFLICT DO NOTHING
                            ''',
                            user_id,
                            normalized
                        )
        except PostgresError as e:
            logger.error(f"Error toggling wishlist entry {normalized} for {user_id}: {e}")
            raise DatabaseError(f"Failed to update wishlist: {e}")

        return {'listing_id': normalized, 'wishlisted': removed is None}
