"""Swaps module for bilateral item swaps.

This module handles:
- Smart swap matching between nearby users with mutual wishlist interest
- Swap proposals and their accept/reject lifecycle
- Listing status changes when a swap completes

Every multi-step mutation runs in a single transaction with the affected
rows locked, so two concurrent responses to the same proposal cannot both
take effect.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from asyncpg.exceptions import PostgresError

from config import settings_conf
from database import get_pool, normalize_id, to_dict, to_dicts
from database.exceptions import DatabaseError
from listings import ListingManager, WishlistManager, parse_coordinates, SWAPPED_STATUS
from .exceptions import (
    SwapError, InvalidSwapRequestError, SwapNotFoundError, SwapForbiddenError, SwapStateError
)
from .matching import (
    SmartMatchNotification, SMART_SWAP_MATCH, compute_smart_matches, format_distance
)
from .transitions import (
    PENDING, ACCEPTED, REJECTED, TERMINAL_STATES, RESPONSES,
    parse_response, check_proposal, check_response, check_swappable
)

logger = logging.getLogger(__name__)

SMART_MATCH_LIMIT = settings_conf['smart_match_limit']

def _require_id(value: Any, message: str) -> str:
    normalized = normalize_id(value)
    if normalized is None:
        raise InvalidSwapRequestError(message)
    return normalized

class SwapManager:
    """Manages swap matching, proposals and state transitions."""

    def __init__(self, pool=None) -> None:
        """Initialize swap manager.

        Args:
            pool: Optional database connection pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def get_smart_matches(
        self,
        user_id: Any,
        lat: Any,
        lon: Any,
        limit: Optional[int] = None
    ) -> List[SmartMatchNotification]:
        """Compute mutual swap matches around a user.

        Args:
            user_id: The viewer
            lat: Viewer latitude
            lon: Viewer longitude
            limit: Maximum notifications, defaults to SMART_MATCH_LIMIT

        Returns:
            Notifications sorted by distance

        Raises:
            InvalidSwapRequestError: If user_id is missing or malformed
            InvalidCoordinatesError: If lat/lon are missing or malformed
            DatabaseError: If the data layer fails
        """
        if user_id in (None, ''):
            raise InvalidSwapRequestError("Query parameters user_id, lat and lon are required")
        viewer_id = _require_id(user_id, "user_id must be a valid UUID")
        parse_coordinates(lat, lon)

        await self.ensure_pool()
        listing_manager = ListingManager(self.pool)
        wishlist_manager = WishlistManager(self.pool)

        own_listings, wishlist_ids, nearby = await asyncio.gather(
            listing_manager.get_user_listings(viewer_id, active_only=True),
            wishlist_manager.get_wishlist_ids(viewer_id),
            listing_manager.get_nearby_listings(lat, lon)
        )
        if not own_listings or not wishlist_ids or not nearby:
            return []

        wanted = set(wishlist_ids)
        seller_ids = sorted({
            str(listing['user_id']) for listing in nearby
            if str(listing['id']) in wanted and str(listing['user_id']) != viewer_id
        })
        if not seller_ids:
            return []

        try:
            async with self.pool.acquire() as conn:
                seller_wishlists = to_dicts(await conn.fetch(
                    '''
                    SELECT user_id, listing_id FROM wishlists
                    WHERE user_id = ANY($1::uuid[]) AND listing_id = ANY($2::uuid[])
                    ORDER BY created_at, listing_id
                    ''',
                    seller_ids,
                    [str(listing['id']) for listing in own_listings]
                ))
                user_rows = await conn.fetch(
                    'SELECT id, username FROM users WHERE id = ANY($1::uuid[])',
                    seller_ids
                )
        except PostgresError as e:
            logger.error(f"Error loading smart match data for {viewer_id}: {e}")
            raise DatabaseError(f"Failed to compute smart matches: {e}")

        usernames = {str(row['id']): row['username'] for row in user_rows}
        return compute_smart_matches(
            viewer_id,
            own_listings,
            wishlist_ids,
            nearby,
            seller_wishlists,
            usernames,
            limit=limit or SMART_MATCH_LIMIT
        )

    async def propose(
        self,
        proposer_id: str,
        desired_listing_id: Any,
        offered_listing_id: Any
    ) -> Dict[str, Any]:
        """Propose swapping one of the proposer's listings for someone else's.

        Args:
            proposer_id: The acting user
            desired_listing_id: The recipient's listing the proposer wants
            offered_listing_id: The proposer's listing offered in exchange

        Returns:
            The created match row, status pending

        Raises:
            InvalidSwapRequestError: If an id is missing or malformed, or the proposal is a duplicate
            SwapNotFoundError: If either listing doesn't exist
            SwapForbiddenError: If the offered listing isn't the proposer's
            SwapStateError: If either listing is sold or swapped
            DatabaseError: If the data layer fails
        """
        if not desired_listing_id or not offered_listing_id:
            raise InvalidSwapRequestError(
                "Both desired_listing_id and offered_listing_id are required"
            )
        desired_id = _require_id(desired_listing_id, f"Invalid listing ID format: {desired_listing_id}")
        offered_id = _require_id(offered_listing_id, f"Invalid listing ID format: {offered_listing_id}")

        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    rows = await conn.fetch(
                        '''
                        SELECT id, user_id, status FROM listings
                        WHERE id = ANY($1::uuid[])
                        ORDER BY id
                        FOR UPDATE
                        ''',
                        [offered_id, desired_id]
                    )
                    by_id = {row['id']: row for row in to_dicts(rows)}
                    offered = by_id.get(offered_id)
                    desired = by_id.get(desired_id)
                    check_proposal(proposer_id, offered, desired)

                    duplicate = await conn.fetchval(
                        '''
                        SELECT id FROM matches
                        WHERE user_1_id = $1 AND listing_1_id = $2
                        AND listing_2_id = $3 AND status = $4
                        ''',
                        proposer_id,
                        offered_id,
                        desired_id,
                        PENDING
                    )
                    if duplicate is not None:
                        raise InvalidSwapRequestError(
                            "A pending proposal for these listings already exists"
                        )

                    match = await conn.fetchrow(
                        '''
                        INSERT INTO matches (
                            user_1_id, user_2_id, listing_1_id, listing_2_id, status
                        ) VALUES ($1, $2, $3, $4, $5)
                        RETURNING *
                        ''',
                        proposer_id,
                        desired['user_id'],
                        offered_id,
                        desired_id,
                        PENDING
                    )
        except PostgresError as e:
            logger.error(f"Error creating swap proposal: {e}")
            raise DatabaseError(f"Failed to create swap proposal: {e}")

        logger.info(
            f"Swap {match['id']} proposed by {proposer_id}: "
            f"{offered_id} for {desired_id}"
        )
        return to_dict(match)

    async def respond(
        self,
        match_id: Any,
        responder_id: str,
        response: Any
    ) -> Dict[str, Any]:
        """Accept or reject a pending swap proposal.

        On accept both listings become swapped, and any other pending proposal
        involving either listing is rejected. On reject only the match changes.

        Args:
            match_id: The match UUID
            responder_id: The acting user, who must be the recipient
            response: 'accept' or 'reject', case-insensitive

        Returns:
            The updated match row

        Raises:
            InvalidSwapRequestError: If the response or id is malformed
            SwapNotFoundError: If the match doesn't exist
            SwapForbiddenError: If the responder isn't the recipient
            SwapStateError: If the match isn't pending or a listing is no longer available
            DatabaseError: If the data layer fails
        """
        target = parse_response(response)
        match_id = _require_id(match_id, f"Invalid swap ID format: {match_id}")

        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    match = to_dict(await conn.fetchrow(
                        'SELECT * FROM matches WHERE id = $1 FOR UPDATE',
                        match_id
                    ))
                    check_response(match, responder_id)

                    listing_ids = [match['listing_1_id'], match['listing_2_id']]
                    if target == ACCEPTED:
                        rows = await conn.fetch(
                            '''
                            SELECT id, user_id, status FROM listings
                            WHERE id = ANY($1::uuid[])
                            ORDER BY id
                            FOR UPDATE
                            ''',
                            listing_ids
                        )
                        by_id = {row['id']: row for row in to_dicts(rows)}
                        check_swappable(by_id.get(listing_ids[0]), by_id.get(listing_ids[1]))

                    updated = await conn.fetchrow(
                        '''
                        UPDATE matches
                        SET status = $2
                        WHERE id = $1 AND status = $3
                        RETURNING *
                        ''',
                        match_id,
                        target,
                        PENDING
                    )
                    if updated is None:
                        raise SwapStateError("Swap proposal is no longer pending")

                    if target == ACCEPTED:
                        await conn.execute(
                            'UPDATE listings SET status = $2 WHERE id = ANY($1::uuid[])',
                            listing_ids,
                            SWAPPED_STATUS
                        )
                        superseded = await conn.fetch(
                            '''
                            UPDATE matches
                            SET status = $3
                            WHERE status = $2 AND id <> $1
                            AND (listing_1_id = ANY($4::uuid[]) OR listing_2_id = ANY($4::uuid[]))
                            RETURNING id
                            ''',
                            match_id,
                            PENDING,
                            REJECTED,
                            listing_ids
                        )
                        if superseded:
                            logger.info(
                                f"Rejected {len(superseded)} competing proposals for swap {match_id}"
                            )
        except PostgresError as e:
            logger.error(f"Error responding to swap {match_id}: {e}")
            raise DatabaseError(f"Failed to update swap proposal: {e}")

        logger.info(f"Swap {match_id} {target} by {responder_id}")
        return to_dict(updated)

    async def get_incoming(
        self,
        user_id: str,
        listing_id: Optional[Any] = None
    ) -> List[Dict[str, Any]]:
        """Get pending proposals where the user is the recipient, newest first.

        Args:
            user_id: The recipient
            listing_id: Optional desired listing to filter on

        Raises:
            InvalidSwapRequestError: If listing_id is malformed
            DatabaseError: If the data layer fails
        """
        query = '''
            SELECT
                m.id, m.user_1_id, m.listing_1_id, m.listing_2_id, m.created_at,
                u.username AS requester_name,
                l.title, l.price, l.image_url, l.ai_metadata, l.status AS offered_status
            FROM matches m
            LEFT JOIN users u ON u.id = m.user_1_id
            LEFT JOIN listings l ON l.id = m.listing_1_id
            WHERE m.user_2_id = $1 AND m.status = $2
        '''
        params = [user_id, PENDING]
        if listing_id:
            params.append(_require_id(listing_id, f"Invalid listing ID format: {listing_id}"))
            query += ' AND m.listing_2_id = $3'
        query += ' ORDER BY m.created_at DESC'

        await self.ensure_pool()

        try:
            async with self.pool.acquire() as conn:
                rows = to_dicts(await conn.fetch(query, *params))
        except PostgresError as e:
            logger.error(f"Error fetching incoming swaps for {user_id}: {e}")
            raise DatabaseError(f"Failed to fetch incoming swaps: {e}")

        return [
            {
                'id': row['id'],
                'requester_id': row['user_1_id'],
                'requester_name': row['requester_name'] or 'Local User',
                'desired_listing_id': row['listing_2_id'],
                'offered_item': {
                    'id': row['listing_1_id'],
                    'title': row['title'],
                    'price': row['price'],
                    'image_url': row['image_url'],
                    'ai_metadata': row['ai_metadata'],
                    'status': row['offered_status']
                } if row['title'] is not None else None,
                'created_at': row['created_at']
            }
            for row in rows
        ]

__all__ = [
    'SwapManager',
    'SmartMatchNotification',
    'SMART_SWAP_MATCH',
    'SMART_MATCH_LIMIT',
    'compute_smart_matches',
    'format_distance',
    'PENDING',
    'ACCEPTED',
    'REJECTED',
    'TERMINAL_STATES',
    'RESPONSES',
    'parse_response',
    'check_proposal',
    'check_response',
    'check_swappable',
    'SwapError',
    'InvalidSwapRequestError',
    'SwapNotFoundError',
    'SwapForbiddenError',
    'SwapStateError'
]
