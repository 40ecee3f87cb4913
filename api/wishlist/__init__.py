"""Wishlist endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Security, status, Depends

from auth import get_current_user
from database.exceptions import DatabaseError
from listings import WishlistManager, ListingError, ListingNotFoundError
from ..dependencies import get_wishlist_manager

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/api/wishlist",
    tags=["Wishlist"]
)

@router.get("")
async def get_wishlist(
    current_user: str = Security(get_current_user),
    manager: WishlistManager = Depends(get_wishlist_manager)
):
    """Get the ids of the listings on your wishlist."""
    try:
        return await manager.get_wishlist_ids(current_user)
    except Exception as e:
        if not isinstance(e, DatabaseError):
            logger.error(f"Error fetching wishlist: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )

@router.post("/{listing_id}/toggle")
async def toggle_wishlist(
    listing_id: str,
    current_user: str = Security(get_current_user),
    manager: WishlistManager = Depends(get_wishlist_manager)
):
    """Add a listing to your wishlist, or remove it if already there.

    Returns:
        Dict with listing_id and whether it is now wishlisted
    """
    try:
        return await manager.toggle(current_user, listing_id)
    except ListingNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except ListingError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        if not isinstance(e, DatabaseError):
            logger.error(f"Error toggling wishlist: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
