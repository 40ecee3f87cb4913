"""Listings API endpoints."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException, Security, status, Depends
from pydantic import BaseModel

from auth import get_current_user, get_optional_user
from database.exceptions import DatabaseError
from listings import (
    ListingManager, ListingError, InvalidListingError, MissingFieldsError,
    ListingNotFoundError, ListingForbiddenError, ListingInactiveError
)
from ..dependencies import get_listing_manager

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/api/listings",
    tags=["Listings"]
)

class MarkSoldRequest(BaseModel):
    """Request model for closing a listing as sold."""
    final_rate: Optional[Any] = None

def _listing_http_error(e: Exception) -> HTTPException:
    if isinstance(e, MissingFieldsError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": str(e), "missing": e.missing}
        )
    if isinstance(e, ListingNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ListingForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, ListingError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not isinstance(e, DatabaseError):
        logger.error(f"Unexpected listing error: {e}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

@router.post("/ai-webhook", status_code=status.HTTP_201_CREATED)
async def create_listing_from_scan(
    payload: Optional[Dict[str, Any]] = Body(None),
    current_user: Optional[str] = Security(get_optional_user),
    manager: ListingManager = Depends(get_listing_manager)
):
    """Create a listing from an AI-scanned photo.

    A bearer token is optional; when one is sent its user must match user_id.

    Returns:
        The created listing
    """
    try:
        return await manager.create_from_ai_payload(payload or {}, acting_user_id=current_user)
    except Exception as e:
        raise _listing_http_error(e)

@router.get("/mine")
async def get_my_listings(
    current_user: str = Security(get_current_user),
    manager: ListingManager = Depends(get_listing_manager)
):
    """Get your listings, newest first."""
    try:
        return await manager.get_user_listings(current_user)
    except Exception as e:
        raise _listing_http_error(e)

@router.get("/{listing_id}")
async def get_listing(
    listing_id: str,
    manager: ListingManager = Depends(get_listing_manager)
):
    """Get a listing by ID."""
    try:
        return await manager.get_listing(listing_id)
    except InvalidListingError:
        # Malformed ids can't exist
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Listing {listing_id} not found"
        )
    except Exception as e:
        raise _listing_http_error(e)

@router.put("/{listing_id}/mark-sold")
async def mark_listing_sold(
    listing_id: str,
    request: Optional[MarkSoldRequest] = None,
    current_user: str = Security(get_current_user),
    manager: ListingManager = Depends(get_listing_manager)
):
    """Close one of your listings as sold at a final rate.

    Returns:
        The updated listing
    """
    request = request or MarkSoldRequest()
    try:
        return await manager.mark_sold(listing_id, current_user, request.final_rate)
    except (ListingInactiveError, InvalidListingError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        raise _listing_http_error(e)
