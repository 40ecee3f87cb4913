"""Swap endpoints: smart matches, proposals and responses."""

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Security, status, Depends
from pydantic import BaseModel

from auth import get_current_user
from database.exceptions import DatabaseError
from listings import ListingError
from swaps import (
    SwapManager, SmartMatchNotification, InvalidSwapRequestError,
    SwapNotFoundError, SwapForbiddenError, SwapStateError
)
from ..dependencies import get_swap_manager, get_connection_manager

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/api/swaps",
    tags=["Swaps"]
)

class ProposeSwapRequest(BaseModel):
    """Request model for proposing a swap."""
    desired_listing_id: Optional[str] = None
    offered_listing_id: Optional[str] = None

class RespondSwapRequest(BaseModel):
    """Request model for answering a swap proposal."""
    response: Optional[str] = None

def _swap_http_error(e: Exception) -> HTTPException:
    if isinstance(e, SwapNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, SwapForbiddenError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if isinstance(e, (InvalidSwapRequestError, SwapStateError, ListingError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not isinstance(e, DatabaseError):
        logger.error(f"Unexpected swap error: {e}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

@router.get("/smart-matches", response_model=List[SmartMatchNotification])
async def get_smart_matches(
    user_id: Optional[str] = Query(None),
    lat: Optional[str] = Query(None),
    lon: Optional[str] = Query(None),
    manager: SwapManager = Depends(get_swap_manager)
):
    """Get mutual swap matches around a user, nearest first."""
    try:
        return await manager.get_smart_matches(user_id, lat, lon)
    except Exception as e:
        raise _swap_http_error(e)

@router.post("/propose", status_code=status.HTTP_201_CREATED)
async def propose_swap(
    request: Optional[ProposeSwapRequest] = None,
    current_user: str = Security(get_current_user),
    manager: SwapManager = Depends(get_swap_manager),
    connections = Depends(get_connection_manager)
):
    """Propose swapping one of your listings for someone else's.

    Returns:
        The created match, status pending
    """
    request = request or ProposeSwapRequest()
    try:
        match = await manager.propose(
            current_user,
            request.desired_listing_id,
            request.offered_listing_id
        )
    except Exception as e:
        raise _swap_http_error(e)

    await connections.publish_swap_update(match)
    return match

@router.get("/incoming")
async def get_incoming_swaps(
    listing_id: Optional[str] = Query(None),
    current_user: str = Security(get_current_user),
    manager: SwapManager = Depends(get_swap_manager)
):
    """Get pending proposals waiting for your answer."""
    try:
        return await manager.get_incoming(current_user, listing_id)
    except Exception as e:
        raise _swap_http_error(e)

@router.put("/{match_id}/respond")
async def respond_to_swap(
    match_id: str,
    request: Optional[RespondSwapRequest] = None,
    current_user: str = Security(get_current_user),
    manager: SwapManager = Depends(get_swap_manager),
    connections = Depends(get_connection_manager)
):
    """Accept or reject a swap proposal addressed to you.

    Returns:
        The updated match
    """
    request = request or RespondSwapRequest()
    try:
        match = await manager.respond(match_id, current_user, request.response)
    except Exception as e:
        raise _swap_http_error(e)

    await connections.publish_swap_update(match)
    return match
