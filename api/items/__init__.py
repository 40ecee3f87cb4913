"""Geo feed endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status, Depends

from database.exceptions import DatabaseError
from listings import ListingManager, InvalidCoordinatesError, ListingError
from ..dependencies import get_listing_manager

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/api/items",
    tags=["Items"]
)

@router.get("/nearby")
async def get_nearby_items(
    lat: Optional[str] = Query(None),
    lon: Optional[str] = Query(None),
    manager: ListingManager = Depends(get_listing_manager)
):
    """Get active listings within the search radius of a coordinate, nearest first."""
    try:
        return await manager.get_nearby_listings(lat, lon)
    except (InvalidCoordinatesError, ListingError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except DatabaseError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"Error fetching nearby items: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
