"""Photo scan endpoint."""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status, Depends
from pydantic import BaseModel

from vision import GeminiClient, VisionError
from ..dependencies import get_vision_client

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/api",
    tags=["Scan"]
)

class ScanRequest(BaseModel):
    """Request model for scanning a listing photo."""
    imageUrl: Optional[str] = None

# Plain def: the client blocks on HTTP, so FastAPI runs it in the threadpool
@router.post("/scan")
def scan_image(
    request: Optional[ScanRequest] = None,
    client: GeminiClient = Depends(get_vision_client)
):
    """Suggest listing details for a photo.

    Returns:
        Dict with itemName, description, category, suggestedPriceINR, estimatedWeightKg
    """
    if request is None or not request.imageUrl:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="imageUrl is required"
        )
    try:
        return client.scan(request.imageUrl)
    except VisionError as e:
        logger.error(f"Scan failed for {request.imageUrl}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
    except Exception as e:
        logger.error(f"Unexpected scan error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
