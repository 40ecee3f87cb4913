"""REST API module for the marketplace.

This module provides HTTP endpoints for:
- The nearby listings feed
- Smart swap matches, swap proposals and responses
- Listing creation from scanned photos, lookups and closing sales
- Wishlists
- Chats and rate negotiation
- Photo scanning
- Real-time updates via WebSocket
- System health monitoring
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from database import close as db_close

logger = logging.getLogger(__name__)

API_NAME = "GeoSwap API"
API_VERSION = "1.0.0"

# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    # The pool is created lazily by the first request that needs it
    logger.info("Initializing API...")
    yield
    logger.info("Shutting down API...")
    await db_close()

# Create FastAPI app
app = FastAPI(
    title=API_NAME,
    description="REST API for the GeoSwap local marketplace",
    version=API_VERSION,
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/")
async def root():
    return {
        "name": API_NAME,
        "version": API_VERSION,
        "status": "running"
    }

# Import and include all routers
from .items import router as items_router
from .swaps import router as swaps_router
from .listings import router as listings_router
from .wishlist import router as wishlist_router
from .chats import router as chats_router
from .scan import router as scan_router
from .system import router as system_router
from .websockets import router as websocket_router

# Include all routers
app.include_router(items_router)
app.include_router(swaps_router)
app.include_router(listings_router)
app.include_router(wishlist_router)
app.include_router(chats_router)
app.include_router(scan_router)
app.include_router(system_router)
app.include_router(websocket_router)
