"""Command line interface for running the API server."""
import argparse
import asyncio
import logging

import uvicorn

from config import settings_conf
from database import init_db, close as db_close

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings_conf['log_level'], logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

async def prepare_database(force_recreate: bool = False):
    """Create the database and apply the schema before serving."""
    logger.info("Initializing database...")
    await init_db(force_recreate=force_recreate)
    # The server runs its own event loop; it opens a fresh pool on demand
    await db_close()

def main():
    parser = argparse.ArgumentParser(description="Run the GeoSwap API server")
    parser.add_argument('--host', default=settings_conf['api_host'])
    parser.add_argument('--port', type=int, default=settings_conf['api_port'])
    parser.add_argument('--reload', action='store_true', help="Reload on code changes")
    parser.add_argument('--skip-db-init', action='store_true', help="Don't apply the schema on startup")
    parser.add_argument('--recreate-db', action='store_true', help="Drop and recreate all tables")
    args = parser.parse_args()

    if not args.skip_db_init:
        asyncio.run(prepare_database(force_recreate=args.recreate_db))

    logger.info(f"Starting API server on {args.host}:{args.port}")
    uvicorn.run(
        "api:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings_conf['log_level'].lower()
    )

if __name__ == "__main__":
    main()
