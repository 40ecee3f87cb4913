"""Database module for managing connections to the GeoSwap Postgres store.

This module handles:
- Database connection pool initialization
- Schema management
- Connection lifecycle
- Row conversion helpers shared by the managers
"""

import json
import logging
import uuid
from typing import Optional, Dict, Any, Iterable, List
import backoff
import asyncpg
from urllib.parse import urlparse, urlunparse

from .exceptions import DatabaseError, DatabaseSchemaError
from .lib.schema_manager import SchemaManager

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None
_schema_manager: Optional[SchemaManager] = None

def _get_connection_kwargs() -> Dict[str, Any]:
    """Get extra connection kwargs shared by every connection."""
    return {
        'server_settings': {
            'statement_timeout': '60000',  # 1 minute
            'application_name': 'geoswap',
        }
    }

async def _init_connection(conn: asyncpg.Connection) -> None:
    """Register JSON codecs so JSONB columns round-trip as Python objects."""
    for type_name in ('json', 'jsonb'):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema='pg_catalog'
        )

@backoff.on_exception(
    backoff.expo,
    (asyncpg.exceptions.PostgresConnectionError, asyncpg.exceptions.CannotConnectNowError, OSError),
    max_tries=5
)
async def create_database_if_not_exists(db_url: str) -> None:
    """Create the database if it doesn't exist.

    Args:
        db_url: Database connection URL

    Raises:
        Exception: If database creation fails after retries
    """
    parsed = urlparse(db_url)
    db_name = parsed.path.strip('/') or 'postgres'
    if db_name == 'postgres':
        return

    # Connect to the maintenance database
    base_url = urlunparse(parsed._replace(path='/postgres'))
    logger.info(f"Connecting to postgres to create {db_name} if needed")

    try:
        conn = await asyncpg.connect(base_url, **_get_connection_kwargs())
    except asyncpg.exceptions.InvalidCatalogNameError:
        logger.debug("Maintenance database not reachable, assuming managed database")
        return

    try:
        exists = await conn.fetchval(
            'SELECT EXISTS(SELECT 1 FROM pg_database WHERE datname = $1)',
            db_name
        )

        if not exists:
            await conn.execute(f'CREATE DATABASE "{db_name}"')
            logger.info(f"Created database {db_name}")

    except asyncpg.exceptions.InsufficientPrivilegeError:
        logger.debug(f"No privilege to create {db_name}, assuming it exists")
    finally:
        await conn.close()

@backoff.on_exception(
    backoff.expo,
    (asyncpg.exceptions.PostgresConnectionError, asyncpg.exceptions.CannotConnectNowError, OSError),
    max_tries=5
)
async def init_db(db_url: Optional[str] = None, force_recreate: bool = False) -> None:
    """Initialize the database connection pool and schema.

    Args:
        db_url: Optional database URL. If not provided, will use settings.
        force_recreate: If True, drop and recreate all tables

    Raises:
        ValueError: If database URL is not provided
        Exception: If initialization fails after retries
    """
    global _pool, _schema_manager

    try:
        # Import here to avoid circular imports
        from config import settings_conf

        url = db_url or settings_conf.get('db_url')
        if not url:
            raise ValueError("Database URL not provided")

        await create_database_if_not_exists(url)

        _pool = await asyncpg.create_pool(
            url,
            min_size=settings_conf['db_min_pool_size'],
            max_size=settings_conf['db_max_pool_size'],
            max_inactive_connection_lifetime=300.0,  # 5 minutes
            command_timeout=60.0,
            init=_init_connection,
            **_get_connection_kwargs()
        )

        _schema_manager = SchemaManager(_pool)
        await _schema_manager.initialize(force_recreate=force_recreate)

    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

async def get_pool() -> asyncpg.Pool:
    """Get the database connection pool.

    Returns:
        The connection pool

    Raises:
        RuntimeError: If pool hasn't been initialized
    """
    if not _pool:
        await init_db()
    if not _pool:
        raise RuntimeError("Failed to initialize database pool")
    return _pool

async def close() -> None:
    """Close the database connection pool."""
    global _pool, _schema_manager

    if _pool:
        await _pool.close()
        _pool = None
        _schema_manager = None

def normalize_id(value: Any) -> Optional[str]:
    """Return the canonical string form of a UUID, or None if it isn't one."""
    if value is None:
        return None
    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError, AttributeError):
        return None

def to_dict(record: Optional[asyncpg.Record]) -> Optional[Dict[str, Any]]:
    """Convert a record to a plain dict with UUIDs rendered as strings."""
    if record is None:
        return None
    return {
        key: str(value) if isinstance(value, uuid.UUID) else value
        for key, value in record.items()
    }

def to_dicts(records: Iterable[asyncpg.Record]) -> List[Dict[str, Any]]:
    """Convert a sequence of records with to_dict."""
    return [to_dict(record) for record in records]

# Export public interface
__all__ = [
    'init_db', 'get_pool', 'close', 'normalize_id', 'to_dict', 'to_dicts',
    'DatabaseError', 'DatabaseSchemaError'
]
