"""Process-wide database manager used by the API and its sweeper."""

import logging

from shared.database import DatabaseManager, PoolConfig

logger = logging.getLogger(__name__)

_db_manager: DatabaseManager | None = None


def get_database_manager() -> DatabaseManager | None:
    """Return the global manager, or None before startup."""
    return _db_manager


def init_database_manager(database_url: str, service: str = "api") -> DatabaseManager:
    """Create the global manager with the pool preset for *service*."""
    global _db_manager
    _db_manager = DatabaseManager(database_url, PoolConfig.for_service(service))
    logger.debug(f"Database manager initialized ({service} preset)")
    return _db_manager
