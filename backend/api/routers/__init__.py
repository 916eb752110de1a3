"""API Routers package

Routers are organized by feature domain.
"""

from . import battle_router, cleanup_router, presence_router

__all__ = [
    "battle_router",
    "cleanup_router",
    "presence_router",
]
