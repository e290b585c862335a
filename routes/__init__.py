"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.tables import router as tables_router

__all__ = [
    "tables_router",
]
