"""
Business logic services.

Each service handles one concern of the list pages.
"""

from services.collection_cache import RemoteCollectionCache, make_resource_loader
from services.export_service import ExportService, get_export_service
from services.resource_registry import RESOURCES, get_resource, list_resources
from services.table_controller import TabularResourceController

__all__ = [
    "RemoteCollectionCache",
    "make_resource_loader",
    "ExportService",
    "get_export_service",
    "RESOURCES",
    "get_resource",
    "list_resources",
    "TabularResourceController",
]
