"""
Clients for external services.
"""

from integrations.parks_api import ApiSession, ParksApiClient

__all__ = [
    "ApiSession",
    "ParksApiClient",
]
