"""
Remote catalog access
"""

from .catalog_client import CatalogClient, CatalogServiceError

__all__ = ["CatalogClient", "CatalogServiceError"]
