"""
Factory for creating geo-IP lookup instances.
"""

import logging
from enum import Enum
from typing import Optional

from .strategies import GeoLookupStrategy, HttpGeoLookup, InMemoryGeoLookup, NullGeoLookup
from marketplace_app.config import settings

logger = logging.getLogger(__name__)


class GeoBackend(Enum):
    """Available geo-IP backends"""
    HTTP = "http"
    MEMORY = "memory"
    NULL = "null"


class GeoLookupFactory:
    """Creates the geo lookup from settings and caches the single instance"""

    _instance: Optional[GeoLookupStrategy] = None

    @classmethod
    def create(cls, backend: GeoBackend) -> GeoLookupStrategy:
        if cls._instance is not None:
            return cls._instance

        if backend == GeoBackend.HTTP:
            cls._instance = HttpGeoLookup(
                url_template=settings.geo_http_url,
                timeout=settings.geo_http_timeout,
            )
            logger.info(f"HTTP geo lookup initialized ({settings.geo_http_url})")
        elif backend == GeoBackend.MEMORY:
            cls._instance = InMemoryGeoLookup()
        elif backend == GeoBackend.NULL:
            cls._instance = NullGeoLookup()
        else:
            raise ValueError(f"Unknown geo backend: {backend}")

        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Clear cached instance (for testing)"""
        cls._instance = None
