"""
Geo-IP enrichment for click events.
"""

from .strategies import (
    GeoLocation,
    GeoLookupStrategy,
    HttpGeoLookup,
    InMemoryGeoLookup,
    NullGeoLookup,
    is_public_address,
)
from .factory import GeoLookupFactory, GeoBackend

__all__ = [
    "GeoLocation",
    "GeoLookupStrategy",
    "HttpGeoLookup",
    "InMemoryGeoLookup",
    "NullGeoLookup",
    "is_public_address",
    "GeoLookupFactory",
    "GeoBackend",
]
