"""
Geo-IP lookup strategies.

A lookup answers "which country/city is this address in" or None.
Callers treat None as "Unknown"; lookups never raise.
"""

import asyncio
import ipaddress
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

import requests

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeoLocation:
    country: Optional[str] = None
    city: Optional[str] = None


def is_public_address(ip: str) -> bool:
    """False for private, loopback, reserved and unparseable addresses"""
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return address.is_global


class GeoLookupStrategy(ABC):
    """Abstract geo-IP lookup"""

    @abstractmethod
    async def lookup(self, ip: str) -> Optional[GeoLocation]:
        """Resolve an address; None on miss or failure"""


class HttpGeoLookup(GeoLookupStrategy):
    """
    Lookup against an ip-api style JSON endpoint.

    The URL template receives the address as {ip}. Private and reserved
    addresses are never sent over the network.
    """

    def __init__(self, url_template: str, timeout: float = 1.5):
        self.url_template = url_template
        self.timeout = timeout

    async def lookup(self, ip: str) -> Optional[GeoLocation]:
        if not is_public_address(ip):
            return None

        try:
            response = await asyncio.to_thread(
                requests.get, self.url_template.format(ip=ip), timeout=self.timeout
            )
            if response.status_code != 200:
                logger.warning(f"Geo lookup HTTP {response.status_code} for {ip}")
                return None

            data = response.json()
            if data.get("status") == "fail":
                return None

            return GeoLocation(
                country=data.get("countryCode") or data.get("country"),
                city=data.get("city"),
            )

        except Exception as e:
            logger.warning(f"Geo lookup failed for {ip}: {e}")
            return None


class InMemoryGeoLookup(GeoLookupStrategy):
    """Static address table; used in development and tests"""

    def __init__(self, table: Optional[Dict[str, GeoLocation]] = None):
        self.table = dict(table or {})

    async def lookup(self, ip: str) -> Optional[GeoLocation]:
        return self.table.get(ip)


class NullGeoLookup(GeoLookupStrategy):
    """Every address is unknown"""

    async def lookup(self, ip: str) -> Optional[GeoLocation]:
        return None
