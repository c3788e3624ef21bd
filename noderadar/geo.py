"""Best-effort geolocation of nodes and callers.

Lookups never raise: anything that cannot be resolved maps to the
``"unknown"`` location, and callers treat geo data as decoration only.
"""

from __future__ import annotations

import asyncio
import ipaddress
import os
import socket
from typing import Optional
from urllib.parse import urlsplit

import bittensor as bt
import geoip2.database
import geoip2.errors

from noderadar.schemas import UNKNOWN, UNKNOWN_LOCATION, GeoLocation


def hostname_of(url: str) -> str:
    return urlsplit(url).hostname or ""


class GeoResolver:
    """Hostname/IP to region, country and timezone via a GeoLite2 City database."""

    def __init__(self, database_path: Optional[str] = None, *, reader=None, dns_timeout_s: float = 5.0) -> None:
        self._reader = reader
        self.dns_timeout_s = dns_timeout_s
        if self._reader is None and database_path:
            if os.path.exists(database_path):
                self._reader = geoip2.database.Reader(database_path)
            else:
                bt.logging.warning(f"GeoIP database {database_path} not found; geo ranking disabled.")

    @property
    def enabled(self) -> bool:
        return self._reader is not None

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None

    def lookup_ip(self, ip: Optional[str]) -> GeoLocation:
        if self._reader is None or not ip:
            return UNKNOWN_LOCATION
        try:
            ipaddress.ip_address(ip)
        except ValueError:
            return UNKNOWN_LOCATION
        try:
            city = self._reader.city(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return UNKNOWN_LOCATION
        return GeoLocation(
            region=city.subdivisions.most_specific.iso_code or UNKNOWN,
            country=city.country.iso_code or UNKNOWN,
            timezone=city.location.time_zone or UNKNOWN,
        )

    async def resolve(self, hostname: str) -> GeoLocation:
        if self._reader is None or not hostname:
            return UNKNOWN_LOCATION
        try:
            infos = await asyncio.wait_for(
                asyncio.get_running_loop().getaddrinfo(hostname, None, type=socket.SOCK_STREAM),
                timeout=self.dns_timeout_s,
            )
        except asyncio.TimeoutError:
            bt.logging.debug(f"DNS lookup for {hostname} timed out after {self.dns_timeout_s}s")
            return UNKNOWN_LOCATION
        except (OSError, UnicodeError) as e:
            bt.logging.debug(f"DNS lookup failed for {hostname}: {e}")
            return UNKNOWN_LOCATION
        if not infos:
            return UNKNOWN_LOCATION
        address = infos[0][4][0]
        return self.lookup_ip(address)
