"""IP geolocation collaborator. Best effort: any failure resolves to Unknown."""
from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from app.config import get_settings

log = logging.getLogger("uvicorn.error")

UNKNOWN = "Unknown"


@dataclass(frozen=True)
class GeoLocation:
    country: str = UNKNOWN
    city: str = UNKNOWN
    region: str = UNKNOWN

    @property
    def label(self) -> str:
        if self.city != UNKNOWN:
            return f"{self.city}, {self.country}"
        return self.country


UNKNOWN_LOCATION = GeoLocation()


class GeoResolver(Protocol):
    def resolve(self, ip_address: str | None) -> GeoLocation: ...


class NullGeoResolver:
    """Used when geolocation is disabled; every address is Unknown."""

    def resolve(self, ip_address: str | None) -> GeoLocation:
        return UNKNOWN_LOCATION


def _is_public_ip(ip_address: str | None) -> bool:
    try:
        addr = ipaddress.ip_address((ip_address or "").strip())
    except ValueError:
        return False
    return not (addr.is_private or addr.is_loopback or addr.is_reserved or addr.is_link_local)


class IpApiGeoResolver:
    """Looks addresses up against ipapi.co (GET {base}/{ip}/json/)."""

    def __init__(self, base_url: str = "https://ipapi.co", timeout: float = 2.0, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return self._client.get(url, timeout=self.timeout)
        with httpx.Client(timeout=self.timeout) as client:
            return client.get(url)

    def resolve(self, ip_address: str | None) -> GeoLocation:
        if not _is_public_ip(ip_address):
            return UNKNOWN_LOCATION
        try:
            r = self._get(f"{self.base_url}/{ip_address.strip()}/json/")
            if r.status_code != 200:
                log.warning("[Geo] lookup failed ip=%s status=%s", ip_address, r.status_code)
                return UNKNOWN_LOCATION
            data = r.json() or {}
        except (httpx.HTTPError, ValueError) as e:
            log.warning("[Geo] lookup error ip=%s: %s", ip_address, e)
            return UNKNOWN_LOCATION
        if data.get("error"):
            return UNKNOWN_LOCATION
        return GeoLocation(
            country=data.get("country_name") or UNKNOWN,
            city=data.get("city") or UNKNOWN,
            region=data.get("region") or UNKNOWN,
        )


def build_geo_resolver() -> GeoResolver:
    settings = get_settings()
    if not settings.geo_lookup_enabled or not settings.geo_lookup_base_url:
        return NullGeoResolver()
    return IpApiGeoResolver(settings.geo_lookup_base_url, timeout=settings.geo_timeout_seconds)
