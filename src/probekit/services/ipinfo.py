"""
IPInfo.io API Client

Geolocation lookups for addresses discovered while probing.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
from dataclasses import dataclass

import httpx

from probekit.config import get_config

logger = logging.getLogger(__name__)

IPINFO_API = "https://ipinfo.io"


@dataclass
class IPInfoResult:
    """Result from IPInfo.io lookup."""
    ip: str
    hostname: str | None = None
    city: str | None = None
    region: str | None = None
    country: str | None = None
    loc: str | None = None  # "lat,lon"
    org: str | None = None  # "AS#### Organization Name"
    asn: int | None = None
    as_name: str | None = None
    is_bogon: bool = False
    error: str | None = None

    @property
    def short_location(self) -> str:
        """City, region and country joined, skipping empty parts."""
        parts = [p for p in (self.city, self.region, self.country) if p]
        return ", ".join(parts)


class IPInfoClient:
    """Client for IPInfo.io API with connection pooling."""

    def __init__(
        self,
        token: str | None = None,
        base_url: str = IPINFO_API,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token = token if token is not None else get_config().ipinfo_token
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client with connection pooling."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(10.0, connect=5.0),
                limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def lookup_async(self, ip: str) -> IPInfoResult:
        """Look up IP information asynchronously."""
        result = IPInfoResult(ip=ip)

        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        client = await self._get_client()
        try:
            resp = await client.get(f"{self.base_url}/{ip}", headers=headers)
            resp.raise_for_status()
            data = resp.json()

            result.hostname = data.get("hostname")
            result.city = data.get("city")
            result.region = data.get("region")
            result.country = data.get("country")
            result.loc = data.get("loc")
            result.org = data.get("org")
            result.is_bogon = bool(data.get("bogon", False))

            # Parse ASN from org field (e.g., "AS15169 Google LLC")
            if result.org and result.org.startswith("AS"):
                parts = result.org.split(" ", 1)
                try:
                    result.asn = int(parts[0][2:])
                    if len(parts) > 1:
                        result.as_name = parts[1]
                except ValueError:
                    pass

        except httpx.HTTPStatusError as e:
            result.error = f"HTTP {e.response.status_code}: {e.response.text}"
        except (httpx.HTTPError, ValueError) as e:
            result.error = str(e) or e.__class__.__name__

        if result.error:
            logger.debug(f"IPInfo lookup for {ip} failed: {result.error}")
        return result
