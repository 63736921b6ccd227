"""
Enrichment pipeline.

Best-effort reverse hostname and geolocation for addresses that show up
in probe results. Annotations are published through a store keyed by
address, separate from the probe results themselves, so a failed or
late lookup can never disturb a result that is already visible.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import logging
from dataclasses import dataclass

import dns.exception
import dns.reversename

from probekit.config import get_config
from probekit.models import ProbeStatus
from probekit.services.ipinfo import IPInfoClient
from probekit.transport.base import Transport
from probekit.validation import is_ip_address, is_special_address

logger = logging.getLogger(__name__)

LOCAL_NETWORK = "Local network"


@dataclass(frozen=True)
class Annotation:
    """Enrichment for one address. Absent fields were not found."""
    hostname: str | None = None
    location: str | None = None

    def merged(self, other: "Annotation") -> "Annotation":
        """Fields set on other win; fields it leaves empty are kept."""
        return Annotation(
            hostname=other.hostname if other.hostname is not None else self.hostname,
            location=other.location if other.location is not None else self.location,
        )


class AnnotationStore:
    """
    Address-keyed annotations for one session.

    Entries are replaced whole, never edited, so a reader sees either the
    old or the new annotation. Once closed the store ignores writes, which
    is how late lookups for a finished session are discarded.
    """

    def __init__(self):
        self._entries: dict[str, Annotation] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def apply(self, address: str, annotation: Annotation) -> bool:
        """Merge an annotation; returns False if nothing was recorded."""
        if self._closed:
            return False
        current = self._entries.get(address, Annotation())
        updated = current.merged(annotation)
        if updated == current:
            return False
        self._entries[address] = updated
        return True

    def get(self, address: str | None) -> Annotation | None:
        if address is None:
            return None
        return self._entries.get(address)

    def as_dict(self) -> dict[str, Annotation]:
        return dict(self._entries)


class Enricher:
    """
    Resolves hostnames and locations for addresses.

    Lookups are bounded by a short timeout and failures leave the field
    empty. Results are cached per address for the enricher's lifetime.
    """

    def __init__(
        self,
        transport: Transport,
        geolocator: IPInfoClient | None = None,
        timeout: float | None = None,
        resolve_hostnames: bool = True,
        resolve_locations: bool = True,
    ):
        self.transport = transport
        self.geolocator = geolocator
        self.timeout = timeout if timeout is not None else get_config().enrichment_timeout
        self.resolve_hostnames = resolve_hostnames
        self.resolve_locations = resolve_locations
        self._cache: dict[str, Annotation] = {}

    async def annotate(self, address: str) -> Annotation:
        """Look up hostname and location for one address."""
        if address in self._cache:
            return self._cache[address]
        if not is_ip_address(address):
            return Annotation()

        hostname, location = await asyncio.gather(
            self._hostname(address),
            self._location(address),
        )
        annotation = Annotation(hostname=hostname, location=location)
        self._cache[address] = annotation
        return annotation

    async def _hostname(self, address: str) -> str | None:
        if not self.resolve_hostnames:
            return None
        try:
            reverse_name = dns.reversename.from_address(address).to_text(omit_final_dot=True)
        except dns.exception.SyntaxError:
            return None

        try:
            reply = await asyncio.wait_for(
                self.transport.dns_query(reverse_name, "PTR", timeout=self.timeout),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.debug(f"PTR lookup for {address} timed out")
            return None

        if reply.status is not ProbeStatus.SUCCESS:
            logger.debug(f"PTR lookup for {address} failed: {reply.reason}")
            return None
        for record in reply.records:
            if record.type_name == "PTR":
                return record.value
        return None

    async def _location(self, address: str) -> str | None:
        if not self.resolve_locations:
            return None
        if is_special_address(address):
            return LOCAL_NETWORK
        if self.geolocator is None:
            return None

        try:
            info = await asyncio.wait_for(self.geolocator.lookup_async(address), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Location lookup for {address} timed out")
            return None

        if info.error:
            return None
        if info.is_bogon:
            return LOCAL_NETWORK
        return info.short_location or None

    async def close(self) -> None:
        if self.geolocator is not None:
            await self.geolocator.close()
