"""
Tests for the enrichment pipeline
"""

import asyncio

import httpx

from conftest import FakeTransport
from probekit.config import ProbeConfig
from probekit.enrich import LOCAL_NETWORK, Annotation, AnnotationStore, Enricher
from probekit.models import ProbeStatus, SessionState
from probekit.ping import PingSession
from probekit.services import IPInfoClient
from probekit.trace import TraceSession
from probekit.transport.base import DnsReply, ProbeReply, RawRecord


def _ptr(name, value):
    return DnsReply(status=ProbeStatus.SUCCESS, records=(RawRecord(name, 12, "PTR", 300, value),))


def _ipinfo(handler):
    return IPInfoClient(token="", transport=httpx.MockTransport(handler))


class TestAnnotationStore:
    """Test address-keyed annotations"""

    def test_merge_keeps_existing_fields(self):
        store = AnnotationStore()
        assert store.apply("192.0.2.1", Annotation(hostname="a.example"))
        assert store.apply("192.0.2.1", Annotation(location="Paris, FR"))
        assert store.get("192.0.2.1") == Annotation(hostname="a.example", location="Paris, FR")

    def test_unchanged_annotation_is_not_recorded(self):
        store = AnnotationStore()
        store.apply("192.0.2.1", Annotation(hostname="a.example"))
        assert not store.apply("192.0.2.1", Annotation(hostname="a.example"))
        assert not store.apply("192.0.2.1", Annotation())

    def test_closed_store_discards(self):
        store = AnnotationStore()
        store.close()
        assert not store.apply("192.0.2.1", Annotation(hostname="late.example"))
        assert store.get("192.0.2.1") is None
        assert store.as_dict() == {}


class TestEnricher:
    """Test hostname and location lookups"""

    async def test_private_address_skips_geolocation(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        enricher = Enricher(FakeTransport(), geolocator=_ipinfo(handler))
        annotation = await enricher.annotate("192.168.1.1")

        assert annotation.location == LOCAL_NETWORK
        assert calls == []

    async def test_public_address(self):
        def handler(request):
            assert request.url.path == "/8.8.8.8"
            return httpx.Response(200, json={
                "ip": "8.8.8.8",
                "city": "Mountain View",
                "region": "California",
                "country": "US",
                "org": "AS15169 Google LLC",
            })

        transport = FakeTransport(dns={("8.8.8.8.in-addr.arpa", "PTR"): _ptr("8.8.8.8.in-addr.arpa.", "dns.google.")})
        enricher = Enricher(transport, geolocator=_ipinfo(handler))
        annotation = await enricher.annotate("8.8.8.8")

        assert annotation.hostname == "dns.google."
        assert annotation.location == "Mountain View, California, US"
        await enricher.close()

    async def test_lookup_failure_leaves_fields_empty(self):
        enricher = Enricher(FakeTransport(), geolocator=_ipinfo(lambda request: httpx.Response(500, text="oops")))
        annotation = await enricher.annotate("8.8.4.4")

        assert annotation == Annotation()

    async def test_results_are_cached(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"city": "Sydney", "country": "AU"})

        enricher = Enricher(FakeTransport(), geolocator=_ipinfo(handler))
        first = await enricher.annotate("1.1.1.1")
        second = await enricher.annotate("1.1.1.1")

        assert first is second
        assert len(calls) == 1

    async def test_bogon_is_local(self):
        enricher = Enricher(FakeTransport(), geolocator=_ipinfo(lambda r: httpx.Response(200, json={"bogon": True})))
        annotation = await enricher.annotate("198.18.0.1")
        assert annotation.location == LOCAL_NETWORK


class SlowEnricher(Enricher):
    async def annotate(self, address):
        await asyncio.sleep(10)
        return Annotation(hostname="too-late.example")


class BrokenEnricher(Enricher):
    async def annotate(self, address):
        raise RuntimeError("lookup exploded")


class TestSessionEnrichment:
    """Test annotations flowing into session snapshots"""

    async def test_trace_hop_hostname(self):
        transport = FakeTransport(
            hops={
                (1, 0): ProbeReply.success(1.0, responder="10.0.0.1", reached=False),
                (2, 0): ProbeReply.success(5.0, responder="192.0.2.9", reached=True),
            },
            dns={("1.0.0.10.in-addr.arpa", "PTR"): _ptr("1.0.0.10.in-addr.arpa.", "gw.example.net.")},
        )
        session = TraceSession("192.0.2.9", probes_per_hop=1, transport=transport, enricher=Enricher(transport))
        snapshot = await session.run()

        assert snapshot.hops[0].hostname == "gw.example.net."
        assert snapshot.hops[0].location == LOCAL_NETWORK
        # Annotations never touch the measurements
        assert snapshot.hops[0].slots == (1.0,)

    async def test_late_annotation_is_discarded(self):
        config = ProbeConfig(hop_pause=0.0, enrichment_timeout=0.01)
        transport = FakeTransport(default_echo=ProbeReply.success(1.0))
        session = PingSession(
            "192.0.2.1",
            count=1,
            transport=transport,
            enricher=SlowEnricher(transport),
            config=config,
        )
        snapshot = await session.run()

        assert snapshot.state is SessionState.COMPLETED
        assert snapshot.hostname is None
        assert session.annotations.closed
        assert session.latest is snapshot

    async def test_failed_enrichment_does_not_fail_session(self):
        transport = FakeTransport(default_echo=ProbeReply.success(1.0))
        session = PingSession("192.0.2.1", count=2, interval=0.0, transport=transport, enricher=BrokenEnricher(transport))
        snapshot = await session.run()

        assert snapshot.state is SessionState.COMPLETED
        assert snapshot.statistics.received == 2
        assert snapshot.location is None
