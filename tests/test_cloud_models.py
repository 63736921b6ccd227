"""
Tests for cloud probe request builders and result decoding
"""

import pytest

from probekit.cloud import (
    CloudProbeTask,
    DnsOptions,
    GeoFilter,
    LocationCatalog,
    PingOptions,
    ProbeKind,
    ProbeLocation,
    build_catalog_request,
    build_create_request,
    build_query_request,
    decode_results,
)
from probekit.errors import InvalidTargetError


class TestRequestBuilders:
    """Test exact request bodies"""

    def test_ping_options(self):
        task = CloudProbeTask(ProbeKind.PING, "example.com")
        body = build_create_request(task, 4, 0, platform_name="linux")
        options = body["Data"]["MsmSetting"]["Options"]

        assert options == {"count": 4, "interval": 0.02, "size": 64, "timeout": 4}
        assert "rtype" not in options
        assert body["Data"]["SubTaskList"][0]["TargetScope"][0]["ExplicitTargetHostList"] == ["example.com"]

    def test_dns_options(self):
        task = CloudProbeTask(ProbeKind.DNS, "example.com", dns_record_type="AAAA")
        options = build_create_request(task, 4, 0, platform_name="linux")["Data"]["MsmSetting"]["Options"]

        assert options == {"timeout_secs": 10, "rtype": "AAAA", "ns": ""}
        assert "count" not in options

    def test_tcp_ipv6_create_request(self):
        task = CloudProbeTask(ProbeKind.TCP, "2001:db8::1", port="443", filter=GeoFilter(country="Japan"))
        body = build_create_request(task, 4, 12, platform_name="linux")

        assert body == {
            "Action": "MsmCustomTask",
            "AppendInfo": {"UserId": 12},
            "Data": {
                "MainTaskName": "probekit-linux-tcp_port-task",
                "MsmSetting": {
                    "Af": 6,
                    "MsmType": "tcp_port",
                    "Options": {"count": 4, "interval": 0.02, "size": 64, "timeout": 4},
                },
                "SubTaskList": [
                    {
                        "AgentScope": [
                            {"GeoInfo": {"Country": "Japan", "DataSource": "public"}, "Type": "public"},
                        ],
                        "SubTaskName": "sub1",
                        "TargetScope": [
                            {"ExplicitTargetHostList": ["[2001:db8::1]:443"], "Type": "public"},
                        ],
                    },
                ],
            },
            "Method": "Create",
            "SystemId": "4",
        }

    def test_udp_default_port(self):
        task = CloudProbeTask(ProbeKind.UDP, "192.0.2.1")
        assert task.target_address == "192.0.2.1:443"
        assert task.address_family == 4

    def test_geo_filter_omits_unset(self):
        assert GeoFilter().to_wire() == {"DataSource": "public"}
        assert GeoFilter(isp="Acme", as_id=64500).to_wire() == {
            "AsId": 64500,
            "DataSource": "public",
            "ISP": "Acme",
        }

    def test_query_request(self):
        assert build_query_request(99, 4, 0) == {
            "Action": "MsmTaskResult",
            "AppendInfo": {"UserId": 0},
            "Data": {"MainId": 99},
            "Method": "RealTimeTaskResult",
            "SystemId": 4,
        }

    def test_catalog_request(self):
        body = build_catalog_request(4, 0)
        assert body["Method"] == "GetAgentGeo"
        assert body["Condition"] == {"AddressFamily": 4, "IsPublic": 1}
        assert body["SystemId"] == "4"

    def test_validate_rejects_bad_host(self):
        with pytest.raises(InvalidTargetError):
            CloudProbeTask(ProbeKind.PING, "not a host").validate()

    def test_validate_rejects_bad_port(self):
        with pytest.raises(InvalidTargetError):
            CloudProbeTask(ProbeKind.TCP, "example.com", port="99999").validate()

    def test_validate_rejects_mismatched_options(self):
        with pytest.raises(ValueError):
            CloudProbeTask(ProbeKind.PING, "example.com", options=DnsOptions()).validate()
        with pytest.raises(ValueError):
            CloudProbeTask(ProbeKind.DNS, "example.com", options=PingOptions()).validate()
        CloudProbeTask(ProbeKind.UDP, "example.com", options=PingOptions(count=2)).validate()


class TestDecodeResults:
    """Test poll result decoding"""

    def test_ping_results(self):
        data = {
            "Detail": [
                {
                    "AgentAsId": 4134,
                    "AgentCountry": "China",
                    "AgentISP": "Telecom",
                    "AvgRttMilli": 31.5,
                    "PacketLoss": 0,
                    "BuildinPeerIP": "192.0.2.1",
                },
                {"AgentCountry": "Nowhere"},
            ],
            "Finished": False,
        }
        result = decode_results(ProbeKind.PING, data)

        assert result.count == 1
        assert not result.finished
        ping = result.ping_results[0]
        assert ping.agent_as_id == 4134
        assert ping.avg_rtt_ms == 31.5
        assert ping.packet_loss == 0.0
        assert ping.peer_ip == "192.0.2.1"

    def test_dns_results(self):
        data = {
            "Detail": [
                {
                    "AgentAsId": "7922",
                    "AtNameServer": "8.8.8.8",
                    "RttMilli": "12.0",
                    "Answers": [{"Class": "IN", "Name": "example.com.", "ParseIP": "192.0.2.7", "RRType": "A"}],
                },
            ],
            "Finished": True,
        }
        result = decode_results(ProbeKind.DNS, data)

        assert result.finished
        assert result.ping_results == ()
        dns = result.dns_results[0]
        assert dns.agent_as_id == 7922
        assert dns.rtt_ms == 12.0
        assert dns.answers[0].parse_ip == "192.0.2.7"

    def test_missing_data(self):
        result = decode_results(ProbeKind.TCP, None)
        assert result.count == 0
        assert not result.finished

    def test_out_of_range_number_skipped(self):
        data = {"Detail": [{"AgentAsId": float("inf")}, {"AgentAsId": float("nan")}, {"AgentAsId": 7}], "Finished": True}
        result = decode_results(ProbeKind.PING, data)

        assert [r.agent_as_id for r in result.ping_results] == [7]
        assert result.finished


class TestLocationCatalog:
    """Test the vantage-point catalog"""

    def test_dedupe_and_filters(self):
        catalog = LocationCatalog([
            ProbeLocation(4134, area="Asia", country="China", isp="Telecom"),
            ProbeLocation(4134, area="Asia", country="China", isp="Telecom", city="Beijing"),
            ProbeLocation(4837, area="Asia", country="China", isp="Unicom"),
            ProbeLocation(7922, country="United States", isp=None),
        ])

        assert len(catalog) == 3
        assert catalog.areas() == ["Asia", "Other"]
        assert catalog.countries() == ["China", "United States"]
        assert catalog.isps("China") == ["Telecom", "Unicom"]
        assert catalog.isps("United States") == ["Unknown ISP"]
        assert catalog.as_ids("China", "Unicom") == [4837]
        assert [loc.as_id for loc in catalog.find(country="China")] == [4134, 4837]

    def test_unique_id(self):
        assert ProbeLocation(1).unique_id == "Unknown-Unknown ISP-1"
