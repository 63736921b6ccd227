"""
Cloud probe wire models.

Request builders produce the exact JSON bodies the measurement API
expects. Poll results arrive as loosely-typed objects and are decoded
here, by the probe kind of the originating task, into typed results.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
import platform
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from probekit.errors import CloudProbeError
from probekit.validation import is_ip_address, is_ipv6, validate_host, validate_port

logger = logging.getLogger(__name__)

DATA_SOURCE = "public"
SCOPE_TYPE = "public"
SUB_TASK_NAME = "sub1"
DEFAULT_CLOUD_PORT = "443"

UNKNOWN_AREA = "Other"
UNKNOWN_ISP = "Unknown ISP"
UNKNOWN_COUNTRY = "Unknown"


class ProbeKind(str, Enum):
    """Measurement types the cloud agents can run."""
    PING = "ping"
    DNS = "dns"
    TCP = "tcp"
    UDP = "udp"

    @property
    def msm_type(self) -> str:
        return _MSM_TYPES[self]

    @property
    def display_name(self) -> str:
        return "Ping" if self is ProbeKind.PING else self.value.upper()

    @property
    def uses_port(self) -> bool:
        return self in (ProbeKind.TCP, ProbeKind.UDP)


_MSM_TYPES = {
    ProbeKind.PING: "ping",
    ProbeKind.DNS: "dns",
    ProbeKind.TCP: "tcp_port",
    ProbeKind.UDP: "udp_port",
}


@dataclass(frozen=True)
class PingOptions:
    """Options for ping, tcp_port and udp_port measurements."""
    count: int = 4
    interval: float = 0.02
    size: int = 64
    timeout: int = 4

    def to_wire(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "interval": self.interval,
            "size": self.size,
            "timeout": self.timeout,
        }


@dataclass(frozen=True)
class DnsOptions:
    """Options for dns measurements."""
    rtype: str = "A"
    timeout_secs: int = 10
    ns: str = ""

    def to_wire(self) -> dict[str, Any]:
        return {
            "timeout_secs": self.timeout_secs,
            "rtype": self.rtype,
            "ns": self.ns,
        }


ProbeOptions = PingOptions | DnsOptions


@dataclass(frozen=True)
class GeoFilter:
    """Vantage-point filter. Fields left as None do not filter."""
    country: str | None = None
    isp: str | None = None
    as_id: int | None = None

    def to_wire(self) -> dict[str, Any]:
        geo: dict[str, Any] = {}
        if self.as_id is not None:
            geo["AsId"] = self.as_id
        if self.country is not None:
            geo["Country"] = self.country
        geo["DataSource"] = DATA_SOURCE
        if self.isp is not None:
            geo["ISP"] = self.isp
        return geo


@dataclass(frozen=True)
class CloudProbeTask:
    """
    A remote measurement request.

    task_id is assigned by the server on creation and never reused.
    """
    kind: ProbeKind
    host: str
    port: str | None = None
    filter: GeoFilter = field(default_factory=GeoFilter)
    dns_record_type: str = "A"
    options: ProbeOptions | None = None
    task_id: int | None = None

    def validate(self) -> None:
        """
        Raises:
            InvalidTargetError: If the host or port is malformed
            ValueError: If options do not match the probe kind
        """
        host = self.host.strip()
        if not is_ip_address(host):
            validate_host(host)
        if self.kind.uses_port and self.port and self.port.strip():
            validate_port(self.port.strip())
        expected = DnsOptions if self.kind is ProbeKind.DNS else PingOptions
        if self.options is not None and not isinstance(self.options, expected):
            raise ValueError(f"{self.kind.value} task needs {expected.__name__}, got {type(self.options).__name__}")

    @property
    def target_address(self) -> str:
        """Target as sent to the agents; host:port for TCP and UDP."""
        host = self.host.strip()
        if not self.kind.uses_port:
            return host
        port = (self.port or "").strip() or DEFAULT_CLOUD_PORT
        if is_ipv6(host):
            return f"[{host}]:{port}"
        return f"{host}:{port}"

    @property
    def address_family(self) -> int:
        return 6 if is_ipv6(self.host.strip()) else 4

    @property
    def msm_options(self) -> ProbeOptions:
        if self.options is not None:
            return self.options
        if self.kind is ProbeKind.DNS:
            return DnsOptions(rtype=self.dns_record_type)
        return PingOptions()


def current_platform() -> str:
    """Platform label used in task names."""
    system = platform.system().lower()
    return {"darwin": "macos"}.get(system, system or "unknown")


def build_catalog_request(system_id: int, user_id: int) -> dict[str, Any]:
    return {
        "Action": "Query",
        "AppendInfo": {"UserId": user_id},
        "Condition": {"AddressFamily": 4, "IsPublic": 1},
        "Method": "GetAgentGeo",
        "SystemId": str(system_id),
    }


def build_create_request(
    task: CloudProbeTask,
    system_id: int,
    user_id: int,
    platform_name: str | None = None,
) -> dict[str, Any]:
    platform_name = platform_name or current_platform()
    msm_type = task.kind.msm_type
    return {
        "Action": "MsmCustomTask",
        "AppendInfo": {"UserId": user_id},
        "Data": {
            "MainTaskName": f"probekit-{platform_name}-{msm_type}-task",
            "MsmSetting": {
                "Af": task.address_family,
                "MsmType": msm_type,
                "Options": task.msm_options.to_wire(),
            },
            "SubTaskList": [
                {
                    "AgentScope": [
                        {"GeoInfo": task.filter.to_wire(), "Type": SCOPE_TYPE},
                    ],
                    "SubTaskName": SUB_TASK_NAME,
                    "TargetScope": [
                        {"ExplicitTargetHostList": [task.target_address], "Type": SCOPE_TYPE},
                    ],
                },
            ],
        },
        "Method": "Create",
        "SystemId": str(system_id),
    }


def build_query_request(task_id: int, system_id: int, user_id: int) -> dict[str, Any]:
    return {
        "Action": "MsmTaskResult",
        "AppendInfo": {"UserId": user_id},
        "Data": {"MainId": task_id},
        "Method": "RealTimeTaskResult",
        "SystemId": int(system_id),
    }


@dataclass(frozen=True)
class ApiResponse:
    """Common envelope of every API response."""
    return_code: int | None
    details: str | None
    req_id: str | None
    data: Any = None

    @classmethod
    def from_wire(cls, payload: Any) -> "ApiResponse":
        if not isinstance(payload, dict):
            raise CloudProbeError("Malformed response from cloud probe API")
        return cls(
            return_code=_opt_int(payload.get("Return")),
            details=_opt_str(payload.get("Details")),
            req_id=_opt_str(payload.get("ReqId")),
            data=payload.get("Data"),
        )

    @property
    def ok(self) -> bool:
        return self.return_code == 0


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _opt_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return int(value)
        except (ValueError, OverflowError):
            return None
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _opt_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _required_int(data: dict[str, Any], key: str) -> int:
    value = _opt_int(data.get(key))
    if value is None:
        raise ValueError(f"missing or invalid {key}")
    return value


@dataclass(frozen=True)
class CloudPingResult:
    """Result from one agent for ping, tcp_port or udp_port."""
    agent_as_id: int
    agent_country: str | None = None
    agent_isp: str | None = None
    agent_province: str | None = None
    avg_rtt_ms: float | None = None
    min_rtt_ms: float | None = None
    max_rtt_ms: float | None = None
    packet_loss: float | None = None
    agent_remote_ip: str | None = None
    peer_ip: str | None = None
    target_host: str | None = None
    error_message: str | None = None
    local_time: str | None = None
    main_task_set_id: int | None = None
    user_id: int | None = None

    @property
    def key(self) -> str:
        return f"{self.agent_as_id}-{self.local_time or ''}"

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "CloudPingResult":
        return cls(
            agent_as_id=_required_int(data, "AgentAsId"),
            agent_country=_opt_str(data.get("AgentCountry")),
            agent_isp=_opt_str(data.get("AgentISP")),
            agent_province=_opt_str(data.get("AgentProvince")),
            avg_rtt_ms=_opt_float(data.get("AvgRttMilli")),
            min_rtt_ms=_opt_float(data.get("MinRttMilli")),
            max_rtt_ms=_opt_float(data.get("MaxRttMilli")),
            packet_loss=_opt_float(data.get("PacketLoss")),
            agent_remote_ip=_opt_str(data.get("BuildinAgentRemoteIP")),
            peer_ip=_opt_str(data.get("BuildinPeerIP")),
            target_host=_opt_str(data.get("BuildinTargetHost")),
            error_message=_opt_str(data.get("BuildinErrMessage")) or None,
            local_time=_opt_str(data.get("BuildinLocalTime")),
            main_task_set_id=_opt_int(data.get("BuildinMainTaskSetId")),
            user_id=_opt_int(data.get("BuildinUserId")),
        )


@dataclass(frozen=True)
class CloudDnsAnswer:
    """One answer record seen by an agent."""
    rr_class: str | None = None
    name: str | None = None
    parse_ip: str | None = None
    rr_type: str | None = None

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "CloudDnsAnswer":
        return cls(
            rr_class=_opt_str(data.get("Class")),
            name=_opt_str(data.get("Name")),
            parse_ip=_opt_str(data.get("ParseIP")),
            rr_type=_opt_str(data.get("RRType")),
        )


@dataclass(frozen=True)
class CloudDnsResult:
    """Result from one agent for a dns measurement."""
    agent_as_id: int
    agent_country: str | None = None
    agent_isp: str | None = None
    agent_province: str | None = None
    answers: tuple[CloudDnsAnswer, ...] = field(default_factory=tuple)
    name_server: str | None = None
    rtt_ms: float | None = None
    agent_remote_ip: str | None = None
    peer_ip: str | None = None
    target_host: str | None = None
    error_message: str | None = None
    main_task_set_id: int | None = None

    @property
    def key(self) -> str:
        return f"{self.agent_as_id}-{self.main_task_set_id or 0}"

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "CloudDnsResult":
        answers = data.get("Answers") or []
        if not isinstance(answers, list):
            raise ValueError("Answers is not a list")
        return cls(
            agent_as_id=_required_int(data, "AgentAsId"),
            agent_country=_opt_str(data.get("AgentCountry")),
            agent_isp=_opt_str(data.get("AgentISP")),
            agent_province=_opt_str(data.get("AgentProvince")),
            answers=tuple(CloudDnsAnswer.from_wire(a) for a in answers if isinstance(a, dict)),
            name_server=_opt_str(data.get("AtNameServer")),
            rtt_ms=_opt_float(data.get("RttMilli")),
            agent_remote_ip=_opt_str(data.get("BuildinAgentRemoteIP")),
            peer_ip=_opt_str(data.get("BuildinPeerIP")),
            target_host=_opt_str(data.get("BuildinTargetHost")),
            error_message=_opt_str(data.get("BuildinErrMessage")) or None,
            main_task_set_id=_opt_int(data.get("BuildinMainTaskSetId")),
        )


@dataclass(frozen=True)
class CloudProbeResult:
    """All results known for a task as of one poll."""
    ping_results: tuple[CloudPingResult, ...] = field(default_factory=tuple)
    dns_results: tuple[CloudDnsResult, ...] = field(default_factory=tuple)
    finished: bool = False

    @property
    def count(self) -> int:
        return len(self.ping_results) + len(self.dns_results)


def decode_results(kind: ProbeKind, data: Any) -> CloudProbeResult:
    """
    Decode the Data object of a poll response.

    Records that cannot be decoded are skipped with a warning.
    """
    if not isinstance(data, dict):
        return CloudProbeResult()

    details = data.get("Detail") or []
    if not isinstance(details, list):
        logger.warning(f"Ignoring non-list Detail in poll response: {type(details).__name__}")
        details = []

    decoder = CloudDnsResult.from_wire if kind is ProbeKind.DNS else CloudPingResult.from_wire
    decoded = []
    for item in details:
        if not isinstance(item, dict):
            logger.warning(f"Skipping non-object result record: {item!r}")
            continue
        try:
            decoded.append(decoder(item))
        except (ValueError, TypeError, OverflowError) as e:
            logger.warning(f"Skipping undecodable {kind.value} result: {e}")

    finished = data.get("Finished") is True
    if kind is ProbeKind.DNS:
        return CloudProbeResult(dns_results=tuple(decoded), finished=finished)
    return CloudProbeResult(ping_results=tuple(decoded), finished=finished)


@dataclass(frozen=True)
class ProbeLocation:
    """A vantage-point catalog entry."""
    as_id: int
    area: str | None = None
    city: str | None = None
    country: str | None = None
    isp: str | None = None
    province: str | None = None

    @property
    def display_area(self) -> str:
        return self.area or UNKNOWN_AREA

    @property
    def display_isp(self) -> str:
        return self.isp or UNKNOWN_ISP

    @property
    def display_country(self) -> str:
        return self.country if self.country is not None else UNKNOWN_COUNTRY

    @property
    def unique_id(self) -> str:
        return f"{self.display_country}-{self.display_isp}-{self.as_id}"

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "ProbeLocation":
        return cls(
            as_id=_required_int(data, "AsId"),
            area=_opt_str(data.get("Area")),
            city=_opt_str(data.get("City")),
            country=_opt_str(data.get("Country")),
            isp=_opt_str(data.get("ISP")),
            province=_opt_str(data.get("Province")),
        )


def decode_locations(data: Any) -> list[ProbeLocation]:
    if not isinstance(data, list):
        raise CloudProbeError("Malformed probe location catalog")
    locations = []
    for item in data:
        if not isinstance(item, dict):
            continue
        try:
            locations.append(ProbeLocation.from_wire(item))
        except (ValueError, TypeError, OverflowError) as e:
            logger.warning(f"Skipping undecodable probe location: {e}")
    return locations


class LocationCatalog:
    """
    Selectable vantage points, unique by (country, ISP, AS id).

    A failed load leaves the catalog empty so that load() can simply be
    called again later.
    """

    def __init__(self, locations: list[ProbeLocation] | None = None):
        self._locations: list[ProbeLocation] = []
        if locations:
            self.replace(locations)

    def __len__(self) -> int:
        return len(self._locations)

    def __iter__(self):
        return iter(self._locations)

    @property
    def loaded(self) -> bool:
        return bool(self._locations)

    @property
    def locations(self) -> list[ProbeLocation]:
        return list(self._locations)

    def replace(self, locations: list[ProbeLocation]) -> None:
        seen = set()
        unique = []
        for location in locations:
            if location.unique_id in seen:
                continue
            seen.add(location.unique_id)
            unique.append(location)
        self._locations = unique

    async def load(self, client) -> None:
        """
        Fetch the catalog through a CloudProbeClient.

        Raises:
            CloudProbeError: If the catalog could not be fetched
        """
        try:
            locations = await client.fetch_probe_locations()
        except CloudProbeError:
            self._locations = []
            raise
        self.replace(locations)

    def areas(self) -> list[str]:
        return sorted({loc.display_area for loc in self._locations})

    def countries(self) -> list[str]:
        return sorted({loc.display_country for loc in self._locations})

    def isps(self, country: str | None = None) -> list[str]:
        return sorted({
            loc.display_isp for loc in self._locations
            if country is None or loc.display_country == country
        })

    def as_ids(self, country: str | None = None, isp: str | None = None) -> list[int]:
        return sorted({
            loc.as_id for loc in self._locations
            if (country is None or loc.display_country == country)
            and (isp is None or loc.display_isp == isp)
        })

    def find(self, country: str | None = None, isp: str | None = None, as_id: int | None = None) -> list[ProbeLocation]:
        return [
            loc for loc in self._locations
            if (country is None or loc.display_country == country)
            and (isp is None or loc.display_isp == isp)
            and (as_id is None or loc.as_id == as_id)
        ]

