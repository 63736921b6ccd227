"""
System transport.

Echo and hop-limited probes shell out to the platform ping binary,
TCP and UDP probes use asyncio sockets, and DNS queries go through
dnspython's async resolver.
"""

import asyncio
import logging
import platform
import re
import socket
import time

import dns.asyncresolver
import dns.exception
import dns.rdatatype
import dns.resolver

from probekit.models import ErrorKind, IPFamily, ProbeStatus
from probekit.transport.base import (
    DnsReply,
    ProbeReply,
    RawRecord,
    Transport,
    classify_os_error,
)

logger = logging.getLogger(__name__)

SYSTEM_DNS = "System DNS"

# Well-known anycast resolvers, used only to ask the kernel for a route
_ROUTE_CHECK_ADDRESSES = {
    IPFamily.IPV4: "8.8.8.8",
    IPFamily.IPV6: "2001:4860:4860::8888",
}

# Addresses end in a hex digit; this keeps "10.0.0.1:" from swallowing the colon
_ADDR = r"([0-9a-fA-F:.]*[0-9a-fA-F])"

_TTL_EXCEEDED_RE = re.compile(
    rf"[Ff]rom {_ADDR}[^\n]*?(?:Time to live exceeded|TTL expired|Time exceeded)"
)
_REPLY_RE = re.compile(
    rf"(?:bytes from|Reply from) (?:[^\s(]+ \()?{_ADDR}\)?:[^\n]*?time[=<]\s*([\d.]+)\s*ms"
)
_UNREACHABLE_RE = re.compile(
    rf"(from {_ADDR})?[^\n]*?Destination (?:host |net |port )?unreachable",
    re.IGNORECASE,
)
_FAMILY_RE = re.compile(
    r"Address family not supported|Network is unreachable|Cannot assign requested address|"
    r"No route to host|transmit failed"
)
_UNKNOWN_HOST_RE = re.compile(r"Name or service not known|cannot resolve|could not find host|Unknown host")


def _build_ping_command(
    system: str,
    address: str,
    family: IPFamily,
    size: int,
    timeout: float,
    ttl: int | None,
) -> list[str] | None:
    """Build a single-packet ping command line for this platform."""
    if system == "linux":
        cmd = ["ping", "-n", "-c", "1", "-W", f"{max(timeout, 0.001):g}", "-s", str(size)]
        if family is IPFamily.IPV6:
            cmd.insert(1, "-6")
        if ttl is not None:
            cmd += ["-t", str(ttl)]
    elif system == "darwin":
        if family is IPFamily.IPV6:
            cmd = ["ping6", "-n", "-c", "1", "-s", str(size)]
            if ttl is not None:
                cmd += ["-h", str(ttl)]
        else:
            cmd = ["ping", "-n", "-c", "1", "-W", str(max(int(timeout * 1000), 1)), "-s", str(size)]
            if ttl is not None:
                cmd += ["-m", str(ttl)]
    elif system == "windows":
        cmd = ["ping", "-n", "1", "-w", str(max(int(timeout * 1000), 1)), "-l", str(size)]
        if family is IPFamily.IPV6:
            cmd.append("-6")
        if ttl is not None:
            cmd += ["-i", str(ttl)]
    else:
        return None

    cmd.append(address)
    return cmd


def parse_ping_output(output: str, address: str, elapsed_ms: float) -> ProbeReply:
    """
    Classify the output of a single-packet ping run.

    Time-exceeded replies carry no RTT on most platforms, so the wall
    clock time of the run stands in for it.
    """
    match = _TTL_EXCEEDED_RE.search(output)
    if match:
        return ProbeReply.success(elapsed_ms, responder=match.group(1), reached=False)

    match = _REPLY_RE.search(output)
    if match:
        responder = match.group(1)
        return ProbeReply.success(float(match.group(2)), responder=responder, reached=responder == address)

    match = _UNREACHABLE_RE.search(output)
    if match:
        return ProbeReply.error(ErrorKind.UNREACHABLE, "Destination unreachable", responder=match.group(2))

    if _FAMILY_RE.search(output):
        return ProbeReply.error(ErrorKind.FAMILY_UNAVAILABLE, "No route for this address family")

    if _UNKNOWN_HOST_RE.search(output):
        return ProbeReply.error(ErrorKind.RESOLUTION, f"Could not resolve {address}")

    return ProbeReply.timeout()


def _rdata_value(rdtype: int, rdata) -> str:
    """Human-readable value of one rdata, without trailing dots on names."""
    if rdtype in (dns.rdatatype.A, dns.rdatatype.AAAA):
        return rdata.address
    if rdtype in (dns.rdatatype.CNAME, dns.rdatatype.NS, dns.rdatatype.PTR):
        return rdata.target.to_text(omit_final_dot=True)
    if rdtype == dns.rdatatype.MX:
        return f"{rdata.preference} {rdata.exchange.to_text(omit_final_dot=True)}"
    if rdtype == dns.rdatatype.TXT:
        return "; ".join(s.decode("utf-8", errors="replace") for s in rdata.strings)
    if rdtype == dns.rdatatype.SOA:
        return (
            f"mname={rdata.mname.to_text(omit_final_dot=True)} "
            f"rname={rdata.rname.to_text(omit_final_dot=True)} "
            f"serial={rdata.serial} refresh={rdata.refresh} retry={rdata.retry} "
            f"expire={rdata.expire} minimum={rdata.minimum}"
        )
    return rdata.to_text()


class _DatagramProbe(asyncio.DatagramProtocol):
    """Resolves a future with the first datagram or error received."""

    def __init__(self, waiter: asyncio.Future):
        self.waiter = waiter

    def datagram_received(self, data: bytes, addr) -> None:
        if not self.waiter.done():
            self.waiter.set_result(data)

    def error_received(self, exc: Exception) -> None:
        if not self.waiter.done():
            self.waiter.set_exception(exc)


class SystemTransport(Transport):
    """Transport backed by the host's network stack."""

    def __init__(self):
        self.system = platform.system().lower()

    async def family_available(self, family: IPFamily) -> bool:
        # A connected UDP socket sends nothing but needs a route
        sock = socket.socket(family.af, socket.SOCK_DGRAM)
        try:
            sock.connect((_ROUTE_CHECK_ADDRESSES[family], 53))
            return True
        except OSError as e:
            logger.debug(f"No {family.value} route: {e}")
            return False
        finally:
            sock.close()

    async def echo(
        self,
        address: str,
        family: IPFamily,
        *,
        sequence: int,
        size: int = 56,
        timeout: float = 2.0,
        ttl: int | None = None,
    ) -> ProbeReply:
        cmd = _build_ping_command(self.system, address, family, size, timeout, ttl)
        if cmd is None:
            return ProbeReply.error(ErrorKind.PROTOCOL, f"Unsupported platform: {self.system}")

        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return ProbeReply.error(ErrorKind.PROTOCOL, "ping command not found")

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout + 2.0)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return ProbeReply.timeout()
        except asyncio.CancelledError:
            proc.kill()
            await asyncio.shield(proc.wait())
            raise

        elapsed_ms = (time.monotonic() - start) * 1000
        output = stdout.decode(errors="replace") + stderr.decode(errors="replace")
        reply = parse_ping_output(output, address, elapsed_ms)
        logger.debug(f"echo {address} seq={sequence} ttl={ttl}: {reply.status.value}")
        return reply

    async def tcp_connect(self, address: str, family: IPFamily, port: int, timeout: float = 3.0) -> ProbeReply:
        start = time.monotonic()
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(address, port, family=family.af),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return ProbeReply.timeout("Connection timed out")
        except OSError as e:
            kind, reason = classify_os_error(e, family)
            return ProbeReply.error(kind, reason)

        latency_ms = (time.monotonic() - start) * 1000
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error closing connection to {address}:{port}: {e}")
        return ProbeReply.success(latency_ms, responder=address)

    async def udp_exchange(
        self,
        address: str,
        family: IPFamily,
        port: int,
        payload: bytes = b"ping",
        timeout: float = 3.0,
    ) -> ProbeReply:
        loop = asyncio.get_running_loop()
        waiter = loop.create_future()

        start = time.monotonic()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _DatagramProbe(waiter),
                remote_addr=(address, port),
                family=family.af,
            )
        except OSError as e:
            kind, reason = classify_os_error(e, family)
            return ProbeReply.error(kind, reason)

        try:
            transport.sendto(payload)
            data = await asyncio.wait_for(waiter, timeout=timeout)
        except asyncio.TimeoutError:
            return ProbeReply.timeout("No response (UDP is connectionless, this may be normal)")
        except OSError as e:
            kind, reason = classify_os_error(e, family)
            return ProbeReply.error(kind, reason)
        finally:
            transport.close()

        latency_ms = (time.monotonic() - start) * 1000
        return ProbeReply.success(latency_ms, responder=address, payload=data)

    async def dns_query(
        self,
        name: str,
        rdtype: str,
        *,
        server: str | None = None,
        timeout: float = 3.0,
    ) -> DnsReply:
        resolver = dns.asyncresolver.Resolver()
        if server:
            resolver.nameservers = [server]
        resolver.timeout = timeout
        resolver.lifetime = timeout

        start = time.monotonic()
        try:
            answer = await resolver.resolve(name, rdtype, raise_on_no_answer=False)
        except dns.resolver.NXDOMAIN:
            return self._dns_error(ErrorKind.PROTOCOL, "NXDOMAIN", server, start)
        except dns.resolver.NoNameservers:
            return self._dns_error(ErrorKind.PROTOCOL, "No nameservers available", server, start)
        except dns.exception.Timeout:
            return DnsReply(
                status=ProbeStatus.TIMEOUT,
                server=server or SYSTEM_DNS,
                latency_ms=(time.monotonic() - start) * 1000,
                error_kind=ErrorKind.TIMEOUT,
                reason="Query timed out",
            )
        except OSError as e:
            kind, reason = classify_os_error(e)
            return self._dns_error(kind, reason, server, start)
        except dns.exception.DNSException as e:
            return self._dns_error(ErrorKind.PROTOCOL, str(e), server, start)

        latency_ms = (time.monotonic() - start) * 1000

        records = []
        for rrset in answer.response.answer:
            for rdata in rrset:
                records.append(RawRecord(
                    name=rrset.name.to_text(omit_final_dot=True),
                    rdtype=int(rrset.rdtype),
                    type_name=dns.rdatatype.to_text(rrset.rdtype),
                    ttl=rrset.ttl,
                    value=_rdata_value(rrset.rdtype, rdata),
                    wire=rdata.to_wire(),
                ))

        return DnsReply(
            status=ProbeStatus.SUCCESS,
            records=tuple(records),
            server=getattr(answer, "nameserver", None) or server or SYSTEM_DNS,
            latency_ms=latency_ms,
            query_id=answer.response.id,
        )

    async def resolve_addresses(self, name: str, timeout: float = 3.0) -> DnsReply:
        loop = asyncio.get_running_loop()
        start = time.monotonic()
        try:
            infos = await asyncio.wait_for(
                loop.getaddrinfo(name, None, family=socket.AF_UNSPEC, type=socket.SOCK_STREAM),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return DnsReply(
                status=ProbeStatus.TIMEOUT,
                server=SYSTEM_DNS,
                latency_ms=(time.monotonic() - start) * 1000,
                error_kind=ErrorKind.TIMEOUT,
                reason="Query timed out",
            )
        except socket.gaierror as e:
            return self._dns_error(ErrorKind.RESOLUTION, f"DNS resolution failed: {e.strerror or e}", None, start)

        latency_ms = (time.monotonic() - start) * 1000

        records = []
        seen = set()
        for family, _, _, _, sockaddr in infos:
            address = sockaddr[0]
            if address in seen:
                continue
            seen.add(address)
            if family == socket.AF_INET:
                records.append(RawRecord(
                    name=name, rdtype=int(dns.rdatatype.A), type_name="A", ttl=None,
                    value=address, wire=socket.inet_pton(socket.AF_INET, address),
                ))
            elif family == socket.AF_INET6:
                records.append(RawRecord(
                    name=name, rdtype=int(dns.rdatatype.AAAA), type_name="AAAA", ttl=None,
                    value=address, wire=socket.inet_pton(socket.AF_INET6, address),
                ))

        return DnsReply(
            status=ProbeStatus.SUCCESS,
            records=tuple(records),
            server=SYSTEM_DNS,
            latency_ms=latency_ms,
        )

    @staticmethod
    def _dns_error(kind: ErrorKind, reason: str, server: str | None, start: float) -> DnsReply:
        return DnsReply(
            status=ProbeStatus.ERROR,
            server=server or SYSTEM_DNS,
            latency_ms=(time.monotonic() - start) * 1000,
            error_kind=kind,
            reason=reason,
        )
