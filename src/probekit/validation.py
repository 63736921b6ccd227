"""
Target validation and address classification.

Everything here runs before any transport call: a target that fails
validation never reaches the network.
"""

import re

from netaddr import IPAddress, IPSet, valid_ipv4, valid_ipv6

from probekit.errors import InvalidTargetError
from probekit.models import IPFamily


# Addresses that never get a public geolocation (RFC 6890 special-purpose space)
SPECIAL_RANGES_V4 = [
    "0.0.0.0/8",           # "This" network
    "10.0.0.0/8",          # Private-Use
    "100.64.0.0/10",       # Shared Address Space (CGN)
    "127.0.0.0/8",         # Loopback
    "169.254.0.0/16",      # Link-Local
    "172.16.0.0/12",       # Private-Use
    "192.168.0.0/16",      # Private-Use
    "255.255.255.255/32",  # Limited Broadcast
]

SPECIAL_RANGES_V6 = [
    "::/128",              # Unspecified
    "::1/128",             # Loopback
    "fc00::/7",            # Unique-Local
    "fe80::/10",           # Link-Local
]

_SPECIAL_SET = IPSet(SPECIAL_RANGES_V4 + SPECIAL_RANGES_V6)

_LABEL = r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
_FQDN_RE = re.compile(rf"^(?:{_LABEL}\.)+[A-Za-z]{{2,}}$")
_HOSTNAME_RE = re.compile(rf"^{_LABEL}(?:\.{_LABEL})*\.?$")

MAX_HOSTNAME_LENGTH = 253


def is_ipv4(value: str) -> bool:
    return valid_ipv4(value)


def is_ipv6(value: str) -> bool:
    return valid_ipv6(value)


def is_ip_address(value: str) -> bool:
    return is_ipv4(value) or is_ipv6(value)


def ip_family(value: str) -> IPFamily | None:
    """Family of an IP literal, or None for anything else."""
    if is_ipv4(value):
        return IPFamily.IPV4
    if is_ipv6(value):
        return IPFamily.IPV6
    return None


def is_special_address(ip: str) -> bool:
    """True for private, loopback, link-local and other non-routable addresses."""
    if not is_ip_address(ip):
        return False
    return IPAddress(ip) in _SPECIAL_SET


def validate_host(host: str, require_fqdn: bool = False) -> str:
    """
    Validate a host name or IP literal.

    Args:
        host: User-supplied target
        require_fqdn: Demand a dotted name with an alphabetic TLD
            (the cloud API rejects bare labels such as "localhost")

    Returns:
        The trimmed host

    Raises:
        InvalidTargetError: If the host is empty or malformed
    """
    trimmed = (host or "").strip()
    if not trimmed:
        raise InvalidTargetError(host or "", "Empty host")

    if is_ip_address(trimmed):
        return trimmed

    if len(trimmed) > MAX_HOSTNAME_LENGTH:
        raise InvalidTargetError(trimmed, "Host name too long")

    pattern = _FQDN_RE if require_fqdn else _HOSTNAME_RE
    if not pattern.match(trimmed):
        raise InvalidTargetError(trimmed, "Invalid host or IP address")

    # Names made only of digits and dots are mistyped IPv4 addresses
    if re.fullmatch(r"[\d.]+", trimmed):
        raise InvalidTargetError(trimmed, "Invalid IPv4 address")

    return trimmed


def validate_port(port: int | str) -> int:
    """Validate a TCP/UDP port number."""
    try:
        value = int(str(port).strip())
    except ValueError:
        raise InvalidTargetError(str(port), "Invalid port")
    if not 1 <= value <= 65535:
        raise InvalidTargetError(str(port), "Port out of range")
    return value
