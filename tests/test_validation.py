"""
Tests for target validation
"""

import pytest

from probekit.errors import InvalidTargetError
from probekit.models import IPFamily
from probekit.validation import ip_family, is_ipv4, is_special_address, validate_host, validate_port


class TestValidateHost:
    """Test host validation"""

    @pytest.mark.parametrize("host", ["example.com", "localhost", "a-b.example.co.uk", "192.0.2.1", "2001:db8::1"])
    def test_valid(self, host):
        assert validate_host(host) == host

    def test_trims_whitespace(self):
        assert validate_host("  example.com ") == "example.com"

    @pytest.mark.parametrize("host", ["", "   ", "bad host", "-example.com", "exa_mple.com", "300.1.1.1", "a" * 254])
    def test_invalid(self, host):
        with pytest.raises(InvalidTargetError):
            validate_host(host)

    def test_fqdn_required(self):
        with pytest.raises(InvalidTargetError):
            validate_host("localhost", require_fqdn=True)
        assert validate_host("example.com", require_fqdn=True) == "example.com"


class TestValidatePort:
    """Test port validation"""

    def test_valid(self):
        assert validate_port(443) == 443
        assert validate_port(" 53 ") == 53

    @pytest.mark.parametrize("port", [0, 65536, -1, "http"])
    def test_invalid(self, port):
        with pytest.raises(InvalidTargetError):
            validate_port(port)


class TestAddressClassification:
    """Test address helpers"""

    def test_family(self):
        assert ip_family("192.0.2.1") is IPFamily.IPV4
        assert ip_family("2001:db8::1") is IPFamily.IPV6
        assert ip_family("example.com") is None

    @pytest.mark.parametrize("value", ["10.1", "127.1", "0x7f.1", "1"])
    def test_shorthand_is_not_ipv4(self, value):
        assert not is_ipv4(value)
        assert ip_family(value) is None

    @pytest.mark.parametrize("address", ["10.1.2.3", "172.16.0.1", "192.168.1.1", "127.0.0.1", "169.254.1.1", "fe80::1", "fd00::1", "::1"])
    def test_special(self, address):
        assert is_special_address(address)

    @pytest.mark.parametrize("address", ["8.8.8.8", "2001:4860:4860::8888", "example.com"])
    def test_not_special(self, address):
        assert not is_special_address(address)
