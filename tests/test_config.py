"""
Tests for configuration and error tracking
"""

from probekit.config import DEFAULT_CLOUD_API_URL, ProbeConfig, get_config, set_config
from probekit.logging_config import get_error_stats, reset_error_stats, track_error


class TestProbeConfig:
    """Test environment loading"""

    def test_defaults(self):
        config = ProbeConfig()
        assert config.cloud_api_url == DEFAULT_CLOUD_API_URL
        assert config.cloud_max_polls == 5
        assert config.cloud_poll_interval == 3.0
        assert config.trace_timeout_v4 < config.trace_timeout_v6

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PROBEKIT_CLOUD_API_URL", "https://probe.example.test/api")
        monkeypatch.setenv("PROBEKIT_CLOUD_SYSTEM_ID", "9")
        monkeypatch.setenv("PROBEKIT_CLOUD_MAX_POLLS", "3")
        monkeypatch.setenv("PROBEKIT_PING_TIMEOUT", "1.5")
        monkeypatch.setenv("IPINFO_TOKEN", "tok")
        config = ProbeConfig.from_env()

        assert config.cloud_api_url == "https://probe.example.test/api"
        assert config.cloud_system_id == 9
        assert config.cloud_max_polls == 3
        assert config.ping_timeout == 1.5
        assert config.ipinfo_token == "tok"

    def test_empty_values_use_defaults(self, monkeypatch):
        monkeypatch.setenv("PROBEKIT_MAX_HOPS", "")
        assert ProbeConfig.from_env().max_hops == 30

    def test_global_instance(self, default_config):
        assert get_config() is default_config
        replacement = ProbeConfig(max_hops=8)
        set_config(replacement)
        assert get_config().max_hops == 8


def test_track_error_counts():
    reset_error_stats()
    track_error("cloud_poll", "task expired")
    track_error("cloud_poll", "task expired again")
    track_error("resolution", "no such host", context={"tool": "ping"})

    assert get_error_stats() == {"cloud_poll": 2, "resolution": 1}
    reset_error_stats()
    assert get_error_stats() == {}
