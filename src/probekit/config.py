"""
Configuration management for ProbeKit.

Loads API credentials and probe tunables from environment variables
or a .env file.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Check common locations for .env
_ENV_LOCATIONS = [
    Path.home() / ".probekit" / ".env",
    Path.home() / ".config" / "probekit" / ".env",
    Path.cwd() / ".env",
]
for _env_path in _ENV_LOCATIONS:
    if _env_path.exists():
        load_dotenv(_env_path)
        break


DEFAULT_CLOUD_API_URL = "https://api.itango.tencent.com/api"


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


@dataclass
class ProbeConfig:
    """Probe tunables, API keys and endpoints."""

    # Cloud probe API
    cloud_api_url: str = DEFAULT_CLOUD_API_URL
    cloud_system_id: int = 4
    cloud_user_id: int = 0
    cloud_api_key: str = ""
    cloud_poll_interval: float = 3.0
    cloud_max_polls: int = 5

    # IPInfo.io (geolocation enrichment)
    ipinfo_token: str = ""

    # Local probe timeouts (seconds)
    ping_timeout: float = 2.0
    trace_timeout_v4: float = 0.3
    trace_timeout_v6: float = 0.5
    connect_timeout: float = 3.0
    dns_timeout: float = 3.0
    dns_server_timeout: float = 5.0

    # Traceroute pacing
    max_hops: int = 30
    hop_pause: float = 0.02

    # Enrichment
    enrichment_timeout: float = 2.0

    @classmethod
    def from_env(cls) -> "ProbeConfig":
        """Load configuration from environment variables."""
        return cls(
            cloud_api_url=os.getenv("PROBEKIT_CLOUD_API_URL", DEFAULT_CLOUD_API_URL),
            cloud_system_id=_env_int("PROBEKIT_CLOUD_SYSTEM_ID", 4),
            cloud_user_id=_env_int("PROBEKIT_CLOUD_USER_ID", 0),
            cloud_api_key=os.getenv("PROBEKIT_CLOUD_API_KEY", ""),
            cloud_poll_interval=_env_float("PROBEKIT_CLOUD_POLL_INTERVAL", 3.0),
            cloud_max_polls=_env_int("PROBEKIT_CLOUD_MAX_POLLS", 5),
            ipinfo_token=os.getenv("IPINFO_TOKEN", ""),
            ping_timeout=_env_float("PROBEKIT_PING_TIMEOUT", 2.0),
            connect_timeout=_env_float("PROBEKIT_CONNECT_TIMEOUT", 3.0),
            dns_timeout=_env_float("PROBEKIT_DNS_TIMEOUT", 3.0),
            max_hops=_env_int("PROBEKIT_MAX_HOPS", 30),
            enrichment_timeout=_env_float("PROBEKIT_ENRICHMENT_TIMEOUT", 2.0),
        )


# Global config instance
_config: ProbeConfig | None = None


def get_config() -> ProbeConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ProbeConfig.from_env()
    return _config


def set_config(config: ProbeConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
