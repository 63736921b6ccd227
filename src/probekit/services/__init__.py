"""
External API Services Module

Provides clients for external APIs:
- IPInfo.io - IP geolocation used by the enrichment pipeline
"""

from probekit.services.ipinfo import IPInfoClient, IPInfoResult

__all__ = [
    "IPInfoClient",
    "IPInfoResult",
]
