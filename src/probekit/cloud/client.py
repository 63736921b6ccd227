"""
Cloud probe API client.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
from typing import Any

import httpx

from probekit.cloud.models import (
    ApiResponse,
    CloudProbeResult,
    CloudProbeTask,
    ProbeKind,
    ProbeLocation,
    build_catalog_request,
    build_create_request,
    build_query_request,
    decode_locations,
    decode_results,
)
from probekit.config import get_config
from probekit.errors import CloudProbeError

logger = logging.getLogger(__name__)


class CloudProbeClient:
    """Client for the remote measurement API with connection pooling."""

    def __init__(
        self,
        api_url: str | None = None,
        system_id: int | None = None,
        user_id: int | None = None,
        api_key: str | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        config = get_config()
        self.api_url = api_url or config.cloud_api_url
        self.system_id = system_id if system_id is not None else config.cloud_system_id
        self.user_id = user_id if user_id is not None else config.cloud_user_id
        self.api_key = api_key if api_key is not None else config.cloud_api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_headers(self) -> dict[str, str]:
        """Get authorization headers."""
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client with connection pooling."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=5.0),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _post(self, payload: dict[str, Any], failure: str) -> ApiResponse:
        """
        POST one request and unwrap the response envelope.

        Raises:
            CloudProbeError: On transport failure or a non-zero Return code
        """
        client = await self._get_client()
        try:
            resp = await client.post(self.api_url, json=payload, headers=self._get_headers())
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as e:
            raise CloudProbeError(f"HTTP {e.response.status_code}: {e.response.text}") from e
        except httpx.HTTPError as e:
            raise CloudProbeError(str(e) or e.__class__.__name__) from e
        except ValueError as e:
            raise CloudProbeError(f"Invalid JSON from cloud probe API: {e}") from e

        response = ApiResponse.from_wire(body)
        if not response.ok:
            raise CloudProbeError(
                response.details or failure,
                return_code=response.return_code,
                req_id=response.req_id,
            )
        return response

    async def fetch_probe_locations(self) -> list[ProbeLocation]:
        """Fetch the vantage-point catalog."""
        payload = build_catalog_request(self.system_id, self.user_id)
        response = await self._post(payload, "Request failed")
        locations = decode_locations(response.data)
        logger.debug(f"Fetched {len(locations)} probe locations")
        return locations

    async def create_task(self, task: CloudProbeTask) -> int:
        """
        Submit a measurement task and return its server-assigned id.

        Raises:
            InvalidTargetError: If the target is malformed (before any I/O)
            CloudProbeError: If the server rejects the task
        """
        task.validate()
        payload = build_create_request(task, self.system_id, self.user_id)
        response = await self._post(payload, "Create failed")

        data = response.data if isinstance(response.data, dict) else {}
        task_id = data.get("MainTaskId")
        if isinstance(task_id, bool) or not isinstance(task_id, int):
            raise CloudProbeError(
                response.details or "Create failed",
                return_code=response.return_code,
                req_id=response.req_id,
            )
        logger.debug(f"Created {task.kind.msm_type} task {task_id} for {task.target_address}")
        return task_id

    async def query_task_result(self, task_id: int, kind: ProbeKind) -> CloudProbeResult:
        """Fetch the current result set of a task."""
        payload = build_query_request(task_id, self.system_id, self.user_id)
        response = await self._post(payload, "Query failed")
        return decode_results(kind, response.data)
