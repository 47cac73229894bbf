"""
HTTP client for the prompt-serving backend.

Thin async wrapper over httpx that applies the configured timeout, injects
the API key header and (de)serializes JSON. Every failure is raised as a
BackendError carrying a human-readable message; nothing is retried.
"""

from typing import Any, Dict, Optional

import httpx

from common.config import BridgeConfig
from common.logging import TimedLogger, get_logger

logger = get_logger(__name__)

BRIDGE_VERSION = "1.0.0"
USER_AGENT = f"PromptHub-MCP-Bridge/{BRIDGE_VERSION}"


class BackendError(Exception):
    """Raised when a backend request fails for any reason."""


class BackendClient:
    """Async JSON client for the backend REST surface."""

    def __init__(
        self,
        config: BridgeConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        if config.api_key:
            headers["X-Api-Key"] = config.api_key

        self.base_url = config.server_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=config.timeout_seconds,
            transport=transport,
        )

        logger.info(
            event="backend_client_initialized",
            base_url=self.base_url,
            api_key_configured=bool(config.api_key),
            timeout_seconds=config.timeout_seconds,
        )

    async def get(self, path: str) -> Any:
        """GET ``path`` and return the decoded JSON body."""
        return await self._request("GET", path)

    async def post(self, path: str, payload: Dict[str, Any]) -> Any:
        """POST ``payload`` as JSON to ``path`` and return the decoded JSON body."""
        return await self._request("POST", path, payload)

    async def _request(self, method: str, path: str, payload: Optional[Any] = None) -> Any:
        with TimedLogger(logger, "backend_request", method=method, path=path):
            try:
                response = await self.client.request(method, path, json=payload)
            except httpx.TimeoutException:
                raise BackendError("Request timeout")
            except httpx.HTTPError as e:
                raise BackendError(f"Request failed: {e}")

            if not response.is_success:
                raise BackendError(f"HTTP {response.status_code}: {response.text}")

            if not response.content:
                return {}

            try:
                return response.json()
            except ValueError as e:
                raise BackendError(f"Response parse error: {e}")

    async def aclose(self) -> None:
        await self.client.aclose()
