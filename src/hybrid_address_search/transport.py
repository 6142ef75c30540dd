"""
HTTP transport backed by httpx.

Wraps `httpx.AsyncClient` behind the `Transport` interface so provider
adapters never see httpx exceptions, only `ProviderFetchError`.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

from .base import Transport
from .errors import ProviderFetchError

logger = logging.getLogger(__name__)


class HttpxTransport(Transport):
    """
    Non-blocking JSON GET transport.

    The underlying client is created lazily on first use and shared by all
    requests; pass an existing `httpx.AsyncClient` to control pooling.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, default_timeout: float = 5.0):
        self._client = client
        self._owns_client = client is None
        self.default_timeout = default_timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.default_timeout, follow_redirects=True)
        return self._client

    async def get_json(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        client = self._get_client()
        request_params = dict(params or {})
        try:
            response = await client.get(
                url,
                params=request_params,
                headers=dict(headers or {}),
                timeout=timeout if timeout is not None else self.default_timeout,
            )
        except httpx.TimeoutException as e:
            raise ProviderFetchError(url, f"timeout: {e}", error_label="timeout", params=request_params) from e
        except httpx.HTTPError as e:
            raise ProviderFetchError(url, str(e) or type(e).__name__, error_label="network", params=request_params) from e

        logger.debug(f"GET {url} -> {response.status_code}")

        if response.is_error:
            raise ProviderFetchError(
                url,
                f"HTTP {response.status_code}",
                http_status=response.status_code,
                error_label=f"http_{response.status_code}",
                body_snippet=response.text[:200],
                params=request_params,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderFetchError(
                url,
                "response body is not valid JSON",
                http_status=response.status_code,
                error_label="invalid_json",
                body_snippet=response.text[:200],
                params=request_params,
            ) from e

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
