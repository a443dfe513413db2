"""Asynchronous HTTP transport backed by :mod:`httpx`.

This module provides :class:`HttpTransport`, the production
:class:`~cachegen.transport.base.Transport`. It wraps
:class:`httpx.AsyncClient`, retries connection-level failures with
exponential backoff, and classifies each response the way a browser's
Fetch implementation would:

* ``basic`` -- same origin as the configured scope (cacheable when 200);
* ``cors`` -- cross-origin, with an ``Access-Control-Allow-Origin`` header;
* ``opaque`` -- any other cross-origin response.

Network failures (DNS, refused connection, timeout, offline) are raised as
:class:`~cachegen.exceptions.NetworkError`. HTTP error statuses are returned
as ordinary records.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from cachegen.exceptions import NetworkError
from cachegen.keys import is_same_origin
from cachegen.models import GlobalConfig, Request, ResourceRecord, ResponseType

logger = logging.getLogger(__name__)

_RETRYABLE = (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError)


class HttpTransport:
    """Fetches resources from the origin over HTTP.

    Must be used as an async context manager.

    Args:
        config: Effective configuration; ``scope`` decides which responses
            are same-origin and ``request`` supplies timeout, TLS
            verification and the retry budget.
        transport: Optional low-level httpx transport, e.g.
            :class:`httpx.MockTransport` in tests.

    Example::

        async with HttpTransport(config) as transport:
            record = await transport.fetch(Request(url="https://app.example.com/app.js"))
    """

    def __init__(
        self,
        config: GlobalConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> HttpTransport:
        request_config = self._config.request
        self._client = httpx.AsyncClient(
            timeout=request_config.timeout,
            verify=request_config.verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Transport protocol
    # ------------------------------------------------------------------ #

    async def fetch(self, request: Request) -> ResourceRecord:
        """Fetch *request* from the origin.

        Args:
            request: The request to send. Its ``url`` must be absolute.

        Returns:
            A :class:`~cachegen.models.ResourceRecord` for any HTTP response,
            whatever its status.

        Raises:
            NetworkError: If no response could be obtained after all retries.
        """
        response = await self._execute_with_retry(request)
        return ResourceRecord(
            url=request.url,
            status=response.status_code,
            reason=response.reason_phrase or "",
            headers=dict(response.headers),
            body=response.content,
            response_type=self._classify(request.url, response),
        )

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _classify(self, url: str, response: httpx.Response) -> ResponseType:
        """Return the Fetch response type for *response*."""
        final_url = str(response.url) if response.url else url
        if is_same_origin(url, self._config.scope) and is_same_origin(
            final_url, self._config.scope
        ):
            return ResponseType.BASIC
        if "access-control-allow-origin" in response.headers:
            return ResponseType.CORS
        return ResponseType.OPAQUE

    async def _execute_with_retry(self, request: Request) -> httpx.Response:
        """Execute the HTTP request with exponential-backoff retry.

        Retries connection and timeout errors up to ``max_retries`` times
        using :func:`asyncio.sleep` between attempts. The delay doubles each
        attempt: 1 s, 2 s, 4 s, ...
        """
        assert self._client is not None, "Transport not initialised -- use as async context manager"

        max_retries = self._config.request.max_retries

        for attempt in range(max_retries + 1):
            try:
                return await self._client.request(
                    request.method, request.url, headers=request.headers
                )
            except _RETRYABLE as exc:
                if attempt < max_retries:
                    delay = 2 ** attempt
                    logger.debug(
                        "Connection error for %s: %s, retrying in %ss (attempt %d/%d)",
                        request.url,
                        exc,
                        delay,
                        attempt + 1,
                        max_retries,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise NetworkError(
                    f"Fetching {request.url} failed after {max_retries + 1} attempts: {exc}",
                    url=request.url,
                ) from exc
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                raise NetworkError(
                    f"Fetching {request.url} failed: {exc}", url=request.url
                ) from exc

        raise NetworkError(f"Fetching {request.url} failed", url=request.url)  # pragma: no cover
