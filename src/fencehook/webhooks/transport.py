"""HTTP transport for webhook deliveries.

The pipeline only needs "POST these bytes with these headers within
this timeout". ``Transport`` is that contract; ``HttpxTransport`` is the
production implementation and tests substitute their own.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx

from fencehook.exceptions import TransportError

# Response text stored on a record is capped at this length
MAX_RESPONSE_EXCERPT = 1000


@dataclass(frozen=True)
class TransportResponse:
    """What came back from the receiver."""

    status_code: int
    body_excerpt: str = ""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


@runtime_checkable
class Transport(Protocol):
    """Outbound HTTP POST with a bounded timeout."""

    async def post(
        self,
        url: str,
        body: bytes,
        headers: dict[str, str],
        timeout: float,
    ) -> TransportResponse:
        """Send the request.

        Raises:
            TransportError: If no response was received (timeout,
                connection failure, protocol error).
        """
        ...


class HttpxTransport:
    """Transport backed by a shared ``httpx.AsyncClient``.

    Redirects are not followed: a 3xx is a non-2xx outcome like any other.

    Example:
        ```python
        async with HttpxTransport() as transport:
            response = await transport.post(url, body, headers, timeout=5.0)
        ```
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=False)
        return self._client

    async def post(
        self,
        url: str,
        body: bytes,
        headers: dict[str, str],
        timeout: float,
    ) -> TransportResponse:
        # httpx applies its timeout per phase; the outer deadline bounds the whole call
        try:
            async with asyncio.timeout(timeout):
                response = await self.client.post(
                    url,
                    content=body,
                    headers=headers,
                    timeout=timeout,
                )
        except (httpx.TimeoutException, TimeoutError) as e:
            raise TransportError(f"Request timeout after {timeout}s", timed_out=True) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

        return TransportResponse(
            status_code=response.status_code,
            body_excerpt=response.text[:MAX_RESPONSE_EXCERPT] if response.text else "",
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
