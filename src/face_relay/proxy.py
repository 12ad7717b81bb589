"""
HLS Proxy
=========

Pass-through reverse proxy for playlist and segment requests.

Browsers fetch the HLS stream from this service instead of the origin,
so the origin does not need to send CORS headers itself. Requests under
the configured prefix are forwarded with the prefix stripped; responses
come back unmodified except for hop-by-hop headers and an injected
Access-Control-Allow-Origin header.
"""

import logging
from typing import Optional

import httpx
from fastapi import Request, Response

from face_relay.config import ProxyConfig


logger = logging.getLogger(__name__)


# Headers that must not be forwarded (RFC 7230 section 6.1) plus ones
# httpx recomputes after decoding the body.
_HOP_BY_HOP = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
    "host",
    "content-length",
    "content-encoding",
})


class HLSProxy:
    """
    Forwards requests to the configured origin.

    Attributes:
        target: Upstream origin, e.g. http://example.com
        timeout: Upstream request timeout in seconds
    """

    def __init__(self, config: ProxyConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.target = config.target.rstrip("/")
        self.timeout = config.timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.target,
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=False,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def forward(self, request: Request, path: str) -> Response:
        """
        Forward one request to the origin.

        Args:
            request: Incoming request
            path: Path below the proxy prefix

        Returns:
            Upstream response with CORS header injected, or 502 if the
            origin cannot be reached
        """
        client = await self._get_client()
        headers = {k: v for k, v in request.headers.items() if k.lower() not in _HOP_BY_HOP}

        try:
            upstream = await client.request(
                request.method,
                "/" + path.lstrip("/"),
                params=request.query_params,
                headers=headers,
                content=await request.body(),
            )
        except httpx.HTTPError as e:
            logger.error(f"Proxy error for /{path}: {e}")
            return Response(
                content=b"Bad gateway",
                status_code=502,
                headers={"Access-Control-Allow-Origin": "*"},
            )

        response_headers = {
            k: v for k, v in upstream.headers.items() if k.lower() not in _HOP_BY_HOP
        }
        response_headers["Access-Control-Allow-Origin"] = "*"

        return Response(
            content=upstream.content,
            status_code=upstream.status_code,
            headers=response_headers,
        )
