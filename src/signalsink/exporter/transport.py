# src/signalsink/exporter/transport.py
"""HTTP transport: one POST per payload.

The transport only reports what happened. Timeouts and connection failures
raise TransportError; any status outside [200, 300) raises HTTPStatusError.
Whether a status is worth retrying is decided by the delivery pipeline.
"""

from __future__ import annotations

import email.utils
import time
from collections.abc import Mapping
from datetime import UTC, datetime

import httpx
import structlog

from signalsink.contracts.errors import HTTPStatusError, TransportError

logger = structlog.get_logger(__name__)

DEFAULT_HEADERS: Mapping[str, str] = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}

# Bytes of an error response body kept on HTTPStatusError
BODY_EXCERPT_LIMIT = 4096


def merge_headers(*layers: Mapping[str, str] | None) -> httpx.Headers:
    """Merge header layers; later layers win, names compare case-insensitively."""
    merged = httpx.Headers()
    for layer in layers:
        if not layer:
            continue
        for name, value in layer.items():
            merged[name] = value
    return merged


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header (delta-seconds or HTTP-date) into seconds."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if value.isdigit():
        return float(value)
    try:
        when = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0.0, (when - datetime.now(tz=UTC)).total_seconds())


class HttpTransport:
    """POST payloads with httpx.

    Default headers (JSON content type) are overridden by configured
    headers, which are in turn overridden by per-call headers.

    Thread Safety:
        httpx.Client is thread-safe; one client and its connection pool
        are shared by every worker of every signal pipeline.

    Example:
        transport = HttpTransport(timeout=5.0, headers={"Authorization": "Bearer ..."})
        transport.deliver("https://ingest.example.com/v1/logs", body)
        transport.close()
    """

    def __init__(
        self,
        *,
        timeout: float = 5.0,
        headers: Mapping[str, str] | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            timeout: Per-request timeout in seconds (connect, read, write, pool)
            headers: Configured headers layered over DEFAULT_HEADERS
            client: Pre-built client (tests); created when omitted
        """
        self._timeout = timeout
        self._headers = merge_headers(DEFAULT_HEADERS, headers)
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout, follow_redirects=False)
        self._closed = False

    @property
    def headers(self) -> httpx.Headers:
        """Headers sent with every request (a copy)."""
        return httpx.Headers(self._headers)

    def deliver(self, url: str, body: bytes, headers: Mapping[str, str] | None = None) -> None:
        """POST body to url.

        Args:
            url: Absolute target URL
            body: Encoded payload
            headers: Extra headers for this call only

        Raises:
            TransportError: Timeout or connection-level failure
            HTTPStatusError: Status outside [200, 300), with a bounded body excerpt
        """
        if self._closed:
            raise TransportError(url, "transport is closed")
        request_headers = merge_headers(self._headers, headers)
        start = time.perf_counter()
        try:
            with self._client.stream(
                "POST",
                url,
                content=body,
                headers=request_headers,
                timeout=self._timeout,
            ) as response:
                status = response.status_code
                if 200 <= status < 300:
                    logger.debug(
                        "POST succeeded",
                        url=url,
                        status_code=status,
                        bytes=len(body),
                        latency_ms=round((time.perf_counter() - start) * 1000, 2),
                    )
                    return
                excerpt = self._read_excerpt(response)
                retry_after = parse_retry_after(response.headers.get("Retry-After"))
        except httpx.TimeoutException as e:
            raise TransportError(url, f"http post timed out: {e}", timeout=True) from e
        except httpx.RequestError as e:
            raise TransportError(url, f"http post failed: {e}") from e

        raise HTTPStatusError(url, status, excerpt, retry_after=retry_after)

    @staticmethod
    def _read_excerpt(response: httpx.Response) -> str:
        """Read at most BODY_EXCERPT_LIMIT bytes of a streamed body."""
        chunks: list[bytes] = []
        remaining = BODY_EXCERPT_LIMIT
        for chunk in response.iter_bytes():
            if remaining <= 0:
                break
            chunks.append(chunk[:remaining])
            remaining -= len(chunk)
        return b"".join(chunks).decode("utf-8", errors="replace")

    def close(self) -> None:
        """Close the underlying client. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._owns_client:
            self._client.close()
