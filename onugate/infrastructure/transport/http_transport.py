"""Concrete implementation of the Transport interface using httpx.

Hides the specifics of the HTTP client library: the static token header, the
base URL, the timeout, and the split between results (2xx/4xx) and transport
failures (network errors, timeouts, 5xx).
"""

import json
import logging
import time
from typing import Any, Mapping, Optional

import httpx

from onugate.domain.errors import TransportError
from onugate.domain.interfaces.transport import RawResult, Transport
from onugate.infrastructure.config.settings import DEFAULT_TIMEOUT_SECONDS, DEFAULT_TOKEN_HEADER

logger = logging.getLogger(__name__)


def encode_form(fields: Mapping[str, Any]) -> dict:
    """Prepares form fields for x-www-form-urlencoded bodies.

    ``None`` values are dropped and booleans become 1/0, the way the upstream
    expects checkbox-like fields.
    """
    encoded = {}
    for name, value in fields.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = int(value)
        encoded[name] = str(value)
    return encoded


class HttpTransport(Transport):
    """httpx-based transport to the upstream API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        token_header: str = DEFAULT_TOKEN_HEADER,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        verify_tls: bool = True,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initializes the transport.

        Args:
            base_url: Upstream base URL (e.g. https://example.smartolt.com/api).
            token: Static credential attached to every request.
            token_header: Header carrying the credential.
            timeout: Per-call timeout in seconds.
            verify_tls: Whether to verify the upstream TLS certificate.
            client: Pre-built client (tests inject one with httpx.MockTransport).
        """
        if not base_url:
            raise ValueError("Upstream base URL not provided.")
        headers = {token_header: token} if token else {}
        self.base_url = base_url.rstrip('/')
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            verify=verify_tls,
        )
        if client is not None and token:
            self.client.headers[token_header] = token
        logger.info(f"HttpTransport initialized: base_url={self.base_url}, timeout={timeout}s, verify_tls={verify_tls}")

    async def call(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        form: Optional[Mapping[str, Any]] = None,
    ) -> RawResult:
        method = method.upper()
        logger.debug(f"{method} {path} params={dict(params or {})}")
        start_time = time.perf_counter()
        try:
            if method == "GET":
                response = await self.client.get(path, params=dict(params or {}))
            else:
                # The upstream rejects JSON bodies on mutations.
                response = await self.client.request(
                    method,
                    path,
                    params=dict(params or {}) or None,
                    data=encode_form(form or {}),
                )
        except httpx.TimeoutException as e:
            raise TransportError(f"Timeout calling {method} {path}: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Network error calling {method} {path}: {e}") from e

        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(f"{method} {path} -> {response.status_code} in {latency_ms:.1f}ms")

        if response.status_code >= 500 or response.status_code < 200:
            raise TransportError(
                f"Upstream returned HTTP {response.status_code} for {method} {path}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            if response.status_code >= 400:
                # 4xx bodies are often HTML/plain text; keep them for the error message.
                body = response.text
            else:
                raise TransportError(
                    f"Unparseable response body from {method} {path}: {e}",
                    status_code=response.status_code,
                ) from e

        return RawResult(status_code=response.status_code, body=body, reason=response.reason_phrase)

    async def close(self) -> None:
        await self.client.aclose()
        logger.debug("HttpTransport closed.")
