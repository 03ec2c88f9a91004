"""
HTTP adapter — SOAP over HTTPS via httpx.

Adapter layer — implements the HttpTransport port with httpx.AsyncClient.

Behaviour:
  - One client per request, closed by its context manager even when the
    calling task is cancelled.
  - The timeout bounds the whole exchange (asyncio.timeout) as well as each
    httpx phase.
  - Transport failures become NetworkError; a connection that was never
    established becomes UnreachableError, the only failure that is safe to
    retry for any operation.
  - Any received response is returned as-is, whatever its status. Deciding
    what a non-2xx answer means is the caller's job.

ARCA still serves some endpoints with small DH parameters and old TLS
versions, so by default the SSL context relaxes cipher selection to
"DEFAULT:!DH@SECLEVEL=0" (drop DH, lowest OpenSSL security level) while
keeping certificate verification on.
"""

from __future__ import annotations

import asyncio
import ssl
from collections.abc import Mapping

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from arca_client.domain.ports import HttpResponse, HttpTransport
from arca_client.errors import NetworkError, UnreachableError

log = structlog.get_logger()

LEGACY_CIPHERS = "DEFAULT:!DH@SECLEVEL=0"


def create_legacy_ssl_context() -> ssl.SSLContext:
    """Verified TLS context that still negotiates with ARCA's older servers."""
    context = ssl.create_default_context()
    context.set_ciphers(LEGACY_CIPHERS)
    context.minimum_version = ssl.TLSVersion.TLSv1
    return context


class HttpxTransport:
    """
    Send requests with httpx.

    Implements the HttpTransport port.
    """

    def __init__(
        self,
        legacy_tls: bool = True,
        verify: ssl.SSLContext | bool | None = None,
    ) -> None:
        if verify is None:
            verify = create_legacy_ssl_context() if legacy_tls else True
        self._verify = verify

    async def request(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        body: str,
        timeout: float,
    ) -> HttpResponse:
        try:
            async with asyncio.timeout(timeout):
                async with httpx.AsyncClient(timeout=timeout, verify=self._verify) as client:
                    response = await client.request(
                        method,
                        url,
                        headers=dict(headers),
                        content=body.encode("utf-8"),
                    )
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            message = str(e)
            hint = None
            if "dh key too small" in message.lower():
                hint = "ARCA SSL error (DH key too small): check your OpenSSL version or enable legacy TLS"
            log.warning("http.unreachable", url=url, error=message)
            raise UnreachableError(
                f"Could not connect to ARCA: {message}",
                details={"url": url},
                hint=hint,
            ) from e
        except (httpx.TimeoutException, TimeoutError) as e:
            log.warning("http.timeout", url=url, timeout=timeout)
            raise NetworkError(
                f"Timed out after {timeout}s waiting for ARCA: {url}",
                details={"url": url, "timeout": timeout},
            ) from e
        except httpx.TransportError as e:
            log.warning("http.transport_error", url=url, error=str(e))
            raise NetworkError(
                f"Network error talking to ARCA: {e}",
                details={"url": url},
            ) from e

        log.debug("http.response", url=url, status=response.status_code)
        return HttpResponse(status=response.status_code, body=response.text)


# ─────────────────────── SOAP helpers ───────────────────────


def soap_headers(soap_action: str) -> dict[str, str]:
    return {
        "Content-Type": "text/xml; charset=utf-8",
        "SOAPAction": soap_action,
    }


async def post_soap(
    transport: HttpTransport,
    url: str,
    envelope: str,
    soap_action: str,
    timeout: float,
) -> HttpResponse:
    """POST one envelope. Never retried: use for calls that change state."""
    return await transport.request(url, "POST", soap_headers(soap_action), envelope, timeout)


async def post_soap_idempotent(
    transport: HttpTransport,
    url: str,
    envelope: str,
    soap_action: str,
    timeout: float,
    attempts: int = 3,
) -> HttpResponse:
    """POST a read-only envelope, retrying while the server is unreachable."""
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=0.2, min=0.1, max=5),
        retry=retry_if_exception_type(UnreachableError),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await post_soap(transport, url, envelope, soap_action, timeout)
    raise AssertionError("unreachable: tenacity reraises on the last attempt")
