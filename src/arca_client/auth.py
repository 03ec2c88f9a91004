"""
WSAA ticket lifecycle — the only way the client talks to LoginCms.

TicketManager.acquire() serves, in order:
  1. the in-memory ticket, if still valid beyond the 5-minute renewal buffer
  2. a ticket from the optional TokenStore, adopted into memory if valid
  3. a fresh ticket: build TRA → CMS-sign → LoginCms → parse, then a
     best-effort save to the store

Concurrent acquire() calls on one manager share a single in-flight
acquisition (asyncio.Lock), so a burst of requests on a cold cache costs
one WSAA round trip. Store failures are logged and treated as a miss;
they never fail an acquisition.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from arca_client.adapters.cms_signer import CmsTicketSigner
from arca_client.adapters.http_client import HttpxTransport, post_soap
from arca_client.adapters.soap_codec import (
    authentication_error_from_fault,
    build_login_request,
    build_tra,
    parse_fault,
    parse_login_response,
)
from arca_client.domain.credentials import validate_credentials
from arca_client.domain.endpoints import wsaa_endpoint
from arca_client.domain.models import AuthenticationTicket, Environment
from arca_client.domain.ports import HttpTransport, TicketSigner, TokenStore
from arca_client.errors import ArcaError, AuthenticationError, NetworkError

if TYPE_CHECKING:
    from arca_client.config import ArcaSettings

log = structlog.get_logger()

WSFE_SERVICE = "wsfe"
PADRON_A13_SERVICE = "ws_sr_padron_a13"

# TRA generation time is backdated to absorb clock drift against WSAA.
CLOCK_SKEW_MARGIN = timedelta(minutes=10)
TICKET_VALIDITY = timedelta(hours=12)
DEFAULT_TIMEOUT_SECONDS = 15.0


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TicketManager:
    """
    Own one CUIT's WSAA ticket for one service in one environment.

    Implements the TicketProvider port.
    """

    def __init__(
        self,
        cuit: str,
        cert: str,
        key: str,
        environment: Environment = Environment.TESTING,
        service: str = WSFE_SERVICE,
        store: TokenStore | None = None,
        transport: HttpTransport | None = None,
        signer: TicketSigner | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        validate_credentials(cuit, cert, key, service)
        self._cuit = cuit
        self._environment = Environment(environment)
        self._service = service
        self._store = store
        self._transport = transport or HttpxTransport()
        self._signer = signer or CmsTicketSigner(cert, key)
        self._timeout = timeout
        self._clock = clock
        self._ticket: AuthenticationTicket | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: ArcaSettings,
        service: str = WSFE_SERVICE,
        store: TokenStore | None = None,
        transport: HttpTransport | None = None,
    ) -> TicketManager:
        return cls(
            cuit=settings.cuit,
            cert=settings.load_certificate(),
            key=settings.load_private_key(),
            environment=settings.environment,
            service=service,
            store=store if store is not None else settings.token_store(service),
            transport=transport or HttpxTransport(legacy_tls=settings.legacy_tls),
            timeout=settings.http_timeout_seconds,
        )

    @property
    def cuit(self) -> str:
        return self._cuit

    @property
    def environment(self) -> Environment:
        return self._environment

    @property
    def service(self) -> str:
        return self._service

    @property
    def ticket(self) -> AuthenticationTicket | None:
        """The cached ticket if still valid; an expiring one is dropped on read."""
        if self._ticket is None:
            return None
        if not self._ticket.is_valid(self._clock()):
            log.debug("ticket.expired", service=self._service, expires_at=self._ticket.expires_at.isoformat())
            self._ticket = None
        return self._ticket

    def invalidate(self) -> None:
        """Forget the cached ticket; the next acquire() goes to the store or WSAA."""
        self._ticket = None

    async def acquire(self) -> AuthenticationTicket:
        """
        Return a ticket valid beyond the renewal buffer.

        Raises AuthenticationError if signing or the WSAA exchange fails.
        """
        cached = self.ticket
        if cached is not None:
            return cached

        async with self._lock:
            # Another caller may have refreshed while we waited.
            cached = self.ticket
            if cached is not None:
                return cached

            stored = await self._load_from_store()
            if stored is not None:
                self._ticket = stored
                return stored

            ticket = await self._request_new_ticket()
            self._ticket = ticket
            await self._save_to_store(ticket)
            return ticket

    # ─────────────────────── Store ───────────────────────

    async def _load_from_store(self) -> AuthenticationTicket | None:
        if self._store is None:
            return None
        try:
            ticket = await self._store.get(self._cuit, self._environment.value)
            if ticket is None or not ticket.is_valid(self._clock()):
                return None
        except Exception as e:
            log.warning("ticket.store_get_failed", service=self._service, error=str(e))
            return None
        log.info("ticket.loaded_from_store", service=self._service, expires_at=ticket.expires_at.isoformat())
        return ticket

    async def _save_to_store(self, ticket: AuthenticationTicket) -> None:
        if self._store is None:
            return
        try:
            await self._store.save(self._cuit, self._environment.value, ticket)
        except Exception as e:
            log.warning("ticket.store_save_failed", service=self._service, error=str(e))

    # ─────────────────────── WSAA exchange ───────────────────────

    def _sign(self, tra: str) -> str:
        try:
            return self._signer.sign(tra)
        except ArcaError:
            raise
        except Exception as e:
            raise AuthenticationError(
                "Failed to sign the TRA",
                details={"error": str(e)},
            ) from e

    async def _request_new_ticket(self) -> AuthenticationTicket:
        now = self._clock()
        tra = build_tra(
            self._service,
            generation_time=now - CLOCK_SKEW_MARGIN,
            expiration_time=now + TICKET_VALIDITY,
            unique_id=int(now.timestamp()),
        )
        envelope = build_login_request(self._sign(tra))
        endpoint = wsaa_endpoint(self._environment)

        log.info("ticket.requesting", service=self._service, environment=self._environment.value)
        try:
            response = await post_soap(self._transport, endpoint, envelope, "", self._timeout)
        except NetworkError as e:
            raise AuthenticationError(
                f"Could not reach WSAA: {e.message}",
                details=e.details,
                hint=e.hint,
            ) from e

        if not response.ok:
            fault = parse_fault(response.body)
            if fault is not None:
                raise authentication_error_from_fault(fault)
            raise AuthenticationError(
                f"HTTP error talking to WSAA: {response.status}",
                details={"status": response.status},
            )

        ticket = parse_login_response(response.body)
        log.info(
            "ticket.acquired",
            service=self._service,
            issued_at=ticket.issued_at.isoformat(),
            expires_at=ticket.expires_at.isoformat(),
        )
        return ticket
