"""
Taxpayer registry lookups via Padron A13 (getPersona).

Padron needs its own WSAA ticket for service "ws_sr_padron_a13", so a
TaxpayerRegistry owns a separate TicketManager. "Not found" answers are
returned as a TaxpayerLookup with `error` set; only transport failures and
unreadable responses raise.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from arca_client.adapters.http_client import HttpxTransport, post_soap_idempotent
from arca_client.adapters.soap_codec import build_taxpayer_request, parse_fault, parse_taxpayer_response
from arca_client.auth import DEFAULT_TIMEOUT_SECONDS, PADRON_A13_SERVICE, TicketManager
from arca_client.domain.credentials import clean_digits, is_valid_cuit
from arca_client.domain.endpoints import padron_endpoint
from arca_client.domain.models import Environment, TaxpayerLookup
from arca_client.domain.ports import HttpTransport, TicketProvider, TokenStore
from arca_client.errors import NetworkError, ValidationError

if TYPE_CHECKING:
    from arca_client.config import ArcaSettings

log = structlog.get_logger()


class TaxpayerRegistry:
    def __init__(
        self,
        cuit: str,
        cert: str,
        key: str,
        environment: Environment = Environment.TESTING,
        store: TokenStore | None = None,
        transport: HttpTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        read_retry_attempts: int = 3,
        ticket_provider: TicketProvider | None = None,
    ) -> None:
        self._transport = transport or HttpxTransport()
        self._tickets = ticket_provider or TicketManager(
            cuit=cuit,
            cert=cert,
            key=key,
            environment=environment,
            service=PADRON_A13_SERVICE,
            store=store,
            transport=self._transport,
            timeout=timeout,
        )
        self._cuit = cuit
        self._environment = Environment(environment)
        self._timeout = timeout
        self._read_attempts = read_retry_attempts

    @classmethod
    def from_settings(
        cls,
        settings: ArcaSettings,
        store: TokenStore | None = None,
        transport: HttpTransport | None = None,
    ) -> TaxpayerRegistry:
        return cls(
            cuit=settings.cuit,
            cert=settings.load_certificate(),
            key=settings.load_private_key(),
            environment=settings.environment,
            store=store if store is not None else settings.token_store(PADRON_A13_SERVICE),
            transport=transport or HttpxTransport(legacy_tls=settings.legacy_tls),
            timeout=settings.http_timeout_seconds,
            read_retry_attempts=settings.read_retry_attempts,
        )

    async def get_taxpayer(self, tax_id: str | int) -> TaxpayerLookup:
        """Look up a CUIT/CUIL; dashes and spaces are ignored."""
        digits = clean_digits(tax_id)
        if not is_valid_cuit(digits):
            raise ValidationError(
                "Invalid tax id: expected 11 digits",
                details={"tax_id": str(tax_id)},
            )

        ticket = await self._tickets.acquire()
        envelope = build_taxpayer_request(ticket.token, ticket.signature, self._cuit, digits)
        response = await post_soap_idempotent(
            self._transport,
            padron_endpoint(self._environment),
            envelope,
            "",
            self._timeout,
            self._read_attempts,
        )
        if not response.ok and parse_fault(response.body) is None:
            raise NetworkError(
                f"HTTP error from Padron A13: {response.status}",
                details={"status": response.status},
            )

        lookup = parse_taxpayer_response(response.body)
        if lookup.found:
            log.info("padron.taxpayer_found", tax_id=digits)
        else:
            log.info("padron.taxpayer_not_found", tax_id=digits, error=lookup.error)
        return lookup
