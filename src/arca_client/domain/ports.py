"""
Ports — Protocol-based interfaces for the client's collaborators.

The services depend on these contracts, never on concrete adapters:

  HttpTransport  → POST a SOAP envelope, get status + body back
  TokenStore     → optional, caller-supplied persistence for WSAA tickets
  TicketProvider → anything that hands out a valid AuthenticationTicket
  TicketSigner   → wraps the TRA in a base64 CMS SignedData

Each port is a Protocol (structural typing): adapters satisfy the contract
simply by implementing the methods.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from arca_client.domain.models import AuthenticationTicket


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@runtime_checkable
class HttpTransport(Protocol):
    """
    Port: perform one HTTP request.

    Implementations raise NetworkError on timeout or transport failure and
    return any received response, whatever its status, as an HttpResponse.
    """

    async def request(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        body: str,
        timeout: float,
    ) -> HttpResponse: ...


@runtime_checkable
class TokenStore(Protocol):
    """
    Port: persist WSAA tickets across processes (database, cache, files...).

    Treated as best-effort foreign state: failures are logged by the caller
    and never abort an operation. `get` returns None when nothing is stored.
    """

    async def get(self, tax_id: str, environment: str) -> AuthenticationTicket | None: ...

    async def save(self, tax_id: str, environment: str, ticket: AuthenticationTicket) -> None: ...


@runtime_checkable
class TicketProvider(Protocol):
    """Port: supply an AuthenticationTicket valid for at least the renewal buffer."""

    async def acquire(self) -> AuthenticationTicket: ...


@runtime_checkable
class TicketSigner(Protocol):
    """Port: sign the TRA XML, returning base64 DER CMS SignedData."""

    def sign(self, xml_payload: str) -> str: ...
