"""
Shared test fixtures and helpers for the arca-client test suite.

Provides:
  - a throw-away self-signed RSA certificate and key (session scoped)
  - FakeTransport: an HttpTransport that replays queued responses and
    records every request, so services can be tested without httpx
  - FakeTicketProvider / FakeSigner for WSAA-dependent code
  - builders for the SOAP responses ARCA sends back
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from xml.sax.saxutils import escape

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from arca_client.domain.models import AuthenticationTicket
from arca_client.domain.ports import HttpResponse

CUIT = "20123456789"
NOW = datetime(2026, 3, 10, 15, 0, tzinfo=UTC)

SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"
WSFE_NS = "http://ar.gov.afip.dif.FEV1/"


# ─────────────────────── Credentials ───────────────────────


@dataclass(frozen=True)
class PemPair:
    cert: str
    key: str


def make_self_signed(common_name: str = "arca-client test", serial: int = 0x5EED) -> PemPair:
    """Generate an RSA-2048 key and a one-day self-signed certificate, PEM encoded."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        x509.NameAttribute(NameOID.SERIAL_NUMBER, f"CUIT {CUIT}"),
    ])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(serial)
        .not_valid_before(datetime.now(UTC) - timedelta(days=1))
        .not_valid_after(datetime.now(UTC) + timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    return PemPair(
        cert=cert.public_bytes(serialization.Encoding.PEM).decode("ascii"),
        key=key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ).decode("ascii"),
    )


@pytest.fixture(scope="session")
def pem_pair() -> PemPair:
    """One generated certificate/key pair shared by the whole session."""
    return make_self_signed()


def make_ticket(
    issued_at: datetime = NOW,
    hours: float = 12,
    token: str = "TOKEN",
    signature: str = "SIGN",
) -> AuthenticationTicket:
    return AuthenticationTicket(
        token=token,
        signature=signature,
        issued_at=issued_at,
        expires_at=issued_at + timedelta(hours=hours),
    )


# ─────────────────────── Fakes ───────────────────────


@dataclass(frozen=True)
class RecordedRequest:
    url: str
    method: str
    headers: dict[str, str]
    body: str
    timeout: float


class FakeTransport:
    """HttpTransport that replays queued HttpResponses (or raises queued exceptions)."""

    def __init__(self, *responses: HttpResponse | Exception) -> None:
        self._responses = list(responses)
        self.requests: list[RecordedRequest] = []

    def queue(self, *responses: HttpResponse | Exception) -> None:
        self._responses.extend(responses)

    async def request(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        body: str,
        timeout: float,
    ) -> HttpResponse:
        self.requests.append(RecordedRequest(url, method, dict(headers), body, timeout))
        if not self._responses:
            raise AssertionError(f"Unexpected request to {url}")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def actions(self) -> list[str]:
        return [r.headers.get("SOAPAction", "") for r in self.requests]


class FakeTicketProvider:
    def __init__(self, ticket: AuthenticationTicket | None = None) -> None:
        self.ticket = ticket or make_ticket()
        self.calls = 0

    async def acquire(self) -> AuthenticationTicket:
        self.calls += 1
        return self.ticket


class FakeSigner:
    def __init__(self, result: str = "U0lHTkVEX0NNUw==") -> None:
        self.result = result
        self.payloads: list[str] = []

    def sign(self, xml_payload: str) -> str:
        self.payloads.append(xml_payload)
        return self.result


# ─────────────────────── SOAP responses ───────────────────────


def ok(body: str) -> HttpResponse:
    return HttpResponse(status=200, body=body)


def soap_envelope(inner: str) -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        f'<soap:Envelope xmlns:soap="{SOAP_NS}"><soap:Body>{inner}</soap:Body></soap:Envelope>'
    )


def fault_envelope(code: str, message: str) -> str:
    return soap_envelope(
        f"<soap:Fault><faultcode>{code}</faultcode><faultstring>{message}</faultstring></soap:Fault>"
    )


def wsfe_response(operation: str, inner: str) -> str:
    return soap_envelope(
        f'<{operation}Response xmlns="{WSFE_NS}"><{operation}Result>{inner}</{operation}Result></{operation}Response>'
    )


def login_response(
    token: str = "TOKEN",
    sign: str = "SIGN",
    generation: str = "2026-03-10T11:50:00-03:00",
    expiration: str = "2026-03-11T00:00:00-03:00",
) -> str:
    ticket = (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        '<loginTicketResponse version="1.0"><header>'
        "<source>CN=wsaahomo</source><destination>CN=test</destination>"
        f"<uniqueId>1</uniqueId><generationTime>{generation}</generationTime>"
        f"<expirationTime>{expiration}</expirationTime></header>"
        f"<credentials><token>{token}</token><sign>{sign}</sign></credentials>"
        "</loginTicketResponse>"
    )
    return soap_envelope(
        '<loginCmsResponse xmlns="http://wsaa.view.sua.dvadac.desein.afip.gov">'
        f"<loginCmsReturn>{escape(ticket)}</loginCmsReturn></loginCmsResponse>"
    )


def last_invoice_response(number: int, point_of_sale: int = 1, invoice_type: int = 11) -> str:
    return wsfe_response(
        "FECompUltimoAutorizado",
        f"<PtoVta>{point_of_sale}</PtoVta><CbteTipo>{invoice_type}</CbteTipo><CbteNro>{number}</CbteNro>",
    )


def cae_response(
    number: int,
    invoice_type: int = 11,
    point_of_sale: int = 1,
    result: str = "A",
    cae: str = "74123456789012",
    observations: tuple[tuple[int, str], ...] = (),
) -> str:
    obs = ""
    if observations:
        obs = "<Observaciones>" + "".join(
            f"<Obs><Code>{code}</Code><Msg>{msg}</Msg></Obs>" for code, msg in observations
        ) + "</Observaciones>"
    return wsfe_response(
        "FECAESolicitar",
        f"<FeCabResp><Cuit>{CUIT}</Cuit><PtoVta>{point_of_sale}</PtoVta><CbteTipo>{invoice_type}</CbteTipo>"
        f"<FchProceso>20260310120000</FchProceso><CantReg>1</CantReg><Resultado>{result}</Resultado></FeCabResp>"
        "<FeDetResp><FECAEDetResponse>"
        f"<Concepto>1</Concepto><DocTipo>99</DocTipo><DocNro>0</DocNro>"
        f"<CbteDesde>{number}</CbteDesde><CbteHasta>{number}</CbteHasta><CbteFch>20260310</CbteFch>"
        f"<Resultado>{result}</Resultado>{obs}"
        f"<CAE>{cae if result == 'A' else ''}</CAE><CAEFchVto>{'20260320' if result == 'A' else ''}</CAEFchVto>"
        "</FECAEDetResponse></FeDetResp>"
    )


def errors_response(operation: str, code: int, message: str) -> str:
    return wsfe_response(operation, f"<Errors><Err><Code>{code}</Code><Msg>{message}</Msg></Err></Errors>")
