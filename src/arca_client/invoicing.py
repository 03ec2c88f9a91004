"""
WSFEv1 invoicing — issue documents and obtain a CAE.

issue() runs, in order:
  1. validate and price the request locally (no I/O): note references,
     quantities, VAT rates and their AlicIva ids, a positive total
  2. obtain a ticket (static, or from a TicketProvider)
  3. FECompUltimoAutorizado → next number = last + 1
  4. FECAESolicitar with that number (never retried)
  5. parse the CAE, attach the VAT breakdown, the caller's items and
     the QR URL

Read-only operations (last number, FECompConsultar, points of sale,
FEDummy) are retried while ARCA is unreachable; FECAESolicitar is sent
exactly once so a lost response can never authorize a document twice.

Numbering: steps 3 and 4 are not atomic. Two writers on the same point of
sale and document type can read the same last number; ARCA rejects the
second submission (code 602) and the caller must retry it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

import structlog

from arca_client.adapters.http_client import HttpxTransport, post_soap, post_soap_idempotent
from arca_client.adapters.soap_codec import (
    ARGENTINA_TZ,
    WSFE_NS,
    CaeRequestDetail,
    WsfeAuth,
    build_cae_request,
    build_dummy_request,
    build_invoice_query_request,
    build_last_invoice_request,
    build_points_of_sale_request,
    parse_cae_response,
    parse_dummy_response,
    parse_fault,
    parse_invoice_query_response,
    parse_last_invoice_response,
    parse_points_of_sale_response,
    remote_error_from_fault,
)
from arca_client.domain.credentials import clean_digits, validate_cuit
from arca_client.domain.endpoints import wsfe_endpoint
from arca_client.domain.models import (
    AssociatedInvoice,
    AuthenticationTicket,
    BillingConcept,
    Buyer,
    CAEResponse,
    Environment,
    InvoiceDetails,
    InvoiceItem,
    InvoiceRequest,
    InvoiceType,
    Number,
    PointOfSale,
    ServiceStatus,
    VatEntry,
)
from arca_client.domain.ports import HttpResponse, HttpTransport, TicketProvider
from arca_client.domain.qr import generate_qr_url
from arca_client.domain.vat import aggregate, round_money, to_decimal, vat_rate_code
from arca_client.errors import AuthenticationError, NetworkError, ValidationError

if TYPE_CHECKING:
    from arca_client.config import ArcaSettings

log = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_READ_ATTEMPTS = 3
MAX_POINT_OF_SALE = 9999

_SERVICE_CONCEPTS = frozenset({BillingConcept.SERVICES, BillingConcept.PRODUCTS_AND_SERVICES})
_CREDIT_NOTES = frozenset({InvoiceType.NOTA_CREDITO_A, InvoiceType.NOTA_CREDITO_B, InvoiceType.NOTA_CREDITO_C})
_DEBIT_NOTES = frozenset({InvoiceType.NOTA_DEBITO_A, InvoiceType.NOTA_DEBITO_B, InvoiceType.NOTA_DEBITO_C})

_ZERO = Decimal(0)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class _PricedRequest:
    """A request after local validation, with the amounts ARCA will see."""

    invoice_type: InvoiceType
    buyer: Buyer
    total: Decimal
    net: Decimal
    vat: Decimal
    vat_entries: tuple[VatEntry, ...]
    items: tuple[InvoiceItem, ...]


def _soap_action(operation: str) -> str:
    return f"{WSFE_NS}{operation}"


def _body_or_raise(response: HttpResponse, operation: str) -> str:
    """A non-2xx answer is a RemoteError if it carries a fault, else a NetworkError."""
    if response.ok:
        return response.body
    fault = parse_fault(response.body)
    if fault is not None:
        raise remote_error_from_fault(fault)
    raise NetworkError(
        f"HTTP error from WSFE {operation}: {response.status}",
        details={"status": response.status, "operation": operation},
    )


async def check_status(
    environment: Environment = Environment.TESTING,
    transport: HttpTransport | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    attempts: int = DEFAULT_READ_ATTEMPTS,
) -> ServiceStatus:
    """FEDummy: health of the WSFE servers. Needs no ticket."""
    response = await post_soap_idempotent(
        transport or HttpxTransport(),
        wsfe_endpoint(Environment(environment)),
        build_dummy_request(),
        _soap_action("FEDummy"),
        timeout,
        attempts,
    )
    status = parse_dummy_response(_body_or_raise(response, "FEDummy"))
    log.info(
        "wsfe.status",
        app_server=status.app_server,
        db_server=status.db_server,
        auth_server=status.auth_server,
    )
    return status


class InvoicingService:
    """
    Issue and query electronic documents for one CUIT and point of sale.

    Pass either a fixed `ticket` (the caller owns renewal) or a
    `ticket_provider` such as TicketManager (renewed transparently).
    """

    def __init__(
        self,
        cuit: str,
        point_of_sale: int,
        environment: Environment = Environment.TESTING,
        ticket: AuthenticationTicket | None = None,
        ticket_provider: TicketProvider | None = None,
        transport: HttpTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        read_retry_attempts: int = DEFAULT_READ_ATTEMPTS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        validate_cuit(cuit)
        if isinstance(point_of_sale, bool) or not isinstance(point_of_sale, int) or not (
            1 <= point_of_sale <= MAX_POINT_OF_SALE
        ):
            raise ValidationError(
                f"Invalid point of sale: expected an integer between 1 and {MAX_POINT_OF_SALE}",
                details={"point_of_sale": point_of_sale},
            )
        if ticket_provider is None and (ticket is None or not ticket.token or not ticket.signature):
            raise ValidationError(
                "A WSAA ticket or a ticket provider is required",
                hint="Obtain a ticket with TicketManager.acquire() or pass the manager as ticket_provider",
            )

        self._cuit = cuit
        self._point_of_sale = point_of_sale
        self._environment = Environment(environment)
        self._ticket = ticket
        self._ticket_provider = ticket_provider
        self._transport = transport or HttpxTransport()
        self._timeout = timeout
        self._read_attempts = read_retry_attempts
        self._clock = clock
        self._endpoint = wsfe_endpoint(self._environment)

    @classmethod
    def from_settings(
        cls,
        settings: ArcaSettings,
        ticket_provider: TicketProvider | None = None,
        transport: HttpTransport | None = None,
    ) -> InvoicingService:
        """Build a service whose tickets come from a TicketManager over the same settings."""
        from arca_client.auth import TicketManager

        if settings.point_of_sale is None:
            raise ValidationError(
                "A point of sale is required to issue documents",
                hint="Set ARCA_POINT_OF_SALE",
            )
        transport = transport or HttpxTransport(legacy_tls=settings.legacy_tls)
        if ticket_provider is None:
            ticket_provider = TicketManager.from_settings(settings, transport=transport)
        return cls(
            cuit=settings.cuit,
            point_of_sale=settings.point_of_sale,
            environment=settings.environment,
            ticket_provider=ticket_provider,
            transport=transport,
            timeout=settings.http_timeout_seconds,
            read_retry_attempts=settings.read_retry_attempts,
        )

    @property
    def point_of_sale(self) -> int:
        return self._point_of_sale

    @property
    def environment(self) -> Environment:
        return self._environment

    # ─────────────────────── Plumbing ───────────────────────

    async def _auth(self) -> WsfeAuth:
        if self._ticket_provider is not None:
            ticket = await self._ticket_provider.acquire()
        else:
            ticket = self._ticket
            if not ticket.is_valid(self._clock()):
                raise AuthenticationError(
                    "The WSAA ticket has expired or is about to expire",
                    details={"expires_at": ticket.expires_at.isoformat()},
                    hint="Request a new ticket, or pass a TicketManager as ticket_provider",
                )
        return WsfeAuth(token=ticket.token, sign=ticket.signature, cuit=self._cuit)

    async def _read(self, operation: str, envelope: str) -> str:
        response = await post_soap_idempotent(
            self._transport,
            self._endpoint,
            envelope,
            _soap_action(operation),
            self._timeout,
            self._read_attempts,
        )
        return _body_or_raise(response, operation)

    async def _last_number(self, auth: WsfeAuth, invoice_type: InvoiceType) -> int:
        body = await self._read(
            "FECompUltimoAutorizado",
            build_last_invoice_request(auth, self._point_of_sale, invoice_type),
        )
        return parse_last_invoice_response(body)

    def _today(self) -> date:
        return self._clock().astimezone(ARGENTINA_TZ).date()

    # ─────────────────────── Queries ───────────────────────

    async def check_status(self) -> ServiceStatus:
        return await check_status(self._environment, self._transport, self._timeout, self._read_attempts)

    async def get_last_invoice_number(self, invoice_type: InvoiceType) -> int:
        """Last authorized number for this point of sale, 0 if none yet."""
        invoice_type = _coerce_type(invoice_type)
        return await self._last_number(await self._auth(), invoice_type)

    async def get_invoice(self, invoice_type: InvoiceType, invoice_number: int) -> InvoiceDetails:
        """FECompConsultar: fetch a previously authorized document."""
        invoice_type = _coerce_type(invoice_type)
        if invoice_number < 1:
            raise ValidationError(
                "Invoice number must be positive",
                details={"invoice_number": invoice_number},
            )
        auth = await self._auth()
        body = await self._read(
            "FECompConsultar",
            build_invoice_query_request(auth, self._point_of_sale, invoice_type, invoice_number),
        )
        return parse_invoice_query_response(body)

    async def get_points_of_sale(self) -> list[PointOfSale]:
        body = await self._read("FEParamGetPtosVenta", build_points_of_sale_request(await self._auth()))
        return parse_points_of_sale_response(body)

    # ─────────────────────── Issuance ───────────────────────

    async def issue(self, request: InvoiceRequest) -> CAEResponse:
        """
        Authorize one document and return its CAE.

        Raises ValidationError before any network call if the request is
        malformed, RemoteError if ARCA rejects the call, NetworkError on
        transport failures. A CAEResponse with result REJECTED is returned,
        not raised; inspect `observations`.
        """
        priced = _price(request)
        issue_date = request.issue_date or self._today()
        service_start = service_end = payment_due = None
        if request.concept in _SERVICE_CONCEPTS:
            service_start = request.service_start or issue_date
            service_end = request.service_end or issue_date
            payment_due = request.payment_due or issue_date

        auth = await self._auth()
        number = await self._last_number(auth, priced.invoice_type) + 1

        detail = CaeRequestDetail(
            concept=int(request.concept),
            doc_type=int(priced.buyer.doc_type),
            doc_number=clean_digits(priced.buyer.doc_number) or "0",
            invoice_number=number,
            issue_date=issue_date,
            total=priced.total,
            net=priced.net,
            vat=priced.vat,
            vat_entries=priced.vat_entries,
            associated_invoices=tuple(request.associated_invoices),
            service_start=service_start,
            service_end=service_end,
            payment_due=payment_due,
            buyer_vat_condition=request.buyer_vat_condition,
        )
        envelope = build_cae_request(auth, self._point_of_sale, priced.invoice_type, detail)

        log.info(
            "wsfe.cae_requested",
            invoice_type=int(priced.invoice_type),
            point_of_sale=self._point_of_sale,
            invoice_number=number,
            total=str(priced.total),
        )
        response = await post_soap(
            self._transport,
            self._endpoint,
            envelope,
            _soap_action("FECAESolicitar"),
            self._timeout,
        )
        cae = parse_cae_response(_body_or_raise(response, "FECAESolicitar"))

        if cae.observations:
            log.warning("wsfe.observations", invoice_number=cae.invoice_number, observations=list(cae.observations))
        log.info(
            "wsfe.cae_received",
            invoice_number=cae.invoice_number,
            result=cae.result.value,
            cae=cae.cae,
        )

        qr_url = generate_qr_url(cae, self._cuit, priced.total, priced.buyer)
        return replace(cae, vat=priced.vat_entries, items=priced.items, qr_url=qr_url)

    async def issue_simple_receipt(
        self,
        total: Number,
        concept: BillingConcept = BillingConcept.PRODUCTS,
        issue_date: date | None = None,
    ) -> CAEResponse:
        """Receipt C for an anonymous final consumer, with a flat total."""
        return await self.issue(
            InvoiceRequest(
                invoice_type=InvoiceType.TICKET_C,
                concept=concept,
                total=total,
                issue_date=issue_date,
            )
        )

    async def issue_receipt(
        self,
        items: Iterable[InvoiceItem],
        concept: BillingConcept = BillingConcept.PRODUCTS,
        issue_date: date | None = None,
    ) -> CAEResponse:
        """Itemized receipt C for an anonymous final consumer."""
        return await self._issue_document(InvoiceType.TICKET_C, items, None, concept, issue_date)

    async def issue_receipt_a(self, items: Iterable[InvoiceItem], buyer: Buyer, **options) -> CAEResponse:
        return await self._issue_document(InvoiceType.RECIBO_A, items, buyer, **options)

    async def issue_receipt_b(self, items: Iterable[InvoiceItem], buyer: Buyer | None = None, **options) -> CAEResponse:
        return await self._issue_document(InvoiceType.RECIBO_B, items, buyer, **options)

    async def issue_receipt_c(self, items: Iterable[InvoiceItem], buyer: Buyer | None = None, **options) -> CAEResponse:
        return await self._issue_document(InvoiceType.RECIBO_C, items, buyer, **options)

    async def issue_invoice_a(self, items: Iterable[InvoiceItem], buyer: Buyer, **options) -> CAEResponse:
        """Invoice A: VAT discriminated, buyer identified by CUIT."""
        return await self._issue_document(InvoiceType.FACTURA_A, items, buyer, **options)

    async def issue_invoice_b(self, items: Iterable[InvoiceItem], buyer: Buyer | None = None, **options) -> CAEResponse:
        return await self._issue_document(InvoiceType.FACTURA_B, items, buyer, **options)

    async def issue_invoice_c(self, items: Iterable[InvoiceItem], buyer: Buyer | None = None, **options) -> CAEResponse:
        return await self._issue_document(InvoiceType.FACTURA_C, items, buyer, **options)

    async def issue_credit_note(
        self,
        invoice_type: InvoiceType,
        items: Iterable[InvoiceItem],
        associated_invoices: Iterable[AssociatedInvoice],
        buyer: Buyer | None = None,
        **options,
    ) -> CAEResponse:
        """Credit note (3, 8 or 13) referencing the documents it corrects."""
        invoice_type = _coerce_type(invoice_type)
        if invoice_type not in _CREDIT_NOTES:
            raise ValidationError(
                f"{invoice_type.name} is not a credit note type",
                details={"invoice_type": int(invoice_type)},
            )
        return await self._issue_document(
            invoice_type, items, buyer, associated_invoices=tuple(associated_invoices), **options
        )

    async def issue_debit_note(
        self,
        invoice_type: InvoiceType,
        items: Iterable[InvoiceItem],
        associated_invoices: Iterable[AssociatedInvoice],
        buyer: Buyer | None = None,
        **options,
    ) -> CAEResponse:
        """Debit note (2, 7 or 12) referencing the documents it adjusts."""
        invoice_type = _coerce_type(invoice_type)
        if invoice_type not in _DEBIT_NOTES:
            raise ValidationError(
                f"{invoice_type.name} is not a debit note type",
                details={"invoice_type": int(invoice_type)},
            )
        return await self._issue_document(
            invoice_type, items, buyer, associated_invoices=tuple(associated_invoices), **options
        )

    async def _issue_document(
        self,
        invoice_type: InvoiceType,
        items: Iterable[InvoiceItem],
        buyer: Buyer | None,
        concept: BillingConcept = BillingConcept.PRODUCTS,
        issue_date: date | None = None,
        **options,
    ) -> CAEResponse:
        return await self.issue(
            InvoiceRequest(
                invoice_type=invoice_type,
                concept=concept,
                buyer=buyer,
                items=tuple(items),
                issue_date=issue_date,
                **options,
            )
        )


# ─────────────────────── Local validation and pricing ───────────────────────


def _coerce_type(invoice_type: InvoiceType | int) -> InvoiceType:
    try:
        return InvoiceType(invoice_type)
    except ValueError as e:
        raise ValidationError(
            f"Unknown invoice type: {invoice_type}",
            details={"valid_types": [int(t) for t in InvoiceType]},
        ) from e


def _price(request: InvoiceRequest) -> _PricedRequest:
    """
    Validate `request` and compute the amounts to send. Never touches the network.

    ImpNeto, ImpIVA, ImpTotal and each AlicIva BaseImp are rounded separately
    by `aggregate`, so they may disagree by a cent. ARCA can observe or reject
    such a document; see `aggregate` for details.
    """
    invoice_type = _coerce_type(request.invoice_type)
    buyer = request.buyer or Buyer.final_consumer()
    items = tuple(request.items)

    if invoice_type.is_note and not request.associated_invoices:
        raise ValidationError(
            f"{invoice_type.name} must reference at least one associated invoice",
            hint="Pass the original document in associated_invoices",
        )

    for item in items:
        if to_decimal(item.quantity) <= _ZERO:
            raise ValidationError(
                "Item quantity must be positive",
                details={"item": item.description, "quantity": str(item.quantity)},
            )

    vat_entries: tuple[VatEntry, ...] = ()
    if invoice_type.discriminates_vat:
        if not items:
            raise ValidationError(
                f"{invoice_type.name} discriminates VAT and needs itemized lines",
                hint="Pass items with a vat_rate of 0, 10.5, 21 or 27",
            )
        missing = [item.description for item in items if item.vat_rate is None]
        if missing:
            raise ValidationError(
                f"Every item of a {invoice_type.name} needs a VAT rate",
                details={"items_without_rate": missing},
            )
        totals = aggregate(items, prices_include_tax=request.prices_include_tax)
        for entry in totals.by_rate:
            vat_rate_code(entry.rate)
        total, net, vat = totals.total, totals.subtotal, totals.tax
        vat_entries = totals.by_rate
    elif items:
        # Prices are final: no VAT is broken out.
        total = round_money(sum((to_decimal(i.quantity) * to_decimal(i.unit_price) for i in items), _ZERO))
        net, vat = total, _ZERO
    elif request.total is not None:
        total = round_money(request.total)
        net, vat = total, _ZERO
    else:
        raise ValidationError("Either items or a total is required")

    if total <= _ZERO:
        raise ValidationError(
            "Invoice total must be positive",
            details={"total": str(total)},
        )

    return _PricedRequest(
        invoice_type=invoice_type,
        buyer=buyer,
        total=total,
        net=net,
        vat=vat,
        vat_entries=vat_entries,
        items=items,
    )
