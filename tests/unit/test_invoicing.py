"""
Unit tests for the WSFEv1 invoicing service.

A FakeTransport replays WSFE responses in order, so each test states the
exact conversation it expects: FECompUltimoAutorizado then FECAESolicitar.
"""

from __future__ import annotations

import base64
import json
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from lxml import etree

from arca_client.domain.models import (
    AssociatedInvoice,
    AuthenticationTicket,
    BillingConcept,
    Buyer,
    CaeResult,
    Environment,
    InvoiceItem,
    InvoiceRequest,
    InvoiceType,
    TaxIdType,
)
from arca_client.domain.ports import HttpResponse
from arca_client.errors import (
    AuthenticationError,
    NetworkError,
    RemoteError,
    UnreachableError,
    ValidationError,
)
from arca_client.invoicing import InvoicingService, check_status
from tests.conftest import (
    CUIT,
    NOW,
    FakeTicketProvider,
    FakeTransport,
    cae_response,
    errors_response,
    fault_envelope,
    last_invoice_response,
    make_ticket,
    ok,
    wsfe_response,
)

WSFE_TESTING = "https://wswhomo.afip.gov.ar/wsfev1/service.asmx"
NS = "{http://ar.gov.afip.dif.FEV1/}"
ACTION = "http://ar.gov.afip.dif.FEV1/"

MIXED_ITEMS = (
    InvoiceItem("Widget", 2, 100, 21),
    InvoiceItem("Book", 1, 500, 10.5),
    InvoiceItem("Exempt good", 10, 10, 0),
)
COMPANY = Buyer(TaxIdType.CUIT, "30712345671")


def make_service(transport: FakeTransport, point_of_sale: int = 1, **kwargs) -> InvoicingService:
    kwargs.setdefault("ticket", make_ticket())
    return InvoicingService(
        cuit=CUIT,
        point_of_sale=point_of_sale,
        environment=Environment.TESTING,
        transport=transport,
        clock=lambda: NOW,
        **kwargs,
    )


def sent(transport: FakeTransport, index: int, path: str) -> str | None:
    root = etree.fromstring(transport.requests[index].body.encode("utf-8"))
    return root.findtext(path)


def qr_payload(url: str) -> dict:
    return json.loads(base64.b64decode(url.split("?p=", 1)[1]))


# ─────────────────────── Happy path ───────────────────────


class TestIssueSimpleReceipt:
    """
    GIVEN no document was ever issued on the point of sale
    WHEN a simple receipt for 1500 is issued
    THEN it is number 1 and approved; its QR URL encodes the document.
    """

    async def test_first_document_is_number_one(self) -> None:
        transport = FakeTransport(ok(last_invoice_response(0, invoice_type=83)), ok(cae_response(1, invoice_type=83)))
        cae = await make_service(transport).issue_simple_receipt(1500)

        assert cae.invoice_number == 1
        assert cae.result is CaeResult.APPROVED
        assert cae.cae == "74123456789012"
        assert sent(transport, 1, f".//{NS}CbteDesde") == "1"
        assert sent(transport, 1, f".//{NS}CbteHasta") == "1"

    async def test_conversation(self) -> None:
        transport = FakeTransport(ok(last_invoice_response(0)), ok(cae_response(1)))
        await make_service(transport).issue_simple_receipt(1500)

        assert transport.actions == [f"{ACTION}FECompUltimoAutorizado", f"{ACTION}FECAESolicitar"]
        assert all(r.url == WSFE_TESTING for r in transport.requests)

    async def test_amounts_and_defaults(self) -> None:
        transport = FakeTransport(ok(last_invoice_response(0)), ok(cae_response(1)))
        await make_service(transport).issue_simple_receipt(1500)

        assert sent(transport, 1, f".//{NS}FeCabReq/{NS}CbteTipo") == "83"
        assert sent(transport, 1, f".//{NS}ImpTotal") == "1500.00"
        assert sent(transport, 1, f".//{NS}ImpNeto") == "1500.00"
        assert sent(transport, 1, f".//{NS}ImpIVA") == "0.00"
        assert sent(transport, 1, f".//{NS}DocTipo") == "99"
        assert sent(transport, 1, f".//{NS}DocNro") == "0"
        # NOW is 12:00 in Buenos Aires
        assert sent(transport, 1, f".//{NS}CbteFch") == "20260310"
        assert sent(transport, 1, f".//{NS}Iva") is None

    async def test_next_number_follows_last(self) -> None:
        transport = FakeTransport(ok(last_invoice_response(41)), ok(cae_response(42)))
        cae = await make_service(transport).issue_simple_receipt(10)
        assert sent(transport, 1, f".//{NS}CbteDesde") == "42"
        assert cae.invoice_number == 42

    async def test_qr_url_encodes_document(self) -> None:
        transport = FakeTransport(ok(last_invoice_response(0)), ok(cae_response(1, invoice_type=83)))
        cae = await make_service(transport).issue_simple_receipt(1500)

        payload = qr_payload(cae.qr_url)
        assert payload["cuit"] == int(CUIT)
        assert payload["nroCmp"] == 1
        assert payload["tipoCmp"] == 83
        assert payload["importe"] == 1500
        assert "tipoDocRec" not in payload


class TestIssueWithVat:
    """
    GIVEN items at 21%, 10.5% and 0% on an invoice A
    WHEN issued
    THEN the Iva block carries one AlicIva per rate and the response echoes it.
    """

    async def test_invoice_a_amounts(self) -> None:
        transport = FakeTransport(ok(last_invoice_response(0, invoice_type=1)), ok(cae_response(1, invoice_type=1)))
        cae = await make_service(transport).issue_invoice_a(MIXED_ITEMS, COMPANY)

        assert sent(transport, 1, f".//{NS}ImpNeto") == "800.00"
        assert sent(transport, 1, f".//{NS}ImpIVA") == "94.50"
        assert sent(transport, 1, f".//{NS}ImpTotal") == "894.50"
        assert sent(transport, 1, f".//{NS}DocTipo") == "80"
        assert sent(transport, 1, f".//{NS}DocNro") == "30712345671"
        root = etree.fromstring(transport.requests[1].body.encode("utf-8"))
        assert [a.findtext(f"{NS}Id") for a in root.iter(f"{NS}AlicIva")] == ["5", "4", "3"]

        assert [e.rate for e in cae.vat] == [Decimal("21"), Decimal("10.5"), Decimal("0")]
        assert cae.items == MIXED_ITEMS

    async def test_buyer_in_qr(self) -> None:
        transport = FakeTransport(ok(last_invoice_response(0, invoice_type=1)), ok(cae_response(1, invoice_type=1)))
        cae = await make_service(transport).issue_invoice_a(MIXED_ITEMS, COMPANY)
        payload = qr_payload(cae.qr_url)
        assert payload["tipoDocRec"] == 80
        assert payload["nroDocRec"] == 30712345671
        assert payload["importe"] == 894.5

    async def test_prices_including_tax(self) -> None:
        transport = FakeTransport(ok(last_invoice_response(0, invoice_type=6)), ok(cae_response(1, invoice_type=6)))
        await make_service(transport).issue_invoice_b(
            [InvoiceItem("Widget", 1, 121, 21)], prices_include_tax=True
        )
        assert sent(transport, 1, f".//{NS}ImpNeto") == "100.00"
        assert sent(transport, 1, f".//{NS}ImpIVA") == "21.00"
        assert sent(transport, 1, f".//{NS}ImpTotal") == "121.00"

    async def test_c_document_items_are_final_prices(self) -> None:
        transport = FakeTransport(ok(last_invoice_response(0)), ok(cae_response(1)))
        cae = await make_service(transport).issue_invoice_c([InvoiceItem("Service", 2, 250)])
        assert sent(transport, 1, f".//{NS}ImpTotal") == "500.00"
        assert sent(transport, 1, f".//{NS}ImpIVA") == "0.00"
        assert cae.vat == ()
        assert len(cae.items) == 1

    async def test_receipt_a_uses_document_type_4(self) -> None:
        transport = FakeTransport(ok(last_invoice_response(0, invoice_type=4)), ok(cae_response(1, invoice_type=4)))
        await make_service(transport).issue_receipt_a([InvoiceItem("Fee", 1, 100, 21)], COMPANY)
        assert sent(transport, 0, f".//{NS}CbteTipo") == "4"


class TestServiceConcept:
    async def test_service_dates_default_to_issue_date(self) -> None:
        transport = FakeTransport(ok(last_invoice_response(0)), ok(cae_response(1)))
        await make_service(transport).issue_invoice_c(
            [InvoiceItem("Consulting", 1, 1000)], concept=BillingConcept.SERVICES
        )
        assert sent(transport, 1, f".//{NS}Concepto") == "2"
        assert sent(transport, 1, f".//{NS}FchServDesde") == "20260310"
        assert sent(transport, 1, f".//{NS}FchServHasta") == "20260310"
        assert sent(transport, 1, f".//{NS}FchVtoPago") == "20260310"

    async def test_explicit_service_period(self) -> None:
        transport = FakeTransport(ok(last_invoice_response(0)), ok(cae_response(1)))
        request = InvoiceRequest(
            invoice_type=InvoiceType.FACTURA_C,
            concept=BillingConcept.PRODUCTS_AND_SERVICES,
            items=(InvoiceItem("Consulting", 1, 1000),),
            issue_date=date(2026, 3, 31),
            service_start=date(2026, 3, 1),
            service_end=date(2026, 3, 31),
            payment_due=date(2026, 4, 10),
        )
        await make_service(transport).issue(request)
        assert sent(transport, 1, f".//{NS}FchServDesde") == "20260301"
        assert sent(transport, 1, f".//{NS}FchVtoPago") == "20260410"

    async def test_products_carry_no_service_dates(self) -> None:
        transport = FakeTransport(ok(last_invoice_response(0)), ok(cae_response(1)))
        await make_service(transport).issue_simple_receipt(100)
        assert sent(transport, 1, f".//{NS}FchServDesde") is None


class TestNotes:
    async def test_credit_note_sends_associated_invoice(self) -> None:
        transport = FakeTransport(ok(last_invoice_response(0, invoice_type=13)), ok(cae_response(1, invoice_type=13)))
        original = AssociatedInvoice(InvoiceType.FACTURA_C, 1, 7)
        await make_service(transport).issue_credit_note(
            InvoiceType.NOTA_CREDITO_C, [InvoiceItem("Refund", 1, 100)], [original]
        )
        assert sent(transport, 1, f".//{NS}CbteAsoc/{NS}Tipo") == "11"
        assert sent(transport, 1, f".//{NS}CbteAsoc/{NS}Nro") == "7"

    async def test_debit_note_type_check(self) -> None:
        transport = FakeTransport()
        with pytest.raises(ValidationError, match="not a debit note"):
            await make_service(transport).issue_debit_note(
                InvoiceType.NOTA_CREDITO_C, [InvoiceItem("x", 1, 1)], [AssociatedInvoice(InvoiceType.FACTURA_C, 1, 7)]
            )
        assert transport.requests == []


# ─────────────────────── Local validation ───────────────────────


class TestValidationBeforeNetwork:
    """
    GIVEN malformed requests
    WHEN issued
    THEN ValidationError is raised and nothing is sent.
    """

    async def test_credit_note_without_associated_invoice(self) -> None:
        transport = FakeTransport()
        request = InvoiceRequest(
            invoice_type=InvoiceType.NOTA_CREDITO_C,
            items=(InvoiceItem("Refund", 1, 100),),
        )
        with pytest.raises(ValidationError, match="associated invoice"):
            await make_service(transport).issue(request)
        assert transport.requests == []

    async def test_unmapped_vat_rate(self) -> None:
        transport = FakeTransport()
        with pytest.raises(ValidationError, match="VAT rate"):
            await make_service(transport).issue_invoice_a([InvoiceItem("Odd", 1, 100, 15)], COMPANY)
        assert transport.requests == []

    async def test_discriminated_item_without_rate(self) -> None:
        transport = FakeTransport()
        with pytest.raises(ValidationError) as exc_info:
            await make_service(transport).issue_invoice_b([InvoiceItem("No rate", 1, 100)])
        assert exc_info.value.details == {"items_without_rate": ["No rate"]}
        assert transport.requests == []

    async def test_discriminated_flat_total(self) -> None:
        transport = FakeTransport()
        with pytest.raises(ValidationError):
            await make_service(transport).issue(InvoiceRequest(invoice_type=InvoiceType.FACTURA_B, total=100))
        assert transport.requests == []

    @pytest.mark.parametrize("total", [0, -5, 0.004])
    async def test_total_must_be_positive(self, total: float) -> None:
        transport = FakeTransport()
        with pytest.raises(ValidationError, match="positive"):
            await make_service(transport).issue_simple_receipt(total)
        assert transport.requests == []

    async def test_quantity_must_be_positive(self) -> None:
        transport = FakeTransport()
        with pytest.raises(ValidationError, match="quantity"):
            await make_service(transport).issue_receipt([InvoiceItem("x", 0, 100)])
        assert transport.requests == []

    async def test_items_or_total_required(self) -> None:
        transport = FakeTransport()
        with pytest.raises(ValidationError):
            await make_service(transport).issue(InvoiceRequest(invoice_type=InvoiceType.FACTURA_C))
        assert transport.requests == []

    async def test_expired_static_ticket(self) -> None:
        transport = FakeTransport()
        service = make_service(transport, ticket=make_ticket(issued_at=NOW - timedelta(hours=12), hours=12))
        with pytest.raises(AuthenticationError):
            await service.issue_simple_receipt(100)
        assert transport.requests == []


class TestConstruction:
    async def test_naive_ticket_is_a_validation_error(self) -> None:
        """
        GIVEN a caller-built ticket whose window has no time zone
        WHEN it is handed to the service
        THEN a typed ValidationError is raised and nothing is sent.
        """
        transport = FakeTransport()
        with pytest.raises(ValidationError, match="timezone-aware"):
            service = make_service(
                transport,
                ticket=AuthenticationTicket("T", "S", datetime(2026, 3, 10, 12), datetime(2026, 3, 11, 0)),
            )
            await service.issue_simple_receipt(1500)
        assert transport.requests == []

    @pytest.mark.parametrize("point_of_sale", [0, 10000, -1])
    def test_point_of_sale_range(self, point_of_sale: int) -> None:
        with pytest.raises(ValidationError, match="point of sale"):
            make_service(FakeTransport(), point_of_sale=point_of_sale)

    def test_bounds_are_inclusive(self) -> None:
        make_service(FakeTransport(), point_of_sale=1)
        make_service(FakeTransport(), point_of_sale=9999)

    def test_ticket_required(self) -> None:
        with pytest.raises(ValidationError, match="ticket"):
            make_service(FakeTransport(), ticket=None)

    def test_invalid_cuit(self) -> None:
        with pytest.raises(ValidationError):
            InvoicingService(cuit="20-12345678-9", point_of_sale=1, ticket=make_ticket(), transport=FakeTransport())


# ─────────────────────── Remote outcomes ───────────────────────


class TestRemoteOutcomes:
    async def test_errors_block_raises_with_hint(self) -> None:
        transport = FakeTransport(
            ok(last_invoice_response(0)),
            ok(errors_response("FECAESolicitar", 10016, "El CUIT informado no es valido")),
        )
        with pytest.raises(RemoteError) as exc_info:
            await make_service(transport).issue_simple_receipt(100)
        assert exc_info.value.code == 10016
        assert exc_info.value.hint is not None

    async def test_unregistered_point_of_sale_fails_on_last_number(self) -> None:
        transport = FakeTransport(ok(errors_response("FECompUltimoAutorizado", 10048, "PtoVta no habilitado")))
        with pytest.raises(RemoteError) as exc_info:
            await make_service(transport).issue_simple_receipt(100)
        assert exc_info.value.code == 10048
        assert len(transport.requests) == 1

    async def test_observations_on_approved_document(self) -> None:
        transport = FakeTransport(
            ok(last_invoice_response(0)),
            ok(cae_response(1, observations=((10217, "Fecha de servicio ajustada"),))),
        )
        cae = await make_service(transport).issue_simple_receipt(100)
        assert cae.approved
        assert cae.observations == ("Fecha de servicio ajustada",)

    async def test_rejected_document_still_gets_qr(self) -> None:
        transport = FakeTransport(
            ok(last_invoice_response(0)),
            ok(cae_response(1, result="R", observations=((10015, "Monto supera el limite"),))),
        )
        cae = await make_service(transport).issue_simple_receipt(100)
        assert cae.result is CaeResult.REJECTED
        payload = qr_payload(cae.qr_url)
        assert payload["nroCmp"] == 1
        assert payload["importe"] == 100
        assert payload["codAut"] == 0
        assert cae.observations == ("Monto supera el limite",)

    async def test_fault_with_http_500_is_remote_error(self) -> None:
        transport = FakeTransport(
            ok(last_invoice_response(0)),
            HttpResponse(status=500, body=fault_envelope("soap:Server", "Server was unable to process request")),
        )
        with pytest.raises(RemoteError) as exc_info:
            await make_service(transport).issue_simple_receipt(100)
        assert exc_info.value.code == "soap:Server"

    async def test_http_error_without_fault_is_network_error(self) -> None:
        transport = FakeTransport(ok(last_invoice_response(0)), HttpResponse(status=502, body="Bad Gateway"))
        with pytest.raises(NetworkError) as exc_info:
            await make_service(transport).issue_simple_receipt(100)
        assert exc_info.value.details["status"] == 502


class TestRetryPolicy:
    """
    GIVEN an unreachable WSFE
    WHEN issuing
    THEN the last-number read is retried but the submission is not.
    """

    async def test_last_number_read_is_retried(self) -> None:
        transport = FakeTransport(UnreachableError("down"), ok(last_invoice_response(0)), ok(cae_response(1)))
        cae = await make_service(transport).issue_simple_receipt(100)
        assert cae.invoice_number == 1
        assert len(transport.requests) == 3

    async def test_submission_is_never_retried(self) -> None:
        transport = FakeTransport(ok(last_invoice_response(0)), UnreachableError("down"), ok(cae_response(1)))
        with pytest.raises(UnreachableError):
            await make_service(transport).issue_simple_receipt(100)
        assert len(transport.requests) == 2

    async def test_network_failure_on_last_number_aborts_before_submit(self) -> None:
        transport = FakeTransport(NetworkError("timeout"))
        with pytest.raises(NetworkError):
            await make_service(transport).issue_simple_receipt(100)
        assert transport.actions == [f"{ACTION}FECompUltimoAutorizado"]


# ─────────────────────── Queries ───────────────────────


class TestQueries:
    async def test_ticket_provider_is_asked_each_call(self) -> None:
        provider = FakeTicketProvider(make_ticket(token="FROM-PROVIDER"))
        transport = FakeTransport(ok(last_invoice_response(3)), ok(last_invoice_response(3)))
        service = make_service(transport, ticket=None, ticket_provider=provider)
        assert await service.get_last_invoice_number(InvoiceType.FACTURA_C) == 3
        await service.get_last_invoice_number(11)
        assert provider.calls == 2
        assert sent(transport, 0, f".//{NS}Auth/{NS}Token") == "FROM-PROVIDER"

    async def test_unknown_invoice_type(self) -> None:
        with pytest.raises(ValidationError, match="Unknown invoice type"):
            await make_service(FakeTransport()).get_last_invoice_number(5)

    async def test_get_invoice(self) -> None:
        transport = FakeTransport(ok(wsfe_response(
            "FECompConsultar",
            "<ResultGet><CbteTipo>11</CbteTipo><PtoVta>1</PtoVta><CbteDesde>7</CbteDesde>"
            "<CbteFch>20260301</CbteFch><ImpTotal>100.00</ImpTotal><Resultado>A</Resultado>"
            "<CodAutorizacion>74000000000007</CodAutorizacion></ResultGet>",
        )))
        details = await make_service(transport).get_invoice(InvoiceType.FACTURA_C, 7)
        assert details.invoice_number == 7
        assert details.cae == "74000000000007"
        assert sent(transport, 0, f".//{NS}FeCompConsReq/{NS}CbteNro") == "7"

    async def test_get_points_of_sale(self) -> None:
        transport = FakeTransport(ok(wsfe_response(
            "FEParamGetPtosVenta",
            "<ResultGet><PtoVenta><Nro>1</Nro><EmisionTipo>CAE</EmisionTipo><Bloqueado>N</Bloqueado></PtoVenta></ResultGet>",
        )))
        points = await make_service(transport).get_points_of_sale()
        assert [p.number for p in points] == [1]

    async def test_check_status_needs_no_ticket(self) -> None:
        transport = FakeTransport(ok(wsfe_response(
            "FEDummy", "<AppServer>OK</AppServer><DbServer>OK</DbServer><AuthServer>OK</AuthServer>"
        )))
        status = await check_status(Environment.TESTING, transport=transport)
        assert status.healthy
        assert "<ar:Auth>" not in transport.requests[0].body
        assert transport.actions == [f"{ACTION}FEDummy"]
