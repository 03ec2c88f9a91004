"""
SOAP envelope codec — every XML shape the client sends or receives.

Adapter layer — uses lxml to build outbound envelopes and to read inbound
ones. Nothing outside this module touches XML.

Reading rules:
  - Elements are matched by local name; namespace prefixes vary between
    ARCA servers and releases, so they are never relied upon.
  - A SOAP Fault in the Body wins over any structural mismatch.
  - Repeated elements (Err, Obs, PtoVenta, domicilio...) may come back as a
    single element; they are always read through _children(), which
    returns a list whatever the arity.
  - Fixed-width digit fields (YYYYMMDD dates, CAE, document numbers) stay
    strings; only counters and codes become int, amounts become Decimal.

The WSAA response carries the ticket as an escaped XML document inside
<loginCmsReturn>, so it takes two parses.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

import structlog
from lxml import etree

from arca_client.domain.models import (
    Activity,
    Address,
    AssociatedInvoice,
    AuthenticationTicket,
    CAEResponse,
    CaeResult,
    InvoiceDetails,
    PointOfSale,
    ServiceStatus,
    Taxpayer,
    TaxpayerLookup,
    TaxRecord,
    VatEntry,
)
from arca_client.domain.vat import format_amount, vat_rate_code
from arca_client.errors import AuthenticationError, RemoteError, ValidationError, get_hint

log = structlog.get_logger()

SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"
WSAA_NS = "http://wsaa.view.sua.dvadac.desein.afip.gov"
WSFE_NS = "http://ar.gov.afip.dif.FEV1/"
PADRON_A13_NS = "http://a13.soap.ws.server.puc.sr/"

# ARCA servers keep Buenos Aires time (UTC-3, no DST)
ARGENTINA_TZ = timezone(timedelta(hours=-3))

PARSE_ERROR = "PARSE_ERROR"

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=True)

# Padron tax ids used to derive the VAT position
_TAX_ID_VAT = 30
_TAX_ID_MONOTAX = 20
_TAX_ID_VAT_EXEMPT = 32


@dataclass(frozen=True, slots=True)
class WsfeAuth:
    """The <Auth> block every authenticated WSFE call carries."""

    token: str
    sign: str
    cuit: str


@dataclass(frozen=True, slots=True)
class SoapFault:
    code: str
    message: str
    detail: str | None = None


@dataclass(frozen=True, slots=True)
class CaeRequestDetail:
    """Values of one <FECAEDetRequest>, already computed and rounded."""

    concept: int
    doc_type: int
    doc_number: str
    invoice_number: int
    issue_date: date
    total: Decimal
    net: Decimal
    vat: Decimal
    vat_entries: tuple[VatEntry, ...] = ()
    associated_invoices: tuple[AssociatedInvoice, ...] = ()
    service_start: date | None = None
    service_end: date | None = None
    payment_due: date | None = None
    buyer_vat_condition: int | None = None


# ─────────────────────── Formatting ───────────────────────


def format_arca_datetime(moment: datetime) -> str:
    """ISO-8601 in Buenos Aires time, seconds precision: 2026-02-20T09:00:00-03:00."""
    return moment.astimezone(ARGENTINA_TZ).isoformat(timespec="seconds")


def format_arca_date(value: date) -> str:
    """8-digit YYYYMMDD."""
    return value.strftime("%Y%m%d")


# ─────────────────────── Building ───────────────────────


def _sub(parent: etree._Element, tag: str, text: object | None = None) -> etree._Element:
    element = etree.SubElement(parent, tag)
    if text is not None:
        element.text = str(text)
    return element


def _envelope(prefix: str, namespace: str) -> tuple[etree._Element, etree._Element]:
    """Return (Envelope, Body) with an empty Header, as ARCA's samples do."""
    root = etree.Element(
        f"{{{SOAP_NS}}}Envelope",
        nsmap={"soapenv": SOAP_NS, prefix: namespace},
    )
    etree.SubElement(root, f"{{{SOAP_NS}}}Header")
    body = etree.SubElement(root, f"{{{SOAP_NS}}}Body")
    return root, body


def _serialize(root: etree._Element) -> str:
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8").decode("utf-8")


def _wsfe(tag: str) -> str:
    return f"{{{WSFE_NS}}}{tag}"


def _wsfe_operation(operation: str, auth: WsfeAuth | None) -> tuple[etree._Element, etree._Element]:
    root, body = _envelope("ar", WSFE_NS)
    op = etree.SubElement(body, _wsfe(operation))
    if auth is not None:
        auth_el = _sub(op, _wsfe("Auth"))
        _sub(auth_el, _wsfe("Token"), auth.token)
        _sub(auth_el, _wsfe("Sign"), auth.sign)
        _sub(auth_el, _wsfe("Cuit"), auth.cuit)
    return root, op


def build_tra(
    service: str,
    generation_time: datetime,
    expiration_time: datetime,
    unique_id: int | None = None,
) -> str:
    """The loginTicketRequest document that gets CMS-signed."""
    root = etree.Element("loginTicketRequest", version="1.0")
    header = _sub(root, "header")
    _sub(header, "uniqueId", unique_id if unique_id is not None else int(generation_time.timestamp()))
    _sub(header, "generationTime", format_arca_datetime(generation_time))
    _sub(header, "expirationTime", format_arca_datetime(expiration_time))
    _sub(root, "service", service)
    return _serialize(root)


def build_login_request(signed_cms: str) -> str:
    root, body = _envelope("wsaa", WSAA_NS)
    login = etree.SubElement(body, f"{{{WSAA_NS}}}loginCms")
    _sub(login, f"{{{WSAA_NS}}}in0", signed_cms)
    return _serialize(root)


def build_dummy_request() -> str:
    root, _ = _wsfe_operation("FEDummy", None)
    return _serialize(root)


def build_last_invoice_request(auth: WsfeAuth, point_of_sale: int, invoice_type: int) -> str:
    root, op = _wsfe_operation("FECompUltimoAutorizado", auth)
    _sub(op, _wsfe("PtoVta"), point_of_sale)
    _sub(op, _wsfe("CbteTipo"), int(invoice_type))
    return _serialize(root)


def build_invoice_query_request(
    auth: WsfeAuth,
    point_of_sale: int,
    invoice_type: int,
    invoice_number: int,
) -> str:
    root, op = _wsfe_operation("FECompConsultar", auth)
    req = _sub(op, _wsfe("FeCompConsReq"))
    _sub(req, _wsfe("CbteTipo"), int(invoice_type))
    _sub(req, _wsfe("CbteNro"), invoice_number)
    _sub(req, _wsfe("PtoVta"), point_of_sale)
    return _serialize(root)


def build_points_of_sale_request(auth: WsfeAuth) -> str:
    root, _ = _wsfe_operation("FEParamGetPtosVenta", auth)
    return _serialize(root)


def build_cae_request(
    auth: WsfeAuth,
    point_of_sale: int,
    invoice_type: int,
    detail: CaeRequestDetail,
) -> str:
    """
    FECAESolicitar for a single document (CantReg = 1).

    Raises ValidationError if a VAT entry's rate has no AlicIva Id.
    """
    root, op = _wsfe_operation("FECAESolicitar", auth)
    req = _sub(op, _wsfe("FeCAEReq"))

    header = _sub(req, _wsfe("FeCabReq"))
    _sub(header, _wsfe("CantReg"), 1)
    _sub(header, _wsfe("PtoVta"), point_of_sale)
    _sub(header, _wsfe("CbteTipo"), int(invoice_type))

    det = _sub(_sub(req, _wsfe("FeDetReq")), _wsfe("FECAEDetRequest"))
    _sub(det, _wsfe("Concepto"), int(detail.concept))
    _sub(det, _wsfe("DocTipo"), int(detail.doc_type))
    _sub(det, _wsfe("DocNro"), detail.doc_number)
    _sub(det, _wsfe("CbteDesde"), detail.invoice_number)
    _sub(det, _wsfe("CbteHasta"), detail.invoice_number)
    _sub(det, _wsfe("CbteFch"), format_arca_date(detail.issue_date))
    _sub(det, _wsfe("ImpTotal"), format_amount(detail.total))
    _sub(det, _wsfe("ImpTotConc"), "0.00")
    _sub(det, _wsfe("ImpNeto"), format_amount(detail.net))
    _sub(det, _wsfe("ImpOpEx"), "0.00")
    _sub(det, _wsfe("ImpTrib"), "0.00")
    _sub(det, _wsfe("ImpIVA"), format_amount(detail.vat))
    if detail.service_start is not None:
        _sub(det, _wsfe("FchServDesde"), format_arca_date(detail.service_start))
        _sub(det, _wsfe("FchServHasta"), format_arca_date(detail.service_end or detail.service_start))
        _sub(det, _wsfe("FchVtoPago"), format_arca_date(detail.payment_due or detail.issue_date))
    _sub(det, _wsfe("MonId"), "PES")
    _sub(det, _wsfe("MonCotiz"), 1)
    if detail.buyer_vat_condition is not None:
        _sub(det, _wsfe("CondicionIVAReceptorId"), detail.buyer_vat_condition)

    if detail.associated_invoices:
        assoc_list = _sub(det, _wsfe("CbtesAsoc"))
        for assoc in detail.associated_invoices:
            assoc_el = _sub(assoc_list, _wsfe("CbteAsoc"))
            _sub(assoc_el, _wsfe("Tipo"), int(assoc.invoice_type))
            _sub(assoc_el, _wsfe("PtoVta"), assoc.point_of_sale)
            _sub(assoc_el, _wsfe("Nro"), assoc.invoice_number)
            if assoc.cuit:
                _sub(assoc_el, _wsfe("Cuit"), assoc.cuit)
            if assoc.date is not None:
                _sub(assoc_el, _wsfe("CbteFch"), format_arca_date(assoc.date))

    if detail.vat_entries:
        iva = _sub(det, _wsfe("Iva"))
        for entry in detail.vat_entries:
            alic = _sub(iva, _wsfe("AlicIva"))
            _sub(alic, _wsfe("Id"), vat_rate_code(entry.rate))
            _sub(alic, _wsfe("BaseImp"), format_amount(entry.tax_base))
            _sub(alic, _wsfe("Importe"), format_amount(entry.amount))

    return _serialize(root)


def build_taxpayer_request(token: str, sign: str, cuit: str, tax_id: str) -> str:
    root, body = _envelope("a13", PADRON_A13_NS)
    op = etree.SubElement(body, f"{{{PADRON_A13_NS}}}getPersona")
    # Padron A13 expects unqualified parameters
    _sub(op, "token", token)
    _sub(op, "sign", sign)
    _sub(op, "cuitRepresentada", cuit)
    _sub(op, "idPersona", tax_id)
    return _serialize(root)


# ─────────────────────── Reading helpers ───────────────────────


def _parse(xml: str | bytes) -> etree._Element:
    data = xml.encode("utf-8") if isinstance(xml, str) else xml
    return etree.fromstring(data, _PARSER)


def _local(element: etree._Element) -> str:
    return etree.QName(element).localname


def _children(element: etree._Element | None, name: str) -> list[etree._Element]:
    """All direct children named `name`, whatever their prefix; always a list."""
    if element is None:
        return []
    return [c for c in element if isinstance(c.tag, str) and _local(c) == name]


def _child(element: etree._Element | None, name: str) -> etree._Element | None:
    found = _children(element, name)
    return found[0] if found else None


def _path(element: etree._Element | None, *names: str) -> etree._Element | None:
    for name in names:
        element = _child(element, name)
    return element


def _text(element: etree._Element | None, *names: str) -> str | None:
    target = _path(element, *names)
    if target is None or target.text is None:
        return None
    value = target.text.strip()
    return value or None


def _unreadable(names: tuple[str, ...], value: str, error: Exception) -> RemoteError:
    field = "/".join(names)
    return RemoteError(
        f"Unreadable value in ARCA response: {field}={value!r}",
        code=PARSE_ERROR,
        details={"field": field, "value": value, "error": str(error)},
    )


def _int(element: etree._Element | None, *names: str) -> int | None:
    """Integer field, None when absent. A non-numeric value raises RemoteError."""
    value = _text(element, *names)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError as e:
        raise _unreadable(names, value, e) from e


def _decimal(element: etree._Element | None, *names: str) -> Decimal:
    """Amount field, 0 when absent. A non-numeric or non-finite value raises RemoteError."""
    value = _text(element, *names)
    if value is None:
        return Decimal(0)
    try:
        amount = Decimal(value)
    except InvalidOperation as e:
        raise _unreadable(names, value, e) from e
    if not amount.is_finite():
        raise _unreadable(names, value, ValueError("not a finite amount"))
    return amount


def _body(root: etree._Element) -> etree._Element | None:
    if _local(root) != "Envelope":
        return None
    return _child(root, "Body")


def _fault_of(body: etree._Element | None) -> SoapFault | None:
    fault = _child(body, "Fault")
    if fault is None:
        return None
    detail = _child(fault, "detail")
    detail_text = None
    if detail is not None:
        detail_text = "".join(detail.itertext()).strip() or None
    return SoapFault(
        code=_text(fault, "faultcode") or "UNKNOWN",
        message=_text(fault, "faultstring") or "Unknown ARCA error",
        detail=detail_text,
    )


def parse_fault(xml: str) -> SoapFault | None:
    """Return the SOAP Fault in `xml`, or None if there is none or it cannot be read."""
    try:
        return _fault_of(_body(_parse(xml)))
    except etree.XMLSyntaxError:
        return None


def remote_error_from_fault(fault: SoapFault) -> RemoteError:
    return RemoteError(
        f"ARCA error: {fault.message}",
        code=fault.code,
        details={"fault_code": fault.code, "detail": fault.detail},
        hint=get_hint(fault.code),
    )


def authentication_error_from_fault(fault: SoapFault) -> AuthenticationError:
    return AuthenticationError(
        f"ARCA error: {fault.message}",
        details={"fault_code": fault.code, "detail": fault.detail},
        hint=get_hint(fault.code),
    )


def _snippet(xml: str | bytes, limit: int = 2000) -> str:
    text = xml.decode("utf-8", "replace") if isinstance(xml, bytes) else xml
    return text[:limit]


# ─────────────────────── WSAA ───────────────────────


def parse_login_response(xml: str) -> AuthenticationTicket:
    """
    Decode a LoginCms response into an AuthenticationTicket.

    Raises AuthenticationError for faults, malformed XML at either level,
    and tickets whose validity window is empty.
    """
    try:
        body = _body(_parse(xml))
    except etree.XMLSyntaxError as e:
        raise AuthenticationError(
            "Could not parse WSAA response",
            details={"error": str(e), "received_xml": _snippet(xml)},
        ) from e

    fault = _fault_of(body)
    if fault is not None:
        raise authentication_error_from_fault(fault)

    inner_xml = _text(body, "loginCmsResponse", "loginCmsReturn")
    if inner_xml is None:
        raise AuthenticationError(
            "Invalid WSAA response: unrecognized structure",
            details={"received_xml": _snippet(xml)},
        )

    try:
        ticket_root = _parse(inner_xml)
    except etree.XMLSyntaxError as e:
        raise AuthenticationError(
            "Could not parse the ticket embedded in loginCmsReturn",
            details={"error": str(e), "received_xml": _snippet(inner_xml)},
        ) from e

    header = _child(ticket_root, "header")
    credentials = _child(ticket_root, "credentials")
    token = _text(credentials, "token")
    sign = _text(credentials, "sign")
    generation = _text(header, "generationTime")
    expiration = _text(header, "expirationTime")

    if _local(ticket_root) != "loginTicketResponse" or None in (token, sign, generation, expiration):
        raise AuthenticationError(
            "Invalid or malformed WSAA ticket inside loginCmsReturn",
            details={"received_xml": _snippet(inner_xml)},
        )

    try:
        return AuthenticationTicket(
            token=token,  # type: ignore[arg-type]
            signature=sign,  # type: ignore[arg-type]
            issued_at=datetime.fromisoformat(generation),  # type: ignore[arg-type]
            expires_at=datetime.fromisoformat(expiration),  # type: ignore[arg-type]
        )
    except (ValueError, ValidationError) as e:
        raise AuthenticationError(
            "WSAA ticket has an invalid validity window",
            details={"error": str(e), "generation_time": generation, "expiration_time": expiration},
        ) from e


# ─────────────────────── WSFE ───────────────────────


def _wsfe_result(xml: str, operation: str) -> etree._Element:
    """Return <{operation}Result>, raising RemoteError for faults, Errors and bad shapes."""
    try:
        body = _body(_parse(xml))
    except etree.XMLSyntaxError as e:
        raise RemoteError(
            f"Could not parse {operation} response",
            code=PARSE_ERROR,
            details={"error": str(e), "received_xml": _snippet(xml)},
        ) from e

    fault = _fault_of(body)
    if fault is not None:
        raise remote_error_from_fault(fault)

    result = _path(body, f"{operation}Response", f"{operation}Result")
    if result is None:
        raise RemoteError(
            f"Invalid {operation} response: unrecognized structure",
            code=PARSE_ERROR,
            details={"received_xml": _snippet(xml)},
        )

    _raise_errors(result)
    _log_events(result, operation)
    return result


def _raise_errors(result: etree._Element) -> None:
    errors = _children(_child(result, "Errors"), "Err")
    if not errors:
        return
    first = errors[0]
    code_text = _text(first, "Code")
    code: int | str = code_text or "UNKNOWN"
    if code_text and code_text.isdigit():
        try:
            code = int(code_text)
        except ValueError:
            code = code_text
    message = _text(first, "Msg") or "Unknown ARCA error"
    raise RemoteError(
        f"ARCA error: {message}",
        code=code,
        details=[{"code": _text(e, "Code"), "message": _text(e, "Msg")} for e in errors],
        hint=get_hint(code),
    )


def _log_events(result: etree._Element, operation: str) -> None:
    for event in _children(_child(result, "Events"), "Evt"):
        log.warning("wsfe.event", operation=operation, code=_text(event, "Code"), message=_text(event, "Msg"))


def parse_dummy_response(xml: str) -> ServiceStatus:
    result = _wsfe_result(xml, "FEDummy")
    return ServiceStatus(
        app_server=_text(result, "AppServer") or "",
        db_server=_text(result, "DbServer") or "",
        auth_server=_text(result, "AuthServer") or "",
    )


def parse_last_invoice_response(xml: str) -> int:
    """Last authorized number; 0 when nothing was ever issued."""
    result = _wsfe_result(xml, "FECompUltimoAutorizado")
    return _int(result, "CbteNro") or 0


def _observations(detail: etree._Element) -> tuple[str, ...]:
    return tuple(
        message
        for obs in _children(_child(detail, "Observaciones"), "Obs")
        if (message := _text(obs, "Msg")) is not None
    )


def parse_cae_response(xml: str) -> CAEResponse:
    """
    Decode FECAESolicitar. Rejected documents come back as a CAEResponse
    with result REJECTED; only an Errors block or a fault raises.
    """
    result = _wsfe_result(xml, "FECAESolicitar")
    header = _child(result, "FeCabResp")
    details = _children(_child(result, "FeDetResp"), "FECAEDetResponse")
    if header is None or not details:
        raise RemoteError(
            "Incomplete WSFE response: missing document detail",
            code=PARSE_ERROR,
            details={"received_xml": _snippet(xml)},
        )
    detail = details[0]

    result_code = _text(detail, "Resultado") or _text(header, "Resultado") or CaeResult.REJECTED.value
    return CAEResponse(
        invoice_type=_int(header, "CbteTipo") or 0,
        point_of_sale=_int(header, "PtoVta") or 0,
        invoice_number=_int(detail, "CbteDesde") or 0,
        date=_text(detail, "CbteFch") or "",
        cae=_text(detail, "CAE") or "",
        cae_expiry=_text(detail, "CAEFchVto") or "",
        result=CaeResult(result_code) if result_code in ("A", "R") else CaeResult.REJECTED,
        observations=_observations(detail),
    )


def parse_invoice_query_response(xml: str) -> InvoiceDetails:
    result = _wsfe_result(xml, "FECompConsultar")
    det = _child(result, "ResultGet")
    if det is None:
        raise RemoteError(
            "Invalid FECompConsultar response: missing ResultGet",
            code=PARSE_ERROR,
            details={"received_xml": _snippet(xml)},
        )
    result_code = _text(det, "Resultado")
    return InvoiceDetails(
        invoice_type=_int(det, "CbteTipo") or 0,
        point_of_sale=_int(det, "PtoVta") or 0,
        invoice_number=_int(det, "CbteDesde") or 0,
        date=_text(det, "CbteFch") or "",
        concept=_int(det, "Concepto") or 0,
        doc_type=_int(det, "DocTipo") or 0,
        doc_number=_text(det, "DocNro") or "0",
        total=_decimal(det, "ImpTotal"),
        net=_decimal(det, "ImpNeto"),
        vat=_decimal(det, "ImpIVA"),
        cae=_text(det, "CodAutorizacion") or "",
        cae_expiry=_text(det, "FchVto") or "",
        result=CaeResult.APPROVED if result_code == "A" else CaeResult.REJECTED,
    )


def parse_points_of_sale_response(xml: str) -> list[PointOfSale]:
    result = _wsfe_result(xml, "FEParamGetPtosVenta")
    points = []
    for pv in _children(_child(result, "ResultGet"), "PtoVenta"):
        blocked_since = _text(pv, "FchBaja")
        points.append(PointOfSale(
            number=_int(pv, "Nro") or 0,
            emission_type=_text(pv, "EmisionTipo") or "",
            is_blocked=_text(pv, "Bloqueado") == "S",
            blocked_since=None if blocked_since in (None, "NULL") else blocked_since,
        ))
    return points


# ─────────────────────── Padron A13 ───────────────────────


def _addresses(elements: Iterable[etree._Element]) -> tuple[Address, ...]:
    return tuple(
        Address(
            street=_text(e, "direccion"),
            city=_text(e, "localidad"),
            postal_code=_text(e, "codPostal"),
            province_id=_int(e, "idProvincia"),
            province=_text(e, "descripcionProvincia"),
            address_type=_text(e, "tipoDomicilio"),
        )
        for e in elements
    )


def _activities(elements: Iterable[etree._Element]) -> tuple[Activity, ...]:
    return tuple(
        Activity(
            id=_int(e, "idActividad") or 0,
            description=_text(e, "descripcion"),
            order=_int(e, "orden"),
            period=_int(e, "periodo"),
        )
        for e in elements
    )


def _tax_records(elements: Iterable[etree._Element]) -> tuple[TaxRecord, ...]:
    return tuple(
        TaxRecord(
            id=_int(e, "idImpuesto") or 0,
            description=_text(e, "descripcion"),
            period=_int(e, "periodo"),
        )
        for e in elements
    )


def parse_taxpayer_response(xml: str) -> TaxpayerLookup:
    """
    Decode getPersona. "Not found" answers, including the fault Padron
    uses for unknown ids, become a TaxpayerLookup with `error` set.
    """
    try:
        body = _body(_parse(xml))
    except etree.XMLSyntaxError as e:
        raise RemoteError(
            "Could not parse Padron response",
            code="PADRON_ERROR",
            details={"error": str(e), "received_xml": _snippet(xml)},
            hint=get_hint("PADRON_ERROR"),
        ) from e

    if body is None:
        raise RemoteError(
            "Invalid Padron response: Body not found",
            code="PADRON_ERROR",
            details={"received_xml": _snippet(xml)},
            hint=get_hint("PADRON_ERROR"),
        )

    fault = _fault_of(body)
    if fault is not None:
        return TaxpayerLookup(error=fault.message)

    response = _path(body, "getPersonaResponse", "personaReturn")
    if response is None:
        return TaxpayerLookup(error="No data found for the given CUIT")

    error_text = _text(response, "errorConstancia")
    if error_text is not None:
        return TaxpayerLookup(error=error_text)

    person = _child(response, "persona")
    if person is None:
        return TaxpayerLookup(error="CUIT not found")

    taxes = _tax_records(_children(person, "impuesto"))
    tax_ids = {t.id for t in taxes}

    return TaxpayerLookup(taxpayer=Taxpayer(
        tax_id=_text(person, "idPersona") or "",
        person_type=_text(person, "tipoPersona"),
        status=_text(person, "estadoClave"),
        first_name=_text(person, "nombre"),
        last_name=_text(person, "apellido"),
        company_name=_text(person, "razonSocial"),
        main_activity=_text(person, "descripcionActividadPrincipal"),
        addresses=_addresses(_children(person, "domicilio")),
        activities=_activities(_children(person, "actividad")),
        taxes=taxes,
        is_vat_registered=_TAX_ID_VAT in tax_ids,
        is_monotax=_TAX_ID_MONOTAX in tax_ids,
        is_vat_exempt=_TAX_ID_VAT_EXEMPT in tax_ids,
    ))
