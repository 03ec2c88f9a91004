"""
Domain models — immutable value objects and ARCA catalogues.

Everything here is a frozen dataclass or an enum. Monetary amounts are
Decimal; inputs may be int, float or Decimal and are converted at the
point where arithmetic happens (see domain.vat). Fixed-width fields that
ARCA returns as digit strings (YYYYMMDD dates, CAE codes) stay str.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import IntEnum, StrEnum
from typing import Any, TypeAlias

from arca_client.errors import ValidationError

# A ticket stops being served this long before its real expiration.
RENEWAL_BUFFER = timedelta(minutes=5)

Number: TypeAlias = int | float | Decimal


class Environment(StrEnum):
    """ARCA deployment target. Values match ARCA's own naming."""

    TESTING = "homologacion"
    PRODUCTION = "produccion"


class InvoiceType(IntEnum):
    """Comprobante type codes (ARCA table CbteTipo)."""

    FACTURA_A = 1
    NOTA_DEBITO_A = 2
    NOTA_CREDITO_A = 3
    RECIBO_A = 4

    FACTURA_B = 6
    NOTA_DEBITO_B = 7
    NOTA_CREDITO_B = 8
    RECIBO_B = 9

    FACTURA_C = 11
    NOTA_DEBITO_C = 12
    NOTA_CREDITO_C = 13
    RECIBO_C = 15

    TICKET_A = 81
    TICKET_B = 82
    TICKET_C = 83

    @property
    def discriminates_vat(self) -> bool:
        """A and B documents carry a per-rate VAT breakdown."""
        return self in _VAT_DISCRIMINATED

    @property
    def is_note(self) -> bool:
        """Credit and debit notes must reference the documents they amend."""
        return self in _NOTES


_VAT_DISCRIMINATED = frozenset({
    InvoiceType.FACTURA_A, InvoiceType.NOTA_DEBITO_A, InvoiceType.NOTA_CREDITO_A,
    InvoiceType.RECIBO_A, InvoiceType.TICKET_A,
    InvoiceType.FACTURA_B, InvoiceType.NOTA_DEBITO_B, InvoiceType.NOTA_CREDITO_B,
    InvoiceType.RECIBO_B, InvoiceType.TICKET_B,
})

_NOTES = frozenset({
    InvoiceType.NOTA_DEBITO_A, InvoiceType.NOTA_CREDITO_A,
    InvoiceType.NOTA_DEBITO_B, InvoiceType.NOTA_CREDITO_B,
    InvoiceType.NOTA_DEBITO_C, InvoiceType.NOTA_CREDITO_C,
})


class BillingConcept(IntEnum):
    PRODUCTS = 1
    SERVICES = 2
    PRODUCTS_AND_SERVICES = 3


class TaxIdType(IntEnum):
    """Buyer document type codes (ARCA table DocTipo)."""

    CUIT = 80
    CUIL = 86
    CDI = 87
    LE = 89
    LC = 90
    FOREIGN_ID = 91
    PASSPORT = 94
    BUENOS_AIRES_ID = 95
    DNI = 96
    # ARCA's catalogue lists both under 96
    NATIONAL_POLICE_ID = 96
    FINAL_CONSUMER = 99


class CaeResult(StrEnum):
    APPROVED = "A"
    REJECTED = "R"


# ─────────────────────── Authentication ───────────────────────


@dataclass(frozen=True, slots=True)
class AuthenticationTicket:
    """
    WSAA access ticket (TA): token + sign pair valid for a bounded window.

    Never mutated; a renewed ticket replaces the old one.
    """

    token: str = field(repr=False)
    signature: str = field(repr=False)
    issued_at: datetime
    expires_at: datetime

    def __post_init__(self) -> None:
        for name, moment in (("issued_at", self.issued_at), ("expires_at", self.expires_at)):
            if moment.tzinfo is None or moment.utcoffset() is None:
                raise ValidationError(
                    f"Ticket {name} must be timezone-aware, got {moment.isoformat()}",
                    hint="Build ticket datetimes with a tzinfo, e.g. datetime.now(UTC)",
                )
        if self.expires_at <= self.issued_at:
            raise ValidationError(
                f"Ticket expires_at ({self.expires_at.isoformat()}) must be after "
                f"issued_at ({self.issued_at.isoformat()})"
            )

    def is_valid(self, now: datetime, buffer: timedelta = RENEWAL_BUFFER) -> bool:
        """True while `now` is earlier than expires_at minus the renewal buffer."""
        return now < self.expires_at - buffer

    def to_dict(self) -> dict[str, str]:
        return {
            "token": self.token,
            "signature": self.signature,
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthenticationTicket:
        return cls(
            token=data["token"],
            signature=data["signature"],
            issued_at=datetime.fromisoformat(data["issued_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )


# ─────────────────────── Invoicing inputs ───────────────────────


@dataclass(frozen=True, slots=True)
class InvoiceItem:
    """A billed line. `vat_rate` is a percentage (0, 10.5, 21 or 27)."""

    description: str
    quantity: Number
    unit_price: Number
    vat_rate: Number | None = None


@dataclass(frozen=True, slots=True)
class Buyer:
    doc_type: TaxIdType
    doc_number: str

    @classmethod
    def final_consumer(cls) -> Buyer:
        """The anonymous final consumer (DocTipo 99, DocNro 0)."""
        return cls(doc_type=TaxIdType.FINAL_CONSUMER, doc_number="0")


@dataclass(frozen=True, slots=True)
class AssociatedInvoice:
    """Reference to a previously issued document (CbteAsoc)."""

    invoice_type: InvoiceType
    point_of_sale: int
    invoice_number: int
    cuit: str | None = None
    date: date | None = None


@dataclass(frozen=True, slots=True)
class InvoiceRequest:
    """
    Everything needed to issue one document.

    Either `items` or a flat `total` must be given. `issue_date` defaults
    to today in Argentina's time zone when the request is issued.
    Service dates apply only to concepts that include services and
    default to the issue date.
    """

    invoice_type: InvoiceType
    concept: BillingConcept = BillingConcept.PRODUCTS
    buyer: Buyer | None = None
    items: tuple[InvoiceItem, ...] = ()
    total: Number | None = None
    associated_invoices: tuple[AssociatedInvoice, ...] = ()
    prices_include_tax: bool = False
    issue_date: date | None = None
    service_start: date | None = None
    service_end: date | None = None
    payment_due: date | None = None
    buyer_vat_condition: int | None = None


# ─────────────────────── VAT ───────────────────────


@dataclass(frozen=True, slots=True)
class VatEntry:
    """Taxable base and tax amount accumulated for one VAT rate."""

    rate: Decimal
    tax_base: Decimal
    amount: Decimal


@dataclass(frozen=True, slots=True)
class VatAggregate:
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    by_rate: tuple[VatEntry, ...] = ()


# ─────────────────────── WSFE results ───────────────────────


@dataclass(frozen=True, slots=True)
class CAEResponse:
    """
    Outcome of one FECAESolicitar call.

    `date` and `cae_expiry` are YYYYMMDD strings exactly as ARCA sent them.
    `items` echoes the caller's lines; they are never sent to ARCA.
    """

    invoice_type: int
    point_of_sale: int
    invoice_number: int
    date: str
    cae: str
    cae_expiry: str
    result: CaeResult
    observations: tuple[str, ...] = ()
    vat: tuple[VatEntry, ...] = ()
    items: tuple[InvoiceItem, ...] = ()
    qr_url: str | None = None

    @property
    def approved(self) -> bool:
        return self.result is CaeResult.APPROVED


@dataclass(frozen=True, slots=True)
class InvoiceDetails:
    """A document as returned by FECompConsultar."""

    invoice_type: int
    point_of_sale: int
    invoice_number: int
    date: str
    concept: int
    doc_type: int
    doc_number: str
    total: Decimal
    net: Decimal
    vat: Decimal
    cae: str
    cae_expiry: str
    result: CaeResult


@dataclass(frozen=True, slots=True)
class PointOfSale:
    number: int
    emission_type: str
    is_blocked: bool
    blocked_since: str | None = None


@dataclass(frozen=True, slots=True)
class ServiceStatus:
    """FEDummy health snapshot; each field is "OK" when healthy."""

    app_server: str
    db_server: str
    auth_server: str

    @property
    def healthy(self) -> bool:
        return all(s == "OK" for s in (self.app_server, self.db_server, self.auth_server))


# ─────────────────────── Padron A13 ───────────────────────


@dataclass(frozen=True, slots=True)
class Address:
    street: str | None
    province_id: int | None
    province: str | None
    address_type: str | None
    city: str | None = None
    postal_code: str | None = None


@dataclass(frozen=True, slots=True)
class Activity:
    id: int
    description: str | None
    order: int | None
    period: int | None


@dataclass(frozen=True, slots=True)
class TaxRecord:
    id: int
    description: str | None
    period: int | None


@dataclass(frozen=True, slots=True)
class Taxpayer:
    tax_id: str
    person_type: str | None
    status: str | None
    first_name: str | None = None
    last_name: str | None = None
    company_name: str | None = None
    main_activity: str | None = None
    addresses: tuple[Address, ...] = ()
    activities: tuple[Activity, ...] = ()
    taxes: tuple[TaxRecord, ...] = ()
    is_vat_registered: bool = False
    is_monotax: bool = False
    is_vat_exempt: bool = False

    @property
    def display_name(self) -> str:
        if self.company_name:
            return self.company_name
        return " ".join(p for p in (self.first_name, self.last_name) if p)


@dataclass(frozen=True, slots=True)
class TaxpayerLookup:
    """Either a taxpayer or the registry's explanation of why there is none."""

    taxpayer: Taxpayer | None = None
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.taxpayer is not None
