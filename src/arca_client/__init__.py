"""
arca_client — client for Argentina's ARCA (ex-AFIP) electronic invoicing.

Obtains WSAA access tickets by CMS-signing a login request, issues
documents through WSFEv1 to get their CAE, computes the VAT breakdown
and builds the QR URL printed on every document.
"""

from arca_client.adapters.token_store import FileTokenStore, InMemoryTokenStore
from arca_client.auth import TicketManager
from arca_client.domain.models import (
    AssociatedInvoice,
    AuthenticationTicket,
    BillingConcept,
    Buyer,
    CAEResponse,
    CaeResult,
    Environment,
    InvoiceItem,
    InvoiceRequest,
    InvoiceType,
    TaxIdType,
)
from arca_client.domain.qr import generate_qr_url
from arca_client.domain.vat import aggregate
from arca_client.errors import (
    ArcaError,
    AuthenticationError,
    ErrorKind,
    NetworkError,
    RemoteError,
    ValidationError,
    get_hint,
)
from arca_client.invoicing import InvoicingService, check_status
from arca_client.registry import TaxpayerRegistry

__version__ = "0.1.0"

__all__ = [
    "ArcaError",
    "AssociatedInvoice",
    "AuthenticationError",
    "AuthenticationTicket",
    "BillingConcept",
    "Buyer",
    "CAEResponse",
    "CaeResult",
    "Environment",
    "ErrorKind",
    "FileTokenStore",
    "InMemoryTokenStore",
    "InvoiceItem",
    "InvoiceRequest",
    "InvoiceType",
    "InvoicingService",
    "NetworkError",
    "RemoteError",
    "TaxIdType",
    "TaxpayerRegistry",
    "TicketManager",
    "ValidationError",
    "aggregate",
    "check_status",
    "generate_qr_url",
    "get_hint",
]
