"""
QR payload generator for printed fiscal documents.

Builds the JSON payload described at https://www.afip.gob.ar/fe/qr/especificaciones.asp
with its fixed key order, base64-encodes it and appends the result to the
QR base URL as-is. The base64 must NOT be percent-encoded: ARCA's scanner
decodes the raw query value, and "%2B"/"%2F"/"%3D" make it drop every field
except the CUIT and CAE it can guess back.
"""

from __future__ import annotations

import base64
import json
from decimal import Decimal
from typing import Any

from arca_client.domain.credentials import clean_digits
from arca_client.domain.endpoints import QR_BASE_URL
from arca_client.domain.models import Buyer, CAEResponse, Number, TaxIdType
from arca_client.domain.vat import round_money

QR_VERSION = 1
CURRENCY = "PES"
EXCHANGE_RATE = 1
AUTHORIZATION_TYPE = "E"  # CAE


def format_qr_date(raw: str) -> str:
    """YYYYMMDD → YYYY-MM-DD; anything else is passed through unchanged."""
    raw = str(raw)
    if len(raw) == 8 and raw.isdigit():
        return f"{raw[:4]}-{raw[4:6]}-{raw[6:]}"
    return raw


def _json_amount(value: Decimal) -> int | float:
    # 4000.00 serializes as 4000, 1500.50 as 1500.5
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def build_qr_payload(
    cae_response: CAEResponse,
    issuer_cuit: str,
    total: Number,
    buyer: Buyer | None = None,
) -> dict[str, Any]:
    """Assemble the QR data dict; insertion order is the wire order."""
    doc_type = buyer.doc_type if buyer is not None else TaxIdType.FINAL_CONSUMER
    doc_number = clean_digits(buyer.doc_number) if buyer is not None else "0"
    doc_number = doc_number or "0"

    payload: dict[str, Any] = {
        "ver": QR_VERSION,
        "fecha": format_qr_date(cae_response.date),
        "cuit": int(clean_digits(issuer_cuit) or 0),
        "ptoVta": int(cae_response.point_of_sale),
        "tipoCmp": int(cae_response.invoice_type),
        "nroCmp": int(cae_response.invoice_number),
        "importe": _json_amount(round_money(total)),
        "moneda": CURRENCY,
        "ctz": EXCHANGE_RATE,
    }

    if doc_type != TaxIdType.FINAL_CONSUMER or int(doc_number) != 0:
        payload["tipoDocRec"] = int(doc_type)
        payload["nroDocRec"] = int(doc_number)

    payload["tipoCodAut"] = AUTHORIZATION_TYPE
    payload["codAut"] = int(clean_digits(cae_response.cae) or 0)
    return payload


def generate_qr_url(
    cae_response: CAEResponse,
    issuer_cuit: str,
    total: Number,
    buyer: Buyer | None = None,
) -> str:
    """
    Return the URL to encode in the document's QR code.

    Pure: identical inputs always produce the identical URL.
    """
    payload = build_qr_payload(cae_response, issuer_cuit, total, buyer)
    compact = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    encoded = base64.b64encode(compact.encode("utf-8")).decode("ascii")
    return f"{QR_BASE_URL}?p={encoded}"
