"""
Error taxonomy — every failure the client reports is an ArcaError.

Four kinds, each with its own subclass:
  - ValidationError     → caller input rejected before any network call
  - AuthenticationError → TRA signing or WSAA exchange failed
  - NetworkError        → transport failure (timeout, reset, non-2xx without a fault)
  - RemoteError         → ARCA accepted the call but rejected it semantically

Every error exposes a stable `kind`, a human-readable message, an optional
`details` payload and an optional remediation `hint`. RemoteError also carries
the remote's native error code; the hint for it comes from ARCA_ERROR_HINTS.
"""

from __future__ import annotations

from enum import Enum, unique
from typing import Any


@unique
class ErrorKind(Enum):
    """Machine-readable classification of a client failure."""

    VALIDATION = "VALIDATION_ERROR"
    """Caller input is malformed; nothing was sent."""

    AUTHENTICATION = "AUTH_ERROR"
    """Signing the TRA or the WSAA login exchange failed."""

    NETWORK = "NETWORK_ERROR"
    """Timeout, connection failure or an HTTP error without a SOAP fault."""

    REMOTE = "REMOTE_ERROR"
    """ARCA answered with a fault or an Errors block."""


class ArcaError(Exception):
    """Base class for every error raised by arca_client."""

    kind: ErrorKind = ErrorKind.REMOTE

    def __init__(
        self,
        message: str,
        details: Any = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.hint = hint

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict view for structured logging or API responses."""
        data: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.details is not None:
            data["details"] = self.details
        if self.hint is not None:
            data["hint"] = self.hint
        return data

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message


class ValidationError(ArcaError):
    kind = ErrorKind.VALIDATION


class AuthenticationError(ArcaError):
    kind = ErrorKind.AUTHENTICATION


class NetworkError(ArcaError):
    kind = ErrorKind.NETWORK


class UnreachableError(NetworkError):
    """The connection could not be established, so no request was sent."""


class RemoteError(ArcaError):
    """
    Semantic rejection reported by ARCA.

    `code` is the remote's own code: an integer for WSFE <Err> entries,
    the fault code string for SOAP faults, or "PARSE_ERROR" when the
    response could not be understood at all.
    """

    kind = ErrorKind.REMOTE

    def __init__(
        self,
        message: str,
        code: int | str | None = None,
        details: Any = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, details=details, hint=hint)
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["code"] = self.code
        return data


# ─────────────────────── Remediation hints ───────────────────────

ARCA_ERROR_HINTS: dict[str, str] = {
    # WSAA
    "501": (
        "The certificate may have expired, or the CUIT/service relation "
        "is not enabled in the ARCA portal."
    ),
    "502": "The access ticket (TA) is invalid or expired. Request a new one.",
    "503": "Internal error in the ARCA authentication server. Retry in a few minutes.",
    "1000": "The CUIT is invalid or does not match the certificate in use.",
    "1001": "The requested service does not exist or the certificate is not authorized for it.",
    "1003": "The TRA (access request ticket) is malformed.",
    "1005": "The TRA had already expired when it was presented. Check the system clock.",
    "coe.alreadyAuthenticated": (
        "WSAA already issued a ticket for this certificate and service that is "
        "still valid. Reuse it (configure a token store) instead of logging in again."
    ),
    # WSFE points of sale
    "10048": "The point of sale is not registered in ARCA. Register it as 'Webservice' in the portal.",
    "10049": "The point of sale is inactive or blocked.",
    # WSFE documents and amounts
    "10015": (
        "Invoice B: the amount exceeds the limit for anonymous final consumers. "
        "Identify the buyer by CUIT or DNI."
    ),
    "10016": "The buyer CUIT is invalid or does not exist in the registry.",
    "600": "The document could not be authorized. Check `observations` in the response.",
    "601": "The document was already authorized. Do not issue the same number twice.",
    "602": "The document number is invalid or does not follow the last authorized one.",
    # WSFE VAT
    "10043": "Unknown or incorrect VAT rate id. Use 3 (0%), 4 (10.5%), 5 (21%) or 6 (27%).",
    "10044": "The VAT amount does not match taxable base × rate.",
    # Padron
    "PADRON_ERROR": "The registry service is often unstable in the testing environment. Retry in a few minutes.",
    "CUIT_NOT_FOUND": "The queried CUIT does not exist in the ARCA registry.",
}


def get_hint(code: int | str | None) -> str | None:
    """
    Return the remediation hint for an ARCA error code, or None if unknown.

    Accepts integers, numeric strings and SOAP fault codes with a namespace
    prefix ("ns1:coe.alreadyAuthenticated").
    """
    if code is None:
        return None
    key = str(code).strip()
    if key in ARCA_ERROR_HINTS:
        return ARCA_ERROR_HINTS[key]
    _, _, local = key.rpartition(":")
    return ARCA_ERROR_HINTS.get(local)
