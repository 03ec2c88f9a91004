"""
CMS signer adapter — wraps the WSAA login request (TRA) in PKCS#7 SignedData.

Adapter layer — implements the TicketSigner port using:
  - cryptography (PyCA): PEM loading, key/certificate matching, the raw signature
  - asn1crypto: building the CMS ContentInfo → SignedData structure

Output:
  TRA xml (utf-8 bytes)
    → signed attributes (contentType, signingTime, messageDigest = SHA-256)
    → SignerInfo (issuerAndSerialNumber, sha256, RSA PKCS#1 v1.5 or ECDSA)
    → SignedData with the content embedded (enveloping) and the certificate attached
    → DER → base64 (the form WSAA expects inside <in0>)

Given the same inputs and signing time the output is byte-for-byte identical
for RSA keys; the signing time is the only varying attribute.
"""

from __future__ import annotations

import base64
from datetime import UTC, datetime

import structlog
from asn1crypto import algos, cms
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa

from arca_client.errors import AuthenticationError

log = structlog.get_logger()

_SIGNING_HINT = "Check that the certificate and private key are valid PEM and belong together"


def _load_material(
    cert_pem: str,
    key_pem: str,
) -> tuple[x509.Certificate, rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey]:
    """Parse the PEM pair and make sure the key matches the certificate."""
    certificate = x509.load_pem_x509_certificate(cert_pem.encode("utf-8"))
    private_key = serialization.load_pem_private_key(key_pem.encode("utf-8"), password=None)

    if not isinstance(private_key, rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey):
        raise TypeError(f"Unsupported private key type: {type(private_key).__name__}")

    spki = serialization.PublicFormat.SubjectPublicKeyInfo
    der = serialization.Encoding.DER
    if certificate.public_key().public_bytes(der, spki) != private_key.public_key().public_bytes(der, spki):
        raise ValueError("Private key does not correspond to the certificate")

    return certificate, private_key


def _signed_attributes(content: bytes, signing_time: datetime) -> cms.CMSAttributes:
    digest = hashes.Hash(hashes.SHA256())
    digest.update(content)
    # Listed in DER SET OF order (by encoded length here)
    return cms.CMSAttributes([
        cms.CMSAttribute({"type": "content_type", "values": ["data"]}),
        cms.CMSAttribute({
            "type": "signing_time",
            "values": [cms.Time({"utc_time": signing_time})],
        }),
        cms.CMSAttribute({"type": "message_digest", "values": [digest.finalize()]}),
    ])


def _sign_bytes(
    private_key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey,
    data: bytes,
) -> tuple[bytes, str]:
    """Return (signature, asn1crypto signature algorithm name)."""
    if isinstance(private_key, rsa.RSAPrivateKey):
        return private_key.sign(data, padding.PKCS1v15(), hashes.SHA256()), "rsassa_pkcs1v15"
    return private_key.sign(data, ec.ECDSA(hashes.SHA256())), "sha256_ecdsa"


def sign_cms(
    xml_payload: str,
    cert_pem: str,
    key_pem: str,
    signing_time: datetime | None = None,
) -> str:
    """
    Sign `xml_payload` and return base64 DER CMS SignedData.

    Raises AuthenticationError when the certificate or key cannot be parsed,
    do not correspond, or the signature cannot be produced.
    """
    try:
        certificate, private_key = _load_material(cert_pem, key_pem)
        when = (signing_time or datetime.now(UTC)).astimezone(UTC).replace(microsecond=0)
        content = xml_payload.encode("utf-8")

        signed_attrs = _signed_attributes(content, when)
        signature, signature_algorithm = _sign_bytes(private_key, signed_attrs.dump())

        asn1_cert = asn1_x509.Certificate.load(
            certificate.public_bytes(serialization.Encoding.DER)
        )
        sha256 = algos.DigestAlgorithm({"algorithm": "sha256"})

        signer_info = cms.SignerInfo({
            "version": "v1",
            "sid": cms.SignerIdentifier({
                "issuer_and_serial_number": cms.IssuerAndSerialNumber({
                    "issuer": asn1_cert.issuer,
                    "serial_number": asn1_cert.serial_number,
                }),
            }),
            "digest_algorithm": sha256,
            "signed_attrs": signed_attrs,
            "signature_algorithm": algos.SignedDigestAlgorithm({"algorithm": signature_algorithm}),
            "signature": signature,
        })

        signed_data = cms.SignedData({
            "version": "v1",
            "digest_algorithms": [sha256],
            "encap_content_info": cms.EncapsulatedContentInfo({
                "content_type": "data",
                "content": content,
            }),
            "certificates": [cms.CertificateChoices({"certificate": asn1_cert})],
            "signer_infos": [signer_info],
        })

        content_info = cms.ContentInfo({"content_type": "signed_data", "content": signed_data})
        der_bytes = content_info.dump()
    except Exception as e:
        log.error("cms.sign_failed", error=str(e))
        raise AuthenticationError(
            "Failed to sign the TRA with PKCS#7",
            details={"error": str(e)},
            hint=_SIGNING_HINT,
        ) from e

    log.debug("cms.signed", size_bytes=len(der_bytes))
    return base64.b64encode(der_bytes).decode("ascii")


class CmsTicketSigner:
    """
    Sign TRAs with one certificate/key pair.

    Implements the TicketSigner port. The PEM strings are held only for the
    lifetime of the signer and never written anywhere.
    """

    def __init__(self, cert_pem: str, key_pem: str) -> None:
        self._cert_pem = cert_pem
        self._key_pem = key_pem

    def sign(self, xml_payload: str) -> str:
        return sign_cms(xml_payload, self._cert_pem, self._key_pem)
