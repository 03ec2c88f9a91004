"""ARCA service URLs per environment."""

from __future__ import annotations

from arca_client.domain.models import Environment

WSAA_ENDPOINTS: dict[Environment, str] = {
    Environment.TESTING: "https://wsaahomo.afip.gov.ar/ws/services/LoginCms",
    Environment.PRODUCTION: "https://wsaa.afip.gov.ar/ws/services/LoginCms",
}

WSFE_ENDPOINTS: dict[Environment, str] = {
    Environment.TESTING: "https://wswhomo.afip.gov.ar/wsfev1/service.asmx",
    Environment.PRODUCTION: "https://servicios1.afip.gov.ar/wsfev1/service.asmx",
}

PADRON_A13_ENDPOINTS: dict[Environment, str] = {
    Environment.TESTING: "https://awshomo.afip.gov.ar/sr-padron/webservices/personaServiceA13",
    Environment.PRODUCTION: "https://aws.afip.gov.ar/sr-padron/webservices/personaServiceA13",
}

# Fixed for every environment.
QR_BASE_URL = "https://www.afip.gob.ar/fe/qr/"


def wsaa_endpoint(environment: Environment) -> str:
    return WSAA_ENDPOINTS[Environment(environment)]


def wsfe_endpoint(environment: Environment) -> str:
    return WSFE_ENDPOINTS[Environment(environment)]


def padron_endpoint(environment: Environment) -> str:
    return PADRON_A13_ENDPOINTS[Environment(environment)]
