"""Geocoding via postcodes.io.

GET {base}/{postcode} returns ``{"status": 200, "result": {...}}`` on success
and ``{"status": 404, "error": "Invalid postcode"}`` otherwise. The JSON
``status`` field is authoritative, not the HTTP status line.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import requests

from config.constants import DEFAULT_POSTCODES_URL, DEFAULT_REQUEST_TIMEOUT_S, SCOTLAND_COUNTRY
from services.errors import RegistryConnectionError, RegistryServiceError

logger = logging.getLogger(__name__)

SERVICE_NAME = "postcodes.io"

# Inward code is always digit + two letters at the end of the postcode
_INWARD_RE = re.compile(r"\d[A-Z]{2}$", re.IGNORECASE)


def redact_postcode(postcode: str) -> str:
    """Replace the inward code with '***', e.g. 'CV47AL' -> 'CV4 ***'."""
    compact = str(postcode or "").replace(" ", "").upper()
    if not _INWARD_RE.search(compact):
        return "***"
    return f"{compact[:-3]} ***"


@dataclass(frozen=True)
class GeocodeResult:
    latitude: float
    longitude: float
    country: str

    @property
    def is_scotland(self) -> bool:
        return self.country == SCOTLAND_COUNTRY


def _read_payload(resp: requests.Response) -> dict[str, Any]:
    try:
        payload = resp.json()
    except ValueError as exc:
        raise RegistryServiceError(SERVICE_NAME, resp.status_code, "response is not JSON") from exc
    if not isinstance(payload, dict):
        raise RegistryServiceError(SERVICE_NAME, resp.status_code, "unexpected response shape")
    return payload


def lookup_postcode(
    postcode: str,
    base_url: str = DEFAULT_POSTCODES_URL,
    timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S,
) -> GeocodeResult:
    """Resolve *postcode* to coordinates and country.

    Raises RegistryConnectionError when the service cannot be reached and
    RegistryServiceError for any non-200 status or a result without
    coordinates.
    """
    url = f"{base_url.rstrip('/')}/{quote(postcode)}"
    try:
        resp = requests.get(url, headers={"Accept": "application/json"}, timeout=timeout_s)
    except requests.RequestException as exc:
        logger.warning("geocode %s: transport failure (%s)", redact_postcode(postcode), type(exc).__name__)
        raise RegistryConnectionError(SERVICE_NAME, type(exc).__name__) from exc

    payload = _read_payload(resp)
    status = payload.get("status")
    if status != 200:
        message = str(payload.get("error") or "lookup failed")
        logger.warning("geocode %s: status %s (%s)", redact_postcode(postcode), status, message)
        raise RegistryServiceError(SERVICE_NAME, status, message)

    result = payload.get("result") or {}
    lat, lon = result.get("latitude"), result.get("longitude")
    if lat is None or lon is None:
        raise RegistryServiceError(
            SERVICE_NAME, status, "postcode found but has no associated latitude and longitude"
        )
    try:
        latitude, longitude = float(lat), float(lon)
    except (TypeError, ValueError) as exc:
        raise RegistryServiceError(SERVICE_NAME, status, "coordinates are not numeric") from exc

    logger.debug("geocode %s: %s", redact_postcode(postcode), result.get("country"))
    return GeocodeResult(
        latitude=latitude,
        longitude=longitude,
        country=str(result.get("country") or ""),
    )
