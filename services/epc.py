"""EPC certificate service integration layer.

Two read-only lookups against the HeatMyHome EPC proxy API:

GET {api}/epc?postcode=CV47AL
    {"status": 200, "result": [["12 Example Road, Coventry", "0000-1111-2222-3333-4444"], ...]}
GET {api}/epc?certificate=0000-1111-2222-3333-4444
    {"status": 200, "result": {"space-heating": "3412 kWh per year", "floor-area": "74 square metres"}}

Failures carry ``{"status": <non-200>, "error": "..."}``. Estimates are
returned as raw free text; parsing them is the caller's concern.
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from requests import Response

from config.constants import DEFAULT_API_URL, DEFAULT_REQUEST_TIMEOUT_S
from services.errors import RegistryConnectionError, RegistryServiceError

logger = logging.getLogger(__name__)

SERVICE_NAME = "EPC API"
CERTIFICATE_TEXT_KEYS = ("space-heating", "floor-area")


def _request_epc(url: str, params: dict[str, str], timeout_s: float) -> Response:
    """Request the EPC endpoint, translating transport failures."""
    try:
        return requests.get(
            url,
            params=params,
            headers={"Accept": "application/json"},
            timeout=timeout_s,
        )
    except requests.RequestException as exc:
        logger.warning("EPC request %s: transport failure (%s)", sorted(params), type(exc).__name__)
        raise RegistryConnectionError(SERVICE_NAME, type(exc).__name__) from exc


def _success_result(resp: Response) -> Any:
    """Return ``payload['result']`` or raise RegistryServiceError."""
    try:
        payload = resp.json()
    except ValueError as exc:
        raise RegistryServiceError(SERVICE_NAME, resp.status_code, "response is not JSON") from exc
    if not isinstance(payload, dict):
        raise RegistryServiceError(SERVICE_NAME, resp.status_code, "unexpected response shape")
    status = payload.get("status")
    if status != 200:
        message = str(payload.get("error") or "request failed")
        logger.warning("EPC API status %s: %s", status, message)
        raise RegistryServiceError(SERVICE_NAME, status, message)
    return payload.get("result")


def fetch_address_certificates(
    postcode: str,
    epc_url: str = f"{DEFAULT_API_URL}/epc",
    timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S,
) -> list[tuple[str, str]]:
    """List ``(address, certificate_id)`` pairs registered at *postcode*.

    Order is preserved from the service. Malformed rows are skipped.
    """
    resp = _request_epc(epc_url, {"postcode": postcode}, timeout_s)
    rows = _success_result(resp)
    if not isinstance(rows, list):
        raise RegistryServiceError(SERVICE_NAME, 200, "address list missing from response")

    out: list[tuple[str, str]] = []
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) < 2:
            continue
        address, certificate = str(row[0] or "").strip(), str(row[1] or "").strip()
        if not address or not certificate:
            continue
        out.append((address, certificate))
    logger.debug("EPC directory: %d address(es)", len(out))
    return out


def fetch_certificate(
    certificate_id: str,
    epc_url: str = f"{DEFAULT_API_URL}/epc",
    timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S,
) -> dict[str, str | None]:
    """Return the raw estimate texts of one certificate.

    Keys are always ``space-heating`` and ``floor-area``; an absent or empty
    estimate maps to ``None``.
    """
    resp = _request_epc(epc_url, {"certificate": certificate_id}, timeout_s)
    result = _success_result(resp)
    if not isinstance(result, dict):
        raise RegistryServiceError(SERVICE_NAME, 200, "certificate record missing from response")

    record: dict[str, str | None] = {}
    for key in CERTIFICATE_TEXT_KEYS:
        value = result.get(key)
        record[key] = str(value) if value not in (None, "") else None
    logger.debug("EPC certificate: %s", {k: v is not None for k, v in record.items()})
    return record
