"""Async facade over the blocking registry clients.

The form pipeline awaits its network conditions one at a time; each blocking
``requests`` call runs in a worker thread so the event loop stays free.
"""

from __future__ import annotations

import asyncio

from config.settings import Settings
from services import epc, postcodes
from services.postcodes import GeocodeResult


class RegistryClient:
    """Geocoder, certificate directory and certificate record, as coroutines."""

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or Settings()

    async def geocode(self, postcode: str) -> GeocodeResult:
        s = self._settings
        return await asyncio.to_thread(
            postcodes.lookup_postcode, postcode, s.postcodes_url, s.request_timeout_s
        )

    async def address_certificates(self, postcode: str) -> list[tuple[str, str]]:
        s = self._settings
        return await asyncio.to_thread(
            epc.fetch_address_certificates, postcode, s.epc_url, s.request_timeout_s
        )

    async def certificate(self, certificate_id: str) -> dict[str, str | None]:
        s = self._settings
        return await asyncio.to_thread(
            epc.fetch_certificate, certificate_id, s.epc_url, s.request_timeout_s
        )
