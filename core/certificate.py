"""Certificate Data Extractor.

A certificate carries its estimates as free text ("3412 kWh per year",
"74 square metres"); the first number in the text is the estimate. The
record's completeness decides which affordance the form shows next.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Mapping

from core.fields import CERTIFICATE_FIELDS, FieldId, Notice, Reason
from core.validator import Attempt
from services.errors import RegistryConnectionError, RegistryServiceError

if TYPE_CHECKING:
    from core.directory import AddressCertificateEntry
    from core.session import FormSession

logger = logging.getLogger(__name__)

# first run of digits, allowing thousands separators ("12,345 kWh")
_ESTIMATE_RE = re.compile(r"\d+(?:,\d{3})*")


def extract_estimate(text: str | None) -> int | None:
    if not text:
        return None
    match = _ESTIMATE_RE.search(text)
    if match is None:
        return None
    return int(match.group(0).replace(",", ""))


class Completeness(str, Enum):
    COMPLETE = "complete"
    MISSING_FLOOR_AREA = "missing-floor-area"
    MISSING_SPACE_HEATING = "missing-space-heating"
    EMPTY = "empty"


@dataclass(frozen=True)
class CertificateRecord:
    space_heating_estimate: int | None = None
    floor_area_estimate: int | None = None

    @classmethod
    def from_texts(cls, texts: Mapping[str, str | None]) -> CertificateRecord:
        return cls(
            space_heating_estimate=extract_estimate(texts.get("space-heating")),
            floor_area_estimate=extract_estimate(texts.get("floor-area")),
        )

    def estimate(self, field_id: FieldId) -> int | None:
        if field_id in (FieldId.EPC_SPACE_HEATING, FieldId.NEIGHBOUR_EPC_SPACE_HEATING):
            return self.space_heating_estimate
        if field_id in (FieldId.FLOOR_AREA, FieldId.NEIGHBOUR_FLOOR_AREA):
            return self.floor_area_estimate
        raise KeyError(field_id)

    @property
    def missing_fields(self) -> frozenset[FieldId]:
        return frozenset(f for f in CERTIFICATE_FIELDS if self.estimate(f) is None)

    @property
    def completeness(self) -> Completeness:
        has_heating = self.space_heating_estimate is not None
        has_area = self.floor_area_estimate is not None
        if has_heating and has_area:
            return Completeness.COMPLETE
        if has_heating:
            return Completeness.MISSING_FLOOR_AREA
        if has_area:
            return Completeness.MISSING_SPACE_HEATING
        return Completeness.EMPTY


async def fetch_record(
    session: FormSession, certificate_id: str, attempt: Attempt
) -> tuple[CertificateRecord | None, Reason | None]:
    """Fetch and parse one certificate; failures come back as a Reason."""
    try:
        texts = await session.registry.certificate(certificate_id)
    except RegistryConnectionError:
        attempt.ensure_current()
        return None, Reason.CONNECTIVITY
    except RegistryServiceError as exc:
        attempt.ensure_current()
        logger.warning("certificate lookup failed: %s", exc.message)
        return None, Reason.SERVICE_ERROR
    attempt.ensure_current()
    return CertificateRecord.from_texts(texts), None


class CertificateDataExtractor:
    """Fills the primary certificate fields from the selected address's certificate."""

    def __init__(self, session: FormSession):
        self._session = session

    async def run(self, entry: AddressCertificateEntry, attempt: Attempt) -> Completeness | None:
        session = self._session
        selector = session.context.selector

        record, failure = await fetch_record(session, entry.certificate_id, attempt)
        if record is None:
            selector.mark_invalid(failure)
            session.unlock_manual_entry(CERTIFICATE_FIELDS)
            return None

        for field_id in CERTIFICATE_FIELDS:
            estimate = record.estimate(field_id)
            if estimate is not None:
                await session.validator.validate(field_id, str(estimate), apply_transform=False)
        # both stay editable even when the certificate supplied them
        session.unlock_manual_entry(CERTIFICATE_FIELDS)

        completeness = record.completeness
        logger.info("certificate %s: %s", entry.certificate_id, completeness.value)
        if completeness is Completeness.COMPLETE:
            session.notices.add(Notice.ADDRESS_FILLED)
        else:
            if completeness is not Completeness.EMPTY:
                session.notices.add(Notice.ADDRESS_FILLED)
            session.notices.add(Notice.ADDRESS_MISSING_DATA)
            session.proxy_resolver.open(record.missing_fields)
        return completeness
