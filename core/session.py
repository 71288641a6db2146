# ═══════════════════════════════════════════════════════════════════════════════
# HeatMyHome Platform — Form Session Aggregate
# © 2026 Aparajita Parihar. All rights reserved.
#
# FormSession owns every FieldState, the ResolutionContext (and its optional
# ProxyContext), the parameter snapshot and the Submission Gate. Resolvers
# receive the session explicitly; nothing here reads module-level state.
#
# Snapshot invariant: a canonical parameter is present iff its FieldState is
# currently VALID. Latitude/longitude are present iff the postcode geocoded.
#
# This file has ZERO Streamlit imports. The registry is injected so tests can
# substitute fakes.
# ═══════════════════════════════════════════════════════════════════════════════

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Protocol

from config.constants import (
    DEFAULT_SITE_URL,
    INPUT_PARAMETERS,
    INPUT_RANGES,
    NEIGHBOUR_RANGE_SOURCE,
)
from core.certificate import CertificateDataExtractor
from core.directory import (
    ADDRESS_KEY,
    NEIGHBOUR_ADDRESS_KEY,
    AddressOption,
    AddressSentinel,
    DirectoryCondition,
    DirectoryState,
    ManualEntryFallbackCondition,
    ResolutionContext,
    epc_register_url,
)
from core.fields import (
    ADDRESS_NOTICES,
    CERTIFICATE_FIELDS,
    NEIGHBOUR_OF,
    PRIMARY_NOTICES,
    FieldId,
    FieldState,
    Notice,
    Reason,
    Validity,
    Value,
)
from core.gate import SubmissionGate, is_ready
from core.persistence import decode_deep_link, import_results
from core.postcode import (
    GeocodeCondition,
    PostcodeFormatCondition,
    ResetContextCondition,
    normalise_postcode,
)
from core.proxy import ProxyContext, ProxyResolver
from core.validator import (
    Attempt,
    FieldSpec,
    FieldValidator,
    RangeCondition,
    SequenceCounter,
    StaleResolution,
    clamp_and_round,
    to_number,
)
from services.postcodes import GeocodeResult

logger = logging.getLogger(__name__)


class Registry(Protocol):
    async def geocode(self, postcode: str) -> GeocodeResult: ...

    async def address_certificates(self, postcode: str) -> list[tuple[str, str]]: ...

    async def certificate(self, certificate_id: str) -> dict[str, str | None]: ...


_NUMERIC_FIELDS = (
    FieldId.EPC_SPACE_HEATING,
    FieldId.FLOOR_AREA,
    FieldId.TEMPERATURE,
    FieldId.OCCUPANTS,
    FieldId.TES_VOLUME,
    FieldId.NEIGHBOUR_EPC_SPACE_HEATING,
    FieldId.NEIGHBOUR_FLOOR_AREA,
)


def build_field_table(session: FormSession) -> dict[FieldId, FieldSpec]:
    """Condition chain and transform for every field, cheapest checks first."""
    table = {
        FieldId.POSTCODE: FieldSpec(
            conditions=(
                ResetContextCondition(session),
                PostcodeFormatCondition(),
                GeocodeCondition(session),
                DirectoryCondition(session),
                ManualEntryFallbackCondition(session),
            ),
            transform=normalise_postcode,
            on_clear=session.reset_postcode_context,
        ),
        FieldId.NEIGHBOUR_POSTCODE: FieldSpec(
            conditions=(
                ResetContextCondition(session, neighbour=True),
                PostcodeFormatCondition(),
                GeocodeCondition(session, neighbour=True),
                DirectoryCondition(session, neighbour=True),
            ),
            transform=normalise_postcode,
            on_clear=session.proxy_resolver.reset_directory,
        ),
    }
    for field_id in _NUMERIC_FIELDS:
        minimum, maximum, multiplier = INPUT_RANGES[
            NEIGHBOUR_RANGE_SOURCE.get(field_id.value, field_id.value)
        ]
        table[field_id] = FieldSpec(
            conditions=(RangeCondition(minimum, maximum),),
            transform=clamp_and_round(minimum, maximum, multiplier),
            parse=to_number,
        )
    return table


class FormSession:
    """One user's form: field states, resolution context and submission gate."""

    def __init__(self, registry: Registry, site_url: str = DEFAULT_SITE_URL):
        self.registry = registry
        self.fields: dict[FieldId, FieldState] = {f: FieldState(f) for f in FieldId}
        self.snapshot: dict[str, Value] = {}
        self.context = ResolutionContext()
        self.sequence = SequenceCounter()
        self.manual_entry: set[FieldId] = set()
        self.notices: set[Notice] = set()
        self.loading = False
        self.enable_optimisation = True
        self.outputs: Any = None
        self.gate = SubmissionGate(site_url)
        self.extractor = CertificateDataExtractor(self)
        self.proxy_resolver = ProxyResolver(self)
        self.validator = FieldValidator(
            self, build_field_table(self), self._on_field_complete, on_pending=self.refresh_gate
        )

    # ── user operations ──────────────────────────────────────────────────────

    async def edit(self, field_id: FieldId, raw_value: str | None, apply_transform: bool = True) -> FieldState:
        """Validate *raw_value* for *field_id* exactly as if the user typed it."""
        if field_id.is_neighbour and self.context.proxy is None:
            self.proxy_resolver.open(CERTIFICATE_FIELDS)
        return await self.validator.validate(field_id, raw_value, apply_transform=apply_transform)

    async def select_address(self, index: int) -> AddressOption:
        selector = self.context.selector
        option = selector.select(index)
        attempt = Attempt.start(self.sequence, ADDRESS_KEY)

        self.proxy_resolver.close(restore_manual_entry=False)
        for field_id in CERTIFICATE_FIELDS:
            self.validator.clear(field_id)
        self.notices.difference_update(ADDRESS_NOTICES)
        self.manual_entry.difference_update(CERTIFICATE_FIELDS)
        self.context.selected_certificate_id = None
        self.refresh_gate()

        if option is AddressSentinel.SELECT_ADDRESS:
            selector.clear_validation()
        elif option is AddressSentinel.NOT_LISTED:
            selector.mark_invalid(Reason.NOT_FOUND)
            self.unlock_manual_entry(CERTIFICATE_FIELDS)
            self.proxy_resolver.open(CERTIFICATE_FIELDS)
        else:
            selector.mark_valid()
            self.context.selected_certificate_id = option.certificate_id
            try:
                await self.extractor.run(option, attempt)
            except StaleResolution:
                logger.warning("discarding superseded certificate fetch #%d", attempt.number)
                return option
        self._on_field_complete()
        return option

    async def select_neighbour_address(self, index: int) -> AddressOption:
        option = await self.proxy_resolver.select_address(index)
        self._on_field_complete()
        return option

    def open_proxy(self, scope: Iterable[FieldId] = CERTIFICATE_FIELDS) -> ProxyContext:
        return self.proxy_resolver.open(scope)

    def close_proxy(self) -> None:
        self.proxy_resolver.close(restore_manual_entry=True)
        self._on_field_complete()

    async def apply_neighbour_value(self, field_id: FieldId) -> FieldState:
        """Copy a neighbour's value into the primary field as a user edit."""
        neighbour = self.fields[NEIGHBOUR_OF[field_id]]
        if not neighbour.is_valid:
            raise ValueError(f"{neighbour.field_id.value} has no valid value to apply")
        return await self.edit(field_id, neighbour.raw_value)

    async def load_inputs(self, values: Mapping[str, Any]) -> bool:
        """Re-run the validator for all six parameters; False if any is missing."""
        missing = [name for name in INPUT_PARAMETERS if not str(values.get(name) or "").strip()]
        if missing:
            logger.error("cannot load inputs, missing: %s", ", ".join(missing))
            return False
        self.loading = True
        try:
            for name in INPUT_PARAMETERS:
                await self.edit(FieldId(name), str(values[name]))
        finally:
            self.loading = False
        logger.info("inputs loaded (ready=%s)", self.ready)
        return True

    async def load_deep_link(self, source: str | Mapping[str, Any]) -> bool:
        inputs = decode_deep_link(source)
        if inputs is None:
            return False
        return await self.load_inputs(inputs)

    async def load_results(self, text: str) -> bool:
        """Load a saved results file; raises ValueError on malformed JSON."""
        inputs, outputs = import_results(text)
        if not await self.load_inputs(inputs):
            return False
        self.outputs = outputs
        return True

    def set_optimisation(self, enabled: bool) -> None:
        self.enable_optimisation = bool(enabled)
        self.refresh_gate()

    def refresh_gate(self) -> None:
        self.gate.evaluate(self.snapshot, self.fields, self.enable_optimisation)

    # ── resolver callbacks ───────────────────────────────────────────────────

    def reset_postcode_context(self) -> None:
        self.sequence.invalidate(ADDRESS_KEY)
        self.sequence.invalidate(NEIGHBOUR_ADDRESS_KEY)
        self.proxy_resolver.close(restore_manual_entry=False)
        self.context.reset()
        self.notices.difference_update(PRIMARY_NOTICES)
        self.manual_entry.clear()
        self.withdraw_coordinates()
        for field_id in CERTIFICATE_FIELDS:
            self.validator.clear(field_id)

    def commit(self, field_id: FieldId, value: Value) -> None:
        if field_id.value in INPUT_PARAMETERS:
            self.snapshot[field_id.value] = value

    def withdraw(self, field_id: FieldId) -> None:
        self.snapshot.pop(field_id.value, None)

    def commit_coordinates(self, latitude: float, longitude: float) -> None:
        self.snapshot["latitude"] = latitude
        self.snapshot["longitude"] = longitude

    def withdraw_coordinates(self) -> None:
        self.snapshot.pop("latitude", None)
        self.snapshot.pop("longitude", None)

    def directory_state(self, neighbour: bool = False) -> DirectoryState:
        if not neighbour:
            return self.context
        if self.context.proxy is None:
            raise RuntimeError("no neighbour lookup is open")
        return self.context.proxy

    def unlock_manual_entry(self, fields: Iterable[FieldId]) -> None:
        self.manual_entry.update(fields)

    # ── read-only views ──────────────────────────────────────────────────────

    @property
    def ready(self) -> bool:
        return is_ready(self.fields)

    def parameter_snapshot(self) -> dict[str, Value]:
        """Canonical parameters in canonical order (no coordinates)."""
        return {name: self.snapshot[name] for name in INPUT_PARAMETERS if name in self.snapshot}

    def epc_register_url(self) -> str:
        return epc_register_url(self.context, self.fields[FieldId.POSTCODE])

    def neighbour_epc_register_url(self) -> str:
        return epc_register_url(
            self.context.proxy, self.fields[FieldId.NEIGHBOUR_POSTCODE], allow_scotland=False
        )

    def _on_field_complete(self) -> None:
        selector = self.context.selector
        if (
            selector.validity is Validity.INVALID
            and selector.reason is Reason.NOT_FOUND
            and all(self.fields[f].is_valid for f in CERTIFICATE_FIELDS)
        ):
            selector.mark_valid()
        self.refresh_gate()
