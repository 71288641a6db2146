# ═══════════════════════════════════════════════════════════════════════════════
# HeatMyHome Platform — Form Field Model
# © 2026 Aparajita Parihar. All rights reserved.
#
# One FieldState per logical input. Validity moves through
#   UNVALIDATED → PENDING → VALID | INVALID(reason)
# and returns to UNVALIDATED whenever the raw value is emptied.
#
# This file has ZERO Streamlit and ZERO network imports.
# ═══════════════════════════════════════════════════════════════════════════════

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from config.constants import INPUT_PARAMETERS

Value = Union[int, float, str]


class FieldId(str, Enum):
    POSTCODE = "postcode"
    EPC_SPACE_HEATING = "epc-space-heating"
    FLOOR_AREA = "floor-area"
    TEMPERATURE = "temperature"
    OCCUPANTS = "occupants"
    TES_VOLUME = "tes-volume"
    NEIGHBOUR_POSTCODE = "neighbour-postcode"
    NEIGHBOUR_EPC_SPACE_HEATING = "neighbour-epc-space-heating"
    NEIGHBOUR_FLOOR_AREA = "neighbour-floor-area"

    @property
    def is_neighbour(self) -> bool:
        return self.value.startswith("neighbour-")


# Fields the Submission Gate requires, in canonical order
REQUIRED_FIELDS: tuple[FieldId, ...] = tuple(FieldId(name) for name in INPUT_PARAMETERS)

# Fields a certificate (own or neighbour's) can fill
CERTIFICATE_FIELDS: tuple[FieldId, ...] = (FieldId.EPC_SPACE_HEATING, FieldId.FLOOR_AREA)

NEIGHBOUR_FIELDS: tuple[FieldId, ...] = (
    FieldId.NEIGHBOUR_POSTCODE,
    FieldId.NEIGHBOUR_EPC_SPACE_HEATING,
    FieldId.NEIGHBOUR_FLOOR_AREA,
)

NEIGHBOUR_OF: dict[FieldId, FieldId] = {
    FieldId.EPC_SPACE_HEATING: FieldId.NEIGHBOUR_EPC_SPACE_HEATING,
    FieldId.FLOOR_AREA: FieldId.NEIGHBOUR_FLOOR_AREA,
}


class Validity(str, Enum):
    UNVALIDATED = "unvalidated"
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"


class Reason(str, Enum):
    """Why a field or selector is invalid. One warning per reason."""

    FORMAT_INVALID = "format"
    RANGE_INVALID = "range"
    CONNECTIVITY = "connectivity"
    SERVICE_ERROR = "service-error"
    NOT_FOUND = "not-found"
    DATA_INCOMPLETE = "data-incomplete"
    TIMEOUT = "timeout"


class Jurisdiction(str, Enum):
    STANDARD = "standard"
    SCOTLAND = "scotland"


class Notice(str, Enum):
    """Non-blocking messages; they never change a field's validity."""

    SCOTTISH_POSTCODE = "scottish-postcode"
    DIRECTORY_UNREACHABLE = "directory-unreachable"
    DIRECTORY_ERROR = "directory-error"
    ADDRESS_FILLED = "address-filled"
    ADDRESS_MISSING_DATA = "address-missing-data"
    NEIGHBOUR_SCOTTISH_POSTCODE = "neighbour-scottish-postcode"
    NEIGHBOUR_DIRECTORY_UNREACHABLE = "neighbour-directory-unreachable"
    NEIGHBOUR_DIRECTORY_ERROR = "neighbour-directory-error"


PRIMARY_NOTICES = frozenset(n for n in Notice if not n.value.startswith("neighbour-"))
NEIGHBOUR_NOTICES = frozenset(n for n in Notice if n.value.startswith("neighbour-"))
ADDRESS_NOTICES = frozenset({Notice.ADDRESS_FILLED, Notice.ADDRESS_MISSING_DATA})


@dataclass
class FieldState:
    field_id: FieldId
    raw_value: str = ""
    committed_value: Value | None = None
    validity: Validity = Validity.UNVALIDATED
    reason: Reason | None = None
    # the single warning on display; None when the failure is silent
    warning: Reason | None = None

    @property
    def is_valid(self) -> bool:
        return self.validity is Validity.VALID

    def reset(self) -> None:
        self.raw_value = ""
        self.committed_value = None
        self.validity = Validity.UNVALIDATED
        self.reason = None
        self.warning = None

    def mark_pending(self, raw_value: str) -> None:
        self.raw_value = raw_value
        self.committed_value = None
        self.validity = Validity.PENDING
        self.reason = None
        self.warning = None

    def mark_valid(self, value: Value) -> None:
        self.committed_value = value
        self.validity = Validity.VALID
        self.reason = None
        self.warning = None

    def mark_invalid(self, reason: Reason, display: bool = True) -> None:
        self.committed_value = None
        self.validity = Validity.INVALID
        self.reason = reason
        self.warning = reason if display else None


class OutcomeKind(Enum):
    SUCCESS = "success"
    NO_DISPLAY = "no-display"
    WARNING = "warning"


@dataclass(frozen=True)
class Outcome:
    """Result of one condition: success, a silent failure, or a warning."""

    kind: OutcomeKind
    reason: Reason | None = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @classmethod
    def no_display(cls, reason: Reason) -> Outcome:
        return cls(OutcomeKind.NO_DISPLAY, reason)

    @classmethod
    def warn(cls, reason: Reason) -> Outcome:
        return cls(OutcomeKind.WARNING, reason)


SUCCESS = Outcome(OutcomeKind.SUCCESS)
