"""User-facing warning and notice texts, keyed by the core's enums."""

from __future__ import annotations

from core.fields import FieldId, Notice, Reason

FIELD_LABELS: dict[FieldId, str] = {
    FieldId.POSTCODE: "Postcode",
    FieldId.EPC_SPACE_HEATING: "Space heating demand (kWh/year)",
    FieldId.FLOOR_AREA: "Floor area (m²)",
    FieldId.TEMPERATURE: "Thermostat temperature (°C)",
    FieldId.OCCUPANTS: "Occupants",
    FieldId.TES_VOLUME: "Max thermal storage volume (m³)",
    FieldId.NEIGHBOUR_POSTCODE: "Neighbour's postcode",
    FieldId.NEIGHBOUR_EPC_SPACE_HEATING: "Neighbour's space heating demand (kWh/year)",
    FieldId.NEIGHBOUR_FLOOR_AREA: "Neighbour's floor area (m²)",
}

_POSTCODE_WARNINGS = {
    Reason.CONNECTIVITY: "Could not reach the postcode service. Check your connection and try again.",
    Reason.SERVICE_ERROR: "Postcode not recognised.",
}

_ADDRESS_WARNINGS = {
    Reason.NOT_FOUND: "Enter your space heating demand and floor area below, or use a neighbour's certificate.",
    Reason.CONNECTIVITY: "Could not reach the EPC service to load this address.",
    Reason.SERVICE_ERROR: "No certificate could be loaded for this address.",
    Reason.DATA_INCOMPLETE: "This neighbour's certificate does not have the missing data. Try another address.",
}

NOTICE_TEXT: dict[Notice, str] = {
    Notice.SCOTTISH_POSTCODE: "Scottish postcode: EPC lookup is not available. Enter the values from your certificate.",
    Notice.DIRECTORY_UNREACHABLE: "Could not reach the EPC service. Enter the values from your certificate.",
    Notice.DIRECTORY_ERROR: "The EPC service returned an error. Enter the values from your certificate.",
    Notice.ADDRESS_FILLED: "Values filled from the selected certificate.",
    Notice.ADDRESS_MISSING_DATA: "The certificate is missing some values. Enter them or use a neighbour's certificate.",
    Notice.NEIGHBOUR_SCOTTISH_POSTCODE: "Scottish postcode: EPC lookup is not available for this neighbour.",
    Notice.NEIGHBOUR_DIRECTORY_UNREACHABLE: "Could not reach the EPC service for this neighbour.",
    Notice.NEIGHBOUR_DIRECTORY_ERROR: "The EPC service returned an error for this neighbour.",
}

DISPATCH_TEXT: dict[Reason, str] = {
    Reason.TIMEOUT: "The simulation took too long and was stopped.",
    Reason.CONNECTIVITY: "Could not reach the simulation server.",
    Reason.SERVICE_ERROR: "The simulation failed.",
}

SERVER_BUSY_TEXT = "The simulation server is busy. Please try again in a few minutes."


def field_warning(field_id: FieldId, reason: Reason | None) -> str | None:
    if reason is None:
        return None
    if field_id in (FieldId.POSTCODE, FieldId.NEIGHBOUR_POSTCODE):
        return _POSTCODE_WARNINGS.get(reason, "Enter a valid UK postcode.")
    if reason is Reason.RANGE_INVALID:
        return f"{FIELD_LABELS[field_id]} is out of range."
    return "Invalid value."


def address_warning(reason: Reason | None) -> str | None:
    if reason is None:
        return None
    return _ADDRESS_WARNINGS.get(reason, "Address could not be used.")
