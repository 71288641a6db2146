# ═══════════════════════════════════════════════════════════════════════════════
# HeatMyHome Platform — Canonical Constants Registry
# © 2026 Aparajita Parihar. All rights reserved.
#
# Single source of truth for input ranges, parameter names, postcode shapes
# and external register URLs. All modules MUST import from here; never
# redefine constants locally.
#
# Sources:
#   Ideal Postcodes, UK postcode format guide
#   find-energy-certificate.service.gov.uk (England & Wales EPC register)
#   scottishepcregister.org.uk (Scottish EPC register)
#
# This file has ZERO Streamlit, ZERO network, and ZERO side-effect imports.
# It is safe to import in any context, including unit tests without a
# running Streamlit server.
# ═══════════════════════════════════════════════════════════════════════════════

from __future__ import annotations

# ─────────────────────────────────────────────────────────────────────────────
# POSTCODE SHAPES
# "A" = letter, "9" = digit. Compared against the normalised postcode
# (uppercase, no whitespace, at most 7 characters).
# ─────────────────────────────────────────────────────────────────────────────

POSTCODE_TEMPLATES: tuple[str, ...] = (
    "AA9A9AA",
    "A9A9AA",
    "A99AA",
    "A999AA",
    "AA99AA",
    "AA999AA",
)

POSTCODE_MAX_LENGTH: int = 7

# Country value returned by the geocoder that switches jurisdiction
SCOTLAND_COUNTRY: str = "Scotland"


# ─────────────────────────────────────────────────────────────────────────────
# NUMERIC INPUT RANGES
# Each tuple: (minimum, maximum, rounding multiplier)
# A multiplier of 10 rounds to one decimal place.
# ─────────────────────────────────────────────────────────────────────────────

INPUT_RANGES: dict[str, tuple[float, float, int]] = {
    "temperature":       (0.0,  35.0,     10),   # °C thermostat setpoint
    "occupants":         (1.0,  20.0,     1),    # persons
    "tes-volume":        (0.1,  3.0,      10),   # m³ thermal energy storage
    "epc-space-heating": (0.0,  999999.0, 1),    # kWh / year
    "floor-area":        (25.0, 1500.0,   1),    # m²
}

# Neighbour fields share the primary field's range
NEIGHBOUR_RANGE_SOURCE: dict[str, str] = {
    "neighbour-epc-space-heating": "epc-space-heating",
    "neighbour-floor-area":        "floor-area",
}


# ─────────────────────────────────────────────────────────────────────────────
# CANONICAL PARAMETER NAMES
# Order matters: deep links, API queries and results files are emitted in
# exactly this order.
# ─────────────────────────────────────────────────────────────────────────────

# Parameters the user supplies (and that a deep link / results file carries)
INPUT_PARAMETERS: tuple[str, ...] = (
    "postcode",
    "epc-space-heating",
    "floor-area",
    "temperature",
    "occupants",
    "tes-volume",
)

# Canonical name → deep-link query name
DEEP_LINK_NAMES: dict[str, str] = {
    "postcode":          "postcode",
    "epc-space-heating": "space_heating",
    "floor-area":        "floor_area",
    "temperature":       "temperature",
    "occupants":         "occupants",
    "tes-volume":        "tes_max",
}

# Canonical name → simulation API query name
SIMULATION_API_NAMES: dict[str, str] = {
    "postcode":          "postcode",
    "latitude":          "latitude",
    "longitude":         "longitude",
    "epc-space-heating": "space_heating",
    "floor-area":        "floor_area",
    "temperature":       "temperature",
    "occupants":         "occupants",
    "tes-volume":        "tes_max",
}


# ─────────────────────────────────────────────────────────────────────────────
# ADDRESS SELECTOR
# ─────────────────────────────────────────────────────────────────────────────

SELECT_ADDRESS_LABEL: str      = "Select Address"
ADDRESS_NOT_LISTED_LABEL: str  = "Address Not Listed"
ADDRESS_LABEL_MAX_CHARS: int   = 45


# ─────────────────────────────────────────────────────────────────────────────
# EXTERNAL ENDPOINT DEFAULTS
# Overridable through environment variables (see config/settings.py).
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_API_URL: str        = "https://customapi.heatmyhome.ninja"
DEFAULT_POSTCODES_URL: str  = "https://api.postcodes.io/postcodes"
DEFAULT_SITE_URL: str       = "http://localhost:8501/"

DEFAULT_REQUEST_TIMEOUT_S: float     = 10.0
DEFAULT_SIMULATION_TIMEOUT_S: float  = 600.0

# Prefix of the remote simulator's error when its run queue is saturated
SIMULATION_BUSY_PREFIX: str = "simulation exceeded allowed runtime"


# ─────────────────────────────────────────────────────────────────────────────
# EPC REGISTER LINKS
# ─────────────────────────────────────────────────────────────────────────────

EPC_FINDER_URL: str          = "https://www.gov.uk/find-energy-certificate"
EPC_SCOTLAND_URL: str        = "https://www.scottishepcregister.org.uk"
EPC_CERTIFICATE_URL: str     = "https://find-energy-certificate.service.gov.uk/energy-certificate/"
EPC_POSTCODE_SEARCH_URL: str = (
    "https://find-energy-certificate.service.gov.uk/find-a-certificate/search-by-postcode?postcode="
)
