"""Shareable deep links and the saved results file.

Both carry the six canonical parameters in canonical order. Decoding never
touches a session; callers feed the decoded inputs back through the validator.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping
from urllib.parse import parse_qs, urlencode, urlsplit

from config.constants import DEEP_LINK_NAMES, INPUT_PARAMETERS, SIMULATION_API_NAMES

logger = logging.getLogger(__name__)

_CANONICAL_BY_LINK_NAME = {link: name for name, link in DEEP_LINK_NAMES.items()}


def format_parameter(value: Any) -> str:
    """20.0 -> '20', 20.5 -> '20.5', 'CV47AL' -> 'CV47AL'."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def encode_deep_link_query(snapshot: Mapping[str, Any]) -> str:
    return urlencode(
        [(DEEP_LINK_NAMES[name], format_parameter(snapshot[name])) for name in INPUT_PARAMETERS]
    )


def build_deep_link(site_url: str, snapshot: Mapping[str, Any]) -> str:
    return f"{site_url}?{encode_deep_link_query(snapshot)}"


def _first(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return "" if value is None else str(value)


def decode_deep_link(source: str | Mapping[str, Any]) -> dict[str, str] | None:
    """Canonical inputs from a link, a query string or a query mapping.

    Returns None (and logs) when any of the six parameters is missing.
    """
    if isinstance(source, str):
        query = urlsplit(source).query if "?" in source else source.lstrip("?")
        params: Mapping[str, Any] = parse_qs(query)
    else:
        params = source

    inputs: dict[str, str] = {}
    for link_name, value in params.items():
        name = _CANONICAL_BY_LINK_NAME.get(link_name)
        if name is not None and _first(value).strip():
            inputs[name] = _first(value).strip()

    missing = [name for name in INPUT_PARAMETERS if name not in inputs]
    if missing:
        logger.error("incomplete deep link, missing: %s", ", ".join(missing))
        return None
    return {name: inputs[name] for name in INPUT_PARAMETERS}


def build_simulation_request(snapshot: Mapping[str, Any], enable_optimisation: bool = True) -> dict[str, Any]:
    """Payload for a simulation backend: API parameters in API order, plus options."""
    request = {name: snapshot[name] for name in SIMULATION_API_NAMES if name in snapshot}
    request["enable-optimisation"] = enable_optimisation
    return request


def export_results(inputs: Mapping[str, Any], outputs: Any) -> str:
    payload = {
        "inputs": {name: inputs[name] for name in INPUT_PARAMETERS if name in inputs},
        "outputs": outputs,
    }
    return json.dumps(payload, indent=2)


def import_results(text: str) -> tuple[dict[str, str], Any]:
    """Parse a results file into (inputs, outputs). Raises ValueError if malformed."""
    payload = json.loads(text)
    if not isinstance(payload, dict) or not isinstance(payload.get("inputs"), dict):
        raise ValueError("results file must be an object with an 'inputs' object")
    inputs = {
        name: format_parameter(value)
        for name, value in payload["inputs"].items()
        if name in INPUT_PARAMETERS and value is not None
    }
    return inputs, payload.get("outputs")
