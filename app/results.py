"""Shape a simulation result into a table for display.

The simulator returns ``{"systems": {system: {subsystem: {...}} | {...}}}``.
Heat pumps nest one level deeper (per solar option); boilers do not.
"""

from __future__ import annotations

from typing import Any

import pandas as pd

DISPLAY_COLUMNS: dict[str, str] = {
    "thermal-energy-storage-volume": "Water Tank Volume (m³)",
    "operational-expenditure": "Yearly Cost (£)",
    "capital-expenditure": "Upfront Cost (£)",
    "net-present-cost": "Lifetime Cost (£)",
    "operational-emissions": "Yearly Emissions (kgCO₂eq)",
}


def _rows(outputs: Any) -> list[dict[str, Any]]:
    systems = outputs.get("systems") if isinstance(outputs, dict) else None
    if not isinstance(systems, dict):
        return []
    rows = []
    for system, body in systems.items():
        if not isinstance(body, dict):
            continue
        if body and all(isinstance(v, dict) for v in body.values()):
            for subsystem, props in body.items():
                rows.append({"System": system, "Option": subsystem, **props})
        else:
            rows.append({"System": system, "Option": "", **body})
    return rows


def results_table(outputs: Any) -> pd.DataFrame:
    """One row per system option, known metrics renamed and rounded."""
    df = pd.DataFrame(_rows(outputs))
    if df.empty:
        return df
    if "operational-emissions" in df.columns:
        df["operational-emissions"] = pd.to_numeric(df["operational-emissions"], errors="coerce") / 1000
    keep = ["System", "Option"] + [c for c in DISPLAY_COLUMNS if c in df.columns]
    df = df[keep].rename(columns=DISPLAY_COLUMNS)
    return df.round(2)
