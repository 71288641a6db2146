"""
Test Suite — app/results.py and app/messages.py
================================================
Both modules are importable without a running Streamlit server.
"""
from __future__ import annotations

import os
import sys

_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _root not in sys.path:
    sys.path.insert(0, _root)

from app.messages import FIELD_LABELS, NOTICE_TEXT, address_warning, field_warning
from app.results import results_table
from core.fields import FieldId, Notice, Reason

OUTPUTS = {
    "systems": {
        "air-source-heat-pump": {
            "none": {"operational-expenditure": 812.456, "operational-emissions": 950000,
                     "thermal-energy-storage-volume": 0.3},
            "photovoltaic": {"operational-expenditure": 640.0, "operational-emissions": 700000,
                             "thermal-energy-storage-volume": 0.3},
        },
        "gas-boiler": {"operational-expenditure": 1020.0, "operational-emissions": 2400000},
    }
}


class TestResultsTable:
    def test_one_row_per_option(self):
        df = results_table(OUTPUTS)
        assert len(df) == 3
        assert list(df["System"]) == ["air-source-heat-pump", "air-source-heat-pump", "gas-boiler"]
        assert list(df["Option"]) == ["none", "photovoltaic", ""]

    def test_columns_renamed_and_scaled(self):
        df = results_table(OUTPUTS)
        assert "Yearly Cost (£)" in df.columns
        assert df["Yearly Cost (£)"].iloc[0] == 812.46
        assert df["Yearly Emissions (kgCO₂eq)"].iloc[2] == 2400.0

    def test_unexpected_shape_gives_empty_table(self):
        assert results_table(None).empty
        assert results_table({"systems": []}).empty


class TestMessages:
    def test_every_notice_has_text(self):
        assert set(NOTICE_TEXT) == set(Notice)

    def test_every_field_has_label(self):
        assert set(FIELD_LABELS) == set(FieldId)

    def test_silent_failure_has_no_text(self):
        assert field_warning(FieldId.POSTCODE, None) is None
        assert address_warning(None) is None

    def test_range_warning_names_field(self):
        assert "Occupants" in field_warning(FieldId.OCCUPANTS, Reason.RANGE_INVALID)
