"""
Test Suite — core/gate.py and core/persistence.py
==================================================
Readiness as an AND over required fields, deep-link derivation and the
results-file round trip.
"""
from __future__ import annotations

import asyncio
import json
import os
import sys
import pytest

_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _root not in sys.path:
    sys.path.insert(0, _root)

from core.fields import REQUIRED_FIELDS, FieldId, FieldState
from core.gate import SubmissionGate, is_ready
from core.persistence import (
    build_simulation_request,
    decode_deep_link,
    encode_deep_link_query,
    export_results,
    import_results,
)
from core.session import FormSession
from tests.fakes import READY_INPUTS, coventry_registry, ready_session

EXPECTED_LINK = (
    "http://localhost:8501/?postcode=CV47AL&space_heating=3412&floor_area=74"
    "&temperature=20&occupants=2&tes_max=0.5"
)


def _all_valid_fields():
    fields = {f: FieldState(f) for f in FieldId}
    for field_id in REQUIRED_FIELDS:
        fields[field_id].mark_valid("x")
    return fields


class TestReadiness:
    def test_ready_iff_all_required_valid(self):
        fields = _all_valid_fields()
        assert is_ready(fields)
        for field_id in REQUIRED_FIELDS:
            fields[field_id].mark_invalid(None)
            assert not is_ready(fields)
            fields[field_id].mark_valid("x")
            assert is_ready(fields)

    def test_neighbour_fields_are_not_required(self):
        fields = _all_valid_fields()
        fields[FieldId.NEIGHBOUR_POSTCODE].mark_invalid(None)
        assert is_ready(fields)

    def test_transition_withdraws_artifacts(self):
        form = ready_session()
        assert form.gate.deep_link and form.gate.request
        asyncio.run(form.edit(FieldId.OCCUPANTS, ""))
        assert not form.gate.ready
        assert form.gate.deep_link is None
        assert form.gate.request is None
        asyncio.run(form.edit(FieldId.OCCUPANTS, "2"))
        assert form.gate.deep_link == EXPECTED_LINK


class TestDeepLink:
    def test_canonical_order_and_names(self):
        assert ready_session().gate.deep_link == EXPECTED_LINK

    def test_rederivation_is_idempotent(self):
        form = ready_session()
        gate = SubmissionGate(form.gate.site_url)
        first = (gate.evaluate(form.snapshot, form.fields), gate.deep_link, gate.request)
        second = (gate.evaluate(form.snapshot, form.fields), gate.deep_link, gate.request)
        assert first == second
        assert gate.transitions == 1

    def test_round_trip_reproduces_snapshot(self):
        source = ready_session()
        registry = coventry_registry()
        target = FormSession(registry)
        assert asyncio.run(target.load_deep_link(source.gate.deep_link))
        assert target.gate.ready
        assert target.parameter_snapshot() == source.parameter_snapshot()
        assert target.gate.deep_link == source.gate.deep_link
        # loading skips the directory and unlocks manual entry
        assert registry.called("directory") == []
        assert FieldId.FLOOR_AREA in target.manual_entry

    def test_decode_accepts_query_mapping(self):
        query = {"postcode": "CV47AL", "space_heating": "3412", "floor_area": "74",
                 "temperature": "20", "occupants": "2", "tes_max": "0.5"}
        assert decode_deep_link(query) == {
            "postcode": "CV47AL", "epc-space-heating": "3412", "floor-area": "74",
            "temperature": "20", "occupants": "2", "tes-volume": "0.5",
        }

    def test_incomplete_link_is_rejected(self, caplog):
        assert decode_deep_link("postcode=CV47AL&temperature=20") is None
        assert "missing" in caplog.text

    def test_incomplete_inputs_touch_nothing(self):
        registry = coventry_registry()
        form = FormSession(registry)
        partial = dict(READY_INPUTS, occupants="")
        assert not asyncio.run(form.load_inputs(partial))
        assert registry.calls == []
        assert form.snapshot == {}

    def test_encode_formats_integral_floats(self):
        snapshot = {"postcode": "CV47AL", "epc-space-heating": 3412.0, "floor-area": 74,
                    "temperature": 20.5, "occupants": 2, "tes-volume": 0.5}
        assert "space_heating=3412&" in encode_deep_link_query(snapshot)
        assert "temperature=20.5&" in encode_deep_link_query(snapshot)


class TestSimulationRequest:
    def test_api_order_with_coordinates(self):
        request = ready_session().gate.request
        assert list(request) == [
            "postcode", "latitude", "longitude", "epc-space-heating", "floor-area",
            "temperature", "occupants", "tes-volume", "enable-optimisation",
        ]
        assert request["enable-optimisation"] is True

    def test_optimisation_flag_follows_session(self):
        form = ready_session()
        form.set_optimisation(False)
        assert form.gate.request["enable-optimisation"] is False

    def test_build_request_without_coordinates(self):
        assert build_simulation_request({"postcode": "X"}, False) == {
            "postcode": "X", "enable-optimisation": False,
        }


class TestResultsFile:
    def test_export_layout(self):
        form = ready_session()
        text = export_results(form.parameter_snapshot(), {"systems": {}})
        payload = json.loads(text)
        assert list(payload) == ["inputs", "outputs"]
        assert list(payload["inputs"]) == [
            "postcode", "epc-space-heating", "floor-area", "temperature", "occupants", "tes-volume",
        ]
        assert text.startswith('{\n  "inputs"')

    def test_import_restores_inputs_and_outputs(self):
        source = ready_session()
        text = export_results(source.parameter_snapshot(), {"systems": {"gas-boiler": {}}})
        target = FormSession(coventry_registry())
        assert asyncio.run(target.load_results(text))
        assert target.gate.ready
        assert target.outputs == {"systems": {"gas-boiler": {}}}
        assert target.parameter_snapshot() == source.parameter_snapshot()

    def test_import_stringifies_numbers(self):
        inputs, outputs = import_results('{"inputs": {"floor-area": 74.0, "temperature": 20.5}}')
        assert inputs == {"floor-area": "74", "temperature": "20.5"}
        assert outputs is None

    @pytest.mark.parametrize("text", ["not json", "[]", '{"outputs": {}}'])
    def test_malformed_file_raises(self, text):
        with pytest.raises(ValueError):
            import_results(text)
