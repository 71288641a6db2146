"""
Test Suite — core/validator.py
===============================
Condition chain ordering, transforms, range checks and sequence counters.
"""
from __future__ import annotations

import asyncio
import os
import sys
import pytest

_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _root not in sys.path:
    sys.path.insert(0, _root)

from core.fields import SUCCESS, FieldId, FieldState, Outcome, Reason, Validity
from core.session import FormSession
from core.validator import (
    Attempt,
    Condition,
    FieldSpec,
    FieldValidator,
    SequenceCounter,
    StaleResolution,
    clamp_and_round,
    to_number,
)
from tests.fakes import FakeRegistry


# ─────────────────────────────────────────────────────────────────────────────
# Minimal session: just what FieldValidator touches
# ─────────────────────────────────────────────────────────────────────────────

class StubSession:
    def __init__(self):
        self.sequence = SequenceCounter()
        self.fields = {FieldId.POSTCODE: FieldState(FieldId.POSTCODE)}
        self.snapshot = {}

    def commit(self, field_id, value):
        self.snapshot[field_id.value] = value

    def withdraw(self, field_id):
        self.snapshot.pop(field_id.value, None)


class Recording(Condition):
    def __init__(self, log, name, outcome=SUCCESS, delay=False):
        self.log, self.name, self.outcome, self.delay = log, name, outcome, delay

    def evaluate(self, value, attempt):
        if not self.delay:
            self.log.append(self.name)
            return self.outcome
        return self._later()

    async def _later(self):
        await asyncio.sleep(0)
        self.log.append(self.name)
        return self.outcome


def _validator(conditions, transform=None):
    session = StubSession()
    completions = []
    spec = FieldSpec(conditions=tuple(conditions), transform=transform)
    validator = FieldValidator(session, {FieldId.POSTCODE: spec}, lambda: completions.append(1))
    return session, validator, completions


class TestChain:
    def test_all_success_commits_transformed_value(self):
        log = []
        session, validator, completions = _validator(
            [Recording(log, "a"), Recording(log, "b", delay=True)], transform=str.upper
        )
        state = asyncio.run(validator.validate(FieldId.POSTCODE, "cv47al"))
        assert state.validity is Validity.VALID
        assert session.snapshot == {"postcode": "CV47AL"}
        assert log == ["a", "b"]
        assert completions == [1]

    def test_async_conditions_run_strictly_in_order(self):
        log = []
        _, validator, _ = _validator(
            [Recording(log, "slow", delay=True), Recording(log, "fast"), Recording(log, "slow2", delay=True)]
        )
        asyncio.run(validator.validate(FieldId.POSTCODE, "x"))
        assert log == ["slow", "fast", "slow2"]

    def test_first_failure_stops_chain(self):
        log = []
        session, validator, _ = _validator([
            Recording(log, "format", Outcome.no_display(Reason.FORMAT_INVALID)),
            Recording(log, "network", delay=True),
        ])
        state = asyncio.run(validator.validate(FieldId.POSTCODE, "x"))
        assert log == ["format"]
        assert state.validity is Validity.INVALID
        assert state.reason is Reason.FORMAT_INVALID
        assert state.warning is None
        assert session.snapshot == {}

    def test_warning_outcome_is_displayed(self):
        _, validator, _ = _validator([Recording([], "geo", Outcome.warn(Reason.CONNECTIVITY))])
        state = asyncio.run(validator.validate(FieldId.POSTCODE, "x"))
        assert state.warning is Reason.CONNECTIVITY

    def test_empty_value_resets_without_running_conditions(self):
        log = []
        session, validator, completions = _validator([Recording(log, "a")])
        asyncio.run(validator.validate(FieldId.POSTCODE, "x"))
        state = asyncio.run(validator.validate(FieldId.POSTCODE, "   "))
        assert state.validity is Validity.UNVALIDATED
        assert state.warning is None
        assert session.snapshot == {}
        assert log == ["a"]
        assert completions == [1, 1]

    def test_correcting_a_value_clears_its_warning(self):
        class FailOnBad(Condition):
            def evaluate(self, value, attempt):
                return Outcome.warn(Reason.RANGE_INVALID) if value == "bad" else SUCCESS

        _, validator, _ = _validator([FailOnBad()])
        asyncio.run(validator.validate(FieldId.POSTCODE, "bad"))
        state = asyncio.run(validator.validate(FieldId.POSTCODE, "good"))
        assert state.warning is None and state.is_valid


class TestSequenceCounter:
    def test_issue_is_monotonic_per_key(self):
        counter = SequenceCounter()
        assert [counter.issue("a"), counter.issue("a"), counter.issue("b")] == [1, 2, 1]

    def test_superseded_attempt_raises(self):
        counter = SequenceCounter()
        first = Attempt.start(counter, "a")
        Attempt.start(counter, "a")
        assert not first.current
        with pytest.raises(StaleResolution):
            first.ensure_current()

    def test_invalidate_orphans_in_flight_attempt(self):
        counter = SequenceCounter()
        attempt = Attempt.start(counter, "a")
        counter.invalidate("a")
        assert not attempt.current


class TestNumericTransform:
    @pytest.mark.parametrize("raw,expected", [
        ("20.25", "20.3"),
        ("20", "20"),
        ("50", "35"),
        ("-4", "0"),
        ("19.94", "19.9"),
        ("abc", "abc"),
    ])
    def test_temperature_clamp_and_round(self, raw, expected):
        assert clamp_and_round(0, 35, 10)(raw) == expected

    def test_occupants_round_to_whole(self):
        assert clamp_and_round(1, 20, 1)("2.5") == "3"
        assert clamp_and_round(1, 20, 1)("0") == "1"

    def test_to_number(self):
        assert to_number("20") == 20 and isinstance(to_number("20"), int)
        assert to_number("0.5") == 0.5


class TestNumericFields:
    def _form(self):
        return FormSession(FakeRegistry())

    def test_edit_clamps_into_range(self):
        form = self._form()
        state = asyncio.run(form.edit(FieldId.TEMPERATURE, "50"))
        assert state.raw_value == "35"
        assert state.committed_value == 35
        assert form.snapshot["temperature"] == 35

    def test_untransformed_out_of_range_warns(self):
        form = self._form()
        state = asyncio.run(form.edit(FieldId.TES_VOLUME, "9", apply_transform=False))
        assert state.validity is Validity.INVALID
        assert state.warning is Reason.RANGE_INVALID
        assert "tes-volume" not in form.snapshot

    def test_non_numeric_is_range_invalid(self):
        state = asyncio.run(self._form().edit(FieldId.OCCUPANTS, "two"))
        assert state.reason is Reason.RANGE_INVALID

    def test_neighbour_field_uses_primary_range(self):
        form = self._form()
        state = asyncio.run(form.edit(FieldId.NEIGHBOUR_FLOOR_AREA, "10"))
        assert state.raw_value == "25"
        # neighbour values never reach the snapshot
        assert "floor-area" not in form.snapshot
