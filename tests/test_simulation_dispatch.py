"""
Test Suite — services/simulation.py and core/dispatch.py
=========================================================
Both backends, the time limit and the discard of superseded replies.
"""
from __future__ import annotations

import asyncio
import os
import sys
from concurrent.futures import ThreadPoolExecutor
import pytest

_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _root not in sys.path:
    sys.path.insert(0, _root)

import requests

from config.settings import Settings
from core.dispatch import DispatchStatus, SimulationRunner
from core.fields import FieldId, Reason
from core.session import FormSession
from services.errors import (
    DispatchBusyError,
    DispatchConnectionError,
    DispatchFailedError,
    DispatchServiceError,
)
from services.simulation import (
    ServerBackend,
    WorkerBackend,
    make_backend,
    resolve_engine,
    simulation_query,
)
from tests.fakes import ENGINE_RELEASE, FakeBackend, FakeRegistry, ready_session

REQUEST = {
    "postcode": "CV47AL", "latitude": 52.3793, "longitude": -1.5615,
    "epc-space-heating": 3412, "floor-area": 74, "temperature": 20.0,
    "occupants": 2, "tes-volume": 0.5, "enable-optimisation": True,
}


class MockResp:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        return self._payload


# ─────────────────────────────────────────────────────────────────────────────
# Server backend
# ─────────────────────────────────────────────────────────────────────────────

class TestServerBackend:
    def test_query_order_and_names(self):
        assert simulation_query(REQUEST) == [
            ("postcode", "CV47AL"), ("latitude", "52.3793"), ("longitude", "-1.5615"),
            ("space_heating", "3412"), ("floor_area", "74"), ("temperature", "20"),
            ("occupants", "2"), ("tes_max", "0.5"),
        ]

    def test_success_returns_result(self, monkeypatch):
        calls = []

        def fake_get(url, params=None, **kwargs):
            calls.append((url, params))
            return MockResp({"status": 200, "result": {"systems": {}}})

        monkeypatch.setattr(requests, "get", fake_get)
        backend = ServerBackend("https://api.test/simulate", 600)
        assert asyncio.run(backend.submit(REQUEST)) == {"systems": {}}
        assert calls[0][0] == "https://api.test/simulate"

    def test_busy_server(self, monkeypatch):
        monkeypatch.setattr(requests, "get", lambda *a, **kw: MockResp(
            {"status": 500, "error": "simulation exceeded allowed runtime (queue full)"}))
        with pytest.raises(DispatchBusyError):
            asyncio.run(ServerBackend("https://api.test/simulate", 1).submit(REQUEST))

    def test_other_service_error(self, monkeypatch):
        monkeypatch.setattr(requests, "get", lambda *a, **kw: MockResp({"status": 400, "error": "bad input"}))
        with pytest.raises(DispatchServiceError) as info:
            asyncio.run(ServerBackend("https://api.test/simulate", 1).submit(REQUEST))
        assert not isinstance(info.value, DispatchBusyError)
        assert info.value.message == "bad input"

    def test_unreachable(self, monkeypatch):
        def boom(*a, **kw):
            raise requests.exceptions.ConnectionError()

        monkeypatch.setattr(requests, "get", boom)
        with pytest.raises(DispatchConnectionError):
            asyncio.run(ServerBackend("https://api.test/simulate", 1).submit(REQUEST))


# ─────────────────────────────────────────────────────────────────────────────
# Worker backend (thread pool stands in for the process pool)
# ─────────────────────────────────────────────────────────────────────────────

class TestWorkerBackend:
    def test_engine_reply_is_decoded(self):
        with ThreadPoolExecutor(max_workers=1) as pool:
            backend = WorkerBackend("json:dumps", executor=pool)
            assert asyncio.run(backend.submit(REQUEST)) == REQUEST

    def test_failing_engine_replies_with_sentinel(self):
        with ThreadPoolExecutor(max_workers=1) as pool:
            backend = WorkerBackend("math:sqrt", executor=pool)
            with pytest.raises(DispatchFailedError):
                asyncio.run(backend.submit(REQUEST))

    def test_engine_path_validation(self):
        with pytest.raises(ValueError):
            resolve_engine("json.dumps")
        with pytest.raises(ValueError):
            WorkerBackend("")

    def test_timed_out_run_does_not_block_the_next(self):
        pools = []

        def factory():
            pool = ThreadPoolExecutor(max_workers=1)
            pools.append(pool)
            return pool

        backend = WorkerBackend("tests.fakes:blocking_engine", executor_factory=factory)
        runner = SimulationRunner(backend, timeout_s=0.5)
        form = ready_session()
        try:
            first = asyncio.run(runner.submit(form))
            backend.engine = "json:dumps"
            second = asyncio.run(runner.submit(form))
        finally:
            ENGINE_RELEASE.set()
            runner.close()
        assert first.reason is Reason.TIMEOUT
        assert second.status is DispatchStatus.COMPLETE
        assert second.output["postcode"] == "CV47AL"
        assert len(pools) == 2

    def test_close_leaves_injected_executor_alone(self):
        with ThreadPoolExecutor(max_workers=1) as pool:
            WorkerBackend("json:dumps", executor=pool).close()
            assert pool.submit(lambda: 1).result() == 1


class TestMakeBackend:
    def test_server_default(self):
        backend = make_backend(Settings(api_url="https://api.test"))
        assert isinstance(backend, ServerBackend)
        assert backend.simulate_url == "https://api.test/simulate"

    def test_worker(self):
        backend = make_backend(Settings(sim_backend="worker", sim_engine="json:dumps"))
        assert isinstance(backend, WorkerBackend)
        backend.close()


# ─────────────────────────────────────────────────────────────────────────────
# Runner
# ─────────────────────────────────────────────────────────────────────────────

class TestRunner:
    def test_not_ready_contacts_nothing(self):
        backend = FakeBackend({"systems": {}})
        outcome = asyncio.run(SimulationRunner(backend).submit(FormSession(FakeRegistry())))
        assert outcome.status is DispatchStatus.NOT_READY
        assert backend.requests == []

    def test_complete_stores_outputs(self):
        form = ready_session()
        backend = FakeBackend({"systems": {"gas-boiler": {}}})
        outcome = asyncio.run(SimulationRunner(backend).submit(form))
        assert outcome.status is DispatchStatus.COMPLETE
        assert form.outputs == {"systems": {"gas-boiler": {}}}
        assert backend.requests[0]["postcode"] == "CV47AL"
        assert outcome.runtime_s is not None

    def test_timeout(self):
        form = ready_session()
        runner = SimulationRunner(FakeBackend({"late": True}, delay_s=5), timeout_s=0.01)
        outcome = asyncio.run(runner.submit(form))
        assert outcome.status is DispatchStatus.FAILED
        assert outcome.reason is Reason.TIMEOUT
        assert form.outputs is None

    @pytest.mark.parametrize("error,reason,busy", [
        (DispatchConnectionError("down"), Reason.CONNECTIVITY, False),
        (DispatchBusyError(500, "simulation exceeded allowed runtime"), Reason.SERVICE_ERROR, True),
        (DispatchServiceError(400, "bad"), Reason.SERVICE_ERROR, False),
        (DispatchFailedError("sentinel"), Reason.SERVICE_ERROR, False),
    ])
    def test_failures_map_to_reasons(self, error, reason, busy):
        outcome = asyncio.run(SimulationRunner(FakeBackend(error)).submit(ready_session()))
        assert outcome.status is DispatchStatus.FAILED
        assert outcome.reason is reason
        assert outcome.busy is busy

    def test_superseded_reply_is_discarded(self):
        form = ready_session()

        async def scenario():
            gate = asyncio.Event()
            slow = SimulationRunner(FakeBackend({"run": 1}, gate=gate))
            fast = SimulationRunner(FakeBackend({"run": 2}))
            first = asyncio.create_task(slow.submit(form))
            await asyncio.sleep(0)
            second = await fast.submit(form)
            gate.set()
            return await first, second

        first, second = asyncio.run(scenario())
        assert first.status is DispatchStatus.DISCARDED
        assert second.status is DispatchStatus.COMPLETE
        assert form.outputs == {"run": 2}

    def test_runner_close_closes_backend(self):
        backend = FakeBackend()
        SimulationRunner(backend).close()
        assert backend.closed

    def test_gate_closes_after_edit(self):
        form = ready_session()
        asyncio.run(form.edit(FieldId.TEMPERATURE, ""))
        outcome = asyncio.run(SimulationRunner(FakeBackend({})).submit(form))
        assert outcome.status is DispatchStatus.NOT_READY
