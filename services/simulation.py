# ═══════════════════════════════════════════════════════════════════════════════
# HeatMyHome Platform — Simulation Dispatch Backends
# © 2026 Aparajita Parihar. All rights reserved.
#
# The heating simulator itself is an external collaborator. This module only
# moves a parameter snapshot to it and brings a result back:
#   • ServerBackend: remote HTTP endpoint, snapshot encoded as query params
#   • WorkerBackend: background worker process running an engine callable;
#                    the worker replies with a JSON string or the failure
#                    sentinel (None)
#
# Both raise services.errors.DispatchError subclasses; neither applies a
# time limit (core/dispatch.py owns the timeout).
# ═══════════════════════════════════════════════════════════════════════════════

from __future__ import annotations

import abc
import asyncio
import importlib
import json
import logging
import time
from concurrent.futures import Executor, ProcessPoolExecutor
from typing import Any, Callable

import requests

from config.constants import SIMULATION_API_NAMES, SIMULATION_BUSY_PREFIX
from config.settings import Settings
from services.errors import (
    DispatchBusyError,
    DispatchConnectionError,
    DispatchFailedError,
    DispatchServiceError,
)

logger = logging.getLogger(__name__)


def simulation_query(request: dict[str, Any]) -> list[tuple[str, str]]:
    """Ordered ``(api_name, value)`` pairs for the remote simulator."""
    return [
        (api_name, _format_value(request[name]))
        for name, api_name in SIMULATION_API_NAMES.items()
        if name in request
    ]


def _format_value(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class SimulationBackend(abc.ABC):
    """Contract every simulation dispatch route must follow."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Machine-readable backend identifier (matches HMH_SIM_BACKEND)."""
        raise NotImplementedError

    @abc.abstractmethod
    async def submit(self, request: dict[str, Any]) -> Any:
        """Run one simulation and return its decoded output.

        Raises a DispatchError subclass when no result is produced.
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release any resources held by the backend."""


# ─────────────────────────────────────────────────────────────────────────────
# REMOTE SERVER
# ─────────────────────────────────────────────────────────────────────────────

class ServerBackend(SimulationBackend):
    """GET {api}/simulate?postcode=...&tes_max=... → {status, result|error}."""

    def __init__(self, simulate_url: str, timeout_s: float):
        self.simulate_url = simulate_url
        self.timeout_s = timeout_s

    @property
    def name(self) -> str:
        return "server"

    def _get(self, request: dict[str, Any]) -> Any:
        try:
            resp = requests.get(
                self.simulate_url,
                params=simulation_query(request),
                headers={"Accept": "application/json"},
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise DispatchConnectionError(type(exc).__name__) from exc

        try:
            payload = resp.json()
        except ValueError as exc:
            raise DispatchServiceError(resp.status_code, "response is not JSON") from exc

        if not isinstance(payload, dict):
            raise DispatchServiceError(resp.status_code, "unexpected response shape")
        status = payload.get("status")
        if status != 200:
            message = str(payload.get("error") or "simulation failed")
            if message.startswith(SIMULATION_BUSY_PREFIX):
                raise DispatchBusyError(status, message)
            raise DispatchServiceError(status, message)
        return payload.get("result")

    async def submit(self, request: dict[str, Any]) -> Any:
        return await asyncio.to_thread(self._get, request)


# ─────────────────────────────────────────────────────────────────────────────
# BACKGROUND WORKER
# ─────────────────────────────────────────────────────────────────────────────

def resolve_engine(engine_path: str) -> Callable[[dict[str, Any]], Any]:
    """Import ``package.module:function`` and return the callable."""
    module_name, sep, attr = engine_path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Simulation engine must look like 'module:function', got '{engine_path}'")
    return getattr(importlib.import_module(module_name), attr)


def _single_worker_pool() -> Executor:
    return ProcessPoolExecutor(max_workers=1)


def _run_engine(engine_path: str, request: dict[str, Any]) -> str | None:
    """Worker-side entry point. Replies with a JSON string or None."""
    try:
        engine = resolve_engine(engine_path)
        t0 = time.perf_counter()
        result = engine(dict(request))
        logger.info("engine runtime: %.3fs", time.perf_counter() - t0)
    except Exception:
        logger.exception("simulation engine %s failed", engine_path)
        return None
    if result is None:
        return None
    return result if isinstance(result, str) else json.dumps(result)


class WorkerBackend(SimulationBackend):
    """Posts the snapshot to a single background worker and awaits one reply."""

    def __init__(
        self,
        engine: str,
        executor: Executor | None = None,
        executor_factory: Callable[[], Executor] | None = None,
    ):
        if not engine:
            raise ValueError("WorkerBackend requires an engine 'module:function'")
        self.engine = engine
        self._executor = executor
        self._owns_executor = executor is None
        self._executor_factory = executor_factory or _single_worker_pool

    @property
    def name(self) -> str:
        return "worker"

    def _pool(self) -> Executor:
        if self._executor is None:
            self._executor = self._executor_factory()
        return self._executor

    async def submit(self, request: dict[str, Any]) -> Any:
        loop = asyncio.get_running_loop()
        try:
            reply = await loop.run_in_executor(self._pool(), _run_engine, self.engine, dict(request))
        except asyncio.CancelledError:
            # the engine keeps its worker busy; later runs need a fresh one
            if self._owns_executor and self._executor is not None:
                logger.warning("worker run abandoned, replacing the worker pool")
                self.close()
            raise
        if reply is None:
            raise DispatchFailedError(f"worker engine {self.engine} returned no result")
        try:
            return json.loads(reply)
        except ValueError as exc:
            raise DispatchFailedError("worker reply is not valid JSON") from exc

    def close(self) -> None:
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None


def make_backend(settings: Settings) -> SimulationBackend:
    """Select the dispatch backend named by ``settings.sim_backend``."""
    if settings.sim_backend == "server":
        return ServerBackend(settings.simulate_url, settings.sim_timeout_s)
    if settings.sim_backend == "worker":
        return WorkerBackend(settings.sim_engine)
    raise ValueError(f"Unknown simulation backend: '{settings.sim_backend}'")
