"""Simulation dispatch with a time limit and stale-reply discard.

Only a ready gate submits. Every submission takes a new dispatch number; a
reply that arrives for an older number is dropped, whatever it carries.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from config.constants import DEFAULT_SIMULATION_TIMEOUT_S
from core.fields import Reason
from core.gate import is_ready
from core.validator import Attempt
from services.errors import (
    DispatchBusyError,
    DispatchConnectionError,
    DispatchFailedError,
    DispatchServiceError,
    DispatchTimeoutError,
)
from services.simulation import SimulationBackend

if TYPE_CHECKING:
    from core.session import FormSession

logger = logging.getLogger(__name__)

DISPATCH_KEY = "simulation"


class DispatchStatus(str, Enum):
    COMPLETE = "complete"
    NOT_READY = "not-ready"
    FAILED = "failed"
    DISCARDED = "discarded"


@dataclass(frozen=True)
class DispatchOutcome:
    status: DispatchStatus
    output: Any = None
    reason: Reason | None = None
    message: str = ""
    busy: bool = False
    runtime_s: float | None = None


class SimulationRunner:
    def __init__(self, backend: SimulationBackend, timeout_s: float = DEFAULT_SIMULATION_TIMEOUT_S):
        self.backend = backend
        self.timeout_s = timeout_s

    async def _run(self, request: dict[str, Any]) -> Any:
        try:
            return await asyncio.wait_for(self.backend.submit(request), timeout=self.timeout_s)
        except asyncio.TimeoutError as exc:
            raise DispatchTimeoutError(self.timeout_s) from exc

    async def submit(self, session: FormSession) -> DispatchOutcome:
        gate = session.gate
        if not (gate.ready and is_ready(session.fields)) or gate.request is None:
            return DispatchOutcome(DispatchStatus.NOT_READY)

        attempt = Attempt.start(session.sequence, DISPATCH_KEY)
        session.outputs = None
        t0 = time.perf_counter()
        try:
            output = await self._run(dict(gate.request))
        except DispatchTimeoutError as exc:
            logger.warning("%s", exc)
            outcome = DispatchOutcome(DispatchStatus.FAILED, reason=Reason.TIMEOUT, message=str(exc))
        except DispatchConnectionError as exc:
            logger.warning("simulation server unreachable: %s", exc)
            outcome = DispatchOutcome(DispatchStatus.FAILED, reason=Reason.CONNECTIVITY, message=str(exc))
        except DispatchBusyError as exc:
            logger.warning("simulation server busy")
            outcome = DispatchOutcome(
                DispatchStatus.FAILED, reason=Reason.SERVICE_ERROR, message=exc.message, busy=True
            )
        except (DispatchServiceError, DispatchFailedError) as exc:
            logger.warning("simulation failed: %s", exc)
            outcome = DispatchOutcome(DispatchStatus.FAILED, reason=Reason.SERVICE_ERROR, message=str(exc))
        else:
            outcome = DispatchOutcome(DispatchStatus.COMPLETE, output=output)
        runtime_s = time.perf_counter() - t0

        if not attempt.current:
            logger.warning("discarding superseded simulation reply #%d", attempt.number)
            return DispatchOutcome(DispatchStatus.DISCARDED)

        if outcome.status is DispatchStatus.COMPLETE:
            session.outputs = outcome.output
            logger.info("simulation complete in %.1fs via %s", runtime_s, self.backend.name)
        return DispatchOutcome(
            outcome.status, outcome.output, outcome.reason, outcome.message, outcome.busy, runtime_s
        )

    def close(self) -> None:
        self.backend.close()
