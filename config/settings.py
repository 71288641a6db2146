"""Runtime settings read from the environment.

Kept free of Streamlit so the core pipeline and services can be configured
from tests and scripts. ``app/main.py`` loads ``.env`` before this is read.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable

from config.constants import (
    DEFAULT_API_URL,
    DEFAULT_POSTCODES_URL,
    DEFAULT_REQUEST_TIMEOUT_S,
    DEFAULT_SIMULATION_TIMEOUT_S,
    DEFAULT_SITE_URL,
)

API_URL_ENV = "HMH_API_URL"
POSTCODES_URL_ENV = "HMH_POSTCODES_URL"
REQUEST_TIMEOUT_ENV = "HMH_REQUEST_TIMEOUT_S"
SIM_BACKEND_ENV = "HMH_SIM_BACKEND"
SIM_ENGINE_ENV = "HMH_SIM_ENGINE"
SIM_TIMEOUT_ENV = "HMH_SIM_TIMEOUT_S"
SITE_URL_ENV = "HMH_SITE_URL"

SIM_BACKENDS = ("server", "worker")


def _to_float(value: str | None, default: float) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    return out if out > 0 else default


@dataclass(frozen=True)
class Settings:
    api_url: str = DEFAULT_API_URL
    postcodes_url: str = DEFAULT_POSTCODES_URL
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    sim_backend: str = "server"
    sim_engine: str = ""
    sim_timeout_s: float = DEFAULT_SIMULATION_TIMEOUT_S
    site_url: str = DEFAULT_SITE_URL

    @property
    def epc_url(self) -> str:
        return f"{self.api_url}/epc"

    @property
    def simulate_url(self) -> str:
        return f"{self.api_url}/simulate"

    @classmethod
    def from_env(cls, getenv: Callable[[str, str], str] = os.getenv) -> Settings:
        """Build settings from ``HMH_*`` environment variables.

        Raises ValueError for an unknown simulation backend name.
        """
        backend = getenv(SIM_BACKEND_ENV, "server").strip().lower() or "server"
        if backend not in SIM_BACKENDS:
            raise ValueError(
                f"{SIM_BACKEND_ENV} must be one of {SIM_BACKENDS}, got '{backend}'"
            )
        return cls(
            api_url=getenv(API_URL_ENV, DEFAULT_API_URL).strip().rstrip("/"),
            postcodes_url=getenv(POSTCODES_URL_ENV, DEFAULT_POSTCODES_URL).strip().rstrip("/"),
            request_timeout_s=_to_float(getenv(REQUEST_TIMEOUT_ENV, ""), DEFAULT_REQUEST_TIMEOUT_S),
            sim_backend=backend,
            sim_engine=getenv(SIM_ENGINE_ENV, "").strip(),
            sim_timeout_s=_to_float(getenv(SIM_TIMEOUT_ENV, ""), DEFAULT_SIMULATION_TIMEOUT_S),
            site_url=getenv(SITE_URL_ENV, DEFAULT_SITE_URL).strip(),
        )
