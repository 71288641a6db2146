# ═══════════════════════════════════════════════════════════════════════════════
# HeatMyHome Platform — Session State Management
# © 2026 Aparajita Parihar. All rights reserved.
#
# Single responsibility: own the st.session_state initialisation contract.
#
# Rules:
#   • init_session() is idempotent: call it every run, it never overwrites
#     existing values (uses setdefault exclusively).
#   • No module outside this file may write a NEW top-level session key
#     without first registering it here.
#   • _get_secret() is the sole secrets access point for the application.
# ═══════════════════════════════════════════════════════════════════════════════

from __future__ import annotations

import os

import streamlit as st

from config.settings import Settings
from core.dispatch import SimulationRunner
from core.session import FormSession
from services.registry import RegistryClient
from services.simulation import make_backend


# ─────────────────────────────────────────────────────────────────────────────
# SECRETS ACCESS POINT
# The ONLY function permitted to read st.secrets or os.getenv for settings.
# ─────────────────────────────────────────────────────────────────────────────

def _get_secret(key: str, default: str = "") -> str:
    """Read a setting from Streamlit Secrets, falling back to environment variable.

    Priority: st.secrets[key]  →  os.getenv(key, default)

    Never raises; returns ``default`` if the key is absent from both sources.
    """
    try:
        return str(st.secrets[key])
    except (KeyError, AttributeError, FileNotFoundError):
        return os.getenv(key, default)


# ─────────────────────────────────────────────────────────────────────────────
# SESSION STATE INITIALISATION
# ─────────────────────────────────────────────────────────────────────────────

def init_session() -> None:
    """Idempotently initialise all application session state keys.

    Session key registry (authoritative):

    settings          Settings           HMH_* configuration, read once per session
    form              FormSession        Field states, resolution context, gate
    runner            SimulationRunner   Dispatch through the configured backend
    deep_link_loaded  bool               True once query params were applied
    dispatch_outcome  DispatchOutcome    Last simulation attempt, or None
    loaded_results_id str | None         file_id of the last imported results file
    enable_optimisation bool             Options checkbox, mirrored into the form
    """
    ss = st.session_state

    if "settings" not in ss:
        ss["settings"] = Settings.from_env(_get_secret)
    settings: Settings = ss["settings"]

    if "form" not in ss:
        ss["form"] = FormSession(RegistryClient(settings), site_url=settings.site_url)
    if "runner" not in ss:
        ss["runner"] = SimulationRunner(make_backend(settings), timeout_s=settings.sim_timeout_s)

    ss.setdefault("deep_link_loaded", False)
    ss.setdefault("dispatch_outcome", None)
    ss.setdefault("loaded_results_id", None)
    ss.setdefault("enable_optimisation", ss["form"].enable_optimisation)
