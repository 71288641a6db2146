# ═══════════════════════════════════════════════════════════════════════════════
# HeatMyHome Platform — Home Heating Simulator Input Form
# © 2026 Aparajita Parihar. All rights reserved.
#
# Presentation only. Every edit is handed to the FormSession; this page reads
# back field states, notices and the gate, and never decides validity itself.
# ═══════════════════════════════════════════════════════════════════════════════

from __future__ import annotations

import asyncio
import os
import sys

from dotenv import load_dotenv
# Load .env from project root (parent directory of app/)
_env_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".env")
load_dotenv(_env_path)

import streamlit as st

# ─────────────────────────────────────────────────────────────────────────────
# PATH SETUP — Ensure core and services modules are accessible
# ─────────────────────────────────────────────────────────────────────────────
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from app.messages import (
    DISPATCH_TEXT,
    FIELD_LABELS,
    NOTICE_TEXT,
    SERVER_BUSY_TEXT,
    address_warning,
    field_warning,
)
from app.results import results_table
from app.session import init_session
from core.directory import AddressSelector, option_label
from core.dispatch import DispatchStatus
from core.fields import (
    CERTIFICATE_FIELDS,
    NEIGHBOUR_NOTICES,
    NEIGHBOUR_OF,
    FieldId,
    Validity,
)
from core.persistence import export_results
from core.session import FormSession

# ─────────────────────────────────────────────────────────────────────────────
# PAGE CONFIGURATION
# ─────────────────────────────────────────────────────────────────────────────
st.set_page_config(
    page_title = "HeatMyHome",
    page_icon  = "🏠",
    layout     = "centered",
)

init_session()
form: FormSession = st.session_state["form"]


def _key(field_id: FieldId) -> str:
    return f"in_{field_id.value}"


# ─────────────────────────────────────────────────────────────────────────────
# CALLBACKS: run before the rerun, so widget state may be written here
# ─────────────────────────────────────────────────────────────────────────────

def _on_edit(field_id: FieldId) -> None:
    state = asyncio.run(form.edit(field_id, st.session_state[_key(field_id)]))
    st.session_state[_key(field_id)] = state.raw_value


def _on_address(neighbour: bool) -> None:
    if neighbour:
        asyncio.run(form.select_neighbour_address(st.session_state["neighbour_address_select"]))
    else:
        asyncio.run(form.select_address(st.session_state["address_select"]))


def _on_apply_neighbour(field_id: FieldId) -> None:
    asyncio.run(form.apply_neighbour_value(field_id))


def _on_optimisation() -> None:
    form.set_optimisation(st.session_state["enable_optimisation"])


# ─────────────────────────────────────────────────────────────────────────────
# WIDGETS
# ─────────────────────────────────────────────────────────────────────────────

def _field_input(field_id: FieldId, disabled: bool = False, placeholder: str = "") -> None:
    state = form.fields[field_id]
    # resolvers can change a field behind the widget's back
    st.session_state[_key(field_id)] = state.raw_value
    st.text_input(
        FIELD_LABELS[field_id],
        key=_key(field_id),
        on_change=_on_edit,
        args=(field_id,),
        disabled=disabled,
        placeholder=placeholder,
    )
    if state.validity is Validity.PENDING:
        st.caption("Checking…")
    message = field_warning(field_id, state.warning)
    if message:
        st.warning(message)


def _address_select(selector: AddressSelector, key: str, neighbour: bool) -> None:
    options = selector.options
    st.session_state[key] = options.index(selector.selected) if selector.selected in options else 0
    st.selectbox(
        "Address",
        options=range(len(options)),
        format_func=lambda i: option_label(options[i]),
        key=key,
        on_change=_on_address,
        args=(neighbour,),
    )
    message = address_warning(selector.warning)
    if message:
        st.warning(message)


def _notices(neighbour: bool) -> None:
    for notice in sorted(form.notices, key=lambda n: n.value):
        if (notice in NEIGHBOUR_NOTICES) == neighbour:
            st.info(NOTICE_TEXT[notice])


# ─────────────────────────────────────────────────────────────────────────────
# DEEP LINK: applied once per session
# ─────────────────────────────────────────────────────────────────────────────

if not st.session_state["deep_link_loaded"]:
    st.session_state["deep_link_loaded"] = True
    if "postcode" in st.query_params:
        if not asyncio.run(form.load_deep_link(st.query_params.to_dict())):
            st.error("The shared link is incomplete and could not be loaded.")


# ─────────────────────────────────────────────────────────────────────────────
# FORM
# ─────────────────────────────────────────────────────────────────────────────

st.title("🏠 HeatMyHome")
st.caption("Compare low-carbon heating systems for your home.")

st.markdown("### Your home")
_field_input(FieldId.POSTCODE, placeholder="CV4 7AL")
_notices(neighbour=False)

if form.context.selector.available:
    _address_select(form.context.selector, "address_select", neighbour=False)

for field_id in CERTIFICATE_FIELDS:
    unlocked = field_id in form.manual_entry or form.fields[field_id].is_valid
    _field_input(field_id, disabled=not unlocked)
st.markdown(f"[Find your energy performance certificate]({form.epc_register_url()})")

proxy = form.context.proxy
if proxy is not None:
    with st.expander("Use a neighbour's certificate", expanded=True):
        _field_input(FieldId.NEIGHBOUR_POSTCODE)
        _notices(neighbour=True)
        if proxy.selector.available:
            _address_select(proxy.selector, "neighbour_address_select", neighbour=True)
        for field_id in CERTIFICATE_FIELDS:
            neighbour_id = NEIGHBOUR_OF[field_id]
            c_in, c_btn = st.columns([4, 1])
            with c_in:
                _field_input(neighbour_id)
            with c_btn:
                st.button(
                    "Use",
                    key=f"apply_{neighbour_id.value}",
                    on_click=_on_apply_neighbour,
                    args=(field_id,),
                    disabled=not form.fields[neighbour_id].is_valid,
                )
        st.markdown(f"[Neighbour's certificates]({form.neighbour_epc_register_url()})")
        st.button("Cancel", key="close_proxy", on_click=form.close_proxy)

st.markdown("### Your preferences")
_field_input(FieldId.TEMPERATURE, placeholder="20")
_field_input(FieldId.OCCUPANTS, placeholder="2")
_field_input(FieldId.TES_VOLUME, placeholder="0.5")

with st.expander("Options", expanded=False):
    st.checkbox(
        "Optimise system sizing",
        key="enable_optimisation",
        on_change=_on_optimisation,
    )


# ─────────────────────────────────────────────────────────────────────────────
# SUBMISSION
# ─────────────────────────────────────────────────────────────────────────────

st.markdown("---")
if st.button("Run simulation", type="primary", disabled=not form.gate.ready, use_container_width=True):
    with st.spinner("Simulating… this can take several minutes."):
        st.session_state["dispatch_outcome"] = asyncio.run(st.session_state["runner"].submit(form))

if form.gate.deep_link:
    st.text_input("Share these inputs", value=form.gate.deep_link, disabled=True)

outcome = st.session_state["dispatch_outcome"]
if outcome is not None and outcome.status is DispatchStatus.FAILED:
    st.error(SERVER_BUSY_TEXT if outcome.busy else DISPATCH_TEXT.get(outcome.reason, outcome.message))

if form.outputs is not None:
    st.markdown("### Results")
    st.dataframe(results_table(form.outputs), use_container_width=True, hide_index=True)
    st.download_button(
        "Save results",
        data=export_results(form.parameter_snapshot(), form.outputs),
        file_name="heatmyhome-results.json",
        mime="application/json",
    )

uploaded = st.file_uploader("Load saved results", type="json")
if uploaded is not None and st.session_state["loaded_results_id"] != uploaded.file_id:
    st.session_state["loaded_results_id"] = uploaded.file_id
    try:
        loaded = asyncio.run(form.load_results(uploaded.getvalue().decode("utf-8")))
    except ValueError as exc:
        st.error(f"Could not read results file: {exc}")
    else:
        if not loaded:
            st.error("The results file is missing some inputs.")
        st.rerun()
