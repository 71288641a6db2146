"""
# HeatMyHome

Entry point for the Streamlit application. It hands straight over to the
input form page in ``app/main.py``.
"""

import streamlit as st

# The form lives outside the root script, so redirect to it.
st.switch_page("app/main.py")
