"""
Streamlit entry point: clinic data sync dashboard.

Run with:
    streamlit run app.py
"""

from __future__ import annotations
import asyncio

import pandas as pd
import streamlit as st

from clinic_core.errors import ErrorContext, safe_execute
from clinic_core.logging import setup_logging
from clinic_core.services import get_sync_service


@st.cache_resource
def _init_logging() -> bool:
    setup_logging()
    return True


# ============================================================================
# PAGE CONFIGURATION
# ============================================================================
st.set_page_config(
    page_title="Clinic Data Sync",
    page_icon="🔄",
    layout="wide",
)

_init_logging()

st.title("Clinic Data Sync")
st.caption("Push records captured offline to the online database.")

service = safe_execute(
    get_sync_service,
    error_message="Sync service could not be configured",
)
if service is None:
    st.stop()

# ============================================================================
# TRIGGER
# ============================================================================
if st.button("Sync now", type="primary", disabled=service.engine.is_running):
    with ErrorContext("Running data sync"):
        with st.spinner("Syncing..."):
            response = asyncio.run(service.trigger({"source": "dashboard"}))

        if response.ok:
            if response.result and response.result.success:
                st.success(response.message)
            else:
                st.warning(response.message)
        elif response.status == 409:
            st.info(response.message)
        else:
            st.error(f"{response.message}: {response.error}")

# ============================================================================
# STATUS
# ============================================================================
status = service.status()
report = status["syncStatus"]

col1, col2, col3 = st.columns(3)
col1.metric("Progress", f"{status['overallPercentage']}%")
col2.metric("Mode", (report or {}).get("mode") or "-")
col3.metric("Last sync", status["lastSync"] or "never")

connection = service.engine.connection_manager.get_status_display()
with st.sidebar:
    st.subheader("Connectivity")
    st.write(f"Status: **{connection['status']}**")
    st.write(f"Online database: {'reachable' if connection['online'] else 'unreachable'}")
    st.write(f"Offline database: {'reachable' if connection['offline'] else 'unreachable'}")
    if connection["error"]:
        st.caption(connection["error"])

if report:
    st.subheader("Entities")
    st.dataframe(pd.DataFrame(report["progress"]), use_container_width=True)

    if report["errors"]:
        with st.expander(f"Errors ({len(report['errors'])})", expanded=True):
            for error in report["errors"]:
                st.write(f"- {error}")

    if report["warnings"]:
        with st.expander(f"Warnings ({len(report['warnings'])})"):
            for warning in report["warnings"]:
                st.write(f"- {warning}")

pending = service.pending_changes()
if pending:
    st.subheader("Waiting to sync")
    st.dataframe(
        pd.DataFrame(
            [{"entity": entity, "pending": count} for entity, count in pending.data.items()]
        ),
        use_container_width=True,
    )

    waiting = [entity for entity, count in pending.data.items() if count]
    if waiting:
        entity = st.selectbox("Show queued rows for", waiting)
        rows = service.pending_records(entity)
        if rows:
            st.dataframe(rows.data, use_container_width=True)
        else:
            st.warning(f"Could not load queued {entity} rows: {rows.error}")
else:
    st.warning(f"Could not count pending records: {pending.error}")
