"""TruthBounty Streamlit Web Dashboard (entry point)."""
from __future__ import annotations

import sys
import os

# Ensure project root is on sys.path so `import config` works
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import streamlit as st
from streamlit_autorefresh import st_autorefresh

import config
from gui.db_queries import get_db_file_size, get_db_stats, get_platform_summary

# ---------------------------------------------------------------------------
# Page config (must be first Streamlit call)
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="TruthBounty",
    page_icon=":trophy:",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
with st.sidebar:
    st.markdown("## :trophy: TruthBounty")
    st.caption("Prediction-market reputation")
    st.divider()

    auto_refresh = st.toggle("Auto-refresh", value=True)
    refresh_interval = st.select_slider(
        "Interval (seconds)",
        options=[15, 30, 60, 120, 300],
        value=60,
        disabled=not auto_refresh,
    )

    if auto_refresh:
        st_autorefresh(interval=refresh_interval * 1000, key="auto_refresh")

    st.divider()

    stats = get_db_stats()
    st.markdown("**Database**")
    st.caption(f"Path: `{config.DB_PATH}`")
    st.caption(f"Size: {get_db_file_size():.1f} MB")
    st.caption(f"Snapshot: {stats['snapshot_at'] or 'never'}")

# ---------------------------------------------------------------------------
# Overview
# ---------------------------------------------------------------------------
st.title(":trophy: TruthBounty Dashboard")
st.markdown(
    "Unified **TruthScore** leaderboard across prediction-market platforms, "
    "with simulated copy-trading. Navigate using the sidebar pages."
)

c1, c2, c3, c4 = st.columns(4)
c1.metric("Traders", f"{stats['total_traders']:,}")
c2.metric("Simulated Trades", f"{stats['total_trades']:,}")
c3.metric("Pending", f"{stats['pending_trades']:,}")
c4.metric("SDK Scores", f"{stats['scored_wallets']:,}")

summary = get_platform_summary()
if not summary.empty:
    st.subheader("Platforms")
    display = summary.copy()
    display["avg_score"] = display["avg_score"].round(0).astype(int)
    display["volume"] = display["volume"].apply(lambda x: f"{x:,.0f}")
    st.dataframe(
        display.rename(columns={
            "platform": "Platform", "traders": "Traders", "avg_score": "Avg Score",
            "top_score": "Top Score", "volume": "Volume",
        }),
        use_container_width=True, hide_index=True,
    )
else:
    st.info("No leaderboard snapshot yet. Run `python main.py run` to collect one.")

st.divider()
st.info(
    "Use the **sidebar** to navigate between pages: "
    "Leaderboard, Trader, Simulated Trades, Markets."
)
