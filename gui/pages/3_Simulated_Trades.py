"""Simulated Trades — Paper copy-trading results per platform."""
from __future__ import annotations

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

import streamlit as st
import plotly.express as px

from adapters import get_all_platform_ids
from gui.components import COLORS, short_address
from gui.db_queries import get_cumulative_pnl, get_simulated_trades, get_simulation_summary

st.set_page_config(page_title="TruthBounty — Simulated Trades", layout="wide")
st.title(":game_die: Simulated Trades")

# ---------------------------------------------------------------------------
# Per-platform summary
# ---------------------------------------------------------------------------
summary = get_simulation_summary()
if summary.empty:
    st.info("No simulated trades yet. Use `python main.py simulate ...` to place one.")
    st.stop()

decided = summary["wins"] + summary["losses"]
summary["win_rate"] = (summary["wins"] / decided.where(decided > 0) * 100).round(1)

c1, c2, c3, c4 = st.columns(4)
c1.metric("Trades", f"{int(summary['trades'].sum()):,}")
c2.metric("Pending", f"{int(summary['pending'].sum()):,}")
total_decided = int(decided.sum())
c3.metric("Win Rate", f"{summary['wins'].sum() / total_decided:.1%}" if total_decided else "N/A")
c4.metric("Realised PnL", f"{summary['pnl'].sum():+,.2f}")

st.dataframe(summary, use_container_width=True, hide_index=True)

# ---------------------------------------------------------------------------
# Filters + trade list
# ---------------------------------------------------------------------------
st.divider()
col_f1, col_f2, col_f3 = st.columns([1, 1, 2])
with col_f1:
    platform = st.selectbox("Platform", ["all"] + get_all_platform_ids())
with col_f2:
    result = st.selectbox("Result", ["all", "pending", "win", "loss", "refund"])
with col_f3:
    follower = st.text_input("Follower", placeholder="0x...")

trades = get_simulated_trades(platform=platform, result=result, follower=follower.strip())
if trades.empty:
    st.info("No trades match the filters.")
else:
    display_df = trades.copy()
    display_df["follower"] = display_df["follower"].apply(short_address)
    display_df["market_question"] = display_df["market_question"].fillna("").str[:60]
    st.dataframe(
        display_df[["platform", "follower", "market_question", "outcome", "amount",
                    "entry_price", "potential_payout", "result", "pnl", "created_at"]],
        use_container_width=True, hide_index=True,
    )

    counts = trades["result"].value_counts().reset_index()
    counts.columns = ["result", "trades"]
    fig = px.pie(counts, names="result", values="trades", title="Results",
                 color="result", color_discrete_map=COLORS)
    st.plotly_chart(fig, use_container_width=True)

# ---------------------------------------------------------------------------
# Cumulative PnL
# ---------------------------------------------------------------------------
pnl = get_cumulative_pnl(platform)
if not pnl.empty:
    fig = px.line(pnl, x="resolved_at", y="cumulative_pnl", title="Cumulative Realised PnL",
                  labels={"resolved_at": "Resolved", "cumulative_pnl": "PnL"})
    st.plotly_chart(fig, use_container_width=True)
