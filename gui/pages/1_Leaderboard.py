"""Leaderboard — Unified TruthScore ranking from the latest snapshot."""
from __future__ import annotations

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

import streamlit as st
import plotly.express as px

from adapters import get_all_platform_ids
from gui.components import TIER_COLORS, TIER_ORDER, short_address
from gui.db_queries import (
    get_score_distribution,
    get_score_percentiles,
    get_tier_distribution,
    get_traders,
)

st.set_page_config(page_title="TruthBounty — Leaderboard", layout="wide")
st.title(":trophy: Leaderboard")

# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------
col_f1, col_f2, col_f3 = st.columns([3, 1, 1])
with col_f1:
    search = st.text_input("Search by address or username", placeholder="0x...")
with col_f2:
    platform = st.selectbox("Platform", ["all"] + get_all_platform_ids())
with col_f3:
    tier = st.selectbox("Tier", ["all"] + TIER_ORDER)

PAGE_SIZE = 50
if "leaderboard_page" not in st.session_state:
    st.session_state.leaderboard_page = 0

offset = st.session_state.leaderboard_page * PAGE_SIZE
df, total = get_traders(platform=platform, search=search, tier=tier,
                        limit=PAGE_SIZE, offset=offset)

total_pages = max(1, (total + PAGE_SIZE - 1) // PAGE_SIZE)
st.caption(f"Showing {min(offset + 1, total)}–{min(offset + PAGE_SIZE, total)} of {total:,} traders")

nav_c1, nav_c2, nav_c3 = st.columns([1, 2, 1])
with nav_c1:
    if st.button("Previous", disabled=st.session_state.leaderboard_page <= 0):
        st.session_state.leaderboard_page -= 1
        st.rerun()
with nav_c3:
    if st.button("Next", disabled=st.session_state.leaderboard_page >= total_pages - 1):
        st.session_state.leaderboard_page += 1
        st.rerun()

# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------
if df.empty:
    st.info("No traders in the snapshot yet. Run `python main.py run` to collect one.")
    st.stop()

display_df = df.copy()
display_df["trader"] = display_df.apply(
    lambda r: r["username"] or short_address(r["address"]), axis=1,
)
display_df["win_rate"] = display_df["win_rate"].apply(lambda x: f"{x:.1f}%")
display_df["pnl"] = display_df["pnl"].apply(lambda x: f"{x:+,.0f}")
display_df["volume"] = display_df["volume"].apply(lambda x: f"{x:,.0f}")
st.dataframe(
    display_df[["rank", "trader", "platform", "truth_score", "tier", "win_rate",
                "total_bets", "pnl", "volume"]].rename(columns={
                    "rank": "#", "trader": "Trader", "platform": "Platform",
                    "truth_score": "TruthScore", "tier": "Tier", "win_rate": "Win Rate",
                    "total_bets": "Bets", "pnl": "PnL", "volume": "Volume",
                }),
    use_container_width=True, hide_index=True,
)
st.caption(f"Snapshot taken {df['snapshot_at'].iloc[0]}")

# ---------------------------------------------------------------------------
# Distributions
# ---------------------------------------------------------------------------
pct = get_score_percentiles(platform)
if pct:
    p1, p2, p3, p4 = st.columns(4)
    p1.metric("Mean Score", f"{pct['mean']:,.0f}")
    p2.metric("Median", f"{pct['median']:,.0f}")
    p3.metric("Top 10%", f"{pct['p90']:,.0f}+")
    p4.metric("Top 1%", f"{pct['p99']:,.0f}+")

st.divider()
chart_c1, chart_c2 = st.columns(2)

with chart_c1:
    tiers = get_tier_distribution()
    if not tiers.empty:
        fig = px.bar(
            tiers, x="tier", y="traders", color="tier",
            category_orders={"tier": TIER_ORDER},
            color_discrete_map=TIER_COLORS,
            title="Traders per Tier",
        )
        fig.update_layout(showlegend=False)
        st.plotly_chart(fig, use_container_width=True)

with chart_c2:
    scores = get_score_distribution(platform)
    if not scores.empty:
        fig = px.histogram(scores, x="truth_score", color="platform", nbins=40,
                           title="TruthScore Distribution")
        st.plotly_chart(fig, use_container_width=True)
