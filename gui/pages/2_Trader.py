"""Trader — Per-platform rows, SDK score breakdown and simulated trades for one address."""
from __future__ import annotations

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

import streamlit as st
import plotly.express as px

from gui.components import render_score_card, tier_badge_html
from gui.db_queries import (
    get_simulated_trades,
    get_trader_platform_stats,
    get_trader_rows,
    get_trader_truth_score,
)

st.set_page_config(page_title="TruthBounty — Trader", layout="wide")
st.title(":bust_in_silhouette: Trader")

address = st.text_input("Address", placeholder="0x...").strip()
if not address:
    st.info("Enter an address to see its profile.")
    st.stop()

rows = get_trader_rows(address)
sdk_score = get_trader_truth_score(address)

if rows.empty and sdk_score is None:
    st.warning("Address not found in the leaderboard snapshot or SDK scores.")
    st.stop()

# ---------------------------------------------------------------------------
# Leaderboard rows
# ---------------------------------------------------------------------------
if not rows.empty:
    best = rows.iloc[0]
    render_score_card(address, int(best["truth_score"]), best["tier"],
                      username=best["username"], platforms=list(rows["platform"]))

    tc1, tc2, tc3, tc4 = st.columns(4)
    tc1.metric("Best Rank", f"#{int(rows['rank'].min())}")
    tc2.metric("Total Bets", f"{int(rows['total_bets'].sum()):,}")
    tc3.metric("PnL", f"{rows['pnl'].sum():+,.0f}")
    tc4.metric("Volume", f"{rows['volume'].sum():,.0f}")

    st.dataframe(
        rows.rename(columns={
            "rank": "#", "platform": "Platform", "username": "Username",
            "truth_score": "TruthScore", "tier": "Tier", "win_rate": "Win Rate",
            "total_bets": "Bets", "pnl": "PnL", "volume": "Volume", "snapshot_at": "Snapshot",
        }),
        use_container_width=True, hide_index=True,
    )

# ---------------------------------------------------------------------------
# SDK score
# ---------------------------------------------------------------------------
if sdk_score is not None:
    st.divider()
    st.subheader("SDK TruthScore")
    st.markdown(f"**{sdk_score['total_score']:,}** {tier_badge_html(sdk_score['tier'].capitalize())}",
                unsafe_allow_html=True)
    st.caption(f"Updated {sdk_score['last_updated']}")

    stats = get_trader_platform_stats(address)
    if not stats.empty:
        fig = px.bar(stats, x="platform_id", y="score", title="Score by Platform",
                     labels={"platform_id": "Platform", "score": "Score"})
        st.plotly_chart(fig, use_container_width=True)
        st.dataframe(stats, use_container_width=True, hide_index=True)

# ---------------------------------------------------------------------------
# Simulated trades as follower
# ---------------------------------------------------------------------------
trades = get_simulated_trades(follower=address)
if not trades.empty:
    st.divider()
    st.subheader("Simulated Trades")
    st.dataframe(
        trades[["platform", "market_question", "outcome", "amount", "entry_price",
                "result", "pnl", "created_at"]],
        use_container_width=True, hide_index=True,
    )
