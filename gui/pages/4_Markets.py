"""Markets — Live open markets from one platform."""
from __future__ import annotations

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

import pandas as pd
import plotly.express as px
import streamlit as st

import api
from adapters import get_adapter, get_all_platform_ids

st.set_page_config(page_title="TruthBounty — Markets", layout="wide")
st.title(":chart_with_upwards_trend: Markets")


@st.cache_data(ttl=300)
def load_markets(platform: str, limit: int) -> tuple[int, dict]:
    return api.platform_markets(platform, limit)


col_f1, col_f2, col_f3 = st.columns([1, 2, 1])
with col_f1:
    platform = st.selectbox("Platform", get_all_platform_ids())
with col_f2:
    search = st.text_input("Search markets", placeholder="Type to filter by title...")
with col_f3:
    limit = st.select_slider("Markets", options=[25, 50, 100, 200], value=50)

adapter = get_adapter(platform)
with st.spinner(f"Fetching {adapter.name} markets..."):
    status, payload = load_markets(platform, limit)

if status != 200:
    st.error(f"{adapter.name}: {payload.get('error', 'unavailable')}")
    st.stop()

df = pd.DataFrame(payload["data"])
if df.empty:
    st.info(f"{adapter.name} has no open markets right now.")
    st.stop()

if search:
    df = df[df["title"].str.contains(search, case=False, na=False)]

st.caption(f"{len(df):,} markets  |  chain {payload['chain']}  |  currency {payload['currency']}  |  "
           f"bets {adapter.min_amount:g}–{adapter.max_amount:g}")

display_df = df.copy()
display_df["yesPrice"] = display_df["yesPrice"].apply(lambda x: f"{x:.2f}")
display_df["volume"] = display_df["volume"].apply(lambda x: f"{x:,.0f}")
st.dataframe(
    display_df[["id", "title", "category", "status", "yesPrice", "volume", "expiresAt"]].rename(columns={
        "id": "Market", "title": "Title", "category": "Category", "status": "Status",
        "yesPrice": "YES", "volume": "Volume", "expiresAt": "Expires",
    }),
    use_container_width=True, hide_index=True,
)

by_category = df.groupby("category")["volume"].sum().reset_index().sort_values("volume", ascending=False)
if len(by_category) > 1:
    fig = px.bar(by_category.head(15), x="category", y="volume", title="Volume by Category")
    st.plotly_chart(fig, use_container_width=True)
