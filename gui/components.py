"""Reusable UI components and constants for the TruthBounty Streamlit dashboard."""
from __future__ import annotations

import streamlit as st

from engine.scoring import get_tier

# ---------------------------------------------------------------------------
# Color scheme
# ---------------------------------------------------------------------------
COLORS = {
    "win": "#22c55e",
    "loss": "#ef4444",
    "refund": "#f59e0b",
    "pending": "#6b7280",
    "neutral": "#6b7280",
}

TIER_COLORS = {
    "Legendary": "#a855f7",
    "Diamond": "#b9f2ff",
    "Platinum": "#e5e4e2",
    "Gold": "#ffd700",
    "Silver": "#c0c0c0",
    "Bronze": "#cd7f32",
}

TIER_ORDER = ["Legendary", "Diamond", "Platinum", "Gold", "Silver", "Bronze"]


def tier_color(tier: str) -> str:
    return TIER_COLORS.get(tier, COLORS["neutral"])


def result_color(result: str) -> str:
    return COLORS.get(result, COLORS["neutral"])


def short_address(address: str) -> str:
    return address if len(address) <= 16 else f"{address[:8]}...{address[-4:]}"


def tier_badge_html(tier: str) -> str:
    return (f'<span style="background:{tier_color(tier)};color:#111;padding:2px 8px;'
            f'border-radius:4px;font-size:0.85em;font-weight:bold">{tier}</span>')


def result_badge_html(result: str) -> str:
    return (f'<span style="color:{result_color(result)};font-weight:bold">'
            f'{result.upper()}</span>')


def render_score_card(address: str, score: int, tier: str | None = None,
                      username: str | None = None, platforms: list[str] | None = None):
    tier = tier or get_tier(score)
    border = tier_color(tier)
    name = username or short_address(address)
    st.markdown(
        f"""<div style="border:2px solid {border};border-radius:8px;padding:16px;margin-bottom:12px">
        <h4 style="margin:0">{name} {tier_badge_html(tier)}</h4>
        <p style="color:#9ca3af;font-size:0.85em;margin:4px 0"><code>{address}</code></p>
        <p style="font-size:2em;margin:4px 0"><strong>{score:,}</strong>
           <span style="font-size:0.5em;color:#9ca3af">TruthScore</span></p>
        {"<p style='color:#9ca3af;margin:0'>" + ", ".join(platforms) + "</p>" if platforms else ""}
        </div>""",
        unsafe_allow_html=True,
    )
