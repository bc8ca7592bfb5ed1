# 02_History.py — event history, CSV export, player stats and payout settlement

import streamlit as st
import pandas as pd
from typing import Dict

st.set_page_config(
    page_title="History | Mahjong Score Tracker",
    page_icon="📋",
    layout="wide",
)

from cache import get_cached_session
from db import build_session, session_id
from history_export import export_file_name, history_to_csv, history_to_dataframe
from session_stats import leaderboard, player_stats, score_trajectory, settle_payouts, total_scores


# =============================================================================
# SECTIONS
# =============================================================================

def render_history(mgr) -> None:
    players = mgr.players
    entries = mgr.history.entries()

    st.markdown("### 📋 Events (newest first)")
    df = history_to_dataframe(players, entries, include_description=True)
    st.dataframe(df, hide_index=True, use_container_width=True)

    st.download_button(
        label="📥 Export to CSV",
        data=history_to_csv(players, entries),
        file_name=export_file_name(),
        mime="text/csv",
    )


def render_stats(mgr) -> None:
    players = mgr.players
    entries = mgr.history.entries()

    st.markdown("### 🏆 Leaderboard")
    cols = st.columns(len(players))
    for col, row in zip(cols, leaderboard(players, entries)):
        with col:
            st.metric(f"#{row['rank']} {row['name']}", row["total"])

    st.markdown("### 📊 Player stats")
    stats = player_stats(players, entries)
    table = pd.DataFrame(
        [
            {
                "Player": s["name"],
                "Events": s["events"],
                "Wins": s["wins"],
                "Win %": s["win_pct"],
                "Total": s["total"],
                "Average": s["average"],
                "Best": s["best"],
                "Worst": s["worst"],
                "Consistency": s["consistency"],
            }
            for s in stats.values()
        ]
    )
    st.dataframe(table, hide_index=True, use_container_width=True)

    points = score_trajectory(players, entries)
    if points:
        chart = pd.DataFrame(points).set_index("round").ffill().fillna(0)
        st.line_chart(chart)


def render_payouts(mgr) -> None:
    players = mgr.players
    totals = total_scores(players, mgr.history.entries())

    st.markdown("### 💰 Settle up")
    divisor = st.number_input("Fan per unit of money", min_value=0.0, value=1.0, step=0.5)

    adjustments: Dict[int, float] = {}
    cols = st.columns(len(players))
    for col, p in zip(cols, players):
        with col:
            adjustments[p.id] = st.number_input(f"± {p.name}", value=0.0, step=1.0, key=f"adj_{p.id}")

    payouts = settle_payouts(totals, divisor, adjustments)
    if divisor <= 0:
        st.caption("Divisor must be positive; only adjustments are counted.")
    st.dataframe(
        pd.DataFrame(
            [{"Player": p.name, "Fan": totals[p.id], "Payout": payouts[p.id]} for p in players]
        ),
        hide_index=True,
        use_container_width=True,
    )


# =============================================================================
# MAIN PAGE
# =============================================================================

def main():
    st.title("📋 History")

    mgr = get_cached_session(session_id(), build_session)
    if mgr is None:
        st.error("Could not load the scoring session. Check the logs.")
        return

    if len(mgr.history) == 0:
        st.info("No events yet. Declare a win on the table page to get started.")
        return

    tab1, tab2, tab3 = st.tabs(["📋 Events", "📊 Stats", "💰 Payouts"])
    with tab1:
        render_history(mgr)
    with tab2:
        render_stats(mgr)
    with tab3:
        render_payouts(mgr)


main()
