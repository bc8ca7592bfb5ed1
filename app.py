# app.py — table view: scoreboard, dealer controls, event declaration, takeover confirm
# All scoring lives in SessionManager/ScoringEngine; this page only wires buttons to it.

import streamlit as st

# ---- Page meta (run first) ----
from supabase_client import app_env, reset_supabase_client

env_suffix = " (DEV)" if app_env() == "dev" else ""
st.set_page_config(
    page_title=f"Mahjong Score Tracker{env_suffix}",
    page_icon="🀄",
    layout="wide",
    initial_sidebar_state="expanded",
)

from typing import Dict, Optional

import pandas as pd

from cache import (
    clear_pending_event,
    get_cached_session,
    get_pending_event,
    invalidate_session_cache,
    set_pending_event,
)
from db import build_session, session_id
from engine import ResetNotice
from events import CustomPayout, DirectWin, InvalidEvent, MultiHit, SelfDraw, Special, parse_amount
from session_stats import total_scores

SESSION_ID = session_id()

mgr = get_cached_session(SESSION_ID, build_session)
if mgr is None:
    st.error("Could not load the scoring session. Check the logs.")
    st.stop()

players = mgr.players
names: Dict[int, str] = {p.id: p.name for p in players}
ids = [p.id for p in players]


def _label(pid: Optional[int]) -> str:
    return names.get(pid, "-") if pid is not None else "-"


def _submit(event) -> None:
    """Commit now, or park the event until the operator confirms the chip reset."""
    try:
        preview = mgr.preview(event)
    except InvalidEvent as e:
        st.error(str(e))
        return
    if preview is None:
        st.info("Nothing to do.")
        return
    if preview.reset_notice:
        set_pending_event(SESSION_ID, event)
    else:
        mgr.declare(event)
    st.rerun()


# ---------- Sidebar: table controls ----------
with st.sidebar:
    st.markdown("## 🀄 Table")

    dealer_pick = st.selectbox("Dealer", ids, index=ids.index(mgr.dealer_id), format_func=_label)
    if dealer_pick != mgr.dealer_id:
        mgr.select_dealer(dealer_pick)
        st.rerun()

    st.caption(f"Streak: {mgr.dealer_streak} · bonus {2 * mgr.dealer_streak - 1}")
    if st.button("➕ Bump streak", use_container_width=True):
        mgr.bump_streak()
        st.rerun()

    pop = st.toggle("Clear chips on new winner", value=mgr.pop_on_new_winner)
    if pop != mgr.pop_on_new_winner:
        mgr.set_pop_on_new_winner(pop)
        st.rerun()

    st.markdown("---")
    if st.button("↩️ Undo last", use_container_width=True, disabled=len(mgr.history) == 0):
        entry = mgr.undo()
        if entry is not None:
            st.toast(f"Undid: {entry.description}")
        st.rerun()

    if st.button("🔄 Reload from store", use_container_width=True):
        invalidate_session_cache(SESSION_ID)
        reset_supabase_client()
        st.rerun()

    with st.expander("Reset session"):
        sure = st.checkbox("I understand this cannot be undone")
        if st.button("🗑️ Reset everything", disabled=not sure):
            mgr.reset()
            clear_pending_event(SESSION_ID)
            st.rerun()

    with st.expander("Rename / reseat"):
        new_names = {pid: st.text_input(f"Seat {i + 1}", value=names[pid], key=f"name_{pid}") for i, pid in enumerate(ids)}
        if st.button("Save names"):
            mgr.rename(new_names)
            st.rerun()
        order = st.multiselect("Seat order (pick all)", ids, default=ids, format_func=_label)
        if st.button("Save seats", disabled=len(order) != len(ids)):
            mgr.reseat(order)
            st.rerun()


# ---------- Pending takeover confirmation ----------
pending = get_pending_event(SESSION_ID)
if pending is not None:
    notice: Optional[ResetNotice] = None
    try:
        preview = mgr.preview(pending)
        notice = preview.reset_notice if preview else None
    except InvalidEvent:
        notice = None

    if notice:
        winners = ", ".join(_label(w) for w in notice.winner_ids)
        st.warning(f"🀄 {winners} takes over: these uncollected chips will be cleared.")
        rows = [
            {"Player": _label(pid), **{_label(o): amt for o, amt in cells.items()}}
            for pid, cells in notice.cleared.items()
        ]
        st.dataframe(pd.DataFrame(rows).fillna(0), hide_index=True)
        c1, c2 = st.columns(2)
        if c1.button("✅ Confirm", use_container_width=True):
            mgr.declare(pending)
            clear_pending_event(SESSION_ID)
            st.rerun()
        if c2.button("✖️ Cancel", use_container_width=True):
            clear_pending_event(SESSION_ID)
            st.rerun()
        st.stop()
    clear_pending_event(SESSION_ID)


# ---------- Scoreboard ----------
st.title("🀄 Mahjong Score Tracker")

totals = total_scores(players, mgr.history.entries())
board = []
for p in players:
    row = {
        "Seat": _label(p.id) + (" 🎲" if p.id == mgr.dealer_id else "") + (" 🔥" if p.id == mgr.last_winner_id else ""),
        "Total": totals.get(p.id, 0),
    }
    for o in ids:
        if o != p.id:
            row[f"owed by {_label(o)}"] = p.claims.get(o, 0)
    board.append(row)
st.dataframe(pd.DataFrame(board).fillna(0), hide_index=True, use_container_width=True)

if mgr.history.peek() is not None:
    st.caption(f"Last: {mgr.history.peek().description}")


# ---------- Declare ----------
tab_win, tab_multi, tab_special, tab_forfeit = st.tabs(["Win", "Multi-hit", "Special", "Forfeit"])

with tab_win:
    with st.form("win_form", clear_on_submit=True):
        winner = st.selectbox("Winner", ids, format_func=_label)
        source = st.radio("From", ["zimo"] + ids, horizontal=True, format_func=lambda x: "Self-draw" if x == "zimo" else _label(x))
        value_raw = st.text_input("Fan", placeholder="e.g. 3")
        if st.form_submit_button("Declare"):
            try:
                value = parse_amount(value_raw, label="fan value")
                event = SelfDraw(winner, value) if source == "zimo" else DirectWin(winner, int(source), value)
                _submit(event)
            except InvalidEvent as e:
                st.error(str(e))

with tab_multi:
    with st.form("multi_form", clear_on_submit=True):
        loser = st.selectbox("Discarder", ids, format_func=_label, key="multi_loser")
        winners = st.multiselect("Winners (2-3, in order)", ids, format_func=_label, max_selections=3)
        values = {w: st.text_input(f"Fan for {_label(w)}", key=f"multi_val_{w}") for w in ids}
        if st.form_submit_button("Declare"):
            try:
                picked = {w: parse_amount(values[w], label=f"fan value for {_label(w)}") for w in winners}
                _submit(MultiHit(loser_id=loser, winner_ids=tuple(winners), values=picked))
            except InvalidEvent as e:
                st.error(str(e))

with tab_special:
    actor = st.selectbox("Player", ids, format_func=_label, key="special_actor")
    with st.form("special_form"):
        amount_raw = st.text_input("Amount per player", value="5")
        c1, c2 = st.columns(2)
        collect = c1.form_submit_button("Collect")
        pay = c2.form_submit_button("Pay")
        if collect or pay:
            try:
                amount = parse_amount(amount_raw)
                _submit(Special(actor, "collect" if collect else "pay", amount))
            except InvalidEvent as e:
                st.error(str(e))
    with st.form("zha_hu_form"):
        st.caption("Zha hu (false win): pay each player a chosen amount")
        raw = {o: st.text_input(f"To {_label(o)}", key=f"zha_{actor}_{o}") for o in ids if o != actor}
        if st.form_submit_button("Pay out"):
            try:
                payouts = {o: parse_amount(v, allow_zero=True, label=f"payout to {_label(o)}") for o, v in raw.items()}
                _submit(CustomPayout(actor, payouts))
            except InvalidEvent as e:
                st.error(str(e))

with tab_forfeit:
    candidates = mgr.forfeit_candidates()
    if not candidates:
        st.caption("Forfeit unlocks after 3 consecutive hits on the same player.")
    for loser_id in candidates:
        owed = mgr.ledger.get(mgr.last_winner_id, loser_id)
        if st.button(f"{_label(mgr.last_winner_id)} forfeits {owed} owed by {_label(loser_id)}", key=f"forfeit_{loser_id}"):
            mgr.forfeit(loser_id)
            st.rerun()
