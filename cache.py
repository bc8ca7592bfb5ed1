# cache.py — Session-scoped caching of the scoring session
#
# Streamlit reruns the script on every click; the SessionManager (and the
# store behind it) live in st.session_state so a rerun never re-hydrates
# from the DB. Invalidate explicitly to force a reload.

import streamlit as st
from typing import Callable, Optional

from session_manager import SessionManager


# ============================================================
#  SESSION MANAGER CACHE
# ============================================================

def get_cached_session(session_id: str, loader_fn: Callable[[str], SessionManager]) -> Optional[SessionManager]:
    """
    Cache the SessionManager for this session id. Only reload on explicit invalidation.

    Usage:
        from cache import get_cached_session
        mgr = get_cached_session(SESSION_ID, build_session)
    """
    if not session_id:
        return None

    cache_key = f"_cache_session_{session_id}"

    if cache_key not in st.session_state:
        try:
            st.session_state[cache_key] = loader_fn(session_id)
        except Exception as e:
            print(f"[cache] get_cached_session loader error: {e!r}")
            return None

    return st.session_state[cache_key]


def invalidate_session_cache(session_id: str) -> None:
    """
    Force re-hydration from the store on next access.
    """
    if not session_id:
        return
    cache_key = f"_cache_session_{session_id}"
    if cache_key in st.session_state:
        del st.session_state[cache_key]


# ============================================================
#  PENDING RESET NOTICE (takeover confirmation across reruns)
# ============================================================

def set_pending_event(session_id: str, event) -> None:
    st.session_state[f"_pending_event_{session_id}"] = event


def get_pending_event(session_id: str):
    return st.session_state.get(f"_pending_event_{session_id}")


def clear_pending_event(session_id: str) -> None:
    st.session_state.pop(f"_pending_event_{session_id}", None)
