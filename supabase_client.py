# supabase_client.py — per-session Supabase client + config lookup (env first, then st.secrets)
#
# The score tracker talks to exactly one table (SCORE_KV_TABLE, see db.py) with
# the anon key. There is no login and no service-role client: every browser
# session gets its own anon client, and each scoring table is separated only
# by its SCORE_SESSION_ID row prefix.
from __future__ import annotations

import os
import streamlit as st

from supabase import Client, ClientOptions, create_client


class SupabaseConfigError(RuntimeError):
    """No URL / anon key for the active APP_ENV; db.get_store() falls back to memory."""


def get_secret(name: str, default: str | None = None) -> str | None:
    """
    Config lookup shared by the whole app (APP_ENV, SUPABASE_*, SCORE_*).
    Environment wins so a container or test run can override secrets.toml.
    """
    v = os.getenv(name)
    if v:
        return v
    try:
        if name in st.secrets:
            v2 = st.secrets[name]
            if v2:
                return str(v2)
    except Exception:
        # no secrets.toml at all (tests, bare scripts)
        pass
    return default


def app_env() -> str:
    """'dev' or 'prod'; picks the credential pair and the page-title suffix."""
    return (get_secret("APP_ENV", "prod") or "prod").lower().strip()


def _credentials() -> tuple[str, str]:
    suffix = "DEV" if app_env() == "dev" else "PROD"
    url = get_secret(f"SUPABASE_URL_{suffix}")
    key = get_secret(f"SUPABASE_ANON_KEY_{suffix}")

    if not url or not key:
        raise SupabaseConfigError(
            f"Missing Supabase credentials. Need SUPABASE_URL_{suffix} and SUPABASE_ANON_KEY_{suffix}."
        )
    return url, key


def _make_client(url: str, key: str) -> Client:
    """
    Anon client only. Nobody signs in, so the SDK's session
    persistence and token refresh are switched off.
    """
    opts = ClientOptions(
        persist_session=False,
        auto_refresh_token=False,
    )
    return create_client(url, key, options=opts)


def get_supabase() -> Client:
    """
    Per-Streamlit-session client, built on first use.
    Raises SupabaseConfigError when credentials are missing.
    """
    if st.session_state.get("supabase_client") is not None:
        return st.session_state.supabase_client

    url, key = _credentials()
    st.session_state.supabase_client = _make_client(url, key)
    return st.session_state.supabase_client


def reset_supabase_client():
    """Drop the cached client (sidebar 'Reload from store'); the next get_supabase() rebuilds it."""
    st.session_state.pop("supabase_client", None)
