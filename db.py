# db.py — key-value blob persistence for the scoring session (Supabase or in-memory)

from __future__ import annotations

from typing import Any, Dict, Optional
import datetime as dt
import json  # needed to decode jsonb coming back as strings

import time
import httpx

from session_manager import STATE_KEYS, SessionManager
from supabase_client import SupabaseConfigError, get_secret, get_supabase

# Every blob is wrapped as {"schema": SCHEMA_VERSION, "data": payload}.
SCHEMA_VERSION = 1

DEFAULT_TABLE = "session_kv"
DEFAULT_SESSION_ID = "default"

def _sid(x: Any) -> str:
    """Safe id normalize (None -> '')."""
    if x is None:
        return ""
    return str(x).strip()

def _now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()

def _execute_with_retry(q, *, tries: int = 3, base_sleep: float = 0.2):
    """
    Retry wrapper for transient PostgREST/httpx read/connect hiccups.
    q must be a PostgREST query object that supports .execute().
    """
    last_err = None
    for attempt in range(tries):
        try:
            return q.execute()
        except (httpx.ReadError, httpx.ConnectError, httpx.TimeoutException) as e:
            last_err = e
            time.sleep(base_sleep * (2 ** attempt))  # 0.2, 0.4, 0.8
    raise last_err  # bubble after retries

# ---------- SCHEMA ENVELOPE ----------

def wrap(payload: Any) -> Dict[str, Any]:
    return {"schema": SCHEMA_VERSION, "data": payload}

def unwrap(blob: Any, key: str = "") -> Optional[Any]:
    """
    Returns the payload, or None for a blob we cannot read
    (unknown schema, not an envelope, undecodable string).
    """
    if isinstance(blob, str):
        try:
            blob = json.loads(blob)
        except Exception:
            print(f"[unwrap] failed to json.loads blob for key={key!r}; ignoring.")
            return None
    if not isinstance(blob, dict) or "data" not in blob:
        print(f"[unwrap] key={key!r} is not a schema envelope; ignoring.")
        return None
    if blob.get("schema") != SCHEMA_VERSION:
        print(f"[unwrap] key={key!r} has schema {blob.get('schema')!r}, expected {SCHEMA_VERSION}; ignoring.")
        return None
    return blob["data"]

# ---------- STORES ----------

class BlobStore:
    """
    String-keyed blob store. get() -> blob or None when absent;
    set() -> True on success. Implementations never raise on I/O faults.
    """
    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, blob: Any) -> bool:
        raise NotImplementedError


class MemoryStore(BlobStore):
    """Process-local store (tests, or when Supabase isn't configured)."""
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        for k, v in (initial or {}).items():
            self.set(k, v)

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, blob: Any) -> bool:
        try:
            # stored as JSON text so callers can never alias live state
            self._data[key] = json.dumps(blob)
            return True
        except (TypeError, ValueError) as e:
            print(f"[MemoryStore.set] error while saving key={key!r}: {e!r}")
            return False

    def keys(self):
        return list(self._data.keys())


class SupabaseStore(BlobStore):
    """
    One row per (session_id, key) in a Supabase table:

      session_id  text
      key         text
      value       jsonb
      updated_at  timestamptz
      primary key (session_id, key)
    """
    def __init__(self, sb, session_id: str = DEFAULT_SESSION_ID, table: str = DEFAULT_TABLE, base_sleep: float = 0.2):
        self._sb = sb
        self._session_id = _sid(session_id) or DEFAULT_SESSION_ID
        self._table = table or DEFAULT_TABLE
        self._base_sleep = float(base_sleep)

    def get(self, key: str) -> Optional[Any]:
        try:
            res = _execute_with_retry(
                self._sb.table(self._table)
                .select("value")
                .eq("session_id", self._session_id)
                .eq("key", key)
                .limit(1),
                base_sleep=self._base_sleep,
            )
        except Exception as e:
            print(f"[SupabaseStore.get] error for key={key!r}: {e!r}")
            return None

        if not res.data:
            return None
        value = res.data[0].get("value")
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except Exception:
                print(f"[SupabaseStore.get] failed to json.loads value for key={key!r}; ignoring.")
                return None
        return value

    def set(self, key: str, blob: Any) -> bool:
        payload = {
            "session_id": self._session_id,
            "key": key,
            "value": blob,
            "updated_at": _now_iso(),
        }
        # writes are single-attempt; only reads go through _execute_with_retry
        try:
            self._sb.table(self._table).upsert(payload, on_conflict="session_id,key").execute()
            return True
        except Exception as e:
            print(f"[SupabaseStore.set] error while saving key={key!r}: {e!r}")
            return False

# ---------- SESSION STATE ----------

def save_state(store: BlobStore, state: Dict[str, Any]) -> bool:
    """
    Write every logical key of SessionManager.export_state().
    Best-effort: a failing key is logged and the rest are still written.
    """
    if store is None or not isinstance(state, dict):
        print(f"[save_state] invalid args store={store!r} type(state)={type(state)}")
        return False

    ok = True
    for key, payload in state.items():
        try:
            if not store.set(key, wrap(payload)):
                ok = False
        except Exception as e:
            print(f"[save_state] error while saving key={key!r}: {e!r}")
            ok = False
    return ok

def load_state(store: BlobStore, keys) -> Dict[str, Any]:
    """
    Read the given logical keys. Absent or unreadable keys are left out so
    SessionManager.import_state keeps its defaults for them.
    """
    out: Dict[str, Any] = {}
    if store is None:
        return out
    for key in keys:
        try:
            blob = store.get(key)
        except Exception as e:
            print(f"[load_state] error for key={key!r}: {e!r}")
            continue
        if blob is None:
            continue
        payload = unwrap(blob, key)
        if payload is not None or _is_null_envelope(blob):
            out[key] = payload
    return out

def _is_null_envelope(blob: Any) -> bool:
    # currentWinnerId is legitimately null
    return isinstance(blob, dict) and blob.get("schema") == SCHEMA_VERSION and blob.get("data", 0) is None

def save_session(store: BlobStore, mgr: SessionManager) -> bool:
    return save_state(store, mgr.export_state())

def persist_to(store: BlobStore):
    """Callback for SessionManager(persist=...)."""
    def _persist(state: Dict[str, Any]) -> None:
        save_state(store, state)
    return _persist

def load_session(store: BlobStore, player_count: int = 4) -> SessionManager:
    """
    Build a SessionManager hydrated from the store and wired to save back to it.
    Keys that are missing (fresh store) keep their defaults.
    """
    mgr = SessionManager(player_count=player_count)
    mgr.import_state(load_state(store, STATE_KEYS))
    mgr.attach_persist(persist_to(store))
    return mgr

# ---------- STORE SELECTION ----------

def session_id() -> str:
    return _sid(get_secret("SCORE_SESSION_ID", DEFAULT_SESSION_ID)) or DEFAULT_SESSION_ID

def player_count() -> int:
    try:
        n = int(get_secret("SCORE_PLAYER_COUNT", "4") or 4)
    except ValueError:
        print("[player_count] SCORE_PLAYER_COUNT is not an integer; using 4")
        return 4
    return n if n >= 2 else 4

def get_store(sid: Optional[str] = None) -> BlobStore:
    """
    Supabase when credentials are configured for the active APP_ENV,
    otherwise an in-memory store (state lives only as long as the process).
    """
    table = get_secret("SCORE_KV_TABLE", DEFAULT_TABLE) or DEFAULT_TABLE
    try:
        return SupabaseStore(get_supabase(), session_id=sid or session_id(), table=table)
    except SupabaseConfigError as e:
        print(f"[get_store] Supabase not configured, using in-memory store: {e}")
        return MemoryStore()

def build_session(sid: str) -> SessionManager:
    """Loader for cache.get_cached_session: hydrate once per browser session."""
    return load_session(get_store(sid), player_count())
