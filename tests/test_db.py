#!/usr/bin/env python3
"""Blob persistence: schema envelope, in-memory store, Supabase store against a fake client."""

import json
import os
import sys
import unittest

import httpx

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db import (
    SCHEMA_VERSION,
    MemoryStore,
    SupabaseStore,
    _execute_with_retry,
    load_session,
    load_state,
    save_session,
    save_state,
    unwrap,
    wrap,
)
from session_manager import STATE_KEYS, SessionManager


# ============================================================
# Fake PostgREST chain (table().select().eq().eq().limit().execute())
# ============================================================

class _Result:
    def __init__(self, data):
        self.data = data


class _FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.filters = {}
        self.op = None
        self.payload = None

    def select(self, cols):
        self.op = "select"
        return self

    def eq(self, col, val):
        self.filters[col] = val
        return self

    def limit(self, n):
        return self

    def upsert(self, payload, on_conflict=None):
        self.op = "upsert"
        self.payload = payload
        self.client.conflicts.append(on_conflict)
        return self

    def execute(self):
        self.client.calls += 1
        if self.client.failures:
            self.client.failures -= 1
            raise httpx.ConnectError("connection refused")
        rows = self.client.rows
        if self.op == "upsert":
            rows[(self.payload["session_id"], self.payload["key"])] = dict(self.payload)
            return _Result([self.payload])
        key = (self.filters.get("session_id"), self.filters.get("key"))
        return _Result([rows[key]] if key in rows else [])


class FakeSupabase:
    def __init__(self, failures=0):
        self.rows = {}
        self.failures = failures
        self.conflicts = []
        self.calls = 0

    def table(self, name):
        self.last_table = name
        return _FakeQuery(self, name)


# ============================================================
# Tests
# ============================================================

class TestEnvelope(unittest.TestCase):

    def test_wrap_unwrap(self):
        self.assertEqual(wrap([1, 2]), {"schema": SCHEMA_VERSION, "data": [1, 2]})
        self.assertEqual(unwrap(wrap({"a": 1})), {"a": 1})

    def test_unwrap_rejects_unknown_blobs(self):
        self.assertIsNone(unwrap({"schema": 99, "data": 1}))
        self.assertIsNone(unwrap([1, 2, 3]))
        self.assertIsNone(unwrap("{not json"))

    def test_unwrap_decodes_json_text(self):
        self.assertEqual(unwrap(json.dumps(wrap(5))), 5)


class TestMemoryStore(unittest.TestCase):

    def test_missing_key(self):
        self.assertIsNone(MemoryStore().get("users"))

    def test_values_are_detached(self):
        store = MemoryStore()
        blob = {"data": [1]}
        store.set("k", blob)
        blob["data"].append(2)
        self.assertEqual(store.get("k"), {"data": [1]})

    def test_unserializable_value(self):
        self.assertFalse(MemoryStore().set("k", object()))


class TestSessionState(unittest.TestCase):

    def test_save_writes_every_key_in_envelope(self):
        store = MemoryStore()
        mgr = SessionManager()
        self.assertTrue(save_state(store, mgr.export_state()))
        self.assertEqual(sorted(store.keys()), sorted(STATE_KEYS))
        self.assertEqual(store.get("dealerId"), {"schema": 1, "data": 1})

    def test_null_winner_survives(self):
        store = MemoryStore()
        save_state(store, SessionManager().export_state())
        state = load_state(store, STATE_KEYS)
        self.assertIn("currentWinnerId", state)
        self.assertIsNone(state["currentWinnerId"])

    def test_unreadable_keys_are_skipped(self):
        store = MemoryStore({"dealerId": {"schema": 7, "data": 3}, "consecutiveWins": wrap(2)})
        self.assertEqual(load_state(store, STATE_KEYS), {"consecutiveWins": 2})

    def test_load_session_round_trip(self):
        store = MemoryStore()
        mgr = load_session(store)
        mgr.self_draw(1, 3)
        mgr.direct_win(2, 3, 4)

        reloaded = load_session(store)
        self.assertEqual(reloaded.export_state(), mgr.export_state())
        reloaded.undo()
        self.assertEqual(load_session(store).ledger.get(1, 2), 4)

    def test_save_session_then_load(self):
        mgr = SessionManager(player_names=["A", "B", "C", "D"])
        mgr.self_draw(2, 1)
        store = MemoryStore()
        self.assertTrue(save_session(store, mgr))
        self.assertEqual(load_session(store).export_state(), mgr.export_state())

    def test_fresh_store_gives_defaults(self):
        mgr = load_session(MemoryStore(), player_count=3)
        self.assertEqual(mgr.seat_order, [1, 2, 3])
        self.assertEqual(len(mgr.history), 0)


class TestSupabaseStore(unittest.TestCase):

    def test_set_then_get(self):
        sb = FakeSupabase()
        store = SupabaseStore(sb, session_id="table-7", table="kv", base_sleep=0)
        self.assertTrue(store.set("users", wrap([])))
        self.assertEqual(store.get("users"), wrap([]))
        self.assertIn(("table-7", "users"), sb.rows)
        self.assertEqual(sb.conflicts, ["session_id,key"])
        self.assertEqual(sb.last_table, "kv")

    def test_value_stored_as_text(self):
        sb = FakeSupabase()
        sb.rows[("default", "dealerId")] = {"value": json.dumps(wrap(2))}
        self.assertEqual(SupabaseStore(sb, base_sleep=0).get("dealerId"), wrap(2))

    def test_sessions_are_isolated(self):
        sb = FakeSupabase()
        SupabaseStore(sb, session_id="a", base_sleep=0).set("dealerId", wrap(3))
        self.assertIsNone(SupabaseStore(sb, session_id="b", base_sleep=0).get("dealerId"))

    def test_failed_write_is_attempted_once(self):
        sb = FakeSupabase(failures=1)
        store = SupabaseStore(sb, base_sleep=0)
        self.assertFalse(store.set("dealerId", wrap(4)))
        self.assertEqual(sb.calls, 1)
        self.assertNotIn(("default", "dealerId"), sb.rows)

    def test_transient_read_errors_are_retried(self):
        sb = FakeSupabase()
        sb.rows[("default", "dealerId")] = {"value": wrap(2)}
        sb.failures = 2
        self.assertEqual(SupabaseStore(sb, base_sleep=0).get("dealerId"), wrap(2))
        self.assertEqual(sb.calls, 3)

    def test_persistent_errors_are_swallowed(self):
        sb = FakeSupabase(failures=10)
        store = SupabaseStore(sb, base_sleep=0)
        self.assertFalse(store.set("dealerId", wrap(4)))
        self.assertIsNone(store.get("dealerId"))
        self.assertEqual(sb.calls, 4)

    def test_retry_gives_up_after_tries(self):
        calls = []

        class Q:
            def execute(self):
                calls.append(1)
                raise httpx.ReadError("reset")

        with self.assertRaises(httpx.ReadError):
            _execute_with_retry(Q(), tries=3, base_sleep=0)
        self.assertEqual(len(calls), 3)

    def test_session_survives_store_outage(self):
        sb = FakeSupabase()
        mgr = load_session(SupabaseStore(sb, base_sleep=0))
        sb.failures = 100
        before = sb.calls
        res = mgr.self_draw(1, 3)
        self.assertIsNotNone(res)
        self.assertEqual(mgr.ledger.get(1, 2), 4)
        # one write attempt per key, nothing retried
        self.assertEqual(sb.calls - before, len(STATE_KEYS))


if __name__ == "__main__":
    unittest.main(verbosity=2)
