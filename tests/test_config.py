#!/usr/bin/env python3
"""Config lookup: env first, dev/prod credential pair, missing-credential error."""

import os
import sys
import unittest
from unittest import mock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db import player_count, session_id
from supabase_client import SupabaseConfigError, _credentials, app_env, get_secret


class TestConfig(unittest.TestCase):

    def test_env_wins(self):
        with mock.patch.dict(os.environ, {"SCORE_KV_TABLE": "kv_test"}, clear=True):
            self.assertEqual(get_secret("SCORE_KV_TABLE", "session_kv"), "kv_test")

    def test_dev_credentials(self):
        env = {
            "APP_ENV": " DEV ",
            "SUPABASE_URL_DEV": "https://dev.example",
            "SUPABASE_ANON_KEY_DEV": "anon-dev",
            "SUPABASE_URL_PROD": "https://prod.example",
            "SUPABASE_ANON_KEY_PROD": "anon-prod",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            self.assertEqual(app_env(), "dev")
            self.assertEqual(_credentials(), ("https://dev.example", "anon-dev"))

    def test_prod_is_default(self):
        env = {"SUPABASE_URL_PROD": "https://prod.example", "SUPABASE_ANON_KEY_PROD": "anon-prod"}
        with mock.patch.dict(os.environ, env, clear=True):
            self.assertEqual(_credentials(), ("https://prod.example", "anon-prod"))

    def test_missing_credentials(self):
        with mock.patch.dict(os.environ, {"APP_ENV": "dev", "SUPABASE_URL_DEV": "https://dev.example"}, clear=True):
            with self.assertRaises(SupabaseConfigError):
                _credentials()

    def test_session_settings(self):
        with mock.patch.dict(os.environ, {"SCORE_SESSION_ID": " table-2 ", "SCORE_PLAYER_COUNT": "3"}, clear=True):
            self.assertEqual(session_id(), "table-2")
            self.assertEqual(player_count(), 3)
        with mock.patch.dict(os.environ, {"SCORE_PLAYER_COUNT": "lots"}, clear=True):
            self.assertEqual(player_count(), 4)


if __name__ == "__main__":
    unittest.main(verbosity=2)
