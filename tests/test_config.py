import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from roundplay.bootstrap import build_engine
from roundplay.config import Settings, WebhookSettings, load_settings
from roundplay.providers import ParticipantRef


@patch("roundplay.config.load_dotenv")
class TestLoadSettings(unittest.TestCase):
    def test_defaults(self, mock_load_dotenv):
        with patch.dict(os.environ, {}, clear=True):
            settings = load_settings()
        mock_load_dotenv.assert_called_once()
        self.assertTrue(settings.database_url.startswith("sqlite:///"))
        self.assertEqual(settings.log_level, "INFO")
        self.assertFalse(settings.webhooks.enabled)
        self.assertEqual(settings.webhooks.max_attempts, 3)
        self.assertEqual(settings.webhooks.retention_days, 7)
        self.assertEqual(settings.games.pick_number_selection_seconds, 300)
        self.assertEqual(settings.games.quiz_winner_count, 3)
        self.assertEqual(settings.cache.ttl_seconds, 5.0)

    def test_environment_overrides(self, mock_load_dotenv):
        env = {
            "DB_URL": "postgresql+psycopg://game:pw@db/rounds",
            "LOG_LEVEL": "debug",
            "WEBHOOKS_ENABLED": "true",
            "WEBHOOK_SECRET": "s3cret",
            "WEBHOOK_URL": "https://hooks.example.com/all",
            "WEBHOOK_URL_SESSION_ENDED": "https://hooks.example.com/ended",
            "WEBHOOK_MAX_ATTEMPTS": "5",
            "WEBHOOK_RETRY_DELAY": "0.25",
            "PICK_NUMBER_MAX_PLAYERS": "40",
            "CACHE_TTL_SECONDS": "2.5",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = load_settings()
        self.assertEqual(settings.database_url, env["DB_URL"])
        self.assertEqual(settings.log_level, "DEBUG")
        self.assertTrue(settings.webhooks.enabled)
        self.assertEqual(settings.webhooks.secret, "s3cret")
        self.assertEqual(settings.webhooks.max_attempts, 5)
        self.assertEqual(settings.webhooks.retry_delay, 0.25)
        self.assertEqual(settings.webhooks.url_for("session.ended"), "https://hooks.example.com/ended")
        self.assertEqual(settings.webhooks.url_for("player.joined"), "https://hooks.example.com/all")
        self.assertEqual(settings.games.pick_number_max_players, 40)
        self.assertEqual(settings.cache.ttl_seconds, 2.5)

    def test_malformed_numbers_are_rejected(self, mock_load_dotenv):
        with patch.dict(os.environ, {"WEBHOOK_MAX_ATTEMPTS": "many"}, clear=True):
            with self.assertRaises(ValueError):
                load_settings()


class TestWebhookSettings(unittest.TestCase):
    def test_url_for_without_endpoints(self):
        self.assertIsNone(WebhookSettings().url_for("session.created"))
        self.assertIsNone(Settings().webhooks.default_url)


class TestBootstrap(unittest.TestCase):
    def test_build_engine_from_settings(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            url = f"sqlite:///{Path(tmpdir) / 'boot.db'}"
            game = build_engine(Settings(database_url=url), create_tables=True)
            try:
                session_id = game.create_session(
                    "number_pick", {"auto_start": False}, scope="chat", created_by="admin"
                ).id
                self.assertTrue(game.join(session_id, ParticipantRef("u1")).ok)
                self.assertIsNone(game.dispatcher.emit("session.created", {}))
            finally:
                game.shutdown()
                game.repository.dispose()


if __name__ == "__main__":
    unittest.main()
