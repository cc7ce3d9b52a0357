import unittest
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from fakes import MutableTimer, StoreTestCase
from roundplay.cache import AVAILABLE, SNAPSHOT, SessionCache
from roundplay.errors import StoreUnavailableError
from roundplay.models import GameSession
from roundplay.repository import GameRepository


class TestSessionCache(unittest.TestCase):
    def setUp(self):
        self.timer = MutableTimer()
        self.cache = SessionCache(ttl_seconds=5, max_entries=16, timer=self.timer)

    def test_entries_expire_after_ttl(self):
        self.cache.set(SNAPSHOT, "s1", "value")
        self.timer.value = 4.9
        self.assertEqual(self.cache.get(SNAPSHOT, "s1"), "value")
        self.timer.value = 5.1
        self.assertIsNone(self.cache.get(SNAPSHOT, "s1"))

    def test_get_or_set_loads_once(self):
        loader = MagicMock(return_value=frozenset({1, 2}))
        self.assertEqual(self.cache.get_or_set(AVAILABLE, "s1", loader), frozenset({1, 2}))
        self.assertEqual(self.cache.get_or_set(AVAILABLE, "s1", loader), frozenset({1, 2}))
        loader.assert_called_once()
        stats = self.cache.stats()
        self.assertEqual((stats["hits"], stats["misses"]), (1, 1))
        self.assertEqual(stats["size"], 1)

    def test_none_is_not_cached(self):
        loader = MagicMock(return_value=None)
        self.cache.get_or_set(SNAPSHOT, "missing", loader)
        self.cache.get_or_set(SNAPSHOT, "missing", loader)
        self.assertEqual(loader.call_count, 2)

    def test_invalidate_drops_every_namespace(self):
        self.cache.set(SNAPSHOT, "s1", "snap")
        self.cache.set(AVAILABLE, "s1", "nums")
        self.cache.set(SNAPSHOT, "s2", "other")
        self.cache.invalidate_session("s1")
        self.assertIsNone(self.cache.get(SNAPSHOT, "s1"))
        self.assertIsNone(self.cache.get(AVAILABLE, "s1"))
        self.assertEqual(self.cache.get(SNAPSHOT, "s2"), "other")

    def test_load_bookkeeping_is_dropped_when_idle(self):
        self.cache.get_or_set(SNAPSHOT, "s1", lambda: "snap")
        self.cache.get_or_set(AVAILABLE, "s1", lambda: None)
        self.cache.invalidate_session("s1")
        self.cache.invalidate_session("s2")
        self.assertEqual(self.cache.stats()["loading"], 0)
        self.assertEqual(self.cache._key_locks, {})
        self.assertEqual(self.cache._generations, {})

    def test_failed_load_is_not_cached(self):
        def loader():
            raise RuntimeError("store down")

        with self.assertRaises(RuntimeError):
            self.cache.get_or_set(SNAPSHOT, "s1", loader)
        self.assertIsNone(self.cache.get(SNAPSHOT, "s1"))
        self.assertEqual(self.cache.stats()["loading"], 0)

    def test_load_racing_an_invalidation_is_not_stored(self):
        def loader():
            self.cache.invalidate_session("s1")
            return "stale"

        self.assertEqual(self.cache.get_or_set(SNAPSHOT, "s1", loader), "stale")
        self.assertIsNone(self.cache.get(SNAPSHOT, "s1"))


class TestGameRepository(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.session_id = self.make_engine().create_session(
            "number_pick", {"auto_start": False}, scope="chat", created_by="admin"
        ).id

    def rename(self, title, mark_dirty=True):
        with self.repository.transaction() as db:
            db.get(GameSession, self.session_id).title = title
            if mark_dirty:
                self.repository.mark_dirty(db, self.session_id)

    def test_snapshot_is_served_from_cache_within_ttl(self):
        self.repository.get_snapshot(self.session_id)
        self.rename("Untracked", mark_dirty=False)
        self.assertIsNone(self.repository.get_snapshot(self.session_id).session["title"])
        self.cache_timer.value = 10
        self.assertEqual(self.repository.get_snapshot(self.session_id).session["title"], "Untracked")

    def test_commit_invalidates_dirty_sessions(self):
        self.repository.get_snapshot(self.session_id)
        self.rename("Friday Draw")
        self.assertEqual(self.repository.get_snapshot(self.session_id).session["title"], "Friday Draw")

    def test_rollback_keeps_cache_and_store_unchanged(self):
        self.repository.get_snapshot(self.session_id)
        with self.assertRaises(RuntimeError):
            with self.repository.transaction() as db:
                db.get(GameSession, self.session_id).title = "Never"
                self.repository.mark_dirty(db, self.session_id)
                raise RuntimeError("boom")
        self.assertIsNotNone(self.cache.get(SNAPSHOT, self.session_id))
        with self.Session() as db:
            self.assertIsNone(db.get(GameSession, self.session_id).title)

    def test_snapshot_of_unknown_session(self):
        self.assertIsNone(self.repository.get_snapshot("missing"))

    def test_snapshot_to_dict(self):
        data = self.repository.get_snapshot(self.session_id).to_dict()
        self.assertEqual(data["session"]["id"], self.session_id)
        self.assertEqual(data["participants"], [])
        self.assertIsNone(data["available_numbers"])


class TestStoreUnavailable(unittest.TestCase):
    def test_operational_errors_are_mapped(self):
        db = MagicMock()
        db.info = {}
        db.commit.side_effect = OperationalError("COMMIT", {}, Exception("database is locked"))
        repository = GameRepository(MagicMock(return_value=db), SessionCache())

        with self.assertRaises(StoreUnavailableError) as ctx:
            with repository.transaction():
                pass
        self.assertTrue(ctx.exception.retryable)
        db.rollback.assert_called_once()
        db.close.assert_called_once()


if __name__ == "__main__":
    unittest.main()
