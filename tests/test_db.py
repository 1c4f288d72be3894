import contextvars
import os
import sys
import unittest
from unittest import mock


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app import db


def _fake_conn(rows=None, rowcount=1):
    cursor = mock.MagicMock(name="cursor")
    cursor.fetchone.return_value = rows[0] if rows else None
    cursor.fetchall.return_value = rows or []
    cursor.rowcount = rowcount
    conn = mock.MagicMock(name="conn")
    conn.cursor.return_value.__enter__.return_value = cursor
    return conn, cursor


class TestDbHelpers(unittest.TestCase):
    def setUp(self) -> None:
        db.reset_db_stats()

    def test_db_url_prefers_studio_variable(self) -> None:
        with mock.patch.dict(os.environ, {"STUDIO_DB_URL": "postgres://a", "DATABASE_URL": "postgres://b"}):
            self.assertEqual(db.get_db_url(), "postgres://a")
        with mock.patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(RuntimeError):
                db.get_db_url()

    def test_fetch_helpers_count_queries(self) -> None:
        conn, cursor = _fake_conn(rows=[{"id": "s1"}, {"id": "s2"}], rowcount=2)
        self.assertEqual(db.fetch_one(conn, "select 1", query_name="t.one"), {"id": "s1"})
        self.assertEqual(db.fetch_all(conn, "select 2"), [{"id": "s1"}, {"id": "s2"}])
        self.assertEqual(db.execute(conn, "delete", ["x"]), 2)
        cursor.execute.assert_any_call("delete", ["x"])
        self.assertEqual(db.get_db_stats()["queries"], 3)

    def test_queries_in_copied_context_count_for_caller(self) -> None:
        conn, _cursor = _fake_conn()
        contextvars.copy_context().run(db.execute, conn, "update x")
        contextvars.copy_context().run(db.fetch_all, conn, "select 1")
        self.assertEqual(db.get_db_stats()["queries"], 2)

    def test_fetch_one_none(self) -> None:
        conn, _cursor = _fake_conn(rows=[])
        self.assertIsNone(db.fetch_one(conn, "select 1"))

    def test_slow_query_logged_as_warning(self) -> None:
        conn, _cursor = _fake_conn()
        with mock.patch.object(db, "_SLOW_MS", -1.0):
            with self.assertLogs("studio.db.query", level="WARNING") as logs:
                db.execute(conn, "update x", ["y" * 100], query_name="t.slow")
        self.assertIn("db_slow_query name=t.slow", logs.output[0])
        self.assertIn("<str:100>", logs.output[0])

    def test_get_conn_commits_and_rolls_back(self) -> None:
        pool = mock.MagicMock(name="pool")
        conn = pool.getconn.return_value
        with mock.patch.object(db, "_POOL", pool):
            with db.get_conn() as got:
                self.assertIs(got, conn)
            conn.commit.assert_called_once()
            with self.assertRaises(RuntimeError):
                with db.get_conn():
                    raise RuntimeError("boom")
            conn.rollback.assert_called_once()
        self.assertEqual(pool.putconn.call_count, 2)


if __name__ == "__main__":
    unittest.main()
