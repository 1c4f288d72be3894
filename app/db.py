"""Postgres helpers: a shared psycopg2 pool and timed query functions."""

from __future__ import annotations

import contextvars
import logging
import os
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterable

import psycopg2
import psycopg2.extras
from psycopg2.pool import SimpleConnectionPool


_POOL: SimpleConnectionPool | None = None
_POOL_LOCK = threading.Lock()
_logger = logging.getLogger("studio.db")
_query_logger = logging.getLogger("studio.db.query")
_DB_STATS: contextvars.ContextVar[dict | None] = contextvars.ContextVar("studio_db_stats", default=None)
_SLOW_MS = float(os.getenv("STUDIO_QUERY_SLOW_MS", "200"))
_LOG_ALL = os.getenv("STUDIO_QUERY_LOG", "").strip() == "1"


def get_db_url() -> str:
    url = os.getenv("STUDIO_DB_URL") or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("STUDIO_DB_URL or DATABASE_URL is required when USE_DB=1")
    return url


def init_pool(minconn: int | None = None, maxconn: int | None = None) -> None:
    global _POOL
    with _POOL_LOCK:
        if _POOL is not None:
            return
        if minconn is None:
            minconn = int(os.getenv("STUDIO_DB_POOL_MIN", "1"))
        if maxconn is None:
            maxconn = int(os.getenv("STUDIO_DB_POOL_MAX", "10"))
        _POOL = SimpleConnectionPool(minconn, maxconn, dsn=get_db_url())
        _logger.info("db_pool_ready min=%s max=%s", minconn, maxconn)


def close_pool() -> None:
    global _POOL
    with _POOL_LOCK:
        if _POOL is not None:
            _POOL.closeall()
            _POOL = None


def _get_pool() -> SimpleConnectionPool:
    if _POOL is None:
        init_pool()
    return _POOL


def reset_db_stats() -> None:
    _DB_STATS.set({"queries": 0, "total_ms": 0.0})


def get_db_stats() -> dict:
    stats = _DB_STATS.get()
    if not isinstance(stats, dict):
        return {"queries": 0, "total_ms": 0.0}
    return stats


def _record(elapsed_ms: float) -> None:
    # Mutated in place: worker threads run in a copied context that shares this dict.
    stats = _DB_STATS.get()
    if not isinstance(stats, dict):
        stats = {"queries": 0, "total_ms": 0.0}
        _DB_STATS.set(stats)
    stats["queries"] = stats.get("queries", 0) + 1
    stats["total_ms"] = stats.get("total_ms", 0.0) + elapsed_ms


def _redact_params(params: Iterable[Any] | None) -> list[Any] | None:
    if params is None:
        return None
    redacted: list[Any] = []
    for val in params:
        if isinstance(val, (bytes, bytearray)):
            redacted.append(f"<bytes:{len(val)}>")
        elif isinstance(val, str) and len(val) > 80:
            redacted.append(f"<str:{len(val)}>")
        else:
            redacted.append(val)
    return redacted


def _log_query(query_name: str | None, params: Iterable[Any] | None, elapsed_ms: float, rowcount: int | None) -> None:
    if elapsed_ms >= _SLOW_MS:
        _query_logger.warning(
            "db_slow_query name=%s ms=%.2f rowcount=%s params=%s",
            query_name or "unnamed",
            elapsed_ms,
            rowcount,
            _redact_params(params),
        )
    elif _LOG_ALL or query_name:
        _query_logger.info("db_query name=%s ms=%.2f rowcount=%s", query_name or "unnamed", elapsed_ms, rowcount)


@contextmanager
def get_conn():
    pool = _get_pool()
    conn = pool.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)


def _run(conn, sql: str, params: Iterable[Any] | None, query_name: str | None, read: Callable[[Any], Any], dict_rows: bool) -> Any:
    start = time.perf_counter()
    factory = psycopg2.extras.RealDictCursor if dict_rows else None
    with conn.cursor(cursor_factory=factory) as cur:
        cur.execute(sql, params or [])
        result = read(cur)
        rowcount = cur.rowcount
    elapsed_ms = (time.perf_counter() - start) * 1000
    _record(elapsed_ms)
    _log_query(query_name, params, elapsed_ms, rowcount)
    return result


def fetch_one(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> dict | None:
    def _read(cur):
        row = cur.fetchone()
        return dict(row) if row else None

    return _run(conn, sql, params, query_name, _read, True)


def fetch_all(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> list[dict]:
    return _run(conn, sql, params, query_name, lambda cur: [dict(r) for r in cur.fetchall()], True)


def execute(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> int:
    return _run(conn, sql, params, query_name, lambda cur: cur.rowcount, False)
