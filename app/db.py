"""Postgres helpers for the lab data layer and draft stack store."""

from __future__ import annotations

import os
import time
from contextlib import contextmanager
import contextvars
from typing import Any, Iterable

import psycopg2
import psycopg2.extras
from psycopg2.pool import SimpleConnectionPool
import threading
import logging


def get_db_url() -> str:
    url = os.getenv("SUPABASE_DB_URL") or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("SUPABASE_DB_URL or DATABASE_URL is required when USE_DB=1")
    return url


_POOL: SimpleConnectionPool | None = None
_POOL_LOCK = threading.Lock()
_logger = logging.getLogger("myco.db")
_query_logger = logging.getLogger("myco.db.query")
_DB_STATS: contextvars.ContextVar[dict | None] = contextvars.ContextVar("myco_db_stats", default=None)
_SLOW_MS = float(os.getenv("MYCO_QUERY_SLOW_MS", "200"))
_LOG_ALL = os.getenv("MYCO_QUERY_LOG", "").strip() == "1"

SCHEMA_SQL = """
create table if not exists lab_entities (
    id text primary key,
    entity_type text not null,
    data jsonb not null,
    created_at timestamptz not null default now()
);
create index if not exists lab_entities_type_idx on lab_entities (entity_type, created_at);
create table if not exists creation_draft_stacks (
    session_id text primary key,
    snapshot jsonb not null,
    created_at timestamptz not null default now(),
    updated_at timestamptz not null default now()
);
"""


def _redact_params(params: Iterable[Any] | None) -> list[Any] | None:
    if params is None:
        return None
    redacted: list[Any] = []
    for val in params:
        if isinstance(val, str) and len(val) > 80:
            redacted.append(f"{val[:40]}…{val[-10:]}")
        else:
            redacted.append(val)
    return redacted


def _log_query(query_name: str | None, params: Iterable[Any] | None, elapsed_ms: float, rowcount: int | None) -> None:
    stats = _DB_STATS.get()
    if stats is None:
        stats = {"queries": 0, "total_ms": 0.0}
        _DB_STATS.set(stats)
    # updated in place: worker threads and middleware tasks run in copied
    # contexts that share the dict installed by reset_db_stats
    stats["queries"] += 1
    stats["total_ms"] += elapsed_ms
    if not query_name and not _LOG_ALL and elapsed_ms < _SLOW_MS:
        return
    message = {
        "query": query_name or "unnamed",
        "ms": round(elapsed_ms, 2),
        "rowcount": rowcount,
        "params": _redact_params(params),
    }
    if elapsed_ms >= _SLOW_MS:
        _query_logger.warning("db_slow_query=%s", message)
    else:
        _query_logger.info("db_query=%s", message)


def reset_db_stats() -> None:
    _DB_STATS.set({"queries": 0, "total_ms": 0.0})


def get_db_stats() -> dict:
    stats = _DB_STATS.get()
    if not isinstance(stats, dict):
        return {"queries": 0, "total_ms": 0.0}
    return dict(stats)


def init_pool(minconn: int | None = None, maxconn: int | None = None) -> None:
    global _POOL
    with _POOL_LOCK:
        if _POOL is None:
            if minconn is None:
                minconn = int(os.getenv("MYCO_DB_POOL_MIN", "1"))
            if maxconn is None:
                maxconn = int(os.getenv("MYCO_DB_POOL_MAX", "10"))
            _POOL = SimpleConnectionPool(minconn, maxconn, dsn=get_db_url())


def _get_pool() -> SimpleConnectionPool:
    if _POOL is None:
        init_pool()
    return _POOL


@contextmanager
def get_conn():
    pool = _get_pool()
    conn = pool.getconn()
    _logger.debug("db_conn borrowed")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)
        _logger.debug("db_conn returned")


def fetch_one(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> dict | None:
    start = time.perf_counter()
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(sql, params or [])
        row = cur.fetchone()
        rowcount = cur.rowcount
    _log_query(query_name, params, (time.perf_counter() - start) * 1000, rowcount)
    return dict(row) if row else None


def fetch_all(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> list[dict]:
    start = time.perf_counter()
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(sql, params or [])
        rows = [dict(r) for r in cur.fetchall()]
        rowcount = cur.rowcount
    _log_query(query_name, params, (time.perf_counter() - start) * 1000, rowcount)
    return rows


def execute(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> int:
    start = time.perf_counter()
    with conn.cursor() as cur:
        cur.execute(sql, params or [])
        rowcount = cur.rowcount
    _log_query(query_name, params, (time.perf_counter() - start) * 1000, rowcount)
    return rowcount


def init_schema() -> None:
    with get_conn() as conn:
        execute(conn, SCHEMA_SQL, query_name="schema.init")
