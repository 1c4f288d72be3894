"""Postgres-backed snapshot persistence."""

from __future__ import annotations

import json
import logging

from app.db import execute, fetch_all, get_conn


logger = logging.getLogger("studio.db")

_SCHEMA_READY = False

_COLUMNS = "id, page_id, site_id, name, description, created_at, thumbnail, data"


def ensure_schema() -> None:
    """Create the snapshot table and its page index when missing."""
    global _SCHEMA_READY
    with get_conn() as conn:
        execute(
            conn,
            """
            create table if not exists studio_snapshots (
                id text primary key,
                page_id text not null,
                site_id text not null,
                name text not null,
                description text null,
                created_at text not null,
                thumbnail text null,
                data jsonb not null
            );
            """,
            query_name="studio_snapshots.ensure_table",
        )
        execute(
            conn,
            "create index if not exists studio_snapshots_page_idx on studio_snapshots (page_id);",
            query_name="studio_snapshots.ensure_page_idx",
        )
    if not _SCHEMA_READY:
        logger.info("auto_migration_applied table=studio_snapshots")
        _SCHEMA_READY = True


def _row_to_snapshot(row: dict) -> dict:
    data = row.get("data")
    if isinstance(data, str):
        data = json.loads(data)
    return {
        "id": row.get("id"),
        "name": row.get("name"),
        "description": row.get("description"),
        "timestamp": row.get("created_at"),
        "data": data,
        "thumbnail": row.get("thumbnail"),
        "page_id": row.get("page_id"),
        "site_id": row.get("site_id"),
    }


class DbSnapshotBackend:
    def __init__(self, auto_migrate: bool = True) -> None:
        self._auto_migrate = auto_migrate
        self._ready = False

    def _ensure_ready(self) -> None:
        if self._auto_migrate and not self._ready:
            ensure_schema()
            self._ready = True

    def put(self, record: dict) -> None:
        self._ensure_ready()
        with get_conn() as conn:
            execute(
                conn,
                f"""
                insert into studio_snapshots ({_COLUMNS})
                values (%s,%s,%s,%s,%s,%s,%s,%s)
                on conflict (id) do update set
                  page_id=excluded.page_id,
                  site_id=excluded.site_id,
                  name=excluded.name,
                  description=excluded.description,
                  created_at=excluded.created_at,
                  thumbnail=excluded.thumbnail,
                  data=excluded.data
                """,
                [
                    record["id"],
                    record["page_id"],
                    record["site_id"],
                    record.get("name") or "",
                    record.get("description"),
                    record["timestamp"],
                    record.get("thumbnail"),
                    json.dumps(record.get("data")),
                ],
                query_name="studio_snapshots.put",
            )

    def list_by_page(self, page_id: str) -> list[dict]:
        self._ensure_ready()
        with get_conn() as conn:
            rows = fetch_all(
                conn,
                f"""
                select {_COLUMNS}
                from studio_snapshots
                where page_id=%s
                order by created_at desc
                """,
                [page_id],
                query_name="studio_snapshots.list_by_page",
            )
        return [_row_to_snapshot(r) for r in rows]

    def delete(self, snapshot_id: str) -> None:
        self._ensure_ready()
        with get_conn() as conn:
            execute(
                conn,
                "delete from studio_snapshots where id=%s",
                [snapshot_id],
                query_name="studio_snapshots.delete",
            )
