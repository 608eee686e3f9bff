from __future__ import annotations

from datetime import datetime

from store.db import Database


def _iso(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


def _ensure_row(db: Database, instance_id: str) -> None:
    db.conn.execute(
        "INSERT OR IGNORE INTO instance_health(instance_id) VALUES (?);",
        (instance_id,),
    )


def record_run_success(
    db: Database,
    *,
    instance_id: str,
    at: datetime,
    count: int,
) -> None:
    now_iso = _iso(at)
    with db.lock:
        _ensure_row(db, instance_id)
        db.conn.execute(
            """
            UPDATE instance_health
            SET last_run_at = ?,
                last_success_at = ?,
                consecutive_failures = 0,
                last_error = NULL,
                success_count = success_count + 1,
                last_count = ?,
                last_stale = 0
            WHERE instance_id = ?;
            """,
            (now_iso, now_iso, count, instance_id),
        )
        db.conn.commit()


def record_run_failure(
    db: Database,
    *,
    instance_id: str,
    at: datetime,
    error: str,
    stale_delivered: bool,
) -> int:
    now_iso = _iso(at)
    with db.lock:
        _ensure_row(db, instance_id)
        db.conn.execute(
            """
            UPDATE instance_health
            SET last_run_at = ?,
                last_error_at = ?,
                last_error = ?,
                consecutive_failures = consecutive_failures + 1,
                error_count = error_count + 1,
                last_stale = ?
            WHERE instance_id = ?;
            """,
            (now_iso, now_iso, error, int(stale_delivered), instance_id),
        )
        row = db.conn.execute(
            "SELECT consecutive_failures FROM instance_health WHERE instance_id = ?;",
            (instance_id,),
        ).fetchone()
        db.conn.commit()
    return int(row["consecutive_failures"])


def instance_health(db: Database) -> list[dict]:
    with db.lock:
        rows = db.conn.execute(
            "SELECT * FROM instance_health ORDER BY instance_id;"
        ).fetchall()
    return [
        {
            "instance_id": str(r["instance_id"]),
            "last_run_at": r["last_run_at"],
            "last_success_at": r["last_success_at"],
            "last_error_at": r["last_error_at"],
            "last_error": r["last_error"],
            "consecutive_failures": int(r["consecutive_failures"]),
            "success_count": int(r["success_count"]),
            "error_count": int(r["error_count"]),
            "last_count": r["last_count"],
            "last_stale": bool(r["last_stale"]),
        }
        for r in rows
    ]
