from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Protocol

from loguru import logger

from normalize.models import PipelineResult, result_from_dict, result_to_dict
from store.db import Database


class ResultStore(Protocol):
    def load(self, instance_id: str) -> PipelineResult | None: ...

    def save(self, instance_id: str, result: PipelineResult) -> None: ...


class MemoryResultStore:
    def __init__(self) -> None:
        self._results: dict[str, PipelineResult] = {}

    def load(self, instance_id: str) -> PipelineResult | None:
        return self._results.get(instance_id)

    def save(self, instance_id: str, result: PipelineResult) -> None:
        self._results[instance_id] = result


class SqliteResultStore:
    def __init__(self, db: Database) -> None:
        self._db = db

    def load(self, instance_id: str) -> PipelineResult | None:
        with self._db.lock:
            row = self._db.conn.execute(
                "SELECT result_json FROM result_cache WHERE instance_id = ?;",
                (instance_id,),
            ).fetchone()
        if row is None:
            return None
        try:
            return result_from_dict(json.loads(row["result_json"]))
        except (ValueError, KeyError, TypeError, IndexError) as e:
            logger.warning("ignoring unreadable cached result for {}: {}", instance_id, e)
            return None

    def save(self, instance_id: str, result: PipelineResult) -> None:
        payload = json.dumps(result_to_dict(result), separators=(",", ":"), ensure_ascii=False)
        now_iso = datetime.now(tz=UTC).isoformat().replace("+00:00", "Z")
        with self._db.lock:
            self._db.conn.execute(
                """
                INSERT INTO result_cache(instance_id, result_json, computed_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(instance_id) DO UPDATE SET
                  result_json = excluded.result_json,
                  computed_at = excluded.computed_at,
                  updated_at = excluded.updated_at;
                """,
                (
                    instance_id,
                    payload,
                    result.computed_at.isoformat().replace("+00:00", "Z"),
                    now_iso,
                ),
            )
            self._db.conn.commit()
