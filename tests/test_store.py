from dataclasses import replace
from pathlib import Path

from health.health import instance_health, record_run_failure, record_run_success
from helpers import NOW, cap_alert
from ingest.instances import InstanceConfig
from ingest.parsers.document import parse_document
from ingest.pipeline import assemble_result
from normalize.models import MatchTier
from normalize.normalize import normalize_alert
from store.db import open_database
from store.results import MemoryResultStore, SqliteResultStore


def _result(fixtures_dir: Path):
    config = InstanceConfig(
        instance_id="town", name="town", region_id="805362004", index_url=None
    )
    root = parse_document((fixtures_dir / "cap_alert.xml").read_bytes()).root
    warnings = [
        normalize_alert(root, "fixture"),
        normalize_alert(parse_document(cap_alert("second")).root, "inline"),
    ]
    return assemble_result(warnings, config, now=NOW, sources=("fixture",))


def test_sqlite_store_round_trip(tmp_path: Path, fixtures_dir: Path) -> None:
    db = open_database(tmp_path / "nested" / "cache.db")
    store = SqliteResultStore(db)
    original = _result(fixtures_dir)

    assert store.load("town") is None
    store.save("town", original)
    loaded = store.load("town")

    assert loaded is not None
    assert loaded.count == original.count == 2
    assert loaded.tier is MatchTier.EXACT
    assert loaded.tier_counts == original.tier_counts
    assert loaded.computed_at == NOW
    assert loaded.filter_config == original.filter_config
    assert [w.identifier for w in loaded.warnings] == [
        w.identifier for w in original.warnings
    ]
    first = loaded.warnings[0]
    assert first.infos[0].onset == original.warnings[0].infos[0].onset
    assert first.infos[0].areas == original.warnings[0].infos[0].areas
    assert first.infos[0].parameters == original.warnings[0].infos[0].parameters


def test_sqlite_store_overwrites_previous_result(tmp_path: Path, fixtures_dir: Path) -> None:
    store = SqliteResultStore(open_database(tmp_path / "cache.db"))
    original = _result(fixtures_dir)
    store.save("town", original)
    store.save("town", replace(original, warnings=original.warnings[:1], count=1))
    assert store.load("town").count == 1


def test_sqlite_store_ignores_unreadable_row(tmp_path: Path) -> None:
    db = open_database(tmp_path / "cache.db")
    with db.lock:
        db.conn.execute(
            "INSERT INTO result_cache(instance_id, result_json, computed_at, updated_at) "
            "VALUES ('town', '{not json', '', '');"
        )
        db.conn.commit()
    assert SqliteResultStore(db).load("town") is None


def test_memory_store_keeps_results_per_instance(fixtures_dir: Path) -> None:
    store = MemoryResultStore()
    result = _result(fixtures_dir)
    store.save("a", result)
    assert store.load("a") is result
    assert store.load("b") is None


def test_migrations_are_idempotent(tmp_path: Path) -> None:
    path = tmp_path / "cache.db"
    open_database(path).conn.close()
    db = open_database(path)
    rows = db.conn.execute("SELECT version FROM schema_migrations;").fetchall()
    assert [r["version"] for r in rows] == [1]


def test_health_counts_failures_until_success() -> None:
    db = open_database(Path(":memory:"))
    assert record_run_failure(
        db, instance_id="town", at=NOW, error="timeout", stale_delivered=True
    ) == 1
    assert record_run_failure(
        db, instance_id="town", at=NOW, error="timeout", stale_delivered=False
    ) == 2

    [row] = instance_health(db)
    assert row["consecutive_failures"] == 2
    assert row["error_count"] == 2
    assert row["last_error"] == "timeout"
    assert row["last_stale"] is False
    assert row["last_success_at"] is None

    record_run_success(db, instance_id="town", at=NOW, count=3)
    [row] = instance_health(db)
    assert row["consecutive_failures"] == 0
    assert row["error_count"] == 2
    assert row["success_count"] == 1
    assert row["last_count"] == 3
    assert row["last_error"] is None
    assert row["last_success_at"] == "2026-10-19T12:00:00Z"
