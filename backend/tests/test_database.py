import asyncio
import json
from dataclasses import replace
from unittest.mock import patch

import pytest

from listing_optimizer.libs import database
from listing_optimizer.libs.database import (
    changed_fields,
    count_optimizations,
    create_optimization,
    get_all_optimizations,
    get_change_history,
    get_history,
    get_optimization_by_id,
    get_optimizations_by_asin,
)
from listing_optimizer.libs.models import OptimizationRecord


@pytest.fixture
def record(listing, rewrite) -> OptimizationRecord:
    return OptimizationRecord.from_pipeline(listing, rewrite)


def _save(record: OptimizationRecord) -> int:
    return asyncio.run(create_optimization(record))


class TestBackendSelection:
    def test_sqlite_by_default(self, monkeypatch):
        monkeypatch.delenv("STORAGE_BACKEND", raising=False)
        monkeypatch.delenv("DATABASE_URL", raising=False)
        assert database._get_storage_backend() == "sqlite"

    def test_postgres_when_database_url_set(self, monkeypatch):
        monkeypatch.delenv("STORAGE_BACKEND", raising=False)
        monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/listings")
        assert database._get_storage_backend() == "postgres"

    def test_explicit_backend_wins(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "SQLite")
        monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/listings")
        assert database._get_storage_backend() == "sqlite"

    def test_postgres_placeholders(self):
        assert database._sql("postgres", "SELECT * FROM t WHERE a = ? AND b = ?") == "SELECT * FROM t WHERE a = %s AND b = %s"
        assert database._sql("sqlite", "SELECT ?") == "SELECT ?"

    def test_unknown_backend(self):
        with pytest.raises(RuntimeError, match="Unsupported STORAGE_BACKEND"):
            database._connect("sheets")


class TestCreateAndRead:
    def test_round_trip(self, sqlite_db, record):
        optimization_id = _save(record)
        stored = asyncio.run(get_optimization_by_id(optimization_id))

        assert stored.id == optimization_id
        assert stored.asin == "B0ABCDEFGH"
        assert stored.original_bullets == record.original_bullets
        assert stored.optimized_bullets == record.optimized_bullets
        assert stored.suggested_keywords == record.suggested_keywords
        assert stored.optimized_description == record.optimized_description
        assert stored.created_at is not None
        assert stored.created_at == stored.updated_at

    def test_ids_increase(self, sqlite_db, record):
        first = _save(record)
        second = _save(record)
        assert second > first

    def test_missing_id(self, sqlite_db):
        assert asyncio.run(get_optimization_by_id(999)) is None

    def test_by_asin_newest_first(self, sqlite_db, record):
        first = _save(record)
        second = _save(replace(record, optimized_title="Second run title for the same product listing page"))
        _save(replace(record, asin="B0ZZZZZZZZ"))

        records = asyncio.run(get_optimizations_by_asin("B0ABCDEFGH"))

        assert [r.id for r in records] == [second, first]

    def test_list_limit(self, sqlite_db, record):
        ids = [_save(record) for _ in range(3)]

        assert [r.id for r in asyncio.run(get_all_optimizations(limit=2))] == [ids[2], ids[1]]
        assert len(asyncio.run(get_all_optimizations(limit=1000))) == 3
        assert asyncio.run(count_optimizations()) == 3

    def test_history_view(self, sqlite_db, record):
        optimization_id = _save(record)

        (item,) = asyncio.run(get_history("B0ABCDEFGH"))

        assert item.id == optimization_id
        assert item.optimized_bullets == record.optimized_bullets
        assert item.suggested_keywords == record.suggested_keywords
        assert asyncio.run(get_history("B0ZZZZZZZZ")) == []


class TestChangeHistory:
    def test_changed_fields(self, record):
        changes = changed_fields(replace(record, optimized_description=record.original_description))
        assert [name for name, _, _ in changes] == ["title", "bullets"]
        _, old, new = changes[1]
        assert json.loads(old) == record.original_bullets
        assert json.loads(new) == record.optimized_bullets

    def test_change_rows_written_with_record(self, sqlite_db, record):
        optimization_id = _save(record)

        changes = asyncio.run(get_change_history("B0ABCDEFGH"))

        assert {c.field_name for c in changes} == {"title", "bullets", "description"}
        assert all(c.optimization_id == optimization_id for c in changes)
        title = next(c for c in changes if c.field_name == "title")
        assert title.old_value == record.original_title
        assert title.new_value == record.optimized_title

    def test_failed_insert_leaves_nothing(self, sqlite_db, record):
        with patch.object(database, "changed_fields", return_value=[("title", object(), "new")]):
            with pytest.raises(Exception):
                _save(record)

        assert asyncio.run(count_optimizations()) == 0
        assert asyncio.run(get_change_history("B0ABCDEFGH")) == []


class TestMalformedStoredLists:
    def _insert_raw(self, **columns):
        conn = database._sqlite_connect()
        try:
            database._sqlite_ensure_schema(conn)
            with conn:
                cur = conn.execute(
                    f"INSERT INTO optimizations ({', '.join(columns)}) VALUES ({','.join('?' * len(columns))})",
                    tuple(columns.values()),
                )
            return cur.lastrowid
        finally:
            conn.close()

    def test_reads_never_fail(self, sqlite_db):
        optimization_id = self._insert_raw(
            asin="B0ABCDEFGH",
            original_title="Widget Pro 3000",
            original_bullets='\u200b["a", "b"]\ufeff',
            optimized_bullets='["a", "b"',
            suggested_keywords="not json",
            created_at="2024-01-01T00:00:00+00:00",
        )

        stored = asyncio.run(get_optimization_by_id(optimization_id))

        assert stored.original_bullets == ["a", "b"]
        assert stored.optimized_bullets == []
        assert stored.suggested_keywords == []
        assert stored.optimized_title == ""
        assert stored.updated_at is None

    def test_listing_survives_bad_rows(self, sqlite_db, record):
        self._insert_raw(asin="B0ABCDEFGH", optimized_bullets="[broken", created_at="2024-01-01T00:00:00+00:00")
        _save(record)

        records = asyncio.run(get_all_optimizations())

        assert len(records) == 2
        assert records[1].optimized_bullets == []
