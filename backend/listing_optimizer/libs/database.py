import os
import json
import sqlite3
import asyncio
import logging
from typing import List, Dict, Any, Optional, Tuple
from pathlib import Path
from datetime import datetime, timezone

from listing_optimizer.libs.config import _ensure_env_loaded
from listing_optimizer.libs.json_recovery import safe_json_list
from listing_optimizer.libs.models import ChangeRecord, HistoryItem, OptimizationRecord

logger = logging.getLogger(__name__)

MAX_LISTED = 100


# ---- Storage backend selection ----
def _get_storage_backend() -> str:
    _ensure_env_loaded()
    sb = os.getenv("STORAGE_BACKEND")
    if sb:
        return sb.lower()
    if os.getenv("DATABASE_URL"):
        return "postgres"
    return "sqlite"


# ---- SQLite helpers ----
def _sqlite_db_path() -> Path:
    override = os.getenv("SQLITE_PATH")
    if override:
        return Path(override)
    root = Path(__file__).resolve().parents[2]
    return root / "data.sqlite3"


def _sqlite_connect() -> sqlite3.Connection:
    path = _sqlite_db_path()
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.row_factory = sqlite3.Row
    return conn


def _sqlite_ensure_schema(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS optimizations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            asin TEXT NOT NULL,
            original_title TEXT,
            original_bullets TEXT,
            original_description TEXT,
            optimized_title TEXT,
            optimized_bullets TEXT,
            optimized_description TEXT,
            suggested_keywords TEXT,
            created_at TEXT,
            updated_at TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS optimization_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            asin TEXT NOT NULL,
            optimization_id INTEGER NOT NULL REFERENCES optimizations(id),
            field_name TEXT,
            old_value TEXT,
            new_value TEXT,
            changed_at TEXT
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_optimizations_asin ON optimizations (asin)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_history_asin ON optimization_history (asin)")
    conn.commit()


# ---- Postgres helpers ----
def _pg_connect():
    import psycopg2  # type: ignore
    _ensure_env_loaded()
    dsn = os.getenv("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL is not set")
    return psycopg2.connect(dsn)


def _pg_ensure_schema(conn) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS optimizations (
            id SERIAL PRIMARY KEY,
            asin TEXT NOT NULL,
            original_title TEXT,
            original_bullets TEXT,
            original_description TEXT,
            optimized_title TEXT,
            optimized_bullets TEXT,
            optimized_description TEXT,
            suggested_keywords TEXT,
            created_at TEXT,
            updated_at TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS optimization_history (
            id SERIAL PRIMARY KEY,
            asin TEXT NOT NULL,
            optimization_id INTEGER NOT NULL REFERENCES optimizations(id),
            field_name TEXT,
            old_value TEXT,
            new_value TEXT,
            changed_at TEXT
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_optimizations_asin ON optimizations (asin)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_history_asin ON optimization_history (asin)")
    conn.commit()


def _connect(backend: str):
    if backend == "postgres":
        conn = _pg_connect()
        _pg_ensure_schema(conn)
        return conn
    if backend == "sqlite":
        conn = _sqlite_connect()
        _sqlite_ensure_schema(conn)
        return conn
    raise RuntimeError(f"Unsupported STORAGE_BACKEND: {backend}")


def _sql(backend: str, query: str) -> str:
    """Queries are written with ``?`` placeholders; psycopg2 expects ``%s``."""
    return query.replace("?", "%s") if backend == "postgres" else query


# ---- Row conversion ----
OPTIMIZATION_COLUMNS = [
    "asin",
    "original_title",
    "original_bullets",
    "original_description",
    "optimized_title",
    "optimized_bullets",
    "optimized_description",
    "suggested_keywords",
    "created_at",
    "updated_at",
]

HISTORY_COLUMNS = [
    "id",
    "asin",
    "optimized_title",
    "optimized_bullets",
    "optimized_description",
    "suggested_keywords",
    "created_at",
]

CHANGE_COLUMNS = ["asin", "optimization_id", "field_name", "old_value", "new_value", "changed_at"]


def _iso(val):
    if isinstance(val, datetime):
        return val.isoformat()
    return val


def _parse_ts(val) -> Optional[datetime]:
    if isinstance(val, datetime):
        return val
    if not val:
        return None
    try:
        return datetime.fromisoformat(str(val))
    except ValueError:
        return None


def _record_to_dict(record: OptimizationRecord, now: datetime) -> Dict[str, Any]:
    return {
        "asin": record.asin,
        "original_title": record.original_title,
        "original_bullets": json.dumps(list(record.original_bullets)),
        "original_description": record.original_description,
        "optimized_title": record.optimized_title,
        "optimized_bullets": json.dumps(list(record.optimized_bullets)),
        "optimized_description": record.optimized_description,
        "suggested_keywords": json.dumps(list(record.suggested_keywords)),
        "created_at": _iso(record.created_at or now),
        "updated_at": _iso(record.updated_at or now),
    }


def _row_to_record(row: Dict[str, Any]) -> OptimizationRecord:
    return OptimizationRecord(
        id=row.get("id"),
        asin=row.get("asin") or "",
        original_title=row.get("original_title") or "",
        original_bullets=safe_json_list(row.get("original_bullets")),
        original_description=row.get("original_description") or "",
        optimized_title=row.get("optimized_title") or "",
        optimized_bullets=safe_json_list(row.get("optimized_bullets")),
        optimized_description=row.get("optimized_description") or "",
        suggested_keywords=safe_json_list(row.get("suggested_keywords")),
        created_at=_parse_ts(row.get("created_at")),
        updated_at=_parse_ts(row.get("updated_at")),
    )


def _row_to_history(row: Dict[str, Any]) -> HistoryItem:
    return HistoryItem(
        id=row.get("id"),
        asin=row.get("asin") or "",
        optimized_title=row.get("optimized_title") or "",
        optimized_bullets=safe_json_list(row.get("optimized_bullets")),
        optimized_description=row.get("optimized_description") or "",
        suggested_keywords=safe_json_list(row.get("suggested_keywords")),
        created_at=_parse_ts(row.get("created_at")),
    )


def _row_to_change(row: Dict[str, Any]) -> ChangeRecord:
    return ChangeRecord(
        id=row.get("id"),
        asin=row.get("asin") or "",
        optimization_id=row.get("optimization_id"),
        field_name=row.get("field_name") or "",
        old_value=row.get("old_value") or "",
        new_value=row.get("new_value") or "",
        changed_at=_parse_ts(row.get("changed_at")),
    )


def changed_fields(record: OptimizationRecord) -> List[Tuple[str, str, str]]:
    """Return ``(field_name, old_value, new_value)`` for every field the rewrite changed."""
    pairs = [
        ("title", record.original_title, record.optimized_title),
        ("bullets", json.dumps(list(record.original_bullets)), json.dumps(list(record.optimized_bullets))),
        ("description", record.original_description, record.optimized_description),
    ]
    return [(name, old, new) for name, old, new in pairs if old != new]


def _select(query: str, params: tuple = ()) -> List[Dict[str, Any]]:
    backend = _get_storage_backend()
    conn = _connect(backend)
    try:
        cur = conn.cursor()
        cur.execute(_sql(backend, query), params)
        columns = [d[0] for d in cur.description]
        return [dict(zip(columns, row)) for row in cur.fetchall()]
    finally:
        conn.close()


# ---- Public API ----
async def create_optimization(record: OptimizationRecord) -> int:
    """Insert one optimization and its change rows atomically; return the new id."""
    backend = _get_storage_backend()
    now = datetime.now(timezone.utc)
    d = _record_to_dict(record, now)
    changes = changed_fields(record)

    def _insert_changes(cur, optimization_id: int) -> None:
        for field_name, old, new in changes:
            cur.execute(
                _sql(backend, f"INSERT INTO optimization_history ({', '.join(CHANGE_COLUMNS)}) VALUES (?,?,?,?,?,?)"),
                (record.asin, optimization_id, field_name, old, new, _iso(now)),
            )

    placeholders = ",".join(["?"] * len(OPTIMIZATION_COLUMNS))
    insert_sql = f"INSERT INTO optimizations ({', '.join(OPTIMIZATION_COLUMNS)}) VALUES ({placeholders})"
    values = [d[c] for c in OPTIMIZATION_COLUMNS]

    if backend == "postgres":
        def _sync_pg():
            conn = _connect(backend)
            try:
                cur = conn.cursor()
                cur.execute(_sql(backend, insert_sql) + " RETURNING id", values)
                optimization_id = cur.fetchone()[0]
                _insert_changes(cur, optimization_id)
                conn.commit()
                return optimization_id
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()
        optimization_id = await asyncio.to_thread(_sync_pg)
    else:
        def _sync_sqlite():
            conn = _connect(backend)
            try:
                with conn:
                    cur = conn.cursor()
                    cur.execute(insert_sql, values)
                    optimization_id = cur.lastrowid
                    _insert_changes(cur, optimization_id)
                return optimization_id
            finally:
                conn.close()
        optimization_id = await asyncio.to_thread(_sync_sqlite)

    logger.info("Optimization saved with ID %s (%d changed fields)", optimization_id, len(changes))
    return int(optimization_id)


async def get_optimization_by_id(optimization_id: int) -> Optional[OptimizationRecord]:
    rows = await asyncio.to_thread(_select, "SELECT * FROM optimizations WHERE id = ?", (optimization_id,))
    return _row_to_record(rows[0]) if rows else None


async def get_optimizations_by_asin(asin: str) -> List[OptimizationRecord]:
    rows = await asyncio.to_thread(
        _select,
        "SELECT * FROM optimizations WHERE asin = ? ORDER BY created_at DESC, id DESC",
        (asin,),
    )
    return [_row_to_record(r) for r in rows]


async def get_all_optimizations(limit: int = MAX_LISTED) -> List[OptimizationRecord]:
    limit = max(0, min(int(limit), MAX_LISTED))
    rows = await asyncio.to_thread(
        _select,
        "SELECT * FROM optimizations ORDER BY created_at DESC, id DESC LIMIT ?",
        (limit,),
    )
    return [_row_to_record(r) for r in rows]


async def get_history(asin: str) -> List[HistoryItem]:
    rows = await asyncio.to_thread(
        _select,
        f"SELECT {', '.join(HISTORY_COLUMNS)} FROM optimizations WHERE asin = ? ORDER BY created_at DESC, id DESC",
        (asin,),
    )
    return [_row_to_history(r) for r in rows]


async def get_change_history(asin: str) -> List[ChangeRecord]:
    rows = await asyncio.to_thread(
        _select,
        "SELECT * FROM optimization_history WHERE asin = ? ORDER BY changed_at DESC, id DESC",
        (asin,),
    )
    return [_row_to_change(r) for r in rows]


async def count_optimizations() -> int:
    rows = await asyncio.to_thread(_select, "SELECT COUNT(*) AS total FROM optimizations")
    return int(rows[0]["total"]) if rows else 0
