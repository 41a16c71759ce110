"""SQLite-backed key/value record store for the clinic backend.

Every collection is a JSON array stored under its name in a single
``kv_store`` table. Readers treat a missing or unparsable value as an empty
collection. Mutations are serialised through one store-wide lock.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .settings import get_settings
from .timezone import clinic_now_iso

logger = logging.getLogger(__name__)

DB_PATH: Path = get_settings().db_path

USERS = "Users"
PATIENTS = "Patients"
APPOINTMENTS = "Appointments"
INCOMES = "Incomes"
EXPENSES = "Expenses"
LOGIN_ATTEMPTS = "LoginAttempts"

COLLECTIONS: List[str] = [USERS, PATIENTS, APPOINTMENTS, INCOMES, EXPENSES, LOGIN_ATTEMPTS]

PRESERVED_FIELDS = frozenset({"id", "createdAt"})

_lock = threading.RLock()
_last_issued_id = 0


def get_connection() -> sqlite3.Connection:
    """Return a connection with row results as dictionaries."""
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def _create_kv_store(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )


@contextmanager
def locked() -> Iterator[None]:
    """Hold the store-wide lock across a read-validate-write sequence."""
    with _lock:
        yield


def initialize() -> None:
    """Create the backing table and any missing collection as an empty list."""
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    with _lock, closing(get_connection()) as conn:
        _create_kv_store(conn)
        conn.executemany(
            "INSERT OR IGNORE INTO kv_store (key, value) VALUES (?, ?)",
            [(name, json.dumps([])) for name in COLLECTIONS],
        )
        conn.commit()


def _read_raw(key: str) -> Optional[str]:
    with closing(get_connection()) as conn:
        _create_kv_store(conn)
        row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
    return row["value"] if row else None


def _write_raw(key: str, payload: str) -> None:
    with closing(get_connection()) as conn:
        _create_kv_store(conn)
        conn.execute(
            "INSERT INTO kv_store (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, payload),
        )
        conn.commit()


def _deserialize_collection(name: str, raw: Optional[str]) -> List[Dict[str, Any]]:
    if raw is None:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Collection %s holds malformed JSON; treating it as empty", name)
        return []
    if not isinstance(data, list):
        logger.warning("Collection %s is not a JSON array; treating it as empty", name)
        return []
    return [entry for entry in data if isinstance(entry, dict)]


def list_records(name: str) -> List[Dict[str, Any]]:
    return _deserialize_collection(name, _read_raw(name))


def get_record(name: str, record_id: Any) -> Optional[Dict[str, Any]]:
    for record in list_records(name):
        if record.get("id") == record_id:
            return record
    return None


def replace_collection(name: str, records: List[Dict[str, Any]]) -> None:
    with _lock:
        _write_raw(name, json.dumps(records))


def insert(name: str, record: Dict[str, Any]) -> bool:
    """Append ``record`` to the collection without validating it."""
    with _lock:
        records = list_records(name)
        records.append(dict(record))
        _write_raw(name, json.dumps(records))
    logger.debug("Inserted record %s into %s", record.get("id"), name)
    return True


def update_by_id(name: str, record_id: Any, partial: Dict[str, Any]) -> bool:
    """Merge ``partial`` onto the matching record and stamp ``updatedAt``."""
    changes = {key: value for key, value in partial.items() if key not in PRESERVED_FIELDS}
    with _lock:
        records = list_records(name)
        for index, record in enumerate(records):
            if record.get("id") == record_id:
                records[index] = {**record, **changes, "updatedAt": clinic_now_iso()}
                _write_raw(name, json.dumps(records))
                logger.debug("Updated record %s in %s", record_id, name)
                return True
    return False


def delete_by_id(name: str, record_id: Any) -> bool:
    """Remove the first record whose id matches; False when none does."""
    with _lock:
        records = list_records(name)
        for index, record in enumerate(records):
            if record.get("id") == record_id:
                del records[index]
                _write_raw(name, json.dumps(records))
                logger.debug("Deleted record %s from %s", record_id, name)
                return True
    return False


def get_value(key: str) -> Optional[Any]:
    raw = _read_raw(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Key %s holds malformed JSON; ignoring it", key)
        return None


def set_value(key: str, value: Any) -> None:
    with _lock:
        _write_raw(key, json.dumps(value))


def delete_value(key: str) -> bool:
    with _lock, closing(get_connection()) as conn:
        _create_kv_store(conn)
        cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        conn.commit()
        return cursor.rowcount > 0


def next_id(name: str) -> int:
    """Return a time-derived id greater than any id issued or stored so far."""
    global _last_issued_id
    with _lock:
        existing = [record["id"] for record in list_records(name) if isinstance(record.get("id"), int)]
        candidate = max(int(time.time() * 1000), _last_issued_id + 1, max(existing, default=0) + 1)
        _last_issued_id = candidate
        return candidate
